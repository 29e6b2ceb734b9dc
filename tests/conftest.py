"""
Pytest configuration and shared fixtures.

Environment variables are set before any threadtree.config import so the
journal engine points at a throwaway SQLite file.
"""

import os
import tempfile
import uuid
from datetime import datetime, timedelta, timezone

os.environ.setdefault(
    "DATABASE_URL",
    "sqlite:///" + os.path.join(tempfile.gettempdir(), f"threadtree-test-{os.getpid()}.db"),
)
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest

# Clear settings cache before any app imports to ensure test env vars are used
from threadtree.config import get_settings
get_settings.cache_clear()

from threadtree.manager import MessageManager
from threadtree.messages import Message


TEST_BOARD = "en.test"
START_DATE = datetime(2025, 1, 15, 10, 0, tzinfo=timezone.utc)


class MessageFactory:
    """Builds well-formed messages with strictly increasing dates."""

    def __init__(self, board: str = TEST_BOARD) -> None:
        self.board = board
        self._clock = START_DATE
        self._index = 0

    def create(self, author="alice", parent=None, thread=None, boards=None, date=None, title=None):
        self._index += 1
        local_id = str(uuid.uuid4())
        if date is None:
            self._clock += timedelta(minutes=1)
            date = self._clock

        return Message(
            id=f"{local_id}@{author}",
            uri=f"USK@{author}/messages-{self._index}#{local_id}",
            parent_id=parent.id if isinstance(parent, Message) else parent,
            thread_root_id=thread.id if isinstance(thread, Message) else thread,
            author=author,
            boards=frozenset(boards or [self.board]),
            date=date,
            title=title or f"message {self._index}",
            body=f"message body {local_id}",
        )


@pytest.fixture
def factory() -> MessageFactory:
    return MessageFactory()


@pytest.fixture
def manager() -> MessageManager:
    """Fresh manager with the test board registered."""
    return MessageManager(boards=[TEST_BOARD])


def thread_ids(manager, board=TEST_BOARD, viewer=None):
    return [link.thread_id for link in manager.get_threads(board, viewer)]


def reply_ids(manager, thread, board=TEST_BOARD, recursive=True):
    thread_id = thread.id if isinstance(thread, Message) else thread
    return [link.message_id for link in manager.get_all_thread_replies(board, thread_id, recursive)]


def ids(*messages):
    return [message.id for message in messages]
