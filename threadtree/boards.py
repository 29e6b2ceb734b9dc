"""
Per-board secondary index over the message store.

Each board keeps:
- an activity-ordered list of thread links, most recently active first
- per thread, a chronological list of reply links

Links hold message ids only. Messages are resolved from the store when a
caller asks for them, so the index never owns message records.
"""

import logging
from bisect import bisect_left, insort
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, Iterator, List, Optional, Protocol, Tuple

from threadtree.exceptions import InvalidBoardName, UnknownBoard
from threadtree.messages import Message
from threadtree.store import MessageStore

logger = logging.getLogger(__name__)

BOARD_NAME_MAX_LENGTH = 256


class Viewer(Protocol):
    """Opaque viewer identity; filtering decisions are made by the identity layer."""

    def wants_messages_from(self, author: str) -> bool:
        ...


@dataclass
class ThreadRootLink:
    """
    A thread listed on a board.

    last_activity only ever moves forward. Equal timestamps are ordered by
    thread_id so the order never depends on which message arrived first.
    """

    board: str
    thread_id: str
    last_activity: datetime

    @property
    def sort_key(self) -> Tuple[float, str]:
        return (-self.last_activity.timestamp(), self.thread_id)


@dataclass
class ReplyLink:
    """A reply filed in a thread, shown under parent_id inside that thread."""

    board: str
    thread_id: str
    message_id: str
    parent_id: str
    date: datetime
    sequence: int

    @property
    def sort_key(self) -> Tuple[float, int]:
        return (self.date.timestamp(), self.sequence)


def is_valid_board_name(name: str) -> bool:
    if not name or len(name) > BOARD_NAME_MAX_LENGTH:
        return False
    if name != name.lower():
        return False
    return not any(ch.isspace() for ch in name)


class Board:
    """Thread and reply ordering for a single board."""

    def __init__(self, name: str, store: MessageStore) -> None:
        self.name = name
        self._store = store
        self._threads: Dict[str, ThreadRootLink] = {}
        self._thread_order: List[Tuple[Tuple[float, str], str]] = []
        self._replies: Dict[str, Dict[str, ReplyLink]] = {}
        self._reply_order: Dict[str, List[Tuple[Tuple[float, int], str]]] = {}

    def __repr__(self) -> str:
        return f"Board(name={self.name!r}, threads={len(self._threads)})"

    # -------------------------------------------------------------------------
    # Write path
    # -------------------------------------------------------------------------

    def add_thread(self, thread_id: str, date: datetime) -> ThreadRootLink:
        """Insert a thread link, or bump it if a forward reference created it already."""
        link = self._threads.get(thread_id)
        if link is not None:
            self._bump(link, date)
            return link

        link = ThreadRootLink(
            board=self.name,
            thread_id=thread_id,
            last_activity=date,
        )
        self._threads[thread_id] = link
        insort(self._thread_order, (link.sort_key, thread_id))
        logger.debug(f"Board {self.name}: new thread {thread_id}")
        return link

    def add_reply(
        self,
        thread_id: str,
        message_id: str,
        parent_id: str,
        date: datetime,
        sequence: int,
        root_date: Optional[datetime] = None,
    ) -> ReplyLink:
        """
        File a reply in a thread and bump the thread's activity.

        Creates the thread link first if the thread is not listed yet. Its
        initial activity covers the root's own date when the root is known.
        """
        if thread_id not in self._threads:
            initial = date if root_date is None else max(date, root_date)
            self.add_thread(thread_id, initial)

        replies = self._replies.setdefault(thread_id, {})
        link = replies.get(message_id)
        if link is None:
            link = ReplyLink(
                board=self.name,
                thread_id=thread_id,
                message_id=message_id,
                parent_id=parent_id,
                date=date,
                sequence=sequence,
            )
            replies[message_id] = link
            insort(self._reply_order.setdefault(thread_id, []), (link.sort_key, message_id))
            logger.debug(f"Board {self.name}: reply {message_id} filed in thread {thread_id}")

        self._bump(self._threads[thread_id], date)
        return link

    def bump_thread(self, thread_id: str, date: datetime) -> bool:
        link = self._threads.get(thread_id)
        if link is None:
            return False
        return self._bump(link, date)

    def reattach_reply(self, thread_id: str, message_id: str, parent_id: str) -> bool:
        link = self._replies.get(thread_id, {}).get(message_id)
        if link is None or link.parent_id == parent_id:
            return False
        link.parent_id = parent_id
        return True

    def _bump(self, link: ThreadRootLink, date: datetime) -> bool:
        """Move a thread forward if date is newer than its activity. Never moves it back."""
        if date <= link.last_activity:
            return False

        position = bisect_left(self._thread_order, (link.sort_key, link.thread_id))
        del self._thread_order[position]
        link.last_activity = date
        insort(self._thread_order, (link.sort_key, link.thread_id))
        return True

    # -------------------------------------------------------------------------
    # Read path
    # -------------------------------------------------------------------------

    @property
    def thread_count(self) -> int:
        return len(self._threads)

    def reply_count(self, thread_id: str) -> int:
        return len(self._replies.get(thread_id, {}))

    def get_threads(self, viewer: Optional[Viewer] = None) -> Iterator[ThreadRootLink]:
        """
        Iterate thread links in activity order, most recent first.

        Threads whose root has not arrived yet are always listed. When a
        viewer is given, threads started by authors the viewer does not want
        are skipped.
        """
        for _, thread_id in list(self._thread_order):
            link = self._threads[thread_id]
            if viewer is not None:
                root = self._store.get_message(thread_id)
                if root is not None and not viewer.wants_messages_from(root.author):
                    continue
            yield link

    def get_all_thread_replies(self, thread_id: str, recursive: bool = True) -> Iterator[ReplyLink]:
        """
        Iterate the replies of a thread by date, ties by arrival.

        With recursive=False only replies shown directly under the thread root
        are returned.
        """
        replies = self._replies.get(thread_id)
        if not replies:
            return
        for _, message_id in list(self._reply_order[thread_id]):
            link = replies[message_id]
            if recursive or link.parent_id == thread_id:
                yield link

    def get_thread_reference(self, thread_id: str) -> Optional[ThreadRootLink]:
        return self._threads.get(thread_id)

    def is_materialized(self, link: ThreadRootLink) -> bool:
        return self._store.get_message(link.thread_id) is not None

    def get_thread_message(self, link: ThreadRootLink) -> Optional[Message]:
        return self._store.get_message(link.thread_id)

    def get_reply_message(self, link: ReplyLink) -> Optional[Message]:
        return self._store.get_message(link.message_id)


class BoardIndex:
    """Registry of boards plus the write API the resolver drives."""

    def __init__(self, store: MessageStore) -> None:
        self._store = store
        self._boards: Dict[str, Board] = {}

    def __contains__(self, name: str) -> bool:
        return name in self._boards

    def get_or_create_board(self, name: str) -> Board:
        board = self._boards.get(name)
        if board is not None:
            return board

        if not is_valid_board_name(name):
            raise InvalidBoardName(f"Invalid board name: {name!r}", name)

        board = Board(name, self._store)
        self._boards[name] = board
        logger.info(f"Board created: {name}")
        return board

    def get_board(self, name: str) -> Board:
        board = self._boards.get(name)
        if board is None:
            raise UnknownBoard(f"Unknown board: {name}", [name])
        return board

    def has_board(self, name: str) -> bool:
        return name in self._boards

    def board_names(self) -> List[str]:
        return sorted(self._boards)

    def boards(self) -> List[Board]:
        return [self._boards[name] for name in self.board_names()]

    def partition(self, names: Iterable[str]) -> Tuple[List[str], List[str]]:
        """Split board names into (known, unknown), both sorted."""
        known: List[str] = []
        unknown: List[str] = []
        for name in sorted(names):
            (known if name in self._boards else unknown).append(name)
        return known, unknown

    def note_new_thread(self, boards: Iterable[str], root_id: str, date: datetime) -> None:
        for name in boards:
            self._boards[name].add_thread(root_id, date)

    def note_reply(
        self,
        boards: Iterable[str],
        thread_id: str,
        message_id: str,
        parent_id: str,
        date: datetime,
        sequence: int,
        root_date: Optional[datetime] = None,
    ) -> None:
        for name in boards:
            self._boards[name].add_reply(
                thread_id, message_id, parent_id, date, sequence, root_date=root_date
            )

    def note_root_activity(self, root_id: str, date: datetime) -> int:
        """Bump every thread keyed by root_id on any board. Returns the number of boards touched."""
        moved = 0
        for board in self._boards.values():
            if board.bump_thread(root_id, date):
                moved += 1
        return moved

    def reattach_reply(
        self, boards: Iterable[str], thread_id: str, message_id: str, parent_id: str
    ) -> None:
        for name in boards:
            board = self._boards.get(name)
            if board is not None:
                board.reattach_reply(thread_id, message_id, parent_id)
