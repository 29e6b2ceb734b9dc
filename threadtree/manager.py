"""
Message manager: the ingestion and read entry point for one forum namespace.

One MessageManager owns one MessageStore, one BoardIndex and the resolver
over them. Ingestion is serialized by the write side of a read/write lock;
reads share the read side and materialize their results before releasing it.
"""

import logging
from dataclasses import replace
from typing import Iterable, List, Optional

from threadtree.boards import Board, BoardIndex, ReplyLink, ThreadRootLink, Viewer, is_valid_board_name
from threadtree.exceptions import MalformedReference, StructuralCycle, UnknownBoard
from threadtree.locks import ReadWriteLock, with_read_lock, with_write_lock
from threadtree.messages import Message, is_valid_message_id, message_id_from_uri
from threadtree.metrics import record_ghost_promotion, record_ingest_outcome
from threadtree.resolver import ThreadResolver
from threadtree.store import MessageStore

logger = logging.getLogger(__name__)


class MessageManager:
    """
    Ingests messages in any order and serves ordered board views.

    Args:
        auto_create_boards: Create unknown boards on ingestion instead of
            raising UnknownBoard
        boards: Board names to create up front
    """

    def __init__(self, auto_create_boards: bool = False, boards: Iterable[str] = ()) -> None:
        self._rw_lock = ReadWriteLock()
        self.store = MessageStore()
        self.index = BoardIndex(self.store)
        self.resolver = ThreadResolver(self.store, self.index)
        self.auto_create_boards = auto_create_boards

        for name in boards:
            self._register_board(name)

    def _register_board(self, name: str) -> Board:
        """Create a board, filing any stored messages that already name it."""
        if self.index.has_board(name):
            return self.index.get_board(name)
        board = self.index.get_or_create_board(name)
        self.resolver.index_board(name)
        return board

    # =========================================================================
    # Ingestion
    # =========================================================================

    @with_write_lock
    def on_message_received(self, message: Message) -> bool:
        """
        Store a message and link it into its thread (idempotent).

        Args:
            message: Fully decoded message

        Returns:
            True if the message was stored, False if it was a duplicate

        Raises:
            MalformedReference: id or references are not valid ids; nothing stored
            StructuralCycle: self reference or ancestry cycle; nothing stored
            UnknownBoard: some boards are not registered; the message is
                stored and indexed under the boards that are, and filed on
                the others when they are registered
        """
        logger.info(f"Message received: id={message.id}, thread={message.thread_root_id}, parent={message.parent_id}")

        try:
            self._validate_references(message)
        except MalformedReference:
            record_ingest_outcome("malformed_reference")
            logger.warning(f"Rejected malformed message: {message.id}")
            raise

        existing = self.store.lookup(message.id)
        if existing is not None and not existing.is_ghost:
            if existing.message != message:
                logger.warning(f"Duplicate id with different content ignored: {message.id}")
            else:
                logger.info(f"Duplicate message ignored: {message.id}")
            record_ingest_outcome("duplicate")
            return False

        try:
            self.resolver.check_structure(message)
        except StructuralCycle:
            record_ingest_outcome("structural_cycle")
            logger.warning(f"Rejected cyclic message: {message.id}")
            raise

        if self.auto_create_boards:
            for name in sorted(message.boards):
                if is_valid_board_name(name):
                    self._register_board(name)
        known, unknown = self.index.partition(message.boards)

        # Validation is complete: nothing below can reject the message.
        promoted = existing is not None
        _, waiting = self.store.put(message)
        relinked = self.resolver.attach(message, known, waiting)
        if promoted:
            record_ghost_promotion(relinked)

        if unknown:
            record_ingest_outcome("unknown_board")
            logger.warning(f"Message {message.id} stored without unknown boards: {unknown}")
            raise UnknownBoard(
                f"Message {message.id} references unknown boards: {', '.join(unknown)}",
                unknown,
                message_id=message.id,
            )

        record_ingest_outcome("created")
        logger.info(f"Message stored: {message.id} on boards {known}")
        return True

    def _validate_references(self, message: Message) -> None:
        if not is_valid_message_id(message.id):
            raise MalformedReference(f"Malformed message id: {message.id!r}", message_id=message.id)

        try:
            expected_id = message_id_from_uri(message.uri, message.author)
        except MalformedReference as e:
            e.message_id = message.id
            raise
        if expected_id != message.id:
            raise MalformedReference(
                f"Message id {message.id} does not match its URI (expected {expected_id})",
                message_id=message.id,
            )

        for field_name in ("parent_id", "thread_root_id"):
            value = getattr(message, field_name)
            if value is not None and not is_valid_message_id(value):
                raise MalformedReference(
                    f"Malformed {field_name} {value!r} in message {message.id}",
                    message_id=message.id,
                )

    # =========================================================================
    # Boards
    # =========================================================================

    @with_write_lock
    def get_or_create_board(self, name: str) -> Board:
        """
        Register a board (idempotent).

        Messages stored earlier that name this board are filed on it, so a
        late registration gives the same board as registering up front.

        Raises:
            InvalidBoardName: name is not a valid board name
        """
        return self._register_board(name)

    @with_read_lock
    def get_board(self, name: str) -> Board:
        return self.index.get_board(name)

    @with_read_lock
    def has_board(self, name: str) -> bool:
        return self.index.has_board(name)

    @with_read_lock
    def board_names(self) -> List[str]:
        return self.index.board_names()

    # =========================================================================
    # Read views
    # =========================================================================

    @with_read_lock
    def get_threads(self, board: str, viewer: Optional[Viewer] = None) -> List[ThreadRootLink]:
        """Threads on a board, most recently active first. Unknown boards yield []."""
        if not self.index.has_board(board):
            return []
        return [replace(link) for link in self.index.get_board(board).get_threads(viewer)]

    @with_read_lock
    def get_all_thread_replies(self, board: str, thread_id: str, recursive: bool = True) -> List[ReplyLink]:
        """Replies of a thread on a board in date order. Unknown board or thread yields []."""
        if not self.index.has_board(board):
            return []
        replies = self.index.get_board(board).get_all_thread_replies(thread_id, recursive)
        return [replace(link) for link in replies]

    @with_read_lock
    def get_thread_reference(self, board: str, thread_id: str) -> Optional[ThreadRootLink]:
        if not self.index.has_board(board):
            return None
        link = self.index.get_board(board).get_thread_reference(thread_id)
        return replace(link) if link is not None else None

    @with_read_lock
    def get_message(self, message_id: str) -> Optional[Message]:
        return self.store.get_message(message_id)

    @with_read_lock
    def get_children(self, message_id: str) -> List[str]:
        """Ids linked directly under a message, across all threads."""
        return self.store.children_of(message_id)

    @with_read_lock
    def stats(self) -> dict:
        """
        Counts over the whole namespace.

        Returns:
            Dictionary with messages, ghosts, boards and threads counts
        """
        boards = self.index.boards()
        return {
            "messages": self.store.message_count,
            "ghosts": self.store.ghost_count,
            "boards": len(boards),
            "threads": sum(board.thread_count for board in boards),
        }
