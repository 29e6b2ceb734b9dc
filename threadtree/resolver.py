"""
Thread resolver: links a stored message into its thread and repairs the
replies that were waiting on it.

Linkage is by id only. A reply whose parent or thread root has not arrived
yet is attached to a ghost record under that id; when the real message
arrives the store swaps the ghost for it in place and hands back the waiting
children, which are re-linked here.
"""

import logging
from typing import List, Optional, Sequence

from threadtree.boards import BoardIndex
from threadtree.exceptions import ResolverInvariantError, StructuralCycle
from threadtree.messages import Message
from threadtree.store import MessageStore

logger = logging.getLogger(__name__)


class ThreadResolver:
    def __init__(self, store: MessageStore, index: BoardIndex) -> None:
        self._store = store
        self._index = index

    def check_structure(self, message: Message) -> None:
        """
        Reject self references and ancestry cycles.

        Must run before the message is stored.

        Raises:
            StructuralCycle: if the message would become its own ancestor
        """
        if message.parent_id == message.id:
            raise StructuralCycle(
                f"Message declares itself as parent: {message.id}", message_id=message.id
            )
        if message.thread_root_id == message.id:
            raise StructuralCycle(
                f"Message declares itself as thread root: {message.id}", message_id=message.id
            )

        seen = set()
        current = message.effective_parent_id
        while current is not None and current not in seen:
            if current == message.id:
                raise StructuralCycle(
                    f"Message would become its own ancestor: {message.id}",
                    message_id=message.id,
                )
            seen.add(current)
            ancestor = self._store.get_message(current)
            if ancestor is None:
                break
            current = ancestor.effective_parent_id

    def thread_parent(self, message: Message, board: Optional[str] = None) -> Optional[str]:
        """
        Parent a reply is shown under inside its own thread.

        A reply is shown directly under the thread root while its declared
        parent is missing, when the parent belongs to another thread, and,
        for a given board, when the parent is not posted to that board.
        """
        thread_id = message.thread_root_id
        if thread_id is None:
            return None

        parent_id = message.parent_id
        if parent_id is None or parent_id == thread_id:
            return thread_id

        parent = self._store.get_message(parent_id)
        if parent is None or parent.thread_root_id != thread_id:
            return thread_id
        if board is not None and board not in parent.boards:
            return thread_id
        return parent_id

    def attach(self, message: Message, boards: Sequence[str], waiting_children: List[str]) -> int:
        """
        Link a freshly stored message and cascade to its waiting children.

        Args:
            message: The message just stored
            boards: Known boards to index the message under
            waiting_children: Children handed back by a ghost promotion

        Returns:
            Number of children re-linked by the cascade
        """
        self._link(message, boards)

        # The message may already be listed as a thread because replies
        # referenced it before it arrived.
        self._index.note_root_activity(message.id, message.date)

        relinked = 0
        for child_id in waiting_children:
            child = self._store.get_message(child_id)
            if child is None:
                raise ResolverInvariantError(
                    f"Ghost {message.id} had a waiting child that is not stored: {child_id}",
                    message_id=child_id,
                )
            self._relink(child)
            relinked += 1

        if relinked:
            logger.info(f"Promoted {message.id}: re-linked {relinked} waiting children")
        return relinked

    def index_board(self, board: str) -> int:
        """
        File every stored message that names board on it.

        Called when a board is registered after messages for it were stored,
        so the board ends up as if it had existed from the start.

        Returns:
            Number of messages filed
        """
        filed = 0
        for message, sequence in self._store.messages():
            if board in message.boards:
                self._file(message, [board], sequence)
                filed += 1

        if filed:
            logger.info(f"Board {board}: filed {filed} previously stored messages")
        return filed

    def _link(self, message: Message, boards: Sequence[str]) -> None:
        sequence = self._store.get_sequence(message.id)
        if sequence is None:
            raise ResolverInvariantError(
                f"Message linked before being stored: {message.id}", message_id=message.id
            )

        if message.is_thread:
            if message.parent_id is not None:
                self._store.get_or_create_ghost(message.parent_id)
                self._store.attach_child(message.parent_id, message.id)
        else:
            self._store.get_or_create_ghost(message.thread_root_id)
            parent_id = message.effective_parent_id
            self._store.get_or_create_ghost(parent_id)
            self._store.attach_child(parent_id, message.id)

        self._file(message, boards, sequence)

    def _file(self, message: Message, boards: Sequence[str], sequence: int) -> None:
        """Add index entries for a stored message on the given boards."""
        if message.is_thread:
            self._index.note_new_thread(boards, message.id, message.date)
            logger.debug(f"Filed {message.id} as a thread on {list(boards)}")
            return

        root = self._store.get_message(message.thread_root_id)
        for board in boards:
            self._index.note_reply(
                [board],
                message.thread_root_id,
                message.id,
                self.thread_parent(message, board),
                message.date,
                sequence,
                root_date=root.date if root is not None else None,
            )
        logger.debug(
            f"Filed {message.id} under {message.effective_parent_id} in thread {message.thread_root_id}"
        )

    def _relink(self, child: Message) -> None:
        """Re-run thread and parent resolution for a child of a promoted ghost."""
        if child.thread_root_id is not None:
            self._store.get_or_create_ghost(child.thread_root_id)
        parent_id = child.effective_parent_id
        if parent_id is not None:
            self._store.attach_child(parent_id, child.id)

        if child.is_thread:
            return

        known, _ = self._index.partition(child.boards)
        for board in known:
            self._index.reattach_reply(
                [board], child.thread_root_id, child.id, self.thread_parent(child, board)
            )
