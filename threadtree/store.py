"""
In-memory message arena.

Every id maps to exactly one record: a MessageRecord for a delivered message
or a GhostRecord for an id that was referenced before it arrived. Edges
between messages are kept as child-id lists on the records, so promoting a
ghost is a single in-place swap of the record held under its id.
"""

import logging
from dataclasses import dataclass, field
from itertools import count
from typing import Dict, List, Optional, Tuple, Union

from threadtree.messages import Message

logger = logging.getLogger(__name__)


@dataclass
class GhostRecord:
    """Placeholder for a referenced-but-not-yet-delivered message."""

    id: str
    children: List[str] = field(default_factory=list)

    @property
    def is_ghost(self) -> bool:
        return True


@dataclass
class MessageRecord:
    """A delivered message plus its arrival sequence and child ids."""

    id: str
    message: Message
    sequence: int
    children: List[str] = field(default_factory=list)

    @property
    def is_ghost(self) -> bool:
        return False


Record = Union[MessageRecord, GhostRecord]


class MessageStore:
    """
    Keyed map from message id to message record.

    Single writer: callers serialize put/get_or_create_ghost/attach_child.
    """

    def __init__(self) -> None:
        self._records: Dict[str, Record] = {}
        self._sequence = count(1)

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, message_id: str) -> bool:
        return message_id in self._records

    @property
    def message_count(self) -> int:
        return sum(1 for record in self._records.values() if not record.is_ghost)

    @property
    def ghost_count(self) -> int:
        return sum(1 for record in self._records.values() if record.is_ghost)

    def put(self, message: Message) -> Tuple[bool, List[str]]:
        """
        Store a delivered message (idempotent).

        Args:
            message: The message to store

        Returns:
            Tuple of (is_duplicate, waiting_children)
            - (False, []): New message stored
            - (False, [ids...]): A ghost was promoted; ids are the children
              that were attached to it and need re-resolution
            - (True, []): A real message with this id already exists
        """
        existing = self._records.get(message.id)

        if existing is not None and not existing.is_ghost:
            logger.debug(f"Duplicate delivery ignored: {message.id}")
            return (True, [])

        children = existing.children if existing is not None else []
        self._records[message.id] = MessageRecord(
            id=message.id,
            message=message,
            sequence=next(self._sequence),
            children=children,
        )

        if existing is not None:
            logger.debug(f"Promoted ghost {message.id} with {len(children)} waiting children")
            return (False, list(children))

        logger.debug(f"Stored new message: {message.id}")
        return (False, [])

    def get_or_create_ghost(self, message_id: str) -> Record:
        """Return the record for message_id, creating a ghost if it is unknown."""
        record = self._records.get(message_id)
        if record is None:
            record = GhostRecord(id=message_id)
            self._records[message_id] = record
            logger.debug(f"Created ghost for forward reference: {message_id}")
        return record

    def lookup(self, message_id: Optional[str]) -> Optional[Record]:
        """Return the record for message_id, or None. Never raises."""
        if message_id is None:
            return None
        return self._records.get(message_id)

    def get_message(self, message_id: Optional[str]) -> Optional[Message]:
        """Return the delivered message for message_id, or None for ghosts and unknown ids."""
        record = self.lookup(message_id)
        if record is None or record.is_ghost:
            return None
        return record.message

    def get_sequence(self, message_id: str) -> Optional[int]:
        record = self.lookup(message_id)
        if record is None or record.is_ghost:
            return None
        return record.sequence

    def messages(self) -> List[Tuple[Message, int]]:
        """Delivered messages with their sequence numbers, in arrival order."""
        records = [record for record in self._records.values() if not record.is_ghost]
        records.sort(key=lambda record: record.sequence)
        return [(record.message, record.sequence) for record in records]

    def attach_child(self, parent_id: str, child_id: str) -> None:
        """Link child_id under parent_id. The parent record must already exist."""
        record = self._records[parent_id]
        if child_id not in record.children:
            record.children.append(child_id)

    def children_of(self, message_id: str) -> List[str]:
        record = self.lookup(message_id)
        if record is None:
            return []
        return list(record.children)
