"""
Incremental thread-tree reconstruction for forum boards.

Messages may arrive in any order; MessageManager links each one into its
thread and keeps per-board thread and reply orderings that converge to the
same result for every delivery order.
"""

from threadtree.boards import Board, BoardIndex, ReplyLink, ThreadRootLink
from threadtree.exceptions import (
    InvalidBoardName,
    MalformedReference,
    ResolverInvariantError,
    StructuralCycle,
    StructuralError,
    ThreadTreeError,
    UnknownBoard,
)
from threadtree.manager import MessageManager
from threadtree.messages import Message, message_id_from_uri
from threadtree.store import GhostRecord, MessageRecord, MessageStore

__all__ = [
    "Board",
    "BoardIndex",
    "GhostRecord",
    "InvalidBoardName",
    "MalformedReference",
    "Message",
    "MessageManager",
    "MessageRecord",
    "MessageStore",
    "ReplyLink",
    "ResolverInvariantError",
    "StructuralCycle",
    "StructuralError",
    "ThreadRootLink",
    "ThreadTreeError",
    "UnknownBoard",
    "message_id_from_uri",
]
