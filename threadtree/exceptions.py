"""
Exception types raised by the thread-tree core.

Structural errors are always raised before any mutation of the message
store or the board index, so a rejected message leaves no partial state.
Duplicate deliveries are not errors: ingestion simply reports them.
"""

from typing import Iterable, Optional


class ThreadTreeError(Exception):
    """Base exception for all thread-tree errors."""

    def __init__(self, message: str, *, message_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.message_id = message_id


class StructuralError(ThreadTreeError):
    """
    A message was rejected because its references are structurally invalid.

    Nothing is stored when this is raised.
    """


class StructuralCycle(StructuralError):
    """
    A message references itself or would become its own ancestor.

    Raised when:
    - parent_id equals the message id
    - thread_root_id equals the message id
    - walking the parent chain from the declared parent reaches the message
    """


class MalformedReference(StructuralError):
    """
    A message id or reference does not have a valid identifier shape.

    Raised when:
    - id, parent_id or thread_root_id is not of the form <local>@<author>
    - the message id cannot be derived from the message URI and author
    """


class UnknownBoard(ThreadTreeError):
    """
    A message or read referenced a board the registry does not recognize.

    On ingestion the message is still stored and indexed under its known
    boards; this error only reports the boards that were skipped.
    """

    def __init__(
        self,
        message: str,
        boards: Iterable[str],
        *,
        message_id: Optional[str] = None,
    ) -> None:
        super().__init__(message, message_id=message_id)
        self.boards = sorted(boards)


class InvalidBoardName(ThreadTreeError, ValueError):
    """Board name is empty, too long, not lowercase or contains whitespace."""

    def __init__(self, message: str, name: str) -> None:
        super().__init__(message)
        self.name = name


class ResolverInvariantError(ThreadTreeError, RuntimeError):
    """
    Internal consistency of the resolver was violated.

    This indicates a bug, never bad input: a ghost-promotion cascade found a
    waiting child that is not a stored message.
    """
