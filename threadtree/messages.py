"""
Message value object and identifier helpers.

A message id has the form ``<uuid>@<author>``. The uuid part is the fragment
of the message URI (``<message-list-uri>#<uuid>``), so every id can be
regenerated from the URI and the author identity.
"""

import re
from datetime import datetime, timezone
from typing import FrozenSet, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from threadtree.exceptions import MalformedReference


MESSAGE_ID_PATTERN = re.compile(r"^[^@\s#/]+@[^@\s#/]+$")


def is_valid_message_id(value: Optional[str]) -> bool:
    """Check that value has the <local>@<author> shape of a message id."""
    if not value:
        return False
    return MESSAGE_ID_PATTERN.match(value) is not None


def message_id_from_uri(uri: str, author: str) -> str:
    """
    Derive the message id from a message URI and its author id.

    Args:
        uri: Message URI, <message-list-uri>#<uuid>
        author: Author identity id

    Returns:
        The message id, <uuid>@<author>

    Raises:
        MalformedReference: if the URI carries no fragment
    """
    _, sep, fragment = uri.rpartition("#")
    if not sep or not fragment:
        raise MalformedReference(f"Message URI has no message fragment: {uri}")
    return f"{fragment}@{author}"


class Message(BaseModel):
    """
    A fully decoded forum message.

    Immutable once constructed. Replies are tracked by the message store,
    never as fields on the parent.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Message id, <uuid>@<author>")
    uri: str = Field(..., min_length=1, description="Content address of the message")
    parent_id: Optional[str] = Field(None, description="Declared parent message id")
    thread_root_id: Optional[str] = Field(None, description="Declared thread root id")
    author: str = Field(..., min_length=1, description="Author identity id")
    boards: FrozenSet[str] = Field(..., min_length=1, description="Boards the message is posted to")
    date: datetime = Field(..., description="Declared message date")
    title: str = Field("", description="Subject line")
    body: str = Field("", description="Message text")

    @field_validator("date")
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        """Treat naive datetimes as UTC so dates always compare."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)

    @property
    def is_thread(self) -> bool:
        return self.thread_root_id is None

    @property
    def effective_parent_id(self) -> Optional[str]:
        """Declared parent, or the thread root when no parent is declared."""
        return self.parent_id or self.thread_root_id
