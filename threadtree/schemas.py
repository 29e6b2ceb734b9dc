"""
Pydantic schemas for request/response validation.

This module contains:
- Request models for incoming messages and boards
- Response models for board, thread and reply views
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from threadtree.messages import Message


# =============================================================================
# Pydantic Request Models
# =============================================================================

class MessageRequest(BaseModel):
    """
    Pydantic model for validating incoming messages.

    Validates:
    - id, uri, author: non-empty strings
    - boards: at least one board name
    - date: ISO-8601 UTC string with Z suffix
    - title: optional, max 256 characters
    """
    id: str = Field(..., min_length=1, description="Message id, <uuid>@<author>")
    uri: str = Field(..., min_length=1, description="Message URI, <message-list-uri>#<uuid>")
    parent_id: Optional[str] = Field(None, description="Declared parent message id")
    thread_root_id: Optional[str] = Field(None, description="Declared thread root id")
    author: str = Field(..., min_length=1, description="Author identity id")
    boards: List[str] = Field(..., min_length=1, description="Boards the message is posted to")
    date: str = Field(
        ...,
        description="Message date in ISO-8601 UTC format (e.g., 2025-01-15T10:00:00Z)"
    )
    title: str = Field("", max_length=256, description="Subject line")
    body: str = Field("", description="Message text")

    @field_validator("date")
    @classmethod
    def validate_iso8601_utc(cls, v: str) -> str:
        """Validate ISO-8601 UTC timestamp with Z suffix."""
        if not v.endswith("Z"):
            raise ValueError("date must end with 'Z' (UTC timezone)")
        try:
            datetime.fromisoformat(v.replace("Z", "+00:00"))
        except ValueError:
            raise ValueError("date must be a valid ISO-8601 UTC timestamp (e.g., 2025-01-15T10:00:00Z)")
        return v

    def to_message(self) -> Message:
        return Message(
            id=self.id,
            uri=self.uri,
            parent_id=self.parent_id,
            thread_root_id=self.thread_root_id,
            author=self.author,
            boards=frozenset(self.boards),
            date=datetime.fromisoformat(self.date.replace("Z", "+00:00")),
            title=self.title,
            body=self.body,
        )

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "id": "2f1c6e0a-5b7d-4c39-9a61-0e8d3f4b7a21@alice",
                    "uri": "USK@alice/messages-0#2f1c6e0a-5b7d-4c39-9a61-0e8d3f4b7a21",
                    "parent_id": None,
                    "thread_root_id": None,
                    "author": "alice",
                    "boards": ["en.test"],
                    "date": "2025-01-15T10:00:00Z",
                    "title": "Hello",
                    "body": "First thread"
                }
            ]
        }
    }


class BoardRequest(BaseModel):
    """Request model for registering a board."""
    name: str = Field(..., min_length=1, max_length=256, description="Board name, lowercase")


# =============================================================================
# Pydantic Response Models
# =============================================================================

class IngestResponse(BaseModel):
    """
    Response model for message ingestion.

    status is "ok" for stored and duplicate messages, "partial" when the
    message was stored but some of its boards are unknown.
    """
    status: str = Field(default="ok", description="Operation status")
    duplicate: bool = Field(default=False, description="Message was already known")
    unknown_boards: List[str] = Field(default_factory=list, description="Boards that were skipped")


class ErrorResponse(BaseModel):
    """Response model for error responses."""
    detail: str = Field(..., description="Error description")


class BoardResponse(BaseModel):
    name: str = Field(..., description="Board name")
    thread_count: int = Field(..., ge=0, description="Threads listed on the board")


class BoardsListResponse(BaseModel):
    data: List[BoardResponse] = Field(default_factory=list, description="Registered boards")


class ThreadResponse(BaseModel):
    """
    A thread on a board.

    title and author are null while the thread root has not arrived.
    """
    thread_id: str = Field(..., description="Thread root message id")
    board: str = Field(..., description="Board name")
    last_activity: str = Field(..., description="Latest date in the thread (ISO-8601 UTC)")
    materialized: bool = Field(..., description="Whether the thread root has arrived")
    reply_count: int = Field(..., ge=0, description="Replies filed in the thread")
    title: Optional[str] = Field(None, description="Thread root title")
    author: Optional[str] = Field(None, description="Thread root author")


class ThreadsListResponse(BaseModel):
    data: List[ThreadResponse] = Field(default_factory=list, description="Threads, most recent first")
    total: int = Field(..., ge=0, description="Number of threads")


class ReplyResponse(BaseModel):
    """A reply inside a thread."""
    message_id: str = Field(..., description="Reply message id")
    thread_id: str = Field(..., description="Thread the reply is filed in")
    parent_id: str = Field(..., description="Message the reply is shown under in this thread")
    date: str = Field(..., description="Reply date (ISO-8601 UTC)")
    author: Optional[str] = Field(None, description="Reply author")
    title: Optional[str] = Field(None, description="Reply title")


class RepliesListResponse(BaseModel):
    data: List[ReplyResponse] = Field(default_factory=list, description="Replies in date order")
    total: int = Field(..., ge=0, description="Number of replies returned")
    recursive: bool = Field(..., description="Whether nested replies are included")


class StatsResponse(BaseModel):
    """
    Response model for GET /stats endpoint.

    - messages: delivered messages
    - ghosts: referenced messages that have not arrived yet
    - boards: registered boards
    - threads: thread links across all boards
    """
    messages: int = Field(..., ge=0, description="Delivered messages")
    ghosts: int = Field(..., ge=0, description="Referenced but missing messages")
    boards: int = Field(..., ge=0, description="Registered boards")
    threads: int = Field(..., ge=0, description="Threads across all boards")


class HealthResponse(BaseModel):
    """Response model for health check endpoints."""
    status: str = Field(..., description="Health status")
    reason: Optional[str] = Field(None, description="Reason if not ready")
