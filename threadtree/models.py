"""
SQLAlchemy ORM models for the message journal.

The journal is an append-only record of accepted messages and registered
boards. The in-memory thread tree is rebuilt from it at startup.
For Pydantic request/response schemas, see schemas.py.
"""

from sqlalchemy import Column, Integer, String, Text

from threadtree.journal import Base


class JournalMessage(Base):
    """
    One accepted message.

    Table: messages
    Primary Key: position (arrival order)
    Unique: message_id (ensures idempotency)
    """
    __tablename__ = "messages"

    position = Column(Integer, primary_key=True, autoincrement=True)
    message_id = Column(String, nullable=False, unique=True, index=True)
    uri = Column(String, nullable=False)
    parent_id = Column(String, nullable=True)
    thread_root_id = Column(String, nullable=True, index=True)
    author = Column(String, nullable=False, index=True)
    boards = Column(Text, nullable=False)  # JSON list of board names
    date = Column(String, nullable=False)  # ISO-8601 UTC string
    title = Column(Text, nullable=False, default="")
    body = Column(Text, nullable=False, default="")
    received_at = Column(String, nullable=False)  # Server time ISO-8601


class JournalBoard(Base):
    """
    A registered board.

    Table: boards
    """
    __tablename__ = "boards"

    name = Column(String, primary_key=True)
    created_at = Column(String, nullable=False)
