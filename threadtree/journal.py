import json
import logging
from datetime import datetime, timezone
from typing import Generator, List, Tuple

from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker, Session, declarative_base
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from threadtree.config import settings
from threadtree.messages import Message

logger = logging.getLogger(__name__)

# check_same_thread=False is required for SQLite to work with FastAPI's threadpool
engine = create_engine(
    settings.DATABASE_URL,
    connect_args={"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {},
    echo=False,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def _utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def init_db() -> None:
    """
    Initialize the journal by creating all tables.
    Called during application startup.
    """
    logger.debug(f"Initializing journal with URL: {settings.DATABASE_URL}")
    try:
        # Import models to register them with Base.metadata
        from threadtree.models import JournalBoard, JournalMessage  # noqa: F401

        Base.metadata.create_all(bind=engine)
        logger.info("Journal initialized successfully")
    except SQLAlchemyError as e:
        logger.error(f"Failed to initialize journal: {e}")
        raise


def get_db() -> Generator[Session, None, None]:
    """
    Dependency to get a journal session.
    Yields a session and ensures it's closed after use.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def check_db_health() -> bool:
    """
    Check if the journal is reachable.

    Returns:
        True if the database answers a trivial query, False otherwise.
    """
    logger.debug("Checking journal health...")
    try:
        with SessionLocal() as db:
            db.execute(text("SELECT 1"))
        logger.debug("Journal health check passed")
        return True
    except SQLAlchemyError as e:
        logger.error(f"Journal health check failed: {e}")
        return False


# =============================================================================
# Journal Repository Functions
# =============================================================================

def append_message(db: Session, message: Message) -> Tuple[bool, bool]:
    """
    Append an accepted message to the journal (idempotent).

    Args:
        db: Database session
        message: Message accepted by the message manager

    Returns:
        Tuple of (success: bool, is_duplicate: bool)
        - (True, False): Message journaled
        - (True, True): Message already journaled (idempotent success)
        - (False, False): Error occurred
    """
    from threadtree.models import JournalMessage

    logger.debug(f"Journaling message: id={message.id}")

    try:
        db.add(JournalMessage(
            message_id=message.id,
            uri=message.uri,
            parent_id=message.parent_id,
            thread_root_id=message.thread_root_id,
            author=message.author,
            boards=json.dumps(sorted(message.boards)),
            date=message.date.isoformat(),
            title=message.title,
            body=message.body,
            received_at=_utc_now(),
        ))
        db.commit()
        logger.debug(f"Message journaled: {message.id}")
        return (True, False)

    except IntegrityError:
        db.rollback()
        logger.info(f"Message already journaled: {message.id}")
        return (True, True)

    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to journal message {message.id}: {e}")
        return (False, False)


def iter_journal(db: Session) -> List[Message]:
    """
    Load every journaled message in arrival order.

    Returns:
        List of Message objects ready to be replayed
    """
    from threadtree.models import JournalMessage

    rows = db.query(JournalMessage).order_by(JournalMessage.position.asc()).all()
    logger.info(f"Loaded {len(rows)} journaled messages")

    return [
        Message(
            id=row.message_id,
            uri=row.uri,
            parent_id=row.parent_id,
            thread_root_id=row.thread_root_id,
            author=row.author,
            boards=json.loads(row.boards),
            date=datetime.fromisoformat(row.date),
            title=row.title,
            body=row.body,
        )
        for row in rows
    ]


def save_board(db: Session, name: str) -> bool:
    """
    Record a board in the journal.

    Returns:
        True if the board was added, False if it was already recorded
    """
    from threadtree.models import JournalBoard

    try:
        db.add(JournalBoard(name=name, created_at=_utc_now()))
        db.commit()
        logger.info(f"Board journaled: {name}")
        return True
    except IntegrityError:
        db.rollback()
        return False


def list_boards(db: Session) -> List[str]:
    from threadtree.models import JournalBoard

    return [row.name for row in db.query(JournalBoard).order_by(JournalBoard.name.asc()).all()]
