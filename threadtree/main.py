import logging
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import FastAPI, Response, Request, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session

from threadtree.config import settings
from threadtree.exceptions import InvalidBoardName, StructuralError, UnknownBoard
from threadtree.journal import (
    SessionLocal,
    init_db,
    check_db_health,
    get_db,
    append_message,
    iter_journal,
    save_board,
    list_boards,
)
from threadtree.logging_utils import setup_logging, RequestLoggingMiddleware, log_ingest_data
from threadtree.manager import MessageManager
from threadtree.metrics import get_metrics, get_metrics_content_type
from threadtree.schemas import (
    HealthResponse,
    MessageRequest,
    IngestResponse,
    ErrorResponse,
    BoardRequest,
    BoardResponse,
    BoardsListResponse,
    ThreadResponse,
    ThreadsListResponse,
    ReplyResponse,
    RepliesListResponse,
    StatsResponse,
)


# Setup structured JSON logging
setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


def rebuild_manager() -> MessageManager:
    """
    Build a fresh message manager from the journal.

    Boards are registered first, then every journaled message is replayed in
    arrival order. The resolver converges to the same tree for any order, and
    a board registered late is filed with its earlier messages, so the rebuilt
    state matches the state before shutdown.
    """
    manager = MessageManager(
        auto_create_boards=settings.AUTO_CREATE_BOARDS,
        boards=settings.DEFAULT_BOARDS,
    )

    with SessionLocal() as db:
        for name in settings.DEFAULT_BOARDS:
            save_board(db, name)
        for name in list_boards(db):
            manager.get_or_create_board(name)

        replayed = 0
        for message in iter_journal(db):
            try:
                manager.on_message_received(message)
            except UnknownBoard as e:
                logger.warning(f"Replayed {message.id} without boards {e.boards}")
            replayed += 1

    logger.info(f"Replayed {replayed} messages into {len(manager.board_names())} boards")
    return manager


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    - Startup: Initialize the journal and rebuild the thread tree
    """
    init_db()
    app.state.manager = rebuild_manager()
    yield


app = FastAPI(
    title="Thread Tree API",
    description="Reconstructs threaded board discussions from messages delivered in any order",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)


def get_manager(request: Request) -> MessageManager:
    return request.app.state.manager


def require_board(manager: MessageManager, board: str) -> None:
    if not manager.has_board(board):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"unknown board: {board}"
        )


# =============================================================================
# Health Check Routes
# =============================================================================

@app.get("/health/live", response_model=HealthResponse)
async def health_live() -> HealthResponse:
    """
    Liveness probe - always returns 200 once the app is running.
    """
    return HealthResponse(status="ok")


@app.get("/health/ready", response_model=HealthResponse)
async def health_ready(response: Response) -> HealthResponse:
    """
    Readiness probe - returns 200 only if the journal is reachable.

    Otherwise returns 503 (Service Unavailable).
    """
    if not check_db_health():
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="not_ready",
            reason="Journal database not reachable"
        )

    return HealthResponse(status="ready")


# =============================================================================
# Ingestion Route
# =============================================================================

@app.post(
    "/messages",
    response_model=IngestResponse,
    responses={
        422: {"model": ErrorResponse, "description": "Structural or validation error"},
    }
)
async def ingest_message(
    request: Request,
    payload: MessageRequest,
    manager: MessageManager = Depends(get_manager),
    db: Session = Depends(get_db)
) -> IngestResponse:
    """
    Ingest one fully decoded message, in any delivery order.

    - Links the message into its thread, repairing replies that arrived first
    - Idempotent: a duplicate id returns 200 without changing anything
    - Structural errors (self reference, cycles, malformed ids) return 422
    - Unknown boards are skipped and reported with status "partial"; the
      message is filed on them once they are registered
    - A journal failure returns 500; retrying the delivery journals it
    """
    message = payload.to_message()
    logger.info(f"Ingest request received: {message.id}")

    unknown_boards = []
    try:
        created = manager.on_message_received(message)
    except StructuralError as e:
        log_ingest_data(request=request, message_id=message.id, dup=False, result="rejected")
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e)
        )
    except UnknownBoard as e:
        created = True
        unknown_boards = e.boards

    # Duplicates are journaled too: the append is idempotent, and it repairs
    # a message whose first journal write failed after it was accepted.
    success, _ = append_message(db, message)
    if not success:
        log_ingest_data(request=request, message_id=message.id, dup=not created, result="error")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to journal message"
        )

    if unknown_boards:
        result = "partial"
    else:
        result = "created" if created else "duplicate"
    logger.info(f"Message processed: {message.id}, result: {result}")
    log_ingest_data(request=request, message_id=message.id, dup=not created, result=result)

    return IngestResponse(
        status="partial" if unknown_boards else "ok",
        duplicate=not created,
        unknown_boards=unknown_boards,
    )


# =============================================================================
# Board Routes
# =============================================================================

@app.post(
    "/boards",
    response_model=BoardResponse,
    responses={422: {"model": ErrorResponse, "description": "Invalid board name"}}
)
async def create_board(
    payload: BoardRequest,
    manager: MessageManager = Depends(get_manager),
    db: Session = Depends(get_db)
) -> BoardResponse:
    """Register a board (idempotent)."""
    try:
        board = manager.get_or_create_board(payload.name)
    except InvalidBoardName as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e)
        )

    save_board(db, board.name)
    return BoardResponse(name=board.name, thread_count=board.thread_count)


@app.get("/boards", response_model=BoardsListResponse)
async def list_all_boards(manager: MessageManager = Depends(get_manager)) -> BoardsListResponse:
    data = [
        BoardResponse(name=name, thread_count=len(manager.get_threads(name)))
        for name in manager.board_names()
    ]
    return BoardsListResponse(data=data)


@app.get("/boards/{board}/threads", response_model=ThreadsListResponse)
async def list_threads(
    board: str,
    manager: MessageManager = Depends(get_manager)
) -> ThreadsListResponse:
    """
    List the threads of a board, most recently active first.

    Threads whose root message has not arrived yet are listed with
    materialized=false.
    """
    require_board(manager, board)

    data = []
    for link in manager.get_threads(board):
        root = manager.get_message(link.thread_id)
        data.append(ThreadResponse(
            thread_id=link.thread_id,
            board=link.board,
            last_activity=link.last_activity.isoformat(),
            materialized=root is not None,
            reply_count=len(manager.get_all_thread_replies(board, link.thread_id)),
            title=root.title if root is not None else None,
            author=root.author if root is not None else None,
        ))

    logger.info(f"GET /boards/{board}/threads: returned {len(data)} threads")
    return ThreadsListResponse(data=data, total=len(data))


@app.get(
    "/boards/{board}/threads/{thread_id}",
    response_model=ThreadResponse,
    responses={404: {"model": ErrorResponse, "description": "Unknown board or thread"}}
)
async def get_thread(
    board: str,
    thread_id: str,
    manager: MessageManager = Depends(get_manager)
) -> ThreadResponse:
    require_board(manager, board)

    link = manager.get_thread_reference(board, thread_id)
    if link is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"unknown thread: {thread_id}"
        )

    root = manager.get_message(thread_id)
    return ThreadResponse(
        thread_id=link.thread_id,
        board=link.board,
        last_activity=link.last_activity.isoformat(),
        materialized=root is not None,
        reply_count=len(manager.get_all_thread_replies(board, thread_id)),
        title=root.title if root is not None else None,
        author=root.author if root is not None else None,
    )


@app.get("/boards/{board}/threads/{thread_id}/replies", response_model=RepliesListResponse)
async def list_replies(
    board: str,
    thread_id: str,
    recursive: Annotated[bool, Query(description="Include nested replies")] = True,
    manager: MessageManager = Depends(get_manager)
) -> RepliesListResponse:
    """
    List the replies of a thread in date order.

    With recursive=false only replies shown directly under the thread root
    are returned. Unknown threads return an empty list.
    """
    require_board(manager, board)

    data = []
    for link in manager.get_all_thread_replies(board, thread_id, recursive=recursive):
        reply = manager.get_message(link.message_id)
        data.append(ReplyResponse(
            message_id=link.message_id,
            thread_id=link.thread_id,
            parent_id=link.parent_id,
            date=link.date.isoformat(),
            author=reply.author if reply is not None else None,
            title=reply.title if reply is not None else None,
        ))

    return RepliesListResponse(data=data, total=len(data), recursive=recursive)


# =============================================================================
# Stats Route
# =============================================================================

@app.get("/stats", response_model=StatsResponse)
async def get_statistics(manager: MessageManager = Depends(get_manager)) -> StatsResponse:
    """
    Counts over the whole forum namespace.
    """
    stats = manager.stats()
    logger.info(f"GET /stats: {stats['messages']} messages, {stats['ghosts']} ghosts")
    return StatsResponse(**stats)


# =============================================================================
# Metrics Route
# =============================================================================

@app.get("/metrics")
async def metrics() -> Response:
    """
    Expose Prometheus-style metrics.
    """
    return Response(
        content=get_metrics(),
        media_type=get_metrics_content_type()
    )
