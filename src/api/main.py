"""FastAPI application for video processing, chat and history.

Binds the pipeline, chat assembler and history recorder to HTTP. Processing
is detached: ``POST /api/videos/analyze`` returns at once and clients poll
``GET /api/videos/{content_id}/status`` until a terminal status.
"""

from contextlib import asynccontextmanager
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from src.api.deps import (
    ServiceContainer,
    build_services,
    get_chat,
    get_history,
    get_pipeline,
    get_services,
)
from src.chat.context_assembler import ChatContextAssembler
from src.utils.logging import get_logger
from src.video_pipeline.errors import VideoChatError
from src.video_pipeline.history_service import HistoryRecorder
from src.video_pipeline.pipeline import ProcessingPipeline
from src.video_pipeline.schemas import JobStatus

logger = get_logger(__name__)


# ==============================================================================
# Request Models
# ==============================================================================


class AnalyzeRequest(BaseModel):
    url: str


class StartChatRequest(BaseModel):
    content_id: str


class ChatMessageRequest(BaseModel):
    session_id: str
    message: str


class RatingRequest(BaseModel):
    rating: int = Field(ge=1, le=5)


class NotesRequest(BaseModel):
    notes: str = Field(max_length=2000)


# ==============================================================================
# Videos
# ==============================================================================

videos = APIRouter(prefix="/api/videos", tags=["videos"])


@videos.post("/analyze")
async def analyze_video(
    request: AnalyzeRequest,
    pipeline: ProcessingPipeline = Depends(get_pipeline),
):
    """Submit a video for processing. Returns immediately."""
    result = await pipeline.submit(request.url)
    message = "Video already processed" if result.cached else "Video processing started"
    return {"success": True, "message": message, "data": result}


@videos.get("")
async def list_videos(
    status: JobStatus | None = None,
    search: str | None = Query(default=None, max_length=100),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=50),
    pipeline: ProcessingPipeline = Depends(get_pipeline),
):
    result = await pipeline.list_jobs(status=status, search=search, page=page, limit=limit)
    return {"success": True, "data": result}


@videos.get("/{content_id}/status")
async def get_video_status(content_id: str, pipeline: ProcessingPipeline = Depends(get_pipeline)):
    return {"success": True, "data": await pipeline.get_status(content_id)}


@videos.get("/{content_id}")
async def get_video(content_id: str, pipeline: ProcessingPipeline = Depends(get_pipeline)):
    return {"success": True, "data": await pipeline.get_job(content_id)}


@videos.delete("/{content_id}")
async def delete_video(content_id: str, pipeline: ProcessingPipeline = Depends(get_pipeline)):
    await pipeline.delete_job(content_id)
    return {"success": True, "message": "Video deleted successfully"}


# ==============================================================================
# Chat
# ==============================================================================

chat = APIRouter(prefix="/api/chat", tags=["chat"])


@chat.post("/start")
async def start_chat(
    request: StartChatRequest,
    assembler: ChatContextAssembler = Depends(get_chat),
):
    session = await assembler.start_session(request.content_id)
    return {
        "success": True,
        "message": "Chat session started",
        "data": {"session_id": session.session_id, "content_id": session.content_id},
    }


@chat.post("/message")
async def post_chat_message(
    request: ChatMessageRequest,
    assembler: ChatContextAssembler = Depends(get_chat),
):
    reply = await assembler.answer(request.session_id, request.message)
    return {"success": True, "data": {"message": reply, "session_id": request.session_id}}


@chat.get("/sessions")
async def list_chat_sessions(
    content_id: str | None = None,
    active: bool = False,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=50),
    assembler: ChatContextAssembler = Depends(get_chat),
):
    result = await assembler.list_sessions(
        content_id=content_id, active_only=active, page=page, limit=limit
    )
    return {"success": True, "data": result}


@chat.get("/session/{session_id}")
async def get_chat_session(
    session_id: str,
    assembler: ChatContextAssembler = Depends(get_chat),
):
    return {"success": True, "data": await assembler.get_session(session_id)}


@chat.put("/session/{session_id}/close")
async def close_chat_session(
    session_id: str,
    assembler: ChatContextAssembler = Depends(get_chat),
):
    await assembler.close_session(session_id)
    return {"success": True, "message": "Chat session closed"}


@chat.delete("/session/{session_id}")
async def delete_chat_session(
    session_id: str,
    assembler: ChatContextAssembler = Depends(get_chat),
):
    await assembler.delete_session(session_id)
    return {"success": True, "message": "Chat session deleted"}


# ==============================================================================
# History
# ==============================================================================

history = APIRouter(prefix="/api/history", tags=["history"])


@history.get("")
async def list_history(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=50),
    search: str | None = Query(default=None, max_length=100),
    bookmarked: bool = False,
    rating: int | None = Query(default=None, ge=1, le=5),
    sort: str = "recent",
    recorder: HistoryRecorder = Depends(get_history),
):
    result = await recorder.list_entries(
        page=page,
        limit=limit,
        search=search,
        bookmarked=bookmarked,
        rating=rating,
        sort=sort,
    )
    return {"success": True, "data": result}


@history.delete("")
async def clear_history(confirm: bool = False, recorder: HistoryRecorder = Depends(get_history)):
    if not confirm:
        raise ValueError("To clear all history, add ?confirm=true to the request")
    removed = await recorder.clear()
    return {"success": True, "message": f"Successfully cleared {removed} items from history"}


@history.get("/recent")
async def recent_history(
    limit: int = Query(default=10, ge=1, le=50),
    recorder: HistoryRecorder = Depends(get_history),
):
    return {"success": True, "data": await recorder.recent(limit)}


@history.get("/bookmarks")
async def bookmarked_history(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=50),
    recorder: HistoryRecorder = Depends(get_history),
):
    result = await recorder.list_entries(page=page, limit=limit, bookmarked=True, sort="created")
    return {"success": True, "data": result}


@history.get("/stats")
async def history_stats(recorder: HistoryRecorder = Depends(get_history)):
    return {"success": True, "data": await recorder.stats()}


@history.get("/{content_id}")
async def get_history_entry(content_id: str, recorder: HistoryRecorder = Depends(get_history)):
    return {"success": True, "data": await recorder.get(content_id)}


@history.put("/{content_id}/bookmark")
async def toggle_bookmark(content_id: str, recorder: HistoryRecorder = Depends(get_history)):
    entry = await recorder.toggle_bookmark(content_id)
    state = "bookmarked" if entry.is_bookmarked else "unbookmarked"
    return {
        "success": True,
        "message": f"Video {state} successfully",
        "data": {"content_id": content_id, "is_bookmarked": entry.is_bookmarked},
    }


@history.put("/{content_id}/rating")
async def rate_video(
    content_id: str,
    request: RatingRequest,
    recorder: HistoryRecorder = Depends(get_history),
):
    entry = await recorder.set_rating(content_id, request.rating)
    return {"success": True, "data": {"content_id": content_id, "rating": entry.rating}}


@history.put("/{content_id}/notes")
async def update_notes(
    content_id: str,
    request: NotesRequest,
    recorder: HistoryRecorder = Depends(get_history),
):
    entry = await recorder.set_notes(content_id, request.notes)
    return {"success": True, "data": {"content_id": content_id, "notes": entry.notes}}


@history.delete("/{content_id}")
async def delete_history_entry(content_id: str, recorder: HistoryRecorder = Depends(get_history)):
    await recorder.delete(content_id)
    return {"success": True, "message": "Video removed from history successfully"}


# ==============================================================================
# FastAPI Application Setup
# ==============================================================================


async def handle_video_chat_error(request: Request, exc: VideoChatError) -> JSONResponse:
    log = logger.warning if exc.status_code < 500 else logger.error
    log("request_failed", path=request.url.path, error_code=exc.code, error=exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "code": exc.code,
            "message": exc.message,
            "retryable": exc.retryable,
        },
    )


async def handle_value_error(request: Request, exc: ValueError) -> JSONResponse:
    logger.warning("request_rejected", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=400,
        content={"success": False, "code": "validation_error", "message": str(exc)},
    )


def create_app(services: ServiceContainer | None = None) -> FastAPI:
    """Build the application.

    Args:
        services: Pre-built services. Built from environment configuration at
            startup when omitted.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("application_startup_started")
        try:
            app.state.services = services or build_services()
        except Exception:
            logger.exception("application_startup_failed")
            raise
        logger.info(
            "application_startup_completed",
            storage_backend=app.state.services.config.storage_backend,
        )

        yield  # Application runs here

        logger.info("application_shutdown_started")
        await app.state.services.pipeline.queue.stop()
        logger.info("application_shutdown_completed")

    app = FastAPI(
        title="Video Insight Chat API",
        description="YouTube video summarization with grounded follow-up chat",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(VideoChatError, handle_video_chat_error)
    app.add_exception_handler(ValueError, handle_value_error)

    @app.get("/health")
    async def health_check(deep: bool = False, services: ServiceContainer = Depends(get_services)):
        """Health check endpoint.

        With ``deep=true`` the completion service is probed with a minimal request.
        """
        body = {
            "status": "healthy",
            "timestamp": datetime.now(UTC).isoformat(),
            "services": {
                "pipeline": services.pipeline is not None,
                "chat": services.chat is not None,
                "history": services.history is not None,
                "job_queue": services.pipeline.queue.running,
            },
        }
        if deep:
            completion_ok = await services.completion_service.validate_api_key()
            body["services"]["completion_service"] = completion_ok
            if not completion_ok:
                body["status"] = "degraded"
        return body

    app.include_router(videos)
    app.include_router(chat)
    app.include_router(history)
    return app


app = create_app()
