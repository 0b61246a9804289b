"""Service container shared by the API and the CLI.

Every service is constructed explicitly from configuration and injected; the
FastAPI app keeps the container on ``app.state`` and routes reach it through
the dependency functions below.
"""

from dataclasses import dataclass

from fastapi import Request

from src.chat.context_assembler import ChatContextAssembler
from src.chat.session_store import ChatSessionStore
from src.utils.clients import get_supabase_client
from src.utils.logging import get_logger
from src.video_pipeline.completion_service import CompletionService
from src.video_pipeline.config import VideoChatConfig, get_config
from src.video_pipeline.history_service import HistoryRecorder
from src.video_pipeline.job_queue import JobQueue
from src.video_pipeline.pipeline import ProcessingPipeline
from src.video_pipeline.storage_service import JobStateStore, create_document_store
from src.video_pipeline.summary_service import SummaryService
from src.video_pipeline.youtube_service import YouTubeService

logger = get_logger(__name__)


@dataclass
class ServiceContainer:
    config: VideoChatConfig
    completion_service: CompletionService
    pipeline: ProcessingPipeline
    chat: ChatContextAssembler
    history: HistoryRecorder


def build_services(
    config: VideoChatConfig | None = None,
    completion_service: CompletionService | None = None,
    youtube_service: YouTubeService | None = None,
) -> ServiceContainer:
    """Wire every service from configuration.

    Args:
        config: Configuration object. If None, loads from environment.
        completion_service: Completion client to share between the summary
            engine and chat. Built from config when omitted.
        youtube_service: Content extractor. Built from config when omitted.
    """
    config = config or get_config()
    supabase = get_supabase_client(config) if config.storage_backend == "supabase" else None

    job_store = JobStateStore(
        create_document_store(config, config.jobs_table, "content_id", supabase)
    )
    history = HistoryRecorder(
        create_document_store(config, config.history_table, "content_id", supabase)
    )
    sessions = ChatSessionStore(
        create_document_store(config, config.sessions_table, "session_id", supabase)
    )
    completion_service = completion_service or CompletionService(config)

    pipeline = ProcessingPipeline(
        config,
        youtube_service=youtube_service or YouTubeService(config),
        summary_service=SummaryService(config, completion_service),
        job_store=job_store,
        history_recorder=history,
        queue=JobQueue(worker_count=config.worker_count),
    )
    chat = ChatContextAssembler(config, completion_service, sessions, job_store, history)

    logger.info("services_built", storage_backend=config.storage_backend)
    return ServiceContainer(
        config=config,
        completion_service=completion_service,
        pipeline=pipeline,
        chat=chat,
        history=history,
    )


def get_services(request: Request) -> ServiceContainer:
    return request.app.state.services


def get_pipeline(request: Request) -> ProcessingPipeline:
    return get_services(request).pipeline


def get_chat(request: Request) -> ChatContextAssembler:
    return get_services(request).chat


def get_history(request: Request) -> HistoryRecorder:
    return get_services(request).history
