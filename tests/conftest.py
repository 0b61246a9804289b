"""Shared fixtures: in-memory services with scripted external collaborators."""

import asyncio

import pytest

from src.api.deps import ServiceContainer, build_services
from src.chat.prompts import CHAT_SYSTEM_PROMPT
from src.video_pipeline.config import VideoChatConfig
from src.video_pipeline.history_service import HistoryRecorder
from src.video_pipeline.job_queue import JobQueue
from src.video_pipeline.pipeline import ProcessingPipeline
from src.video_pipeline.schemas import CompletionOptions, PromptMessage, VideoMetadata
from src.video_pipeline.storage_service import InMemoryDocumentStore, JobStateStore
from src.video_pipeline.summary_service import (
    KEY_POINTS_SYSTEM_PROMPT,
    SUMMARY_SYSTEM_PROMPT,
    TAGS_SYSTEM_PROMPT,
    SummaryService,
)
from src.video_pipeline.youtube_service import (
    Attempt,
    FetchedTranscript,
    MetadataStrategy,
    TranscriptStrategy,
    YouTubeService,
)

VIDEO_URL = "https://www.youtube.com/watch?v=ABCDEFGHIJK"
VIDEO_ID = "ABCDEFGHIJK"

TRANSCRIPT = " ".join(
    f"Sentence {i} explains how deliberate focus blocks improve learning outcomes."
    for i in range(200)
)

SYSTEM_PROMPT_KINDS = {
    SUMMARY_SYSTEM_PROMPT: "summary",
    KEY_POINTS_SYSTEM_PROMPT: "key_points",
    TAGS_SYSTEM_PROMPT: "tags",
    CHAT_SYSTEM_PROMPT: "chat",
}


class ScriptedCompletionService:
    """Completion service double that answers by request kind.

    The kind is derived from the system prompt. Set ``failures[kind]`` to an
    exception to make that kind of request fail.
    """

    def __init__(self):
        self.replies = {
            "summary": "This video explains deep work and how focus blocks improve learning.",
            "key_points": (
                "Here are the key points:\n"
                "- Focus blocks of ninety minutes work best\n"
                "- Remove notifications before starting\n"
                "- Ok\n"
                "- Review what you learned at the end of each day"
            ),
            "tags": "Deep Work, productivity, focus!, learning",
            "chat": "The main topic is deep work.",
        }
        self.failures: dict[str, Exception] = {}
        self.calls: list[tuple[str, list[PromptMessage]]] = []
        self.delay = 0.0

    def calls_of(self, kind: str) -> list[list[PromptMessage]]:
        return [messages for k, messages in self.calls if k == kind]

    async def complete(
        self, messages: list[PromptMessage], options: CompletionOptions | None = None
    ) -> str:
        kind = SYSTEM_PROMPT_KINDS.get(messages[0].content, "unknown")
        self.calls.append((kind, messages))
        if self.delay:
            await asyncio.sleep(self.delay)
        if kind in self.failures:
            raise self.failures[kind]
        return self.replies[kind]

    async def validate_api_key(self) -> bool:
        return "unknown" not in self.failures


class StaticMetadataStrategy(MetadataStrategy):
    name = "static"

    def __init__(self):
        self.metadata = VideoMetadata(
            title="Deep Work Explained",
            description="A talk about focus and learning.",
            duration_seconds=754,
            thumbnail_url=f"https://img.youtube.com/vi/{VIDEO_ID}/maxresdefault.jpg",
            channel_name="Focus Lab",
        )
        self.error: str | None = None
        self.calls = 0

    async def fetch(self, content_id: str, url: str) -> Attempt[VideoMetadata]:
        self.calls += 1
        await asyncio.sleep(0)
        if self.error:
            return Attempt.failure(self.error)
        return Attempt.success(self.metadata)


class StaticTranscriptStrategy(TranscriptStrategy):
    name = "static"

    def __init__(self):
        self.text = TRANSCRIPT
        self.error: str | None = None
        self.calls = 0

    async def fetch(self, content_id: str) -> Attempt[FetchedTranscript]:
        self.calls += 1
        await asyncio.sleep(0)
        if self.error:
            return Attempt.failure(self.error)
        return Attempt.success(FetchedTranscript(text=self.text, language="en"))


@pytest.fixture
def config() -> VideoChatConfig:
    """Create test configuration with in-memory storage."""
    return VideoChatConfig(
        supadata_api_key="test_supadata_key",
        llm_api_key="test_llm_key",
        storage_backend="memory",
        worker_count=2,
        chat_history_window=10,
    )


@pytest.fixture
def completion() -> ScriptedCompletionService:
    return ScriptedCompletionService()


@pytest.fixture
def metadata_strategy() -> StaticMetadataStrategy:
    return StaticMetadataStrategy()


@pytest.fixture
def transcript_strategy() -> StaticTranscriptStrategy:
    return StaticTranscriptStrategy()


@pytest.fixture
def youtube_service(
    config: VideoChatConfig,
    metadata_strategy: StaticMetadataStrategy,
    transcript_strategy: StaticTranscriptStrategy,
) -> YouTubeService:
    return YouTubeService(config, [metadata_strategy], [transcript_strategy])


@pytest.fixture
def pipeline(
    config: VideoChatConfig,
    completion: ScriptedCompletionService,
    youtube_service: YouTubeService,
) -> ProcessingPipeline:
    """Create a pipeline with in-memory stores and scripted collaborators."""
    return ProcessingPipeline(
        config,
        youtube_service=youtube_service,
        summary_service=SummaryService(config, completion),
        job_store=JobStateStore(InMemoryDocumentStore("content_id")),
        history_recorder=HistoryRecorder(InMemoryDocumentStore("content_id")),
        queue=JobQueue(worker_count=config.worker_count),
    )


@pytest.fixture
def services(
    config: VideoChatConfig,
    completion: ScriptedCompletionService,
    youtube_service: YouTubeService,
) -> ServiceContainer:
    """Create the full service container over in-memory storage."""
    return build_services(config, completion_service=completion, youtube_service=youtube_service)
