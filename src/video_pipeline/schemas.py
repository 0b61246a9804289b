"""Pydantic schemas for the video pipeline, chat sessions and history."""

from datetime import UTC, datetime
from enum import Enum
from typing import Any, Generic, Literal, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


def utc_now() -> datetime:
    return datetime.now(UTC)


class JobStatus(str, Enum):
    """Processing state of a job.

    Pending -> Processing -> Completed | Failed. A Failed job re-enters at
    Processing when the same content is submitted again.
    """

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


# Coarse progress indicator exposed to pollers. Not a percentage of work done.
PROGRESS_BY_STATUS: dict[JobStatus, int] = {
    JobStatus.PENDING: 0,
    JobStatus.PROCESSING: 50,
    JobStatus.COMPLETED: 100,
    JobStatus.FAILED: 0,
}


class TranscriptSource(str, Enum):
    CAPTIONS = "captions"
    FALLBACK = "fallback"


class VideoMetadata(BaseModel):
    """YouTube video metadata.

    Placeholder values are used until extraction succeeds.
    """

    title: str = "Processing..."
    description: str = ""
    duration_seconds: int = 0
    thumbnail_url: str = ""
    channel_name: str = ""
    published_at: datetime | None = None
    view_count: int = 0
    like_count: int = 0


class ContentBundle(BaseModel):
    """Everything the extractor produces for one video."""

    metadata: VideoMetadata
    transcript: str
    transcript_source: TranscriptSource = TranscriptSource.CAPTIONS
    language: str | None = None

    @property
    def is_fallback(self) -> bool:
        return self.transcript_source == TranscriptSource.FALLBACK


class ProcessingJob(BaseModel):
    """One processing record per content identifier.

    Invariants: a Completed job has a non-empty summary and transcript; a
    Failed job has a non-empty error.
    """

    content_id: str
    source_url: str
    status: JobStatus = JobStatus.PENDING
    metadata: VideoMetadata = Field(default_factory=VideoMetadata)
    transcript: str = ""
    transcript_source: TranscriptSource | None = None
    summary: str = ""
    key_points: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    error: str | None = None
    run_id: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    completed_at: datetime | None = None


class JobStatusView(BaseModel):
    """Polling response for a job."""

    content_id: str
    status: JobStatus
    error: str | None = None
    progress: int

    @classmethod
    def from_job(cls, job: ProcessingJob) -> "JobStatusView":
        return cls(
            content_id=job.content_id,
            status=job.status,
            error=job.error if job.status == JobStatus.FAILED else None,
            progress=PROGRESS_BY_STATUS[job.status],
        )


class SubmitResult(BaseModel):
    """Immediate response to a job submission."""

    content_id: str
    status: JobStatus
    cached: bool = False


class StageEvent(BaseModel):
    """A single pipeline stage transition, recorded for diagnosis."""

    content_id: str
    stage: str
    outcome: str
    detail: dict[str, Any] = Field(default_factory=dict)
    recorded_at: datetime = Field(default_factory=utc_now)


class PromptMessage(BaseModel):
    """One message sent to the completion service."""

    role: Literal["system", "user", "assistant"]
    content: str


class CompletionOptions(BaseModel):
    temperature: float = 0.7
    max_output_tokens: int = 2000


class ChatRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class ChatMessage(BaseModel):
    role: ChatRole
    content: str
    timestamp: datetime = Field(default_factory=utc_now)


class ChatSession(BaseModel):
    """A conversation about one completed job.

    Messages are append-only. A closed session stays readable.
    """

    session_id: str
    content_id: str
    messages: list[ChatMessage] = Field(default_factory=list)
    is_active: bool = True
    total_messages: int = 0
    created_at: datetime = Field(default_factory=utc_now)
    last_message_at: datetime = Field(default_factory=utc_now)


class HistoryEntry(BaseModel):
    """Denormalized, user-facing record of a completed job."""

    content_id: str
    video_title: str
    video_url: str
    thumbnail_url: str = ""
    channel_name: str = ""
    duration_seconds: int = 0
    summary: str = ""
    key_points: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    chat_session_count: int = 0
    access_count: int = 1
    last_accessed_at: datetime = Field(default_factory=utc_now)
    created_at: datetime = Field(default_factory=utc_now)
    is_bookmarked: bool = False
    rating: int | None = Field(default=None, ge=1, le=5)
    notes: str | None = Field(default=None, max_length=2000)


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        return cls(page=page, limit=limit, total=total, pages=-(-total // limit) if limit else 0)


class Page(BaseModel, Generic[T]):
    items: list[T]
    pagination: Pagination


class HistoryStats(BaseModel):
    total_videos: int
    total_bookmarks: int
    rated_videos: int
    recent_activity: int
    rating_distribution: dict[int, int] = Field(default_factory=dict)
    top_channels: list[dict[str, Any]] = Field(default_factory=list)
