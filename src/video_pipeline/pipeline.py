"""Main pipeline orchestrator for video processing jobs."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from src.utils.logging import get_logger

from .completion_service import CompletionService
from .config import VideoChatConfig, get_config
from .errors import JobNotFound, SummarizationFailed, VideoChatError
from .history_service import HistoryRecorder
from .job_queue import JobQueue
from .schemas import (
    ContentBundle,
    JobStatus,
    JobStatusView,
    Page,
    ProcessingJob,
    StageEvent,
    SubmitResult,
)
from .storage_service import JobStateStore, create_document_store
from .summary_service import SummaryService
from .youtube_service import YouTubeService

logger = get_logger(__name__)

StageListener = Callable[[StageEvent], None]


class ProcessingPipeline:
    """Orchestrates video processing from submission to a terminal job state.

    ``submit`` resolves the URL, applies the per-content dedup rules and hands
    the run to a detached job queue. Workers call ``run_job``, which extracts
    content, summarizes it and writes either Completed or Failed. Pollers
    read state through ``get_status`` and never touch the queue.
    """

    def __init__(
        self,
        config: VideoChatConfig | None = None,
        youtube_service: YouTubeService | None = None,
        summary_service: SummaryService | None = None,
        job_store: JobStateStore | None = None,
        history_recorder: HistoryRecorder | None = None,
        queue: JobQueue | None = None,
    ):
        """Initialize pipeline with all required services.

        Args:
            config: Configuration object. If None, loads from environment.
            youtube_service: Content extractor. Built from config when omitted.
            summary_service: Summary engine. Built from config when omitted.
            job_store: Job persistence. Built from config when omitted.
            history_recorder: History projection. Built from config when omitted.
            queue: Detached work queue. A new one is created when omitted.
        """
        self.config = config or get_config()
        self.youtube_service = youtube_service or YouTubeService(self.config)
        self.summary_service = summary_service or SummaryService(
            self.config, CompletionService(self.config)
        )
        self.job_store = job_store or JobStateStore(
            create_document_store(self.config, self.config.jobs_table, "content_id")
        )
        self.history_recorder = history_recorder or HistoryRecorder(
            create_document_store(self.config, self.config.history_table, "content_id")
        )
        self.queue = queue or JobQueue(worker_count=self.config.worker_count)
        self.queue.bind(self.run_job)
        self._stage_listeners: list[StageListener] = []
        # content_id -> run_id the in-flight run settles under
        self._active_runs: dict[str, str] = {}

        logger.info(
            "pipeline_initialized",
            storage_backend=self.config.storage_backend,
            worker_count=self.queue.worker_count,
        )

    # ==========================================================================
    # Observability
    # ==========================================================================

    def add_stage_listener(self, listener: StageListener) -> None:
        """Register a callback invoked with every StageEvent.

        Args:
            listener: Synchronous callable. Exceptions it raises are logged and
                never affect the job.
        """
        self._stage_listeners.append(listener)

    def _record_stage(self, content_id: str, stage: str, outcome: str, **detail: Any) -> None:
        event = StageEvent(content_id=content_id, stage=stage, outcome=outcome, detail=detail)
        logger.info("pipeline_stage", content_id=content_id, stage=stage, outcome=outcome, **detail)
        for listener in self._stage_listeners:
            try:
                listener(event)
            except Exception as e:
                logger.warning(
                    "stage_listener_failed",
                    content_id=content_id,
                    stage=stage,
                    error_type=type(e).__name__,
                )

    # ==========================================================================
    # Submission and polling
    # ==========================================================================

    async def submit(self, url: str) -> SubmitResult:
        """Submit a URL for processing and return without waiting for the run.

        A Completed job is returned as a cache hit. A job already Processing is
        returned as is. A new, Pending or Failed job is claimed atomically and
        enqueued only by the submission that won the claim. If a run for the
        same content is still in flight (its job was deleted and recreated),
        that run is moved to the new claim rather than starting a second one.

        Args:
            url: YouTube video URL in any recognized shape.

        Returns:
            The content ID, the job status after submission and whether the
            result came from a previously completed run.

        Raises:
            InvalidSource: If the URL is not a recognized YouTube video link.
        """
        content_id = self.youtube_service.resolve(url)
        logger.info("job_submitted", content_id=content_id)

        job = await self.job_store.get(content_id)
        if job is None:
            job, _ = await self.job_store.create_if_absent(content_id, url)

        if job.status == JobStatus.COMPLETED:
            self._record_stage(content_id, "submit", "cache_hit")
            await self._touch_history(content_id)
            return SubmitResult(content_id=content_id, status=job.status, cached=True)

        if job.status == JobStatus.PROCESSING:
            self._record_stage(content_id, "submit", "already_processing")
            return SubmitResult(content_id=content_id, status=JobStatus.PROCESSING)

        claimed = await self.job_store.claim(content_id, url)
        if claimed is None:
            # Another submission won the claim between our read and update.
            current = await self.job_store.get(content_id)
            status = current.status if current else JobStatus.PROCESSING
            self._record_stage(content_id, "submit", "claim_lost", status=status.value)
            return SubmitResult(
                content_id=content_id,
                status=status,
                cached=status == JobStatus.COMPLETED,
            )

        run_id = claimed.run_id
        if content_id in self._active_runs:
            # The job was deleted and recreated while a run was in flight; that
            # run settles the new claim instead of a second one starting.
            self._active_runs[content_id] = run_id
            self._record_stage(content_id, "submit", "adopted", previous=job.status.value)
            return SubmitResult(content_id=content_id, status=JobStatus.PROCESSING)

        self._active_runs[content_id] = run_id
        self._record_stage(content_id, "submit", "claimed", previous=job.status.value)
        await self.queue.enqueue(content_id, url, run_id)
        return SubmitResult(content_id=content_id, status=JobStatus.PROCESSING)

    async def get_status(self, content_id: str) -> JobStatusView:
        """Return the coarse polling view of a job.

        Raises:
            JobNotFound: If no job exists for the content ID.
        """
        return JobStatusView.from_job(await self.get_job(content_id))

    async def get_job(self, content_id: str) -> ProcessingJob:
        """Return the full job record, including results once Completed.

        Raises:
            JobNotFound: If no job exists for the content ID.
        """
        job = await self.job_store.get(content_id)
        if job is None:
            raise JobNotFound()
        return job

    async def list_jobs(
        self,
        status: JobStatus | None = None,
        search: str | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> Page[ProcessingJob]:
        """Browse jobs, newest first.

        Args:
            status: Only jobs in this status when given.
            search: Case-insensitive match on title or channel.
            page: 1-based page number.
            limit: Page size.

        Returns:
            One page of jobs without transcripts, with pagination totals.
        """
        return await self.job_store.list_jobs(status=status, search=search, page=page, limit=limit)

    async def delete_job(self, content_id: str) -> None:
        """Delete a job and its history entry.

        Raises:
            JobNotFound: If no job exists for the content ID.
        """
        if not await self.job_store.delete(content_id):
            raise JobNotFound()
        await self.history_recorder.remove(content_id)

    async def wait_idle(self) -> None:
        """Wait until every enqueued run has finished."""
        await self.queue.join()

    # ==========================================================================
    # Background run
    # ==========================================================================

    async def run_job(self, content_id: str, source_url: str, run_id: str) -> None:
        """Run extraction and summarization for a claimed job.

        Every fatal failure is recorded on the job as Failed with its message;
        nothing is raised to the worker.

        Args:
            content_id: Job to process.
            source_url: URL the job was submitted with.
            run_id: Token from the claim that enqueued this run.
        """
        logger.info("processing_video", content_id=content_id, run_id=run_id)
        self._active_runs.setdefault(content_id, run_id)

        try:
            job = await self._execute(content_id, source_url)
        finally:
            self._active_runs.pop(content_id, None)

        if job is None:
            return

        try:
            await self.history_recorder.record(job)
            self._record_stage(content_id, "history", "recorded")
        except Exception as e:
            logger.warning(
                "history_update_failed",
                content_id=content_id,
                error_type=type(e).__name__,
                error=str(e),
            )

    async def _execute(self, content_id: str, source_url: str) -> ProcessingJob | None:
        try:
            self._record_stage(content_id, "extraction", "started")
            bundle = await self.youtube_service.fetch(content_id, source_url)
            self._record_stage(
                content_id,
                "extraction",
                "succeeded",
                transcript_source=bundle.transcript_source.value,
                characters=len(bundle.transcript),
            )

            self._record_stage(content_id, "summarization", "started")
            summary, key_points, tags = await self._summarize(bundle)
            self._record_stage(
                content_id,
                "summarization",
                "succeeded",
                key_points=len(key_points),
                tags=len(tags),
            )

            job = await self._settle(
                content_id,
                lambda run_id: self.job_store.complete(
                    content_id, run_id, bundle, summary, key_points, tags
                ),
            )
        except Exception as e:
            message = e.message if isinstance(e, VideoChatError) else str(e)
            logger.error(
                "video_processing_failed",
                content_id=content_id,
                error_type=type(e).__name__,
                error=message,
            )
            self._record_stage(content_id, "finalize", "failed", error_type=type(e).__name__)
            await self._fail(content_id, message or type(e).__name__)
            return None

        if job is None:
            # The job was deleted while this run was in flight.
            self._record_stage(content_id, "finalize", "discarded")
            return None

        self._record_stage(content_id, "finalize", "completed")
        logger.info("video_processed", content_id=content_id, title=job.metadata.title)
        return job

    async def _settle(
        self,
        content_id: str,
        write: Callable[[str], Awaitable[ProcessingJob | None]],
    ) -> ProcessingJob | None:
        """Apply a terminal write under the run_id that currently owns the job.

        A resubmission that re-claims the job while the write is in flight
        moves the run to the new run_id, so the write is retried under it.
        """
        while True:
            run_id = self._active_runs[content_id]
            job = await write(run_id)
            if job is not None or self._active_runs.get(content_id) == run_id:
                return job

    async def _summarize(self, bundle: ContentBundle) -> tuple[str, list[str], list[str]]:
        metadata = bundle.metadata
        summary, key_points, tags = await asyncio.gather(
            self.summary_service.summarize(
                bundle.transcript,
                metadata.title,
                metadata.channel_name,
                metadata.duration_seconds,
                is_fallback=bundle.is_fallback,
            ),
            self.summary_service.extract_key_points(bundle.transcript, metadata.title),
            self.summary_service.generate_tags(
                bundle.transcript, metadata.title, metadata.channel_name
            ),
            return_exceptions=True,
        )
        for outcome in (summary, key_points, tags):
            if isinstance(outcome, BaseException):
                raise outcome
        if not summary.strip():
            raise SummarizationFailed("Failed to generate video summary: empty summary")
        return summary, key_points, tags

    async def _fail(self, content_id: str, message: str) -> None:
        try:
            await self._settle(
                content_id, lambda run_id: self.job_store.fail(content_id, run_id, message)
            )
        except Exception as e:
            logger.exception(
                "job_failure_not_recorded",
                content_id=content_id,
                error_type=type(e).__name__,
            )

    async def _touch_history(self, content_id: str) -> None:
        try:
            await self.history_recorder.touch(content_id)
        except Exception as e:
            logger.warning(
                "history_update_failed",
                content_id=content_id,
                error_type=type(e).__name__,
                error=str(e),
            )
