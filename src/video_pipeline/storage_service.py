"""Storage service for jobs, chat sessions and history documents.

Every record is a JSON document keyed by a unique field. Two backends share
one contract: an in-process store guarded by an asyncio lock, and Supabase
tables whose primary key backs create-if-absent.
"""

import asyncio
import copy
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from supabase import Client

from src.utils.clients import get_supabase_client
from src.utils.logging import get_logger

from .config import VideoChatConfig
from .schemas import (
    ContentBundle,
    JobStatus,
    Page,
    Pagination,
    ProcessingJob,
    utc_now,
)

logger = get_logger(__name__)


@dataclass
class DocumentQuery:
    """Filter, search, sort and pagination for ``DocumentStore.find``.

    Field names may be dotted to reach into nested documents
    (``metadata.title``).
    """

    filters: dict[str, Any] = field(default_factory=dict)
    search: str | None = None
    search_fields: tuple[str, ...] = ()
    sort: list[tuple[str, bool]] = field(default_factory=lambda: [("created_at", True)])
    offset: int = 0
    limit: int | None = None
    exclude: tuple[str, ...] = ()


class DocumentStore(ABC):
    """Keyed JSON document store."""

    def __init__(self, key_field: str):
        self.key_field = key_field

    @abstractmethod
    async def insert_if_absent(self, document: dict[str, Any]) -> tuple[dict[str, Any], bool]:
        """Insert unless the key exists. Returns (stored document, created)."""

    @abstractmethod
    async def get(self, key: str) -> dict[str, Any] | None:
        """Read one document by key."""

    @abstractmethod
    async def update(
        self,
        key: str,
        changes: dict[str, Any],
        expected: dict[str, list[Any]] | None = None,
    ) -> dict[str, Any] | None:
        """Apply changes to one document.

        When ``expected`` is given, the update only happens if every named
        field currently holds one of the listed values. Returns the updated
        document, or None if the key is missing or the condition failed.
        """

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete one document. Returns whether it existed."""

    @abstractmethod
    async def find(self, query: DocumentQuery) -> tuple[list[dict[str, Any]], int]:
        """Return (matching page of documents, total match count)."""


def _lookup(document: dict[str, Any], path: str) -> Any:
    value: Any = document
    for part in path.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def _sort_documents(
    documents: list[dict[str, Any]], sort: list[tuple[str, bool]]
) -> list[dict[str, Any]]:
    # Apply keys last-to-first so the stable sort yields a multi-key order.
    # Missing values always sort last.
    for path, descending in reversed(sort):
        present = [d for d in documents if _lookup(d, path) is not None]
        missing = [d for d in documents if _lookup(d, path) is None]
        present.sort(key=lambda d, p=path: _lookup(d, p), reverse=descending)
        documents = present + missing
    return documents


class InMemoryDocumentStore(DocumentStore):
    """Process-local backend. All operations are atomic under one lock."""

    def __init__(self, key_field: str):
        super().__init__(key_field)
        self._documents: dict[str, dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    async def insert_if_absent(self, document: dict[str, Any]) -> tuple[dict[str, Any], bool]:
        key = document[self.key_field]
        async with self._lock:
            existing = self._documents.get(key)
            if existing is not None:
                return copy.deepcopy(existing), False
            self._documents[key] = copy.deepcopy(document)
            return copy.deepcopy(document), True

    async def get(self, key: str) -> dict[str, Any] | None:
        async with self._lock:
            document = self._documents.get(key)
            return copy.deepcopy(document) if document is not None else None

    async def update(
        self,
        key: str,
        changes: dict[str, Any],
        expected: dict[str, list[Any]] | None = None,
    ) -> dict[str, Any] | None:
        async with self._lock:
            document = self._documents.get(key)
            if document is None:
                return None
            for path, allowed in (expected or {}).items():
                if _lookup(document, path) not in allowed:
                    return None
            document.update(copy.deepcopy(changes))
            return copy.deepcopy(document)

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self._documents.pop(key, None) is not None

    async def find(self, query: DocumentQuery) -> tuple[list[dict[str, Any]], int]:
        async with self._lock:
            documents = [copy.deepcopy(d) for d in self._documents.values()]

        matches = [
            d
            for d in documents
            if all(_lookup(d, path) == value for path, value in query.filters.items())
        ]
        if query.search:
            term = query.search.lower()
            matches = [
                d
                for d in matches
                if any(term in str(_lookup(d, path) or "").lower() for path in query.search_fields)
            ]

        total = len(matches)
        matches = _sort_documents(matches, query.sort)
        end = query.offset + query.limit if query.limit is not None else None
        page = matches[query.offset:end]

        for document in page:
            for name in query.exclude:
                document.pop(name, None)
        return page, total


class SupabaseDocumentStore(DocumentStore):
    """Supabase table backend.

    The table's primary key on ``key_field`` backs ``insert_if_absent``
    (``ON CONFLICT DO NOTHING``), and conditional updates are a single
    filtered UPDATE, so neither is a read-then-write race.
    """

    def __init__(self, client: Client, table: str, key_field: str):
        super().__init__(key_field)
        self.client = client
        self.table = table

    @staticmethod
    def _column(path: str) -> str:
        head, *rest = path.split(".")
        return f"{head}->>{'.'.join(rest)}" if rest else head

    @staticmethod
    def _value(value: Any) -> Any:
        return str(value).lower() if isinstance(value, bool) else value

    async def _execute(self, query: Any) -> Any:
        return await asyncio.to_thread(query.execute)

    async def insert_if_absent(self, document: dict[str, Any]) -> tuple[dict[str, Any], bool]:
        key = document[self.key_field]
        try:
            response = await self._execute(
                self.client.table(self.table).upsert(
                    document, on_conflict=self.key_field, ignore_duplicates=True
                )
            )
        except Exception as e:
            logger.exception(
                "document_insert_failed",
                table=self.table,
                key=key,
                error_type=type(e).__name__,
            )
            raise

        if response.data:
            return response.data[0], True

        existing = await self.get(key)
        if existing is None:
            raise RuntimeError(f"{self.table}: insert of {key} neither created nor found a row")
        return existing, False

    async def get(self, key: str) -> dict[str, Any] | None:
        response = await self._execute(
            self.client.table(self.table).select("*").eq(self.key_field, key).limit(1)
        )
        return response.data[0] if response.data else None

    async def update(
        self,
        key: str,
        changes: dict[str, Any],
        expected: dict[str, list[Any]] | None = None,
    ) -> dict[str, Any] | None:
        query = self.client.table(self.table).update(changes).eq(self.key_field, key)
        for path, allowed in (expected or {}).items():
            query = query.in_(self._column(path), [self._value(v) for v in allowed])

        try:
            response = await self._execute(query)
        except Exception as e:
            logger.exception(
                "document_update_failed",
                table=self.table,
                key=key,
                error_type=type(e).__name__,
            )
            raise
        return response.data[0] if response.data else None

    async def delete(self, key: str) -> bool:
        response = await self._execute(
            self.client.table(self.table).delete().eq(self.key_field, key)
        )
        return bool(response.data)

    async def find(self, query: DocumentQuery) -> tuple[list[dict[str, Any]], int]:
        request = self.client.table(self.table).select("*", count="exact")
        for path, value in query.filters.items():
            request = request.eq(self._column(path), self._value(value))
        if query.search and query.search_fields:
            term = "".join(ch for ch in query.search if ch not in ",()*%")
            request = request.or_(
                ",".join(f"{self._column(path)}.ilike.*{term}*" for path in query.search_fields)
            )
        for path, descending in query.sort:
            request = request.order(self._column(path), desc=descending)
        if query.limit is not None:
            request = request.range(query.offset, query.offset + query.limit - 1)

        response = await self._execute(request)
        documents = response.data or []
        for document in documents:
            for name in query.exclude:
                document.pop(name, None)
        total = response.count if response.count is not None else len(documents)
        return documents, total


def create_document_store(
    config: VideoChatConfig,
    table: str,
    key_field: str,
    client: Client | None = None,
) -> DocumentStore:
    """Build the configured backend for one table."""
    if config.storage_backend == "supabase":
        return SupabaseDocumentStore(client or get_supabase_client(config), table, key_field)
    if config.storage_backend == "memory":
        return InMemoryDocumentStore(key_field)
    raise ValueError(f"Unknown STORAGE_BACKEND: {config.storage_backend}")


# ==============================================================================
# Job state
# ==============================================================================


class JobStateStore:
    """Persists one ProcessingJob per content ID.

    Only the pipeline calls the transition methods (``claim``, ``complete``,
    ``fail``); each is a conditional update on the current status. A claim
    stamps a fresh ``run_id`` and the terminal writes only apply while that
    run_id is still current, so a run that outlived its job cannot settle a
    newer claim.
    """

    def __init__(self, documents: DocumentStore):
        self.documents = documents

    @staticmethod
    def _load(document: dict[str, Any] | None) -> ProcessingJob | None:
        return ProcessingJob.model_validate(document) if document is not None else None

    async def create_if_absent(self, content_id: str, source_url: str) -> tuple[ProcessingJob, bool]:
        """Create a Pending job unless one exists. Returns (job, created)."""
        job = ProcessingJob(content_id=content_id, source_url=source_url)
        document, created = await self.documents.insert_if_absent(job.model_dump(mode="json"))
        if created:
            logger.info("job_created", content_id=content_id)
        return ProcessingJob.model_validate(document), created

    async def get(self, content_id: str) -> ProcessingJob | None:
        return self._load(await self.documents.get(content_id))

    async def claim(self, content_id: str, source_url: str) -> ProcessingJob | None:
        """Move a Pending or Failed job to Processing under a new run_id.

        Returns:
            The claimed job, carrying the run_id the terminal write must
            present. None when the job is missing or already
            Processing/Completed, which means another submission owns the run.
        """
        document = await self.documents.update(
            content_id,
            {
                "status": JobStatus.PROCESSING.value,
                "source_url": source_url,
                "error": None,
                "run_id": uuid.uuid4().hex,
                "updated_at": utc_now().isoformat(),
            },
            expected={"status": [JobStatus.PENDING.value, JobStatus.FAILED.value]},
        )
        job = self._load(document)
        if job is not None:
            logger.info("job_claimed", content_id=content_id)
        return job

    async def complete(
        self,
        content_id: str,
        run_id: str,
        bundle: ContentBundle,
        summary: str,
        key_points: list[str],
        tags: list[str],
    ) -> ProcessingJob | None:
        """Write results and mark a Processing job Completed.

        Args:
            content_id: Job to complete.
            run_id: Token returned by the claim this run was started under.
            bundle: Extracted metadata and transcript.
            summary: Non-empty summary text.
            key_points: Parsed key points.
            tags: Parsed tags.

        Returns:
            The completed job, or None if the job is gone or was re-claimed.

        Raises:
            ValueError: If the summary or transcript is empty.
        """
        if not summary.strip() or not bundle.transcript.strip():
            raise ValueError("A completed job needs a non-empty summary and transcript")

        now = utc_now().isoformat()
        document = await self.documents.update(
            content_id,
            {
                "status": JobStatus.COMPLETED.value,
                "metadata": bundle.metadata.model_dump(mode="json"),
                "transcript": bundle.transcript,
                "transcript_source": bundle.transcript_source.value,
                "summary": summary,
                "key_points": key_points,
                "tags": tags,
                "error": None,
                "updated_at": now,
                "completed_at": now,
            },
            expected={"status": [JobStatus.PROCESSING.value], "run_id": [run_id]},
        )
        return self._load(document)

    async def fail(self, content_id: str, run_id: str, error: str) -> ProcessingJob | None:
        """Mark a Processing job Failed with a non-empty error message.

        Returns None if the job is gone or was re-claimed under another run_id.
        """
        document = await self.documents.update(
            content_id,
            {
                "status": JobStatus.FAILED.value,
                "error": error.strip() or "Video processing failed",
                "updated_at": utc_now().isoformat(),
            },
            expected={"status": [JobStatus.PROCESSING.value], "run_id": [run_id]},
        )
        return self._load(document)

    async def list_jobs(
        self,
        status: JobStatus | None = None,
        search: str | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> Page[ProcessingJob]:
        """List jobs, newest first, without transcripts."""
        query = DocumentQuery(
            filters={"status": status.value} if status else {},
            search=search,
            search_fields=("metadata.title", "metadata.channel_name"),
            sort=[("created_at", True)],
            offset=(page - 1) * limit,
            limit=limit,
            exclude=("transcript",),
        )
        documents, total = await self.documents.find(query)
        return Page[ProcessingJob](
            items=[ProcessingJob.model_validate(d) for d in documents],
            pagination=Pagination.build(page, limit, total),
        )

    async def delete(self, content_id: str) -> bool:
        deleted = await self.documents.delete(content_id)
        if deleted:
            logger.info("job_deleted", content_id=content_id)
        return deleted
