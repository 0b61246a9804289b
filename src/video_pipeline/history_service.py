"""History recorder: the user-facing projection of completed jobs."""

from collections import Counter
from datetime import timedelta
from typing import Any

from src.utils.logging import get_logger

from .errors import HistoryEntryNotFound
from .formatting import format_video_url
from .schemas import HistoryEntry, HistoryStats, Page, Pagination, ProcessingJob, utc_now
from .storage_service import DocumentQuery, DocumentStore

logger = get_logger(__name__)

HISTORY_SORTS: dict[str, list[tuple[str, bool]]] = {
    "recent": [("last_accessed_at", True)],
    "created": [("created_at", True)],
    "title": [("video_title", False)],
    "channel": [("channel_name", False)],
    "rating": [("rating", True), ("created_at", True)],
}

RECENT_ACTIVITY_DAYS = 30
TOP_CHANNELS_LIMIT = 10


class HistoryRecorder:
    """Maintains one HistoryEntry per content ID.

    Entries are created or refreshed when a job completes and touched when a
    completed job is resubmitted. Everything else here is a user action:
    bookmarks, ratings, notes, browsing and deletion.
    """

    def __init__(self, documents: DocumentStore):
        self.documents = documents

    async def record(self, job: ProcessingJob) -> HistoryEntry:
        """Create the entry for a completed job, or refresh an existing one."""
        entry = HistoryEntry(
            content_id=job.content_id,
            video_title=job.metadata.title,
            video_url=job.source_url or format_video_url(job.content_id),
            thumbnail_url=job.metadata.thumbnail_url,
            channel_name=job.metadata.channel_name,
            duration_seconds=job.metadata.duration_seconds,
            summary=job.summary,
            key_points=job.key_points,
            tags=job.tags,
        )
        document, created = await self.documents.insert_if_absent(entry.model_dump(mode="json"))
        if created:
            logger.info("history_entry_created", content_id=job.content_id)
            return HistoryEntry.model_validate(document)

        existing = HistoryEntry.model_validate(document)
        refreshed = await self.documents.update(
            job.content_id,
            {
                "video_title": entry.video_title,
                "video_url": entry.video_url,
                "thumbnail_url": entry.thumbnail_url,
                "channel_name": entry.channel_name,
                "duration_seconds": entry.duration_seconds,
                "summary": entry.summary,
                "key_points": entry.key_points,
                "tags": entry.tags,
                "access_count": existing.access_count + 1,
                "last_accessed_at": utc_now().isoformat(),
            },
        )
        logger.info("history_entry_refreshed", content_id=job.content_id)
        return HistoryEntry.model_validate(refreshed or document)

    async def touch(self, content_id: str) -> HistoryEntry | None:
        """Bump the access count and timestamp. Returns None if absent."""
        document = await self.documents.get(content_id)
        if document is None:
            return None
        updated = await self.documents.update(
            content_id,
            {
                "access_count": document.get("access_count", 0) + 1,
                "last_accessed_at": utc_now().isoformat(),
            },
        )
        return HistoryEntry.model_validate(updated) if updated else None

    async def get(self, content_id: str) -> HistoryEntry:
        """Read an entry, counting the read as an access.

        Raises:
            HistoryEntryNotFound: If there is no entry for the content ID.
        """
        entry = await self.touch(content_id)
        if entry is None:
            raise HistoryEntryNotFound()
        return entry

    async def _require(self, content_id: str) -> HistoryEntry:
        document = await self.documents.get(content_id)
        if document is None:
            raise HistoryEntryNotFound()
        return HistoryEntry.model_validate(document)

    async def _apply(self, content_id: str, changes: dict[str, Any]) -> HistoryEntry:
        document = await self.documents.update(content_id, changes)
        if document is None:
            raise HistoryEntryNotFound()
        return HistoryEntry.model_validate(document)

    async def toggle_bookmark(self, content_id: str) -> HistoryEntry:
        """Flip the bookmark flag.

        Raises:
            HistoryEntryNotFound: If there is no entry for the content ID.
        """
        entry = await self._require(content_id)
        updated = await self._apply(content_id, {"is_bookmarked": not entry.is_bookmarked})
        logger.info(
            "history_bookmark_toggled",
            content_id=content_id,
            is_bookmarked=updated.is_bookmarked,
        )
        return updated

    async def set_rating(self, content_id: str, rating: int) -> HistoryEntry:
        """Rate an entry from 1 to 5.

        Raises:
            ValueError: If the rating is out of range.
            HistoryEntryNotFound: If there is no entry for the content ID.
        """
        if not 1 <= rating <= 5:
            raise ValueError("Rating must be between 1 and 5")
        return await self._apply(content_id, {"rating": rating})

    async def set_notes(self, content_id: str, notes: str) -> HistoryEntry:
        """Replace the free-text notes on an entry.

        Raises:
            ValueError: If the notes exceed 2000 characters.
            HistoryEntryNotFound: If there is no entry for the content ID.
        """
        if len(notes) > 2000:
            raise ValueError("Notes cannot exceed 2000 characters")
        return await self._apply(content_id, {"notes": notes})

    async def increment_chat_sessions(self, content_id: str) -> None:
        """Count a new chat session. A missing entry is ignored."""
        document = await self.documents.get(content_id)
        if document is None:
            return
        await self.documents.update(
            content_id,
            {"chat_session_count": document.get("chat_session_count", 0) + 1},
        )

    async def remove(self, content_id: str) -> bool:
        removed = await self.documents.delete(content_id)
        if removed:
            logger.info("history_entry_deleted", content_id=content_id)
        return removed

    async def delete(self, content_id: str) -> None:
        """Remove an entry.

        Raises:
            HistoryEntryNotFound: If there is no entry for the content ID.
        """
        if not await self.remove(content_id):
            raise HistoryEntryNotFound()

    async def clear(self) -> int:
        """Remove every entry. Returns the number removed."""
        documents, _ = await self.documents.find(DocumentQuery(sort=[]))
        removed = 0
        for document in documents:
            if await self.documents.delete(document["content_id"]):
                removed += 1
        logger.info("history_cleared", removed=removed)
        return removed

    async def list_entries(
        self,
        page: int = 1,
        limit: int = 10,
        search: str | None = None,
        bookmarked: bool = False,
        rating: int | None = None,
        sort: str = "recent",
    ) -> Page[HistoryEntry]:
        """Browse history.

        Args:
            page: 1-based page number.
            limit: Page size.
            search: Case-insensitive match on title or channel.
            bookmarked: Only bookmarked entries when True.
            rating: Only entries with exactly this rating.
            sort: One of ``recent``, ``created``, ``title``, ``channel``, ``rating``.
        """
        if sort not in HISTORY_SORTS:
            raise ValueError(f"Unknown sort: {sort}")

        filters: dict[str, Any] = {}
        if bookmarked:
            filters["is_bookmarked"] = True
        if rating is not None:
            filters["rating"] = rating

        documents, total = await self.documents.find(
            DocumentQuery(
                filters=filters,
                search=search,
                search_fields=("video_title", "channel_name"),
                sort=HISTORY_SORTS[sort],
                offset=(page - 1) * limit,
                limit=limit,
            )
        )
        return Page[HistoryEntry](
            items=[HistoryEntry.model_validate(d) for d in documents],
            pagination=Pagination.build(page, limit, total),
        )

    async def recent(self, limit: int = 10) -> list[HistoryEntry]:
        """Return the most recently accessed entries."""
        documents, _ = await self.documents.find(
            DocumentQuery(sort=HISTORY_SORTS["recent"], limit=limit)
        )
        return [HistoryEntry.model_validate(d) for d in documents]

    async def stats(self) -> HistoryStats:
        """Aggregate totals, ratings, top channels and recent activity."""
        documents, _ = await self.documents.find(DocumentQuery(sort=[]))
        entries = [HistoryEntry.model_validate(d) for d in documents]
        cutoff = utc_now() - timedelta(days=RECENT_ACTIVITY_DAYS)

        ratings = Counter(e.rating for e in entries if e.rating is not None)
        channels = Counter(e.channel_name for e in entries)

        return HistoryStats(
            total_videos=len(entries),
            total_bookmarks=sum(1 for e in entries if e.is_bookmarked),
            rated_videos=sum(ratings.values()),
            recent_activity=sum(1 for e in entries if e.last_accessed_at >= cutoff),
            rating_distribution=dict(sorted(ratings.items())),
            top_channels=[
                {"name": name, "count": count}
                for name, count in channels.most_common(TOP_CHANNELS_LIMIT)
            ],
        )
