"""YouTube service for resolving video URLs and fetching metadata and transcripts.

Metadata and transcripts are each fetched through an ordered list of
strategies. Strategies report a result-or-failure value instead of raising, and
the first success wins.
"""

import asyncio
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Generic, TypeVar
from urllib.parse import parse_qs, urlparse

import httpx
from supadata import Supadata

from src.utils.logging import get_logger

from .config import VideoChatConfig
from .errors import ExtractionFailed, InvalidSource
from .formatting import normalize_transcript, thumbnail_url_for
from .schemas import ContentBundle, TranscriptSource, VideoMetadata

logger = get_logger(__name__)

T = TypeVar("T")

VIDEO_ID_RE = re.compile(r"^[A-Za-z0-9_-]{11}$")
YOUTUBE_HOSTS = {"youtube.com", "www.youtube.com", "m.youtube.com", "music.youtube.com"}
SHORT_HOSTS = {"youtu.be", "www.youtu.be"}
PATH_PREFIXES = ("shorts", "embed", "live", "v")

OEMBED_URL = "https://www.youtube.com/oembed"
UNKNOWN_TITLE = "YouTube Video"
UNKNOWN_CHANNEL = "Unknown Channel"


def extract_video_id(url: str) -> str | None:
    """Extract the 11-character video ID from a YouTube URL.

    Recognized shapes: ``youtube.com/watch?v=ID`` (``v`` anywhere in the query),
    ``youtu.be/ID``, and ``youtube.com/{shorts,embed,live,v}/ID``.

    Returns:
        The video ID, or None if the URL is not a recognized video link.
    """
    url = (url or "").strip()
    if not url:
        return None

    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https"):
        return None

    host = parsed.netloc.lower()
    path_parts = [part for part in parsed.path.split("/") if part]
    candidate: str | None = None

    if host in SHORT_HOSTS:
        candidate = path_parts[0] if path_parts else None
    elif host in YOUTUBE_HOSTS:
        if parsed.path == "/watch":
            candidate = parse_qs(parsed.query).get("v", [None])[0]
        elif len(path_parts) >= 2 and path_parts[0] in PATH_PREFIXES:
            candidate = path_parts[1]

    if candidate and VIDEO_ID_RE.match(candidate):
        return candidate
    return None


@dataclass(frozen=True)
class Attempt(Generic[T]):
    """Outcome of a single strategy: a value on success, an error otherwise."""

    value: T | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.value is not None

    @classmethod
    def success(cls, value: T) -> "Attempt[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: str) -> "Attempt[T]":
        return cls(error=error)


@dataclass(frozen=True)
class FetchedTranscript:
    text: str
    language: str | None = None


def _describe(error: Exception) -> str:
    return f"{type(error).__name__}: {error}"


# ==============================================================================
# Metadata strategies
# ==============================================================================


class MetadataStrategy(ABC):
    name = "metadata"

    @abstractmethod
    async def fetch(self, content_id: str, url: str) -> Attempt[VideoMetadata]:
        """Fetch metadata, returning a failed Attempt instead of raising."""


class SupadataMetadataStrategy(MetadataStrategy):
    """Rich metadata (counts, duration, description) from the Supadata API."""

    name = "supadata"

    def __init__(self, client: Supadata):
        self.client = client

    async def fetch(self, content_id: str, url: str) -> Attempt[VideoMetadata]:
        try:
            video = await asyncio.to_thread(self.client.youtube.video, id=content_id)
        except Exception as e:
            return Attempt.failure(_describe(e))

        channel: Any = getattr(video, "channel", None) or {}
        channel_name = (
            channel.get("name") if isinstance(channel, dict) else getattr(channel, "name", None)
        )
        published = getattr(video, "upload_date", None)

        return Attempt.success(
            VideoMetadata(
                title=getattr(video, "title", None) or UNKNOWN_TITLE,
                description=getattr(video, "description", None) or "",
                duration_seconds=int(getattr(video, "duration", 0) or 0),
                thumbnail_url=getattr(video, "thumbnail", None) or thumbnail_url_for(content_id),
                channel_name=channel_name or UNKNOWN_CHANNEL,
                published_at=published if isinstance(published, datetime) else None,
                view_count=int(getattr(video, "view_count", 0) or 0),
                like_count=int(getattr(video, "like_count", 0) or 0),
            )
        )


class OEmbedMetadataStrategy(MetadataStrategy):
    """Lightweight metadata (title, channel, thumbnail) from YouTube oEmbed."""

    name = "oembed"

    def __init__(self, timeout_seconds: float = 15.0, http_client: httpx.AsyncClient | None = None):
        self.timeout_seconds = timeout_seconds
        self.http_client = http_client

    async def fetch(self, content_id: str, url: str) -> Attempt[VideoMetadata]:
        params = {"url": url, "format": "json"}
        try:
            if self.http_client is not None:
                response = await self.http_client.get(OEMBED_URL, params=params)
            else:
                async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                    response = await client.get(OEMBED_URL, params=params)
            if response.status_code != 200:
                return Attempt.failure(f"oEmbed returned HTTP {response.status_code}")
            data = response.json()
        except Exception as e:
            return Attempt.failure(_describe(e))

        return Attempt.success(
            VideoMetadata(
                title=data.get("title") or UNKNOWN_TITLE,
                thumbnail_url=data.get("thumbnail_url") or thumbnail_url_for(content_id),
                channel_name=data.get("author_name") or UNKNOWN_CHANNEL,
            )
        )


class MinimalMetadataStrategy(MetadataStrategy):
    """Placeholder metadata derived from the video ID alone. Never fails."""

    name = "minimal"

    async def fetch(self, content_id: str, url: str) -> Attempt[VideoMetadata]:
        return Attempt.success(
            VideoMetadata(
                title=UNKNOWN_TITLE,
                thumbnail_url=thumbnail_url_for(content_id),
                channel_name=UNKNOWN_CHANNEL,
            )
        )


# ==============================================================================
# Transcript strategies
# ==============================================================================


class TranscriptStrategy(ABC):
    name = "transcript"

    @abstractmethod
    async def fetch(self, content_id: str) -> Attempt[FetchedTranscript]:
        """Fetch a transcript, returning a failed Attempt instead of raising."""


class SupadataTranscriptStrategy(TranscriptStrategy):
    """Caption transcript from Supadata, optionally pinned to one language."""

    def __init__(self, client: Supadata, lang: str | None = None):
        self.client = client
        self.lang = lang
        self.name = f"supadata:{lang or 'auto'}"

    async def fetch(self, content_id: str) -> Attempt[FetchedTranscript]:
        kwargs: dict[str, Any] = {"video_id": content_id, "text": True}
        if self.lang:
            kwargs["lang"] = self.lang

        try:
            response = await asyncio.to_thread(self.client.youtube.transcript, **kwargs)
        except Exception as e:
            return Attempt.failure(_describe(e))

        content = getattr(response, "content", "")
        if isinstance(content, list):
            content = " ".join(getattr(segment, "text", "") for segment in content)
        text = normalize_transcript(content or "")

        if not text:
            return Attempt.failure("No transcript available for this video")

        return Attempt.success(
            FetchedTranscript(text=text, language=getattr(response, "lang", None) or self.lang)
        )


# ==============================================================================
# Service
# ==============================================================================


def build_fallback_transcript(metadata: VideoMetadata) -> str:
    """Synthesize a substitute transcript from title, channel and description."""
    description = metadata.description.strip() or "No description available."
    return (
        f"Video Title: {metadata.title}\n\n"
        f"Channel: {metadata.channel_name}\n\n"
        f"Description: {description}\n\n"
        "Note: This video does not have captions/transcript available."
    )


class YouTubeService:
    """Service for resolving YouTube URLs and extracting video content.

    Metadata is tried rich -> lightweight -> minimal; the minimal tier derives
    everything from the video ID, so the default chain always yields something
    usable. Transcripts are tried language-agnostic first, then across the
    configured language variants. When no transcript tier succeeds, a fallback
    transcript is synthesized from the metadata and tagged as such.
    """

    def __init__(
        self,
        config: VideoChatConfig,
        metadata_strategies: list[MetadataStrategy] | None = None,
        transcript_strategies: list[TranscriptStrategy] | None = None,
    ):
        """Initialize YouTube service with configuration.

        Args:
            config: Configuration object with Supadata API key and languages.
            metadata_strategies: Ordered metadata strategies. Defaults to
                Supadata, oEmbed, minimal.
            transcript_strategies: Ordered transcript strategies. Defaults to
                Supadata auto-language followed by each configured language.
        """
        self.config = config

        client: Supadata | None = None
        if metadata_strategies is None or transcript_strategies is None:
            client = Supadata(api_key=config.supadata_api_key)

        self.metadata_strategies = (
            metadata_strategies
            if metadata_strategies is not None
            else [
                SupadataMetadataStrategy(client),
                OEmbedMetadataStrategy(config.metadata_timeout_seconds),
                MinimalMetadataStrategy(),
            ]
        )
        self.transcript_strategies = (
            transcript_strategies
            if transcript_strategies is not None
            else [SupadataTranscriptStrategy(client)]
            + [SupadataTranscriptStrategy(client, lang) for lang in config.transcript_languages]
        )

        logger.info(
            "youtube_service_initialized",
            metadata_strategies=[s.name for s in self.metadata_strategies],
            transcript_strategies=[s.name for s in self.transcript_strategies],
            api_key_present=bool(config.supadata_api_key),
        )

    def resolve(self, url: str) -> str:
        """Validate a URL and return its video ID without any network access.

        Raises:
            InvalidSource: If the URL is not a recognized YouTube video link.
        """
        content_id = extract_video_id(url)
        if content_id is None:
            logger.warning("invalid_source_rejected", url=url)
            raise InvalidSource()
        return content_id

    async def fetch(self, content_id: str, url: str) -> ContentBundle:
        """Fetch metadata and transcript for a video.

        Raises:
            ExtractionFailed: If every metadata strategy failed.
        """
        metadata = await self.get_metadata(content_id, url)
        transcript = await self.get_transcript(content_id)

        if transcript is None:
            logger.warning("transcript_fallback_used", content_id=content_id)
            return ContentBundle(
                metadata=metadata,
                transcript=build_fallback_transcript(metadata),
                transcript_source=TranscriptSource.FALLBACK,
            )

        return ContentBundle(
            metadata=metadata,
            transcript=transcript.text,
            transcript_source=TranscriptSource.CAPTIONS,
            language=transcript.language,
        )

    async def get_metadata(self, content_id: str, url: str) -> VideoMetadata:
        errors: list[str] = []
        for strategy in self.metadata_strategies:
            attempt = await strategy.fetch(content_id, url)
            if attempt.ok:
                logger.info(
                    "metadata_fetched",
                    content_id=content_id,
                    strategy=strategy.name,
                    title=attempt.value.title,
                )
                return attempt.value
            logger.info(
                "metadata_strategy_failed",
                content_id=content_id,
                strategy=strategy.name,
                error=attempt.error,
            )
            errors.append(f"{strategy.name}: {attempt.error}")

        raise ExtractionFailed(
            "Failed to get video information: " + ("; ".join(errors) or "no strategies configured")
        )

    async def get_transcript(self, content_id: str) -> FetchedTranscript | None:
        for strategy in self.transcript_strategies:
            attempt = await strategy.fetch(content_id)
            if attempt.ok:
                logger.info(
                    "transcript_fetched",
                    content_id=content_id,
                    strategy=strategy.name,
                    characters=len(attempt.value.text),
                    lang=attempt.value.language,
                )
                return attempt.value
            logger.info(
                "transcript_strategy_failed",
                content_id=content_id,
                strategy=strategy.name,
                error=attempt.error,
            )

        logger.warning("transcript_unavailable", content_id=content_id)
        return None
