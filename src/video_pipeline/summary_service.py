"""Summary service for turning a transcript into a summary, key points and tags."""

import re

from src.utils.logging import get_logger

from .completion_service import CompletionService
from .config import VideoChatConfig
from .errors import SummarizationFailed, TagGenerationFailed
from .formatting import truncate_at_word_boundary
from .schemas import CompletionOptions, PromptMessage

logger = get_logger(__name__)

# ==============================================================================
# Prompts
# ==============================================================================

SUMMARY_SYSTEM_PROMPT = """You are an expert video content analyzer. Your task is to create comprehensive, well-structured summaries of YouTube videos based on their transcripts.

Guidelines for the summary:
1. Create a concise yet comprehensive summary (200-500 words)
2. Focus on the main topics, key insights, and important information
3. Structure the summary with clear paragraphs for different topics
4. Highlight actionable insights or practical information
5. Maintain the original tone and context of the video
6. Include specific details, examples, or data points mentioned
7. Avoid redundancy and filler content"""

KEY_POINTS_SYSTEM_PROMPT = """You are an expert at extracting key points from video content. Your task is to identify the most important points, insights, and takeaways from a video transcript.

Guidelines:
1. Extract 5-8 key points maximum
2. Each point should be concise (1-2 sentences)
3. Focus on actionable insights, important facts, or main concepts
4. Prioritize unique or valuable information
5. Avoid generic or obvious statements
6. Format each point as a bullet starting with "- " on its own line"""

TAGS_SYSTEM_PROMPT = """You are an expert at creating relevant tags for video content. Generate 5-10 descriptive tags that accurately represent the video's content, topics, and themes.

Guidelines:
1. Create specific, relevant tags (not generic ones)
2. Include both broad topics and specific concepts
3. Keep tags concise (1-3 words each)
4. Focus on searchable and discoverable terms
5. Avoid overly broad or common tags"""

FALLBACK_NOTE = (
    "Note: captions were not available for this video. The text below is built "
    "from the title, channel and description only; do not invent details beyond it."
)

SUMMARY_OPTIONS = CompletionOptions(temperature=0.3, max_output_tokens=1500)
KEY_POINTS_OPTIONS = CompletionOptions(temperature=0.2, max_output_tokens=800)
TAGS_OPTIONS = CompletionOptions(temperature=0.3, max_output_tokens=200)

_BULLET_RE = re.compile(r"^\s*(?:[•\-]|\*(?!\*)|\d+[.)])\s*")
_EMPHASIS_RE = re.compile(r"(\*\*|__)(.+?)\1")
_TAG_STRIP_RE = re.compile(r"[^\w\s-]")


# ==============================================================================
# Output parsing
# ==============================================================================


def parse_key_points(text: str, max_points: int = 8, min_length: int = 10) -> list[str]:
    """Parse bulleted or line-based model output into key points.

    When any line carries a bullet marker (``•``, ``-``, ``*`` or ``1.``), only
    marked lines are kept so that preambles like "Here are the key points:"
    are dropped. Otherwise every line is a candidate. Points shorter than
    ``min_length`` are discarded and the result is truncated to ``max_points``.
    Bold markup (``**text**`` or ``__text__``) is removed anywhere in a point.
    """
    lines = [line for line in text.splitlines() if line.strip()]
    marked = [line for line in lines if _BULLET_RE.match(line)]
    candidates = marked or lines

    points = []
    for line in candidates:
        point = _BULLET_RE.sub("", line, count=1)
        point = _EMPHASIS_RE.sub(r"\2", point).strip().strip("*").strip()
        if len(point) >= min_length:
            points.append(point)

    return points[:max_points]


def parse_tags(text: str, max_tags: int = 10, max_length: int = 50) -> list[str]:
    """Parse comma or newline separated tags.

    Tags are lowercased and stripped of punctuation (hyphens survive). Empty
    and overlong tags are dropped; duplicates are kept.
    """
    tags = []
    for raw in re.split(r"[,\n]", text):
        tag = _TAG_STRIP_RE.sub("", raw.strip().lower()).strip().strip("-").strip()
        if 0 < len(tag) <= max_length:
            tags.append(tag)
    return tags[:max_tags]


# ==============================================================================
# Service
# ==============================================================================


class SummaryService:
    """Service for generating the AI summary, key points and tags of a video.

    Each operation is one independent completion request with a word-boundary
    excerpt of the transcript. Summary and key point failures are fatal to the
    job; tag failures degrade to an empty list.
    """

    def __init__(self, config: VideoChatConfig, completion_service: CompletionService):
        """Initialize summary service.

        Args:
            config: Configuration object with prompt budgets and output limits.
            completion_service: Client for the text-completion service.
        """
        self.config = config
        self.completion_service = completion_service

    async def summarize(
        self,
        transcript: str,
        title: str,
        channel: str,
        duration_seconds: int,
        is_fallback: bool = False,
    ) -> str:
        """Generate a 200-500 word summary.

        Raises:
            SummarizationFailed: If the completion request fails or returns nothing.
        """
        excerpt = truncate_at_word_boundary(transcript, self.config.summary_char_budget)
        ellipsis = " ..." if len(excerpt) < len(transcript) else ""
        note = f"\n{FALLBACK_NOTE}\n" if is_fallback else ""

        user_prompt = f"""Please create a detailed summary for this YouTube video:

Title: "{title}"
Channel: {channel}
Duration: {duration_seconds // 60} minutes
{note}
Transcript:
{excerpt}{ellipsis}

Please provide a well-structured summary that captures the essence of the video content, key points, and main takeaways."""

        try:
            summary = await self.completion_service.complete(
                [
                    PromptMessage(role="system", content=SUMMARY_SYSTEM_PROMPT),
                    PromptMessage(role="user", content=user_prompt),
                ],
                SUMMARY_OPTIONS,
            )
        except Exception as e:
            logger.warning("summary_generation_failed", title=title, error=str(e))
            raise SummarizationFailed(f"Failed to generate video summary: {e}") from e

        logger.info("summary_generated", title=title, words=len(summary.split()))
        return summary

    async def extract_key_points(self, transcript: str, title: str) -> list[str]:
        """Extract up to ``max_key_points`` concise key points.

        Raises:
            SummarizationFailed: If the completion request fails.
        """
        excerpt = truncate_at_word_boundary(transcript, self.config.key_points_char_budget)
        ellipsis = " ..." if len(excerpt) < len(transcript) else ""

        user_prompt = f"""Extract the key points from this video transcript:

Title: "{title}"

Transcript:
{excerpt}{ellipsis}

Please provide the key points as a bulleted list with each point being concise and valuable."""

        try:
            response = await self.completion_service.complete(
                [
                    PromptMessage(role="system", content=KEY_POINTS_SYSTEM_PROMPT),
                    PromptMessage(role="user", content=user_prompt),
                ],
                KEY_POINTS_OPTIONS,
            )
        except Exception as e:
            logger.warning("key_points_extraction_failed", title=title, error=str(e))
            raise SummarizationFailed(f"Failed to extract key points: {e}") from e

        key_points = parse_key_points(
            response,
            max_points=self.config.max_key_points,
            min_length=self.config.min_key_point_length,
        )
        logger.info("key_points_extracted", title=title, count=len(key_points))
        return key_points

    async def generate_tags(self, transcript: str, title: str, channel: str) -> list[str]:
        """Generate up to ``max_tags`` short tags. Returns [] on any failure."""
        try:
            return await self._request_tags(transcript, title, channel)
        except TagGenerationFailed as e:
            logger.warning("tag_generation_failed", title=title, error=e.message)
            return []

    async def _request_tags(self, transcript: str, title: str, channel: str) -> list[str]:
        excerpt = truncate_at_word_boundary(transcript, self.config.tags_char_budget)

        user_prompt = f"""Generate relevant tags for this video:

Title: "{title}"
Channel: {channel}

Content summary: {excerpt}...

Please provide 5-10 relevant tags separated by commas."""

        try:
            response = await self.completion_service.complete(
                [
                    PromptMessage(role="system", content=TAGS_SYSTEM_PROMPT),
                    PromptMessage(role="user", content=user_prompt),
                ],
                TAGS_OPTIONS,
            )
        except Exception as e:
            raise TagGenerationFailed(f"Failed to generate tags: {e}") from e

        tags = parse_tags(
            response,
            max_tags=self.config.max_tags,
            max_length=self.config.max_tag_length,
        )
        logger.info("tags_generated", title=title, count=len(tags))
        return tags
