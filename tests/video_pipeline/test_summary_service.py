"""Unit tests for the summary service and its output parsers."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from src.video_pipeline.config import VideoChatConfig
from src.video_pipeline.errors import (
    CompletionFailed,
    InsufficientQuota,
    RateLimited,
    SummarizationFailed,
)
from src.video_pipeline.summary_service import (
    KEY_POINTS_OPTIONS,
    SUMMARY_SYSTEM_PROMPT,
    SummaryService,
    parse_key_points,
    parse_tags,
)

LONG_TRANSCRIPT = " ".join(f"word{i}" for i in range(2000))


@pytest.mark.unit
class TestParseKeyPoints:
    """Test key point parsing."""

    def test_accepts_all_bullet_markers(self) -> None:
        text = (
            "• Bullet with a round marker\n"
            "- Bullet with a dash marker\n"
            "* Bullet with a star marker\n"
            "1. Bullet with a number marker\n"
            "2) Bullet with a paren marker"
        )

        assert parse_key_points(text) == [
            "Bullet with a round marker",
            "Bullet with a dash marker",
            "Bullet with a star marker",
            "Bullet with a number marker",
            "Bullet with a paren marker",
        ]

    def test_unmarked_preamble_is_dropped_when_bullets_exist(self) -> None:
        text = "Here are the key points from the video:\n- First important point\n- Second important point"

        assert parse_key_points(text) == ["First important point", "Second important point"]

    def test_plain_lines_used_when_no_markers(self) -> None:
        text = "First plain line point\n\nSecond plain line point"

        assert parse_key_points(text) == ["First plain line point", "Second plain line point"]

    def test_short_lines_are_discarded(self) -> None:
        assert parse_key_points("- ok\n- A point long enough", min_length=10) == [
            "A point long enough"
        ]

    def test_bold_markup_is_stripped(self) -> None:
        assert parse_key_points("- **Bold point about focus**") == ["Bold point about focus"]

    def test_inline_bold_markup_is_stripped(self) -> None:
        text = "* **Focus blocks**: ninety minutes\n1. A __deep work__ habit takes weeks"

        assert parse_key_points(text) == [
            "Focus blocks: ninety minutes",
            "A deep work habit takes weeks",
        ]

    def test_bold_heading_is_not_a_bullet(self) -> None:
        text = "**Key points from the talk**\n- Focus blocks of ninety minutes"

        assert parse_key_points(text) == ["Focus blocks of ninety minutes"]

    def test_result_is_truncated_never_padded(self) -> None:
        text = "\n".join(f"- Key point number {i}" for i in range(12))

        points = parse_key_points(text, max_points=8)

        assert len(points) == 8
        assert points[0] == "Key point number 0"
        assert points[-1] == "Key point number 7"
        assert parse_key_points("- Only one key point here", max_points=8) == [
            "Only one key point here"
        ]


@pytest.mark.unit
class TestParseTags:
    """Test tag parsing."""

    def test_splits_lowercases_and_strips_punctuation(self) -> None:
        assert parse_tags("Machine Learning, AI!\nself-help, #Python") == [
            "machine learning",
            "ai",
            "self-help",
            "python",
        ]

    def test_empty_and_overlong_tags_are_dropped(self) -> None:
        assert parse_tags("good, , !!!, " + "x" * 60, max_length=50) == ["good"]

    def test_duplicates_are_kept_and_count_is_capped(self) -> None:
        assert parse_tags("a1, a1, b2", max_tags=10) == ["a1", "a1", "b2"]
        assert len(parse_tags(",".join(f"tag{i}" for i in range(20)), max_tags=10)) == 10


@pytest.mark.unit
class TestSummaryService:
    """Test suite for SummaryService class."""

    @pytest.fixture
    def config(self) -> VideoChatConfig:
        return VideoChatConfig(
            summary_char_budget=200,
            key_points_char_budget=150,
            tags_char_budget=100,
        )

    @pytest.fixture
    def completion(self) -> MagicMock:
        service = MagicMock()
        service.complete = AsyncMock(return_value="A generated response text.")
        return service

    @pytest.fixture
    def summary_service(self, config, completion) -> SummaryService:
        return SummaryService(config, completion)

    def embedded_excerpt(self, completion: MagicMock) -> str:
        user_prompt = completion.complete.call_args.args[0][1].content
        return user_prompt.split("Transcript:\n", 1)[1].split(" ...", 1)[0]

    @pytest.mark.asyncio
    async def test_summarize_sends_bounded_excerpt(self, summary_service, completion) -> None:
        """Test the summary prompt embeds a word-boundary excerpt within budget."""
        result = await summary_service.summarize(LONG_TRANSCRIPT, "Title", "Channel", 600)

        assert result == "A generated response text."
        messages = completion.complete.call_args.args[0]
        assert messages[0].content == SUMMARY_SYSTEM_PROMPT
        assert "Duration: 10 minutes" in messages[1].content

        excerpt = self.embedded_excerpt(completion)
        assert 0 < len(excerpt) <= 200
        assert LONG_TRANSCRIPT.startswith(excerpt)
        assert LONG_TRANSCRIPT[len(excerpt)] == " "

    @pytest.mark.asyncio
    async def test_short_transcript_is_not_marked_truncated(
        self, summary_service, completion
    ) -> None:
        await summary_service.summarize("brief transcript", "Title", "Channel", 60)

        assert "brief transcript ..." not in completion.complete.call_args.args[0][1].content

    @pytest.mark.asyncio
    async def test_summarize_failure_is_fatal(self, summary_service, completion) -> None:
        completion.complete = AsyncMock(side_effect=InsufficientQuota())

        with pytest.raises(SummarizationFailed) as exc_info:
            await summary_service.summarize(LONG_TRANSCRIPT, "Title", "Channel", 600)

        assert "Insufficient credits" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_extract_key_points(self, summary_service, completion) -> None:
        completion.complete = AsyncMock(
            return_value="- The first key insight\n- The second key insight"
        )

        points = await summary_service.extract_key_points(LONG_TRANSCRIPT, "Title")

        assert points == ["The first key insight", "The second key insight"]
        assert completion.complete.call_args.args[1] == KEY_POINTS_OPTIONS
        assert len(self.embedded_excerpt(completion)) <= 150

    @pytest.mark.asyncio
    async def test_extract_key_points_failure_is_fatal(self, summary_service, completion) -> None:
        completion.complete = AsyncMock(side_effect=CompletionFailed())

        with pytest.raises(SummarizationFailed, match="Failed to extract key points"):
            await summary_service.extract_key_points(LONG_TRANSCRIPT, "Title")

    @pytest.mark.asyncio
    async def test_generate_tags(self, summary_service, completion) -> None:
        completion.complete = AsyncMock(return_value="Focus, Deep Work, learning")

        tags = await summary_service.generate_tags(LONG_TRANSCRIPT, "Title", "Channel")

        assert tags == ["focus", "deep work", "learning"]
        user_prompt = completion.complete.call_args.args[0][1].content
        excerpt = user_prompt.split("Content summary: ", 1)[1].split("...", 1)[0]
        assert len(excerpt) <= 100

    @pytest.mark.asyncio
    async def test_generate_tags_failure_degrades_to_empty(
        self, summary_service, completion
    ) -> None:
        """Test tag failures are absorbed."""
        completion.complete = AsyncMock(side_effect=RateLimited())

        assert await summary_service.generate_tags(LONG_TRANSCRIPT, "Title", "Channel") == []
