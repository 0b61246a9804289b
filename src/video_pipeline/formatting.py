"""Text and display helpers shared by the pipeline, the chat assembler and the CLI."""

import re

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_transcript(text: str) -> str:
    """Collapse runs of whitespace into single spaces and trim the ends."""
    return _WHITESPACE_RE.sub(" ", text).strip()


def truncate_at_word_boundary(text: str, budget: int) -> str:
    """Truncate text to at most ``budget`` characters without splitting a word.

    Args:
        text: Text to truncate.
        budget: Maximum number of characters to keep.

    Returns:
        The text unchanged when it fits, otherwise the longest prefix that ends
        on a word boundary and fits the budget. A single word longer than the
        budget yields an empty string.

    Examples:
        >>> truncate_at_word_boundary("alpha beta gamma", 12)
        'alpha beta'
        >>> truncate_at_word_boundary("alpha beta gamma", 10)
        'alpha beta'
    """
    if budget <= 0:
        return ""
    if len(text) <= budget:
        return text

    head = text[:budget]
    if text[budget].isspace():
        return head.rstrip()

    cut = max(head.rfind(" "), head.rfind("\n"), head.rfind("\t"))
    if cut <= 0:
        return ""
    return head[:cut].rstrip()


def format_duration(seconds: int) -> str:
    """Format seconds as H:MM:SS or M:SS.

    Examples:
        >>> format_duration(125)
        '2:05'
        >>> format_duration(3725)
        '1:02:05'
    """
    hours = seconds // 3600
    minutes = (seconds % 3600) // 60
    secs = seconds % 60

    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def format_video_url(content_id: str) -> str:
    return f"https://www.youtube.com/watch?v={content_id}"


def thumbnail_url_for(content_id: str) -> str:
    """Deterministic thumbnail URL derived from the video ID alone."""
    return f"https://img.youtube.com/vi/{content_id}/maxresdefault.jpg"
