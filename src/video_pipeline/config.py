"""Configuration module for the video processing pipeline and chat."""

import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field

# Load environment variables from .env file
load_dotenv()


def _env_list(name: str, default: str) -> list[str]:
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


class VideoChatConfig(BaseModel):
    """Configuration for video processing, summarization and chat.

    This configuration class manages the settings for content extraction,
    the text-completion service, prompt budgets, chat memory and storage.
    All settings can be overridden via environment variables or constructor
    arguments.
    """

    # Content source settings
    supadata_api_key: str = Field(
        default_factory=lambda: os.getenv("SUPADATA_API_KEY", "")
    )
    transcript_languages: list[str] = Field(
        default_factory=lambda: _env_list("TRANSCRIPT_LANGUAGES", "en,en-US,en-GB")
    )
    metadata_timeout_seconds: float = Field(
        default_factory=lambda: float(os.getenv("METADATA_TIMEOUT_SECONDS", "15"))
    )

    # Completion service settings (any OpenAI-compatible endpoint)
    llm_base_url: str = Field(
        default_factory=lambda: os.getenv("LLM_BASE_URL", "https://openrouter.ai/api/v1")
    )
    llm_api_key: str = Field(default_factory=lambda: os.getenv("LLM_API_KEY", ""))
    llm_model: str = Field(
        default_factory=lambda: os.getenv("LLM_CHOICE", "openai/gpt-4o-mini")
    )
    llm_timeout_seconds: float = Field(
        default_factory=lambda: float(os.getenv("LLM_TIMEOUT_SECONDS", "60"))
    )
    llm_app_title: str = Field(
        default_factory=lambda: os.getenv("LLM_APP_TITLE", "Video Insight Chat")
    )
    llm_referer: str = Field(
        default_factory=lambda: os.getenv("FRONTEND_URL", "http://localhost:5173")
    )

    # Prompt budgets (characters of transcript embedded in each prompt)
    summary_char_budget: int = Field(
        default_factory=lambda: int(os.getenv("SUMMARY_CHAR_BUDGET", "8000"))
    )
    key_points_char_budget: int = Field(
        default_factory=lambda: int(os.getenv("KEY_POINTS_CHAR_BUDGET", "6000"))
    )
    tags_char_budget: int = Field(
        default_factory=lambda: int(os.getenv("TAGS_CHAR_BUDGET", "1500"))
    )
    chat_transcript_char_budget: int = Field(
        default_factory=lambda: int(os.getenv("CHAT_TRANSCRIPT_CHAR_BUDGET", "4000"))
    )

    # Output limits
    max_key_points: int = Field(
        default_factory=lambda: int(os.getenv("MAX_KEY_POINTS", "8"))
    )
    min_key_point_length: int = Field(
        default_factory=lambda: int(os.getenv("MIN_KEY_POINT_LENGTH", "10"))
    )
    max_tags: int = Field(default_factory=lambda: int(os.getenv("MAX_TAGS", "10")))
    max_tag_length: int = Field(
        default_factory=lambda: int(os.getenv("MAX_TAG_LENGTH", "50"))
    )

    # Chat settings
    chat_history_window: int = Field(
        default_factory=lambda: int(os.getenv("CHAT_HISTORY_WINDOW", "10"))
    )
    max_question_length: int = Field(
        default_factory=lambda: int(os.getenv("MAX_QUESTION_LENGTH", "1000"))
    )

    # Storage settings
    storage_backend: str = Field(
        default_factory=lambda: os.getenv("STORAGE_BACKEND", "memory")
    )
    supabase_url: str = Field(default_factory=lambda: os.getenv("SUPABASE_URL", ""))
    supabase_key: str = Field(
        default_factory=lambda: os.getenv("SUPABASE_SERVICE_KEY", "")
    )
    jobs_table: str = Field(
        default_factory=lambda: os.getenv("JOBS_TABLE", "processing_jobs")
    )
    sessions_table: str = Field(
        default_factory=lambda: os.getenv("SESSIONS_TABLE", "chat_sessions")
    )
    history_table: str = Field(
        default_factory=lambda: os.getenv("HISTORY_TABLE", "history_entries")
    )

    # Worker settings
    worker_count: int = Field(
        default_factory=lambda: int(os.getenv("PIPELINE_WORKER_COUNT", "4"))
    )
    poll_interval_seconds: float = Field(
        default_factory=lambda: float(os.getenv("POLL_INTERVAL_SECONDS", "2"))
    )


def get_config() -> VideoChatConfig:
    """Get validated configuration instance.

    Returns:
        VideoChatConfig: Validated configuration object with all settings.

    Raises:
        ValidationError: If environment variables hold values of the wrong type.
    """
    return VideoChatConfig()
