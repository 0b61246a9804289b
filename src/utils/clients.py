"""Client initialization utilities.

Provides functions for constructing the external service clients (the
OpenAI-compatible completion endpoint and Supabase) from configuration.
Clients are built explicitly and injected; nothing here is cached globally.
"""

from openai import AsyncOpenAI
from supabase import Client, create_client

from src.video_pipeline.config import VideoChatConfig


def get_completion_client(config: VideoChatConfig) -> AsyncOpenAI:
    """Build the async client for the text-completion service.

    Automatic SDK retries are disabled; every retry is caller-initiated.

    Args:
        config: Configuration with base URL, API key, timeout and app headers.

    Returns:
        AsyncOpenAI client bound to the configured endpoint.

    Raises:
        ValueError: If no API key is configured.
    """
    if not config.llm_api_key:
        raise ValueError("LLM_API_KEY environment variable is required")

    return AsyncOpenAI(
        base_url=config.llm_base_url,
        api_key=config.llm_api_key,
        timeout=config.llm_timeout_seconds,
        max_retries=0,
        default_headers={
            "HTTP-Referer": config.llm_referer,
            "X-Title": config.llm_app_title,
        },
    )


def get_supabase_client(config: VideoChatConfig) -> Client:
    """Build the Supabase client used by the document-store backend.

    Raises:
        ValueError: If the Supabase URL or key is missing.
    """
    if not config.supabase_url or not config.supabase_key:
        raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_KEY environment variables are required")

    return create_client(config.supabase_url, config.supabase_key)
