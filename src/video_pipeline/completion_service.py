"""Completion service for chat-style text generation via OpenAI-compatible APIs."""

import openai
from openai import AsyncOpenAI

from src.utils.clients import get_completion_client
from src.utils.logging import get_logger

from .config import VideoChatConfig
from .errors import (
    CompletionError,
    CompletionFailed,
    CompletionTimeout,
    InsufficientQuota,
    RateLimited,
    Unauthorized,
)
from .schemas import CompletionOptions, PromptMessage

logger = get_logger(__name__)


class CompletionService:
    """Service for generating text from an ordered list of messages.

    The service treats the provider as a black box: one request in, one text
    out. Provider-specific failures are translated into the fixed taxonomy
    (rate limit, unauthorized, insufficient quota, timeout, unknown) here and
    nowhere else. Every request carries the configured timeout and is never
    retried automatically.
    """

    def __init__(self, config: VideoChatConfig, client: AsyncOpenAI | None = None):
        """Initialize completion service with configuration.

        Args:
            config: Configuration object with endpoint, model and timeout.
            client: Pre-built client. Built from config when omitted.
        """
        self.config = config
        self.client = client or get_completion_client(config)
        logger.info(
            "completion_service_initialized",
            model=config.llm_model,
            base_url=config.llm_base_url,
            timeout_seconds=config.llm_timeout_seconds,
        )

    async def complete(
        self,
        messages: list[PromptMessage],
        options: CompletionOptions | None = None,
    ) -> str:
        """Run one completion request.

        Args:
            messages: Ordered prompt messages.
            options: Sampling temperature and output token limit.

        Returns:
            The generated text.

        Raises:
            RateLimited, Unauthorized, InsufficientQuota, CompletionTimeout:
                For the corresponding provider failures.
            CompletionFailed: For any other failure, including an empty reply.
        """
        options = options or CompletionOptions()

        try:
            response = await self.client.chat.completions.create(
                model=self.config.llm_model,
                messages=[message.model_dump() for message in messages],
                temperature=options.temperature,
                max_tokens=options.max_output_tokens,
                timeout=self.config.llm_timeout_seconds,
            )
        except Exception as e:
            error = translate_provider_error(e)
            logger.warning(
                "completion_request_failed",
                model=self.config.llm_model,
                error_code=error.code,
                error_type=type(e).__name__,
            )
            raise error from e

        content = response.choices[0].message.content if response.choices else None
        if not content or not content.strip():
            logger.warning("completion_empty_response", model=self.config.llm_model)
            raise CompletionFailed("AI service error: empty response")

        logger.debug(
            "completion_generated",
            model=self.config.llm_model,
            messages=len(messages),
            response_length=len(content),
        )
        return content.strip()

    async def validate_api_key(self) -> bool:
        """Send a minimal request to check that the service accepts our key."""
        try:
            await self.complete(
                [PromptMessage(role="user", content="Hello, this is a connectivity check.")],
                CompletionOptions(temperature=0, max_output_tokens=10),
            )
            return True
        except CompletionError as e:
            logger.warning("completion_api_key_check_failed", error_code=e.code)
            return False


def translate_provider_error(error: Exception) -> CompletionError:
    """Map an exception raised by the openai SDK into the completion taxonomy."""
    if isinstance(error, CompletionError):
        return error
    if isinstance(error, (openai.APITimeoutError, TimeoutError)):
        return CompletionTimeout()
    if isinstance(error, openai.APIStatusError):
        status = error.status_code
        if status == 402 or _is_quota_error(error):
            return InsufficientQuota()
        if status == 429:
            return RateLimited()
        if status in (401, 403):
            return Unauthorized()
    return CompletionFailed(f"AI service error: {error}")


def _is_quota_error(error: openai.APIStatusError) -> bool:
    # OpenAI reports exhausted credit as a 429 with this code.
    body = error.body if isinstance(error.body, dict) else {}
    nested = body.get("error") if isinstance(body.get("error"), dict) else body
    return getattr(error, "code", None) == "insufficient_quota" or (
        nested.get("code") == "insufficient_quota"
    )
