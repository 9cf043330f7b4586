"""Text-generation collaborator backed by the Anthropic Messages API."""

import asyncio
import logging
from functools import lru_cache

from anthropic import APIConnectionError, APIStatusError, AsyncAnthropic
from fastapi import status

from planlab.config import get_settings, sanitize_error
from planlab.errors import ApiError, ErrorCode

logger = logging.getLogger(__name__)

# Rate limited, overloaded
TRANSIENT_STATUS_CODES = frozenset({429, 529})


def is_transient(error: Exception) -> bool:
    """Connection drops, rate limits and overload are worth another attempt."""
    if isinstance(error, APIConnectionError):
        return True
    return isinstance(error, APIStatusError) and error.status_code in TRANSIENT_STATUS_CODES


async def call_with_backoff(request, *, max_attempts: int = 3, base_delay: float = 1.0):
    """
    Await request() until it succeeds, doubling the delay after each transient failure.

    request must build a fresh coroutine per call. Non-transient errors and
    the last transient one propagate unchanged.
    """
    for attempt in range(1, max_attempts + 1):
        try:
            return await request()
        except Exception as e:
            if attempt == max_attempts or not is_transient(e):
                raise
            delay = base_delay * 2 ** (attempt - 1)
            logger.warning(
                "Generation attempt %d/%d failed (%s), retrying in %.1fs",
                attempt, max_attempts, type(e).__name__, delay,
            )
            await asyncio.sleep(delay)


class GenerationClient:
    """Sends an assembled prompt and returns the model's plain text."""

    def __init__(self, api_key: str, *, model: str, max_tokens: int, max_attempts: int = 3):
        self.client = AsyncAnthropic(api_key=api_key)
        self.model = model
        self.max_tokens = max_tokens
        self.max_attempts = max_attempts

    async def complete(self, prompt: str, *, system: str | None = None) -> str:
        """
        Get a non-streaming completion for a single user prompt.

        Raises ApiError(INTERNAL, 502) once retries are exhausted or on a
        non-retryable API error. Nothing downstream runs in that case.
        """
        kwargs = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            kwargs["system"] = system

        try:
            message = await call_with_backoff(
                lambda: self.client.messages.create(**kwargs),
                max_attempts=self.max_attempts,
            )
        except Exception as e:
            logger.exception("Generation request failed")
            raise ApiError(
                ErrorCode.INTERNAL,
                sanitize_error(e, generic_message="El servicio de generación no está disponible."),
                status_code=status.HTTP_502_BAD_GATEWAY,
            ) from e

        return "".join(block.text for block in message.content if block.type == "text")


@lru_cache
def get_generation_client() -> GenerationClient:
    """Get the shared generation client."""
    settings = get_settings()
    return GenerationClient(
        settings.anthropic_api_key,
        model=settings.llm_model,
        max_tokens=settings.llm_max_tokens,
        max_attempts=settings.llm_max_attempts,
    )
