"""
HTTP requests with a hard per-attempt timeout and exponential-backoff retry.

Only transient conditions are retried: transport-level failures (connection
errors, httpx timeouts), the hard timeout firing, and the status codes in
RETRYABLE_STATUS_CODES. Backoff is deterministic (no jitter).
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
from pydantic import BaseModel, Field

from dialogue_foundry.utils.logger import logger

RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})


class RetryConfig(BaseModel):
    """Retry policy for a resilient request."""

    max_retries: int = Field(default=3, ge=0)
    initial_delay_ms: int = Field(default=500, ge=0)
    max_delay_ms: int = Field(default=5000, ge=0)
    timeout_ms: int = Field(default=10000, gt=0)
    backoff_multiplier: float = Field(default=2, ge=1)


class ResilientFetchError(Exception):
    """Base exception for requests that failed after the retry policy ran out."""

    def __init__(
        self,
        message: str,
        attempts: int,
        status_code: int | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.attempts = attempts
        self.status_code = status_code
        self.original_error = original_error


class RetryableStatusError(ResilientFetchError):
    """The last attempt returned a retryable status code."""

    pass


def calculate_delay_ms(attempt: int, config: RetryConfig) -> float:
    """Delay before retrying after the given 0-indexed attempt."""
    delay = config.initial_delay_ms * (config.backoff_multiplier**attempt)
    return min(delay, config.max_delay_ms)


def is_retryable_error(error: BaseException) -> bool:
    return isinstance(error, (httpx.TransportError, TimeoutError))


async def resilient_request(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    retry_config: RetryConfig | None = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    **request_kwargs: Any,
) -> httpx.Response:
    """
    Send a request, retrying transient failures with exponential backoff.

    Args:
        client: httpx client used for every attempt
        method: HTTP method
        url: Target URL (absolute, or relative to the client's base_url)
        retry_config: Retry policy, defaults to RetryConfig()
        sleep: Coroutine used to wait between attempts
        **request_kwargs: Passed through to client.request (json, headers, params, ...)

    Returns:
        httpx.Response: The first response with a non-retryable status

    Raises:
        RetryableStatusError: If every attempt returned a retryable status
        ResilientFetchError: If every attempt failed with a transient transport error
        Exception: Any non-retryable error raised by the transport, unchanged
    """
    config = retry_config or RetryConfig()
    timeout_seconds = config.timeout_ms / 1000
    last_error: ResilientFetchError | None = None

    for attempt in range(config.max_retries + 1):
        try:
            response = await asyncio.wait_for(
                client.request(method, url, **request_kwargs),
                timeout=timeout_seconds,
            )

            if response.status_code not in RETRYABLE_STATUS_CODES:
                return response

            last_error = RetryableStatusError(
                f"HTTP {response.status_code}: {response.reason_phrase}",
                attempts=attempt + 1,
                status_code=response.status_code,
            )

        except Exception as e:
            if not is_retryable_error(e):
                logger.error(
                    "[RETRY] Request failed with non-retryable error",
                    url=url,
                    attempts=attempt + 1,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise

            last_error = ResilientFetchError(
                f"{type(e).__name__}: {e}" if str(e) else type(e).__name__,
                attempts=attempt + 1,
                original_error=e,
            )

        if attempt < config.max_retries:
            delay_ms = calculate_delay_ms(attempt, config)
            logger.warning(
                "[RETRY] Retrying request",
                url=url,
                attempt=attempt + 1,
                max_retries=config.max_retries,
                delay_ms=delay_ms,
                error=last_error.message,
            )
            await sleep(delay_ms / 1000)

    logger.error(
        "[RETRY] Request failed after all retries",
        url=url,
        attempts=config.max_retries + 1,
        error=last_error.message if last_error else None,
    )
    raise last_error
