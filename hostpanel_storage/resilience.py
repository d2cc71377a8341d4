"""Resilience utilities for remote content API calls.

Provides retry with exponential backoff for transient failures
(rate limiting, 5xx responses, dropped connections and timeouts).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Configuration for retry with exponential backoff."""

    max_retries: int = 3
    backoff_base: float = 1.0  # seconds
    backoff_max: float = 30.0  # cap
    backoff_multiplier: float = 2.0
    retryable_status_codes: tuple[int, ...] = (429, 500, 502, 503, 504)
    retryable_exceptions: tuple[type[Exception], ...] = (
        ConnectionError,
        TimeoutError,
    )


def _extract_status_code(exc: Exception) -> int | None:
    """Try to extract an HTTP status code from an exception."""
    status = getattr(exc, "status_code", None)
    if status is not None:
        return int(status)
    status = getattr(exc, "status", None)
    if status is not None:
        return int(status)
    return None


def _get_retry_after(exc: Exception) -> float | None:
    """Extract a Retry-After value (seconds) from an exception if present."""
    headers = getattr(exc, "headers", None)
    if not headers:
        return None
    retry_after = headers.get("Retry-After") or headers.get("retry-after")
    if retry_after is None:
        return None
    try:
        return float(retry_after)
    except (ValueError, TypeError):
        return None


async def retry_with_backoff(
    fn: Callable[..., Coroutine[Any, Any, T]],
    *args: Any,
    config: RetryConfig | None = None,
    context_msg: str = "",
    **kwargs: Any,
) -> T:
    """Execute an async function with retry and exponential backoff.

    Args:
        fn: Async callable to execute
        *args: Positional args for fn
        config: Retry configuration (uses defaults if None)
        context_msg: Extra context for log messages (e.g. request path)
        **kwargs: Keyword args for fn

    Returns:
        Result of fn

    Raises:
        Exception: Last exception after all retries exhausted, or the first
            non-retryable exception
    """
    cfg = config or RetryConfig()
    ctx = f" [{context_msg}]" if context_msg else ""

    for attempt in range(cfg.max_retries + 1):
        try:
            result = await fn(*args, **kwargs)
        except Exception as exc:
            status_code = _extract_status_code(exc)
            is_retryable = isinstance(exc, cfg.retryable_exceptions) or (
                status_code is not None and status_code in cfg.retryable_status_codes
            )

            if not is_retryable or attempt >= cfg.max_retries:
                logger.error(
                    "RETRY_EXHAUSTED: attempt=%d/%d status=%s retryable=%s%s: %s",
                    attempt + 1,
                    cfg.max_retries + 1,
                    status_code,
                    is_retryable,
                    ctx,
                    exc,
                )
                raise

            retry_after = _get_retry_after(exc)
            if retry_after is not None:
                delay = min(retry_after, cfg.backoff_max)
            else:
                delay = min(
                    cfg.backoff_base * (cfg.backoff_multiplier**attempt),
                    cfg.backoff_max,
                )

            if status_code == 429:
                logger.warning(
                    "THROTTLED: 429 Too Many Requests, attempt=%d/%d, retry_after=%.1fs%s",
                    attempt + 1,
                    cfg.max_retries + 1,
                    delay,
                    ctx,
                )
            else:
                logger.warning(
                    "RETRYING: attempt=%d/%d status=%s delay=%.1fs%s: %s",
                    attempt + 1,
                    cfg.max_retries + 1,
                    status_code,
                    delay,
                    ctx,
                    exc,
                )
            await asyncio.sleep(delay)
        else:
            if attempt > 0:
                logger.warning(
                    "RETRY_RECOVERED: succeeded on attempt %d/%d after %d retries%s",
                    attempt + 1,
                    cfg.max_retries + 1,
                    attempt,
                    ctx,
                )
            return result

    # Unreachable, but satisfies type checker
    raise RuntimeError("retry_with_backoff exhausted without raising")  # pragma: no cover
