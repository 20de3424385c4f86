"""Bounded retries for flaky engine calls (status sends, mostly)."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any, TypeVar

from wakit.core.errors import (
    NotSupportedByEngineError,
    PreconditionFailedError,
    RequiresHigherTierError,
    TransientEngineError,
)
from wakit.models.config import RetryPolicy

logger = logging.getLogger("wakit.retry")

T = TypeVar("T")

# Retrying these cannot change the outcome
NON_RETRYABLE: tuple[type[Exception], ...] = (
    NotSupportedByEngineError,
    RequiresHigherTierError,
    PreconditionFailedError,
)


def backoff_delay(policy: RetryPolicy, attempt: int) -> float:
    """Seconds to wait after the zero-based *attempt* failed."""
    return min(
        policy.base_delay_seconds * policy.exponential_base**attempt,
        policy.max_delay_seconds,
    )


async def retry_with_backoff(
    fn: Callable[..., Coroutine[Any, Any, T]],
    policy: RetryPolicy,
    *args: Any,
    log_extra: dict[str, Any] | None = None,
    **kwargs: Any,
) -> T:
    """Await ``fn(*args, **kwargs)`` up to ``policy.max_retries + 1`` times.

    Capability and precondition errors propagate untouched.  Any other
    failure of the last attempt surfaces as ``TransientEngineError``
    chained to it.
    """
    attempts = policy.max_retries + 1
    for attempt in range(policy.max_retries):
        try:
            return await fn(*args, **kwargs)
        except NON_RETRYABLE:
            raise
        except Exception as exc:
            delay = backoff_delay(policy, attempt)
            logger.warning(
                "Attempt %d/%d failed (%s), retrying in %.1fs",
                attempt + 1,
                attempts,
                exc,
                delay,
                extra={**(log_extra or {}), "attempt": attempt + 1},
            )
            await asyncio.sleep(delay)

    try:
        return await fn(*args, **kwargs)
    except NON_RETRYABLE:
        raise
    except Exception as exc:
        raise TransientEngineError(f"Gave up after {attempts} attempts: {exc}") from exc
