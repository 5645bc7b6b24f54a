"""Primary/fallback model substitution for generation calls."""
from __future__ import annotations

from typing import Any, Awaitable, Callable, TypeVar

from research_engine.services.logger import logger

T = TypeVar("T")

# Providers report quota exhaustion only in the error text.
RATE_LIMIT_SIGNATURE = "exceeded your current quota"


def is_rate_limit_error(exc: BaseException) -> bool:
    """Classify an error as quota/rate-limit exhaustion by its message.

    Checks the exception text and an attached `last_error`, which retrying
    SDK wrappers use to carry the final upstream failure.
    """
    texts = [str(exc)]
    last_error = getattr(exc, "last_error", None)
    if last_error is not None:
        texts.append(str(last_error))
    return any(RATE_LIMIT_SIGNATURE in text.lower() for text in texts)


async def invoke(
    capability: Callable[..., Awaitable[T]],
    primary_identity: str,
    fallback_identity: str | None,
    *args: Any,
    **kwargs: Any,
) -> T:
    """Call `capability(identity, ...)` with the primary identity.

    A rate-limited primary call is retried exactly once with the fallback
    identity; that call's result or error is returned unchanged. Any other
    error propagates without a second attempt.
    """
    try:
        return await capability(primary_identity, *args, **kwargs)
    except Exception as exc:
        if not fallback_identity or not is_rate_limit_error(exc):
            raise
        logger.warning(
            "Rate limit on %s, retrying with fallback %s: %s",
            primary_identity,
            fallback_identity,
            exc,
        )
    return await capability(fallback_identity, *args, **kwargs)
