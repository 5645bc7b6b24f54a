from __future__ import annotations

import time
from typing import Any, Awaitable, Callable, TypeVar

from research_engine.services import logger as log_service

T = TypeVar("T")


class StepExecutor:
    """Runs one logical research step (plan, search, extract, report).

    Steps are plain coroutines with explicit inputs and outputs. This base
    executor awaits them directly and logs the outcome; an executor that adds
    checkpointing or durable retries can subclass it and override `run`.
    """

    def __init__(self, job_id: str | None = None):
        self.job_id = job_id

    async def run(
        self,
        name: str,
        func: Callable[..., Awaitable[T]],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        t0 = time.monotonic()
        try:
            result = await func(*args, **kwargs)
        except Exception as exc:
            log_service.log_research_step(
                self.job_id,
                name,
                "failed",
                {"error": str(exc), "duration_ms": int((time.monotonic() - t0) * 1000)},
            )
            raise
        log_service.log_research_step(
            self.job_id,
            name,
            "completed",
            {"duration_ms": int((time.monotonic() - t0) * 1000)},
        )
        return result
