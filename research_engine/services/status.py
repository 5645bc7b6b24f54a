from __future__ import annotations

from research_engine.models.research import StatusEvent
from research_engine.services import logger as log_service
from research_engine.services.job_store import JobStore


class StatusRecorder:
    """Append-only progress log for one or more jobs.

    Recording is best effort: a store failure is logged and never reaches
    the research loop.
    """

    def __init__(self, store: JobStore):
        self.store = store

    async def record(self, job_id: str, message: str) -> StatusEvent:
        event = StatusEvent(job_id=job_id, message=message)
        log_service.log_event("status", message, job_id=job_id)
        try:
            await self.store.add_status_event(event)
        except Exception as e:
            log_service.logger.warning("Failed to record status for %s: %s", job_id, e)
        return event
