from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Any, Protocol

from research_engine.config import settings
from research_engine.models.research import (
    ClarifyingAnswer,
    ResearchJob,
    ResearchStatus,
    StatusEvent,
)
from research_engine.services import database as db


@dataclass(slots=True)
class JobStats:
    total: int = 0
    completed: int = 0
    running: int = 0
    avg_duration_ms: float | None = None


class JobStore(Protocol):
    async def create(self, job: ResearchJob) -> None: ...
    async def get(self, job_id: str) -> ResearchJob | None: ...
    async def list(self, *, limit: int, offset: int) -> list[ResearchJob]: ...
    async def stats(self) -> JobStats: ...
    async def update_status(
        self,
        job_id: str,
        status: ResearchStatus,
        *,
        result: str | None = None,
        duration_ms: int | None = None,
    ) -> None: ...
    async def delete(self, job_id: str) -> None: ...
    async def add_status_event(self, event: StatusEvent) -> None: ...
    async def status_history(self, job_id: str, *, limit: int = 5) -> list[StatusEvent]: ...


class MemoryJobStore:
    """Process-local store used by the CLI and tests.

    Writes for unknown or deleted jobs are dropped, matching the row-level
    no-ops of the Postgres store.
    """

    def __init__(self) -> None:
        self._jobs: dict[str, ResearchJob] = {}
        self._history: dict[str, list[StatusEvent]] = {}

    async def create(self, job: ResearchJob) -> None:
        self._jobs[job.id] = job

    async def get(self, job_id: str) -> ResearchJob | None:
        return self._jobs.get(job_id)

    async def list(self, *, limit: int, offset: int) -> list[ResearchJob]:
        jobs = sorted(self._jobs.values(), key=lambda job: job.created_at, reverse=True)
        return jobs[offset : offset + limit]

    async def stats(self) -> JobStats:
        jobs = list(self._jobs.values())
        durations = [job.duration_ms for job in jobs if job.duration_ms is not None]
        return JobStats(
            total=len(jobs),
            completed=sum(1 for job in jobs if job.status == ResearchStatus.COMPLETED),
            running=sum(1 for job in jobs if job.status == ResearchStatus.RUNNING),
            avg_duration_ms=(sum(durations) / len(durations)) if durations else None,
        )

    async def update_status(
        self,
        job_id: str,
        status: ResearchStatus,
        *,
        result: str | None = None,
        duration_ms: int | None = None,
    ) -> None:
        job = self._jobs.get(job_id)
        if job is None:
            return
        changes: dict[str, Any] = {"status": status}
        if result is not None:
            changes["result"] = result
        if duration_ms is not None:
            changes["duration_ms"] = duration_ms
        self._jobs[job_id] = dataclasses.replace(job, **changes)

    async def delete(self, job_id: str) -> None:
        self._jobs.pop(job_id, None)
        self._history.pop(job_id, None)

    async def add_status_event(self, event: StatusEvent) -> None:
        if event.job_id not in self._jobs:
            return
        self._history.setdefault(event.job_id, []).append(event)

    async def status_history(self, job_id: str, *, limit: int = 5) -> list[StatusEvent]:
        events = self._history.get(job_id, [])
        return list(reversed(events))[:limit]


class PostgresJobStore:
    async def create(self, job: ResearchJob) -> None:
        await db.create_research(
            {
                "id": job.id,
                "title": job.title,
                "query": job.query,
                "depth": job.depth,
                "breadth": job.breadth,
                "questions": [
                    {"question": qa.question, "answer": qa.answer} for qa in job.questions
                ],
                "initial_learnings": job.initial_learnings,
                "web_search": job.web_search,
                "index_id": job.index_id,
                "status": int(job.status),
                "created_at": job.created_at,
            }
        )

    async def get(self, job_id: str) -> ResearchJob | None:
        row = await db.get_research(job_id)
        return _row_to_job(row) if row else None

    async def list(self, *, limit: int, offset: int) -> list[ResearchJob]:
        return [_row_to_job(row) for row in await db.list_researches(limit, offset)]

    async def stats(self) -> JobStats:
        row = await db.research_stats()
        avg = row.get("avg_duration_ms")
        return JobStats(
            total=int(row.get("total") or 0),
            completed=int(row.get("completed") or 0),
            running=int(row.get("running") or 0),
            avg_duration_ms=float(avg) if avg is not None else None,
        )

    async def update_status(
        self,
        job_id: str,
        status: ResearchStatus,
        *,
        result: str | None = None,
        duration_ms: int | None = None,
    ) -> None:
        await db.update_research_status(job_id, int(status), result, duration_ms)

    async def delete(self, job_id: str) -> None:
        await db.delete_research(job_id)

    async def add_status_event(self, event: StatusEvent) -> None:
        await db.add_status_event(event.job_id, event.message, event.timestamp)

    async def status_history(self, job_id: str, *, limit: int = 5) -> list[StatusEvent]:
        rows = await db.get_status_history(job_id, limit)
        return [
            StatusEvent(job_id=job_id, message=row["status_text"], timestamp=row["timestamp"])
            for row in rows
        ]


def _row_to_job(row: dict[str, Any]) -> ResearchJob:
    questions = tuple(
        ClarifyingAnswer(question=str(item.get("question", "")), answer=str(item.get("answer", "")))
        for item in db.coerce_json_list(row.get("questions"))
        if isinstance(item, dict)
    )
    return ResearchJob(
        id=row["id"],
        title=row.get("title"),
        query=row["query"],
        depth=int(row["depth"]),
        breadth=int(row["breadth"]),
        questions=questions,
        initial_learnings=row.get("initial_learnings") or "",
        web_search=bool(row.get("web_search", True)),
        index_id=row.get("index_id"),
        status=ResearchStatus(int(row["status"])),
        result=row.get("result"),
        duration_ms=row.get("duration_ms"),
        created_at=row["created_at"],
    )


_store: JobStore | None = None


def get_job_store() -> JobStore:
    global _store
    if _store is None:
        _store = PostgresJobStore() if db.db_available() else MemoryJobStore()
    return _store
