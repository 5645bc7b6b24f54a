from __future__ import annotations

import uuid

from fastapi import APIRouter, BackgroundTasks, HTTPException
from fastapi.responses import Response

from research_engine.agents.clarifier import generate_clarifying_questions, summarize_title
from research_engine.config import settings
from research_engine.models.research import ClarifyingAnswer, ResearchJob, ResearchStatus
from research_engine.models.schemas import (
    QuestionAnswer,
    QuestionsRequest,
    QuestionsResponse,
    ResearchCreateRequest,
    ResearchDetailResponse,
    ResearchListResponse,
    ResearchResponse,
    ResearchStartResponse,
    StatusEventResponse,
)
from research_engine.services import logger as log_service
from research_engine.services.job_runner import ResearchJobRunner
from research_engine.services.job_store import get_job_store

router = APIRouter(prefix="/api/research", tags=["research"])

PAGE_SIZE = 5


def format_duration(ms: float | None) -> str:
    """Render milliseconds as '<n.n> <unit>(s)', using the largest whole unit."""
    if ms is None or ms <= 0:
        return "0.0 seconds"
    seconds = ms / 1000
    for value, unit in (
        (seconds / 86400, "day"),
        (seconds / 3600, "hour"),
        (seconds / 60, "minute"),
    ):
        if value >= 1:
            return f"{value:.1f} {unit}{'' if value == 1 else 's'}"
    return f"{seconds:.1f} second{'' if seconds == 1 else 's'}"


def _to_response(job: ResearchJob) -> ResearchResponse:
    return ResearchResponse(
        id=job.id,
        title=job.title,
        query=job.query,
        depth=job.depth,
        breadth=job.breadth,
        questions=[QuestionAnswer(question=qa.question, answer=qa.answer) for qa in job.questions],
        web_search=job.web_search,
        index_id=job.index_id,
        status=job.status.name.lower(),
        result=job.result,
        duration_ms=job.duration_ms,
        created_at=job.created_at,
    )


def _require_generation() -> None:
    if not settings.openrouter_api_key:
        raise HTTPException(status_code=503, detail="OPENROUTER_API_KEY is not configured")


def _budget(value: int | None, default: int, maximum: int, name: str) -> int:
    resolved = default if value is None else value
    if resolved > maximum:
        raise HTTPException(status_code=422, detail=f"{name} must be at most {maximum}")
    return resolved


async def _run_job(job: ResearchJob) -> None:
    runner = ResearchJobRunner(get_job_store())
    try:
        await runner.run(job)
    except Exception as e:
        # Already persisted as failed by the runner.
        log_service.log_event(
            event_type="research_failed",
            message="Background research run failed",
            job_id=job.id,
            error=str(e),
        )


async def _start(job: ResearchJob, background_tasks: BackgroundTasks) -> ResearchStartResponse:
    await get_job_store().create(job)
    background_tasks.add_task(_run_job, job)
    return ResearchStartResponse(id=job.id)


@router.post("/questions", response_model=QuestionsResponse)
async def clarifying_questions(request: QuestionsRequest):
    """Suggest questions that sharpen the research direction."""
    _require_generation()
    questions = await generate_clarifying_questions(request.query)
    return QuestionsResponse(questions=questions)


@router.post("", response_model=ResearchStartResponse)
async def create_research(request: ResearchCreateRequest, background_tasks: BackgroundTasks):
    """Create a research job and run it in the background."""
    if not request.web_search and not request.index_id:
        raise HTTPException(status_code=422, detail="Enable web search or provide an index_id")
    _require_generation()

    job = ResearchJob(
        id=str(uuid.uuid4()),
        title=await summarize_title(request.query),
        query=request.query,
        depth=_budget(request.depth, settings.default_depth, settings.max_depth, "depth"),
        breadth=_budget(request.breadth, settings.default_breadth, settings.max_breadth, "breadth"),
        questions=tuple(
            ClarifyingAnswer(question=qa.question, answer=qa.answer) for qa in request.questions
        ),
        initial_learnings=request.initial_learnings,
        web_search=request.web_search,
        index_id=request.index_id or None,
        status=ResearchStatus.RUNNING,
    )
    return await _start(job, background_tasks)


@router.get("", response_model=ResearchListResponse)
async def list_researches(page: int = 1):
    store = get_job_store()
    page = max(page, 1)
    jobs = await store.list(limit=PAGE_SIZE, offset=(page - 1) * PAGE_SIZE)
    stats = await store.stats()
    return ResearchListResponse(
        researches=[_to_response(job) for job in jobs],
        page=page,
        total_count=stats.total,
        total_completed=stats.completed,
        total_running=stats.running,
        avg_duration=format_duration(stats.avg_duration_ms) if stats.avg_duration_ms else "--",
    )


@router.get("/{research_id}", response_model=ResearchDetailResponse)
async def get_research(research_id: str):
    store = get_job_store()
    job = await store.get(research_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Research not found")

    history = []
    if job.status == ResearchStatus.RUNNING:
        history = await store.status_history(research_id, limit=5)
    return ResearchDetailResponse(
        research=_to_response(job),
        status_history=[
            StatusEventResponse(message=event.message, timestamp=event.timestamp)
            for event in history
        ],
    )


@router.get("/{research_id}/download/markdown")
async def download_markdown(research_id: str):
    job = await get_job_store().get(research_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Research not found")
    return Response(
        content=job.result or "",
        media_type="text/markdown; charset=utf-8",
        headers={"Content-Disposition": 'attachment; filename="report.md"'},
    )


@router.post("/{research_id}/rerun", response_model=ResearchStartResponse)
async def rerun_research(research_id: str, background_tasks: BackgroundTasks):
    """Start a fresh job with the same inputs as an existing one."""
    store = get_job_store()
    job = await store.get(research_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Research not found")

    fresh = ResearchJob(
        id=str(uuid.uuid4()),
        title=job.title,
        query=job.query,
        depth=job.depth,
        breadth=job.breadth,
        questions=job.questions,
        initial_learnings=job.initial_learnings,
        web_search=job.web_search,
        index_id=job.index_id,
        status=ResearchStatus.RUNNING,
    )
    return await _start(fresh, background_tasks)


@router.delete("/{research_id}")
async def delete_research(research_id: str):
    store = get_job_store()
    if await store.get(research_id) is None:
        raise HTTPException(status_code=404, detail="Research not found")
    await store.delete(research_id)
    return {"status": "deleted", "id": research_id}
