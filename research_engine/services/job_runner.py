from __future__ import annotations

import time
import traceback
from typing import Callable

from research_engine.agents.orchestrator import ResearchOrchestrator
from research_engine.agents.reporter import write_final_report
from research_engine.llm_client import GenerationClient
from research_engine.models.research import ResearchAccumulator, ResearchJob, ResearchStatus
from research_engine.services import logger as log_service
from research_engine.services.job_store import JobStore
from research_engine.services.status import StatusRecorder
from research_engine.services.steps import StepExecutor
from research_engine.tools.evidence import EvidenceSource, IndexEvidenceSource, WebEvidenceSource


class ResearchJobRunner:
    """Runs one research job end to end and persists its terminal state.

    This is the only place where an exception becomes stored job state: the
    job is marked failed with the error and traceback, then the exception is
    re-raised for the hosting layer.
    """

    def __init__(
        self,
        store: JobStore,
        *,
        client: GenerationClient | None = None,
        web_source_factory: Callable[[], EvidenceSource] | None = None,
        index_source_factory: Callable[[str], EvidenceSource] | None = None,
        steps_factory: Callable[[str], StepExecutor] | None = None,
    ):
        self.store = store
        self.status = StatusRecorder(store)
        self.client = client
        self.web_source_factory = web_source_factory or WebEvidenceSource
        self.index_source_factory = index_source_factory or IndexEvidenceSource
        self.steps_factory = steps_factory or StepExecutor

    def _evidence_sources(self, job: ResearchJob) -> list[Callable[[], EvidenceSource]]:
        factories: list[Callable[[], EvidenceSource]] = []
        if job.web_search:
            factories.append(self.web_source_factory)
        if job.index_id:
            index_id = job.index_id
            factories.append(lambda: self.index_source_factory(index_id))
        return factories

    async def run(self, job: ResearchJob) -> str:
        t0 = time.monotonic()
        log_service.log_event(
            event_type="research_started",
            message="Research started",
            job_id=job.id,
            depth=job.depth,
            breadth=job.breadth,
            web_search=job.web_search,
            index_id=job.index_id,
        )
        try:
            await self.status.record(job.id, "starting research")
            prompt = job.full_prompt()
            steps = self.steps_factory(job.id)

            accumulator = ResearchAccumulator(learnings=job.initial_learning_list())
            for factory in self._evidence_sources(job):
                async with factory() as evidence:
                    orchestrator = ResearchOrchestrator(
                        job.id,
                        evidence,
                        self.status,
                        client=self.client,
                        steps=steps,
                    )
                    accumulator = await orchestrator.deep_research(
                        prompt,
                        job.breadth,
                        job.depth,
                        accumulator.learnings,
                        accumulator.visited_sources,
                    )

            await self.status.record(job.id, "generating final report")
            report = await steps.run(
                "report",
                write_final_report,
                prompt,
                accumulator.learnings,
                accumulator.visited_sources,
                client=self.client,
            )
        except Exception as e:
            duration_ms = int((time.monotonic() - t0) * 1000)
            log_service.logger.exception("Research job %s failed", job.id)
            await self.status.record(job.id, f"research failed: {e}")
            await self.store.update_status(
                job.id,
                ResearchStatus.FAILED,
                result=f"Research failed: {e}\n\n{traceback.format_exc()}",
                duration_ms=duration_ms,
            )
            raise

        duration_ms = int((time.monotonic() - t0) * 1000)
        await self.store.update_status(
            job.id,
            ResearchStatus.COMPLETED,
            result=report,
            duration_ms=duration_ms,
        )
        log_service.log_event(
            event_type="research_complete",
            message="Research completed",
            job_id=job.id,
            duration_ms=duration_ms,
            learnings=len(accumulator.learnings),
            sources=len(set(accumulator.visited_sources)),
        )
        return report
