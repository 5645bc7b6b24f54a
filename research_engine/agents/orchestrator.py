from __future__ import annotations

import math

from research_engine.agents.extractor import process_serp_result
from research_engine.agents.planner import generate_serp_queries
from research_engine.config import settings
from research_engine.llm_client import GenerationClient
from research_engine.models.research import PlannedQuery, ResearchAccumulator
from research_engine.services.logger import logger
from research_engine.services.status import StatusRecorder
from research_engine.services.steps import StepExecutor
from research_engine.tools.evidence import EvidenceSource


def next_breadth(breadth: int) -> int:
    return math.ceil(breadth / 2)


def continuation_prompt(planned: PlannedQuery, follow_up_questions: list[str]) -> str:
    directions = "".join(f"\n{question}" for question in follow_up_questions)
    return (
        f"Previous research goal: {planned.research_goal}\n"
        f"Follow-up research directions:{directions}"
    )


class ResearchOrchestrator:
    """Recursive plan -> search -> extract loop over one evidence source.

    Each level plans up to `breadth` queries and works through them one at a
    time. Every query that yields documents contributes learnings and sources
    to a single accumulator shared with all descendant levels, and spawns a
    child level with half the breadth (rounded up) and one less depth.

    Error policy:
      - planning and extraction failures propagate and abort the run
      - a failed evidence lookup is recorded as a status event and that
        query is skipped
    """

    def __init__(
        self,
        job_id: str,
        evidence: EvidenceSource,
        status: StatusRecorder,
        *,
        client: GenerationClient | None = None,
        steps: StepExecutor | None = None,
        result_limit: int | None = None,
    ):
        self.job_id = job_id
        self.evidence = evidence
        self.status = status
        self.client = client
        self.steps = steps or StepExecutor(job_id)
        self.result_limit = max(int(result_limit or settings.search_result_limit), 1)

    async def deep_research(
        self,
        query: str,
        breadth: int,
        depth: int,
        learnings: list[str] | None = None,
        visited_sources: list[str] | None = None,
    ) -> ResearchAccumulator:
        """Research `query` and return everything gathered, seeded with the inputs."""
        accumulator = ResearchAccumulator(
            learnings=list(learnings or []),
            visited_sources=list(visited_sources or []),
        )
        await self._research_level(query, breadth, depth, accumulator)
        return accumulator

    async def _research_level(
        self,
        query: str,
        breadth: int,
        depth: int,
        accumulator: ResearchAccumulator,
    ) -> None:
        if breadth < 0 or depth < 0:
            raise ValueError(f"breadth and depth must be non-negative, got {breadth}/{depth}")
        if depth == 0 or breadth == 0:
            return

        planned_queries = await self.steps.run(
            "plan",
            generate_serp_queries,
            query,
            learnings=list(accumulator.learnings) or None,
            num_queries=breadth,
            client=self.client,
        )
        logger.info(
            "Planned %d queries (breadth=%d, depth=%d) for job %s",
            len(planned_queries),
            breadth,
            depth,
            self.job_id,
        )

        for planned in planned_queries:
            await self.status.record(self.job_id, f"executing search for query: {planned.query}")
            try:
                documents = await self.steps.run(
                    "search",
                    self.evidence.search,
                    planned.query,
                    self.result_limit,
                )
            except Exception as e:
                logger.warning("Evidence lookup failed for %r: %s", planned.query, e)
                await self.status.record(
                    self.job_id,
                    f"error searching for query: {planned.query}: {e}",
                )
                continue

            if not documents:
                logger.info("No documents for %r, skipping extraction", planned.query)
                continue

            new_breadth = next_breadth(breadth)
            new_depth = depth - 1

            batch = await self.steps.run(
                "extract",
                process_serp_result,
                planned.query,
                documents,
                num_follow_up_questions=new_breadth,
                client=self.client,
            )
            accumulator.add_batch(batch, documents)

            if new_depth > 0:
                await self._research_level(
                    continuation_prompt(planned, batch.follow_up_questions),
                    new_breadth,
                    new_depth,
                    accumulator,
                )
