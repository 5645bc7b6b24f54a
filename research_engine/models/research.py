from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import IntEnum


class ResearchStatus(IntEnum):
    PENDING = 0
    RUNNING = 1
    COMPLETED = 2
    FAILED = 3


@dataclass(frozen=True, slots=True)
class ClarifyingAnswer:
    question: str
    answer: str


@dataclass(frozen=True, slots=True)
class ResearchJob:
    """Snapshot of a research job as handed to the engine.

    The engine reads query, questions, budgets and initial learnings from it
    and reports progress through the status sink; it never mutates the job.
    """

    id: str
    query: str
    depth: int
    breadth: int
    questions: tuple[ClarifyingAnswer, ...] = ()
    initial_learnings: str = ""
    web_search: bool = True
    index_id: str | None = None
    status: ResearchStatus = ResearchStatus.PENDING
    result: str | None = None
    duration_ms: int | None = None
    title: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def full_prompt(self) -> str:
        qa = "\n".join(f"Q: {item.question}\nA: {item.answer}" for item in self.questions)
        return f"Initial Query: {self.query}\nFollowup Q&A:\n{qa}"

    def initial_learning_list(self) -> list[str]:
        return [line.strip() for line in self.initial_learnings.splitlines() if line.strip()]


@dataclass(slots=True)
class PlannedQuery:
    query: str
    research_goal: str


@dataclass(slots=True)
class EvidenceDocument:
    source: str
    content: str
    title: str = ""


@dataclass(slots=True)
class LearningBatch:
    learnings: list[str] = field(default_factory=list)
    follow_up_questions: list[str] = field(default_factory=list)


@dataclass(slots=True)
class ResearchAccumulator:
    """Learnings and visited sources gathered over one top-level research pass.

    Both lists keep encounter order and allow duplicates; sources are only
    deduplicated when the report is written.
    """

    learnings: list[str] = field(default_factory=list)
    visited_sources: list[str] = field(default_factory=list)

    def add_batch(self, batch: LearningBatch, documents: list[EvidenceDocument]) -> None:
        self.learnings.extend(batch.learnings)
        self.visited_sources.extend(doc.source for doc in documents if doc.source)

    def extend(self, other: ResearchAccumulator) -> None:
        self.learnings.extend(other.learnings)
        self.visited_sources.extend(other.visited_sources)


@dataclass(frozen=True, slots=True)
class StatusEvent:
    job_id: str
    message: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
