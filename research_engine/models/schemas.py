from __future__ import annotations

from datetime import datetime
from functools import lru_cache

from pydantic import BaseModel, Field, create_model


# --- Structured generation ---


class SerpQuery(BaseModel):
    query: str = Field(description="The SERP query")
    research_goal: str = Field(
        description="The research goal and directions for this query"
    )


class SerpQueryPlan(BaseModel):
    queries: list[SerpQuery] = Field(default_factory=list)


class SerpExtraction(BaseModel):
    learnings: list[str] = Field(default_factory=list)
    follow_up_questions: list[str] = Field(default_factory=list)


def _bounded_list(item_type, max_items: int, description: str):
    return (
        list[item_type],
        Field(
            default_factory=list,
            description=f"{description} (max {max_items})",
            json_schema_extra={"maxItems": max_items},
        ),
    )


@lru_cache(maxsize=64)
def bounded_query_plan(num_queries: int) -> type[SerpQueryPlan]:
    """`SerpQueryPlan` whose JSON schema caps the number of queries.

    The cap is advisory to the model; callers still truncate the result.
    """
    return create_model(
        "SerpQueryPlan",
        __base__=SerpQueryPlan,
        queries=_bounded_list(SerpQuery, num_queries, "List of SERP queries"),
    )


@lru_cache(maxsize=64)
def bounded_extraction(num_learnings: int, num_follow_up_questions: int) -> type[SerpExtraction]:
    return create_model(
        "SerpExtraction",
        __base__=SerpExtraction,
        learnings=_bounded_list(str, num_learnings, "List of learnings"),
        follow_up_questions=_bounded_list(
            str,
            num_follow_up_questions,
            "List of follow-up questions to research the topic further",
        ),
    )


class ClarifyingQuestions(BaseModel):
    questions: list[str] = Field(
        default_factory=list,
        description="Follow up questions to clarify the research direction, max of 5",
    )


# --- Requests ---


class QuestionAnswer(BaseModel):
    question: str
    answer: str = ""


class QuestionsRequest(BaseModel):
    query: str


class ResearchCreateRequest(BaseModel):
    query: str
    depth: int | None = Field(default=None, ge=0)
    breadth: int | None = Field(default=None, ge=0)
    questions: list[QuestionAnswer] = Field(default_factory=list)
    initial_learnings: str = ""
    web_search: bool = True
    index_id: str | None = None


# --- Responses ---


class QuestionsResponse(BaseModel):
    questions: list[str]


class ResearchStartResponse(BaseModel):
    id: str


class ResearchResponse(BaseModel):
    id: str
    title: str | None
    query: str
    depth: int
    breadth: int
    questions: list[QuestionAnswer]
    web_search: bool
    index_id: str | None
    status: str
    result: str | None
    duration_ms: int | None
    created_at: datetime


class StatusEventResponse(BaseModel):
    message: str
    timestamp: datetime


class ResearchDetailResponse(BaseModel):
    research: ResearchResponse
    status_history: list[StatusEventResponse]


class ResearchListResponse(BaseModel):
    researches: list[ResearchResponse]
    page: int
    total_count: int
    total_completed: int
    total_running: int
    avg_duration: str
