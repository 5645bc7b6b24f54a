"""Deep Research Engine

Simple CLI for running research jobs and filling retrieval indexes.
"""

import argparse
import asyncio
import sys
import uuid
from pathlib import Path

from research_engine.agents.clarifier import generate_clarifying_questions
from research_engine.config import settings
from research_engine.models.research import ClarifyingAnswer, ResearchJob, ResearchStatus
from research_engine.services import database as db
from research_engine.services.job_runner import ResearchJobRunner
from research_engine.services.job_store import get_job_store
from research_engine.services.logger import configure_logging
from research_engine.services.retrieval_index import get_retrieval_index


async def ask_questions(query: str) -> tuple[ClarifyingAnswer, ...]:
    """Ask clarifying questions on the terminal and collect answers."""
    questions = await generate_clarifying_questions(query)
    answers: list[ClarifyingAnswer] = []
    if questions:
        print("\n[?] To focus the research, please answer (blank to skip):")
    for question in questions:
        answer = input(f"  {question}\n  > ").strip()
        answers.append(ClarifyingAnswer(question=question, answer=answer))
    return tuple(answers)


async def run_research(args: argparse.Namespace) -> int:
    print(f"Research query: {args.query}")
    print("-" * 50)

    if db.db_available():
        await db.apply_migrations()

    initial_learnings = ""
    if args.learnings_file:
        initial_learnings = Path(args.learnings_file).read_text(encoding="utf-8")

    questions: tuple[ClarifyingAnswer, ...] = ()
    if args.ask:
        questions = await ask_questions(args.query)

    job = ResearchJob(
        id=str(uuid.uuid4()),
        query=args.query,
        depth=args.depth,
        breadth=args.breadth,
        questions=questions,
        initial_learnings=initial_learnings,
        web_search=not args.no_web,
        index_id=args.index,
        status=ResearchStatus.RUNNING,
    )
    store = get_job_store()
    await store.create(job)

    print(f"\n[*] Job {job.id} (depth={job.depth}, breadth={job.breadth})")
    try:
        report = await ResearchJobRunner(store).run(job)
    except Exception as e:
        print(f"\n[!] Error: {e}")
        return 1

    finished = await store.get(job.id)
    print("\n[*] Research Complete!")
    if finished and finished.duration_ms is not None:
        print(f"   Runtime: {finished.duration_ms}ms")
    if args.output:
        Path(args.output).write_text(report, encoding="utf-8")
        print(f"   Report written to {args.output}")
        return 0

    print(f"\n{'='*50}")
    print("REPORT:")
    print(f"{'='*50}")
    print(report)
    return 0


async def run_command(args: argparse.Namespace) -> int:
    try:
        if args.command == "research":
            return await run_research(args)
        return await run_index(args)
    finally:
        await db.close_pool()


async def run_index(args: argparse.Namespace) -> int:
    documents: list[tuple[str, str]] = []
    for raw_path in args.files:
        path = Path(raw_path)
        documents.append((path.name, path.read_text(encoding="utf-8", errors="ignore")))

    result = await get_retrieval_index().add_documents(args.index_id, documents)
    print(f"[+] Indexed {result.documents} documents ({result.chunks} chunks) into '{args.index_id}'")
    return 0


def main():
    parser = argparse.ArgumentParser(description="Deep Research Engine")
    subparsers = parser.add_subparsers(dest="command", required=True)

    research_parser = subparsers.add_parser("research", help="Run a research job")
    research_parser.add_argument("--query", "-q", required=True, help="Research query")
    research_parser.add_argument("--depth", "-d", type=int, default=settings.default_depth)
    research_parser.add_argument("--breadth", "-b", type=int, default=settings.default_breadth)
    research_parser.add_argument("--index", help="Retrieval index id to research against")
    research_parser.add_argument("--no-web", action="store_true", help="Disable web evidence")
    research_parser.add_argument("--learnings-file", help="File with initial learnings, one per line")
    research_parser.add_argument("--ask", action="store_true", help="Answer clarifying questions first")
    research_parser.add_argument("--output", "-o", help="Write the report to this file")

    index_parser = subparsers.add_parser("index", help="Add documents to a retrieval index")
    index_parser.add_argument("--index-id", required=True, help="Retrieval index id")
    index_parser.add_argument("files", nargs="+", help="Text or markdown files to index")

    args = parser.parse_args()
    configure_logging()

    if args.command == "research":
        if args.no_web and not args.index:
            parser.error("--no-web requires --index")
        if args.depth < 0 or args.breadth < 0:
            parser.error("--depth and --breadth must be non-negative")
    sys.exit(asyncio.run(run_command(args)))


if __name__ == "__main__":
    main()
