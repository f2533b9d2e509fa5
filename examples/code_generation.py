"""코드 생성 프리셋 예제 (Senior Software Engineer / Code Reviewer).

    OPENAI_API_KEY=... python examples/code_generation.py
"""

import asyncio
import os

from rich.console import Console

from convergence_engine import IterationSnapshot, SessionConfig, converge_on_code
from convergence_engine.scoring.evaluator import score

console = Console()


def show_progress(snapshot: IterationSnapshot) -> None:
    replies = [snapshot.party_a, snapshot.party_b]
    best = max(score(reply) for reply in replies if reply is not None)
    console.print(f"Iteration {snapshot.iteration}: Score {best}%")


async def main():
    session = await converge_on_code(
        "Write a Python function to implement quicksort with proper documentation, "
        "error handling, and type hints. Include unit tests.",
        SessionConfig(max_iterations=6),
        on_iteration=show_progress,
    )

    console.rule("GENERATED CODE")
    if session.converged:
        console.print("[green]Code review passed - production ready![/green]\n")
    else:
        console.print("[yellow]Code may need additional review[/yellow]\n")
    console.print(session.final_reply.text, markup=False)

    console.rule("CODE REVIEW SUMMARY")
    console.print(f"Iterations: {session.iterations}")
    console.print(f"Score history: {' -> '.join(map(str, session.score_history))}")
    for gap in session.final_reply.open_gaps:
        console.print(f"  - {gap}", markup=False)


if __name__ == "__main__":
    if not os.environ.get("OPENAI_API_KEY"):
        raise SystemExit("OPENAI_API_KEY is not set")
    asyncio.run(main())
