"""기본 수렴 예제.

    OPENAI_API_KEY=... python examples/basic_convergence.py
"""

import asyncio
import os

from rich.console import Console

from convergence_engine import SessionConfig, converge

console = Console()


async def main():
    """이진 탐색 트리 설명을 수렴시킨 뒤 대화 기록 출력."""
    session = await converge(
        "Explain how a binary search tree works, including insertion, "
        "deletion, and search operations",
        SessionConfig(max_iterations=5, temperature=0.3),
    )

    console.rule("FINAL RESULT")
    console.print(f"Converged: {session.converged}")
    console.print(f"Iterations: {session.iterations}")
    console.print(f"Score: {session.convergence_score}%")
    console.print(f"\nFinal Response:\n{session.final_reply.text}", markup=False)

    console.rule("CONVERSATION HISTORY")
    for turn in session.turns:
        reply = turn.reply
        console.print(f"\n[Party {turn.party.value} - Iteration {turn.iteration}]", markup=False)
        console.print(f"Continue: {reply.should_continue}")
        console.print(f"Missing: [{', '.join(reply.open_gaps)}]", markup=False)
        console.print(f"Confidence: {reply.confidence}%")


if __name__ == "__main__":
    if not os.environ.get("OPENAI_API_KEY"):
        raise SystemExit("OPENAI_API_KEY is not set")
    asyncio.run(main())
