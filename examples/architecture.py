"""아키텍처 설계 프리셋 예제 (Solutions Architect / Technical Critic).

    OPENAI_API_KEY=... python examples/architecture.py
"""

import asyncio
import os

from rich.console import Console
from rich.panel import Panel

from convergence_engine import Party, SessionConfig, converge_on_architecture
from convergence_engine.pricing.cost import format_cost

console = Console()


async def main():
    session = await converge_on_architecture(
        "Design a distributed caching system that can handle 100K requests/second "
        "with sub-10ms latency. Include considerations for consistency, availability, "
        "partition tolerance, and failure recovery.",
        SessionConfig(max_iterations=8),
    )

    status = "[green]Complete[/green]" if session.converged else "[yellow]In Progress[/yellow]"
    console.print(
        Panel(
            f"Status: {status}\n"
            f"Iterations: {session.iterations}\n"
            f"Convergence Score: {session.convergence_score}%\n"
            f"Design Confidence: {session.final_reply.confidence}%\n"
            f"Estimated cost: ${format_cost(session.estimated_cost)}",
            title="ARCHITECTURE DESIGN",
        )
    )
    console.print(session.final_reply.text, markup=False)

    # 설계 변천 과정
    console.rule("DESIGN EVOLUTION")
    for turn in session.turns:
        label = "Architect" if turn.party is Party.A else "Critic"
        gaps = ", ".join(turn.reply.open_gaps) or "none"
        console.print(
            f"[{label} - Iteration {turn.iteration}] score {turn.score}, gaps: {gaps}",
            markup=False,
        )


if __name__ == "__main__":
    if not os.environ.get("OPENAI_API_KEY"):
        raise SystemExit("OPENAI_API_KEY is not set")
    asyncio.run(main())
