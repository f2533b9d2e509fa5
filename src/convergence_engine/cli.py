"""Command line interface.

    convergence run "Design a rate limiter" --preset architecture
    convergence history --org-id acme
    convergence show <task_id>
    convergence usage acme --days 7
"""

import argparse
import asyncio
import logging
import os
import sys
from dataclasses import replace

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from convergence_engine.engine import converge
from convergence_engine.exceptions import (
    ConfigError,
    ConvergenceCancelled,
    TurnFailure,
)
from convergence_engine.pricing.cost import format_cost
from convergence_engine.prompts import ROLE_PRESETS, apply_preset
from convergence_engine.scoring.evaluator import score
from convergence_engine.session import (
    DEFAULT_MODEL,
    ConvergenceSession,
    IterationSnapshot,
    SessionConfig,
)
from convergence_engine.storage import LoadLevel, SessionStore, UsageTracker

console = Console()


def _print_snapshot(snapshot: IterationSnapshot) -> None:
    line = f"[bold]Iteration {snapshot.iteration}[/bold]  A: {score(snapshot.party_a)}"
    if snapshot.party_b is not None:
        line += f"  B: {score(snapshot.party_b)}"
    if snapshot.converged:
        line += "  [green]converged[/green]"
    console.print(line)


def _print_session(session: ConvergenceSession, task_id: str | None = None) -> None:
    status = "[green]CONVERGED[/green]" if session.converged else "[yellow]EXHAUSTED[/yellow]"
    tokens = session.cumulative_tokens
    console.print(
        Panel(
            f"{status}  score {session.convergence_score}/100  "
            f"trend {session.trend}\n"
            + (
                f"Scores: {' -> '.join(map(str, session.score_history))}\n"
                if session.score_history
                else ""
            )
            + f"Iterations: {session.iterations}/{session.config.max_iterations}\n"
            f"Tokens: {tokens.total_tokens} "
            f"(prompt {tokens.prompt_tokens}, completion {tokens.completion_tokens})\n"
            f"Estimated cost: ${format_cost(session.estimated_cost)}"
            + (f"\nTask: {task_id}" if task_id else ""),
            title="Convergence",
            border_style="blue",
        )
    )
    console.print(Panel(escape(session.final_reply.text), title="Final response"))
    if session.final_reply.open_gaps:
        console.print("[yellow]Open gaps:[/yellow]")
        for gap in session.final_reply.open_gaps:
            console.print(f"  - {escape(gap)}")


async def _run_session(args: argparse.Namespace) -> int:
    config = SessionConfig(
        max_iterations=args.max_iterations,
        temperature=args.temperature,
        model=args.model,
    )
    if args.preset:
        config = apply_preset(config, args.preset)
        if args.temperature_given:
            config = replace(config, temperature=args.temperature)

    cancel_event = asyncio.Event()
    task = asyncio.create_task(
        converge(
            args.prompt,
            config,
            on_iteration=_print_snapshot,
            cancel_event=cancel_event,
        )
    )
    try:
        session = await asyncio.shield(task)
    except asyncio.CancelledError:
        # Ctrl-C: 루프에 협력적 취소 신호
        cancel_event.set()
        session = await task

    task_id = None
    if not args.no_save:
        task_id = SessionStore().save(None, session, org_id=args.org_id)
        if args.org_id:
            UsageTracker().record(
                args.org_id,
                session.cumulative_tokens,
                session.estimated_cost,
                api_calls=len(session.turns),
            )

    _print_session(session, task_id)
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    try:
        return asyncio.run(_run_session(args))
    except ConfigError as e:
        console.print(
            f"[red]Invalid configuration ({e.field}): {escape(str(e))}[/red]"
        )
    except TurnFailure as e:
        console.print(
            f"[red]Party {e.party} failed at iteration {e.iteration}: "
            f"{escape(str(e.cause))}[/red]"
        )
        if e.tokens is not None:
            console.print(f"Tokens spent before failure: {e.tokens.total_tokens}")
    except (ConvergenceCancelled, KeyboardInterrupt) as e:
        console.print(f"[yellow]Cancelled: {escape(str(e))}[/yellow]")
    return 1


def cmd_history(args: argparse.Namespace) -> int:
    entries = SessionStore().history(org_id=args.org_id, limit=args.limit)
    if not entries:
        console.print("No stored sessions.")
        return 0

    table = Table(title="Convergence history")
    table.add_column("Task", no_wrap=True)
    table.add_column("Created")
    table.add_column("Converged")
    table.add_column("Score", justify="right")
    table.add_column("Iter", justify="right")
    table.add_column("Tokens", justify="right")
    table.add_column("Prompt")
    for entry in entries:
        table.add_row(
            entry["task_id"][:8],
            entry["created_at"][:19],
            "yes" if entry["converged"] else "no",
            str(entry["convergence_score"]),
            str(entry["iterations"]),
            str(entry["tokens_total"]),
            escape(entry["prompt"][:60]),
        )
    console.print(table)
    return 0


def cmd_show(args: argparse.Namespace) -> int:
    level = LoadLevel.FULL if args.full else LoadLevel.CONCLUSION
    report = SessionStore().load_report(args.task_id, level)
    if not report:
        console.print(f"[red]Unknown task: {args.task_id}[/red]")
        return 1

    console.print(
        Panel(
            f"Status: {report.get('status', '?')}  Score: {report.get('score', '?')}\n"
            f"Created: {report.get('timestamp', '?')}\n\n"
            f"{escape(report.get('summary', ''))}",
            title=f"Task {args.task_id}",
            border_style="blue",
        )
    )
    if "conclusion" in report:
        console.print(Panel(escape(report["conclusion"]), title="Final response"))
    if "full" in report:
        console.print(escape(report["full"]))
    return 0


def cmd_usage(args: argparse.Namespace) -> int:
    stats = UsageTracker().stats(args.org_id, days=args.days)
    table = Table(title=f"Usage for {args.org_id} (last {args.days} days)")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Convergences", str(stats["total_convergences"]))
    table.add_row("Tokens", str(stats["total_tokens"]))
    table.add_row("API calls", str(stats["total_api_calls"]))
    table.add_row("Estimated cost", f"${format_cost(stats['total_cost'])}")
    table.add_row("Avg tokens / convergence", str(stats["avg_tokens_per_convergence"]))
    console.print(table)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="convergence", description="Two-party convergence deliberation"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="run a convergence session")
    run.add_argument("prompt")
    run.add_argument("--preset", choices=sorted(ROLE_PRESETS))
    run.add_argument("--max-iterations", type=int, default=8)
    run.add_argument("--temperature", type=float, default=None)
    run.add_argument(
        "--model", default=os.environ.get("CONVERGENCE_MODEL", DEFAULT_MODEL)
    )
    run.add_argument("--org-id", default=os.environ.get("CONVERGENCE_ORG_ID"))
    run.add_argument("--no-save", action="store_true")
    run.set_defaults(func=cmd_run)

    history = sub.add_parser("history", help="list stored sessions")
    history.add_argument("--org-id")
    history.add_argument("--limit", type=int, default=20)
    history.set_defaults(func=cmd_history)

    show = sub.add_parser("show", help="show a stored session")
    show.add_argument("task_id")
    show.add_argument("--full", action="store_true", help="include the conversation")
    show.set_defaults(func=cmd_show)

    usage = sub.add_parser("usage", help="usage statistics of an organization")
    usage.add_argument("org_id")
    usage.add_argument("--days", type=int, default=30)
    usage.set_defaults(func=cmd_usage)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if args.command == "run":
        args.temperature_given = args.temperature is not None
        if args.temperature is None:
            args.temperature = 0.3
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
