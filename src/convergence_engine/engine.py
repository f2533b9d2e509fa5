"""Convergence loop: two-party recursive deliberation.

Party A(분석)와 Party B(비평)가 번갈아 응답하며,
어느 한쪽이 continue=false 이고 missingContext=[] 인 응답을 내면 수렴(singularity).
max_iterations 안에 수렴하지 못하면 마지막 반복의 A/B 중 높은 점수 응답을 반환 (동점이면 B).

Note:
    코어는 콘솔 출력을 하지 않음. 진행 상황은 on_iteration 옵저버와
    주입된 logger로만 전달.
"""

import asyncio
import contextlib
import inspect
import logging
import time
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

from convergence_engine.clients.base import BaseTurnService
from convergence_engine.clients.openai_client import OpenAIClient
from convergence_engine.exceptions import (
    ConfigError,
    ConvergenceCancelled,
    TurnError,
    TurnFailure,
)
from convergence_engine.executor import TurnExecutor
from convergence_engine.pricing.cost import CostAccountant
from convergence_engine.prompts import (
    apply_preset,
    build_critique_prompt,
    build_refinement_prompt,
)
from convergence_engine.scoring.evaluator import ResponseEvaluator
from convergence_engine.scoring.tracker import ConvergenceTracker
from convergence_engine.session import (
    ConvergenceSession,
    IterationSnapshot,
    Party,
    Reply,
    SessionConfig,
    TokenUsage,
    Turn,
)

IterationObserver = Callable[[IterationSnapshot], Awaitable[Any] | Any]


class _RunState:
    """Mutable accumulation owned by a single run() call."""

    def __init__(self) -> None:
        self.turns: list[Turn] = []
        self.tokens = TokenUsage()
        self.tracker = ConvergenceTracker()

    @property
    def party_a_turns(self) -> int:
        return sum(1 for turn in self.turns if turn.party is Party.A)


class ConvergenceLoop:
    """Orchestrate the two-party convergence dialogue.

    Example:
        loop = ConvergenceLoop(TurnExecutor(OpenAIClient()))
        session = await loop.run(
            "Design a rate limiter",
            SessionConfig(max_iterations=4),
            on_iteration=lambda snap: print(snap.iteration),
        )
    """

    def __init__(
        self,
        executor: TurnExecutor,
        evaluator: ResponseEvaluator | None = None,
        accountant: CostAccountant | None = None,
        logger: logging.Logger | None = None,
    ):
        """Initialize convergence loop.

        Args:
            executor: Turn executor wrapping the model service
            evaluator: Reply scorer (default: fixed rubric)
            accountant: Cost estimator (default pricing table if omitted)
            logger: Logger for progress reporting (default: module logger)
        """
        self.executor = executor
        self.evaluator = evaluator or ResponseEvaluator()
        self.accountant = accountant or CostAccountant()
        self.logger = logger or logging.getLogger(__name__)

    def validate(self, query: Any, config: SessionConfig) -> None:
        """Check run() preconditions.

        Raises:
            ConfigError: query 또는 config 필드가 유효하지 않을 때
        """
        if not isinstance(query, str) or not query.strip():
            raise ConfigError("query must be a non-empty string", field="query")

        max_iterations = config.max_iterations
        if (
            isinstance(max_iterations, bool)
            or not isinstance(max_iterations, int)
            or max_iterations < 1
        ):
            raise ConfigError(
                f"max_iterations must be an integer >= 1, got {max_iterations!r}",
                field="max_iterations",
            )

        temperature = config.temperature
        if (
            isinstance(temperature, bool)
            or not isinstance(temperature, int | float)
            or not 0 <= temperature <= 2
        ):
            raise ConfigError(
                f"temperature must be between 0 and 2, got {temperature!r}",
                field="temperature",
            )

        if not isinstance(config.model, str) or not config.model:
            raise ConfigError("model must be a non-empty string", field="model")

        for name in ("party_a_role", "party_b_role"):
            if not isinstance(getattr(config, name), str):
                raise ConfigError(f"{name} must be a string", field=name)

    async def run(
        self,
        query: str,
        config: SessionConfig | None = None,
        on_iteration: IterationObserver | None = None,
        cancel_event: asyncio.Event | None = None,
        deadline: float | None = None,
    ) -> ConvergenceSession:
        """Run one convergence session.

        Args:
            query: Question or problem to converge on
            config: Session configuration (defaults if omitted)
            on_iteration: Observer called once per completed iteration
            cancel_event: Setting this event cancels the run cooperatively
            deadline: Time budget in seconds for the whole run

        Returns:
            Completed ConvergenceSession

        Raises:
            ConfigError: 입력 검증 실패 (외부 호출 없음)
            TurnFailure: 턴 실패로 전체 실행 중단
            ConvergenceCancelled: 취소 신호 또는 데드라인 초과
        """
        config = config or SessionConfig()
        self.validate(query, config)

        started_at = datetime.now()
        start = time.monotonic()
        expires_at = None if deadline is None else start + deadline

        state = _RunState()
        context: dict[str, Any] = {"originalQuery": query, "iteration": 0}
        party_b_reply: Reply | None = None

        self.logger.info(
            f"Starting convergence (max {config.max_iterations} iterations, "
            f"model {config.model})"
        )

        for iteration in range(1, config.max_iterations + 1):
            self._check_cancelled(cancel_event, expires_at, iteration, state)
            context["iteration"] = iteration

            # Party A: 첫 반복은 원본 query, 이후는 B의 gap을 반영한 정제 프롬프트
            if party_b_reply is None:
                prompt_a = query
            else:
                prompt_a = build_refinement_prompt(party_b_reply)

            reply_a = await self._take_turn(
                Party.A, iteration, prompt_a, context, config, state,
                cancel_event, expires_at,
            )
            if self.evaluator.has_converged(reply_a):
                state.tracker.add_score(state.turns[-1].score)
                self.logger.info(f"Singularity reached by Party A (iteration {iteration})")
                await self._notify(
                    on_iteration, IterationSnapshot(iteration, reply_a, None, True)
                )
                return self._finish(query, config, state, reply_a, True, started_at, start)

            context["agentAResponse"] = _context_entry(reply_a)

            # Party B: A의 응답을 그대로 포함한 비평 프롬프트
            reply_b = await self._take_turn(
                Party.B, iteration, build_critique_prompt(reply_a), context, config,
                state, cancel_event, expires_at,
            )
            if self.evaluator.has_converged(reply_b):
                state.tracker.add_score(state.turns[-1].score)
                self.logger.info(f"Singularity reached by Party B (iteration {iteration})")
                await self._notify(
                    on_iteration, IterationSnapshot(iteration, reply_a, reply_b, True)
                )
                return self._finish(query, config, state, reply_b, True, started_at, start)

            context["agentBResponse"] = _context_entry(reply_b)
            party_b_reply = reply_b

            state.tracker.add_score(max(turn.score for turn in state.turns[-2:]))
            await self._notify(
                on_iteration, IterationSnapshot(iteration, reply_a, reply_b, False)
            )

        best = _final_iteration_best(state.turns)
        self.logger.info(
            f"Max iterations reached. Final convergence: {best.score}% "
            f"(Party {best.party.value}, iteration {best.iteration})"
        )
        return self._finish(query, config, state, best.reply, False, started_at, start)

    async def _take_turn(
        self,
        party: Party,
        iteration: int,
        prompt: str,
        context: dict[str, Any],
        config: SessionConfig,
        state: _RunState,
        cancel_event: asyncio.Event | None,
        expires_at: float | None,
    ) -> Reply:
        """Execute one party's turn and record it."""
        self._check_cancelled(cancel_event, expires_at, iteration, state)

        try:
            reply = await self._await_turn(
                self.executor.execute_turn(prompt, dict(context), config),
                cancel_event,
                expires_at,
                iteration,
                state,
            )
        except TurnError as e:
            self.logger.error(
                f"Party {party.value} turn failed (iteration {iteration}): {e}"
            )
            raise TurnFailure(
                f"Party {party.value} turn failed at iteration {iteration}: {e}",
                party=party.value,
                iteration=iteration,
                cause=e,
                completed_turns=tuple(state.turns),
                tokens=state.tokens,
            ) from e

        turn_score = self.evaluator.score(reply)
        state.turns.append(
            Turn(
                iteration=iteration,
                party=party,
                party_role=config.role_for(party),
                reply=reply,
                score=turn_score,
            )
        )
        state.tokens = state.tokens + reply.tokens_used

        self.logger.info(
            f"Party {party.value} - iteration {iteration}: score {turn_score}%, "
            f"continue={reply.should_continue}, gaps={len(reply.open_gaps)}"
        )
        return reply

    async def _await_turn(
        self,
        turn: Awaitable[Reply],
        cancel_event: asyncio.Event | None,
        expires_at: float | None,
        iteration: int,
        state: _RunState,
    ) -> Reply:
        """Await a turn, abandoning it on cancellation or deadline."""
        turn_task = asyncio.ensure_future(turn)
        waiters: set[asyncio.Future] = {turn_task}
        cancel_task = None
        if cancel_event is not None:
            cancel_task = asyncio.ensure_future(cancel_event.wait())
            waiters.add(cancel_task)

        timeout = None
        if expires_at is not None:
            timeout = max(0.0, expires_at - time.monotonic())

        try:
            done, _ = await asyncio.wait(
                waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            if cancel_task is not None:
                cancel_task.cancel()
            if not turn_task.done():
                turn_task.cancel()

        if turn_task not in done:
            # 진행 중인 외부 호출은 버리고 세션 상태는 건드리지 않음
            with contextlib.suppress(asyncio.CancelledError, TurnError):
                await turn_task
            cancelled = cancel_event is not None and cancel_event.is_set()
            reason = "cancelled" if cancelled else "deadline"
            raise self._cancelled(reason, iteration, state)

        return turn_task.result()

    def _check_cancelled(
        self,
        cancel_event: asyncio.Event | None,
        expires_at: float | None,
        iteration: int,
        state: _RunState,
    ) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise self._cancelled("cancelled", iteration, state)
        if expires_at is not None and time.monotonic() >= expires_at:
            raise self._cancelled("deadline", iteration, state)

    def _cancelled(
        self, reason: str, iteration: int, state: _RunState
    ) -> ConvergenceCancelled:
        self.logger.warning(f"Convergence {reason} at iteration {iteration}")
        return ConvergenceCancelled(
            f"Convergence {reason} at iteration {iteration}",
            reason=reason,
            iteration=iteration,
            completed_turns=tuple(state.turns),
            tokens=state.tokens,
        )

    async def _notify(
        self, observer: IterationObserver | None, snapshot: IterationSnapshot
    ) -> None:
        """Invoke the observer; its failures never abort the loop."""
        if observer is None:
            return
        try:
            result = observer(snapshot)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            self.logger.warning(
                f"on_iteration observer failed (iteration {snapshot.iteration}): {e}",
                exc_info=True,
            )

    def _finish(
        self,
        query: str,
        config: SessionConfig,
        state: _RunState,
        final_reply: Reply,
        converged: bool,
        started_at: datetime,
        start: float,
    ) -> ConvergenceSession:
        tokens = state.tokens
        return ConvergenceSession(
            original_query=query,
            config=config,
            turns=tuple(state.turns),
            cumulative_tokens=tokens,
            converged=converged,
            final_reply=final_reply,
            convergence_score=100 if converged else self.evaluator.score(final_reply),
            iterations=state.party_a_turns,
            estimated_cost=self.accountant.estimate_cost(
                tokens.prompt_tokens, tokens.completion_tokens, config.model
            ),
            trend=state.tracker.get_trend(),
            score_history=state.tracker.scores,
            started_at=started_at,
            duration_ms=int((time.monotonic() - start) * 1000),
        )


def _context_entry(reply: Reply) -> dict[str, Any]:
    return {
        "response": reply.text,
        "continue": reply.should_continue,
        "missingContext": list(reply.open_gaps),
        "confidence": reply.confidence,
    }


def _final_iteration_best(turns: list[Turn]) -> Turn:
    """Higher-scoring turn of the last iteration, ties go to Party B."""
    party_a, party_b = turns[-2], turns[-1]
    return party_b if party_b.score >= party_a.score else party_a


async def converge(
    query: str,
    config: SessionConfig | None = None,
    service: BaseTurnService | None = None,
    on_iteration: IterationObserver | None = None,
    **run_kwargs: Any,
) -> ConvergenceSession:
    """Run a session with a fresh loop (OpenAI client by default).

    Args:
        query: Question or problem to converge on
        config: Session configuration
        service: Model service (default: OpenAIClient for config.model)
        on_iteration: Per-iteration observer
        **run_kwargs: cancel_event / deadline forwarded to run()
    """
    config = config or SessionConfig()
    service = service or OpenAIClient(model_name=config.model)
    loop = ConvergenceLoop(TurnExecutor(service))
    return await loop.run(query, config, on_iteration=on_iteration, **run_kwargs)


async def converge_on_code(
    code_request: str, config: SessionConfig | None = None, **kwargs: Any
) -> ConvergenceSession:
    """Converge with software engineer / code reviewer roles (temperature 0.2)."""
    return await converge(code_request, apply_preset(config, "code"), **kwargs)


async def converge_on_architecture(
    question: str, config: SessionConfig | None = None, **kwargs: Any
) -> ConvergenceSession:
    """Converge with solutions architect / technical critic roles (temperature 0.4)."""
    return await converge(question, apply_preset(config, "architecture"), **kwargs)
