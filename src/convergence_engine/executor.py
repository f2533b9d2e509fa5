"""Single-turn execution with retry and contract validation."""

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import httpx

from convergence_engine.clients.base import BaseTurnService, TurnRequest
from convergence_engine.clients.openai_client import TRANSIENT_STATUS_CODES
from convergence_engine.exceptions import (
    ContractViolation,
    RetriesExhaustedError,
    TurnServiceError,
)
from convergence_engine.prompts import REPLY_SCHEMA, SYSTEM_FRAMING
from convergence_engine.session import (
    Reply,
    SessionConfig,
    TokenUsage,
    is_token_count,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff for transient failures.

    Attributes:
        max_retries: 첫 시도 이후 추가 재시도 횟수
        retry_delay: 첫 재시도 전 대기 시간 (초)
        backoff_factor: 재시도마다 곱해지는 배수
    """

    max_retries: int = 3
    retry_delay: float = 1.0
    backoff_factor: float = 2.0

    def delay_for(self, retry: int) -> float:
        """Delay before the given retry (0-based)."""
        return self.retry_delay * (self.backoff_factor**retry)


def is_transient(error: BaseException) -> bool:
    """Classify a failure as retryable.

    Args:
        error: Exception raised by the turn service

    Returns:
        True for rate limits, server errors and transport errors
    """
    if isinstance(error, TurnServiceError):
        return error.transient
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code in TRANSIENT_STATUS_CODES
    return isinstance(error, httpx.TransportError)


def validate_reply(payload: Any, usage: dict[str, Any] | None = None) -> Reply:
    """Decode a service payload into a Reply.

    Args:
        payload: JSON string or decoded dict from the service
        usage: Service usage report

    Returns:
        Validated Reply

    Raises:
        ContractViolation: 구조 계약 위반 (보정하지 않음)
    """
    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError as e:
            raise ContractViolation(f"Reply is not valid JSON: {e}", payload) from e

    if not isinstance(payload, dict):
        raise ContractViolation(
            f"Reply must be a JSON object, got {type(payload).__name__}", payload
        )

    missing = [
        key
        for key in ("response", "continue", "missingContext", "confidence")
        if key not in payload
    ]
    if missing:
        raise ContractViolation(f"Reply is missing fields {missing}", payload)

    text = payload["response"]
    if not isinstance(text, str) or not text.strip():
        raise ContractViolation("'response' must be a non-empty string", payload)

    should_continue = payload["continue"]
    if not isinstance(should_continue, bool):
        raise ContractViolation("'continue' must be a boolean", payload)

    gaps = payload["missingContext"]
    if not isinstance(gaps, list) or not all(isinstance(g, str) for g in gaps):
        raise ContractViolation("'missingContext' must be a list of strings", payload)

    confidence = payload["confidence"]
    # bool은 int의 하위 타입이므로 별도 배제
    if isinstance(confidence, bool) or not isinstance(confidence, int | float):
        raise ContractViolation("'confidence' must be a number", payload)
    if (
        isinstance(confidence, float) and not confidence.is_integer()
    ) or not 0 <= confidence <= 100:
        raise ContractViolation(
            f"'confidence' must be an integer in [0, 100], got {confidence}", payload
        )

    if usage is not None:
        if not isinstance(usage, dict):
            raise ContractViolation("Usage report must be an object", usage)
        for key in ("prompt_tokens", "completion_tokens", "total_tokens"):
            value = usage.get(key)
            if value is not None and not is_token_count(value):
                raise ContractViolation(
                    f"Usage field '{key}' must be a non-negative integer, "
                    f"got {value!r}",
                    usage,
                )

    return Reply(
        text=text,
        should_continue=should_continue,
        open_gaps=tuple(gaps),
        confidence=int(confidence),
        tokens_used=TokenUsage.from_usage(usage),
    )


class TurnExecutor:
    """Wrap one call to the language-model service.

    Example:
        executor = TurnExecutor(OpenAIClient())
        reply = await executor.execute_turn(prompt, {"iteration": 1}, config)
    """

    def __init__(
        self,
        service: BaseTurnService,
        retry_policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """Initialize executor.

        Args:
            service: Language-model turn service
            retry_policy: Backoff policy (default: 3 retries from 1s, doubling)
            sleep: Awaitable sleep used between retries
        """
        self.service = service
        self.retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep

    def build_request(
        self, prompt_text: str, context: dict[str, Any], config: SessionConfig
    ) -> TurnRequest:
        serialized = json.dumps(context, indent=2, ensure_ascii=False, default=str)
        return TurnRequest(
            system_framing=SYSTEM_FRAMING,
            user_content=f"{prompt_text}\n\nContext: {serialized}",
            response_contract=REPLY_SCHEMA,
            temperature=config.temperature,
            model=config.model,
        )

    async def execute_turn(
        self, prompt_text: str, context: dict[str, Any], config: SessionConfig
    ) -> Reply:
        """Run one turn.

        Args:
            prompt_text: Turn prompt
            context: Structured context serialized after the prompt
            config: Session configuration (temperature, model)

        Returns:
            Validated Reply with token usage

        Raises:
            ContractViolation: 응답 구조 위반 (재시도 없음)
            TurnServiceError: 재시도 불가 서비스 오류
            RetriesExhaustedError: 일시적 오류가 max_retries 이후에도 지속
        """
        request = self.build_request(prompt_text, context, config)
        policy = self.retry_policy
        attempt = 0

        while True:
            attempt += 1
            try:
                response = await self.service.complete(request)
            except (TurnServiceError, httpx.HTTPError) as e:
                if not is_transient(e):
                    if isinstance(e, TurnServiceError):
                        raise
                    raise TurnServiceError(
                        f"Turn service error: {e}", provider=self.service.provider
                    ) from e
                if attempt > policy.max_retries:
                    logger.error(f"Turn failed after {attempt} attempts: {e}")
                    raise RetriesExhaustedError(
                        f"Transient failure persisted after {attempt} attempts: {e}",
                        attempts=attempt,
                        last_error=e,
                    ) from e
                delay = policy.delay_for(attempt - 1)
                logger.warning(
                    f"Transient failure (attempt {attempt}/{policy.max_retries + 1}), "
                    f"retrying in {delay:.1f}s: {e}"
                )
                await self._sleep(delay)
                continue

            return validate_reply(response.content, response.usage)
