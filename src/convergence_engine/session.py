"""Session data model.

Reply / Turn / ConvergenceSession 데이터 클래스.
ConvergenceSession은 run()이 끝난 뒤 호출자에게 넘겨지며 이후 변경되지 않음.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

DEFAULT_MODEL = "gpt-4o-2024-08-06"
DEFAULT_PARTY_A_ROLE = "Expert Researcher — comprehensive analysis"
DEFAULT_PARTY_B_ROLE = "Critical Reviewer — finds gaps"


def is_token_count(value: Any) -> bool:
    """음이 아닌 정수 (정수값 float 포함) 여부"""
    if isinstance(value, bool) or not isinstance(value, int | float):
        return False
    if isinstance(value, float) and not value.is_integer():
        return False
    return value >= 0


def _token_count(value: Any) -> int:
    return int(value) if is_token_count(value) else 0


class Party(Enum):
    """Dialogue parties."""

    A = "A"
    B = "B"


@dataclass(frozen=True)
class TokenUsage:
    """Token counts reported by the model service."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def from_usage(cls, usage: dict[str, Any] | None) -> "TokenUsage":
        """서비스 usage 리포트에서 생성 (누락되거나 음이 아닌 정수가 아닌 필드는 0)"""
        usage = usage if isinstance(usage, dict) else {}
        return cls(
            prompt_tokens=_token_count(usage.get("prompt_tokens")),
            completion_tokens=_token_count(usage.get("completion_tokens")),
            total_tokens=_token_count(usage.get("total_tokens")),
        )

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )

    def to_dict(self) -> dict:
        return {
            "prompt": self.prompt_tokens,
            "completion": self.completion_tokens,
            "total": self.total_tokens,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TokenUsage":
        return cls(
            prompt_tokens=data.get("prompt", 0),
            completion_tokens=data.get("completion", 0),
            total_tokens=data.get("total", 0),
        )


@dataclass(frozen=True)
class Reply:
    """One structured turn from either party.

    Attributes:
        text: 이번 턴의 본문 (비어 있지 않음)
        should_continue: True면 추가 반복이 필요하다고 판단
        open_gaps: 누락된 정보 목록 (모델 출력 순서 유지)
        confidence: 자기 보고 확신도 0~100 (점수 계산에는 사용하지 않음)
        tokens_used: 이 턴의 토큰 사용량
    """

    text: str
    should_continue: bool
    open_gaps: tuple[str, ...] = ()
    confidence: int = 0
    tokens_used: TokenUsage = field(default_factory=TokenUsage)

    def to_dict(self) -> dict:
        return {
            "response": self.text,
            "continue": self.should_continue,
            "missingContext": list(self.open_gaps),
            "confidence": self.confidence,
            "tokens": self.tokens_used.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Reply":
        return cls(
            text=data["response"],
            should_continue=data["continue"],
            open_gaps=tuple(data.get("missingContext", [])),
            confidence=data.get("confidence", 0),
            tokens_used=TokenUsage.from_dict(data.get("tokens", {})),
        )


@dataclass(frozen=True)
class Turn:
    """One Reply attributed to a party and an iteration index."""

    iteration: int
    party: Party
    party_role: str
    reply: Reply
    score: int

    def to_dict(self) -> dict:
        return {
            "iteration": self.iteration,
            "agent": self.party.value,
            "role": self.party_role,
            "score": self.score,
            "response": self.reply.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Turn":
        return cls(
            iteration=data["iteration"],
            party=Party(data["agent"]),
            party_role=data["role"],
            reply=Reply.from_dict(data["response"]),
            score=data["score"],
        )


@dataclass(frozen=True)
class SessionConfig:
    """Per-run configuration.

    검증은 ConvergenceLoop.run()에서 수행 (ConfigError).
    """

    party_a_role: str = DEFAULT_PARTY_A_ROLE
    party_b_role: str = DEFAULT_PARTY_B_ROLE
    max_iterations: int = 8
    temperature: float = 0.3
    model: str = DEFAULT_MODEL

    def role_for(self, party: Party) -> str:
        return self.party_a_role if party is Party.A else self.party_b_role

    def to_dict(self) -> dict:
        return {
            "agent_a_role": self.party_a_role,
            "agent_b_role": self.party_b_role,
            "max_iterations": self.max_iterations,
            "temperature": self.temperature,
            "model": self.model,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SessionConfig":
        return cls(
            party_a_role=data.get("agent_a_role", DEFAULT_PARTY_A_ROLE),
            party_b_role=data.get("agent_b_role", DEFAULT_PARTY_B_ROLE),
            max_iterations=data.get("max_iterations", 8),
            temperature=data.get("temperature", 0.3),
            model=data.get("model", DEFAULT_MODEL),
        )


@dataclass(frozen=True)
class IterationSnapshot:
    """Observer payload, sent once per completed iteration.

    party_b는 Party A가 먼저 수렴한 반복에서는 None.
    """

    iteration: int
    party_a: Reply
    party_b: Reply | None
    converged: bool


@dataclass(frozen=True)
class ConvergenceSession:
    """Final result of one convergence run.

    Attributes:
        original_query: 세션을 시작한 입력
        config: 사용된 SessionConfig
        turns: 수락된 Turn 기록 (순서 보장)
        cumulative_tokens: 전체 턴의 토큰 합계
        converged: 어느 한 파티가 수렴 조건을 만족했는지 여부
        final_reply: 수렴한 Reply 또는 마지막 반복의 높은 점수 Reply (동점이면 B)
        convergence_score: final_reply의 점수
        iterations: 실행된 Party A 턴 수
        estimated_cost: 누적 토큰 기준 추정 비용 (전체 정밀도)
        trend: 반복별 최고 점수 추세 (CONVERGING | DIVERGING | STABLE | UNKNOWN)
        score_history: 반복별 최고 점수 (오래된 순)
    """

    original_query: str
    config: SessionConfig
    turns: tuple[Turn, ...]
    cumulative_tokens: TokenUsage
    converged: bool
    final_reply: Reply
    convergence_score: int
    iterations: int
    estimated_cost: Decimal
    trend: str = "UNKNOWN"
    score_history: tuple[int, ...] = ()
    started_at: datetime | None = None
    duration_ms: int = 0

    def to_dict(self) -> dict:
        """JSON 직렬화용 dict (비용은 정밀도 보존을 위해 문자열)"""
        return {
            "original_query": self.original_query,
            "config": self.config.to_dict(),
            "converged": self.converged,
            "iterations": self.iterations,
            "convergence_score": self.convergence_score,
            "final_response": self.final_reply.to_dict(),
            "conversation": [turn.to_dict() for turn in self.turns],
            "tokens": self.cumulative_tokens.to_dict(),
            "estimated_cost": str(self.estimated_cost),
            "trend": self.trend,
            "score_history": list(self.score_history),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "duration_ms": self.duration_ms,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ConvergenceSession":
        started_at = None
        if data.get("started_at"):
            started_at = datetime.fromisoformat(data["started_at"])
        return cls(
            original_query=data["original_query"],
            config=SessionConfig.from_dict(data.get("config", {})),
            turns=tuple(Turn.from_dict(t) for t in data.get("conversation", [])),
            cumulative_tokens=TokenUsage.from_dict(data.get("tokens", {})),
            converged=data["converged"],
            final_reply=Reply.from_dict(data["final_response"]),
            convergence_score=data["convergence_score"],
            iterations=data["iterations"],
            estimated_cost=Decimal(data.get("estimated_cost", "0")),
            trend=data.get("trend", "UNKNOWN"),
            score_history=tuple(data.get("score_history", ())),
            started_at=started_at,
            duration_ms=data.get("duration_ms", 0),
        )
