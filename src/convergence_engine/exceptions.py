"""Convergence engine exceptions.

수렴 루프 전체에서 사용하는 예외 계층.
호출자가 실패 유형별로 분기할 수 있도록 컨텍스트 속성을 함께 제공.

    ConvergenceError
    ├── ConfigError              (run() 전 입력 검증 실패)
    ├── TurnError                (턴 단위 실패)
    │   ├── TurnServiceError     (모델 서비스 호출 실패)
    │   │   └── TransientTurnError
    │   ├── ContractViolation    (응답 구조 계약 위반)
    │   └── RetriesExhaustedError
    ├── TurnFailure              (run() 전체 실패)
    ├── ConvergenceCancelled     (협력적 취소)
    └── ConvergenceAPIError      (테넌트 클라이언트 HTTP 실패)
"""

from typing import Any


class ConvergenceError(Exception):
    """기본 예외.

    모든 수렴 엔진 예외의 베이스 클래스.
    """


class ConfigError(ConvergenceError, ValueError):
    """잘못된 query 또는 SessionConfig.

    외부 호출 전에 동기적으로 발생.

    Attributes:
        field: 문제가 된 필드 이름 (예: 'query', 'max_iterations')
    """

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class TurnError(ConvergenceError):
    """단일 턴 실패의 베이스 클래스."""


class TurnServiceError(TurnError):
    """언어 모델 서비스 호출 실패.

    Attributes:
        transient: 재시도로 회복 가능한 실패인지 여부
        status_code: HTTP 상태 코드 (전송 오류면 None)
        provider: 서비스 제공자 이름 (예: 'openai')
    """

    def __init__(
        self,
        message: str,
        transient: bool = False,
        status_code: int | None = None,
        provider: str | None = None,
    ):
        self.transient = transient
        self.status_code = status_code
        self.provider = provider
        super().__init__(message)


class TransientTurnError(TurnServiceError):
    """재시도 가능한 서비스 실패 (429/5xx, 네트워크 오류)."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        provider: str | None = None,
    ):
        super().__init__(
            message, transient=True, status_code=status_code, provider=provider
        )


class ContractViolation(TurnError):
    """모델 응답이 Reply 계약을 만족하지 않음.

    재시도하지 않으며 값을 보정하지도 않음.

    Attributes:
        payload: 검증에 실패한 디코딩 결과 (디코딩 자체가 실패했으면 원문)
    """

    def __init__(self, message: str, payload: Any = None):
        self.payload = payload
        super().__init__(message)


class RetriesExhaustedError(TurnError):
    """재시도 한도 초과.

    Attributes:
        attempts: 실제 시도 횟수
        last_error: 마지막으로 발생한 일시적 오류
    """

    def __init__(self, message: str, attempts: int, last_error: Exception):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(message)


class TurnFailure(ConvergenceError):
    """run() 전체를 중단시키는 턴 실패.

    세션은 반환되지 않는다. 이미 소비한 토큰은 아래 속성으로만 확인 가능.

    Attributes:
        party: 실패한 턴의 파티 ('A' 또는 'B')
        iteration: 실패한 반복 번호 (1부터)
        cause: 원인 TurnError
        completed_turns: 실패 전까지 수락된 Turn 목록
        tokens: 실패 전까지 누적된 TokenUsage
    """

    def __init__(
        self,
        message: str,
        party: str,
        iteration: int,
        cause: TurnError,
        completed_turns: tuple = (),
        tokens: Any = None,
    ):
        self.party = party
        self.iteration = iteration
        self.cause = cause
        self.completed_turns = completed_turns
        self.tokens = tokens
        super().__init__(message)


class ConvergenceCancelled(ConvergenceError):
    """취소 신호 또는 데드라인으로 run()이 중단됨.

    Attributes:
        reason: 'cancelled' | 'deadline'
        iteration: 취소가 관측된 반복 번호
        completed_turns: 취소 전까지 수락된 Turn 목록
        tokens: 취소 전까지 누적된 TokenUsage
    """

    def __init__(
        self,
        message: str,
        reason: str = "cancelled",
        iteration: int = 0,
        completed_turns: tuple = (),
        tokens: Any = None,
    ):
        self.reason = reason
        self.iteration = iteration
        self.completed_turns = completed_turns
        self.tokens = tokens
        super().__init__(message)


class ConvergenceAPIError(ConvergenceError):
    """원격 Convergence API 호출 실패.

    Attributes:
        status_code: HTTP 상태 코드
    """

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)
