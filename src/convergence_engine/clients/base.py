"""Base interface for language-model turn services."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class TurnRequest:
    """Outbound request for one deliberation turn."""

    system_framing: str
    user_content: str
    response_contract: dict[str, Any]
    temperature: float
    model: str


@dataclass
class ServiceResponse:
    """Raw service reply before contract validation.

    Attributes:
        content: 모델이 생성한 구조화 출력 (JSON 문자열 또는 디코딩된 dict)
        usage: prompt_tokens / completion_tokens / total_tokens (누락 가능)
        model: 실제 응답한 모델 버전
    """

    content: str | dict[str, Any]
    usage: dict[str, Any] = field(default_factory=dict)
    model: str = ""


class BaseTurnService(ABC):
    """Language-model collaborator consumed by TurnExecutor.

    구현체는 일시적 실패에 TransientTurnError, 그 외 실패에
    TurnServiceError를 발생시켜야 함.
    """

    provider = "unknown"

    def __init__(self, model_name: str):
        self.model_name = model_name

    @abstractmethod
    async def complete(self, request: TurnRequest) -> ServiceResponse:
        """Send one turn request.

        Args:
            request: Turn request

        Returns:
            ServiceResponse with structured content and usage
        """
        pass
