"""Language-model clients for Convergence Engine

TurnExecutor가 호출하는 외부 모델 서비스 구현체.
"""

from convergence_engine.clients.base import BaseTurnService, ServiceResponse, TurnRequest
from convergence_engine.clients.openai_client import OpenAIClient

__all__ = [
    "BaseTurnService",
    "ServiceResponse",
    "TurnRequest",
    "OpenAIClient",
]
