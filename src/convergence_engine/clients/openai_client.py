"""OpenAI Client for Convergence Engine

Chat Completions API + structured output (json_schema strict) 기반 턴 서비스.
API 키 인증 (생성자 인자 또는 OPENAI_API_KEY 환경변수).
"""

import logging
import os

import httpx

from convergence_engine.clients.base import BaseTurnService, ServiceResponse, TurnRequest
from convergence_engine.exceptions import (
    ContractViolation,
    TransientTurnError,
    TurnServiceError,
)

logger = logging.getLogger(__name__)

# 재시도로 회복 가능한 HTTP 상태
TRANSIENT_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


class OpenAIClient(BaseTurnService):
    """OpenAI GPT 턴 서비스

    Example:
        client = OpenAIClient(model_name="gpt-4o-2024-08-06")
        response = await client.complete(request)
    """

    API_BASE = "https://api.openai.com/v1"
    provider = "openai"

    def __init__(
        self,
        model_name: str = "gpt-4o-2024-08-06",
        api_key: str | None = None,
        api_base: str | None = None,
        timeout: float = 120.0,
    ):
        super().__init__(model_name)
        self.api_key = api_key or os.environ.get("OPENAI_API_KEY")
        self.api_base = (
            api_base or os.environ.get("OPENAI_BASE_URL") or self.API_BASE
        ).rstrip("/")
        self.timeout = timeout

    def _build_payload(self, request: TurnRequest) -> dict:
        return {
            "model": request.model or self.model_name,
            "messages": [
                {"role": "system", "content": request.system_framing},
                {"role": "user", "content": request.user_content},
            ],
            "response_format": {
                "type": "json_schema",
                "json_schema": {
                    "name": "agent_response",
                    "strict": True,
                    "schema": request.response_contract,
                },
            },
            "temperature": request.temperature,
        }

    async def complete(self, request: TurnRequest) -> ServiceResponse:
        """Chat Completions 호출

        Args:
            request: 턴 요청

        Returns:
            ServiceResponse: content는 모델이 반환한 JSON 문자열

        Raises:
            TransientTurnError: 429/5xx 또는 네트워크 오류
            TurnServiceError: API 키 누락, 인증 실패 등 재시도 불가 오류
            ContractViolation: 200 응답이지만 본문이 JSON이 아니거나 choices 누락
        """
        if not self.api_key:
            raise TurnServiceError(
                "OPENAI_API_KEY not set", transient=False, provider=self.provider
            )

        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    f"{self.api_base}/chat/completions",
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json=self._build_payload(request),
                    timeout=self.timeout,
                )
        except httpx.TransportError as e:
            raise TransientTurnError(
                f"OpenAI transport error: {e}", provider=self.provider
            ) from e

        if response.status_code != 200:
            error_detail = response.text[:500] if response.text else "Unknown error"
            message = f"OpenAI API error ({response.status_code}): {error_detail}"
            if response.status_code in TRANSIENT_STATUS_CODES:
                raise TransientTurnError(
                    message, status_code=response.status_code, provider=self.provider
                )
            raise TurnServiceError(
                message, status_code=response.status_code, provider=self.provider
            )

        # 200 이어도 본문이 계약을 벗어나면 ContractViolation (재시도 없음)
        try:
            data = response.json()
        except ValueError as e:
            raise ContractViolation(
                f"OpenAI response body is not JSON: {e}", response.text[:500]
            ) from e

        try:
            choice = data["choices"][0]["message"]
        except (KeyError, IndexError, TypeError) as e:
            raise ContractViolation("OpenAI response has no choices", data) from e
        if not isinstance(choice, dict):
            raise ContractViolation("OpenAI choice message is not an object", data)

        if choice.get("refusal"):
            logger.warning(f"OpenAI refused the request: {choice['refusal']}")

        return ServiceResponse(
            content=choice.get("content") or "",
            usage=data.get("usage") or {},
            model=data.get("model", request.model),
        )
