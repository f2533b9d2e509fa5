"""Tenant-side client for a remote Convergence API.

테넌트 환경에서 공유 Convergence API 서버를 호출하는 HTTP 클라이언트.
서버 자체는 이 패키지 범위 밖이며, 여기서는 호출 인터페이스만 제공.
"""

import logging
import os
from typing import Any

import httpx

from convergence_engine.exceptions import ConvergenceAPIError
from convergence_engine.prompts import ROLE_PRESETS

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "http://convergence-api:3000"


class ConvergenceClient:
    """Convergence API 클라이언트

    Example:
        client = ConvergenceClient(org_id="acme", api_key="...")
        result = await client.converge("Design a rate limiter")
        status = await client.status(result["taskId"])
    """

    def __init__(
        self,
        api_url: str | None = None,
        org_id: str | None = None,
        env_id: str | None = None,
        api_key: str | None = None,
        timeout: float = 300.0,
    ):
        self.api_url = (
            api_url or os.environ.get("CONVERGENCE_API_URL") or DEFAULT_API_URL
        ).rstrip("/")
        self.org_id = org_id or os.environ.get("CONVERGENCE_ORG_ID")
        self.env_id = env_id or os.environ.get("CONVERGENCE_ENV_ID")
        self.api_key = api_key or os.environ.get("CONVERGENCE_API_KEY")
        self.timeout = timeout

        if not self.api_key and not self.org_id:
            logger.warning(
                "ConvergenceClient: no API key or org ID provided, "
                "some features may not work"
            )

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["X-API-Key"] = self.api_key
        return headers

    async def _request(
        self, method: str, path: str, json: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        """Send one request and decode the JSON body.

        Raises:
            ConvergenceAPIError: 비 2xx 응답 또는 연결 실패
        """
        url = f"{self.api_url}{path}"
        try:
            async with httpx.AsyncClient() as client:
                response = await client.request(
                    method, url, headers=self._headers(), json=json, timeout=self.timeout
                )
        except httpx.TransportError as e:
            raise ConvergenceAPIError(f"Cannot reach Convergence API at {url}: {e}") from e

        if not response.is_success:
            detail = response.reason_phrase
            try:
                body = response.json()
                if isinstance(body, dict) and body.get("error"):
                    detail = body["error"]
            except ValueError:
                pass
            raise ConvergenceAPIError(
                f"Convergence API error ({response.status_code}): {detail}",
                status_code=response.status_code,
            )

        return response.json()

    async def converge(
        self,
        prompt: str,
        agent_a_role: str = "Expert Analyst - Provide comprehensive analysis",
        agent_b_role: str = "Critical Reviewer - Find gaps and improvements",
        max_iterations: int = 8,
        temperature: float = 0.3,
        webhook_url: str | None = None,
    ) -> dict[str, Any]:
        """Start a convergence on the remote API.

        Returns:
            Server response (session result, or task reference when a
            webhook is registered)
        """
        body: dict[str, Any] = {
            "prompt": prompt,
            "agentARole": agent_a_role,
            "agentBRole": agent_b_role,
            "maxIterations": max_iterations,
            "temperature": temperature,
        }
        if webhook_url:
            body["webhookUrl"] = webhook_url

        logger.info(f"Requesting convergence ({max_iterations} iterations max)")
        return await self._request("POST", "/api/v1/converge", json=body)

    async def status(self, task_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/api/v1/status/{task_id}")

    async def usage(self) -> dict[str, Any]:
        return await self._request("GET", "/api/v1/usage")

    async def health(self) -> dict[str, Any]:
        return await self._request("GET", "/health")

    async def _converge_with_preset(self, preset: str, prompt: str) -> dict[str, Any]:
        role_preset = ROLE_PRESETS[preset]
        return await self.converge(
            prompt,
            agent_a_role=role_preset.party_a_role,
            agent_b_role=role_preset.party_b_role,
        )

    async def design(self, topic: str, context: str = "") -> dict[str, Any]:
        return await self._converge_with_preset(
            "design", f"Design the following: {topic}\n\nContext: {context}"
        )

    async def review(self, code: str) -> dict[str, Any]:
        return await self._converge_with_preset(
            "review",
            f"Review this code for quality, security, and best practices:\n\n{code}",
        )

    async def decide(self, decision: str, context: str = "") -> dict[str, Any]:
        return await self._converge_with_preset(
            "decide", f"Help me make this decision: {decision}\n\nContext: {context}"
        )
