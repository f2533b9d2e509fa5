"""TurnExecutor 재시도 / 계약 검증 테스트"""

import json

import httpx
import pytest
from unittest.mock import AsyncMock

from convergence_engine.clients.base import ServiceResponse
from convergence_engine.exceptions import (
    ContractViolation,
    RetriesExhaustedError,
    TransientTurnError,
    TurnServiceError,
)
from convergence_engine.executor import (
    RetryPolicy,
    TurnExecutor,
    is_transient,
    validate_reply,
)
from convergence_engine.prompts import REPLY_SCHEMA, SYSTEM_FRAMING
from convergence_engine.session import SessionConfig, TokenUsage


def valid_body(**overrides):
    body = {
        "response": "answer",
        "continue": False,
        "missingContext": [],
        "confidence": 90,
    }
    body.update(overrides)
    return body


class TestRetryPolicy:
    """RetryPolicy 백오프 테스트"""

    def test_default_delays_double(self):
        policy = RetryPolicy()
        assert [policy.delay_for(i) for i in range(3)] == [1.0, 2.0, 4.0]

    def test_custom_policy(self):
        policy = RetryPolicy(max_retries=2, retry_delay=0.5, backoff_factor=3.0)
        assert policy.delay_for(1) == 1.5


class TestIsTransient:
    """is_transient() 분류 테스트"""

    @pytest.mark.parametrize("status", [429, 500, 502, 503, 504])
    def test_transient_status_codes(self, status):
        request = httpx.Request("POST", "https://example.test")
        response = httpx.Response(status, request=request)
        error = httpx.HTTPStatusError("boom", request=request, response=response)
        assert is_transient(error) is True

    @pytest.mark.parametrize("status", [400, 401, 403, 404])
    def test_client_errors_are_permanent(self, status):
        request = httpx.Request("POST", "https://example.test")
        response = httpx.Response(status, request=request)
        error = httpx.HTTPStatusError("boom", request=request, response=response)
        assert is_transient(error) is False

    def test_transport_errors_are_transient(self):
        assert is_transient(httpx.ConnectError("refused")) is True
        assert is_transient(httpx.ReadTimeout("slow")) is True

    def test_service_error_flag(self):
        assert is_transient(TransientTurnError("rate limited", status_code=429)) is True
        assert is_transient(TurnServiceError("bad key", status_code=401)) is False

    def test_contract_violation_is_never_transient(self):
        assert is_transient(ContractViolation("bad shape")) is False

    def test_unrelated_errors_are_not_transient(self):
        assert is_transient(ValueError("nope")) is False


class TestValidateReply:
    """validate_reply() 계약 검증 테스트"""

    def test_valid_json_string(self):
        reply = validate_reply(
            json.dumps(valid_body(missingContext=["x", "y"])),
            {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15},
        )
        assert reply.text == "answer"
        assert reply.should_continue is False
        assert reply.open_gaps == ("x", "y")
        assert reply.confidence == 90
        assert reply.tokens_used == TokenUsage(10, 5, 15)

    def test_decoded_dict_is_accepted(self):
        assert validate_reply(valid_body()).text == "answer"

    def test_missing_usage_fields_default_to_zero(self):
        reply = validate_reply(valid_body(), {"prompt_tokens": 7})
        assert reply.tokens_used == TokenUsage(7, 0, 0)

    def test_no_usage_report(self):
        assert validate_reply(valid_body(), None).tokens_used == TokenUsage()

    @pytest.mark.parametrize(
        "usage",
        [
            {"prompt_tokens": "12"},
            {"completion_tokens": -1},
            {"total_tokens": 1.5},
            {"prompt_tokens": True},
            ["prompt_tokens", 10],
        ],
    )
    def test_malformed_usage_report(self, usage):
        """usage 필드가 음이 아닌 정수가 아니면 ValueError가 아닌 ContractViolation"""
        with pytest.raises(ContractViolation):
            validate_reply(valid_body(), usage)

    def test_null_usage_fields_count_as_zero(self):
        reply = validate_reply(valid_body(), {"prompt_tokens": None, "total_tokens": 9.0})
        assert reply.tokens_used == TokenUsage(0, 0, 9)

    @pytest.mark.parametrize("confidence", [float("inf"), float("nan")])
    def test_non_finite_confidence(self, confidence):
        with pytest.raises(ContractViolation):
            validate_reply(valid_body(confidence=confidence))

    def test_integral_float_confidence(self):
        assert validate_reply(valid_body(confidence=80.0)).confidence == 80

    def test_invalid_json(self):
        with pytest.raises(ContractViolation) as exc_info:
            validate_reply("not json {")
        assert exc_info.value.payload == "not json {"

    def test_non_object(self):
        with pytest.raises(ContractViolation):
            validate_reply(json.dumps(["response"]))

    @pytest.mark.parametrize(
        "key", ["response", "continue", "missingContext", "confidence"]
    )
    def test_missing_field(self, key):
        body = valid_body()
        del body[key]
        with pytest.raises(ContractViolation):
            validate_reply(body)

    @pytest.mark.parametrize(
        "overrides",
        [
            {"response": ""},
            {"response": "   "},
            {"response": 42},
            {"continue": "false"},
            {"continue": 0},
            {"missingContext": "gap"},
            {"missingContext": ["ok", 3]},
            {"confidence": "90"},
            {"confidence": True},
            {"confidence": 101},
            {"confidence": -1},
            {"confidence": 55.5},
        ],
    )
    def test_wrong_types_are_not_coerced(self, overrides):
        """잘못된 값은 보정하지 않고 ContractViolation"""
        with pytest.raises(ContractViolation):
            validate_reply(valid_body(**overrides))


class TestTurnExecutor:
    """TurnExecutor.execute_turn() 테스트"""

    def _executor(self, side_effect, policy=None):
        service = AsyncMock()
        service.provider = "mock"
        service.complete.side_effect = side_effect
        sleep = AsyncMock()
        return TurnExecutor(service, retry_policy=policy, sleep=sleep), service, sleep

    def _ok(self):
        return ServiceResponse(
            content=json.dumps(valid_body()),
            usage={"prompt_tokens": 100, "completion_tokens": 50, "total_tokens": 150},
        )

    @pytest.mark.asyncio
    async def test_request_contents(self):
        """시스템 프레이밍, 응답 계약, 컨텍스트 직렬화 확인"""
        executor, service, _ = self._executor([self._ok()])
        config = SessionConfig(temperature=0.7, model="gpt-4o-mini")
        await executor.execute_turn("Explain X", {"iteration": 1, "q": "한글"}, config)

        request = service.complete.call_args.args[0]
        assert request.system_framing == SYSTEM_FRAMING
        assert request.response_contract == REPLY_SCHEMA
        assert request.temperature == 0.7
        assert request.model == "gpt-4o-mini"
        assert request.user_content.startswith("Explain X\n\nContext: {")
        assert '"iteration": 1' in request.user_content
        assert "한글" in request.user_content

    @pytest.mark.asyncio
    async def test_retries_transient_then_succeeds(self):
        executor, service, sleep = self._executor(
            [TransientTurnError("429", status_code=429), httpx.ConnectError("x"), self._ok()]
        )
        reply = await executor.execute_turn("q", {}, SessionConfig())

        assert reply.text == "answer"
        assert service.complete.await_count == 3
        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_retries_exhausted(self):
        """max_retries=3 → 총 4회 시도 후 RetriesExhaustedError"""
        errors = [TransientTurnError("503", status_code=503) for _ in range(4)]
        executor, service, sleep = self._executor(errors)

        with pytest.raises(RetriesExhaustedError) as exc_info:
            await executor.execute_turn("q", {}, SessionConfig())

        assert exc_info.value.attempts == 4
        assert exc_info.value.last_error is errors[-1]
        assert service.complete.await_count == 4
        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0, 4.0]

    @pytest.mark.asyncio
    async def test_zero_retries(self):
        executor, service, sleep = self._executor(
            [TransientTurnError("500", status_code=500)], RetryPolicy(max_retries=0)
        )
        with pytest.raises(RetriesExhaustedError):
            await executor.execute_turn("q", {}, SessionConfig())
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_permanent_error_is_not_retried(self):
        error = TurnServiceError("unauthorized", status_code=401)
        executor, service, sleep = self._executor([error])

        with pytest.raises(TurnServiceError) as exc_info:
            await executor.execute_turn("q", {}, SessionConfig())

        assert exc_info.value is error
        assert service.complete.await_count == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_permanent_httpx_error_is_wrapped(self):
        request = httpx.Request("POST", "https://example.test")
        response = httpx.Response(400, request=request)
        error = httpx.HTTPStatusError("bad request", request=request, response=response)
        executor, _, _ = self._executor([error])

        with pytest.raises(TurnServiceError) as exc_info:
            await executor.execute_turn("q", {}, SessionConfig())
        assert exc_info.value.transient is False
        assert exc_info.value.__cause__ is error

    @pytest.mark.asyncio
    async def test_contract_violation_is_not_retried(self):
        bad = ServiceResponse(content=json.dumps({"response": "x"}))
        executor, service, sleep = self._executor([bad, self._ok()])

        with pytest.raises(ContractViolation):
            await executor.execute_turn("q", {}, SessionConfig())
        assert service.complete.await_count == 1
        sleep.assert_not_awaited()
