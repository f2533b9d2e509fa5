"""Shared test fixtures."""

import json

import pytest

from convergence_engine.clients.base import BaseTurnService, ServiceResponse


@pytest.fixture(autouse=True)
def convergence_tmp_dir(tmp_path, monkeypatch):
    """Redirect all session/usage file creation to tmp directory.

    Prevents tests from writing into ~/.convergence.
    """
    monkeypatch.setattr(
        "convergence_engine.storage.session_store.SessionStore.DEFAULT_STORE_DIR",
        tmp_path / "sessions",
    )
    monkeypatch.setattr(
        "convergence_engine.storage.usage.UsageTracker.DEFAULT_USAGE_FILE",
        tmp_path / "usage.json",
    )


def reply_payload(
    text="analysis",
    should_continue=True,
    gaps=None,
    confidence=70,
    prompt_tokens=100,
    completion_tokens=50,
):
    """ServiceResponse with a contract-conforming JSON body."""
    body = {
        "response": text,
        "continue": should_continue,
        "missingContext": list(gaps or []),
        "confidence": confidence,
    }
    return ServiceResponse(
        content=json.dumps(body),
        usage={
            "prompt_tokens": prompt_tokens,
            "completion_tokens": completion_tokens,
            "total_tokens": prompt_tokens + completion_tokens,
        },
        model="gpt-4o-2024-08-06",
    )


class ScriptedService(BaseTurnService):
    """Turn service replaying a fixed script (ServiceResponse or exception)."""

    provider = "scripted"

    def __init__(self, script):
        super().__init__("gpt-4o-2024-08-06")
        self.script = list(script)
        self.requests = []

    async def complete(self, request):
        self.requests.append(request)
        if not self.script:
            raise AssertionError("ScriptedService called more times than scripted")
        item = self.script.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item


@pytest.fixture
def payload():
    return reply_payload


@pytest.fixture
def scripted():
    return ScriptedService
