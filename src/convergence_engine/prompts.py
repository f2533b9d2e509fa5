"""Prompt construction and role presets.

Party A 정제 프롬프트, Party B 비평 프롬프트, 응답 계약 스키마.
"""

from dataclasses import dataclass, replace

from convergence_engine.session import Reply, SessionConfig

SYSTEM_FRAMING = (
    "You are participating in a convergence deliberation. "
    "Provide thorough analysis and clearly indicate if more work is needed."
)

# 모델에게 요구하는 응답 계약 (OpenAI strict json_schema 호환)
REPLY_SCHEMA = {
    "type": "object",
    "properties": {
        "response": {
            "type": "string",
            "description": "Your comprehensive response to the query",
        },
        "continue": {
            "type": "boolean",
            "description": "Should the deliberation continue? false = work is complete",
        },
        "missingContext": {
            "type": "array",
            "items": {"type": "string"},
            "description": "List any missing information or gaps in understanding",
        },
        "confidence": {
            "type": "integer",
            "description": "Your confidence level (0-100)",
        },
    },
    "required": ["response", "continue", "missingContext", "confidence"],
    "additionalProperties": False,
}


def build_refinement_prompt(previous: Reply) -> str:
    """Party A prompt for iteration > 1, built on Party B's last reply."""
    gaps = ", ".join(previous.open_gaps) or "None"
    return (
        "Build upon and refine the previous discussion:\n\n"
        f"Previous response: {previous.text}\n\n"
        f"Missing context identified: {gaps}\n\n"
        "Address every identified gap and provide deeper analysis."
    )


def build_critique_prompt(party_a_reply: Reply) -> str:
    """Party B prompt embedding Party A's text verbatim."""
    return (
        "Review and critique this response. Find gaps, challenge assumptions, "
        "and suggest what's missing:\n\n"
        f"{party_a_reply.text}"
    )


@dataclass(frozen=True)
class RolePreset:
    """Named pair of party roles with a suggested temperature."""

    party_a_role: str
    party_b_role: str
    temperature: float = 0.3


ROLE_PRESETS: dict[str, RolePreset] = {
    "code": RolePreset(
        "Senior Software Engineer - Write clean, documented, production-ready code",
        "Code Reviewer - Find bugs, security issues, performance problems, "
        "and style violations",
        temperature=0.2,
    ),
    "architecture": RolePreset(
        "Solutions Architect - Design scalable, maintainable systems",
        "Technical Critic - Challenge design decisions, find edge cases, "
        "suggest alternatives",
        temperature=0.4,
    ),
    "design": RolePreset(
        "Architecture Designer - Design with detail and clarity",
        "Design Critic - Challenge design decisions and suggest improvements",
    ),
    "review": RolePreset(
        "Senior Code Reviewer - Identify issues and improvements",
        "Security Expert - Focus on security vulnerabilities and edge cases",
    ),
    "decide": RolePreset(
        "Strategic Advisor - Analyze the decision thoroughly",
        "Risk Analyst - Identify risks and alternative approaches",
    ),
}


def apply_preset(config: SessionConfig | None, preset: str) -> SessionConfig:
    """Return a copy of config with the preset's roles and temperature.

    Raises:
        KeyError: 알 수 없는 프리셋 이름
    """
    role_preset = ROLE_PRESETS[preset]
    return replace(
        config or SessionConfig(),
        party_a_role=role_preset.party_a_role,
        party_b_role=role_preset.party_b_role,
        temperature=role_preset.temperature,
    )
