"""Convergence Engine - Two-party recursive deliberation until convergence."""

from convergence_engine.clients.base import BaseTurnService
from convergence_engine.clients.openai_client import OpenAIClient
from convergence_engine.engine import (
    ConvergenceLoop,
    converge,
    converge_on_architecture,
    converge_on_code,
)
from convergence_engine.exceptions import (
    ConfigError,
    ContractViolation,
    ConvergenceCancelled,
    ConvergenceError,
    RetriesExhaustedError,
    TurnFailure,
)
from convergence_engine.executor import RetryPolicy, TurnExecutor
from convergence_engine.pricing.cost import CostAccountant, PricingTable
from convergence_engine.scoring.evaluator import ResponseEvaluator
from convergence_engine.session import (
    ConvergenceSession,
    IterationSnapshot,
    Party,
    Reply,
    SessionConfig,
    TokenUsage,
    Turn,
)

__version__ = "1.0.0"

__all__ = [
    "ConvergenceLoop",
    "converge",
    "converge_on_code",
    "converge_on_architecture",
    "TurnExecutor",
    "RetryPolicy",
    "ResponseEvaluator",
    "CostAccountant",
    "PricingTable",
    "BaseTurnService",
    "OpenAIClient",
    "ConvergenceSession",
    "SessionConfig",
    "IterationSnapshot",
    "Party",
    "Reply",
    "TokenUsage",
    "Turn",
    "ConvergenceError",
    "ConfigError",
    "ContractViolation",
    "RetriesExhaustedError",
    "TurnFailure",
    "ConvergenceCancelled",
]
