"""Reply scoring and convergence tracking."""

from convergence_engine.scoring.evaluator import (
    ResponseEvaluator,
    has_converged,
    score,
)
from convergence_engine.scoring.tracker import ConvergenceTracker

__all__ = ["ResponseEvaluator", "ConvergenceTracker", "score", "has_converged"]
