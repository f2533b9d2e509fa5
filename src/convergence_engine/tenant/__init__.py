"""Tenant-side access to a shared Convergence API."""

from convergence_engine.tenant.client import ConvergenceClient

__all__ = ["ConvergenceClient"]
