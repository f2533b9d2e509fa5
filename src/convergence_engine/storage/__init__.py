"""Storage module for completed sessions and usage."""

from convergence_engine.storage.chunker import ChunkManager, LoadLevel
from convergence_engine.storage.session_store import SessionStore
from convergence_engine.storage.usage import UsageTracker

__all__ = ["ChunkManager", "LoadLevel", "SessionStore", "UsageTracker"]
