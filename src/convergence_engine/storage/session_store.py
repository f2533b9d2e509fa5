"""File-based persistence for completed sessions.

태스크별 디렉토리에 session.json (전체 결과)과 FINAL.md (청크 리포트)를 저장.

    <base_dir>/
    └── <task_id>/
        ├── session.json
        └── FINAL.md
"""

import json
import logging
import os
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any

from convergence_engine.session import ConvergenceSession
from convergence_engine.storage.chunker import ChunkManager, LoadLevel

logger = logging.getLogger(__name__)


def default_home() -> Path:
    """Base directory for stored data (CONVERGENCE_HOME or ~/.convergence)."""
    return Path(os.environ.get("CONVERGENCE_HOME", Path.home() / ".convergence"))


class SessionStore:
    """Append and read completed convergence sessions keyed by task id.

    Example:
        store = SessionStore()
        task_id = store.save(None, session, org_id="acme")
        restored = store.load(task_id)
    """

    DEFAULT_STORE_DIR: Path | None = None

    def __init__(self, base_dir: Path | None = None):
        self.base_dir = base_dir or self.DEFAULT_STORE_DIR or default_home() / "sessions"
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self.chunker = ChunkManager()

    @staticmethod
    def new_task_id() -> str:
        return str(uuid.uuid4())

    def _task_dir(self, task_id: str) -> Path:
        return self.base_dir / task_id

    def save(
        self,
        task_id: str | None,
        session: ConvergenceSession,
        org_id: str | None = None,
    ) -> str:
        """Persist a completed session.

        Args:
            task_id: Opaque task identifier (generated if None)
            session: Completed session
            org_id: Owning organization, used to filter history

        Returns:
            Task identifier the session was stored under
        """
        task_id = task_id or self.new_task_id()
        task_dir = self._task_dir(task_id)
        task_dir.mkdir(parents=True, exist_ok=True)

        record = {
            "task_id": task_id,
            "org_id": org_id,
            "stored_at": datetime.now().isoformat(),
            "session": session.to_dict(),
        }
        with open(task_dir / "session.json", "w", encoding="utf-8") as f:
            json.dump(record, f, indent=2, ensure_ascii=False)

        self.chunker.write_session_report(task_dir / "FINAL.md", task_id, session)
        logger.info(f"Session stored: {task_id}")
        return task_id

    def _read_record(self, task_id: str) -> dict[str, Any] | None:
        path = self._task_dir(task_id) / "session.json"
        if not path.exists():
            return None
        with open(path, encoding="utf-8") as f:
            return json.load(f)

    def load(self, task_id: str) -> ConvergenceSession | None:
        """Load a stored session, or None if unknown."""
        record = self._read_record(task_id)
        if record is None:
            return None
        return ConvergenceSession.from_dict(record["session"])

    def load_report(
        self, task_id: str, level: LoadLevel = LoadLevel.SUMMARY
    ) -> dict[str, str]:
        """Load the markdown report at the given level."""
        return self.chunker.load_level(self._task_dir(task_id) / "FINAL.md", level)

    def history(
        self, org_id: str | None = None, limit: int = 20, offset: int = 0
    ) -> list[dict[str, Any]]:
        """Summaries of stored sessions, newest first.

        Args:
            org_id: Only sessions of this organization (all if None)
            limit: Maximum number of entries
            offset: Entries to skip

        Returns:
            List of summary dicts (task_id, query, converged, score, ...)
        """
        entries = []
        for path in self.base_dir.glob("*/session.json"):
            try:
                with open(path, encoding="utf-8") as f:
                    record = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                logger.warning(f"Skipping unreadable session record {path}: {e}")
                continue

            if org_id is not None and record.get("org_id") != org_id:
                continue

            data = record["session"]
            entries.append(
                {
                    "task_id": record["task_id"],
                    "org_id": record.get("org_id"),
                    "prompt": data["original_query"],
                    "converged": data["converged"],
                    "convergence_score": data["convergence_score"],
                    "iterations": data["iterations"],
                    "tokens_total": data.get("tokens", {}).get("total", 0),
                    "estimated_cost": data.get("estimated_cost", "0"),
                    "duration_ms": data.get("duration_ms", 0),
                    "created_at": record.get("stored_at", ""),
                }
            )

        entries.sort(key=lambda e: e["created_at"], reverse=True)
        return entries[offset : offset + limit]
