"""Per-organization daily usage accounting."""

import json
import logging
import threading
from datetime import date, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Any

from convergence_engine.session import TokenUsage
from convergence_engine.storage.session_store import default_home

logger = logging.getLogger(__name__)


class UsageTracker:
    """Daily usage buckets per organization, stored in a single JSON file.

    파일 구조:
        {"<org_id>": {"2026-10-17": {"convergences": 1, "total_tokens": 950,
                                     "total_cost": "0.0027", "api_calls": 4}}}
    """

    DEFAULT_USAGE_FILE: Path | None = None

    def __init__(self, usage_file: Path | None = None):
        self.usage_file = (
            usage_file or self.DEFAULT_USAGE_FILE or default_home() / "usage.json"
        )
        self.usage_file.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _read(self) -> dict[str, Any]:
        if not self.usage_file.exists():
            return {}
        try:
            with open(self.usage_file, encoding="utf-8") as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            logger.warning(f"Usage file corrupted, starting fresh: {e}")
            return {}

    def _write(self, data: dict[str, Any]) -> None:
        with open(self.usage_file, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)

    def record(
        self,
        org_id: str,
        tokens: TokenUsage,
        cost: Decimal,
        api_calls: int = 1,
        day: date | None = None,
    ) -> None:
        """Add one completed convergence to today's bucket.

        Args:
            org_id: Organization identifier
            tokens: Cumulative tokens of the session
            cost: Estimated cost of the session
            api_calls: Number of service calls the session made
            day: Bucket date (default: today)
        """
        key = (day or date.today()).isoformat()
        with self._lock:
            data = self._read()
            bucket = data.setdefault(org_id, {}).setdefault(
                key,
                {"convergences": 0, "total_tokens": 0, "total_cost": "0", "api_calls": 0},
            )
            bucket["convergences"] += 1
            bucket["total_tokens"] += tokens.total_tokens
            bucket["total_cost"] = str(Decimal(bucket["total_cost"]) + cost)
            bucket["api_calls"] += api_calls
            self._write(data)

        logger.debug(f"Usage recorded for {org_id}: {tokens.total_tokens} tokens")

    def stats(
        self, org_id: str, days: int = 30, today: date | None = None
    ) -> dict[str, Any]:
        """Aggregate usage of the last `days` days (today included).

        Returns:
            dict with total_convergences, total_tokens, total_cost (Decimal),
            total_api_calls and avg_tokens_per_convergence
        """
        today = today or date.today()
        since = today - timedelta(days=days - 1)

        with self._lock:
            buckets = self._read().get(org_id, {})

        convergences = tokens = calls = 0
        cost = Decimal("0")
        for key, bucket in buckets.items():
            if not since <= date.fromisoformat(key) <= today:
                continue
            convergences += bucket["convergences"]
            tokens += bucket["total_tokens"]
            cost += Decimal(bucket["total_cost"])
            calls += bucket["api_calls"]

        return {
            "total_convergences": convergences,
            "total_tokens": tokens,
            "total_cost": cost,
            "total_api_calls": calls,
            "avg_tokens_per_convergence": tokens // convergences if convergences else 0,
        }
