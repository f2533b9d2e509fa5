"""SessionStore / ChunkManager / UsageTracker 테스트"""

from datetime import date, datetime
from decimal import Decimal

import pytest

from convergence_engine.session import (
    ConvergenceSession,
    Party,
    Reply,
    SessionConfig,
    TokenUsage,
    Turn,
)
from convergence_engine.storage import LoadLevel, SessionStore, UsageTracker


def make_session(query="Design a cache", converged=True, started_at=None):
    reply_a = Reply("draft", True, ("eviction policy",), 60, TokenUsage(100, 40, 140))
    reply_b = Reply("final answer", False, (), 95, TokenUsage(80, 20, 100))
    return ConvergenceSession(
        original_query=query,
        config=SessionConfig(max_iterations=3),
        turns=(
            Turn(1, Party.A, "Expert", reply_a, 30),
            Turn(1, Party.B, "Critic", reply_b, 100),
        ),
        cumulative_tokens=TokenUsage(180, 60, 240),
        converged=converged,
        final_reply=reply_b,
        convergence_score=100,
        iterations=1,
        estimated_cost=Decimal("0.00105"),
        trend="UNKNOWN",
        score_history=(100,),
        started_at=started_at or datetime(2026, 10, 17, 9, 30),
        duration_ms=1234,
    )


class TestSessionStore:
    """SessionStore 테스트"""

    def test_uses_redirected_default_dir(self, tmp_path):
        assert SessionStore().base_dir == tmp_path / "sessions"

    def test_save_and_load_round_trip(self):
        store = SessionStore()
        session = make_session()
        task_id = store.save("task-1", session, org_id="acme")

        assert task_id == "task-1"
        assert store.load("task-1") == session

    def test_generates_task_id(self):
        store = SessionStore()
        task_id = store.save(None, make_session())
        assert task_id
        assert (store.base_dir / task_id / "session.json").exists()
        assert (store.base_dir / task_id / "FINAL.md").exists()

    def test_load_unknown_task(self):
        assert SessionStore().load("missing") is None

    def test_history_filters_by_org(self):
        store = SessionStore()
        store.save("a", make_session("q1"), org_id="acme")
        store.save("b", make_session("q2"), org_id="other")
        store.save("c", make_session("q3"), org_id="acme")

        entries = store.history(org_id="acme")
        assert {e["task_id"] for e in entries} == {"a", "c"}
        assert len(store.history()) == 3

    def test_history_newest_first_with_paging(self):
        store = SessionStore()
        for task_id in ("t1", "t2", "t3"):
            store.save(task_id, make_session(task_id))

        assert [e["task_id"] for e in store.history()] == ["t3", "t2", "t1"]
        assert [e["task_id"] for e in store.history(limit=1, offset=1)] == ["t2"]

    def test_history_entry_fields(self):
        store = SessionStore()
        store.save("t", make_session(), org_id="acme")
        entry = store.history()[0]

        assert entry["prompt"] == "Design a cache"
        assert entry["converged"] is True
        assert entry["convergence_score"] == 100
        assert entry["tokens_total"] == 240
        assert entry["estimated_cost"] == "0.00105"
        assert entry["duration_ms"] == 1234

    def test_history_skips_corrupted_records(self):
        store = SessionStore()
        store.save("good", make_session())
        bad_dir = store.base_dir / "bad"
        bad_dir.mkdir()
        (bad_dir / "session.json").write_text("{not json", encoding="utf-8")

        assert [e["task_id"] for e in store.history()] == ["good"]


class TestSessionReport:
    """FINAL.md 청크 리포트 테스트"""

    def test_metadata_level(self):
        store = SessionStore()
        store.save("t", make_session())
        report = store.load_report("t", LoadLevel.METADATA)

        assert report["task_id"] == "t"
        assert report["status"] == "CONVERGED"
        assert report["score"] == "100"
        assert "summary" not in report

    def test_summary_level(self):
        store = SessionStore()
        store.save("t", make_session())
        report = store.load_report("t", LoadLevel.SUMMARY)

        assert "Design a cache" in report["summary"]
        assert "0.001050" in report["summary"]
        assert "Score history: 100" in report["summary"]
        assert "conclusion" not in report

    def test_full_level(self):
        store = SessionStore()
        store.save("t", make_session(converged=False))
        report = store.load_report("t", LoadLevel.FULL)

        assert report["status"] == "EXHAUSTED"
        assert report["conclusion"].startswith("final answer")
        assert "Iteration 1 - Party A" in report["full"]
        assert "eviction policy" in report["full"]

    def test_missing_report(self):
        assert SessionStore().load_report("nope") == {}


class TestUsageTracker:
    """UsageTracker 테스트"""

    def test_uses_redirected_default_file(self, tmp_path):
        assert UsageTracker().usage_file == tmp_path / "usage.json"

    def test_record_and_stats(self):
        tracker = UsageTracker()
        today = date(2026, 10, 17)
        tracker.record("acme", TokenUsage(100, 50, 150), Decimal("0.001"), api_calls=2, day=today)
        tracker.record("acme", TokenUsage(200, 50, 250), Decimal("0.002"), api_calls=4, day=today)

        stats = tracker.stats("acme", today=today)
        assert stats["total_convergences"] == 2
        assert stats["total_tokens"] == 400
        assert stats["total_cost"] == Decimal("0.003")
        assert stats["total_api_calls"] == 6
        assert stats["avg_tokens_per_convergence"] == 200

    def test_stats_window(self):
        tracker = UsageTracker()
        tracker.record("acme", TokenUsage(0, 0, 10), Decimal("0"), day=date(2026, 10, 1))
        tracker.record("acme", TokenUsage(0, 0, 20), Decimal("0"), day=date(2026, 10, 17))

        assert tracker.stats("acme", days=7, today=date(2026, 10, 17))["total_tokens"] == 20
        assert tracker.stats("acme", days=30, today=date(2026, 10, 17))["total_tokens"] == 30

    def test_orgs_are_isolated(self):
        tracker = UsageTracker()
        tracker.record("acme", TokenUsage(0, 0, 10), Decimal("0.5"))
        assert tracker.stats("other")["total_convergences"] == 0

    def test_empty_stats(self):
        stats = UsageTracker().stats("nobody")
        assert stats["total_cost"] == Decimal("0")
        assert stats["avg_tokens_per_convergence"] == 0

    def test_corrupted_file_starts_fresh(self, tmp_path):
        (tmp_path / "usage.json").write_text("{broken", encoding="utf-8")
        tracker = UsageTracker()
        tracker.record("acme", TokenUsage(0, 0, 5), Decimal("0"))
        assert tracker.stats("acme")["total_tokens"] == 5


@pytest.mark.parametrize("cost", ["0.0075", "0.00000015"])
def test_cost_precision_survives_storage(cost):
    """저장 후에도 비용 정밀도 유지"""
    session = make_session()
    session = ConvergenceSession(**{**session.__dict__, "estimated_cost": Decimal(cost)})
    store = SessionStore()
    store.save("p", session)
    assert store.load("p").estimated_cost == Decimal(cost)
