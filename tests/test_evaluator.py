"""ResponseEvaluator 점수 루브릭 테스트"""

import pytest

from convergence_engine.scoring import ResponseEvaluator, has_converged, score
from convergence_engine.session import Reply


def make_reply(should_continue, gaps=()):
    return Reply(text="text", should_continue=should_continue, open_gaps=tuple(gaps))


class TestScore:
    """score() 테스트"""

    def test_finished_without_gaps_scores_100(self):
        """continue=false, 공백 없음 → 100점"""
        assert score(make_reply(False)) == 100

    def test_continuing_without_gaps_scores_40(self):
        """continue=true, 공백 없음 → 공백 점수 40점만"""
        assert score(make_reply(True)) == 40

    def test_gap_penalty_per_item(self):
        """공백 1개당 10점 감점"""
        assert score(make_reply(False, ["a"])) == 90
        assert score(make_reply(False, ["a", "b", "c"])) == 70
        assert score(make_reply(True, ["a"])) == 30

    @pytest.mark.parametrize("gap_count", [4, 5, 12])
    def test_continuing_with_many_gaps_floors_at_zero(self, gap_count):
        """continue=true, 공백 4개 이상 → 0점"""
        gaps = [f"gap {i}" for i in range(gap_count)]
        assert score(make_reply(True, gaps)) == 0

    def test_gap_penalty_is_monotonic_and_floored_at_60(self):
        """continue=false 에서 공백이 늘어도 점수는 증가하지 않고 60점 아래로 내려가지 않음"""
        scores = [score(make_reply(False, ["g"] * n)) for n in range(10)]
        assert all(later <= earlier for earlier, later in zip(scores, scores[1:]))
        assert min(scores) == 60

    def test_confidence_does_not_affect_score(self):
        """confidence는 점수 계산에 사용하지 않음"""
        low = Reply(text="t", should_continue=True, open_gaps=("x",), confidence=0)
        high = Reply(text="t", should_continue=True, open_gaps=("x",), confidence=100)
        assert score(low) == score(high)

    def test_duplicate_gaps_count_separately(self):
        """중복 공백도 각각 감점"""
        assert score(make_reply(False, ["same", "same"])) == 80


class TestHasConverged:
    """has_converged() 테스트"""

    def test_converged_when_finished_without_gaps(self):
        assert has_converged(make_reply(False)) is True

    def test_not_converged_with_gaps(self):
        assert has_converged(make_reply(False, ["missing"])) is False

    def test_not_converged_when_continuing(self):
        assert has_converged(make_reply(True)) is False

    @pytest.mark.parametrize(
        "should_continue,gap_count",
        [(c, n) for c in (True, False) for n in range(6)],
    )
    def test_equivalent_to_perfect_score(self, should_continue, gap_count):
        """has_converged(r) == (score(r) == 100)"""
        reply = make_reply(should_continue, ["g"] * gap_count)
        assert has_converged(reply) == (score(reply) == 100)


class TestResponseEvaluator:
    """ResponseEvaluator 래퍼 테스트"""

    def test_delegates_to_rubric(self):
        evaluator = ResponseEvaluator()
        reply = make_reply(True, ["a", "b"])
        assert evaluator.score(reply) == 20
        assert evaluator.has_converged(reply) is False

    def test_is_stateless(self):
        """같은 입력에 항상 같은 결과"""
        evaluator = ResponseEvaluator()
        reply = make_reply(False, ["a"])
        assert [evaluator.score(reply) for _ in range(3)] == [90, 90, 90]
