"""Fixed-rubric scoring for replies."""

from convergence_engine.session import Reply

SCORE_MIN = 0
SCORE_MAX = 100

# 루브릭: 중단 의사 60점 + 정보 공백 40점 (공백 1개당 10점 감점)
CONTINUE_WEIGHT = 60
GAP_WEIGHT = 40
GAP_PENALTY = 10


def score(reply: Reply) -> int:
    """Compute the convergence score of a reply.

    Args:
        reply: Validated reply

    Returns:
        Score in [0, 100]
    """
    continue_component = 0 if reply.should_continue else CONTINUE_WEIGHT

    if not reply.open_gaps:
        gap_component = GAP_WEIGHT
    else:
        gap_component = max(0, GAP_WEIGHT - GAP_PENALTY * len(reply.open_gaps))

    return max(SCORE_MIN, min(SCORE_MAX, continue_component + gap_component))


def has_converged(reply: Reply) -> bool:
    """Check whether a reply reports finished work with no gaps.

    score()와 독립적으로 판정한다. 점수 공식의 상한이 바뀌어도
    수렴 조건은 바뀌지 않아야 함.
    """
    return not reply.should_continue and len(reply.open_gaps) == 0


class ResponseEvaluator:
    """Stateless evaluator injected into the convergence loop."""

    def score(self, reply: Reply) -> int:
        return score(reply)

    def has_converged(self, reply: Reply) -> bool:
        return has_converged(reply)
