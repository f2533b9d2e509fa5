"""Score trend tracking across iterations."""

import operator


class ConvergenceTracker:
    """Record the best reply score of each iteration and classify its trend.

    The trend only looks at the last ``window_size`` iterations: strictly
    rising scores are CONVERGING, strictly falling ones DIVERGING, scores
    within ``tolerance`` of their mean STABLE. Anything else, including a
    history shorter than the window, is UNKNOWN.
    """

    def __init__(self, window_size: int = 3, tolerance: int = 5):
        self.window_size = window_size
        self.tolerance = tolerance
        self.history: list[int] = []

    def add_score(self, score: int) -> None:
        self.history.append(score)

    @property
    def scores(self) -> tuple[int, ...]:
        """Per-iteration best scores, oldest first."""
        return tuple(self.history)

    def _window(self) -> list[int]:
        if len(self.history) < self.window_size:
            return []
        return self.history[-self.window_size :]

    def _monotonic(self, compare) -> bool:
        window = self._window()
        return bool(window) and all(
            compare(later, earlier) for earlier, later in zip(window, window[1:])
        )

    def is_converging(self) -> bool:
        return self._monotonic(operator.gt)

    def is_diverging(self) -> bool:
        return self._monotonic(operator.lt)

    def is_stable(self) -> bool:
        window = self._window()
        if not window:
            return False
        mean = sum(window) / len(window)
        return all(abs(s - mean) <= self.tolerance for s in window)

    def get_trend(self) -> str:
        """Returns "CONVERGING" | "DIVERGING" | "STABLE" | "UNKNOWN"."""
        if self.is_converging():
            return "CONVERGING"
        if self.is_diverging():
            return "DIVERGING"
        if self.is_stable():
            return "STABLE"
        return "UNKNOWN"
