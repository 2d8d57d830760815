import logging
import time
from typing import List, Optional, Tuple


class SearchStoppingCriteria:
    """
    Evaluates whether the pipeline search loop should terminate.

    Strategies:
    - budget: Stop when the number of evaluated candidates reaches max_evaluations.
    - time: Stop when the wall-clock budget (max_seconds) is used up.
    - patience: Stop after N consecutive batches without a better fitness.
    """

    def __init__(self, config: dict, logger: logging.Logger, minimize: bool = False):
        self.logger = logger
        search_cfg = config.get('search', {})
        self.max_evaluations = search_cfg.get('max_evaluations', 50)
        self.max_seconds: Optional[float] = search_cfg.get('max_seconds')
        self.patience: Optional[int] = search_cfg.get('patience')
        self.min_improvement = search_cfg.get('min_improvement', 0.0)
        self.minimize = minimize
        self.started_at = time.monotonic()

    def start(self) -> None:
        self.started_at = time.monotonic()

    def should_stop(self, evaluations: int, best_history: List[float]) -> Tuple[bool, str]:
        """
        Args:
            evaluations: Candidates evaluated so far.
            best_history: Best fitness after each completed batch.

        Returns:
            (bool, reason_string)
        """
        if evaluations >= self.max_evaluations:
            return True, f"Evaluation budget reached ({self.max_evaluations})"

        if self.max_seconds is not None and time.monotonic() - self.started_at >= self.max_seconds:
            return True, f"Time budget reached ({self.max_seconds}s)"

        if self.patience and len(best_history) > self.patience:
            return self._check_plateau(best_history)

        return False, ""

    def _check_plateau(self, best_history: List[float]) -> Tuple[bool, str]:
        reference = best_history[-self.patience - 1]
        latest = best_history[-1]
        gain = reference - latest if self.minimize else latest - reference
        if gain <= self.min_improvement:
            self.logger.info(f"No improvement over {self.patience} batches (gain {gain:.6f}).")
            return True, f"No improvement for {self.patience} batches"
        return False, ""
