import logging
import math
import threading
import time
import numpy as np
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Optional, Sequence, Union

from modules.optimizers.base_optimizer import AbstractOptimizer, OptimizerResult

Objective = Callable[[np.ndarray], float]

# Guards the relative convergence test when the optimum is zero
TINY = 1e-10


class TerminationCode(str, Enum):
    PARAMETER_ERROR = "ParameterError"
    FUNCTION_CONVERGED = "FunctionConverged"
    MAX_EVALUATIONS_REACHED = "MaxEvaluationsReached"
    TIME_BUDGET_REACHED = "TimeBudgetReached"
    EXECUTION_ABORTED = "ExecutionAborted"


BUDGET_CODES = (TerminationCode.MAX_EVALUATIONS_REACHED, TerminationCode.TIME_BUDGET_REACHED)


@dataclass(frozen=True)
class NelderMeadSettings:
    tolerance: float = 1e-5
    max_evaluations: int = 100
    max_seconds: Optional[float] = None
    negative_not_allowed: bool = False


@dataclass(frozen=True)
class NelderMeadState:
    """
    Complete search state. `simplex` holds n+1 vertices as rows and
    `values` their objective values. A non-None `termination` is final.
    """
    simplex: np.ndarray
    values: np.ndarray
    evaluations: int
    iterations: int
    started_at: float
    termination: Optional[TerminationCode] = None

    @property
    def best_index(self) -> int:
        return int(np.argmin(self.values))

    @property
    def best_point(self) -> np.ndarray:
        return self.simplex[self.best_index].copy()

    @property
    def best_value(self) -> float:
        return float(self.values[self.best_index])


def _score(objective: Objective, point: np.ndarray, settings: NelderMeadSettings) -> float:
    if settings.negative_not_allowed and np.any(point < 0):
        return math.inf
    value = float(objective(point.copy()))
    return value if math.isfinite(value) else math.inf


def initialize_simplex(objective: Objective, initial: Sequence[float],
                       scale: Union[float, Sequence[float]], settings: NelderMeadSettings) -> NelderMeadState:
    """Evaluate the starting simplex: x0 and x0 + scale_i * e_i."""
    start = np.asarray(initial, dtype=float).ravel()
    scale = np.asarray(scale, dtype=float)
    now = time.monotonic()

    invalid = (
        start.size == 0
        or not np.all(np.isfinite(start))
        or scale.ndim > 1
        or (scale.ndim == 1 and scale.size != start.size)
        or settings.tolerance <= 0
        or settings.max_evaluations < 1
    )
    if not invalid:
        steps = np.broadcast_to(scale, start.shape)
        invalid = bool(np.any(steps == 0) or not np.all(np.isfinite(steps)))
    if invalid:
        return NelderMeadState(
            simplex=start.reshape(1, -1), values=np.array([math.inf]), evaluations=0,
            iterations=0, started_at=now, termination=TerminationCode.PARAMETER_ERROR,
        )

    simplex = np.vstack([start] + [start + steps[i] * np.eye(start.size)[i] for i in range(start.size)])
    # Vertices beyond the evaluation budget stay at +inf and are never reported as best
    evaluations = min(len(simplex), settings.max_evaluations)
    values = np.full(len(simplex), math.inf)
    for i in range(evaluations):
        values[i] = _score(objective, simplex[i], settings)
    termination = TerminationCode.MAX_EVALUATIONS_REACHED if evaluations < len(simplex) else None
    return NelderMeadState(simplex=simplex, values=values, evaluations=evaluations,
                           iterations=0, started_at=now, termination=termination)


def nelder_mead_step(state: NelderMeadState, objective: Objective, settings: NelderMeadSettings,
                     aborted: bool = False) -> NelderMeadState:
    """
    Advance the search by one reflect/expand/contract/shrink move.

    Returns a new state; `state` is never modified. Termination is checked
    before moving, so a returned state with a termination code has exactly
    the vertices that were evaluated last. A move never evaluates past
    `max_evaluations`; one cut short keeps the vertices it did score.
    """
    if state.termination is not None:
        return state
    if aborted:
        return replace(state, termination=TerminationCode.EXECUTION_ABORTED)

    order = np.argsort(state.values, kind="stable")
    ilo, inhi, ihi = order[0], order[-2], order[-1]
    y_lo, y_hi = state.values[ilo], state.values[ihi]

    if math.isfinite(y_hi) and 2.0 * abs(y_hi - y_lo) <= settings.tolerance * (abs(y_hi) + abs(y_lo)) + TINY:
        return replace(state, termination=TerminationCode.FUNCTION_CONVERGED)
    if state.evaluations >= settings.max_evaluations:
        return replace(state, termination=TerminationCode.MAX_EVALUATIONS_REACHED)
    if settings.max_seconds is not None and time.monotonic() - state.started_at >= settings.max_seconds:
        return replace(state, termination=TerminationCode.TIME_BUDGET_REACHED)

    simplex = state.simplex.copy()
    values = state.values.copy()
    evaluations = state.evaluations
    n = simplex.shape[1]
    centroid = (simplex.sum(axis=0) - simplex[ihi]) / n

    def score(point: np.ndarray) -> Optional[float]:
        # None once the evaluation budget is spent
        nonlocal evaluations
        if evaluations >= settings.max_evaluations:
            return None
        evaluations += 1
        return _score(objective, point, settings)

    def try_point(factor: float) -> Optional[float]:
        # factor -1 reflects, 2 expands the reflected point, 0.5 contracts
        trial = centroid + factor * (simplex[ihi] - centroid)
        value = score(trial)
        if value is not None and value < values[ihi]:
            simplex[ihi] = trial
            values[ihi] = value
        return value

    trial_value = try_point(-1.0)
    if trial_value is not None and trial_value <= values[ilo]:
        try_point(2.0)
    elif trial_value is not None and trial_value >= values[inhi]:
        saved = values[ihi]
        trial_value = try_point(0.5)
        if trial_value is not None and trial_value >= saved:
            for i in range(n + 1):
                if i == ilo:
                    continue
                shrunk = 0.5 * (simplex[i] + simplex[ilo])
                value = score(shrunk)
                if value is None:
                    break
                simplex[i] = shrunk
                values[i] = value

    return replace(state, simplex=simplex, values=values, evaluations=evaluations,
                   iterations=state.iterations + 1)


class NelderMeadOptimizer(AbstractOptimizer):
    """
    Derivative-free minimization over continuous parameters.

    The search ends when the simplex's objective spread falls below the
    relative tolerance, when the evaluation or wall-clock budget is used up,
    or when `abort()` is called from another thread. Maximization problems
    pass a negated objective.
    """

    def __init__(self, objective: Objective, initial: Sequence[float], scale: Union[float, Sequence[float]] = 1.0,
                 tolerance: float = 1e-5, max_evaluations: int = 100, max_seconds: Optional[float] = None,
                 negative_not_allowed: bool = False, logger: Optional[logging.Logger] = None,
                 raise_on_budget: bool = False):
        super().__init__(max_evaluations, logger, raise_on_budget)
        self.objective = objective
        self.initial = initial
        self.scale = scale
        self.settings = NelderMeadSettings(
            tolerance=tolerance,
            max_evaluations=max_evaluations,
            max_seconds=max_seconds,
            negative_not_allowed=negative_not_allowed,
        )
        self._abort = threading.Event()
        self.state: Optional[NelderMeadState] = None

    def abort(self) -> None:
        self._abort.set()

    def run(self) -> NelderMeadState:
        state = initialize_simplex(self.objective, self.initial, self.scale, self.settings)
        while state.termination is None:
            state = nelder_mead_step(state, self.objective, self.settings, aborted=self._abort.is_set())
        self.state = state
        self.logger.debug(
            f"Nelder-Mead stopped ({state.termination.value}) after {state.iterations} iterations, "
            f"{state.evaluations} evaluations, best {state.best_value:.6g}"
        )
        return state

    def result(self) -> OptimizerResult:
        if self._result is not None:
            return self._result
        state = self.state or self.run()
        return self._finish(OptimizerResult(
            parameters=state.best_point,
            fitness=state.best_value,
            evaluations=state.evaluations,
            termination=state.termination.value,
            budget_exhausted=state.termination in BUDGET_CODES,
        ))
