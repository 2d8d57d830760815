import numpy as np
from typing import Any, Dict

from modules.models import AbstractModel, KernelDensityModel
from modules.optimizers.base_optimizer import ModelOptimizer, OptimizerResult
from modules.optimizers.nelder_mead import NelderMeadOptimizer

# Search range for log10(bandwidth)
MIN_LOG_BANDWIDTH = -3.0
MAX_LOG_BANDWIDTH = 2.0


class KernelDensityOptimizer(ModelOptimizer):
    """Nelder-Mead search over the (log10) kernel bandwidth."""

    def __init__(self, package, analytics, initial_bandwidth: float = 1.0, tolerance: float = 1e-3, **kwargs):
        super().__init__(package, analytics, **kwargs)
        self.initial_bandwidth = initial_bandwidth
        self.tolerance = tolerance

    def _build_model(self, params: Dict[str, Any]) -> AbstractModel:
        return KernelDensityModel(**{**self.base_params, **params})

    def _objective(self, point: np.ndarray) -> float:
        log_bandwidth = float(np.clip(point[0], MIN_LOG_BANDWIDTH, MAX_LOG_BANDWIDTH))
        score = self.cross_validate({"bandwidth": 10.0 ** log_bandwidth})
        return self.analytics.loss(score)

    def result(self) -> OptimizerResult:
        if self._result is not None:
            return self._result

        search = NelderMeadOptimizer(
            self._objective,
            initial=[np.log10(self.initial_bandwidth)],
            scale=0.5,
            tolerance=self.tolerance,
            max_evaluations=self.max_evaluations,
            logger=self.logger,
        )
        inner = search.result()
        log_bandwidth = float(np.clip(inner.parameters[0], MIN_LOG_BANDWIDTH, MAX_LOG_BANDWIDTH))
        loss = inner.fitness
        return self._finish(OptimizerResult(
            parameters={"bandwidth": 10.0 ** log_bandwidth},
            fitness=loss if self.analytics.minimize else -loss,
            evaluations=self.evaluations,
            termination=inner.termination,
            budget_exhausted=inner.budget_exhausted,
            history=list(self._history),
        ))
