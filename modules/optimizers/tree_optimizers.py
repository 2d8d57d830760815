from typing import Any, Dict, List, Optional
from sklearn.model_selection import ParameterGrid

from modules.models import AbstractModel, DecisionTreeModel, RandomForestModel
from modules.optimizers.base_optimizer import ModelOptimizer, OptimizerResult


class DecisionTreeOptimizer(ModelOptimizer):
    """Exhaustive grid over tree depth, leaf size and split criterion."""

    DEFAULT_GRID: Dict[str, List[Any]] = {
        "max_depth": [2, 4, 8, None],
        "min_samples_leaf": [1, 3, 5],
        "criterion": ["gain", "gini"],
    }

    def __init__(self, package, analytics, grid: Optional[Dict[str, List[Any]]] = None, **kwargs):
        super().__init__(package, analytics, **kwargs)
        self.grid = grid or self.DEFAULT_GRID

    def _build_model(self, params: Dict[str, Any]) -> AbstractModel:
        return DecisionTreeModel(**{**self.base_params, **params, "random_state": self.seed})

    def result(self) -> OptimizerResult:
        if self._result is not None:
            return self._result

        best_params, best_score = None, None
        combinations = list(ParameterGrid(self.grid))
        for params in combinations:
            if not self._budget_left():
                break
            score = self.cross_validate(params)
            if best_score is None or self.analytics.is_better(score, best_score):
                best_params, best_score = params, score

        exhausted = self.evaluations < len(combinations)
        return self._finish(OptimizerResult(
            parameters=best_params or {},
            fitness=best_score if best_score is not None else self.analytics.worst_score(),
            evaluations=self.evaluations,
            termination="MaxEvaluationsReached" if exhausted else "GridCompleted",
            budget_exhausted=exhausted,
            history=list(self._history),
        ))


class RandomForestOptimizer(ModelOptimizer):
    """
    Greedy stage-wise search: tune the tree count first, then depth, then
    leaf size, each time holding the best values found so far.
    """

    DEFAULT_STAGES: Dict[str, List[Any]] = {
        "n_trees": [10, 25, 50],
        "max_depth": [None, 4, 8],
        "min_samples_leaf": [1, 3],
    }

    def __init__(self, package, analytics, stages: Optional[Dict[str, List[Any]]] = None, **kwargs):
        super().__init__(package, analytics, **kwargs)
        self.stages = stages or self.DEFAULT_STAGES

    def _build_model(self, params: Dict[str, Any]) -> AbstractModel:
        return RandomForestModel(**{**self.base_params, **params, "random_state": self.seed})

    def result(self) -> OptimizerResult:
        if self._result is not None:
            return self._result

        current = {name: values[0] for name, values in self.stages.items()}
        scored: Dict[str, float] = {}
        best_score = None
        exhausted = False

        for name, values in self.stages.items():
            for value in values:
                params = {**current, name: value}
                key = repr(sorted(params.items(), key=lambda item: item[0]))
                if key not in scored:
                    if not self._budget_left():
                        exhausted = True
                        break
                    scored[key] = self.cross_validate(params)
                score = scored[key]
                if best_score is None or self.analytics.is_better(score, best_score):
                    best_score = score
                    current = params
            if exhausted:
                break

        return self._finish(OptimizerResult(
            parameters=current,
            fitness=best_score if best_score is not None else self.analytics.worst_score(),
            evaluations=self.evaluations,
            termination="MaxEvaluationsReached" if exhausted else "StagesCompleted",
            budget_exhausted=exhausted,
            history=list(self._history),
        ))
