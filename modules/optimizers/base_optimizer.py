import abc
import logging
import numpy as np
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from modules.analytics import ConfusionMatrixAnalytics
from modules.data_package import DataPackage
from modules.fold_generator import PatientFoldGenerator
from modules.models import AbstractModel
from utils.exceptions import OptimizerBudgetExhausted, PipelineSearchException


@dataclass
class OptimizerResult:
    """Best parameters found, their fitness and the evaluations consumed."""
    parameters: Any
    fitness: float
    evaluations: int
    termination: str
    budget_exhausted: bool = False
    history: List[Dict[str, Any]] = field(default_factory=list)


class AbstractOptimizer(abc.ABC):
    """
    Base class for hyperparameter searches.

    Running out of evaluations is the normal way for a search to end: the
    best-so-far result is returned and a warning is logged. Pass
    `raise_on_budget=True` to receive an OptimizerBudgetExhausted carrying
    that result instead.
    """

    def __init__(self, max_evaluations: int, logger: Optional[logging.Logger] = None,
                 raise_on_budget: bool = False):
        self.max_evaluations = max_evaluations
        self.logger = logger or logging.getLogger(self.__class__.__module__)
        self.raise_on_budget = raise_on_budget
        self._result: Optional[OptimizerResult] = None

    @abc.abstractmethod
    def result(self) -> OptimizerResult:
        raise NotImplementedError

    def _finish(self, result: OptimizerResult) -> OptimizerResult:
        self._result = result
        if result.budget_exhausted:
            message = (f"{self.__class__.__name__} budget exhausted after {result.evaluations} evaluations; "
                       f"returning best fitness {result.fitness:.6g}")
            self.logger.warning(message)
            if self.raise_on_budget:
                raise OptimizerBudgetExhausted(message, result)
        return result


class ModelOptimizer(AbstractOptimizer):
    """
    Shared machinery for searches that tune one model family.

    Each parameter set is scored by subject-grouped cross-validation inside
    the training package. When the package has fewer subjects than
    `inner_folds` (or `inner_folds` is None), the model is scored on its
    own training rows.
    """

    def __init__(self, package: DataPackage, analytics: ConfusionMatrixAnalytics,
                 base_params: Optional[Dict[str, Any]] = None, inner_folds: Optional[int] = 3,
                 seed: Optional[int] = None, max_evaluations: int = 100,
                 logger: Optional[logging.Logger] = None, raise_on_budget: bool = False):
        super().__init__(max_evaluations, logger, raise_on_budget)
        self.package = package
        self.analytics = analytics
        self.base_params = dict(base_params or {})
        self.inner_folds = inner_folds
        self.seed = seed
        self.evaluations = 0
        self._history: List[Dict[str, Any]] = []
        self._folds = self._inner_folds()

    def _inner_folds(self):
        if self.inner_folds is None:
            return None
        subjects = len(self.package.rows_by_subject())
        if subjects < max(2, self.inner_folds):
            self.logger.debug(f"Only {subjects} subjects; scoring on training rows")
            return None
        return PatientFoldGenerator(self.inner_folds, seed=self.seed, logger=self.logger).generate(self.package)

    @abc.abstractmethod
    def _build_model(self, params: Dict[str, Any]) -> AbstractModel:
        raise NotImplementedError

    def _budget_left(self) -> bool:
        return self.evaluations < self.max_evaluations

    def cross_validate(self, params: Dict[str, Any]) -> float:
        """Mean fold score of a model built with `params`."""
        self.evaluations += 1
        if self._folds is None:
            splits = [(self.package, self.package)]
        else:
            splits = [(self.package.subset_rows(f.train_indices), self.package.subset_rows(f.validation_indices))
                      for f in self._folds]

        scores = []
        for train, validation in splits:
            try:
                model = self._build_model(params).train(train)
                predictions = model.predict_package(validation)
                scores.append(self.analytics.score_predictions(validation.labels(), predictions))
            except PipelineSearchException:
                raise
            except (ValueError, ArithmeticError, np.linalg.LinAlgError) as e:
                self.logger.debug(f"Inner fold failed for {params}: {e}")
                scores.append(self.analytics.worst_score())

        score = float(np.mean(scores))
        self._history.append({"params": dict(params), "score": score})
        return score

    def model(self) -> AbstractModel:
        """Best model retrained on the whole training package."""
        best = self.result()
        return self._build_model(best.parameters).train(self.package)
