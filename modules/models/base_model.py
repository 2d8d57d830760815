import abc
import numpy as np
from typing import Any, Dict, List, Optional, Sequence

from modules.data_package import DataPackage
from utils.exceptions import ModelTrainingError


class AbstractModel(abc.ABC):
    """
    Abstract base class for all trainable predictors.

    A model remembers the feature names it was trained on. `predict_package`
    pulls exactly those columns from any package, so a model trained after a
    feature-changing stage can still be applied to data passed through the
    same fitted stage.
    """

    def __init__(self, feature_names: Optional[Sequence[str]] = None):
        self._feature_names: List[str] = list(feature_names) if feature_names else []
        self.classes_: Optional[np.ndarray] = None

    @property
    def feature_names(self) -> List[str]:
        return list(self._feature_names)

    @feature_names.setter
    def feature_names(self, names: Sequence[str]) -> None:
        self._feature_names = list(names)

    @property
    def is_trained(self) -> bool:
        return self.classes_ is not None

    @abc.abstractmethod
    def train(self, package: DataPackage) -> "AbstractModel":
        """Fit the model on every row of `package`."""
        raise NotImplementedError

    @abc.abstractmethod
    def evaluate(self, row_features) -> Any:
        """Predicted label for one row, ordered like `feature_names`."""
        raise NotImplementedError

    @abc.abstractmethod
    def get_params(self) -> Dict[str, Any]:
        raise NotImplementedError

    def predict(self, matrix) -> np.ndarray:
        self._check_trained()
        matrix = np.atleast_2d(np.asarray(matrix, dtype=float))
        return np.array([self.evaluate(row) for row in matrix])

    def predict_package(self, package: DataPackage) -> np.ndarray:
        self._check_trained()
        return self.predict(package.feature_database_subset(self._feature_names))

    def _check_trained(self) -> None:
        if not self.is_trained:
            raise ModelTrainingError(f"{self.__class__.__name__} has not been trained.")

    @staticmethod
    def _check_trainable(package: DataPackage) -> None:
        if package.row_count() == 0:
            raise ModelTrainingError("Cannot train on an empty package.")
        if package.feature_count() == 0:
            raise ModelTrainingError("Cannot train without features.")
