import abc
import logging
from typing import Any, Dict, List, Optional

from modules.data_package import DataPackage
from utils.exceptions import PreprocessingError


class BaseStage(abc.ABC):
    """
    Abstract base class for pipeline preprocessing stages.

    Lifecycle:
    - build(training): learn parameters from the training partition only.
    - run(training): build, then return the transformed training partition.
    - transform(package): replay the learned parameters on other data
      (validation). Row-resampling stages return the package unchanged.

    Stages never mutate the package they receive; each transform returns a
    new DataPackage.
    """

    #: Stage name used in the catalog and in pipeline descriptors.
    name: str = ""
    #: True when the stage adds or removes rows rather than changing features.
    resamples_rows: bool = False

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(self.__class__.__module__)
        self._built = False

    @property
    def is_built(self) -> bool:
        return self._built

    def build(self, training: DataPackage) -> "BaseStage":
        self._fit(training)
        self._built = True
        return self

    def run(self, training: DataPackage) -> DataPackage:
        self.build(training)
        return self._apply_training(training)

    def transform(self, package: DataPackage) -> DataPackage:
        if not self._built:
            raise PreprocessingError(f"Stage '{self.name}' must be built before transform.")
        if self.resamples_rows:
            return package
        return self._apply(package)

    def _apply_training(self, training: DataPackage) -> DataPackage:
        return self._apply(training)

    @abc.abstractmethod
    def _fit(self, training: DataPackage) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    def _apply(self, package: DataPackage) -> DataPackage:
        raise NotImplementedError

    @abc.abstractmethod
    def get_params(self) -> Dict[str, Any]:
        raise NotImplementedError

    @classmethod
    def parameter_ranges(cls, package: DataPackage) -> Dict[str, List[Any]]:
        """Discrete hyperparameter choices explored by the pipeline parameter search."""
        return {}

    @classmethod
    def tunable_ranges(cls, package: DataPackage, pinned: Dict[str, Any]) -> Dict[str, List[Any]]:
        """Ranges of the parameters that `pinned` does not already fix."""
        return {name: choices for name, choices in cls.parameter_ranges(package).items() if name not in pinned}

    def __repr__(self) -> str:
        params = ", ".join(f"{k}={v!r}" for k, v in self.get_params().items())
        return f"{self.__class__.__name__}({params})"
