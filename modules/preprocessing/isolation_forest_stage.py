import numpy as np
from typing import Any, Dict, List, Optional, Union
from sklearn.ensemble import IsolationForest

from modules.data_package import DataPackage
from modules.preprocessing.base_stage import BaseStage
from utils.exceptions import DegenerateMatrixError


class IsolationForestStage(BaseStage):
    """Drops training rows that an isolation forest flags as outliers."""

    name = "IsolationForest"
    resamples_rows = True

    def __init__(self, n_estimators: int = 100, contamination: Union[str, float] = "auto",
                 random_state: Optional[int] = None, logger=None):
        super().__init__(logger)
        self.n_estimators = n_estimators
        self.contamination = contamination
        self.random_state = random_state
        self._forest: Optional[IsolationForest] = None

    def get_params(self) -> Dict[str, Any]:
        return {"n_estimators": self.n_estimators, "contamination": self.contamination}

    @classmethod
    def parameter_ranges(cls, package: DataPackage) -> Dict[str, List[Any]]:
        n = max(1, package.feature_count())
        return {"n_estimators": [n * 5, n * 10, n * 20]}

    def _fit(self, training: DataPackage) -> None:
        values = training.feature_database()
        if not np.all(np.isfinite(values)):
            raise DegenerateMatrixError("IsolationForest input contains missing or non-finite values.")
        self._forest = IsolationForest(
            n_estimators=self.n_estimators,
            contamination=self.contamination,
            random_state=self.random_state,
        ).fit(values)

    def _apply(self, package: DataPackage) -> DataPackage:
        return package

    def _apply_training(self, training: DataPackage) -> DataPackage:
        inliers = np.flatnonzero(self._forest.predict(training.feature_database()) == 1)
        kept = training.subset_rows(inliers)
        lost = set(training.label_classes()) - set(kept.label_classes())
        if lost:
            raise DegenerateMatrixError(f"Outlier removal would drop every row of classes {sorted(lost, key=str)}.")
        self.logger.debug(f"IsolationForest removed {training.row_count() - kept.row_count()} outlier rows")
        return kept
