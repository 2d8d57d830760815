import numpy as np
import pandas as pd
from typing import Any, Dict, FrozenSet, List, Optional

from modules.data_package import DataPackage
from modules.preprocessing.base_stage import BaseStage
from utils.exceptions import PreprocessingError


class DataOptimizer(BaseStage):
    """
    Redundant-feature analysis plus missing-value imputation.

    A feature is redundant when it:
    - has zero variance over its observed values,
    - is missing in more than `max_missing_ratio` of rows, or
    - has |Pearson r| above `correlation_threshold` with an earlier,
      non-redundant feature.

    As a stage it drops the redundant features and fills remaining gaps with
    the training-set column means.
    """

    name = "DataOptimizer"

    def __init__(self, max_missing_ratio: float = 0.5, correlation_threshold: float = 0.95, logger=None):
        super().__init__(logger)
        self.max_missing_ratio = max_missing_ratio
        self.correlation_threshold = correlation_threshold
        self._redundant: Optional[FrozenSet[str]] = None
        self._kept: List[str] = []
        self._means: Optional[np.ndarray] = None

    def get_params(self) -> Dict[str, Any]:
        return {"max_missing_ratio": self.max_missing_ratio, "correlation_threshold": self.correlation_threshold}

    def analyze(self, package: DataPackage) -> FrozenSet[str]:
        """Read-only redundancy analysis of `package`."""
        frame = pd.DataFrame(package.feature_database(), columns=package.feature_names())
        redundant = set()

        missing_ratio = frame.isna().mean()
        redundant.update(missing_ratio[missing_ratio > self.max_missing_ratio].index)

        for name in frame.columns:
            observed = frame[name].dropna()
            if observed.empty or observed.nunique() <= 1:
                redundant.add(name)

        candidates = [name for name in frame.columns if name not in redundant]
        if len(candidates) > 1:
            corr = frame[candidates].corr().abs()
            for i, name in enumerate(candidates):
                if name in redundant:
                    continue
                for other in candidates[i + 1:]:
                    if other not in redundant and corr.loc[name, other] > self.correlation_threshold:
                        redundant.add(other)

        return frozenset(redundant)

    def redundant_features(self) -> FrozenSet[str]:
        if self._redundant is None:
            raise PreprocessingError("DataOptimizer must be built before querying redundant features.")
        return self._redundant

    def _fit(self, training: DataPackage) -> None:
        self._redundant = self.analyze(training)
        self._kept = [name for name in training.feature_names() if name not in self._redundant]
        if not self._kept:
            # Never hand an empty schema to the model
            self._kept = training.feature_names()[:1]
        with np.errstate(all="ignore"):
            means = np.nanmean(training.feature_database_subset(self._kept), axis=0)
        self._means = np.nan_to_num(means, nan=0.0)
        if self._redundant:
            self.logger.info(f"DataOptimizer flagged {len(self._redundant)} redundant features: {sorted(self._redundant)}")

    def _apply(self, package: DataPackage) -> DataPackage:
        values = package.feature_database_subset(self._kept)
        gaps = np.isnan(values)
        if gaps.any():
            values[gaps] = np.take(self._means, np.nonzero(gaps)[1])
        return package.with_data(values=values, feature_names=self._kept)
