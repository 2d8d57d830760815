import numpy as np
from typing import Any, Dict, List, Optional
from sklearn.feature_selection import r_regression

from modules.data_package import DataPackage
from modules.models.kernel_density import KernelDensityExtractor
from modules.preprocessing.base_stage import BaseStage
from utils.exceptions import ConfigurationError

RANK_METHODS = ("RSquared", "KernelDensity")


class FeatureSelectionStage(BaseStage):
    """
    Keeps the top-ranked training features.

    Ranking methods:
    - RSquared: squared Pearson correlation between each feature and the
      label's class index.
    - KernelDensity: ascending class-density overlap.

    At least two features are kept whenever that many exist.
    """

    name = "FeatureSelection"

    def __init__(self, feature_count: int = 5, rank_method: str = "RSquared", logger=None):
        super().__init__(logger)
        if rank_method not in RANK_METHODS:
            raise ConfigurationError(f"Unknown rank method '{rank_method}'. Available: {RANK_METHODS}")
        self.feature_count = feature_count
        self.rank_method = rank_method
        self.selected_features: List[str] = []

    def get_params(self) -> Dict[str, Any]:
        return {"feature_count": self.feature_count, "rank_method": self.rank_method}

    @classmethod
    def parameter_ranges(cls, package: DataPackage) -> Dict[str, List[Any]]:
        n = package.feature_count()
        return {"feature_count": list(range(min(3, n), n + 1)), "rank_method": list(RANK_METHODS)}

    def rank(self, training: DataPackage) -> List[str]:
        names = training.feature_names()
        values = training.feature_database()

        if self.rank_method == "KernelDensity":
            order = KernelDensityExtractor(values, training.labels()).ranked_features()
            return [names[i] for i in order]

        classes = training.label_classes()
        target = np.array([classes.index(label) for label in training.labels().tolist()], dtype=float)
        with np.errstate(divide="ignore", invalid="ignore"):
            r_squared = np.nan_to_num(r_regression(values, target) ** 2, nan=0.0)
        # Stable sort keeps column order among ties
        order = np.argsort(-r_squared, kind="stable")
        return [names[i] for i in order]

    def _fit(self, training: DataPackage) -> None:
        keep = min(training.feature_count(), max(2, self.feature_count))
        self.selected_features = self.rank(training)[:keep]
        self.logger.debug(f"Selected features: {self.selected_features}")

    def _apply(self, package: DataPackage) -> DataPackage:
        return package.subset_features(self.selected_features)
