import numpy as np
from typing import Any, Dict, List, Optional
from sklearn.decomposition import PCA

from modules.data_package import DataPackage
from modules.preprocessing.base_stage import BaseStage
from utils.exceptions import ConfigurationError, DegenerateMatrixError


class PCAStage(BaseStage):
    """
    Principal component projection learned on training data.

    Either `n_components` or `preservation_percentage` (share of variance to
    keep, 1-100) selects the output size. The projected features are named
    PC1..PCn, replacing the input schema.
    """

    name = "PCA"

    def __init__(self, n_components: Optional[int] = None, preservation_percentage: Optional[float] = None,
                 random_state: Optional[int] = None, logger=None):
        super().__init__(logger)
        if n_components is not None and preservation_percentage is not None:
            raise ConfigurationError("Specify either n_components or preservation_percentage, not both.")
        if preservation_percentage is not None and not 0 < preservation_percentage <= 100:
            raise ConfigurationError(f"preservation_percentage must be in (0, 100], got {preservation_percentage}")
        if n_components is not None and n_components < 1:
            raise ConfigurationError(f"n_components must be >= 1, got {n_components}")
        if n_components is None and preservation_percentage is None:
            preservation_percentage = 95.0
        self.n_components = n_components
        self.preservation_percentage = preservation_percentage
        self.random_state = random_state
        self._pca: Optional[PCA] = None
        self._input_names: List[str] = []

    def get_params(self) -> Dict[str, Any]:
        return {"n_components": self.n_components, "preservation_percentage": self.preservation_percentage}

    @classmethod
    def parameter_ranges(cls, package: DataPackage) -> Dict[str, List[Any]]:
        return {"preservation_percentage": list(range(90, 100))}

    @classmethod
    def tunable_ranges(cls, package: DataPackage, pinned: Dict[str, Any]) -> Dict[str, List[Any]]:
        if pinned.get("n_components") is not None:
            return {}
        return super().tunable_ranges(package, pinned)

    def _fit(self, training: DataPackage) -> None:
        values = training.feature_database()
        if not np.all(np.isfinite(values)):
            raise DegenerateMatrixError("PCA input contains missing or non-finite values.")
        if values.shape[0] < 2:
            raise DegenerateMatrixError("PCA needs at least two rows.")

        centered = values - values.mean(axis=0)
        if np.allclose(centered, 0.0):
            raise DegenerateMatrixError("PCA input has zero total variance.")

        rank = int(np.linalg.matrix_rank(centered))
        if self.n_components is not None:
            if self.n_components > rank:
                raise DegenerateMatrixError(
                    f"Requested {self.n_components} components but the training matrix has rank {rank}."
                )
            components = self.n_components
        else:
            components = min(self.preservation_percentage / 100.0, 1.0)
            if components >= 1.0:
                components = rank

        self._pca = PCA(n_components=components, svd_solver="full", random_state=self.random_state)
        self._pca.fit(values)
        self._input_names = training.feature_names()
        self.logger.debug(f"PCA kept {self._pca.n_components_} of {values.shape[1]} dimensions")

    def _apply(self, package: DataPackage) -> DataPackage:
        projected = self._pca.transform(package.feature_database_subset(self._input_names))
        names = [f"PC{i + 1}" for i in range(projected.shape[1])]
        return package.with_data(values=projected, feature_names=names)

    @property
    def explained_variance_ratio(self) -> np.ndarray:
        return self._pca.explained_variance_ratio_.copy()
