import numpy as np
from itertools import combinations
from typing import Any, Dict, List, Optional, Sequence, Tuple
from scipy.stats import gaussian_kde
from sklearn.neighbors import KernelDensity
from sklearn.preprocessing import StandardScaler

from modules.data_package import DataPackage
from modules.models.base_model import AbstractModel
from utils import constants


class KernelDensityExtractor:
    """
    Per-feature, per-class kernel density estimates on a shared grid.

    Each class density is rendered over the feature's global min-max range
    and normalized to unit mass. The overlap ratio of a feature is the summed
    pairwise intersection of its class densities divided by their summed
    area; a low ratio marks a feature that separates the classes well.
    """

    def __init__(self, values, labels, bin_count: int = constants.KDE_BIN_COUNT):
        self.values = np.asarray(values, dtype=float)
        self.labels = np.asarray(labels)
        self.bin_count = bin_count
        self.classes = np.unique(self.labels).tolist()
        self._kernels: Dict[Tuple[Any, int], np.ndarray] = {}
        self._ratios: Optional[List[Tuple[float, int]]] = None

    @classmethod
    def from_package(cls, package: DataPackage, bin_count: int = constants.KDE_BIN_COUNT) -> "KernelDensityExtractor":
        return cls(package.feature_database(), package.labels(), bin_count)

    def kernel(self, label, feature_index: int) -> np.ndarray:
        key = (label, feature_index)
        if key not in self._kernels:
            self._kernels[key] = self._render(label, feature_index)
        return self._kernels[key]

    def _render(self, label, feature_index: int) -> np.ndarray:
        column = self.values[:, feature_index]
        finite = np.isfinite(column)
        low, high = np.min(column[finite]), np.max(column[finite])
        grid = np.linspace(low, high, self.bin_count)
        samples = column[finite & (self.labels == label)]

        density = np.zeros(self.bin_count)
        if samples.size == 0:
            return density
        if samples.size < 2 or np.std(samples) == 0 or high == low:
            # Degenerate class distribution: a spike at the nearest bin
            for sample in samples:
                density[int(np.argmin(np.abs(grid - sample)))] += 1.0
        else:
            density = gaussian_kde(samples)(grid)

        total = density.sum()
        return density / total if total > 0 else density

    def overlap_ratio(self, feature_index: int) -> float:
        area = 0.0
        intersection = 0.0
        for label in self.classes:
            area += self.kernel(label, feature_index).sum()
        for label_a, label_b in combinations(self.classes, 2):
            intersection += np.minimum(self.kernel(label_a, feature_index),
                                       self.kernel(label_b, feature_index)).sum()
        return float(intersection / area) if area > 0 else 1.0

    def overlap_ratios(self) -> List[Tuple[float, int]]:
        """(ratio, feature index) pairs sorted by ascending overlap."""
        if self._ratios is None:
            ratios = [(self.overlap_ratio(idx), idx) for idx in range(self.values.shape[1])]
            self._ratios = sorted(ratios)
        return list(self._ratios)

    def ranked_features(self) -> List[int]:
        return [idx for _, idx in self.overlap_ratios()]


class KernelDensityModel(AbstractModel):
    """
    Generative classifier: one kernel density per class over standardized
    features, predicting the class with the highest log-density plus
    log-prior.
    """

    def __init__(self, bandwidth: float = 1.0, kernel: str = "gaussian",
                 feature_names: Optional[Sequence[str]] = None):
        super().__init__(feature_names)
        self.bandwidth = bandwidth
        self.kernel = kernel
        self._scaler: Optional[StandardScaler] = None
        self._densities: List[KernelDensity] = []
        self._log_priors: Optional[np.ndarray] = None

    def get_params(self) -> Dict[str, Any]:
        return {"bandwidth": self.bandwidth, "kernel": self.kernel}

    def train(self, package: DataPackage) -> "KernelDensityModel":
        self._check_trainable(package)
        values = package.feature_database()
        labels = package.labels()

        self._scaler = StandardScaler().fit(values)
        scaled = self._scaler.transform(values)

        classes, counts = np.unique(labels, return_counts=True)
        self._densities = [
            KernelDensity(bandwidth=self.bandwidth, kernel=self.kernel).fit(scaled[labels == label])
            for label in classes
        ]
        self._log_priors = np.log(counts / counts.sum())
        self.feature_names = package.feature_names()
        self.classes_ = classes
        return self

    def log_scores(self, matrix) -> np.ndarray:
        self._check_trained()
        scaled = self._scaler.transform(np.atleast_2d(np.asarray(matrix, dtype=float)))
        return np.column_stack([
            density.score_samples(scaled) + prior
            for density, prior in zip(self._densities, self._log_priors)
        ])

    def predict(self, matrix) -> np.ndarray:
        return self.classes_[np.argmax(self.log_scores(matrix), axis=1)]

    def evaluate(self, row_features) -> Any:
        return self.predict(np.asarray(row_features, dtype=float).reshape(1, -1))[0]
