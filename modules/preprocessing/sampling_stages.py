import numpy as np
from typing import Any, Dict, List, Optional
from imblearn.over_sampling import SMOTE, BorderlineSMOTE, RandomOverSampler
from imblearn.under_sampling import RandomUnderSampler, TomekLinks

from modules.data_package import DataPackage
from modules.preprocessing.base_stage import BaseStage
from utils import constants
from utils.exceptions import ConfigurationError, DegenerateMatrixError

OVERSAMPLING_METHODS = ("SMOTE", "BorderlineSMOTE", "RandomOversampling")
UNDERSAMPLING_METHODS = ("RandomUndersampling", "TomekLinks")


class OversamplingStage(BaseStage):
    """
    Adds minority rows to the training partition.

    `percentage` grows the minority class by that share of its size
    (e.g. 200 triples it); None balances the classes. Synthetic rows get
    fresh subject ids so they never share a subject with a real row.
    """

    name = "Oversampling"
    resamples_rows = True

    def __init__(self, method: str = "SMOTE", k_neighbors: int = 5, m_neighbors: int = 10,
                 percentage: Optional[float] = None, random_state: Optional[int] = None, logger=None):
        super().__init__(logger)
        if method not in OVERSAMPLING_METHODS:
            raise ConfigurationError(f"Unknown oversampling method '{method}'. Available: {OVERSAMPLING_METHODS}")
        self.method = method
        self.k_neighbors = k_neighbors
        self.m_neighbors = m_neighbors
        self.percentage = percentage
        self.random_state = random_state
        self._sampler = None

    def get_params(self) -> Dict[str, Any]:
        return {
            "method": self.method,
            "k_neighbors": self.k_neighbors,
            "m_neighbors": self.m_neighbors,
            "percentage": self.percentage,
        }

    @classmethod
    def parameter_ranges(cls, package: DataPackage) -> Dict[str, List[Any]]:
        return {
            "method": list(OVERSAMPLING_METHODS),
            "k_neighbors": list(range(1, 10)),
            "m_neighbors": list(range(1, 21)),
            "percentage": [None] + list(range(50, 1001, 50)),
        }

    def _sampling_strategy(self, training: DataPackage):
        if self.percentage is None:
            return "auto"
        minority = training.minority_label()
        count = training.label_counts()[minority]
        return {minority: int(round(count * (1.0 + self.percentage / 100.0)))}

    def _fit(self, training: DataPackage) -> None:
        counts = training.label_counts()
        if len(counts) < 2:
            raise DegenerateMatrixError("Oversampling needs at least two classes in the training data.")
        minority_count = min(counts.values())
        strategy = self._sampling_strategy(training)

        if self.method == "RandomOversampling":
            self._sampler = RandomOverSampler(sampling_strategy=strategy, random_state=self.random_state)
            return

        if minority_count < 2:
            raise DegenerateMatrixError(
                f"{self.method} needs at least 2 minority rows, found {minority_count}."
            )
        k = max(1, min(self.k_neighbors, minority_count - 1))
        if self.method == "SMOTE":
            self._sampler = SMOTE(sampling_strategy=strategy, k_neighbors=k, random_state=self.random_state)
        else:
            m = max(1, min(self.m_neighbors, training.row_count() - 1))
            self._sampler = BorderlineSMOTE(sampling_strategy=strategy, k_neighbors=k, m_neighbors=m,
                                            random_state=self.random_state)

    def _apply(self, package: DataPackage) -> DataPackage:
        return package

    def _apply_training(self, training: DataPackage) -> DataPackage:
        values, labels = self._sampler.fit_resample(training.feature_database(), training.labels())
        original_rows = training.row_count()
        added = values.shape[0] - original_rows

        # imbalanced-learn keeps the original rows first and appends synthetic ones
        subjects = list(training.subject_ids().tolist())
        subjects.extend(f"{constants.SYNTHETIC_SUBJECT_PREFIX}{i}" for i in range(added))
        self.logger.debug(f"{self.method} added {added} rows to {original_rows}")
        return training.with_data(values=values, labels=labels, subject_ids=np.array(subjects, dtype=object))


class UndersamplingStage(BaseStage):
    """Removes majority rows from the training partition."""

    name = "Undersampling"
    resamples_rows = True

    def __init__(self, method: str = "RandomUndersampling", random_state: Optional[int] = None, logger=None):
        super().__init__(logger)
        if method not in UNDERSAMPLING_METHODS:
            raise ConfigurationError(f"Unknown undersampling method '{method}'. Available: {UNDERSAMPLING_METHODS}")
        self.method = method
        self.random_state = random_state
        self._sampler = None

    def get_params(self) -> Dict[str, Any]:
        return {"method": self.method}

    @classmethod
    def parameter_ranges(cls, package: DataPackage) -> Dict[str, List[Any]]:
        return {"method": list(UNDERSAMPLING_METHODS)}

    def _fit(self, training: DataPackage) -> None:
        if len(training.label_counts()) < 2:
            raise DegenerateMatrixError("Undersampling needs at least two classes in the training data.")
        if self.method == "RandomUndersampling":
            self._sampler = RandomUnderSampler(random_state=self.random_state)
        else:
            self._sampler = TomekLinks()

    def _apply(self, package: DataPackage) -> DataPackage:
        return package

    def _apply_training(self, training: DataPackage) -> DataPackage:
        self._sampler.fit_resample(training.feature_database(), training.labels())
        kept = np.sort(self._sampler.sample_indices_)
        self.logger.debug(f"{self.method} kept {kept.size} of {training.row_count()} rows")
        return training.subset_rows(kept)
