import numpy as np
import pandas as pd
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Union

from utils.exceptions import DataValidationError, UnknownFeatureError


class FeatureType(str, Enum):
    CONTINUOUS = "continuous"
    CATEGORICAL = "categorical"


@dataclass(frozen=True)
class Feature:
    """Named column of the feature matrix."""
    name: str
    feature_type: FeatureType
    column_index: int


class DataPackage:
    """
    Tabular store for one dataset: a float feature matrix (rows x features),
    one label per row and one subject id per row.

    The package owns copies of everything it is given. Accessors that hand
    out data either return read-only views or independent copies, so a
    subset taken for one fold can be mutated without touching the source.
    The only in-place mutation is `remove`.
    """

    def __init__(self, feature_names: Sequence[str], values, labels,
                 subject_ids=None, feature_types: Optional[Dict[str, FeatureType]] = None,
                 label_name: str = "label"):
        names = [str(name) for name in feature_names]
        if len(set(names)) != len(names):
            duplicates = sorted(name for name, count in Counter(names).items() if count > 1)
            raise DataValidationError(f"Feature names must be unique, duplicates: {duplicates}")

        matrix = np.array(values, dtype=float, copy=True)
        if matrix.ndim == 1 and len(names) == 1:
            matrix = matrix.reshape(-1, 1)
        if matrix.ndim != 2 or matrix.shape[1] != len(names):
            raise DataValidationError(
                f"Feature matrix shape {matrix.shape} does not match {len(names)} feature names."
            )

        label_array = np.array(labels, copy=True)
        if label_array.shape[0] != matrix.shape[0]:
            raise DataValidationError(
                f"Label count ({label_array.shape[0]}) does not match row count ({matrix.shape[0]})."
            )

        if subject_ids is None:
            subject_array = np.arange(matrix.shape[0])
        else:
            subject_array = np.array(subject_ids, copy=True)
        if subject_array.shape[0] != matrix.shape[0]:
            raise DataValidationError(
                f"Subject id count ({subject_array.shape[0]}) does not match row count ({matrix.shape[0]})."
            )

        feature_types = feature_types or {}
        self._features = [
            Feature(name, FeatureType(feature_types.get(name, FeatureType.CONTINUOUS)), idx)
            for idx, name in enumerate(names)
        ]
        self._index = {feature.name: feature.column_index for feature in self._features}
        self._values = matrix
        self._labels = label_array
        self._subjects = subject_array
        self.label_name = label_name

    # ------------------------------------------------------------------
    # Construction helpers
    # ------------------------------------------------------------------

    @classmethod
    def from_frame(cls, df: pd.DataFrame, label_column: str, subject_column: Optional[str] = None,
                   categorical: Iterable[str] = ()) -> "DataPackage":
        """
        Build a package from a DataFrame. Every column other than the label
        and subject columns becomes a feature.
        """
        missing = [col for col in (label_column, subject_column) if col and col not in df.columns]
        if missing:
            raise UnknownFeatureError(f"Columns not found in frame: {missing}")

        feature_cols = [c for c in df.columns if c not in (label_column, subject_column)]
        categorical = set(categorical)
        unknown = categorical.difference(feature_cols)
        if unknown:
            raise UnknownFeatureError(f"Categorical features not found in frame: {sorted(unknown)}")

        types = {col: FeatureType.CATEGORICAL if col in categorical else FeatureType.CONTINUOUS
                 for col in feature_cols}
        return cls(
            feature_cols,
            df[feature_cols].to_numpy(dtype=float),
            df[label_column].to_numpy(),
            df[subject_column].to_numpy() if subject_column else None,
            feature_types=types,
            label_name=label_column,
        )

    def to_frame(self) -> pd.DataFrame:
        df = pd.DataFrame(self._values, columns=self.feature_names())
        df[self.label_name] = self._labels
        df["subject_id"] = self._subjects
        return df

    def with_data(self, values=None, labels=None, subject_ids=None,
                  feature_names: Optional[Sequence[str]] = None) -> "DataPackage":
        """Return a new package, replacing whichever parts are given."""
        names = list(feature_names) if feature_names is not None else self.feature_names()
        types = {f.name: f.feature_type for f in self._features if f.name in set(names)}
        return DataPackage(
            names,
            self._values if values is None else values,
            self._labels if labels is None else labels,
            self._subjects if subject_ids is None else subject_ids,
            feature_types=types,
            label_name=self.label_name,
        )

    def copy(self) -> "DataPackage":
        return self.with_data()

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    def feature_count(self) -> int:
        return len(self._features)

    def feature_names(self) -> List[str]:
        return [feature.name for feature in self._features]

    def features(self) -> List[Feature]:
        return list(self._features)

    def feature(self, name: str) -> Feature:
        return self._features[self._column(name)]

    def has_feature(self, name: str) -> bool:
        return name in self._index

    def _column(self, name: str) -> int:
        try:
            return self._index[name]
        except KeyError:
            raise UnknownFeatureError(f"Unknown feature: '{name}'") from None

    # ------------------------------------------------------------------
    # Data access
    # ------------------------------------------------------------------

    def row_count(self) -> int:
        return self._values.shape[0]

    def feature_column(self, name: str) -> np.ndarray:
        return self._values[:, self._column(name)].copy()

    def feature_database(self) -> np.ndarray:
        """Read-only view of the full feature matrix."""
        view = self._values.view()
        view.flags.writeable = False
        return view

    def mutable_feature_database(self) -> np.ndarray:
        """Writable reference to the internal matrix. Changes affect this package."""
        return self._values

    def feature_database_subset(self, names: Sequence[str]) -> np.ndarray:
        """Independent copy of the columns named in `names`, in that order."""
        columns = [self._column(name) for name in names]
        return self._values[:, columns].copy()

    def subset_features(self, names: Sequence[str]) -> "DataPackage":
        return self.with_data(values=self.feature_database_subset(names), feature_names=names)

    def subset_rows(self, indices) -> "DataPackage":
        indices = np.asarray(indices, dtype=int)
        return self.with_data(
            values=self._values[indices],
            labels=self._labels[indices],
            subject_ids=self._subjects[indices],
        )

    def labels(self) -> np.ndarray:
        return self._labels.copy()

    def subject_ids(self) -> np.ndarray:
        return self._subjects.copy()

    def remove(self, key: Union[int, str]) -> None:
        """Remove a row (int index) or a feature (name) in place."""
        if isinstance(key, str):
            column = self._column(key)
            self._values = np.delete(self._values, column, axis=1)
            kept = [f for f in self._features if f.name != key]
            self._features = [Feature(f.name, f.feature_type, idx) for idx, f in enumerate(kept)]
            self._index = {f.name: f.column_index for f in self._features}
            return

        row = int(key)
        if not -self.row_count() <= row < self.row_count():
            raise IndexError(f"Row {row} out of range for {self.row_count()} rows")
        self._values = np.delete(self._values, row, axis=0)
        self._labels = np.delete(self._labels, row)
        self._subjects = np.delete(self._subjects, row)

    # ------------------------------------------------------------------
    # Labels and subjects
    # ------------------------------------------------------------------

    def label_classes(self) -> List:
        return sorted(np.unique(self._labels).tolist())

    def label_counts(self) -> Dict:
        values, counts = np.unique(self._labels, return_counts=True)
        return {value: int(count) for value, count in zip(values.tolist(), counts)}

    def minority_label(self):
        counts = self.label_counts()
        return min(sorted(counts), key=lambda label: counts[label])

    def majority_label(self):
        counts = self.label_counts()
        return max(sorted(counts), key=lambda label: counts[label])

    def subjects(self) -> List:
        return sorted(self.rows_by_subject().keys(), key=str)

    def rows_by_subject(self) -> Dict:
        groups: Dict = {}
        for row, subject in enumerate(self._subjects.tolist()):
            groups.setdefault(subject, []).append(row)
        return groups

    def __repr__(self) -> str:
        return (f"DataPackage(rows={self.row_count()}, features={self.feature_count()}, "
                f"subjects={len(self.rows_by_subject())})")
