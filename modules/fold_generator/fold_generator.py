import logging
import numpy as np
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional

from modules.data_package import DataPackage
from utils.exceptions import ConfigurationError, InsufficientSubjectsError


@dataclass(frozen=True)
class Fold:
    """Disjoint train/validation row indices over one DataPackage."""
    fold_index: int
    train_indices: np.ndarray
    validation_indices: np.ndarray


class PatientFoldGenerator:
    """
    Partitions rows into k folds grouped by subject id.

    Every subject's rows land in exactly one validation bucket. Buckets are
    filled largest-group-first into whichever bucket currently holds the
    fewest rows, so folds are balanced by row count rather than group count.
    With `stratify=True` the balancing is done per majority class of each
    subject, which keeps the class mix of each bucket close to the global one.
    """

    def __init__(self, n_folds: int, seed: Optional[int] = None, stratify: bool = False,
                 logger: Optional[logging.Logger] = None):
        if n_folds < 2:
            raise ConfigurationError(f"Fold count must be >= 2, got {n_folds}.")
        self.n_folds = n_folds
        self.seed = seed
        self.stratify = stratify
        self.logger = logger or logging.getLogger(__name__)

    def folds(self, package: DataPackage) -> Iterator[Fold]:
        """Yield the k folds. Calling again with the same seed yields the same partition."""
        buckets = self._assign_buckets(package)
        all_rows = np.arange(package.row_count())

        for fold_index, bucket in enumerate(buckets):
            validation = np.sort(np.asarray(bucket, dtype=int))
            train = np.setdiff1d(all_rows, validation, assume_unique=True)
            yield Fold(fold_index, train, validation)

    def generate(self, package: DataPackage) -> List[Fold]:
        return list(self.folds(package))

    def _assign_buckets(self, package: DataPackage) -> List[List[int]]:
        groups = package.rows_by_subject()
        n_subjects = len(groups)
        if self.n_folds > n_subjects:
            raise InsufficientSubjectsError(
                f"Cannot build {self.n_folds} folds from {n_subjects} distinct subjects."
            )

        # Sort first so the shuffle does not depend on row order.
        subjects = sorted(groups.keys(), key=str)
        rng = np.random.default_rng(self.seed)
        order = rng.permutation(len(subjects))
        shuffled = [subjects[i] for i in order]

        buckets: List[List[int]] = [[] for _ in range(self.n_folds)]
        if self.stratify:
            labels = package.labels()
            by_class: Dict = {}
            for subject in shuffled:
                rows = groups[subject]
                values, counts = np.unique(labels[rows], return_counts=True)
                majority = values.tolist()[int(np.argmax(counts))]
                by_class.setdefault(majority, []).append(subject)
            for class_label in sorted(by_class, key=str):
                self._fill(buckets, by_class[class_label], groups)
        else:
            self._fill(buckets, shuffled, groups)

        sizes = [len(b) for b in buckets]
        self.logger.debug(f"Fold bucket sizes (rows): {sizes}")
        return buckets

    def _fill(self, buckets: List[List[int]], subjects: List, groups: Dict) -> None:
        """Greedy largest-first assignment into the emptiest bucket."""
        # Stable sort keeps the shuffled order among equally sized groups.
        ordered = sorted(subjects, key=lambda s: len(groups[s]), reverse=True)
        # Each class fills the buckets it has touched least, then by total rows.
        added = [0] * len(buckets)
        for subject in ordered:
            if any(not b for b in buckets):
                target = next(i for i, b in enumerate(buckets) if not b)
            else:
                target = min(range(len(buckets)), key=lambda i: (added[i], len(buckets[i]), i))
            buckets[target].extend(groups[subject])
            added[target] += len(groups[subject])

    @staticmethod
    def is_valid(fold: Fold, package: DataPackage, min_class_count: int = 1) -> bool:
        """
        True when the validation set holds every class and the training set
        holds at least `min_class_count` rows of each class.
        """
        labels = package.labels()
        classes = set(np.unique(labels).tolist())
        val_classes = set(np.unique(labels[fold.validation_indices]).tolist())
        if val_classes != classes:
            return False
        train_values, train_counts = np.unique(labels[fold.train_indices], return_counts=True)
        train_map = dict(zip(train_values.tolist(), train_counts.tolist()))
        return all(train_map.get(c, 0) >= min_class_count for c in classes)
