import numpy as np
import pytest

from modules.data_package import DataPackage
from modules.fold_generator import Fold, PatientFoldGenerator
from utils.exceptions import ConfigurationError, InsufficientSubjectsError


class TestPartition:
    def test_validation_sets_partition_rows(self, package_factory, mock_logger):
        """Every row is validated exactly once and never trained on in the same fold."""
        pkg = package_factory(n_subjects=37, rows_per_subject=3)
        folds = PatientFoldGenerator(5, seed=1, logger=mock_logger).generate(pkg)

        assert len(folds) == 5
        validation = np.concatenate([f.validation_indices for f in folds])
        assert sorted(validation.tolist()) == list(range(pkg.row_count()))
        for fold in folds:
            assert not set(fold.train_indices) & set(fold.validation_indices)
            assert len(fold.train_indices) + len(fold.validation_indices) == pkg.row_count()

    def test_subjects_never_straddle_folds(self, package_factory):
        pkg = package_factory(n_subjects=20, rows_per_subject=4)
        subjects = pkg.subject_ids()
        for fold in PatientFoldGenerator(4, seed=3).folds(pkg):
            assert not set(subjects[fold.train_indices]) & set(subjects[fold.validation_indices])

    def test_balanced_by_rows(self, package):
        sizes = [len(f.validation_indices) for f in PatientFoldGenerator(5, seed=0).generate(package)]
        assert sizes == [20, 20, 20, 20, 20]

    def test_uneven_groups_stay_close(self):
        subjects = ["a"] * 6 + ["b"] * 3 + ["c"] * 3 + ["d"] * 2 + ["e"] * 2
        pkg = DataPackage(["x"], np.arange(16.0), [0, 1] * 8, subject_ids=subjects)
        sizes = sorted(len(f.validation_indices) for f in PatientFoldGenerator(2, seed=0).generate(pkg))
        assert sizes == [8, 8]

    def test_same_seed_same_folds(self, package):
        first = PatientFoldGenerator(5, seed=11).generate(package)
        second = PatientFoldGenerator(5, seed=11).generate(package)
        for a, b in zip(first, second):
            np.testing.assert_array_equal(a.validation_indices, b.validation_indices)

    def test_different_seed_changes_assignment(self, package):
        first = PatientFoldGenerator(5, seed=1).generate(package)
        second = PatientFoldGenerator(5, seed=2).generate(package)
        assert any(
            not np.array_equal(a.validation_indices, b.validation_indices)
            for a, b in zip(first, second)
        )


class TestStratified:
    def test_class_mix_per_fold(self, package):
        """30 positives over 5 folds gives 6 per fold."""
        labels = package.labels()
        for fold in PatientFoldGenerator(5, seed=4, stratify=True).generate(package):
            assert int(labels[fold.validation_indices].sum()) == 6
            assert PatientFoldGenerator.is_valid(fold, package)


class TestErrors:
    def test_too_few_folds(self):
        with pytest.raises(ConfigurationError, match=">= 2"):
            PatientFoldGenerator(1)

    def test_more_folds_than_subjects(self):
        pkg = DataPackage(["x"], np.arange(6.0), [0, 1, 0, 1, 0, 1], subject_ids=[1, 1, 2, 2, 3, 3])
        with pytest.raises(InsufficientSubjectsError, match="3 distinct subjects"):
            PatientFoldGenerator(4).generate(pkg)

    def test_is_valid_detects_missing_class(self):
        pkg = DataPackage(["x"], np.arange(4.0), [0, 0, 1, 1])
        fold = Fold(0, np.array([2, 3]), np.array([0, 1]))
        assert not PatientFoldGenerator.is_valid(fold, pkg)
