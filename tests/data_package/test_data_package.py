import numpy as np
import pandas as pd
import pytest

from modules.data_package import DataPackage, FeatureType
from utils.exceptions import DataValidationError, UnknownFeatureError


@pytest.fixture
def small_package():
    values = np.array([[1.0, 10.0, 100.0],
                       [2.0, 20.0, 200.0],
                       [3.0, 30.0, 300.0],
                       [4.0, 40.0, 400.0]])
    return DataPackage(["a", "b", "c"], values, [0, 1, 0, 1], subject_ids=["s1", "s1", "s2", "s3"])


class TestConstruction:
    def test_copies_inputs(self):
        """Mutating the caller's arrays after construction does not leak into the package."""
        values = np.zeros((2, 2))
        labels = np.array([0, 1])
        pkg = DataPackage(["x", "y"], values, labels)
        values[0, 0] = 99.0
        labels[0] = 7
        assert pkg.feature_database()[0, 0] == 0.0
        assert pkg.labels()[0] == 0

    def test_duplicate_feature_names(self):
        with pytest.raises(DataValidationError, match="unique"):
            DataPackage(["x", "x"], np.zeros((2, 2)), [0, 1])

    def test_shape_mismatch(self):
        with pytest.raises(DataValidationError, match="does not match"):
            DataPackage(["x", "y", "z"], np.zeros((2, 2)), [0, 1])

    def test_label_count_mismatch(self):
        with pytest.raises(DataValidationError, match="Label count"):
            DataPackage(["x"], np.zeros((3, 1)), [0, 1])

    def test_default_subjects_are_row_numbers(self):
        pkg = DataPackage(["x"], [1.0, 2.0, 3.0], [0, 1, 0])
        assert pkg.subject_ids().tolist() == [0, 1, 2]
        assert pkg.feature_database().shape == (3, 1)

    def test_from_frame(self):
        df = pd.DataFrame({
            "pid": ["a", "a", "b"],
            "sex": [0, 1, 1],
            "age": [50.0, 51.0, 70.0],
            "y": [0, 0, 1],
        })
        pkg = DataPackage.from_frame(df, "y", subject_column="pid", categorical=["sex"])

        assert pkg.feature_names() == ["sex", "age"]
        assert pkg.feature("sex").feature_type == FeatureType.CATEGORICAL
        assert pkg.feature("age").feature_type == FeatureType.CONTINUOUS
        assert pkg.subjects() == ["a", "b"]
        assert pkg.label_name == "y"
        assert list(pkg.to_frame().columns) == ["sex", "age", "y", "subject_id"]

    def test_from_frame_missing_label(self):
        with pytest.raises(UnknownFeatureError):
            DataPackage.from_frame(pd.DataFrame({"a": [1.0]}), "y")


class TestAccess:
    def test_feature_database_is_read_only(self, small_package):
        view = small_package.feature_database()
        with pytest.raises(ValueError):
            view[0, 0] = -1.0

    def test_mutable_database_writes_through(self, small_package):
        small_package.mutable_feature_database()[0, 0] = -1.0
        assert small_package.feature_column("a")[0] == -1.0

    def test_feature_column_is_a_copy(self, small_package):
        column = small_package.feature_column("b")
        column[:] = 0.0
        assert small_package.feature_column("b").tolist() == [10.0, 20.0, 30.0, 40.0]

    def test_unknown_feature(self, small_package):
        with pytest.raises(UnknownFeatureError, match="zzz"):
            small_package.feature_column("zzz")
        assert not small_package.has_feature("zzz")

    def test_subset_columns_follow_requested_order(self, small_package):
        subset = small_package.feature_database_subset(["c", "a"])
        assert subset[:, 0].tolist() == [100.0, 200.0, 300.0, 400.0]
        assert subset[:, 1].tolist() == [1.0, 2.0, 3.0, 4.0]


class TestSubsets:
    def test_subset_rows_is_idempotent(self, small_package):
        rows = [3, 1]
        once = small_package.subset_rows(rows)
        twice = once.subset_rows(range(once.row_count()))
        np.testing.assert_array_equal(once.feature_database(), twice.feature_database())
        assert once.labels().tolist() == twice.labels().tolist() == [1, 1]
        assert once.subject_ids().tolist() == ["s3", "s1"]

    def test_subset_features_is_idempotent(self, small_package):
        once = small_package.subset_features(["b", "c"])
        twice = once.subset_features(["b", "c"])
        assert twice.feature_names() == ["b", "c"]
        np.testing.assert_array_equal(once.feature_database(), twice.feature_database())

    def test_subset_does_not_alias_parent(self, small_package):
        child = small_package.subset_rows([0, 1])
        child.mutable_feature_database()[:] = 0.0
        child.remove("a")
        assert small_package.feature_column("a").tolist() == [1.0, 2.0, 3.0, 4.0]
        assert small_package.feature_names() == ["a", "b", "c"]

    def test_remove_feature(self, small_package):
        small_package.remove("b")
        assert small_package.feature_names() == ["a", "c"]
        assert small_package.feature("c").column_index == 1
        assert small_package.feature_column("c").tolist() == [100.0, 200.0, 300.0, 400.0]

    def test_remove_row(self, small_package):
        small_package.remove(0)
        assert small_package.row_count() == 3
        assert small_package.labels().tolist() == [1, 0, 1]
        assert small_package.subject_ids().tolist() == ["s1", "s2", "s3"]
        with pytest.raises(IndexError):
            small_package.remove(10)


class TestLabels:
    def test_label_helpers(self):
        pkg = DataPackage(["x"], np.zeros((5, 1)), [1, 0, 0, 0, 1])
        assert pkg.label_classes() == [0, 1]
        assert pkg.label_counts() == {0: 3, 1: 2}
        assert pkg.minority_label() == 1
        assert pkg.majority_label() == 0

    def test_rows_by_subject(self, small_package):
        assert small_package.rows_by_subject() == {"s1": [0, 1], "s2": [2], "s3": [3]}
