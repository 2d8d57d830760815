import numpy as np
import pytest

from modules.data_package import DataPackage
from modules.preprocessing import OversamplingStage, UndersamplingStage
from utils import constants
from utils.exceptions import ConfigurationError, DegenerateMatrixError


def _single_minority_package():
    values = np.arange(20.0).reshape(10, 2)
    return DataPackage(["a", "b"], values, [0] * 9 + [1])


class TestOversampling:
    def test_smote_balances_classes(self, package, mock_logger):
        balanced = OversamplingStage("SMOTE", random_state=0, logger=mock_logger).run(package)
        assert balanced.label_counts() == {0: 70, 1: 70}

    def test_synthetic_rows_get_fresh_subjects(self, package):
        balanced = OversamplingStage("SMOTE", random_state=0).run(package)
        subjects = balanced.subject_ids().tolist()
        synthetic = [s for s in subjects if str(s).startswith(constants.SYNTHETIC_SUBJECT_PREFIX)]
        assert len(synthetic) == 40
        assert subjects[:100] == package.subject_ids().tolist()

    def test_percentage_growth(self, package):
        grown = OversamplingStage("RandomOversampling", percentage=100, random_state=0).run(package)
        assert grown.label_counts() == {0: 70, 1: 60}

    def test_borderline_smote(self, package):
        balanced = OversamplingStage("BorderlineSMOTE", random_state=0).run(package)
        assert balanced.label_counts()[1] >= 30

    def test_validation_is_untouched(self, package):
        stage = OversamplingStage("SMOTE", random_state=0)
        stage.run(package.subset_rows(range(80)))
        validation = package.subset_rows(range(80, 100))
        assert stage.transform(validation) is validation

    def test_single_minority_row_is_degenerate(self):
        with pytest.raises(DegenerateMatrixError, match="at least 2 minority rows"):
            OversamplingStage("SMOTE").run(_single_minority_package())

    def test_random_oversampling_handles_single_minority_row(self):
        balanced = OversamplingStage("RandomOversampling", random_state=0).run(_single_minority_package())
        assert balanced.label_counts() == {0: 9, 1: 9}

    def test_one_class_is_degenerate(self):
        pkg = DataPackage(["a"], np.arange(4.0), [0, 0, 0, 0])
        with pytest.raises(DegenerateMatrixError, match="two classes"):
            OversamplingStage("RandomOversampling").run(pkg)

    def test_unknown_method(self):
        with pytest.raises(ConfigurationError, match="Unknown oversampling method"):
            OversamplingStage("ADASYN")


class TestUndersampling:
    def test_random_undersampling(self, package):
        reduced = UndersamplingStage(random_state=0).run(package)
        assert reduced.label_counts() == {0: 30, 1: 30}
        assert set(reduced.subject_ids().tolist()) <= set(package.subject_ids().tolist())

    def test_tomek_links_only_removes_rows(self, package):
        reduced = UndersamplingStage("TomekLinks").run(package)
        assert reduced.row_count() <= package.row_count()
        assert reduced.label_counts()[1] == 30

    def test_one_class_is_degenerate(self):
        pkg = DataPackage(["a"], np.arange(4.0), [1, 1, 1, 1])
        with pytest.raises(DegenerateMatrixError):
            UndersamplingStage().run(pkg)

    def test_unknown_method(self):
        with pytest.raises(ConfigurationError):
            UndersamplingStage("NearMiss")
