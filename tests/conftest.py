import logging
import numpy as np
import pandas as pd
import pytest
from unittest.mock import MagicMock

from modules.data_package import DataPackage


def make_frame(n_subjects=100, rows_per_subject=1, n_features=4, positive_ratio=0.3, seed=0):
    """
    Synthetic cohort: label 1 for the top `positive_ratio` of subjects by a
    latent risk score, with the first two features carrying that signal.
    """
    rng = np.random.default_rng(seed)
    risk = rng.normal(size=n_subjects)
    cutoff = np.quantile(risk, 1.0 - positive_ratio)
    subject_labels = (risk > cutoff).astype(int)

    rows = []
    for subject in range(n_subjects):
        for _ in range(rows_per_subject):
            noise = rng.normal(scale=0.3, size=n_features)
            features = noise + np.r_[risk[subject], -risk[subject], np.zeros(n_features - 2)]
            rows.append([f"p{subject:03d}", subject_labels[subject], *features])
    columns = ["patient_id", "outcome"] + [f"f{i}" for i in range(n_features)]
    return pd.DataFrame(rows, columns=columns)


@pytest.fixture
def mock_logger():
    """Provides a mock logger instance."""
    return MagicMock(spec=logging.Logger)


@pytest.fixture
def cohort_frame():
    return make_frame()


@pytest.fixture
def package(cohort_frame):
    """100 subjects, one row each, 30 positives."""
    return DataPackage.from_frame(cohort_frame, "outcome", subject_column="patient_id")


@pytest.fixture
def package_factory():
    def factory(**kwargs):
        return DataPackage.from_frame(make_frame(**kwargs), "outcome", subject_column="patient_id")
    return factory
