"""
Preprocessing Module
====================

Responsibility:
- Build/run/transform contract for pipeline stages.
- Feature stages (PCA, feature selection, redundant-feature removal) that
  replay their fitted parameters on validation data.
- Row stages (over/undersampling, isolation-forest outlier removal) that
  only ever touch the training partition.
- Name-based stage construction and per-stage hyperparameter ranges.
"""

from .base_stage import BaseStage
from .pca_stage import PCAStage
from .sampling_stages import OversamplingStage, UndersamplingStage
from .isolation_forest_stage import IsolationForestStage
from .feature_selection_stage import FeatureSelectionStage
from .data_optimizer import DataOptimizer
from .stage_factory import StageFactory

__all__ = [
    'BaseStage',
    'PCAStage',
    'OversamplingStage',
    'UndersamplingStage',
    'IsolationForestStage',
    'FeatureSelectionStage',
    'DataOptimizer',
    'StageFactory',
]
