"""
Analytics Module
================

Responsibility:
- Binary confusion matrices built from predicted vs. true labels.
- Derived scores (F-score, ROC point, ROC distance, AUC, MCC, ...).
- Measure registry that fixes one optimization direction per score.
- Fold-to-fold consistency statistics.
"""

from .confusion_matrix import ConfusionMatrix
from .analytics import ConfusionMatrixAnalytics, MEASURES, Measure
from .cv_analysis import cv_fold_consistency

__all__ = ['ConfusionMatrix', 'ConfusionMatrixAnalytics', 'MEASURES', 'Measure', 'cv_fold_consistency']
