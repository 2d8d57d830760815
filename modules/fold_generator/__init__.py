"""
Fold Generator Module
=====================

Responsibility:
- Subject-grouped k-fold partitioning of a DataPackage's rows.
- Row-count balancing across folds with seeded, reproducible shuffling.
- Validity checks for folds used in cross-validation.
"""

from .fold_generator import Fold, PatientFoldGenerator

__all__ = ['Fold', 'PatientFoldGenerator']
