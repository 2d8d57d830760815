"""
Data Package Module
===================

Responsibility:
- Tabular store of features, labels and subject ids for one dataset.
- Named feature metadata with stable, unique names.
- Copy-on-subset access so folds and stages never alias the source data.
"""

from .data_package import DataPackage, Feature, FeatureType

__all__ = ['DataPackage', 'Feature', 'FeatureType']
