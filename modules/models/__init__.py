"""
Models Module
=============

Responsibility:
- Common train/evaluate contract for all predictors.
- Decision trees stored as index-based node arenas.
- Random forests composed of decision trees (bagging, voting, OOB selection).
- Kernel-density feature analysis and kernel-density classification.
- Name-based model construction.
"""

from .base_model import AbstractModel
from .decision_tree import DecisionTreeModel, Node
from .random_forest import RandomForestModel
from .kernel_density import KernelDensityExtractor, KernelDensityModel
from .model_factory import ModelFactory

__all__ = [
    'AbstractModel',
    'DecisionTreeModel',
    'Node',
    'RandomForestModel',
    'KernelDensityExtractor',
    'KernelDensityModel',
    'ModelFactory',
]
