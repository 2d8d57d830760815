"""
Pipeline Module
===============

Responsibility:
- Descriptors for an ordered chain of preprocessing stages plus one model.
- Leak-free cross-validated fitness: stages fit on each fold's training
  partition and replay their fitted parameters on its validation partition.
- Per-fold failure isolation and fitness aggregation.
- Nelder-Mead tuning of stage hyperparameters over their discrete ranges.
"""

from .pipeline_candidate import FoldResult, ModelDescriptor, PipelineCandidate, StageDescriptor
from .parameter_space import PipelineParameterSpace
from .pipeline_evaluator import PipelineEvaluator

__all__ = [
    'FoldResult',
    'ModelDescriptor',
    'PipelineCandidate',
    'StageDescriptor',
    'PipelineParameterSpace',
    'PipelineEvaluator',
]
