"""
Optimizers Module
=================

Responsibility:
- Common result contract for every hyperparameter search.
- Derivative-free Nelder-Mead simplex search with explicit, replayable state.
- Model-specific searches for decision trees, random forests and
  kernel-density classifiers scored by subject-grouped cross-validation.
- Evaluation budgets that end a search with its best-so-far result.
"""

from .base_optimizer import AbstractOptimizer, ModelOptimizer, OptimizerResult
from .nelder_mead import (
    NelderMeadOptimizer,
    NelderMeadSettings,
    NelderMeadState,
    TerminationCode,
    initialize_simplex,
    nelder_mead_step,
)
from .tree_optimizers import DecisionTreeOptimizer, RandomForestOptimizer
from .kernel_density_optimizer import KernelDensityOptimizer
from .optimizer_factory import OptimizerFactory

__all__ = [
    'AbstractOptimizer',
    'ModelOptimizer',
    'OptimizerResult',
    'NelderMeadOptimizer',
    'NelderMeadSettings',
    'NelderMeadState',
    'TerminationCode',
    'initialize_simplex',
    'nelder_mead_step',
    'DecisionTreeOptimizer',
    'RandomForestOptimizer',
    'KernelDensityOptimizer',
    'OptimizerFactory',
]
