import logging
from typing import Any, Dict, List, Optional, Type

from modules.analytics import ConfusionMatrixAnalytics
from modules.data_package import DataPackage
from modules.optimizers.base_optimizer import ModelOptimizer
from modules.optimizers.tree_optimizers import DecisionTreeOptimizer, RandomForestOptimizer
from modules.optimizers.kernel_density_optimizer import KernelDensityOptimizer
from utils import constants
from utils.exceptions import ConfigurationError


class OptimizerFactory:
    """
    Maps model catalog names to the search that tunes them.
    """

    OPTIMIZERS: Dict[str, Type[ModelOptimizer]] = {
        'DecisionTree': DecisionTreeOptimizer,
        'RandomForest': RandomForestOptimizer,
        'KernelDensity': KernelDensityOptimizer,
    }

    @classmethod
    def optimizer_for(cls, model_name: str, package: DataPackage, analytics: ConfusionMatrixAnalytics,
                      base_params: Optional[Dict[str, Any]] = None, settings: Optional[Dict[str, Any]] = None,
                      seed: Optional[int] = None, logger: Optional[logging.Logger] = None) -> ModelOptimizer:
        """
        Build the optimizer for `model_name` from the `optimizer` config section
        (inner_folds, max_evaluations, tolerance).
        """
        if model_name not in cls.OPTIMIZERS:
            raise ConfigurationError(f"No optimizer for model: {model_name}. Available: {cls.get_available()}")
        settings = settings or {}
        optimizer_class = cls.OPTIMIZERS[model_name]

        extra = {}
        if optimizer_class is KernelDensityOptimizer and 'tolerance' in settings:
            extra['tolerance'] = settings['tolerance']

        return optimizer_class(
            package,
            analytics,
            base_params=base_params,
            inner_folds=settings.get('inner_folds', constants.DEFAULT_INNER_FOLDS),
            max_evaluations=settings.get('max_evaluations', constants.DEFAULT_OPTIMIZER_MAX_EVALUATIONS),
            seed=seed,
            logger=logger,
            **extra,
        )

    @classmethod
    def get_available(cls) -> List[str]:
        return list(cls.OPTIMIZERS.keys())
