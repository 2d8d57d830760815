import inspect
from typing import Dict, Any, List

from modules.models.base_model import AbstractModel
from modules.models.decision_tree import DecisionTreeModel
from modules.models.random_forest import RandomForestModel
from modules.models.kernel_density import KernelDensityModel
from utils.exceptions import ConfigurationError


class ModelFactory:
    """
    Factory for creating predictors by catalog name.
    """

    MODELS = {
        'DecisionTree': DecisionTreeModel,
        'RandomForest': RandomForestModel,
        'KernelDensity': KernelDensityModel,
    }

    @classmethod
    def create(cls, model_name: str, params: Dict[str, Any] = None) -> AbstractModel:
        """
        Create and return an untrained model.
        """
        if params is None:
            params = {}

        if model_name not in cls.MODELS:
            raise ConfigurationError(f"Unknown model name: {model_name}. Available: {cls.get_available_models()}")

        model_class = cls.MODELS[model_name]
        return model_class(**cls._filter_params(model_class, params))

    @classmethod
    def get_available_models(cls) -> List[str]:
        """Return list of all supported model names."""
        return list(cls.MODELS.keys())

    @staticmethod
    def _filter_params(model_class, params: Dict[str, Any]) -> Dict[str, Any]:
        """
        Remove parameters from `params` that are not accepted by `model_class` constructor.
        """
        sig = inspect.signature(model_class.__init__)
        valid_keys = [
            p.name for p in sig.parameters.values()
            if p.name != 'self' and p.kind in (p.POSITIONAL_OR_KEYWORD, p.KEYWORD_ONLY)
        ]
        return {k: v for k, v in params.items() if k in valid_keys}

    @classmethod
    def optimizer_for(cls, model_name: str, package, analytics, **kwargs):
        """
        Build the hyperparameter search that tunes `model_name`.
        Keyword arguments are forwarded to OptimizerFactory.optimizer_for.
        """
        if model_name not in cls.MODELS:
            raise ConfigurationError(f"Unknown model name: {model_name}. Available: {cls.get_available_models()}")
        # Optimizers depend on the model classes
        from modules.optimizers import OptimizerFactory
        return OptimizerFactory.optimizer_for(model_name, package, analytics, **kwargs)
