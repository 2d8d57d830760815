import inspect
from typing import Any, Dict, List, Type

from modules.preprocessing.base_stage import BaseStage
from modules.preprocessing.pca_stage import PCAStage
from modules.preprocessing.sampling_stages import OversamplingStage, UndersamplingStage
from modules.preprocessing.isolation_forest_stage import IsolationForestStage
from modules.preprocessing.feature_selection_stage import FeatureSelectionStage
from modules.preprocessing.data_optimizer import DataOptimizer
from utils.exceptions import ConfigurationError


class StageFactory:
    """
    Factory for creating preprocessing stages by catalog name.
    """

    STAGES: Dict[str, Type[BaseStage]] = {
        stage.name: stage
        for stage in (
            DataOptimizer,
            FeatureSelectionStage,
            PCAStage,
            IsolationForestStage,
            UndersamplingStage,
            OversamplingStage,
        )
    }

    @classmethod
    def create(cls, stage_name: str, params: Dict[str, Any] = None, logger=None) -> BaseStage:
        if params is None:
            params = {}
        if stage_name not in cls.STAGES:
            raise ConfigurationError(f"Unknown stage name: {stage_name}. Available: {cls.get_available_stages()}")
        stage_class = cls.STAGES[stage_name]
        return stage_class(logger=logger, **cls._filter_params(stage_class, params))

    @classmethod
    def get_class(cls, stage_name: str) -> Type[BaseStage]:
        if stage_name not in cls.STAGES:
            raise ConfigurationError(f"Unknown stage name: {stage_name}. Available: {cls.get_available_stages()}")
        return cls.STAGES[stage_name]

    @classmethod
    def get_available_stages(cls) -> List[str]:
        return list(cls.STAGES.keys())

    @staticmethod
    def _filter_params(stage_class, params: Dict[str, Any]) -> Dict[str, Any]:
        """
        Remove parameters that the stage constructor does not accept.
        """
        sig = inspect.signature(stage_class.__init__)
        valid_keys = [
            p.name for p in sig.parameters.values()
            if p.name not in ('self', 'logger') and p.kind in (p.POSITIONAL_OR_KEYWORD, p.KEYWORD_ONLY)
        ]
        return {k: v for k, v in params.items() if k in valid_keys}
