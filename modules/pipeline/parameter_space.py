import numpy as np
from typing import Any, List, Tuple

from modules.data_package import DataPackage
from modules.pipeline.pipeline_candidate import PipelineCandidate
from modules.preprocessing import StageFactory


class PipelineParameterSpace:
    """
    Continuous view of a candidate's discrete stage hyperparameters.

    Each free parameter (one with more than one choice that the stage
    descriptor does not already pin) becomes one coordinate in [0, 1];
    decoding rounds the coordinate onto the parameter's listed choices.
    """

    def __init__(self, candidate: PipelineCandidate, package: DataPackage):
        self.candidate = candidate
        self.dimensions: List[Tuple[int, str, List[Any]]] = []
        for index, stage in enumerate(candidate.stages):
            ranges = StageFactory.get_class(stage.name).tunable_ranges(package, stage.params)
            for name, choices in ranges.items():
                if len(choices) > 1:
                    self.dimensions.append((index, name, list(choices)))

    @property
    def dimension(self) -> int:
        return len(self.dimensions)

    def initial_vector(self) -> np.ndarray:
        return np.full(self.dimension, 0.5)

    def decode(self, vector) -> PipelineCandidate:
        vector = np.clip(np.asarray(vector, dtype=float), 0.0, 1.0)
        stage_params = [dict(stage.params) for stage in self.candidate.stages]
        for (stage_index, name, choices), value in zip(self.dimensions, vector):
            stage_params[stage_index][name] = choices[int(round(value * (len(choices) - 1)))]
        return self.candidate.with_stage_params(stage_params)
