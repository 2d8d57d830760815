from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from modules.analytics import ConfusionMatrix
from utils.cache import descriptor_fingerprint
from utils.exceptions import EmptyPipelineError


@dataclass(frozen=True)
class StageDescriptor:
    name: str
    params: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "params": dict(self.params)}


@dataclass(frozen=True)
class ModelDescriptor:
    name: str
    params: Dict[str, Any] = field(default_factory=dict)
    optimize: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "params": dict(self.params), "optimize": self.optimize}


@dataclass
class FoldResult:
    """Outcome of one fold of a candidate evaluation."""
    fold_index: int
    score: float
    confusion_matrix: Optional[ConfusionMatrix] = None
    skipped_stages: List[str] = field(default_factory=list)
    model_params: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fold": self.fold_index,
            "score": self.score,
            "confusion_matrix": self.confusion_matrix.to_dict() if self.confusion_matrix else None,
            "skipped_stages": list(self.skipped_stages),
            "model_params": dict(self.model_params),
            "error": self.error,
        }


class PipelineCandidate:
    """
    Ordered preprocessing stages followed by one model.

    The structure is fixed at construction. Fitness stays None until an
    evaluator assigns it together with the per-fold results.
    """

    def __init__(self, stages: Sequence[StageDescriptor], model: Optional[ModelDescriptor],
                 path: Sequence[str] = ()):
        if model is None:
            raise EmptyPipelineError("A pipeline candidate needs a model stage.")
        self.stages: Tuple[StageDescriptor, ...] = tuple(stages)
        self.model = model
        self.path: Tuple[str, ...] = tuple(path)
        self._fitness: Optional[float] = None
        self._fold_results: Tuple[FoldResult, ...] = ()

    @property
    def fitness(self) -> Optional[float]:
        return self._fitness

    @property
    def fold_results(self) -> Tuple[FoldResult, ...]:
        return self._fold_results

    @property
    def is_evaluated(self) -> bool:
        return self._fitness is not None

    def assign_fitness(self, fitness: float, fold_results: Sequence[FoldResult]) -> None:
        self._fitness = float(fitness)
        self._fold_results = tuple(fold_results)

    def stage_names(self) -> List[str]:
        return [stage.name for stage in self.stages]

    def with_stage_params(self, stage_params: Sequence[Dict[str, Any]]) -> "PipelineCandidate":
        """Unevaluated copy with each stage's params replaced."""
        stages = [StageDescriptor(stage.name, dict(params)) for stage, params in zip(self.stages, stage_params)]
        return PipelineCandidate(stages, self.model, self.path)

    def descriptor(self) -> Dict[str, Any]:
        return {
            "stages": [stage.to_dict() for stage in self.stages],
            "model": self.model.to_dict(),
        }

    def key(self) -> str:
        return descriptor_fingerprint(self.descriptor())

    def to_dict(self) -> Dict[str, Any]:
        pooled = None
        matrices = [r.confusion_matrix for r in self._fold_results if r.confusion_matrix is not None]
        if matrices:
            total = matrices[0]
            for matrix in matrices[1:]:
                total = total + matrix
            pooled = total.to_dict()
        return {
            **self.descriptor(),
            "key": self.key(),
            "path": list(self.path),
            "fitness": self._fitness,
            "fold_scores": [r.score for r in self._fold_results],
            "folds": [r.to_dict() for r in self._fold_results],
            "pooled_confusion_matrix": pooled,
        }

    def __repr__(self) -> str:
        chain = " -> ".join(self.stage_names() + [self.model.name])
        return f"PipelineCandidate({chain}, fitness={self._fitness})"
