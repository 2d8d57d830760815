import logging
import threading
import numpy as np
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from modules.pipeline import ModelDescriptor, PipelineCandidate, StageDescriptor
from utils import constants
from utils.exceptions import ConfigurationError

# Stages that can repeat in one pipeline (up to max_algorithm_repeatability)
REPEATABLE_STAGES = ("Undersampling", "Oversampling")
# Pairs of stages that never appear in the same pipeline
EXCLUSIVE_STAGES = (("FeatureSelection", "PCA"),)


@dataclass
class TreeNode:
    """
    One partial pipeline. `element` is the edge label that led here
    (a stage name or 'model:<Name>'); the root has element None.
    Children are created on first access.
    """
    element: Optional[str]
    depth: int
    parent: Optional["TreeNode"] = None
    stage_counts: Dict[str, int] = field(default_factory=dict)
    children: Optional[List["TreeNode"]] = None
    visits: int = 0
    fitness_sum: float = 0.0

    @property
    def is_model(self) -> bool:
        return self.element is not None and self.element.startswith(constants.MODEL_EDGE_PREFIX)

    @property
    def mean_fitness(self) -> Optional[float]:
        return self.fitness_sum / self.visits if self.visits else None

    def path(self) -> Tuple[str, ...]:
        elements = []
        node = self
        while node is not None and node.element is not None:
            elements.append(node.element)
            node = node.parent
        return tuple(reversed(elements))


class PipelineTree:
    """
    Search space of pipelines as a tree of "apply stage X" and
    "choose model Y" edges.

    A path ends at a model edge. Stage edges respect:
    - FeatureSelection and PCA exclude each other.
    - Oversampling never directly follows Oversampling.
    - Under/Oversampling repeat at most `max_algorithm_repeatability` times;
      every other stage appears at most once.
    - At `max_depth` stages only model edges remain.

    With `temperature=None` sampling is uniform. Otherwise each step draws a
    child with probability proportional to exp(fitness / temperature), using
    the child's mean observed fitness (sign-flipped for minimized measures)
    and the parent's mean for unvisited children.
    """

    def __init__(self, stage_catalog: Sequence[str], model_catalog: Sequence[str],
                 max_depth: int = constants.DEFAULT_MAX_PIPELINE_DEPTH,
                 max_algorithm_repeatability: int = constants.DEFAULT_MAX_ALGORITHM_REPEATABILITY,
                 stage_params: Optional[Dict[str, Dict[str, Any]]] = None,
                 model_params: Optional[Dict[str, Dict[str, Any]]] = None,
                 optimize_models: bool = False, temperature: Optional[float] = None,
                 minimize: bool = False, seed: Optional[int] = None,
                 logger: Optional[logging.Logger] = None):
        if not model_catalog:
            raise ConfigurationError("The pipeline tree needs at least one model in its catalog.")
        if max_depth < 0:
            raise ConfigurationError(f"max_depth must be >= 0, got {max_depth}")
        if temperature is not None and temperature <= 0:
            raise ConfigurationError(f"temperature must be > 0, got {temperature}")

        self.stage_catalog = list(dict.fromkeys(stage_catalog))
        self.model_catalog = list(dict.fromkeys(model_catalog))
        self.max_depth = max_depth
        self.max_algorithm_repeatability = max_algorithm_repeatability
        self.stage_params = stage_params or {}
        self.model_params = model_params or {}
        self.optimize_models = optimize_models
        self.temperature = temperature
        self.minimize = minimize
        self.logger = logger or logging.getLogger(__name__)
        self.rng = np.random.default_rng(seed)

        self.root = TreeNode(element=None, depth=0)
        # Guards lazy expansion and fitness statistics
        self._lock = threading.Lock()
        self._node_count = 1

    # ------------------------------------------------------------------
    # Structure
    # ------------------------------------------------------------------

    def algorithm_names(self) -> List[str]:
        return list(self.stage_catalog) + [constants.MODEL_EDGE_PREFIX + name for name in self.model_catalog]

    def _eligible_stages(self, node: TreeNode) -> List[str]:
        if node.is_model or node.depth >= self.max_depth:
            return []
        eligible = []
        for stage in self.stage_catalog:
            used = node.stage_counts.get(stage, 0)
            limit = self.max_algorithm_repeatability if stage in REPEATABLE_STAGES else 1
            if used >= limit:
                continue
            if stage == "Oversampling" and node.element == "Oversampling":
                continue
            if any(stage in pair and any(node.stage_counts.get(other, 0) for other in pair if other != stage)
                   for pair in EXCLUSIVE_STAGES):
                continue
            eligible.append(stage)
        return eligible

    def children(self, node: TreeNode) -> List[TreeNode]:
        if node.is_model:
            return []
        with self._lock:
            if node.children is None:
                node.children = []
                for stage in self._eligible_stages(node):
                    counts = dict(node.stage_counts)
                    counts[stage] = counts.get(stage, 0) + 1
                    node.children.append(TreeNode(stage, node.depth + 1, node, counts))
                for model in self.model_catalog:
                    node.children.append(TreeNode(constants.MODEL_EDGE_PREFIX + model, node.depth + 1,
                                                  node, dict(node.stage_counts)))
                self._node_count += len(node.children)
            return list(node.children)

    def siblings(self, node: TreeNode) -> List[TreeNode]:
        if node.parent is None:
            return []
        return [child for child in self.children(node.parent) if child is not node]

    def is_leaf(self, node: TreeNode) -> bool:
        return node.is_model

    def is_root(self, node: TreeNode) -> bool:
        return node is self.root

    def node_count(self) -> int:
        """Number of nodes materialized so far."""
        return self._node_count

    def find(self, path: Sequence[str]) -> Optional[TreeNode]:
        node = self.root
        for element in path:
            match = next((child for child in self.children(node) if child.element == element), None)
            if match is None:
                return None
            node = match
        return node

    def is_valid_path(self, path: Sequence[str]) -> bool:
        """True when `path` is a complete root-to-leaf path of this tree."""
        node = self.find(path)
        return node is not None and self.is_leaf(node)

    # ------------------------------------------------------------------
    # Sampling
    # ------------------------------------------------------------------

    def _choose(self, node: TreeNode, options: List[TreeNode]) -> TreeNode:
        if self.temperature is None or len(options) == 1:
            return options[int(self.rng.integers(len(options)))]

        with self._lock:
            fallback = node.mean_fitness if node.visits else 0.0
            means = np.array([child.mean_fitness if child.visits else fallback for child in options])
        signed = -means if self.minimize else means
        logits = (signed - signed.max()) / self.temperature
        weights = np.exp(logits)
        return options[int(self.rng.choice(len(options), p=weights / weights.sum()))]

    def random_path(self) -> PipelineCandidate:
        """Sample one root-to-leaf path and materialize it as a candidate."""
        node = self.root
        while not self.is_leaf(node):
            node = self._choose(node, self.children(node))
        return self.candidate_for(node.path())

    def candidate_for(self, path: Sequence[str]) -> PipelineCandidate:
        if not self.is_valid_path(path):
            raise ConfigurationError(f"Not a complete path of this tree: {list(path)}")
        *stage_names, model_edge = path
        model_name = model_edge[len(constants.MODEL_EDGE_PREFIX):]
        stages = [StageDescriptor(name, dict(self.stage_params.get(name, {}))) for name in stage_names]
        model = ModelDescriptor(model_name, dict(self.model_params.get(model_name, {})), self.optimize_models)
        return PipelineCandidate(stages, model, path)

    def record_fitness(self, candidate: PipelineCandidate, fitness: Optional[float] = None) -> None:
        """Add an observed fitness to every node on the candidate's path."""
        value = candidate.fitness if fitness is None else fitness
        if value is None:
            return
        node = self.find(candidate.path)
        if node is None:
            self.logger.warning(f"Fitness reported for a path outside the tree: {candidate.path}")
            return
        with self._lock:
            while node is not None:
                node.visits += 1
                node.fitness_sum += value
                node = node.parent
