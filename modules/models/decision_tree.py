import math
import numpy as np
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union
from sklearn.tree import DecisionTreeClassifier

from modules.data_package import DataPackage
from modules.models.base_model import AbstractModel
from utils.exceptions import ConfigurationError, ModelTrainingError

# Split quality names accepted by the model, mapped onto scikit-learn criteria
CRITERIA = {
    "gain": "entropy",
    "entropy": "entropy",
    "gini": "gini",
}

NO_CHILD = -1


@dataclass
class Node:
    """
    One arena slot. Split nodes send `x[feature_index] <= threshold` left.
    Leaves have no children and carry the predicted label.
    """
    feature_index: int = NO_CHILD
    threshold: float = 0.0
    left: int = NO_CHILD
    right: int = NO_CHILD
    label: Any = None
    distribution: List[float] = field(default_factory=list)
    samples: int = 0

    def is_leaf(self) -> bool:
        return self.left == NO_CHILD and self.right == NO_CHILD


class DecisionTreeModel(AbstractModel):
    """
    Binary classification tree held as a flat list of nodes.

    Induction is delegated to scikit-learn; the fitted structure is then
    copied into the arena, and prediction walks the arena directly.
    """

    def __init__(self, criterion: str = "gain", max_depth: Optional[int] = None,
                 min_samples_leaf: int = 1, max_features: Union[None, int, str] = None,
                 random_state: Optional[int] = None, feature_names: Optional[Sequence[str]] = None):
        super().__init__(feature_names)
        if criterion not in CRITERIA:
            raise ConfigurationError(f"Unknown split criterion '{criterion}'. Available: {list(CRITERIA)}")
        self.criterion = criterion
        self.max_depth = max_depth
        self.min_samples_leaf = min_samples_leaf
        self.max_features = max_features
        self.random_state = random_state
        self.nodes: List[Node] = []

    @classmethod
    def from_nodes(cls, nodes: Sequence[Node], feature_names: Sequence[str], classes) -> "DecisionTreeModel":
        """Build a model from an explicit arena (root at index 0)."""
        model = cls(feature_names=feature_names)
        model.nodes = list(nodes)
        model.classes_ = np.asarray(classes)
        model._validate_arena()
        return model

    def get_params(self) -> Dict[str, Any]:
        return {
            "criterion": self.criterion,
            "max_depth": self.max_depth,
            "min_samples_leaf": self.min_samples_leaf,
            "max_features": self.max_features,
            "random_state": self.random_state,
        }

    def train(self, package: DataPackage, sample_weight=None) -> "DecisionTreeModel":
        self._check_trainable(package)
        estimator = DecisionTreeClassifier(
            criterion=CRITERIA[self.criterion],
            max_depth=self.max_depth,
            min_samples_leaf=self.min_samples_leaf,
            max_features=self._resolve_max_features(package.feature_count()),
            random_state=self.random_state,
        )
        estimator.fit(package.feature_database(), package.labels(), sample_weight=sample_weight)

        self.feature_names = package.feature_names()
        self.classes_ = estimator.classes_
        self.nodes = self._arena_from_sklearn(estimator.tree_, estimator.classes_)
        return self

    def _resolve_max_features(self, n_features: int) -> Optional[int]:
        if self.max_features is None:
            return None
        if self.max_features == "log2":
            # Random feature subset size used for forests
            return max(1, min(n_features, int(round(math.log2(n_features))) + 1))
        return max(1, min(n_features, int(self.max_features)))

    @staticmethod
    def _arena_from_sklearn(tree, classes) -> List[Node]:
        nodes = []
        for idx in range(tree.node_count):
            distribution = np.asarray(tree.value[idx][0], dtype=float)
            total = distribution.sum()
            if total > 0:
                distribution = distribution / total
            node = Node(
                label=classes[int(np.argmax(distribution))],
                distribution=distribution.tolist(),
                samples=int(tree.n_node_samples[idx]),
            )
            if tree.children_left[idx] != NO_CHILD:
                node.feature_index = int(tree.feature[idx])
                node.threshold = float(tree.threshold[idx])
                node.left = int(tree.children_left[idx])
                node.right = int(tree.children_right[idx])
            nodes.append(node)
        return nodes

    def _validate_arena(self) -> None:
        """Every non-root node must have exactly one parent and appear after it."""
        seen_as_child = set()
        for idx, node in enumerate(self.nodes):
            if node.is_leaf():
                continue
            for child in (node.left, node.right):
                if child <= idx or child >= len(self.nodes) or child in seen_as_child:
                    raise ModelTrainingError(f"Invalid child reference {child} at node {idx}.")
                seen_as_child.add(child)

    # --- Structure ---

    def root_node(self) -> Node:
        self._check_trained()
        return self.nodes[0]

    def node(self, index: int) -> Node:
        return self.nodes[index]

    def depth(self) -> int:
        self._check_trained()
        deepest = 0
        stack = [(0, 0)]
        while stack:
            idx, level = stack.pop()
            node = self.nodes[idx]
            deepest = max(deepest, level)
            if not node.is_leaf():
                stack.append((node.left, level + 1))
                stack.append((node.right, level + 1))
        return deepest

    def leaf_count(self) -> int:
        return sum(1 for node in self.nodes if node.is_leaf())

    # --- Prediction ---

    def _leaf_for(self, row) -> Node:
        self._check_trained()
        node = self.nodes[0]
        while not node.is_leaf():
            # Induction compares float32 values
            value = np.float32(row[node.feature_index])
            node = self.nodes[node.left if value <= node.threshold else node.right]
        return node

    def evaluate(self, row_features) -> Any:
        return self._leaf_for(row_features).label
