import numpy as np
from typing import Any, Dict, List, Optional, Sequence, Union

from modules.data_package import DataPackage
from modules.models.base_model import AbstractModel
from modules.models.decision_tree import DecisionTreeModel
from utils.exceptions import ConfigurationError, DataValidationError

BAGGING_METHODS = ("normal", "equalized")
TREE_SELECTIONS = ("none", "oob")


class RandomForestModel(AbstractModel):
    """
    Ensemble of decision trees with majority voting.

    Bagging:
    - normal: draw n * bag_fraction rows with replacement; draw counts become
      the tree's instance weights.
    - equalized: draw the same number of rows from every class.

    With tree_selection='oob' only the `selected_tree_count` trees with the
    best out-of-bag accuracy are kept.
    """

    def __init__(self, n_trees: int = 50, criterion: str = "gain", max_depth: Optional[int] = None,
                 min_samples_leaf: int = 1, max_features: Union[None, int, str] = "log2",
                 bagging: str = "normal", bag_fraction: float = 1.0, tree_selection: str = "none",
                 selected_tree_count: Optional[int] = None, random_state: Optional[int] = None,
                 feature_names: Optional[Sequence[str]] = None):
        super().__init__(feature_names)
        if bagging not in BAGGING_METHODS:
            raise ConfigurationError(f"Unknown bagging method '{bagging}'. Available: {BAGGING_METHODS}")
        if tree_selection not in TREE_SELECTIONS:
            raise ConfigurationError(f"Unknown tree selection '{tree_selection}'. Available: {TREE_SELECTIONS}")
        if n_trees < 1:
            raise ConfigurationError(f"n_trees must be >= 1, got {n_trees}")
        if not 0.0 < bag_fraction <= 1.0:
            raise ConfigurationError(f"bag_fraction must be in (0, 1], got {bag_fraction}")

        self.n_trees = n_trees
        self.criterion = criterion
        self.max_depth = max_depth
        self.min_samples_leaf = min_samples_leaf
        self.max_features = max_features
        self.bagging = bagging
        self.bag_fraction = bag_fraction
        self.tree_selection = tree_selection
        self.selected_tree_count = selected_tree_count
        self.random_state = random_state
        self.trees: List[DecisionTreeModel] = []

    def get_params(self) -> Dict[str, Any]:
        return {
            "n_trees": self.n_trees,
            "criterion": self.criterion,
            "max_depth": self.max_depth,
            "min_samples_leaf": self.min_samples_leaf,
            "max_features": self.max_features,
            "bagging": self.bagging,
            "bag_fraction": self.bag_fraction,
            "tree_selection": self.tree_selection,
            "selected_tree_count": self.selected_tree_count,
            "random_state": self.random_state,
        }

    def add_decision_tree_model(self, tree: DecisionTreeModel) -> None:
        """Append a trained tree. All trees must share one feature schema."""
        tree._check_trained()
        if self.trees and tree.feature_names != self.feature_names:
            raise DataValidationError("Decision tree feature names do not match the forest's features.")
        if not self.trees:
            self.feature_names = tree.feature_names
        self.trees.append(tree)
        known = [] if self.classes_ is None else self.classes_.tolist()
        self.classes_ = np.array(sorted(set(known) | set(tree.classes_.tolist())))

    def train(self, package: DataPackage) -> "RandomForestModel":
        self._check_trainable(package)
        rng = np.random.default_rng(self.random_state)
        labels = package.labels()
        n_rows = package.row_count()

        self.trees = []
        self.classes_ = None
        oob_scores = []

        for _ in range(self.n_trees):
            drawn = self._bag(rng, labels)
            counts = np.bincount(drawn, minlength=n_rows)
            in_bag = np.flatnonzero(counts)

            tree = DecisionTreeModel(
                criterion=self.criterion,
                max_depth=self.max_depth,
                min_samples_leaf=self.min_samples_leaf,
                max_features=self.max_features,
                random_state=int(rng.integers(0, 2**31 - 1)),
            )
            tree.train(package.subset_rows(in_bag), sample_weight=counts[in_bag].astype(float))
            self.add_decision_tree_model(tree)

            if self.tree_selection == "oob":
                out_of_bag = np.flatnonzero(counts == 0)
                if out_of_bag.size:
                    preds = tree.predict_package(package.subset_rows(out_of_bag))
                    oob_scores.append(float(np.mean(preds == labels[out_of_bag])))
                else:
                    oob_scores.append(0.0)

        if self.tree_selection == "oob":
            self._select_trees(oob_scores)
        return self

    def _bag(self, rng: np.random.Generator, labels: np.ndarray) -> np.ndarray:
        if self.bagging == "normal":
            size = max(1, int(round(labels.shape[0] * self.bag_fraction)))
            return rng.integers(0, labels.shape[0], size=size)

        classes, counts = np.unique(labels, return_counts=True)
        per_class = max(1, int(round(counts.min() * self.bag_fraction)))
        drawn = [rng.choice(np.flatnonzero(labels == c), size=per_class, replace=True) for c in classes]
        return np.concatenate(drawn)

    def _select_trees(self, oob_scores: List[float]) -> None:
        keep = self.selected_tree_count or len(self.trees)
        keep = max(1, min(keep, len(self.trees)))
        # Stable order keeps earlier trees on ties
        ranked = sorted(range(len(self.trees)), key=lambda i: -oob_scores[i])[:keep]
        self.trees = [self.trees[i] for i in sorted(ranked)]

    # --- Prediction ---

    def vote_fractions(self, row_features) -> Dict[Any, float]:
        self._check_trained()
        votes = {label: 0 for label in self.classes_.tolist()}
        for tree in self.trees:
            votes[np.asarray(tree.evaluate(row_features)).item()] += 1
        return {label: count / len(self.trees) for label, count in votes.items()}

    def evaluate(self, row_features) -> Any:
        fractions = self.vote_fractions(row_features)
        # Ties resolve to the first class in sorted order
        return max(fractions, key=lambda label: (fractions[label], -self.classes_.tolist().index(label)))

    def predict(self, matrix) -> np.ndarray:
        self._check_trained()
        matrix = np.atleast_2d(np.asarray(matrix, dtype=float))
        classes = self.classes_.tolist()
        tree_preds = np.array([tree.predict(matrix) for tree in self.trees])
        counts = np.stack([np.sum(tree_preds == label, axis=0) for label in classes], axis=1)
        # argmax returns the first maximum, i.e. the lowest sorted class
        return np.asarray(classes)[np.argmax(counts, axis=1)]
