import math
import numpy as np
from dataclasses import dataclass
from typing import Dict, Tuple


def _ratio(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator else 0.0


@dataclass(frozen=True)
class ConfusionMatrix:
    """
    Four-count summary of binary classification outcomes.

    All scores are pure functions of the counts. Ratios whose denominator
    is zero evaluate to 0.0.
    """
    true_positives: int = 0
    false_positives: int = 0
    true_negatives: int = 0
    false_negatives: int = 0

    @classmethod
    def from_predictions(cls, y_true, y_pred, positive_label=1) -> "ConfusionMatrix":
        y_true = np.asarray(y_true)
        y_pred = np.asarray(y_pred)
        if y_true.shape != y_pred.shape:
            raise ValueError(f"Shape mismatch: true {y_true.shape} vs predicted {y_pred.shape}")

        actual = y_true == positive_label
        predicted = y_pred == positive_label
        return cls(
            true_positives=int(np.sum(actual & predicted)),
            false_positives=int(np.sum(~actual & predicted)),
            true_negatives=int(np.sum(~actual & ~predicted)),
            false_negatives=int(np.sum(actual & ~predicted)),
        )

    def __add__(self, other: "ConfusionMatrix") -> "ConfusionMatrix":
        return ConfusionMatrix(
            self.true_positives + other.true_positives,
            self.false_positives + other.false_positives,
            self.true_negatives + other.true_negatives,
            self.false_negatives + other.false_negatives,
        )

    def as_array(self) -> np.ndarray:
        """2x2 layout with rows = predicted class, columns = true class (negative first)."""
        return np.array([
            [self.true_negatives, self.false_negatives],
            [self.false_positives, self.true_positives],
        ])

    @property
    def total(self) -> int:
        return self.true_positives + self.false_positives + self.true_negatives + self.false_negatives

    # --- Rates ---

    def sensitivity(self) -> float:
        return _ratio(self.true_positives, self.true_positives + self.false_negatives)

    recall = sensitivity
    true_positive_rate = sensitivity

    def specificity(self) -> float:
        return _ratio(self.true_negatives, self.true_negatives + self.false_positives)

    def false_positive_rate(self) -> float:
        return _ratio(self.false_positives, self.false_positives + self.true_negatives)

    def precision(self) -> float:
        return _ratio(self.true_positives, self.true_positives + self.false_positives)

    positive_predictive_value = precision

    def negative_predictive_value(self) -> float:
        return _ratio(self.true_negatives, self.true_negatives + self.false_negatives)

    def accuracy(self) -> float:
        return _ratio(self.true_positives + self.true_negatives, self.total)

    def mcc(self) -> float:
        tp, fp, tn, fn = self.true_positives, self.false_positives, self.true_negatives, self.false_negatives
        denominator = math.sqrt((tp + fp) * (tp + fn) * (tn + fp) * (tn + fn))
        return _ratio(tp * tn - fp * fn, denominator)

    # --- Scores ---

    def f_score(self, beta: float = 1.0) -> float:
        """
        Weighted harmonic mean of precision and recall.

        Returns 0.0 when precision and recall are both zero.
        """
        beta_sq = beta * beta
        weighted_tp = (1.0 + beta_sq) * self.true_positives
        return _ratio(weighted_tp, weighted_tp + beta_sq * self.false_negatives + self.false_positives)

    def roc(self) -> Tuple[float, float]:
        """(false-positive-rate, true-positive-rate) point at this threshold."""
        return self.false_positive_rate(), self.sensitivity()

    def roc_distance(self) -> float:
        """Euclidean distance from the ROC point to the ideal (0, 1) corner. Lower is better."""
        fpr, tpr = self.roc()
        return math.sqrt((1.0 - tpr) ** 2 + fpr ** 2)

    def auc(self) -> float:
        """Area under the ROC curve through the single point of this matrix."""
        fpr, tpr = self.roc()
        return fpr * tpr / 2.0 + (1.0 - fpr) * tpr + (1.0 - fpr) * (1.0 - tpr) / 2.0

    def all_values(self) -> Dict[str, float]:
        return {
            "AUC": self.auc(),
            "ACC": self.accuracy(),
            "SNS": self.sensitivity(),
            "SPC": self.specificity(),
            "PPV": self.precision(),
            "NPV": self.negative_predictive_value(),
            "MCC": self.mcc(),
            "ROCDistance": self.roc_distance(),
            "F0.5-Score": self.f_score(0.5),
            "F1-Score": self.f_score(1.0),
            "F2-Score": self.f_score(2.0),
        }

    def to_dict(self) -> Dict[str, int]:
        return {
            "tp": self.true_positives,
            "fp": self.false_positives,
            "tn": self.true_negatives,
            "fn": self.false_negatives,
        }
