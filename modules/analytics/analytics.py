import math
import numpy as np
from dataclasses import dataclass
from typing import Callable, Dict, List

from modules.analytics.confusion_matrix import ConfusionMatrix
from utils.exceptions import ConfigurationError


@dataclass(frozen=True)
class Measure:
    """A confusion-matrix score plus its optimization direction."""
    name: str
    compute: Callable[[ConfusionMatrix], float]
    minimize: bool
    worst: float


MEASURES: Dict[str, Measure] = {
    "AUC": Measure("AUC", ConfusionMatrix.auc, False, 0.0),
    "ACC": Measure("ACC", ConfusionMatrix.accuracy, False, 0.0),
    "SNS": Measure("SNS", ConfusionMatrix.sensitivity, False, 0.0),
    "SPC": Measure("SPC", ConfusionMatrix.specificity, False, 0.0),
    "PPV": Measure("PPV", ConfusionMatrix.precision, False, 0.0),
    "NPV": Measure("NPV", ConfusionMatrix.negative_predictive_value, False, 0.0),
    "MCC": Measure("MCC", ConfusionMatrix.mcc, False, -1.0),
    "ROCDistance": Measure("ROCDistance", ConfusionMatrix.roc_distance, True, math.sqrt(2.0)),
    "F0.5-Score": Measure("F0.5-Score", lambda cm: cm.f_score(0.5), False, 0.0),
    "F1-Score": Measure("F1-Score", lambda cm: cm.f_score(1.0), False, 0.0),
    "F2-Score": Measure("F2-Score", lambda cm: cm.f_score(2.0), False, 0.0),
}


class ConfusionMatrixAnalytics:
    """
    Scores predictions with one configured measure.

    ROCDistance is minimized. Every other measure is maximized. Callers
    that need a single direction use `loss`, which is always minimized.
    """

    def __init__(self, measure: str = "F1-Score", positive_label=1):
        if measure not in MEASURES:
            raise ConfigurationError(f"Unknown measure '{measure}'. Available: {list(MEASURES)}")
        self.measure = MEASURES[measure]
        self.positive_label = positive_label

    @property
    def minimize(self) -> bool:
        return self.measure.minimize

    def worst_score(self) -> float:
        return self.measure.worst

    def confusion_matrix(self, y_true, y_pred) -> ConfusionMatrix:
        return ConfusionMatrix.from_predictions(y_true, y_pred, self.positive_label)

    def score(self, matrix: ConfusionMatrix) -> float:
        return float(self.measure.compute(matrix))

    def score_predictions(self, y_true, y_pred) -> float:
        return self.score(self.confusion_matrix(y_true, y_pred))

    def loss(self, score: float) -> float:
        """Map a score onto a minimization objective."""
        return score if self.minimize else -score

    def is_better(self, candidate: float, incumbent: float) -> bool:
        if incumbent is None or (isinstance(incumbent, float) and math.isnan(incumbent)):
            return True
        return candidate < incumbent if self.minimize else candidate > incumbent

    def aggregate(self, scores: List[float], variance_penalty: float = 0.0) -> float:
        """Mean of fold scores, pushed toward worse by `variance_penalty` standard deviations."""
        values = np.asarray(scores, dtype=float)
        if values.size == 0:
            return self.worst_score()
        mean = float(np.mean(values))
        spread = float(np.std(values)) * variance_penalty
        return mean + spread if self.minimize else mean - spread
