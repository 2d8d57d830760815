import numpy as np
import pandas as pd
from typing import Dict, Sequence


def cv_fold_consistency(fold_scores: Dict[str, Sequence[float]]) -> pd.DataFrame:
    """
    Summarize fold-to-fold consistency for each measure.
    Expects fold_scores like {"F1-Score": [0.7, 0.8, ...], "ROCDistance": [...]}
    """
    rows = []
    for measure, scores in fold_scores.items():
        scores = np.asarray(scores, dtype=float)
        if scores.size == 0:
            continue
        mean = float(np.mean(scores))
        std = float(np.std(scores))
        rows.append({
            "measure": measure,
            "folds": len(scores),
            "mean": mean,
            "std": std,
            "min": float(np.min(scores)),
            "max": float(np.max(scores)),
            "range": float(np.max(scores) - np.min(scores)),
            "cv": std / abs(mean) if mean != 0 else float("inf"),
        })
    return pd.DataFrame(rows)
