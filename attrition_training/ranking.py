"""Retention shortlist: who is likely to leave and worth keeping."""
from __future__ import annotations

import numpy as np
import pandas as pd

from attrition_common.attrition_config import TOP_N

PRIORITY_COLUMNS = ["row_id", "probability_to_leave", "performance", "priority"]


def rank(predictions: pd.Series, performance_values: pd.Series, top_n: int = TOP_N) -> pd.DataFrame:
    """Order rows by priority = probability x performance, highest first.

    Ties fall back to performance, then probability (both descending), then the
    input order. Both series must share the same index, which becomes ``row_id``.
    """
    if top_n < 1:
        raise ValueError(f"top_n must be a positive integer, got {top_n}")
    if not predictions.index.equals(performance_values.index):
        raise ValueError("predictions and performance values must share the same row index")

    probability = predictions.to_numpy(dtype=float)
    performance = performance_values.to_numpy(dtype=float)
    table = pd.DataFrame(
        {
            "row_id": predictions.index,
            "probability_to_leave": probability,
            "performance": performance,
            "priority": probability * performance,
            "_position": np.arange(len(predictions)),
        }
    )
    ordered = table.sort_values(
        ["priority", "performance", "probability_to_leave", "_position"],
        ascending=[False, False, False, True],
        kind="mergesort",
    )
    return ordered.head(top_n)[PRIORITY_COLUMNS].reset_index(drop=True)
