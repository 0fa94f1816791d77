"""Holdout evaluation of a selected predictor set."""
from __future__ import annotations

import logging
from typing import Dict, NamedTuple, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from sklearn.metrics import confusion_matrix, f1_score, roc_auc_score
from sklearn.model_selection import train_test_split

from attrition_common.attrition_config import (
    CONVERGENCE_TOLERANCE,
    DECISION_THRESHOLD,
    MAX_ITERATIONS,
    RANDOM_STATE,
    TARGET_COLUMN,
    TRAIN_SPLIT_RATIO,
)
from attrition_common.errors import EmptyPartitionError, SchemaError
from attrition_common.schemas import ConfusionMatrix, FittedModel
from attrition_training.model_selection import fit_binomial

logger = logging.getLogger(__name__)


class EvaluationResult(NamedTuple):
    model: FittedModel
    confusion: ConfusionMatrix
    predictions: pd.DataFrame


def _aligned_label(design_matrix: pd.DataFrame, label) -> pd.Series:
    """Label as a series on the design matrix index, matched by row position."""
    values = np.asarray(label)
    name = getattr(label, "name", None) or TARGET_COLUMN
    if values.shape[0] != len(design_matrix):
        raise SchemaError(str(name), f"has {values.shape[0]} rows, design matrix has {len(design_matrix)}")
    return pd.Series(values, index=design_matrix.index, name=name)


def _check_partition(name: str, label: pd.Series) -> None:
    missing = sorted({0, 1} - set(label.astype(int).unique()))
    if missing:
        raise EmptyPartitionError(name, f"The {name} partition has no rows with label {missing[0]}")


def stratified_split(
    design_matrix: pd.DataFrame,
    label: pd.Series,
    split_ratio: float = TRAIN_SPLIT_RATIO,
    seed: int = RANDOM_STATE,
) -> Tuple[pd.Index, pd.Index]:
    """Row labels of the training and holdout partitions, preserving the class proportion."""
    if not 0 < split_ratio < 1:
        raise ValueError(f"split_ratio must lie strictly between 0 and 1, got {split_ratio}")
    label = _aligned_label(design_matrix, label)
    try:
        train_positions, holdout_positions = train_test_split(
            np.arange(len(design_matrix)),
            train_size=split_ratio,
            random_state=seed,
            stratify=np.asarray(label),
        )
    except ValueError as exc:
        raise EmptyPartitionError("training", str(exc)) from exc

    train_index = design_matrix.index[np.sort(train_positions)]
    holdout_index = design_matrix.index[np.sort(holdout_positions)]
    _check_partition("training", label.loc[train_index])
    _check_partition("holdout", label.loc[holdout_index])
    return train_index, holdout_index


def build_confusion_matrix(
    truth: pd.Series, probabilities: pd.Series, threshold: float = DECISION_THRESHOLD
) -> ConfusionMatrix:
    predicted = (np.asarray(probabilities) >= threshold).astype(int)
    tn, fp, fn, tp = confusion_matrix(np.asarray(truth, dtype=int), predicted, labels=[0, 1]).ravel()
    return ConfusionMatrix(
        true_positive=int(tp),
        true_negative=int(tn),
        false_positive=int(fp),
        false_negative=int(fn),
        threshold=threshold,
    )


def holdout_metrics(predictions: pd.DataFrame) -> Dict[str, float]:
    return {
        "f1": float(f1_score(predictions["left"], predictions["predicted"], zero_division=0)),
        "roc_auc": float(roc_auc_score(predictions["left"], predictions["probability_to_leave"])),
    }


def evaluate(
    design_matrix: pd.DataFrame,
    label: pd.Series,
    split_ratio: float = TRAIN_SPLIT_RATIO,
    seed: int = RANDOM_STATE,
    predictors: Optional[Sequence[str]] = None,
    *,
    threshold: float = DECISION_THRESHOLD,
    max_iterations: int = MAX_ITERATIONS,
    tolerance: float = CONVERGENCE_TOLERANCE,
) -> EvaluationResult:
    """Refit ``predictors`` on the training partition and score the holdout partition."""
    predictors = list(design_matrix.columns if predictors is None else predictors)
    label = _aligned_label(design_matrix, label)
    train_index, holdout_index = stratified_split(design_matrix, label, split_ratio, seed)
    logger.info("Split: Train=%d | Holdout=%d", len(train_index), len(holdout_index))

    model = fit_binomial(
        design_matrix.loc[train_index],
        label.loc[train_index],
        predictors,
        max_iterations=max_iterations,
        tolerance=tolerance,
    )

    probabilities = model.predict_proba(design_matrix.loc[holdout_index])
    truth = label.loc[holdout_index].astype(int)
    predictions = pd.DataFrame(
        {
            "probability_to_leave": probabilities,
            "predicted": (probabilities >= threshold).astype(int),
            "left": truth,
        },
        index=holdout_index,
    )
    predictions.index.name = "row_id"

    confusion = build_confusion_matrix(truth, probabilities, threshold)
    logger.info(
        "Holdout accuracy %.4f | sensitivity %.4f | specificity %.4f",
        confusion.accuracy,
        confusion.sensitivity,
        confusion.specificity,
    )
    return EvaluationResult(model=model, confusion=confusion, predictions=predictions)
