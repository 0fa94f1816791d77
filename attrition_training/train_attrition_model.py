"""Select, evaluate and persist the attrition model, and export the retention shortlist."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Tuple

import joblib
import pandas as pd
from pydantic import BaseModel

from attrition_common.attrition_config import (
    ARTIFACT_DIR,
    DATA_PATH,
    DECISION_THRESHOLD,
    MODEL_ARTIFACT,
    MODEL_KEY,
    MODEL_REGISTRY_PATH,
    PERFORMANCE_COLUMN,
    PRIORITY_LIST_PATH,
    RANDOM_STATE,
    SELECTION_STRATEGY,
    SIGNIFICANCE_LEVEL,
    TARGET_COLUMN,
    TOP_N,
    TRAIN_SPLIT_RATIO,
    VIF_THRESHOLD,
)
from attrition_common.encoding import EncodingVocabulary, encode, normalize_columns, validate_table
from attrition_common.filters import filter_valuable_employees, filter_valuable_leavers
from attrition_common.schemas import ConfusionMatrix, FittedModel, SelectionResult
from attrition_training.evaluation import build_confusion_matrix, evaluate, holdout_metrics
from attrition_training.model_selection import select_model
from attrition_training.ranking import rank

logger = logging.getLogger(__name__)


class PipelineReport(BaseModel):
    n_employees: int
    n_valuable: int
    n_valuable_leavers: int
    selection: SelectionResult
    holdout_model: FittedModel
    confusion: ConfusionMatrix
    in_sample_confusion: ConfusionMatrix
    metrics: Dict[str, float]
    priority_list: Any = None


def run_pipeline(
    table: pd.DataFrame,
    *,
    strategy: str = SELECTION_STRATEGY,
    split_ratio: float = TRAIN_SPLIT_RATIO,
    seed: int = RANDOM_STATE,
    threshold: float = DECISION_THRESHOLD,
    top_n: int = TOP_N,
    vif_threshold: float = VIF_THRESHOLD,
    significance_level: float = SIGNIFICANCE_LEVEL,
) -> Tuple[PipelineReport, EncodingVocabulary]:
    """Run every stage on an in-memory HR table.

    Returns ``(report, vocabulary)``. The vocabulary is fitted once on the whole
    table so every subset shares the same indicator columns; indicators with no
    rows in the modeling set are left out of the candidate predictors.
    """
    table = normalize_columns(table)
    validate_table(table)

    design_matrix, vocabulary = encode(table)
    valuable = filter_valuable_employees(design_matrix)
    leavers = filter_valuable_leavers(design_matrix)
    logger.info(
        "%d employees, %d valuable, %d valuable leavers", len(table), len(valuable), len(leavers)
    )

    label = valuable[TARGET_COLUMN]
    features = valuable.drop(columns=[TARGET_COLUMN])
    empty_indicators = [
        column for column in vocabulary.all_indicator_columns() if not features[column].any()
    ]
    if empty_indicators:
        logger.info("Dropped indicators with no valuable employees: %s", empty_indicators)
    candidates = [column for column in features.columns if column not in empty_indicators]

    selection = select_model(
        features,
        label,
        candidates,
        strategy=strategy,
        vif_threshold=vif_threshold,
        significance_level=significance_level,
    )
    logger.info(
        "Selected %d predictors (%s), AIC %.2f",
        len(selection.predictors),
        selection.stop_reason,
        selection.model.aic,
    )
    in_sample_confusion = build_confusion_matrix(
        label, selection.model.predict_proba(features), threshold
    )

    holdout_model, confusion, predictions = evaluate(
        features,
        label,
        split_ratio,
        seed,
        selection.predictors,
        threshold=threshold,
    )
    priority_list = rank(
        predictions["probability_to_leave"],
        valuable.loc[predictions.index, PERFORMANCE_COLUMN],
        top_n=top_n,
    )

    report = PipelineReport(
        n_employees=len(table),
        n_valuable=len(valuable),
        n_valuable_leavers=len(leavers),
        selection=selection,
        holdout_model=holdout_model,
        confusion=confusion,
        in_sample_confusion=in_sample_confusion,
        metrics=holdout_metrics(predictions),
        priority_list=priority_list,
    )
    return report, vocabulary


def _load_dataset(path: Path = DATA_PATH) -> pd.DataFrame:
    return pd.read_csv(path)


def train(data_path: Path = DATA_PATH, artifact_dir: Path = ARTIFACT_DIR) -> Dict[str, Any]:
    report, vocabulary = run_pipeline(_load_dataset(data_path))

    artifact_dir.mkdir(parents=True, exist_ok=True)
    joblib.dump(
        {"model": report.holdout_model, "vocabulary": vocabulary, "threshold": DECISION_THRESHOLD},
        artifact_dir / MODEL_ARTIFACT.name,
    )
    report.priority_list.to_csv(artifact_dir / PRIORITY_LIST_PATH.name, index=False)

    summary = {
        MODEL_KEY: {
            "selection": report.selection.model_dump(),
            "holdout_model": report.holdout_model.model_dump(),
            "confusion": report.confusion.model_dump(),
            "in_sample_confusion": report.in_sample_confusion.model_dump(),
            "metrics": report.metrics,
            "meta": {
                "n_employees": report.n_employees,
                "n_valuable": report.n_valuable,
                "n_valuable_leavers": report.n_valuable_leavers,
                "vocabulary": vocabulary.model_dump(),
            },
        }
    }
    with (artifact_dir / MODEL_REGISTRY_PATH.name).open("w", encoding="utf-8") as registry_file:
        json.dump(summary, registry_file, indent=2)

    return summary


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    results = train()
    entry = results[MODEL_KEY]
    print("Selected predictors:", json.dumps(list(entry["selection"]["model"]["predictors"]), indent=2))
    print("In-sample confusion matrix:", json.dumps(entry["in_sample_confusion"], indent=2))
    print("Holdout confusion matrix:", json.dumps(entry["confusion"], indent=2))
    print("Holdout metrics:", json.dumps(entry["metrics"], indent=2))
