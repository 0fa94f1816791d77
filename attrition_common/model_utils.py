"""Helpers for loading the attrition model artifact and scoring new employees."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List

import joblib
import pandas as pd

from attrition_common.attrition_config import (
    COLUMN_ALIASES,
    DECISION_THRESHOLD,
    MODEL_REGISTRY_PATH,
)
from attrition_common.encoding import EncodingVocabulary, apply_vocabulary
from attrition_common.schemas import EmployeeRecord, FittedModel


def _normalize_key(key: str) -> str:
    key = key.strip()
    key = COLUMN_ALIASES.get(key, key)
    return key.lower().replace(" ", "_")


def normalize_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
    normalized: Dict[str, Any] = {}
    for key, value in payload.items():
        normalized[_normalize_key(str(key))] = value
    return normalized


def prepare_features(
    payloads: Iterable[Dict[str, Any]], vocabulary: EncodingVocabulary
) -> pd.DataFrame:
    records = [EmployeeRecord(**normalize_payload(payload)) for payload in payloads]
    frame = pd.DataFrame([record.model_dump(exclude={"left"}) for record in records])
    return apply_vocabulary(frame, vocabulary)


def load_artifact(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Model artifact not found at {path}")
    return joblib.load(path)


def score_employees(payloads: Iterable[Dict[str, Any]], artifact: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Probability to leave for each payload, using the artifact's model and vocabulary."""
    model: FittedModel = artifact["model"]
    threshold = artifact.get("threshold", DECISION_THRESHOLD)
    features = prepare_features(payloads, artifact["vocabulary"])
    probabilities = model.predict_proba(features)
    return [
        {
            "probability_to_leave": float(probability),
            "predicted_label": int(probability >= threshold),
        }
        for probability in probabilities
    ]


def registry_entry(model_key: str, registry_path: Path = MODEL_REGISTRY_PATH) -> Dict[str, Any]:
    if not registry_path.exists():
        return {}
    try:
        with registry_path.open("r", encoding="utf-8") as registry_file:
            data = json.load(registry_file)
            return data.get(model_key, {})
    except json.JSONDecodeError:
        return {}
