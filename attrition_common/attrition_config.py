"""Centralized attrition model settings shared across training and scoring code."""
import os
from pathlib import Path
from typing import Dict, List

PROJECT_ROOT = Path(__file__).resolve().parent.parent
ARTIFACT_DIR = Path(os.getenv("ATTRITION_ARTIFACT_DIR", str(PROJECT_ROOT / "artifacts")))
MODEL_ARTIFACT = ARTIFACT_DIR / "attrition_model.joblib"
MODEL_REGISTRY_PATH = ARTIFACT_DIR / "model_registry.json"
PRIORITY_LIST_PATH = ARTIFACT_DIR / "priority_list.csv"
DATA_PATH = Path(os.getenv("ATTRITION_DATA_PATH", str(PROJECT_ROOT / "HR_comma_sep.csv")))
MODEL_KEY = "attrition"

TARGET_COLUMN = "left"
PERFORMANCE_COLUMN = "last_evaluation"
RANDOM_STATE = int(os.getenv("ATTRITION_RANDOM_STATE", 100))

NUMERIC_COLUMNS: List[str] = [
    "satisfaction_level",
    "last_evaluation",
    "number_project",
    "average_monthly_hours",
    "time_spend_company",
]

# 0/1 flags, passed through the encoder untouched
BINARY_COLUMNS: List[str] = ["work_accident", "left", "promotion_last_5years"]

# One-hot encoded with the lexicographically first level dropped
CATEGORICAL_COLUMNS: List[str] = ["department", "salary"]

REQUIRED_COLUMNS: List[str] = NUMERIC_COLUMNS + BINARY_COLUMNS + CATEGORICAL_COLUMNS

# Columns bounded to [0, 1]
UNIT_INTERVAL_COLUMNS: List[str] = ["satisfaction_level", "last_evaluation"]

NON_NEGATIVE_COLUMNS: List[str] = ["number_project", "average_monthly_hours", "time_spend_company"]
INTEGER_COLUMNS: List[str] = ["number_project", "time_spend_company"]

# Spellings used by the raw HR export
COLUMN_ALIASES: Dict[str, str] = {
    "average_montly_hours": "average_monthly_hours",
    "Work_accident": "work_accident",
    "sales": "department",
}

# "Valuable" employees: good evaluation, long tenure or heavy project load
EVALUATION_CUTOFF = 0.70
TENURE_CUTOFF = 4
PROJECT_CUTOFF = 5

TRAIN_SPLIT_RATIO = 0.75
DECISION_THRESHOLD = 0.5
TOP_N = int(os.getenv("ATTRITION_TOP_N", 50))

VIF_THRESHOLD = 5.0
VIF_INFINITY_BOUND = 1e10
SIGNIFICANCE_LEVEL = 0.05
MAX_ITERATIONS = 100
CONVERGENCE_TOLERANCE = 1e-8

SELECTION_STRATEGIES: List[str] = ["refine", "stepwise", "stepwise_then_refine"]
SELECTION_STRATEGY = os.getenv("ATTRITION_SELECTION_STRATEGY", "stepwise_then_refine")
