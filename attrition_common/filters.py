"""Row filters selecting the employees the company should have retained."""
from __future__ import annotations

import pandas as pd

from attrition_common.attrition_config import (
    EVALUATION_CUTOFF,
    PROJECT_CUTOFF,
    TARGET_COLUMN,
    TENURE_CUTOFF,
)
from attrition_common.encoding import require_columns

VALUABLE_RULE_COLUMNS = ["last_evaluation", "time_spend_company", "number_project"]


def valuable_mask(table: pd.DataFrame) -> pd.Series:
    require_columns(table, VALUABLE_RULE_COLUMNS)
    return (
        (table["last_evaluation"] >= EVALUATION_CUTOFF)
        | (table["time_spend_company"] >= TENURE_CUTOFF)
        | (table["number_project"] > PROJECT_CUTOFF)
    )


def filter_valuable_employees(table: pd.DataFrame) -> pd.DataFrame:
    """Everyone matching the valuable rule, leavers and stayers alike (the modeling set)."""
    return table.loc[valuable_mask(table)].copy()


def filter_valuable_leavers(table: pd.DataFrame) -> pd.DataFrame:
    require_columns(table, [TARGET_COLUMN])
    mask = valuable_mask(table) & (table[TARGET_COLUMN] == 1)
    return table.loc[mask].copy()
