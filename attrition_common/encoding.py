"""Turn the raw HR table into a numeric design matrix with a fixed one-hot vocabulary."""
from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Sequence, Tuple

import pandas as pd
from pydantic import BaseModel
from sklearn.preprocessing import OneHotEncoder

from attrition_common.attrition_config import (
    BINARY_COLUMNS,
    CATEGORICAL_COLUMNS,
    COLUMN_ALIASES,
    INTEGER_COLUMNS,
    NON_NEGATIVE_COLUMNS,
    REQUIRED_COLUMNS,
    UNIT_INTERVAL_COLUMNS,
)
from attrition_common.errors import SchemaError

logger = logging.getLogger(__name__)


class EncodingVocabulary(BaseModel):
    """Sorted levels per categorical column; the first level of each is the dropped reference."""

    levels: Dict[str, Tuple[str, ...]]

    class Config:
        frozen = True

    @property
    def columns(self) -> List[str]:
        return list(self.levels)

    def reference(self, column: str) -> str:
        return self.levels[column][0]

    def indicator_columns(self, column: str) -> List[str]:
        return [f"{column}_{level}" for level in self.levels[column][1:]]

    def all_indicator_columns(self) -> List[str]:
        names: List[str] = []
        for column in self.levels:
            names.extend(self.indicator_columns(column))
        return names


def normalize_columns(table: pd.DataFrame) -> pd.DataFrame:
    renamed = table.rename(columns=lambda c: str(c).strip())
    return renamed.rename(columns=COLUMN_ALIASES)


def require_columns(table: pd.DataFrame, columns: Iterable[str]) -> None:
    for column in columns:
        if column not in table.columns:
            raise SchemaError(column)


def validate_table(table: pd.DataFrame, required: Sequence[str] = REQUIRED_COLUMNS) -> None:
    require_columns(table, required)
    nulls = [column for column in required if table[column].isna().any()]
    if nulls:
        raise SchemaError(nulls[0], "contains missing values")
    for column in BINARY_COLUMNS:
        if column in required and not table[column].isin([0, 1]).all():
            raise SchemaError(column, "expected only 0/1 values")
    for column in UNIT_INTERVAL_COLUMNS:
        if column in required and not table[column].between(0, 1).all():
            raise SchemaError(column, "values must lie in [0, 1]")
    for column in NON_NEGATIVE_COLUMNS:
        if column in required and not (table[column] >= 0).all():
            raise SchemaError(column, "values must be non-negative")
    for column in INTEGER_COLUMNS:
        if column in required and not (table[column] % 1 == 0).all():
            raise SchemaError(column, "expected whole numbers")


def _categorical_frame(table: pd.DataFrame, columns: Sequence[str]) -> pd.DataFrame:
    return table[list(columns)].astype(str)


def fit_vocabulary(
    table: pd.DataFrame, categorical_columns: Sequence[str] = CATEGORICAL_COLUMNS
) -> EncodingVocabulary:
    require_columns(table, categorical_columns)
    frame = _categorical_frame(table, categorical_columns)
    levels = {column: tuple(sorted(frame[column].unique())) for column in categorical_columns}
    return EncodingVocabulary(levels=levels)


def apply_vocabulary(table: pd.DataFrame, vocabulary: EncodingVocabulary) -> pd.DataFrame:
    """Encode any table (full, subset or new rows) with an already fitted vocabulary."""
    require_columns(table, vocabulary.columns)
    frame = _categorical_frame(table, vocabulary.columns)
    for column in vocabulary.columns:
        unseen = sorted(set(frame[column]) - set(vocabulary.levels[column]))
        if unseen:
            raise SchemaError(column, f"levels {unseen} are not in the encoding vocabulary")

    passthrough = table.drop(columns=vocabulary.columns)
    if not vocabulary.columns:
        return passthrough.copy()

    encoder = OneHotEncoder(
        categories=[list(vocabulary.levels[column]) for column in vocabulary.columns],
        drop="first",
        sparse_output=False,
        dtype=float,
    )
    indicators = encoder.fit_transform(frame)
    indicator_frame = pd.DataFrame(
        indicators,
        columns=encoder.get_feature_names_out(vocabulary.columns),
        index=table.index,
    )
    return pd.concat([passthrough, indicator_frame], axis=1)


def encode(
    table: pd.DataFrame, categorical_columns: Sequence[str] = CATEGORICAL_COLUMNS
) -> Tuple[pd.DataFrame, EncodingVocabulary]:
    vocabulary = fit_vocabulary(table, categorical_columns)
    design_matrix = apply_vocabulary(table, vocabulary)
    logger.info(
        "Encoded %d rows into %d columns (%d indicators)",
        len(design_matrix),
        design_matrix.shape[1],
        len(vocabulary.all_indicator_columns()),
    )
    return design_matrix, vocabulary


def decode_categories(design_matrix: pd.DataFrame, vocabulary: EncodingVocabulary) -> pd.DataFrame:
    """Rebuild the categorical columns from their indicators; all-zero rows map to the reference."""
    decoded = {}
    for column in vocabulary.columns:
        indicator_names = vocabulary.indicator_columns(column)
        require_columns(design_matrix, indicator_names)
        values = pd.Series(vocabulary.reference(column), index=design_matrix.index)
        for level, name in zip(vocabulary.levels[column][1:], indicator_names):
            values[design_matrix[name] == 1] = level
        decoded[column] = values
    return pd.DataFrame(decoded, index=design_matrix.index)
