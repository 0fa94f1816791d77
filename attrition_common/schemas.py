"""Pydantic schemas shared across the attrition pipeline stages."""
from __future__ import annotations

import math
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd
from pydantic import BaseModel, Field, computed_field
from scipy.special import expit

from attrition_common.errors import SchemaError


class EmployeeRecord(BaseModel):
    """One row of the HR table."""

    satisfaction_level: float = Field(..., ge=0, le=1)
    last_evaluation: float = Field(..., ge=0, le=1)
    number_project: int = Field(..., ge=0)
    average_monthly_hours: float = Field(..., ge=0)
    time_spend_company: int = Field(..., ge=0, description="Tenure in years")
    work_accident: int = Field(..., ge=0, le=1)
    left: Optional[int] = Field(None, ge=0, le=1, description="Label, unknown when scoring")
    promotion_last_5years: int = Field(..., ge=0, le=1)
    department: str
    salary: str = Field(..., description="low, medium or high")

    class Config:
        extra = "ignore"
        json_schema_extra = {
            "example": {
                "satisfaction_level": 0.38,
                "last_evaluation": 0.86,
                "number_project": 6,
                "average_monthly_hours": 254,
                "time_spend_company": 4,
                "work_accident": 0,
                "promotion_last_5years": 0,
                "department": "technical",
                "salary": "low",
            }
        }


class CoefficientSummary(BaseModel):
    name: str
    estimate: float
    std_error: float
    z_value: float
    p_value: float

    class Config:
        frozen = True


class FittedModel(BaseModel):
    """Binomial GLM fit over a fixed design matrix. Refinements produce new instances."""

    predictors: Tuple[str, ...]
    intercept: CoefficientSummary
    coefficients: Tuple[CoefficientSummary, ...]
    null_deviance: float
    residual_deviance: float
    df_null: int
    df_residual: int
    aic: float
    n_observations: int
    iterations: int

    class Config:
        frozen = True

    def p_values(self) -> Dict[str, float]:
        return {coef.name: coef.p_value for coef in self.coefficients}

    def coefficient(self, name: str) -> CoefficientSummary:
        for coef in self.coefficients:
            if coef.name == name:
                return coef
        raise KeyError(name)

    def predict_proba(self, design_matrix: pd.DataFrame) -> pd.Series:
        missing = [name for name in self.predictors if name not in design_matrix.columns]
        if missing:
            raise SchemaError(missing[0], "predictor required by the fitted model")
        weights = np.array([coef.estimate for coef in self.coefficients], dtype=float)
        values = design_matrix[list(self.predictors)].to_numpy(dtype=float)
        linear = self.intercept.estimate + values @ weights
        return pd.Series(expit(linear), index=design_matrix.index, name="probability_to_leave")

    def summary_frame(self) -> pd.DataFrame:
        rows = [self.intercept.model_dump()] + [coef.model_dump() for coef in self.coefficients]
        return pd.DataFrame(rows).set_index("name")


class SelectionStep(BaseModel):
    action: str = Field(..., description="remove or add")
    predictor: str
    reason: str = Field(..., description="vif, p_value or aic")
    aic_before: float
    aic_after: float
    vif: Optional[float] = None
    p_value: Optional[float] = None


class SelectionResult(BaseModel):
    strategy: str
    model: FittedModel
    steps: List[SelectionStep] = Field(default_factory=list)
    stop_reason: str
    vif: Dict[str, float] = Field(default_factory=dict)

    @property
    def predictors(self) -> Tuple[str, ...]:
        return self.model.predictors


def _ratio(numerator: int, denominator: int) -> float:
    return numerator / denominator if denominator else math.nan


class ConfusionMatrix(BaseModel):
    true_positive: int = Field(..., ge=0)
    true_negative: int = Field(..., ge=0)
    false_positive: int = Field(..., ge=0)
    false_negative: int = Field(..., ge=0)
    threshold: float = Field(0.5, ge=0, le=1)

    class Config:
        frozen = True

    @computed_field
    @property
    def total(self) -> int:
        return self.true_positive + self.true_negative + self.false_positive + self.false_negative

    @computed_field
    @property
    def accuracy(self) -> float:
        return _ratio(self.true_positive + self.true_negative, self.total)

    @computed_field
    @property
    def sensitivity(self) -> float:
        return _ratio(self.true_positive, self.true_positive + self.false_negative)

    @computed_field
    @property
    def specificity(self) -> float:
        return _ratio(self.true_negative, self.true_negative + self.false_positive)

    def as_array(self) -> np.ndarray:
        """2x2 counts laid out as rows = actual (0, 1), columns = predicted (0, 1)."""
        return np.array(
            [
                [self.true_negative, self.false_positive],
                [self.false_negative, self.true_positive],
            ]
        )
