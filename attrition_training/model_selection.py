"""Logistic regression fitting and diagnostic-driven predictor selection.

Two strategies are available:

* ``refine`` - drop one predictor per iteration, preferring collinear (high VIF)
  predictors when their removal does not raise AIC, otherwise the least
  significant one, until every predictor is significant and non-collinear or
  the next removal would raise AIC.
* ``stepwise`` - both-direction AIC search: try every single drop/add and keep
  the change with the lowest AIC until nothing improves.

``stepwise_then_refine`` chains the two.
"""
from __future__ import annotations

import logging
import warnings
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd
import statsmodels.api as sm
from scipy.stats import norm
from statsmodels.stats.outliers_influence import variance_inflation_factor
from statsmodels.tools.sm_exceptions import ConvergenceWarning

from attrition_common.attrition_config import (
    CONVERGENCE_TOLERANCE,
    MAX_ITERATIONS,
    SELECTION_STRATEGIES,
    SELECTION_STRATEGY,
    SIGNIFICANCE_LEVEL,
    TARGET_COLUMN,
    VIF_INFINITY_BOUND,
    VIF_THRESHOLD,
)
from attrition_common.encoding import require_columns
from attrition_common.errors import ConvergenceError, SchemaError, SingularMatrixError
from attrition_common.schemas import (
    CoefficientSummary,
    FittedModel,
    SelectionResult,
    SelectionStep,
)

logger = logging.getLogger(__name__)

INTERCEPT = "(Intercept)"


def _check_rank(exog: np.ndarray, names: Sequence[str]) -> None:
    n_columns = exog.shape[1]
    if np.linalg.matrix_rank(exog) == n_columns:
        return
    # Locate the first column that adds nothing to the span of the ones before it
    for width in range(1, n_columns + 1):
        if np.linalg.matrix_rank(exog[:, :width]) < width:
            raise SingularMatrixError(names[width - 1])
    raise SingularMatrixError(names[-1])


def _label_vector(label: pd.Series, n_rows: int) -> np.ndarray:
    endog = np.asarray(label, dtype=float)
    name = getattr(label, "name", None) or TARGET_COLUMN
    if endog.shape[0] != n_rows:
        raise SchemaError(str(name), f"has {endog.shape[0]} rows, design matrix has {n_rows}")
    if not np.isin(endog, [0.0, 1.0]).all():
        raise SchemaError(str(name), "label must be binary 0/1")
    return endog


def fit_binomial(
    design_matrix: pd.DataFrame,
    label: pd.Series,
    predictors: Optional[Sequence[str]] = None,
    *,
    max_iterations: int = MAX_ITERATIONS,
    tolerance: float = CONVERGENCE_TOLERANCE,
) -> FittedModel:
    """Maximum-likelihood binomial GLM with intercept over ``predictors`` (default: all columns)."""
    predictors = list(design_matrix.columns if predictors is None else predictors)
    require_columns(design_matrix, predictors)
    endog = _label_vector(label, len(design_matrix))

    exog = np.column_stack(
        [np.ones(len(design_matrix)), design_matrix[predictors].to_numpy(dtype=float)]
    )
    names = [INTERCEPT] + predictors
    _check_rank(exog, names)

    with warnings.catch_warnings():
        warnings.simplefilter("ignore", ConvergenceWarning)
        result = sm.GLM(endog, exog, family=sm.families.Binomial()).fit(
            maxiter=max_iterations, tol=tolerance
        )
    if not result.converged:
        raise ConvergenceError(max_iterations, tolerance)

    params = np.asarray(result.params, dtype=float)
    std_errors = np.asarray(result.bse, dtype=float)
    z_values = params / std_errors
    p_values = 2 * norm.sf(np.abs(z_values))
    summaries = [
        CoefficientSummary(
            name=name,
            estimate=float(estimate),
            std_error=float(std_error),
            z_value=float(z_value),
            p_value=float(p_value),
        )
        for name, estimate, std_error, z_value, p_value in zip(
            names, params, std_errors, z_values, p_values
        )
    ]
    residual_deviance = float(result.deviance)
    return FittedModel(
        predictors=tuple(predictors),
        intercept=summaries[0],
        coefficients=tuple(summaries[1:]),
        null_deviance=float(result.null_deviance),
        residual_deviance=residual_deviance,
        df_null=int(result.nobs) - 1,
        df_residual=int(result.df_resid),
        aic=residual_deviance + 2 * len(names),
        n_observations=int(result.nobs),
        iterations=int(result.fit_history["iteration"]),
    )


def compute_vif(design_matrix: pd.DataFrame, predictors: Optional[Sequence[str]] = None) -> pd.Series:
    """VIF_i = 1 / (1 - R²_i); a predictor fully explained by the others gets ``inf``."""
    predictors = list(design_matrix.columns if predictors is None else predictors)
    require_columns(design_matrix, predictors)
    if not predictors:
        return pd.Series(dtype=float)

    exog = sm.add_constant(design_matrix[predictors].to_numpy(dtype=float), has_constant="add")
    with np.errstate(divide="ignore", invalid="ignore"):
        values = [variance_inflation_factor(exog, position + 1) for position in range(len(predictors))]
    vif = pd.Series(values, index=predictors, dtype=float, name="vif")
    unbounded = ~np.isfinite(vif.to_numpy()) | (vif.to_numpy() > VIF_INFINITY_BOUND)
    vif[unbounded] = np.inf
    return vif


def refine_model(
    design_matrix: pd.DataFrame,
    label: pd.Series,
    predictors: Optional[Sequence[str]] = None,
    *,
    vif_threshold: float = VIF_THRESHOLD,
    significance_level: float = SIGNIFICANCE_LEVEL,
    max_iterations: int = MAX_ITERATIONS,
    tolerance: float = CONVERGENCE_TOLERANCE,
) -> SelectionResult:
    order = list(design_matrix.columns if predictors is None else predictors)
    position = {name: index for index, name in enumerate(order)}
    current = list(order)

    def fit(names: List[str]) -> FittedModel:
        return fit_binomial(
            design_matrix, label, names, max_iterations=max_iterations, tolerance=tolerance
        )

    model = fit(current)
    steps: List[SelectionStep] = []
    stop_reason = "intercept_only"

    while current:
        vif = compute_vif(design_matrix, current)
        p_values = model.p_values()
        flagged = [name for name in current if vif[name] > vif_threshold]
        weak = [name for name in current if p_values[name] > significance_level]
        if not flagged and not weak:
            stop_reason = "converged"
            break

        if flagged:
            candidate = max(flagged, key=lambda name: (vif[name], -position[name]))
            reduced = fit([name for name in current if name != candidate])
            if reduced.aic <= model.aic:
                logger.info(
                    "Removed %s (VIF %.2f): AIC %.2f -> %.2f",
                    candidate, vif[candidate], model.aic, reduced.aic,
                )
                steps.append(
                    SelectionStep(
                        action="remove",
                        predictor=candidate,
                        reason="vif",
                        aic_before=model.aic,
                        aic_after=reduced.aic,
                        vif=float(vif[candidate]),
                        p_value=p_values[candidate],
                    )
                )
                current.remove(candidate)
                model = reduced
                continue
            logger.info("Kept collinear %s: removal would raise AIC to %.2f", candidate, reduced.aic)

        if not weak:
            stop_reason = "aic_increase"
            break

        candidate = max(weak, key=lambda name: (p_values[name], -position[name]))
        reduced = fit([name for name in current if name != candidate])
        if reduced.aic > model.aic:
            logger.info(
                "Stopped: removing %s (p=%.4f) would raise AIC %.2f -> %.2f",
                candidate, p_values[candidate], model.aic, reduced.aic,
            )
            stop_reason = "aic_increase"
            break
        logger.info(
            "Removed %s (p=%.4f): AIC %.2f -> %.2f",
            candidate, p_values[candidate], model.aic, reduced.aic,
        )
        steps.append(
            SelectionStep(
                action="remove",
                predictor=candidate,
                reason="p_value",
                aic_before=model.aic,
                aic_after=reduced.aic,
                vif=float(vif[candidate]),
                p_value=p_values[candidate],
            )
        )
        current.remove(candidate)
        model = reduced

    return SelectionResult(
        strategy="refine",
        model=model,
        steps=steps,
        stop_reason=stop_reason,
        vif=compute_vif(design_matrix, current).to_dict(),
    )


def stepwise_aic(
    design_matrix: pd.DataFrame,
    label: pd.Series,
    predictors: Optional[Sequence[str]] = None,
    *,
    scope: Optional[Sequence[str]] = None,
    max_iterations: int = MAX_ITERATIONS,
    tolerance: float = CONVERGENCE_TOLERANCE,
) -> SelectionResult:
    """Both-direction search starting from ``predictors`` over the columns in ``scope``."""
    scope = list(design_matrix.columns if scope is None else scope)
    start = set(scope if predictors is None else predictors)
    current = [name for name in scope if name in start]

    def fit(names: List[str]) -> FittedModel:
        return fit_binomial(
            design_matrix, label, names, max_iterations=max_iterations, tolerance=tolerance
        )

    model = fit(current)
    steps: List[SelectionStep] = []

    while True:
        best: Optional[FittedModel] = None
        best_change = None
        for name in current:
            trial = fit([other for other in current if other != name])
            if trial.aic < (best.aic if best else model.aic):
                best, best_change = trial, ("remove", name)
        for name in scope:
            if name in current:
                continue
            try:
                trial = fit([other for other in scope if other in current or other == name])
            except SingularMatrixError as exc:
                logger.debug("Skipped adding %s: %s", name, exc)
                continue
            if trial.aic < (best.aic if best else model.aic):
                best, best_change = trial, ("add", name)

        if best is None:
            break
        action, name = best_change
        logger.info("Stepwise %s %s: AIC %.2f -> %.2f", action, name, model.aic, best.aic)
        steps.append(
            SelectionStep(
                action=action, predictor=name, reason="aic", aic_before=model.aic, aic_after=best.aic
            )
        )
        current = list(best.predictors)
        model = best

    return SelectionResult(
        strategy="stepwise",
        model=model,
        steps=steps,
        stop_reason="no_improvement",
        vif=compute_vif(design_matrix, current).to_dict(),
    )


def select_model(
    design_matrix: pd.DataFrame,
    label: pd.Series,
    predictors: Optional[Sequence[str]] = None,
    *,
    strategy: str = SELECTION_STRATEGY,
    vif_threshold: float = VIF_THRESHOLD,
    significance_level: float = SIGNIFICANCE_LEVEL,
    max_iterations: int = MAX_ITERATIONS,
    tolerance: float = CONVERGENCE_TOLERANCE,
) -> SelectionResult:
    if strategy not in SELECTION_STRATEGIES:
        raise ValueError(f"Unknown selection strategy '{strategy}', expected one of {SELECTION_STRATEGIES}")

    refine_options = dict(
        vif_threshold=vif_threshold,
        significance_level=significance_level,
        max_iterations=max_iterations,
        tolerance=tolerance,
    )
    if strategy == "refine":
        return refine_model(design_matrix, label, predictors, **refine_options)

    stepwise = stepwise_aic(
        design_matrix,
        label,
        predictors,
        scope=predictors,
        max_iterations=max_iterations,
        tolerance=tolerance,
    )
    if strategy == "stepwise":
        return stepwise

    refined = refine_model(design_matrix, label, stepwise.predictors, **refine_options)
    return SelectionResult(
        strategy=strategy,
        model=refined.model,
        steps=stepwise.steps + refined.steps,
        stop_reason=refined.stop_reason,
        vif=refined.vif,
    )
