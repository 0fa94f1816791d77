import numpy as np
import pandas as pd
import pytest

from attrition_common.errors import ConvergenceError, SchemaError, SingularMatrixError
from attrition_common.schemas import CoefficientSummary, FittedModel
from attrition_training import model_selection
from attrition_training.model_selection import (
    compute_vif,
    fit_binomial,
    refine_model,
    select_model,
    stepwise_aic,
)


def test_fit_reports_glm_summary(modeling_set):
    features, label = modeling_set
    model = fit_binomial(features, label)

    n_params = features.shape[1] + 1
    assert model.predictors == tuple(features.columns)
    assert model.aic == pytest.approx(model.residual_deviance + 2 * n_params)
    assert model.null_deviance > model.residual_deviance
    assert model.df_null == len(features) - 1
    assert model.df_residual == len(features) - n_params
    for coef in (model.intercept,) + model.coefficients:
        assert coef.z_value == pytest.approx(coef.estimate / coef.std_error)
        assert 0.0 <= coef.p_value <= 1.0

    satisfaction = model.coefficient("satisfaction_level")
    assert satisfaction.estimate < 0
    assert satisfaction.p_value < 0.001

    summary = model.summary_frame()
    assert summary.index.tolist() == ["(Intercept)"] + list(features.columns)
    assert summary.columns.tolist() == ["estimate", "std_error", "z_value", "p_value"]
    assert summary.loc["satisfaction_level", "estimate"] == satisfaction.estimate


def test_predict_proba_is_a_probability(modeling_set):
    features, label = modeling_set
    model = fit_binomial(features, label, ["satisfaction_level", "time_spend_company"])

    probabilities = model.predict_proba(features)

    assert probabilities.index.equals(features.index)
    assert probabilities.between(0, 1).all()
    with pytest.raises(SchemaError):
        model.predict_proba(features.drop(columns=["time_spend_company"]))


def test_duplicate_column_raises_singular(modeling_set):
    features, label = modeling_set
    duplicated = features.assign(satisfaction_copy=features["satisfaction_level"])

    with pytest.raises(SingularMatrixError) as excinfo:
        fit_binomial(duplicated, label)
    assert excinfo.value.predictor == "satisfaction_copy"


def test_iteration_bound_raises_convergence_error(modeling_set):
    features, label = modeling_set

    with pytest.raises(ConvergenceError):
        fit_binomial(features, label, max_iterations=1, tolerance=1e-12)


def test_non_binary_label_raises(modeling_set):
    features, label = modeling_set

    with pytest.raises(SchemaError):
        fit_binomial(features, label * 2)


def test_vif_flags_exact_linear_combination():
    rng = np.random.default_rng(3)
    frame = pd.DataFrame({"a": rng.normal(size=200), "b": rng.normal(size=200), "c": rng.normal(size=200)})
    frame["a_plus_b"] = frame["a"] + frame["b"]

    vif = compute_vif(frame)

    assert np.isinf(vif["a"]) and np.isinf(vif["b"]) and np.isinf(vif["a_plus_b"])
    assert np.isfinite(vif["c"])
    assert vif["c"] < 2


def _with_near_copy(features: pd.DataFrame) -> pd.DataFrame:
    rng = np.random.default_rng(11)
    jitter = rng.normal(scale=0.005, size=len(features))
    return features.assign(satisfaction_copy=features["satisfaction_level"] + jitter)


def test_refine_removes_one_of_a_collinear_pair(modeling_set):
    features, label = modeling_set
    collinear = _with_near_copy(features)

    result = refine_model(collinear, label)

    assert result.steps
    assert not {"satisfaction_level", "satisfaction_copy"} <= set(result.predictors)


def test_refine_steps_never_raise_aic(modeling_set):
    features, label = modeling_set

    result = refine_model(features, label)

    assert result.stop_reason in {"converged", "aic_increase", "intercept_only"}
    assert set(result.predictors) <= set(features.columns)
    for step in result.steps:
        assert step.action == "remove"
        assert step.aic_after <= step.aic_before
    if result.stop_reason == "converged":
        assert all(p <= 0.05 for p in result.model.p_values().values())
        assert all(v <= 5.0 for v in result.vif.values())


def test_refine_is_deterministic(modeling_set):
    features, label = modeling_set

    first = refine_model(features, label)
    second = refine_model(features, label)

    assert [step.predictor for step in first.steps] == [step.predictor for step in second.steps]
    assert first.predictors == second.predictors


def test_refine_without_predictors_is_intercept_only(modeling_set):
    features, label = modeling_set

    result = refine_model(features, label, [])

    assert result.stop_reason == "intercept_only"
    assert result.model.predictors == ()
    assert result.model.null_deviance == pytest.approx(result.model.residual_deviance)


def test_stepwise_adds_strongest_driver_first(modeling_set):
    features, label = modeling_set

    result = stepwise_aic(features, label, [])

    assert result.steps[0].action == "add"
    assert result.steps[0].predictor == "satisfaction_level"
    aics = [result.steps[0].aic_before] + [step.aic_after for step in result.steps]
    assert all(later < earlier for earlier, later in zip(aics, aics[1:]))


def test_stepwise_never_worse_than_full_model(modeling_set):
    features, label = modeling_set
    full = fit_binomial(features, label)

    result = stepwise_aic(features, label)

    assert result.strategy == "stepwise"
    assert result.model.aic <= full.aic


def test_select_model_chains_strategies(modeling_set):
    features, label = modeling_set

    result = select_model(features, label, strategy="stepwise_then_refine")
    stepwise = select_model(features, label, strategy="stepwise")

    assert result.strategy == "stepwise_then_refine"
    assert set(result.predictors) <= set(stepwise.predictors)
    assert result.steps[: len(stepwise.steps)] == stepwise.steps


def test_select_model_rejects_unknown_strategy(modeling_set):
    features, label = modeling_set

    with pytest.raises(ValueError):
        select_model(features, label, strategy="lasso")


def _coef(name, p_value):
    return CoefficientSummary(name=name, estimate=1.0, std_error=1.0, z_value=1.0, p_value=p_value)


def _scripted_refine(monkeypatch, aic_by_set, p_values, vif_values):
    """Replace fitting and VIF with fixed tables keyed by predictor set and name."""

    def fake_fit(design_matrix, label, predictors=None, **options):
        names = tuple(predictors)
        aic = aic_by_set[frozenset(names)]
        return FittedModel(
            predictors=names,
            intercept=_coef("(Intercept)", 0.5),
            coefficients=tuple(_coef(name, p_values[name]) for name in names),
            null_deviance=150.0,
            residual_deviance=aic - 2 * (len(names) + 1),
            df_null=99,
            df_residual=99 - len(names),
            aic=aic,
            n_observations=100,
            iterations=4,
        )

    def fake_vif(design_matrix, predictors=None):
        names = list(predictors)
        return pd.Series([vif_values[name] for name in names], index=names, dtype=float)

    monkeypatch.setattr(model_selection, "fit_binomial", fake_fit)
    monkeypatch.setattr(model_selection, "compute_vif", fake_vif)
    return pd.DataFrame({"a": [0.0, 1.0], "b": [1.0, 0.0], "c": [1.0, 1.0]}), pd.Series([0, 1])


def test_refine_stops_when_removal_raises_aic(monkeypatch):
    design, label = _scripted_refine(
        monkeypatch,
        aic_by_set={frozenset("abc"): 100.0, frozenset("ac"): 101.0},
        p_values={"a": 0.001, "b": 0.2, "c": 0.1},
        vif_values={"a": 1.0, "b": 1.0, "c": 1.0},
    )

    result = model_selection.refine_model(design, label)

    assert result.stop_reason == "aic_increase"
    assert result.predictors == ("a", "b", "c")
    assert result.steps == []
    assert result.model.aic == 100.0


def test_refine_keeps_collinear_predictor_and_drops_weak_one(monkeypatch):
    design, label = _scripted_refine(
        monkeypatch,
        aic_by_set={
            frozenset("abc"): 100.0,
            frozenset("bc"): 105.0,
            frozenset("ac"): 99.0,
            frozenset("c"): 104.0,
        },
        p_values={"a": 0.001, "b": 0.3, "c": 0.01},
        vif_values={"a": 12.0, "b": 1.0, "c": 1.0},
    )

    result = model_selection.refine_model(design, label)

    assert [(step.predictor, step.reason) for step in result.steps] == [("b", "p_value")]
    assert result.steps[0].aic_before == 100.0
    assert result.steps[0].aic_after == 99.0
    assert result.predictors == ("a", "c")
    assert result.stop_reason == "aic_increase"


@pytest.mark.parametrize(
    "order, removed, remaining",
    [
        (["a", "b", "c"], "b", ("a", "c")),
        (["a", "c", "b"], "c", ("a", "b")),
    ],
)
def test_refine_breaks_p_value_ties_by_column_order(monkeypatch, order, removed, remaining):
    design, label = _scripted_refine(
        monkeypatch,
        aic_by_set={
            frozenset("abc"): 100.0,
            frozenset("ac"): 99.0,
            frozenset("ab"): 98.0,
            frozenset("a"): 101.0,
        },
        p_values={"a": 0.001, "b": 0.3, "c": 0.3},
        vif_values={"a": 1.0, "b": 1.0, "c": 1.0},
    )

    result = model_selection.refine_model(design, label, order)

    assert [step.predictor for step in result.steps] == [removed]
    assert result.predictors == remaining
    assert result.stop_reason == "aic_increase"
