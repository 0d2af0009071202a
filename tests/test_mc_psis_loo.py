"""Tests for the PSIS-LOO estimator (elpdkit.mc._psis_loo).

Validates the pointwise and aggregate estimates, input selection from
labeled containers, the warning and error contracts, and the information
criterion conversions of the resulting ELPD result.
"""

import warnings

import pytest
import numpy as np
import xarray as xr

from elpdkit.mc import (
    ELPDKind,
    ELPDResult,
    information_criterion,
    loo,
)
from elpdkit.mc._psis_loo import _relative_efficiency


# --------------------------------------------------------------------------
# Fixtures
# --------------------------------------------------------------------------


@pytest.fixture
def well_behaved_log_liks():
    """Log-likelihoods with well-behaved IS weights → k̂ should be low."""
    rng = np.random.default_rng(42)
    return rng.normal(-3.0, 0.3, size=(4, 250, 20))


@pytest.fixture
def constant_log_liks():
    """All draws agree → no tail smoothing needed."""
    return np.full((2, 200, 10), -2.0)


@pytest.fixture
def labeled_data(well_behaved_log_liks):
    """Evaluation container with two log-likelihood variables."""
    schools = [f"school_{i}" for i in range(20)]
    dims = ("chain", "draw", "school")
    return {
        "log_likelihood": xr.Dataset(
            {
                "y": (dims, well_behaved_log_liks),
                "z": (dims, well_behaved_log_liks[..., :5].repeat(4, axis=-1)),
            },
            coords={"school": schools},
        )
    }


# --------------------------------------------------------------------------
# Estimates
# --------------------------------------------------------------------------


def test_loo_returns_loo_result(well_behaved_log_liks):
    result = loo(well_behaved_log_liks)
    assert isinstance(result, ELPDResult)
    assert result.kind is ELPDKind.LOO
    assert result.psis_result is not None
    assert set(result.pointwise.data_vars) == {
        "elpd",
        "elpd_mcse",
        "lpd",
        "p",
        "reff",
        "pareto_shape",
    }
    assert result.pointwise["elpd"].dims == ("obs_dim_0",)


def test_loo_aggregates_pointwise(well_behaved_log_liks):
    result = loo(well_behaved_log_liks)
    elpd_i = result.pointwise["elpd"].values
    assert result.estimates.elpd == pytest.approx(elpd_i.sum())
    assert result.estimates.elpd_mcse == pytest.approx(
        np.sqrt(elpd_i.size) * np.std(elpd_i, ddof=1)
    )


def test_loo_p_is_lpd_minus_elpd(well_behaved_log_liks):
    result = loo(well_behaved_log_liks)
    pw = result.pointwise
    np.testing.assert_allclose(pw["p"], pw["lpd"] - pw["elpd"])
    assert result.estimates.p == pytest.approx(float((pw["lpd"] - pw["elpd"]).sum()))


def test_loo_well_behaved_k_low(well_behaved_log_liks):
    result = loo(well_behaved_log_liks)
    assert np.all(result.pointwise["pareto_shape"].values < 0.7)
    assert np.all(result.pointwise["elpd_mcse"].values >= 0)


def test_loo_constant_log_liks(constant_log_liks):
    """With identical draws the LOO predictive equals the posterior one."""
    with warnings.catch_warnings(record=True) as record:
        warnings.simplefilter("always")
        result = loo(constant_log_liks)
    assert not [w for w in record if "Pareto" in str(w.message)]
    pw = result.pointwise
    np.testing.assert_allclose(pw["elpd"], pw["lpd"])
    np.testing.assert_allclose(pw["elpd"], -2.0)
    np.testing.assert_array_equal(pw["pareto_shape"], 0.0)
    np.testing.assert_allclose(pw["elpd_mcse"], 0.0, atol=1e-8)


def test_loo_explicit_reff(well_behaved_log_liks):
    result = loo(well_behaved_log_liks, reff=0.9)
    np.testing.assert_allclose(result.pointwise["reff"], 0.9)


def test_relative_efficiency_in_range(well_behaved_log_liks):
    reff = _relative_efficiency(well_behaved_log_liks)
    assert reff.shape == (20,)
    assert np.all(reff > 0)


# --------------------------------------------------------------------------
# Input selection
# --------------------------------------------------------------------------


def test_loo_labeled_container(labeled_data):
    result = loo(labeled_data, var_name="y")
    assert result.pointwise["elpd"].dims == ("school",)
    assert result.pointwise["school"].values[0] == "school_0"


def test_loo_ambiguous_variable_raises(labeled_data):
    with pytest.raises(ValueError, match="var_name"):
        loo(labeled_data)


def test_loo_data_array_input(labeled_data):
    da = labeled_data["log_likelihood"]["y"].transpose("school", "draw", "chain")
    expected = loo(labeled_data, var_name="y")
    result = loo(da)
    assert result.estimates.elpd == pytest.approx(expected.estimates.elpd)


# --------------------------------------------------------------------------
# Warnings and errors
# --------------------------------------------------------------------------


def test_loo_requires_sampling_axes():
    with pytest.raises(ValueError):
        loo(np.zeros(10))


@pytest.mark.parametrize("reff", [0.0, -1.0, np.ones(3)])
def test_loo_invalid_reff(well_behaved_log_liks, reff):
    with pytest.raises(ValueError):
        loo(well_behaved_log_liks, reff=reff)


def test_loo_warns_nonfinite_log_liks(well_behaved_log_liks):
    log_liks = well_behaved_log_liks.copy()
    log_liks[0, 0, 0] = np.nan
    with pytest.warns(UserWarning, match="not finite"):
        loo(log_liks, reff=1.0)


def test_loo_warns_high_pareto_shape():
    """Very dispersed log-likelihoods give heavy-tailed weights."""
    rng = np.random.default_rng(7)
    log_liks = rng.normal(-3.0, 0.3, size=(4, 250, 5))
    log_liks[..., 0] = rng.normal(0.0, 10.0, size=(4, 250))
    with pytest.warns(UserWarning, match="Pareto"):
        result = loo(log_liks, reff=1.0)
    assert result.pointwise["pareto_shape"].values[0] > 0.7


def test_loo_forwards_psis_options(well_behaved_log_liks):
    with pytest.warns(UserWarning, match="Pareto"):
        result = loo(well_behaved_log_liks, reff=1.0, tail_length=4)
    assert np.all(result.pointwise["pareto_shape"].values == np.inf)
    with pytest.raises(ValueError, match="tail_length"):
        loo(well_behaved_log_liks, reff=1.0, tail_length=0)


# --------------------------------------------------------------------------
# Information criteria and rendering
# --------------------------------------------------------------------------


@pytest.mark.parametrize(
    "scale, factor", [("deviance", -2), ("log", 1), ("negative_log", -1)]
)
def test_information_criterion_scales(well_behaved_log_liks, scale, factor):
    result = loo(well_behaved_log_liks)
    assert information_criterion(result, scale) == pytest.approx(
        factor * result.estimates.elpd
    )
    assert result.information_criterion(scale) == pytest.approx(
        factor * result.estimates.elpd
    )
    pointwise = information_criterion(result, scale, pointwise=True)
    np.testing.assert_allclose(pointwise, factor * result.pointwise["elpd"])


def test_information_criterion_unknown_scale(well_behaved_log_liks):
    result = loo(well_behaved_log_liks)
    with pytest.raises(ValueError, match="scale"):
        information_criterion(result, "bits")


def test_information_criterion_pointwise_needs_result(well_behaved_log_liks):
    result = loo(well_behaved_log_liks)
    with pytest.raises(ValueError):
        information_criterion(result.estimates, "log", pointwise=True)


def test_loo_result_requires_psis(well_behaved_log_liks):
    result = loo(well_behaved_log_liks)
    with pytest.raises(ValueError):
        ELPDResult(ELPDKind.LOO, result.estimates, result.pointwise)


def test_loo_to_string(well_behaved_log_liks):
    text = loo(well_behaved_log_liks).to_string()
    assert text.startswith("LOO estimates (20 observations)")
    assert "elpd" in text
    assert "Pareto shape" in text
