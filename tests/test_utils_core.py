"""Tests for the shared utilities (elpdkit.utils.core).

Covers sample-array normalization, log-likelihood lookup in evaluation
containers, log-domain helpers and the significant-digit rule.
"""

import pytest
import numpy as np
import xarray as xr

from elpdkit.utils.core import (
    _logabssubexp,
    _lpd_pointwise,
    _sum_and_se,
    as_param_array,
    as_sample_array,
    get_log_likelihood,
    sigdigits_matching_error,
)


# --------------------------------------------------------------------------
# sigdigits_matching_error
# --------------------------------------------------------------------------


@pytest.mark.parametrize(
    "x, se, kwargs, expected",
    [
        (123.456, 0.01, {}, 5),
        (123.456, 1, {}, 3),
        (123.456, 1e-4, {}, 7),
        (1e5, 0.1, {}, 7),
        (1e5, 0.2, {"scale": 5}, 6),
        (1e4, 0.5, {}, 5),
        (1e4, 0.5, {"scale": 1}, 6),
        (123.456, 1e-4, {"sigdigits_max": 2}, 2),
    ],
)
def test_sigdigits_reference_values(x, se, kwargs, expected):
    assert sigdigits_matching_error(x, se, **kwargs) == expected


def test_sigdigits_zero_or_nonfinite_value():
    assert sigdigits_matching_error(0.0, 1.0) == 0
    assert sigdigits_matching_error(np.nan, 1.0) == 0
    assert sigdigits_matching_error(np.inf, 1.0) == 0


def test_sigdigits_zero_se_returns_max():
    assert sigdigits_matching_error(1.5, 0.0) == 7
    assert sigdigits_matching_error(1.5, 0.0, sigdigits_max=3) == 3


def test_sigdigits_large_se_returns_zero():
    assert sigdigits_matching_error(1.0, 100.0) == 0


@pytest.mark.parametrize("se", [np.nan, np.inf])
def test_sigdigits_nonfinite_se_returns_zero(se):
    assert sigdigits_matching_error(1.5, se) == 0
    assert sigdigits_matching_error(123.456, se, sigdigits_max=3) == 0


@pytest.mark.parametrize(
    "kwargs",
    [{"se": -1.0}, {"se": 1.0, "sigdigits_max": -1}, {"se": 1.0, "scale": 0}],
)
def test_sigdigits_invalid_arguments(kwargs):
    with pytest.raises(ValueError):
        sigdigits_matching_error(1.0, **kwargs)


# --------------------------------------------------------------------------
# Log-domain helpers
# --------------------------------------------------------------------------


def test_sum_and_se(rng):
    x = rng.normal(size=40)
    total, se = _sum_and_se(x)
    assert total == pytest.approx(x.sum())
    assert se == pytest.approx(np.sqrt(40) * np.std(x, ddof=1))


def test_sum_and_se_single_value_is_nan():
    total, se = _sum_and_se(np.array([3.0]))
    assert total == 3.0
    assert np.isnan(se)


def test_logabssubexp_matches_direct():
    x = np.array([0.0, -1.0, 2.0])
    y = np.array([-1.0, 0.0, 2.0])
    with np.errstate(divide="ignore"):
        expected = np.log(np.abs(np.exp(x) - np.exp(y)))
        np.testing.assert_allclose(_logabssubexp(x, y), expected)
    assert _logabssubexp(np.array(2.0), np.array(2.0)) == -np.inf


def test_lpd_pointwise_constant():
    log_lik = np.full((2, 50, 3), -1.5)
    np.testing.assert_allclose(_lpd_pointwise(log_lik), -1.5)


# --------------------------------------------------------------------------
# Sample arrays
# --------------------------------------------------------------------------


def test_as_sample_array_numpy(rng):
    x = rng.normal(size=(2, 10, 3, 4))
    values, axes = as_sample_array(x)
    assert values.shape == x.shape
    assert axes.dims == ("obs_dim_0", "obs_dim_1")
    assert axes.shape == (3, 4)
    assert not axes.labeled


def test_as_sample_array_requires_sampling_axes():
    with pytest.raises(ValueError):
        as_sample_array(np.zeros(10))


def test_as_sample_array_transposes_data_array(rng):
    x = xr.DataArray(
        rng.normal(size=(3, 10, 2)),
        dims=("school", "draw", "chain"),
        coords={"school": ["a", "b", "c"]},
    )
    values, axes = as_sample_array(x)
    assert values.shape == (2, 10, 3)
    assert axes.dims == ("school",)
    assert axes.labeled
    np.testing.assert_array_equal(values[1, 4, 2], x.isel(school=2, draw=4, chain=1))
    wrapped = axes.wrap(np.arange(3.0))
    assert list(wrapped.coords["school"].values) == ["a", "b", "c"]


def test_as_sample_array_missing_dims_raises(rng):
    x = xr.DataArray(rng.normal(size=(10, 3)), dims=("draw", "obs"))
    with pytest.raises(ValueError, match="chain"):
        as_sample_array(x)


def test_as_param_array_scalar():
    values, axes = as_param_array(2.0)
    assert values.shape == ()
    assert axes.wrap(np.asarray(0.5)) == 0.5


# --------------------------------------------------------------------------
# Log-likelihood lookup
# --------------------------------------------------------------------------


def _dataset(rng, names):
    return xr.Dataset(
        {
            name: (("chain", "draw", "obs"), rng.normal(size=(2, 20, 5)))
            for name in names
        }
    )


def test_get_log_likelihood_single_variable(rng):
    data = {"log_likelihood": _dataset(rng, ["y"])}
    log_lik = get_log_likelihood(data)
    assert log_lik.name == "y"


def test_get_log_likelihood_ambiguous_raises(rng):
    data = {"log_likelihood": _dataset(rng, ["y", "z"])}
    with pytest.raises(ValueError, match="var_name"):
        get_log_likelihood(data)
    assert get_log_likelihood(data, "z").name == "z"


def test_get_log_likelihood_missing_variable_raises(rng):
    data = {"log_likelihood": _dataset(rng, ["y"])}
    with pytest.raises(ValueError, match="not found"):
        get_log_likelihood(data, "w")


def test_get_log_likelihood_sample_stats_fallback(rng):
    data = {"sample_stats": _dataset(rng, ["log_likelihood", "lp"])}
    assert get_log_likelihood(data).name == "log_likelihood"


def test_get_log_likelihood_no_group_raises(rng):
    with pytest.raises(ValueError):
        get_log_likelihood({"posterior": _dataset(rng, ["mu"])})


def test_get_log_likelihood_passes_arrays_through(rng):
    x = rng.normal(size=(2, 20, 5))
    assert get_log_likelihood(x) is x
