"""Tests for highest density intervals (elpdkit.stats.hdi)."""

import itertools

import pytest
import numpy as np
import xarray as xr

from elpdkit.stats import HDI, hdi


# --------------------------------------------------------------------------
# Arrays
# --------------------------------------------------------------------------


def test_hdi_reference_value():
    assert hdi(np.array([1.0, 2.0, 3.0, 4.0, 100.0]), prob=0.7) == HDI(1.0, 4.0)


def test_hdi_is_narrowest_interval(rng):
    """Brute force: no interval holding as many draws is narrower."""
    x = rng.gamma(2.0, size=60)
    prob = 0.8
    lower, upper = hdi(x, prob=prob)
    m = int(np.floor(prob * x.size)) + 1
    assert np.sum((x >= lower) & (x <= upper)) >= m
    narrowest = min(
        b - a
        for a, b in itertools.combinations(np.sort(x), 2)
        if np.sum((x >= a) & (x <= b)) >= m
    )
    assert upper - lower == pytest.approx(narrowest)


def test_hdi_width_grows_with_prob(rng):
    x = rng.standard_t(3, size=500)
    widths = [np.subtract(*hdi(x, prob=p)[::-1]) for p in (0.5, 0.8, 0.9, 0.99)]
    assert np.all(np.diff(widths) >= 0)


def test_hdi_normal_draws(rng):
    lower, upper = hdi(rng.normal(size=(4, 5000)), prob=0.95)
    assert lower == pytest.approx(-1.96, abs=0.1)
    assert upper == pytest.approx(1.96, abs=0.1)


@pytest.mark.parametrize("prob", [0.0, 1.0, 1.5, -0.2, np.nan])
def test_hdi_invalid_prob(prob):
    with pytest.raises(ValueError, match="open interval"):
        hdi(np.arange(10.0), prob=prob)


def test_hdi_empty_or_scalar_raises():
    with pytest.raises(ValueError):
        hdi(np.array([]))
    with pytest.raises(ValueError):
        hdi(np.array(1.0))


def test_hdi_low_rank_returns_scalars(rng):
    result = hdi(rng.normal(size=(2, 100)))
    assert isinstance(result, HDI)
    assert isinstance(result.lower, float)
    assert isinstance(result.upper, float)
    assert result.lower < result.upper


def test_hdi_high_rank_returns_arrays(rng):
    x = rng.normal(size=(2, 100, 3, 4))
    lower, upper = hdi(x)
    assert lower.shape == (3, 4)
    assert upper.shape == (3, 4)
    assert lower[1, 2] == hdi(x[:, :, 1, 2]).lower
    assert np.all(lower < upper)


def test_hdi_all_draws_when_mass_covers_sample():
    """With m >= n the interval is the full range."""
    assert hdi(np.array([3.0, 1.0, 2.0]), prob=0.99) == HDI(1.0, 3.0)


def test_hdi_nonfinite_columns(rng):
    x = rng.normal(size=(2, 50, 3))
    x[0, 0, 1] = np.inf
    x[0, 0, 2] = np.nan
    lower, upper = hdi(x)
    assert np.isfinite(lower[0]) and np.isfinite(upper[0])
    assert upper[1] == np.inf
    assert lower[1] == np.min(x[..., 1])
    assert np.isnan(lower[2]) and np.isnan(upper[2])


# --------------------------------------------------------------------------
# Labeled inputs
# --------------------------------------------------------------------------


@pytest.fixture
def posterior(rng):
    schools = ["Choate", "Deerfield", "Phillips"]
    return xr.Dataset(
        {
            "mu": (("chain", "draw"), rng.normal(size=(2, 200))),
            "theta": (("chain", "draw", "school"), rng.normal(size=(2, 200, 3))),
        },
        coords={"school": schools},
    )


def test_hdi_data_array(posterior):
    result = hdi(posterior["theta"], prob=0.9)
    assert result.dims == ("school", "hdi_bound")
    assert list(result["hdi_bound"].values) == ["lower", "upper"]
    assert list(result["school"].values) == ["Choate", "Deerfield", "Phillips"]
    expected = hdi(posterior["theta"].values, prob=0.9)
    np.testing.assert_allclose(result.sel(hdi_bound="lower"), expected.lower)
    np.testing.assert_allclose(result.sel(hdi_bound="upper"), expected.upper)


def test_hdi_dataset(posterior):
    result = hdi(posterior)
    assert isinstance(result, xr.Dataset)
    assert result["mu"].dims == ("hdi_bound",)
    assert result["theta"].dims == ("school", "hdi_bound")
    assert float(result["mu"].sel(hdi_bound="lower")) == hdi(
        posterior["mu"].values
    ).lower


def test_hdi_container(posterior):
    result = hdi({"posterior": posterior})
    assert set(result.data_vars) == {"mu", "theta"}


def test_hdi_data_array_without_sampling_dims_raises():
    with pytest.raises(ValueError):
        hdi(xr.DataArray(np.arange(5.0), dims=("x",)))
