"""Tests for the posterior summary table (elpdkit.stats.summary) and the
convergence diagnostics it reports (elpdkit.stats.diagnostics).
"""

import pytest
import numpy as np
import xarray as xr

from elpdkit.stats import ess, mcse, rhat, summarize


# --------------------------------------------------------------------------
# Fixtures
# --------------------------------------------------------------------------


@pytest.fixture
def posterior():
    rng = np.random.default_rng(17)
    return xr.Dataset(
        {
            "mu": (("chain", "draw"), rng.normal(size=(4, 500))),
            "theta": (
                ("chain", "draw", "school"),
                rng.normal(size=(4, 500, 2)),
            ),
            "tau": (("chain", "draw", "a", "b"), rng.normal(size=(4, 500, 2, 2))),
        },
        coords={"school": ["Choate", "Deerfield"]},
    )


# --------------------------------------------------------------------------
# summarize
# --------------------------------------------------------------------------


def test_summary_columns(posterior):
    df = summarize(posterior)
    assert list(df.columns) == [
        "mean",
        "std",
        "hdi_3%",
        "hdi_97%",
        "mcse_mean",
        "mcse_std",
        "ess_bulk",
        "ess_tail",
        "r_hat",
    ]


def test_summary_row_labels(posterior):
    df = summarize({"posterior": posterior})
    assert list(df.index) == [
        "mu",
        "theta[Choate]",
        "theta[Deerfield]",
        "tau[0,0]",
        "tau[0,1]",
        "tau[1,0]",
        "tau[1,1]",
    ]


def test_summary_kinds(posterior):
    stats_df = summarize(posterior, kind="stats")
    assert list(stats_df.columns) == ["mean", "std", "hdi_3%", "hdi_97%"]
    diag_df = summarize(posterior, kind="diagnostics")
    assert list(diag_df.columns) == [
        "mcse_mean",
        "mcse_std",
        "ess_bulk",
        "ess_tail",
        "r_hat",
    ]


def test_summary_stats_values(posterior):
    df = summarize(posterior, var_names="mu", kind="stats")
    mu = posterior["mu"].values
    assert df.loc["mu", "mean"] == pytest.approx(mu.mean())
    assert df.loc["mu", "std"] == pytest.approx(mu.std(ddof=1))
    assert df.loc["mu", "hdi_3%"] < df.loc["mu", "mean"] < df.loc["mu", "hdi_97%"]


def test_summary_interval_names():
    rng = np.random.default_rng(0)
    df = summarize({"x": rng.normal(size=(2, 100))}, kind="stats", hdi_prob=0.89)
    assert "hdi_5.5%" in df.columns
    assert "hdi_94.5%" in df.columns


def test_summary_var_names_selection(posterior):
    df = summarize(posterior, var_names=["theta"])
    assert list(df.index) == ["theta[Choate]", "theta[Deerfield]"]


def test_summary_round_to(posterior):
    df = summarize(posterior, var_names="mu", kind="stats", round_to=2)
    assert df.loc["mu", "mean"] == round(df.loc["mu", "mean"], 2)


def test_summary_plain_array():
    rng = np.random.default_rng(1)
    df = summarize(rng.normal(size=(2, 100, 3)), kind="stats")
    assert list(df.index) == ["x[0]", "x[1]", "x[2]"]


@pytest.mark.parametrize(
    "kwargs",
    [{"kind": "everything"}, {"var_names": ["missing"]}, {"hdi_prob": 1.2}],
)
def test_summary_invalid_arguments(posterior, kwargs):
    with pytest.raises(ValueError):
        summarize(posterior, **kwargs)


# --------------------------------------------------------------------------
# Diagnostics
# --------------------------------------------------------------------------


def test_rhat_close_to_one_for_iid(posterior):
    r = rhat(posterior["mu"].values)
    assert r == pytest.approx(1.0, abs=0.02)


def test_rhat_flags_shifted_chains():
    rng = np.random.default_rng(2)
    x = rng.normal(size=(4, 500))
    x[0] += 3.0
    assert rhat(x) > 1.1


def test_ess_bulk_large_for_iid(posterior):
    assert ess(posterior["mu"].values, method="bulk") > 1000


def test_ess_relative(posterior):
    x = posterior["mu"].values
    np.testing.assert_allclose(
        ess(x, method="basic", relative=True), ess(x, method="basic") / 2000
    )


def test_ess_shapes(posterior):
    x = posterior["tau"].values
    for method in ("basic", "mean", "bulk", "tail", "sd"):
        assert ess(x, method=method).shape == (2, 2)


def test_ess_autocorrelated_chains_smaller():
    rng = np.random.default_rng(3)
    noise = rng.normal(size=(4, 1000))
    ar = np.zeros_like(noise)
    for t in range(1, 1000):
        ar[:, t] = 0.9 * ar[:, t - 1] + noise[:, t]
    assert ess(ar, method="bulk") < 0.5 * ess(noise, method="bulk")


def test_mcse_mean_relation(posterior):
    x = posterior["mu"].values
    expected = np.std(x, ddof=1) / np.sqrt(ess(x, method="mean"))
    assert mcse(x, kind="mean") == pytest.approx(expected)
    assert mcse(x, kind="sd") > 0


def test_diagnostics_invalid_arguments(posterior):
    x = posterior["mu"].values
    with pytest.raises(ValueError):
        ess(x, method="median")
    with pytest.raises(ValueError):
        mcse(x, kind="quantile")
    with pytest.raises(ValueError):
        rhat(np.zeros(10))
