"""MCMC convergence diagnostics.

Thin adapters over :mod:`numpyro.diagnostics` that add the rank
normalization and chain splitting recommended by Vehtari et al. (2021):

- :func:`ess` with ``method`` in ``{"basic", "mean", "bulk", "tail", "sd"}``
- :func:`rhat`, the rank-normalized split R-hat
- :func:`mcse` of the mean and of the standard deviation

All functions take arrays laid out ``(chain, draw, *params)`` and reduce the
two leading axes.

References
----------
Vehtari, Gelman, Simpson, Carpenter, Bürkner (2021), "Rank-normalization,
    folding, and localization: An improved R-hat for assessing convergence of
    MCMC." Bayesian Analysis.
"""

from __future__ import annotations

from typing import Any

import numpy as np
from numpyro.diagnostics import effective_sample_size, split_gelman_rubin
from scipy import stats

ESS_METHODS = ("basic", "mean", "bulk", "tail", "sd")
MCSE_KINDS = ("mean", "sd")

# ------------------------------------------------------------------------------
# Transformations
# ------------------------------------------------------------------------------


def _split_chains(x: np.ndarray) -> np.ndarray:
    """Split each chain in half, doubling the chain count.

    With an odd number of draws the middle draw is dropped.
    """
    n_draw = x.shape[1]
    half = n_draw // 2
    return np.concatenate([x[:, :half], x[:, n_draw - half :]], axis=0)


def _rank_normalize(x: np.ndarray) -> np.ndarray:
    """Map draws to normal scores of their pooled fractional ranks."""
    n_samples = x.shape[0] * x.shape[1]
    flat = x.reshape(n_samples, -1)
    ranks = stats.rankdata(flat, axis=0, method="average")
    z = stats.norm.ppf((ranks - 3.0 / 8.0) / (n_samples + 1.0 / 4.0))
    return z.reshape(x.shape)


def _ess_raw(x: np.ndarray) -> np.ndarray:
    with np.errstate(divide="ignore", invalid="ignore"):
        return np.asarray(effective_sample_size(x), dtype=float)


def _check_samples(x: Any) -> np.ndarray:
    x = np.asarray(x, dtype=float)
    if x.ndim < 2:
        raise ValueError(
            f"Expected samples with (chain, draw) axes; got shape {x.shape}"
        )
    return x


# ------------------------------------------------------------------------------
# Public API
# ------------------------------------------------------------------------------


def ess(x: Any, method: str = "bulk", relative: bool = False) -> np.ndarray:
    """Effective sample size.

    Parameters
    ----------
    x : array-like, shape ``(chain, draw, *params)``
        Samples.
    method : {"basic", "mean", "bulk", "tail", "sd"}, default="bulk"
        ``"basic"`` uses the chains as given; ``"mean"`` splits them;
        ``"bulk"`` also rank-normalizes; ``"tail"`` is the minimum ESS of the
        5% and 95% quantile indicators; ``"sd"`` is the minimum ESS of the
        draws and of their squares.
    relative : bool, default=False
        Divide by the number of draws.

    Returns
    -------
    np.ndarray, shape ``params``
        Effective sample sizes.
    """
    x = _check_samples(x)
    if method not in ESS_METHODS:
        raise ValueError(f"Unknown ESS method `{method}`; expected {ESS_METHODS}")

    if method == "basic":
        result = _ess_raw(x)
    elif method == "mean":
        result = _ess_raw(_split_chains(x))
    elif method == "bulk":
        result = _ess_raw(_split_chains(_rank_normalize(x)))
    elif method == "tail":
        q05, q95 = np.quantile(x, [0.05, 0.95], axis=(0, 1))
        ess_lo = _ess_raw(_split_chains((x <= q05).astype(float)))
        ess_hi = _ess_raw(_split_chains((x <= q95).astype(float)))
        result = np.minimum(ess_lo, ess_hi)
    else:
        split = _split_chains(x)
        result = np.minimum(_ess_raw(split), _ess_raw(split**2))

    if relative:
        result = result / (x.shape[0] * x.shape[1])
    return result


def rhat(x: Any) -> np.ndarray:
    """Rank-normalized split R-hat.

    The maximum of the split R-hat of the rank-normalized draws and of the
    rank-normalized folded draws ``|x - median|``.
    """
    x = _check_samples(x)
    folded = np.abs(x - np.median(x, axis=(0, 1)))
    with np.errstate(divide="ignore", invalid="ignore"):
        rhat_bulk = np.asarray(split_gelman_rubin(_rank_normalize(x)))
        rhat_tail = np.asarray(split_gelman_rubin(_rank_normalize(folded)))
    return np.maximum(rhat_bulk, rhat_tail)


def mcse(x: Any, kind: str = "mean") -> np.ndarray:
    """Monte Carlo standard error of the posterior mean or standard deviation.

    Parameters
    ----------
    x : array-like, shape ``(chain, draw, *params)``
        Samples.
    kind : {"mean", "sd"}, default="mean"
        Which estimate the error refers to.

    Returns
    -------
    np.ndarray, shape ``params``
    """
    x = _check_samples(x)
    if kind not in MCSE_KINDS:
        raise ValueError(f"Unknown MCSE kind `{kind}`; expected {MCSE_KINDS}")

    sd = np.std(x, axis=(0, 1), ddof=1)
    if kind == "mean":
        return sd / np.sqrt(ess(x, method="mean"))

    ess_sd = ess(x, method="sd")
    with np.errstate(invalid="ignore"):
        fac_mcse_sd = np.sqrt(np.e * (1.0 - 1.0 / ess_sd) ** (ess_sd - 1.0) - 1.0)
    return sd * fac_mcse_sd
