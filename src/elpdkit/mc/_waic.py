"""Widely Applicable Information Criterion (WAIC).

This module provides JAX-accelerated kernels for the pointwise WAIC
quantities of a posterior log-likelihood matrix and the public :func:`waic`
estimator built on them.

Mathematical background
-----------------------
Given S posterior draws and n observations, define the (S × n) matrix of
log-likelihoods:

    L[s, i] = log p(y_i | theta^s)

The pointwise quantities are:

    lpd_i   = log (1/S sum_s exp(L[s,i]))
    p_i     = var_s(L[s,i])                 (n - 1 denominator)
    elpd_i  = lpd_i - p_i

References
----------
Watanabe (2010), "Asymptotic Equivalence of Bayes Cross Validation and
    Widely Applicable Information Criterion in Singular Learning Theory."
Gelman, Hwang, Vehtari (2014), "Understanding predictive information criteria
    for Bayesian models."
"""

from __future__ import annotations

import warnings
from functools import partial
from typing import Any, Dict, Optional

import jax
import jax.numpy as jnp
import numpy as np
from jax import jit

from ..utils.core import as_sample_array, get_log_likelihood
from ._elpd import ELPDEstimates, ELPDKind, ELPDResult

#: Pointwise effective parameter counts above this make WAIC unreliable.
P_WAIC_WARN = 0.4


# ---------------------------------------------------------------------------
# Private JIT-compiled building blocks
# ---------------------------------------------------------------------------


@partial(jit, static_argnames=["dtype"])
def _lpd(
    log_liks: jnp.ndarray,
    dtype: jnp.dtype = jnp.float32,
) -> jnp.ndarray:
    """JIT-compiled log pointwise predictive density.

    Computes

        lpd_i = log (1/S sum_s exp(L[s,i]))

    using the log-sum-exp trick for numerical stability.

    Parameters
    ----------
    log_liks : jnp.ndarray, shape ``(S, n)``
        Log-likelihoods for each posterior draw ``s`` and observation ``i``.
    dtype : jnp.dtype, default=jnp.float32
        Floating-point precision.

    Returns
    -------
    jnp.ndarray, shape ``(n,)``
    """
    log_liks = log_liks.astype(dtype)

    # Subtract the per-observation maximum before exponentiation
    lse_max = jnp.max(log_liks, axis=0)
    return lse_max + jnp.log(jnp.mean(jnp.exp(log_liks - lse_max), axis=0))


@partial(jit, static_argnames=["dtype"])
def _p_waic(
    log_liks: jnp.ndarray,
    dtype: jnp.dtype = jnp.float32,
) -> jnp.ndarray:
    """JIT-compiled pointwise effective number of parameters.

    Computes ``p_i = var_s(L[s,i])`` with the unbiased (``n - 1``)
    denominator.

    Parameters
    ----------
    log_liks : jnp.ndarray, shape ``(S, n)``
        Log-likelihood matrix.
    dtype : jnp.dtype, default=jnp.float32
        Floating-point precision.

    Returns
    -------
    jnp.ndarray, shape ``(n,)``
    """
    log_liks = log_liks.astype(dtype)
    return jnp.var(log_liks, axis=0, ddof=1)


@partial(jit, static_argnames=["dtype"])
def compute_waic_stats(
    log_liks: jnp.ndarray,
    dtype: jnp.dtype = jnp.float32,
) -> Dict[str, jnp.ndarray]:
    """JIT-compiled computation of the pointwise WAIC statistics.

    Parameters
    ----------
    log_liks : jnp.ndarray, shape ``(S, n)``
        Log-likelihoods for each posterior draw ``s`` and observation ``i``.
    dtype : jnp.dtype, default=jnp.float32
        Floating-point precision for all computations.

    Returns
    -------
    dict
        Per-observation arrays of shape ``(n,)`` under the keys ``lpd``,
        ``p`` and ``elpd``.
    """
    lpd = _lpd(log_liks, dtype=dtype)
    p = _p_waic(log_liks, dtype=dtype)
    return {"lpd": lpd, "p": p, "elpd": lpd - p}


def _pointwise_waic(log_liks: np.ndarray, dtype: Any) -> Dict[str, np.ndarray]:
    stats = compute_waic_stats(jnp.asarray(log_liks), dtype=dtype)
    return {key: np.asarray(val, dtype=np.float64) for key, val in stats.items()}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def waic(
    data: Any,
    *,
    var_name: Optional[str] = None,
    dtype: jnp.dtype = jnp.float32,
) -> ELPDResult:
    """Estimate the ELPD with the widely applicable information criterion.

    Parameters
    ----------
    data : array-like, xarray.DataArray, xarray.Dataset or container
        Pointwise log-likelihood samples laid out ``(chain, draw, *obs)``, a
        Dataset of log-likelihood variables, or an evaluation container with
        a ``log_likelihood`` group (or a ``sample_stats.log_likelihood``
        variable).
    var_name : str, optional
        Log-likelihood variable to use. Required when there is more than one.
    dtype : jnp.dtype, default=jnp.float32
        Precision of the pointwise kernels. Requesting ``jnp.float64`` runs
        them under ``jax.experimental.enable_x64()``, so double precision is
        kept even when x64 mode is globally off. Aggregation always runs in
        double precision.

    Returns
    -------
    ELPDResult
        Result with ``kind=ELPDKind.WAIC``. Its pointwise set holds ``elpd``,
        ``lpd``, ``p`` and ``reff`` (all ones).

    Warns
    -----
    UserWarning
        When any pointwise ``p`` exceeds 0.4.

    Examples
    --------
    >>> import numpy as np
    >>> from elpdkit.mc import waic
    >>> log_like = np.full((4, 100, 10), -2.0)
    >>> waic(log_like).estimates.elpd
    -20.0
    """
    log_like = get_log_likelihood(data, var_name)
    name = getattr(log_like, "name", None) or "obs"
    values, axes = as_sample_array(log_like, name=str(name))

    n_samples = values.shape[0] * values.shape[1]
    flat = values.reshape(n_samples, -1)
    if jnp.dtype(dtype) == jnp.float64:
        with jax.enable_x64(True):
            stats = _pointwise_waic(flat, dtype)
    else:
        stats = _pointwise_waic(flat, dtype)

    pointwise = axes.dataset(
        elpd=stats["elpd"],
        lpd=stats["lpd"],
        p=stats["p"],
        reff=np.ones(axes.shape),
    )
    n_high = int(np.sum(stats["p"] > P_WAIC_WARN))
    if n_high:
        warnings.warn(
            f"For {n_high} of {stats['p'].size} observations the estimated "
            f"pointwise effective number of parameters exceeds {P_WAIC_WARN}. "
            "WAIC may be unreliable; consider using loo instead.",
            UserWarning,
            stacklevel=2,
        )
    return ELPDResult(
        kind=ELPDKind.WAIC,
        estimates=ELPDEstimates.from_pointwise(pointwise),
        pointwise=pointwise,
    )
