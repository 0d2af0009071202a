"""Pareto-smoothed importance sampling leave-one-out cross-validation (PSIS-LOO).

PSIS-LOO @vehtari2017 approximates exact leave-one-out cross-validation from
a single posterior fit.  For each observation ``i`` the draws are reweighted
with importance ratios ``1 / p(y_i | theta^s)``, stabilized by Pareto
smoothing (:func:`~elpdkit.mc._psis.psis`).

Algorithm outline (per observation i)
--------------------------------------
1.  Relative efficiency ``reff_i``: basic ESS of the normalized likelihood
    ``p(y_i | theta^s)`` over the draws, divided by the number of draws.
2.  Smoothed log weights ``lw`` from ``psis(-log_lik_i, reff_i)``.
3.  ``lpd_i = log mean_s p(y_i | theta^s)``.
4.  ``elpd_i = log sum_s exp(lw_s + log_lik_s)``.
5.  Monte Carlo SE of ``elpd_i`` from the self-normalized IS variance
    (Owen 2013, eq. 9.9) via the delta method, divided by ``sqrt(reff_i)``.
6.  ``p_i = lpd_i - elpd_i``.

References
----------
Vehtari, Gelman, Gabry (2017), "Practical Bayesian model evaluation using
    leave-one-out cross-validation and WAIC." Statistics and Computing.
Owen (2013), "Monte Carlo theory, methods and examples."
"""

from __future__ import annotations

import logging
import warnings
from typing import Any, Optional

import numpy as np
from scipy.special import softmax

from ..stats.diagnostics import ess
from ..utils.core import (
    ParamAxes,
    _log_mean,
    _lpd_pointwise,
    _se_log_mean,
    as_sample_array,
    get_log_likelihood,
)
from ._elpd import ELPDEstimates, ELPDKind, ELPDResult
from ._psis import PARETO_SHAPE_WARN, PSISResult, psis

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _check_log_likelihood(log_like: np.ndarray) -> None:
    """Warn when the log-likelihood holds non-finite values."""
    if not np.all(np.isfinite(log_like)):
        warnings.warn(
            "Some log-likelihood values are not finite (NaN or Inf). The "
            "resulting estimates may be NaN or unreliable.",
            UserWarning,
            stacklevel=3,
        )


def _warn_pareto_shape(pareto_shape: np.ndarray, threshold: float = PARETO_SHAPE_WARN) -> None:
    """Warn when any Pareto shape exceeds ``threshold``."""
    k = np.asarray(pareto_shape)
    n_bad = int(np.sum((k > threshold) | np.isnan(k)))
    if n_bad:
        warnings.warn(
            f"Estimated shape parameter of Pareto distribution is greater than "
            f"{threshold} for {n_bad} of {k.size} observations. This indicates "
            "that importance sampling may be unreliable because the marginal "
            "posterior and LOO posterior are very different.",
            UserWarning,
            stacklevel=3,
        )


def _relative_efficiency(log_like: np.ndarray) -> np.ndarray:
    """Per-observation relative efficiency of the posterior draws.

    Computed as the basic ESS of the likelihood normalized over the sampling
    axes, divided by the number of draws.  Constant likelihoods, whose ESS
    is undefined, get a relative efficiency of 1.
    """
    like = softmax(log_like, axis=(0, 1))
    reff = np.asarray(ess(like, method="basic", relative=True), dtype=float)
    return np.where(np.isfinite(reff) & (reff > 0), reff, 1.0)


def _psis_loo_setup(
    log_like: np.ndarray, reff: Optional[Any] = None, **psis_kwargs
) -> PSISResult:
    """Smooth the leave-one-out importance ratios of ``log_like``."""
    if reff is None:
        reff = _relative_efficiency(log_like)
        logger.debug("Estimated relative efficiencies (min %.3g)", np.min(reff))
    return psis(-log_like, reff, **psis_kwargs)


def _loo(log_like: np.ndarray, psis_result: PSISResult, axes: ParamAxes) -> ELPDResult:
    """Assemble the LOO result from smoothed weights."""
    log_weights = psis_result.log_weights
    reff = psis_result.reff

    lpd_i = _lpd_pointwise(log_like)
    elpd_i = _log_mean(log_like, log_weights)
    elpd_mcse_i = _se_log_mean(log_like, log_weights, elpd_i, reff=reff)
    p_i = lpd_i - elpd_i

    pointwise = axes.dataset(
        elpd=elpd_i,
        elpd_mcse=elpd_mcse_i,
        lpd=lpd_i,
        p=p_i,
        reff=reff,
        pareto_shape=psis_result.pareto_shape,
    )
    _warn_pareto_shape(psis_result.pareto_shape)
    return ELPDResult(
        kind=ELPDKind.LOO,
        estimates=ELPDEstimates.from_pointwise(pointwise),
        pointwise=pointwise,
        psis_result=psis_result,
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def loo(
    data: Any,
    *,
    var_name: Optional[str] = None,
    reff: Optional[Any] = None,
    **psis_kwargs,
) -> ELPDResult:
    """Estimate the ELPD with Pareto-smoothed importance sampling LOO.

    Parameters
    ----------
    data : array-like, xarray.DataArray, xarray.Dataset or container
        Pointwise log-likelihood samples laid out ``(chain, draw, *obs)``, a
        Dataset of log-likelihood variables, or an evaluation container with
        a ``log_likelihood`` group (or a ``sample_stats.log_likelihood``
        variable).
    var_name : str, optional
        Log-likelihood variable to use. Required when there is more than one.
    reff : float or array-like, optional
        Relative efficiency of the draws, per observation. Estimated from
        the log-likelihood when omitted.
    **psis_kwargs
        Forwarded to :func:`~elpdkit.mc._psis.psis`, e.g.
        ``tail_length``.

    Returns
    -------
    ELPDResult
        Result with ``kind=ELPDKind.LOO``. Its pointwise set holds ``elpd``,
        ``elpd_mcse``, ``lpd``, ``p``, ``reff`` and ``pareto_shape``.

    Raises
    ------
    ValueError
        If the log-likelihood cannot be selected, lacks the sampling axes, or
        ``reff`` is not positive or mis-shaped.

    Warns
    -----
    UserWarning
        For non-finite log-likelihood values, and when any Pareto shape
        exceeds 0.7.

    Examples
    --------
    >>> rng = np.random.default_rng(0)
    >>> log_like = rng.normal(-1.0, 0.3, size=(4, 500, 20))
    >>> result = loo(log_like)
    >>> result.estimates.elpd < result.pointwise["lpd"].sum()
    """
    log_like = get_log_likelihood(data, var_name)
    name = getattr(log_like, "name", None) or "obs"
    values, axes = as_sample_array(log_like, name=str(name))
    _check_log_likelihood(values)

    psis_result = _psis_loo_setup(values, reff, **psis_kwargs)
    return _loo(values, psis_result, axes)
