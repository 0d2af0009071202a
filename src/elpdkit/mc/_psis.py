"""Pareto-smoothed importance sampling (PSIS).

Importance ratios whose right tail is heavy make plain importance sampling
estimates unstable.  PSIS @vehtari2024 stabilizes them by replacing the ``M``
largest ratios with quantiles of a generalized Pareto distribution (GPD)
fitted to that tail.  The fitted shape ``k`` doubles as a diagnostic of how
reliable the resulting estimates are.

Algorithm outline (per observation)
-----------------------------------
1.  Shift the log ratios by their maximum.
2.  Take ``M = ceil(min(0.2 * S, 3 * sqrt(S / reff)))`` tail draws.
3.  Fit a GPD to the tail exceedances with the Zhang-Stephens estimator,
    weakly regularized toward ``k = 0.5``.
4.  Replace the tail with GPD quantiles at ``(j - 0.5) / M``.
5.  Truncate at the largest raw ratio and normalize.

Diagnostic thresholds for k
---------------------------
- k <= 0.5       : good
- 0.5 < k <= 0.7 : ok
- 0.7 < k <= 1   : bad
- k > 1          : very bad

References
----------
Vehtari, Simpson, Gelman, Yao, Gabry (2024), "Pareto smoothed importance
    sampling." Journal of Machine Learning Research.
Zhang, Stephens (2009), "A new and efficient estimation method for the
    generalized Pareto distribution." Technometrics.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Tuple

import numpy as np
from scipy import stats
from scipy.special import logsumexp

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

#: Upper edges of the Pareto shape bins, with their labels.
PARETO_SHAPE_BINS: Tuple[Tuple[float, str], ...] = (
    (0.5, "good"),
    (0.7, "ok"),
    (1.0, "bad"),
    (np.inf, "very bad"),
)

#: Pareto shapes above this value trigger a reliability warning.
PARETO_SHAPE_WARN = 0.7

#: Fewer tail draws than this are not smoothed.
MIN_TAIL_LENGTH = 5


@dataclass(frozen=True)
class PSISResult:
    """Output of :func:`psis`.

    Parameters
    ----------
    log_weights : np.ndarray, shape ``(chain, draw, *params)``
        Smoothed log weights, normalized over the sampling axes.
    pareto_shape : np.ndarray, shape ``params``
        Estimated Pareto shape ``k`` per observation.
    reff : np.ndarray, shape ``params``
        Relative efficiency used for the tail length.
    ess : np.ndarray, shape ``params``
        Effective sample size of the smoothed weights, ``1 / sum(w**2)``.
    """

    log_weights: np.ndarray
    pareto_shape: np.ndarray
    reff: np.ndarray
    ess: np.ndarray

    @property
    def weights(self) -> np.ndarray:
        """Normalized weights on the natural scale."""
        return np.exp(self.log_weights)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _n_tail(n_samples: int, reff: float = 1.0) -> int:
    """Number of tail draws ``M = ceil(min(0.2 * S, 3 * sqrt(S / reff)))``."""
    return int(np.ceil(min(0.2 * n_samples, 3.0 * np.sqrt(n_samples / reff))))


def _fit_gpd(exceedances: np.ndarray) -> Tuple[float, float]:
    """Fit a generalized Pareto distribution with the Zhang-Stephens method.

    Parameters
    ----------
    exceedances : np.ndarray, shape ``(M,)``
        Positive tail exceedances, sorted ascending.

    Returns
    -------
    k_hat : float
        Shape, shrunk toward 0.5 by a weak prior (10 pseudo-observations).
    sigma_hat : float
        Scale.
    """
    prior_bs = 3
    prior_k = 10
    n = len(exceedances)
    m_est = 30 + int(np.sqrt(n))

    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        # Grid of candidate b = -k / sigma values
        b_ary = 1.0 - np.sqrt(m_est / (np.arange(1, m_est + 1, dtype=float) - 0.5))
        b_ary /= prior_bs * exceedances[int(n / 4 + 0.5) - 1]
        b_ary += 1.0 / exceedances[-1]

        # Profile log-likelihood of each candidate
        k_ary = np.mean(np.log1p(-b_ary[:, None] * exceedances), axis=1)
        len_scale = n * (np.log(-(b_ary / k_ary)) - k_ary - 1.0)
        weights = 1.0 / np.sum(np.exp(len_scale - len_scale[:, None]), axis=1)

    # Drop candidates with negligible posterior mass
    keep = weights >= 10 * np.finfo(float).eps
    if not np.any(keep):
        return np.inf, np.nan
    weights = weights[keep]
    b_ary = b_ary[keep]
    weights /= np.sum(weights)

    b_post = float(np.sum(b_ary * weights))
    k_post = float(np.mean(np.log1p(-b_post * exceedances)))
    sigma = -k_post / b_post
    k_post = (n * k_post + prior_k * 0.5) / (n + prior_k)
    return k_post, sigma


def _psis_single(
    log_ratios: np.ndarray, reff: float, tail_length: Optional[int] = None
) -> Tuple[np.ndarray, float]:
    """Pareto-smooth the log ratios of one observation.

    Parameters
    ----------
    log_ratios : np.ndarray, shape ``(S,)``
        Raw log importance ratios.
    reff : float
        Relative efficiency of the draws.
    tail_length : int, optional
        Number of tail draws to smooth. Defaults to ``_n_tail(S, reff)``.

    Returns
    -------
    log_weights : np.ndarray, shape ``(S,)``
        Smoothed, normalized log weights (same index order).
    k_hat : float
        Pareto shape estimate.
    """
    S = log_ratios.size

    # Non-finite ratios cannot be smoothed
    if not np.all(np.isfinite(log_ratios)):
        log_weights = log_ratios - logsumexp(log_ratios)
        return log_weights, np.inf

    log_weights = log_ratios - np.max(log_ratios)

    # Constant ratios are already uniform weights
    if np.ptp(log_weights) < 1e-10:
        return np.full(S, -np.log(S)), 0.0

    M = _n_tail(S, reff) if tail_length is None else tail_length
    if M < MIN_TAIL_LENGTH:
        return log_weights - logsumexp(log_weights), np.inf

    # Ascending order, so the last M entries are the tail
    sort_idx = np.argsort(log_weights)
    sorted_lw = log_weights[sort_idx]
    cutoff_w = np.exp(sorted_lw[S - M - 1])
    tail_w = np.exp(sorted_lw[S - M :])
    exceedances = tail_w - cutoff_w

    # Tied tail: nothing to smooth
    if exceedances[-1] <= 0:
        return log_weights - logsumexp(log_weights), 0.0

    k_hat, sigma_hat = _fit_gpd(exceedances)
    if np.isfinite(k_hat) and sigma_hat > 0:
        probs = (np.arange(1, M + 1) - 0.5) / M
        smooth_tail_w = cutoff_w + stats.genpareto.ppf(
            probs, k_hat, loc=0.0, scale=sigma_hat
        )
        # Truncate at the largest raw ratio, which is 0 after the shift
        smooth_tail_lw = np.minimum(np.log(smooth_tail_w), 0.0)
        log_weights[sort_idx[S - M :]] = smooth_tail_lw
    else:
        k_hat = np.inf

    return log_weights - logsumexp(log_weights), float(k_hat)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def psis(
    log_ratios: Any, reff: Any = 1.0, *, tail_length: Optional[int] = None
) -> PSISResult:
    """Pareto-smooth importance ratios for every observation.

    Parameters
    ----------
    log_ratios : array-like, shape ``(chain, draw, *params)``
        Log importance ratios. For leave-one-out these are the negated
        pointwise log-likelihoods.
    reff : float or array-like, shape ``params``, default=1.0
        Relative efficiency of the draws for each observation. Must be
        positive.
    tail_length : int, optional
        Number of largest ratios replaced by GPD quantiles, overriding
        ``ceil(min(0.2 * S, 3 * sqrt(S / reff)))``. Must be in ``[1, S)``.
        Tails shorter than 5 draws are only normalized and get ``k = inf``.

    Returns
    -------
    PSISResult
        Smoothed log weights and per-observation diagnostics.

    Raises
    ------
    ValueError
        If the array lacks sampling axes, or ``reff`` is not positive or does
        not broadcast to the parameter shape, or
        ``tail_length`` is out of range.

    Examples
    --------
    >>> rng = np.random.default_rng(0)
    >>> result = psis(rng.normal(size=(4, 250, 10)))
    >>> result.pareto_shape.shape
    (10,)
    """
    log_ratios = np.asarray(log_ratios, dtype=float)
    if log_ratios.ndim < 2:
        raise ValueError(
            "`log_ratios` must have at least the (chain, draw) axes; got "
            f"shape {log_ratios.shape}"
        )
    sample_shape = log_ratios.shape[:2]
    param_shape = log_ratios.shape[2:]
    S = int(np.prod(sample_shape))

    try:
        reff = np.broadcast_to(np.asarray(reff, dtype=float), param_shape)
    except ValueError as err:
        raise ValueError(
            f"`reff` with shape {np.shape(reff)} does not match the parameter "
            f"shape {param_shape}"
        ) from err
    if not np.all(reff > 0):
        raise ValueError("`reff` must be positive")
    if tail_length is not None and not 1 <= tail_length < S:
        raise ValueError(
            f"`tail_length` must be between 1 and {S - 1}, got {tail_length}"
        )

    flat_ratios = log_ratios.reshape(S, -1)
    flat_reff = reff.reshape(-1)
    n_obs = flat_ratios.shape[1]

    log_weights = np.empty_like(flat_ratios)
    pareto_shape = np.empty(n_obs)
    for i in range(n_obs):
        log_weights[:, i], pareto_shape[i] = _psis_single(
            flat_ratios[:, i], flat_reff[i], tail_length
        )

    with np.errstate(over="ignore"):
        ess = 1.0 / np.sum(np.exp(2.0 * log_weights), axis=0)

    return PSISResult(
        log_weights=log_weights.reshape(log_ratios.shape),
        pareto_shape=pareto_shape.reshape(param_shape),
        reff=np.array(reff),
        ess=ess.reshape(param_shape),
    )


def pareto_shape_summary(result: Any) -> str:
    """Format a table of Pareto shape diagnostics.

    Parameters
    ----------
    result : PSISResult or ELPDResult
        A smoothing result, or a LOO result carrying one.

    Returns
    -------
    str
        A multi-line table with, per k bin, the count, percentage and the
        minimum ESS of the observations in the bin.

    Examples
    --------
    >>> print(pareto_shape_summary(loo_result))
    """
    psis_result = getattr(result, "psis_result", result)
    if not isinstance(psis_result, PSISResult):
        raise TypeError("Pareto shape diagnostics require a PSIS result")

    k = np.ravel(psis_result.pareto_shape)
    ess = np.ravel(psis_result.ess)
    n = k.size

    lines = [f"Pareto shape (k) diagnostic values ({n} observations):"]
    lines.append(f"  {'':<20} {'Count':>6} {'Pct.':>7} {'Min. ESS':>9}")
    lower = -np.inf
    for upper, label in PARETO_SHAPE_BINS:
        in_bin = (k > lower) & (k <= upper)
        if upper == np.inf:
            # NaN shapes count as very bad
            in_bin |= np.isnan(k)
        count = int(np.sum(in_bin))
        pct = 100.0 * count / n if n else 0.0
        min_ess = f"{np.min(ess[in_bin]):.0f}" if count else "-"
        if not np.isfinite(lower):
            edge = f"(-Inf, {upper:g}]"
        elif not np.isfinite(upper):
            edge = f"({lower:g}, Inf)"
        else:
            edge = f"({lower:g}, {upper:g}]"
        lines.append(
            f"  {edge:<12} {label:<7} {count:>6d} {pct:>6.1f}% {min_ess:>9}"
        )
        lower = upper
    return "\n".join(lines)
