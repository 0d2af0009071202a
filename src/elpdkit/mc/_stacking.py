"""Model stacking: optimal predictive ensemble weights.

This module implements **model stacking** @yao2018, which optimizes a
convex combination of K models to maximize the leave-one-out log predictive
score of the ensemble.

The optimization problem
------------------------
Given K models and n observations, the stacking weights solve:

    w* = argmax_{w in Delta^{K-1}} sum_i log sum_k w_k * exp(elpd_ik)

where Delta^{K-1} = {w in R^K : w_k >= 0, sum_k w_k = 1} is the K-simplex
and elpd_ik is the pointwise ELPD of model k at observation i.

Rather than handing the simplex constraint to the optimizer, the weights are
parameterized as ``w = x**2`` for ``x`` on the unit sphere.  The optimizer
works on an unconstrained ``x`` which the objective retracts onto the sphere
(``x / ||x||``), so any ``scipy.optimize.minimize`` method that accepts a
gradient can be used.

References
----------
Yao, Vehtari, Simpson, Gelman (2018), "Using Stacking to Average Bayesian
    Predictive Distributions." Bayesian Analysis.
"""

from __future__ import annotations

import logging
import warnings
from typing import Any, Dict, Optional, Tuple

import numpy as np
from scipy.optimize import OptimizeResult, minimize

logger = logging.getLogger(__name__)

#: Optimizer options applied unless overridden.
DEFAULT_OPTIONS: Dict[str, Any] = {"maxiter": 1000}


# ---------------------------------------------------------------------------
# Simplex <-> sphere maps
# ---------------------------------------------------------------------------


def to_sphere(weights: np.ndarray) -> np.ndarray:
    """Map a point of the simplex to the non-negative orthant of the sphere."""
    return np.sqrt(np.asarray(weights, dtype=float))


def from_sphere(x: np.ndarray) -> np.ndarray:
    """Map a point of the unit sphere to the simplex, ``w = x**2``."""
    return np.asarray(x, dtype=float) ** 2


def _grad_from_sphere(grad_w: np.ndarray, x: np.ndarray) -> np.ndarray:
    """Pull a gradient with respect to ``w`` back to ``x`` (``dw/dx = 2x``)."""
    return 2.0 * x * grad_w


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _stacking_objective(
    x: np.ndarray, exp_elpd: np.ndarray
) -> Tuple[float, np.ndarray]:
    """Negative stacking log-score and its gradient.

    Parameters
    ----------
    x : np.ndarray, shape ``(K,)``
        Unconstrained optimizer state; the weights are
        ``from_sphere(x / ||x||)``.
    exp_elpd : np.ndarray, shape ``(n, K)``
        ``exp(elpd_ik - max_k elpd_ik)``. The row shift changes the
        objective by a constant only.

    Returns
    -------
    value : float
        ``-sum_i log sum_k w_k * exp_elpd_ik``.
    grad : np.ndarray, shape ``(K,)``
        Gradient with respect to ``x``.
    """
    norm = np.linalg.norm(x)
    u = x / norm
    w = from_sphere(u)

    mix = np.maximum(exp_elpd @ w, np.finfo(float).tiny)
    value = -float(np.sum(np.log(mix)))

    grad_w = -(exp_elpd.T @ (1.0 / mix))
    grad_u = _grad_from_sphere(grad_w, u)
    # Project onto the tangent space at u and differentiate the retraction
    grad_x = (grad_u - u * np.dot(u, grad_u)) / norm
    return value, grad_x


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def compute_stacking_weights(
    elpd_pointwise: np.ndarray,
    optimizer: str = "L-BFGS-B",
    options: Optional[Dict[str, Any]] = None,
) -> Tuple[np.ndarray, Optional[OptimizeResult]]:
    """Compute optimal model stacking weights.

    Parameters
    ----------
    elpd_pointwise : np.ndarray, shape ``(n, K)``
        Pointwise ELPD of each of the K models.
    optimizer : str, default="L-BFGS-B"
        ``scipy.optimize.minimize`` method.
    options : dict, optional
        Optimizer options, merged over ``DEFAULT_OPTIONS``.

    Returns
    -------
    weights : np.ndarray, shape ``(K,)``
        Stacking weights on the simplex.
    solution : scipy.optimize.OptimizeResult or None
        The raw optimizer output; ``None`` when there is a single model.

    Warns
    -----
    RuntimeWarning
        When the optimizer does not converge. The best iterate seen is
        returned.

    Examples
    --------
    >>> import numpy as np
    >>> from elpdkit.mc._stacking import compute_stacking_weights
    >>> rng = np.random.default_rng(0)
    >>> n = 200
    >>> # Model 0 is better; it has higher pointwise ELPDs
    >>> elpd = np.column_stack(
    ...     [rng.normal(-2.0, 0.3, n), rng.normal(-2.5, 0.3, n)]
    ... )
    >>> w, _ = compute_stacking_weights(elpd)
    >>> w.sum()
    1.0
    """
    elpd_pointwise = np.asarray(elpd_pointwise, dtype=np.float64)
    K = elpd_pointwise.shape[1]
    if K == 1:
        return np.ones(1), None

    # Shift each row by its maximum so the exponentials stay in range
    exp_elpd = np.exp(
        elpd_pointwise - np.max(elpd_pointwise, axis=1, keepdims=True)
    )

    x0 = to_sphere(np.full(K, 1.0 / K))
    best = {"value": np.inf, "x": x0}

    def fun(x):
        value, grad = _stacking_objective(x, exp_elpd)
        if value < best["value"]:
            best["value"] = value
            best["x"] = np.array(x, copy=True)
        return value, grad

    solution = minimize(
        fun,
        x0,
        jac=True,
        method=optimizer,
        options={**DEFAULT_OPTIONS, **(options or {})},
    )
    if solution.success:
        x = solution.x
    else:
        warnings.warn(
            f"Optimization of stacking weights did not converge after "
            f"{getattr(solution, 'nit', '?')} iterations: {solution.message}. "
            "Returning the best weights found.",
            RuntimeWarning,
            stacklevel=3,
        )
        x = best["x"]
    logger.debug("Stacking objective %.6g (%s)", best["value"], solution.message)

    weights = from_sphere(x / np.linalg.norm(x))
    return weights / np.sum(weights), solution
