"""Leave-one-out probability integral transform (LOO-PIT).

The LOO-PIT value of observation ``i`` is the leave-one-out predictive
probability ``P(y_pred_i <= y_i | y_{-i})``, estimated with the
importance weights of PSIS-LOO:

    pit_i = sum_s w_is * 1[y_pred_is <= y_i]

For a well-calibrated model the values are uniform on ``[0, 1]``.

Discrete data make the PIT values lumpy, so integer-valued observations and
predictions are first smoothed with :func:`smooth_data`, which perturbs each
value toward its neighbors with a monotone cubic interpolant.

References
----------
Gelman, Carlin, Stern, Dunson, Vehtari, Rubin (2013), "Bayesian Data
    Analysis", 3rd ed., section 6.3.
Gabry, Simpson, Vehtari, Betancourt, Gelman (2019), "Visualization in
    Bayesian workflow." Journal of the Royal Statistical Society A.
"""

from __future__ import annotations

import warnings
from typing import Any, Optional

import numpy as np
import xarray as xr
from scipy.interpolate import PchipInterpolator
from scipy.special import logsumexp

from ..utils.core import (
    SAMPLE_DIMS,
    as_param_array,
    as_sample_array,
    get_group,
    has_group,
    select_variable,
)
from ._psis_loo import _psis_loo_setup

# ---------------------------------------------------------------------------
# Smoothing of discrete data
# ---------------------------------------------------------------------------


def smooth_data(
    values: Any,
    n_sample_axes: Optional[int] = None,
    offset_frac: float = 0.01,
) -> np.ndarray:
    """Smooth (discrete) values with a monotone cubic interpolant.

    The values are treated as samples of a function at evenly spaced points
    on ``[0, 1]``; a PCHIP interpolant through them is re-evaluated at the
    same number of evenly spaced points on ``[offset, 1 - offset]``.

    Parameters
    ----------
    values : array-like
        Values to smooth.
    n_sample_axes : int, optional
        Number of leading axes smoothed jointly (flattened); each slice over
        the remaining axes is smoothed separately. Defaults to all axes.
    offset_frac : float, default=0.01
        Fraction of the unit interval trimmed from each end.

    Returns
    -------
    np.ndarray
        Smoothed float values with the shape of ``values``. Fewer than two
        values per slice are returned unchanged.

    Examples
    --------
    >>> smooth_data(np.array([0, 1, 1, 2, 5])).shape
    (5,)
    """
    values = np.asarray(values, dtype=float)
    if n_sample_axes is None:
        n_sample_axes = values.ndim
    sample_shape = values.shape[:n_sample_axes]
    n = int(np.prod(sample_shape))
    if n < 2:
        return values.copy()

    flat = values.reshape(n, -1)
    x = np.linspace(0.0, 1.0, n)
    x_interp = np.linspace(offset_frac, 1.0 - offset_frac, n)
    smoothed = PchipInterpolator(x, flat, axis=0)(x_interp)
    return smoothed.reshape(values.shape)


def _is_integral(values: np.ndarray) -> bool:
    with np.errstate(invalid="ignore"):
        return bool(np.all(np.mod(values, 1) == 0))


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def loo_pit(
    y: Any,
    y_pred: Any,
    log_weights: Any,
    *,
    is_discrete: Optional[bool] = None,
    **smooth_kwargs,
) -> Any:
    """Compute LOO-PIT values.

    Parameters
    ----------
    y : array-like or xarray.DataArray, shape ``params``
        Observations.
    y_pred : array-like or xarray.DataArray, shape ``(chain, draw, *params)``
        Posterior predictive draws.
    log_weights : array-like or xarray.DataArray, shape ``(chain, draw, *params)``
        Normalized leave-one-out log weights, e.g.
        ``loo(...).psis_result.log_weights``.
    is_discrete : bool, optional
        Whether the data are discrete and need smoothing. Inferred as "all
        values of ``y`` and ``y_pred`` are integers" when omitted, in which
        case a warning is emitted if they are.
    **smooth_kwargs
        Forwarded to :func:`smooth_data` (e.g. ``offset_frac``).

    Returns
    -------
    float, np.ndarray or xarray.DataArray
        PIT values in ``[0, 1]``: a float for scalar ``y``, labeled like
        ``y`` when ``y`` is a DataArray.

    Raises
    ------
    ValueError
        If the shapes of ``y``, ``y_pred`` and ``log_weights`` do not agree.

    Examples
    --------
    >>> result = loo(log_like)
    >>> pit = loo_pit(y, y_pred, result.psis_result.log_weights)
    """
    y_values, y_axes = as_param_array(y, name="y")
    param_dims = list(y_axes.dims) if y_axes.labeled else None

    if isinstance(y_pred, xr.DataArray) and param_dims is not None:
        y_pred_values, _ = as_sample_array(y_pred, param_dims=param_dims)
    else:
        y_pred_values, _ = as_sample_array(y_pred, name="y_pred")
    if isinstance(log_weights, xr.DataArray) and param_dims is not None:
        lw_values, _ = as_sample_array(log_weights, param_dims=param_dims)
    else:
        lw_values, _ = as_sample_array(log_weights, name="log_weights")

    if y_pred_values.shape[2:] != y_values.shape:
        raise ValueError(
            f"`y_pred` has parameter shape {y_pred_values.shape[2:]} but `y` "
            f"has shape {y_values.shape}"
        )
    if lw_values.shape != y_pred_values.shape:
        raise ValueError(
            f"`log_weights` has shape {lw_values.shape} but `y_pred` has "
            f"shape {y_pred_values.shape}"
        )

    y_values = np.asarray(y_values, dtype=float)
    if is_discrete is None:
        is_discrete = _is_integral(y_values) and _is_integral(y_pred_values)
        if is_discrete:
            warnings.warn(
                "All data and predictions are integer-valued. Assuming the "
                "data are discrete and smoothing them before computing "
                "LOO-PIT values. Pass `is_discrete=False` to disable.",
                UserWarning,
                stacklevel=2,
            )
    if is_discrete:
        y_values = smooth_data(y_values, **smooth_kwargs)
        # each draw gets the same transform as ``y``
        draws_last = np.moveaxis(y_pred_values, (0, 1), (-2, -1))
        draws_last = smooth_data(
            draws_last, n_sample_axes=draws_last.ndim - 2, **smooth_kwargs
        )
        y_pred_values = np.moveaxis(draws_last, (-2, -1), (0, 1))

    below = y_pred_values <= y_values[np.newaxis, np.newaxis]
    pit = np.exp(logsumexp(np.where(below, lw_values, -np.inf), axis=(0, 1)))
    pit = np.clip(pit, 0.0, 1.0)
    return y_axes.wrap(pit, name=getattr(y, "name", None))


def loo_pit_from_data(
    data: Any,
    log_weights: Optional[Any] = None,
    *,
    y_name: Optional[str] = None,
    y_pred_name: Optional[str] = None,
    log_likelihood_name: Optional[str] = None,
    reff: Optional[Any] = None,
    **kwargs,
) -> Any:
    """Compute LOO-PIT values from an evaluation container.

    Parameters
    ----------
    data : mapping of group name to xarray.Dataset
        Must hold ``observed_data`` and ``posterior_predictive`` groups, and a
        ``log_likelihood`` group (or ``sample_stats.log_likelihood``) unless
        ``log_weights`` is given.
    log_weights : array-like or xarray.DataArray, optional
        Normalized leave-one-out log weights. Computed with PSIS from the
        log-likelihood when omitted.
    y_name : str, optional
        Observed variable. Required when ``observed_data`` holds more than
        one variable.
    y_pred_name : str, optional
        Predictive variable. Defaults to ``y_name``.
    log_likelihood_name : str, optional
        Log-likelihood variable. Defaults to ``y_name``.
    reff : float or array-like, optional
        Relative efficiency passed to PSIS.
    **kwargs
        Forwarded to :func:`loo_pit`.

    Returns
    -------
    xarray.DataArray
        PIT values named ``loo_pit_<y_name>``.

    Raises
    ------
    ValueError
        If a required group or variable is missing or ambiguous.
    """
    observed = select_variable(
        get_group(data, "observed_data"), y_name, group="observed_data"
    )
    y_name = str(observed.name)
    y_pred_name = y_name if y_pred_name is None else y_pred_name
    y_pred = select_variable(
        get_group(data, "posterior_predictive"),
        y_pred_name,
        group="posterior_predictive",
    )
    param_dims = [str(d) for d in observed.dims]

    if log_weights is None:
        if log_likelihood_name is not None or has_group(data, "log_likelihood"):
            name = y_name if log_likelihood_name is None else log_likelihood_name
            log_like = select_variable(
                get_group(data, "log_likelihood"), name, group="log_likelihood"
            )
        else:
            log_like = select_variable(
                get_group(data, "sample_stats"),
                "log_likelihood",
                group="sample_stats",
            )
        log_like_values, _ = as_sample_array(log_like, param_dims=param_dims)
        psis_result = _psis_loo_setup(log_like_values, reff)
        log_weights = xr.DataArray(
            psis_result.log_weights,
            dims=(*SAMPLE_DIMS, *param_dims),
        )

    pit = loo_pit(observed, y_pred, log_weights, **kwargs)
    if not isinstance(pit, xr.DataArray):
        pit = xr.DataArray(pit)
    return pit.rename(f"loo_pit_{y_name}")
