"""Bayesian R² for regression models.

Each posterior draw ``s`` of the predictions gives one value

    R²_s = var(y_pred_s) / (var(y_pred_s) + var(y_pred_s - y_true))

with both variances taken over the outputs and the ``n`` (uncorrected)
denominator.  The draws of R² summarize how much of the variance of the
predictions is explained by the model; the measure is only meaningful for
linear models.

References
----------
Gelman, Goodrich, Gabry, Vehtari (2019), "R-squared for Bayesian regression
    models." The American Statistician.
"""

from __future__ import annotations

from typing import Any, NamedTuple, Optional, Tuple

import numpy as np
import xarray as xr

from ..utils.core import (
    SAMPLE_DIMS,
    as_sample_array,
    get_group,
    select_variable,
)


class R2Score(NamedTuple):
    """Mean and (uncorrected) standard deviation of the R² draws."""

    r2: float
    r2_std: float


# ------------------------------------------------------------------------------
# Internal helpers
# ------------------------------------------------------------------------------


def _as_observations(y_true: Any) -> np.ndarray:
    y_true = np.asarray(y_true, dtype=float)
    if y_true.ndim != 1:
        raise ValueError(
            f"`y_true` must be one-dimensional, got shape {y_true.shape}"
        )
    return y_true


def _as_predictions(y_pred: Any) -> Tuple[np.ndarray, Optional[xr.DataArray]]:
    """Predictions as ``(*sample, n_outputs)`` plus a labeled template."""
    if isinstance(y_pred, xr.DataArray):
        values, axes = as_sample_array(y_pred, name="y_pred")
        if len(axes.shape) != 1:
            raise ValueError(
                "`y_pred` must have exactly one dimension besides "
                f"{SAMPLE_DIMS}, got {axes.dims}"
            )
        template = y_pred.isel({axes.dims[0]: 0}, drop=True).transpose(
            *SAMPLE_DIMS
        )
        return values, template

    values = np.asarray(y_pred, dtype=float)
    if values.ndim not in (2, 3):
        raise ValueError(
            "`y_pred` must have shape (draw, n_outputs) or "
            f"(chain, draw, n_outputs), got {values.shape}"
        )
    return values, None


# ------------------------------------------------------------------------------
# Public API
# ------------------------------------------------------------------------------


def r2_samples(y_true: Any, y_pred: Any) -> Any:
    """R² of every posterior draw of the predictions.

    Parameters
    ----------
    y_true : array-like, shape ``(n_outputs,)``
        Observed target values.
    y_pred : array-like or xarray.DataArray
        Predicted target values with shape ``(draw, n_outputs)`` or
        ``(chain, draw, n_outputs)``. A DataArray must carry ``chain`` and
        ``draw`` dims plus one output dim, in any order.

    Returns
    -------
    np.ndarray or xarray.DataArray
        One R² per draw, shaped like the sampling axes of ``y_pred``. Draws
        whose predictions and residuals are both constant give NaN.

    Raises
    ------
    ValueError
        If ``y_true`` is not one-dimensional, ``y_pred`` has the wrong rank,
        or the number of outputs differs.

    Examples
    --------
    >>> y_true = np.array([1.0, 2.0, 3.0])
    >>> r2_samples(y_true, np.array([[1.0, 2.0, 3.0], [3.0, 2.0, 1.0]]))
    array([1. , 0.2])
    """
    y_true = _as_observations(y_true)
    values, template = _as_predictions(y_pred)
    if values.shape[-1] != y_true.shape[0]:
        raise ValueError(
            f"`y_pred` has {values.shape[-1]} outputs but `y_true` has "
            f"{y_true.shape[0]}"
        )

    var_y_est = np.var(values, axis=-1)
    var_e = np.var(values - y_true, axis=-1)
    with np.errstate(divide="ignore", invalid="ignore"):
        r_squared = var_y_est / (var_y_est + var_e)

    if template is None:
        return r_squared
    return template.copy(data=r_squared).rename("r2")


def r2_score(y_true: Any, y_pred: Any) -> R2Score:
    """Bayesian R² summarized over the posterior draws.

    Parameters
    ----------
    y_true : array-like, shape ``(n_outputs,)``
        Observed target values.
    y_pred : array-like or xarray.DataArray
        Predicted target values, see :func:`r2_samples`.

    Returns
    -------
    R2Score
        Mean and standard deviation (``n`` denominator) of the R² draws.
    """
    r_squared = np.asarray(r2_samples(y_true, y_pred))
    return R2Score(float(np.mean(r_squared)), float(np.std(r_squared)))


def r2_score_from_data(
    data: Any,
    *,
    y_name: Optional[str] = None,
    y_pred_name: Optional[str] = None,
) -> R2Score:
    """Bayesian R² from an evaluation container.

    Parameters
    ----------
    data : mapping of group name to xarray.Dataset
        Must hold ``observed_data`` and ``posterior_predictive`` groups.
    y_name : str, optional
        Observed variable. Required when ``observed_data`` holds more than
        one variable.
    y_pred_name : str, optional
        Predictive variable. Defaults to ``y_name``.

    Returns
    -------
    R2Score

    Raises
    ------
    ValueError
        If a group or variable is missing or ambiguous, or the observed
        variable is not one-dimensional.
    """
    observed = select_variable(
        get_group(data, "observed_data"), y_name, group="observed_data"
    )
    y_pred_name = str(observed.name) if y_pred_name is None else y_pred_name
    y_pred = select_variable(
        get_group(data, "posterior_predictive"),
        y_pred_name,
        group="posterior_predictive",
    )
    if observed.ndim != 1:
        raise ValueError(
            f"Observed variable `{observed.name}` must be one-dimensional, "
            f"got dims {observed.dims}"
        )
    values, _ = as_sample_array(y_pred, param_dims=[str(observed.dims[0])])
    return r2_score(observed.values, values)
