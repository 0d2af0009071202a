"""Highest density intervals (HDI).

The HDI at probability ``prob`` is the narrowest interval that contains a
fraction ``prob`` of the draws.  With the draws sorted, every candidate
interval spans ``m = floor(prob * n) + 1`` consecutive draws; the narrowest
one (the first, in case of ties) is returned.
"""

from __future__ import annotations

from typing import Any, NamedTuple

import numpy as np
import xarray as xr

from ..utils.core import SAMPLE_DIMS, get_group, has_group

#: Default probability mass of the interval.
HDI_DEFAULT_PROB = 0.94

#: Name and labels of the dimension holding the interval bounds.
HDI_BOUND_DIM = "hdi_bound"
HDI_BOUND_LABELS = ("lower", "upper")


class HDI(NamedTuple):
    """Lower and upper bounds of a highest density interval."""

    lower: Any
    upper: Any


# ------------------------------------------------------------------------------
# Internal helpers
# ------------------------------------------------------------------------------


def _check_prob(prob: float) -> None:
    if not 0 < prob < 1:
        raise ValueError(f"`prob` must be in the open interval (0, 1), got {prob}")


def _hdi_columns(samples: np.ndarray, prob: float) -> HDI:
    """HDI of each column of an ``(n, k)`` array."""
    n = samples.shape[0]
    m = int(np.floor(prob * n)) + 1

    lower = np.min(samples, axis=0)
    upper = np.max(samples, axis=0)
    if m >= n:
        return HDI(lower, upper)

    # Non-finite columns keep (min, max)
    finite = np.all(np.isfinite(samples), axis=0)
    if np.any(finite):
        sorted_samples = np.sort(samples[:, finite], axis=0)
        widths = sorted_samples[m - 1 :] - sorted_samples[: n - m + 1]
        idx = np.argmin(widths, axis=0)
        cols = np.arange(sorted_samples.shape[1])
        lower[finite] = sorted_samples[idx, cols]
        upper[finite] = sorted_samples[idx + m - 1, cols]
    return HDI(lower, upper)


def _hdi_array(samples: np.ndarray, prob: float) -> HDI:
    """HDI of an array, reducing all axes for rank <= 2, else the leading two."""
    if samples.ndim == 0:
        raise ValueError("Cannot compute the HDI of a scalar")
    if samples.size == 0:
        raise ValueError("Cannot compute the HDI of an empty array")

    if samples.ndim <= 2:
        lower, upper = _hdi_columns(samples.reshape(-1, 1), prob)
        return HDI(lower[0].item(), upper[0].item())

    param_shape = samples.shape[2:]
    n_samples = samples.shape[0] * samples.shape[1]
    lower, upper = _hdi_columns(samples.reshape(n_samples, -1), prob)
    return HDI(lower.reshape(param_shape), upper.reshape(param_shape))


def _hdi_data_array(samples: xr.DataArray, prob: float) -> xr.DataArray:
    sample_dims = [d for d in SAMPLE_DIMS if d in samples.dims]
    if not sample_dims:
        raise ValueError(
            f"DataArray `{samples.name}` has none of the sampling dims {SAMPLE_DIMS}"
        )
    param_dims = [d for d in samples.dims if d not in SAMPLE_DIMS]
    values = samples.transpose(*sample_dims, *param_dims).values
    n_samples = int(np.prod(values.shape[: len(sample_dims)]))
    if values.size == 0:
        raise ValueError("Cannot compute the HDI of an empty array")

    param_shape = values.shape[len(sample_dims) :]
    lower, upper = _hdi_columns(values.reshape(n_samples, -1), prob)
    bounds = np.stack(
        [lower.reshape(param_shape), upper.reshape(param_shape)], axis=-1
    )
    coords = {d: samples.coords[d] for d in param_dims if d in samples.coords}
    coords[HDI_BOUND_DIM] = list(HDI_BOUND_LABELS)
    return xr.DataArray(
        bounds,
        dims=(*param_dims, HDI_BOUND_DIM),
        coords=coords,
        name=samples.name,
    )


# ------------------------------------------------------------------------------
# Public API
# ------------------------------------------------------------------------------


def hdi(samples: Any, prob: float = HDI_DEFAULT_PROB) -> Any:
    """Compute the highest density interval of posterior draws.

    Parameters
    ----------
    samples : array-like, xarray.DataArray, xarray.Dataset or container
        Draws. Arrays of rank 1 or 2 are reduced entirely; higher ranks are
        laid out ``(chain, draw, *params)``. Labeled inputs must carry
        ``chain`` and/or ``draw`` dims; a container contributes its
        ``posterior`` group.
    prob : float, default=0.94
        Probability mass of the interval, in ``(0, 1)``.

    Returns
    -------
    HDI, xarray.DataArray or xarray.Dataset
        For arrays, ``HDI(lower, upper)`` with scalar bounds for rank <= 2
        and arrays of shape ``params`` otherwise. Labeled inputs return the
        same container type with a trailing ``hdi_bound`` dim holding
        ``["lower", "upper"]``.

    Raises
    ------
    ValueError
        If ``prob`` is not in ``(0, 1)`` or the input is empty or scalar.

    Examples
    --------
    >>> hdi(np.array([1.0, 2.0, 3.0, 4.0, 100.0]), prob=0.7)
    HDI(lower=1.0, upper=4.0)
    """
    _check_prob(prob)

    if has_group(samples, "posterior"):
        samples = get_group(samples, "posterior")
    if isinstance(samples, xr.Dataset):
        return samples.map(_hdi_data_array, prob=prob)
    if isinstance(samples, xr.DataArray):
        return _hdi_data_array(samples, prob)
    return _hdi_array(np.asarray(samples), prob)
