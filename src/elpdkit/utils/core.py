"""Core utilities shared by the estimators.

This module collects the small building blocks every estimator needs:

- normalization of sample tensors to a ``(chain, draw, *params)`` NumPy layout
  while remembering the parameter axis labels (:class:`ParamAxes`),
- lookup of groups and variables inside evaluation containers,
- log-domain reductions and the standard errors derived from them,
- the significant-digit rule used when rendering estimates next to their
  standard errors.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Hashable, Optional, Sequence, Tuple

import numpy as np
import xarray as xr
from scipy.special import logsumexp

# ------------------------------------------------------------------------------
# Constants
# ------------------------------------------------------------------------------

#: Names of the sampling dimensions, in the order estimators expect them.
SAMPLE_DIMS: Tuple[str, str] = ("chain", "draw")

# ------------------------------------------------------------------------------
# Sample tensors
# ------------------------------------------------------------------------------


@dataclass(frozen=True)
class ParamAxes:
    """Labels of the non-sampling axes of a sample tensor.

    Estimators reduce plain NumPy arrays; ``ParamAxes`` carries the dimension
    names and coordinates of the parameter axes so that results can be
    re-labeled afterwards.

    Parameters
    ----------
    dims : tuple of str
        Names of the parameter dimensions.
    shape : tuple of int
        Extent of each parameter dimension.
    coords : dict
        Coordinates of the parameter dimensions that have them.
    labeled : bool
        Whether the input carried its own labels (an ``xarray`` object).
    """

    dims: Tuple[str, ...]
    shape: Tuple[int, ...]
    coords: Dict[Hashable, Any] = field(default_factory=dict)
    labeled: bool = False

    def data_array(
        self, values: np.ndarray, name: Optional[str] = None
    ) -> xr.DataArray:
        """Wrap an array of shape ``self.shape`` in a labeled DataArray."""
        values = np.asarray(values)
        return xr.DataArray(
            values.reshape(self.shape),
            dims=self.dims,
            coords=self.coords,
            name=name,
        )

    def dataset(self, **variables: np.ndarray) -> xr.Dataset:
        """Build a Dataset from arrays that all have shape ``self.shape``."""
        return xr.Dataset(
            {
                name: (self.dims, np.asarray(values).reshape(self.shape))
                for name, values in variables.items()
            },
            coords=self.coords,
        )

    def wrap(self, values: np.ndarray, name: Optional[str] = None) -> Any:
        """Return ``values`` labeled when the input was, bare otherwise.

        Scalars (empty parameter shape) are returned as Python floats for
        unlabeled input.
        """
        if self.labeled:
            return self.data_array(values, name=name)
        values = np.asarray(values)
        if values.ndim == 0:
            return values.item()
        return values


def as_sample_array(
    x: Any,
    name: str = "obs",
    param_dims: Optional[Sequence[str]] = None,
) -> Tuple[np.ndarray, ParamAxes]:
    """Convert a sample tensor to a ``(chain, draw, *params)`` float array.

    Parameters
    ----------
    x : array-like or xarray.DataArray
        NumPy-like input is assumed to already have the sampling axes first.
        A DataArray must carry ``chain`` and ``draw`` dims, in any position.
    name : str, default="obs"
        Prefix for the generated dim names (``<name>_dim_0``, ...) of
        unlabeled input.
    param_dims : sequence of str, optional
        For DataArray input, the order of the parameter dims after the
        sampling dims. Defaults to the input's own order.

    Returns
    -------
    values : np.ndarray
        The samples as a float array with sampling axes first.
    axes : ParamAxes
        Labels of the parameter axes.

    Raises
    ------
    ValueError
        If the input does not have the two sampling axes.
    """
    if isinstance(x, xr.DataArray):
        missing = [d for d in SAMPLE_DIMS if d not in x.dims]
        if missing:
            raise ValueError(
                f"Sample array must have dims {SAMPLE_DIMS}; missing {missing}"
            )
        if param_dims is None:
            param_dims = [d for d in x.dims if d not in SAMPLE_DIMS]
        x = x.transpose(*SAMPLE_DIMS, *param_dims)
        dims = tuple(str(d) for d in param_dims)
        coords = {d: x.coords[d].values for d in dims if d in x.coords}
        values = np.asarray(x.values, dtype=float)
        return values, ParamAxes(dims, values.shape[2:], coords, labeled=True)

    values = np.asarray(x, dtype=float)
    if values.ndim < 2:
        raise ValueError(
            "Sample array must have at least the (chain, draw) axes; got "
            f"shape {values.shape}"
        )
    dims = tuple(f"{name}_dim_{i}" for i in range(values.ndim - 2))
    return values, ParamAxes(dims, values.shape[2:])


def as_param_array(x: Any, name: str = "obs") -> Tuple[np.ndarray, ParamAxes]:
    """Convert an array without sampling axes (e.g. observations)."""
    if isinstance(x, xr.DataArray):
        dims = tuple(str(d) for d in x.dims)
        coords = {d: x.coords[d].values for d in dims if d in x.coords}
        values = np.asarray(x.values)
        return values, ParamAxes(dims, values.shape, coords, labeled=True)
    values = np.asarray(x)
    dims = tuple(f"{name}_dim_{i}" for i in range(values.ndim))
    return values, ParamAxes(dims, values.shape)


# ------------------------------------------------------------------------------
# Evaluation containers
# ------------------------------------------------------------------------------


def has_group(data: Any, group: str) -> bool:
    """Whether ``data`` is an evaluation container holding ``group``."""
    if isinstance(data, (xr.Dataset, xr.DataArray, np.ndarray)):
        return False
    try:
        return group in data
    except TypeError:
        return False


def get_group(data: Any, group: str) -> xr.Dataset:
    """Return ``data[group]`` as an ``xarray.Dataset``.

    Raises
    ------
    ValueError
        If the container has no such group.
    """
    if not has_group(data, group):
        raise ValueError(f"Data does not contain a `{group}` group")
    dataset = data[group]
    if not isinstance(dataset, xr.Dataset) and hasattr(dataset, "to_dataset"):
        # DataTree nodes
        dataset = dataset.to_dataset()
    return dataset


def select_variable(
    dataset: xr.Dataset, var_name: Optional[str] = None, group: str = "dataset"
) -> xr.DataArray:
    """Pick ``var_name`` from ``dataset``, or its only variable.

    Raises
    ------
    ValueError
        If ``var_name`` is absent, or if it is omitted and the dataset does
        not hold exactly one variable.
    """
    if var_name is None:
        names = list(dataset.data_vars)
        if len(names) != 1:
            raise ValueError(
                f"`{group}` holds {len(names)} variables {names}; "
                "`var_name` must be specified"
            )
        var_name = names[0]
    elif var_name not in dataset.data_vars:
        raise ValueError(
            f"Variable `{var_name}` not found in `{group}`; available: "
            f"{list(dataset.data_vars)}"
        )
    return dataset[var_name]


def get_log_likelihood(data: Any, var_name: Optional[str] = None) -> Any:
    """Extract a pointwise log-likelihood tensor from ``data``.

    Parameters
    ----------
    data : array-like, xarray.DataArray, xarray.Dataset or container
        Arrays and DataArrays are returned unchanged. A Dataset is treated
        as a collection of log-likelihood variables. A container is searched
        for a ``log_likelihood`` group, falling back to a ``log_likelihood``
        variable in ``sample_stats``.
    var_name : str, optional
        Variable to select. Required when the selected dataset holds more
        than one variable.

    Returns
    -------
    np.ndarray or xarray.DataArray
        The log-likelihood samples.

    Raises
    ------
    ValueError
        If no log-likelihood can be found or the selection is ambiguous.
    """
    if isinstance(data, xr.DataArray):
        return data
    if isinstance(data, xr.Dataset):
        return select_variable(data, var_name, group="log-likelihood dataset")
    if has_group(data, "log_likelihood"):
        return select_variable(
            get_group(data, "log_likelihood"), var_name, group="log_likelihood"
        )
    if has_group(data, "sample_stats"):
        sample_stats = get_group(data, "sample_stats")
        name = "log_likelihood" if var_name is None else var_name
        if name in sample_stats.data_vars:
            return sample_stats[name]
        raise ValueError(
            f"Data has no `log_likelihood` group and `sample_stats` has no "
            f"`{name}` variable"
        )
    if isinstance(data, np.ndarray) or np.ndim(data) > 0:
        return data
    raise ValueError("Data does not contain a log-likelihood")


# ------------------------------------------------------------------------------
# Log-domain reductions
# ------------------------------------------------------------------------------


def _sum_and_se(x: np.ndarray) -> Tuple[float, float]:
    """Sum of ``x`` and the standard error of that sum.

    The SE is ``sqrt(n) * std(x, ddof=1)``; it is NaN for a single value.
    """
    x = np.ravel(np.asarray(x, dtype=float))
    n = x.size
    total = float(np.sum(x))
    if n < 2:
        return total, float("nan")
    return total, float(np.sqrt(n) * np.std(x, ddof=1))


def _logabssubexp(x: np.ndarray, y: np.ndarray) -> np.ndarray:
    """Compute ``log|exp(x) - exp(y)|`` without overflow."""
    hi = np.maximum(x, y)
    lo = np.minimum(x, y)
    with np.errstate(divide="ignore", invalid="ignore"):
        return hi + np.log(-np.expm1(lo - hi))


def _log_mean(
    log_x: np.ndarray, log_weights: np.ndarray, axis: Tuple[int, ...] = (0, 1)
) -> np.ndarray:
    """Weighted mean of ``exp(log_x)`` on the log scale.

    ``log_weights`` must be normalized over ``axis``.
    """
    return logsumexp(log_x + log_weights, axis=axis)


def _se_log_mean(
    log_x: np.ndarray,
    log_weights: np.ndarray,
    log_mean: np.ndarray,
    reff: Any = 1.0,
    axis: Tuple[int, ...] = (0, 1),
) -> np.ndarray:
    """Monte Carlo SE of :func:`_log_mean` by the delta method.

    Uses the self-normalized importance sampling variance of Owen (2013),
    eq. 9.9, divided by the relative efficiency ``reff``.
    """
    log_mean_b = np.expand_dims(log_mean, axis)
    log_expectand = 2.0 * (log_weights + _logabssubexp(log_x, log_mean_b))
    log_var_mean = logsumexp(log_expectand, axis=axis)
    return np.exp(log_var_mean / 2.0 - log_mean) / np.sqrt(reff)


def _lpd_pointwise(log_lik: np.ndarray) -> np.ndarray:
    """In-sample log pointwise predictive density over the sampling axes."""
    n_samples = log_lik.shape[0] * log_lik.shape[1]
    return logsumexp(log_lik, axis=(0, 1)) - np.log(n_samples)


# ------------------------------------------------------------------------------
# Formatting
# ------------------------------------------------------------------------------


def sigdigits_matching_error(
    x: float, se: float, sigdigits_max: int = 7, scale: float = 2
) -> int:
    """Number of significant digits of ``x`` that its SE supports.

    An estimate is shown with enough digits that the last one is of the order
    of ``scale * se``.

    Parameters
    ----------
    x : float
        The estimate.
    se : float
        Its standard error.
    sigdigits_max : int, default=7
        Upper bound on the returned digits.
    scale : float, default=2
        Multiplier of ``se`` giving the uncertainty to resolve.

    Returns
    -------
    int
        Significant digits, between 0 and ``sigdigits_max``.

    Raises
    ------
    ValueError
        If ``se`` or ``sigdigits_max`` is negative or ``scale`` is not
        positive.

    Examples
    --------
    >>> sigdigits_matching_error(123.456, 0.01)
    5
    >>> sigdigits_matching_error(123.456, 1)
    3
    """
    if se < 0:
        raise ValueError(f"`se` must be non-negative, got {se}")
    if sigdigits_max < 0:
        raise ValueError(
            f"`sigdigits_max` must be non-negative, got {sigdigits_max}"
        )
    if not scale > 0:
        raise ValueError(f"`scale` must be positive, got {scale}")
    if x == 0 or not math.isfinite(x):
        return 0
    if not math.isfinite(se):
        return 0
    if se == 0:
        return sigdigits_max
    first_digit_x = math.floor(math.log10(abs(x)))
    first_digit_se = math.floor(math.log10(se * scale))
    sigdigits_x = first_digit_x - first_digit_se + 1
    return max(0, min(sigdigits_max, sigdigits_x))


def format_sigdigits(x: float, sigdigits: int) -> str:
    """Render ``x`` with ``sigdigits`` significant digits."""
    return f"{x:.{sigdigits}g}"
