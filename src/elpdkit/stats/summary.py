"""Per-variable posterior summary table.

:func:`summarize` reports, for every scalar element of every posterior
variable, location and spread statistics (``kind="stats"``) and MCMC
diagnostics (``kind="diagnostics"``), as one ``pandas.DataFrame``.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
import xarray as xr

from ..utils.core import ParamAxes, as_sample_array, get_group, has_group
from .diagnostics import ess, mcse, rhat
from .hdi import HDI_DEFAULT_PROB, _check_prob, _hdi_columns

SUMMARY_KINDS = ("all", "stats", "diagnostics")

# ------------------------------------------------------------------------------
# Internal helpers
# ------------------------------------------------------------------------------


def _interval_column_names(prob: float) -> Tuple[str, str]:
    """Column names of the HDI bounds, e.g. ``hdi_3%`` and ``hdi_97%``."""
    alpha = (1 - prob) / 2
    lower = np.format_float_positional(round(100 * alpha, 2), trim="-")
    upper = np.format_float_positional(round(100 * (1 - alpha), 2), trim="-")
    return f"hdi_{lower}%", f"hdi_{upper}%"


def _variables(data: Any) -> Dict[str, Any]:
    """Name -> samples mapping of the variables to summarize."""
    if has_group(data, "posterior"):
        data = get_group(data, "posterior")
    if isinstance(data, xr.Dataset):
        return {str(name): data[name] for name in data.data_vars}
    if isinstance(data, xr.DataArray):
        return {str(data.name) if data.name is not None else "x": data}
    if isinstance(data, Mapping):
        return {str(name): value for name, value in data.items()}
    return {"x": data}


def _element_labels(var_name: str, axes: ParamAxes) -> List[str]:
    """Row labels like ``theta``, ``theta[0,1]`` or ``theta[Choate]``."""
    if not axes.shape:
        return [var_name]
    labels = []
    for index in np.ndindex(*axes.shape):
        parts = []
        for dim, i in zip(axes.dims, index):
            if dim in axes.coords:
                parts.append(str(axes.coords[dim][i]))
            else:
                parts.append(str(i))
        labels.append(f"{var_name}[{','.join(parts)}]")
    return labels


def _stats_columns(values: np.ndarray, hdi_prob: float) -> Dict[str, np.ndarray]:
    n_samples = values.shape[0] * values.shape[1]
    flat = values.reshape(n_samples, -1)
    lower_name, upper_name = _interval_column_names(hdi_prob)
    lower, upper = _hdi_columns(flat, hdi_prob)
    return {
        "mean": np.mean(flat, axis=0),
        "std": np.std(flat, axis=0, ddof=1),
        lower_name: lower,
        upper_name: upper,
    }


def _diagnostics_columns(values: np.ndarray) -> Dict[str, np.ndarray]:
    return {
        "mcse_mean": np.ravel(mcse(values, kind="mean")),
        "mcse_std": np.ravel(mcse(values, kind="sd")),
        "ess_bulk": np.ravel(ess(values, method="bulk")),
        "ess_tail": np.ravel(ess(values, method="tail")),
        "r_hat": np.ravel(rhat(values)),
    }


# ------------------------------------------------------------------------------
# Public API
# ------------------------------------------------------------------------------


def summarize(
    data: Any,
    *,
    var_names: Optional[Union[str, Sequence[str]]] = None,
    kind: str = "all",
    hdi_prob: float = HDI_DEFAULT_PROB,
    round_to: Optional[int] = None,
) -> pd.DataFrame:
    """Summarize posterior draws.

    Parameters
    ----------
    data : array-like, xarray.DataArray, xarray.Dataset, mapping or container
        Draws laid out ``(chain, draw, *params)``. A container contributes
        its ``posterior`` group; a plain mapping is read as variable name to
        draws.
    var_names : str or sequence of str, optional
        Variables to include. Defaults to all.
    kind : {"all", "stats", "diagnostics"}, default="all"
        ``"stats"`` gives ``mean``, ``std`` and the HDI bounds;
        ``"diagnostics"`` gives ``mcse_mean``, ``mcse_std``, ``ess_bulk``,
        ``ess_tail`` and ``r_hat``; ``"all"`` gives both.
    hdi_prob : float, default=0.94
        Probability mass of the HDI.
    round_to : int, optional
        Round all values to this many decimals.

    Returns
    -------
    pd.DataFrame
        One row per scalar element, indexed by labels such as ``mu``,
        ``theta[0]`` or ``theta[Choate]``.

    Raises
    ------
    ValueError
        If ``kind`` is unknown, ``hdi_prob`` is not in ``(0, 1)`` or a
        requested variable is missing.

    Examples
    --------
    >>> rng = np.random.default_rng(0)
    >>> df = summarize({"mu": rng.normal(size=(4, 500))}, kind="stats")
    >>> list(df.columns)
    ['mean', 'std', 'hdi_3%', 'hdi_97%']
    """
    if kind not in SUMMARY_KINDS:
        raise ValueError(f"Unknown summary kind `{kind}`; expected {SUMMARY_KINDS}")
    _check_prob(hdi_prob)

    variables = _variables(data)
    if var_names is not None:
        if isinstance(var_names, str):
            var_names = [var_names]
        missing = [name for name in var_names if name not in variables]
        if missing:
            raise ValueError(
                f"Variables {missing} not found; available: {list(variables)}"
            )
        variables = {name: variables[name] for name in var_names}

    frames = []
    for var_name, samples in variables.items():
        values, axes = as_sample_array(samples, name=var_name)
        columns: Dict[str, np.ndarray] = {}
        if kind in ("all", "stats"):
            columns.update(_stats_columns(values, hdi_prob))
        if kind in ("all", "diagnostics"):
            columns.update(_diagnostics_columns(values))
        frames.append(
            pd.DataFrame(columns, index=_element_labels(var_name, axes))
        )

    df = pd.concat(frames) if frames else pd.DataFrame()
    if round_to is not None:
        df = df.round(round_to)
    return df
