"""ModelComparisonResult: ranked comparison of several models.

This module defines:

- ``ModelComparisonResult``: a frozen dataclass holding one row per model
  (name, rank, ELPD with its SE, ELPD difference to the best model with its
  SE, weight, effective number of parameters with its SE) plus the
  underlying ELPD results and the weighting method used.
- ``compare()``: factory that estimates the ELPD of each model (or reuses
  precomputed :class:`~elpdkit.mc._elpd.ELPDResult` objects), computes model
  weights and ranks the models.

Design decisions
----------------
- The best model is the first one with maximal ELPD.  Differences are
  ``best - candidate`` summed over observations, so all differences are
  non-negative and the best model's is exactly 0.
- The SE of a difference is computed from the pointwise differences,
  ``sqrt(n) * std(diff, ddof=1)``, which accounts for the correlation
  between the models' pointwise ELPDs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from ..utils.core import _sum_and_se, format_sigdigits, sigdigits_matching_error
from ._elpd import ELPDResult
from ._psis_loo import loo
from ._weights import _elpd_matrix, model_weights
from .methods import Stacking, WeightsMethod

logger = logging.getLogger(__name__)

#: Columns of a comparison, in display order.
COMPARISON_COLUMNS = (
    "name",
    "rank",
    "elpd",
    "elpd_mcse",
    "elpd_diff",
    "elpd_diff_mcse",
    "weight",
    "p",
    "p_mcse",
)


# ---------------------------------------------------------------------------
# Results class
# ---------------------------------------------------------------------------


@dataclass(frozen=True, repr=False)
class ModelComparisonResult:
    """Ranked comparison of K models.

    All per-model columns are aligned: entry ``k`` of every column refers to
    the same model.  With ``compare(sort=True)`` the rows are in rank order.

    Parameters
    ----------
    name : tuple of str
        Model names.
    rank : np.ndarray of int
        1 for the model with the highest ELPD.
    elpd_diff : np.ndarray
        ELPD of the best model minus that of each model.
    elpd_diff_mcse : np.ndarray
        Standard error of ``elpd_diff``.
    weight : np.ndarray
        Model weights from ``weights_method``.
    elpd_result : tuple of ELPDResult
        ELPD result of each model.
    weights_method : PseudoBMA, BootstrappedPseudoBMA or Stacking
        Method used for ``weight``.

    Examples
    --------
    >>> mc = compare({"centered": loo_c, "non_centered": loo_nc})
    >>> mc["name"]
    ('non_centered', 'centered')
    >>> mc.to_dataframe()
    """

    name: Tuple[str, ...]
    rank: np.ndarray
    elpd_diff: np.ndarray
    elpd_diff_mcse: np.ndarray
    weight: np.ndarray
    elpd_result: Tuple[ELPDResult, ...]
    weights_method: WeightsMethod

    # ------------------------------------------------------------------
    # Columns derived from the ELPD results
    # ------------------------------------------------------------------

    @property
    def elpd(self) -> np.ndarray:
        return np.array([r.estimates.elpd for r in self.elpd_result])

    @property
    def elpd_mcse(self) -> np.ndarray:
        return np.array([r.estimates.elpd_mcse for r in self.elpd_result])

    @property
    def p(self) -> np.ndarray:
        return np.array([r.estimates.p for r in self.elpd_result])

    @property
    def p_mcse(self) -> np.ndarray:
        return np.array([r.estimates.p_mcse for r in self.elpd_result])

    # ------------------------------------------------------------------
    # Table access
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self.name)

    def __getitem__(self, column: str) -> Any:
        """Return a column by name."""
        if column not in COMPARISON_COLUMNS:
            raise KeyError(
                f"Unknown column '{column}'. Available: {list(COMPARISON_COLUMNS)}"
            )
        return getattr(self, column)

    def get_elpd_result(self, model: Union[int, str]) -> ELPDResult:
        """ELPD result of a model given by row index or name."""
        return self.elpd_result[_resolve_model_idx(model, list(self.name))]

    def to_dataframe(self) -> pd.DataFrame:
        """Comparison table indexed by model name.

        Examples
        --------
        >>> df = mc.to_dataframe()
        >>> print(df[["rank", "elpd_diff", "weight"]])
        """
        data = {col: self[col] for col in COMPARISON_COLUMNS[1:]}
        df = pd.DataFrame(data, index=pd.Index(self.name, name="name"))
        return df

    # ------------------------------------------------------------------
    # Summary / display
    # ------------------------------------------------------------------

    def to_string(self, sigdigits_se: int = 2) -> str:
        """Format the comparison table.

        Each estimate is shown with as many significant digits as its
        standard error supports; standard errors and weights use
        ``sigdigits_se`` digits.
        """
        elpd, elpd_mcse = self.elpd, self.elpd_mcse
        p, p_mcse = self.p, self.p_mcse
        rows = []
        for k in range(len(self)):
            rows.append(
                {
                    "rank": int(self.rank[k]),
                    "elpd": _format_estimate(elpd[k], elpd_mcse[k]),
                    "elpd_mcse": format_sigdigits(elpd_mcse[k], sigdigits_se),
                    "elpd_diff": _format_estimate(
                        self.elpd_diff[k], self.elpd_diff_mcse[k]
                    ),
                    "elpd_diff_mcse": format_sigdigits(
                        self.elpd_diff_mcse[k], sigdigits_se
                    ),
                    "weight": format_sigdigits(self.weight[k], sigdigits_se),
                    "p": _format_estimate(p[k], p_mcse[k]),
                    "p_mcse": format_sigdigits(p_mcse[k], sigdigits_se),
                }
            )
        df = pd.DataFrame(rows, index=pd.Index(self.name))
        header = (
            f"ModelComparisonResult with {type(self.weights_method).__name__} weights"
        )
        return f"{header}\n{df.to_string()}"

    def __repr__(self) -> str:
        return self.to_string()

    def _repr_html_(self) -> str:
        return self.to_dataframe()._repr_html_()


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _resolve_model_idx(model: Union[int, str], model_names: List[str]) -> int:
    """Resolve a model identifier to its index.

    Raises
    ------
    ValueError
        If the name is not found or the index is out of range.
    """
    if isinstance(model, (int, np.integer)):
        if model < 0 or model >= len(model_names):
            raise ValueError(
                f"Model index {model} out of range (K={len(model_names)})."
            )
        return int(model)
    if isinstance(model, str):
        if model not in model_names:
            raise ValueError(
                f"Model '{model}' not found. Available: {model_names}."
            )
        return model_names.index(model)
    raise TypeError(f"model must be int or str, got {type(model)}.")


def _format_estimate(value: float, se: float) -> str:
    return format_sigdigits(value, sigdigits_matching_error(value, se))


def _unpack_models(
    models: Union[Sequence[Any], Mapping[Any, Any]],
) -> Tuple[List[str], List[Any]]:
    if isinstance(models, Mapping):
        names = [str(key) for key in models.keys()]
        values = list(models.values())
    else:
        values = list(models)
        names = [f"model_{k}" for k in range(len(values))]
    return names, values


# ---------------------------------------------------------------------------
# Factory function
# ---------------------------------------------------------------------------


def compare(
    models: Union[Sequence[Any], Mapping[Any, Any]],
    *,
    elpd_method: Callable[[Any], ELPDResult] = loo,
    weights_method: Optional[WeightsMethod] = None,
    sort: bool = True,
    model_names: Optional[Sequence[Any]] = None,
) -> ModelComparisonResult:
    """Compare models by their expected log predictive density.

    For each model, this function:

    1. Uses the model's :class:`ELPDResult` if one is given, otherwise calls
       ``elpd_method`` on the model's data.
    2. Computes model weights with ``weights_method``.
    3. Computes each model's ELPD difference to the best model, with the SE
       of the difference from the pointwise differences.
    4. Ranks the models by decreasing ELPD.

    Parameters
    ----------
    models : sequence or mapping
        ELPD results, or any data ``elpd_method`` accepts. Mapping keys
        become the model names.
    elpd_method : callable, default=loo
        Estimator applied to entries that are not already ELPD results.
    weights_method : PseudoBMA, BootstrappedPseudoBMA or Stacking, optional
        Weighting method. Defaults to ``Stacking()``.
    sort : bool, default=True
        Order the rows by rank. Otherwise keep the input order.
    model_names : sequence, optional
        Names overriding the defaults (``model_0``, ...) or mapping keys.

    Returns
    -------
    ModelComparisonResult
        The ranked comparison.

    Raises
    ------
    ValueError
        If ``models`` is empty or ``model_names`` has the wrong length.
    TypeError
        If ``elpd_method`` does not return an :class:`ELPDResult`.

    Examples
    --------
    >>> from elpdkit.mc import compare, waic
    >>> mc = compare([ll_model_a, ll_model_b], elpd_method=waic)
    >>> print(mc)
    """
    names, inputs = _unpack_models(models)
    if not inputs:
        raise ValueError("At least one model is required for a comparison")
    if model_names is not None:
        if len(model_names) != len(inputs):
            raise ValueError(
                f"model_names has length {len(model_names)} but {len(inputs)} "
                "models were given."
            )
        names = [str(n) for n in model_names]
    weights_method = Stacking() if weights_method is None else weights_method

    # ELPD of each model
    results = []
    for name, model in zip(names, inputs):
        if isinstance(model, ELPDResult):
            result = model
        else:
            logger.info("Computing ELPD for %s...", name)
            result = elpd_method(model)
            if not isinstance(result, ELPDResult):
                raise TypeError(
                    f"elpd_method returned {type(result).__name__} for model "
                    f"'{name}'; expected ELPDResult"
                )
        results.append(result)

    elpd_mat = _elpd_matrix(results)
    weights = np.asarray(model_weights(results, weights_method))

    # Best model index (first with highest elpd)
    elpd = np.array([r.estimates.elpd for r in results])
    best_idx = int(np.argmax(elpd))

    # Pairwise elpd differences and SE relative to the best model
    K = len(results)
    elpd_diff = np.zeros(K)
    elpd_diff_mcse = np.zeros(K)
    for k in range(K):
        if k == best_idx:
            continue
        diff_i = elpd_mat[:, best_idx] - elpd_mat[:, k]
        elpd_diff[k], elpd_diff_mcse[k] = _sum_and_se(diff_i)

    # Stable ranking by decreasing elpd
    order = np.argsort(-elpd, kind="stable")
    rank = np.empty(K, dtype=int)
    rank[order] = np.arange(1, K + 1)

    perm = order if sort else np.arange(K)
    return ModelComparisonResult(
        name=tuple(names[k] for k in perm),
        rank=rank[perm],
        elpd_diff=elpd_diff[perm],
        elpd_diff_mcse=elpd_diff_mcse[perm],
        weight=weights[perm],
        elpd_result=tuple(results[k] for k in perm),
        weights_method=weights_method,
    )
