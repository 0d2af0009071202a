"""Model weights for predictive averaging.

:func:`model_weights` turns a collection of ELPD results into weights on the
simplex with one of the methods configured in :mod:`elpdkit.mc.methods`.
Only the flattened pointwise ``elpd`` values of each result are used, so
the results may label their observations differently as long as they have
the same number of them.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
from scipy.special import softmax

from ._elpd import ELPDResult
from ._stacking import compute_stacking_weights
from .methods import (
    BootstrappedPseudoBMA,
    PseudoBMA,
    Stacking,
    WeightsMethod,
    WeightsMethodKind,
)

# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _unpack_results(
    results: Union[Sequence[ELPDResult], Mapping[Any, ELPDResult]],
) -> Tuple[Optional[List[Any]], List[ELPDResult]]:
    """Split a collection of results into keys (for mappings) and values."""
    if isinstance(results, Mapping):
        keys = list(results.keys())
        values = [results[key] for key in keys]
    else:
        keys = None
        values = list(results)
    if not values:
        raise ValueError("At least one ELPD result is required")
    for value in values:
        if not isinstance(value, ELPDResult):
            raise TypeError(
                f"Expected ELPDResult entries, got {type(value).__name__}"
            )
    return keys, values


def _elpd_matrix(results: Sequence[ELPDResult]) -> np.ndarray:
    """Stack the flattened pointwise ELPDs into an ``(n, K)`` matrix."""
    columns = [np.ravel(r.pointwise["elpd"].values) for r in results]
    sizes = {c.size for c in columns}
    if len(sizes) != 1:
        raise ValueError(
            "All ELPD results must have the same number of pointwise "
            f"estimates; got sizes {[c.size for c in columns]}"
        )
    return np.column_stack(columns)


def _pseudo_bma_weights(results: Sequence[ELPDResult], regularize: bool) -> np.ndarray:
    elpd = np.array([r.estimates.elpd for r in results])
    if regularize:
        elpd = elpd - np.array([r.estimates.elpd_mcse for r in results]) / 2
    return softmax(elpd)


def _bootstrapped_pseudo_bma_weights(
    results: Sequence[ELPDResult], method: BootstrappedPseudoBMA
) -> np.ndarray:
    elpd_mat = _elpd_matrix(results)
    n, K = elpd_mat.shape
    alpha = np.full(n, method.alpha)

    weights_mean = np.zeros(K)
    for _ in range(method.samples):
        # Bayesian bootstrap estimate of each model's ELPD
        probs = method.rng.dirichlet(alpha)
        weights_mean += softmax(n * (elpd_mat.T @ probs))
    return weights_mean / method.samples


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def model_weights(
    results: Union[Sequence[ELPDResult], Mapping[Any, ELPDResult]],
    method: Optional[WeightsMethod] = None,
) -> Union[np.ndarray, Dict[Any, float]]:
    """Compute weights for averaging the predictions of several models.

    Parameters
    ----------
    results : sequence or mapping of ELPDResult
        One result per model.
    method : PseudoBMA, BootstrappedPseudoBMA or Stacking, optional
        Weighting method. Defaults to ``Stacking()``.

    Returns
    -------
    np.ndarray or dict
        Non-negative weights summing to 1: an array in input order for a
        sequence, a dict with the same keys for a mapping.

    Raises
    ------
    ValueError
        If ``results`` is empty or the results have different numbers of
        pointwise estimates.
    TypeError
        If an entry is not an :class:`ELPDResult` or ``method`` is not a
        weighting method.

    Examples
    --------
    >>> weights = model_weights({"a": loo_a, "b": loo_b}, PseudoBMA())
    >>> sorted(weights)
    ['a', 'b']
    """
    method = Stacking() if method is None else method
    keys, values = _unpack_results(results)
    kind = getattr(method, "kind", None)

    if kind is WeightsMethodKind.PSEUDO_BMA:
        weights = _pseudo_bma_weights(values, method.regularize)
    elif kind is WeightsMethodKind.BOOTSTRAPPED_PSEUDO_BMA:
        weights = _bootstrapped_pseudo_bma_weights(values, method)
    elif kind is WeightsMethodKind.STACKING:
        weights, _ = compute_stacking_weights(
            _elpd_matrix(values), method.optimizer, method.options
        )
    else:
        raise TypeError(
            f"Unsupported weighting method {method!r}; expected one of "
            f"{[PseudoBMA.__name__, BootstrappedPseudoBMA.__name__, Stacking.__name__]}"
        )

    if keys is None:
        return np.asarray(weights)
    return {key: float(w) for key, w in zip(keys, weights)}
