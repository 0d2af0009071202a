"""Bayesian model evaluation and comparison.

This module estimates a model's expected out-of-sample predictive accuracy,
the expected log pointwise predictive density (ELPD), from posterior draws
of its pointwise log-likelihood.  Two estimators are provided:

- **PSIS-LOO** (Pareto-Smoothed Importance Sampling LOO): approximates exact
  leave-one-out cross-validation, with a per-observation reliability
  diagnostic k̂.
- **WAIC** (Widely Applicable Information Criterion): a fast, analytical
  approximation computed with JAX-compiled kernels.

In addition, the module provides:

- **Model weights**: pseudo-BMA, Bayesian-bootstrap pseudo-BMA and stacking
  weights for averaging the predictions of several models.
- **Model comparison**: ranked tables of ELPD differences to the best model,
  with standard errors and weights.
- **LOO-PIT**: leave-one-out probability integral transform values for
  checking calibration.

Quick start
-----------

>>> from elpdkit.mc import loo, compare
>>> loo_a = loo(log_lik_a)               # (chain, draw, *obs) array
>>> print(loo_a)                         # estimates and k̂ diagnostics
>>> mc = compare({"a": loo_a, "b": log_lik_b})
>>> mc.to_dataframe()                    # pandas DataFrame

Result types
------------
- ``ELPDResult``: pointwise and aggregate estimates tagged by ``ELPDKind``.
- ``ModelComparisonResult``: one row per model, in rank order.

Weighting methods
-----------------
- ``PseudoBMA``, ``BootstrappedPseudoBMA``, ``Stacking``: frozen pydantic
  configurations tagged by ``WeightsMethodKind``.

Low-level functions
-------------------
- ``psis()``: Pareto smoothing of importance ratios.
- ``compute_waic_stats()``: JIT-compiled pointwise WAIC quantities.
- ``compute_stacking_weights()``: stacking weight optimization.
"""

# ELPD results
from ._elpd import (
    ELPDEstimates,
    ELPDKind,
    ELPDResult,
    INFORMATION_CRITERION_SCALES,
    information_criterion,
)

# Pareto smoothing
from ._psis import (
    PSISResult,
    psis,
    pareto_shape_summary,
)

# Estimators
from ._psis_loo import loo
from ._waic import compute_waic_stats, waic

# Model weights
from .methods import (
    BootstrappedPseudoBMA,
    PseudoBMA,
    Stacking,
    WeightsMethodKind,
)
from ._stacking import (
    compute_stacking_weights,
    from_sphere,
    to_sphere,
)
from ._weights import model_weights

# Comparison
from .results import ModelComparisonResult, compare

# LOO-PIT
from ._loo_pit import loo_pit, loo_pit_from_data, smooth_data

__all__ = [
    # ELPD results
    "ELPDEstimates",
    "ELPDKind",
    "ELPDResult",
    "INFORMATION_CRITERION_SCALES",
    "information_criterion",
    # Pareto smoothing
    "PSISResult",
    "psis",
    "pareto_shape_summary",
    # Estimators
    "loo",
    "compute_waic_stats",
    "waic",
    # Model weights
    "BootstrappedPseudoBMA",
    "PseudoBMA",
    "Stacking",
    "WeightsMethodKind",
    "compute_stacking_weights",
    "from_sphere",
    "to_sphere",
    "model_weights",
    # Comparison
    "ModelComparisonResult",
    "compare",
    # LOO-PIT
    "loo_pit",
    "loo_pit_from_data",
    "smooth_data",
]
