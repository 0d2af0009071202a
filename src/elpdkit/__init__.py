"""
elpdkit: predictive model evaluation from posterior draws

Estimates the expected log pointwise predictive density (ELPD) of Bayesian
models with PSIS-LOO or WAIC, compares and weights models by it, and provides
LOO-PIT calibration checks, Bayesian R², highest density intervals and
posterior summaries.
"""

from . import mc
from . import stats
from . import utils

from .mc import (
    BootstrappedPseudoBMA,
    ELPDResult,
    ModelComparisonResult,
    PseudoBMA,
    Stacking,
    compare,
    information_criterion,
    loo,
    loo_pit,
    model_weights,
    waic,
)
from .stats import hdi, r2_score, summarize

__version__ = "0.1.0"

__all__ = [
    "mc",
    "stats",
    "utils",
    "BootstrappedPseudoBMA",
    "ELPDResult",
    "ModelComparisonResult",
    "PseudoBMA",
    "Stacking",
    "compare",
    "information_criterion",
    "loo",
    "loo_pit",
    "model_weights",
    "waic",
    "hdi",
    "r2_score",
    "summarize",
]
