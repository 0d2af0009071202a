"""Posterior summaries and MCMC diagnostics for elpdkit."""

# Highest density intervals
from .hdi import HDI, HDI_DEFAULT_PROB, hdi

# Convergence diagnostics
from .diagnostics import ess, mcse, rhat

# Bayesian R²
from .r2 import R2Score, r2_samples, r2_score, r2_score_from_data

# Summary table
from .summary import summarize

__all__ = [
    "HDI",
    "HDI_DEFAULT_PROB",
    "hdi",
    "ess",
    "mcse",
    "rhat",
    "R2Score",
    "r2_samples",
    "r2_score",
    "r2_score_from_data",
    "summarize",
]
