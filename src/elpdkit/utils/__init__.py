"""
Utility modules for elpdkit.

This package contains the helpers shared by the estimators: sample-axis
handling, log-likelihood lookup in evaluation containers and the
significant-digit rule used when rendering estimates.
"""

from .core import (
    ParamAxes,
    as_sample_array,
    get_log_likelihood,
    sigdigits_matching_error,
)

__all__ = [
    "ParamAxes",
    "as_sample_array",
    "get_log_likelihood",
    "sigdigits_matching_error",
]
