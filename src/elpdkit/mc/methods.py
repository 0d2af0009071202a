"""Model weighting methods.

Each method is an immutable, validated configuration object tagged by a
:class:`WeightsMethodKind`.  :func:`~elpdkit.mc.model_weights` dispatches on
that tag.

Three methods are available:

- :class:`PseudoBMA`: weights proportional to ``exp(elpd_k)``.
- :class:`BootstrappedPseudoBMA`: pseudo-BMA averaged over Bayesian
  bootstrap replicates of the pointwise ELPDs (Yao et al., 2018).
- :class:`Stacking`: weights maximizing the leave-one-out log score of the
  weighted predictive mixture (Yao et al., 2018).

References
----------
Yao, Vehtari, Simpson, Gelman (2018), "Using stacking to average Bayesian
    predictive distributions." Bayesian Analysis.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Literal, Union

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, field_validator

# ==============================================================================
# Enums
# ==============================================================================


class WeightsMethodKind(str, Enum):
    """Supported model weighting methods."""

    PSEUDO_BMA = "pseudo_bma"
    BOOTSTRAPPED_PSEUDO_BMA = "bootstrapped_pseudo_bma"
    STACKING = "stacking"


# ------------------------------------------------------------------------------

#: Optimizers of ``scipy.optimize.minimize`` usable for stacking. They all
#: accept an analytic gradient and no constraints are needed.
STACKING_OPTIMIZERS = ("L-BFGS-B", "BFGS", "CG", "TNC", "SLSQP")

# ==============================================================================
# Method configurations
# ==============================================================================


class PseudoBMA(BaseModel):
    """Pseudo Bayesian model averaging.

    Parameters
    ----------
    regularize : bool, default=False
        Penalize each model's ELPD by half its standard error before taking
        the softmax.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal[WeightsMethodKind.PSEUDO_BMA] = WeightsMethodKind.PSEUDO_BMA
    regularize: bool = Field(
        False, description="Subtract elpd_mcse / 2 from each ELPD"
    )


# ------------------------------------------------------------------------------


class BootstrappedPseudoBMA(BaseModel):
    """Pseudo-BMA stabilized with the Bayesian bootstrap.

    Parameters
    ----------
    rng : numpy.random.Generator
        Source of randomness for the Dirichlet draws. Pass a seeded
        generator for reproducible weights.
    samples : int, default=1000
        Number of bootstrap replicates.
    alpha : float, default=1.0
        Concentration of the symmetric Dirichlet distribution.
    """

    model_config = ConfigDict(
        frozen=True, arbitrary_types_allowed=True, extra="forbid"
    )

    kind: Literal[WeightsMethodKind.BOOTSTRAPPED_PSEUDO_BMA] = (
        WeightsMethodKind.BOOTSTRAPPED_PSEUDO_BMA
    )
    rng: np.random.Generator = Field(
        default_factory=np.random.default_rng,
        description="Random generator for the Dirichlet draws",
    )
    samples: int = Field(1000, gt=0, description="Number of bootstrap draws")
    alpha: float = Field(1.0, gt=0, description="Dirichlet concentration")


# ------------------------------------------------------------------------------


class Stacking(BaseModel):
    """Stacking of predictive distributions.

    Parameters
    ----------
    optimizer : str, default="L-BFGS-B"
        ``scipy.optimize.minimize`` method, one of ``STACKING_OPTIMIZERS``.
    options : dict, optional
        Extra ``options`` for the optimizer, e.g. ``{"maxiter": 100}``.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal[WeightsMethodKind.STACKING] = WeightsMethodKind.STACKING
    optimizer: str = Field("L-BFGS-B", description="scipy.optimize method")
    options: Dict[str, Any] = Field(
        default_factory=dict, description="Optimizer options"
    )

    @field_validator("optimizer")
    @classmethod
    def check_optimizer(cls, v: str) -> str:
        """Validate the optimizer name."""
        if v not in STACKING_OPTIMIZERS:
            raise ValueError(
                f"Unsupported optimizer `{v}`; expected one of "
                f"{STACKING_OPTIMIZERS}"
            )
        return v


# ------------------------------------------------------------------------------

WeightsMethod = Union[PseudoBMA, BootstrappedPseudoBMA, Stacking]
