"""ELPD result containers.

Both estimators in this package, PSIS-LOO and WAIC, produce the same kind of
output: pointwise estimates of the expected log pointwise predictive density
(ELPD) and of the effective number of parameters, plus their sums with
standard errors.  :class:`ELPDResult` holds that output; the ``kind`` tag
records which estimator produced it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Union

import pandas as pd
import xarray as xr

from ..utils.core import _sum_and_se, format_sigdigits, sigdigits_matching_error
from ._psis import PSISResult, pareto_shape_summary

# ==============================================================================
# Enums and constants
# ==============================================================================


class ELPDKind(str, Enum):
    """Estimator that produced an ELPD result."""

    LOO = "loo"
    WAIC = "waic"


# ------------------------------------------------------------------------------

#: Multipliers that turn an ELPD into an information criterion.
INFORMATION_CRITERION_SCALES: Dict[str, int] = {
    "deviance": -2,
    "log": 1,
    "negative_log": -1,
}

# ==============================================================================
# Result containers
# ==============================================================================


@dataclass(frozen=True)
class ELPDEstimates:
    """Aggregate ELPD estimates with their standard errors.

    Parameters
    ----------
    elpd : float
        Sum of the pointwise ELPD values.
    elpd_mcse : float
        Standard error of ``elpd``.
    p : float
        Effective number of parameters.
    p_mcse : float
        Standard error of ``p``.
    """

    elpd: float
    elpd_mcse: float
    p: float
    p_mcse: float

    @classmethod
    def from_pointwise(cls, pointwise: xr.Dataset) -> "ELPDEstimates":
        """Aggregate a pointwise estimate set."""
        elpd, elpd_mcse = _sum_and_se(pointwise["elpd"].values)
        p, p_mcse = _sum_and_se(pointwise["p"].values)
        return cls(elpd=elpd, elpd_mcse=elpd_mcse, p=p, p_mcse=p_mcse)


# ------------------------------------------------------------------------------


@dataclass(frozen=True, repr=False)
class ELPDResult:
    """Output of an ELPD estimator.

    Parameters
    ----------
    kind : ELPDKind
        Which estimator produced the result.
    estimates : ELPDEstimates
        Aggregate estimates.
    pointwise : xarray.Dataset
        Pointwise estimates over the observation dims. Holds ``elpd``,
        ``lpd``, ``p`` and ``reff``; LOO results also hold ``elpd_mcse`` and
        ``pareto_shape``.
    psis_result : PSISResult, optional
        The smoothing output. Present exactly for LOO results.
    """

    kind: ELPDKind
    estimates: ELPDEstimates
    pointwise: xr.Dataset
    psis_result: Optional[PSISResult] = field(default=None, compare=False)

    def __post_init__(self):
        kind = ELPDKind(self.kind)
        object.__setattr__(self, "kind", kind)
        if kind is ELPDKind.LOO and self.psis_result is None:
            raise ValueError("LOO results require a `psis_result`")
        if kind is ELPDKind.WAIC and self.psis_result is not None:
            raise ValueError("WAIC results do not carry a `psis_result`")

    # --------------------------------------------------------------------------
    # Shortcuts
    # --------------------------------------------------------------------------

    @property
    def elpd(self) -> float:
        return self.estimates.elpd

    @property
    def elpd_mcse(self) -> float:
        return self.estimates.elpd_mcse

    @property
    def p(self) -> float:
        return self.estimates.p

    @property
    def p_mcse(self) -> float:
        return self.estimates.p_mcse

    @property
    def n_observations(self) -> int:
        """Number of pointwise estimates."""
        return int(self.pointwise["elpd"].size)

    def elpd_estimates(self, pointwise: bool = False) -> Union[ELPDEstimates, xr.Dataset]:
        """Aggregate estimates, or the pointwise set when ``pointwise``."""
        return self.pointwise if pointwise else self.estimates

    def information_criterion(self, scale: str, pointwise: bool = False):
        """See :func:`information_criterion`."""
        return information_criterion(self, scale, pointwise=pointwise)

    # --------------------------------------------------------------------------
    # Rendering
    # --------------------------------------------------------------------------

    def to_dataframe(self) -> pd.DataFrame:
        """Aggregate estimates as a two-row table (``elpd``, ``p``)."""
        est = self.estimates
        return pd.DataFrame(
            {
                "Estimate": [est.elpd, est.p],
                "SE": [est.elpd_mcse, est.p_mcse],
            },
            index=["elpd", "p"],
        )

    def to_string(self, sigdigits_se: int = 2) -> str:
        """Render the estimates, each with digits matching its SE.

        LOO results are followed by the Pareto shape diagnostics.
        """
        est = self.estimates
        table = pd.DataFrame(
            {
                "Estimate": [
                    _format_estimate(est.elpd, est.elpd_mcse),
                    _format_estimate(est.p, est.p_mcse),
                ],
                "SE": [
                    format_sigdigits(est.elpd_mcse, sigdigits_se),
                    format_sigdigits(est.p_mcse, sigdigits_se),
                ],
            },
            index=["elpd", "p"],
        )
        header = (
            f"{self.kind.name} estimates ({self.n_observations} observations)"
        )
        text = f"{header}\n{table.to_string()}"
        if self.psis_result is not None:
            text = f"{text}\n\n{pareto_shape_summary(self.psis_result)}"
        return text

    def __repr__(self) -> str:
        return self.to_string()


# ==============================================================================
# Information criteria
# ==============================================================================


def information_criterion(
    result: Union[ELPDResult, ELPDEstimates], scale: str, pointwise: bool = False
) -> Any:
    """Convert an ELPD to an information criterion.

    Parameters
    ----------
    result : ELPDResult or ELPDEstimates
        The ELPD to convert.
    scale : {"deviance", "log", "negative_log"}
        Scale of the criterion. ``"deviance"`` multiplies by -2 (the
        traditional IC scale, lower is better), ``"log"`` returns the ELPD
        itself and ``"negative_log"`` negates it.
    pointwise : bool, default=False
        If ``True``, return the pointwise criterion as an
        ``xarray.DataArray``. Requires an :class:`ELPDResult`.

    Returns
    -------
    float or xarray.DataArray
        The information criterion.

    Raises
    ------
    ValueError
        If ``scale`` is unknown, or pointwise values are requested from bare
        estimates.

    Examples
    --------
    >>> information_criterion(result, "deviance") == -2 * result.elpd
    True
    """
    if scale not in INFORMATION_CRITERION_SCALES:
        raise ValueError(
            f"Unknown scale `{scale}`; expected one of "
            f"{sorted(INFORMATION_CRITERION_SCALES)}"
        )
    factor = INFORMATION_CRITERION_SCALES[scale]
    if pointwise:
        if not isinstance(result, ELPDResult):
            raise ValueError("Pointwise criteria require an ELPDResult")
        return factor * result.pointwise["elpd"]
    estimates = result.estimates if isinstance(result, ELPDResult) else result
    return factor * estimates.elpd


def _format_estimate(value: float, se: float) -> str:
    return format_sigdigits(value, sigdigits_matching_error(value, se))
