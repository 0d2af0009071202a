"""
Shared test fixtures and configuration for elpdkit tests.
"""

import pytest
import numpy as np
import os


def pytest_addoption(parser):
    parser.addoption(
        "--device",
        default="cpu",
        choices=["cpu", "gpu"],
        help="Device to run the JAX kernels on: cpu or gpu",
    )


def pytest_configure(config):
    """Configure JAX device before any imports happen."""
    device = config.getoption("--device")
    if device == "cpu":
        os.environ["JAX_PLATFORM_NAME"] = "cpu"
    else:
        # Remove the environment variable to allow JAX to use GPU
        if "JAX_PLATFORM_NAME" in os.environ:
            del os.environ["JAX_PLATFORM_NAME"]


@pytest.fixture
def rng():
    """Seeded generator for reproducible draws."""
    return np.random.default_rng(42)


@pytest.fixture
def make_elpd_result():
    """Factory building a WAIC-kind ELPD result from pointwise ELPDs.

    ``lpd`` is set equal to ``elpd`` and ``p`` to zero, which is enough for
    weighting and comparison tests.
    """
    import xarray as xr

    from elpdkit.mc import ELPDEstimates, ELPDKind, ELPDResult

    def _make(elpd_pointwise):
        elpd = np.asarray(elpd_pointwise, dtype=float)
        dims = tuple(f"obs_dim_{i}" for i in range(elpd.ndim))
        pointwise = xr.Dataset(
            {
                "elpd": (dims, elpd),
                "lpd": (dims, elpd),
                "p": (dims, np.zeros_like(elpd)),
                "reff": (dims, np.ones_like(elpd)),
            }
        )
        return ELPDResult(
            kind=ELPDKind.WAIC,
            estimates=ELPDEstimates.from_pointwise(pointwise),
            pointwise=pointwise,
        )

    return _make
