"""Pytest configuration and shared fixtures."""

from pathlib import Path

import pytest

from linear_hjb.hjb_solver import ModelParameters, SolverConfig
from linear_hjb.operators import BoundaryPair, UniformGrid
from linear_hjb.payoffs import LinearDecayPayoff


@pytest.fixture
def package_root():
    """Return the package directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def baseline_yaml(package_root):
    """Return the bundled baseline configuration file."""
    return package_root / "data" / "baseline.yaml"


@pytest.fixture
def grid():
    """Twenty uniformly spaced points on [0, 1]."""
    return UniformGrid.from_bounds(0.0, 1.0, 20)


@pytest.fixture
def reflecting():
    """Reflecting boundaries on both sides."""
    return BoundaryPair.reflecting()


@pytest.fixture
def baseline_params(grid, reflecting):
    """Parameters of the reference run."""
    return ModelParameters(mu=-0.1, sigma=0.1, rho=0.05, grid=grid, boundary=reflecting)


@pytest.fixture
def baseline_payoff():
    """r(x, t) = x * exp(-t)."""
    return LinearDecayPayoff(level=1.0, decay=1.0)


@pytest.fixture
def tight_config():
    """Integrator settings tight enough for closed-form comparisons."""
    return SolverConfig(rtol=1e-10, atol=1e-12)
