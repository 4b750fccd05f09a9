"""Backward-time solver for a linear HJB equation with reflecting boundaries"""

from ._version import __version__

# Use lazy imports so importing the package does not pull in matplotlib

__all__ = [
    "__version__",
    "BackwardHJBSolver",
    "BackwardSolution",
    "BoundaryCondition",
    "BoundaryPair",
    "Config",
    "ModelParameters",
    "Payoff",
    "RunResult",
    "SolverConfig",
    "UniformGrid",
    "run",
]


def __getattr__(name):
    """Lazy import modules on first attribute access."""
    if name in ("BackwardHJBSolver", "BackwardSolution", "ModelParameters", "SolverConfig"):
        from . import hjb_solver

        return getattr(hjb_solver, name)
    elif name in ("BoundaryCondition", "BoundaryPair", "UniformGrid"):
        from . import operators

        return getattr(operators, name)
    elif name == "Config":
        from .config import Config

        return Config
    elif name == "Payoff":
        from .payoffs import Payoff

        return Payoff
    elif name in ("RunResult", "run"):
        from . import pipeline

        return getattr(pipeline, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
