"""Backward-time solver for a linear Hamilton-Jacobi-Bellman equation.

This module solves the control-free HJB equation

    rho * v = r(x, t) + L v + dv/dt,    x in [x_min, x_max],  t in [0, T]

where ``L = mu * d/dx + 0.5 * sigma^2 * d^2/dx^2`` is discretized on a uniform
grid by :mod:`linear_hjb.operators`. The solve runs in two stages:

1. Terminal condition. Assuming the time derivative vanishes at ``T``, the
   terminal value solves the linear system ``(rho*I - L) vT = r(x, T)``.
2. Backward integration. Starting from ``vT``, the method-of-lines system

       dv/dt = (rho*I - L) v - r(x, t)

   is integrated from ``t = T`` down to ``t = 0`` with
   :func:`scipy.integrate.solve_ivp` using adaptive step control and dense
   output, so the solution can be evaluated at any intermediate time.

The generator does not depend on time, so it is assembled once per
:class:`ModelParameters` and reused by every right-hand-side evaluation.
"""

from dataclasses import dataclass, field
import logging
from typing import Any, Dict, Optional, Tuple
import warnings

import numpy as np
from scipy import sparse
from scipy.integrate import solve_ivp
from scipy.sparse.linalg import LinearOperator, onenormest, splu

from ._warnings import NumericalConditioningWarning
from .exceptions import IntegrationError, SingularSystemError
from .operators import BoundaryPair, UniformGrid, build_generator
from .payoffs import Payoff

logger = logging.getLogger(__name__)

# Module-level named constants for numerical tolerances
_CONDITION_THRESHOLD = 1e12
_TIME_TOLERANCE = 1e-9

_EXPLICIT_METHODS = ("RK45", "RK23", "DOP853")
_IMPLICIT_METHODS = ("Radau", "BDF", "LSODA")


@dataclass
class SolverConfig:
    """Configuration for the backward integration."""

    method: str = "RK45"
    rtol: float = 1e-6
    atol: float = 1e-9
    max_step: float = np.inf
    condition_threshold: float = _CONDITION_THRESHOLD

    def __post_init__(self):
        """Validate solver configuration."""
        if self.method not in _EXPLICIT_METHODS + _IMPLICIT_METHODS:
            raise ValueError(
                f"Unknown integration method {self.method!r}; expected one of "
                f"{', '.join(_EXPLICIT_METHODS + _IMPLICIT_METHODS)}"
            )
        if self.rtol <= 0 or self.atol <= 0:
            raise ValueError("Tolerances must be positive")
        if self.max_step <= 0:
            raise ValueError("max_step must be positive")


@dataclass(frozen=True, eq=False)
class ModelParameters:
    """Immutable parameter record for the right-hand side.

    The generator ``L`` and the system matrix ``rho*I - L`` are derived once
    at construction time.
    """

    mu: float
    sigma: float
    rho: float
    grid: UniformGrid
    boundary: BoundaryPair = field(default_factory=BoundaryPair.reflecting)
    generator: sparse.csr_matrix = field(init=False, repr=False)
    system_matrix: sparse.csc_matrix = field(init=False, repr=False)

    def __post_init__(self):
        """Validate parameters and assemble the operators."""
        if not isinstance(self.grid, UniformGrid):
            raise TypeError(f"grid must be a UniformGrid, got {type(self.grid).__name__}")
        if not np.isfinite(self.mu):
            raise ValueError("Drift must be finite")
        if not np.isfinite(self.sigma) or self.sigma < 0:
            raise ValueError("Volatility must be finite and non-negative")
        if not np.isfinite(self.rho) or self.rho <= 0:
            raise ValueError("Discount rate must be positive")

        boundary = BoundaryPair.coerce(self.boundary)
        object.__setattr__(self, "boundary", boundary)

        generator = build_generator(self.grid, boundary, self.mu, self.sigma)
        identity = sparse.identity(self.grid.size, format="csr")
        object.__setattr__(self, "generator", generator)
        object.__setattr__(self, "system_matrix", (self.rho * identity - generator).tocsc())

    @classmethod
    def from_values(
        cls,
        mu: float,
        sigma: float,
        rho: float,
        num_points: int = 20,
        x_min: float = 0.0,
        x_max: float = 1.0,
        boundary: Any = None,
    ) -> "ModelParameters":
        """Build parameters on a fresh uniform grid.

        Args:
            mu: Drift coefficient
            sigma: Diffusion coefficient
            rho: Discount rate
            num_points: Number of grid points
            x_min: Lower edge of the domain
            x_max: Upper edge of the domain
            boundary: Boundary pair, 2-tuple, or single condition for both
                sides; reflecting on both sides when omitted

        Returns:
            Parameter record
        """
        grid = UniformGrid.from_bounds(x_min, x_max, num_points)
        if boundary is None:
            boundary = BoundaryPair.reflecting()
        return cls(mu=mu, sigma=sigma, rho=rho, grid=grid, boundary=BoundaryPair.coerce(boundary))


def _condition_number(matrix: sparse.spmatrix, factor: Any) -> float:
    """Estimate the 1-norm condition number from an existing LU factor.

    ``||A||_1`` is exact; ``||A^-1||_1`` comes from Higham's block estimator
    applied to solves with the factor, so the matrix is never densified.
    """
    n = matrix.shape[0]
    inverse = LinearOperator(
        (n, n),
        matvec=factor.solve,
        rmatvec=lambda x: factor.solve(x, trans="T"),
        dtype=float,
    )
    with np.errstate(all="ignore"):
        return float(sparse.linalg.norm(matrix, 1) * onenormest(inverse))


def _solve_linear_system(
    matrix: sparse.spmatrix, rhs: np.ndarray, condition_threshold: float = _CONDITION_THRESHOLD
) -> np.ndarray:
    """Solve ``matrix @ x = rhs`` with a sparse LU factorization.

    Args:
        matrix: Square system matrix
        rhs: Right-hand side
        condition_threshold: Condition number above which a
            :class:`NumericalConditioningWarning` is emitted

    Returns:
        Solution vector

    Raises:
        SingularSystemError: If the factorization fails or the solution is not finite.
    """
    try:
        factor = splu(sparse.csc_matrix(matrix))
    except RuntimeError as exc:
        # SuperLU reports exact singularity as RuntimeError
        raise SingularSystemError(f"Terminal system is singular: {exc}") from exc

    solution: np.ndarray = factor.solve(rhs)
    if not np.all(np.isfinite(solution)):
        raise SingularSystemError("Terminal system solve produced non-finite values")

    condition_number = _condition_number(matrix, factor)
    if not np.isfinite(condition_number) or condition_number > condition_threshold:
        message = (
            f"Terminal system is ill-conditioned (cond_1 = {condition_number:.3e}); "
            f"the terminal value may be inaccurate"
        )
        logger.warning(message)
        warnings.warn(message, NumericalConditioningWarning, stacklevel=3)

    return solution


def solve_terminal_value(
    params: ModelParameters,
    payoff: Payoff,
    horizon: float,
    condition_threshold: float = _CONDITION_THRESHOLD,
) -> np.ndarray:
    """Solve ``(rho*I - L) vT = r(x, T)`` for the terminal value function.

    Args:
        params: Model parameters
        payoff: Flow payoff
        horizon: Terminal time ``T``
        condition_threshold: Condition number above which a warning is emitted

    Returns:
        Terminal value vector of length M

    Raises:
        ValueError: If the payoff is not finite on the grid.
        SingularSystemError: If the system cannot be solved.
    """
    rhs = np.asarray(payoff.evaluate(params.grid.points, horizon), dtype=float)
    if rhs.shape != (params.grid.size,):
        raise ValueError(
            f"Payoff returned shape {rhs.shape}, expected ({params.grid.size},)"
        )
    if not np.all(np.isfinite(rhs)):
        raise ValueError(f"Payoff returned non-finite values at t={horizon}")

    terminal_value = _solve_linear_system(params.system_matrix, rhs, condition_threshold)
    logger.info(
        f"Solved terminal system at T={horizon}: "
        f"v in [{terminal_value.min():.6g}, {terminal_value.max():.6g}]"
    )
    return terminal_value


def hjb_rhs(t: float, v: np.ndarray, params: ModelParameters, payoff: Payoff) -> np.ndarray:
    """Time derivative ``dv/dt = (rho*I - L) v - r(x, t)``.

    Args:
        t: Current time
        v: Value vector at time ``t``
        params: Model parameters (carries the cached system matrix)
        payoff: Flow payoff

    Returns:
        Time derivative, same shape as ``v``
    """
    derivative: np.ndarray = params.system_matrix @ v - payoff.evaluate(params.grid.points, t)
    return derivative


class BackwardSolution:
    """Continuous solution ``v(x, t)`` on ``[0, T]`` from dense integrator output."""

    def __init__(self, result: Any, grid: UniformGrid, horizon: float):
        """Wrap an integration result.

        Args:
            result: Result returned by :func:`scipy.integrate.solve_ivp` with
                ``dense_output=True``
            grid: Grid the solution lives on
            horizon: Terminal time ``T``
        """
        self._result = result
        self.grid = grid
        self.horizon = float(horizon)

    @property
    def t_span(self) -> Tuple[float, float]:
        """Integration interval, in integration order (``T`` first)."""
        return (self.horizon, 0.0)

    @property
    def t(self) -> np.ndarray:
        """Time nodes visited by the integrator, decreasing from ``T`` to 0."""
        return np.asarray(self._result.t)

    @property
    def nfev(self) -> int:
        """Number of right-hand-side evaluations."""
        return int(self._result.nfev)

    @property
    def status(self) -> int:
        """Integrator status code."""
        return int(self._result.status)

    @property
    def message(self) -> str:
        """Integrator termination message."""
        return str(self._result.message)

    def __call__(self, t: Any) -> np.ndarray:
        """Evaluate the solution at one or more times.

        Args:
            t: Scalar time or array of times in ``[0, T]``

        Returns:
            Array of shape (M,) for a scalar time, (M, k) for k times

        Raises:
            ValueError: If any time lies outside ``[0, T]``.
        """
        times = np.asarray(t, dtype=float)
        tolerance = _TIME_TOLERANCE * max(1.0, self.horizon)
        if np.any(times < -tolerance) or np.any(times > self.horizon + tolerance):
            raise ValueError(f"Requested time outside the solved interval [0, {self.horizon}]")
        return np.asarray(self._result.sol(np.clip(times, 0.0, self.horizon)))

    def at_boundaries(self, t: Any) -> Tuple[np.ndarray, np.ndarray]:
        """Values at the first and last grid point.

        Args:
            t: Scalar time or array of times in ``[0, T]``

        Returns:
            Tuple ``(v(x_min, t), v(x_max, t))``
        """
        values = self(t)
        return values[0], values[-1]


def integrate_backward(
    params: ModelParameters,
    payoff: Payoff,
    v_terminal: np.ndarray,
    horizon: float,
    config: Optional[SolverConfig] = None,
) -> BackwardSolution:
    """Integrate ``dv/dt = (rho*I - L) v - r(x, t)`` from ``T`` down to 0.

    Args:
        params: Model parameters
        payoff: Flow payoff
        v_terminal: Value at ``t = T``, length M
        horizon: Terminal time ``T``
        config: Integrator settings

    Returns:
        Continuous solution on ``[0, T]``

    Raises:
        IntegrationError: If the integrator fails or produces non-finite values.
    """
    if config is None:
        config = SolverConfig()
    if horizon <= 0:
        raise ValueError("Time horizon must be positive")

    v_terminal = np.asarray(v_terminal, dtype=float)
    if v_terminal.shape != (params.grid.size,):
        raise ValueError(
            f"Terminal value has shape {v_terminal.shape}, expected ({params.grid.size},)"
        )

    options: Dict[str, Any] = {}
    if config.method in _IMPLICIT_METHODS:
        # Constant Jacobian of a linear system
        if config.method == "LSODA":
            # LSODA only takes a callable, which solve_ivp also hands the args
            dense_jacobian = params.system_matrix.toarray()
            options["jac"] = lambda t, v, *args: dense_jacobian
        else:
            options["jac"] = params.system_matrix

    logger.info(
        f"Integrating backward from t={horizon} to t=0 with {config.method} "
        f"(rtol={config.rtol}, atol={config.atol})"
    )
    result = solve_ivp(
        hjb_rhs,
        (float(horizon), 0.0),
        v_terminal,
        method=config.method,
        dense_output=True,
        rtol=config.rtol,
        atol=config.atol,
        max_step=config.max_step,
        args=(params, payoff),
        **options,
    )

    t_reached = float(result.t[-1]) if len(result.t) else float(horizon)
    if not result.success:
        raise IntegrationError(
            f"Backward integration failed at t={t_reached}: {result.message}",
            status=result.status,
            t_reached=t_reached,
        )
    if not np.all(np.isfinite(result.y)):
        n_nan = int(np.sum(np.isnan(result.y)))
        n_inf = int(np.sum(np.isinf(result.y)))
        raise IntegrationError(
            f"Backward integration produced {n_nan} NaN and {n_inf} Inf values. "
            f"Consider a stiff method (BDF, Radau) or a coarser grid.",
            status=result.status,
            t_reached=t_reached,
        )

    logger.info(f"Integration complete: {len(result.t)} steps, {result.nfev} RHS evaluations")
    return BackwardSolution(result, params.grid, horizon)


class BackwardHJBSolver:
    """Terminal solve followed by backward integration.

    Runs once, sequentially: assemble (done by :class:`ModelParameters`),
    solve the terminal system, integrate back to ``t = 0``.
    """

    def __init__(
        self,
        params: ModelParameters,
        payoff: Payoff,
        horizon: float,
        config: Optional[SolverConfig] = None,
    ):
        """Initialize the solver.

        Args:
            params: Model parameters
            payoff: Flow payoff
            horizon: Terminal time ``T``
            config: Integrator settings
        """
        if horizon <= 0:
            raise ValueError("Time horizon must be positive")

        self.params = params
        self.payoff = payoff
        self.horizon = float(horizon)
        self.config = config if config is not None else SolverConfig()

        self.terminal_value: np.ndarray | None = None
        self.solution: BackwardSolution | None = None

        logger.info(
            f"Initialized backward HJB solver on {params.grid.size} points "
            f"(mu={params.mu}, sigma={params.sigma}, rho={params.rho}, T={self.horizon})"
        )

    def solve(self) -> BackwardSolution:
        """Solve for the terminal value, then integrate back to ``t = 0``.

        Returns:
            Continuous solution on ``[0, T]``
        """
        self.terminal_value = solve_terminal_value(
            self.params, self.payoff, self.horizon, self.config.condition_threshold
        )
        self.solution = integrate_backward(
            self.params, self.payoff, self.terminal_value, self.horizon, self.config
        )
        return self.solution

    def compute_diagnostics(self) -> Dict[str, Any]:
        """Compute metrics for assessing solution quality.

        Returns:
            Dictionary of diagnostics

        Raises:
            RuntimeError: If called before :meth:`solve`.
        """
        if self.solution is None or self.terminal_value is None:
            raise RuntimeError("Must solve HJB equation before computing diagnostics")

        rhs = self.payoff.evaluate(self.params.grid.points, self.horizon)
        residual = self.params.system_matrix @ self.terminal_value - rhs
        initial_value = self.solution(0.0)

        return {
            "terminal_residual": float(np.max(np.abs(residual))),
            "nfev": self.solution.nfev,
            "n_steps": int(len(self.solution.t)),
            "status": self.solution.status,
            "message": self.solution.message,
            "has_nan_inf": not bool(np.all(np.isfinite(initial_value))),
            "value_range_t0": (float(np.min(initial_value)), float(np.max(initial_value))),
            "value_range_T": (
                float(np.min(self.terminal_value)),
                float(np.max(self.terminal_value)),
            ),
        }
