"""Finite-difference operators on a uniform 1-D grid.

This module assembles the discrete first- and second-derivative operators
used by the backward HJB solver. Both operators are sparse tridiagonal
(or bidiagonal) matrices of shape ``(M, M)`` built with
:func:`scipy.sparse.diags`, with the boundary rows modified according to the
boundary condition on each side of the domain.

The first derivative uses a backward (upwind for negative drift) stencil:

    D1 v[i] = (v[i] - v[i-1]) / dx

The second derivative uses the central stencil:

    D2 v[i] = (v[i-1] - 2 v[i] + v[i+1]) / dx^2

A reflecting boundary is closed with a ghost node equal to its interior
neighbour (zero flux), which zeroes the first-derivative row at the lower
edge and folds the ghost coefficient into the diagonal of the second
derivative. An absorbing boundary stops the process at the edge: the
boundary rows of both operators vanish.
"""

from dataclasses import dataclass, field
from enum import Enum
import logging
from typing import NamedTuple, Union

import numpy as np
from scipy import sparse

from .exceptions import GridConstructionError

logger = logging.getLogger(__name__)


class BoundaryCondition(Enum):
    """Types of boundary conditions."""

    REFLECTING = "reflecting"  # Zero flux: ghost node equals its neighbour
    ABSORBING = "absorbing"  # Process stopped at the boundary


BoundaryLike = Union[BoundaryCondition, str]


class BoundaryPair(NamedTuple):
    """Boundary conditions at the lower and upper edge of the domain."""

    lower: BoundaryCondition
    upper: BoundaryCondition

    @classmethod
    def reflecting(cls) -> "BoundaryPair":
        """Reflecting boundaries on both sides."""
        return cls(BoundaryCondition.REFLECTING, BoundaryCondition.REFLECTING)

    @classmethod
    def coerce(cls, value: "BoundaryPair | tuple | BoundaryLike") -> "BoundaryPair":
        """Build a pair from a pair, a 2-tuple, or a single condition used on both sides.

        Raises:
            GridConstructionError: If either side is not a known boundary variant.
        """
        if isinstance(value, (BoundaryCondition, str)):
            side = coerce_boundary(value)
            return cls(side, side)
        if isinstance(value, tuple) and len(value) == 2:
            return cls(coerce_boundary(value[0]), coerce_boundary(value[1]))
        raise GridConstructionError(f"Cannot interpret {value!r} as a boundary pair")


def coerce_boundary(value: BoundaryLike) -> BoundaryCondition:
    """Convert an enum member or its string value to a :class:`BoundaryCondition`.

    Raises:
        GridConstructionError: For unknown strings and any other type.
    """
    if isinstance(value, BoundaryCondition):
        return value
    if isinstance(value, str):
        try:
            return BoundaryCondition(value.lower())
        except ValueError as exc:
            raise GridConstructionError(f"Unsupported boundary condition: {value!r}") from exc
    raise GridConstructionError(f"Unsupported boundary condition: {value!r}")


@dataclass(frozen=True, eq=False)
class UniformGrid:
    """Ordered, uniformly spaced grid points.

    The points array is made read-only so the grid stays immutable once
    created.
    """

    points: np.ndarray
    spacing: float = field(init=False)

    def __post_init__(self):
        """Validate the points and derive the spacing."""
        points = np.array(self.points, dtype=float)
        if points.ndim != 1:
            raise GridConstructionError("Grid points must be a 1-D array")
        if points.size < 2:
            raise GridConstructionError(f"Need at least 2 grid points, got {points.size}")
        if not np.all(np.isfinite(points)):
            raise GridConstructionError("Grid points must be finite")

        steps = np.diff(points)
        spacing = float(steps[0])
        if spacing <= 0:
            raise GridConstructionError("Grid points must be strictly increasing")
        # Rounding in the points grows with their magnitude, not with the spacing
        rounding = 64 * np.finfo(float).eps * max(abs(points[0]), abs(points[-1]))
        if not np.allclose(steps, spacing, rtol=1e-9, atol=rounding):
            raise GridConstructionError("Grid points must be uniformly spaced")

        points.flags.writeable = False
        object.__setattr__(self, "points", points)
        object.__setattr__(self, "spacing", spacing)

    @classmethod
    def from_bounds(cls, x_min: float = 0.0, x_max: float = 1.0, num_points: int = 20):
        """Generate ``num_points`` uniformly spaced points over ``[x_min, x_max]``.

        Args:
            x_min: Lower edge of the domain
            x_max: Upper edge of the domain
            num_points: Number of grid points, at least 2

        Returns:
            New grid

        Raises:
            GridConstructionError: If the bounds or the point count are invalid.
        """
        if not (np.isfinite(x_min) and np.isfinite(x_max)):
            raise GridConstructionError("Grid bounds must be finite")
        if x_min >= x_max:
            raise GridConstructionError(
                f"x_min must be less than x_max (got {x_min} >= {x_max})"
            )
        if int(num_points) != num_points or num_points < 2:
            raise GridConstructionError(f"Need at least 2 grid points, got {num_points}")
        return cls(np.linspace(x_min, x_max, int(num_points)))

    @property
    def size(self) -> int:
        """Number of grid points."""
        return int(self.points.size)

    @property
    def lower(self) -> float:
        """First grid point."""
        return float(self.points[0])

    @property
    def upper(self) -> float:
        """Last grid point."""
        return float(self.points[-1])


def build_first_derivative(grid: UniformGrid, boundary: BoundaryPair) -> sparse.csr_matrix:
    """Build the backward-difference first-derivative operator.

    Args:
        grid: Uniform grid
        boundary: Boundary conditions at both edges

    Returns:
        Sparse CSR matrix of shape (M, M)
    """
    boundary = BoundaryPair.coerce(boundary)
    n = grid.size
    dx = grid.spacing

    main = np.full(n, 1.0 / dx)
    sub = np.full(n - 1, -1.0 / dx)

    # Row 0 needs the ghost node v[-1]
    if boundary.lower == BoundaryCondition.REFLECTING:
        # v[-1] = v[0]  ->  (v[0] - v[-1]) / dx = 0
        main[0] = 0.0
    elif boundary.lower == BoundaryCondition.ABSORBING:
        main[0] = 0.0
    else:
        raise GridConstructionError(f"No first-derivative closure for {boundary.lower!r}")

    # The backward stencil never reaches past the upper edge; reflecting keeps it as is
    if boundary.upper == BoundaryCondition.ABSORBING:
        main[-1] = 0.0
        sub[-1] = 0.0
    elif boundary.upper != BoundaryCondition.REFLECTING:
        raise GridConstructionError(f"No first-derivative closure for {boundary.upper!r}")

    return sparse.diags([sub, main], offsets=[-1, 0], shape=(n, n), format="csr")


def build_second_derivative(grid: UniformGrid, boundary: BoundaryPair) -> sparse.csr_matrix:
    """Build the central-difference second-derivative operator.

    Args:
        grid: Uniform grid
        boundary: Boundary conditions at both edges

    Returns:
        Sparse CSR matrix of shape (M, M)
    """
    boundary = BoundaryPair.coerce(boundary)
    n = grid.size
    coeff = 1.0 / (grid.spacing * grid.spacing)

    diagonals = np.ones((3, n))
    diagonals[0] *= coeff  # Lower diagonal
    diagonals[1] *= -2.0 * coeff  # Main diagonal
    diagonals[2] *= coeff  # Upper diagonal

    # After slicing below, row i reads its lower entry from diagonals[0, i - 1]
    # and its upper entry from diagonals[2, i + 1].
    if boundary.lower == BoundaryCondition.REFLECTING:
        # Ghost-node reflection: v[-1] = v[0]
        diagonals[1, 0] += coeff
    elif boundary.lower == BoundaryCondition.ABSORBING:
        diagonals[1, 0] = 0.0
        diagonals[2, 1] = 0.0
    else:
        raise GridConstructionError(f"No second-derivative closure for {boundary.lower!r}")

    if boundary.upper == BoundaryCondition.REFLECTING:
        # Ghost-node reflection: v[M] = v[M-1]
        diagonals[1, -1] += coeff
    elif boundary.upper == BoundaryCondition.ABSORBING:
        diagonals[1, -1] = 0.0
        diagonals[0, -2] = 0.0
    else:
        raise GridConstructionError(f"No second-derivative closure for {boundary.upper!r}")

    return sparse.diags(
        [diagonals[0, :-1], diagonals[1], diagonals[2, 1:]],
        offsets=[-1, 0, 1],
        shape=(n, n),
        format="csr",
    )


def build_generator(
    grid: UniformGrid, boundary: BoundaryPair, mu: float, sigma: float
) -> sparse.csr_matrix:
    """Assemble the generator ``L = mu*D1 + 0.5*sigma^2*D2``.

    Args:
        grid: Uniform grid
        boundary: Boundary conditions at both edges
        mu: Drift coefficient
        sigma: Diffusion coefficient

    Returns:
        Sparse CSR matrix of shape (M, M)
    """
    d1 = build_first_derivative(grid, boundary)
    d2 = build_second_derivative(grid, boundary)
    generator = (mu * d1 + 0.5 * sigma**2 * d2).tocsr()
    logger.debug(f"Assembled {grid.size}x{grid.size} generator (mu={mu}, sigma={sigma})")
    return generator
