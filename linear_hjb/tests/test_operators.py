"""Tests for finite-difference operator assembly.

This module tests grid construction, boundary closures, and the structural
properties of the discrete first- and second-derivative operators.
"""

import numpy as np
import pytest
from scipy import sparse

from linear_hjb.exceptions import GridConstructionError
from linear_hjb.operators import (
    BoundaryCondition,
    BoundaryPair,
    UniformGrid,
    build_first_derivative,
    build_generator,
    build_second_derivative,
    coerce_boundary,
)


class TestUniformGrid:
    """Test UniformGrid construction and validation."""

    def test_from_bounds(self):
        """Test default unit-interval grid."""
        grid = UniformGrid.from_bounds(0.0, 1.0, 11)

        assert grid.size == 11
        assert grid.lower == 0.0
        assert grid.upper == 1.0
        assert grid.spacing == pytest.approx(0.1)
        assert np.allclose(np.diff(grid.points), 0.1)

    def test_grid_is_immutable(self, grid):
        """Test that grid points cannot be modified in place."""
        with pytest.raises(ValueError):
            grid.points[0] = 5.0
        with pytest.raises(AttributeError):
            grid.spacing = 1.0  # type: ignore[misc]

    def test_grid_validation(self):
        """Test invalid grids are rejected."""
        with pytest.raises(GridConstructionError, match="at least 2 grid points"):
            UniformGrid.from_bounds(0.0, 1.0, 1)

        with pytest.raises(GridConstructionError, match="x_min must be less than x_max"):
            UniformGrid.from_bounds(1.0, 0.0, 10)

        with pytest.raises(GridConstructionError, match="finite"):
            UniformGrid.from_bounds(0.0, np.inf, 10)

        with pytest.raises(GridConstructionError, match="uniformly spaced"):
            UniformGrid(np.array([0.0, 0.1, 0.5]))

        with pytest.raises(GridConstructionError, match="strictly increasing"):
            UniformGrid(np.array([1.0, 0.5, 0.0]))

    def test_construction_error_is_value_error(self):
        """Test that grid errors can be caught as ValueError."""
        with pytest.raises(ValueError):
            UniformGrid.from_bounds(0.0, 1.0, 0)

    @pytest.mark.parametrize("x_min,width", [(1e4, 1.0), (-5e6, 3.0), (123.456, 1e-2)])
    def test_offset_domain(self, x_min, width):
        """Test linspace grids far from the origin pass the uniformity check."""
        grid = UniformGrid.from_bounds(x_min, x_min + width, 1000)

        assert grid.size == 1000
        assert grid.spacing == pytest.approx(width / 999, rel=1e-5)

    def test_offset_domain_still_rejects_uneven_points(self):
        """Test the rounding allowance does not admit a visibly uneven grid."""
        with pytest.raises(GridConstructionError, match="uniformly spaced"):
            UniformGrid(np.array([1e4, 1e4 + 0.1, 1e4 + 0.25]))

    def test_two_point_grid(self):
        """Test the smallest admissible grid."""
        grid = UniformGrid.from_bounds(0.0, 1.0, 2)
        assert grid.size == 2
        assert grid.spacing == 1.0


class TestBoundaryCoercion:
    """Test boundary condition parsing."""

    def test_coerce_strings(self):
        """Test string values map to enum members."""
        assert coerce_boundary("reflecting") is BoundaryCondition.REFLECTING
        assert coerce_boundary("ABSORBING") is BoundaryCondition.ABSORBING
        assert coerce_boundary(BoundaryCondition.REFLECTING) is BoundaryCondition.REFLECTING

    def test_unknown_variant_rejected(self):
        """Test unrecognized boundary variants raise construction errors."""
        with pytest.raises(GridConstructionError, match="Unsupported boundary condition"):
            coerce_boundary("periodic")
        with pytest.raises(GridConstructionError, match="Unsupported boundary condition"):
            coerce_boundary(3)  # type: ignore[arg-type]

    def test_pair_coercion(self):
        """Test pairs from tuples and single conditions."""
        pair = BoundaryPair.coerce(("reflecting", "absorbing"))
        assert pair.lower is BoundaryCondition.REFLECTING
        assert pair.upper is BoundaryCondition.ABSORBING

        both = BoundaryPair.coerce("reflecting")
        assert both == BoundaryPair.reflecting()

        with pytest.raises(GridConstructionError):
            BoundaryPair.coerce(("reflecting", "absorbing", "reflecting"))

    def test_operator_rejects_unknown_variant(self, grid):
        """Test operator assembly surfaces unknown variants."""
        with pytest.raises(GridConstructionError):
            build_first_derivative(grid, ("reflecting", "dirichlet"))  # type: ignore[arg-type]
        with pytest.raises(GridConstructionError):
            build_second_derivative(grid, "neumann")  # type: ignore[arg-type]


class TestFirstDerivative:
    """Test the backward-difference first-derivative operator."""

    def test_shape_and_type(self, grid, reflecting):
        """Test operator is an M x M sparse matrix."""
        d1 = build_first_derivative(grid, reflecting)
        assert sparse.issparse(d1)
        assert d1.shape == (grid.size, grid.size)

    def test_interior_stencil(self, grid, reflecting):
        """Test interior rows are (v[i] - v[i-1]) / dx."""
        d1 = build_first_derivative(grid, reflecting).toarray()
        dx = grid.spacing

        for i in range(1, grid.size):
            expected = np.zeros(grid.size)
            expected[i - 1] = -1.0 / dx
            expected[i] = 1.0 / dx
            assert np.allclose(d1[i], expected)

    def test_reflecting_lower_row_is_zero_flux(self, grid, reflecting):
        """Test the ghost node v[-1] = v[0] zeroes the first row."""
        d1 = build_first_derivative(grid, reflecting).toarray()
        assert np.all(d1[0] == 0.0)

    def test_row_sums_vanish(self, grid, reflecting):
        """Test derivative of a constant is zero everywhere."""
        d1 = build_first_derivative(grid, reflecting)
        assert np.allclose(d1 @ np.ones(grid.size), 0.0)

    def test_exact_on_linear_functions(self, grid, reflecting):
        """Test the stencil differentiates x exactly away from the lower edge."""
        d1 = build_first_derivative(grid, reflecting)
        derivative = d1 @ grid.points
        assert np.allclose(derivative[1:], 1.0)
        assert derivative[0] == 0.0

    def test_absorbing_rows(self, grid):
        """Test absorbing boundaries zero both edge rows."""
        d1 = build_first_derivative(grid, BoundaryPair.coerce("absorbing")).toarray()
        assert np.all(d1[0] == 0.0)
        assert np.all(d1[-1] == 0.0)
        assert np.allclose(d1[1:-1].sum(axis=1), 0.0)


class TestSecondDerivative:
    """Test the central-difference second-derivative operator."""

    def test_shape(self, grid, reflecting):
        """Test operator is M x M."""
        d2 = build_second_derivative(grid, reflecting)
        assert d2.shape == (grid.size, grid.size)

    def test_interior_stencil_and_row_sums(self, grid, reflecting):
        """Test interior rows are [1, -2, 1] / dx^2 and sum to zero."""
        d2 = build_second_derivative(grid, reflecting).toarray()
        coeff = 1.0 / grid.spacing**2

        for i in range(1, grid.size - 1):
            assert d2[i, i - 1] == pytest.approx(coeff)
            assert d2[i, i] == pytest.approx(-2.0 * coeff)
            assert d2[i, i + 1] == pytest.approx(coeff)

        assert np.allclose(d2[1:-1].sum(axis=1), 0.0, atol=1e-9)

    def test_reflecting_boundary_rows(self, grid, reflecting):
        """Test boundary rows equal the one-sided flux towards the neighbour."""
        d2 = build_second_derivative(grid, reflecting).toarray()
        coeff = 1.0 / grid.spacing**2

        expected_first = np.zeros(grid.size)
        expected_first[0] = -coeff
        expected_first[1] = coeff
        expected_last = np.zeros(grid.size)
        expected_last[-2] = coeff
        expected_last[-1] = -coeff

        assert np.allclose(d2[0], expected_first)
        assert np.allclose(d2[-1], expected_last)
        # Zero net flux: every row, boundary rows included, sums to zero
        assert np.allclose(d2.sum(axis=1), 0.0, atol=1e-9)

    def test_reflecting_conserves_mass(self, grid, reflecting):
        """Test columns sum to zero, so the adjoint conserves total mass."""
        d2 = build_second_derivative(grid, reflecting).toarray()
        assert np.allclose(d2.sum(axis=0), 0.0, atol=1e-9)

    def test_exact_on_quadratics_in_interior(self, grid, reflecting):
        """Test the stencil is exact for x^2 at interior points."""
        d2 = build_second_derivative(grid, reflecting)
        result = d2 @ grid.points**2
        assert np.allclose(result[1:-1], 2.0)

    def test_absorbing_rows(self, grid):
        """Test absorbing boundaries zero the edge rows."""
        pair = BoundaryPair(BoundaryCondition.ABSORBING, BoundaryCondition.REFLECTING)
        d2 = build_second_derivative(grid, pair).toarray()
        assert np.all(d2[0] == 0.0)
        assert d2[-1, -1] == pytest.approx(-1.0 / grid.spacing**2)

    def test_two_point_grid(self, reflecting):
        """Test closures on a grid made only of boundary nodes."""
        grid = UniformGrid.from_bounds(0.0, 1.0, 2)
        d2 = build_second_derivative(grid, reflecting).toarray()
        assert np.allclose(d2, [[-1.0, 1.0], [1.0, -1.0]])


class TestGenerator:
    """Test assembly of L = mu*D1 + 0.5*sigma^2*D2."""

    def test_combination(self, grid, reflecting):
        """Test generator matches its definition."""
        mu, sigma = -0.1, 0.1
        generator = build_generator(grid, reflecting, mu, sigma).toarray()
        expected = (
            mu * build_first_derivative(grid, reflecting).toarray()
            + 0.5 * sigma**2 * build_second_derivative(grid, reflecting).toarray()
        )
        assert np.allclose(generator, expected)

    def test_generator_is_markov(self, grid, reflecting):
        """Test negative drift gives a proper generator: zero row sums, non-negative off-diagonals."""
        generator = build_generator(grid, reflecting, mu=-0.1, sigma=0.1).toarray()

        assert np.allclose(generator.sum(axis=1), 0.0, atol=1e-9)
        off_diagonal = generator - np.diag(np.diag(generator))
        assert np.all(off_diagonal >= 0.0)

    def test_deterministic(self, grid, reflecting):
        """Test repeated assembly gives identical matrices."""
        first = build_generator(grid, reflecting, -0.1, 0.1)
        second = build_generator(grid, reflecting, -0.1, 0.1)
        assert np.array_equal(first.toarray(), second.toarray())

    def test_degenerate_coefficients(self, grid, reflecting):
        """Test mu = sigma = 0 gives the zero operator."""
        generator = build_generator(grid, reflecting, 0.0, 0.0)
        assert generator.shape == (grid.size, grid.size)
        assert np.allclose(generator.toarray(), 0.0)
