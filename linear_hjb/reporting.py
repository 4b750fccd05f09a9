"""Sampling of a continuous backward solution for display and export."""

import logging
from typing import Sequence

import numpy as np
import pandas as pd

from .hjb_solver import BackwardSolution

logger = logging.getLogger(__name__)


def report_times(horizon: float, num_points: int = 100) -> np.ndarray:
    """Uniform report times over ``[0, T]``.

    Args:
        horizon: Terminal time ``T``
        num_points: Number of report times, at least 2

    Returns:
        Increasing array of times from 0 to ``T``
    """
    if horizon <= 0:
        raise ValueError("Time horizon must be positive")
    if num_points < 2:
        raise ValueError(f"Need at least 2 report times, got {num_points}")
    return np.linspace(0.0, horizon, num_points)


def sample_boundary_trajectories(solution: BackwardSolution, num_points: int = 100) -> pd.DataFrame:
    """Sample ``v(x_min, t)`` and ``v(x_max, t)`` on uniform report times.

    Args:
        solution: Continuous solution on ``[0, T]``
        num_points: Number of report times

    Returns:
        DataFrame with columns ``t``, ``v_lower``, ``v_upper``, ordered by time
    """
    times = report_times(solution.horizon, num_points)
    lower, upper = solution.at_boundaries(times)
    logger.debug(f"Sampled boundary trajectories at {num_points} times")
    return pd.DataFrame({"t": times, "v_lower": lower, "v_upper": upper})


def sample_value_surface(solution: BackwardSolution, times: Sequence[float]) -> pd.DataFrame:
    """Tabulate the full solution ``v(x, t)``.

    Args:
        solution: Continuous solution on ``[0, T]``
        times: Times to sample

    Returns:
        DataFrame indexed by ``t`` with one column per grid point
    """
    times = np.asarray(times, dtype=float)
    values = solution(times)
    frame = pd.DataFrame(
        values.T.reshape(times.size, solution.grid.size),
        index=pd.Index(times.ravel(), name="t"),
        columns=pd.Index(solution.grid.points, name="x"),
    )
    return frame
