"""End-to-end run: assemble, solve, integrate, sample, plot.

Executed once, sequentially. Any construction, linear-solve or integration
error propagates to the caller and aborts the run.
"""

from dataclasses import dataclass, field
import logging
from typing import List, Optional

from matplotlib.figure import Figure
import numpy as np
import pandas as pd

from .config import Config
from .hjb_solver import BackwardHJBSolver, BackwardSolution, ModelParameters
from .reporting import sample_boundary_trajectories
from .visualization import plot_boundary_trajectories, save_figure

logger = logging.getLogger(__name__)


@dataclass
class RunResult:
    """Everything produced by a single run."""

    params: ModelParameters
    terminal_value: np.ndarray
    solution: BackwardSolution
    trajectories: pd.DataFrame
    figure: Optional[Figure] = None
    saved_files: List[str] = field(default_factory=list)

    @property
    def initial_value(self) -> np.ndarray:
        """Value vector at ``t = 0``."""
        return self.solution(0.0)


def run(config: Optional[Config] = None) -> RunResult:
    """Run the backward HJB solve described by ``config``.

    Args:
        config: Run configuration; the bundled baseline when omitted

    Returns:
        RunResult with the solution, the boundary trajectories and, when
        ``config.output.save_plot`` is set, the figure and saved paths
    """
    if config is None:
        config = Config.default()
    config.validate_problem()

    params = config.to_parameters()
    payoff = config.build_payoff()
    logger.info(
        f"Assembled operators on {params.grid.size} points "
        f"with {params.boundary.lower.value}/{params.boundary.upper.value} boundaries"
    )

    solver = BackwardHJBSolver(
        params, payoff, config.model.horizon, config.solver.to_solver_config()
    )
    solution = solver.solve()
    assert solver.terminal_value is not None

    trajectories = sample_boundary_trajectories(solution, config.output.report_points)

    result = RunResult(
        params=params,
        terminal_value=solver.terminal_value,
        solution=solution,
        trajectories=trajectories,
    )

    if config.output.save_plot:
        result.figure = plot_boundary_trajectories(trajectories)
        result.saved_files = save_figure(
            result.figure,
            str(config.output.output_path / config.output.plot_filename),
            formats=list(config.output.formats),
        )

    logger.info(
        f"Run complete: v(0, 0) = {trajectories['v_lower'].iloc[0]:.6g}, "
        f"v(1, 0) = {trajectories['v_upper'].iloc[0]:.6g}"
    )
    return result
