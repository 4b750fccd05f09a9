"""Plotting of boundary value trajectories.

This module provides the house matplotlib style, the boundary trajectory
plot, and a figure export helper.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from matplotlib.figure import Figure
import matplotlib.pyplot as plt
import pandas as pd

logger = logging.getLogger(__name__)

# Color palette
PLOT_COLORS = {
    "blue": "#0080C7",  # Primary blue
    "dark_blue": "#003F5C",  # Dark blue
    "red": "#D32F2F",  # Red for the upper boundary
    "gray": "#666666",  # Gray for secondary
    "light_gray": "#E0E0E0",  # Light gray for grid
    "black": "#000000",  # Black for text
}

_SUPPORTED_FORMATS = ("png", "jpg", "jpeg", "svg", "pdf", "eps")


def set_plot_style():
    """Set matplotlib to the house style.

    Hides the top and right spines, lightens the grid and sets font sizes.
    """
    plt.style.use("seaborn-v0_8-whitegrid")

    plt.rcParams.update(
        {
            "font.family": "sans-serif",
            "font.sans-serif": ["Arial", "Helvetica", "DejaVu Sans"],
            "font.size": 11,
            "axes.titlesize": 14,
            "axes.labelsize": 12,
            "legend.fontsize": 10,
            "axes.spines.top": False,
            "axes.spines.right": False,
            "axes.edgecolor": PLOT_COLORS["gray"],
            "axes.linewidth": 0.8,
            "grid.color": PLOT_COLORS["light_gray"],
            "grid.linewidth": 0.5,
            "grid.alpha": 0.5,
            "lines.linewidth": 2,
        }
    )


def plot_boundary_trajectories(
    trajectories: pd.DataFrame,
    title: str = "Value at the domain boundaries",
    figsize: Tuple[int, int] = (8, 5),
    labels: Tuple[str, str] = ("v(0, t)", "v(1, t)"),
) -> Figure:
    """Plot the value at the first and last grid point against time.

    Args:
        trajectories: DataFrame with columns ``t``, ``v_lower``, ``v_upper``
            as returned by :func:`linear_hjb.reporting.sample_boundary_trajectories`
        title: Plot title
        figsize: Figure size (width, height)
        labels: Legend labels for the lower and upper boundary

    Returns:
        Matplotlib figure with one axis and two lines

    Examples:
        >>> frame = sample_boundary_trajectories(solution)
        >>> fig = plot_boundary_trajectories(frame)
    """
    missing = {"t", "v_lower", "v_upper"} - set(trajectories.columns)
    if missing:
        raise ValueError(f"Trajectory frame is missing columns: {sorted(missing)}")

    set_plot_style()

    fig, ax = plt.subplots(figsize=figsize)
    ax.plot(
        trajectories["t"], trajectories["v_lower"], color=PLOT_COLORS["blue"], label=labels[0]
    )
    ax.plot(
        trajectories["t"], trajectories["v_upper"], color=PLOT_COLORS["red"], label=labels[1]
    )
    ax.set_xlabel("t")
    ax.set_ylabel("v")
    ax.set_title(title)
    ax.legend(loc="best")
    ax.grid(True, alpha=0.3)

    fig.tight_layout()
    return fig


def save_figure(
    fig: Figure,
    filename: str,
    dpi: int = 300,
    bbox_inches: str = "tight",
    formats: Optional[List[str]] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> List[str]:
    """Save figure in one or more formats.

    Args:
        fig: Matplotlib Figure to save
        filename: Base filename (without extension)
        dpi: Resolution for raster formats
        bbox_inches: How to handle figure bounds
        formats: List of formats to save (default: ['png'])
        metadata: Optional metadata to embed in files

    Returns:
        List of saved file paths

    Raises:
        ValueError: If unsupported format is requested

    Examples:
        >>> save_figure(fig, "outputs/boundary_values", formats=["png", "pdf"])
        ['outputs/boundary_values.png', 'outputs/boundary_values.pdf']
    """
    if formats is None:
        formats = ["png"]

    unsupported = [fmt for fmt in formats if fmt not in _SUPPORTED_FORMATS]
    if unsupported:
        raise ValueError(f"Unsupported format for matplotlib: {', '.join(unsupported)}")

    base_path = Path(filename)
    base_path.parent.mkdir(parents=True, exist_ok=True)

    saved_files = []
    for fmt in formats:
        output_path = base_path.parent / f"{base_path.stem}.{fmt}"
        fig.savefig(output_path, dpi=dpi, bbox_inches=bbox_inches, metadata=metadata)
        saved_files.append(str(output_path))

    logger.info(f"Saved figure to {', '.join(saved_files)}")
    return saved_files
