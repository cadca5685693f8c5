"""
Visualization utilities for voxel heat sink designs.

Read-only views of a grid: cross-section heatmaps of the heat field or the
design, and the score history of a search.
"""

import numpy as np
import matplotlib.pyplot as plt
from pathlib import Path
from typing import Optional, Sequence, Tuple

from ..geometry.voxel_grid import VoxelGrid


_AXES = {"x": 0, "y": 1, "z": 2}
_FIELDS = ("heat", "enabled", "on_boundary")


def cross_section(
    grid: VoxelGrid,
    field: str = "heat",
    axis: str = "z",
    index: Optional[int] = None,
) -> np.ndarray:
    """
    Extract a 2D slice of a grid array.

    Args:
        grid: Voxel grid
        field: "heat", "enabled" or "on_boundary"
        axis: Axis normal to the slice ("x", "y" or "z")
        index: Slice position along `axis` (centre if None)

    Returns:
        Slice as a float array
    """
    if field not in _FIELDS:
        raise ValueError(f"Unknown field: {field}. Must be one of {list(_FIELDS)}")
    if axis not in _AXES:
        raise ValueError(f"Unknown axis: {axis}. Must be one of {list(_AXES)}")

    if index is None:
        index = grid.cells_wide // 2
    if not 0 <= index < grid.cells_wide:
        raise IndexError(f"Slice {index} outside lattice of size {grid.cells_wide}")

    data = getattr(grid, field)
    plane = np.take(data, index, axis=_AXES[axis]).astype(np.float64)

    # Rows are y for x and z slices, z for y slices
    if axis != "x":
        plane = plane.T
    return plane


def plot_cross_section(
    grid: VoxelGrid,
    field: str = "heat",
    axis: str = "z",
    index: Optional[int] = None,
    colormap: str = "hot",
    show_design: bool = True,
    title: Optional[str] = None,
    figsize: Tuple[int, int] = (7, 6),
    save_path: Optional[Path] = None,
    show: bool = True,
) -> plt.Figure:
    """
    Plot a cross-section of the heat field or the design.

    Args:
        grid: Voxel grid (not modified)
        field: "heat", "enabled" or "on_boundary"
        axis: Axis normal to the slice
        index: Slice position (centre if None)
        colormap: Matplotlib colormap
        show_design: Overlay the metal outline on heat plots
        title: Plot title
        figsize: Figure size
        save_path: Path to save figure
        show: Whether to display figure

    Returns:
        Matplotlib figure
    """
    if index is None:
        index = grid.cells_wide // 2
    plane = cross_section(grid, field, axis, index)

    fig, ax = plt.subplots(figsize=figsize)

    im = ax.imshow(plane, cmap=colormap, origin='lower', interpolation='nearest')
    plt.colorbar(im, ax=ax, label=field.replace('_', ' ').title())

    if show_design and field == "heat":
        metal = cross_section(grid, "enabled", axis, index)
        if metal.min() != metal.max():
            ax.contour(metal, levels=[0.5], colors='cyan', linewidths=1)

    horizontal = {"x": "z", "y": "x", "z": "x"}[axis]
    vertical = "z" if axis == "y" else "y"
    ax.set_xlabel(horizontal)
    ax.set_ylabel(vertical)
    ax.set_title(title or f"{field} at {axis} = {index}")

    plt.tight_layout()

    if save_path:
        save_path = Path(save_path)
        save_path.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(save_path, dpi=150, bbox_inches='tight')

    if show:
        plt.show()

    return fig


def plot_score_history(
    scores: Sequence[float],
    title: str = "Base Score",
    figsize: Tuple[int, int] = (8, 4),
    save_path: Optional[Path] = None,
    show: bool = True,
) -> plt.Figure:
    """
    Plot the best base score after each search iteration.

    Args:
        scores: Score per iteration
        title: Plot title
        figsize: Figure size
        save_path: Path to save figure
        show: Whether to display figure

    Returns:
        Matplotlib figure
    """
    fig, ax = plt.subplots(figsize=figsize)

    ax.plot(np.arange(1, len(scores) + 1), scores, linewidth=1.5)
    ax.set_xlabel('Iteration')
    ax.set_ylabel('Score (lower is better)')
    ax.set_title(title)
    ax.grid(True, alpha=0.3)

    plt.tight_layout()

    if save_path:
        save_path = Path(save_path)
        save_path.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(save_path, dpi=150, bbox_inches='tight')

    if show:
        plt.show()

    return fig
