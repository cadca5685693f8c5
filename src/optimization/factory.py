"""
Assemble a ready-to-run search from an ExperimentConfig.
"""

from typing import Optional

import numpy as np

from .mutation import DesignMutator
from .search import SearchController
from ..geometry.voxel_grid import VoxelGrid
from ..geometry.connectivity import ConnectivityValidator
from ..thermal.solver import ThermalSolver
from ..utils.config import ExperimentConfig


def create_search(
    config: ExperimentConfig,
    grid: Optional[VoxelGrid] = None,
) -> SearchController:
    """
    Build grid, solver, mutator and controller sharing one seeded generator.

    Args:
        config: Experiment configuration
        grid: Existing grid to search from (seed design built if None)

    Returns:
        SearchController, not yet initialized
    """
    rng = np.random.default_rng(config.seed)

    if grid is None:
        grid = VoxelGrid.from_config(config.grid_config())

    solver = ThermalSolver(config.solver_config())
    mutator = DesignMutator(
        config.mutation_config(),
        rng=rng,
        validator=ConnectivityValidator(),
    )

    return SearchController(
        grid,
        solver,
        mutator,
        config=config.search_config(),
        rng=rng,
    )
