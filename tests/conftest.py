"""
Test configuration for pytest.
"""

import pytest
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))


@pytest.fixture
def grid_config():
    """Small lattice: N=16 with a 3-cell air border."""
    from src.geometry.voxel_grid import GridConfig
    return GridConfig(cells_wide=16, air_padding=3)


@pytest.fixture
def grid(grid_config):
    """Small lattice holding the reference slab-and-column seed."""
    from src.geometry.voxel_grid import VoxelGrid
    return VoxelGrid.from_config(grid_config)


@pytest.fixture
def packable_grid():
    """Lattice whose side is divisible by 8."""
    from src.geometry.voxel_grid import GridConfig, VoxelGrid
    return VoxelGrid.from_config(GridConfig(cells_wide=8, air_padding=1))


@pytest.fixture
def fast_solver_config():
    """Solver settings that converge in well under a second on N=16."""
    from src.thermal.solver import SolverConfig
    return SolverConfig(
        air_iteration_skips=1,
        boundary_iteration_skips=2,
        convergence_threshold=2e-4,
        first_run_threshold=1e-4,
        num_threads=2,
        report_interval=60.0,
    )


@pytest.fixture
def solver(fast_solver_config):
    """CPU solver, shut down after the test."""
    from src.thermal.solver import ThermalSolver
    solver = ThermalSolver(fast_solver_config)
    yield solver
    solver.close()


@pytest.fixture
def rng():
    """Seeded random generator."""
    import numpy as np
    return np.random.default_rng(1234)
