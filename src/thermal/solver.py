"""
Multi-rate explicit heat diffusion solver for voxel heat sinks.

Solves the steady state of a cellular-automaton heat equation on the voxel
lattice. Faces conduct at three rates:
- metal-metal faces every iteration
- air-air faces (and losses to the ambient layer) every `air_iteration_skips`
- metal-air faces every `boundary_iteration_skips`

Heat is injected under the base footprint on air-rate iterations and the
score is the mean base temperature over that footprint.
"""

import math
import time
from dataclasses import dataclass
from typing import Optional, Tuple

from loguru import logger

from .backends import BACKENDS, ComputeBackend, create_backend
from ..geometry.voxel_grid import VoxelGrid
from ..exceptions import ConfigurationError, ConvergenceAnomaly


@dataclass
class SolverConfig:
    """Configuration for the thermal solver."""
    # Rates
    conductivity: float = 1.0 / 6.0       # Max stable value for a 6-neighbour stencil
    air_iteration_skips: int = 30         # Effective air conductivity = conductivity / this
    boundary_iteration_skips: int = 60    # Must be a multiple of air_iteration_skips

    # Convergence
    convergence_threshold: float = 4e-7   # Relative score change for warm-started runs
    first_run_threshold: float = 2e-7     # Relative score change for the first run
    minimum_iterations_per_cell: int = 10 # Minimum iterations = this * N
    anomaly_threshold: float = 1e-5       # First-run score below this is fatal

    # Execution
    num_threads: int = 6
    backend: str = "cpu"                  # "cpu" or "torch"
    device: Optional[str] = None          # Torch device (auto if None)

    # Output
    report_interval: float = 2.0          # Seconds between progress lines

    def __post_init__(self):
        if not 0.0 < self.conductivity <= 1.0 / 6.0:
            raise ConfigurationError(
                f"conductivity must be in (0, 1/6], got {self.conductivity}"
            )
        if self.air_iteration_skips < 1:
            raise ConfigurationError(
                f"air_iteration_skips must be at least 1, got {self.air_iteration_skips}"
            )
        if (self.boundary_iteration_skips < 1
                or self.boundary_iteration_skips % self.air_iteration_skips != 0):
            raise ConfigurationError(
                f"boundary_iteration_skips ({self.boundary_iteration_skips}) must be a "
                f"positive multiple of air_iteration_skips ({self.air_iteration_skips})"
            )
        if self.num_threads < 1:
            raise ConfigurationError(f"num_threads must be at least 1, got {self.num_threads}")
        if self.backend not in BACKENDS:
            raise ConfigurationError(
                f"Unknown backend: {self.backend}. Must be one of {list(BACKENDS)}"
            )


class ThermalSolver:
    """
    Steady-state thermal solver.

    Each iteration runs a diffuse pass (delta heat for every cell, computed
    from the current heat only) followed by a commit pass (heat += delta).
    The heat field is kept between runs, so a run after a small design
    change starts from the previous equilibrium.

    Usage:
        with ThermalSolver(SolverConfig()) as solver:
            score = solver.run(grid, first_run=True)
    """

    def __init__(
        self,
        config: Optional[SolverConfig] = None,
        backend: Optional[ComputeBackend] = None,
    ):
        """
        Initialize the solver.

        Args:
            config: Solver configuration
            backend: Compute backend (built from config if None)
        """
        self.config = config or SolverConfig()

        if backend is None:
            backend = create_backend(
                self.config.backend,
                self.config.conductivity,
                num_threads=self.config.num_threads,
                device=self.config.device,
            )
        self.backend = backend

    def __enter__(self) -> 'ThermalSolver':
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        self.backend.close()

    def rates(self, iteration: int) -> Tuple[bool, bool]:
        """Which of the (air, boundary) rates fire on an iteration."""
        return (
            iteration % self.config.air_iteration_skips == 0,
            iteration % self.config.boundary_iteration_skips == 0,
        )

    def minimum_iterations(self, grid: VoxelGrid) -> int:
        return self.config.minimum_iterations_per_cell * grid.cells_wide

    def validate_grid(self, grid: VoxelGrid) -> None:
        lo, hi = grid.score_bounds()
        if hi <= lo:
            raise ConfigurationError(
                f"Score region is empty for cells_wide={grid.cells_wide}, "
                f"air_padding={grid.air_padding}"
            )

    def step(self, grid: VoxelGrid, iteration: int) -> None:
        """
        Advance the heat field by one iteration.

        Deterministic for a given design, heat field and iteration index,
        and independent of how the lattice is split across workers.
        """
        compute_air, compute_boundary = self.rates(iteration)
        self.backend.prepare(grid)
        self.backend.step(compute_air, compute_boundary)
        self.backend.sync(grid)
        grid.state.total_iterations += 1

    def score(self, grid: VoxelGrid) -> float:
        """Mean heat of the bottom layer over the shrunk heat source footprint."""
        lo, hi = grid.score_bounds()
        return float(grid.heat[lo:hi, 0, lo:hi].mean())

    def run(self, grid: VoxelGrid, first_run: bool = False) -> float:
        """
        Iterate until the base score reaches equilibrium.

        The score is checked only on iterations where every rate fired.
        Converged once more than `minimum_iterations` have run and the
        relative change between consecutive scores is below the threshold.

        Args:
            grid: Grid to simulate (design must not change during the run)
            first_run: Use the first-run threshold and check for a dead heat source

        Returns:
            Converged base score (lower is better)

        Raises:
            ConvergenceAnomaly: If the first run's score collapses to ~0
        """
        config = self.config
        self.validate_grid(grid)

        state = grid.state
        state.score_history = []

        minimum_iterations = self.minimum_iterations(grid)
        max_error = config.first_run_threshold if first_run else config.convergence_threshold

        self.backend.prepare(grid)

        previous_score: Optional[float] = None
        iterations = 0
        iterations_since_report = 0
        last_report_time = time.perf_counter()

        while True:
            compute_air, compute_boundary = self.rates(iterations)
            self.backend.step(compute_air, compute_boundary)
            state.total_iterations += 1
            iterations_since_report += 1

            # Only score on iterations when everything has been updated
            if compute_air and compute_boundary:
                self.backend.sync(grid)
                score = self.score(grid)
                state.score_history.append(score)

                if first_run and score < config.anomaly_threshold:
                    raise ConvergenceAnomaly(
                        f"Base heat is too small: {score}. Check the heat source."
                    )

                if previous_score:
                    change = abs(score - previous_score) / previous_score
                else:
                    change = math.inf
                previous_score = score

                now = time.perf_counter()
                if now - last_report_time > config.report_interval:
                    logger.debug(
                        "IPS: {:.0f} Change: {:.3e}",
                        iterations_since_report / (now - last_report_time),
                        change,
                    )
                    last_report_time = now
                    iterations_since_report = 0

                if iterations > minimum_iterations and change < max_error:
                    if iterations < minimum_iterations * 1.2:
                        logger.warning(
                            "Convergence threshold may be too high "
                            "(converged after {} iterations)", iterations
                        )
                    state.runs += 1
                    state.last_run_iterations = iterations + 1
                    state.last_score = score
                    return score

            iterations += 1
