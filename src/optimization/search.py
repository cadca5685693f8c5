"""
Greedy search for low base-temperature heat sink designs.

Strict hill climbing: mutate, simulate to equilibrium, keep the design if
its score did not get worse, otherwise roll it back. The heat field is
never reset, so each simulation warm-starts from the previous equilibrium.
"""

import itertools
import time
import numpy as np
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from loguru import logger
from tqdm import tqdm

from .mutation import DesignMutator
from ..geometry.voxel_grid import VoxelGrid
from ..thermal.solver import ThermalSolver
from ..exceptions import ConfigurationError


@dataclass
class SearchConfig:
    """Configuration for the search loop."""
    second_mutation_probability: float = 0.4   # Chance of a second mutation per iteration
    third_mutation_probability: float = 0.1    # Independent chance of a third
    report_every: int = 20                     # Iterations between progress lines

    def __post_init__(self):
        for name in ("second_mutation_probability", "third_mutation_probability"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ConfigurationError(f"{name} must be in [0, 1], got {value}")
        if self.report_every < 1:
            raise ConfigurationError(f"report_every must be at least 1, got {self.report_every}")


@dataclass
class IterationRecord:
    """Outcome of one search iteration."""
    iteration: int
    score: float
    best_score: float
    accepted: bool
    mutations: int
    solver_iterations: int


@dataclass
class SearchResult:
    """Results of a search run."""
    initial_score: float
    best_score: float
    improvement_percent: float

    iterations: int
    accepted: int
    best_design: np.ndarray

    # History of the best score after each iteration
    score_history: List[float] = field(default_factory=list)

    search_time: float = 0.0

    def summary(self) -> str:
        lines = [
            "=" * 50,
            "SEARCH RESULTS",
            "=" * 50,
            "",
            f"  Base Score: {self.initial_score:.6g} → {self.best_score:.6g}",
            f"  Improvement: {self.improvement_percent:.2f}%",
            f"  Accepted: {self.accepted}/{self.iterations} mutations",
            f"  Metal Cells: {int(np.count_nonzero(self.best_design))}",
            "",
            f"Search Time: {self.search_time:.1f}s ({self.iterations} iterations)",
            "=" * 50,
        ]
        return "\n".join(lines)


class SearchController:
    """
    Anytime hill-climbing loop over heat sink designs.

    Each iteration applies one mutation, a second with probability 0.4 and a
    third with probability 0.1, re-solves the temperature field and accepts
    the result unless the base score rose.
    """

    def __init__(
        self,
        grid: VoxelGrid,
        solver: ThermalSolver,
        mutator: DesignMutator,
        config: Optional[SearchConfig] = None,
        rng: Optional[np.random.Generator] = None,
    ):
        """
        Initialize the search.

        Args:
            grid: Grid holding the seed design (edited in place)
            solver: Thermal solver used to score designs
            mutator: Design mutator
            config: Search configuration
            rng: Random number generator for the extra mutation draws
        """
        self.grid = grid
        self.solver = solver
        self.mutator = mutator
        self.config = config or SearchConfig()
        self.rng = rng if rng is not None else mutator.rng

        self.iteration = 0
        self.accepted = 0
        self.initial_score: Optional[float] = None
        self.previous_score: Optional[float] = None
        self.previous_design: Optional[np.ndarray] = None
        self.score_history: List[float] = []

        self._start_time: Optional[float] = None

    @property
    def initialized(self) -> bool:
        return self.previous_design is not None

    def initialize(self) -> float:
        """
        Bring the seed into the mutator's form, score it and remember it as the best so far.
        """
        volume = self.grid.count_enabled()
        if self.mutator.conform(self.grid):
            logger.warning(
                "Seed design reshaped for the '{}' strategy: {} -> {} metal cells",
                self.mutator.config.strategy, volume, self.grid.count_enabled(),
            )
        self.grid.recompute_boundary_flags()

        score = self.solver.run(self.grid, first_run=True)

        self.initial_score = score
        self.previous_score = score
        self.previous_design = self.grid.snapshot_enabled()
        self._start_time = time.perf_counter()

        logger.info("Initial score: {}", score)
        return score

    def iterate(self) -> IterationRecord:
        """Run one mutate / simulate / accept-or-reject cycle."""
        if not self.initialized:
            self.initialize()

        grid = self.grid

        mutations = 1
        self.mutator.mutate(grid)
        if self.rng.random() < self.config.second_mutation_probability:
            self.mutator.mutate(grid)
            mutations += 1
        if self.rng.random() < self.config.third_mutation_probability:
            self.mutator.mutate(grid)
            mutations += 1

        grid.recompute_boundary_flags()
        new_score = self.solver.run(grid)

        accepted = new_score <= self.previous_score
        if accepted:
            np.copyto(self.previous_design, grid.enabled)
            self.previous_score = new_score
            self.accepted += 1
            logger.debug("Iteration {}: better score {}", self.iteration + 1, new_score)
        else:
            grid.restore_enabled(self.previous_design)
            grid.recompute_boundary_flags()

        self.iteration += 1
        self.score_history.append(self.previous_score)

        if self.iteration % self.config.report_every == 0:
            self._report(new_score)

        return IterationRecord(
            iteration=self.iteration,
            score=new_score,
            best_score=self.previous_score,
            accepted=accepted,
            mutations=mutations,
            solver_iterations=grid.state.last_run_iterations,
        )

    def _report(self, score: float) -> None:
        elapsed = time.perf_counter() - self._start_time
        ips = self.iteration / elapsed if elapsed > 0 else 0.0
        logger.info(
            "Score: {}, Iteration: {}, IPS: {:.2f}", score, self.iteration, ips
        )
        logger.info(
            "Initial score: {}, Time: {} minutes", self.initial_score, int(elapsed // 60)
        )

    def run(
        self,
        max_iterations: Optional[int] = None,
        callback: Optional[Callable[[IterationRecord], None]] = None,
        show_progress: bool = False,
    ) -> SearchResult:
        """
        Search until `max_iterations` (forever if None) or Ctrl-C.

        Args:
            max_iterations: Number of iterations to run
            callback: Called with every IterationRecord
            show_progress: Whether to show progress bar

        Returns:
            SearchResult for everything run so far
        """
        if not self.initialized:
            self.initialize()

        iterator = range(max_iterations) if max_iterations is not None else itertools.count()
        if show_progress:
            iterator = tqdm(iterator, total=max_iterations, desc="Searching designs")

        try:
            for _ in iterator:
                record = self.iterate()
                if callback is not None:
                    callback(record)
                if show_progress:
                    iterator.set_postfix({'score': f"{self.previous_score:.6g}"})
        except KeyboardInterrupt:
            logger.info("Search interrupted after {} iterations", self.iteration)

        return self.result()

    def result(self) -> SearchResult:
        """Snapshot of the search so far."""
        if not self.initialized:
            raise RuntimeError("initialize() must be called before result()")

        improvement = (
            (self.initial_score - self.previous_score) / (self.initial_score + 1e-10) * 100
        )
        elapsed = time.perf_counter() - self._start_time

        return SearchResult(
            initial_score=self.initial_score,
            best_score=self.previous_score,
            improvement_percent=improvement,
            iterations=self.iteration,
            accepted=self.accepted,
            best_design=self.previous_design.copy(),
            score_history=list(self.score_history),
            search_time=elapsed,
        )
