"""
Unit tests for the thermal solver and its compute backends.
"""

import pytest
import numpy as np
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from src.exceptions import ConfigurationError, ConvergenceAnomaly
from src.geometry.voxel_grid import FACE_OFFSETS, GridConfig, VoxelGrid
from src.thermal.backends import (
    RATE_AIR,
    RATE_ALL,
    RATE_METAL,
    BufferKind,
    CPUBackend,
    build_face_gates,
    create_backend,
    rate_phase,
)
from src.thermal.solver import SolverConfig, ThermalSolver


FACE = {offset: i for i, offset in enumerate(FACE_OFFSETS)}


def step_n(solver: ThermalSolver, grid: VoxelGrid, iterations: int) -> None:
    for i in range(iterations):
        solver.step(grid, i)


class TestSolverConfig:
    """Test solver configuration validation."""

    def test_reference_defaults(self):
        """Default solver settings match the reference setup."""
        config = SolverConfig()

        assert config.conductivity == pytest.approx(1 / 6)
        assert config.air_iteration_skips == 30
        assert config.boundary_iteration_skips == 60
        assert config.first_run_threshold == 2e-7
        assert config.convergence_threshold == 4e-7

    @pytest.mark.parametrize("kwargs", [
        {"conductivity": 0.2},
        {"conductivity": 0.0},
        {"air_iteration_skips": 0},
        {"air_iteration_skips": 30, "boundary_iteration_skips": 45},
        {"num_threads": 0},
        {"backend": "opencl"},
    ])
    def test_invalid_config(self, kwargs):
        """Unstable or inconsistent settings are rejected."""
        with pytest.raises(ConfigurationError):
            SolverConfig(**kwargs)

    def test_unknown_backend(self):
        """Unknown backend names are rejected."""
        with pytest.raises(ConfigurationError):
            create_backend("opencl", 1 / 6)

    def test_empty_score_region(self):
        """A lattice with no score region cannot be run."""
        grid = VoxelGrid(GridConfig(cells_wide=10, air_padding=3))
        with ThermalSolver(SolverConfig(num_threads=1)) as solver:
            with pytest.raises(ConfigurationError):
                solver.run(grid, first_run=True)


class TestRates:
    """Test which update rates fire on each iteration."""

    def test_rates(self):
        """Air and boundary rates fire on multiples of their skips."""
        solver = ThermalSolver(SolverConfig(air_iteration_skips=2, boundary_iteration_skips=4,
                                            num_threads=1))
        try:
            assert solver.rates(0) == (True, True)
            assert solver.rates(1) == (False, False)
            assert solver.rates(2) == (True, False)
            assert solver.rates(4) == (True, True)
        finally:
            solver.close()

    def test_rate_phase(self):
        """Rate flags map to gate indices."""
        assert rate_phase(False, False) == RATE_METAL
        assert rate_phase(True, False) == RATE_AIR
        assert rate_phase(True, True) == RATE_ALL

    def test_buffer_dtypes(self):
        """Buffer kinds carry their dtypes."""
        assert BufferKind.HEAT.dtype == np.float64
        assert BufferKind.DELTA_HEAT.dtype == np.float64
        assert BufferKind.FACE_GATES.dtype == np.bool_


class TestFaceGates:
    """Test face classification by update rate."""

    def test_shape(self, grid):
        """Gates are indexed by rate, face and cell."""
        assert build_face_gates(grid).shape == (3, 6, 16, 16, 16)

    def test_rates_are_nested(self, grid):
        """Faces open at a slower rate stay open at faster ones."""
        gates = build_face_gates(grid)

        assert not (gates[RATE_METAL] & ~gates[RATE_AIR]).any()
        assert not (gates[RATE_AIR] & ~gates[RATE_ALL]).any()

    def test_metal_metal_face(self, grid):
        """Metal-metal faces conduct at every rate."""
        gates = build_face_gates(grid)
        face = FACE[(1, 0, 0)]

        assert gates[:, face, 8, 0, 8].all()

    def test_metal_air_face(self, grid):
        """Metal-air faces conduct only at the boundary rate."""
        gates = build_face_gates(grid)
        face = FACE[(0, 1, 0)]

        # Top of the column
        top = grid.top_layer
        assert not gates[RATE_METAL, face, 8, top, 8]
        assert not gates[RATE_AIR, face, 8, top, 8]
        assert gates[RATE_ALL, face, 8, top, 8]

        # Same face seen from the air side
        down = FACE[(0, -1, 0)]
        assert not gates[RATE_AIR, down, 8, top + 1, 8]
        assert gates[RATE_ALL, down, 8, top + 1, 8]

    def test_air_air_face(self, grid):
        """Air-air faces conduct at the air rate."""
        gates = build_face_gates(grid)
        face = FACE[(0, 1, 0)]

        assert not gates[RATE_METAL, face, 8, 14, 8]
        assert gates[RATE_AIR, face, 8, 14, 8]

    def test_ambient_faces(self, grid):
        """Faces to the outside lose heat except under the footprint."""
        gates = build_face_gates(grid)
        up, down, left = FACE[(0, 1, 0)], FACE[(0, -1, 0)], FACE[(-1, 0, 0)]

        # Top and sides lose heat at the air rate, even from metal
        assert gates[RATE_AIR, up, 8, 15, 8]
        assert gates[RATE_AIR, left, 0, 0, 8]
        # Under the footprint heat is injected instead
        assert not gates[:, down, 8, 0, 8].any()
        # Bottom outside the footprint is open to ambient
        assert not gates[RATE_METAL, down, 1, 0, 8]
        assert gates[RATE_AIR, down, 1, 0, 8]

    def test_symmetric_in_faces(self, grid):
        """A face conducts from both sides or from neither."""
        gates = build_face_gates(grid)
        plus, minus = FACE[(1, 0, 0)], FACE[(-1, 0, 0)]

        for rate in (RATE_METAL, RATE_AIR, RATE_ALL):
            np.testing.assert_array_equal(gates[rate, plus, :-1], gates[rate, minus, 1:])


class TestDiffusion:
    """Test single iterations of the diffusion step."""

    def test_source_injection(self, grid, solver):
        """The first iteration injects heat into the footprint only."""
        solver.step(grid, 0)

        source = grid.heat_source_mask()
        np.testing.assert_allclose(grid.heat[source], grid.heat_source_heat_per_cell)
        assert not grid.heat[~source].any()
        assert grid.state.total_iterations == 1

    def test_uniform_heat_losses(self, grid, solver):
        """Uniform heat only changes at open faces."""
        grid.state.heat = 1.0
        solver.step(grid, 0)

        k = 1 / 6
        # Three faces open to ambient
        assert grid.get_heat(0, 15, 0) == pytest.approx(1 - 3 * k)
        # Bottom face open to ambient outside the footprint
        assert grid.get_heat(1, 0, 8) == pytest.approx(1 - k)
        # Footprint: no loss, heat injected
        assert grid.get_heat(8, 0, 8) == pytest.approx(1 + grid.heat_source_heat_per_cell)
        # Interior cells are in equilibrium
        assert grid.get_heat(8, 5, 8) == pytest.approx(1.0)

    def test_metal_only_iteration(self, grid):
        """Off-rate iterations only exchange heat between metal cells."""
        config = SolverConfig(air_iteration_skips=2, boundary_iteration_skips=4, num_threads=2)
        with ThermalSolver(config) as solver:
            grid.state.heat = 1.0

            # Only metal-metal faces conduct, no ambient loss or injection
            solver.step(grid, 1)
            assert grid.heat.sum() == pytest.approx(16 ** 3)
            assert grid.get_heat(0, 15, 0) == pytest.approx(1.0)

            solver.step(grid, 2)
            assert grid.get_heat(0, 15, 0) == pytest.approx(0.5)

    def test_boundary_faces_isolate_metal(self, grid):
        """Air-rate iterations keep heat inside the metal."""
        config = SolverConfig(air_iteration_skips=1, boundary_iteration_skips=2, num_threads=1)
        with ThermalSolver(config) as solver:
            metal = grid.enabled.copy()
            grid.state.heat = np.where(metal, 1.0, 0.0)

            # Air-rate iteration: metal-air faces closed, so no heat reaches the air
            heat_in_metal = grid.heat[metal].sum()
            solver.step(grid, 1)

            source = grid.heat_source_mask()
            assert not grid.heat[~metal].any()
            assert grid.heat[metal].sum() == pytest.approx(
                heat_in_metal + source.sum() * grid.heat_source_heat_per_cell
            )

    def test_delta_heat_recorded(self, grid, solver):
        """The diffuse pass records per-cell deltas."""
        grid.state.heat = 1.0
        solver.step(grid, 0)

        assert grid.delta_heat[0, 15, 0] == pytest.approx(-0.5)

    def test_thread_count_does_not_change_result(self, grid_config):
        """Results are bit-identical for any pool size."""
        results = []
        for threads in (1, 3, 7):
            grid = VoxelGrid.from_config(grid_config)
            config = SolverConfig(air_iteration_skips=1, boundary_iteration_skips=2,
                                  num_threads=threads)
            with ThermalSolver(config) as solver:
                step_n(solver, grid, 40)
            results.append(grid.heat.copy())

        np.testing.assert_array_equal(results[0], results[1])
        np.testing.assert_array_equal(results[0], results[2])

    def test_scores_monotone_from_cold_start(self, grid, solver):
        """The base score rises steadily from a cold start."""
        scores = []
        for i in range(200):
            solver.step(grid, i)
            if all(solver.rates(i)):
                scores.append(solver.score(grid))

        assert scores[0] > 0
        assert np.all(np.diff(scores) >= -1e-12 * scores[-1])

    def test_gates_rebuilt_on_design_change(self, grid):
        """Gates are cached until the design changes."""
        backend = CPUBackend(1 / 6, num_threads=1)
        try:
            backend.prepare(grid)
            gates = backend._gates

            backend.prepare(grid)
            assert backend._gates is gates

            grid.set_enabled(4, 12, 5, True)
            backend.prepare(grid)
            assert backend._gates is not gates
        finally:
            backend.close()


class TestRun:
    """Test runs to equilibrium."""

    def test_first_run_converges(self, grid, solver):
        """The first run converges and updates the state."""
        score = solver.run(grid, first_run=True)

        state = grid.state
        assert score > 0
        assert state.runs == 1
        assert state.last_score == score
        assert state.last_run_iterations > solver.minimum_iterations(grid)
        assert state.total_iterations == state.last_run_iterations
        assert state.score_history[-1] == score

    def test_warm_start(self, grid, solver):
        """A second run reconverges from the previous field."""
        first = solver.run(grid, first_run=True)
        first_iterations = grid.state.last_run_iterations

        second = solver.run(grid)

        assert second == pytest.approx(first, rel=1e-2)
        assert grid.state.last_run_iterations <= first_iterations
        assert grid.state.runs == 2

    def test_dead_heat_source(self, solver):
        """A zero heat source raises ConvergenceAnomaly."""
        grid = VoxelGrid.from_config(
            GridConfig(cells_wide=16, air_padding=3, heat_source_heat_per_cell=0.0)
        )
        with pytest.raises(ConvergenceAnomaly):
            solver.run(grid, first_run=True)


class TestTorchBackend:
    """Test the device backend against the thread pool."""

    def test_matches_cpu(self, grid_config):
        """Torch iterations match the thread pool."""
        pytest.importorskip("torch")

        results = {}
        for name in ("cpu", "torch"):
            grid = VoxelGrid.from_config(grid_config)
            config = SolverConfig(air_iteration_skips=2, boundary_iteration_skips=4,
                                  num_threads=2, backend=name, device="cpu")
            with ThermalSolver(config) as solver:
                step_n(solver, grid, 24)
            results[name] = grid.heat.copy()

        np.testing.assert_allclose(results["torch"], results["cpu"], rtol=1e-12, atol=1e-15)

    def test_run_matches_cpu(self, grid_config, fast_solver_config):
        """Torch runs converge to the same score."""
        pytest.importorskip("torch")

        scores = {}
        for name in ("cpu", "torch"):
            grid = VoxelGrid.from_config(grid_config)
            fast_solver_config.backend = name
            fast_solver_config.device = "cpu"
            with ThermalSolver(fast_solver_config) as solver:
                scores[name] = solver.run(grid, first_run=True)

        assert scores["torch"] == pytest.approx(scores["cpu"], rel=1e-9)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
