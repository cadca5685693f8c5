"""
Compute backends for the multi-rate diffusion step.

A backend owns one diffuse + commit pair per iteration. The face gates that
decide which neighbour faces conduct at each rate are built once per design
on the host and reused until the design changes.
"""

import numpy as np
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import Optional

from ..geometry.voxel_grid import FACE_OFFSETS, VoxelGrid, neighbor_slice
from ..exceptions import ConfigurationError


# Gate sets, indexed by which update rates fire on an iteration
RATE_METAL = 0      # metal-metal faces only
RATE_AIR = 1        # + air-air faces and ambient loss
RATE_ALL = 2        # + metal-air faces

BACKENDS = ("cpu", "torch")


class BufferKind(Enum):
    """Buffers handed to a compute device, tagged with their element type."""
    HEAT = "heat"
    DELTA_HEAT = "delta_heat"
    FACE_GATES = "face_gates"
    SOURCE_MASK = "source_mask"

    @property
    def dtype(self) -> np.dtype:
        return _BUFFER_DTYPES[self]


_BUFFER_DTYPES = {
    BufferKind.HEAT: np.dtype(np.float64),
    BufferKind.DELTA_HEAT: np.dtype(np.float64),
    BufferKind.FACE_GATES: np.dtype(np.bool_),
    BufferKind.SOURCE_MASK: np.dtype(np.float64),
}


def rate_phase(compute_air: bool, compute_boundary: bool) -> int:
    """Select the gate set for an iteration."""
    if compute_air and compute_boundary:
        return RATE_ALL
    if compute_air:
        return RATE_AIR
    return RATE_METAL


def build_face_gates(grid: VoxelGrid) -> np.ndarray:
    """
    Classify every cell face for each update rate.

    Out-of-lattice neighbours count as ambient air at heat 0 and conduct at
    the air rate, except below the heat source footprint where heat is
    injected instead.

    Args:
        grid: Voxel grid whose design is classified

    Returns:
        Boolean array of shape (3, 6, N, N, N): [rate, face, x, y, z]
    """
    n = grid.cells_wide
    enabled = grid.enabled
    source = grid.heat_source_mask()

    padded_enabled = np.pad(enabled, 1, mode="constant", constant_values=False)
    padded_inside = np.pad(np.ones_like(enabled), 1, mode="constant", constant_values=False)

    gates = np.zeros((3, len(FACE_OFFSETS)) + enabled.shape, dtype=bool)

    for face, offset in enumerate(FACE_OFFSETS):
        sl = neighbor_slice(n, offset)
        neighbor_enabled = padded_enabled[sl]
        neighbor_inside = padded_inside[sl]

        same = neighbor_inside & (enabled == neighbor_enabled)
        metal = same & enabled
        air = (same & ~enabled) | (~neighbor_inside & ~source)
        mixed = neighbor_inside & (enabled != neighbor_enabled)

        gates[RATE_METAL, face] = metal
        gates[RATE_AIR, face] = metal | air
        gates[RATE_ALL, face] = metal | air | mixed

    return gates


def diffuse_slices(
    padded_heat,
    gates,
    source_mask,
    out,
    conductivity: float,
    heat_per_cell: float,
    inject: bool,
    start: int = 0,
    step: int = 1,
) -> None:
    """
    Compute the heat change of the x-slices start, start+step, ...

    Works on numpy arrays and torch tensors alike; the operation order is
    the same for both so the two paths agree bit for bit on the same device
    precision. Reads `padded_heat` and writes only the selected slices of `out`.

    Args:
        padded_heat: Heat with a zero ambient layer, shape (N+2)^3
        gates: Gate set for this iteration, shape (6, N, N, N)
        source_mask: Heated footprint cells, shape (N, N, N)
        out: Delta heat, shape (N, N, N)
        conductivity: Fraction of a heat difference crossing a face per iteration
        heat_per_cell: Heat injected into each footprint cell
        inject: Whether the heat source fires this iteration
        start: First x-slice
        step: Stride between x-slices
    """
    n = out.shape[0]
    heat = padded_heat[1 + start:n + 1:step, 1:n + 1, 1:n + 1]

    delta = None
    for face, offset in enumerate(FACE_OFFSETS):
        neighbor = padded_heat[neighbor_slice(n, offset, start, step)]
        term = gates[face][start::step] * (conductivity * (neighbor - heat))
        delta = term if delta is None else delta + term

    if inject:
        delta = delta + source_mask[start::step] * heat_per_cell

    out[start::step] = delta


class ComputeBackend:
    """
    Interface for one diffuse + commit pair per iteration.

    `prepare` binds a grid (rebuilding gates when its design changed),
    `step` advances one iteration, `sync` makes the host heat array current.
    """

    name = "base"

    def __init__(self, conductivity: float):
        self.conductivity = conductivity
        self._grid: Optional[VoxelGrid] = None
        self._design_version: Optional[int] = None

    def _design_changed(self, grid: VoxelGrid) -> bool:
        return grid is not self._grid or grid.design_version != self._design_version

    def prepare(self, grid: VoxelGrid) -> None:
        raise NotImplementedError

    def step(self, compute_air: bool, compute_boundary: bool) -> None:
        raise NotImplementedError

    def sync(self, grid: VoxelGrid) -> None:
        pass

    def close(self) -> None:
        pass


class CPUBackend(ComputeBackend):
    """
    Thread-pool backend.

    Worker t computes delta heat for x = t, t+P, t+2P, ... reading the shared
    heat array and writing only its own slices, so no locking is needed.
    All workers are joined before the single-threaded commit.
    """

    name = "cpu"

    def __init__(self, conductivity: float, num_threads: int = 6):
        super().__init__(conductivity)
        if num_threads < 1:
            raise ConfigurationError(f"num_threads must be at least 1, got {num_threads}")
        self.num_threads = num_threads
        self._executor = ThreadPoolExecutor(
            max_workers=num_threads, thread_name_prefix="diffuse"
        )
        self._gates: Optional[np.ndarray] = None
        self._source: Optional[np.ndarray] = None

    def prepare(self, grid: VoxelGrid) -> None:
        if self._design_changed(grid):
            self._gates = build_face_gates(grid)
            self._source = grid.heat_source_mask()
            self._grid = grid
            self._design_version = grid.design_version

    def step(self, compute_air: bool, compute_boundary: bool) -> None:
        if self._grid is None:
            raise RuntimeError("prepare() must be called before step()")

        state = self._grid.state
        gates = self._gates[rate_phase(compute_air, compute_boundary)]

        futures = [
            self._executor.submit(
                diffuse_slices,
                state.padded_heat,
                gates,
                self._source,
                state.delta_heat,
                self.conductivity,
                self._grid.heat_source_heat_per_cell,
                compute_air,
                thread_num,
                self.num_threads,
            )
            for thread_num in range(self.num_threads)
        ]
        # Barrier: every slice must be done before the commit
        for future in futures:
            future.result()

        heat = state.heat
        np.add(heat, state.delta_heat, out=heat)

    def close(self) -> None:
        self._executor.shutdown(wait=True)


def create_backend(
    name: str,
    conductivity: float,
    num_threads: int = 6,
    device: Optional[str] = None,
) -> ComputeBackend:
    """
    Create a compute backend by name.

    Args:
        name: "cpu" (thread pool) or "torch" (device tensors)
        conductivity: Face conductivity
        num_threads: Worker count for the CPU backend
        device: Torch device string (auto if None)
    """
    if name == "cpu":
        return CPUBackend(conductivity, num_threads=num_threads)
    if name == "torch":
        from .device import TorchBackend
        return TorchBackend(conductivity, device=device)
    raise ConfigurationError(f"Unknown backend: {name}. Must be one of {list(BACKENDS)}")
