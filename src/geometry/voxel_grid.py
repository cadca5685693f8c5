"""
Voxel lattice holding the heat sink design and its thermal state.

The lattice is a cube of side N stored as columnar numpy arrays indexed
[x, y, z]. Flattened in C order, cell (x, y, z) sits at (x*N + y)*N + z.
y is the vertical axis; the heat source sits on the bottom layer (y = 0).
"""

import math
import numpy as np
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from ..exceptions import ConfigurationError


# The 6 axis neighbours, in the order every stencil visits them
FACE_OFFSETS: Tuple[Tuple[int, int, int], ...] = (
    (1, 0, 0),
    (-1, 0, 0),
    (0, 1, 0),
    (0, -1, 0),
    (0, 0, 1),
    (0, 0, -1),
)


def neighbor_slice(
    cells_wide: int,
    offset: Tuple[int, int, int],
    start: int = 0,
    step: int = 1,
) -> Tuple[slice, slice, slice]:
    """
    Slice into a 1-cell padded (N+2)^3 array that lines up each cell
    with its neighbour along `offset`.

    Args:
        cells_wide: Lattice side length N
        offset: Neighbour direction (dx, dy, dz)
        start: First x-slice to include
        step: Stride between x-slices

    Returns:
        Tuple of slices selecting the neighbours of x = start, start+step, ...
    """
    dx, dy, dz = offset
    return (
        slice(1 + dx + start, cells_wide + 1 + dx, step),
        slice(1 + dy, cells_wide + 1 + dy),
        slice(1 + dz, cells_wide + 1 + dz),
    )


@dataclass
class GridConfig:
    """Configuration for the voxel lattice."""
    cells_wide: int = 80                              # Side length N (even)
    air_padding: Optional[int] = None                 # Forced air border (auto if None)
    heat_source_heat_per_cell: Optional[float] = None # Heat injected per cell (auto if None)
    seed_shape: str = "slab_and_column"               # Initial design

    def __post_init__(self):
        if self.air_padding is None:
            self.air_padding = int(self.cells_wide * 0.11 + 2)
        self.validate()

        if self.heat_source_heat_per_cell is None:
            # Keeps the heat flux density independent of N
            self.heat_source_heat_per_cell = (
                self.cells_wide * 0.02
                / (self.cells_wide - self.air_padding - 4) ** 1.5
            )

    def validate(self) -> None:
        n, pad = self.cells_wide, self.air_padding
        if n <= 0 or n % 2 != 0:
            raise ConfigurationError(f"cells_wide must be a positive even number, got {n}")
        if pad < 1:
            raise ConfigurationError(f"air_padding must be at least 1, got {pad}")
        if n - 2 * pad < 2:
            raise ConfigurationError(
                f"cells_wide={n} leaves no interior inside air_padding={pad}"
            )
        if self.heat_source_heat_per_cell is None and n - pad - 4 <= 0:
            raise ConfigurationError(
                f"cells_wide={n} is too small to derive the heat source rate "
                f"for air_padding={pad}"
            )

    @property
    def base_thickness(self) -> int:
        """Layers kept below the extruded section (about 5% of N)."""
        return int(self.cells_wide * 0.05 + 1)


@dataclass
class SimulationState:
    """
    Thermal state that persists across solver runs.

    Heat lives in a zero-padded (N+2)^3 buffer so the stencil can read the
    ambient layer outside the lattice without bounds checks. `heat` is a
    view of the interior of that buffer.
    """
    cells_wide: int
    total_iterations: int = 0
    runs: int = 0
    last_run_iterations: int = 0
    last_score: Optional[float] = None
    score_history: List[float] = field(default_factory=list)

    def __post_init__(self):
        n = self.cells_wide
        self.padded_heat = np.zeros((n + 2, n + 2, n + 2), dtype=np.float64)
        self.delta_heat = np.zeros((n, n, n), dtype=np.float64)

    @property
    def heat(self) -> np.ndarray:
        return self.padded_heat[1:-1, 1:-1, 1:-1]

    @heat.setter
    def heat(self, value: np.ndarray) -> None:
        self.padded_heat[1:-1, 1:-1, 1:-1] = value

    def reset(self) -> None:
        """Zero the heat field and counters."""
        self.padded_heat.fill(0.0)
        self.delta_heat.fill(0.0)
        self.total_iterations = 0
        self.runs = 0
        self.last_run_iterations = 0
        self.last_score = None
        self.score_history = []


class VoxelGrid:
    """
    Cubic lattice of metal/air cells plus the thermal state.

    Arrays:
        enabled: Metal (True) or air (False)
        on_boundary: Cached flag, enabled cells touching air or the lattice edge
        heat / delta_heat: Owned by `state`, exposed here for convenience

    Cells within `air_padding` of the x, z and top faces are always air.
    The bottom face (y = 0) is open so the base can sit on the heat source.
    """

    def __init__(self, config: GridConfig):
        self.config = config
        self.cells_wide = config.cells_wide
        self.air_padding = config.air_padding
        self.heat_source_heat_per_cell = float(config.heat_source_heat_per_cell)

        n = self.cells_wide
        self.enabled = np.zeros((n, n, n), dtype=bool)
        self.on_boundary = np.zeros((n, n, n), dtype=bool)
        self.state = SimulationState(cells_wide=n)
        self.design_version = 0

        self._interior = self._build_interior_mask()

    @classmethod
    def from_config(cls, config: GridConfig) -> 'VoxelGrid':
        """Create a grid initialised with the configured seed shape."""
        from .shapes import create_seed_design

        grid = cls(config)
        grid.set_design(create_seed_design(config.seed_shape, config))
        return grid

    # ------------------------------------------------------------------
    # Layout
    # ------------------------------------------------------------------

    @property
    def top_layer(self) -> int:
        """Highest y layer that may hold metal."""
        return self.cells_wide - self.air_padding - 1

    @property
    def bottom_margin(self) -> int:
        return self.config.base_thickness

    @property
    def seed_cell(self) -> Tuple[int, int, int]:
        """Cell at the bottom centre the metal must stay connected to."""
        return (self.cells_wide // 2, 0, self.cells_wide // 2)

    @property
    def interior_mask(self) -> np.ndarray:
        """Cells outside the forced air border (read-only view)."""
        view = self._interior.view()
        view.flags.writeable = False
        return view

    def _build_interior_mask(self) -> np.ndarray:
        n, pad = self.cells_wide, self.air_padding
        mask = np.zeros((n, n, n), dtype=bool)
        mask[pad:n - pad, 0:n - pad, pad:n - pad] = True
        return mask

    def heat_source_bounds(self) -> Tuple[int, int]:
        """Half-open [lo, hi) range in x and z of the heated footprint."""
        inset = self.air_padding * 1.3
        return int(inset), int(math.ceil(self.cells_wide - inset))

    def score_bounds(self) -> Tuple[int, int]:
        """Footprint shrunk by 2 cells per side, where the score is measured."""
        inset = self.air_padding * 1.3
        return int(inset) + 2, int(math.ceil(self.cells_wide - inset - 2))

    def heat_source_mask(self) -> np.ndarray:
        """Bottom-layer cells that receive heat instead of losing it."""
        lo, hi = self.heat_source_bounds()
        mask = np.zeros_like(self.enabled)
        mask[lo:hi, 0, lo:hi] = True
        return mask

    def heat_source_core_mask(self) -> np.ndarray:
        """
        Footprint cells strictly inside its edge, which mutations never touch.

        The outer ring of the footprint stays editable so the base can
        still change shape at the source boundary.
        """
        inset = self.air_padding * 1.3
        lo = int(math.floor(inset)) + 1
        hi = int(math.ceil(self.cells_wide - inset - 1))
        mask = np.zeros_like(self.enabled)
        mask[lo:hi, 0, lo:hi] = True
        return mask

    def index(self, x: int, y: int, z: int) -> int:
        """Flat index of (x, y, z)."""
        self._check_bounds(x, y, z)
        return (x * self.cells_wide + y) * self.cells_wide + z

    def in_bounds(self, x: int, y: int, z: int) -> bool:
        n = self.cells_wide
        return 0 <= x < n and 0 <= y < n and 0 <= z < n

    def is_interior(self, x: int, y: int, z: int) -> bool:
        return self.in_bounds(x, y, z) and bool(self._interior[x, y, z])

    def _check_bounds(self, x: int, y: int, z: int) -> None:
        if not self.in_bounds(x, y, z):
            raise IndexError(
                f"Cell ({x}, {y}, {z}) outside lattice of size {self.cells_wide}"
            )

    # ------------------------------------------------------------------
    # Cell access
    # ------------------------------------------------------------------

    @property
    def heat(self) -> np.ndarray:
        return self.state.heat

    @property
    def delta_heat(self) -> np.ndarray:
        return self.state.delta_heat

    def get_enabled(self, x: int, y: int, z: int) -> bool:
        self._check_bounds(x, y, z)
        return bool(self.enabled[x, y, z])

    def set_enabled(self, x: int, y: int, z: int, value: bool) -> None:
        self._check_bounds(x, y, z)
        self.enabled[x, y, z] = value
        self.mark_design_changed()

    def get_heat(self, x: int, y: int, z: int) -> float:
        self._check_bounds(x, y, z)
        return float(self.state.heat[x, y, z])

    def set_heat(self, x: int, y: int, z: int, value: float) -> None:
        self._check_bounds(x, y, z)
        self.state.heat[x, y, z] = value

    def count_enabled(self) -> int:
        return int(np.count_nonzero(self.enabled))

    def mark_design_changed(self) -> None:
        """Invalidate anything derived from `enabled` (solver stencils)."""
        self.design_version += 1

    # ------------------------------------------------------------------
    # Design versioning
    # ------------------------------------------------------------------

    def set_design(self, enabled: np.ndarray) -> None:
        """Replace the design, clearing the forced air border."""
        enabled = np.asarray(enabled, dtype=bool)
        if enabled.shape != self.enabled.shape:
            raise ValueError(
                f"Design shape {enabled.shape} does not match lattice {self.enabled.shape}"
            )
        self.enabled[...] = enabled & self._interior
        self.mark_design_changed()
        self.recompute_boundary_flags()

    def snapshot_enabled(self) -> np.ndarray:
        """Copy of the design for later rollback."""
        return self.enabled.copy()

    def restore_enabled(self, snapshot: np.ndarray) -> None:
        if snapshot.shape != self.enabled.shape:
            raise ValueError(
                f"Snapshot shape {snapshot.shape} does not match lattice {self.enabled.shape}"
            )
        np.copyto(self.enabled, snapshot)
        self.mark_design_changed()

    def recompute_boundary_flags(self) -> None:
        """
        Flag enabled cells with at least one air or out-of-lattice neighbour.

        O(N^3); run after every design change.
        """
        n = self.cells_wide
        padded = np.pad(self.enabled, 1, mode="constant", constant_values=False)

        covered = np.ones_like(self.enabled)
        for offset in FACE_OFFSETS:
            covered &= padded[neighbor_slice(n, offset)]

        np.logical_and(self.enabled, ~covered, out=self.on_boundary)

    # ------------------------------------------------------------------
    # Raw bit access for persistence
    # ------------------------------------------------------------------

    def pack_enabled(self) -> bytes:
        """
        Bit-pack the design, 8 consecutive z cells per byte, bit i = cell z+i.

        Raises:
            ConfigurationError: If N is not divisible by 8
        """
        if self.cells_wide % 8 != 0:
            raise ConfigurationError(
                f"cells_wide must be divisible by 8 to pack, got {self.cells_wide}"
            )
        return np.packbits(self.enabled.ravel(), bitorder="little").tobytes()

    def unpack_enabled(self, data: bytes) -> None:
        """Inverse of `pack_enabled`."""
        if self.cells_wide % 8 != 0:
            raise ConfigurationError(
                f"cells_wide must be divisible by 8 to unpack, got {self.cells_wide}"
            )
        expected = self.enabled.size // 8
        if len(data) != expected:
            raise ValueError(f"Expected {expected} bytes of design data, got {len(data)}")

        bits = np.unpackbits(np.frombuffer(data, dtype=np.uint8), bitorder="little")
        self.enabled[...] = bits.reshape(self.enabled.shape).astype(bool)
        self.mark_design_changed()
        self.recompute_boundary_flags()
