"""
Volume-preserving mutations of a voxel heat sink design.

Every operator flips metal cells to air and the same number of air cells to
metal, so the metal volume never changes. Candidates must sit on a metal/air
interface; anything else is rejected and resampled.

Each strategy also keeps the design in a fixed form (extruded, mirrored).
A design must be brought into that form with `DesignMutator.conform` before
the first mutation, otherwise the form-restoring steps would change the volume.
"""

import numpy as np
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Sequence, Tuple

from ..geometry.voxel_grid import FACE_OFFSETS, VoxelGrid
from ..geometry.connectivity import ConnectivityValidator
from ..exceptions import ConfigurationError


Cell = Tuple[int, ...]

# In-plane neighbours of a 2D cross-section
_PLANE_OFFSETS = ((1, 0), (-1, 0), (0, 1), (0, -1))


class MutationStrategy(Enum):
    """Available mutation operators."""
    FORGED = "forged"           # edit the top cross-section, extrude down, no connectivity check
    CHECKED_3D = "checked_3d"   # swap any two surface cells, reject disconnected results
    EXTRUDED = "extruded"       # edit the x = air_padding cross-section, extrude along x, checked


@dataclass
class MutationConfig:
    """Configuration for design mutations."""
    strategy: str = "forged"
    enforce_symmetry: bool = True

    def __post_init__(self):
        try:
            MutationStrategy(self.strategy)
        except ValueError:
            valid = [s.value for s in MutationStrategy]
            raise ConfigurationError(
                f"Unknown mutation strategy: {self.strategy}. Must be one of {valid}"
            ) from None

    @property
    def mutation_strategy(self) -> MutationStrategy:
        return MutationStrategy(self.strategy)


def interface_mask(states: np.ndarray, offsets: Sequence[Tuple[int, ...]]) -> np.ndarray:
    """
    Cells whose state differs from at least one neighbour along `offsets`.

    Neighbours outside the array are ignored.

    Args:
        states: Boolean array (2D or 3D)
        offsets: Neighbour offsets with one entry per array axis

    Returns:
        Boolean array with the shape of `states`
    """
    padded = np.pad(states, 1, mode="edge")
    differs = np.zeros_like(states)

    for offset in offsets:
        sl = tuple(
            slice(1 + d, size + 1 + d) for d, size in zip(offset, states.shape)
        )
        differs |= padded[sl] != states

    return differs


def wedge_cells(cells_wide: int, air_padding: int) -> Tuple[np.ndarray, np.ndarray]:
    """
    (x, z) cells of the canonical symmetry wedge: air_padding <= z < x < N/2.

    The wedge's 8 images under reflection across x = N/2, z = N/2 and the
    diagonal z = x are pairwise distinct.
    """
    xs, zs = [], []
    for x in range(air_padding, cells_wide // 2):
        for z in range(air_padding, x):
            xs.append(x)
            zs.append(z)
    return np.array(xs, dtype=np.intp), np.array(zs, dtype=np.intp)


def apply_symmetry(
    grid: VoxelGrid,
    y_start: int,
    y_stop: int,
    enabled: Optional[np.ndarray] = None,
) -> None:
    """
    Copy the wedge onto its 7 images for the layers y_start <= y < y_stop.

    Cells on the diagonals are never part of the wedge and are left as they are.
    Works on `enabled` instead of the grid's own array when given.
    """
    n = grid.cells_wide
    xs, zs = wedge_cells(n, grid.air_padding)
    if xs.size == 0:
        return

    ys = slice(y_start, y_stop)
    enabled = grid.enabled if enabled is None else enabled
    values = enabled[xs, ys, zs]

    mx, mz = n - 1 - xs, n - 1 - zs
    for ix, iz in ((mx, zs), (xs, mz), (mx, mz), (zs, xs), (zs, mx), (mz, xs), (mz, mx)):
        enabled[ix, ys, iz] = values


def apply_top_layer_symmetry(grid: VoxelGrid, enabled: Optional[np.ndarray] = None) -> None:
    apply_symmetry(grid, grid.top_layer, grid.top_layer + 1, enabled)


def extrude_design_in_y(
    grid: VoxelGrid,
    bottom_margin: int,
    enabled: Optional[np.ndarray] = None,
) -> None:
    """
    Give the design a uniform vertical cross-section above the base.

    Every interior layer from `bottom_margin` up to (excluding) the top layer
    is overwritten with the top layer. The layers below `bottom_margin` are
    left for the base.
    """
    n, pad = grid.cells_wide, grid.air_padding
    top = grid.top_layer
    enabled = grid.enabled if enabled is None else enabled

    enabled[pad:n - pad, bottom_margin:top, pad:n - pad] = \
        enabled[pad:n - pad, top:top + 1, pad:n - pad]


def extrude_design_in_x(
    grid: VoxelGrid,
    source_x: Optional[int] = None,
    enabled: Optional[np.ndarray] = None,
) -> None:
    """
    Give the design a uniform cross-section along x.

    Every interior x-slice is overwritten with the slice at `source_x`
    (the first interior slice, x = air_padding, by default).
    """
    n, pad = grid.cells_wide, grid.air_padding
    x = pad if source_x is None else source_x
    enabled = grid.enabled if enabled is None else enabled

    section = enabled[x:x + 1, 0:n - pad, pad:n - pad].copy()
    enabled[pad:n - pad, 0:n - pad, pad:n - pad] = section


def mirror_design_in_z(grid: VoxelGrid, enabled: Optional[np.ndarray] = None) -> None:
    """Copy the z < N/2 half of the interior onto its mirror image across z = N/2."""
    n, pad = grid.cells_wide, grid.air_padding
    enabled = grid.enabled if enabled is None else enabled

    enabled[pad:n - pad, 0:n - pad, n // 2:n - pad] = \
        enabled[pad:n - pad, 0:n - pad, pad:n // 2][:, :, ::-1]


class DesignMutator:
    """
    Applies one atomic, volume-preserving edit per call.

    Strategies:
    - FORGED: two interface cells of the top cross-section are flipped in
      opposite directions, optionally mirrored 8x, then the cross-section is
      extruded down to the bottom margin. Models a single-draw forging
      process. Connectivity is not checked.
    - CHECKED_3D: two interface cells anywhere in the interior (outside the
      core of the heat source footprint) are flipped in opposite directions,
      optionally mirrored 8x through all layers. The candidate is rolled back
      and resampled when the metal would split into several components.
    - EXTRUDED: two interface cells of the x = air_padding cross-section are
      flipped in opposite directions, each together with its mirror across
      z = N/2 when symmetry is on, and the cross-section is extruded along x.
      Connectivity is checked after each toggle and a failing pair is rolled back.

    Randomness comes from an injected numpy Generator, so runs are
    reproducible for a given seed.
    """

    def __init__(
        self,
        config: Optional[MutationConfig] = None,
        rng: Optional[np.random.Generator] = None,
        validator: Optional[ConnectivityValidator] = None,
    ):
        """
        Initialize the mutator.

        Args:
            config: Mutation configuration
            rng: Random number generator for reproducibility
            validator: Connectivity validator used by the checked strategies
        """
        self.config = config or MutationConfig()
        self.rng = rng if rng is not None else np.random.default_rng()
        self.validator = validator or ConnectivityValidator()

    def mutate(self, grid: VoxelGrid) -> Tuple[Cell, Cell]:
        """
        Apply the configured strategy once. Returns the two flipped cells.

        Raises:
            ConfigurationError: If the design is not in the strategy's form
                (see `conform`) or has nothing left to mutate
        """
        strategy = self.config.mutation_strategy
        if not self.conforms(grid):
            raise ConfigurationError(
                f"Design is not in the form kept by the '{strategy.value}' strategy; "
                f"call conform() before mutating"
            )

        enforce_symmetry = self.config.enforce_symmetry
        if strategy is MutationStrategy.FORGED:
            return self.mutate_forged(grid, enforce_symmetry)
        if strategy is MutationStrategy.EXTRUDED:
            return self.mutate_extruded(grid, enforce_symmetry)
        return self.mutate_checked(grid, enforce_symmetry)

    # ------------------------------------------------------------------
    # Design form
    # ------------------------------------------------------------------

    def _apply_form(self, grid: VoxelGrid, enabled: np.ndarray) -> None:
        strategy = self.config.mutation_strategy
        enforce_symmetry = self.config.enforce_symmetry

        if strategy is MutationStrategy.FORGED:
            if enforce_symmetry:
                apply_top_layer_symmetry(grid, enabled)
            extrude_design_in_y(grid, grid.bottom_margin, enabled)
        elif strategy is MutationStrategy.CHECKED_3D:
            if enforce_symmetry:
                apply_symmetry(grid, 0, grid.cells_wide - grid.air_padding, enabled)
        else:
            extrude_design_in_x(grid, source_x=grid.cells_wide // 2, enabled=enabled)
            if enforce_symmetry:
                mirror_design_in_z(grid, enabled)

    def conforms(self, grid: VoxelGrid) -> bool:
        """True if the strategy's symmetry and extrusion steps leave the design unchanged."""
        trial = grid.snapshot_enabled()
        self._apply_form(grid, trial)
        return bool(np.array_equal(trial, grid.enabled))

    def conform(self, grid: VoxelGrid) -> bool:
        """
        Bring the design into the form the strategy keeps.

        FORGED mirrors the top layer (with symmetry) and extrudes it down,
        CHECKED_3D mirrors every layer (with symmetry), EXTRUDED copies the
        central x-slice along x and mirrors it across z = N/2 (with symmetry).
        This may change the metal volume; every later mutation keeps it.

        Returns:
            True if the design was changed
        """
        before = grid.snapshot_enabled()
        self._apply_form(grid, grid.enabled)

        changed = not np.array_equal(before, grid.enabled)
        if changed:
            grid.mark_design_changed()
            grid.recompute_boundary_flags()
        return changed

    def _require_connected(self, grid: VoxelGrid) -> None:
        # A disconnected start would make every candidate fail the check
        if not self.validator.is_connected(grid):
            raise ConfigurationError(
                "Design must be connected before a connectivity-checked mutation"
            )

    # ------------------------------------------------------------------
    # Sampling
    # ------------------------------------------------------------------

    def _sample_xz(self, grid: VoxelGrid, enforce_symmetry: bool) -> Tuple[int, int]:
        n, pad = grid.cells_wide, grid.air_padding
        if enforce_symmetry:
            x = int(self.rng.integers(pad + 1, n // 2))
            z = int(self.rng.integers(pad, x))
        else:
            x = int(self.rng.integers(pad, n - pad))
            z = int(self.rng.integers(pad, n - pad))
        return x, z

    def _xz_domain(self, grid: VoxelGrid, enforce_symmetry: bool) -> np.ndarray:
        """Cells `_sample_xz` can return, as an (N, N) mask over (x, z)."""
        n, pad = grid.cells_wide, grid.air_padding
        domain = np.zeros((n, n), dtype=bool)
        if enforce_symmetry:
            xs, zs = wedge_cells(n, pad)
            domain[xs, zs] = True
        else:
            domain[pad:n - pad, pad:n - pad] = True
        return domain

    def _rejection_sample(self, candidates: np.ndarray, sample: Callable[[], Cell]) -> Cell:
        """Draw from `sample` until a candidate cell comes up."""
        if not candidates.any():
            raise ConfigurationError(
                "Design has no metal/air interface cell that can be mutated"
            )
        while True:
            cell = sample()
            if candidates[cell]:
                return cell

    # ------------------------------------------------------------------
    # Forged evolution
    # ------------------------------------------------------------------

    def mutate_forged(self, grid: VoxelGrid, enforce_symmetry: bool = True) -> Tuple[Cell, Cell]:
        """
        Swap two cells of the top cross-section and extrude it downward.

        Both flips are made on a copy of the layer, which is written back
        only once a valid pair is found.

        Args:
            grid: Grid to edit in place
            enforce_symmetry: Sample only in the wedge and mirror it 8x

        Returns:
            The two flipped (x, y, z) cells of the top layer
        """
        y = grid.top_layer
        layer = grid.enabled[:, y, :]
        domain = self._xz_domain(grid, enforce_symmetry)

        def sample() -> Cell:
            return self._sample_xz(grid, enforce_symmetry)

        # Both states must be available, or the second pick could never succeed
        candidates = domain & interface_mask(layer, _PLANE_OFFSETS)
        if not (candidates & layer).any() or not (candidates & ~layer).any():
            raise ConfigurationError(
                "Top cross-section needs interface cells of both states to mutate"
            )

        # First cells whose flip leaves no second candidate are dropped from the pool
        pool = candidates.copy()
        while True:
            first = self._rejection_sample(pool, sample)
            trial = layer.copy()
            was_first_enabled = bool(trial[first])
            trial[first] = not was_first_enabled

            # The second cell must flip the other way to conserve volume
            second_candidates = domain & interface_mask(trial, _PLANE_OFFSETS)
            second_candidates &= trial if not was_first_enabled else ~trial
            if second_candidates.any():
                break
            pool[first] = False

        second = self._rejection_sample(second_candidates, sample)
        trial[second] = not trial[second]
        layer[...] = trial

        if enforce_symmetry:
            apply_top_layer_symmetry(grid)

        extrude_design_in_y(grid, grid.bottom_margin)
        grid.mark_design_changed()

        return (first[0], y, first[1]), (second[0], y, second[1])

    # ------------------------------------------------------------------
    # Checked 3D evolution
    # ------------------------------------------------------------------

    def mutate_checked(self, grid: VoxelGrid, enforce_symmetry: bool = False) -> Tuple[Cell, Cell]:
        """
        Swap two surface cells anywhere in the interior, keeping the metal connected.

        Each candidate pair is applied to the grid and validated; a pair that
        disconnects the metal is undone from a snapshot and a new pair drawn.

        Args:
            grid: Grid to edit in place
            enforce_symmetry: Sample only in the wedge and mirror it 8x on every layer

        Returns:
            The two flipped (x, y, z) cells
        """
        n, pad = grid.cells_wide, grid.air_padding
        enabled = grid.enabled
        self._require_connected(grid)

        domain = self._xz_domain(grid, enforce_symmetry)[:, None, :] & grid.interior_mask
        mutable = domain & ~grid.heat_source_core_mask()

        def sample() -> Cell:
            x, z = self._sample_xz(grid, enforce_symmetry)
            return x, int(self.rng.integers(0, n - pad)), z

        while True:
            candidates = mutable & interface_mask(enabled, FACE_OFFSETS)
            if not (candidates & enabled).any() or not (candidates & ~enabled).any():
                raise ConfigurationError(
                    "Design needs surface cells of both states to mutate"
                )

            first = self._rejection_sample(candidates, sample)
            opposite = ~enabled if enabled[first] else enabled
            second = self._rejection_sample(candidates & opposite, sample)

            snapshot = grid.snapshot_enabled()
            enabled[first] = not enabled[first]
            enabled[second] = not enabled[second]
            if enforce_symmetry:
                apply_symmetry(grid, 0, n - pad)

            if self.validator.is_connected(grid):
                grid.mark_design_changed()
                return first, second

            grid.restore_enabled(snapshot)

    # ------------------------------------------------------------------
    # Extruded evolution
    # ------------------------------------------------------------------

    def _toggle_section(self, grid: VoxelGrid, cell: Cell, enforce_symmetry: bool) -> None:
        """Flip (y, z) of the x = air_padding slice, and its z-mirror, then extrude along x."""
        y, z = cell
        section = grid.enabled[grid.air_padding]

        zs = {z, grid.cells_wide - 1 - z} if enforce_symmetry else {z}
        for mz in zs:
            section[y, mz] = not section[y, mz]

        extrude_design_in_x(grid)

    def mutate_extruded(self, grid: VoxelGrid, enforce_symmetry: bool = True) -> Tuple[Cell, Cell]:
        """
        Swap two cells of the x = air_padding cross-section and extrude it along x.

        The bottom layer is never edited. After each of the two toggles the
        metal must still be connected; otherwise the pair is undone from a
        snapshot and a new pair drawn.

        Args:
            grid: Grid to edit in place
            enforce_symmetry: Flip each cell together with its mirror across z = N/2

        Returns:
            The two flipped (x, y, z) cells of the edited slice
        """
        n, pad = grid.cells_wide, grid.air_padding
        section = grid.enabled[pad]
        self._require_connected(grid)

        # (y, z) cells of the slice that may be edited
        domain = np.zeros((n, n), dtype=bool)
        domain[1:n - pad, pad:n - pad] = True

        def sample() -> Cell:
            return int(self.rng.integers(1, n - pad)), int(self.rng.integers(pad, n - pad))

        while True:
            candidates = domain & interface_mask(section, _PLANE_OFFSETS)
            if not (candidates & section).any() or not (candidates & ~section).any():
                raise ConfigurationError(
                    "Extruded cross-section needs interface cells of both states to mutate"
                )

            first = self._rejection_sample(candidates, sample)
            opposite = ~section if section[first] else section
            second = self._rejection_sample(candidates & opposite, sample)

            snapshot = grid.snapshot_enabled()
            self._toggle_section(grid, first, enforce_symmetry)
            if self.validator.is_connected(grid):
                self._toggle_section(grid, second, enforce_symmetry)
                if self.validator.is_connected(grid):
                    grid.mark_design_changed()
                    return (pad, first[0], first[1]), (pad, second[0], second[1])

            grid.restore_enabled(snapshot)
