"""
Binary persistence of a heat sink design.

Layout: big-endian int32 N, big-endian int32 air padding, then the enabled
array bit-packed 8 cells per byte along z (see `VoxelGrid.pack_enabled`).
"""

import numpy as np
from pathlib import Path

from .voxel_grid import VoxelGrid
from ..exceptions import ConfigurationError


_HEADER_DTYPE = np.dtype(">i4")
_HEADER_BYTES = 2 * _HEADER_DTYPE.itemsize


def save_design(grid: VoxelGrid, save_path: Path) -> None:
    """
    Write the current design to disk.

    Args:
        grid: Grid whose design is saved
        save_path: Destination file
    """
    packed = grid.pack_enabled()

    save_path = Path(save_path)
    save_path.parent.mkdir(parents=True, exist_ok=True)

    header = np.array([grid.cells_wide, grid.air_padding], dtype=_HEADER_DTYPE)

    with open(save_path, 'wb') as f:
        f.write(header.tobytes())
        f.write(packed)


def load_design(grid: VoxelGrid, load_path: Path) -> None:
    """
    Replace the grid's design with one read from disk.

    Raises:
        FileNotFoundError: If the file does not exist
        ConfigurationError: If the stored lattice does not match the grid
    """
    load_path = Path(load_path)

    if not load_path.exists():
        raise FileNotFoundError(f"Design file not found: {load_path}")

    with open(load_path, 'rb') as f:
        data = f.read()

    if len(data) < _HEADER_BYTES:
        raise ConfigurationError(f"Design file too short: {load_path}")

    cells_wide, air_padding = np.frombuffer(data[:_HEADER_BYTES], dtype=_HEADER_DTYPE)

    if cells_wide != grid.cells_wide:
        raise ConfigurationError(
            f"Cells wide doesn't match: {grid.cells_wide}, {cells_wide}"
        )
    if air_padding != grid.air_padding:
        raise ConfigurationError(
            f"Air padding doesn't match: {grid.air_padding}, {air_padding}"
        )

    grid.unpack_enabled(data[_HEADER_BYTES:])
