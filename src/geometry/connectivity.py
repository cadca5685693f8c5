"""
Connectivity check for the metal region of a design.

The metal must form a single 6-connected component that contains the
seed cell at the bottom centre of the lattice.
"""

import numpy as np
from scipy import ndimage

from .voxel_grid import VoxelGrid


# 6-connectivity (faces only)
_FACE_STRUCTURE = ndimage.generate_binary_structure(3, 1)


class ConnectivityValidator:
    """
    Flood-fill validator for the metal region.

    The fill starts at the seed cell and sweeps the whole interior box,
    marking enabled neighbours of marked cells, until a sweep adds nothing.
    Any enabled interior cell left unmarked means the design is disconnected.
    Each call is O(N^3) per sweep, so callers should run it once per
    candidate toggle rather than per rejected sample.
    """

    def reachable(self, grid: VoxelGrid) -> np.ndarray:
        """
        Mask of the enabled interior cells connected to the seed cell.

        Args:
            grid: Voxel grid to inspect

        Returns:
            Boolean array of shape (N, N, N)
        """
        metal = grid.enabled & grid.interior_mask

        visited = np.zeros_like(metal)
        x, y, z = grid.seed_cell
        if not metal[x, y, z]:
            return visited
        visited[x, y, z] = True

        # iterations=0 repeats the masked dilation until a sweep marks no new cell
        return ndimage.binary_dilation(
            visited,
            structure=_FACE_STRUCTURE,
            iterations=0,
            mask=metal,
        )

    def is_connected(self, grid: VoxelGrid) -> bool:
        """True if every enabled interior cell is reachable from the seed cell."""
        metal = grid.enabled & grid.interior_mask
        reached = self.reachable(grid)
        return not np.any(metal & ~reached)


def is_connected(grid: VoxelGrid) -> bool:
    """Convenience wrapper around `ConnectivityValidator.is_connected`."""
    return ConnectivityValidator().is_connected(grid)
