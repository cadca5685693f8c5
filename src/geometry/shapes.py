"""
Seed designs for the heat sink search.
All functions return boolean (N, N, N) masks indexed [x, y, z] (True = metal).
The air border is cleared later by `VoxelGrid.set_design`.
"""

import numpy as np
from typing import Callable, Dict

from .voxel_grid import GridConfig
from ..exceptions import ConfigurationError


def _empty(config: GridConfig) -> np.ndarray:
    n = config.cells_wide
    return np.zeros((n, n, n), dtype=bool)


def create_slab(config: GridConfig) -> np.ndarray:
    """
    Thin solid block covering the bottom of the volume.

    Its thickness is the bottom margin left alone by forged mutations,
    int(0.05 N + 1) layers (1 at N=16, 5 at N=80), so the slab and the
    extruded section never overlap. The layer count is truncated rather
    than rounded up when 0.05 N is fractional.
    """
    mask = _empty(config)
    mask[:, :config.base_thickness, :] = True
    return mask


def create_thick_base(config: GridConfig) -> np.ndarray:
    """Solid block filling the bottom ~20% of the volume."""
    mask = _empty(config)
    mask[:, :1 + -(-config.cells_wide // 5), :] = True
    return mask


def create_column(config: GridConfig) -> np.ndarray:
    """
    Square column standing in the centre, 44% of the interior wide.

    The bounds are mirrored around N/2 so the column is invariant under
    all 8 symmetries of the square.
    """
    n, pad = config.cells_wide, config.air_padding
    half = max(1, int(np.ceil((n - 2 * pad) * 0.22)))
    lo, hi = n // 2 - half, n // 2 + half

    mask = _empty(config)
    mask[lo:hi, :n - pad, lo:hi] = True
    return mask


def create_slab_and_column(config: GridConfig) -> np.ndarray:
    """Reference seed: a base slab with a centred column on top."""
    return create_slab(config) | create_column(config)


def create_finned(config: GridConfig) -> np.ndarray:
    """
    Classic straight fins running along x, standing on a base slab.

    The fin pitch is N // 18 + 1 cells with fins half a pitch wide. Below
    N = 18 the pitch is clamped to 2 cells so the fins do not vanish.
    """
    n = config.cells_wide
    increment = max(2, n // 18 + 1)

    z = np.arange(n)
    fin_rows = (z + 3) % increment < increment // 2

    mask = create_slab(config)
    mask[:, :, fin_rows] = True
    return mask


def create_v_shape(config: GridConfig) -> np.ndarray:
    """Solid block with a V-shaped notch cut through it along z."""
    n = config.cells_wide
    x = np.arange(n)[:, None]
    y = np.arange(n)[None, :]

    notch = (x > n - y // 2 - n // 3 - 4) & (x < y // 2 + n // 3 + 3)

    mask = _empty(config)
    mask[...] = ~notch[:, :, None]
    return mask


SEED_SHAPES: Dict[str, Callable[[GridConfig], np.ndarray]] = {
    "slab": create_slab,
    "thick_base": create_thick_base,
    "column": create_column,
    "slab_and_column": create_slab_and_column,
    "finned": create_finned,
    "v_shape": create_v_shape,
}


def create_seed_design(name: str, config: GridConfig) -> np.ndarray:
    """
    Build a named seed design.

    Args:
        name: One of SEED_SHAPES
        config: Grid configuration

    Returns:
        Boolean mask of shape (N, N, N)
    """
    if name not in SEED_SHAPES:
        raise ConfigurationError(
            f"Unknown seed shape: {name}. Must be one of {sorted(SEED_SHAPES)}"
        )
    return SEED_SHAPES[name](config)
