# Voxel Design Module
from .voxel_grid import (
    FACE_OFFSETS,
    GridConfig,
    SimulationState,
    VoxelGrid,
    neighbor_slice,
)
from .shapes import (
    SEED_SHAPES,
    create_seed_design,
    create_slab,
    create_thick_base,
    create_column,
    create_slab_and_column,
    create_finned,
    create_v_shape,
)
from .connectivity import ConnectivityValidator, is_connected
from .persistence import save_design, load_design

__all__ = [
    # Lattice
    "FACE_OFFSETS",
    "GridConfig",
    "SimulationState",
    "VoxelGrid",
    "neighbor_slice",
    # Seed shapes
    "SEED_SHAPES",
    "create_seed_design",
    "create_slab",
    "create_thick_base",
    "create_column",
    "create_slab_and_column",
    "create_finned",
    "create_v_shape",
    # Validation
    "ConnectivityValidator",
    "is_connected",
    # Persistence
    "save_design",
    "load_design",
]
