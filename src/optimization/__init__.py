"""
Optimization module for heat sink design.

Provides:
- Volume-preserving design mutations (forged, connectivity-checked 3D, extruded)
- Greedy hill-climbing search loop

`create_search` lives in `src.optimization.factory`.
"""

from .mutation import (
    DesignMutator,
    MutationConfig,
    MutationStrategy,
    apply_symmetry,
    apply_top_layer_symmetry,
    extrude_design_in_x,
    extrude_design_in_y,
    interface_mask,
    mirror_design_in_z,
    wedge_cells,
)
from .search import SearchController, SearchConfig, SearchResult, IterationRecord

__all__ = [
    "DesignMutator",
    "MutationConfig",
    "MutationStrategy",
    "apply_symmetry",
    "apply_top_layer_symmetry",
    "extrude_design_in_x",
    "extrude_design_in_y",
    "interface_mask",
    "mirror_design_in_z",
    "wedge_cells",
    "SearchController",
    "SearchConfig",
    "SearchResult",
    "IterationRecord",
]
