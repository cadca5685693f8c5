"""
Device-compute backend built on PyTorch tensors.

Runs the same diffuse + commit passes as the CPU thread pool, but keeps the
heat field resident on the device and only copies it back when the host
needs it (scoring, end of a run).
"""

import numpy as np
import torch
from typing import Optional

from .backends import (
    BufferKind,
    ComputeBackend,
    build_face_gates,
    diffuse_slices,
    rate_phase,
)
from ..geometry.voxel_grid import VoxelGrid


_TORCH_DTYPES = {
    np.dtype(np.float64): torch.float64,
    np.dtype(np.bool_): torch.bool,
}


class TorchBackend(ComputeBackend):
    """
    Diffusion on a torch device (CUDA when available).

    Heat is uploaded on every `prepare`, so host-side edits made between
    solver runs are picked up. Gates are re-uploaded only when the design
    version changes.
    """

    name = "torch"

    def __init__(self, conductivity: float, device: Optional[str] = None):
        super().__init__(conductivity)
        if device is None:
            device = 'cuda' if torch.cuda.is_available() else 'cpu'
        self.device = torch.device(device)

        self._gates: Optional[torch.Tensor] = None
        self._source: Optional[torch.Tensor] = None
        self._padded_heat: Optional[torch.Tensor] = None
        self._delta_heat: Optional[torch.Tensor] = None
        self._heat_per_cell = 0.0

    def upload(self, kind: BufferKind, array: np.ndarray) -> torch.Tensor:
        """Copy a host buffer to the device with the dtype of its kind."""
        host = np.asarray(array, dtype=kind.dtype)
        return torch.tensor(host, dtype=_TORCH_DTYPES[kind.dtype], device=self.device)

    def prepare(self, grid: VoxelGrid) -> None:
        if self._design_changed(grid):
            self._gates = self.upload(BufferKind.FACE_GATES, build_face_gates(grid))
            self._source = self.upload(BufferKind.SOURCE_MASK, grid.heat_source_mask())
            self._grid = grid
            self._design_version = grid.design_version

        self._padded_heat = self.upload(BufferKind.HEAT, grid.state.padded_heat)
        self._delta_heat = self.upload(BufferKind.DELTA_HEAT, grid.state.delta_heat)
        self._heat_per_cell = grid.heat_source_heat_per_cell

    def step(self, compute_air: bool, compute_boundary: bool) -> None:
        if self._padded_heat is None:
            raise RuntimeError("prepare() must be called before step()")

        gates = self._gates[rate_phase(compute_air, compute_boundary)]

        # Pass 1: diffuse
        diffuse_slices(
            self._padded_heat,
            gates,
            self._source,
            self._delta_heat,
            self.conductivity,
            self._heat_per_cell,
            compute_air,
        )

        # Pass 2: commit
        heat = self._padded_heat[1:-1, 1:-1, 1:-1]
        heat += self._delta_heat

    def sync(self, grid: VoxelGrid) -> None:
        """Copy heat and delta heat back into the grid's host arrays."""
        if self._padded_heat is None:
            return
        grid.state.padded_heat[...] = self._padded_heat.cpu().numpy()
        grid.state.delta_heat[...] = self._delta_heat.cpu().numpy()
