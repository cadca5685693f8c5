"""
Thermal simulation of voxel heat sinks.

Provides:
- Multi-rate explicit diffusion solver with convergence detection
- Thread-pool CPU backend and torch device backend
"""

from .solver import ThermalSolver, SolverConfig
from .backends import (
    BACKENDS,
    BufferKind,
    ComputeBackend,
    CPUBackend,
    build_face_gates,
    create_backend,
    diffuse_slices,
    rate_phase,
)

__all__ = [
    "ThermalSolver",
    "SolverConfig",
    "BACKENDS",
    "BufferKind",
    "ComputeBackend",
    "CPUBackend",
    "build_face_gates",
    "create_backend",
    "diffuse_slices",
    "rate_phase",
]
