# Forged Heat Sink Search
"""
Evolutionary search for voxel heat sink designs.

Modules:
    geometry: Voxel lattice, seed designs, connectivity and persistence
    thermal: Multi-rate diffusion solver with CPU and torch backends
    optimization: Volume-preserving mutations and the hill-climbing search
    visualization: Cross-section and score history plots
    utils: YAML experiment configuration
"""

__version__ = "1.0.0"
__author__ = "Forged Heat Sink Team"
