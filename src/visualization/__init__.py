# Visualization Module
from .heatmap import (
    cross_section,
    plot_cross_section,
    plot_score_history,
)

__all__ = [
    "cross_section",
    "plot_cross_section",
    "plot_score_history",
]
