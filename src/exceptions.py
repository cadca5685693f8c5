"""
Exception hierarchy for the heat sink search.

Rejected mutation candidates are not errors: the mutator resamples them
silently. Only misconfiguration and degenerate simulations raise.
"""


class HeatsinkError(Exception):
    """Base for all heat sink search exceptions."""

    pass


class ConfigurationError(HeatsinkError, ValueError):
    """Lattice, solver or search settings are not admissible."""

    pass


class ConvergenceAnomaly(HeatsinkError, RuntimeError):
    """The first simulation produced a degenerate (near zero) base score."""

    pass
