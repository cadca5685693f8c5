"""
Configuration utilities for loading and managing YAML configs.
"""

import yaml
from pathlib import Path
from typing import Dict, Any, Optional
from dataclasses import dataclass, asdict

from ..exceptions import ConfigurationError
from ..geometry.voxel_grid import GridConfig
from ..geometry.shapes import SEED_SHAPES
from ..thermal.solver import SolverConfig
from ..thermal.backends import BACKENDS
from ..optimization.mutation import MutationConfig, MutationStrategy
from ..optimization.search import SearchConfig


def load_config(config_path: Path) -> Dict[str, Any]:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Configuration dictionary
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, 'r') as f:
        config = yaml.safe_load(f)

    return config or {}


def save_config(config: Dict[str, Any], save_path: Path) -> None:
    """
    Save configuration to YAML file.

    Args:
        config: Configuration dictionary
        save_path: Path to save to
    """
    save_path = Path(save_path)
    save_path.parent.mkdir(parents=True, exist_ok=True)

    with open(save_path, 'w') as f:
        yaml.dump(config, f, default_flow_style=False, sort_keys=False)


def merge_configs(base: Dict, override: Dict) -> Dict:
    """
    Recursively merge two configuration dictionaries.

    Args:
        base: Base configuration
        override: Override configuration (takes precedence)

    Returns:
        Merged configuration
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = merge_configs(result[key], value)
        else:
            result[key] = value

    return result


def flatten_config(config: Dict, prefix: str = '') -> Dict:
    """
    Flatten nested configuration dictionary.

    Args:
        config: Nested configuration
        prefix: Prefix for nested keys

    Returns:
        Flattened dictionary
    """
    result = {}

    for key, value in config.items():
        new_key = f"{prefix}_{key}" if prefix else key

        if isinstance(value, dict):
            result.update(flatten_config(value, new_key))
        else:
            result[new_key] = value

    return result


def unflatten_config(config: Dict, sections=("grid", "solver", "mutation", "search")) -> Dict:
    """Inverse of `flatten_config` for the known section prefixes."""
    result: Dict[str, Any] = {}

    for key, value in config.items():
        section = next((s for s in sections if key.startswith(f"{s}_")), None)
        if section is None:
            result[key] = value
        else:
            result.setdefault(section, {})[key[len(section) + 1:]] = value

    return result


@dataclass
class ExperimentConfig:
    """
    Complete configuration of a heat sink search.

    Mirrors the nested YAML layout with section-prefixed field names
    (`grid.cells_wide` -> `grid_cells_wide`).
    """
    # Experiment info
    name: str = "forged_heatsink"
    seed: Optional[int] = None

    # Paths
    output_dir: Path = Path("outputs")

    # Grid
    grid_cells_wide: int = 80
    grid_air_padding: Optional[int] = None
    grid_heat_source_heat_per_cell: Optional[float] = None
    grid_seed_shape: str = "slab_and_column"

    # Solver
    solver_conductivity: float = 1.0 / 6.0
    solver_air_iteration_skips: int = 30
    solver_boundary_iteration_skips: int = 60
    solver_convergence_threshold: float = 4e-7
    solver_first_run_threshold: float = 2e-7
    solver_minimum_iterations_per_cell: int = 10
    solver_anomaly_threshold: float = 1e-5
    solver_num_threads: int = 6
    solver_backend: str = "cpu"
    solver_device: Optional[str] = None
    solver_report_interval: float = 2.0

    # Mutation
    mutation_strategy: str = "forged"
    mutation_enforce_symmetry: bool = True

    # Search
    search_second_mutation_probability: float = 0.4
    search_third_mutation_probability: float = 0.1
    search_report_every: int = 20

    def __post_init__(self):
        self.output_dir = Path(self.output_dir)

    @classmethod
    def from_yaml(cls, path: Path, overrides: Optional[Dict[str, Any]] = None) -> 'ExperimentConfig':
        """
        Create config from YAML file.

        Args:
            path: Path to YAML configuration file
            overrides: Nested values that take precedence over the file

        Returns:
            ExperimentConfig
        """
        config_dict = load_config(path)
        if overrides:
            config_dict = merge_configs(config_dict, overrides)
        validate_config(config_dict)
        return cls.from_dict(config_dict)

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> 'ExperimentConfig':
        flat = flatten_config(config_dict)
        known = set(cls.__dataclass_fields__)
        unknown = sorted(set(flat) - known)
        if unknown:
            raise ConfigurationError(f"Unknown config fields: {unknown}")
        return cls(**flat)

    def to_dict(self) -> Dict[str, Any]:
        flat = asdict(self)
        flat["output_dir"] = str(self.output_dir)
        return unflatten_config(flat)

    def to_yaml(self, path: Path) -> None:
        """Save config to YAML file."""
        save_config(self.to_dict(), path)

    def _section(self, prefix: str) -> Dict[str, Any]:
        return {
            key[len(prefix) + 1:]: value
            for key, value in asdict(self).items()
            if key.startswith(f"{prefix}_")
        }

    def grid_config(self) -> GridConfig:
        return GridConfig(**self._section("grid"))

    def solver_config(self) -> SolverConfig:
        return SolverConfig(**self._section("solver"))

    def mutation_config(self) -> MutationConfig:
        return MutationConfig(**self._section("mutation"))

    def search_config(self) -> SearchConfig:
        return SearchConfig(**self._section("search"))


def validate_config(config: Dict) -> bool:
    """
    Validate configuration for required fields.

    Args:
        config: Configuration dictionary

    Returns:
        True if valid

    Raises:
        ConfigurationError: If required fields are missing or names are unknown
    """
    required_fields = ['grid', 'solver']

    for field in required_fields:
        if field not in config:
            raise ConfigurationError(f"Missing required config field: {field}")

    seed_shape = config.get('grid', {}).get('seed_shape', '')
    if seed_shape and seed_shape not in SEED_SHAPES:
        raise ConfigurationError(
            f"Invalid seed shape: {seed_shape}. Must be one of {sorted(SEED_SHAPES)}"
        )

    backend = config.get('solver', {}).get('backend', '')
    if backend and backend not in BACKENDS:
        raise ConfigurationError(
            f"Invalid backend: {backend}. Must be one of {list(BACKENDS)}"
        )

    valid_strategies = [s.value for s in MutationStrategy]
    strategy = config.get('mutation', {}).get('strategy', '')
    if strategy and strategy not in valid_strategies:
        raise ConfigurationError(
            f"Invalid mutation strategy: {strategy}. Must be one of {valid_strategies}"
        )

    return True
