"""
Unit tests for experiment configuration.
"""

import pytest
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from src.exceptions import ConfigurationError
from src.optimization.mutation import MutationStrategy
from src.utils.config import (
    ExperimentConfig,
    flatten_config,
    load_config,
    merge_configs,
    unflatten_config,
    validate_config,
)


REFERENCE_CONFIG = Path(__file__).parent.parent / "configs" / "search.yaml"


class TestConfigHelpers:
    """Test dictionary helpers."""

    def test_flatten(self):
        """Nested sections become prefixed keys."""
        flat = flatten_config({"grid": {"cells_wide": 16}, "seed": 1})
        assert flat == {"grid_cells_wide": 16, "seed": 1}

    def test_unflatten(self):
        """Prefixed keys go back under their section."""
        nested = unflatten_config({"grid_cells_wide": 16, "solver_num_threads": 2, "seed": 1})
        assert nested == {"grid": {"cells_wide": 16}, "solver": {"num_threads": 2}, "seed": 1}

    def test_merge(self):
        """Override values win and untouched keys survive."""
        merged = merge_configs(
            {"grid": {"cells_wide": 80, "seed_shape": "slab"}},
            {"grid": {"cells_wide": 16}},
        )
        assert merged == {"grid": {"cells_wide": 16, "seed_shape": "slab"}}

    def test_load_missing(self, tmp_path):
        """A missing config file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "missing.yaml")

    def test_load_empty(self, tmp_path):
        """An empty YAML file loads as an empty dict."""
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(path) == {}


class TestValidation:
    """Test config validation."""

    def test_missing_section(self):
        """Configs without a solver section are rejected."""
        with pytest.raises(ConfigurationError):
            validate_config({"grid": {}})

    @pytest.mark.parametrize("section, key, value", [
        ("grid", "seed_shape", "pyramid"),
        ("solver", "backend", "opencl"),
        ("mutation", "strategy", "annealed"),
    ])
    def test_unknown_names(self, section, key, value):
        """Unknown shape, backend or strategy names are rejected."""
        config = {"grid": {}, "solver": {}}
        config.setdefault(section, {})[key] = value

        with pytest.raises(ConfigurationError):
            validate_config(config)

    def test_valid(self):
        """A minimal config passes validation."""
        assert validate_config({"grid": {"seed_shape": "slab"}, "solver": {"backend": "cpu"}})


class TestExperimentConfig:
    """Test the experiment configuration dataclass."""

    def test_reference_file(self):
        """The shipped YAML reproduces the reference setup."""
        config = ExperimentConfig.from_yaml(REFERENCE_CONFIG)

        grid_config = config.grid_config()
        assert grid_config.cells_wide == 80
        assert grid_config.air_padding == 10

        solver_config = config.solver_config()
        assert solver_config.air_iteration_skips == 30
        assert solver_config.boundary_iteration_skips == 60
        assert solver_config.convergence_threshold == 4e-7

        assert config.mutation_config().mutation_strategy is MutationStrategy.FORGED
        assert config.search_config().second_mutation_probability == 0.4

    def test_from_dict(self):
        """Nested dicts populate the prefixed fields."""
        config = ExperimentConfig.from_dict({
            "seed": 3,
            "grid": {"cells_wide": 16, "seed_shape": "column"},
            "solver": {"num_threads": 2},
        })

        assert config.seed == 3
        assert config.grid_cells_wide == 16
        assert config.grid_config().seed_shape == "column"
        assert config.solver_config().num_threads == 2

    def test_yaml_overrides(self):
        """Overrides replace single values and keep the rest of the file."""
        config = ExperimentConfig.from_yaml(
            REFERENCE_CONFIG, {"seed": 9, "mutation": {"strategy": "extruded"}}
        )

        assert config.seed == 9
        assert config.mutation_config().mutation_strategy is MutationStrategy.EXTRUDED
        assert config.mutation_enforce_symmetry
        assert config.grid_cells_wide == 80

    def test_invalid_override(self):
        """Overrides are validated like the file itself."""
        with pytest.raises(ConfigurationError):
            ExperimentConfig.from_yaml(REFERENCE_CONFIG, {"mutation": {"strategy": "annealed"}})

    def test_unknown_field(self):
        """Fields with no matching attribute are rejected."""
        with pytest.raises(ConfigurationError):
            ExperimentConfig.from_dict({"grid": {"cells_tall": 16}})

    def test_round_trip(self, tmp_path):
        """Saving and reloading gives an equal config."""
        config = ExperimentConfig(name="small", seed=5, grid_cells_wide=16,
                                  mutation_strategy="checked_3d")
        path = tmp_path / "config.yaml"
        config.to_yaml(path)

        loaded = ExperimentConfig.from_yaml(path)

        assert loaded == config

    def test_to_dict_sections(self):
        """to_dict groups fields back into sections."""
        nested = ExperimentConfig().to_dict()

        assert set(nested) >= {"grid", "solver", "mutation", "search"}
        assert nested["grid"]["cells_wide"] == 80
        assert nested["output_dir"] == "outputs"

    def test_invalid_section_values(self):
        """Component validation runs when a section is built."""
        config = ExperimentConfig(solver_boundary_iteration_skips=45)
        with pytest.raises(ConfigurationError):
            config.solver_config()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
