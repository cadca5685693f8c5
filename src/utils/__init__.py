# Utilities Module
from .config import (
    ExperimentConfig,
    load_config,
    save_config,
    merge_configs,
    flatten_config,
    unflatten_config,
    validate_config,
)
from .logger_setup import setup_logger

__all__ = [
    "ExperimentConfig",
    "load_config",
    "save_config",
    "merge_configs",
    "flatten_config",
    "unflatten_config",
    "validate_config",
    "setup_logger",
]
