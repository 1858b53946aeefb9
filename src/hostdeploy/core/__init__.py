"""Core configuration and constants."""

from .config import (
    AppMode,
    ConfigError,
    DeployConfig,
    StartMethod,
    default_config_path,
    load_answers_file,
    save_config,
)
from .constants import FRONTEND_MARKERS, PREREQUISITE_PACKAGES, PROGRAM_NAME

__all__ = [
    "AppMode",
    "ConfigError",
    "DeployConfig",
    "FRONTEND_MARKERS",
    "PREREQUISITE_PACKAGES",
    "PROGRAM_NAME",
    "StartMethod",
    "default_config_path",
    "load_answers_file",
    "save_config",
]
