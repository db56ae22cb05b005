"""Userspace loaders: pipeline definitions and configuration files."""

from hexbuild.compiler.config_loader import ConfigLoader, clear_config_cache, load_config
from hexbuild.compiler.definition_loader import DefinitionLoader, load_pipeline

__all__ = [
    "ConfigLoader",
    "DefinitionLoader",
    "clear_config_cache",
    "load_config",
    "load_pipeline",
]
