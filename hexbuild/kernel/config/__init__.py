"""Configuration models for hexbuild."""

from hexbuild.kernel.config.models import ExecutorConfig, HexBuildConfig, LoggingConfig

__all__ = ["ExecutorConfig", "HexBuildConfig", "LoggingConfig"]
