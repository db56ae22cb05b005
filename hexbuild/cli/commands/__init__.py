"""CLI command modules."""

from . import run_cmd, validate_cmd

__all__ = ["run_cmd", "validate_cmd"]
