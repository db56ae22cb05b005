"""hexbuild command-line interface."""

from hexbuild.cli.main import app, main

__all__ = ["app", "main"]
