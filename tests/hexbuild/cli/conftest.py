"""Fixtures shared by the CLI tests."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest
import yaml
from typer.testing import CliRunner


@pytest.fixture
def runner():
    """Fixture providing a Typer CLI test runner."""
    return CliRunner()


@pytest.fixture
def pipeline_file(tmp_path: Path, fake_tool: Path):
    """Fixture writing a YAML definition that drives the fake tool.

    ``pipeline_file(fail=True)`` makes the second step exit with status 1.
    """

    def make(*, fail: bool = False, name: str = "cli-demo") -> Path:
        last = ["fail", "1", "opt: bad input"] if fail else ["copy", "${stage}"]
        document = {
            "apiVersion": "hexbuild/v1",
            "kind": "BuildPipeline",
            "metadata": {"name": name},
            "spec": {
                "working_dir": str(tmp_path),
                "artifact": "${target_dir}/out.bin",
                "paths": {"stage": "${target_dir}/stage.bin"},
                "steps": [
                    {
                        "name": "stage",
                        "command": sys.executable,
                        "arguments": [str(fake_tool), "write", "${stage}"],
                    },
                    {
                        "name": "finish",
                        "command": sys.executable,
                        "arguments": [str(fake_tool), *last, "${artifact}"],
                    },
                ],
            },
        }
        path = tmp_path / f"{name}.yaml"
        path.write_text(yaml.safe_dump(document, sort_keys=False))
        return path

    return make
