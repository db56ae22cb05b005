"""Configuration file for pytest containing fixtures and configuration.

This module provides fixtures that can be used across multiple test files:
- fake_tool: Path to a small Python script standing in for a build tool
- tool_step: Factory for Steps that invoke the fake tool
- clean_env: Clears HEXBUILD_* variables and the config cache
"""

from __future__ import annotations

import asyncio
import os
import sys
from pathlib import Path

import pytest

from hexbuild.compiler.config_loader import clear_config_cache
from hexbuild.kernel.domain.step import Step

# A stand-in for cargo/wasm-opt/...: behaviour is picked by the first argument
FAKE_TOOL_SOURCE = """\
import os
import signal
import sys
import time
from pathlib import Path


def main(argv):
    mode, *args = argv
    if mode == "write":
        path = Path(args[0])
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(args[1] if len(args) > 1 else "x")
    elif mode == "empty":
        Path(args[0]).write_bytes(b"")
    elif mode == "copy":
        Path(args[1]).write_bytes(Path(args[0]).read_bytes())
    elif mode == "fail":
        sys.stderr.write(args[1] if len(args) > 1 else "failed")
        return int(args[0])
    elif mode == "noop":
        pass
    elif mode == "env":
        Path(args[1]).write_text(os.environ.get(args[0], ""))
    elif mode == "cwd":
        Path(args[0]).write_text(os.getcwd())
    elif mode == "echo":
        print(" ".join(args))
        sys.stderr.write("warn\\n")
    elif mode == "sleep":
        if len(args) > 1:
            Path(args[1]).write_text(str(os.getpid()))
        time.sleep(float(args[0]))
    elif mode == "ignore-term":
        signal.signal(signal.SIGTERM, signal.SIG_IGN)
        Path(args[1]).write_text(str(os.getpid()))
        time.sleep(float(args[0]))
    return 0


sys.exit(main(sys.argv[1:]))
"""


@pytest.fixture
def fake_tool(tmp_path: Path) -> Path:
    """Fixture that writes the fake build tool script."""
    path = tmp_path / "fake_tool.py"
    path.write_text(FAKE_TOOL_SOURCE)
    return path


@pytest.fixture
def tool_step(fake_tool: Path):
    """Fixture returning a factory for Steps running the fake tool.

    ``tool_step("write", "${artifact}", name="gc")`` runs
    ``python fake_tool.py write <artifact>``.
    """

    def make(*args: str, **kwargs) -> Step:
        return Step(sys.executable, (str(fake_tool), *args), **kwargs)

    return make


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch):
    """Fixture that removes HEXBUILD_* variables and clears the config cache."""
    for key in list(os.environ):
        if key.startswith("HEXBUILD_"):
            monkeypatch.delenv(key, raising=False)
    clear_config_cache()
    yield
    clear_config_cache()


async def _wait_for_file(path: Path, timeout: float = 10.0) -> str:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        if path.exists() and (content := path.read_text().strip()):
            return content
        await asyncio.sleep(0.02)
    raise AssertionError(f"{path} was not written within {timeout}s")


def _pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


@pytest.fixture
def wait_for_file():
    """Fixture returning a coroutine function that polls until a file has content."""
    return _wait_for_file


@pytest.fixture
def pid_alive():
    """Fixture returning a predicate telling whether a pid still exists."""
    return _pid_alive
