"""Per-run mapping of symbolic path names to concrete paths.

An ExecutionContext is built once per executor run and is never shared across
runs. Steps receive it explicitly; nothing reads paths from ambient globals.

Built-in symbols
----------------
``working_dir``
    Directory each step process runs in.
``target_dir``
    Shared scratch/output directory. Relative values are joined to
    ``working_dir``.
``artifact``
    The pipeline's declared final artifact.

Pipelines may declare further symbols through ``paths``; each entry may
reference the built-ins and entries declared before it.
"""

from __future__ import annotations

import os
from collections.abc import Iterator, Mapping
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING

from hexbuild.kernel.resolver import ARTIFACT, TARGET_DIR, WORKING_DIR, resolve

if TYPE_CHECKING:
    from hexbuild.kernel.domain.pipeline import Pipeline

# Stand-in for the working directory when validating without touching the filesystem
DECLARED_WORKING_DIR = "<working_dir>"


class ExecutionContext(Mapping[str, str]):
    """Immutable symbol table used to resolve step templates.

    Examples
    --------
    >>> ctx = ExecutionContext({"target_dir": "/tmp/out"})
    >>> ctx["target_dir"]
    '/tmp/out'
    """

    __slots__ = ("_symbols",)

    def __init__(self, symbols: Mapping[str, str] | None = None) -> None:
        self._symbols: MappingProxyType[str, str] = MappingProxyType(dict(symbols or {}))

    def __getitem__(self, key: str) -> str:
        return self._symbols[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._symbols)

    def __len__(self) -> int:
        return len(self._symbols)

    def __repr__(self) -> str:
        return f"ExecutionContext({dict(self._symbols)!r})"

    @property
    def working_dir(self) -> str:
        return self._symbols[WORKING_DIR]

    @property
    def target_dir(self) -> str:
        return self._symbols[TARGET_DIR]

    @property
    def artifact(self) -> str:
        return self._symbols[ARTIFACT]

    @classmethod
    def for_run(
        cls,
        pipeline: Pipeline,
        *,
        working_dir: str | Path | None = None,
        target_dir: str | Path | None = None,
    ) -> ExecutionContext:
        """Build the concrete context for one run.

        Parameters
        ----------
        pipeline : Pipeline
            The pipeline about to run
        working_dir : str | Path | None
            Overrides ``pipeline.working_dir``; defaults to the current directory
        target_dir : str | Path | None
            Overrides ``pipeline.target_dir``

        Raises
        ------
        UnresolvedPathError
            If a path template references an unknown symbol
        """
        base = working_dir if working_dir is not None else pipeline.working_dir
        concrete_working_dir = str(Path(base).resolve()) if base else os.getcwd()
        return cls._build(pipeline, concrete_working_dir, target_dir)

    @classmethod
    def declared(cls, pipeline: Pipeline) -> ExecutionContext:
        """Build a context with every declared symbol bound, without any I/O."""
        return cls._build(pipeline, DECLARED_WORKING_DIR, None)

    @classmethod
    def _build(
        cls,
        pipeline: Pipeline,
        working_dir: str,
        target_dir: str | Path | None,
    ) -> ExecutionContext:
        symbols: dict[str, str] = {WORKING_DIR: working_dir}

        target_template = str(target_dir) if target_dir is not None else pipeline.target_dir
        symbols[TARGET_DIR] = os.path.join(working_dir, resolve(target_template, symbols))
        symbols[ARTIFACT] = os.path.join(working_dir, resolve(pipeline.artifact, symbols))

        for name, template in pipeline.paths.items():
            symbols[name] = os.path.join(working_dir, resolve(template, symbols))

        return cls(symbols)
