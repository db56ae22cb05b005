"""PipelineRunner — one-liner definition-file execution.

Eliminates the boilerplate of: load config → parse definition → validate →
build executor → run.

Delegates to existing components:

- ``DefinitionLoader`` — JSON/YAML → validated ``Pipeline``
- ``PipelineExecutor`` — ``Pipeline`` → ``PipelineResult``

Examples
--------
Basic usage::

    runner = PipelineRunner()
    result = await runner.run("wasm.yaml", target_dir="build/wasm")

Dry run::

    issues = PipelineRunner().validate("wasm.yaml")
    if issues:
        print("\\n".join(issues))
"""

from __future__ import annotations

import os
import shutil
from collections.abc import Iterable
from pathlib import Path
from typing import TYPE_CHECKING

from hexbuild.compiler.definition_loader import DefinitionFormat, DefinitionLoader
from hexbuild.kernel.context.execution_context import DECLARED_WORKING_DIR, ExecutionContext
from hexbuild.kernel.exceptions import HexBuildError, PipelineRunnerError
from hexbuild.kernel.logging import get_logger
from hexbuild.kernel.orchestration.executor import PipelineExecutor

if TYPE_CHECKING:
    from hexbuild.kernel.config.models import HexBuildConfig
    from hexbuild.kernel.domain.pipeline import Pipeline
    from hexbuild.kernel.domain.results import PipelineResult
    from hexbuild.kernel.orchestration.events import Observer
    from hexbuild.kernel.orchestration.process_runner import CancelToken

logger = get_logger(__name__)


class PipelineRunner:
    """Load, validate and run pipeline definition files.

    Parameters
    ----------
    config : HexBuildConfig | None
        Executor defaults (timeout, target directory, env). ``None`` uses defaults.
    observers : Iterable[Observer]
        Lifecycle event observers handed to the executor.
    default_step_timeout : float | None
        Overrides ``config.executor.default_step_timeout``.
    """

    def __init__(
        self,
        *,
        config: HexBuildConfig | None = None,
        observers: Iterable[Observer] = (),
        default_step_timeout: float | None = None,
    ) -> None:
        executor_config = config.executor if config is not None else None
        self._default_target_dir = executor_config.target_dir if executor_config else None
        self._loader = DefinitionLoader()
        self._executor = PipelineExecutor(
            default_step_timeout=default_step_timeout
            or (executor_config.default_step_timeout if executor_config else None),
            observers=observers,
            env=executor_config.env if executor_config else None,
            terminate_grace=executor_config.terminate_grace if executor_config else 5.0,
        )

    @property
    def executor(self) -> PipelineExecutor:
        return self._executor

    def load(self, pipeline_path: str | Path) -> Pipeline:
        """Load and validate a definition file.

        Raises
        ------
        PipelineRunnerError
            If the file does not exist
        """
        path = Path(pipeline_path)
        if not path.exists():
            raise PipelineRunnerError(f"Pipeline file not found: {path}")
        return self._loader.load(path)

    async def run(
        self,
        pipeline_path: str | Path,
        *,
        target_dir: str | Path | None = None,
        timeout: float | None = None,
        cancel_token: CancelToken | None = None,
    ) -> PipelineResult:
        """Run a definition file.

        Relative ``working_dir`` values in the definition are taken relative to
        the definition file's directory.
        """
        path = Path(pipeline_path)
        pipeline = self.load(path)
        working_dir = None
        if pipeline.working_dir is not None and not os.path.isabs(pipeline.working_dir):
            working_dir = path.parent / pipeline.working_dir
        return await self._execute(pipeline, target_dir, working_dir, timeout, cancel_token)

    async def run_from_string(
        self,
        content: str,
        *,
        fmt: DefinitionFormat = "yaml",
        target_dir: str | Path | None = None,
        timeout: float | None = None,
        cancel_token: CancelToken | None = None,
    ) -> PipelineResult:
        """Run a definition given as text."""
        pipeline = self._loader.load_string(content, fmt=fmt)
        return await self._execute(pipeline, target_dir, None, timeout, cancel_token)

    def validate(self, pipeline_path: str | Path, *, check_commands: bool = False) -> list[str]:
        """Validate a definition without executing it (dry run).

        Parameters
        ----------
        pipeline_path : str | Path
            Definition file to check
        check_commands : bool
            Also report step commands that cannot be found on ``PATH``

        Returns
        -------
        list[str]
            Issues found; an empty list means the pipeline is valid.
        """
        try:
            pipeline = self.load(pipeline_path)
        except HexBuildError as e:
            return [f"{type(e).__name__}: {e}"]

        if not check_commands:
            return []

        issues: list[str] = []
        context = ExecutionContext.declared(pipeline)
        for index, step in enumerate(pipeline.steps):
            command = step.resolve(context).command
            # Commands under the working dir only exist at run time
            if command.startswith(DECLARED_WORKING_DIR):
                continue
            if shutil.which(command) is None:
                issues.append(f"Step {index} command {command!r} not found on PATH")
        return issues

    async def _execute(
        self,
        pipeline: Pipeline,
        target_dir: str | Path | None,
        working_dir: str | Path | None,
        timeout: float | None,
        cancel_token: CancelToken | None,
    ) -> PipelineResult:
        logger.info("Running pipeline '{}' with {} steps", pipeline.name, len(pipeline))
        result = await self._executor.run(
            pipeline,
            target_dir=target_dir or self._default_target_dir,
            working_dir=working_dir,
            timeout=timeout,
            cancel_token=cancel_token,
        )
        logger.info("Pipeline '{}' finished: {}", pipeline.name, result.status)
        return result
