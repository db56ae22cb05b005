"""Sequential, fail-fast executor for build pipelines.

Each call to :meth:`PipelineExecutor.run` drives its own state machine::

    Pending -> Running(0) -> Running(1) -> ... -> Succeeded
                    |             |
                    +-------------+--> Failed(i)

A step advances the run when its process exits with an accepted status and,
where the step is declared to produce the artifact (and always for the last
step), the artifact exists and is non-empty. Any other outcome settles the run
as ``Failed(i)`` and no later step is spawned.

Examples
--------
Example usage::

    executor = PipelineExecutor(default_step_timeout=300)
    result = await executor.run(pipeline, target_dir="build/module-a")
    if result.succeeded:
        print(result.artifact_path)
    else:
        print(result.failed_step_index, result.cause)
"""

from __future__ import annotations

import asyncio
import inspect
import uuid
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import TYPE_CHECKING

from hexbuild.kernel.context.execution_context import ExecutionContext
from hexbuild.kernel.domain.results import (
    PipelineFailure,
    PipelineResult,
    PipelineSuccess,
    RunStatus,
    StepResult,
)
from hexbuild.kernel.exceptions import (
    ArtifactMissingError,
    CancelledError,
    ConfigurationError,
    NonZeroExitError,
    SpawnError,
    StepExecutionError,
    StepTimeoutError,
    UnresolvedPathError,
    ValidationError,
)
from hexbuild.kernel.logging import get_logger
from hexbuild.kernel.orchestration.events import (
    Event,
    Observer,
    PipelineCompleted,
    PipelineStarted,
    StepCompleted,
    StepFailed,
    StepStarted,
)
from hexbuild.kernel.orchestration.process_runner import (
    DEFAULT_TERMINATE_GRACE,
    CancelToken,
    Timer,
    spawn,
    wait_process,
)

if TYPE_CHECKING:
    from hexbuild.kernel.domain.pipeline import Pipeline
    from hexbuild.kernel.domain.step import Step

logger = get_logger(__name__)


class _RunState:
    """Mutable state of exactly one run; never shared between runs."""

    __slots__ = ("run_id", "pipeline", "context", "token", "status", "index", "results", "timer")

    def __init__(self, pipeline: Pipeline, context: ExecutionContext, token: CancelToken) -> None:
        self.run_id = uuid.uuid4().hex[:12]
        self.pipeline = pipeline
        self.context = context
        self.token = token
        self.status = RunStatus.PENDING
        self.index: int | None = None
        self.results: list[StepResult] = []
        self.timer = Timer()

    def enter_step(self, index: int) -> None:
        self.status = RunStatus.RUNNING
        self.index = index


class PipelineExecutor:
    """Runs a pipeline's steps in order, each as one external process.

    Parameters
    ----------
    default_step_timeout : float | None
        Timeout in seconds for steps that declare none. ``None`` waits forever.
    observers : Iterable[Observer]
        Callables (sync or async) receiving lifecycle events. Observer errors
        are logged and never affect a run.
    env : Mapping[str, str] | None
        Environment overrides applied to every step (step ``env`` wins).
    terminate_grace : float
        Seconds a cancelled step gets to exit after SIGTERM before SIGKILL.

    Notes
    -----
    One executor may drive several runs concurrently; each run owns its state.
    Give concurrent runs distinct target directories.
    """

    def __init__(
        self,
        *,
        default_step_timeout: float | None = None,
        observers: Iterable[Observer] = (),
        env: Mapping[str, str] | None = None,
        terminate_grace: float = DEFAULT_TERMINATE_GRACE,
    ) -> None:
        if default_step_timeout is not None and default_step_timeout <= 0:
            raise ConfigurationError(
                "executor", f"default_step_timeout must be positive (got {default_step_timeout})"
            )
        if terminate_grace <= 0:
            raise ConfigurationError(
                "executor", f"terminate_grace must be positive (got {terminate_grace})"
            )
        self.default_step_timeout = default_step_timeout
        self.terminate_grace = terminate_grace
        self._env: dict[str, str] = dict(env or {})
        self._observers: list[Observer] = list(observers)
        self._active_runs: dict[str, CancelToken] = {}

    def add_observer(self, observer: Observer) -> None:
        self._observers.append(observer)

    @property
    def active_runs(self) -> int:
        return len(self._active_runs)

    def cancel(self, reason: str | None = None) -> None:
        """Cancel every in-flight run of this executor.

        The current child process of each run is terminated and the run settles
        as ``Failed`` with :class:`~hexbuild.kernel.exceptions.CancelledError`.
        """
        for token in list(self._active_runs.values()):
            token.cancel(reason)

    async def run(
        self,
        pipeline: Pipeline,
        *,
        target_dir: str | Path | None = None,
        working_dir: str | Path | None = None,
        timeout: float | None = None,
        cancel_token: CancelToken | None = None,
    ) -> PipelineResult:
        """Execute ``pipeline`` and return its single terminal result.

        Parameters
        ----------
        pipeline : Pipeline
            The pipeline to run; it is validated first
        target_dir : str | Path | None
            Overrides the pipeline's target directory for this run
        working_dir : str | Path | None
            Overrides the pipeline's working directory for this run
        timeout : float | None
            Per-step timeout for steps without their own; falls back to
            ``default_step_timeout``
        cancel_token : CancelToken | None
            Token to cancel this particular run

        Returns
        -------
        PipelineResult
            ``PipelineSuccess`` or ``PipelineFailure``

        Raises
        ------
        ValidationError
            If the pipeline or the overrides are invalid (nothing is spawned)
        ConfigurationError
            If the target directory cannot be created
        """
        pipeline.validate()
        if timeout is not None and timeout <= 0:
            raise ValidationError("timeout", "must be positive", timeout)

        try:
            context = ExecutionContext.for_run(
                pipeline, working_dir=working_dir, target_dir=target_dir
            )
        except UnresolvedPathError as e:
            raise ValidationError("target_dir", f"path template does not resolve: {e}") from e

        try:
            Path(context.target_dir).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigurationError("target_dir", f"cannot create {context.target_dir}: {e}") from e

        token = cancel_token or CancelToken()
        state = _RunState(pipeline, context, token)
        self._active_runs[state.run_id] = token
        try:
            return await self._execute(state, timeout)
        finally:
            del self._active_runs[state.run_id]

    def run_sync(
        self,
        pipeline: Pipeline,
        *,
        target_dir: str | Path | None = None,
        working_dir: str | Path | None = None,
        timeout: float | None = None,
    ) -> PipelineResult:
        """Blocking wrapper around :meth:`run` for callers without an event loop."""
        return asyncio.run(
            self.run(pipeline, target_dir=target_dir, working_dir=working_dir, timeout=timeout)
        )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _execute(self, state: _RunState, timeout: float | None) -> PipelineResult:
        pipeline = state.pipeline
        log = logger.bind(run_id=state.run_id, pipeline=pipeline.name)
        log.info(
            "Running pipeline '{}' ({} steps) in {}",
            pipeline.name,
            len(pipeline),
            state.context.target_dir,
        )
        await self._notify(
            PipelineStarted(
                name=pipeline.name,
                total_steps=len(pipeline),
                target_dir=state.context.target_dir,
            )
        )

        for index, step in enumerate(pipeline.steps):
            state.enter_step(index)

            if state.token.cancelled:
                return await self._fail(state, step, None, CancelledError(index, state.token.reason))

            resolved = step.resolve(state.context)
            await self._notify(
                StepStarted(
                    pipeline=pipeline.name,
                    index=index,
                    name=step.display_name,
                    argv=tuple(resolved.argv),
                )
            )
            log.debug("Step {} argv: {}", index, resolved.argv)

            try:
                process = await spawn(
                    resolved,
                    cwd=state.context.working_dir,
                    env={**self._env, **resolved.env},
                )
            except (OSError, ValueError) as e:
                result = StepResult(
                    step_index=index,
                    step_name=step.display_name,
                    command=resolved.command,
                    arguments=resolved.arguments,
                    exit_code=None,
                )
                return await self._fail(state, step, result, SpawnError(index, resolved.command, e))

            step_timeout = step.timeout or timeout or self.default_step_timeout
            outcome = await wait_process(
                process,
                timeout=step_timeout,
                cancel_token=state.token,
                terminate_grace=self.terminate_grace,
            )
            result = StepResult(
                step_index=index,
                step_name=step.display_name,
                command=resolved.command,
                arguments=resolved.arguments,
                exit_code=outcome.returncode,
                stdout=outcome.stdout,
                stderr=outcome.stderr,
                duration_ms=outcome.duration_ms,
            )

            error: StepExecutionError | None = None
            if outcome.cancelled:
                error = CancelledError(index, state.token.reason)
            elif outcome.timed_out:
                error = StepTimeoutError(index, resolved.command, step_timeout or 0.0)
            elif outcome.returncode not in step.accepted_exit_codes:
                error = NonZeroExitError(index, resolved.command, outcome.returncode or 0)
            elif step.produces_artifact or index == pipeline.last_index:
                error = _check_artifact(index, state.context.artifact)
            if error is not None:
                return await self._fail(state, step, result, error)

            state.results.append(result)
            log.info(
                "Step {} '{}' finished in {:.0f}ms",
                index,
                step.display_name,
                outcome.duration_ms,
            )
            await self._notify(
                StepCompleted(
                    pipeline=pipeline.name,
                    index=index,
                    name=step.display_name,
                    exit_code=outcome.returncode or 0,
                    duration_ms=outcome.duration_ms,
                )
            )

        state.status = RunStatus.SUCCEEDED
        duration_ms = state.timer.duration_ms
        log.info("Pipeline '{}' produced {}", pipeline.name, state.context.artifact)
        await self._notify(
            PipelineCompleted(
                name=pipeline.name,
                succeeded=True,
                duration_ms=duration_ms,
                artifact_path=state.context.artifact,
            )
        )
        return PipelineSuccess(
            artifact_path=state.context.artifact,
            step_results=tuple(state.results),
        )

    async def _fail(
        self,
        state: _RunState,
        step: Step,
        result: StepResult | None,
        error: StepExecutionError,
    ) -> PipelineFailure:
        index = error.step_index
        state.status = RunStatus.FAILED
        if result is not None:
            state.results.append(result)

        log = logger.bind(run_id=state.run_id, pipeline=state.pipeline.name)
        log.error("Step {} '{}' failed: {}", index, step.display_name, error)
        if result is not None and result.stderr:
            log.debug("Step {} stderr:\n{}", index, result.stderr_excerpt())

        await self._notify(
            StepFailed(pipeline=state.pipeline.name, index=index, name=step.display_name, error=error)
        )
        await self._notify(
            PipelineCompleted(
                name=state.pipeline.name,
                succeeded=False,
                duration_ms=state.timer.duration_ms,
                failed_step_index=index,
            )
        )
        return PipelineFailure(
            failed_step_index=index,
            step_result=result,
            cause=error,
            step_results=tuple(state.results),
        )

    async def _notify(self, event: Event) -> None:
        logger.trace(event.log_message())
        for observer in self._observers:
            try:
                outcome = observer(event)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                logger.warning(
                    "Observer {} failed on {}: {}",
                    getattr(observer, "__name__", type(observer).__name__),
                    type(event).__name__,
                    e,
                )


def _check_artifact(index: int, artifact_path: str) -> ArtifactMissingError | None:
    path = Path(artifact_path)
    if not path.exists():
        return ArtifactMissingError(index, artifact_path, "does not exist")
    if not path.is_file():
        return ArtifactMissingError(index, artifact_path, "is not a regular file")
    if path.stat().st_size == 0:
        return ArtifactMissingError(index, artifact_path, "is empty")
    return None
