"""Tests for PipelineExecutor: ordering, fail-fast, timeouts, cancellation."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import pytest

from hexbuild.kernel.domain.pipeline import Pipeline
from hexbuild.kernel.domain.results import PipelineFailure, PipelineSuccess, RunStatus
from hexbuild.kernel.domain.step import Step
from hexbuild.kernel.exceptions import (
    ArtifactMissingError,
    CancelledError,
    ConfigurationError,
    NonZeroExitError,
    SpawnError,
    StepTimeoutError,
    ValidationError,
)
from hexbuild.kernel.orchestration.events import (
    PipelineCompleted,
    PipelineStarted,
    StepCompleted,
    StepFailed,
    StepStarted,
)
from hexbuild.kernel.orchestration.executor import PipelineExecutor
from hexbuild.kernel.orchestration.process_runner import CancelToken

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals")


@pytest.fixture
def executor() -> PipelineExecutor:
    return PipelineExecutor()


@pytest.fixture
def wasm_like(tool_step, tmp_path):
    """Five fake steps mirroring compile → gc → optimize → toText → toBinary.

    ``toText`` fails with status 1; ``toBinary`` would drop a marker file.
    """
    marker = tmp_path / "to_binary_ran"

    def make(*, to_text_fails: bool = True) -> Pipeline:
        to_text = (
            tool_step("fail", "1", "wat: invalid section", name="toText")
            if to_text_fails
            else tool_step("write", "${wat}", name="toText")
        )
        return Pipeline(
            steps=[
                tool_step("write", "${compiled}", "asm", name="compile"),
                tool_step("copy", "${compiled}", "${artifact}", name="gc", produces_artifact=True),
                tool_step("write", "${artifact}", "asm-opt", name="optimize"),
                to_text,
                tool_step("write", str(marker), name="toBinary", produces_artifact=True),
            ],
            artifact="${target_dir}/module.wasm",
            name="wasm",
            working_dir=str(tmp_path),
            paths={
                "compiled": "${target_dir}/release/module.wasm",
                "wat": "${target_dir}/module.wat",
            },
        )

    make.marker = marker
    return make


class TestSuccessfulRuns:
    """Tests for runs where every step succeeds."""

    @pytest.mark.asyncio
    async def test_single_step(self, executor, tool_step, tmp_path) -> None:
        pipeline = Pipeline(
            steps=[tool_step("write", "${artifact}")],
            artifact="out.bin",
            working_dir=str(tmp_path),
        )
        result = await executor.run(pipeline)

        assert isinstance(result, PipelineSuccess)
        assert result.succeeded
        assert result.status == RunStatus.SUCCEEDED
        assert result.artifact_path == str(tmp_path.resolve() / "out.bin")
        assert Path(result.artifact_path).read_text() == "x"
        assert len(result.step_results) == 1
        assert result.step_results[0].exit_code == 0

    @pytest.mark.asyncio
    async def test_steps_run_in_order(self, executor, tool_step, tmp_path) -> None:
        """A later step sees what an earlier step wrote."""
        pipeline = Pipeline(
            steps=[
                tool_step("write", "${target_dir}/a.txt", "first"),
                tool_step("copy", "${target_dir}/a.txt", "${artifact}"),
            ],
            artifact="${target_dir}/out.txt",
            working_dir=str(tmp_path),
        )
        result = await executor.run(pipeline)

        assert result.succeeded
        assert Path(result.artifact_path).read_text() == "first"
        assert [r.step_index for r in result.step_results] == [0, 1]

    @pytest.mark.asyncio
    async def test_target_dir_created(self, executor, tool_step, tmp_path) -> None:
        pipeline = Pipeline(
            steps=[tool_step("write", "${artifact}")],
            artifact="${target_dir}/out.bin",
            target_dir="deep/nested/target",
            working_dir=str(tmp_path),
        )
        result = await executor.run(pipeline)

        assert result.succeeded
        assert (tmp_path / "deep" / "nested" / "target").is_dir()

    @pytest.mark.asyncio
    async def test_target_dir_override(self, executor, tool_step, tmp_path) -> None:
        pipeline = Pipeline(
            steps=[tool_step("write", "${artifact}")],
            artifact="${target_dir}/out.bin",
            working_dir=str(tmp_path),
        )
        result = await executor.run(pipeline, target_dir=tmp_path / "custom")

        assert result.artifact_path == str(tmp_path / "custom" / "out.bin")

    @pytest.mark.asyncio
    async def test_existing_target_dir_not_cleaned(self, executor, tool_step, tmp_path) -> None:
        stale = tmp_path / "target" / "stale.o"
        stale.parent.mkdir()
        stale.write_text("old")
        pipeline = Pipeline(
            steps=[tool_step("write", "${artifact}")],
            artifact="${target_dir}/out.bin",
            working_dir=str(tmp_path),
        )
        await executor.run(pipeline)

        assert stale.read_text() == "old"

    @pytest.mark.asyncio
    async def test_steps_run_in_working_dir(self, executor, tool_step, tmp_path) -> None:
        pipeline = Pipeline(
            steps=[tool_step("cwd", "${artifact}")],
            artifact="cwd.txt",
            working_dir=str(tmp_path),
        )
        result = await executor.run(pipeline)

        assert Path(result.artifact_path).read_text() == str(tmp_path.resolve())

    @pytest.mark.asyncio
    async def test_output_captured_separately(self, executor, tool_step, tmp_path) -> None:
        pipeline = Pipeline(
            steps=[
                tool_step("echo", "hello", "world"),
                tool_step("write", "${artifact}"),
            ],
            artifact="out.bin",
            working_dir=str(tmp_path),
        )
        result = await executor.run(pipeline)

        first = result.step_results[0]
        assert first.stdout.strip() == b"hello world"
        assert first.stderr.strip() == b"warn"
        assert first.duration_ms >= 0

    @pytest.mark.asyncio
    async def test_accepted_exit_codes(self, executor, tool_step, tmp_path) -> None:
        pipeline = Pipeline(
            steps=[
                tool_step("fail", "3", "soft warning", accepted_exit_codes={0, 3}),
                tool_step("write", "${artifact}"),
            ],
            artifact="out.bin",
            working_dir=str(tmp_path),
        )
        result = await executor.run(pipeline)

        assert result.succeeded
        assert result.step_results[0].exit_code == 3

    @pytest.mark.asyncio
    async def test_step_env(self, executor, tool_step, tmp_path) -> None:
        pipeline = Pipeline(
            steps=[tool_step("env", "OUT_DIR", "${artifact}", env={"OUT_DIR": "${target_dir}"})],
            artifact="env.txt",
            working_dir=str(tmp_path),
        )
        result = await executor.run(pipeline)

        assert Path(result.artifact_path).read_text() == str(tmp_path.resolve() / "target")

    @pytest.mark.asyncio
    async def test_executor_env_overridden_by_step(self, tool_step, tmp_path) -> None:
        executor = PipelineExecutor(env={"MODE": "executor", "KEEP": "yes"})
        pipeline = Pipeline(
            steps=[
                tool_step("env", "KEEP", "${target_dir}/keep.txt"),
                tool_step("env", "MODE", "${artifact}", env={"MODE": "step"}),
            ],
            artifact="mode.txt",
            working_dir=str(tmp_path),
        )
        result = await executor.run(pipeline)

        assert (tmp_path / "target" / "keep.txt").read_text() == "yes"
        assert Path(result.artifact_path).read_text() == "step"

    @pytest.mark.asyncio
    async def test_run_twice_is_independent(self, executor, wasm_like) -> None:
        pipeline = wasm_like(to_text_fails=False)
        first = await executor.run(pipeline)
        second = await executor.run(pipeline)

        assert first.succeeded and second.succeeded
        assert first.artifact_path == second.artifact_path
        assert len(second.step_results) == 5
        assert pipeline.steps[0].name == "compile"

    def test_run_sync(self, executor, tool_step, tmp_path) -> None:
        pipeline = Pipeline(
            steps=[tool_step("write", "${artifact}")],
            artifact="out.bin",
            working_dir=str(tmp_path),
        )
        result = executor.run_sync(pipeline)

        assert result.succeeded


class TestFailFast:
    """Tests for the first failing step stopping the run."""

    @pytest.mark.asyncio
    async def test_end_to_end_failure_at_to_text(self, executor, wasm_like) -> None:
        result = await executor.run(wasm_like())

        assert isinstance(result, PipelineFailure)
        assert not result.succeeded
        assert result.status == RunStatus.FAILED
        assert result.failed_step_index == 3
        assert isinstance(result.cause, NonZeroExitError)
        assert result.cause.exit_code == 1
        assert result.step_result is not None
        assert result.step_result.exit_code == 1
        assert "wat: invalid section" in result.stderr_excerpt
        assert [r.step_name for r in result.step_results] == [
            "compile",
            "gc",
            "optimize",
            "toText",
        ]
        assert not wasm_like.marker.exists()

    @pytest.mark.asyncio
    async def test_first_step_fails(self, executor, tool_step, tmp_path) -> None:
        marker = tmp_path / "second_ran"
        pipeline = Pipeline(
            steps=[
                tool_step("fail", "2", "boom"),
                tool_step("write", str(marker), produces_artifact=True),
            ],
            artifact="out.bin",
            working_dir=str(tmp_path),
        )
        result = await executor.run(pipeline)

        assert result.failed_step_index == 0
        assert result.cause.exit_code == 2
        assert not marker.exists()
        assert len(result.step_results) == 1

    @pytest.mark.asyncio
    async def test_spawn_error(self, executor, tool_step, tmp_path) -> None:
        marker = tmp_path / "never"
        pipeline = Pipeline(
            steps=[
                Step(str(tmp_path / "no-such-tool"), ["${artifact}"]),
                tool_step("write", str(marker), produces_artifact=True),
            ],
            artifact="out.bin",
            working_dir=str(tmp_path),
        )
        result = await executor.run(pipeline)

        assert result.failed_step_index == 0
        assert isinstance(result.cause, SpawnError)
        assert isinstance(result.cause.original_error, OSError)
        assert result.step_result is not None
        assert result.step_result.exit_code is None
        assert not marker.exists()

    @pytest.mark.asyncio
    async def test_nul_byte_in_argument_is_spawn_error(self, executor, tmp_path) -> None:
        pipeline = Pipeline(
            steps=[Step(sys.executable, ["-c", "pass", "a\0b", "${artifact}"])],
            artifact="out.bin",
            working_dir=str(tmp_path),
        )
        result = await executor.run(pipeline)

        assert isinstance(result, PipelineFailure)
        assert isinstance(result.cause, SpawnError)
        assert isinstance(result.cause.original_error, ValueError)
        assert result.step_result.exit_code is None

    @pytest.mark.asyncio
    async def test_missing_artifact_after_last_step(self, executor, tool_step, tmp_path) -> None:
        pipeline = Pipeline(
            steps=[tool_step("noop", "${artifact}")],
            artifact="out.bin",
            working_dir=str(tmp_path),
        )
        result = await executor.run(pipeline)

        assert result.failed_step_index == 0
        assert isinstance(result.cause, ArtifactMissingError)
        assert "does not exist" in str(result.cause)
        assert result.step_result.exit_code == 0

    @pytest.mark.asyncio
    async def test_empty_artifact(self, executor, tool_step, tmp_path) -> None:
        pipeline = Pipeline(
            steps=[tool_step("empty", "${artifact}")],
            artifact="out.bin",
            working_dir=str(tmp_path),
        )
        result = await executor.run(pipeline)

        assert isinstance(result.cause, ArtifactMissingError)
        assert "is empty" in str(result.cause)

    @pytest.mark.asyncio
    async def test_artifact_is_directory(self, executor, tool_step, tmp_path) -> None:
        pipeline = Pipeline(
            steps=[tool_step("noop", "${artifact}")],
            artifact="${target_dir}",
            working_dir=str(tmp_path),
        )
        result = await executor.run(pipeline)

        assert isinstance(result.cause, ArtifactMissingError)
        assert "not a regular file" in str(result.cause)

    @pytest.mark.asyncio
    async def test_produces_artifact_checked_immediately(
        self, executor, tool_step, tmp_path
    ) -> None:
        marker = tmp_path / "later"
        pipeline = Pipeline(
            steps=[
                tool_step("noop", name="gc", produces_artifact=True),
                tool_step("write", str(marker)),
                tool_step("write", "${artifact}"),
            ],
            artifact="out.bin",
            working_dir=str(tmp_path),
        )
        result = await executor.run(pipeline)

        assert result.failed_step_index == 0
        assert isinstance(result.cause, ArtifactMissingError)
        assert not marker.exists()


class TestValidationBeforeRun:
    """Tests for errors raised before anything is spawned."""

    @pytest.mark.asyncio
    async def test_empty_pipeline(self, executor, tmp_path) -> None:
        pipeline = Pipeline(steps=[], artifact="out.bin", working_dir=str(tmp_path))
        with pytest.raises(ValidationError):
            await executor.run(pipeline)
        assert not (tmp_path / "target").exists()

    @pytest.mark.asyncio
    async def test_undeclared_symbol(self, executor, tool_step, tmp_path) -> None:
        pipeline = Pipeline(
            steps=[tool_step("write", "${tmp_dir}/x", "${artifact}")],
            artifact="out.bin",
            working_dir=str(tmp_path),
        )
        with pytest.raises(ValidationError, match="tmp_dir"):
            await executor.run(pipeline)

    @pytest.mark.asyncio
    async def test_non_positive_timeout(self, executor, tool_step, tmp_path) -> None:
        pipeline = Pipeline(
            steps=[tool_step("write", "${artifact}")],
            artifact="out.bin",
            working_dir=str(tmp_path),
        )
        with pytest.raises(ValidationError):
            await executor.run(pipeline, timeout=0)

    @pytest.mark.asyncio
    async def test_target_dir_not_creatable(self, executor, tool_step, tmp_path) -> None:
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        pipeline = Pipeline(
            steps=[tool_step("write", "${artifact}")],
            artifact="out.bin",
            working_dir=str(tmp_path),
        )
        with pytest.raises(ConfigurationError):
            await executor.run(pipeline, target_dir=blocker / "sub")

    def test_invalid_executor_settings(self) -> None:
        with pytest.raises(ConfigurationError):
            PipelineExecutor(default_step_timeout=0)
        with pytest.raises(ConfigurationError):
            PipelineExecutor(terminate_grace=-1)


@posix_only
class TestTimeouts:
    """Tests for step timeouts."""

    @pytest.mark.asyncio
    async def test_step_timeout_kills_process(
        self, executor, tool_step, tmp_path, pid_alive
    ) -> None:
        pid_file = tmp_path / "pid"
        marker = tmp_path / "after"
        pipeline = Pipeline(
            steps=[
                tool_step("sleep", "30", str(pid_file), timeout=2.0),
                tool_step("write", str(marker), produces_artifact=True),
            ],
            artifact="out.bin",
            working_dir=str(tmp_path),
        )
        result = await executor.run(pipeline)

        assert result.failed_step_index == 0
        assert isinstance(result.cause, StepTimeoutError)
        assert isinstance(result.cause, TimeoutError)
        assert result.cause.timeout == 2.0
        assert result.step_result.exit_code != 0
        assert result.step_result.duration_ms < 20_000
        assert not pid_alive(int(pid_file.read_text()))
        assert not marker.exists()

    @pytest.mark.asyncio
    async def test_timeout_not_held_up_by_background_child(self, tmp_path) -> None:
        """A forked helper still holding stdout must not keep the run waiting."""
        executor = PipelineExecutor(terminate_grace=1.0)
        pipeline = Pipeline(
            steps=[
                Step("sh", ["-c", "sleep 20 & sleep 20", "sh", "${artifact}"], timeout=1.0),
            ],
            artifact="out.bin",
            working_dir=str(tmp_path),
        )
        result = await asyncio.wait_for(executor.run(pipeline), 8)

        assert isinstance(result.cause, StepTimeoutError)
        assert result.step_result.exit_code == -9

    @pytest.mark.asyncio
    async def test_run_timeout_applies_to_steps(self, executor, tool_step, tmp_path) -> None:
        pipeline = Pipeline(
            steps=[tool_step("sleep", "30"), tool_step("write", "${artifact}")],
            artifact="out.bin",
            working_dir=str(tmp_path),
        )
        result = await executor.run(pipeline, timeout=0.5)

        assert isinstance(result.cause, StepTimeoutError)
        assert result.cause.timeout == 0.5

    @pytest.mark.asyncio
    async def test_default_step_timeout(self, tool_step, tmp_path) -> None:
        executor = PipelineExecutor(default_step_timeout=0.5)
        pipeline = Pipeline(
            steps=[tool_step("sleep", "30"), tool_step("write", "${artifact}")],
            artifact="out.bin",
            working_dir=str(tmp_path),
        )
        result = await executor.run(pipeline)

        assert isinstance(result.cause, StepTimeoutError)

    @pytest.mark.asyncio
    async def test_step_timeout_wins(self, tool_step, tmp_path) -> None:
        executor = PipelineExecutor(default_step_timeout=0.2)
        pipeline = Pipeline(
            steps=[
                tool_step("sleep", "0.5", timeout=10),
                tool_step("write", "${artifact}"),
            ],
            artifact="out.bin",
            working_dir=str(tmp_path),
        )
        result = await executor.run(pipeline)

        assert result.succeeded


@posix_only
class TestCancellation:
    """Tests for cooperative cancellation."""

    @pytest.mark.asyncio
    async def test_cancel_token_terminates_step(
        self, executor, tool_step, tmp_path, wait_for_file, pid_alive
    ) -> None:
        pid_file = tmp_path / "pid"
        marker = tmp_path / "after"
        pipeline = Pipeline(
            steps=[
                tool_step("sleep", "30", str(pid_file)),
                tool_step("write", str(marker), produces_artifact=True),
            ],
            artifact="out.bin",
            working_dir=str(tmp_path),
        )
        token = CancelToken()
        task = asyncio.create_task(executor.run(pipeline, cancel_token=token))
        pid = int(await wait_for_file(pid_file))

        token.cancel("user stop")
        result = await asyncio.wait_for(task, 15)

        assert result.failed_step_index == 0
        assert isinstance(result.cause, CancelledError)
        assert result.cause.reason == "user stop"
        assert not pid_alive(pid)
        assert not marker.exists()

    @pytest.mark.asyncio
    async def test_executor_cancel(
        self, executor, tool_step, tmp_path, wait_for_file
    ) -> None:
        pid_file = tmp_path / "pid"
        pipeline = Pipeline(
            steps=[tool_step("sleep", "30", str(pid_file)), tool_step("write", "${artifact}")],
            artifact="out.bin",
            working_dir=str(tmp_path),
        )
        task = asyncio.create_task(executor.run(pipeline))
        await wait_for_file(pid_file)
        assert executor.active_runs == 1

        executor.cancel("shutdown")
        result = await asyncio.wait_for(task, 15)

        assert isinstance(result.cause, CancelledError)
        assert executor.active_runs == 0

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self, executor, tool_step, tmp_path) -> None:
        marker = tmp_path / "ran"
        pipeline = Pipeline(
            steps=[tool_step("write", str(marker), produces_artifact=True)],
            artifact="out.bin",
            working_dir=str(tmp_path),
        )
        token = CancelToken()
        token.cancel()
        result = await executor.run(pipeline, cancel_token=token)

        assert isinstance(result.cause, CancelledError)
        assert result.step_result is None
        assert not marker.exists()

    @pytest.mark.asyncio
    async def test_sigterm_ignored_escalates_to_kill(
        self, tool_step, tmp_path, wait_for_file, pid_alive
    ) -> None:
        executor = PipelineExecutor(terminate_grace=0.3)
        pid_file = tmp_path / "pid"
        pipeline = Pipeline(
            steps=[tool_step("ignore-term", "30", str(pid_file)), tool_step("write", "${artifact}")],
            artifact="out.bin",
            working_dir=str(tmp_path),
        )
        token = CancelToken()
        task = asyncio.create_task(executor.run(pipeline, cancel_token=token))
        pid = int(await wait_for_file(pid_file))

        token.cancel()
        result = await asyncio.wait_for(task, 15)

        assert isinstance(result.cause, CancelledError)
        assert result.step_result.exit_code == -9
        assert not pid_alive(pid)

    @pytest.mark.asyncio
    async def test_cancel_not_held_up_by_background_child(self, tmp_path) -> None:
        executor = PipelineExecutor(terminate_grace=1.0)
        pipeline = Pipeline(
            steps=[Step("sh", ["-c", "sleep 20 & sleep 20", "sh", "${artifact}"])],
            artifact="out.bin",
            working_dir=str(tmp_path),
        )
        token = CancelToken()
        asyncio.get_running_loop().call_later(0.5, token.cancel, "stop")
        result = await asyncio.wait_for(executor.run(pipeline, cancel_token=token), 8)

        assert isinstance(result.cause, CancelledError)
        assert result.cause.reason == "stop"

    @pytest.mark.asyncio
    async def test_task_cancellation_kills_child(
        self, executor, tool_step, tmp_path, wait_for_file, pid_alive
    ) -> None:
        pid_file = tmp_path / "pid"
        pipeline = Pipeline(
            steps=[tool_step("sleep", "30", str(pid_file)), tool_step("write", "${artifact}")],
            artifact="out.bin",
            working_dir=str(tmp_path),
        )
        task = asyncio.create_task(executor.run(pipeline))
        pid = int(await wait_for_file(pid_file))

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert not pid_alive(pid)
        assert executor.active_runs == 0


class TestConcurrentRuns:
    """Tests for several runs sharing one executor."""

    @pytest.mark.asyncio
    async def test_runs_do_not_share_state(self, executor, wasm_like, tmp_path) -> None:
        pipeline = wasm_like(to_text_fails=False)
        first, second = await asyncio.gather(
            executor.run(pipeline, target_dir=tmp_path / "a"),
            executor.run(pipeline, target_dir=tmp_path / "b"),
        )

        assert first.succeeded and second.succeeded
        assert first.artifact_path == str(tmp_path / "a" / "module.wasm")
        assert second.artifact_path == str(tmp_path / "b" / "module.wasm")
        assert len(first.step_results) == len(second.step_results) == 5

    @pytest.mark.asyncio
    async def test_failure_does_not_affect_other_run(self, executor, wasm_like, tmp_path) -> None:
        ok, failed = await asyncio.gather(
            executor.run(wasm_like(to_text_fails=False), target_dir=tmp_path / "ok"),
            executor.run(wasm_like(), target_dir=tmp_path / "bad"),
        )

        assert ok.succeeded
        assert failed.failed_step_index == 3

    @posix_only
    @pytest.mark.asyncio
    async def test_cancel_reaches_run_after_token_sharer_finishes(
        self, executor, tool_step, tmp_path, wait_for_file
    ) -> None:
        pid_file = tmp_path / "pid"
        slow = Pipeline(
            steps=[tool_step("sleep", "30", str(pid_file)), tool_step("write", "${artifact}")],
            artifact="out.bin",
            working_dir=str(tmp_path),
        )
        fast = Pipeline(
            steps=[tool_step("write", "${artifact}")],
            artifact="out.bin",
            working_dir=str(tmp_path),
        )
        token = CancelToken()
        slow_task = asyncio.create_task(
            executor.run(slow, target_dir=tmp_path / "slow", cancel_token=token)
        )
        await wait_for_file(pid_file)

        fast_result = await executor.run(fast, target_dir=tmp_path / "fast", cancel_token=token)
        assert fast_result.succeeded
        assert executor.active_runs == 1

        executor.cancel("shutdown")
        result = await asyncio.wait_for(slow_task, 15)

        assert isinstance(result.cause, CancelledError)
        assert executor.active_runs == 0


class TestObservers:
    """Tests for lifecycle event delivery."""

    @pytest.mark.asyncio
    async def test_event_sequence_on_success(self, tool_step, tmp_path) -> None:
        events = []
        executor = PipelineExecutor(observers=[events.append])
        pipeline = Pipeline(
            steps=[tool_step("noop"), tool_step("write", "${artifact}", name="emit")],
            artifact="out.bin",
            name="demo",
            working_dir=str(tmp_path),
        )
        await executor.run(pipeline)

        assert [type(e) for e in events] == [
            PipelineStarted,
            StepStarted,
            StepCompleted,
            StepStarted,
            StepCompleted,
            PipelineCompleted,
        ]
        assert events[0].total_steps == 2
        assert events[3].name == "emit"
        assert events[-1].succeeded
        assert events[-1].artifact_path == str(tmp_path.resolve() / "out.bin")

    @pytest.mark.asyncio
    async def test_event_sequence_on_failure(self, wasm_like) -> None:
        events = []

        async def observer(event) -> None:
            events.append(event)

        executor = PipelineExecutor(observers=[observer])
        await executor.run(wasm_like())

        failed = [e for e in events if isinstance(e, StepFailed)]
        assert len(failed) == 1
        assert failed[0].index == 3
        assert isinstance(failed[0].error, NonZeroExitError)
        assert isinstance(events[-1], PipelineCompleted)
        assert events[-1].failed_step_index == 3
        assert not any(isinstance(e, StepStarted) and e.index == 4 for e in events)

    @pytest.mark.asyncio
    async def test_started_event_carries_resolved_argv(self, tool_step, tmp_path) -> None:
        events = []
        executor = PipelineExecutor()
        executor.add_observer(events.append)
        pipeline = Pipeline(
            steps=[tool_step("write", "${artifact}")],
            artifact="out.bin",
            working_dir=str(tmp_path),
        )
        await executor.run(pipeline)

        started = next(e for e in events if isinstance(e, StepStarted))
        assert started.argv[-1] == str(tmp_path.resolve() / "out.bin")

    @pytest.mark.asyncio
    async def test_failing_observer_does_not_break_run(self, tool_step, tmp_path) -> None:
        def broken(event) -> None:
            raise RuntimeError("observer bug")

        executor = PipelineExecutor(observers=[broken])
        pipeline = Pipeline(
            steps=[tool_step("write", "${artifact}")],
            artifact="out.bin",
            working_dir=str(tmp_path),
        )
        result = await executor.run(pipeline)

        assert result.succeeded
