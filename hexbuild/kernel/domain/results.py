"""Domain models for step and pipeline outcomes.

Exactly one run of a pipeline produces exactly one PipelineResult: either a
:class:`PipelineSuccess` or a :class:`PipelineFailure`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from hexbuild.kernel.exceptions import StepExecutionError

# Bytes of stderr kept when a failure is rendered for reporting
STDERR_EXCERPT_BYTES = 4096


class RunStatus(StrEnum):
    """Lifecycle status of a pipeline run."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class StepResult:
    """Outcome of one step process.

    ``exit_code`` is ``None`` when the process could not be spawned. A negative
    value is the signal that killed the process (POSIX).
    """

    step_index: int
    step_name: str
    command: str
    arguments: tuple[str, ...]
    exit_code: int | None
    stdout: bytes = b""
    stderr: bytes = b""
    duration_ms: float = 0.0

    def stderr_excerpt(self, limit: int = STDERR_EXCERPT_BYTES) -> str:
        """Decode the tail of stderr for diagnostics."""
        tail = self.stderr[-limit:] if len(self.stderr) > limit else self.stderr
        return tail.decode("utf-8", errors="replace")

    def to_dict(self) -> dict[str, Any]:
        return {
            "step_index": self.step_index,
            "step_name": self.step_name,
            "command": self.command,
            "arguments": list(self.arguments),
            "exit_code": self.exit_code,
            "duration_ms": round(self.duration_ms, 2),
        }


@dataclass(frozen=True, slots=True)
class PipelineSuccess:
    """All steps completed and the artifact exists and is non-empty."""

    artifact_path: str
    step_results: tuple[StepResult, ...] = field(default_factory=tuple)

    @property
    def succeeded(self) -> bool:
        return True

    @property
    def status(self) -> RunStatus:
        return RunStatus.SUCCEEDED

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "artifact_path": self.artifact_path,
            "steps": [result.to_dict() for result in self.step_results],
        }


@dataclass(frozen=True, slots=True)
class PipelineFailure:
    """A step failed; no later step was started.

    Attributes
    ----------
    failed_step_index : int
        Index of the step that failed
    step_result : StepResult | None
        The failing step's captured outcome (``None`` if nothing was recorded)
    cause : StepExecutionError
        The typed reason (SpawnError, NonZeroExitError, StepTimeoutError, ...)
    step_results : tuple[StepResult, ...]
        Results of every step that ran, including the failing one
    """

    failed_step_index: int
    step_result: StepResult | None
    cause: StepExecutionError
    step_results: tuple[StepResult, ...] = field(default_factory=tuple)

    @property
    def succeeded(self) -> bool:
        return False

    @property
    def status(self) -> RunStatus:
        return RunStatus.FAILED

    @property
    def stderr_excerpt(self) -> str:
        return self.step_result.stderr_excerpt() if self.step_result is not None else ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": False,
            "failed_step_index": self.failed_step_index,
            "error_type": type(self.cause).__name__,
            "error": str(self.cause),
            "stderr": self.stderr_excerpt,
            "steps": [result.to_dict() for result in self.step_results],
        }


PipelineResult = PipelineSuccess | PipelineFailure
