"""Lifecycle events emitted while a pipeline runs."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(slots=True)
class Event:
    """Base lifecycle event; records when it was emitted."""

    timestamp: datetime = field(default_factory=datetime.now, init=False)

    def log_message(self) -> str:
        """One-line description used for trace logging."""
        return f"{self.__class__.__name__} at {self.timestamp.isoformat()}"


@dataclass(slots=True)
class PipelineStarted(Event):
    """A pipeline run has started."""

    name: str
    total_steps: int
    target_dir: str

    def log_message(self) -> str:
        return f"Pipeline '{self.name}' started ({self.total_steps} steps, target {self.target_dir})"


@dataclass(slots=True)
class StepStarted(Event):
    """A step process is about to be spawned."""

    pipeline: str
    index: int
    name: str
    argv: tuple[str, ...]

    def log_message(self) -> str:
        return f"Step {self.index} '{self.name}' started: {' '.join(self.argv)}"


@dataclass(slots=True)
class StepCompleted(Event):
    """A step completed with an accepted exit status."""

    pipeline: str
    index: int
    name: str
    exit_code: int
    duration_ms: float

    def log_message(self) -> str:
        return (
            f"Step {self.index} '{self.name}' completed in {self.duration_ms / 1000:.2f}s "
            f"(exit {self.exit_code})"
        )


@dataclass(slots=True)
class StepFailed(Event):
    """A step failed; the run stops here."""

    pipeline: str
    index: int
    name: str
    error: Exception

    def log_message(self) -> str:
        return f"Step {self.index} '{self.name}' failed: {self.error}"


@dataclass(slots=True)
class PipelineCompleted(Event):
    """A pipeline run has settled (succeeded or failed)."""

    name: str
    succeeded: bool
    duration_ms: float
    artifact_path: str | None = None
    failed_step_index: int | None = None

    def log_message(self) -> str:
        if self.succeeded:
            return (
                f"Pipeline '{self.name}' succeeded in {self.duration_ms / 1000:.2f}s: "
                f"{self.artifact_path}"
            )
        return (
            f"Pipeline '{self.name}' failed at step {self.failed_step_index} "
            f"after {self.duration_ms / 1000:.2f}s"
        )
