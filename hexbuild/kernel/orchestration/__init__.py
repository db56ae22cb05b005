"""Pipeline execution: executor, child process handling and lifecycle events."""

from hexbuild.kernel.orchestration.executor import PipelineExecutor
from hexbuild.kernel.orchestration.process_runner import CancelToken, ProcessOutcome

__all__ = ["CancelToken", "PipelineExecutor", "ProcessOutcome"]
