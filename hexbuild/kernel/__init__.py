"""hexbuild kernel: domain model, path resolution and the pipeline executor.

The kernel knows nothing about definition file formats; those live in
``hexbuild.compiler``.
"""

from hexbuild.kernel.context import ExecutionContext
from hexbuild.kernel.domain import (
    Pipeline,
    PipelineFailure,
    PipelineResult,
    PipelineSuccess,
    ResolvedStep,
    RunStatus,
    Step,
    StepResult,
    validate,
)
from hexbuild.kernel.orchestration import CancelToken, PipelineExecutor
from hexbuild.kernel.resolver import resolve

__all__ = [
    "CancelToken",
    "ExecutionContext",
    "Pipeline",
    "PipelineExecutor",
    "PipelineFailure",
    "PipelineResult",
    "PipelineSuccess",
    "ResolvedStep",
    "RunStatus",
    "Step",
    "StepResult",
    "resolve",
    "validate",
]
