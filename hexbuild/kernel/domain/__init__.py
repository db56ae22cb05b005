"""Domain layer exports for hexbuild."""

from hexbuild.kernel.domain.pipeline import Pipeline, validate
from hexbuild.kernel.domain.results import (
    PipelineFailure,
    PipelineResult,
    PipelineSuccess,
    RunStatus,
    StepResult,
)
from hexbuild.kernel.domain.step import ResolvedStep, Step

__all__ = [
    "Pipeline",
    "PipelineFailure",
    "PipelineResult",
    "PipelineSuccess",
    "ResolvedStep",
    "RunStatus",
    "Step",
    "StepResult",
    "validate",
]
