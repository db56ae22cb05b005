"""hexbuild - declarative build pipeline executor.

Loads an ordered list of external tool invocations, validates it, runs each
step as a child process with ``${symbol}`` path substitution, stops at the
first failure and checks the declared artifact.
"""

try:
    from importlib.metadata import version

    __version__ = version("hexbuild")
except Exception:
    __version__ = "0.0.0.dev0"  # Fallback for source checkouts

from hexbuild.compiler.definition_loader import DefinitionLoader, load_pipeline
from hexbuild.kernel.context import ExecutionContext
from hexbuild.kernel.domain import (
    Pipeline,
    PipelineFailure,
    PipelineResult,
    PipelineSuccess,
    RunStatus,
    Step,
    StepResult,
    validate,
)
from hexbuild.kernel.exceptions import (
    ArtifactMissingError,
    CancelledError,
    HexBuildError,
    MalformedDefinitionError,
    MalformedStepError,
    NonZeroExitError,
    SpawnError,
    StepTimeoutError,
    UnresolvedPathError,
    ValidationError,
)
from hexbuild.kernel.orchestration import CancelToken, PipelineExecutor
from hexbuild.kernel.pipeline_runner import PipelineRunner
from hexbuild.kernel.resolver import resolve

__all__ = [
    "__version__",
    # Domain
    "ExecutionContext",
    "Pipeline",
    "PipelineFailure",
    "PipelineResult",
    "PipelineSuccess",
    "RunStatus",
    "Step",
    "StepResult",
    "resolve",
    "validate",
    # Execution
    "CancelToken",
    "PipelineExecutor",
    "PipelineRunner",
    # Loading
    "DefinitionLoader",
    "load_pipeline",
    # Errors
    "ArtifactMissingError",
    "CancelledError",
    "HexBuildError",
    "MalformedDefinitionError",
    "MalformedStepError",
    "NonZeroExitError",
    "SpawnError",
    "StepTimeoutError",
    "UnresolvedPathError",
    "ValidationError",
]
