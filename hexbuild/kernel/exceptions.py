"""Core exception hierarchy for hexbuild.

All hexbuild exceptions inherit from HexBuildError for easy exception handling.
Errors fall into two groups:

- **Load/validate-time** errors are raised directly to the caller before any
  process is spawned.
- **Run-time** errors (``StepExecutionError`` subclasses) abort the remaining
  steps and are carried inside a ``PipelineFailure`` result.
"""

from __future__ import annotations

# ============================================================================
# Base Exception
# ============================================================================


class HexBuildError(Exception):
    """Base exception for all hexbuild errors.

    Catch this to handle all hexbuild errors.
    """

    pass


# ============================================================================
# Configuration & Definition Errors
# ============================================================================


class ConfigurationError(HexBuildError):
    """Raised when configuration is invalid or missing.

    Examples
    --------
    Example usage::

        raise ConfigurationError("executor", "default_step_timeout must be positive")
    """

    def __init__(self, component: str, reason: str) -> None:
        """Initialize configuration error.

        Args
        ----
            component: Name of the component with invalid configuration
            reason: Explanation of what's wrong
        """
        super().__init__(f"Configuration error in '{component}': {reason}")
        self.component = component
        self.reason = reason


class MalformedDefinitionError(HexBuildError):
    """Raised when a pipeline definition document cannot be parsed.

    Examples
    --------
    Example usage::

        raise MalformedDefinitionError("missing required field 'artifact'", source="wasm.yaml")
    """

    def __init__(self, reason: str, source: str | None = None) -> None:
        self.reason = reason
        self.source = source
        where = f" in {source}" if source else ""
        super().__init__(f"Malformed pipeline definition{where}: {reason}")


class MalformedStepError(HexBuildError):
    """Raised when a step description is not well-formed.

    Examples
    --------
    Example usage::

        raise MalformedStepError("command must be a non-empty string", step_index=2)
    """

    def __init__(self, reason: str, step_index: int | None = None) -> None:
        self.reason = reason
        self.step_index = step_index
        where = f" at index {step_index}" if step_index is not None else ""
        super().__init__(f"Malformed step{where}: {reason}")


class UnresolvedPathError(HexBuildError):
    """Raised when a path template references an unknown symbol."""

    def __init__(self, symbol: str, template: str) -> None:
        self.symbol = symbol
        self.template = template
        super().__init__(f"Unresolved placeholder '${{{symbol}}}' in {template!r}")


class ValidationError(HexBuildError):
    """Raised when a pipeline fails validation.

    Examples
    --------
    Example usage::

        raise ValidationError("steps", "at least one step is required")
    """

    def __init__(self, field: str, constraint: str, value: object = None) -> None:
        """Initialize validation error.

        Args
        ----
            field: Name of the field that failed validation
            constraint: Description of the validation constraint
            value: The invalid value (optional)
        """
        if value is not None:
            msg = f"Validation failed for '{field}': {constraint} (got {value!r})"
        else:
            msg = f"Validation failed for '{field}': {constraint}"
        super().__init__(msg)
        self.field = field
        self.constraint = constraint
        self.value = value


# ============================================================================
# Execution Errors
# ============================================================================


class StepExecutionError(HexBuildError):
    """Base exception for failures of a running step."""

    def __init__(self, step_index: int, message: str) -> None:
        self.step_index = step_index
        super().__init__(f"Step {step_index} failed: {message}")


class SpawnError(StepExecutionError):
    """Raised when a step's process cannot be started (missing executable, NUL in argv)."""

    def __init__(self, step_index: int, command: str, original_error: Exception) -> None:
        self.command = command
        self.original_error = original_error
        super().__init__(step_index, f"cannot spawn {command!r}: {original_error}")


class NonZeroExitError(StepExecutionError):
    """Raised when a step's process exits with a rejected status."""

    def __init__(self, step_index: int, command: str, exit_code: int) -> None:
        self.command = command
        self.exit_code = exit_code
        super().__init__(step_index, f"{command!r} exited with status {exit_code}")


class StepTimeoutError(StepExecutionError, TimeoutError):
    """Raised when a step's process exceeds its timeout and is killed."""

    def __init__(self, step_index: int, command: str, timeout: float) -> None:
        self.command = command
        self.timeout = timeout
        super().__init__(step_index, f"{command!r} timed out after {timeout:g}s")


class CancelledError(StepExecutionError):
    """Raised when a run is cancelled while a step is in flight.

    Distinct from ``asyncio.CancelledError``: this one is a settled pipeline
    outcome, not task cancellation.
    """

    def __init__(self, step_index: int, reason: str | None = None) -> None:
        self.reason = reason
        super().__init__(step_index, f"cancelled ({reason or 'no reason given'})")


class ArtifactMissingError(StepExecutionError):
    """Raised when the declared artifact is absent or empty after a step."""

    def __init__(self, step_index: int, artifact_path: str, reason: str) -> None:
        self.artifact_path = artifact_path
        super().__init__(step_index, f"artifact {artifact_path!r} {reason}")


# ============================================================================
# Façade Errors
# ============================================================================


class PipelineRunnerError(HexBuildError):
    """Error during pipeline runner usage (e.g. definition file not found)."""


__all__ = [
    # Base
    "HexBuildError",
    # Configuration & definition
    "ConfigurationError",
    "MalformedDefinitionError",
    "MalformedStepError",
    "UnresolvedPathError",
    "ValidationError",
    # Execution
    "StepExecutionError",
    "SpawnError",
    "NonZeroExitError",
    "StepTimeoutError",
    "CancelledError",
    "ArtifactMissingError",
    # Façade
    "PipelineRunnerError",
]
