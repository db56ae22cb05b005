"""Configuration data models for hexbuild."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from hexbuild.kernel.exceptions import ValidationError


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Logging configuration for hexbuild.

    Attributes
    ----------
    level : str, default="INFO"
        Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    format : str, default="structured"
        Output format (console, json, structured, rich)
    output_file : str | None, default=None
        Optional file path to write JSON logs to
    use_color : bool, default=True
        Use ANSI color codes (auto-disabled for non-TTY)
    include_timestamp : bool, default=True
        Include timestamp in log output

    Examples
    --------
    TOML configuration:

    ```toml
    [tool.hexbuild.logging]
    level = "DEBUG"
    format = "rich"
    ```

    Environment variable overrides:

    ```bash
    export HEXBUILD_LOG_LEVEL=DEBUG
    export HEXBUILD_LOG_FORMAT=json
    export HEXBUILD_LOG_FILE=/var/log/hexbuild/build.log
    ```
    """

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["console", "json", "structured", "rich"] = "structured"
    output_file: str | None = None
    use_color: bool = True
    include_timestamp: bool = True


@dataclass(frozen=True, slots=True)
class ExecutorConfig:
    """Executor defaults.

    Attributes
    ----------
    default_step_timeout : float | None
        Seconds a step may run when it declares no timeout. None means no limit.
    target_dir : str | None
        Target directory used when neither the caller nor the pipeline sets one.
    terminate_grace : float
        Seconds between SIGTERM and SIGKILL when a run is cancelled.
    env : dict[str, str]
        Environment overrides applied to every step.
    """

    default_step_timeout: float | None = None
    target_dir: str | None = None
    terminate_grace: float = 5.0
    env: dict[str, str] = field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        """Validate executor settings.

        Raises
        ------
        ValidationError
            If a timeout is not positive
        """
        if self.default_step_timeout is not None and self.default_step_timeout <= 0:
            raise ValidationError(
                "default_step_timeout", "must be positive", self.default_step_timeout
            )
        if self.terminate_grace <= 0:
            raise ValidationError("terminate_grace", "must be positive", self.terminate_grace)


@dataclass(slots=True)
class HexBuildConfig:
    """Complete hexbuild configuration.

    Examples
    --------
    TOML configuration in pyproject.toml:

    ```toml
    [tool.hexbuild.logging]
    level = "DEBUG"

    [tool.hexbuild.executor]
    default_step_timeout = 600
    target_dir = "target"

    [tool.hexbuild.executor.env]
    RUSTFLAGS = "-C link-arg=-s"
    ```
    """

    logging: LoggingConfig = field(default_factory=LoggingConfig)
    executor: ExecutorConfig = field(default_factory=ExecutorConfig)
