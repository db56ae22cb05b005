"""Loguru setup shared by the executor, the loaders and the CLI.

Every record carries ``run_id`` and ``pipeline`` extras. The executor binds
them per run, so lines from concurrent runs can be told apart; outside a run
both read ``-``.

Formats
-------
``console``
    Plain single-line text, never colored.
``structured``
    Loguru's colored layout with source location (the default).
``json``
    One serialized record per line.
``rich``
    Routed through :class:`rich.logging.RichHandler`.

Examples
--------
>>> from hexbuild.kernel.logging import get_logger
>>> log = get_logger(__name__)
>>> log.bind(run_id="3f2a9c01d4e5").info("Step {} started", 0)

Switch format for a whole process::

    configure_logging(level="DEBUG", format="json", output_file="build.log")
"""

import os
import sys
from contextlib import suppress
from functools import lru_cache
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal

if TYPE_CHECKING:
    from loguru import Logger

from loguru import logger
from rich.logging import RichHandler

LogLevel = Literal["TRACE", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
LogFormat = Literal["console", "json", "structured", "rich"]

RUN_EXTRAS = {"run_id": "-", "pipeline": "-"}

_active_settings: dict[str, Any] | None = None
_owned_handlers: list[int] = []


def _stderr_sink(format: LogFormat, use_color: bool, include_timestamp: bool) -> dict[str, Any]:
    """Keyword arguments for ``logger.add`` writing the chosen format to stderr."""
    if format == "rich":
        handler = RichHandler(
            rich_tracebacks=True,
            markup=False,
            show_path=False,
            show_time=include_timestamp,
        )
        return {"sink": handler, "format": "[{extra[run_id]}] {message}"}

    if format == "json":
        return {"sink": sys.stderr, "serialize": True}

    stamp = "{time:YYYY-MM-DD HH:mm:ss.SSS} " if include_timestamp else ""
    if format == "console":
        return {
            "sink": sys.stderr,
            "colorize": False,
            "format": stamp + "{level: <8} {extra[run_id]} {extra[pipeline]} | {message}",
        }

    colorize = use_color and sys.stderr.isatty()
    if colorize:
        stamp = f"<green>{stamp}</green>" if stamp else ""
        layout = (
            "<level>{level: <8}</level> <magenta>{extra[run_id]}</magenta> "
            "<cyan>{name}:{line}</cyan> | <level>{message}</level>"
        )
    else:
        layout = "{level: <8} {extra[run_id]} {name}:{line} | {message}"
    return {"sink": sys.stderr, "colorize": colorize, "format": stamp + layout}


def configure_logging(
    level: LogLevel = "INFO",
    format: LogFormat = "structured",
    output_file: str | Path | None = None,
    use_color: bool = True,
    include_timestamp: bool = True,
    force_reconfigure: bool = False,
    backtrace: bool = True,
    diagnose: bool = False,
) -> None:
    """Install hexbuild's log handlers, replacing any it installed before.

    Handlers added by other code (pytest, an embedding application) are left
    alone. Repeating a call with identical settings does nothing.

    Parameters
    ----------
    level : LogLevel
        Minimum level for every handler
    format : LogFormat
        Layout of the stderr handler; see the module docstring
    output_file : str | Path | None
        Also append serialized JSON records here (rotated at 10 MB)
    use_color : bool
        Color the ``structured`` layout when stderr is a terminal
    include_timestamp : bool
        Prefix lines with a timestamp
    force_reconfigure : bool
        Reinstall handlers even if the settings are unchanged
    backtrace, diagnose : bool
        Passed to loguru; ``diagnose`` prints local variables, which may
        include step environments, so it is off by default
    """
    global _active_settings

    settings = {
        "level": level,
        "format": format,
        "output_file": str(output_file) if output_file else None,
        "use_color": use_color,
        "include_timestamp": include_timestamp,
        "backtrace": backtrace,
        "diagnose": diagnose,
    }
    if settings == _active_settings and not force_reconfigure:
        return

    if _active_settings is None:
        # Loguru's own stderr handler would duplicate every line
        with suppress(ValueError):
            logger.remove(0)
        logger.configure(extra=RUN_EXTRAS)

    while _owned_handlers:
        with suppress(ValueError):
            logger.remove(_owned_handlers.pop())

    common = {"level": level, "backtrace": backtrace, "diagnose": diagnose}
    _owned_handlers.append(
        logger.add(**_stderr_sink(format, use_color, include_timestamp), **common)
    )

    if output_file:
        path = Path(output_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        _owned_handlers.append(
            logger.add(path, serialize=True, rotation="10 MB", retention=5, **common)
        )

    _active_settings = settings


@lru_cache(maxsize=256)
def get_logger(name: str) -> "Logger":
    """Return a logger bound to ``name`` (usually ``__name__``).

    The first call configures logging from ``HEXBUILD_LOG_LEVEL`` and
    ``HEXBUILD_LOG_FORMAT`` unless :func:`configure_logging` already ran.
    """
    if _active_settings is None:
        configure_logging(
            level=os.getenv("HEXBUILD_LOG_LEVEL", "INFO").upper(),  # type: ignore[arg-type]
            format=os.getenv("HEXBUILD_LOG_FORMAT", "structured").lower(),  # type: ignore[arg-type]
        )
    return logger.bind(module=name)
