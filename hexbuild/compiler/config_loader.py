"""Configuration loader for hexbuild.

Settings come from one file, then environment variables win.

File discovery, first match wins:

1. the path passed by the caller (``hexbuild --config``),
2. ``HEXBUILD_CONFIG_PATH``,
3. the nearest ``pyproject.toml`` with a ``[tool.hexbuild]`` table, searching
   the current directory and its parents.

A file may be a ``kind: Config`` YAML manifest, a ``pyproject.toml``, or a
flat TOML file with ``[logging]`` / ``[executor]`` tables. String values may
reference ``${VAR}`` environment variables.

Environment overrides
---------------------
================================  =====================================
``HEXBUILD_LOG_LEVEL``            ``logging.level``
``HEXBUILD_LOG_FORMAT``           ``logging.format``
``HEXBUILD_LOG_FILE``             ``logging.output_file``
``HEXBUILD_LOG_COLOR``            ``logging.use_color`` (boolean)
``HEXBUILD_LOG_TIMESTAMP``        ``logging.include_timestamp`` (boolean)
``HEXBUILD_STEP_TIMEOUT``         ``executor.default_step_timeout``
================================  =====================================
"""

from __future__ import annotations

import os
import re
import tomllib
from collections.abc import Callable
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml

from hexbuild.kernel.config.models import ExecutorConfig, HexBuildConfig, LoggingConfig
from hexbuild.kernel.exceptions import ConfigurationError, ValidationError
from hexbuild.kernel.logging import get_logger

logger = get_logger(__name__)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("console", "json", "structured", "rich")

_BOOLEAN_WORDS = {
    "true": True,
    "1": True,
    "yes": True,
    "on": True,
    "enabled": True,
    "false": False,
    "0": False,
    "no": False,
    "off": False,
    "disabled": False,
}


def _parse_bool_env(value: str) -> bool:
    """Interpret an environment variable as a boolean.

    Raises
    ------
    ValueError
        If value is not one of the recognised words
    """
    try:
        return _BOOLEAN_WORDS[value.strip().lower()]
    except KeyError:
        raise ValueError(
            f"Invalid boolean value: {value!r}. Expected one of: {sorted(_BOOLEAN_WORDS)}"
        ) from None


def _parse_seconds_env(value: str) -> float:
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"expected a number of seconds, got {value!r}") from None


# env var -> (section, key, parser, fatal on a bad value)
_ENV_OVERRIDES: dict[str, tuple[str, str, Callable[[str], Any], bool]] = {
    "HEXBUILD_LOG_LEVEL": ("logging", "level", str.upper, True),
    "HEXBUILD_LOG_FORMAT": ("logging", "format", str.lower, True),
    "HEXBUILD_LOG_FILE": ("logging", "output_file", str, True),
    "HEXBUILD_LOG_COLOR": ("logging", "use_color", _parse_bool_env, False),
    "HEXBUILD_LOG_TIMESTAMP": ("logging", "include_timestamp", _parse_bool_env, False),
    "HEXBUILD_STEP_TIMEOUT": ("executor", "default_step_timeout", _parse_seconds_env, True),
}


@lru_cache(maxsize=32)
def _load_and_parse_cached(path_str: str) -> HexBuildConfig:
    """Parse a config file once per absolute path."""
    return ConfigLoader()._load_and_parse(Path(path_str))


class ConfigLoader:
    """Finds, reads and parses hexbuild configuration files."""

    ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")

    def load_config_file(self, path: str | Path | None = None) -> HexBuildConfig:
        """Load configuration from an explicit or discovered file.

        Raises
        ------
        FileNotFoundError
            If ``path`` does not exist, or nothing was discovered
        ConfigurationError
            If the file content is invalid
        """
        config_path = self._find_config_file(path)
        return _load_and_parse_cached(str(config_path.absolute()))

    def _load_and_parse(self, config_path: Path) -> HexBuildConfig:
        logger.debug("Loading configuration from {}", config_path)
        if config_path.suffix in (".yaml", ".yml"):
            section = self._read_yaml_manifest(config_path)
        else:
            section = self._read_toml_section(config_path)
        return self._parse_config(self._substitute_env_vars(section))

    def _read_yaml_manifest(self, config_path: Path) -> dict[str, Any]:
        try:
            document = yaml.safe_load(config_path.read_text(encoding="utf-8"))
        except yaml.YAMLError as e:
            raise ConfigurationError(config_path.name, f"invalid YAML: {e}") from e

        if not isinstance(document, dict) or document.get("kind") != "Config":
            found = document.get("kind") if isinstance(document, dict) else type(document).__name__
            raise ConfigurationError(
                config_path.name, f"YAML config must use 'kind: Config' (got {found!r})"
            )

        spec = document.get("spec") or {}
        if not isinstance(spec, dict):
            raise ConfigurationError(config_path.name, "'spec' must be a mapping")
        return spec

    def _read_toml_section(self, config_path: Path) -> dict[str, Any]:
        try:
            document = tomllib.loads(config_path.read_text(encoding="utf-8"))
        except tomllib.TOMLDecodeError as e:
            raise ConfigurationError(config_path.name, f"invalid TOML: {e}") from e

        section = _tool_section(document)
        if section is not None:
            return section
        if config_path.name == "pyproject.toml":
            logger.debug("No [tool.hexbuild] in {}, using defaults", config_path)
            return {}
        return document

    def _find_config_file(self, path: str | Path | None) -> Path:
        if path:
            explicit = Path(path)
            if not explicit.exists():
                raise FileNotFoundError(f"Configuration file not found: {explicit}")
            return explicit

        if env_path := os.getenv("HEXBUILD_CONFIG_PATH"):
            from_env = Path(env_path)
            if from_env.exists():
                logger.debug("Using config from HEXBUILD_CONFIG_PATH: {}", from_env)
                return from_env
            logger.warning("HEXBUILD_CONFIG_PATH points to a missing file: {}", from_env)

        cwd = Path.cwd()
        for directory in (cwd, *cwd.parents):
            candidate = directory / "pyproject.toml"
            if candidate.is_file() and _declares_hexbuild(candidate):
                return candidate

        raise FileNotFoundError(
            "No configuration file found. Pass --config, set HEXBUILD_CONFIG_PATH "
            "or add [tool.hexbuild] to pyproject.toml"
        )

    def _substitute_env_vars(self, data: Any) -> Any:
        """Replace ``${VAR}`` in every string; unknown variables stay as written."""
        match data:
            case str():
                return self.ENV_VAR_PATTERN.sub(
                    lambda m: os.environ.get(m.group(1), m.group(0)), data
                )
            case dict():
                return {key: self._substitute_env_vars(value) for key, value in data.items()}
            case list():
                return [self._substitute_env_vars(item) for item in data]
            case _:
                return data

    def _parse_config(self, data: dict[str, Any]) -> HexBuildConfig:
        sections: dict[str, dict[str, Any]] = {}
        for name in ("logging", "executor"):
            raw = data.get(name) or {}
            if not isinstance(raw, dict):
                raise ConfigurationError(name, "section must be a table/mapping")
            sections[name] = dict(raw)

        _apply_env_overrides(sections)
        return HexBuildConfig(
            logging=self._parse_logging_config(sections["logging"]),
            executor=self._parse_executor_config(sections["executor"]),
        )

    def _parse_logging_config(self, values: dict[str, Any]) -> LoggingConfig:
        level = str(values.get("level", "INFO")).upper()
        if level not in LOG_LEVELS:
            raise ConfigurationError("logging", f"unknown level {level!r}, expected {LOG_LEVELS}")
        log_format = str(values.get("format", "structured")).lower()
        if log_format not in LOG_FORMATS:
            raise ConfigurationError(
                "logging", f"unknown format {log_format!r}, expected {LOG_FORMATS}"
            )
        return LoggingConfig(
            level=level,  # type: ignore[arg-type]
            format=log_format,  # type: ignore[arg-type]
            output_file=values.get("output_file"),
            use_color=_flag(values, "use_color"),
            include_timestamp=_flag(values, "include_timestamp"),
        )

    def _parse_executor_config(self, values: dict[str, Any]) -> ExecutorConfig:
        env = values.get("env") or {}
        if not isinstance(env, dict):
            raise ConfigurationError("executor", "'env' must be a mapping")

        timeout = values.get("default_step_timeout")
        try:
            return ExecutorConfig(
                default_step_timeout=None if timeout is None else float(timeout),
                target_dir=values.get("target_dir"),
                terminate_grace=float(values.get("terminate_grace", 5.0)),
                env={str(key): str(value) for key, value in env.items()},
            )
        except (TypeError, ValueError, ValidationError) as e:
            raise ConfigurationError("executor", str(e)) from e


def _flag(values: dict[str, Any], key: str, default: bool = True) -> bool:
    """Read a logging boolean; strings (e.g. after ``${VAR}`` substitution) are parsed."""
    value = values.get(key, default)
    if isinstance(value, str):
        try:
            return _parse_bool_env(value)
        except ValueError as e:
            raise ConfigurationError("logging", f"{key}: {e}") from e
    return bool(value)


def _tool_section(document: dict[str, Any]) -> dict[str, Any] | None:
    tool = document.get("tool")
    if isinstance(tool, dict) and isinstance(tool.get("hexbuild"), dict):
        return tool["hexbuild"]
    return None


def _declares_hexbuild(pyproject: Path) -> bool:
    try:
        return _tool_section(tomllib.loads(pyproject.read_text(encoding="utf-8"))) is not None
    except (OSError, tomllib.TOMLDecodeError):
        return False


def _apply_env_overrides(sections: dict[str, dict[str, Any]]) -> None:
    for variable, (section, key, parse, fatal) in _ENV_OVERRIDES.items():
        raw = os.getenv(variable)
        if not raw:
            continue
        try:
            sections[section][key] = parse(raw)
        except ValueError as e:
            if fatal:
                raise ConfigurationError(section, f"{variable}: {e}") from e
            logger.warning("Ignoring {}: {}", variable, e)
            continue
        logger.debug("{} overrides {}.{}", variable, section, key)


def load_config(path: str | Path | None = None) -> HexBuildConfig:
    """Load configuration, falling back to defaults when nothing is discovered.

    Parameters
    ----------
    path : str | Path | None
        Explicit configuration file; a missing explicit file is an error

    Raises
    ------
    FileNotFoundError
        If ``path`` is given and does not exist
    ConfigurationError
        If the configuration is invalid
    """
    try:
        return ConfigLoader().load_config_file(path)
    except FileNotFoundError:
        if path:
            raise
        logger.debug("No configuration file found, using defaults")
        return get_default_config()


def clear_config_cache() -> None:
    """Forget parsed files so edits are picked up (tests, long-lived processes)."""
    _load_and_parse_cached.cache_clear()


def get_default_config() -> HexBuildConfig:
    """Built-in defaults with environment overrides applied."""
    return ConfigLoader()._parse_config({})
