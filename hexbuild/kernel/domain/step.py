"""Step: immutable description of one external command."""

from __future__ import annotations

import os
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from hexbuild.kernel.exceptions import MalformedStepError
from hexbuild.kernel.resolver import resolve

DEFAULT_ACCEPTED_EXIT_CODES: frozenset[int] = frozenset({0})


@dataclass(frozen=True, slots=True)
class ResolvedStep:
    """A step with every placeholder substituted for one run."""

    command: str
    arguments: tuple[str, ...]
    env: Mapping[str, str] = field(default_factory=dict, hash=False)

    @property
    def argv(self) -> list[str]:
        return [self.command, *self.arguments]


@dataclass(frozen=True, slots=True)
class Step:
    """One external tool invocation.

    Attributes
    ----------
    command : str
        Program name (looked up on ``PATH``) or absolute path. May contain placeholders.
    arguments : tuple[str, ...]
        Ordered arguments; toolchains are order-sensitive so order is preserved.
    name : str | None
        Optional display name; defaults to the command's basename.
    accepted_exit_codes : frozenset[int]
        Exit statuses treated as success. Defaults to ``{0}``.
    produces_artifact : bool
        Check the pipeline artifact right after this step, not only after the last one.
    timeout : float | None
        Per-step timeout in seconds, overriding the executor default.
    env : Mapping[str, str]
        Environment overrides merged over the inherited environment.

    Examples
    --------
    >>> step = Step("wasm-opt", ["-Oz", "${artifact}", "-o", "${artifact}"])
    >>> step.display_name
    'wasm-opt'
    """

    command: str
    arguments: tuple[str, ...] = ()
    name: str | None = None
    accepted_exit_codes: frozenset[int] = DEFAULT_ACCEPTED_EXIT_CODES
    produces_artifact: bool = False
    timeout: float | None = None
    env: Mapping[str, str] = field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        """Validate and normalise fields.

        Raises
        ------
        MalformedStepError
            If any field is not well-formed
        """
        if not isinstance(self.command, str) or not self.command.strip():
            raise MalformedStepError("command must be a non-empty string")

        object.__setattr__(self, "arguments", _as_string_tuple(self.arguments))

        codes = self.accepted_exit_codes
        if isinstance(codes, int) or not isinstance(codes, Iterable):
            raise MalformedStepError("accepted_exit_codes must be a collection of integers")
        codes = frozenset(codes)
        if not codes:
            raise MalformedStepError("accepted_exit_codes cannot be empty")
        if not all(isinstance(c, int) and not isinstance(c, bool) for c in codes):
            raise MalformedStepError("accepted_exit_codes must contain only integers")
        object.__setattr__(self, "accepted_exit_codes", codes)

        if self.timeout is not None:
            if isinstance(self.timeout, bool) or not isinstance(self.timeout, int | float):
                raise MalformedStepError("timeout must be a number of seconds")
            if self.timeout <= 0:
                raise MalformedStepError(f"timeout must be positive (got {self.timeout!r})")

        if not isinstance(self.env, Mapping):
            raise MalformedStepError("env must be a mapping of strings")
        if not all(isinstance(k, str) and isinstance(v, str) for k, v in self.env.items()):
            raise MalformedStepError("env keys and values must be strings")
        object.__setattr__(self, "env", MappingProxyType(dict(self.env)))

    @property
    def display_name(self) -> str:
        """Human-readable label used in logs and reports."""
        return self.name or os.path.basename(self.command)

    def templates(self) -> list[str]:
        """All strings of this step that may carry placeholders."""
        return [self.command, *self.arguments, *self.env.values()]

    def resolve(self, context: Mapping[str, str]) -> ResolvedStep:
        """Substitute placeholders in command, arguments and env.

        Raises
        ------
        UnresolvedPathError
            If any template references a symbol missing from ``context``
        """
        return ResolvedStep(
            command=resolve(self.command, context),
            arguments=tuple(resolve(arg, context) for arg in self.arguments),
            env={key: resolve(value, context) for key, value in self.env.items()},
        )


def _as_string_tuple(arguments: Any) -> tuple[str, ...]:
    # A bare string would otherwise be split into characters
    if isinstance(arguments, str | bytes) or not isinstance(arguments, Iterable):
        raise MalformedStepError("arguments must be an ordered sequence of strings")
    if isinstance(arguments, set | frozenset | Mapping):
        raise MalformedStepError("arguments must be ordered (got an unordered collection)")
    result = tuple(arguments)
    for position, arg in enumerate(result):
        if not isinstance(arg, str):
            raise MalformedStepError(
                f"argument {position} must be a string (got {type(arg).__name__})"
            )
    return result
