"""Path template resolution for build steps.

Steps reference artifact locations by symbol rather than by literal path.
A template such as ``"${target_dir}/module.wasm"`` is resolved against the
run's :class:`~hexbuild.kernel.context.ExecutionContext`.

Syntax
------
- ``${name}`` is replaced with ``context[name]``
- ``$$`` produces a literal ``$``
- any other ``$`` is kept as-is

Examples
--------
>>> from hexbuild.kernel.resolver import resolve
>>> resolve("${target_dir}/out.wasm", {"target_dir": "/tmp/build"})
'/tmp/build/out.wasm'
>>> resolve("cost: $$5", {})
'cost: $5'
"""

from __future__ import annotations

import re
from collections.abc import Mapping

from hexbuild.kernel.exceptions import UnresolvedPathError

WORKING_DIR = "working_dir"
TARGET_DIR = "target_dir"
ARTIFACT = "artifact"

BUILTIN_SYMBOLS: tuple[str, ...] = (WORKING_DIR, TARGET_DIR, ARTIFACT)

_TOKEN_PATTERN = re.compile(r"\$\$|\$\{([^}]*)\}")
_SYMBOL_PATTERN = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


def resolve(template: str, context: Mapping[str, str]) -> str:
    """Substitute every ``${symbol}`` in ``template`` with its context value.

    Parameters
    ----------
    template : str
        String possibly containing placeholders
    context : Mapping[str, str]
        Symbol name to concrete value

    Returns
    -------
    str
        The resolved string

    Raises
    ------
    UnresolvedPathError
        If a placeholder names a symbol missing from ``context``
    """

    def replacer(match: re.Match[str]) -> str:
        if match.group(0) == "$$":
            return "$"
        symbol = match.group(1)
        if not _SYMBOL_PATTERN.fullmatch(symbol) or symbol not in context:
            raise UnresolvedPathError(symbol, template)
        return str(context[symbol])

    return _TOKEN_PATTERN.sub(replacer, template)


def find_placeholders(template: str) -> list[str]:
    """Return the symbols referenced by ``template``, in order of appearance."""
    return [m.group(1) for m in _TOKEN_PATTERN.finditer(template) if m.group(0) != "$$"]


__all__ = [
    "ARTIFACT",
    "BUILTIN_SYMBOLS",
    "TARGET_DIR",
    "WORKING_DIR",
    "find_placeholders",
    "resolve",
]
