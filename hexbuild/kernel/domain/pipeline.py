"""Pipeline: ordered steps plus a declared final artifact.

A Pipeline is created by deserializing a definition, validated once, then only
read. Running the same Pipeline value any number of times never mutates it.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from hexbuild.kernel.context.execution_context import ExecutionContext
from hexbuild.kernel.domain.step import Step
from hexbuild.kernel.exceptions import UnresolvedPathError, ValidationError
from hexbuild.kernel.resolver import BUILTIN_SYMBOLS, resolve


@dataclass(frozen=True, slots=True)
class Pipeline:
    """An ordered build pipeline.

    Attributes
    ----------
    steps : tuple[Step, ...]
        Steps run strictly in this order
    artifact : str
        Path template of the single output file
    name : str
        Display name
    target_dir : str
        Shared scratch/output directory template, created before step 0
    working_dir : str | None
        Directory the steps run in; ``None`` means the caller's current directory
    paths : Mapping[str, str]
        Extra named path symbols available to step templates
    """

    steps: tuple[Step, ...]
    artifact: str
    name: str = "pipeline"
    target_dir: str = "target"
    working_dir: str | None = None
    paths: Mapping[str, str] = field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "steps", tuple(self.steps))
        object.__setattr__(self, "paths", MappingProxyType(dict(self.paths)))

    def __len__(self) -> int:
        return len(self.steps)

    def __iter__(self) -> Iterator[Step]:
        return iter(self.steps)

    @property
    def last_index(self) -> int:
        return len(self.steps) - 1

    def validate(self) -> None:
        """Check the pipeline is well-formed. See :func:`validate`."""
        validate(self)


def validate(pipeline: Pipeline) -> None:
    """Validate a pipeline without touching the filesystem or spawning anything.

    Checks
    ------
    1. At least one step is present.
    2. The artifact, target directory and ``paths`` entries resolve, and no
       ``paths`` entry shadows a built-in symbol.
    3. Every step's command, arguments and env resolve against the declared
       context (no undeclared symbols).
    4. Some step is expected to produce or mutate the artifact: it either sets
       ``produces_artifact`` or mentions the artifact path in an argument.

    Calling it repeatedly yields the same outcome.

    Raises
    ------
    ValidationError
        On the first failed check; unresolved placeholders are chained as the cause
    """
    if not pipeline.steps:
        raise ValidationError("steps", "at least one step is required")

    for position, step in enumerate(pipeline.steps):
        if not isinstance(step, Step):
            raise ValidationError(f"steps[{position}]", "must be a Step", type(step).__name__)

    shadowed = sorted(set(pipeline.paths) & set(BUILTIN_SYMBOLS))
    if shadowed:
        raise ValidationError("paths", f"cannot redefine built-in symbols {shadowed}")

    try:
        context = ExecutionContext.declared(pipeline)
    except UnresolvedPathError as e:
        field_name = "artifact" if e.template == pipeline.artifact else "paths"
        raise ValidationError(field_name, f"path template does not resolve: {e}") from e

    resolved_steps = []
    for position, step in enumerate(pipeline.steps):
        try:
            resolved_steps.append(step.resolve(context))
        except UnresolvedPathError as e:
            raise ValidationError(
                f"steps[{position}]", f"'{step.display_name}' references undeclared symbol: {e}"
            ) from e

    # Steps may spell the artifact relative to working_dir or as an absolute path
    artifact_spellings = {context.artifact, resolve(pipeline.artifact, context)}
    touches_artifact = any(step.produces_artifact for step in pipeline.steps) or any(
        _mentions(spelling, resolved.arguments)
        for resolved in resolved_steps
        for spelling in artifact_spellings
    )
    if not touches_artifact:
        raise ValidationError(
            "artifact",
            "no step produces or mutates the declared artifact",
            pipeline.artifact,
        )


def _mentions(path: str, arguments: Iterable[str]) -> bool:
    # Substring match covers "--out=<path>" style flags
    return any(path in argument for argument in arguments)
