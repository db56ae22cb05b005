"""Pipeline definition loader: JSON/YAML documents → validated Pipeline.

Two document shapes are accepted.

Bare shape::

    {
      "steps": [
        {"command": "cargo", "arguments": ["build", "--release", "--target", "wasm32-unknown-unknown"]},
        {"command": "wasm-gc", "arguments": ["${compiled}", "${artifact}"]}
      ],
      "artifact": "${target_dir}/module.wasm"
    }

Manifest shape::

    apiVersion: hexbuild/v1
    kind: BuildPipeline
    metadata:
      name: wasm-module
    spec:
      steps: [...]
      artifact: ${target_dir}/module.wasm

Unknown fields are ignored so newer definitions still load.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from hexbuild.kernel.domain.pipeline import Pipeline
from hexbuild.kernel.domain.step import Step
from hexbuild.kernel.exceptions import MalformedDefinitionError, MalformedStepError
from hexbuild.kernel.logging import get_logger

logger = get_logger(__name__)

DefinitionFormat = Literal["json", "yaml"]

MANIFEST_KINDS = frozenset({"BuildPipeline", "Pipeline"})


class StepDefinition(BaseModel):
    """Schema of one entry of ``steps``."""

    model_config = ConfigDict(extra="ignore")

    command: str = Field(description="Program name on PATH or absolute path")
    arguments: list[str] = Field(default_factory=list, description="Ordered arguments")
    name: str | None = Field(default=None, description="Display name")
    accepted_exit_codes: list[int] = Field(
        default_factory=lambda: [0], description="Exit statuses treated as success"
    )
    produces_artifact: bool = Field(
        default=False, description="Check the artifact right after this step"
    )
    timeout: float | None = Field(default=None, description="Per-step timeout in seconds")
    env: dict[str, str] = Field(default_factory=dict, description="Environment overrides")


class PipelineDefinition(BaseModel):
    """Schema of a bare pipeline definition (or a manifest's ``spec``).

    ``steps`` entries are kept raw here and validated one by one so errors can
    name the offending step index.
    """

    model_config = ConfigDict(extra="ignore")

    steps: list[Any] = Field(description="Ordered step definitions")
    artifact: str = Field(description="Path template of the final artifact")
    name: str | None = Field(default=None, description="Pipeline display name")
    target_dir: str = Field(default="target", description="Shared scratch/output directory")
    working_dir: str | None = Field(default=None, description="Directory steps run in")
    paths: dict[str, str] = Field(default_factory=dict, description="Extra path symbols")


class DefinitionLoader:
    """Parses pipeline definitions and validates the resulting Pipeline.

    Parameters
    ----------
    validate : bool
        Validate each loaded pipeline (default True). Validation never spawns
        processes or touches the filesystem.
    """

    def __init__(self, *, validate: bool = True) -> None:
        self._validate = validate

    def load(self, path: str | Path) -> Pipeline:
        """Load a definition file; the format follows the suffix (``.json`` or YAML).

        Raises
        ------
        MalformedDefinitionError
            If the file is unreadable, unparsable or misses required fields
        MalformedStepError
            If a step entry is not well-formed
        ValidationError
            If the parsed pipeline fails validation
        """
        path = Path(path)
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise MalformedDefinitionError(f"cannot read file: {e}", source=str(path)) from e

        fmt: DefinitionFormat = "json" if path.suffix.lower() == ".json" else "yaml"
        pipeline = self.load_string(text, fmt=fmt, source=str(path), default_name=path.stem)
        logger.debug("Loaded pipeline '{}' ({} steps) from {}", pipeline.name, len(pipeline), path)
        return pipeline

    def load_string(
        self,
        text: str,
        *,
        fmt: DefinitionFormat = "yaml",
        source: str | None = None,
        default_name: str | None = None,
    ) -> Pipeline:
        """Parse a definition from text."""
        try:
            data = json.loads(text) if fmt == "json" else yaml.safe_load(text)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise MalformedDefinitionError(f"invalid {fmt.upper()}: {e}", source=source) from e
        return self.load_dict(data, source=source, default_name=default_name)

    def load_dict(
        self,
        data: Any,
        *,
        source: str | None = None,
        default_name: str | None = None,
    ) -> Pipeline:
        """Build a Pipeline from an already-parsed document."""
        if not isinstance(data, dict):
            raise MalformedDefinitionError(
                f"expected a mapping at the top level, got {type(data).__name__}", source=source
            )

        body, manifest_name = _unwrap_manifest(data, source)
        try:
            definition = PipelineDefinition.model_validate(body)
        except PydanticValidationError as e:
            raise MalformedDefinitionError(_describe(e), source=source) from e

        steps = tuple(_build_step(position, raw) for position, raw in enumerate(definition.steps))
        pipeline = Pipeline(
            steps=steps,
            artifact=definition.artifact,
            name=definition.name or manifest_name or default_name or "pipeline",
            target_dir=definition.target_dir,
            working_dir=definition.working_dir,
            paths=definition.paths,
        )
        if self._validate:
            pipeline.validate()
        return pipeline


def load_pipeline(path: str | Path, *, validate: bool = True) -> Pipeline:
    """Load and validate a pipeline definition file."""
    return DefinitionLoader(validate=validate).load(path)


def _unwrap_manifest(data: dict[str, Any], source: str | None) -> tuple[dict[str, Any], str | None]:
    if "kind" not in data:
        return data, None

    kind = data.get("kind")
    if kind not in MANIFEST_KINDS:
        raise MalformedDefinitionError(
            f"unsupported kind {kind!r}, expected one of {sorted(MANIFEST_KINDS)}", source=source
        )
    spec = data.get("spec")
    if not isinstance(spec, dict):
        raise MalformedDefinitionError("manifest 'spec' must be a mapping", source=source)

    metadata = data.get("metadata") or {}
    name = metadata.get("name") if isinstance(metadata, dict) else None
    return spec, name if isinstance(name, str) else None


def _build_step(position: int, raw: Any) -> Step:
    if not isinstance(raw, dict):
        raise MalformedStepError(f"expected a mapping, got {type(raw).__name__}", position)
    try:
        definition = StepDefinition.model_validate(raw)
    except PydanticValidationError as e:
        raise MalformedStepError(_describe(e), position) from e

    try:
        return Step(
            command=definition.command,
            arguments=tuple(definition.arguments),
            name=definition.name,
            accepted_exit_codes=frozenset(definition.accepted_exit_codes),
            produces_artifact=definition.produces_artifact,
            timeout=definition.timeout,
            env=definition.env,
        )
    except MalformedStepError as e:
        raise MalformedStepError(e.reason, position) from e


def _describe(error: PydanticValidationError) -> str:
    """Render pydantic errors as ``field: message`` pairs."""
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "<root>"
        if item["type"] == "missing":
            parts.append(f"missing required field '{location}'")
        else:
            parts.append(f"{location}: {item['msg']}")
    return "; ".join(parts)
