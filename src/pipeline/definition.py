# src/pipeline/definition.py — v1
"""Pipeline definition: building, loading and validating stage sequences.

The default definition mirrors the site pipeline this project automates::

    Source -> Build -> Approval -> Deploy
    (SiteSource) (SiteSource -> StaticFiles)   (StaticFiles -> destination)
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml

from sitepipe.config.settings import Settings
from sitepipe.core.errors import DefinitionError
from sitepipe.core.models import SOURCE_ARTIFACT, PipelineDefinition, StageSpec

BUILD_OUTPUT = "StaticFiles"


def validate_definition(definition: PipelineDefinition) -> PipelineDefinition:
    """Check naming and artifact-flow rules.

    - stage names are unique;
    - each output artifact name is produced by exactly one stage;
    - each declared input is produced by an earlier stage or is the
      initial source artifact.

    Raises:
        DefinitionError: Listing every violated rule.
    """
    errors: list[str] = []
    if not definition.stages:
        errors.append("definition has no stages")

    seen_names: set[str] = set()
    available: set[str] = {SOURCE_ARTIFACT}
    producers: dict[str, str] = {}

    for spec in definition.stages:
        if spec.name in seen_names:
            errors.append(f"duplicate stage name {spec.name!r}")
        seen_names.add(spec.name)

        for name in spec.input_artifacts:
            if name not in available:
                errors.append(
                    f"stage {spec.name!r} consumes {name!r} before any stage produces it"
                )

        for name in spec.output_artifacts:
            if name in producers:
                errors.append(
                    f"artifact {name!r} produced by both {producers[name]!r} and {spec.name!r}"
                )
            producers[name] = spec.name
            available.add(name)

        if spec.kind == "approval" and spec.output_artifacts:
            errors.append(f"approval stage {spec.name!r} cannot produce artifacts")

    if errors:
        raise DefinitionError("; ".join(errors))
    return definition


def default_definition(settings: Settings) -> PipelineDefinition:
    """Source -> Build -> Approval -> Deploy, configured from settings."""
    approval_config: dict[str, Any] = {
        "custom_data": settings.approval_message,
        "external_link": settings.approval_external_link,
        "notification_target": settings.notification_target,
    }
    if settings.approval_timeout_hours:
        approval_config["timeout_hours"] = settings.approval_timeout_hours

    definition = PipelineDefinition(
        name=settings.pipeline_name,
        version=1,
        stages=[
            StageSpec(name="Source", kind="source", output_artifacts=[SOURCE_ARTIFACT]),
            StageSpec(
                name="Build",
                kind="build",
                input_artifacts=[SOURCE_ARTIFACT],
                output_artifacts=[BUILD_OUTPUT],
                config={"timeout_minutes": settings.build_timeout_minutes},
            ),
            StageSpec(name="Approval", kind="approval", config=approval_config),
            StageSpec(
                name="Deploy",
                kind="deploy",
                input_artifacts=[BUILD_OUTPUT],
                config={
                    "destination": settings.deploy_destination,
                    "extract": True,
                },
            ),
        ],
    )
    return validate_definition(definition)


def load_definition(path: Path) -> PipelineDefinition:
    """Load a definition from a JSON or YAML file and validate it."""
    path = Path(path)
    text = path.read_text(encoding="utf-8")
    if path.suffix in (".yml", ".yaml"):
        data = yaml.safe_load(text)
    else:
        data = json.loads(text)
    try:
        definition = PipelineDefinition.model_validate(data)
    except ValueError as e:
        raise DefinitionError(f"Invalid definition in {path}: {e}") from e
    return validate_definition(definition)


def resolve_definition(settings: Settings) -> PipelineDefinition:
    """The definition file if configured, otherwise the default pipeline."""
    if settings.definition_file is not None:
        return load_definition(settings.definition_file)
    return default_definition(settings)
