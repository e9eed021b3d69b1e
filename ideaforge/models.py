"""Pydantic v2 models for IdeaForge.

Defines the project specification a caller submits, the aggregate artifact
bundle the orchestrator returns, and the suggestion payloads produced by the
wizard endpoints.  Also hosts the request validators that turn raw JSON bodies
into validated models with field-specific error messages.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from .errors import InvalidInputError


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class FeatureCategory(str, Enum):
    """Broad grouping for a suggested or selected feature."""
    CORE = "core"
    UX = "ux"
    TECHNICAL = "technical"
    SECURITY = "security"


class StepType(str, Enum):
    """Kind of work an implementation step represents."""
    SETUP = "setup"
    IMPLEMENTATION = "implementation"
    TESTING = "testing"
    OPTIMIZATION = "optimization"


# ---------------------------------------------------------------------------
# Project specification
# ---------------------------------------------------------------------------

class StackChoice(BaseModel):
    """The technology stack the caller picked."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(..., min_length=1, description="Descriptive stack name")
    framework: Optional[str] = Field(default=None, description="Main framework")
    additional_tech: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("additionalTech", "additional_tech"),
        serialization_alias="additionalTech",
    )
    storage: Optional[str] = Field(default=None, description="Data storage solution")


class ImplementationStep(BaseModel):
    """One step of a feature's implementation plan."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    title: str = Field(default="")
    description: str = Field(default="")
    code_snippet: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("codeSnippet", "code_snippet"),
        serialization_alias="codeSnippet",
    )
    type: StepType = Field(default=StepType.IMPLEMENTATION)


class Feature(BaseModel):
    """A feature the generated project should implement."""
    model_config = ConfigDict(frozen=True)

    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    category: Optional[FeatureCategory] = Field(default=None)
    steps: tuple[ImplementationStep, ...] = Field(default_factory=tuple)


class ProjectSpec(BaseModel):
    """Everything a generation run needs to know about the project.

    Owned by the caller and threaded explicitly through each orchestration
    call; immutable for the duration of a run.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    idea: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("projectIdea", "idea"),
        serialization_alias="projectIdea",
    )
    stack: StackChoice
    features: tuple[Feature, ...] = Field(default_factory=tuple)


# ---------------------------------------------------------------------------
# Artifact bundle
# ---------------------------------------------------------------------------

class ProjectStructure(BaseModel):
    directory: str


class DependenciesConfiguration(BaseModel):
    requirements_file: str


class SetupInstructions(BaseModel):
    instructions: list[str]


class ImplementationPlan(BaseModel):
    steps: list[str]


class FeatureNotes(BaseModel):
    features: list[str]


class ArtifactBundle(BaseModel):
    """Aggregate result of one bundle orchestration run.

    Exactly one field per bundle stage; unknown keys are rejected so a bundle
    can never carry more or fewer sections than the stage set defines.
    """
    model_config = ConfigDict(extra="forbid")

    project_structure: ProjectStructure
    dependencies_configuration: DependenciesConfiguration
    setup_instructions: SetupInstructions
    implementation_steps: ImplementationPlan
    main_project_files: dict[str, str]
    additional_features_best_practices: FeatureNotes
    readme_content: str


# ---------------------------------------------------------------------------
# Wizard suggestions
# ---------------------------------------------------------------------------

class StackSuggestion(BaseModel):
    """A candidate technology stack proposed for a project idea."""
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[int] = None
    name: str
    framework: str = ""
    additional_tech: str = Field(
        default="",
        validation_alias=AliasChoices("additionalTech", "additional_tech"),
        serialization_alias="additionalTech",
    )
    storage: str = ""
    description: str = ""
    recommended: bool = False


class StackSuggestions(BaseModel):
    stacks: list[StackSuggestion]


class FeatureSuggestion(BaseModel):
    """A feature recommended for the project."""
    title: str
    description: str = ""
    category: Optional[FeatureCategory] = None


class FeatureSuggestions(BaseModel):
    features: list[FeatureSuggestion]


class StepSuggestions(BaseModel):
    steps: list[ImplementationStep]


class Subtask(BaseModel):
    """A small, actionable piece of a larger task.

    Missing fields are filled with placeholders rather than rejected.
    """
    title: str = "Untitled Subtask"
    description: str = "No description provided"
    info: str = "No additional information available"


class SubtaskSuggestions(BaseModel):
    subtasks: list[Subtask]


class TaskRef(BaseModel):
    """The task a subtask breakdown is requested for."""
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)


# ---------------------------------------------------------------------------
# Request validation
# ---------------------------------------------------------------------------

def _is_blank(value: Any) -> bool:
    return not isinstance(value, str) or not value.strip()


def _first_validation_error(exc: ValidationError) -> InvalidInputError:
    error = exc.errors()[0]
    location = ".".join(str(part) for part in error.get("loc", ())) or "body"
    return InvalidInputError(location, f"Invalid value for {location}: {error.get('msg', 'invalid')}")


def require_object(payload: Any) -> dict[str, Any]:
    """Return *payload* if it is a JSON object, else raise ``InvalidInputError``."""
    if not isinstance(payload, dict):
        raise InvalidInputError("body", "Request body must be a JSON object")
    return payload


def validate_idea(payload: dict[str, Any]) -> str:
    idea = payload.get("projectIdea")
    if _is_blank(idea):
        raise InvalidInputError("projectIdea", "Project idea is required")
    return idea.strip()


def validate_stack(payload: dict[str, Any]) -> StackChoice:
    stack = payload.get("stack")
    if not isinstance(stack, dict) or _is_blank(stack.get("name")):
        raise InvalidInputError("stack", "Tech stack with name is required")
    try:
        return StackChoice.model_validate(stack)
    except ValidationError as exc:
        raise _first_validation_error(exc) from exc


def validate_feature(raw: Any, position: int) -> Feature:
    """Validate one feature object; *position* is 1-based for messages."""
    label = f"Feature {position}"
    if not isinstance(raw, dict):
        raise InvalidInputError(f"features.{position}", f"{label} must be an object")
    if _is_blank(raw.get("title")):
        raise InvalidInputError(f"features.{position}.title", f"{label} is missing a title")
    if _is_blank(raw.get("description")):
        raise InvalidInputError(
            f"features.{position}.description", f"{label} is missing a description"
        )
    if not isinstance(raw.get("steps"), list):
        raise InvalidInputError(
            f"features.{position}.steps", f"{label} must have a steps array"
        )
    try:
        return Feature.model_validate(raw)
    except ValidationError as exc:
        error = _first_validation_error(exc)
        raise InvalidInputError(f"features.{position}.{error.field}", error.message) from exc


def validate_project_payload(payload: Any) -> ProjectSpec:
    """Turn a raw request body into a ``ProjectSpec``.

    Checks run in a fixed order and the first violation is reported; no
    attempt is made to collect every problem in one pass.

    Raises:
        InvalidInputError: With a field-specific, human-readable message.
    """
    body = require_object(payload)
    idea = validate_idea(body)
    stack = validate_stack(body)

    features = body.get("features")
    if not isinstance(features, list) or not features:
        raise InvalidInputError("features", "At least one feature is required")

    validated = [validate_feature(raw, index) for index, raw in enumerate(features, start=1)]
    return ProjectSpec(idea=idea, stack=stack, features=validated)
