"""Generation stage definitions.

A stage is a named, pure mapping from a :class:`ProjectSpec` to a prompt,
tagged with the :class:`ResultKind` that selects its decoder.  The bundle is
produced by running every stage in :data:`BUNDLE_STAGES`; the full-project
stream uses :func:`build_full_project_prompt` instead.
"""

from __future__ import annotations

import textwrap
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .llm_client import Prompt
from .models import ProjectSpec
from .parser.artifacts import FILE_BOUNDARY, NO_OUTPUT, ResultKind


class StageName(str, Enum):
    """The closed set of bundle stages; values double as bundle keys."""
    PROJECT_STRUCTURE = "project_structure"
    DEPENDENCIES = "dependencies_configuration"
    SETUP_INSTRUCTIONS = "setup_instructions"
    IMPLEMENTATION_STEPS = "implementation_steps"
    PROJECT_FILES = "main_project_files"
    FEATURE_NOTES = "additional_features_best_practices"
    README = "readme_content"


@dataclass(frozen=True)
class GenerationStage:
    """One independent generation task.

    Attributes:
        name: Stage identifier and bundle key.
        kind: Decoder applied to the raw output.
        system: System-role instructions.
        build_user: Builds the user-role message from the project spec.
        envelope: Field the decoded result is wrapped in inside the bundle,
            or ``None`` to store it unwrapped.
        fallback: Sentinel used when a ``freeText`` stage returns nothing.
        requires_features: Whether the prompt lists the spec's features.
    """

    name: StageName
    kind: ResultKind
    system: str
    build_user: Callable[[ProjectSpec], str]
    envelope: str | None = None
    fallback: str = NO_OUTPUT
    requires_features: bool = False

    def build_prompt(self, spec: ProjectSpec) -> Prompt:
        return Prompt(system=self.system, user=self.build_user(spec))

    def wrap(self, decoded: Any) -> Any:
        """Place a decoded result in the stage's bundle envelope."""
        if self.envelope is None:
            return decoded
        return {self.envelope: decoded}


# ---------------------------------------------------------------------------
# Prompt fragments
# ---------------------------------------------------------------------------

def describe_stack(spec: ProjectSpec) -> str:
    lines = [f"Tech Stack: {spec.stack.name}"]
    if spec.stack.framework:
        lines.append(f"Framework: {spec.stack.framework}")
    return "\n".join(lines)


def describe_features(spec: ProjectSpec) -> str:
    return "\n".join(f"- {f.title}: {f.description}" for f in spec.features)


def _project_only(task: str) -> Callable[[ProjectSpec], str]:
    def build(spec: ProjectSpec) -> str:
        return f"{task}\nProject: {spec.idea}\n{describe_stack(spec)}"
    return build


def _project_with_features(task: str, suffix: str = "") -> Callable[[ProjectSpec], str]:
    def build(spec: ProjectSpec) -> str:
        text = (
            f"{task}\nProject: {spec.idea}\n{describe_stack(spec)}\n\n"
            f"Features:\n{describe_features(spec)}"
        )
        return f"{text}\n\n{suffix}" if suffix else text
    return build


# ---------------------------------------------------------------------------
# System prompts
# ---------------------------------------------------------------------------

_STRUCTURE_SYSTEM = textwrap.dedent("""\
    You are a software architect. Generate a clear and organized project structure following best practices for the given tech stack.
    Your response should be a clean directory tree structure without any explanations or markdown formatting.
    Use proper indentation with spaces or │ ├ └ characters.
    Do not include any other text besides the directory tree.""")

_DEPENDENCIES_SYSTEM = textwrap.dedent("""\
    You are a dependency manager expert. Generate a comprehensive list of dependencies with specific versions.
    Your response should be a valid package.json or requirements.txt file without any explanations or markdown.
    Include both production and development dependencies.
    Do not include any other text besides the dependency file contents.""")

_SETUP_SYSTEM = textwrap.dedent("""\
    You are a DevOps expert. Provide clear, step-by-step setup instructions.
    Your response should be a numbered list of setup steps.
    Each step should be clear and concise.
    Do not include any explanations or markdown formatting.
    Just return the numbered steps, one per line.""")

_PLAN_SYSTEM = "You are a technical project manager. Create a detailed implementation plan."

_FILES_SYSTEM = textwrap.dedent(f"""\
    You are an expert software developer. Generate production-ready code files.
    Your response should be a collection of code files separated by {FILE_BOUNDARY} markers.
    Each file should start with {FILE_BOUNDARY} followed by the file path on a new line.
    The actual code should follow on subsequent lines until the next file marker.
    Include proper error handling, logging, and documentation.
    Do not wrap code in quotes, backticks, or markdown code blocks.
    Do not include any explanations or markdown formatting.

    Example format:

    {FILE_BOUNDARY}
    src/index.js
    import App from './App';

    App.start();

    {FILE_BOUNDARY}
    src/App.js
    export default {{ start() {{ console.log('Hello World'); }} }};""")

_FEATURE_NOTES_SYSTEM = textwrap.dedent("""\
    You are a software architect. Document implemented features and best practices.
    Your response should be a bullet-pointed list of features and practices.
    Each point should be clear and concise.
    Do not include any explanations or markdown formatting.
    Just return the bullet points, one per line.""")

_README_SYSTEM = textwrap.dedent("""\
    You are a technical writer. Create a comprehensive README.md file.
    Your response must be valid markdown: # headers, fenced code blocks with
    language specifiers, inline code, lists, links, bold and italic text,
    tables, and blockquotes where useful.

    Include these sections in order:
    1. Project Title (h1)
    2. Project Description
    3. Features List
    4. Prerequisites
    5. Installation Steps
    6. Usage Instructions
    7. API Documentation (if applicable)
    8. Development Setup
    9. Testing Instructions
    10. Deployment Guide
    11. Contributing Guidelines
    12. License Information

    Use blank lines between sections.
    Do not include any explanations outside the README content.""")

_PLAN_PHASES = textwrap.dedent("""\
    Provide a detailed step-by-step guide covering:
    1. Initial setup phase
    2. Core implementation phase
    3. Feature implementation phase
    4. Final phase (optimization & deployment)""")


# ---------------------------------------------------------------------------
# Bundle stages
# ---------------------------------------------------------------------------

BUNDLE_STAGES: tuple[GenerationStage, ...] = (
    GenerationStage(
        name=StageName.PROJECT_STRUCTURE,
        kind=ResultKind.FREE_TEXT,
        system=_STRUCTURE_SYSTEM,
        build_user=_project_only("Create a detailed directory structure for this project:"),
        envelope="directory",
        fallback="// No project structure generated",
    ),
    GenerationStage(
        name=StageName.DEPENDENCIES,
        kind=ResultKind.FREE_TEXT,
        system=_DEPENDENCIES_SYSTEM,
        build_user=_project_only("Create a dependencies file for this project:"),
        envelope="requirements_file",
        fallback="// No dependencies generated",
    ),
    GenerationStage(
        name=StageName.SETUP_INSTRUCTIONS,
        kind=ResultKind.LINE_LIST,
        system=_SETUP_SYSTEM,
        build_user=_project_only("Create setup instructions for this project:"),
        envelope="instructions",
    ),
    GenerationStage(
        name=StageName.IMPLEMENTATION_STEPS,
        kind=ResultKind.LINE_LIST,
        system=_PLAN_SYSTEM,
        build_user=_project_with_features(
            "Create implementation steps for this project:", _PLAN_PHASES
        ),
        envelope="steps",
        requires_features=True,
    ),
    GenerationStage(
        name=StageName.PROJECT_FILES,
        kind=ResultKind.FILE_MAP,
        system=_FILES_SYSTEM,
        build_user=_project_with_features("Generate the core project files for:"),
        requires_features=True,
    ),
    GenerationStage(
        name=StageName.FEATURE_NOTES,
        kind=ResultKind.LINE_LIST,
        system=_FEATURE_NOTES_SYSTEM,
        build_user=_project_with_features(
            "Document the features and best practices for this project:"
        ),
        envelope="features",
        requires_features=True,
    ),
    GenerationStage(
        name=StageName.README,
        kind=ResultKind.FREE_TEXT,
        system=_README_SYSTEM,
        build_user=_project_with_features("Create a README.md for this project:"),
        fallback="# README\n\nNo README generated.",
        requires_features=True,
    ),
)


# ---------------------------------------------------------------------------
# Full-project stream
# ---------------------------------------------------------------------------

_FULL_PROJECT_SYSTEM = (
    "You are an expert software developer who writes clean, efficient, and "
    "well-documented code. You should provide complete, working implementations "
    "that follow best practices."
)


def _describe_feature_detail(spec: ProjectSpec) -> str:
    blocks = []
    for feature in spec.features:
        category = feature.category.value if feature.category else "unspecified"
        steps = "\n".join(f"    * {s.title}: {s.description}" for s in feature.steps)
        blocks.append(
            f"- {feature.title}\n"
            f"  Description: {feature.description}\n"
            f"  Category: {category}\n"
            f"  Implementation Steps:\n{steps}"
        )
    return "\n".join(blocks)


def build_full_project_prompt(spec: ProjectSpec) -> Prompt:
    """Prompt for the single large streamed completion of a whole project."""
    user = textwrap.dedent("""\
        Generate complete code for the following project:

        Project Description:
        {idea}

        Tech Stack:
        {stack}

        Features:
        {features}

        Please provide a complete implementation including:
        1. Project structure
        2. All necessary files
        3. Dependencies and configuration
        4. Implementation of all features
        5. Clear comments and documentation
        6. Setup instructions

        Use best practices and modern coding standards.""").format(
        idea=spec.idea,
        stack=spec.stack.name,
        features=_describe_feature_detail(spec),
    )
    return Prompt(system=_FULL_PROJECT_SYSTEM, user=user)
