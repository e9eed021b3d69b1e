"""Single-call generation helpers for the project wizard.

Covers the steps that come before and after a bundle is assembled:

* suggesting candidate tech stacks for an idea,
* suggesting features for an idea and stack,
* breaking a feature into implementation steps,
* breaking a task into subtasks,
* answering a question about a generated bundle.

Each is one structured (or free-text) generation call, validated on the way in
and decoded on the way out with the same helpers the bundle stages use.
"""

from __future__ import annotations

import json
import textwrap
from typing import Any

from pydantic import BaseModel, ValidationError

from .config import GenerationConfig
from .errors import InvalidInputError, MalformedResponseError
from .llm_client import GenerationOptions, Prompt, TextGenerationClient
from .models import (
    FeatureSuggestions,
    StackSuggestions,
    StepSuggestions,
    SubtaskSuggestions,
    TaskRef,
    require_object,
    validate_idea,
    validate_stack,
)
from .orchestrator import generate_and_decode
from .parser.artifacts import ResultKind

NO_ANSWER = "No answer generated"

_QUESTION_SYSTEM = textwrap.dedent("""\
    You are an expert software developer helping explain code.
    Your responses should use proper markdown formatting:
    - single backticks for inline code, file paths, and identifiers
    - fenced code blocks with language specifiers for examples
    - **bold** for important concepts and > blockquotes for notes
    - # and ## headers with blank lines between sections
    - ordered or unordered lists, and aligned tables where they help

    Structure each response with:
    1. A clear title describing the topic
    2. A brief overview of the concept
    3. Relevant code examples with proper syntax highlighting
    4. Best practices in a highlighted note block
    5. Links to documentation if relevant""")


def _stack_line(stack: Any) -> str:
    framework = stack.framework or "No framework specified"
    return f"{stack.name} ({framework})"


class WizardAssistant:
    """Runs the wizard's single-call generation steps.

    Attributes:
        client: Text-generation client.
        config: Model and sampling settings.
    """

    def __init__(self, client: TextGenerationClient, config: GenerationConfig | None = None) -> None:
        self.client = client
        self.config = config or GenerationConfig()

    async def _structured(self, label: str, user: str, schema: type[BaseModel]) -> dict[str, Any]:
        data = await generate_and_decode(
            self.client,
            Prompt(user=user),
            ResultKind.JSON_OBJECT,
            GenerationOptions(
                model=self.config.model,
                temperature=self.config.temperature,
                json_mode=True,
            ),
            label=label,
        )
        try:
            return schema.model_validate(data).model_dump(mode="json", by_alias=True)
        except ValidationError as exc:
            raise MalformedResponseError(
                f"Response does not match the expected shape: {exc.errors()[0].get('msg')}",
                stage=label,
            ) from exc

    # ------------------------------------------------------------------
    # Wizard steps
    # ------------------------------------------------------------------

    async def suggest_stacks(self, payload: Any) -> dict[str, Any]:
        """Suggest three candidate stacks for ``payload["projectIdea"]``."""
        idea = validate_idea(require_object(payload))
        user = textwrap.dedent("""\
            As an expert software architect, analyze the following project idea and suggest 3 different technology stacks that would be most appropriate for implementing it: "{idea}"

            Consider project requirements and complexity, development efficiency,
            scalability, performance, a beginner to intermediate team, industry best
            practices, community support, and cost-effectiveness.

            For each stack provide a descriptive name, the main framework, additional
            technologies, a data storage solution, a detailed explanation of why it
            suits the project, and whether it is the recommended stack for beginners
            (only one should be recommended).

            Format the response as a JSON object:
            {{
              "stacks": [
                {{
                  "id": number,
                  "name": string,
                  "framework": string,
                  "additionalTech": string,
                  "storage": string,
                  "description": string,
                  "recommended": boolean
                }}
              ]
            }}""").format(idea=idea)
        return await self._structured("stack_suggestions", user, StackSuggestions)

    async def suggest_features(self, payload: Any) -> dict[str, Any]:
        """Suggest features for an idea and chosen stack."""
        body = require_object(payload)
        idea = validate_idea(body)
        stack = validate_stack(body)
        user = textwrap.dedent("""\
            As an expert software architect, suggest features for the following project:

            Project Idea: "{idea}"
            Tech Stack: {stack}

            Consider core functionality, user experience, technical requirements,
            common industry standards, security, and performance.

            Format the response as a JSON object:
            {{
              "features": [
                {{
                  "title": string,
                  "description": string,
                  "category": "core" | "ux" | "technical" | "security"
                }}
              ]
            }}""").format(idea=idea, stack=_stack_line(stack))
        return await self._structured("feature_suggestions", user, FeatureSuggestions)

    async def generate_feature_steps(self, payload: Any) -> dict[str, Any]:
        """Break ``payload["feature"]`` into implementation steps."""
        body = require_object(payload)
        idea = validate_idea(body)
        stack = validate_stack(body)
        feature = body.get("feature")
        if not isinstance(feature, dict) or not str(feature.get("title") or "").strip():
            raise InvalidInputError("feature", "Feature with title is required")

        user = textwrap.dedent("""\
            As an expert software developer, provide detailed implementation steps for the following feature:

            Project: "{idea}"
            Tech Stack: {stack}
            Feature: "{title}"
            Feature Description: "{description}"

            Follow best practices for the stack, include setup steps, and consider
            error handling, edge cases, security, and performance.

            Format the response as a JSON object:
            {{
              "steps": [
                {{
                  "title": string,
                  "description": string,
                  "code_snippet": string (optional),
                  "type": "setup" | "implementation" | "testing" | "optimization"
                }}
              ]
            }}""").format(
            idea=idea,
            stack=_stack_line(stack),
            title=feature["title"],
            description=feature.get("description", ""),
        )
        return await self._structured("implementation_steps", user, StepSuggestions)

    async def generate_subtasks(self, payload: Any) -> dict[str, Any]:
        """Break ``payload["task"]`` into 3-5 subtasks."""
        body = require_object(payload)
        task_raw = body.get("task")
        try:
            task = TaskRef.model_validate(task_raw if isinstance(task_raw, dict) else {})
        except ValidationError as exc:
            raise InvalidInputError(
                "task",
                "Missing required fields in task: title and description are required",
            ) from exc
        if _blank(task.title) or _blank(task.description):
            raise InvalidInputError(
                "task",
                "Missing required fields in task: title and description are required",
            )
        idea = validate_idea(body)
        stack = validate_stack(body)

        user = textwrap.dedent("""\
            As an expert software developer, break down this task into detailed subtasks for implementation:

            Project Context:
            - Project Idea: "{idea}"
            - Tech Stack: {stack}
            - Task: "{title}"
            - Task Description: "{description}"

            Create a list of 3-5 specific subtasks that break the work into
            manageable pieces, follow a logical sequence, include prerequisites,
            consider testing, and account for edge cases and error handling.

            Format the response as a JSON object:
            {{
              "subtasks": [
                {{
                  "title": "Clear, actionable subtask title",
                  "description": "Detailed explanation of what needs to be done",
                  "info": "Additional technical details, considerations, or best practices"
                }}
              ]
            }}""").format(
            idea=idea,
            stack=_stack_line(stack),
            title=task.title,
            description=task.description,
        )
        return await self._structured("subtasks", user, SubtaskSuggestions)

    # ------------------------------------------------------------------
    # Questions about a bundle
    # ------------------------------------------------------------------

    async def ask_question(self, payload: Any) -> str:
        """Answer ``payload["question"]`` using the bundle in ``payload["codeContext"]``."""
        body = require_object(payload)
        question = body.get("question")
        context = body.get("codeContext")
        if _blank(question) or not isinstance(context, dict) or not context:
            raise InvalidInputError("question", "Missing question or code context")

        user = (
            f"Project Context:\n{json.dumps(context, indent=2)}\n\n"
            f"Question: {question.strip()}\n\n"
            "Provide a detailed answer with:\n"
            "1. Clear section headers\n"
            "2. Syntax-highlighted code examples\n"
            "3. Important notes in blockquotes\n"
            "4. Best practices and recommendations"
        )
        return await generate_and_decode(
            self.client,
            Prompt(system=_QUESTION_SYSTEM, user=user),
            ResultKind.FREE_TEXT,
            GenerationOptions(
                model=self.config.question_model,
                temperature=self.config.temperature,
            ),
            label="question",
            fallback=NO_ANSWER,
        )


def _blank(value: Any) -> bool:
    return not isinstance(value, str) or not value.strip()
