"""Shared pytest fixtures for the IdeaForge test suite.

Provides reusable fixtures for:
- A valid project request body and its validated ``ProjectSpec``
- A scripted stand-in for ``TextGenerationClient`` (blocking and streaming)
- Canned output for every bundle stage
"""

from __future__ import annotations

import asyncio
import copy
from collections.abc import AsyncIterator, Callable
from typing import Any

import pytest

from ideaforge.llm_client import GenerationOptions, GenerationResponse, Prompt
from ideaforge.models import ProjectSpec, validate_project_payload
from ideaforge.stages import BUNDLE_STAGES, StageName


# ---------------------------------------------------------------------------
# Project request
# ---------------------------------------------------------------------------

SAMPLE_PAYLOAD: dict[str, Any] = {
    "projectIdea": "A todo list app with reminders",
    "stack": {
        "name": "Next.js + Supabase",
        "framework": "Next.js",
        "additionalTech": "Tailwind CSS",
        "storage": "PostgreSQL",
    },
    "features": [
        {
            "title": "Task management",
            "description": "Create, edit and delete tasks",
            "category": "core",
            "steps": [
                {
                    "title": "Create the tasks table",
                    "description": "Add a migration for tasks",
                    "type": "setup",
                },
            ],
        },
        {
            "title": "Reminders",
            "description": "Email a reminder before a task is due",
            "category": "technical",
            "steps": [],
        },
    ],
}


@pytest.fixture
def sample_payload() -> dict[str, Any]:
    """A fresh, valid request body for the bundle endpoints."""
    return copy.deepcopy(SAMPLE_PAYLOAD)


@pytest.fixture
def project_spec(sample_payload: dict[str, Any]) -> ProjectSpec:
    return validate_project_payload(sample_payload)


# ---------------------------------------------------------------------------
# Scripted generation client
# ---------------------------------------------------------------------------

STAGE_OUTPUTS: dict[StageName, str] = {
    StageName.PROJECT_STRUCTURE: "todo-app/\n├── src/\n│   └── index.ts\n└── package.json",
    StageName.DEPENDENCIES: '{\n  "dependencies": {"next": "14.1.0"}\n}',
    StageName.SETUP_INSTRUCTIONS: "1. npm install\n\n2. npm run dev \n",
    StageName.IMPLEMENTATION_STEPS: "1. Initial setup\n2. Core implementation\n",
    StageName.PROJECT_FILES: (
        "---FILENAME---\nsrc/index.ts\n```ts\nconsole.log('hi');\n```\n"
        "---FILENAME---\npackage.json\n{\"name\": \"todo-app\"}\n"
    ),
    StageName.FEATURE_NOTES: "- Task management\n- Reminders\n",
    StageName.README: "# Todo App\n\nA todo list app with reminders.",
}

_OUTPUT_BY_SYSTEM = {stage.system: STAGE_OUTPUTS[stage.name] for stage in BUNDLE_STAGES}

Responder = Callable[[Prompt, GenerationOptions], "GenerationResponse | str"]


def stage_responder(prompt: Prompt, options: GenerationOptions) -> str:
    """Answer each bundle stage with its canned output."""
    return _OUTPUT_BY_SYSTEM.get(prompt.system, "")


class FakeClient:
    """Stand-in for ``TextGenerationClient`` driven by a responder function.

    Attributes:
        calls: ``(prompt, options)`` for every ``generate`` call, in order.
        stream_closed: Set once the stream generator has been finalised.
    """

    def __init__(
        self,
        responder: Responder = stage_responder,
        fragments: list[str] | None = None,
        stream_error: Exception | None = None,
        delay: float = 0.0,
    ) -> None:
        self.responder = responder
        self.fragments = fragments or []
        self.stream_error = stream_error
        self.delay = delay
        self.calls: list[tuple[Prompt, GenerationOptions]] = []
        self.stream_calls: list[tuple[Prompt, GenerationOptions]] = []
        self.stream_closed = False

    async def generate(
        self, prompt: Prompt, options: GenerationOptions | None = None
    ) -> GenerationResponse:
        options = options or GenerationOptions()
        self.calls.append((prompt, options))
        if self.delay:
            await asyncio.sleep(self.delay)
        result = self.responder(prompt, options)
        if isinstance(result, GenerationResponse):
            return result
        return GenerationResponse(text=result, model=options.model)

    async def stream(
        self, prompt: Prompt, options: GenerationOptions | None = None
    ) -> AsyncIterator[str]:
        self.stream_calls.append((prompt, options or GenerationOptions()))
        try:
            for fragment in self.fragments:
                yield fragment
            if self.stream_error is not None:
                raise self.stream_error
        finally:
            self.stream_closed = True


@pytest.fixture
def fake_client() -> FakeClient:
    """A client whose ``generate`` answers every bundle stage successfully."""
    return FakeClient()


@pytest.fixture
def make_client() -> type[FakeClient]:
    """The ``FakeClient`` class, for tests that need a scripted variant.

    Usage::

        def test_something(make_client):
            client = make_client(fragments=["a", "b"])
    """
    return FakeClient


@pytest.fixture
def stage_outputs() -> dict[StageName, str]:
    return dict(STAGE_OUTPUTS)
