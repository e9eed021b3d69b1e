"""IdeaForge configuration.

Centralised, typed configuration for the generation service. All settings use
Pydantic v2 models so they can be validated at construction time and serialised
to/from JSON or environment variables without boiler-plate.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field


class GenerationConfig(BaseModel):
    """Connection and sampling settings for the text-generation service."""

    base_url: str = Field(default="https://api.openai.com/v1")
    api_key: str = Field(default="", repr=False)
    model: str = Field(default="gpt-4o", description="Model used for bundle and wizard stages")
    question_model: str = Field(
        default="gpt-4o-mini", description="Model used to answer questions about a bundle"
    )
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    stream_max_tokens: int = Field(
        default=16384, ge=1, description="Completion budget for the full-project stream"
    )
    timeout: int = Field(default=120, ge=10, description="Per-request timeout in seconds")


class ProgressConfig(BaseModel):
    """Tuning for the simulated progress estimate shown while waiting."""

    expected_duration_ms: int = Field(default=20000, gt=0)
    cap_before_completion: float = Field(
        default=92.0,
        gt=0.0,
        lt=100.0,
        description="Ceiling the estimate stays below until completion is confirmed",
    )


class ServerConfig(BaseModel):
    """Bind address for the HTTP service."""

    host: str = Field(default="127.0.0.1")
    port: int = Field(default=23100, ge=1, le=65535)


class Config(BaseModel):
    """Global IdeaForge configuration.

    Instances are typically created once by the CLI entry point or the HTTP app
    factory and then passed through the rest of the system.
    """

    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    progress: ProgressConfig = Field(default_factory=ProgressConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)

    def save(self, path: Path) -> Path:
        """Persist the configuration to a JSON file.

        The API key is never written to disk.

        Returns:
            The path where the file was written.
        """
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        redacted = self.model_copy(deep=True)
        redacted.generation.api_key = ""
        target.write_text(redacted.model_dump_json(indent=2), encoding="utf-8")
        return target

    @classmethod
    def load(cls, path: Path) -> "Config":
        """Load a previously-saved configuration from JSON."""
        raw = Path(path).read_text(encoding="utf-8")
        return cls.model_validate_json(raw)

    @classmethod
    def from_env(cls) -> "Config":
        """Build a ``Config`` from environment variables.

        Recognised variables (all optional):
            OPENAI_API_KEY, IDEAFORGE_BASE_URL, IDEAFORGE_MODEL,
            IDEAFORGE_QUESTION_MODEL, IDEAFORGE_TIMEOUT, IDEAFORGE_HOST,
            IDEAFORGE_PORT, IDEAFORGE_EXPECTED_DURATION_MS.
        """
        generation_kwargs: dict[str, Any] = {}
        if os.environ.get("OPENAI_API_KEY"):
            generation_kwargs["api_key"] = os.environ["OPENAI_API_KEY"]
        if os.environ.get("IDEAFORGE_BASE_URL"):
            generation_kwargs["base_url"] = os.environ["IDEAFORGE_BASE_URL"]
        if os.environ.get("IDEAFORGE_MODEL"):
            generation_kwargs["model"] = os.environ["IDEAFORGE_MODEL"]
        if os.environ.get("IDEAFORGE_QUESTION_MODEL"):
            generation_kwargs["question_model"] = os.environ["IDEAFORGE_QUESTION_MODEL"]
        if os.environ.get("IDEAFORGE_TIMEOUT"):
            generation_kwargs["timeout"] = int(os.environ["IDEAFORGE_TIMEOUT"])

        server_kwargs: dict[str, Any] = {}
        if os.environ.get("IDEAFORGE_HOST"):
            server_kwargs["host"] = os.environ["IDEAFORGE_HOST"]
        if os.environ.get("IDEAFORGE_PORT"):
            server_kwargs["port"] = int(os.environ["IDEAFORGE_PORT"])

        progress_kwargs: dict[str, Any] = {}
        if os.environ.get("IDEAFORGE_EXPECTED_DURATION_MS"):
            progress_kwargs["expected_duration_ms"] = int(
                os.environ["IDEAFORGE_EXPECTED_DURATION_MS"]
            )

        return cls(
            generation=GenerationConfig(**generation_kwargs),
            progress=ProgressConfig(**progress_kwargs),
            server=ServerConfig(**server_kwargs),
        )
