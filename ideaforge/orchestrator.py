"""IdeaForge bundle orchestrator.

Fans a validated :class:`ProjectSpec` out to every bundle stage concurrently,
joins on all of them, and assembles one :class:`ArtifactBundle`.  There is no
partial-success path: the first stage failure cancels the stages still in
flight and propagates to the caller.

Usage::

    orchestrator = BundleOrchestrator(TextGenerationClient(api_key="sk-..."))
    bundle = await orchestrator.assemble_from_payload(request_json)
"""

from __future__ import annotations

import asyncio
import time
from typing import Any

from rich.markup import escape

from .config import GenerationConfig
from .errors import InvalidInputError, MalformedResponseError, UpstreamUnavailableError
from .llm_client import GenerationOptions, Prompt, TextGenerationClient
from .models import ArtifactBundle, ProjectSpec, validate_project_payload
from .parser.artifacts import NO_OUTPUT, ResultKind, decode
from .stages import BUNDLE_STAGES, GenerationStage
from .utils import console, format_duration, print_error


async def generate_and_decode(
    client: TextGenerationClient,
    prompt: Prompt,
    kind: ResultKind,
    options: GenerationOptions,
    label: str,
    fallback: str = NO_OUTPUT,
) -> Any:
    """Run one generation call and decode its text.

    Args:
        client: Text-generation client.
        prompt: The prompt to submit.
        kind: Decoder to apply.
        options: Sampling parameters.
        label: Name used in error messages (stage or operation name).
        fallback: Sentinel for empty ``freeText`` output.

    Raises:
        UpstreamUnavailableError: If the call failed, or returned an empty
            payload for a kind that needs content.
        MalformedResponseError: If the payload cannot be decoded.
    """
    response = await client.generate(prompt, options)
    if not response.success:
        raise UpstreamUnavailableError(response.error or "Generation failed", stage=label)
    if kind is not ResultKind.FREE_TEXT and not response.text.strip():
        raise UpstreamUnavailableError("Generation service returned an empty payload", stage=label)

    try:
        return decode(kind, response.text, fallback=fallback)
    except MalformedResponseError as exc:
        raise MalformedResponseError(exc.message, stage=label) from exc


class BundleOrchestrator:
    """Runs the bundle stages concurrently and assembles the result.

    Stateless between calls; one instance can serve any number of concurrent
    requests.

    Attributes:
        client: Text-generation client shared by all stages.
        config: Model and sampling settings.
        stages: The stage set to run (defaults to every bundle stage).
    """

    def __init__(
        self,
        client: TextGenerationClient,
        config: GenerationConfig | None = None,
        stages: tuple[GenerationStage, ...] = BUNDLE_STAGES,
    ) -> None:
        self.client = client
        self.config = config or GenerationConfig()
        self.stages = stages

    def _options_for(self, stage: GenerationStage) -> GenerationOptions:
        return GenerationOptions(
            model=self.config.model,
            temperature=self.config.temperature,
            json_mode=stage.kind is ResultKind.JSON_OBJECT,
        )

    async def run_stage(self, stage: GenerationStage, spec: ProjectSpec) -> Any:
        """Generate and decode a single stage, returning its wrapped result."""
        started = time.monotonic()
        console.print(f"  [cyan]>[/cyan] {stage.name.value}: dispatched")
        try:
            decoded = await generate_and_decode(
                self.client,
                stage.build_prompt(spec),
                stage.kind,
                self._options_for(stage),
                label=stage.name.value,
                fallback=stage.fallback,
            )
        except (UpstreamUnavailableError, MalformedResponseError) as exc:
            print_error(f"  x {stage.name.value}: {escape(exc.message)}")
            raise

        console.print(
            f"  [green]+[/green] {stage.name.value}: done in "
            f"{format_duration(time.monotonic() - started)}"
        )
        return stage.wrap(decoded)

    def _check_ready(self, spec: ProjectSpec) -> None:
        if not spec.features and any(stage.requires_features for stage in self.stages):
            raise InvalidInputError("features", "At least one feature is required")

    async def assemble(self, spec: ProjectSpec) -> ArtifactBundle:
        """Run every stage concurrently and return the assembled bundle.

        Raises:
            InvalidInputError: If the spec lacks what a stage needs; raised
                before any call is issued.
            UpstreamUnavailableError | MalformedResponseError: From the first
                stage that fails; the remaining stages are cancelled.
        """
        self._check_ready(spec)
        started = time.monotonic()

        tasks = [asyncio.ensure_future(self.run_stage(stage, spec)) for stage in self.stages]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        bundle = ArtifactBundle.model_validate(
            {stage.name.value: result for stage, result in zip(self.stages, results)}
        )
        console.print(
            f"  Bundle assembled from {len(self.stages)} stage(s) in "
            f"{format_duration(time.monotonic() - started)}"
        )
        return bundle

    async def assemble_from_payload(self, payload: Any) -> ArtifactBundle:
        """Validate a raw request body, then assemble the bundle."""
        spec = validate_project_payload(payload)
        return await self.assemble(spec)
