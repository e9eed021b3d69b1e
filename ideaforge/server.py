"""HTTP service for IdeaForge.

Exposes the bundle orchestrator, the full-project stream and the wizard
assistant as JSON endpoints.  Every failure is answered with a
``{"error": ..., "details": ...}`` body:

* 400 for request validation failures,
* 502 when the generation service fails or answers with something unusable,
* 500 for anything unexpected.

Run with ``ideaforge serve`` or ``uvicorn ideaforge.server:app``.
"""

from __future__ import annotations

import traceback
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse
from rich.markup import escape

from . import __version__
from .assistant import WizardAssistant
from .config import Config
from .errors import (
    InvalidInputError,
    MalformedResponseError,
    StreamAbortedError,
    UpstreamUnavailableError,
)
from .llm_client import GenerationOptions, TextGenerationClient
from .models import validate_project_payload
from .orchestrator import BundleOrchestrator
from .stages import build_full_project_prompt
from .streaming import StreamRelay
from .utils import console, print_error

SERVICE_NAME = "ideaforge"


def _error(status_code: int, error: str, details: str | None = None) -> JSONResponse:
    body: dict[str, Any] = {"error": error}
    if details is not None:
        body["details"] = details
    return JSONResponse(status_code=status_code, content=body)


async def _read_body(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError as exc:
        raise InvalidInputError("body", "Request body must be a JSON object") from exc


async def _answer(
    request: Request,
    handler: Callable[[Any], Awaitable[Any]],
    failure: str,
) -> JSONResponse:
    """Run *handler* on the request body and map errors to status codes."""
    try:
        payload = await _read_body(request)
        result = await handler(payload)
    except InvalidInputError as exc:
        return _error(400, exc.message)
    except (UpstreamUnavailableError, MalformedResponseError) as exc:
        print_error(f"{request.url.path}: {escape(str(exc))}")
        return _error(502, failure, str(exc))
    except Exception as exc:  # noqa: BLE001
        print_error(f"{request.url.path}: unexpected error: {escape(str(exc))}")
        console.print(escape(traceback.format_exc()), style="dim")
        return _error(500, "Internal server error", str(exc))
    return JSONResponse(content=result)


def create_app(
    config: Config | None = None,
    client: TextGenerationClient | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        config: Service configuration; read from the environment when omitted.
        client: Text-generation client; built from *config* when omitted.
    """
    config = config or Config.from_env()
    client = client or TextGenerationClient(
        base_url=config.generation.base_url,
        api_key=config.generation.api_key,
        timeout=config.generation.timeout,
    )
    orchestrator = BundleOrchestrator(client, config.generation)
    assistant = WizardAssistant(client, config.generation)

    app = FastAPI(
        title="IdeaForge",
        description="Generates project scaffolds from a short project description",
        version=__version__,
    )

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Liveness probe; does not contact the generation service."""
        return {
            "status": "healthy",
            "service": SERVICE_NAME,
            "version": __version__,
            "model": config.generation.model,
        }

    @app.post("/api/generate-code")
    async def generate_code(request: Request) -> JSONResponse:
        async def handler(payload: Any) -> dict[str, Any]:
            bundle = await orchestrator.assemble_from_payload(payload)
            return bundle.model_dump(mode="json")

        return await _answer(request, handler, "Failed to generate code")

    @app.post("/api/generate-full-code")
    async def generate_full_code(request: Request):
        """Stream one large completion for the whole project as plain text.

        The upstream request is opened before the response starts, so a failure
        before the first fragment is still answered with a 502.  A failure
        after that terminates the response abnormally.
        """
        try:
            spec = validate_project_payload(await _read_body(request))
        except InvalidInputError as exc:
            return _error(400, exc.message)

        relay = StreamRelay(
            client,
            build_full_project_prompt(spec),
            GenerationOptions(
                model=config.generation.model,
                temperature=config.generation.temperature,
                max_tokens=config.generation.stream_max_tokens,
            ),
        )
        try:
            await relay.open()
        except UpstreamUnavailableError as exc:
            print_error(f"{request.url.path}: {escape(str(exc))}")
            return _error(502, "Failed to generate code", str(exc))

        async def body() -> AsyncIterator[bytes]:
            chunks = relay.relay()
            try:
                async for chunk in chunks:
                    yield chunk
            except StreamAbortedError as exc:
                print_error(f"{request.url.path}: {escape(str(exc))}")
                raise
            finally:
                await chunks.aclose()

        return StreamingResponse(
            body(),
            media_type="text/plain; charset=utf-8",
            headers={"Cache-Control": "no-cache"},
        )

    @app.post("/api/ask-code-question")
    async def ask_code_question(request: Request) -> JSONResponse:
        async def handler(payload: Any) -> dict[str, str]:
            return {"answer": await assistant.ask_question(payload)}

        return await _answer(request, handler, "Failed to answer question")

    @app.post("/api/generate-stack")
    async def generate_stack(request: Request) -> JSONResponse:
        return await _answer(request, assistant.suggest_stacks, "Failed to generate tech stacks")

    @app.post("/api/generate-features")
    async def generate_features(request: Request) -> JSONResponse:
        return await _answer(request, assistant.suggest_features, "Failed to generate features")

    @app.post("/api/generate-steps")
    async def generate_steps(request: Request) -> JSONResponse:
        return await _answer(
            request, assistant.generate_feature_steps, "Failed to generate implementation steps"
        )

    @app.post("/api/generate-subtasks")
    async def generate_subtasks(request: Request) -> JSONResponse:
        return await _answer(request, assistant.generate_subtasks, "Failed to generate subtasks")

    return app


def __getattr__(name: str) -> Any:
    # ``uvicorn ideaforge.server:app`` builds the app lazily from the environment.
    if name == "app":
        return create_app()
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
