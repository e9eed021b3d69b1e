"""Command-line entry point for IdeaForge.

Sub-commands::

    ideaforge bundle project.json -o bundle.json --write-files ./my-app
    ideaforge stream project.json > project.txt
    ideaforge ask bundle.json "How do I run the tests?"
    ideaforge serve --port 23100

Exit status is 0 on success, 1 when generation fails and 2 when the input is
invalid.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
import time
from collections.abc import Awaitable
from pathlib import Path
from typing import Any, TypeVar

from rich.markdown import Markdown
from rich.markup import escape

from .assistant import WizardAssistant
from .config import Config
from .errors import (
    InvalidInputError,
    MalformedResponseError,
    StreamAbortedError,
    UpstreamUnavailableError,
)
from .llm_client import GenerationOptions, TextGenerationClient
from .models import ArtifactBundle, validate_project_payload
from .orchestrator import BundleOrchestrator
from .progress import ProgressEstimator
from .stages import build_full_project_prompt
from .streaming import StreamRelay
from .utils import (
    console,
    create_progress,
    format_duration,
    load_json,
    print_error,
    print_success,
    print_summary_table,
    print_warning,
    save_json,
    write_file_map,
)

EXIT_OK = 0
EXIT_GENERATION_FAILED = 1
EXIT_INVALID_INPUT = 2

T = TypeVar("T")


async def track(awaitable: Awaitable[T], estimator: ProgressEstimator, description: str) -> T:
    """Await *awaitable* while rendering the estimator as a progress bar.

    The bar only reaches 100% if the awaitable succeeds.
    """
    task = asyncio.ensure_future(awaitable)
    estimator.start()
    with create_progress() as progress:
        bar = progress.add_task(description, total=100)
        try:
            while not task.done():
                progress.update(bar, completed=estimator.progress)
                await asyncio.wait({task}, timeout=0.1)
        finally:
            if not task.done():
                task.cancel()
        result = task.result()
        estimator.complete()
        progress.update(bar, completed=estimator.progress)
    return result


def _build_client(config: Config) -> TextGenerationClient:
    return TextGenerationClient(
        base_url=config.generation.base_url,
        api_key=config.generation.api_key,
        timeout=config.generation.timeout,
    )


def _load_config(path: str | None) -> Config:
    if path is None:
        return Config.from_env()
    try:
        config = Config.load(Path(path))
    except (OSError, ValueError) as exc:
        raise InvalidInputError("config", f"Cannot load configuration from {path}: {exc}") from exc
    # Keys are never saved to disk, so take them from the environment.
    if not config.generation.api_key and os.environ.get("OPENAI_API_KEY"):
        config.generation.api_key = os.environ["OPENAI_API_KEY"]
    return config


def _read_input(path: str) -> dict[str, Any]:
    file_path = Path(path)
    if not file_path.is_file():
        raise InvalidInputError("path", f"File not found: {file_path}")
    try:
        return load_json(file_path)
    except json.JSONDecodeError as exc:
        raise InvalidInputError("path", f"{file_path} is not valid JSON: {exc}") from exc


# ---------------------------------------------------------------------------
# Sub-commands
# ---------------------------------------------------------------------------


async def _bundle(args: argparse.Namespace, config: Config) -> int:
    spec = validate_project_payload(_read_input(args.project))
    orchestrator = BundleOrchestrator(_build_client(config), config.generation)
    estimator = ProgressEstimator(
        config.progress.expected_duration_ms,
        config.progress.cap_before_completion,
    )

    started = time.monotonic()
    bundle: ArtifactBundle = await track(
        orchestrator.assemble(spec), estimator, "Generating project bundle"
    )

    output = Path(args.output)
    await save_json(bundle.model_dump(mode="json"), output)

    summary = {
        "Project": spec.idea,
        "Stack": spec.stack.name,
        "Files": str(len(bundle.main_project_files)),
        "Setup steps": str(len(bundle.setup_instructions.instructions)),
        "Bundle": str(output),
        "Duration": format_duration(time.monotonic() - started),
    }
    if not bundle.main_project_files:
        print_warning("The bundle contains no project files")
    elif args.write_files:
        written = write_file_map(bundle.main_project_files, args.write_files)
        summary["Written to"] = f"{args.write_files} ({len(written)} file(s))"

    print_summary_table(summary, title="Bundle")
    print_success("Bundle generated successfully!")
    return EXIT_OK


async def _stream(args: argparse.Namespace, config: Config) -> int:
    spec = validate_project_payload(_read_input(args.project))
    relay = StreamRelay(
        _build_client(config),
        build_full_project_prompt(spec),
        GenerationOptions(
            model=config.generation.model,
            temperature=config.generation.temperature,
            max_tokens=config.generation.stream_max_tokens,
        ),
    )
    await relay.open()
    async for chunk in relay.relay():
        sys.stdout.write(chunk.decode("utf-8"))
        sys.stdout.flush()
    sys.stdout.write("\n")
    return EXIT_OK


async def _ask(args: argparse.Namespace, config: Config) -> int:
    assistant = WizardAssistant(_build_client(config), config.generation)
    answer = await assistant.ask_question(
        {"question": args.question, "codeContext": _read_input(args.bundle)}
    )
    console.print(Markdown(answer))
    return EXIT_OK


def _serve(args: argparse.Namespace, config: Config) -> int:
    import uvicorn

    from .server import create_app

    host = args.host or config.server.host
    port = args.port or config.server.port
    console.print(f"[bold]IdeaForge[/bold] listening on http://{host}:{port}")
    uvicorn.run(create_app(config), host=host, port=port)
    return EXIT_OK


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ideaforge",
        description="IdeaForge -- turn a project idea into a starter scaffold",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  ideaforge bundle project.json -o bundle.json\n"
            "  ideaforge bundle project.json --write-files ./my-app\n"
            "  ideaforge stream project.json > project.txt\n"
            "  ideaforge ask bundle.json \"Where is the entry point?\"\n"
            "  ideaforge serve --port 23100\n"
        ),
    )
    parser.add_argument(
        "--config",
        default=None,
        help="JSON configuration file (default: read from environment variables)",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    bundle = commands.add_parser("bundle", help="Generate the full artifact bundle")
    bundle.add_argument("project", help="Path to the project JSON (projectIdea, stack, features)")
    bundle.add_argument(
        "--output", "-o",
        default="bundle.json",
        help="Where to save the bundle (default: bundle.json)",
    )
    bundle.add_argument(
        "--write-files",
        default=None,
        metavar="DIR",
        help="Also write the generated project files under DIR",
    )

    stream = commands.add_parser("stream", help="Stream a complete project as plain text")
    stream.add_argument("project", help="Path to the project JSON")

    ask = commands.add_parser("ask", help="Ask a question about a saved bundle")
    ask.add_argument("bundle", help="Path to a bundle JSON written by 'bundle'")
    ask.add_argument("question", help="The question to ask")

    serve = commands.add_parser("serve", help="Run the HTTP service")
    serve.add_argument("--host", default=None, help="Bind address (default: 127.0.0.1)")
    serve.add_argument("--port", type=int, default=None, help="Port (default: 23100)")

    return parser


def run(argv: list[str] | None = None) -> int:
    """Parse *argv*, run the sub-command and return its exit status."""
    args = build_parser().parse_args(argv)

    try:
        config = _load_config(args.config)
        if args.command == "serve":
            return _serve(args, config)
        handler = {"bundle": _bundle, "stream": _stream, "ask": _ask}[args.command]
        return asyncio.run(handler(args, config))
    except InvalidInputError as exc:
        print_error(f"Invalid input: {escape(exc.message)}")
        return EXIT_INVALID_INPUT
    except (UpstreamUnavailableError, MalformedResponseError, StreamAbortedError) as exc:
        print_error(f"Generation failed: {escape(str(exc))}")
        return EXIT_GENERATION_FAILED
    except ValueError as exc:
        print_error(f"Error: {escape(str(exc))}")
        return EXIT_GENERATION_FAILED


def main() -> None:
    """CLI entry point for ``ideaforge`` and ``python -m ideaforge``."""
    sys.exit(run())


if __name__ == "__main__":
    main()
