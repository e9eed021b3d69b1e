"""IdeaForge: generate a starter project scaffold from a short project idea.

Usage::

    from ideaforge import BundleOrchestrator, TextGenerationClient

    orchestrator = BundleOrchestrator(TextGenerationClient(api_key="sk-..."))
    bundle = await orchestrator.assemble_from_payload(request_json)
"""

__version__ = "0.1.0"

from ideaforge.errors import (  # noqa: E402
    IdeaForgeError,
    InvalidInputError,
    MalformedResponseError,
    StreamAbortedError,
    UpstreamUnavailableError,
)
from ideaforge.llm_client import GenerationOptions, Prompt, TextGenerationClient  # noqa: E402
from ideaforge.models import ArtifactBundle, ProjectSpec, validate_project_payload  # noqa: E402
from ideaforge.orchestrator import BundleOrchestrator  # noqa: E402
from ideaforge.progress import ProgressEstimator  # noqa: E402
from ideaforge.streaming import StreamRelay, StreamState  # noqa: E402

__all__ = [
    "__version__",
    "ArtifactBundle",
    "BundleOrchestrator",
    "GenerationOptions",
    "IdeaForgeError",
    "InvalidInputError",
    "MalformedResponseError",
    "ProgressEstimator",
    "ProjectSpec",
    "Prompt",
    "StreamAbortedError",
    "StreamRelay",
    "StreamState",
    "TextGenerationClient",
    "UpstreamUnavailableError",
    "validate_project_payload",
]
