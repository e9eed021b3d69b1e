"""Error taxonomy for IdeaForge.

Every failure the core can report falls into one of four classes:

* :class:`InvalidInputError` -- the caller's request failed a precondition.
  Raised before any upstream call is issued.
* :class:`UpstreamUnavailableError` -- the generative service errored or
  returned nothing where content was required.
* :class:`MalformedResponseError` -- the service answered but its payload could
  not be decoded (e.g. invalid JSON for a structured stage).
* :class:`StreamAbortedError` -- a streaming relay failed part-way through.
"""

from __future__ import annotations


class IdeaForgeError(Exception):
    """Base class for all IdeaForge errors."""


class InvalidInputError(IdeaForgeError):
    """Raised when a caller-supplied request fails validation."""

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.message = message
        super().__init__(message)


class UpstreamUnavailableError(IdeaForgeError):
    """Raised when the text-generation service fails or returns no content."""

    def __init__(self, message: str, stage: str | None = None) -> None:
        self.stage = stage
        self.message = message
        prefix = f"Stage '{stage}': " if stage else ""
        super().__init__(f"{prefix}{message}")


class MalformedResponseError(IdeaForgeError):
    """Raised when an upstream payload cannot be decoded."""

    def __init__(self, message: str, stage: str | None = None) -> None:
        self.stage = stage
        self.message = message
        prefix = f"Stage '{stage}': " if stage else ""
        super().__init__(f"{prefix}{message}")


class StreamAbortedError(IdeaForgeError):
    """Raised to the stream consumer when the relay stops before a clean close."""

    def __init__(self, message: str, fragments_relayed: int = 0) -> None:
        self.fragments_relayed = fragments_relayed
        super().__init__(f"{message} (after {fragments_relayed} fragment(s))")
