"""Decoders that turn raw generator text into typed stage results.

Four result kinds are supported:

* ``freeText``   -- trimmed text, with a fallback sentinel for empty output.
* ``lineList``   -- non-empty trimmed lines, in order.
* ``jsonObject`` -- a single JSON object; anything else is a hard failure.
* ``fileMap``    -- ``{path: content}`` records separated by a boundary marker.

The ``fileMap`` decoder is tolerant of the wrapper artifacts generators tend to
emit around code (markdown fences, triple-quoted blocks) and never rejects a
whole payload because of one bad record.
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable
from enum import Enum
from typing import Any

from ..errors import MalformedResponseError

FILE_BOUNDARY = "---FILENAME---"
NO_OUTPUT = "No output generated"


class ResultKind(str, Enum):
    """Which decoder a stage's raw output goes through."""
    FREE_TEXT = "freeText"
    LINE_LIST = "lineList"
    JSON_OBJECT = "jsonObject"
    FILE_MAP = "fileMap"


# ---------------------------------------------------------------------------
# Wrapper artifacts
# ---------------------------------------------------------------------------

# Each pattern matches one whole line at the very start or end of a body, so
# a one-line docstring such as '"""Helpers."""' is never touched.
_OPENING_WRAPPERS = (
    re.compile(r"\A```[\w.+#-]*[ \t]*(?:\n|\Z)"),
    re.compile(r"\A(?:\"\"\"|''')[ \t]*(?:\n|\Z)"),
)
_CLOSING_WRAPPERS = (
    re.compile(r"(?:\A|\n)```[ \t]*\Z"),
    re.compile(r"(?:\A|\n)(?:\"\"\"|''')[ \t]*\Z"),
)


def _strip_once(body: str) -> str:
    for pattern in _OPENING_WRAPPERS + _CLOSING_WRAPPERS:
        body = pattern.sub("", body, count=1)
    return body.strip()


def sanitize_body(body: str) -> str:
    """Strip wrapper artifacts from the start and end of a file body.

    Stripping repeats until the body stops changing, so nested wrappers are
    peeled off and the result is a fixed point (sanitising it again is a
    no-op).  Unbalanced or malformed wrappers are removed on a best-effort
    basis; nothing here raises.
    """
    current = body.strip()
    while True:
        stripped = _strip_once(current)
        if stripped == current:
            return current
        current = stripped


# ---------------------------------------------------------------------------
# Decoders
# ---------------------------------------------------------------------------

def decode_free_text(raw: str, fallback: str = NO_OUTPUT) -> str:
    """Trim *raw*; empty output becomes *fallback* instead of an error."""
    text = (raw or "").strip()
    return text or fallback


def decode_line_list(raw: str) -> list[str]:
    """Split *raw* into trimmed, non-empty lines, preserving order."""
    return [line.strip() for line in (raw or "").splitlines() if line.strip()]


def decode_json_object(raw: str) -> dict[str, Any]:
    """Parse *raw* as exactly one JSON object.

    A single wrapping code fence is tolerated; there is no partial recovery.

    Raises:
        MalformedResponseError: If the text is not a JSON object.
    """
    text = sanitize_body(raw or "")
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise MalformedResponseError(f"Response is not valid JSON: {exc.msg}") from exc
    if not isinstance(data, dict):
        raise MalformedResponseError(
            f"Expected a JSON object, got {type(data).__name__}"
        )
    return data


def decode_file_map(raw: str) -> dict[str, str]:
    """Decode boundary-separated file records into ``{path: content}``.

    Each record is the boundary marker, then the file path on its own line,
    then the file body.  Records with an empty path or an empty (sanitised)
    body are dropped.  When two records share a path the later one wins.
    """
    files: dict[str, str] = {}
    text = (raw or "").replace("\r\n", "\n")

    for segment in text.split(FILE_BOUNDARY):
        if not segment.strip():
            continue

        lines = segment.split("\n")
        path = ""
        body_start = len(lines)
        for index, line in enumerate(lines):
            if line.strip():
                path = line.strip()
                body_start = index + 1
                break

        content = sanitize_body("\n".join(lines[body_start:]))
        if not path or not content:
            continue

        files.pop(path, None)
        files[path] = content

    return files


def render_file_map(files: dict[str, str]) -> str:
    """Render a ``{path: content}`` mapping back into boundary-separated text."""
    return "\n".join(f"{FILE_BOUNDARY}\n{path}\n{content}\n" for path, content in files.items())


_DECODERS: dict[ResultKind, Callable[[str], Any]] = {
    ResultKind.LINE_LIST: decode_line_list,
    ResultKind.JSON_OBJECT: decode_json_object,
    ResultKind.FILE_MAP: decode_file_map,
}


def decode(kind: ResultKind, raw: str, fallback: str = NO_OUTPUT) -> Any:
    """Dispatch *raw* to the decoder for *kind*."""
    if kind is ResultKind.FREE_TEXT:
        return decode_free_text(raw, fallback)
    return _DECODERS[kind](raw)
