"""IdeaForge artifact parser.

Turns raw generated text into the typed values stored in a bundle: free text,
a list of lines, a JSON object, or a ``{path: content}`` file map split on the
``---FILENAME---`` marker.

Usage::

    from ideaforge.parser import ResultKind, decode

    files = decode(ResultKind.FILE_MAP, raw_text)
"""

from ideaforge.parser.artifacts import (
    FILE_BOUNDARY,
    NO_OUTPUT,
    ResultKind,
    decode,
    decode_file_map,
    decode_free_text,
    decode_json_object,
    decode_line_list,
    render_file_map,
    sanitize_body,
)

__all__ = [
    "FILE_BOUNDARY",
    "NO_OUTPUT",
    "ResultKind",
    "decode",
    "decode_file_map",
    "decode_free_text",
    "decode_json_object",
    "decode_line_list",
    "render_file_map",
    "sanitize_body",
]
