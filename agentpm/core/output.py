"""Extraction of a tool's JSON result from noisy stdout."""
from __future__ import annotations

import json

from .errors import NoJsonFoundError
from .manifest import JsonValue

_decoder = json.JSONDecoder()


def extract_last_json_object(text: str) -> JsonValue:
    """Return the JSON object that ends ``text``.

    Any diagnostic noise before the object is ignored. Candidate ``{`` positions
    are tried in order and the first object that runs through to the end of the
    text (trailing whitespace allowed) wins, so nested objects resolve to their
    outermost enclosing object. Raises ``NoJsonFoundError`` when there is no ``{``
    at all or the object nests too deeply to decode, and ``json.JSONDecodeError``
    when no candidate parses through to the end of the text.
    """
    idx = text.find("{")
    if idx < 0:
        raise NoJsonFoundError()
    end = len(text.rstrip())
    first_error = None
    while idx >= 0:
        try:
            value, stop = _decoder.raw_decode(text, idx)
        except json.JSONDecodeError as e:
            first_error = first_error or e
        except RecursionError as e:
            raise NoJsonFoundError(f"JSON output at offset {idx} is nested too deeply to decode.") from e
        else:
            if stop == end:
                return value
        idx = text.find("{", idx + 1)
    if first_error is not None:
        raise first_error
    raise json.JSONDecodeError("Extra data after JSON object", text, end)


__all__ = ["extract_last_json_object"]
