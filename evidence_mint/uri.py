"""
Normalization of storage upload results into a single resource URI.

Providers answer an upload with a bare string, a list of strings, or an object
whose URI field name varies. Shapes are matched in this fixed order, and the
first match wins:

1. list/tuple: the first element, when it is a non-empty string or a mapping
   with a known field (nested lists are not unwrapped);
2. non-empty string: used as is;
3. mapping: the first non-empty string among ``url``, ``uri``, ``ipfsUrl``, ``ipfsUri``;
4. anything else: compact JSON of the whole value with sorted keys, or its
   repr when it cannot be encoded.

The order decides which URI gets minted, so it must not depend on dict
iteration order or on the provider.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any, Callable

URI_FIELD_ALIASES = ("url", "uri", "ipfsUrl", "ipfsUri")


def _from_string(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _from_mapping(value: Any) -> str | None:
    if not isinstance(value, Mapping):
        return None
    for field_name in URI_FIELD_ALIASES:
        candidate = value.get(field_name)
        if isinstance(candidate, str) and candidate.strip():
            return candidate.strip()
    return None


def _from_sequence(value: Any) -> str | None:
    # Only one level deep: a nested list as the first element is not unwrapped.
    if isinstance(value, (list, tuple)) and value:
        return _from_string(value[0]) or _from_mapping(value[0])
    return None


UPLOAD_RESULT_SHAPES: tuple[tuple[str, Callable[[Any], str | None]], ...] = (
    ("sequence", _from_sequence),
    ("string", _from_string),
    ("mapping", _from_mapping),
)


def _stringify(value: Any) -> str:
    # json.dumps("") is '""' so the fallback is never empty.
    try:
        return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)
    except (TypeError, ValueError, RecursionError):
        pass
    try:
        return repr(value)
    except Exception:
        return f"<{type(value).__name__}>"


def normalize(raw_result: Any) -> str:
    for _shape, matcher in UPLOAD_RESULT_SHAPES:
        resolved = matcher(raw_result)
        if resolved:
            return resolved
    return _stringify(raw_result)
