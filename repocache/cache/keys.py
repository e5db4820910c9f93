"""Deterministic cache keys for repository calls.

Key format: {prefix}.{method}.{path}={value}.{path}={value}...

Arguments are flattened into (path, value) leaves. Positional arguments
use their index as the first path segment, keyword arguments their name
(sorted, after the positional ones). Names that are not identifiers are
escaped and marked "<kw>" so they can never read as a positional index.
Nested mappings add key segments in iteration order and nested sequences
add "[i]" segments:

    make_cache_key("users", "find", (3,))
        -> 'users.find.0=3'
    make_cache_key("users", "find_many_without", ({"with": [1, 4]},))
        -> 'users.find_many_without.0.with[0]=1.0.with[1]=4'

The value rendering is injective, so two calls share a key only when
their arguments are structurally equal:

- None, bool, int, float and Decimal use repr(); strings are JSON quoted,
  so "3" and 3 differ.
- Containers are tagged by kind: empty ones render as [] / () / {} and
  tuples are marked, so f([]), f(()) and f({}) differ.
- Sets render their members sorted, independent of hash seeds.
- Enums, dates, UUIDs and paths carry a type tag.
- pydantic models and dataclasses are descended field by field under
  their class name.
- Anything else renders as <TypeName:str(value)>. Such objects need a
  __str__ that identifies their value, not their identity.
"""

import dataclasses
import json
from collections.abc import Mapping, Sequence, Set
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from pathlib import PurePath
from typing import Any, Iterator, Optional
from uuid import UUID

SEPARATOR = "."

_ESCAPED = str.maketrans({
    "\\": "\\\\",
    ".": "\\.",
    "=": "\\=",
    "[": "\\[",
    "]": "\\]",
    "<": "\\<",
})


def make_cache_key(
    prefix: str,
    method: str,
    args: Sequence[Any] = (),
    kwargs: Optional[Mapping[str, Any]] = None,
) -> str:
    """Generate a deterministic cache key for a repository call.

    Args:
        prefix: Key namespace, one per repository type (e.g. "users")
        method: Name of the repository method
        args: Positional arguments of the call
        kwargs: Keyword arguments of the call

    Returns:
        Cache key string
    """
    params = "".join(
        f"{SEPARATOR}{path}={value}" for path, value in flatten_arguments(args, kwargs)
    )
    return f"{prefix}{SEPARATOR}{method}{params}"


def flatten_arguments(
    args: Sequence[Any] = (),
    kwargs: Optional[Mapping[str, Any]] = None,
) -> list[tuple[str, str]]:
    """Flatten call arguments into ordered (path, rendered value) leaves."""
    leaves: list[tuple[str, str]] = []
    for index, value in enumerate(args):
        leaves.extend(_flatten(str(index), value))
    for name in sorted(kwargs or {}):
        leaves.extend(_flatten(_keyword_segment(name), kwargs[name]))
    return leaves


def _flatten(path: str, value: Any) -> Iterator[tuple[str, str]]:
    if isinstance(value, Mapping):
        if not value:
            yield path, "{}"
            return
        for key, item in value.items():
            yield from _flatten(f"{path}{SEPARATOR}{_key_segment(key)}", item)
        return

    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        fields = {f.name: getattr(value, f.name) for f in dataclasses.fields(value)}
        yield from _flatten(f"{path}<{type(value).__name__}>", fields)
        return

    if hasattr(value, "model_dump") and not isinstance(value, type):
        yield from _flatten(f"{path}<{type(value).__name__}>", value.model_dump())
        return

    if isinstance(value, (list, tuple)):
        if not value:
            yield path, "()" if isinstance(value, tuple) else "[]"
            return
        # Tuples get a marker so (1,) and [1] differ
        base = f"{path}<tuple>" if isinstance(value, tuple) else path
        for index, item in enumerate(value):
            yield from _flatten(f"{base}[{index}]", item)
        return

    yield path, render_scalar(value)


def _keyword_segment(name: str) -> str:
    # Positional paths are digits; other names get a marker so f(3) and
    # f(**{"0": 3}) differ
    if name.isidentifier():
        return name
    return f"<kw>{_escape(name)}"


def _key_segment(key: Any) -> str:
    if isinstance(key, str):
        return _escape(key)
    return f"<{render_scalar(key)}>"


def _escape(segment: str) -> str:
    return segment.translate(_ESCAPED)


def render_scalar(value: Any) -> str:
    """Render a leaf value so that distinct values give distinct strings."""
    if value is None or isinstance(value, (bool, int, float, Decimal)):
        if isinstance(value, Enum):
            return f"<{type(value).__name__}.{value.name}>"
        return repr(value)
    if isinstance(value, Enum):
        return f"<{type(value).__name__}.{value.name}>"
    if isinstance(value, str):
        return json.dumps(value, ensure_ascii=False)
    if isinstance(value, (bytes, bytearray)):
        return repr(bytes(value))
    if isinstance(value, datetime):
        return f"<datetime:{value.isoformat()}>"
    if isinstance(value, date):
        return f"<date:{value.isoformat()}>"
    if isinstance(value, time):
        return f"<time:{value.isoformat()}>"
    if isinstance(value, UUID):
        return f"<uuid:{value}>"
    if isinstance(value, PurePath):
        return f"<path:{value.as_posix()}>"
    if isinstance(value, Set):
        members = sorted(render_scalar_or_nested(item) for item in value)
        return "<set:{" + ",".join(members) + "}>"
    return f"<{type(value).__name__}:{value}>"


def render_scalar_or_nested(value: Any) -> str:
    """Render any value, nested structures included, as one string."""
    leaves = list(_flatten("", value))
    if len(leaves) == 1 and leaves[0][0] == "":
        return leaves[0][1]
    return "{" + ",".join(f"{path}={rendered}" for path, rendered in leaves) + "}"
