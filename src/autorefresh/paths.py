"""Dotted-path access into nested document values.

Intermediate segments may pass through lists of embedded documents; every
element is visited. The value at the final segment is a single reference
or a list of references.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping, MutableMapping
from typing import Any

ID_FIELD = "_id"


def reference_id(value: Any) -> Any:
    """Return the identifier held by a reference slot.

    A populated slot is a mapping carrying ``_id``; anything else is taken
    to be the identifier itself.
    """
    if isinstance(value, Mapping):
        return value.get(ID_FIELD)
    return value


def iter_path(values: Any, path: str) -> Iterator[Any]:
    """Yield every reference value found at ``path``, flattening lists."""
    yield from _iter_segments(values, path.split("."))


def _iter_segments(container: Any, segments: list[str]) -> Iterator[Any]:
    if isinstance(container, list):
        for item in container:
            yield from _iter_segments(item, segments)
        return
    if not isinstance(container, Mapping):
        return

    head, rest = segments[0], segments[1:]
    value = container.get(head)
    if value is None:
        return
    if rest:
        yield from _iter_segments(value, rest)
    elif isinstance(value, list):
        yield from (item for item in value if item is not None)
    else:
        yield value


def map_path(values: Any, path: str, fn: Callable[[Any], Any]) -> None:
    """Replace every reference value at ``path`` with ``fn(value)``, in place.

    Lists at the final segment are replaced by a new list of the same length
    and order. ``None`` slots are left alone.
    """
    _map_segments(values, path.split("."), fn)


def _map_segments(container: Any, segments: list[str], fn: Callable[[Any], Any]) -> None:
    if isinstance(container, list):
        for item in container:
            _map_segments(item, segments, fn)
        return
    if not isinstance(container, MutableMapping):
        return

    head, rest = segments[0], segments[1:]
    value = container.get(head)
    if value is None:
        return
    if rest:
        _map_segments(value, rest, fn)
    elif isinstance(value, list):
        container[head] = [None if item is None else fn(item) for item in value]
    else:
        container[head] = fn(value)
