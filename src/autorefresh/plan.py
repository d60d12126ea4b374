"""Refresh plan values: directives, requests and the plan mapping."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from autorefresh.types import SchemaError

# Built-in refresh options, overridden per model and then per field
DEFAULT_OPTIONS: Mapping[str, Any] = MappingProxyType({
    "max_depth": 1,
    "projection": None,
})

RECOGNIZED_OPTIONS = frozenset(DEFAULT_OPTIONS)


def validate_options(options: Mapping[str, Any], where: str) -> dict[str, Any]:
    """Check option keys and values, returning a normalized copy.

    Args:
        options: Option mapping from a directive or from plugin defaults.
        where: Description of the source, used in error messages.

    Returns:
        A new dict with ``projection`` normalized to a tuple of names.

    Raises:
        SchemaError: On unknown keys or invalid values.
    """
    unknown = sorted(set(options) - RECOGNIZED_OPTIONS)
    if unknown:
        raise SchemaError(f"Unknown refresh option(s) {unknown} on {where}")

    result = dict(options)
    if "max_depth" in result:
        depth = result["max_depth"]
        if isinstance(depth, bool) or not isinstance(depth, int) or depth < 0:
            raise SchemaError(
                f"max_depth must be a non-negative integer on {where}, got {depth!r}"
            )
    if result.get("projection") is not None:
        result["projection"] = _normalize_projection(result["projection"], where)
    return result


def _normalize_projection(projection: Any, where: str) -> tuple[str, ...]:
    """Return a projection as field names, excluded ones prefixed with ``-``.

    Accepted forms: ``"name -secret"``, ``["name", "age"]`` and
    ``{"name": 1}`` / ``{"secret": 0}``. A projection either includes or
    excludes; ``_id`` is kept either way.
    """
    if isinstance(projection, str):
        names = projection.split()
    elif isinstance(projection, Mapping):
        if not all(isinstance(name, str) for name in projection):
            raise SchemaError(f"projection must list field names on {where}")
        names = [name if keep else f"-{name}" for name, keep in projection.items()]
    elif isinstance(projection, (list, tuple)):
        names = list(projection)
        if not all(isinstance(name, str) for name in names):
            raise SchemaError(f"projection must list field names on {where}")
    else:
        raise SchemaError(f"projection must list field names on {where}, got {projection!r}")

    excluded = [name.startswith("-") for name in names]
    if any(excluded) and not all(excluded):
        raise SchemaError(f"projection cannot mix inclusion and exclusion on {where}")
    return tuple(names)


@dataclass(frozen=True)
class RefreshDirective:
    """Resolved refresh settings for one dotted path."""

    path: str
    collection: str
    options: Mapping[str, Any]

    def __post_init__(self) -> None:
        object.__setattr__(self, "options", MappingProxyType(dict(self.options)))

    @property
    def max_depth(self) -> int:
        return self.options["max_depth"]

    @property
    def projection(self) -> tuple[str, ...] | None:
        return self.options.get("projection")

    def to_request(self) -> RefreshRequest:
        """Return an independent, mutable copy for a single refresh run."""
        return RefreshRequest(self.path, self.collection, dict(self.options))


@dataclass
class RefreshRequest:
    """One entry of the request list handed to a resolver."""

    path: str
    collection: str
    options: dict[str, Any] = field(default_factory=dict)

    @property
    def max_depth(self) -> int:
        return self.options.get("max_depth", DEFAULT_OPTIONS["max_depth"])

    @property
    def projection(self) -> tuple[str, ...] | None:
        return self.options.get("projection")


class RefreshPlan(Mapping[str, RefreshDirective]):
    """Ordered, read-only mapping from dotted path to refresh directive.

    Built once per schema and shared by every document of it. When the
    same path occurs more than once in ``entries`` the last one wins.
    """

    def __init__(self, entries: Iterable[tuple[str, RefreshDirective]] = ()) -> None:
        self._directives: dict[str, RefreshDirective] = {}
        for path, directive in entries:
            self._directives[path] = directive

    def __getitem__(self, path: str) -> RefreshDirective:
        return self._directives[path]

    def __iter__(self) -> Iterator[str]:
        return iter(self._directives)

    def __len__(self) -> int:
        return len(self._directives)

    @property
    def collections(self) -> list[str]:
        """Distinct target collections, in first-seen order."""
        return list(dict.fromkeys(d.collection for d in self._directives.values()))

    def requests(self) -> list[RefreshRequest]:
        """Copy every directive into a fresh request list, in plan order."""
        return [directive.to_request() for directive in self._directives.values()]

    def __repr__(self) -> str:
        return f"RefreshPlan({list(self._directives)!r})"
