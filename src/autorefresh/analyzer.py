"""Path analyzer: builds a refresh plan from a schema tree."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from autorefresh.plan import DEFAULT_OPTIONS, RefreshDirective, RefreshPlan, validate_options
from autorefresh.types import FieldDescriptor, SchemaError

logger = logging.getLogger(__name__)


def analyze(schema: Any, defaults: Mapping[str, Any] | None = None) -> RefreshPlan:
    """Walk a schema tree and collect every field marked for auto-refresh.

    Args:
        schema: A document type (anything exposing ``fields``) or a sequence
            of field descriptors forming the root level of the tree.
        defaults: Options overriding the built-in ``DEFAULT_OPTIONS`` for
            every directive of this schema.

    Returns:
        The refresh plan, keyed by full dotted path.

    Raises:
        SchemaError: If a directive or the defaults are malformed.
    """
    fields: Sequence[FieldDescriptor] = getattr(schema, "fields", schema)
    base = dict(DEFAULT_OPTIONS)
    if defaults:
        base.update(validate_options(defaults, "plugin defaults"))

    plan = RefreshPlan(_collect(fields, "", base))
    for path, directive in plan.items():
        logger.debug("autorefresh %s -> %s %s", path, directive.collection, dict(directive.options))
    return plan


def _collect(
    fields: Sequence[FieldDescriptor], parent_path: str, defaults: Mapping[str, Any]
) -> list[tuple[str, RefreshDirective]]:
    """Return (path, directive) pairs for ``fields`` and their descendants.

    Children are collected before the node that holds them.
    """
    entries: list[tuple[str, RefreshDirective]] = []
    for node in fields:
        path = f"{parent_path}.{node.name}" if parent_path else node.name

        children = node.children
        if children:
            entries.extend(_collect(children, path, defaults))

        if _is_refreshable(node, path):
            entries.append((path, _build_directive(node, path, defaults)))
    return entries


def _is_refreshable(node: FieldDescriptor, path: str) -> bool:
    directive = node.refresh_directive
    if directive is None or directive is False:
        return False
    if not node.is_reference or not node.referenced_collection:
        logger.debug("Skipping '%s': refresh directive without a reference target", path)
        return False
    return True


def _build_directive(
    node: FieldDescriptor, path: str, defaults: Mapping[str, Any]
) -> RefreshDirective:
    """Merge defaults, the node's identity and its directive options."""
    directive = node.refresh_directive
    merged: dict[str, Any] = dict(defaults)
    merged.update(path=path, collection=node.referenced_collection)

    if isinstance(directive, Mapping):
        merged.update(validate_options(directive, f"field '{path}'"))
    elif directive is not True:
        raise SchemaError(
            f"Refresh directive on field '{path}' must be true or a mapping, "
            f"got {directive!r}"
        )

    return RefreshDirective(
        path=merged.pop("path"),
        collection=merged.pop("collection"),
        options=merged,
    )
