"""Refresh executor: resolves a document's marked references in one batch."""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable, Mapping, MutableMapping, Sequence
from concurrent.futures import Future
from typing import Any

from autorefresh.paths import map_path, reference_id
from autorefresh.plan import RefreshPlan, RefreshRequest

logger = logging.getLogger(__name__)

# {path: {identifier: resolved document}}
Resolution = Mapping[str, Mapping[Any, Any]]
ResolveCallback = Callable[[BaseException | None, Resolution | None], None]
Resolver = Callable[[Any, list[RefreshRequest], ResolveCallback], None]
RefreshCallback = Callable[[BaseException | None, Any], None]


def refresh(
    document: MutableMapping[str, Any],
    plan: RefreshPlan,
    resolver: Resolver,
    callback: RefreshCallback,
) -> None:
    """Populate every path of ``plan`` on ``document``.

    The resolver is called once with a copy of the plan's directives. When
    it completes, resolved values are written into ``document`` and
    ``callback(None, document)`` is invoked; on failure the document is left
    as it was and ``callback(error, document)`` is invoked instead.
    """
    requests = plan.requests()
    if not requests:
        callback(None, document)
        return

    completed = False

    def on_resolved(error: BaseException | None, resolution: Resolution | None = None) -> None:
        nonlocal completed
        if completed:
            raise RuntimeError("Resolver reported completion more than once")
        completed = True

        if error is not None:
            logger.warning("Refresh of %d path(s) failed: %s", len(requests), error)
            callback(error, document)
            return

        apply_resolution(document, requests, resolution or {})
        callback(None, document)

    logger.debug("Refreshing paths %s", [r.path for r in requests])
    try:
        resolver(document, requests, on_resolved)
    except Exception as exc:
        if completed:
            raise
        completed = True
        logger.warning("Resolver raised before completing: %s", exc)
        callback(exc, document)


def refresh_future(
    document: MutableMapping[str, Any], plan: RefreshPlan, resolver: Resolver
) -> Future:
    """Like ``refresh`` but report completion through a Future."""
    future: Future = Future()
    future.set_running_or_notify_cancel()

    def done(error: BaseException | None, instance: Any) -> None:
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(instance)

    refresh(document, plan, resolver, done)
    return future


def apply_resolution(
    document: MutableMapping[str, Any],
    requests: Sequence[RefreshRequest],
    resolution: Resolution,
) -> None:
    """Write resolved documents into ``document`` at each requested path.

    Slots whose identifier is absent from the resolution keep their value.
    """
    for request in requests:
        resolved = resolution.get(request.path)
        if not resolved:
            continue

        def swap(value: Any, resolved: Mapping[Any, Any] = resolved) -> Any:
            ident = reference_id(value)
            if ident is None:
                return value
            if ident not in resolved:
                return value
            return copy.deepcopy(resolved[ident])

        map_path(document, request.path, swap)
