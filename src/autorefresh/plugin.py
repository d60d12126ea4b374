"""Attach auto-refresh of references to a model.

Example::

    with Schema.parse('''
        Person {
            name: string,
            father: ref Person @autorefresh,
            relatives: ref Person[] @autorefresh(projection = [name]),
        }
    ''') as schema:
        Person = schema.model("Person").plugin(autorefresh_plugin)
        person = Person(father=1, relatives=[2, 3])
        person.autorefresh(lambda error, doc: ...)
"""

from __future__ import annotations

from collections.abc import Callable
from concurrent.futures import Future
from typing import TYPE_CHECKING, Any

from autorefresh.executor import RefreshCallback, refresh, refresh_future
from autorefresh.plan import RefreshPlan

if TYPE_CHECKING:
    from autorefresh.document import Document
    from autorefresh.model import Model


def autorefresh_plugin(model: Model, **defaults: Any) -> RefreshPlan:
    """Analyze ``model`` once and register its refresh operation and hook.

    Adds the instance method ``autorefresh(callback=None)`` and a
    "validate" pre-hook that calls it, so references are populated before
    validation rules run. Keyword arguments override the built-in refresh
    options for every path of this model.

    Returns:
        The model's refresh plan, also stored as ``model.refresh_plan``.
    """
    # the store keeps the defaults so deeper levels of other refreshes use them too
    plan = model.store.set_plan_defaults(model.type_def.name, defaults)
    model.refresh_plan = plan
    resolver = model.store.resolve

    def autorefresh(document: Document, callback: RefreshCallback | None = None) -> Future | None:
        if callback is None:
            return refresh_future(document, plan, resolver)
        refresh(document, plan, resolver, callback)
        return None

    def refresh_before_validate(document: Document, next_: Callable[..., None]) -> None:
        document.autorefresh(lambda error, _instance: next_(error))

    model.method("autorefresh", autorefresh)
    model.pre("validate", refresh_before_validate)
    return plan
