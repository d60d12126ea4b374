"""Document instances and schema validation."""

from __future__ import annotations

import functools
from collections.abc import Callable, Iterator, Mapping, MutableMapping
from typing import TYPE_CHECKING, Any

from autorefresh.paths import ID_FIELD
from autorefresh.types import (
    ArrayTypeDefinition,
    DocumentTypeDefinition,
    ReferenceTypeDefinition,
    ScalarTypeDefinition,
    TypeDefinition,
)

if TYPE_CHECKING:
    from autorefresh.model import Model


class ValidationError(ValueError):
    """Raised when document values do not match their type."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        super().__init__("; ".join(errors))


def validate_document(
    doc_type: DocumentTypeDefinition, values: Mapping[str, Any], path: str = ""
) -> list[str]:
    """Check ``values`` against ``doc_type`` and return error messages.

    Reference slots accept an identifier or a populated mapping carrying
    ``_id``. Absent and None fields are allowed.
    """
    errors: list[str] = []
    for key in values:
        if key != ID_FIELD and doc_type.get_field(key) is None:
            errors.append(f"{_join(path, key)}: unknown field")
    for f in doc_type.fields:
        if f.name in values:
            errors.extend(_validate_value(f.type_def, values[f.name], _join(path, f.name)))
    return errors


def _validate_value(type_def: TypeDefinition, value: Any, path: str) -> list[str]:
    if value is None:
        return []
    base = type_def.resolve_base_type()

    if isinstance(base, ArrayTypeDefinition):
        if not isinstance(value, list):
            return [f"{path}: expected a list"]
        errors: list[str] = []
        for i, item in enumerate(value):
            errors.extend(_validate_value(base.element_type, item, f"{path}.{i}"))
        return errors

    if isinstance(base, ReferenceTypeDefinition):
        if isinstance(value, Mapping):
            if value.get(ID_FIELD) is None:
                return [f"{path}: populated '{base.target}' reference has no {ID_FIELD}"]
            return []
        if isinstance(value, bool) or not isinstance(value, (int, str)):
            return [f"{path}: expected an identifier of '{base.target}'"]
        return []

    if isinstance(base, DocumentTypeDefinition):
        if not isinstance(value, Mapping):
            return [f"{path}: expected an embedded '{base.name}' document"]
        return validate_document(base, value, path)

    if isinstance(base, ScalarTypeDefinition) and not base.scalar.accepts(value):
        return [f"{path}: expected {base.scalar.value}, got {type(value).__name__}"]
    return []


def _join(path: str, name: str) -> str:
    return f"{path}.{name}" if path else name


class Document(MutableMapping[str, Any]):
    """A document of a model: its field values plus the model's methods.

    Methods registered on the model (for instance ``autorefresh``) are
    available as bound attributes.
    """

    def __init__(self, model: Model, values: Mapping[str, Any] | None = None) -> None:
        self.model = model
        self._values: dict[str, Any] = dict(values or {})

    @property
    def id(self) -> Any:
        """Identifier assigned by the store, or None before the first save."""
        return self._values.get(ID_FIELD)

    def to_dict(self) -> dict[str, Any]:
        """Return a shallow copy of the field values."""
        return dict(self._values)

    def __getattr__(self, name: str) -> Any:
        model = self.__dict__.get("model")
        if model is None or name.startswith("_") or name not in model.methods:
            raise AttributeError(name)
        return functools.partial(model.methods[name], self)

    def __getitem__(self, key: str) -> Any:
        return self._values[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self._values[key] = value

    def __delitem__(self, key: str) -> None:
        del self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def validate(self, callback: Callable[[BaseException | None], None]) -> None:
        """Run the model's "validate" pre-hooks in order, then check types.

        A hook receives the document and a ``next(error=None)`` function;
        the first error stops the chain and is passed to ``callback``.
        """
        hooks = self.model.hooks_for("validate")

        def run(index: int, error: BaseException | None = None) -> None:
            if error is not None:
                callback(error)
                return
            if index < len(hooks):
                hooks[index](self, lambda error=None: run(index + 1, error))
                return
            errors = validate_document(self.model.type_def, self._values)
            callback(ValidationError(errors) if errors else None)

        run(0)

    def save(self, callback: Callable[[BaseException | None, Document], None]) -> None:
        """Validate, then insert or update the document in the model's store."""
        store = self.model.store

        def validated(error: BaseException | None) -> None:
            if error is not None:
                callback(error, self)
                return
            try:
                if self.id is None:
                    self._values[ID_FIELD] = store.insert(self.model.name, self._values)
                else:
                    store.update(self.model.name, self.id, self._values)
            except (OSError, KeyError, ValueError) as exc:
                callback(exc, self)
                return
            callback(None, self)

        self.validate(validated)

    def __repr__(self) -> str:
        return f"{self.model.name}({self._values!r})"
