"""Schema and model classes the autorefresh plugin attaches to."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from pathlib import Path
from typing import Any

from autorefresh.document import Document
from autorefresh.parsing import SchemaParser
from autorefresh.plan import RefreshPlan
from autorefresh.store import DocumentStore
from autorefresh.types import TypeDefinition, TypeRegistry

# Lifecycle events accepted by Model.pre
EVENTS = ("validate",)

Hook = Callable[[Document, Callable[..., None]], None]


class Model:
    """A document type bound to a store, with hooks and instance methods."""

    def __init__(self, schema: Schema, name: str) -> None:
        self.schema = schema
        self.name = name
        self.type_def = schema.registry.get_document_type(name)
        self.store = schema.store
        self.methods: dict[str, Callable[..., Any]] = {}
        self.refresh_plan: RefreshPlan | None = None
        self._hooks: dict[str, list[Hook]] = {}

    def pre(self, event: str, hook: Hook) -> None:
        """Register a hook run before ``event``, in registration order."""
        if event not in EVENTS:
            raise ValueError(f"Unknown lifecycle event '{event}'")
        self._hooks.setdefault(event, []).append(hook)

    def hooks_for(self, event: str) -> list[Hook]:
        return list(self._hooks.get(event, ()))

    def method(self, name: str, fn: Callable[..., Any]) -> None:
        """Add an instance method; ``fn`` receives the document first."""
        if name in self.methods:
            raise ValueError(f"Method '{name}' is already defined on model '{self.name}'")
        self.methods[name] = fn

    def plugin(self, fn: Callable[..., Any], **options: Any) -> Model:
        """Apply a plugin function to this model."""
        fn(self, **options)
        return self

    def __call__(self, values: Mapping[str, Any] | None = None, **fields: Any) -> Document:
        """Create an unsaved document."""
        data = dict(values or {})
        data.update(fields)
        return Document(self, data)

    def find(self, ident: Any) -> Document | None:
        """Load a stored document by identifier."""
        record = self.store.find(self.name, ident)
        if record is None:
            return None
        return Document(self, record)

    def insert_many(self, values_list: Iterable[Mapping[str, Any]]) -> list[Document]:
        """Store several documents without running hooks or validation."""
        created = []
        for values in values_list:
            ident = self.store.insert(self.name, values)
            created.append(self.find(ident))
        return created

    def __repr__(self) -> str:
        return f"Model({self.name!r})"


class Schema:
    """Parsed type definitions with storage and models."""

    def __init__(self, registry: TypeRegistry, data_dir: Path | None = None) -> None:
        """Initialize a schema.

        Args:
            registry: Type registry with all type definitions.
            data_dir: Directory for collection files, or None for an
                in-memory store.
        """
        self.registry = registry
        self.store = DocumentStore(registry, data_dir)
        self._models: dict[str, Model] = {}

    @classmethod
    def parse(cls, definitions: str, data_dir: Path | str | None = None) -> Schema:
        """Parse schema definitions and create a schema.

        Args:
            definitions: DSL string defining types.
            data_dir: Directory for collection files.

        Returns:
            A new Schema instance.
        """
        parser = SchemaParser()
        registry = parser.parse(definitions)

        if isinstance(data_dir, str):
            data_dir = Path(data_dir)

        return cls(registry, data_dir)

    def get_type(self, name: str) -> TypeDefinition:
        """Get a type definition by name.

        Raises:
            KeyError: If the type is not found.
        """
        return self.registry.get_or_raise(name)

    def list_types(self) -> list[str]:
        """List all registered type names."""
        return self.registry.list_types()

    def model(self, name: str) -> Model:
        """Get the model for a document type, creating it on first use."""
        if name not in self._models:
            self._models[name] = Model(self, name)
        return self._models[name]

    def close(self) -> None:
        """Close all storage resources."""
        self.store.close()

    def __enter__(self) -> Schema:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
