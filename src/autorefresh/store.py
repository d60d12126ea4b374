"""Document storage and the batched resolve primitive."""

from __future__ import annotations

import copy
import json
import logging
from collections.abc import Callable, Iterable, Mapping
from pathlib import Path
from typing import Any

from autorefresh.analyzer import analyze
from autorefresh.executor import Resolution
from autorefresh.paths import ID_FIELD, iter_path, map_path, reference_id
from autorefresh.plan import RefreshPlan, RefreshRequest
from autorefresh.types import (
    ArrayTypeDefinition,
    DocumentTypeDefinition,
    ReferenceTypeDefinition,
    TypeDefinition,
    TypeRegistry,
)

logger = logging.getLogger(__name__)


class StorageUnavailableError(OSError):
    """Raised when a store is closed or its files cannot be read."""


class Collection:
    """Record storage for a single document type.

    Records are kept in memory and, when a file path is given, written to a
    JSON file after every change. The file is only created on first insert.
    """

    def __init__(self, type_def: DocumentTypeDefinition, file_path: Path | None = None) -> None:
        self.type_def = type_def
        self.file_path = file_path
        self._records: dict[int, dict[str, Any]] = {}
        self._next_id = 0
        self._closed = False

        if self.file_path is not None and self.file_path.exists():
            self._load()

    def _load(self) -> None:
        """Read records from an existing collection file."""
        try:
            with open(self.file_path, encoding="utf-8") as f:  # type: ignore[arg-type]
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            raise StorageUnavailableError(f"Cannot read {self.file_path}: {exc}") from exc

        # JSON object keys are strings
        self._records = {int(k): v for k, v in data.get("records", {}).items()}
        self._next_id = data.get("next_id", len(self._records))

    def _flush(self) -> None:
        """Write all records to the collection file, if there is one."""
        if self.file_path is None:
            return
        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "type": self.type_def.name,
            "next_id": self._next_id,
            "records": {str(k): v for k, v in self._records.items()},
        }
        with open(self.file_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)

    def _check_open(self) -> None:
        if self._closed:
            raise StorageUnavailableError(f"Collection '{self.type_def.name}' is closed")

    @property
    def count(self) -> int:
        """Return the number of records in the collection."""
        return len(self._records)

    def insert(self, record: dict[str, Any]) -> int:
        """Insert a record and return its identifier."""
        self._check_open()
        ident = self._next_id
        self._next_id += 1
        self._records[ident] = copy.deepcopy(record)
        self._flush()
        return ident

    def update(self, ident: int, record: dict[str, Any]) -> None:
        """Replace the record stored under ``ident``."""
        self._check_open()
        if ident not in self._records:
            raise KeyError(f"No '{self.type_def.name}' document with id {ident}")
        self._records[ident] = copy.deepcopy(record)
        self._flush()

    def get(self, ident: Any) -> dict[str, Any] | None:
        """Return a copy of a record with its ``_id``, or None if absent."""
        self._check_open()
        record = self._records.get(ident)
        if record is None:
            return None
        return {ID_FIELD: ident, **copy.deepcopy(record)}

    def get_many(self, idents: Iterable[Any]) -> dict[Any, dict[str, Any]]:
        """Return the records present among ``idents``, keyed by identifier."""
        self._check_open()
        result: dict[Any, dict[str, Any]] = {}
        for ident in idents:
            record = self.get(ident)
            if record is not None:
                result[ident] = record
        return result

    def close(self) -> None:
        """Close the collection. Later reads and writes fail."""
        self._closed = True

    def __enter__(self) -> Collection:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


class DocumentStore:
    """Manages the collections of a schema and resolves references."""

    def __init__(self, registry: TypeRegistry, data_dir: Path | None = None) -> None:
        """Initialize the store.

        Args:
            registry: Type registry containing all document types.
            data_dir: Directory for collection files, or None to keep
                everything in memory.
        """
        self.registry = registry
        self.data_dir = data_dir
        self.fetch_count = 0
        self._collections: dict[str, Collection] = {}
        self._plans: dict[str, RefreshPlan] = {}
        self._plan_defaults: dict[str, dict[str, Any]] = {}
        self._closed = False

        if self.data_dir is not None:
            self.data_dir.mkdir(parents=True, exist_ok=True)

    def get_collection(self, type_name: str) -> Collection:
        """Get or create the collection for a document type.

        Raises:
            KeyError: If the type is not defined.
            SchemaError: If the type is not a document type.
            StorageUnavailableError: If the store is closed.
        """
        if self._closed:
            raise StorageUnavailableError("Document store is closed")
        if type_name in self._collections:
            return self._collections[type_name]

        type_def = self.registry.get_document_type(type_name)
        file_path = None
        if self.data_dir is not None:
            file_path = self.data_dir / f"{type_def.name}.json"
        collection = Collection(type_def, file_path)
        self._collections[type_name] = collection
        return collection

    def insert(self, type_name: str, values: Mapping[str, Any]) -> int:
        """Store a document, reducing populated references to identifiers."""
        collection = self.get_collection(type_name)
        return collection.insert(self._dehydrate(collection.type_def, values))

    def update(self, type_name: str, ident: int, values: Mapping[str, Any]) -> None:
        """Replace a stored document."""
        collection = self.get_collection(type_name)
        collection.update(ident, self._dehydrate(collection.type_def, values))

    def find(self, type_name: str, ident: Any) -> dict[str, Any] | None:
        """Load a single document by identifier."""
        return self.get_collection(type_name).get(ident)

    def fetch(self, type_name: str, idents: Iterable[Any]) -> dict[Any, dict[str, Any]]:
        """Load many documents of one collection in a single read."""
        idents = list(idents)
        collection = self.get_collection(type_name)
        self.fetch_count += 1
        logger.debug("Fetching %d %s document(s)", len(idents), type_name)
        return collection.get_many(idents)

    def plan_for(self, type_name: str) -> RefreshPlan:
        """Return the refresh plan of a document type.

        Uses the defaults given to ``set_plan_defaults`` for that type, so
        deeper levels of a resolve follow the same options as a refresh
        started on a document of the type.
        """
        if type_name not in self._plans:
            self._plans[type_name] = analyze(
                self.registry.get_document_type(type_name),
                defaults=self._plan_defaults.get(type_name),
            )
        return self._plans[type_name]

    def set_plan_defaults(self, type_name: str, defaults: Mapping[str, Any] | None) -> RefreshPlan:
        """Set the refresh option defaults of a type and return its new plan."""
        plan = analyze(self.registry.get_document_type(type_name), defaults=defaults or None)
        self._plan_defaults[type_name] = dict(defaults or {})
        self._plans[type_name] = plan
        return plan

    def resolve(
        self,
        instance: Any,
        requests: list[RefreshRequest],
        callback: Callable[[BaseException | None, Resolution | None], None],
    ) -> None:
        """Resolve the references named by ``requests`` on ``instance``.

        Identifiers are grouped by target collection so each collection is
        read once per depth level. The result goes to ``callback``.
        """
        try:
            resolution = self._resolve(instance, requests)
        except (OSError, KeyError, ValueError) as exc:
            callback(exc, None)
            return
        callback(None, resolution)

    def _resolve(self, instance: Any, requests: list[RefreshRequest]) -> dict[str, dict[Any, Any]]:
        active = [(instance, r) for r in requests if r.max_depth > 0]
        found = self._fetch_level(active)

        resolution: dict[str, dict[Any, Any]] = {}
        deeper: list[tuple[dict[str, Any], str, int]] = []
        for _, request in active:
            records = found.get(request.collection, {})
            resolved: dict[Any, Any] = {}
            for value in iter_path(instance, request.path):
                ident = reference_id(value)
                if ident in records and ident not in resolved:
                    resolved[ident] = _project(records[ident], request.projection)
            if request.max_depth > 1:
                deeper.extend((doc, request.collection, request.max_depth - 1) for doc in resolved.values())
            resolution[request.path] = resolved

        self._resolve_deeper(deeper)
        return resolution

    def _resolve_deeper(self, targets: list[tuple[dict[str, Any], str, int]]) -> None:
        """Populate the references of resolved targets in place, a level at a time.

        Each target is ``(document, type name, remaining depth)``. All
        targets of a level share one fetch per collection.
        """
        while targets:
            level: list[tuple[dict[str, Any], RefreshRequest]] = []
            for doc, type_name, depth in targets:
                for request in self.plan_for(type_name).requests():
                    request.options["max_depth"] = min(request.max_depth, depth)
                    if request.max_depth > 0:
                        level.append((doc, request))

            found = self._fetch_level(level)
            targets = []
            for doc, request in level:
                map_path(doc, request.path, self._swapper(request, found, targets))

    @staticmethod
    def _swapper(
        request: RefreshRequest,
        found: Mapping[str, Mapping[Any, dict[str, Any]]],
        targets: list[tuple[dict[str, Any], str, int]],
    ) -> Callable[[Any], Any]:
        records = found.get(request.collection, {})

        def swap(value: Any) -> Any:
            ident = reference_id(value)
            if ident not in records:
                return value
            doc = _project(records[ident], request.projection)
            if request.max_depth > 1:
                targets.append((doc, request.collection, request.max_depth - 1))
            return doc

        return swap

    def _fetch_level(
        self, pairs: list[tuple[Any, RefreshRequest]]
    ) -> dict[str, dict[Any, dict[str, Any]]]:
        """Fetch every identifier the (values, request) pairs name, once per collection."""
        wanted: dict[str, dict[Any, None]] = {}
        for values, request in pairs:
            idents = wanted.setdefault(request.collection, {})
            for value in iter_path(values, request.path):
                ident = reference_id(value)
                if ident is not None:
                    idents[ident] = None

        return {
            name: self.fetch(name, idents)
            for name, idents in wanted.items()
            if idents
        }

    def _dehydrate(self, doc_type: DocumentTypeDefinition, values: Mapping[str, Any]) -> dict[str, Any]:
        """Build the stored form of a document: known fields, identifiers for references."""
        record: dict[str, Any] = {}
        for f in doc_type.fields:
            if f.name in values:
                record[f.name] = self._dehydrate_value(f.type_def, values[f.name])
        return record

    def _dehydrate_value(self, type_def: TypeDefinition, value: Any) -> Any:
        if value is None:
            return None
        base = type_def.resolve_base_type()
        if isinstance(base, ArrayTypeDefinition):
            return [self._dehydrate_value(base.element_type, v) for v in value]
        if isinstance(base, ReferenceTypeDefinition):
            return reference_id(value)
        if isinstance(base, DocumentTypeDefinition):
            return self._dehydrate(base, value)
        return value

    def close(self) -> None:
        """Close all collections."""
        for collection in self._collections.values():
            collection.close()
        self._collections.clear()
        self._closed = True

    def __enter__(self) -> DocumentStore:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


def _project(record: Mapping[str, Any], projection: tuple[str, ...] | None) -> dict[str, Any]:
    """Copy a fetched record, applying an inclusion or ``-name`` exclusion projection.

    ``_id`` is always kept.
    """
    if projection is None:
        return copy.deepcopy(dict(record))
    if projection and projection[0].startswith("-"):
        excluded = {name[1:] for name in projection}
        return {
            key: copy.deepcopy(value)
            for key, value in record.items()
            if key == ID_FIELD or key not in excluded
        }
    projected = {ID_FIELD: record[ID_FIELD]}
    for name in projection:
        if name in record:
            projected[name] = copy.deepcopy(record[name])
    return projected
