"""Type definitions for autorefresh schemas."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, Union


class SchemaError(ValueError):
    """Raised when a schema tree or a refresh directive is malformed."""


# Literal True, an options mapping, or None/False for "not marked"
Directive = Union[bool, Mapping[str, Any], None]


class ScalarType(Enum):
    """Built-in scalar types supported by the schema language."""

    STRING = "string"
    INT = "int"
    FLOAT = "float"
    BOOLEAN = "boolean"

    @property
    def python_types(self) -> tuple[type, ...]:
        """Return the Python types accepted for a value of this scalar."""
        accepted = {
            ScalarType.STRING: (str,),
            ScalarType.INT: (int,),
            ScalarType.FLOAT: (int, float),
            ScalarType.BOOLEAN: (bool,),
        }
        return accepted[self]

    def accepts(self, value: Any) -> bool:
        """Check a Python value against this scalar type."""
        # bool is an int subclass, only BOOLEAN takes it
        if isinstance(value, bool) and self is not ScalarType.BOOLEAN:
            return False
        return isinstance(value, self.python_types)


# Mapping from type name strings to ScalarType enum values
SCALAR_TYPE_NAMES: dict[str, ScalarType] = {st.value: st for st in ScalarType}


class FieldDescriptor(Protocol):
    """Shape of a schema tree node as seen by the path analyzer."""

    name: str

    @property
    def is_reference(self) -> bool: ...

    @property
    def referenced_collection(self) -> str | None: ...

    @property
    def refresh_directive(self) -> Directive: ...

    @property
    def children(self) -> Sequence[FieldDescriptor]: ...


@dataclass
class TypeDefinition:
    """Base class for all type definitions."""

    name: str

    @property
    def is_array(self) -> bool:
        """Return whether this type is an array type."""
        return False

    @property
    def is_scalar(self) -> bool:
        """Return whether this type is a scalar type."""
        return False

    @property
    def is_document(self) -> bool:
        """Return whether this type is a document type."""
        return False

    @property
    def is_reference(self) -> bool:
        """Return whether this type holds a reference to another document."""
        return False

    def resolve_base_type(self) -> TypeDefinition:
        """Resolve through aliases to get the underlying type."""
        return self


@dataclass
class ScalarTypeDefinition(TypeDefinition):
    """Type definition wrapping a scalar type."""

    scalar: ScalarType

    @property
    def is_scalar(self) -> bool:
        return True


@dataclass
class AliasTypeDefinition(TypeDefinition):
    """Type definition for 'define X as Y' aliases."""

    base_type: TypeDefinition

    @property
    def is_array(self) -> bool:
        return self.base_type.is_array

    @property
    def is_reference(self) -> bool:
        return self.base_type.is_reference

    def resolve_base_type(self) -> TypeDefinition:
        """Resolve through aliases to get the underlying type."""
        return self.base_type.resolve_base_type()


@dataclass
class ReferenceTypeDefinition(TypeDefinition):
    """Type definition for 'ref T': an identifier of a document of type T."""

    target: str

    @property
    def is_reference(self) -> bool:
        return True


@dataclass
class ArrayTypeDefinition(TypeDefinition):
    """Type definition for array types (e.g., string[], ref Person[])."""

    element_type: TypeDefinition

    @property
    def is_array(self) -> bool:
        return True

    @property
    def is_reference(self) -> bool:
        return self.element_type.is_reference


@dataclass
class FieldDefinition:
    """Definition of a field within a document type.

    Implements ``FieldDescriptor`` so parsed schemas can be handed straight
    to the path analyzer.
    """

    name: str
    type_def: TypeDefinition
    refresh: Directive = None

    def _element_base(self) -> TypeDefinition:
        """Base type of the field, or of its elements for arrays."""
        base = self.type_def.resolve_base_type()
        if isinstance(base, ArrayTypeDefinition):
            return base.element_type.resolve_base_type()
        return base

    @property
    def is_reference(self) -> bool:
        return isinstance(self._element_base(), ReferenceTypeDefinition)

    @property
    def referenced_collection(self) -> str | None:
        base = self._element_base()
        if isinstance(base, ReferenceTypeDefinition):
            return base.target
        return None

    @property
    def refresh_directive(self) -> Directive:
        return self.refresh

    @property
    def children(self) -> list[FieldDefinition]:
        """Fields of the embedded document (or array of documents), if any."""
        base = self._element_base()
        if isinstance(base, DocumentTypeDefinition):
            return base.fields
        return []


@dataclass
class DocumentTypeDefinition(TypeDefinition):
    """Type definition for document types.

    A document type is both a collection (documents of the type can be
    stored and referenced) and an embeddable sub-document schema.
    """

    fields: list[FieldDefinition] = field(default_factory=list)

    @property
    def is_document(self) -> bool:
        return True

    def get_field(self, name: str) -> FieldDefinition | None:
        """Get a field by name."""
        for f in self.fields:
            if f.name == name:
                return f
        return None


class TypeRegistry:
    """Registry of all defined types."""

    def __init__(self) -> None:
        self._types: dict[str, TypeDefinition] = {}
        self._register_scalars()

    def _register_scalars(self) -> None:
        """Register all scalar types."""
        for st in ScalarType:
            self._types[st.value] = ScalarTypeDefinition(name=st.value, scalar=st)

    def register(self, type_def: TypeDefinition) -> None:
        """Register a type definition."""
        if type_def.name in self._types:
            raise SchemaError(f"Type '{type_def.name}' is already defined")
        self._types[type_def.name] = type_def

    def get(self, name: str) -> TypeDefinition | None:
        """Get a type by name."""
        return self._types.get(name)

    def get_or_raise(self, name: str) -> TypeDefinition:
        """Get a type by name, raising if not found."""
        type_def = self._types.get(name)
        if type_def is None:
            raise KeyError(f"Type '{name}' not found")
        return type_def

    def get_document_type(self, name: str) -> DocumentTypeDefinition:
        """Get a document type by name, resolving aliases."""
        base = self.get_or_raise(name).resolve_base_type()
        if not isinstance(base, DocumentTypeDefinition):
            raise SchemaError(f"Type '{name}' is not a document type")
        return base

    def get_reference_type(self, target: str) -> ReferenceTypeDefinition:
        """Get or create the reference type pointing at a document type."""
        ref_name = f"ref {target}"
        existing = self._types.get(ref_name)
        if existing is not None:
            return existing  # type: ignore[return-value]

        target_type = self.get_or_raise(target).resolve_base_type()
        if not isinstance(target_type, DocumentTypeDefinition):
            raise SchemaError(f"Reference target '{target}' is not a document type")
        ref_type = ReferenceTypeDefinition(name=ref_name, target=target_type.name)
        self._types[ref_name] = ref_type
        return ref_type

    def get_array_type(self, element_type: TypeDefinition) -> ArrayTypeDefinition:
        """Get or create an array type for the given element type."""
        array_name = f"{element_type.name}[]"
        existing = self._types.get(array_name)
        if existing is not None:
            if not isinstance(existing, ArrayTypeDefinition):
                raise TypeError(f"Type '{array_name}' exists but is not an array type")
            return existing

        array_type = ArrayTypeDefinition(name=array_name, element_type=element_type)
        self._types[array_name] = array_type
        return array_type

    def register_stub(self, name: str) -> DocumentTypeDefinition:
        """Pre-register an empty document type for forward/self-references.

        Idempotent: returns existing stub if name is already an empty document.
        Raises SchemaError if name is registered with a non-empty type.
        """
        existing = self._types.get(name)
        if existing is not None:
            if isinstance(existing, DocumentTypeDefinition) and not existing.fields:
                return existing
            raise SchemaError(f"Type '{name}' is already defined")
        stub = DocumentTypeDefinition(name=name, fields=[])
        self._types[name] = stub
        return stub

    def list_types(self) -> list[str]:
        """List all registered type names."""
        return list(self._types.keys())

    def list_document_types(self) -> list[str]:
        """List the names of document types, in definition order."""
        return [
            name for name, td in self._types.items()
            if isinstance(td, DocumentTypeDefinition)
        ]

    def find_references_to(self, type_name: str) -> list[tuple[str, str]]:
        """Find top-level fields of document types that reference ``type_name``.

        Returns a list of (document_name, field_name) tuples.
        """
        results: list[tuple[str, str]] = []
        for name, td in self._types.items():
            if not isinstance(td, DocumentTypeDefinition):
                continue
            for f in td.fields:
                if f.referenced_collection == type_name:
                    results.append((name, f.name))
        return results

    def __contains__(self, name: str) -> bool:
        return name in self._types
