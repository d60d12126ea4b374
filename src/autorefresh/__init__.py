"""autorefresh - keep document references fresh with one batched resolve."""

from autorefresh.analyzer import analyze
from autorefresh.document import Document, ValidationError
from autorefresh.executor import apply_resolution, refresh, refresh_future
from autorefresh.model import Model, Schema
from autorefresh.parsing import SchemaParser
from autorefresh.plan import DEFAULT_OPTIONS, RefreshDirective, RefreshPlan, RefreshRequest
from autorefresh.plugin import autorefresh_plugin
from autorefresh.store import Collection, DocumentStore, StorageUnavailableError
from autorefresh.types import (
    AliasTypeDefinition,
    ArrayTypeDefinition,
    DocumentTypeDefinition,
    FieldDefinition,
    FieldDescriptor,
    ReferenceTypeDefinition,
    ScalarType,
    ScalarTypeDefinition,
    SchemaError,
    TypeDefinition,
    TypeRegistry,
)

__all__ = [
    # Main API
    "Schema",
    "Model",
    "Document",
    "SchemaParser",
    "autorefresh_plugin",
    # Core
    "analyze",
    "refresh",
    "refresh_future",
    "apply_resolution",
    "RefreshPlan",
    "RefreshDirective",
    "RefreshRequest",
    "DEFAULT_OPTIONS",
    # Storage
    "Collection",
    "DocumentStore",
    # Errors
    "SchemaError",
    "ValidationError",
    "StorageUnavailableError",
    # Type definitions
    "TypeDefinition",
    "ScalarType",
    "ScalarTypeDefinition",
    "AliasTypeDefinition",
    "ArrayTypeDefinition",
    "ReferenceTypeDefinition",
    "DocumentTypeDefinition",
    "FieldDefinition",
    "FieldDescriptor",
    "TypeRegistry",
]

__version__ = "0.1.0"
