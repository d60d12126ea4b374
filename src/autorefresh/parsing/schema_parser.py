"""Parser for the schema definition DSL."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import ply.yacc as yacc

from autorefresh.parsing.schema_lexer import SchemaLexer
from autorefresh.types import (
    AliasTypeDefinition,
    ArrayTypeDefinition,
    Directive,
    DocumentTypeDefinition,
    FieldDefinition,
    SchemaError,
    TypeDefinition,
    TypeRegistry,
)

# Directives understood on fields
KNOWN_DIRECTIVES = frozenset({"autorefresh"})


@dataclass
class TypeRef:
    """Reference to a type, possibly as a document reference or an array."""

    name: str
    is_array: bool = False
    is_reference: bool = False


@dataclass
class DirectiveSpec:
    """A field directive before resolution."""

    name: str
    options: dict[str, Any] | None = None  # None = bare '@name'


@dataclass
class FieldSpec:
    """Specification for a field before resolution."""

    name: str
    type_ref: TypeRef | None = None  # None means type name matches field name
    directive: DirectiveSpec | None = None


@dataclass
class TypeSpec:
    """Specification for a document type before resolution."""

    name: str
    fields: list[FieldSpec]


@dataclass
class AliasSpec:
    """Specification for an alias before resolution."""

    name: str
    base_type_ref: TypeRef


class SchemaParser:
    """Parser for the schema definition DSL."""

    tokens = SchemaLexer.tokens

    def __init__(self) -> None:
        self.lexer = SchemaLexer()
        self.lexer.build()
        self.parser: yacc.LRParser = None  # type: ignore
        self.registry: TypeRegistry = TypeRegistry()
        self._specs: list[AliasSpec | TypeSpec] = []

    def p_schema(self, p: yacc.YaccProduction) -> None:
        """schema : statement_list"""
        p[0] = p[1]

    def p_statement_list_single(self, p: yacc.YaccProduction) -> None:
        """statement_list : statement"""
        p[0] = [p[1]]

    def p_statement_list_multiple(self, p: yacc.YaccProduction) -> None:
        """statement_list : statement_list statement"""
        p[0] = p[1]
        p[0].append(p[2])

    def p_statement(self, p: yacc.YaccProduction) -> None:
        """statement : alias_def
                     | type_def"""
        p[0] = p[1]

    def p_alias_def(self, p: yacc.YaccProduction) -> None:
        """alias_def : DEFINE IDENTIFIER AS type_ref"""
        p[0] = AliasSpec(name=p[2], base_type_ref=p[4])

    def p_type_def(self, p: yacc.YaccProduction) -> None:
        """type_def : IDENTIFIER LBRACE field_list RBRACE
                    | IDENTIFIER LBRACE field_list COMMA RBRACE"""
        p[0] = TypeSpec(name=p[1], fields=p[3])

    def p_type_def_empty(self, p: yacc.YaccProduction) -> None:
        """type_def : IDENTIFIER LBRACE RBRACE"""
        p[0] = TypeSpec(name=p[1], fields=[])

    def p_field_list_single(self, p: yacc.YaccProduction) -> None:
        """field_list : field"""
        p[0] = [p[1]]

    def p_field_list_multiple(self, p: yacc.YaccProduction) -> None:
        """field_list : field_list COMMA field"""
        p[0] = p[1] + [p[3]]

    def p_field_with_type(self, p: yacc.YaccProduction) -> None:
        """field : IDENTIFIER COLON type_ref"""
        p[0] = FieldSpec(name=p[1], type_ref=p[3])

    def p_field_with_directive(self, p: yacc.YaccProduction) -> None:
        """field : IDENTIFIER COLON type_ref directive"""
        p[0] = FieldSpec(name=p[1], type_ref=p[3], directive=p[4])

    def p_field_implicit_type(self, p: yacc.YaccProduction) -> None:
        """field : IDENTIFIER"""
        p[0] = FieldSpec(name=p[1], type_ref=None)

    def p_type_ref_simple(self, p: yacc.YaccProduction) -> None:
        """type_ref : IDENTIFIER"""
        p[0] = TypeRef(name=p[1])

    def p_type_ref_array(self, p: yacc.YaccProduction) -> None:
        """type_ref : IDENTIFIER LBRACKET RBRACKET"""
        p[0] = TypeRef(name=p[1], is_array=True)

    def p_type_ref_reference(self, p: yacc.YaccProduction) -> None:
        """type_ref : REF IDENTIFIER"""
        p[0] = TypeRef(name=p[2], is_reference=True)

    def p_type_ref_reference_array(self, p: yacc.YaccProduction) -> None:
        """type_ref : REF IDENTIFIER LBRACKET RBRACKET"""
        p[0] = TypeRef(name=p[2], is_array=True, is_reference=True)

    def p_directive_bare(self, p: yacc.YaccProduction) -> None:
        """directive : AT IDENTIFIER"""
        p[0] = DirectiveSpec(name=p[2])

    def p_directive_empty(self, p: yacc.YaccProduction) -> None:
        """directive : AT IDENTIFIER LPAREN RPAREN"""
        p[0] = DirectiveSpec(name=p[2], options={})

    def p_directive_options(self, p: yacc.YaccProduction) -> None:
        """directive : AT IDENTIFIER LPAREN option_list RPAREN
                     | AT IDENTIFIER LPAREN option_list COMMA RPAREN"""
        options: dict[str, Any] = {}
        for key, value in p[4]:
            if key in options:
                raise SyntaxError(
                    f"Duplicate option '{key}' on @{p[2]} (line {p.lineno(1)}, position {p.lexpos(1)})"
                )
            options[key] = value
        p[0] = DirectiveSpec(name=p[2], options=options)

    def p_option_list_single(self, p: yacc.YaccProduction) -> None:
        """option_list : option"""
        p[0] = [p[1]]

    def p_option_list_multiple(self, p: yacc.YaccProduction) -> None:
        """option_list : option_list COMMA option"""
        p[0] = p[1] + [p[3]]

    def p_option(self, p: yacc.YaccProduction) -> None:
        """option : IDENTIFIER EQUALS value"""
        p[0] = (p[1], p[3])

    def p_value_literal(self, p: yacc.YaccProduction) -> None:
        """value : INTEGER
                 | STRING
                 | IDENTIFIER"""
        p[0] = p[1]

    def p_value_true(self, p: yacc.YaccProduction) -> None:
        """value : TRUE"""
        p[0] = True

    def p_value_false(self, p: yacc.YaccProduction) -> None:
        """value : FALSE"""
        p[0] = False

    def p_value_list(self, p: yacc.YaccProduction) -> None:
        """value : LBRACKET value_list RBRACKET
                 | LBRACKET value_list COMMA RBRACKET"""
        p[0] = p[2]

    def p_value_list_empty(self, p: yacc.YaccProduction) -> None:
        """value : LBRACKET RBRACKET"""
        p[0] = []

    def p_value_list_single(self, p: yacc.YaccProduction) -> None:
        """value_list : value"""
        p[0] = [p[1]]

    def p_value_list_multiple(self, p: yacc.YaccProduction) -> None:
        """value_list : value_list COMMA value"""
        p[0] = p[1] + [p[3]]

    def p_error(self, p: yacc.YaccProduction) -> None:
        if p:
            raise SyntaxError(
                f"Syntax error at '{p.value}' (line {p.lineno}, position {p.lexpos})"
            )
        else:
            raise SyntaxError("Syntax error at end of input")

    def build(self, **kwargs: Any) -> None:
        """Build the parser."""
        self.parser = yacc.yacc(module=self, **kwargs)

    def parse(self, data: str) -> TypeRegistry:
        """Parse schema definitions and return a populated TypeRegistry."""
        if self.parser is None:
            self.build(debug=False, write_tables=False)

        self.registry = TypeRegistry()
        self._specs = []

        # Blank or comment-only input defines no types
        if not self.lexer.tokenize(data):
            return self.registry

        self.lexer.input(data)
        specs = self.parser.parse(data, lexer=self.lexer.lexer)
        self._specs = specs or []

        self._resolve_specs()
        self._check_embedding()

        return self.registry

    def _resolve_type_ref(self, type_ref: TypeRef) -> TypeDefinition:
        """Resolve a type reference to a type definition."""
        if type_ref.is_reference:
            base: TypeDefinition = self.registry.get_reference_type(type_ref.name)
        else:
            base = self.registry.get_or_raise(type_ref.name)
        if type_ref.is_array:
            return self.registry.get_array_type(base)
        return base

    def _resolve_directive(self, type_name: str, spec: FieldSpec) -> Directive:
        """Turn a field's directive spec into the value analyzed later."""
        directive = spec.directive
        if directive is None:
            return None
        if directive.name not in KNOWN_DIRECTIVES:
            raise SchemaError(
                f"Unknown directive '@{directive.name}' on field '{type_name}.{spec.name}'"
            )
        if directive.options is None:
            return True
        return directive.options

    def _resolve_fields(self, spec: TypeSpec) -> list[FieldDefinition]:
        fields: list[FieldDefinition] = []
        seen: set[str] = set()
        for field_spec in spec.fields:
            if field_spec.name in seen:
                raise SchemaError(f"Duplicate field '{field_spec.name}' in type '{spec.name}'")
            seen.add(field_spec.name)

            if field_spec.type_ref is None:
                field_type = self.registry.get_or_raise(field_spec.name)
            else:
                field_type = self._resolve_type_ref(field_spec.type_ref)
            fields.append(
                FieldDefinition(
                    name=field_spec.name,
                    type_def=field_type,
                    refresh=self._resolve_directive(spec.name, field_spec),
                )
            )
        return fields

    def _resolve_specs(self) -> None:
        """Resolve all specs into type definitions using two-phase resolution.

        Phase 1: Pre-register stubs for all document TypeSpecs so that
        self-referential and mutually referential types can resolve.
        Phase 2: Iteratively resolve aliases and populate document stubs.
        """
        # Phase 1: Pre-register document stubs
        declared: set[str] = set()
        for spec in self._specs:
            if spec.name in declared:
                raise SchemaError(f"Type '{spec.name}' is already defined")
            declared.add(spec.name)
            if isinstance(spec, TypeSpec):
                self.registry.register_stub(spec.name)

        # Phase 2: Iteratively resolve
        unresolved: list[AliasSpec | TypeSpec] = list(self._specs)

        max_iterations = len(unresolved) + 1
        for _ in range(max_iterations):
            if not unresolved:
                break

            still_unresolved: list[AliasSpec | TypeSpec] = []
            progress = False

            for spec in unresolved:
                try:
                    if isinstance(spec, AliasSpec):
                        base_type = self._resolve_type_ref(spec.base_type_ref)
                        alias = AliasTypeDefinition(name=spec.name, base_type=base_type)
                        self.registry.register(alias)
                    else:
                        fields = self._resolve_fields(spec)
                        # Mutate the existing stub in-place
                        stub = self.registry.get(spec.name)
                        stub.fields = fields  # type: ignore[union-attr]
                    progress = True
                except KeyError:
                    # Dependency not yet resolved
                    still_unresolved.append(spec)

            unresolved = still_unresolved

            if not progress and unresolved:
                remaining = [s.name for s in unresolved]
                raise SchemaError(f"Cannot resolve types: {remaining}")

    def _check_embedding(self) -> None:
        """Reject document types that embed themselves, directly or not."""
        for name in self.registry.list_document_types():
            self._check_embedded_fields(self.registry.get_document_type(name), name, [name])

    def _check_embedded_fields(
        self, doc: DocumentTypeDefinition, path: str, trail: list[str]
    ) -> None:
        for f in doc.fields:
            base = f.type_def.resolve_base_type()
            if isinstance(base, ArrayTypeDefinition):
                base = base.element_type.resolve_base_type()
            if not isinstance(base, DocumentTypeDefinition):
                continue
            field_path = f"{path}.{f.name}"
            if base.name in trail:
                raise SchemaError(
                    f"Type '{trail[0]}' embeds '{base.name}' recursively at '{field_path}'"
                )
            self._check_embedded_fields(base, field_path, trail + [base.name])
