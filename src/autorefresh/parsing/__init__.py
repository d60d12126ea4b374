"""Parsing module for the schema definition DSL."""

from autorefresh.parsing.schema_lexer import SchemaLexer
from autorefresh.parsing.schema_parser import SchemaParser

__all__ = [
    "SchemaLexer",
    "SchemaParser",
]
