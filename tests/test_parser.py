"""Tests for the DSL parser."""

import pytest

from autorefresh.parsing import SchemaParser
from autorefresh.parsing.schema_lexer import SchemaLexer
from autorefresh.types import (
    AliasTypeDefinition,
    ArrayTypeDefinition,
    DocumentTypeDefinition,
    ReferenceTypeDefinition,
    SchemaError,
)


class TestSchemaLexer:
    """Tests for the schema lexer."""

    def test_tokenize_alias(self):
        """Test tokenizing an alias definition."""
        lexer = SchemaLexer()
        lexer.build()

        tokens = lexer.tokenize("define PersonRef as ref Person")
        token_types = [t.type for t in tokens]

        assert token_types == ["DEFINE", "IDENTIFIER", "AS", "REF", "IDENTIFIER"]

    def test_tokenize_directive(self):
        """Test tokenizing a field with a directive."""
        lexer = SchemaLexer()
        lexer.build()

        tokens = lexer.tokenize("father: ref Person @autorefresh(max_depth = 2)")
        token_types = [t.type for t in tokens]

        assert token_types == [
            "IDENTIFIER",
            "COLON",
            "REF",
            "IDENTIFIER",
            "AT",
            "IDENTIFIER",
            "LPAREN",
            "IDENTIFIER",
            "EQUALS",
            "INTEGER",
            "RPAREN",
        ]
        assert tokens[-2].value == 2

    def test_tokenize_string(self):
        """Test string literals lose their quotes."""
        lexer = SchemaLexer()
        lexer.build()

        tokens = lexer.tokenize('"a \\"b\\""')

        assert [t.type for t in tokens] == ["STRING"]
        assert tokens[0].value == 'a "b"'

    def test_comments_and_newlines_ignored(self):
        """Test that comments and newlines produce no tokens."""
        lexer = SchemaLexer()
        lexer.build()

        tokens = lexer.tokenize("# a comment\nPerson { }\n")
        token_types = [t.type for t in tokens]

        assert token_types == ["IDENTIFIER", "LBRACE", "RBRACE"]

    def test_illegal_character(self):
        """Test error on illegal character."""
        lexer = SchemaLexer()
        lexer.build()

        with pytest.raises(SyntaxError, match="position 6"):
            lexer.tokenize("Foo { % }")


class TestSchemaParser:
    """Tests for the schema parser."""

    def test_parse_empty(self):
        """Test that blank and comment-only input defines nothing."""
        parser = SchemaParser()
        registry = parser.parse("  # nothing here\n")
        assert registry.list_document_types() == []

    def test_parse_simple_document(self):
        """Test parsing a simple document type."""
        parser = SchemaParser()
        registry = parser.parse("""
        Person {
            name: string,
            age: int,
        }
        """)

        person = registry.get("Person")
        assert isinstance(person, DocumentTypeDefinition)
        assert [f.name for f in person.fields] == ["name", "age"]
        assert person.fields[0].type_def.name == "string"

    def test_parse_reference_fields(self):
        """Test single and array references with directives."""
        parser = SchemaParser()
        registry = parser.parse("""
        Person {
            name: string,
            father: ref Person @autorefresh,
            relatives: ref Person[] @autorefresh(projection = [name]),
            friends: ref Person[],
        }
        """)

        person = registry.get("Person")
        father = person.get_field("father")
        assert isinstance(father.type_def, ReferenceTypeDefinition)
        assert father.type_def.target == "Person"
        assert father.refresh is True

        relatives = person.get_field("relatives")
        assert isinstance(relatives.type_def, ArrayTypeDefinition)
        assert relatives.referenced_collection == "Person"
        assert relatives.refresh == {"projection": ["name"]}

        assert person.get_field("friends").refresh is None

    def test_parse_option_values(self):
        """Test every directive value form."""
        parser = SchemaParser()
        registry = parser.parse("""
        Person {
            boss: ref Person @autorefresh(max_depth = 3, projection = ["name", age],),
            twin: ref Person @autorefresh(),
        }
        """)

        person = registry.get("Person")
        assert person.get_field("boss").refresh == {"max_depth": 3, "projection": ["name", "age"]}
        assert person.get_field("twin").refresh == {}

    def test_parse_forward_reference(self):
        """Test references to types defined later."""
        parser = SchemaParser()
        registry = parser.parse("""
        Car { owner: ref Person @autorefresh }
        Person { name: string }
        """)

        owner = registry.get("Car").get_field("owner")
        assert owner.referenced_collection == "Person"

    def test_parse_alias_to_reference(self):
        """Test aliases of reference types."""
        parser = SchemaParser()
        registry = parser.parse("""
        define PersonRef as ref Person
        Person {
            name: string,
            mother: PersonRef @autorefresh,
        }
        """)

        alias = registry.get("PersonRef")
        assert isinstance(alias, AliasTypeDefinition)
        mother = registry.get("Person").get_field("mother")
        assert mother.is_reference
        assert mother.referenced_collection == "Person"

    def test_parse_implicit_type(self):
        """Test fields whose type name matches the field name."""
        parser = SchemaParser()
        registry = parser.parse("""
        Address { city: string }
        Person { Address }
        """)

        field = registry.get("Person").fields[0]
        assert field.name == "Address"
        assert field.children[0].name == "city"

    def test_parse_nested_embedding(self):
        """Test embedded documents and arrays of them."""
        parser = SchemaParser()
        registry = parser.parse("""
        Company { name: string }
        Job { employer: ref Company @autorefresh }
        Profile { jobs: Job[] }
        Person { profile: Profile }
        """)

        profile = registry.get("Person").get_field("profile")
        jobs = profile.children[0]
        assert jobs.name == "jobs"
        assert jobs.children[0].name == "employer"
        assert jobs.children[0].referenced_collection == "Company"

    def test_unknown_directive(self):
        """Test that unknown directives are rejected."""
        parser = SchemaParser()
        with pytest.raises(SchemaError, match="@populate"):
            parser.parse("Person { father: ref Person @populate }")

    def test_duplicate_field(self):
        """Test that duplicate field names are rejected."""
        parser = SchemaParser()
        with pytest.raises(SchemaError, match="Duplicate field"):
            parser.parse("Person { name: string, name: string }")

    def test_duplicate_type(self):
        """Test that duplicate type names are rejected."""
        parser = SchemaParser()
        with pytest.raises(SchemaError, match="already defined"):
            parser.parse("Person { name: string }\nPerson { age: int }")

    def test_duplicate_option(self):
        """Test that an option given twice is a syntax error."""
        parser = SchemaParser()
        with pytest.raises(SyntaxError, match="Duplicate option"):
            parser.parse("Person { f: ref Person @autorefresh(max_depth = 1, max_depth = 2) }")

    def test_reference_to_scalar(self):
        """Test that references must target document types."""
        parser = SchemaParser()
        with pytest.raises(SchemaError, match="not a document type"):
            parser.parse("Person { name: ref string }")

    def test_unresolvable_type(self):
        """Test error listing types that cannot be resolved."""
        parser = SchemaParser()
        with pytest.raises(SchemaError, match="Cannot resolve types"):
            parser.parse("Person { pet: Animal }")

    def test_recursive_embedding(self):
        """Test that a type embedding itself is rejected."""
        parser = SchemaParser()
        with pytest.raises(SchemaError, match="recursively"):
            parser.parse("""
            Node { children: Leaf[] }
            Leaf { parent: Node }
            """)

    def test_self_reference_is_allowed(self):
        """Test that references (not embeddings) may be recursive."""
        parser = SchemaParser()
        registry = parser.parse("Node { parent: ref Node, children: ref Node[] }")
        assert registry.get("Node").get_field("parent").referenced_collection == "Node"

    def test_syntax_error_position(self):
        """Test that syntax errors carry line and position."""
        parser = SchemaParser()
        with pytest.raises(SyntaxError, match=r"line 2, position \d+"):
            parser.parse("Person {\n  name string\n}")

    def test_parser_is_reusable(self):
        """Test parsing twice with the same parser."""
        parser = SchemaParser()
        first = parser.parse("A { x: int }")
        second = parser.parse("B { y: int }")
        assert "A" in first and "A" not in second
        assert "B" in second
