"""Tokens of the schema language.

Keywords are recognized after an identifier is matched, so ``reference``
stays an identifier while ``ref`` becomes ``REF``. Integers may carry a
leading minus so that option validation, not the lexer, reports negative
depths.
"""

import ply.lex as lex


class SchemaLexer:
    """ply lexer for schema files."""

    reserved = {
        "define": "DEFINE",
        "as": "AS",
        "ref": "REF",
        "true": "TRUE",
        "false": "FALSE",
    }

    tokens = [
        "IDENTIFIER",
        "INTEGER",
        "STRING",
        # punctuation
        "LBRACE",
        "RBRACE",
        "LBRACKET",
        "RBRACKET",
        "LPAREN",
        "RPAREN",
        "COLON",
        "COMMA",
        "EQUALS",
        "AT",
    ] + list(reserved.values())

    t_LBRACE, t_RBRACE = r"\{", r"\}"
    t_LBRACKET, t_RBRACKET = r"\[", r"\]"
    t_LPAREN, t_RPAREN = r"\(", r"\)"
    t_COLON = r":"
    t_COMMA = r","
    t_EQUALS = r"="
    t_AT = r"@"

    t_ignore = " \t\r"
    t_ignore_COMMENT = r"\#[^\n]*"

    def __init__(self) -> None:
        self.lexer: lex.Lexer = None  # type: ignore

    def t_INTEGER(self, t: lex.LexToken) -> lex.LexToken:
        r"-?\d+"
        t.value = int(t.value)
        return t

    def t_STRING(self, t: lex.LexToken) -> lex.LexToken:
        r'"([^"\\\n]|\\.)*"'
        t.value = t.value[1:-1].replace('\\"', '"').replace("\\\\", "\\")
        return t

    def t_IDENTIFIER(self, t: lex.LexToken) -> lex.LexToken:
        r"[a-zA-Z_][a-zA-Z0-9_]*"
        t.type = self.reserved.get(t.value, "IDENTIFIER")
        return t

    def t_newline(self, t: lex.LexToken) -> None:
        r"\n+"
        t.lexer.lineno += len(t.value)

    def t_error(self, t: lex.LexToken) -> None:
        raise SyntaxError(
            f"Illegal character '{t.value[0]}' at line {t.lineno} (position {t.lexpos})"
        )

    def build(self, **kwargs) -> None:  # type: ignore
        self.lexer = lex.lex(module=self, **kwargs)

    def input(self, data: str) -> None:
        """Start lexing ``data`` from line 1."""
        self.lexer.lineno = 1
        self.lexer.input(data)

    def token(self) -> lex.LexToken | None:
        return self.lexer.token()

    def tokenize(self, data: str) -> list[lex.LexToken]:
        """Lex all of ``data`` at once. Raises SyntaxError on bad input."""
        self.input(data)
        return list(iter(self.token, None))
