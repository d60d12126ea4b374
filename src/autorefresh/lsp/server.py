"""Schema language server: diagnostics, completion, hover via pygls."""

from __future__ import annotations

import re

from lsprotocol import types
from pygls.lsp.server import LanguageServer

from autorefresh.analyzer import analyze
from autorefresh.parsing import SchemaParser
from autorefresh.types import SCALAR_TYPE_NAMES, SchemaError

# ---------------------------------------------------------------------------
# Static data
# ---------------------------------------------------------------------------

BUILTIN_TYPES: dict[str, str] = {
    "string": "Text value",
    "int": "Integer value",
    "float": "Floating point value (integers accepted)",
    "boolean": "true or false",
}

KEYWORDS: dict[str, str] = {
    "define": "Declare an alias: define Name as type",
    "as": "Used with 'define'",
    "ref": "Reference to a document of another type: ref Person, ref Person[]",
    "true": "Boolean literal",
    "false": "Boolean literal",
}

DIRECTIVES: dict[str, str] = {
    "autorefresh": "Populate this reference before validation (@autorefresh or @autorefresh(...))",
}

OPTIONS: dict[str, str] = {
    "max_depth": "Reference hops to resolve (default 1, 0 disables)",
    "projection": "Fields to keep, e.g. [name, age], or to drop, e.g. [\"-secret\"]",
}

# Regex to extract position from parser error messages
_POSITION_RE = re.compile(r"position (\d+)")

# Regex to find user-defined type names in source
_USER_TYPE_RE = re.compile(r"^\s*(?:define\s+)?([A-Za-z_]\w*)\s*(?:\{|as\b)", re.MULTILINE)

# ---------------------------------------------------------------------------
# Helpers (module-level so they are easy to unit-test)
# ---------------------------------------------------------------------------


def lexpos_to_position(source: str, lexpos: int) -> types.Position:
    """Convert a byte offset into an LSP ``Position(line, character)``."""
    line = source.count("\n", 0, lexpos)
    last_nl = source.rfind("\n", 0, lexpos)
    character = lexpos if last_nl == -1 else lexpos - last_nl - 1
    return types.Position(line=line, character=character)


def _extract_position_from_error(message: str) -> int | None:
    """Return the integer position embedded in a SyntaxError message, or None."""
    m = _POSITION_RE.search(message)
    return int(m.group(1)) if m else None


def _find_user_types(source: str) -> list[str]:
    """Return user-defined type names found in *source*."""
    return [m.group(1) for m in _USER_TYPE_RE.finditer(source)]


def _word_at_position(line_text: str, character: int) -> str:
    """Return the contiguous identifier-like word surrounding *character*."""
    if character < 0 or character >= len(line_text):
        return ""
    ch = line_text[character]
    if not (ch.isalnum() or ch == "_"):
        return ""
    # Scan left
    left = character
    while left > 0 and (line_text[left - 1].isalnum() or line_text[left - 1] == "_"):
        left -= 1
    # Scan right
    right = character
    while right < len(line_text) and (line_text[right].isalnum() or line_text[right] == "_"):
        right += 1
    return line_text[left:right]


def check_source(source: str) -> list[types.Diagnostic]:
    """Parse and analyze *source*, returning diagnostics for any error."""
    try:
        registry = SchemaParser().parse(source)
        for name in registry.list_document_types():
            analyze(registry.get_document_type(name))
    except SyntaxError as exc:
        msg = str(exc)
        pos_int = _extract_position_from_error(msg)
        if pos_int is not None:
            start = lexpos_to_position(source, pos_int)
        else:
            # Fallback: end of document
            lines = source.split("\n")
            start = types.Position(line=max(len(lines) - 1, 0), character=0)
        return [_diagnostic(start, msg)]
    except (SchemaError, KeyError) as exc:
        return [_diagnostic(types.Position(line=0, character=0), str(exc))]
    return []


def _diagnostic(start: types.Position, message: str) -> types.Diagnostic:
    end = types.Position(line=start.line, character=start.character + 1)
    return types.Diagnostic(
        range=types.Range(start=start, end=end),
        severity=types.DiagnosticSeverity.Error,
        source="autorefresh",
        message=message,
    )


def completion_items(source: str, prefix: str) -> list[types.CompletionItem]:
    """Return completions for the text before the cursor on its line."""
    items: list[types.CompletionItem] = []
    stripped = prefix.rstrip()

    if stripped.endswith("@"):
        for name, desc in DIRECTIVES.items():
            items.append(
                types.CompletionItem(label=name, kind=types.CompletionItemKind.Keyword, detail=desc)
            )
    elif stripped.endswith("(") and "@" in stripped:
        for name, desc in OPTIONS.items():
            items.append(
                types.CompletionItem(label=name, kind=types.CompletionItemKind.Property, detail=desc)
            )
    elif stripped.endswith(":") or stripped.endswith("ref"):
        if stripped.endswith(":"):
            for name, desc in BUILTIN_TYPES.items():
                items.append(
                    types.CompletionItem(
                        label=name,
                        kind=types.CompletionItemKind.TypeParameter,
                        detail=desc,
                    )
                )
            items.append(
                types.CompletionItem(
                    label="ref", kind=types.CompletionItemKind.Keyword, detail=KEYWORDS["ref"]
                )
            )
        for name in _find_user_types(source):
            items.append(
                types.CompletionItem(
                    label=name,
                    kind=types.CompletionItemKind.Class,
                    detail="User-defined type",
                )
            )
    return items


def hover_text(word: str, source: str = "") -> str | None:
    """Return markdown hover text for *word*, or None.

    Document types defined in *source* list the fields that reference them.
    """
    lower = word.lower()
    if lower in SCALAR_TYPE_NAMES:
        return f"**{lower}** — {BUILTIN_TYPES[lower]}"
    for table in (KEYWORDS, DIRECTIVES, OPTIONS):
        if word in table:
            return f"**{word}** — {table[word]}"

    if word not in _find_user_types(source):
        return None
    try:
        registry = SchemaParser().parse(source)
    except (SyntaxError, SchemaError, KeyError):
        return None
    if word not in registry.list_document_types():
        return None
    referrers = [f"{doc}.{field}" for doc, field in registry.find_references_to(word)]
    if not referrers:
        return f"**{word}** — document type"
    return f"**{word}** — document type, referenced by {', '.join(referrers)}"


# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------

server = LanguageServer("autorefresh-language-server", "0.1.0")


@server.feature(types.TEXT_DOCUMENT_DID_OPEN)
def did_open(params: types.DidOpenTextDocumentParams) -> None:
    _validate_document(params.text_document.uri)


@server.feature(types.TEXT_DOCUMENT_DID_CHANGE)
def did_change(params: types.DidChangeTextDocumentParams) -> None:
    _validate_document(params.text_document.uri)


def _validate_document(uri: str) -> None:
    doc = server.workspace.get_text_document(uri)
    server.text_document_publish_diagnostics(
        types.PublishDiagnosticsParams(uri=uri, diagnostics=check_source(doc.source))
    )


@server.feature(
    types.TEXT_DOCUMENT_COMPLETION,
    types.CompletionOptions(trigger_characters=[":", "@", "(", " "]),
)
def completions(params: types.CompletionParams) -> types.CompletionList:
    doc = server.workspace.get_text_document(params.text_document.uri)
    line_text = doc.lines[params.position.line] if params.position.line < len(doc.lines) else ""
    prefix = line_text[: params.position.character]
    return types.CompletionList(is_incomplete=False, items=completion_items(doc.source, prefix))


@server.feature(types.TEXT_DOCUMENT_HOVER)
def hover(params: types.HoverParams) -> types.Hover | None:
    doc = server.workspace.get_text_document(params.text_document.uri)
    if params.position.line >= len(doc.lines):
        return None
    line_text = doc.lines[params.position.line]
    word = _word_at_position(line_text, params.position.character)
    if not word:
        return None

    content = hover_text(word, doc.source)
    if content is None:
        return None
    return types.Hover(
        contents=types.MarkupContent(
            kind=types.MarkupKind.Markdown,
            value=content,
        )
    )


def main() -> None:
    server.start_io()


if __name__ == "__main__":
    main()
