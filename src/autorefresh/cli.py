"""Print the refresh plans declared by a schema file.

Usage:
    autorefresh-plan schema.ars                  # every document type
    autorefresh-plan schema.ars -t Person        # one type
    autorefresh-plan schema.ars --json           # machine-readable
    autorefresh-plan schema.ars --max-depth 2    # override the default depth
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from autorefresh.analyzer import analyze
from autorefresh.parsing import SchemaParser
from autorefresh.plan import RefreshPlan
from autorefresh.types import SchemaError


def _format_options(options: dict[str, Any]) -> str:
    parts = [f"max_depth={options['max_depth']}"]
    if options.get("projection") is not None:
        parts.append(f"projection={','.join(options['projection'])}")
    return ", ".join(parts)


def format_plan(type_name: str, plan: RefreshPlan) -> str:
    """Render one type's plan as indented text lines."""
    lines = [type_name]
    if not plan:
        lines.append("  (no refresh paths)")
    for path, directive in plan.items():
        lines.append(
            f"  {path} -> {directive.collection} ({_format_options(dict(directive.options))})"
        )
    return "\n".join(lines)


def plan_to_json(plan: RefreshPlan) -> list[dict[str, Any]]:
    """Convert a plan to JSON-compatible data."""
    result = []
    for directive in plan.values():
        options = dict(directive.options)
        if options.get("projection") is not None:
            options["projection"] = list(options["projection"])
        result.append({
            "path": directive.path,
            "collection": directive.collection,
            "options": options,
        })
    return result


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    arg_parser = argparse.ArgumentParser(
        description="Show the auto-refresh paths declared by a schema file"
    )
    arg_parser.add_argument("schema", type=Path, help="Schema definition file")
    arg_parser.add_argument(
        "-t", "--type",
        dest="type_name",
        help="Only show the plan of this document type",
    )
    arg_parser.add_argument(
        "--max-depth",
        type=int,
        default=None,
        help="Default max_depth for fields that do not set one",
    )
    arg_parser.add_argument("--json", action="store_true", help="Print JSON output")
    arg_parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Log plan construction to stderr",
    )

    args = arg_parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    if not args.schema.exists():
        print(f"Error: File not found: {args.schema}", file=sys.stderr)
        return 1

    defaults = {"max_depth": args.max_depth} if args.max_depth is not None else None

    try:
        registry = SchemaParser().parse(args.schema.read_text(encoding="utf-8"))
        if args.type_name:
            registry.get_document_type(args.type_name)
            type_names = [args.type_name]
        else:
            type_names = registry.list_document_types()
        plans = {
            name: analyze(registry.get_document_type(name), defaults=defaults)
            for name in type_names
        }
    except SyntaxError as e:
        print(f"Syntax error: {e}", file=sys.stderr)
        return 1
    except (SchemaError, KeyError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps({name: plan_to_json(plan) for name, plan in plans.items()}, indent=2))
    else:
        print("\n".join(format_plan(name, plan) for name, plan in plans.items()))
    return 0


if __name__ == "__main__":
    sys.exit(main())
