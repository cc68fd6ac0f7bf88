#!/usr/bin/env python3
"""
Export the operator API's OpenAPI document.

Usage:
    python scripts/export_openapi.py                       # writes openapi/notify-outbox.json
    python scripts/export_openapi.py -o /tmp/outbox.json
    python scripts/export_openapi.py --check               # exit 1 if the committed file is stale
"""

import argparse
import json
import sys
from pathlib import Path

DEFAULT_OUTPUT = Path("openapi/notify-outbox.json")


def build_schema() -> dict:
    from notify_outbox.api.outbox.main import create_app

    return create_app().openapi()


def render(schema: dict) -> str:
    return json.dumps(schema, indent=2, ensure_ascii=False, sort_keys=True) + "\n"


def export_openapi(output_path: Path = DEFAULT_OUTPUT) -> dict:
    schema = build_schema()
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(render(schema), encoding="utf-8")

    print(f"OpenAPI document written to: {output_path}")
    print(f"   {schema['info']['title']} v{schema['info']['version']}, {len(schema['paths'])} paths")
    return schema


def check_openapi(output_path: Path = DEFAULT_OUTPUT) -> bool:
    """True if ``output_path`` matches what the app generates now."""
    if not output_path.exists():
        print(f"{output_path} does not exist; run without --check first")
        return False
    if output_path.read_text(encoding="utf-8") != render(build_schema()):
        print(f"{output_path} is out of date; re-export it")
        return False
    print(f"{output_path} is up to date")
    return True


def main():
    parser = argparse.ArgumentParser(description="Export the outbox OpenAPI document")
    parser.add_argument("--output", "-o", type=Path, default=DEFAULT_OUTPUT, help="Output file path")
    parser.add_argument("--check", action="store_true", help="Compare instead of writing")
    args = parser.parse_args()

    if args.check:
        sys.exit(0 if check_openapi(args.output) else 1)
    export_openapi(args.output)


if __name__ == "__main__":
    main()
