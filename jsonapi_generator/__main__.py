"""Entry point: python -m jsonapi_generator

Reads an OpenAPI document from a file or URL and writes the generated module
to --output, or to stdout when no output file is given.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from .config import GeneratorSettings
from .errors import GeneratorError, SchemaLoadError
from .orchestrator import Generator, skipped_count

EXIT_SUCCESS = 0
EXIT_LOAD_ERROR = 1
EXIT_GENERATION_ERROR = 2


def parse_command_line_args(args: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="jsonapi-generator",
        description="Generate JSON:API types and handlers from an OpenAPI document",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s openapi.yaml --package-path example.com/articles --package-name articles
  %(prog)s https://example.com/openapi.json --package-path svc --package-name svc -o svc.py
        """,
    )
    parser.add_argument(
        "source",
        help="Path or http(s) URL of the OpenAPI document (JSON or YAML)",
        metavar="SOURCE",
    )
    parser.add_argument(
        "--package-path",
        required=True,
        help="Import path of the generated package, used as the tracer name",
        dest="package_path",
    )
    parser.add_argument(
        "--package-name",
        required=True,
        help="Name of the generated module",
        dest="package_name",
    )
    parser.add_argument(
        "--output",
        "-o",
        type=Path,
        help="File to write the generated module to (default: stdout)",
        dest="output",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging",
    )
    return parser.parse_args(args)


def main(args: list[str] | None = None) -> int:
    parsed_args = parse_command_line_args(args)
    logging.basicConfig(
        level=logging.DEBUG if parsed_args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    generator = Generator(GeneratorSettings.from_env())
    try:
        document = generator.load(parsed_args.source)
    except SchemaLoadError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_LOAD_ERROR

    try:
        context = generator.build_context(
            document, parsed_args.package_path, parsed_args.package_name,
        )
    except GeneratorError as e:
        # dangling references surface here too, once an operation uses them
        code = EXIT_LOAD_ERROR if isinstance(e, SchemaLoadError) else EXIT_GENERATION_ERROR
        print(f"Error: {e}", file=sys.stderr)
        return code

    assert context.output is not None
    if parsed_args.output is None:
        sys.stdout.write(context.output)
        return EXIT_SUCCESS

    try:
        parsed_args.output.write_text(context.output)
    except OSError as e:
        print(f"Error: cannot write {parsed_args.output}: {e}", file=sys.stderr)
        return EXIT_GENERATION_ERROR
    print(
        f"Generated {parsed_args.output} ({len(context.buffer.types)} types, "
        f"{len(context.buffer.handlers)} handlers, {skipped_count(context)} skipped)"
    )
    return EXIT_SUCCESS


if __name__ == "__main__":
    sys.exit(main())
