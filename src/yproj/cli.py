"""yproj CLI: inspect, re-serialize and export project documents."""

import argparse
import logging
import os
import sys
from importlib.metadata import version as get_version, PackageNotFoundError
from pathlib import Path

from yproj.errors import YprojError

LOG_LEVEL_ENV = "YPROJ_LOG_LEVEL"


def _configure_logging(args) -> None:
    if args.verbose:
        level = logging.DEBUG
    elif args.quiet:
        level = logging.ERROR
    else:
        level = getattr(logging, os.environ.get(LOG_LEVEL_ENV, "WARNING").upper(), logging.WARNING)
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s", stream=sys.stderr)


def _print_show(result) -> None:
    print(f"Project: {result.path}")
    for name, value in result.fields.items():
        source = result.provenance.get(name)
        origin = ""
        if source is not None and source.include_depth:
            origin = f"  (from {source.source_file})"
        print(f"  {name}: {value}{origin}")
    if result.extras:
        print("Extra data:")
        for key, value in result.extras.items():
            print(f"  {key}: {value}")
    if result.includes:
        print("Includes:")
        for path in result.includes:
            print(f"  {path}")


def main():
    """Main CLI entry point for yproj commands."""
    try:
        yproj_version = get_version("yproj")
    except PackageNotFoundError:
        yproj_version = "dev"

    parser = argparse.ArgumentParser(
        prog="yproj",
        description="yproj: YAML project configuration with includes and field mapping"
    )
    parser.add_argument("--version", action="version", version=f"yproj {yproj_version}")
    # Common arguments
    parent_parser = argparse.ArgumentParser(add_help=False)
    parent_parser.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress all non-error output."
    )
    parent_parser.add_argument(
        "--verbose",
        action="store_true",
        help=f"Log debug messages to stderr (default level from ${LOG_LEVEL_ENV})."
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # show command
    show_parser = subparsers.add_parser(
        "show",
        help="Load a project document and print its fields, extra data and includes",
        parents=[parent_parser]
    )
    show_parser.add_argument("path", type=Path, help="Path to the project document")
    show_parser.add_argument(
        "--json",
        action="store_true",
        help="Print the result as canonical JSON"
    )

    # dump command
    dump_parser = subparsers.add_parser(
        "dump",
        help="Load a project document and write back its top-level document",
        parents=[parent_parser]
    )
    dump_parser.add_argument("path", type=Path, help="Path to the project document")
    dump_parser.add_argument(
        "--out",
        type=Path,
        default=None,
        help="Output file (defaults to stdout)"
    )
    dump_parser.add_argument(
        "--plain-includes",
        action="store_true",
        help="Write 'include: path' instead of '!ext include: !file path'"
    )

    # records command
    records_parser = subparsers.add_parser(
        "records",
        help="List the record types found in a document",
        parents=[parent_parser]
    )
    records_parser.add_argument("path", type=Path, help="Path to the document")

    # package command
    package_parser = subparsers.add_parser(
        "package",
        help="Print the package spec of a project as canonical JSON",
        parents=[parent_parser]
    )
    package_parser.add_argument("path", type=Path, help="Path to the project document")
    package_parser.add_argument(
        "--package",
        default=None,
        help="Package name under 'packages:' whose values override the project's"
    )

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    _configure_logging(args)

    try:
        from yproj import api
        from yproj._internal.canonical_json import canonical_dumps

        if args.command == "show":
            result = api.inspect_project(args.path)
            if args.json:
                print(canonical_dumps(result))
            elif not args.quiet:
                _print_show(result)
        elif args.command == "dump":
            from yproj.settings import DumpOptions

            options = DumpOptions(include_tags=not args.plain_includes)
            text = api.dump_project(args.path, args.out, options)
            if args.out is None:
                sys.stdout.write(text)
            elif not args.quiet:
                print("[OK] Dump complete")
                print(f"  Output: {args.out}")
        elif args.command == "records":
            records = api.scan_records(args.path)
            if not args.quiet:
                if not records:
                    print("No record types found")
                for info in records:
                    state = "finalized" if info.finalized else "open"
                    print(f"{info.type_name or '(anonymous)'} x{info.count} [{state}]: {', '.join(info.fields)}")
        elif args.command == "package":
            spec = api.package_spec(args.path, args.package)
            print(canonical_dumps(spec))
        sys.exit(0)
    except YprojError as e:
        print(f"Error: [{e.code.value}] {e}", file=sys.stderr)
        sys.exit(1)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
