"""Command line entry point.

Commands:
  map              Export the structural mapping of a template as JSON.
  assemble         Regenerate the body of a template from an outline.
  inspect-headers  List header fields of a generated document.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from . import config
from .assembler import ThesisAssembler, extract_template_mapping
from .diagnostics import describe_mapping, inspect_header_fields
from .outline import load_outline, load_references
from .package import PackageError
from .style_config import load_style_settings
from .title_rules import get_title_profile_choices


def _profile_keys() -> list[str]:
    return [key for key, _ in get_title_profile_choices()]


def _add_map_parser(subparsers) -> None:
    parser = subparsers.add_parser("map", help="Export the template mapping as JSON.")
    parser.add_argument("template", type=Path)
    parser.add_argument("-o", "--output", type=Path, default=None)
    parser.add_argument("--profile", default=config.DEFAULT_TITLE_PROFILE)
    parser.add_argument("--outline", action="store_true", help="Print a text outline too.")
    parser.set_defaults(func=_run_map)


def _add_assemble_parser(subparsers) -> None:
    parser = subparsers.add_parser("assemble", help="Fill a template with generated chapters.")
    parser.add_argument("template", type=Path)
    parser.add_argument("outline", type=Path, help="Chapter tree JSON.")
    parser.add_argument("-r", "--references", type=Path, default=None)
    parser.add_argument("-s", "--settings", type=Path, default=None, help="Style settings JSON.")
    parser.add_argument("-o", "--output", type=Path, default=None)
    parser.add_argument("--profile", default=config.DEFAULT_TITLE_PROFILE)
    parser.add_argument("--no-log", action="store_true")
    parser.set_defaults(func=_run_assemble)


def _add_inspect_parser(subparsers) -> None:
    parser = subparsers.add_parser("inspect-headers", help="Report header field instructions.")
    parser.add_argument("document", type=Path)
    parser.add_argument("--json", action="store_true", dest="as_json")
    parser.set_defaults(func=_run_inspect)


def _run_map(args: argparse.Namespace) -> int:
    output = args.output or config.MAPPING_OUTPUT_PATH
    mapping = extract_template_mapping(args.template, profile=args.profile, output_path=output)
    print(f"mapping: {len(mapping.sections)} sections, {len(mapping.blocks)} blocks -> {output}")
    if args.outline:
        print(describe_mapping(mapping))
    return 0


def _run_assemble(args: argparse.Namespace) -> int:
    chapters = load_outline(args.outline)
    references = load_references(args.references) if args.references else []
    settings = load_style_settings(args.settings)
    assembler = ThesisAssembler(settings, profile=args.profile, log_enabled=not args.no_log)
    output = args.output or config.DEFAULT_OUTPUT_PATH
    result = assembler.assemble_file(args.template, chapters, references, output_path=output)
    print(f"written: {output}")
    print(f"references: {len(result.references)}")
    for warning in result.warnings:
        print(f"warning: {warning.describe()}")
    return 0


def _run_inspect(args: argparse.Namespace) -> int:
    reports = inspect_header_fields(args.document)
    if args.as_json:
        print(json.dumps([report.to_dict() for report in reports], ensure_ascii=False, indent=2))
        return 0
    if not reports:
        print("no header fields")
    for report in reports:
        print(report.describe())
    unresolved = [report for report in reports if report.is_styleref and not report.resolved]
    return 1 if unresolved else 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="thesis-assembler",
        description="Template-driven thesis document assembly.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--log-retention-days",
        type=int,
        default=config.LOG_RETENTION_DAYS,
        help="Delete run logs older than this many days (0 keeps all).",
    )
    subparsers = parser.add_subparsers(title="commands", metavar="<command>", dest="command")
    subparsers.required = True
    _add_map_parser(subparsers)
    _add_assemble_parser(subparsers)
    _add_inspect_parser(subparsers)
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if getattr(args, "profile", None) and args.profile not in _profile_keys():
        parser.error(f"unknown title profile: {args.profile}")
    config.cleanup_logs(args.log_retention_days)
    try:
        return args.func(args)
    except (PackageError, ValueError, OSError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
