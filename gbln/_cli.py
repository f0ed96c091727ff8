"""GBLN command-line interface.

Usage:
    echo 'user{id<u32>(1)}' | python3 -m gbln parse
    echo '{"user": {"id": 1}}' | python3 -m gbln encode [--pretty] [--indent N]
    python3 -m gbln fmt --input config.gbln [--pretty] [--keep-comments]
    python3 -m gbln version
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import List, Optional

from . import (
    GblnError,
    IoError,
    __version__,
    native_to_serialized,
    parse_to_native,
    roundtrip,
)
from ._constants import DEFAULT_INDENT


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gbln",
        description="GBLN: typed, bounded, token-efficient data notation",
    )
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Log handle allocation and release to stderr")
    sub = parser.add_subparsers(dest="command")

    # ── parse ──
    parse_p = sub.add_parser("parse", help="Convert GBLN to JSON")
    parse_p.add_argument("--input", "-i", metavar="FILE",
                         help="Read GBLN from FILE instead of stdin")

    # ── encode ──
    enc_p = sub.add_parser("encode", help="Convert JSON to GBLN with inferred hints")
    enc_p.add_argument("--input", "-i", metavar="FILE",
                       help="Read JSON from FILE instead of stdin")
    enc_p.add_argument("--pretty", action="store_true", help="Indented output")
    enc_p.add_argument("--indent", type=int, default=DEFAULT_INDENT, metavar="N",
                       help="Spaces per indent level (default: %(default)s)")

    # ── fmt ──
    fmt_p = sub.add_parser("fmt", help="Normalize GBLN, keeping its type hints")
    fmt_p.add_argument("--input", "-i", metavar="FILE",
                       help="Read GBLN from FILE instead of stdin")
    fmt_p.add_argument("--pretty", action="store_true", help="Indented output")
    fmt_p.add_argument("--indent", type=int, default=DEFAULT_INDENT, metavar="N",
                       help="Spaces per indent level (default: %(default)s)")
    fmt_p.add_argument("--keep-comments", action="store_true",
                       help="Keep comments at the top of the document and object bodies")

    # ── version ──
    sub.add_parser("version", help="Print version and exit")

    return parser


def _read_input(filepath: Optional[str]) -> str:
    """Read UTF-8 text from a file or stdin."""
    try:
        if filepath:
            with open(filepath, "r", encoding="utf-8") as f:
                return f.read()
        if sys.stdin.isatty():
            print("gbln: reading from stdin (Ctrl-D to end)...", file=sys.stderr)
        return sys.stdin.read()
    except (OSError, UnicodeDecodeError) as e:
        raise IoError("cannot read {}: {}".format(filepath or "stdin", e))


def _cmd_parse(args: argparse.Namespace) -> None:
    value = parse_to_native(_read_input(args.input))
    print(json.dumps(value, ensure_ascii=False, indent=2))


def _cmd_encode(args: argparse.Namespace) -> None:
    value = json.loads(_read_input(args.input))
    print(native_to_serialized(value, pretty=args.pretty, indent_width=args.indent))


def _cmd_fmt(args: argparse.Namespace) -> None:
    print(roundtrip(_read_input(args.input), pretty=args.pretty,
                    indent_width=args.indent, strip_comments=not args.keep_comments))


def main(argv: Optional[List[str]] = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s")

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    if args.command == "version":
        print(f"gbln {__version__}")
        return

    try:
        if args.command == "parse":
            _cmd_parse(args)
        elif args.command == "encode":
            _cmd_encode(args)
        elif args.command == "fmt":
            _cmd_fmt(args)
    except GblnError as e:
        print(f"gbln: error [{e.code}]: {e}", file=sys.stderr)
        sys.exit(2)
    except json.JSONDecodeError as e:
        print(f"gbln: JSON parse error: {e}", file=sys.stderr)
        sys.exit(2)
    except ValueError as e:
        print(f"gbln: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
