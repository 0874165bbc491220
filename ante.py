"""Ante entry point: all you've got is a deck of cards."""

from __future__ import annotations
import argparse
import sys
from typing import List, Optional

from interpreter import AnteRuntimeError, Interpreter, TracebackFormatter
from lexer import AnteLoadError


def load_source(filename: str) -> str:
    try:
        with open(filename, "r", encoding="utf-8") as handle:
            return handle.read()
    except (OSError, UnicodeDecodeError) as exc:
        raise AnteLoadError(f"Failed to read {filename}: {exc}") from exc


def run_cli(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Ante card-language interpreter")
    parser.add_argument("program", help="Source file path or literal source with -source")
    parser.add_argument("-source", "--source", dest="source_mode", action="store_true", help="Treat program argument as literal source text")
    parser.add_argument("-verbose", "--verbose", dest="verbose", action="store_true", help="Emit register snapshots in tracebacks")
    parser.add_argument("--traceback-json", action="store_true", help="Also emit JSON traceback")
    parser.add_argument("--registers", action="store_true", help="Print the final registers to stderr after the run")
    parser.add_argument("--comment", default="#", help="Comment marker (default: '#')")
    args = parser.parse_args(argv)

    if not args.comment:
        parser.error("--comment must not be empty")

    if args.source_mode:
        source_text = args.program
        filename = "<string>"
    else:
        filename = args.program
        try:
            source_text = load_source(filename)
        except AnteLoadError as error:
            print(error, file=sys.stderr)
            return 1

    interpreter = Interpreter(source=source_text, filename=filename, verbose=args.verbose, comment=args.comment)
    try:
        interpreter.run()
    except AnteRuntimeError as error:
        formatter = TracebackFormatter(interpreter)
        print(formatter.format_text(error, verbose=args.verbose), file=sys.stderr)
        if args.traceback_json:
            print(formatter.to_json(error), file=sys.stderr)
        return 1

    if args.registers:
        snapshot = interpreter.registers.snapshot()
        print(", ".join(f"{suit}={value}" for suit, value in snapshot.items()), file=sys.stderr)
    return 0


def main() -> None:
    raise SystemExit(run_cli())


if __name__ == "__main__":
    main()
