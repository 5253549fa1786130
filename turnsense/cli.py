#!/usr/bin/env python3
"""
turnsense CLI - inspect configuration and run the capture paths by hand

Usage:
    python -m turnsense.cli config               # Resolved tuneables with sources
    python -m turnsense.cli ratings --limit 20   # Recent implicit ratings
    python -m turnsense.cli guard "8 great job"  # Explicit rating check
    python -m turnsense.cli extract response.md  # Structured fields as JSON
    python -m turnsense.cli classify "ugh, wrong file again" --dry-run
    python -m turnsense.cli capture response.md  # Apply a response to task state
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from .config import CaptureConfig
from .diagnostics import setup_component_logging
from .extraction import parse_structured_response
from .inference import build_backend
from .rating_guard import explicit_rating_value
from .sentiment import SentimentClassifier
from .signal_store import SignalStore, summarize
from .task_state import ResponseCapture
from .timeutil import relative_time


def _configure_output():
    """Ensure UTF-8 output on Windows terminals to avoid UnicodeEncodeError."""
    for stream in (sys.stdout, sys.stderr):
        try:
            if hasattr(stream, "reconfigure"):
                stream.reconfigure(encoding="utf-8", errors="replace")
        except (AttributeError, ValueError, OSError):
            pass


def _load_config(args) -> CaptureConfig:
    config = CaptureConfig.load(Path(args.home) if args.home else None)
    setup_component_logging("cli", config.paths.logs_dir)
    return config


def _read_text(path: str) -> str:
    if path == "-":
        return sys.stdin.read()
    return Path(path).read_text(encoding="utf-8", errors="replace")


def cmd_config(args):
    """Show resolved tuneables with source attribution."""
    config = _load_config(args)
    print(f"\n  Home: {config.paths.home}")
    print(f"  Principal: {config.identity.principal_name}  Assistant: {config.identity.assistant_name}\n")
    for section, values in config.tuneables.data.items():
        print(f"[{section}]")
        for key, value in values.items():
            source = config.tuneables.sources.get(f"{section}.{key}", "runtime")
            print(f"   {key} = {value!r}  ({source})")
        print()
    if config.tuneables.warnings:
        print("Warnings:")
        for warning in config.tuneables.warnings:
            print(f"   - {warning}")


def _age(timestamp: str) -> str:
    try:
        return relative_time(timestamp)
    except ValueError:
        return "?"


def cmd_ratings(args):
    """Show recent implicit ratings."""
    config = _load_config(args)
    entries = SignalStore(config.paths.ratings_file).read_ratings(limit=args.limit)
    stats = summarize(entries, int(config.sentiment["low_rating_threshold"]))
    if args.json:
        print(json.dumps({"stats": stats, "entries": [e.to_dict() for e in entries]}, indent=2))
        return
    print(f"\n📊 Ratings: {stats['count']}  mean: {stats['mean_rating']}  low: {stats['low_count']}\n")
    for e in entries:
        print(f"   {e.timestamp} ({_age(e.timestamp)})  {e.rating:>2}/10  ({e.confidence:.2f})  {e.sentiment_summary}")


def cmd_guard(args):
    """Report whether TEXT is an explicit rating."""
    value = explicit_rating_value(args.text)
    if value is None:
        print("not an explicit rating")
    else:
        print(f"explicit rating: {value}")


def cmd_extract(args):
    """Print structured fields parsed from a response file."""
    structured = parse_structured_response(_read_text(args.file))
    print(json.dumps(structured.to_dict(), indent=2, ensure_ascii=False))


def cmd_classify(args):
    """Run the sentiment path on TEXT."""
    config = _load_config(args)
    classifier = SentimentClassifier(config, build_backend(config))
    if args.dry_run:
        outcome = asyncio.run(classifier.evaluate(args.text, args.transcript))
    else:
        outcome = asyncio.run(classifier.handle_user_prompt(args.text, args.session, args.transcript))
    print(json.dumps(outcome.to_dict(), indent=2, ensure_ascii=False))


def cmd_capture(args):
    """Apply a saved assistant response to task state and learnings."""
    config = _load_config(args)
    report = ResponseCapture(config).handle_response_capture(_read_text(args.file), args.session)
    for step in report.steps:
        mark = {"ok": "✓", "skipped": "-", "failed": "✗"}[step.status.value]
        detail = f" {step.reason}" if step.reason else ""
        where = f" -> {step.path}" if step.path else ""
        print(f"   {mark} {step.step}{detail}{where}")
    if report.failed():
        sys.exit(1)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="turnsense - implicit feedback and task state capture",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  config      Show resolved tuneables and their sources
  ratings     Show recent implicit ratings
  guard       Check whether a message is an explicit rating
  extract     Parse structured sections from a response
  classify    Run sentiment capture on a message
  capture     Run response capture on a saved response
""",
    )
    parser.add_argument("--home", default=None, help="turnsense home (default: $TURNSENSE_HOME or ~/.turnsense)")
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    subparsers.add_parser("config", help="Show resolved tuneables")

    ratings_parser = subparsers.add_parser("ratings", help="Show recent implicit ratings")
    ratings_parser.add_argument("--limit", "-n", type=int, default=20, help="Number of ratings to show")
    ratings_parser.add_argument("--json", action="store_true", help="Output as JSON")

    guard_parser = subparsers.add_parser("guard", help="Explicit rating check")
    guard_parser.add_argument("text", help="Message text")

    extract_parser = subparsers.add_parser("extract", help="Parse structured sections")
    extract_parser.add_argument("file", help="Response file ('-' for stdin)")

    classify_parser = subparsers.add_parser("classify", help="Run sentiment capture")
    classify_parser.add_argument("text", help="Message text")
    classify_parser.add_argument("--session", default="cli", help="Session id for the rating entry")
    classify_parser.add_argument("--transcript", default=None, help="Transcript JSONL for context")
    classify_parser.add_argument("--dry-run", action="store_true", help="Classify without persisting")

    capture_parser = subparsers.add_parser("capture", help="Run response capture")
    capture_parser.add_argument("file", help="Response file ('-' for stdin)")
    capture_parser.add_argument("--session", default="cli", help="Session id")
    return parser


def main(argv=None):
    _configure_output()
    parser = build_parser()
    args = parser.parse_args(argv)

    commands = {
        "config": cmd_config,
        "ratings": cmd_ratings,
        "guard": cmd_guard,
        "extract": cmd_extract,
        "classify": cmd_classify,
        "capture": cmd_capture,
    }
    if args.command in commands:
        commands[args.command](args)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
