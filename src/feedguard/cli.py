# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""FeedGuard CLI: classify, scan commands.

Usage:
    python -m feedguard.cli classify TEXT [--settings PATH]
    python -m feedguard.cli scan FILE --url URL [--settings PATH] [-o OUT]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

import lxml.html

from .ai_classifier import AIClassifier
from .engine import ClassificationEngine
from .errors import FeedGuardError
from .logging_config import configure
from .session import FilterSession, hostname_of
from .settings import StaticSettingsProvider, load_settings

logger = logging.getLogger(__name__)


def _validate_output_path(path_str: str | None) -> Path | None:
    if not path_str:
        return None
    p = Path(path_str)
    if not p.parent.exists():
        p.parent.mkdir(parents=True, exist_ok=True)
    return p


async def _classify(args: argparse.Namespace) -> dict:
    settings = load_settings(args.settings)
    async with AIClassifier(api_url=settings.api_url) as classifier:
        engine = ClassificationEngine(StaticSettingsProvider(settings), classifier)
        verdict = await engine.evaluate(args.text)
    return verdict.to_dict()


def cmd_classify(args: argparse.Namespace) -> None:
    """Classify one text and print the verdict as JSON."""
    result = asyncio.run(_classify(args))
    print(json.dumps(result, ensure_ascii=False))


async def _scan(args: argparse.Namespace, document: lxml.html.HtmlElement) -> dict:
    settings = load_settings(args.settings)
    async with AIClassifier(api_url=settings.api_url) as classifier:
        engine = ClassificationEngine(StaticSettingsProvider(settings), classifier)
        async with FilterSession(document, args.url, settings, engine) as session:
            enabled = await session.start()
            await session.wait_idle()
            return {"url": args.url, "enabled": enabled, **session.stats.to_dict()}


def cmd_scan(args: argparse.Namespace) -> None:
    """Filter an HTML file as if it were loaded from --url."""
    if not hostname_of(args.url):
        raise FeedGuardError(f"--url {args.url!r} has no hostname")

    source = Path(args.file)
    try:
        html = source.read_text(encoding="utf-8")
    except OSError as e:
        raise FeedGuardError(f"Cannot read {source}: {e}") from e
    if not html.strip():
        raise FeedGuardError(f"{source} is empty")

    document = lxml.html.document_fromstring(html)
    report = asyncio.run(_scan(args, document))
    print(json.dumps(report, indent=2))

    out_path = _validate_output_path(args.output)
    if out_path is not None:
        out_path.write_bytes(lxml.html.tostring(document, encoding="utf-8", doctype="<!DOCTYPE html>"))
        print(f"Filtered HTML saved to {out_path}", file=sys.stderr)


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="FeedGuard CLI",
        prog="feedguard",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    parser.add_argument("--json-logs", action="store_true", help="Emit logs as JSON lines")
    subparsers = parser.add_subparsers(dest="command", required=True)

    p_classify = subparsers.add_parser("classify", help="Classify a single text")
    p_classify.add_argument("text", type=str, help="Text to classify")
    p_classify.add_argument("--settings", type=str, metavar="PATH", help="Settings file (.json/.yaml)")

    _scan_epilog = """\
examples:
  %(prog)s page.html --url https://x.com/home                Print stats
  %(prog)s page.html --url https://x.com/home -o out.html    Save filtered page
"""
    p_scan = subparsers.add_parser(
        "scan",
        help="Filter an HTML file",
        epilog=_scan_epilog,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    p_scan.add_argument("file", type=str, help="HTML file to scan")
    p_scan.add_argument("--url", type=str, required=True, metavar="URL", help="Page URL (drives the domain gate)")
    p_scan.add_argument("--settings", type=str, metavar="PATH", help="Settings file (.json/.yaml)")
    p_scan.add_argument("-o", "--output", type=str, metavar="PATH", help="Write filtered HTML here")

    commands = {"classify": cmd_classify, "scan": cmd_scan}

    args = parser.parse_args(argv)
    configure(json_output=args.json_logs, level="DEBUG" if args.verbose else "INFO")

    try:
        commands[args.command](args)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(130)
    except FeedGuardError as e:
        print(f"Error: {e}", file=sys.stderr)
        if args.verbose:
            logger.debug("Command failed", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
