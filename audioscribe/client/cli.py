"""Command-line client: send a local audio file to an audioscribe server."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..config import Config
from .orchestrator import AudioOrchestrator, OrchestrationError


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    config = Config()
    parser = argparse.ArgumentParser(
        description="Transcribe or summarize an audio file through an audioscribe server.",
    )
    parser.add_argument("audio_file", type=Path, help="Path to the audio file to process.")
    parser.add_argument(
        "--server-url",
        default=config.client_server_url,
        help="Base URL of the server API (default: %(default)s).",
    )
    parser.add_argument(
        "--prompt",
        default=None,
        help="Prompt sent with the audio (defaults to the server-side transcription prompt).",
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        default=config.segment_concurrency,
        help="Maximum segment requests in flight at once.",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Write the resulting text to this file instead of stdout.",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print a JSON summary (strategy, segments, text).",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log progress to stderr.",
    )
    return parser.parse_args(argv)


def _print_progress(payload: Dict[str, Any]) -> None:
    percent = payload.get("percent")
    status = payload.get("status", "")
    suffix = f" {percent}%" if percent is not None else ""
    print(f"[{payload.get('strategy', '?')}] {status}{suffix}", file=sys.stderr)


async def _run(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING)

    if not args.audio_file.is_file():
        print(f"{args.audio_file} does not exist", file=sys.stderr)
        return 2
    if args.concurrency <= 0:
        print("--concurrency must be positive", file=sys.stderr)
        return 2

    orchestrator = AudioOrchestrator(
        server_url=args.server_url,
        concurrency=args.concurrency,
        progress_callback=_print_progress if args.verbose else None,
    )
    try:
        result = await orchestrator.process_file(args.audio_file, prompt=args.prompt)
    except OrchestrationError as exc:
        print(f"Processing failed: {exc}", file=sys.stderr)
        return 1

    if args.output is not None:
        args.output.write_text(result.text, encoding="utf-8")

    if args.json:
        print(json.dumps(result.model_dump(), indent=2, ensure_ascii=False))
    elif args.output is None:
        print(result.text)
    return 0


def main(argv: Optional[List[str]] = None) -> None:
    raise SystemExit(asyncio.run(_run(argv)))


if __name__ == "__main__":
    main()
