from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Optional, Sequence

from . import __version__
from .app import Music2JsonApp
from .config import load_settings
from .models import ConfigurationError
from .report import summarize

LOG_FORMAT = "%(levelname).1s | %(name)s | %(message)s"

ANSI_RESET = "\033[0m"
ANSI_YELLOW = "\033[33m"
PROBLEM_COLORS = {
    logging.WARNING: ANSI_YELLOW,
    logging.ERROR: "\033[31m",
    logging.CRITICAL: "\033[1;31m",
}


class ShortPathFormatter(logging.Formatter):
    """Drops the music root prefix from log messages to keep lines readable."""

    def __init__(self, fmt: str, roots: Sequence[Path], use_color: bool = False) -> None:
        super().__init__(fmt)
        self.prefixes = [f"{root}{os.sep}" for root in roots if root]
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for prefix in self.prefixes:
            message = message.replace(prefix, "")
        color = PROBLEM_COLORS.get(record.levelno) if self.use_color else None
        return f"{color}{message}{ANSI_RESET}" if color else message


class ProblemCollector(logging.Handler):
    """Keeps WARNING and worse messages for the end-of-run recap."""

    def __init__(self, roots: Sequence[Path]) -> None:
        super().__init__(level=logging.WARNING)
        self.setFormatter(ShortPathFormatter("%(message)s", roots))
        self.messages: list[str] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.messages.append(self.format(record))

    def recap(self) -> list[str]:
        if not self.messages:
            return []
        lines = [f"{ANSI_YELLOW}Warnings/Errors summary ({len(self.messages)}):{ANSI_RESET}"]
        lines.extend(f" - {message}" for message in self.messages)
        return lines


def configure_logging(level_name: str, roots: Sequence[Path]) -> ProblemCollector:
    level = getattr(logging, level_name.upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(level)

    console = logging.StreamHandler()
    console.setFormatter(ShortPathFormatter(LOG_FORMAT, roots, use_color=sys.stderr.isatty()))
    root_logger.addHandler(console)

    collector = ProblemCollector(roots)
    root_logger.addHandler(collector)

    logging.getLogger("mutagen").setLevel(logging.WARNING)
    return collector


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="music2json",
        description="Scan an artist/album music library and write its metadata as JSON",
    )
    parser.add_argument(
        "--music-dir",
        "-m",
        type=Path,
        default=None,
        help="Path to your music directory (defaults to MUSIC_PATH)",
    )
    parser.add_argument(
        "--output",
        "-o",
        type=Path,
        default=None,
        help="Output directory or file path (defaults to OUTPUT_PATH or the current directory)",
    )
    parser.add_argument(
        "--limit",
        "-l",
        type=int,
        default=None,
        help="Limit the number of artists to process (0 = no limit)",
    )
    parser.add_argument("--config", type=Path, help="Path to music2json.yaml")
    parser.add_argument("--log-level", default="INFO", help="Python logging level")
    parser.add_argument(
        "--version",
        "-v",
        action="version",
        version=f"%(prog)s {__version__}",
        help="Show version number",
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = load_settings(
            args.config,
            music_dir=args.music_dir,
            output=args.output,
            limit=args.limit,
        )
    except ConfigurationError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        raise SystemExit(1)

    roots = [settings.scan.music_dir] if settings.scan.music_dir else []
    collector = configure_logging(args.log_level, roots)

    app = Music2JsonApp.create(settings)
    try:
        report = app.run()
    except ConfigurationError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        raise SystemExit(1)
    except OSError as exc:
        print(f"Error: could not write report to {app.output_file}: {exc}", file=sys.stderr)
        raise SystemExit(1)
    except KeyboardInterrupt:
        print("\nInterrupted; partial results were saved.", file=sys.stderr)
        raise SystemExit(130)
    finally:
        app.close()

    print()
    for line in summarize(report.result, report.paths):
        print(line)
    recap = collector.recap()
    if recap:
        print()
        print("\n".join(recap))
    if not report.ok:
        print(f"Scan aborted early: {report.failure}; partial results were saved.", file=sys.stderr)
