from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

from .models import Artist, ProcessingError, ScanResult

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT_NAME = "music_metadata.json"
ERRORS_FILE_NAME = "music_metadata_errors.json"
ERROR_SAMPLE_SIZE = 5

_GENRES_ARRAY = re.compile(r'"genres": \[((?:\s*"(?:[^"\\]|\\.)*",?)*)\s*\]')


def resolve_output_file(output: Path) -> Path:
    """Map the ``--output`` value to the report file path.

    An existing directory, or a missing path without a suffix, receives the
    default file name; anything else is used literally.
    """
    output = output.expanduser()
    if output.is_dir():
        return output / DEFAULT_OUTPUT_NAME
    if output.exists() or output.suffix:
        return output
    return output / DEFAULT_OUTPUT_NAME


def errors_file_for(output_file: Path) -> Path:
    return output_file.parent / ERRORS_FILE_NAME


def _compact_genres(match: re.Match[str]) -> str:
    genres = json.loads(f"[{match.group(1)}]")
    return f'"genres": {json.dumps(genres, ensure_ascii=False)}'


def render_artists(artists: Iterable[Artist]) -> str:
    payload = [artist.to_record() for artist in artists]
    text = json.dumps(payload, indent=2, ensure_ascii=False)
    return _GENRES_ARRAY.sub(_compact_genres, text)


def render_errors(errors: Iterable[ProcessingError]) -> str:
    return json.dumps([error.to_record() for error in errors], indent=2, ensure_ascii=False)


@dataclass(frozen=True, slots=True)
class ReportPaths:
    artists_file: Optional[Path] = None
    errors_file: Optional[Path] = None


class ReportWriter:
    def __init__(self, output_file: Path) -> None:
        self.output_file = output_file
        self.errors_file = errors_file_for(output_file)

    def write(self, result: ScanResult) -> ReportPaths:
        artists_file: Optional[Path] = None
        errors_file: Optional[Path] = None
        if result.artists:
            logger.info("Writing %d artists to %s", len(result.artists), self.output_file)
            self.output_file.parent.mkdir(parents=True, exist_ok=True)
            self.output_file.write_text(render_artists(result.artists), encoding="utf-8")
            artists_file = self.output_file
        else:
            logger.warning("No artists found; %s not written", self.output_file)
        if result.errors:
            self.errors_file.parent.mkdir(parents=True, exist_ok=True)
            self.errors_file.write_text(render_errors(result.errors), encoding="utf-8")
            errors_file = self.errors_file
        return ReportPaths(artists_file=artists_file, errors_file=errors_file)


def summarize(
    result: ScanResult, paths: ReportPaths, sample: int = ERROR_SAMPLE_SIZE
) -> list[str]:
    lines: list[str] = []
    if paths.artists_file:
        lines.append(f"Music library JSON saved to {paths.artists_file} ({len(result.artists)} artists)")
    else:
        lines.append("No artists with readable albums were found")
    if not result.errors:
        return lines
    lines.append(f"Encountered {len(result.errors)} errors during processing")
    if paths.errors_file:
        lines.append(f"Processing errors saved to {paths.errors_file}")
    lines.append("Sample of errors encountered:")
    for error in result.errors[:sample]:
        lines.append(f"  - {error.file}: {error.error}")
    remaining = len(result.errors) - sample
    if remaining > 0:
        target = paths.errors_file or ERRORS_FILE_NAME
        lines.append(f"  ... and {remaining} more errors (see {target} for full list)")
    return lines
