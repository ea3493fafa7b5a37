from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional


@dataclass(frozen=True, slots=True)
class Track:
    title: str

    def to_record(self) -> Dict[str, object]:
        return {"title": self.title}


@dataclass(slots=True)
class Album:
    title: str
    genres: List[str] = field(default_factory=list)
    tracks: List[Track] = field(default_factory=list)

    def to_record(self) -> Dict[str, object]:
        return {
            "albumTitle": self.title,
            "genres": list(self.genres),
            "tracks": [track.to_record() for track in self.tracks],
        }


@dataclass(slots=True)
class Artist:
    name: str
    albums: List[Album] = field(default_factory=list)

    def to_record(self) -> Dict[str, object]:
        return {
            "artistName": self.name,
            "albums": [album.to_record() for album in self.albums],
        }


@dataclass(frozen=True, slots=True)
class ProcessingError:
    """A file or directory that could not be processed; the scan carries on."""

    file: str
    error: str

    @classmethod
    def from_exception(cls, path: Path | str, exc: BaseException) -> "ProcessingError":
        return cls(file=str(path), error=describe_exception(exc))

    def to_record(self) -> Dict[str, str]:
        return {"file": self.file, "error": self.error}


@dataclass(slots=True)
class ScanResult:
    artists: List[Artist] = field(default_factory=list)
    errors: List[ProcessingError] = field(default_factory=list)

    def to_record(self) -> Dict[str, object]:
        return {
            "artists": [artist.to_record() for artist in self.artists],
            "errors": [error.to_record() for error in self.errors],
        }


class ProbeError(Exception):
    """Raised by a probe when a file's metadata cannot be extracted."""


class ConfigurationError(Exception):
    """Raised when the scan cannot start because of bad settings or a missing root."""


def describe_exception(exc: BaseException) -> str:
    if isinstance(exc, OSError) and exc.strerror:
        return exc.strerror if not exc.filename else f"{exc.strerror}: {exc.filename}"
    message = str(exc).strip()
    return message or exc.__class__.__name__


def optional_text(value: object) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="replace")
    text = str(value).strip()
    return text or None
