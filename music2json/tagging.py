from __future__ import annotations

import errno
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Protocol, Tuple

from mutagen import File as MutagenFile
from mutagen import MutagenError

from .models import ProbeError, describe_exception, optional_text

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ProbeResult:
    path: Path
    title: Optional[str] = None
    genres: Tuple[str, ...] = ()
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(
        cls, path: Path, title: Optional[str] = None, genres: Iterable[str] = ()
    ) -> "ProbeResult":
        return cls(path=path, title=optional_text(title), genres=_unique_genres(genres))

    @classmethod
    def failure(cls, path: Path, error: str) -> "ProbeResult":
        return cls(path=path, error=error or "Unknown error")


class MetadataProbe(Protocol):
    def probe(self, path: Path) -> ProbeResult: ...


class MutagenProbe:
    """Reads title and genres from the common tag formats through mutagen's easy interface."""

    def probe(self, path: Path) -> ProbeResult:
        try:
            audio = MutagenFile(path, easy=True)
        except MutagenError as exc:
            raise ProbeError(describe_exception(exc)) from exc
        if audio is None:
            raise ProbeError("Unsupported or unrecognised audio format")
        tags = getattr(audio, "tags", None)
        if not tags:
            return ProbeResult.success(path)
        return ProbeResult.success(
            path,
            title=self._first(tags, "title"),
            genres=self._values(tags, "genre"),
        )

    @staticmethod
    def _values(tags: object, key: str) -> list[str]:
        try:
            raw = tags.get(key)
        except (KeyError, ValueError):
            return []
        if raw is None:
            return []
        if isinstance(raw, (str, bytes)):
            raw = [raw]
        values: list[str] = []
        for item in raw:
            text = optional_text(item)
            if text:
                values.append(text)
        return values

    def _first(self, tags: object, key: str) -> Optional[str]:
        values = self._values(tags, key)
        return values[0] if values else None


def safe_probe(probe: MetadataProbe, path: Path) -> ProbeResult:
    """Run one probe and turn every failure into a failed ProbeResult."""
    try:
        return probe.probe(path)
    except ProbeError as exc:
        return ProbeResult.failure(path, str(exc))
    except OSError as exc:
        if exc.errno == errno.EBADF:
            logger.warning(
                "File descriptor error occurred but processing will continue: %s",
                path,
            )
        return ProbeResult.failure(path, describe_exception(exc))
    except Exception as exc:
        logger.debug("Probe failed for %s", path, exc_info=True)
        return ProbeResult.failure(path, describe_exception(exc))


def _unique_genres(genres: Iterable[str]) -> Tuple[str, ...]:
    seen: dict[str, None] = {}
    for genre in genres:
        text = optional_text(genre)
        if text:
            seen.setdefault(text, None)
    return tuple(seen)
