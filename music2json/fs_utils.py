from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable

SUPPORTED_EXTENSIONS = (".m4a", ".aac", ".mp4", ".mp3", ".flac", ".ogg")


def list_directory(path: Path) -> list[os.DirEntry]:
    """Return the entries of ``path`` sorted by name.

    ``os.scandir`` order depends on the filesystem; sorting keeps listing order,
    and therefore the report, reproducible. OSError propagates to the caller.
    """
    with os.scandir(path) as it:
        entries = list(it)
    return sorted(entries, key=lambda entry: entry.name)


def is_directory(entry: os.DirEntry) -> bool:
    try:
        return entry.is_dir()
    except OSError:
        return False


def is_regular_file(entry: os.DirEntry) -> bool:
    try:
        return entry.is_file()
    except OSError:
        return False


def normalize_extensions(extensions: Iterable[str]) -> frozenset[str]:
    normalized: set[str] = set()
    for ext in extensions:
        cleaned = ext.strip().lower()
        if not cleaned:
            continue
        if not cleaned.startswith("."):
            cleaned = f".{cleaned}"
        normalized.add(cleaned)
    return frozenset(normalized)


def has_supported_extension(name: str, extensions: frozenset[str]) -> bool:
    return os.path.splitext(name)[1].lower() in extensions


def directory_accessible(path: Path) -> bool:
    try:
        if not path.is_dir():
            return False
    except OSError:
        return False
    return os.access(path, os.R_OK | os.X_OK)
