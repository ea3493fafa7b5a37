from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Callable, Optional

from .album_batching import AlbumAggregator
from .fs_utils import is_directory, list_directory
from .models import Artist, ProcessingError, ScanResult

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


class LibraryScanner:
    """Walks an ``artist/album/track`` tree and aggregates it into a ScanResult.

    Artists and albums are visited one at a time; concurrency is confined to
    the per-album probe batches of the AlbumAggregator.
    """

    def __init__(
        self,
        aggregator: AlbumAggregator,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> None:
        self.aggregator = aggregator
        self.progress_callback = progress_callback

    def scan(self, root: Path, artist_limit: int = 0, *, into: Optional[ScanResult] = None) -> ScanResult:
        return asyncio.run(self.scan_directory(root, artist_limit, into=into))

    async def scan_directory(
        self,
        root: Path,
        artist_limit: int = 0,
        *,
        into: Optional[ScanResult] = None,
    ) -> ScanResult:
        result = into if into is not None else ScanResult()
        logger.info("Scanning directory: %s", root)
        try:
            entries = list_directory(root)
        except OSError as exc:
            logger.error("Unable to list music directory %s: %s", root, exc)
            result.errors.append(ProcessingError.from_exception(root, exc))
            return result

        artist_entries = [entry for entry in entries if is_directory(entry)]
        if artist_limit > 0:
            artist_entries = artist_entries[:artist_limit]
        total = len(artist_entries)
        for index, entry in enumerate(artist_entries, start=1):
            artist = await self.scan_artist(Path(entry.path), entry.name, result.errors)
            if artist is not None:
                result.artists.append(artist)
            if self.progress_callback:
                self.progress_callback(index, total)
        return result

    async def scan_artist(
        self, artist_path: Path, artist_name: str, errors: list[ProcessingError]
    ) -> Optional[Artist]:
        logger.info("Processing artist: %s", artist_name)
        try:
            entries = list_directory(artist_path)
        except OSError as exc:
            logger.warning("Unable to list artist directory %s: %s", artist_path, exc)
            errors.append(ProcessingError.from_exception(artist_path, exc))
            return None

        artist = Artist(name=artist_name)
        for entry in entries:
            if not is_directory(entry):
                continue
            outcome = await self.aggregator.process_album(Path(entry.path), entry.name)
            if outcome.album is not None:
                artist.albums.append(outcome.album)
            errors.extend(outcome.errors)

        if not artist.albums:
            logger.debug("Skipping artist without albums: %s", artist_name)
            return None
        return artist

