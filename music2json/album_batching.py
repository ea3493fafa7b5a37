from __future__ import annotations

import asyncio
import logging
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Iterator, Optional, Sequence, TypeVar

from .fs_utils import (
    SUPPORTED_EXTENSIONS,
    has_supported_extension,
    is_regular_file,
    list_directory,
    normalize_extensions,
)
from .models import Album, ProcessingError, Track, describe_exception
from .tagging import MetadataProbe, ProbeResult, safe_probe

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 10

T = TypeVar("T")


def chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    if size < 1:
        raise ValueError(f"batch size must be at least 1, got {size}")
    for start in range(0, len(items), size):
        yield items[start : start + size]


@dataclass(slots=True)
class AlbumOutcome:
    album: Optional[Album]
    errors: list[ProcessingError] = field(default_factory=list)


class AlbumAggregator:
    """Probes the audio files of one album directory, a bounded batch at a time.

    Every file of a batch is probed concurrently on a worker thread and the
    aggregator waits for the whole batch before starting the next one, so at
    most ``batch_size`` files are open at once. Results are merged into the
    album only after a batch completes, in file-listing order.
    """

    def __init__(
        self,
        probe: MetadataProbe,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        extensions: Iterable[str] = SUPPORTED_EXTENSIONS,
        probe_timeout: Optional[float] = None,
        executor: Optional[Executor] = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError(f"batch size must be at least 1, got {batch_size}")
        self.probe = probe
        self.batch_size = batch_size
        self.extensions = normalize_extensions(extensions)
        self.probe_timeout = probe_timeout
        self._executor = executor
        self._owns_executor = executor is None
        self._stalled = False

    def __enter__(self) -> "AlbumAggregator":
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()

    @property
    def executor(self) -> Executor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self.batch_size, thread_name_prefix="music2json-probe"
            )
        return self._executor

    def close(self) -> None:
        if self._owns_executor and self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def _retire_stalled_executor(self) -> None:
        # Timed-out probes still hold their worker threads; later batches need a fresh pool.
        self._stalled = False
        if not self._owns_executor or self._executor is None:
            logger.warning("Probes still running after timeout; shared executor kept")
            return
        logger.debug("Replacing probe pool after timed-out probes")
        self._executor.shutdown(wait=False)
        self._executor = None

    def collect_files(self, album_path: Path) -> list[Path]:
        return [
            Path(entry.path)
            for entry in list_directory(album_path)
            if is_regular_file(entry) and has_supported_extension(entry.name, self.extensions)
        ]

    async def process_album(self, album_path: Path, album_name: str) -> AlbumOutcome:
        errors: list[ProcessingError] = []
        try:
            files = self.collect_files(album_path)
            if not files:
                logger.debug("No supported audio files in %s", album_path)
                return AlbumOutcome(album=None, errors=errors)

            album = Album(title=album_name)
            genres: dict[str, None] = {}
            batches = list(chunked(files, self.batch_size))
            for index, batch in enumerate(batches, start=1):
                logger.debug(
                    "Probing batch %d/%d (%d files) in %s",
                    index,
                    len(batches),
                    len(batch),
                    album_path,
                )
                results = await self._probe_batch(batch)
                if self._stalled:
                    self._retire_stalled_executor()
                for path, result in zip(batch, results):
                    self._merge(album, genres, errors, path, result)
            album.genres = list(genres)
        except Exception as exc:
            logger.warning("Failed to process album %s: %s", album_path, exc)
            errors.append(ProcessingError.from_exception(album_path, exc))
            return AlbumOutcome(album=None, errors=errors)

        if not album.tracks:
            return AlbumOutcome(album=None, errors=errors)
        return AlbumOutcome(album=album, errors=errors)

    async def _probe_batch(self, batch: Sequence[Path]) -> list[ProbeResult | BaseException]:
        loop = asyncio.get_running_loop()
        return await asyncio.gather(
            *(self._probe_one(loop, path) for path in batch),
            return_exceptions=True,
        )

    async def _probe_one(self, loop: asyncio.AbstractEventLoop, path: Path) -> ProbeResult:
        future = loop.run_in_executor(self.executor, safe_probe, self.probe, path)
        if self.probe_timeout is None:
            return await future
        try:
            return await asyncio.wait_for(future, timeout=self.probe_timeout)
        except asyncio.TimeoutError:
            self._stalled = True
            logger.warning("Probe timed out after %ss: %s", self.probe_timeout, path)
            return ProbeResult.failure(path, f"Timed out after {self.probe_timeout} seconds")

    @staticmethod
    def _merge(
        album: Album,
        genres: dict[str, None],
        errors: list[ProcessingError],
        path: Path,
        result: ProbeResult | BaseException,
    ) -> None:
        if isinstance(result, BaseException):
            if not isinstance(result, Exception):
                raise result
            errors.append(ProcessingError(file=str(path), error=describe_exception(result)))
            return
        if not result.ok:
            logger.debug("Skipping %s: %s", path, result.error)
            errors.append(ProcessingError(file=str(path), error=result.error or "Unknown error"))
            return
        for genre in result.genres:
            genres.setdefault(genre, None)
        album.tracks.append(Track(title=result.title or path.name))
