from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .album_batching import AlbumAggregator
from .config import Settings
from .fs_utils import directory_accessible
from .models import ConfigurationError, ScanResult
from .report import ReportPaths, ReportWriter, resolve_output_file
from .scanner import LibraryScanner, ProgressCallback
from .tagging import MetadataProbe, MutagenProbe

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RunReport:
    result: ScanResult
    paths: ReportPaths
    failure: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.failure is None


@dataclass
class Music2JsonApp:
    settings: Settings
    aggregator: AlbumAggregator
    scanner: LibraryScanner
    writer: ReportWriter

    @classmethod
    def create(
        cls,
        settings: Settings,
        probe: Optional[MetadataProbe] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> "Music2JsonApp":
        scan = settings.scan
        aggregator = AlbumAggregator(
            probe or MutagenProbe(),
            batch_size=scan.batch_size,
            extensions=scan.include_extensions,
            probe_timeout=scan.probe_timeout_seconds,
        )
        return cls(
            settings=settings,
            aggregator=aggregator,
            scanner=LibraryScanner(aggregator, progress_callback=progress_callback),
            writer=ReportWriter(resolve_output_file(scan.output)),
        )

    @property
    def output_file(self) -> Path:
        return self.writer.output_file

    def require_music_dir(self) -> Path:
        music_dir = self.settings.scan.music_dir
        if music_dir is None:
            raise ConfigurationError(
                "Music directory not specified. Provide it via MUSIC_PATH (environment or .env) "
                "or the --music-dir argument"
            )
        if not directory_accessible(music_dir):
            raise ConfigurationError(
                f'Music directory "{music_dir}" does not exist or is not accessible'
            )
        return music_dir

    def prepare_output(self) -> None:
        try:
            self.output_file.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ConfigurationError(
                f"Cannot create output directory {self.output_file.parent}: {exc}"
            ) from exc

    def run(self) -> RunReport:
        """Scan the library and write whatever was gathered, even after a fatal error."""
        music_dir = self.require_music_dir()
        self.prepare_output()
        logger.info("Starting scan of music directory: %s", music_dir)
        logger.info("Will save results to: %s", self.output_file)

        result = ScanResult()
        failure: Optional[BaseException] = None
        try:
            self.scanner.scan(music_dir, self.settings.scan.limit, into=result)
        except KeyboardInterrupt:
            logger.warning("Scan interrupted; saving partial results")
            self.writer.write(result)
            raise
        except Exception as exc:
            logger.exception("Fatal error during scan of %s", music_dir)
            failure = exc
        finally:
            self.aggregator.close()

        paths = self.writer.write(result)
        return RunReport(result=result, paths=paths, failure=failure)

    def close(self) -> None:
        self.aggregator.close()
