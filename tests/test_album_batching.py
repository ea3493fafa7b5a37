import asyncio
import threading
import time
import unittest
from pathlib import Path
from tempfile import TemporaryDirectory

from music2json.album_batching import AlbumAggregator, chunked
from music2json.models import ProbeError
from music2json.tagging import ProbeResult


class _StubProbe:
    """Returns canned results keyed by file name; unknown names succeed without tags."""

    def __init__(self, results=None, delays=None) -> None:
        self.results = results or {}
        self.delays = delays or {}
        self.calls: list[str] = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def probe(self, path: Path) -> ProbeResult:
        with self._lock:
            self.calls.append(path.name)
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            time.sleep(self.delays.get(path.name, 0.01))
            outcome = self.results.get(path.name)
            if isinstance(outcome, Exception):
                raise outcome
            if outcome is None:
                return ProbeResult.success(path)
            title, genres = outcome
            return ProbeResult.success(path, title=title, genres=genres)
        finally:
            with self._lock:
                self.active -= 1


class _RecordingAggregator(AlbumAggregator):
    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.batch_sizes: list[int] = []

    async def _probe_batch(self, batch):
        self.batch_sizes.append(len(batch))
        return await super()._probe_batch(batch)


def _make_album(root: Path, names: list[str]) -> Path:
    album = root / "Artist" / "Album"
    album.mkdir(parents=True)
    for name in names:
        (album / name).write_bytes(b"")
    return album


class TestChunked(unittest.TestCase):
    def test_splits_into_fixed_groups(self) -> None:
        self.assertEqual([len(c) for c in chunked(list(range(25)), 10)], [10, 10, 5])
        self.assertEqual(list(chunked([], 10)), [])

    def test_rejects_non_positive_size(self) -> None:
        with self.assertRaises(ValueError):
            list(chunked([1, 2], 0))


class TestAlbumAggregator(unittest.TestCase):
    def _process(self, aggregator: AlbumAggregator, album: Path):
        with aggregator:
            return asyncio.run(aggregator.process_album(album, album.name))

    def test_partial_failures_keep_remaining_tracks(self) -> None:
        with TemporaryDirectory() as tmp:
            names = [f"{idx:02d}.mp3" for idx in range(6)]
            album = _make_album(Path(tmp), names)
            probe = _StubProbe(
                results={
                    "01.mp3": ProbeError("Invalid MPEG header"),
                    "04.mp3": OSError("read failed"),
                }
            )
            outcome = self._process(AlbumAggregator(probe), album)

            self.assertIsNotNone(outcome.album)
            self.assertEqual(len(outcome.album.tracks), 4)
            self.assertEqual(len(outcome.errors), 2)
            self.assertEqual(
                sorted(Path(e.file).name for e in outcome.errors), ["01.mp3", "04.mp3"]
            )
            self.assertIn("Invalid MPEG header", [e.error for e in outcome.errors])

    def test_album_dropped_when_every_probe_fails(self) -> None:
        with TemporaryDirectory() as tmp:
            album = _make_album(Path(tmp), ["a.flac", "b.flac", "c.ogg"])
            probe = _StubProbe(
                results={name: ProbeError("corrupt") for name in ["a.flac", "b.flac", "c.ogg"]}
            )
            outcome = self._process(AlbumAggregator(probe), album)

            self.assertIsNone(outcome.album)
            self.assertEqual(len(outcome.errors), 3)

    def test_genres_are_deduplicated_in_first_seen_order(self) -> None:
        with TemporaryDirectory() as tmp:
            album = _make_album(Path(tmp), ["1.mp3", "2.mp3"])
            probe = _StubProbe(
                results={
                    "1.mp3": ("One", ["Rock", "Jazz"]),
                    "2.mp3": ("Two", ["Jazz", "Blues"]),
                }
            )
            outcome = self._process(AlbumAggregator(probe), album)

            self.assertEqual(outcome.album.genres, ["Rock", "Jazz", "Blues"])
            self.assertEqual([t.title for t in outcome.album.tracks], ["One", "Two"])

    def test_batches_of_ten_and_failure_does_not_stop_later_batches(self) -> None:
        with TemporaryDirectory() as tmp:
            names = [f"{idx:02d}.m4a" for idx in range(25)]
            album = _make_album(Path(tmp), names)
            probe = _StubProbe(results={"00.m4a": ProbeError("bad atom")})
            aggregator = _RecordingAggregator(probe, batch_size=10)
            outcome = self._process(aggregator, album)

            self.assertEqual(aggregator.batch_sizes, [10, 10, 5])
            self.assertEqual(len(probe.calls), 25)
            self.assertLessEqual(probe.max_active, 10)
            self.assertEqual(len(outcome.album.tracks), 24)
            self.assertEqual(len(outcome.errors), 1)

    def test_track_order_follows_listing_not_completion(self) -> None:
        with TemporaryDirectory() as tmp:
            album = _make_album(Path(tmp), ["a.mp3", "b.mp3", "c.mp3"])
            probe = _StubProbe(
                results={"a.mp3": ("A", []), "b.mp3": ("B", []), "c.mp3": ("C", [])},
                delays={"a.mp3": 0.2, "b.mp3": 0.1, "c.mp3": 0.0},
            )
            outcome = self._process(AlbumAggregator(probe), album)

            self.assertEqual([t.title for t in outcome.album.tracks], ["A", "B", "C"])

    def test_missing_title_falls_back_to_file_name(self) -> None:
        with TemporaryDirectory() as tmp:
            album = _make_album(Path(tmp), ["Untitled Track.flac"])
            outcome = self._process(AlbumAggregator(_StubProbe()), album)

            self.assertEqual(outcome.album.tracks[0].title, "Untitled Track.flac")

    def test_only_supported_extensions_are_probed(self) -> None:
        with TemporaryDirectory() as tmp:
            album = _make_album(
                Path(tmp), ["cover.jpg", "notes.txt", "LOUD.MP3", "clip.mp4", "x.aac"]
            )
            (album / "subdir.mp3").mkdir()
            probe = _StubProbe()
            outcome = self._process(AlbumAggregator(probe), album)

            self.assertEqual(sorted(probe.calls), ["LOUD.MP3", "clip.mp4", "x.aac"])
            self.assertEqual(len(outcome.album.tracks), 3)

    def test_directory_without_audio_is_skipped_silently(self) -> None:
        with TemporaryDirectory() as tmp:
            album = _make_album(Path(tmp), ["folder.jpg"])
            outcome = self._process(AlbumAggregator(_StubProbe()), album)

            self.assertIsNone(outcome.album)
            self.assertEqual(outcome.errors, [])

    def test_unreadable_directory_becomes_single_error(self) -> None:
        with TemporaryDirectory() as tmp:
            missing = Path(tmp) / "Artist" / "Gone"
            outcome = self._process(AlbumAggregator(_StubProbe()), missing)

            self.assertIsNone(outcome.album)
            self.assertEqual(len(outcome.errors), 1)
            self.assertEqual(outcome.errors[0].file, str(missing))

    def test_slow_probe_times_out_without_blocking_album(self) -> None:
        with TemporaryDirectory() as tmp:
            album = _make_album(Path(tmp), ["fast.mp3", "slow.mp3"])
            probe = _StubProbe(delays={"slow.mp3": 1.0})
            aggregator = AlbumAggregator(probe, probe_timeout=0.3)
            outcome = self._process(aggregator, album)

            self.assertEqual([t.title for t in outcome.album.tracks], ["fast.mp3"])
            self.assertEqual(len(outcome.errors), 1)
            self.assertTrue(outcome.errors[0].error.startswith("Timed out"))

    def test_hung_batch_does_not_starve_next_album(self) -> None:
        with TemporaryDirectory() as tmp:
            root = Path(tmp)
            hung = root / "Artist" / "Hung"
            good = root / "Artist" / "Good"
            hung.mkdir(parents=True)
            good.mkdir(parents=True)
            hung_names = [f"hung{idx}.mp3" for idx in range(10)]
            good_names = [f"good{idx}.mp3" for idx in range(3)]
            for name in hung_names:
                (hung / name).write_bytes(b"")
            for name in good_names:
                (good / name).write_bytes(b"")
            probe = _StubProbe(delays={name: 1.5 for name in hung_names})

            async def _scan_both(aggregator: AlbumAggregator):
                first = await aggregator.process_album(hung, hung.name)
                second = await aggregator.process_album(good, good.name)
                return first, second

            with AlbumAggregator(probe, probe_timeout=0.3) as aggregator:
                first, second = asyncio.run(_scan_both(aggregator))

            self.assertIsNone(first.album)
            self.assertEqual(len(first.errors), 10)
            self.assertIsNotNone(second.album)
            self.assertEqual([t.title for t in second.album.tracks], good_names)
            self.assertEqual(second.errors, [])
            for name in good_names:
                self.assertIn(name, probe.calls)

    def test_invalid_batch_size_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            AlbumAggregator(_StubProbe(), batch_size=0)


if __name__ == "__main__":
    unittest.main()
