import sys
from pathlib import Path
from typing import Dict, List, Optional

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from agents.aligner import TrackAligner  # noqa: E402
from agents.committer import CommitEngine  # noqa: E402
from agents.scanner import AudioFileRecord, AudioFileScanner  # noqa: E402
from orchestrator.console import Console  # noqa: E402
from orchestrator.errors import FolderLockedError, UnsupportedAudioError  # noqa: E402
from sources.base import DataSource, ProviderAlbum, ProviderArtist, ProviderTrack  # noqa: E402
from sources.registry import SourceRegistry  # noqa: E402


# ==================== Tag library fakes ====================


class FakeTagStore:
    """In-memory stand-in for file tags, keyed by file name so moves keep them"""

    def __init__(self):
        self.files: Dict[str, dict] = {}
        # file name -> number of writes that fail with a lock error
        self.locks: Dict[str, int] = {}
        self.writes: List[str] = []
        self.open_handles = 0

    def add(self, path, title=None, track=None, disc=None, duration_ms=None,
            artist=None, album=None, year=None):
        self.files[self.key(path)] = {
            'title': title,
            'performers': [artist] if artist else [],
            'album_artists': [artist] if artist else [],
            'album': album,
            'composers': [],
            'genres': [],
            'disc': disc,
            'track': track,
            'disc_count': None,
            'track_count': None,
            'year': year,
            'comment': None,
            'lyrics': None,
            'duration_ms': duration_ms,
        }

    @staticmethod
    def key(path) -> str:
        return Path(path).name

    def tags(self, path) -> dict:
        return self.files[self.key(path)]

    def opener(self, path):
        path = str(path)
        if self.key(path) not in self.files:
            raise UnsupportedAudioError(f"Unsupported audio format: {path}")
        return FakeTagHandle(self, path)


class FakeTagHandle:
    def __init__(self, store: FakeTagStore, path: str):
        self.store = store
        self.path = path
        self.closed = False
        store.open_handles += 1

    def read(self):
        return dict(self.store.tags(self.path))

    def write(self, fields):
        key = self.store.key(self.path)
        if self.store.locks.get(key, 0) > 0:
            self.store.locks[key] -= 1
            raise FolderLockedError(self.path, f"File is in use: {self.path}")
        values = self.store.tags(self.path)
        for field_name, value in fields.items():
            if value is not None:
                values[field_name] = value
        self.store.writes.append(self.path)
        return []

    def dispose(self):
        if not self.closed:
            self.closed = True
            self.store.open_handles -= 1


@pytest.fixture
def tag_store():
    return FakeTagStore()


@pytest.fixture
def scanner(tag_store):
    return AudioFileScanner(tag_opener=tag_store.opener)


@pytest.fixture
def album_dir(tmp_path, tag_store):
    """Artist/2001 - Album with five tracks on disk and in the tag store"""
    folder = tmp_path / "Some Artist" / "2001 - Some Album"
    folder.mkdir(parents=True)
    for i, (title, seconds) in enumerate([("Alpha", 200), ("Beta", 180), ("Gamma", 240),
                                          ("Delta", 150), ("Epsilon", 300)], 1):
        path = folder / f"{i:02d} - {title}.mp3"
        path.write_bytes(b"")
        tag_store.add(path, title=title, track=i, disc=1, duration_ms=seconds * 1000,
                      artist="Some Artist", album="Some Album", year="2001")
    return folder


# ==================== Records ====================


def make_record(name, title=None, duration_ms=None, track=None, disc=None, fs_index=0, folder="/music/a"):
    return AudioFileRecord(
        path=f"{folder}/{name}",
        title=title,
        track_number=track,
        disc_number=disc,
        duration_ms=duration_ms,
        fs_index=fs_index
    )


def make_track(name, track=None, disc=1, duration_ms=None, track_id=None, provider="fake"):
    return ProviderTrack(
        id=track_id or f"t-{name}",
        name=name,
        provider=provider,
        disc_number=disc,
        track_number=track,
        duration_ms=duration_ms
    )


# ==================== Providers ====================


class FakeSource(DataSource):
    """Provider serving canned records and counting calls"""

    def __init__(self, name="fake", artists=None, albums=None, tracks=None, fail=False):
        super().__init__(rate_limit=0)
        self._name = name
        self.artists: List[ProviderArtist] = list(artists or [])
        self.albums: List[ProviderAlbum] = list(albums or [])
        self.tracks: Dict[str, List[ProviderTrack]] = dict(tracks or {})
        self.fail = fail
        self.calls: List[tuple] = []

    @property
    def name(self) -> str:
        return self._name

    def _record(self, *call):
        self.calls.append(call)
        if self.fail:
            raise RuntimeError(f"{self._name} is down")

    def search_artist(self, query: str) -> List[ProviderArtist]:
        self._record('search_artist', query)
        return list(self.artists)

    def get_artist(self, artist_id: str) -> Optional[ProviderArtist]:
        self._record('get_artist', artist_id)
        return next((a for a in self.artists if a.id == artist_id), None)

    def search_album(self, artist: str, album: str) -> List[ProviderAlbum]:
        self._record('search_album', artist, album)
        return list(self.albums)

    def get_album(self, album_id: str) -> Optional[ProviderAlbum]:
        self._record('get_album', album_id)
        return next((a for a in self.albums if a.id == album_id), None)

    def get_tracks(self, album_id: str) -> List[ProviderTrack]:
        self._record('get_tracks', album_id)
        return list(self.tracks.get(album_id, []))

    def count(self, method: str) -> int:
        return sum(1 for call in self.calls if call[0] == method)


def make_album(album_id, name="Some Album", artist="Some Artist", release_date="2001-05-01",
               provider="fake", track_count=0):
    return ProviderAlbum(id=album_id, name=name, provider=provider, artist=artist,
                         release_date=release_date, track_count=track_count)


def make_registry(*sources, default=None):
    by_name = {s.name: s for s in sources}
    shortcuts = {s.name: f"/{s.name[:2]}" for s in sources}
    return SourceRegistry(by_name, default or sources[0].name, shortcuts)


# ==================== Console ====================


class ScriptedConsole(Console):
    """Console fed from a token list; raises EOFError when it runs out"""

    def __init__(self, tokens=None, retry_answers=None):
        self.tokens = list(tokens or [])
        self.retry_answers = list(retry_answers or [])
        self.prompts: List[str] = []
        self.lines: List[str] = []
        super().__init__(input_func=self._next, output_func=self.lines.append)

    def _next(self, prompt):
        self.prompts.append(prompt)
        if not self.tokens:
            raise EOFError
        return self.tokens.pop(0)

    def confirm_retry(self, message):
        self.lines.append(message)
        return self.retry_answers.pop(0) if self.retry_answers else False

    @property
    def warnings(self):
        return [line for line in self.lines if "WARNING" in line]


@pytest.fixture
def aligner():
    return TrackAligner()


@pytest.fixture
def committer(scanner, tmp_path):
    return CommitEngine(scanner=scanner)
