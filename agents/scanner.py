#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Scanner Agent - Enumerates an album folder and reads its audio files.

Responsibilities:
- Walk the album folder (disc sub-folders included) in raw directory order
- Filter to supported audio extensions
- Read per-file metadata through a scoped tag handle
- Skip unreadable files with a warning
- Re-read records after tag writes and folder moves
"""

import os
from collections import Counter
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional

import mutagen
from mutagen.aiff import AIFF
from mutagen.id3 import ID3, TALB, TCOM, TCON, TDRC, TIT2, TPE1, TPE2, TPOS, TRCK
from mutagen.wave import WAVE

from orchestrator.errors import FolderLockedError, ResolverError, UnsupportedAudioError
from utilities.folder_mover import is_lock_error
from utilities.naming import natural_key

from .base import BaseAgent


# Canonical field name -> mutagen "easy" key
FIELD_KEYS = {
    'title': 'title',
    'performers': 'artist',
    'album_artists': 'albumartist',
    'album': 'album',
    'composers': 'composer',
    'genres': 'genre',
    'year': 'date',
    'comment': 'comment',
    'lyrics': 'lyrics',
}

LIST_FIELDS = {'performers', 'album_artists', 'composers', 'genres'}
NUMBER_FIELDS = {'disc', 'track', 'disc_count', 'track_count'}

# Easy key -> ID3 frame, for containers that carry a bare ID3 tag
ID3_FRAMES = {
    'title': TIT2,
    'artist': TPE1,
    'albumartist': TPE2,
    'album': TALB,
    'composer': TCOM,
    'genre': TCON,
    'date': TDRC,
    'discnumber': TPOS,
    'tracknumber': TRCK,
}

# mutagen has no easy wrapper for these, even with easy=True
ID3_CONTAINERS = (WAVE, AIFF)


class TagHandle:
    """
    Open tag resource for one audio file.

    Wraps mutagen's easy interface so every container format exposes the
    same keys. WAV and AIFF only expose raw ID3 frames, so their keys are
    mapped through ID3_FRAMES. Use as a context manager; the handle is
    released on exit.
    """

    def __init__(self, path: str):
        self.path = str(path)
        try:
            self._audio = mutagen.File(self.path, easy=True)
        except (mutagen.MutagenError, OSError) as e:
            raise UnsupportedAudioError(f"Could not read {self.path}: {e}") from e
        if self._audio is None:
            raise UnsupportedAudioError(f"Unsupported audio format: {self.path}")
        self._id3 = isinstance(self._audio, ID3_CONTAINERS) or isinstance(self._audio.tags, ID3)

    @property
    def closed(self) -> bool:
        return self._audio is None

    def read(self) -> Dict[str, Any]:
        """Read the tag fields used by the resolver"""
        audio = self._require_open()
        disc, disc_count = self._split_number(self._first('discnumber'))
        track, track_count = self._split_number(self._first('tracknumber'))
        length = getattr(audio.info, 'length', None) if audio.info else None

        return {
            'title': self._first('title'),
            'performers': self._values('artist'),
            'album_artists': self._values('albumartist'),
            'album': self._first('album'),
            'composers': self._values('composer'),
            'genres': self._values('genre'),
            'disc': disc,
            'track': track,
            'disc_count': disc_count,
            'track_count': track_count,
            'year': self._first('date'),
            'comment': self._first('comment'),
            'lyrics': self._first('lyrics'),
            'duration_ms': int(length * 1000) if length else None,
        }

    def write(self, fields: Dict[str, Any]) -> List[str]:
        """
        Write tag fields and save the file.

        Returns the canonical field names the container could not store.
        """
        audio = self._require_open()
        if audio.tags is None:
            try:
                audio.add_tags()
            except mutagen.MutagenError:
                pass

        unsupported = []
        for name, value in fields.items():
            if value is None:
                continue
            if name in NUMBER_FIELDS:
                continue
            key = FIELD_KEYS.get(name)
            if key is None:
                unsupported.append(name)
                continue
            values = [str(v) for v in value] if name in LIST_FIELDS else [str(value)]
            try:
                self._set(key, values)
            except (KeyError, ValueError, TypeError):
                unsupported.append(name)

        for number_key, total_key, tag_key in (('disc', 'disc_count', 'discnumber'),
                                               ('track', 'track_count', 'tracknumber')):
            number = fields.get(number_key)
            if number is None:
                continue
            total = fields.get(total_key)
            try:
                self._set(tag_key, [f"{number}/{total}" if total else str(number)])
            except (KeyError, ValueError, TypeError):
                unsupported.append(number_key)

        try:
            audio.save()
        except OSError as e:
            if is_lock_error(e):
                raise FolderLockedError(self.path, f"File is in use: {self.path}") from e
            raise
        return unsupported

    def dispose(self) -> None:
        """Release the underlying file object"""
        self._audio = None

    def __enter__(self) -> "TagHandle":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.dispose()

    def _require_open(self):
        if self._audio is None:
            raise ResolverError(f"Tag handle already released: {self.path}")
        return self._audio

    def _values(self, key: str) -> List[str]:
        audio = self._require_open()
        if self._id3:
            frame = ID3_FRAMES.get(key)
            if frame is None or audio.tags is None:
                return []
            raw = [v for f in audio.tags.getall(frame.__name__) for v in f.text]
        else:
            try:
                raw = audio.get(key) or []
            except (KeyError, ValueError):
                return []
        if not isinstance(raw, list):
            raw = [raw]
        return [str(v) for v in raw if v not in (None, '')]

    def _first(self, key: str) -> Optional[str]:
        values = self._values(key)
        return values[0] if values else None

    def _set(self, key: str, values: List[str]) -> None:
        audio = self._audio
        if not self._id3:
            audio[key] = values
            return
        frame = ID3_FRAMES.get(key)
        if frame is None or audio.tags is None:
            raise KeyError(key)
        audio.tags.setall(frame.__name__, [frame(encoding=3, text=values)])

    @staticmethod
    def _split_number(value: Optional[str]):
        """Parse "3/12" into (3, 12)"""
        if not value:
            return None, None
        head, _, tail = str(value).partition('/')
        try:
            number = int(head)
        except ValueError:
            number = None
        try:
            total = int(tail) if tail else None
        except ValueError:
            total = None
        return number, total


def open_tags(path: str) -> TagHandle:
    """Tag-library collaborator entry point"""
    return TagHandle(path)


TagOpener = Callable[[str], Any]


@dataclass
class AudioFileRecord:
    """One local audio file and the tag values last read from disk"""
    path: str
    title: Optional[str] = None
    disc_number: Optional[int] = None
    track_number: Optional[int] = None
    duration_ms: Optional[int] = None
    artist: Optional[str] = None
    album_artist: Optional[str] = None
    album: Optional[str] = None
    year: Optional[str] = None
    fs_index: int = 0
    _handle: Optional[Any] = field(default=None, repr=False, compare=False)

    @property
    def filename(self) -> str:
        return Path(self.path).name

    @property
    def stem(self) -> str:
        return Path(self.path).stem

    @property
    def is_open(self) -> bool:
        return self._handle is not None

    @contextmanager
    def tags(self, opener: TagOpener = open_tags) -> Iterator[Any]:
        """
        Scoped tag handle. Only one handle per record may be open at a time;
        it is released on every exit path.
        """
        if self._handle is not None:
            raise ResolverError(f"Tag handle already open: {self.path}")
        self._handle = opener(self.path)
        try:
            yield self._handle
        finally:
            self.close()

    def close(self) -> None:
        if self._handle is not None:
            handle, self._handle = self._handle, None
            handle.dispose()

    def apply(self, values: Dict[str, Any]) -> None:
        """Copy values read from a tag handle onto the record"""
        self.title = values.get('title')
        self.disc_number = values.get('disc')
        self.track_number = values.get('track')
        self.duration_ms = values.get('duration_ms')
        performers = values.get('performers') or []
        album_artists = values.get('album_artists') or []
        self.artist = performers[0] if performers else None
        self.album_artist = album_artists[0] if album_artists else None
        self.album = values.get('album')
        self.year = values.get('year')

    def reload(self, opener: TagOpener = open_tags) -> None:
        """Drop any open handle and re-read the file"""
        self.close()
        with self.tags(opener) as handle:
            self.apply(handle.read())


class AudioFileScanner(BaseAgent):
    """
    Scanner agent for one album folder.

    Records come back in raw directory-enumeration order; display_order()
    gives the name-sorted order used for positional matching.
    """

    AUDIO_EXTENSIONS = {'.mp3', '.flac', '.m4a', '.mp4', '.ogg', '.opus',
                        '.wav', '.wma', '.aac', '.aiff', '.aif'}

    def __init__(self, config=None, tag_opener: TagOpener = open_tags):
        super().__init__(config)
        self.tag_opener = tag_opener

    @property
    def name(self) -> str:
        return "Scanner"

    def scan(self, album_path: str) -> List[AudioFileRecord]:
        """
        Scan a single album directory.

        Args:
            album_path: Path to album folder

        Returns:
            Readable audio files in enumeration order
        """
        records = []
        for audio_file in self.find_audio_files(Path(album_path)):
            record = self.load(audio_file)
            if record is not None:
                record.fs_index = len(records)
                records.append(record)
        return records

    def find_audio_files(self, path: Path) -> List[Path]:
        """Audio files under path, folder by folder, without sorting"""
        files = []
        for root, _dirs, filenames in os.walk(path):
            for filename in filenames:
                if Path(filename).suffix.lower() in self.AUDIO_EXTENSIONS:
                    files.append(Path(root) / filename)
        return files

    def has_audio(self, path: Path) -> bool:
        """Check if directory directly contains audio files"""
        try:
            return any(item.is_file() and item.suffix.lower() in self.AUDIO_EXTENSIONS
                       for item in path.iterdir())
        except OSError:
            return False

    def load(self, path) -> Optional[AudioFileRecord]:
        """Read one file; unreadable files are skipped with a warning"""
        record = AudioFileRecord(path=str(path))
        try:
            record.reload(self.tag_opener)
        except (UnsupportedAudioError, mutagen.MutagenError, OSError) as e:
            self.log_warning(f"Skipping {Path(path).name}: {e}")
            return None
        return record

    def refresh(self, records: List[AudioFileRecord]) -> List[AudioFileRecord]:
        """Close and re-read each record; files that vanished are dropped"""
        refreshed = []
        for record in records:
            try:
                record.reload(self.tag_opener)
                refreshed.append(record)
            except (UnsupportedAudioError, mutagen.MutagenError, OSError) as e:
                self.log_warning(f"Dropping {record.filename}: {e}")
        return refreshed

    def release(self, records: List[AudioFileRecord]) -> None:
        """Release every open handle (required before moving the folder)"""
        for record in records:
            record.close()

    @staticmethod
    def display_order(records: List[AudioFileRecord]) -> List[AudioFileRecord]:
        """Name-sorted order (natural sort on the full path)"""
        return sorted(records, key=lambda r: natural_key(r.path))

    @staticmethod
    def summarize(records: List[AudioFileRecord]) -> Dict[str, Optional[str]]:
        """Most common artist/album/year across the files"""
        def most_common(values):
            values = [v for v in values if v]
            return Counter(values).most_common(1)[0][0] if values else None

        return {
            'artist': most_common(r.album_artist or r.artist for r in records),
            'album': most_common(r.album for r in records),
            'year': most_common((r.year or '')[:4] for r in records),
        }
