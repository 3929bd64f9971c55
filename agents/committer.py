#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Committer Agent - Writes resolved tags and relocates the album folder.

Responsibilities:
- Build the tag set for a (local file, remote track) pair
- Save selected pairs or every complete pair, removing saved pairs
  from the working queue
- Rename/move the album folder to <Artist>/<Year - Album>
- Retry-or-skip when a file or the folder is locked
- Preview mode: report what would change, write nothing
"""

from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import mutagen

from orchestrator.commands import parse_range
from orchestrator.errors import FolderLockedError, ResolverError
from sources.base import ProviderTrack
from utilities.folder_mover import FolderMover, MoveResult

from .aligner import PairedTrack
from .base import BaseAgent
from .scanner import AudioFileRecord, AudioFileScanner


SKIP_NO_AUDIO = "NoAudio"
SKIP_NO_TRACK = "NoTrack"


@dataclass
class SaveResult:
    """Outcome of one save command (indices are 1-based pair positions)"""
    saved: List[int] = field(default_factory=list)
    failed: List[Tuple[int, str]] = field(default_factory=list)
    skipped: List[Tuple[int, str]] = field(default_factory=list)
    remaining: List[PairedTrack] = field(default_factory=list)
    audio_files: List[AudioFileRecord] = field(default_factory=list)
    remote_tracks: List[ProviderTrack] = field(default_factory=list)
    move: Optional[MoveResult] = None


class CommitEngine(BaseAgent):
    """
    Committer agent.

    Mutates the job only through the values it returns (save_*) or, for
    rename_folder, by pointing the job and its records at the new folder.
    """

    def __init__(
        self,
        config=None,
        scanner: Optional[AudioFileScanner] = None,
        mover: Optional[FolderMover] = None,
        confirm_retry: Optional[Callable[[str], bool]] = None
    ):
        """
        Args:
            config: ConfigManager instance
            scanner: Scanner used to re-read files after writes and moves
            mover: Folder-move collaborator
            confirm_retry: Asked after a lock error; True retries
        """
        super().__init__(config)
        self.scanner = scanner or AudioFileScanner(config)
        self.mover = mover or FolderMover(
            root=self.get_config('library.root'),
            folder_format=self.get_config('naming.folder_format', '{year} - {album}'),
            colon_replacement=self.get_config('naming.replace_colon_with', ' -'),
            max_path_length=self.get_config('naming.max_path_length', 250)
        )
        self.confirm_retry = confirm_retry
        self.max_attempts = max(1, int(self.get_config('commit.max_move_attempts', 10)))

    @property
    def name(self) -> str:
        return "Committer"

    # ==================== Tags ====================

    @staticmethod
    def build_tags(
        artist: str,
        album: str,
        track: ProviderTrack,
        album_artist_override: Optional[str] = None,
        disc_count: Optional[int] = None,
        track_count: Optional[int] = None,
        year: Optional[str] = None
    ) -> Dict[str, Any]:
        """Field dict for TagHandle.write()"""
        album_artist = album_artist_override or artist
        return {
            'title': track.name,
            'performers': [track.artist or album_artist],
            'album_artists': [album_artist],
            'album': album,
            'year': year,
            'disc': track.disc_number,
            'disc_count': disc_count,
            'track': track.track_number,
            'track_count': track_count,
        }

    def tags_for(self, job, track: ProviderTrack) -> Dict[str, Any]:
        """Tag set for one remote track of the job's selected album"""
        tracks = job.album_tracks or job.remote_tracks
        per_disc = Counter(t.disc_number or 1 for t in tracks)
        album = job.selected_album
        return self.build_tags(
            artist=album.artist if album and album.artist else job.artist,
            album=album.name if album else job.album,
            track=track,
            album_artist_override=job.album_artist,
            disc_count=max(per_disc) if per_disc else None,
            track_count=per_disc.get(track.disc_number or 1) or None,
            year=(album.year if album else None) or job.year
        )

    # ==================== Saving ====================

    def save_selected(self, job, range_text: str) -> SaveResult:
        """
        Save the pairs named by a 1-based range ("2-3", "1,4", "all").

        Saved pairs and pairs without a local file leave the queue; failed
        pairs and pairs without a remote track stay.

        Raises:
            CommandError: the range does not parse against the current list
        """
        indices = parse_range(range_text, len(job.pairs))
        return self._save(job, indices, drop_no_audio=True)

    def save_all(self, job) -> SaveResult:
        """Save every complete pair, then rename/move the folder"""
        indices = [i for i, pair in enumerate(job.pairs) if pair.is_complete]
        result = self._save(job, indices, drop_no_audio=False)
        if not job.preview:
            job.pairs = result.remaining
            job.audio_files = result.audio_files
            job.remote_tracks = result.remote_tracks
        result.move = self.rename_folder(job)
        result.remaining = list(job.pairs)
        result.audio_files = list(job.audio_files)
        return result

    def _save(self, job, indices: List[int], drop_no_audio: bool) -> SaveResult:
        result = SaveResult()
        removed = set()

        for i in indices:
            pair = job.pairs[i]
            position = i + 1
            if pair.audio_file is None:
                result.skipped.append((position, SKIP_NO_AUDIO))
                if drop_no_audio:
                    removed.add(i)
                continue
            if pair.track is None:
                result.skipped.append((position, SKIP_NO_TRACK))
                continue

            fields = self.tags_for(job, pair.track)
            if job.preview:
                self.log(f"[PREVIEW] {pair.audio_file.filename}: "
                         f"{fields['disc']}-{fields['track']} {fields['title']}")
                continue

            try:
                self.write_tags(pair.audio_file, fields)
            except (ResolverError, mutagen.MutagenError, OSError, TypeError, ValueError, KeyError) as e:
                self.log_error(f"{pair.audio_file.filename}: {e}")
                result.failed.append((position, str(e)))
                continue

            self.log(f"Saved {pair.audio_file.filename} -> {pair.track.name}")
            result.saved.append(position)
            removed.add(i)

        saved_files = {id(job.pairs[i - 1].audio_file) for i in result.saved}
        dropped_tracks = {id(job.pairs[i].track) for i in removed if job.pairs[i].track is not None}

        result.remaining = [p for i, p in enumerate(job.pairs) if i not in removed]
        result.audio_files = [r for r in job.audio_files if id(r) not in saved_files]
        result.remote_tracks = [t for t in job.remote_tracks if id(t) not in dropped_tracks]
        job.saved_count += len(result.saved)

        if result.skipped:
            self.log(f"Skipped: {', '.join(f'{n} ({why})' for n, why in result.skipped)}")
        if not job.preview:
            self.log(f"Saved {len(result.saved)}, failed {len(result.failed)}, "
                     f"{len(result.remaining)} left")
        return result

    def write_tags(self, record: AudioFileRecord, fields: Dict[str, Any]) -> None:
        """
        Write through a scoped handle, then re-read the record.

        Raises:
            FolderLockedError: still locked after the operator gave up
        """
        attempts = 0
        while True:
            try:
                with record.tags(self.scanner.tag_opener) as handle:
                    unsupported = handle.write(fields)
                break
            except FolderLockedError as e:
                attempts += 1
                if not self._should_retry(attempts, str(e)):
                    raise
        if unsupported:
            self.log_warning(f"{record.filename}: container cannot store {', '.join(unsupported)}")
        record.reload(self.scanner.tag_opener)

    def _should_retry(self, attempts: int, message: str) -> bool:
        if attempts >= self.max_attempts:
            self.log_warning(f"Giving up after {attempts} attempts: {message}")
            return False
        if self.confirm_retry is None:
            return False
        return self.confirm_retry(f"{message} (attempt {attempts}/{self.max_attempts})")

    # ==================== Folder ====================

    def rename_folder(self, job) -> MoveResult:
        """
        Move the album folder to its canonical location.

        Every handle is released first. After a real move the folder is
        re-scanned and the job's records and pairs point at the new files.
        """
        album = job.selected_album
        artist = job.album_artist
        year = (album.year if album else None) or job.year
        album_name = album.name if album else job.album
        target = self.mover.target_path(job.path, artist, year, album_name)

        if job.preview:
            self.log(f"[PREVIEW] Would move {job.path} -> {target}")
            return MoveResult(True, job.path, moved=False, message="preview")

        self.scanner.release(job.audio_files)
        for pair in job.pairs:
            if pair.audio_file is not None:
                pair.audio_file.close()

        attempts = 0
        while True:
            try:
                result = self.mover.move(job.path, artist, year, album_name)
                break
            except FolderLockedError as e:
                attempts += 1
                self.log_warning(str(e))
                if not self._should_retry(attempts, str(e)):
                    return MoveResult(False, job.path, message=f"Skipped: {e}")
            except (ResolverError, OSError) as e:
                self.log_error(f"Move failed: {e}")
                return MoveResult(False, job.path, message=str(e))

        if not result.success:
            self.log_warning(result.message)
            return result
        if not result.moved:
            self.log(result.message)
            return result

        self.log(result.message)
        self._relocate(job, result.new_album_path)
        job.album = album_name
        job.year = year
        return result

    def _relocate(self, job, new_path: str) -> None:
        """Point records and pairs at the files under new_path"""
        old_root = Path(job.path)
        fresh = self.scanner.display_order(self.scanner.scan(new_path))
        by_relative = {}
        for record in fresh:
            by_relative[Path(record.path).relative_to(new_path).as_posix()] = record

        def remap(record: AudioFileRecord, position: int) -> AudioFileRecord:
            try:
                relative = Path(record.path).relative_to(old_root).as_posix()
            except ValueError:
                relative = None
            if relative in by_relative:
                return by_relative[relative]
            # Fall back to position in display order
            return fresh[position] if position < len(fresh) else record

        ordered = self.scanner.display_order(job.audio_files)
        mapping = {id(r): remap(r, i) for i, r in enumerate(ordered)}
        for pair in job.pairs:
            if pair.audio_file is not None and id(pair.audio_file) not in mapping:
                mapping[id(pair.audio_file)] = remap(pair.audio_file, len(mapping))

        job.audio_files = [mapping[id(r)] for r in job.audio_files]
        for pair in job.pairs:
            if pair.audio_file is not None:
                pair.audio_file = mapping[id(pair.audio_file)]
        job.path = new_path
