#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Operator console.

ask() is the only place the resolver waits on the operator. Everything
else here renders candidate pages, the pair table and help text.
"""

from typing import Callable, List, Optional, Sequence

from agents.aligner import PairedTrack
from sources.base import ProviderAlbum, ProviderArtist, ProviderTrack

from .state import AlbumJob, Stage


SEARCH_HELP = """Commands:
  N            select candidate N (empty = 1)
  id:<value>   look up by provider id
  > / <        next / previous page
  /mb /sp /dg /it   switch provider
  /mode        toggle quick / artist-first search
  aa:<name>    set album artist override (aa: clears)
  x / xip      skip this album
  <text>       search again with new terms"""

ALBUM_HELP = """  b / pr       back to artist list
  c            combine albums sharing the first candidate's title
  c <range>    combine the listed candidates"""

TRACK_HELP = """Commands:
  o d t n l h f   re-pair by order / duration / track# / name / title / hybrid / filesystem
  m            manual pass (<pair>=<track>, empty line ends)
  <p>=<t>      give pair p remote track t;  u <p> unassigns
  r            reverse columns
  st <range>   save selected pairs (e.g. st 1-3,5)
  sa           save all and rename folder
  rn           rename folder only
  w            toggle preview (no writes)
  rm           review mode (marked pairs, or all)
  mk <range>   toggle review mark
  b / pr       back to album list
  x / xip      skip this album"""


def _duration(ms: Optional[int]) -> str:
    if ms is None:
        return "--:--"
    seconds = int(round(ms / 1000))
    return f"{seconds // 60}:{seconds % 60:02d}"


def _cut(text: Optional[str], width: int) -> str:
    text = text or ""
    return text if len(text) <= width else text[:width - 1] + "~"


class Console:
    """Line-oriented prompt/render surface"""

    def __init__(self, input_func: Callable[[str], str] = input,
                 output_func: Callable[[str], None] = print):
        self.input_func = input_func
        self.output_func = output_func

    def ask(self, prompt: str) -> str:
        """Read one token. EOFError propagates to the caller."""
        return self.input_func(f"{prompt}> ").strip()

    def show(self, text: str = "") -> None:
        self.output_func(text)

    def warn(self, message: str) -> None:
        self.output_func(f"[Resolver] WARNING: {message}")

    def confirm_retry(self, message: str) -> bool:
        """Ask retry-or-skip after a lock error"""
        self.show(message)
        while True:
            choice = self.ask("[r]etry / [s]kip").lower()
            if choice in ('r', 'retry', ''):
                return True
            if choice in ('s', 'skip'):
                return False
            self.show("Invalid choice. Use r/s")

    # ==================== Headers ====================

    def show_job(self, job: AlbumJob) -> None:
        override = f"  [album artist: {job.album_artist_override}]" if job.album_artist_override else ""
        preview = "  [PREVIEW]" if job.preview else ""
        self.show()
        self.show(f"=== {job.artist} - {job.album} ({job.year or '????'}) ===")
        self.show(f"Path: {job.path}")
        self.show(f"Files: {len(job.audio_files)}  Provider: {job.provider}  "
                  f"Mode: {job.find_mode.value}{override}{preview}")

    def show_help(self, stage: Stage) -> None:
        if stage is Stage.TRACK:
            self.show(TRACK_HELP)
            return
        self.show(SEARCH_HELP)
        if stage is Stage.ALBUM:
            self.show(ALBUM_HELP)

    # ==================== Candidate pages ====================

    def show_artists(self, artists: Sequence[ProviderArtist], page: int, page_size: int) -> None:
        start, end = self._page_bounds(len(artists), page, page_size)
        self.show(f"Artists {start + 1}-{end} of {len(artists)}:")
        for i in range(start, end):
            artist = artists[i]
            extra = ", ".join(v for v in (artist.country, artist.disambiguation) if v)
            self.show(f"  {i + 1:3d}. {artist.name}" + (f"  ({extra})" if extra else ""))

    def show_albums(self, albums: Sequence[ProviderAlbum], page: int, page_size: int) -> None:
        start, end = self._page_bounds(len(albums), page, page_size)
        self.show(f"Albums {start + 1}-{end} of {len(albums)}:")
        for i in range(start, end):
            album = albums[i]
            tracks = f"{album.track_count} tracks" if album.track_count else "? tracks"
            self.show(f"  {i + 1:3d}. {album.artist} - {album.name} "
                      f"[{album.year or '????'}] ({tracks})")

    def show_no_candidates(self, what: str, provider: str, query: str) -> None:
        self.show(f"No {what} found on {provider} for '{query}'.")
        self.show("  r = retry, /mb /sp /dg /it = switch provider, x = skip, or type a new search")

    @staticmethod
    def _page_bounds(total: int, page: int, page_size: int):
        start = max(page, 0) * page_size
        return start, min(start + page_size, total)

    # ==================== Pair table ====================

    def show_pairs(self, job: AlbumJob) -> None:
        self.show(f"Album: {job.album_artist} - "
                  f"{job.selected_album.name if job.selected_album else job.album}  "
                  f"Strategy: {job.strategy.value}")
        if not job.pairs:
            self.show("  (nothing left to save)")
            return
        for i, pair in enumerate(job.pairs, 1):
            self.show(self.format_pair(i, pair, job.reverse_columns))

    def format_pair(self, index: int, pair: PairedTrack, reverse: bool = False) -> str:
        if pair.audio_file is not None:
            local = f"{_cut(pair.audio_file.filename, 40):40s} {_duration(pair.audio_file.duration_ms):>6s}"
        else:
            local = f"{'(no file)':40s} {'':>6s}"
        if pair.track is not None:
            number = f"{pair.track.disc_number}-{pair.track.track_number or '?'}"
            remote = f"{number:>5s} {_cut(pair.track.name, 36):36s} {_duration(pair.track.duration_ms):>6s}"
        else:
            remote = f"{'':>5s} {'(no track)':36s} {'':>6s}"

        left, right = (remote, local) if reverse else (local, remote)
        mark = "*" if pair.marked else " "
        return f"{mark}{index:3d}. {left} | {right} | {pair.confidence}"

    def show_remote_tracks(self, tracks: List[ProviderTrack]) -> None:
        for j, track in enumerate(tracks, 1):
            self.show(f"  #{j:<3d} {track.disc_number}-{track.track_number or '?'} "
                      f"{_cut(track.name, 50)} {_duration(track.duration_ms)}")
