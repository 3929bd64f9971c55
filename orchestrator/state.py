#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Per-album working state.

One AlbumJob exists per album folder while the stage machine works on it.
It owns every value that has to survive a stage transition, including the
ResolutionCache used for "back" navigation.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional

from agents.aligner import PairedTrack, Strategy
from agents.scanner import AudioFileRecord
from sources.base import ProviderAlbum, ProviderArtist, ProviderTrack
from utilities.naming import parse_folder_name


class Stage(Enum):
    """Workflow position"""
    QUICK = "quick"
    ARTIST = "artist"
    ALBUM = "album"
    TRACK = "track"
    DONE = "done"
    SKIPPED = "skipped"

    @property
    def terminal(self) -> bool:
        return self in (Stage.DONE, Stage.SKIPPED)


class FindMode(Enum):
    QUICK = "quick"
    ARTIST_FIRST = "artist-first"

    @property
    def entry_stage(self) -> Stage:
        return Stage.QUICK if self is FindMode.QUICK else Stage.ARTIST

    @classmethod
    def parse(cls, value: str) -> "FindMode":
        value = (value or "").strip().lower().replace("_", "-")
        for mode in cls:
            if mode.value == value:
                return mode
        if value in ("artist", "artistfirst"):
            return cls.ARTIST_FIRST
        raise ValueError(f"Unknown find mode: {value}")


@dataclass
class ResolutionCache:
    """Last candidate lists and pages, reused when the operator goes back"""
    provider: Optional[str] = None
    artists: List[ProviderArtist] = field(default_factory=list)
    albums: List[ProviderAlbum] = field(default_factory=list)
    artist_page: int = 0
    album_page: int = 0
    provider_artist_id: Optional[str] = None
    # Search terms the cached lists were fetched with
    artist_query: Optional[str] = None
    album_query: Optional[str] = None

    def matches(self, provider: str) -> bool:
        return self.provider == provider

    def store_artists(self, provider: str, query: str, artists: List[ProviderArtist]) -> None:
        self.provider = provider
        self.artist_query = query
        self.artists = list(artists)
        self.artist_page = 0

    def store_albums(self, provider: str, query: str, albums: List[ProviderAlbum]) -> None:
        self.provider = provider
        self.album_query = query
        self.albums = list(albums)
        self.album_page = 0

    def clear(self) -> None:
        self.provider = None
        self.artists = []
        self.albums = []
        self.artist_page = 0
        self.album_page = 0
        self.provider_artist_id = None
        self.artist_query = None
        self.album_query = None


@dataclass
class AlbumJob:
    """Everything the stage machine knows about one album folder"""
    path: str
    artist: str
    album: str
    year: Optional[str] = None
    track_count: int = 0
    provider: str = "musicbrainz"
    find_mode: FindMode = FindMode.QUICK
    stage: Stage = Stage.QUICK
    album_artist_override: Optional[str] = None
    cache: ResolutionCache = field(default_factory=ResolutionCache)

    # Stage C working set
    audio_files: List[AudioFileRecord] = field(default_factory=list)
    remote_tracks: List[ProviderTrack] = field(default_factory=list)
    # Full track list of the selected album (remote_tracks shrinks as pairs are saved)
    album_tracks: List[ProviderTrack] = field(default_factory=list)
    pairs: List[PairedTrack] = field(default_factory=list)
    strategy: Strategy = Strategy.ORDER
    reverse_columns: bool = False
    preview: bool = False
    selected_artist: Optional[ProviderArtist] = None
    selected_album: Optional[ProviderAlbum] = None
    # Stage C was reached from QUICK (back goes there instead of ALBUM)
    via_quick: bool = False
    saved_count: int = 0

    @classmethod
    def from_folder(cls, path: str, audio_files: List[AudioFileRecord],
                    tag_summary: Optional[dict] = None, **kwargs) -> "AlbumJob":
        """
        Derive artist/album/year from the folder layout
        (<Artist>/<Year - Album>), falling back to the most common tags.
        """
        folder = Path(path)
        tag_summary = tag_summary or {}
        year, album = parse_folder_name(folder.name)
        artist_folder = folder.parent.name if folder.parent != folder else ""

        artist = tag_summary.get('artist') or artist_folder or ""
        return cls(
            path=str(folder),
            artist=artist,
            album=album or tag_summary.get('album') or folder.name,
            year=year or tag_summary.get('year'),
            track_count=len(audio_files),
            audio_files=list(audio_files),
            **kwargs
        )

    @property
    def entry_stage(self) -> Stage:
        return self.find_mode.entry_stage

    @property
    def album_artist(self) -> str:
        """Album artist written to tags and used for the folder name"""
        if self.album_artist_override:
            return self.album_artist_override
        if self.selected_album and self.selected_album.artist:
            return self.selected_album.artist
        if self.selected_artist:
            return self.selected_artist.name
        return self.artist

    def reset_track_stage(self) -> None:
        self.remote_tracks = []
        self.album_tracks = []
        self.pairs = []
        self.selected_album = None
