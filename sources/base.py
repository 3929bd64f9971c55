#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Base class for metadata providers.
All providers (MusicBrainz, Spotify, Discogs, iTunes) inherit from this
and map their payloads into the records defined here.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional, Tuple
import time

from utilities.naming import clean_title, extract_year


@dataclass(frozen=True)
class ProviderArtist:
    """Artist as returned by a provider"""
    id: str
    name: str
    provider: str
    country: Optional[str] = None
    disambiguation: Optional[str] = None


@dataclass(frozen=True)
class ProviderTrack:
    """Track as returned by a provider"""
    id: str
    name: str
    provider: str
    disc_number: Optional[int] = 1
    track_number: Optional[int] = None
    duration_ms: Optional[int] = None
    artist: Optional[str] = None


@dataclass(frozen=True)
class ProviderAlbum:
    """
    Album (release) as returned by a provider.

    A combined album is a synthetic release merging the track lists of
    several same-titled releases; it carries the merged tracks itself.
    """
    id: str
    name: str
    provider: str
    artist: Optional[str] = None
    release_date: Optional[str] = None
    cover_url: Optional[str] = None
    track_count: int = 0
    is_combined: bool = False
    tracks: Tuple[ProviderTrack, ...] = field(default_factory=tuple)
    album_names: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def year(self) -> Optional[str]:
        return extract_year(self.release_date)


class DataSource(ABC):
    """
    Abstract base class for metadata providers.

    Every call degrades to an empty result on failure: providers never raise
    into the stage machine.
    """

    def __init__(self, rate_limit: float = 1.0):
        """
        Initialize data source with rate limiting.

        Args:
            rate_limit: Minimum seconds between requests
        """
        self.rate_limit = rate_limit
        self._last_request: float = 0

    @property
    @abstractmethod
    def name(self) -> str:
        """Source name identifier"""
        pass

    @abstractmethod
    def search_artist(self, query: str) -> List[ProviderArtist]:
        """Search artists by name."""
        pass

    @abstractmethod
    def get_artist(self, artist_id: str) -> Optional[ProviderArtist]:
        """Look up one artist by provider id."""
        pass

    @abstractmethod
    def search_album(self, artist: str, album: str) -> List[ProviderAlbum]:
        """
        Search for albums by artist and title.

        Args:
            artist: Artist name (may be empty)
            album: Album title

        Returns:
            List of matching albums, best first
        """
        pass

    @abstractmethod
    def get_album(self, album_id: str) -> Optional[ProviderAlbum]:
        """Look up one album by provider id (no tracks needed)."""
        pass

    @abstractmethod
    def get_tracks(self, album_id: str) -> List[ProviderTrack]:
        """
        Get the track list of an album.

        Args:
            album_id: Provider-specific album/release ID

        Returns:
            Tracks in provider order (disc, then position)
        """
        pass

    def _rate_limit_wait(self) -> None:
        """Wait if necessary to respect rate limits"""
        if self._last_request > 0:
            elapsed = time.time() - self._last_request
            if elapsed < self.rate_limit:
                time.sleep(self.rate_limit - elapsed)
        self._last_request = time.time()

    def _clean_title(self, title: str) -> str:
        return clean_title(title or "")

    @staticmethod
    def _parse_duration(duration: Optional[str]) -> Optional[int]:
        """Parse 'M:SS' / 'H:MM:SS' into milliseconds"""
        if not duration:
            return None
        try:
            seconds = 0
            for part in str(duration).strip().split(":"):
                seconds = seconds * 60 + int(part)
            return seconds * 1000
        except ValueError:
            return None

    @staticmethod
    def _to_int(value, default: Optional[int] = None) -> Optional[int]:
        try:
            return int(value)
        except (TypeError, ValueError):
            return default

    def log(self, message: str) -> None:
        """Log a message"""
        print(f"[{self.name}] {message}")

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(rate_limit={self.rate_limit})"
