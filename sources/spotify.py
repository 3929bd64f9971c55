#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Spotify Web API adapter.
Largest catalog, good for popular releases.

API Documentation:
https://developer.spotify.com/documentation/web-api

Rate Limits: ~180 requests per minute (with backoff)
"""

import os
from typing import Any, Dict, List, Optional

import spotipy
from spotipy.oauth2 import SpotifyClientCredentials

from orchestrator.errors import ConfigurationError
from .base import DataSource, ProviderAlbum, ProviderArtist, ProviderTrack


class SpotifySource(DataSource):
    """
    Spotify Web API data source.

    Requires client_id and client_secret from Spotify Developer Dashboard.
    """

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        rate_limit: float = 0.5,
        client: Optional[Any] = None
    ):
        """
        Initialize Spotify source.

        Args:
            client_id: Spotify API client ID (or SPOTIFY_CLIENT_ID env var)
            client_secret: Spotify API client secret (or SPOTIFY_CLIENT_SECRET env var)
            rate_limit: Seconds between requests (0.5 = ~120 req/min)
            client: Prebuilt spotipy client (skips credential lookup)
        """
        super().__init__(rate_limit)

        if client is not None:
            self.spotify = client
            return

        self.client_id = client_id or os.environ.get("SPOTIFY_CLIENT_ID")
        self.client_secret = client_secret or os.environ.get("SPOTIFY_CLIENT_SECRET")

        if not self.client_id or not self.client_secret:
            raise ConfigurationError(
                "Spotify credentials required. Set SPOTIFY_CLIENT_ID and "
                "SPOTIFY_CLIENT_SECRET environment variables or add them to credentials.yaml."
            )

        auth_manager = SpotifyClientCredentials(
            client_id=self.client_id,
            client_secret=self.client_secret
        )
        self.spotify = spotipy.Spotify(auth_manager=auth_manager)

    @property
    def name(self) -> str:
        return "spotify"

    def search_artist(self, query: str) -> List[ProviderArtist]:
        self._rate_limit_wait()
        try:
            results = self.spotify.search(q=f'artist:"{query}"', type="artist", limit=20)
        except Exception as e:
            self.log(f"Artist search error: {e}")
            return []

        return [
            self._map_artist(item)
            for item in (results or {}).get("artists", {}).get("items", [])
            if item and item.get("id")
        ]

    def get_artist(self, artist_id: str) -> Optional[ProviderArtist]:
        self._rate_limit_wait()
        try:
            artist = self.spotify.artist(artist_id)
        except Exception as e:
            self.log(f"Artist lookup error: {e}")
            return None
        return self._map_artist(artist) if artist and artist.get("id") else None

    def search_album(self, artist: str, album: str) -> List[ProviderAlbum]:
        self._rate_limit_wait()

        clean_title = self._clean_title(album)
        if artist and artist.lower() != "various artists":
            query = f'album:"{clean_title}" artist:"{artist}"'
        else:
            query = f'album:"{clean_title}"'

        try:
            results = self.spotify.search(q=query, type="album", limit=20)
        except Exception as e:
            self.log(f"Search error: {e}")
            return []

        return [
            self._map_album(item)
            for item in (results or {}).get("albums", {}).get("items", [])
            if item and item.get("id")
        ]

    def get_album(self, album_id: str) -> Optional[ProviderAlbum]:
        self._rate_limit_wait()
        try:
            album = self.spotify.album(album_id)
        except Exception as e:
            self.log(f"Album lookup error: {e}")
            return None
        return self._map_album(album) if album and album.get("id") else None

    def get_tracks(self, album_id: str) -> List[ProviderTrack]:
        """Fetch every page of the album's track list"""
        self._rate_limit_wait()
        tracks: List[ProviderTrack] = []
        try:
            page = self.spotify.album_tracks(album_id, limit=50)
            while page:
                for item in page.get("items", []):
                    tracks.append(self._map_track(item))
                page = self.spotify.next(page) if page.get("next") else None
        except Exception as e:
            self.log(f"Track list error: {e}")
            return []

        return sorted(tracks, key=lambda t: (t.disc_number or 1, t.track_number or 0))

    def _map_artist(self, item: Dict[str, Any]) -> ProviderArtist:
        return ProviderArtist(id=item["id"], name=item.get("name", ""), provider=self.name)

    def _map_album(self, item: Dict[str, Any]) -> ProviderAlbum:
        artists = item.get("artists", [])
        images = item.get("images", [])
        return ProviderAlbum(
            id=item["id"],
            name=item.get("name", ""),
            provider=self.name,
            artist=artists[0].get("name", "Unknown") if artists else "Various Artists",
            release_date=item.get("release_date"),
            cover_url=images[0].get("url") if images else None,
            track_count=item.get("total_tracks", 0) or 0
        )

    def _map_track(self, item: Dict[str, Any]) -> ProviderTrack:
        artists = item.get("artists", [])
        return ProviderTrack(
            id=item.get("id", ""),
            name=item.get("name", ""),
            provider=self.name,
            disc_number=item.get("disc_number", 1),
            track_number=item.get("track_number"),
            duration_ms=item.get("duration_ms"),
            artist=", ".join(a.get("name", "") for a in artists) or None
        )
