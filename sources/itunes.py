#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
iTunes Search API adapter.
Free, no authentication required.

API Documentation:
https://developer.apple.com/library/archive/documentation/AudioVideo/Conceptual/iTuneSearchAPI/

Rate Limits: ~20 requests per minute recommended
"""

import requests
from typing import Any, Dict, List, Optional
from .base import DataSource, ProviderAlbum, ProviderArtist, ProviderTrack


class iTunesSource(DataSource):
    """
    iTunes Search API data source.

    Provides album metadata and cover art URLs.
    No authentication required.
    """

    BASE_URL = "https://itunes.apple.com"

    def __init__(self, country: str = "us", rate_limit: float = 3.0):
        """
        Initialize iTunes source.

        Args:
            country: Two-letter country code for regional content
            rate_limit: Seconds between requests (3.0 = 20/min)
        """
        super().__init__(rate_limit)
        self.country = country

    @property
    def name(self) -> str:
        return "itunes"

    def _get(self, path: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        self._rate_limit_wait()
        params = dict(params, country=self.country)
        try:
            response = requests.get(f"{self.BASE_URL}/{path}", params=params, timeout=30)
            response.raise_for_status()
            return response.json().get("results", [])
        except (requests.RequestException, ValueError) as e:
            self.log(f"Request error ({path}): {e}")
            return []

    def search_artist(self, query: str) -> List[ProviderArtist]:
        results = self._get("search", {
            "term": query,
            "entity": "musicArtist",
            "attribute": "artistTerm",
            "limit": 25
        })
        return [self._map_artist(item) for item in results if item.get("artistId")]

    def get_artist(self, artist_id: str) -> Optional[ProviderArtist]:
        results = self._get("lookup", {"id": artist_id})
        for item in results:
            if item.get("wrapperType") == "artist":
                return self._map_artist(item)
        return None

    def search_album(self, artist: str, album: str) -> List[ProviderAlbum]:
        term = f"{artist} {self._clean_title(album)}" if artist else self._clean_title(album)
        results = self._get("search", {
            "term": term.strip(),
            "entity": "album",
            "limit": 25
        })
        return [self._map_album(item) for item in results if item.get("collectionId")]

    def get_album(self, album_id: str) -> Optional[ProviderAlbum]:
        results = self._get("lookup", {"id": album_id})
        for item in results:
            if item.get("wrapperType") == "collection":
                return self._map_album(item)
        return None

    def get_tracks(self, album_id: str) -> List[ProviderTrack]:
        # First result is the collection, the rest are its songs
        results = self._get("lookup", {"id": album_id, "entity": "song"})
        tracks = [
            ProviderTrack(
                id=str(item.get("trackId", "")),
                name=item.get("trackName", ""),
                provider=self.name,
                disc_number=item.get("discNumber", 1),
                track_number=item.get("trackNumber"),
                duration_ms=item.get("trackTimeMillis"),
                artist=item.get("artistName")
            )
            for item in results if item.get("wrapperType") == "track"
        ]
        return sorted(tracks, key=lambda t: (t.disc_number or 1, t.track_number or 0))

    def _map_artist(self, item: Dict[str, Any]) -> ProviderArtist:
        return ProviderArtist(
            id=str(item["artistId"]),
            name=item.get("artistName", ""),
            provider=self.name,
            disambiguation=item.get("primaryGenreName")
        )

    def _map_album(self, item: Dict[str, Any]) -> ProviderAlbum:
        return ProviderAlbum(
            id=str(item["collectionId"]),
            name=item.get("collectionName", ""),
            provider=self.name,
            artist=item.get("artistName", ""),
            release_date=item.get("releaseDate"),
            cover_url=self._get_large_artwork(item.get("artworkUrl100")),
            track_count=item.get("trackCount", 0) or 0
        )

    def _get_large_artwork(self, url: Optional[str], size: int = 1000) -> Optional[str]:
        """
        Convert thumbnail URL to larger artwork.

        iTunes returns 100x100 by default, but supports up to 3000x3000.
        """
        if url:
            return url.replace("100x100bb", f"{size}x{size}bb")
        return None
