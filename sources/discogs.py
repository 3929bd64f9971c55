#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Discogs API adapter.
Comprehensive, especially for rare and vinyl releases.

API Documentation:
https://www.discogs.com/developers

Rate Limits:
- Authenticated: 60 requests per minute
- Unauthenticated: 25 requests per minute
"""

import os
import re
from typing import Any, Dict, List, Optional, Tuple

import requests
from .base import DataSource, ProviderAlbum, ProviderArtist, ProviderTrack


class DiscogsSource(DataSource):
    """
    Discogs API data source.

    Personal access token (discogs.com/settings/developers) is optional but
    search requires one.
    """

    BASE_URL = "https://api.discogs.com"

    # "2-05", "CD2-5", "2.5"
    _DISC_POSITION = re.compile(r'^(?:cd|disc)?\s*(\d+)\s*[-.]\s*(\d+)', re.IGNORECASE)
    # Discogs disambiguation suffix on artist names: "Nirvana (2)"
    _ARTIST_SUFFIX = re.compile(r'\s+\(\d+\)$')

    def __init__(
        self,
        token: Optional[str] = None,
        user_agent: str = "MusicResolve/1.0",
        rate_limit: float = 1.0
    ):
        """
        Initialize Discogs source.

        Args:
            token: Discogs personal access token (or DISCOGS_TOKEN env var)
            user_agent: User agent string
            rate_limit: Seconds between requests (1.0 = 60 req/min)
        """
        super().__init__(rate_limit)

        self.token = token or os.environ.get("DISCOGS_TOKEN")
        self.user_agent = user_agent
        self.session = requests.Session()
        self.session.headers.update({
            "User-Agent": user_agent,
            "Accept": "application/json"
        })
        if self.token:
            self.session.headers["Authorization"] = f"Discogs token={self.token}"

    @property
    def name(self) -> str:
        return "discogs"

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        self._rate_limit_wait()
        try:
            response = self.session.get(f"{self.BASE_URL}/{path}", params=params or {}, timeout=30)
            response.raise_for_status()
            return response.json()
        except (requests.RequestException, ValueError) as e:
            self.log(f"Request error ({path}): {e}")
            return None

    def search_artist(self, query: str) -> List[ProviderArtist]:
        data = self._get("database/search", {"q": query, "type": "artist", "per_page": 25})
        if not data:
            return []
        return [
            ProviderArtist(
                id=str(item["id"]),
                name=self._clean_artist(item.get("title", "")),
                provider=self.name
            )
            for item in data.get("results", []) if item.get("id")
        ]

    def get_artist(self, artist_id: str) -> Optional[ProviderArtist]:
        data = self._get(f"artists/{artist_id}")
        if not data or not data.get("id"):
            return None
        return ProviderArtist(
            id=str(data["id"]),
            name=self._clean_artist(data.get("name", "")),
            provider=self.name
        )

    def search_album(self, artist: str, album: str) -> List[ProviderAlbum]:
        params = {
            "q": self._clean_title(album),
            "type": "release",
            "per_page": 25
        }
        if artist and artist.lower() != "various artists":
            params["artist"] = artist

        data = self._get("database/search", params)
        if not data:
            return []

        albums = []
        for result in data.get("results", []):
            if not result.get("id"):
                continue
            # Search titles are formatted "Artist - Album"
            full_title = result.get("title", "")
            if " - " in full_title:
                release_artist, release_title = full_title.split(" - ", 1)
            else:
                release_artist, release_title = "Various Artists", full_title

            year = result.get("year")
            albums.append(ProviderAlbum(
                id=str(result["id"]),
                name=release_title,
                provider=self.name,
                artist=self._clean_artist(release_artist),
                release_date=str(year) if year else None,
                cover_url=result.get("cover_image") or result.get("thumb"),
                track_count=0  # Not available in search results
            ))
        return albums

    def get_album(self, album_id: str) -> Optional[ProviderAlbum]:
        release = self._get(f"releases/{album_id}")
        if not release or not release.get("id"):
            return None
        return self._map_release(release)

    def get_tracks(self, album_id: str) -> List[ProviderTrack]:
        release = self._get(f"releases/{album_id}")
        if not release:
            return []
        return self._map_tracklist(release.get("tracklist", []))

    def _map_release(self, release: Dict[str, Any]) -> ProviderAlbum:
        images = release.get("images", [])
        cover_url = None
        for img in images:
            if img.get("type") == "primary":
                cover_url = img.get("uri")
                break
        if not cover_url and images:
            cover_url = images[0].get("uri")

        artists = release.get("artists", [])
        artist_name = self._clean_artist(artists[0].get("name", "")) if artists else "Various Artists"

        return ProviderAlbum(
            id=str(release["id"]),
            name=release.get("title", ""),
            provider=self.name,
            artist=artist_name,
            release_date=release.get("released") or (str(release["year"]) if release.get("year") else None),
            cover_url=cover_url,
            track_count=len(self._map_tracklist(release.get("tracklist", [])))
        )

    def _map_tracklist(self, tracklist: List[Dict[str, Any]]) -> List[ProviderTrack]:
        tracks: List[ProviderTrack] = []
        counters: Dict[int, int] = {}

        def add(entry: Dict[str, Any]) -> None:
            disc, number = self._parse_position(entry.get("position", ""))
            counters[disc] = counters.get(disc, 0) + 1
            artists = entry.get("artists") or []
            tracks.append(ProviderTrack(
                id=f"{len(tracks) + 1}",
                name=entry.get("title", ""),
                provider=self.name,
                disc_number=disc,
                track_number=number or counters[disc],
                duration_ms=self._parse_duration(entry.get("duration")),
                artist=self._clean_artist(artists[0].get("name", "")) if artists else None
            ))

        for entry in tracklist:
            kind = entry.get("type_", "track")
            if kind == "track":
                add(entry)
            elif kind == "index":
                # Index tracks group sub-tracks under one heading
                for sub in entry.get("sub_tracks", []):
                    add(sub)
            # headings are skipped
        return tracks

    def _parse_position(self, position: str) -> Tuple[int, Optional[int]]:
        """Split a Discogs position into (disc, track)"""
        position = (position or "").strip()
        match = self._DISC_POSITION.match(position)
        if match:
            return int(match.group(1)), int(match.group(2))
        if position.isdigit():
            return 1, int(position)
        # Vinyl sides ("A1", "B2") fall back to a running counter
        return 1, None

    def _clean_artist(self, name: str) -> str:
        return self._ARTIST_SUFFIX.sub("", name or "").strip()
