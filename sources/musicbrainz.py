#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
MusicBrainz API adapter.
Free, no authentication required, but needs user agent.

API Documentation:
https://musicbrainz.org/doc/MusicBrainz_API

Rate Limits: 1 request per second per IP
"""

import requests
from typing import Any, Dict, List, Optional
from .base import DataSource, ProviderAlbum, ProviderArtist, ProviderTrack


class MusicBrainzSource(DataSource):
    """
    MusicBrainz API data source.

    Releases are used as albums; artist ids are MBIDs.
    """

    BASE_URL = "https://musicbrainz.org/ws/2"
    COVER_ART_URL = "https://coverartarchive.org"

    def __init__(self, user_agent: str = "MusicResolve/1.0", rate_limit: float = 1.0):
        """
        Initialize MusicBrainz source.

        Args:
            user_agent: User agent string (required by API)
            rate_limit: Seconds between requests (1.0 required by API)
        """
        super().__init__(rate_limit)
        self.user_agent = user_agent
        self.session = requests.Session()
        self.session.headers.update({
            "User-Agent": user_agent,
            "Accept": "application/json"
        })

    @property
    def name(self) -> str:
        return "musicbrainz"

    def _get(self, path: str, params: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        self._rate_limit_wait()
        params = dict(params, fmt="json")
        try:
            response = self.session.get(f"{self.BASE_URL}/{path}", params=params, timeout=30)
            response.raise_for_status()
            return response.json()
        except (requests.RequestException, ValueError) as e:
            self.log(f"Request error ({path}): {e}")
            return None

    def search_artist(self, query: str) -> List[ProviderArtist]:
        data = self._get("artist", {"query": f'artist:"{query}"', "limit": 25})
        if not data:
            return []
        return [self._map_artist(a) for a in data.get("artists", []) if a.get("id")]

    def get_artist(self, artist_id: str) -> Optional[ProviderArtist]:
        data = self._get(f"artist/{artist_id}", {})
        if not data or not data.get("id"):
            return None
        return self._map_artist(data)

    def search_album(self, artist: str, album: str) -> List[ProviderAlbum]:
        """
        Search releases by title and artist.

        An empty artist searches by title only.
        """
        clean_title = self._clean_title(album)
        if artist and artist.lower() != "various artists":
            query = f'release:"{clean_title}" AND artist:"{artist}"'
        elif artist:
            query = f'release:"{clean_title}" AND (artist:"Various Artists" OR secondarytype:Compilation)'
        else:
            query = f'release:"{clean_title}"'

        data = self._get("release", {"query": query, "limit": 25})
        if not data:
            return []
        return [self._map_release(r) for r in data.get("releases", []) if r.get("id")]

    def get_album(self, album_id: str) -> Optional[ProviderAlbum]:
        release = self._get(f"release/{album_id}", {"inc": "artist-credits"})
        if not release or not release.get("id"):
            return None
        return self._map_release(release)

    def get_tracks(self, album_id: str) -> List[ProviderTrack]:
        release = self._get(f"release/{album_id}", {"inc": "recordings+artist-credits"})
        if not release:
            return []

        tracks = []
        for medium in release.get("media", []):
            disc_number = self._to_int(medium.get("position"), 1)
            for track in medium.get("tracks", []):
                recording = track.get("recording") or {}
                credit = track.get("artist-credit") or recording.get("artist-credit") or []
                tracks.append(ProviderTrack(
                    id=track.get("id") or recording.get("id", ""),
                    name=track.get("title") or recording.get("title", ""),
                    provider=self.name,
                    disc_number=disc_number,
                    track_number=self._to_int(track.get("position")),
                    duration_ms=track.get("length") or recording.get("length"),
                    artist=self._credit_name(credit)
                ))
        return tracks

    def _map_artist(self, data: Dict[str, Any]) -> ProviderArtist:
        return ProviderArtist(
            id=data["id"],
            name=data.get("name", ""),
            provider=self.name,
            country=data.get("country"),
            disambiguation=data.get("disambiguation") or None
        )

    def _map_release(self, release: Dict[str, Any]) -> ProviderAlbum:
        release_id = release["id"]
        track_count = release.get("track-count")
        if track_count is None:
            track_count = sum(m.get("track-count", 0) for m in release.get("media", []))
        return ProviderAlbum(
            id=release_id,
            name=release.get("title", ""),
            provider=self.name,
            artist=self._credit_name(release.get("artist-credit", [])) or "Various Artists",
            release_date=release.get("date"),
            cover_url=f"{self.COVER_ART_URL}/release/{release_id}/front-1200",
            track_count=track_count or 0
        )

    def _credit_name(self, credit: List[Dict[str, Any]]) -> Optional[str]:
        """Join an artist-credit list into a display name"""
        if not credit:
            return None
        return "".join(
            (c.get("name") or c.get("artist", {}).get("name", "")) + (c.get("joinphrase") or "")
            for c in credit
        ).strip() or None
