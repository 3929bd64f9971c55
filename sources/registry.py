#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Provider registry.

Builds the configured providers once per run, maps operator shortcuts to
provider names, and merges same-titled releases into a combined album.
"""

import re
from typing import Callable, Dict, List, Optional, Sequence

from orchestrator.errors import ConfigurationError
from .base import DataSource, ProviderAlbum, ProviderTrack

# Priority order, also the order providers are listed to the operator
SOURCE_PRIORITY = ['musicbrainz', 'spotify', 'discogs', 'itunes']


class SourceRegistry:
    """Holds the providers available to the stage machine."""

    def __init__(self, sources: Dict[str, DataSource], default: str,
                 shortcuts: Optional[Dict[str, str]] = None):
        if default not in sources:
            raise ConfigurationError(
                f"Default provider '{default}' is not available "
                f"(configured: {', '.join(sources) or 'none'})"
            )
        self._sources = sources
        self.default = default
        # token -> provider name
        self._shortcuts = {
            token.lower(): name
            for name, token in (shortcuts or {}).items()
            if name in sources
        }

    @classmethod
    def from_config(cls, config) -> "SourceRegistry":
        """
        Initialize providers from config and credentials.

        MusicBrainz and iTunes need no credentials. Spotify is left out with a
        warning when its credentials are missing; Discogs works without a
        token but searches will be rejected by the API.
        """
        from .musicbrainz import MusicBrainzSource
        from .spotify import SpotifySource
        from .discogs import DiscogsSource
        from .itunes import iTunesSource

        sources: Dict[str, DataSource] = {}

        mb_settings = config.get_api_settings('musicbrainz')
        sources['musicbrainz'] = MusicBrainzSource(
            user_agent=config.get_credential('musicbrainz.user_agent')
            or mb_settings.get('user_agent', 'MusicResolve/1.0'),
            rate_limit=mb_settings.get('rate_limit', 1.0)
        )

        sp_settings = config.get_api_settings('spotify')
        try:
            sources['spotify'] = SpotifySource(
                client_id=config.get_credential('spotify.client_id'),
                client_secret=config.get_credential('spotify.client_secret'),
                rate_limit=sp_settings.get('rate_limit', 0.5)
            )
        except ConfigurationError as e:
            print(f"[Sources] Warning: Spotify disabled: {e}")

        dg_settings = config.get_api_settings('discogs')
        sources['discogs'] = DiscogsSource(
            token=config.get_credential('discogs.token'),
            rate_limit=dg_settings.get('rate_limit', 1.0)
        )

        it_settings = config.get_api_settings('itunes')
        sources['itunes'] = iTunesSource(
            country=it_settings.get('country', 'us'),
            rate_limit=it_settings.get('rate_limit', 3.0)
        )

        print(f"[Sources] Initialized {len(sources)} providers: {', '.join(sources)}")
        return cls(sources, config.default_source, config.source_shortcuts)

    @property
    def available(self) -> List[str]:
        return [name for name in SOURCE_PRIORITY if name in self._sources] + \
            [name for name in self._sources if name not in SOURCE_PRIORITY]

    def get(self, name: str) -> DataSource:
        if name not in self._sources:
            raise KeyError(f"Unknown provider: {name}")
        return self._sources[name]

    def resolve_shortcut(self, token: str) -> Optional[str]:
        """Provider name for an operator shortcut token, if it is one"""
        return self._shortcuts.get(token.strip().lower())

    def shortcut_for(self, name: str) -> Optional[str]:
        for token, provider in self._shortcuts.items():
            if provider == name:
                return token
        return None


def normalize_album_title(title: str) -> str:
    """Lowercased title without punctuation, for same-title grouping"""
    return ' '.join(re.sub(r'[^\w\s]', ' ', (title or '').lower()).split())


def combine_albums(
    albums: Sequence[ProviderAlbum],
    fetch_tracks: Callable[[str], List[ProviderTrack]]
) -> Optional[ProviderAlbum]:
    """
    Merge several releases into one combined album.

    Each member release becomes its own disc block: a single-disc member is
    renumbered to the next disc, multi-disc members keep their relative disc
    numbering shifted past the discs already used.
    """
    if not albums:
        return None

    merged: List[ProviderTrack] = []
    disc_offset = 0
    for album in albums:
        tracks = list(album.tracks) if album.is_combined else fetch_tracks(album.id)
        if not tracks:
            continue
        discs = sorted({t.disc_number or 1 for t in tracks})
        disc_map = {disc: disc_offset + i + 1 for i, disc in enumerate(discs)}
        for track in tracks:
            merged.append(ProviderTrack(
                id=track.id,
                name=track.name,
                provider=track.provider,
                disc_number=disc_map[track.disc_number or 1],
                track_number=track.track_number,
                duration_ms=track.duration_ms,
                artist=track.artist
            ))
        disc_offset += len(discs)

    first = albums[0]
    names = []
    for album in albums:
        names.extend(album.album_names or (album.name,))

    return ProviderAlbum(
        id='+'.join(a.id for a in albums),
        name=first.name,
        provider=first.provider,
        artist=first.artist,
        release_date=min((a.release_date for a in albums if a.release_date), default=None),
        cover_url=first.cover_url,
        track_count=len(merged),
        is_combined=True,
        tracks=tuple(merged),
        album_names=tuple(names)
    )
