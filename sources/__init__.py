# Metadata Providers
# Adapters for MusicBrainz, Spotify, Discogs and iTunes

from .base import DataSource, ProviderArtist, ProviderAlbum, ProviderTrack
from .registry import SourceRegistry, combine_albums, SOURCE_PRIORITY

__all__ = [
    'DataSource',
    'ProviderArtist',
    'ProviderAlbum',
    'ProviderTrack',
    'SourceRegistry',
    'combine_albums',
    'SOURCE_PRIORITY'
]
