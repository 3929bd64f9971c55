# Album Resolver
# Configuration, job state and the interactive stage machine

from .config import ConfigManager
from .errors import (
    ResolverError,
    ConfigurationError,
    FolderLockedError,
    UnsupportedAudioError,
    CommandError
)

__all__ = [
    'ConfigManager',
    'ResolverError',
    'ConfigurationError',
    'FolderLockedError',
    'UnsupportedAudioError',
    'CommandError'
]
