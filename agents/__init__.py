# Processing Agents
# Specialized agents for scanning, track alignment and committing

from .base import BaseAgent
from .scanner import AudioFileScanner, AudioFileRecord, TagHandle
from .aligner import TrackAligner, PairedTrack, Confidence, Strategy
from .committer import CommitEngine, SaveResult

__all__ = [
    'BaseAgent',
    'AudioFileScanner',
    'AudioFileRecord',
    'TagHandle',
    'TrackAligner',
    'PairedTrack',
    'Confidence',
    'Strategy',
    'CommitEngine',
    'SaveResult'
]
