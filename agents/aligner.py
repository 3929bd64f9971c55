#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Aligner Agent - Pairs local audio files with provider tracks.

Responsibilities:
- Pair N local files with M remote tracks under one strategy
- Score every complete pair from duration proximity and title similarity
- Bucket scores into High / Medium / Low
- Support review mode: rank the free remote tracks against one file and
  reassign without ever giving a remote track to two files
"""

import re
import unicodedata
from dataclasses import dataclass
from difflib import SequenceMatcher
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from sources.base import ProviderTrack

from .base import BaseAgent
from .scanner import AudioFileRecord, AudioFileScanner


class Bucket(Enum):
    """Confidence bucket"""
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


@dataclass(frozen=True)
class Confidence:
    score: Optional[int]
    bucket: Bucket

    def __str__(self) -> str:
        return f"{self.score:3d} {self.bucket.value}" if self.score is not None else "  - Low"


UNSCORED = Confidence(None, Bucket.LOW)


@dataclass
class PairedTrack:
    """One (local file, remote track) association"""
    audio_file: Optional[AudioFileRecord] = None
    track: Optional[ProviderTrack] = None
    confidence: Confidence = UNSCORED
    marked: bool = False

    def __post_init__(self):
        if self.audio_file is None and self.track is None:
            raise ValueError("A paired track needs an audio file or a remote track")

    @property
    def is_complete(self) -> bool:
        return self.audio_file is not None and self.track is not None


class Strategy(Enum):
    """Pairing strategies, keyed by their stage-C command letter"""
    ORDER = "order"
    FILESYSTEM = "filesystem"
    TRACK_NUMBER = "track"
    DURATION = "duration"
    NAME = "name"
    TITLE = "title"
    HYBRID = "hybrid"
    MANUAL = "manual"


STRATEGY_KEYS: Dict[str, Strategy] = {
    'o': Strategy.ORDER,
    'f': Strategy.FILESYSTEM,
    't': Strategy.TRACK_NUMBER,
    'd': Strategy.DURATION,
    'n': Strategy.NAME,
    'l': Strategy.TITLE,
    'h': Strategy.HYBRID,
    'm': Strategy.MANUAL,
}


@dataclass
class MatchSettings:
    """
    Tunable scoring constants.

    duration_tolerance_ms: deltas up to this count as a perfect duration match
    duration_window_ms: beyond the tolerance, the duration score falls to 0
        linearly over this many milliseconds
    """
    duration_tolerance_ms: int = 2000
    duration_window_ms: int = 30000
    duration_weight: float = 0.6
    title_weight: float = 0.4
    high_threshold: int = 80
    low_threshold: int = 50

    @classmethod
    def from_config(cls, config) -> "MatchSettings":
        if config is None:
            return cls()
        defaults = cls()
        return cls(
            duration_tolerance_ms=int(config.get('matching.duration_tolerance_ms', defaults.duration_tolerance_ms)),
            duration_window_ms=int(config.get('matching.duration_window_ms', defaults.duration_window_ms)),
            duration_weight=float(config.get('matching.duration_weight', defaults.duration_weight)),
            title_weight=float(config.get('matching.title_weight', defaults.title_weight)),
            high_threshold=int(config.get('matching.high_threshold', defaults.high_threshold)),
            low_threshold=int(config.get('matching.low_threshold', defaults.low_threshold)),
        )


# "01 - ", "1. ", "1-02 ", "01_", "A1 "
_LEADING_NUMBER = re.compile(r'^\s*(?:[A-Da-d]?\d{1,3}(?:[-.]\d{1,3})?)(?:\s*[-._)]\s*|\s+)')
_PUNCTUATION = re.compile(r'[^\w\s]|_')


def normalize_text(text: Optional[str]) -> str:
    """Lowercase, strip accents and punctuation, collapse whitespace"""
    if not text:
        return ""
    text = unicodedata.normalize('NFKD', text)
    text = ''.join(c for c in text if not unicodedata.combining(c))
    text = _PUNCTUATION.sub(' ', text.lower())
    return ' '.join(text.split())


def filename_title(record: AudioFileRecord) -> str:
    """Title guessed from the file name with the track-number prefix removed"""
    stem = record.stem
    stripped = _LEADING_NUMBER.sub('', stem, count=1)
    return normalize_text(stripped or stem)


def tag_title(record: AudioFileRecord) -> str:
    return normalize_text(record.title) or filename_title(record)


def similarity(a: str, b: str) -> float:
    if not a or not b:
        return 0.0
    if a == b:
        return 1.0
    return SequenceMatcher(None, a, b).ratio()


class TrackAligner(BaseAgent):
    """
    Aligner agent.

    Every strategy except MANUAL is a pure function of its inputs, so the
    same files, tracks and strategy always give the same pairing.
    """

    def __init__(self, config=None, settings: Optional[MatchSettings] = None):
        super().__init__(config)
        self.settings = settings or MatchSettings.from_config(config)

    @property
    def name(self) -> str:
        return "Aligner"

    # ==================== Signals ====================

    def duration_delta(self, audio: Optional[AudioFileRecord], track: Optional[ProviderTrack]) -> float:
        if audio is None or track is None or audio.duration_ms is None or track.duration_ms is None:
            return float('inf')
        return abs(audio.duration_ms - track.duration_ms)

    def duration_score(self, audio: AudioFileRecord, track: ProviderTrack) -> Optional[float]:
        """1.0 inside the tolerance, falling linearly to 0 across the window"""
        delta = self.duration_delta(audio, track)
        if delta == float('inf'):
            return None
        tolerance = self.settings.duration_tolerance_ms
        if delta <= tolerance:
            return 1.0
        window = max(self.settings.duration_window_ms, 1)
        return max(0.0, 1.0 - (delta - tolerance) / window)

    def title_score(self, audio: AudioFileRecord, track: ProviderTrack) -> float:
        """Best similarity of either the tag title or the file name"""
        remote = normalize_text(track.name)
        return max(similarity(tag_title(audio), remote),
                   similarity(filename_title(audio), remote))

    def combined_score(self, audio: AudioFileRecord, track: ProviderTrack) -> float:
        """
        Weighted duration + title score in [0, 1].

        Inside the duration tolerance with equal normalized titles both
        signals are 1.0, so the score is 1.0 whatever the weights and the
        hybrid cost falls through to the raw duration delta.
        """
        title = self.title_score(audio, track)
        duration = self.duration_score(audio, track)
        if duration is None:
            return title
        wd, wt = self.settings.duration_weight, self.settings.title_weight
        total = (wd + wt) or 1.0
        return (wd * duration + wt * title) / total

    def bucket_for(self, score: int) -> Bucket:
        if score >= self.settings.high_threshold:
            return Bucket.HIGH
        if score < self.settings.low_threshold:
            return Bucket.LOW
        return Bucket.MEDIUM

    def score(self, audio: Optional[AudioFileRecord], track: Optional[ProviderTrack]) -> Confidence:
        if audio is None or track is None:
            return UNSCORED
        value = int(round(100 * self.combined_score(audio, track)))
        return Confidence(value, self.bucket_for(value))

    def rescore(self, pair: PairedTrack) -> PairedTrack:
        pair.confidence = self.score(pair.audio_file, pair.track)
        return pair

    # ==================== Pairing ====================

    def align(
        self,
        audio_files: Sequence[AudioFileRecord],
        tracks: Sequence[ProviderTrack],
        strategy: Strategy,
        existing: Optional[List[PairedTrack]] = None
    ) -> List[PairedTrack]:
        """
        Pair local files with remote tracks.

        Args:
            audio_files: Local files (any order)
            tracks: Remote tracks in provider order
            strategy: Pairing strategy
            existing: Current pairing, carried over by MANUAL

        Returns:
            Pairs sorted by descending confidence (MANUAL keeps its order)
        """
        if strategy is Strategy.MANUAL:
            if existing is not None:
                return list(existing)
            pairs = [PairedTrack(audio_file=a) for a in AudioFileScanner.display_order(list(audio_files))]
            pairs.extend(PairedTrack(track=t) for t in tracks)
            return pairs

        if strategy is Strategy.FILESYSTEM:
            local = sorted(audio_files, key=lambda r: r.fs_index)
        else:
            local = AudioFileScanner.display_order(list(audio_files))
        remote = list(tracks)

        if strategy in (Strategy.ORDER, Strategy.FILESYSTEM):
            pairs = self._pair_positional(local, remote)
        elif strategy is Strategy.TRACK_NUMBER:
            pairs = self._pair_track_number(local, remote)
        elif strategy is Strategy.DURATION:
            pairs = self._pair_greedy(local, remote, lambda a, t: (self.duration_delta(a, t),))
        elif strategy is Strategy.NAME:
            pairs = self._pair_greedy(local, remote, lambda a, t: (
                -similarity(filename_title(a), normalize_text(t.name)), self.duration_delta(a, t)))
        elif strategy is Strategy.TITLE:
            pairs = self._pair_greedy(local, remote, lambda a, t: (
                -similarity(tag_title(a), normalize_text(t.name)), self.duration_delta(a, t)))
        elif strategy is Strategy.HYBRID:
            pairs = self._pair_greedy(local, remote, lambda a, t: (
                -self.combined_score(a, t), self.duration_delta(a, t)))
        else:
            raise ValueError(f"Unknown strategy: {strategy}")

        for pair in pairs:
            self.rescore(pair)
        return self.sort_by_confidence(pairs)

    @staticmethod
    def sort_by_confidence(pairs: List[PairedTrack]) -> List[PairedTrack]:
        """Stable sort: highest score first, one-sided pairs last"""
        def key(pair: PairedTrack):
            score = pair.confidence.score
            return (1, 0) if score is None else (0, -score)
        return sorted(pairs, key=key)

    def _pair_positional(self, local: List[AudioFileRecord], remote: List[ProviderTrack]) -> List[PairedTrack]:
        pairs = []
        for i in range(max(len(local), len(remote))):
            pairs.append(PairedTrack(
                audio_file=local[i] if i < len(local) else None,
                track=remote[i] if i < len(remote) else None
            ))
        return pairs

    def _pair_track_number(self, local: List[AudioFileRecord], remote: List[ProviderTrack]) -> List[PairedTrack]:
        used = set()
        matched: List[PairedTrack] = []
        leftover_local: List[AudioFileRecord] = []

        for audio in local:
            found = None
            if audio.track_number is not None:
                for j, track in enumerate(remote):
                    if j in used or track.track_number != audio.track_number:
                        continue
                    if (audio.disc_number is not None and track.disc_number is not None
                            and audio.disc_number != track.disc_number):
                        continue
                    found = j
                    break
            if found is None:
                leftover_local.append(audio)
            else:
                used.add(found)
                matched.append(PairedTrack(audio_file=audio, track=remote[found]))

        leftover_remote = [t for j, t in enumerate(remote) if j not in used]
        return matched + self._pair_positional(leftover_local, leftover_remote)

    def _pair_greedy(self, local: List[AudioFileRecord], remote: List[ProviderTrack], cost) -> List[PairedTrack]:
        """
        Repeatedly take the cheapest (local, remote) combination among the
        unpaired items until one side runs out. Ties fall back to the local
        then remote position so the result is deterministic.
        """
        candidates = sorted(
            (cost(audio, track), i, j)
            for i, audio in enumerate(local)
            for j, track in enumerate(remote)
        )

        local_used: Dict[int, int] = {}
        remote_used = set()
        limit = min(len(local), len(remote))
        for _cost, i, j in candidates:
            if len(local_used) == limit:
                break
            if i in local_used or j in remote_used:
                continue
            local_used[i] = j
            remote_used.add(j)

        pairs = [
            PairedTrack(audio_file=audio, track=remote[local_used[i]] if i in local_used else None)
            for i, audio in enumerate(local)
        ]
        pairs.extend(PairedTrack(track=t) for j, t in enumerate(remote) if j not in remote_used)
        return pairs

    # ==================== Review mode ====================

    @staticmethod
    def review_targets(pairs: List[PairedTrack]) -> List[PairedTrack]:
        """Marked pairs with a local file, or every pair with one when none are marked"""
        marked = [p for p in pairs if p.marked and p.audio_file is not None]
        if marked:
            return marked
        return [p for p in pairs if p.audio_file is not None]

    def rank_candidates(
        self,
        audio: AudioFileRecord,
        pool: Sequence[ProviderTrack]
    ) -> List[Tuple[ProviderTrack, Confidence]]:
        """Pool tracks ranked by confidence against one local file"""
        scored = [(track, self.score(audio, track), j) for j, track in enumerate(pool)]
        scored.sort(key=lambda item: (-(item[1].score or 0), item[2]))
        return [(track, confidence) for track, confidence, _ in scored]

    def assign(
        self,
        pairs: List[PairedTrack],
        target: PairedTrack,
        track: Optional[ProviderTrack]
    ) -> List[PairedTrack]:
        """
        Give target's local file a new remote track (None unassigns).

        The track is taken away from any other pair first; a pair left with
        no side at all is dropped, and target's previous track is kept as a
        remote-only entry.
        """
        if target.audio_file is None:
            raise ValueError("Only pairs with a local file can be reassigned")

        result: List[PairedTrack] = []
        for pair in pairs:
            if pair is target or track is None or pair.track is not track:
                result.append(pair)
                continue
            if pair.audio_file is None:
                continue
            pair.track = None
            self.rescore(pair)
            result.append(pair)

        previous = target.track
        target.track = track
        self.rescore(target)

        if previous is not None and previous is not track:
            result.append(PairedTrack(track=previous))
        return result
