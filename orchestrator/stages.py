#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Resolution stage machine.

Walks one AlbumJob through Quick / Artist (A) / Album (B) / Track (C)
until it is DONE or SKIPPED. step() is the transition function: it takes
one operator token and returns the next stage, so the whole workflow can
be driven from a scripted list of tokens.
"""

from typing import List, Optional

from agents.aligner import Strategy, TrackAligner
from agents.committer import CommitEngine
from sources.base import ProviderAlbum, ProviderArtist
from sources.registry import SourceRegistry, combine_albums, normalize_album_title

from .commands import Action, Command, parse_range, parse_search_command, parse_track_command
from .console import Console
from .errors import CommandError
from .state import AlbumJob, FindMode, Stage


class StageMachine:
    """Drives one album at a time through the resolution stages."""

    def __init__(
        self,
        registry: SourceRegistry,
        aligner: TrackAligner,
        committer: CommitEngine,
        console: Optional[Console] = None,
        config=None,
        non_interactive: bool = False
    ):
        self.registry = registry
        self.aligner = aligner
        self.committer = committer
        self.console = console or Console()
        self.config = config
        self.non_interactive = non_interactive
        self.page_size = max(1, int(config.get('resolver.page_size', 10))) if config else 10

    @property
    def name(self) -> str:
        return "Resolver"

    def log(self, message: str) -> None:
        print(f"[{self.name}] {message}")

    def warn(self, message: str) -> None:
        self.console.warn(message)

    # ==================== Main loop ====================

    def run(self, job: AlbumJob) -> Stage:
        """
        Process a job until it reaches a terminal stage.

        EOFError from the console propagates to the caller.
        """
        self.console.show_job(job)

        while not job.stage.terminal:
            if self.non_interactive:
                job.stage = self.auto_step(job)
                continue

            prompt = self.render(job)
            token = self.console.ask(prompt)
            job.stage = self.step(job, token)

        self.log(f"{job.path}: {job.stage.value.upper()}")
        return job.stage

    def render(self, job: AlbumJob) -> str:
        """Show the current stage and return the prompt label"""
        if job.stage is Stage.TRACK:
            self.console.show_pairs(job)
            return "C"

        candidates = self.candidates(job)
        if not candidates:
            what = "artists" if job.stage is Stage.ARTIST else "albums"
            self.console.show_no_candidates(what, job.provider, self._query_text(job))
            return "retry"
        if job.stage is Stage.ARTIST:
            self.console.show_artists(candidates, job.cache.artist_page, self.page_size)
            return "A"
        self.console.show_albums(candidates, job.cache.album_page, self.page_size)
        return "Q" if job.stage is Stage.QUICK else "B"

    def step(self, job: AlbumJob, token: str) -> Stage:
        """Apply one operator token and return the next stage"""
        if job.stage is Stage.TRACK:
            command = parse_track_command(token, self.registry.resolve_shortcut)
            return self._step_track(job, command)

        recovery = not self.candidates(job)
        command = parse_search_command(token, job.stage, self.registry.resolve_shortcut, recovery)
        return self._step_search(job, command)

    # ==================== Candidates ====================

    def candidates(self, job: AlbumJob) -> list:
        """Candidate list for a search stage, from the cache when still valid"""
        cache = job.cache
        if job.stage is Stage.ARTIST:
            if cache.matches(job.provider) and cache.artist_query == job.artist:
                return cache.artists
            artists = self._query(job, 'search_artist', job.artist)
            cache.store_artists(job.provider, job.artist, artists)
            return cache.artists

        if job.stage in (Stage.QUICK, Stage.ALBUM):
            key = self._album_query_key(job)
            if cache.matches(job.provider) and cache.album_query == key:
                return cache.albums
            artist = job.selected_artist.name if job.stage is Stage.ALBUM and job.selected_artist else job.artist
            albums = self._query(job, 'search_album', artist, job.album)
            cache.store_albums(job.provider, key, albums)
            return cache.albums
        return []

    def _album_query_key(self, job: AlbumJob) -> str:
        if job.stage is Stage.ALBUM and job.selected_artist:
            return f"artist:{job.selected_artist.id}|{job.album}"
        return f"{job.artist}|{job.album}"

    def _query(self, job: AlbumJob, method: str, *args) -> list:
        """Call a provider search; failures count as zero candidates"""
        try:
            source = self.registry.get(job.provider)
            return list(getattr(source, method)(*args) or [])
        except Exception as e:
            self.warn(f"{job.provider} {method} failed: {e}")
            return []

    def _invalidate(self, job: AlbumJob) -> None:
        if job.stage is Stage.ARTIST:
            job.cache.artist_query = None
        else:
            job.cache.album_query = None

    def _query_text(self, job: AlbumJob) -> str:
        if job.stage is Stage.ARTIST:
            return job.artist
        if job.stage is Stage.ALBUM and job.selected_artist:
            return f"{job.selected_artist.name} - {job.album}"
        return f"{job.artist} - {job.album}"

    # ==================== Search stages ====================

    def _step_search(self, job: AlbumJob, command: Command) -> Stage:
        action = command.action
        stage = job.stage

        if action is Action.SKIP:
            return Stage.SKIPPED
        if action is Action.HELP:
            self.console.show_help(stage)
            return stage
        if action is Action.INVALID:
            self.warn(command.value)
            return stage
        if action is Action.PROVIDER:
            return self._switch_provider(job, command.value)
        if action is Action.FIND_MODE:
            job.find_mode = FindMode.ARTIST_FIRST if job.find_mode is FindMode.QUICK else FindMode.QUICK
            self.log(f"Find mode: {job.find_mode.value}")
            return job.entry_stage
        if action is Action.ALBUM_ARTIST:
            job.album_artist_override = command.value
            self.log(f"Album artist override: {command.value or '(cleared)'}")
            return stage
        if action is Action.RETRY:
            self._invalidate(job)
            return stage
        if action is Action.QUERY:
            self._apply_query(job, command.value)
            return stage
        if action is Action.BACK:
            return Stage.ARTIST
        if action is Action.BY_ID:
            return self._select_by_id(job, command.value)

        candidates = self.candidates(job)
        if action in (Action.NEXT_PAGE, Action.PREV_PAGE):
            self._turn_page(job, len(candidates), 1 if action is Action.NEXT_PAGE else -1)
            return stage

        if action is Action.SELECT:
            index = command.value - 1
            if index < 0 or index >= len(candidates):
                self.warn(f"No candidate {command.value} (1-{len(candidates)})")
                return stage
            chosen = candidates[index]
            if stage is Stage.ARTIST:
                return self._select_artist(job, chosen)
            return self.enter_track_stage(job, chosen)

        if action is Action.COMBINE:
            return self._combine(job, candidates, command.value)

        self.warn(f"Unrecognized command: {command.text}")
        return stage

    def _apply_query(self, job: AlbumJob, text: str) -> None:
        if job.stage is Stage.ARTIST:
            job.artist = text
        elif job.stage is Stage.QUICK and ' - ' in text:
            artist, _, album = text.partition(' - ')
            job.artist, job.album = artist.strip(), album.strip()
        else:
            job.album = text
        self.log(f"Searching: {self._query_text(job)}")

    def _turn_page(self, job: AlbumJob, total: int, delta: int) -> None:
        pages = max(1, (total + self.page_size - 1) // self.page_size)
        attr = 'artist_page' if job.stage is Stage.ARTIST else 'album_page'
        page = getattr(job.cache, attr) + delta
        if page < 0 or page >= pages:
            self.warn("No more pages")
            return
        setattr(job.cache, attr, page)

    def _switch_provider(self, job: AlbumJob, provider: str) -> Stage:
        if provider == job.provider:
            self.log(f"Already using {provider}")
            return job.stage
        self.log(f"Provider: {job.provider} -> {provider}")
        job.provider = provider
        job.cache.clear()
        job.selected_artist = None
        job.reset_track_stage()
        return job.entry_stage

    def _select_artist(self, job: AlbumJob, artist: ProviderArtist) -> Stage:
        job.selected_artist = artist
        job.cache.provider_artist_id = artist.id
        return Stage.ALBUM

    def _select_by_id(self, job: AlbumJob, value: str) -> Stage:
        source = self.registry.get(job.provider)
        try:
            if job.stage is Stage.ARTIST:
                artist = source.get_artist(value)
                if artist is None:
                    self.warn(f"No artist with id {value} on {job.provider}")
                    return job.stage
                return self._select_artist(job, artist)
            album = source.get_album(value)
        except Exception as e:
            self.warn(f"{job.provider} lookup failed: {e}")
            return job.stage
        if album is None:
            self.warn(f"No album with id {value} on {job.provider}")
            return job.stage
        return self.enter_track_stage(job, album)

    def _combine(self, job: AlbumJob, candidates: List[ProviderAlbum], range_text: Optional[str]) -> Stage:
        if not candidates:
            self.warn("Nothing to combine")
            return job.stage
        if range_text:
            try:
                members = [candidates[i] for i in parse_range(range_text, len(candidates))]
            except CommandError as e:
                self.warn(str(e))
                return job.stage
        else:
            title = normalize_album_title(candidates[0].name)
            members = [a for a in candidates if normalize_album_title(a.name) == title]

        if len(members) < 2:
            self.warn("Need at least two albums to combine")
            return job.stage

        source = self.registry.get(job.provider)
        combined = combine_albums(members, source.get_tracks)
        if combined is None or not combined.tracks:
            self.warn("Combined albums have no tracks")
            return job.stage
        self.log(f"Combined {len(members)} releases: {combined.track_count} tracks")
        return self.enter_track_stage(job, combined)

    # ==================== Track stage ====================

    def enter_track_stage(self, job: AlbumJob, album: ProviderAlbum) -> Stage:
        """Fetch the album's tracks and pair them with the local files"""
        job.via_quick = job.stage is Stage.QUICK
        job.selected_album = album
        if album.is_combined:
            tracks = list(album.tracks)
        else:
            tracks = self._query(job, 'get_tracks', album.id)
        if not tracks:
            self.warn(f"{job.provider} returned no tracks for {album.name}")

        job.album_tracks = list(tracks)
        job.remote_tracks = list(tracks)
        if job.strategy is Strategy.MANUAL:
            job.strategy = Strategy.ORDER
        job.pairs = self.aligner.align(job.audio_files, job.remote_tracks, job.strategy)
        return Stage.TRACK

    def _step_track(self, job: AlbumJob, command: Command) -> Stage:
        action = command.action

        if action is Action.NONE:
            return Stage.TRACK
        if action is Action.SKIP:
            return Stage.SKIPPED
        if action is Action.HELP:
            self.console.show_help(Stage.TRACK)
            return Stage.TRACK
        if action is Action.INVALID:
            self.warn(command.value)
            return Stage.TRACK
        if action is Action.FIND_MODE:
            self.warn("Find mode can only be changed while searching")
            return Stage.TRACK
        if action is Action.PROVIDER:
            return self._switch_provider(job, command.value)
        if action is Action.ALBUM_ARTIST:
            job.album_artist_override = command.value
            self.log(f"Album artist override: {command.value or '(cleared)'}")
            return Stage.TRACK
        if action is Action.BACK:
            job.reset_track_stage()
            return Stage.QUICK if job.via_quick else Stage.ALBUM
        if action is Action.REVERSE:
            job.reverse_columns = not job.reverse_columns
            return Stage.TRACK
        if action is Action.PREVIEW:
            job.preview = not job.preview
            self.log(f"Preview {'on' if job.preview else 'off'}")
            return Stage.TRACK
        if action is Action.STRATEGY:
            self._apply_strategy(job, command.value)
            return Stage.TRACK
        if action is Action.MARK:
            self._toggle_marks(job, command.value)
            return Stage.TRACK
        if action is Action.ASSIGN:
            self._assign(job, *command.value)
            return Stage.TRACK
        if action is Action.REVIEW:
            self.review(job)
            return Stage.TRACK
        if action is Action.SAVE_SELECTED:
            return self._save_selected(job, command.value)
        if action is Action.SAVE_ALL:
            result = self.committer.save_all(job)
            self._apply_save(job, result)
            return Stage.TRACK if job.preview else Stage.DONE
        if action is Action.RENAME:
            self.committer.rename_folder(job)
            return Stage.TRACK

        self.warn(f"Unrecognized command: {command.text}")
        return Stage.TRACK

    def _apply_strategy(self, job: AlbumJob, strategy: Strategy) -> None:
        if strategy is Strategy.MANUAL:
            job.strategy = Strategy.MANUAL
            job.pairs = self.aligner.align(job.audio_files, job.remote_tracks, Strategy.MANUAL, existing=job.pairs)
            self.manual_pass(job)
            job.strategy = Strategy.ORDER
            return
        job.strategy = strategy
        job.pairs = self.aligner.align(job.audio_files, job.remote_tracks, strategy)
        self.log(f"Strategy: {strategy.value}")

    def _toggle_marks(self, job: AlbumJob, range_text: str) -> None:
        try:
            indices = parse_range(range_text, len(job.pairs))
        except CommandError as e:
            self.warn(str(e))
            return
        for i in indices:
            job.pairs[i].marked = not job.pairs[i].marked

    def _assign(self, job: AlbumJob, pair_number: int, track_number: Optional[int]) -> bool:
        """Manual edit: pair N gets remote track T (None unassigns)"""
        if pair_number < 1 or pair_number > len(job.pairs):
            self.warn(f"No pair {pair_number} (1-{len(job.pairs)})")
            return False
        target = job.pairs[pair_number - 1]
        if target.audio_file is None:
            self.warn(f"Pair {pair_number} has no local file")
            return False
        track = None
        if track_number is not None:
            if track_number < 1 or track_number > len(job.remote_tracks):
                self.warn(f"No track {track_number} (1-{len(job.remote_tracks)})")
                return False
            track = job.remote_tracks[track_number - 1]
        job.pairs = self.aligner.assign(job.pairs, target, track)
        return True

    def _save_selected(self, job: AlbumJob, range_text: str) -> Stage:
        try:
            result = self.committer.save_selected(job, range_text)
        except CommandError as e:
            self.warn(str(e))
            return Stage.TRACK
        self._apply_save(job, result)
        if not job.preview and not job.pairs:
            return Stage.DONE
        return Stage.TRACK

    @staticmethod
    def _apply_save(job: AlbumJob, result) -> None:
        if job.preview:
            return
        job.pairs = result.remaining
        job.audio_files = result.audio_files
        job.remote_tracks = result.remote_tracks

    # ==================== Manual and review ====================

    def manual_pass(self, job: AlbumJob) -> None:
        """Edit pairs one assignment at a time until an empty line"""
        self.console.show("Remote tracks:")
        self.console.show_remote_tracks(job.remote_tracks)
        while True:
            self.console.show_pairs(job)
            token = self.console.ask("manual <pair>=<track>, u <pair>, empty = done")
            if not token:
                break
            command = parse_track_command(token, self.registry.resolve_shortcut)
            if command.action is not Action.ASSIGN:
                self.warn(f"Expected <pair>=<track>, got: {token}")
                continue
            self._assign(job, *command.value)

    def review(self, job: AlbumJob) -> None:
        """
        Walk the review targets, offering the free remote tracks ranked by
        confidence. Empty keeps the current track, s skips, q stops.
        """
        targets = self.aligner.review_targets(job.pairs)
        pool = list(job.remote_tracks)

        for number, target in enumerate(targets, 1):
            ranked = self.aligner.rank_candidates(target.audio_file, pool)
            self.console.show(f"[{number}/{len(targets)}] {target.audio_file.filename}"
                              f"  now: {target.track.name if target.track else '(none)'}")
            for j, (track, confidence) in enumerate(ranked, 1):
                self.console.show(f"  {j:3d}. {track.name}  {confidence}")

            while True:
                choice = self.console.ask("review [N / empty keep / s skip / q quit]").lower()
                if choice == 'q':
                    self._finish_review(job)
                    return
                if choice == 's':
                    break
                if choice == '':
                    if target.track in pool:
                        pool.remove(target.track)
                    break
                if choice.isdigit() and 1 <= int(choice) <= len(ranked):
                    chosen = ranked[int(choice) - 1][0]
                    job.pairs = self.aligner.assign(job.pairs, target, chosen)
                    pool.remove(chosen)
                    break
                self.warn(f"Invalid choice: {choice}")

        self._finish_review(job)

    def _finish_review(self, job: AlbumJob) -> None:
        for pair in job.pairs:
            pair.marked = False
        job.pairs = self.aligner.sort_by_confidence(job.pairs)

    # ==================== Non-interactive ====================

    def auto_step(self, job: AlbumJob) -> Stage:
        """
        Advance without prompting: a single candidate is taken, anything
        else skips the job. The track stage is never entered interactively.
        """
        if job.stage is Stage.TRACK:
            complete = sum(1 for p in job.pairs if p.is_complete)
            self.log(f"Proposed pairing for {job.selected_album.name if job.selected_album else job.album}: "
                     f"{complete}/{len(job.pairs)} complete")
            for i, pair in enumerate(job.pairs, 1):
                self.log(self.console.format_pair(i, pair))
            self.warn("Track matching needs an operator; skipping")
            return Stage.SKIPPED

        candidates = self.candidates(job)
        if not candidates:
            self.warn(f"No candidates on {job.provider} for '{self._query_text(job)}'; skipping")
            return Stage.SKIPPED
        if len(candidates) > 1:
            self.warn(f"{len(candidates)} candidates for '{self._query_text(job)}' need a choice; skipping")
            return Stage.SKIPPED
        if job.stage is Stage.ARTIST:
            return self._select_artist(job, candidates[0])
        return self.enter_track_stage(job, candidates[0])
