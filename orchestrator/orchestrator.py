#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Album Resolver - Batch loop over album folders.

Discovers album folders under a path and runs each one through the stage
machine, one at a time.

Usage:
    from orchestrator import ConfigManager
    from orchestrator.orchestrator import AlbumResolver

    resolver = AlbumResolver(ConfigManager('music-config.yaml'))
    resolver.process_path('/path/to/music/Artist')
"""

import time
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from agents.aligner import STRATEGY_KEYS, Strategy, TrackAligner
from agents.committer import CommitEngine
from agents.scanner import AudioFileScanner
from sources.registry import SourceRegistry
from utilities.naming import is_disc_folder, natural_key

from .config import ConfigManager
from .console import Console
from .errors import ConfigurationError
from .stages import StageMachine
from .state import AlbumJob, FindMode, Stage


def parse_strategy(value: Optional[str]) -> Strategy:
    """Strategy from a name ('duration') or its command letter ('d')"""
    value = (value or 'order').strip().lower()
    if value in STRATEGY_KEYS:
        return STRATEGY_KEYS[value]
    for strategy in Strategy:
        if strategy.value == value:
            return strategy
    raise ConfigurationError(f"Unknown strategy: {value}")


class AlbumResolver:
    """
    Runs the interactive resolver over every album folder under a path.

    One album failing is logged and counted; the batch moves on. Only a
    ConfigurationError aborts the run, and end of input ends it early.
    """

    def __init__(
        self,
        config: Optional[ConfigManager] = None,
        registry: Optional[SourceRegistry] = None,
        console: Optional[Console] = None,
        scanner: Optional[AudioFileScanner] = None,
        provider: Optional[str] = None,
        find_mode: Optional[str] = None,
        strategy: Optional[str] = None,
        non_interactive: Optional[bool] = None,
        preview: Optional[bool] = None,
        album_artist: Optional[str] = None
    ):
        """
        Args:
            config: ConfigManager (defaults to music-config.yaml)
            registry: Provider registry (built from config when omitted)
            console: Operator console
            scanner: Audio file scanner
            provider, find_mode, strategy, non_interactive, preview,
            album_artist: Command-line overrides of the config values
        """
        self.config = config or ConfigManager()
        self.registry = registry or SourceRegistry.from_config(self.config)
        self.console = console or Console()
        self.scanner = scanner or AudioFileScanner(self.config)

        self.provider = provider or self.registry.default
        if self.provider not in self.registry.available:
            raise ConfigurationError(f"Provider '{self.provider}' is not available")
        try:
            self.find_mode = FindMode.parse(find_mode or self.config.find_mode)
        except ValueError as e:
            raise ConfigurationError(str(e)) from e
        self.strategy = parse_strategy(strategy or self.config.default_strategy)
        self.non_interactive = self.config.non_interactive if non_interactive is None else non_interactive
        self.preview = self.config.preview if preview is None else preview
        self.album_artist = album_artist

        self.aligner = TrackAligner(self.config)
        self.committer = CommitEngine(self.config, scanner=self.scanner,
                                      confirm_retry=self.console.confirm_retry)
        self.machine = StageMachine(self.registry, self.aligner, self.committer,
                                    console=self.console, config=self.config,
                                    non_interactive=self.non_interactive)

        self.stats = {
            'albums_found': 0,
            'albums_done': 0,
            'albums_skipped': 0,
            'albums_failed': 0,
            'tracks_saved': 0,
            'processing_time': 0.0
        }

    def _log(self, message: str, level: str = "INFO"):
        """Log message with timestamp"""
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        print(f"[{timestamp}] [{level}] {message}")

    def process_path(self, path: str) -> Dict[str, Any]:
        """
        Resolve every album folder under path (main entry point).

        Args:
            path: An album folder, an artist folder or a library root

        Returns:
            Processing summary
        """
        start_time = time.time()
        root_path = Path(path)
        if not root_path.exists():
            return {'status': 'error', 'error': f'Path not found: {path}'}

        albums = self.discover_albums(root_path)
        self.stats['albums_found'] = len(albums)
        self._log(f"Found {len(albums)} album(s) under {path}")
        if not albums:
            return {'status': 'no_albums', 'message': 'No albums found to process'}

        results = []
        for i, album_path in enumerate(albums, 1):
            self._log(f"Album {i}/{len(albums)}: {album_path}")
            try:
                stage = self.process_album(album_path)
            except ConfigurationError:
                raise
            except EOFError:
                self._log("End of input, stopping batch", "WARNING")
                break
            except Exception as e:
                self._log(f"Failed {album_path}: {e}", "ERROR")
                self.stats['albums_failed'] += 1
                results.append({'path': str(album_path), 'status': 'failed', 'error': str(e)})
                continue

            if stage is Stage.DONE:
                self.stats['albums_done'] += 1
            else:
                self.stats['albums_skipped'] += 1
            results.append({'path': str(album_path), 'status': stage.value})

        self.stats['processing_time'] = time.time() - start_time
        self._log(f"Albums: {self.stats['albums_done']} done, {self.stats['albums_skipped']} skipped, "
                  f"{self.stats['albums_failed']} failed ({self.stats['processing_time']:.1f}s)")

        return {
            'status': 'success',
            'stats': dict(self.stats),
            'results': results
        }

    def process_album(self, album_path: Path) -> Stage:
        """Scan one album folder and run it through the stage machine"""
        records = self.scanner.scan(str(album_path))
        if not records:
            self._log(f"No readable audio in {album_path}", "WARNING")
            return Stage.SKIPPED

        job = AlbumJob.from_folder(
            str(album_path),
            records,
            tag_summary=self.scanner.summarize(records),
            provider=self.provider,
            find_mode=self.find_mode,
            stage=self.find_mode.entry_stage,
            strategy=self.strategy,
            preview=self.preview,
            album_artist_override=self.album_artist
        )
        try:
            stage = self.machine.run(job)
        finally:
            self.scanner.release(job.audio_files)
        self.stats['tracks_saved'] += job.saved_count
        return stage

    def discover_albums(self, root_path: Path) -> List[Path]:
        """
        Album folders under root_path: folders holding audio directly, or
        holding disc sub-folders (CD1, Disc 2) with audio.
        """
        if self._is_album(root_path):
            return [root_path]

        albums = []
        try:
            children = sorted((d for d in root_path.iterdir() if d.is_dir()),
                              key=lambda d: natural_key(d.name))
        except OSError as e:
            self._log(f"Cannot read {root_path}: {e}", "WARNING")
            return albums
        for child in children:
            albums.extend(self.discover_albums(child))
        return albums

    def _is_album(self, path: Path) -> bool:
        if self.scanner.has_audio(path):
            return True
        try:
            return any(d.is_dir() and is_disc_folder(d.name) and self.scanner.has_audio(d)
                       for d in path.iterdir())
        except OSError:
            return False
