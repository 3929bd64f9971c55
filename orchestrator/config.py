#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Configuration management for the album resolver.
Loads YAML config and credentials with environment variable support.
"""

import os
import yaml
from pathlib import Path
from typing import Any, Dict, Optional


class ConfigManager:
    """
    Configuration manager that loads settings from YAML files.
    Supports environment variable expansion for sensitive values.
    """

    # Env vars consulted when credentials.yaml has no value
    CREDENTIAL_ENV = {
        'spotify.client_id': 'SPOTIFY_CLIENT_ID',
        'spotify.client_secret': 'SPOTIFY_CLIENT_SECRET',
        'discogs.token': 'DISCOGS_TOKEN',
        'musicbrainz.user_agent': 'MUSICBRAINZ_USER_AGENT',
    }

    def __init__(self, config_path: str = "music-config.yaml",
                 credentials_path: Optional[str] = None,
                 overrides: Optional[Dict[str, Any]] = None):
        self.config_path = Path(config_path)
        if credentials_path:
            self.credentials_path = Path(credentials_path)
        else:
            self.credentials_path = self.config_path.parent / "credentials.yaml"
        self._config: Dict[str, Any] = {}
        self._credentials: Dict[str, Any] = {}
        self.load()

        for key, value in (overrides or {}).items():
            self.set(key, value)

    def load(self) -> None:
        """Load configuration and credentials files"""
        defaults = self._default_config()

        if self.config_path.exists():
            with open(self.config_path, 'r', encoding='utf-8') as f:
                loaded = yaml.safe_load(f) or {}
            self._config = self._merge(defaults, loaded)
        else:
            print(f"[Config] Warning: Config file not found: {self.config_path}, using defaults")
            self._config = defaults

        # Load credentials (optional)
        if self.credentials_path.exists():
            with open(self.credentials_path, 'r', encoding='utf-8') as f:
                self._credentials = yaml.safe_load(f) or {}

    def _default_config(self) -> Dict[str, Any]:
        """Return default configuration"""
        return {
            'library': {
                'root': None,
            },
            'sources': {
                'default': 'musicbrainz',
                'shortcuts': {
                    'musicbrainz': '/mb',
                    'spotify': '/sp',
                    'discogs': '/dg',
                    'itunes': '/it',
                },
            },
            'resolver': {
                'find_mode': 'quick',
                'page_size': 10,
                'non_interactive': False,
                'preview': False,
                'default_strategy': 'order',
            },
            'matching': {
                'duration_tolerance_ms': 2000,
                'duration_window_ms': 30000,
                'duration_weight': 0.6,
                'title_weight': 0.4,
                'high_threshold': 80,
                'low_threshold': 50,
            },
            'naming': {
                'replace_colon_with': ' -',
                'folder_format': '{year} - {album}',
                'max_path_length': 250,
            },
            'commit': {
                'max_move_attempts': 10,
            },
        }

    def _merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep-merge override into a copy of base"""
        merged = dict(base)
        for key, value in override.items():
            if isinstance(value, dict) and isinstance(merged.get(key), dict):
                merged[key] = self._merge(merged[key], value)
            else:
                merged[key] = value
        return merged

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get config value with dot notation.

        Examples:
            config.get('api.musicbrainz.rate_limit')
            config.get('resolver.page_size')

        Environment variables are expanded if value is like ${VAR_NAME}
        """
        keys = key.split('.')
        value = self._config

        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
            else:
                return default
            if value is None:
                return default

        # Expand environment variables
        if isinstance(value, str) and value.startswith('${') and value.endswith('}'):
            env_var = value[2:-1]
            return os.environ.get(env_var, default)

        return value

    def set(self, key: str, value: Any) -> None:
        """Set a config value with dot notation (used for CLI overrides)"""
        keys = key.split('.')
        target = self._config
        for k in keys[:-1]:
            target = target.setdefault(k, {})
        target[keys[-1]] = value

    def get_credential(self, key: str) -> Optional[str]:
        """
        Get credential value with dot notation.

        Examples:
            config.get_credential('spotify.client_id')
            config.get_credential('discogs.token')
        """
        keys = key.split('.')
        value = self._credentials

        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
            else:
                value = None
                break

        if value:
            return value

        env_var = self.CREDENTIAL_ENV.get(key)
        return os.environ.get(env_var) if env_var else None

    def get_api_settings(self, source: str) -> Dict[str, Any]:
        """Get API settings for a specific source"""
        return self.get(f'api.{source}', {}) or {}

    @property
    def library_root(self) -> Optional[str]:
        return self.get('library.root')

    @property
    def default_source(self) -> str:
        return self.get('sources.default', 'musicbrainz')

    @property
    def source_shortcuts(self) -> Dict[str, str]:
        return self.get('sources.shortcuts', {}) or {}

    @property
    def find_mode(self) -> str:
        return self.get('resolver.find_mode', 'quick')

    @property
    def page_size(self) -> int:
        return int(self.get('resolver.page_size', 10))

    @property
    def non_interactive(self) -> bool:
        return bool(self.get('resolver.non_interactive', False))

    @property
    def preview(self) -> bool:
        return bool(self.get('resolver.preview', False))

    @property
    def default_strategy(self) -> str:
        return self.get('resolver.default_strategy', 'order')

    @property
    def max_move_attempts(self) -> int:
        return int(self.get('commit.max_move_attempts', 10))

    def __repr__(self) -> str:
        return f"ConfigManager(config={self.config_path}, credentials={self.credentials_path})"
