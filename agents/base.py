#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Base class for processing agents.
All agents (Scanner, Aligner, Committer) inherit from this.
"""

from abc import ABC, abstractmethod
from typing import Any


class BaseAgent(ABC):
    """
    Abstract base class for processing agents.

    Agents are responsible for specific tasks in the album workflow:
    - Scanner: Enumerate local audio files and read their tags
    - Aligner: Pair local files with provider tracks
    - Committer: Write tags and relocate the album folder
    """

    def __init__(self, config=None):
        """
        Initialize agent with configuration.

        Args:
            config: ConfigManager instance (None uses built-in defaults)
        """
        self.config = config

    @property
    @abstractmethod
    def name(self) -> str:
        """Agent name identifier"""
        pass

    def log(self, message: str) -> None:
        """Log a message with agent name prefix"""
        print(f"[{self.name}] {message}")

    def log_warning(self, message: str) -> None:
        """Log a warning message"""
        print(f"[{self.name}] WARNING: {message}")

    def log_error(self, message: str) -> None:
        """Log an error message"""
        print(f"[{self.name}] ERROR: {message}")

    def get_config(self, key: str, default: Any = None) -> Any:
        """Get configuration value"""
        if self.config is None:
            return default
        return self.config.get(key, default)
