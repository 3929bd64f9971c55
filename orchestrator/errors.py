#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Error types shared by the resolver.

Only ConfigurationError stops a whole run. Everything else is recovered
inside the album that raised it.
"""


class ResolverError(RuntimeError):
    """Base error for the album resolver."""


class ConfigurationError(ResolverError):
    """Missing module, credential or setting required for the run."""


class FolderLockedError(ResolverError):
    """Album folder (or a file in it) is held open by another process."""

    def __init__(self, path: str, message: str = ""):
        self.path = path
        super().__init__(message or f"Folder is locked: {path}")


class UnsupportedAudioError(ResolverError):
    """File could not be opened by the tag library."""


class CommandError(ResolverError):
    """Operator input that can't be parsed or is out of range."""
