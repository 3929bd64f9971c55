"""
Folder Mover - Move/rename an album folder to <root>/<Artist>/<Year - Album>

Renames in place when the target does not exist yet, otherwise merges the
files into the existing target folder and removes the emptied source.
"""

import errno
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from orchestrator.errors import FolderLockedError, ResolverError
from utilities.naming import make_windows_safe

# Windows: ERROR_SHARING_VIOLATION, ERROR_LOCK_VIOLATION
_WINDOWS_LOCK_ERRORS = {32, 33}
_LOCK_ERRNOS = {errno.EACCES, errno.EBUSY, errno.ETXTBSY, errno.EPERM}


def is_lock_error(error: OSError) -> bool:
    """True when an OSError means another process holds the file/folder"""
    if isinstance(error, PermissionError):
        return True
    if getattr(error, 'winerror', None) in _WINDOWS_LOCK_ERRORS:
        return True
    return error.errno in _LOCK_ERRNOS


@dataclass
class MoveResult:
    success: bool
    new_album_path: str
    moved: bool = False
    message: str = ""


class FolderMover:
    """Relocate album folders using sanitized artist/year/album segments."""

    def __init__(
        self,
        root: Optional[str] = None,
        folder_format: str = "{year} - {album}",
        colon_replacement: str = " -",
        max_path_length: int = 250
    ):
        """
        Args:
            root: Library root; defaults to the album's grandparent folder
            folder_format: Album folder name template ({year}, {album}, {artist})
            colon_replacement: What ':' becomes in folder names
            max_path_length: Longest target path accepted
        """
        self.root = Path(root) if root else None
        self.folder_format = folder_format
        self.colon_replacement = colon_replacement
        self.max_path_length = max_path_length

    def target_path(self, album_path: str, artist: str, year: Optional[str], album: str) -> Path:
        """Compute where the album folder should live"""
        source = Path(album_path)
        root = self.root or source.parent.parent

        safe_artist = self._safe(artist) or source.parent.name
        safe_album = self._safe(album) or source.name

        if year:
            folder = self.folder_format.format(year=year, album=safe_album, artist=safe_artist)
        else:
            folder = safe_album
        folder = self._safe(folder) or safe_album

        return root / safe_artist / folder

    def move(self, album_path: str, artist: str, year: Optional[str], album: str) -> MoveResult:
        """
        Move the album folder.

        Raises:
            FolderLockedError: a file or the folder is in use
        """
        source = Path(album_path)
        target = self.target_path(album_path, artist, year, album)

        if not source.exists():
            return MoveResult(False, str(source), message=f"Source not found: {source}")

        if target.resolve() == source.resolve():
            return MoveResult(True, str(source), message="Folder name already correct")

        if len(str(target)) > self.max_path_length:
            return MoveResult(False, str(source), message=f"Path too long: {len(str(target))} chars")

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            if target.exists():
                self._merge_into(source, target)
            else:
                shutil.move(str(source), str(target))
        except OSError as e:
            if is_lock_error(e):
                raise FolderLockedError(str(source), f"Folder is in use: {source} ({e})") from e
            raise

        return MoveResult(True, str(target), moved=True, message=f"Moved to {target}")

    def _merge_into(self, source: Path, target: Path) -> None:
        """Move every entry of source into an existing target"""
        collisions = [item.name for item in source.iterdir() if (target / item.name).exists()]
        if collisions:
            raise ResolverError(
                f"Target {target} already has: {', '.join(sorted(collisions)[:5])}"
            )

        for item in list(source.iterdir()):
            shutil.move(str(item), str(target / item.name))

        # Clean up empty source folder
        if not any(source.iterdir()):
            source.rmdir()

    def _safe(self, name: Optional[str]) -> str:
        return make_windows_safe(name or "", self.colon_replacement)
