"""
Naming helpers - folder-name parsing and filesystem-safe names

Used by the scanner (deriving year/album from a folder), the sources
(cleaning search terms) and the folder mover (building target paths).
"""

import re
from typing import List, Optional, Tuple, Union

# Characters not allowed in Windows filenames
INVALID_CHARS = ['<', '>', ':', '"', '/', '\\', '|', '?', '*']

DISC_FOLDER_PATTERN = re.compile(r'^(?:cd|disc|disk)\s*[-_.]?\s*\d+$', re.IGNORECASE)

# "2001 - Album", "2001. Album", "[2001] Album"
_YEAR_PREFIX = re.compile(r'^[\[\(]?((?:19|20)\d{2})[\]\)]?\s*[-._]?\s*(.+)$')
# "Album (2001)", "Album [2001]", "Album - 2001"
_YEAR_SUFFIX = re.compile(r'^(.+?)\s*(?:[\[\(]((?:19|20)\d{2})[\]\)]|-\s*((?:19|20)\d{2}))$')


def make_windows_safe(name: str, colon_replacement: str = ' -', max_length: int = 200) -> str:
    """Make a single path segment safe for Windows (and everything else)."""
    if not name:
        return ''

    name = name.replace(':', colon_replacement)

    for char in INVALID_CHARS:
        if char != ':':
            name = name.replace(char, '')

    name = ' '.join(name.split())

    # Trailing dots and spaces are not allowed on Windows
    name = name.rstrip('. ')

    if len(name) > max_length:
        name = name[:max_length].rstrip('. ')

    return name


def parse_folder_name(folder_name: str) -> Tuple[Optional[str], str]:
    """
    Split an album folder name into (year, album).

    >>> parse_folder_name("2001 - Discovery")
    ('2001', 'Discovery')
    >>> parse_folder_name("Discovery (2001)")
    ('2001', 'Discovery')
    """
    name = ' '.join(folder_name.replace('_', ' ').split())

    match = _YEAR_PREFIX.match(name)
    if match and match.group(2).strip():
        return match.group(1), match.group(2).strip()

    match = _YEAR_SUFFIX.match(name)
    if match:
        year = match.group(2) or match.group(3)
        return year, match.group(1).strip()

    return None, name


def clean_title(title: str) -> str:
    """
    Clean album title for better search results.

    Removes:
    - Disc indicators (Disc 1, CD 1, etc.)
    - Brackets with edition markers [Deluxe Edition]
    - Underscores (converted to spaces)
    """
    title = title.replace("_", " ")

    title = re.sub(r'\s*[\[\(]?(?:Disc|CD|Disk)\s*\d+[\]\)]?\s*$', '', title, flags=re.IGNORECASE)

    title = re.sub(r'\s*\[[^\]]*(?:Edition|Version|Deluxe|Remaster)[^\]]*\]', '', title, flags=re.IGNORECASE)

    return ' '.join(title.split()).strip()


def is_disc_folder(name: str) -> bool:
    """True for folder names like 'CD1', 'Disc 2', 'disk-3'."""
    return bool(DISC_FOLDER_PATTERN.match(name.strip()))


def natural_key(text: str) -> List[Union[int, str]]:
    """Sort key that orders 'track 2' before 'track 10'."""
    return [int(part) if part.isdigit() else part.lower()
            for part in re.split(r'(\d+)', text)]


def extract_year(date_str: Optional[str]) -> Optional[str]:
    """Extract a 4-digit year from a date string"""
    if date_str:
        match = re.match(r'\s*(\d{4})', str(date_str))
        if match:
            return match.group(1)
    return None
