#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Operator command grammar.

Turns one line of input into a Command for the current stage. Parsing is
pure: nothing here touches the job or the providers.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Optional

from agents.aligner import STRATEGY_KEYS
from .errors import CommandError
from .state import Stage


class Action(Enum):
    SELECT = "select"
    BY_ID = "id"
    PROVIDER = "provider"
    FIND_MODE = "find_mode"
    NEXT_PAGE = "next_page"
    PREV_PAGE = "prev_page"
    BACK = "back"
    SKIP = "skip"
    QUERY = "query"
    RETRY = "retry"
    COMBINE = "combine"
    ALBUM_ARTIST = "album_artist"
    STRATEGY = "strategy"
    REVERSE = "reverse"
    SAVE_SELECTED = "save_selected"
    SAVE_ALL = "save_all"
    RENAME = "rename"
    PREVIEW = "preview"
    REVIEW = "review"
    MARK = "mark"
    ASSIGN = "assign"
    HELP = "help"
    NONE = "none"
    INVALID = "invalid"


@dataclass(frozen=True)
class Command:
    action: Action
    value: Any = None
    text: str = ""


SKIP_TOKENS = {'x', 'xip'}
BACK_TOKENS = {'b', 'pr'}

_ASSIGN = re.compile(r'^(\d+)\s*=\s*(\d+|-)?$')

ShortcutResolver = Callable[[str], Optional[str]]


def _common(token: str, lowered: str, shortcut: ShortcutResolver) -> Optional[Command]:
    """Tokens shared by every stage"""
    if lowered in SKIP_TOKENS:
        return Command(Action.SKIP, text=token)
    if lowered == '?':
        return Command(Action.HELP, text=token)
    if lowered == '/mode':
        return Command(Action.FIND_MODE, text=token)
    provider = shortcut(lowered)
    if provider:
        return Command(Action.PROVIDER, provider, text=token)
    if lowered.startswith('aa:'):
        name = token[3:].strip()
        return Command(Action.ALBUM_ARTIST, name or None, text=token)
    return None


def parse_search_command(token: str, stage: Stage, shortcut: ShortcutResolver,
                         recovery: bool = False) -> Command:
    """
    Parse input at QUICK, ARTIST or ALBUM.

    Args:
        token: Raw operator input
        stage: Current stage
        shortcut: Maps a token to a provider name (None if not a shortcut)
        recovery: The stage has no candidates (retry menu is showing)
    """
    token = (token or '').strip()
    lowered = token.lower()

    common = _common(token, lowered, shortcut)
    if common:
        return common

    if recovery and lowered == 'r':
        return Command(Action.RETRY, text=token)
    if not token:
        return Command(Action.RETRY if recovery else Action.SELECT, None if recovery else 1, text=token)
    if token.isdigit():
        return Command(Action.SELECT, int(token), text=token)
    if lowered.startswith('id:'):
        value = token[3:].strip()
        if not value:
            return Command(Action.INVALID, "id: needs a value", text=token)
        return Command(Action.BY_ID, value, text=token)
    if lowered == '>':
        return Command(Action.NEXT_PAGE, text=token)
    if lowered == '<':
        return Command(Action.PREV_PAGE, text=token)
    if stage is Stage.ALBUM and lowered in BACK_TOKENS:
        return Command(Action.BACK, text=token)
    if stage in (Stage.ALBUM, Stage.QUICK) and not recovery:
        if lowered == 'c':
            return Command(Action.COMBINE, None, text=token)
        if lowered.startswith('c ') and _looks_like_range(token[2:]):
            return Command(Action.COMBINE, token[2:].strip(), text=token)

    return Command(Action.QUERY, token, text=token)


def parse_track_command(token: str, shortcut: ShortcutResolver) -> Command:
    """Parse input at TRACK (stage C)"""
    token = (token or '').strip()
    lowered = token.lower()

    if not token:
        return Command(Action.NONE, text=token)

    common = _common(token, lowered, shortcut)
    if common:
        return common

    if lowered in STRATEGY_KEYS:
        return Command(Action.STRATEGY, STRATEGY_KEYS[lowered], text=token)
    if lowered == 'r':
        return Command(Action.REVERSE, text=token)
    if lowered == 'sa':
        return Command(Action.SAVE_ALL, text=token)
    if lowered == 'st' or lowered.startswith('st '):
        range_text = token[2:].strip()
        if not range_text:
            return Command(Action.INVALID, "st needs a range, e.g. 'st 1-3'", text=token)
        return Command(Action.SAVE_SELECTED, range_text, text=token)
    if lowered == 'rn':
        return Command(Action.RENAME, text=token)
    if lowered == 'w':
        return Command(Action.PREVIEW, text=token)
    if lowered == 'rm':
        return Command(Action.REVIEW, text=token)
    if lowered == 'mk' or lowered.startswith('mk '):
        range_text = token[2:].strip()
        if not range_text:
            return Command(Action.INVALID, "mk needs a range, e.g. 'mk 2,5'", text=token)
        return Command(Action.MARK, range_text, text=token)
    if lowered in BACK_TOKENS:
        return Command(Action.BACK, text=token)

    if lowered.startswith('u ') and token[2:].strip().isdigit():
        return Command(Action.ASSIGN, (int(token[2:].strip()), None), text=token)

    match = _ASSIGN.match(token)
    if match:
        track = match.group(2)
        return Command(Action.ASSIGN, (int(match.group(1)), None if track in (None, '-') else int(track)),
                       text=token)

    return Command(Action.INVALID, f"Unrecognized command: {token}", text=token)


def _looks_like_range(text: str) -> bool:
    return bool(re.fullmatch(r'\s*(\*|all|[\d\s,\-]+)\s*', text, re.IGNORECASE))


def parse_range(text: str, count: int) -> List[int]:
    """
    Parse a 1-based selection into sorted 0-based indices.

    Accepts "3", "2-4", "1,3,5-6", "*" and "all".

    Raises:
        CommandError: unparseable text or an index outside 1..count
    """
    text = (text or '').strip().lower()
    if not text:
        raise CommandError("Empty range")
    if text in ('*', 'all'):
        return list(range(count))

    indices = set()
    for part in text.split(','):
        part = part.strip()
        if not part:
            continue
        if '-' in part:
            start_text, _, end_text = part.partition('-')
            try:
                start, end = int(start_text), int(end_text)
            except ValueError:
                raise CommandError(f"Bad range: {part}")
            if start > end:
                start, end = end, start
            numbers = range(start, end + 1)
        else:
            try:
                numbers = [int(part)]
            except ValueError:
                raise CommandError(f"Bad index: {part}")
        for number in numbers:
            if number < 1 or number > count:
                raise CommandError(f"Index {number} out of range 1-{count}")
            indices.add(number - 1)

    if not indices:
        raise CommandError("Empty range")
    return sorted(indices)
