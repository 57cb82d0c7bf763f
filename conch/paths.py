"""Filesystem path completion for string literals.

complete_path() is the algorithm the completer runs on a literal's value;
item_path_completer() and dir_path_completer() wrap it for callers that
want names relative to the typed directory plus the trailing fragment.
Nothing here is cached: the filesystem can change between keystrokes.
"""

from __future__ import annotations

import logging
import os
import re

logger = logging.getLogger(__name__)

_REPEATED_SEP = re.compile(re.escape(os.sep) + "{2,}")


def normalize_path(value: str) -> str:
    """Expand a leading ~ and collapse repeated separators.

    '..' is left alone: 'file.md/../' must still list through file.md.
    """
    if value.startswith("~"):
        value = os.path.expanduser(value)
    return _REPEATED_SEP.sub(os.sep, value)


def trailing_fragment(line: str) -> str:
    """The part of line the user is still typing: '' right after a separator."""
    if line.endswith(os.sep):
        return ""
    return os.path.basename(line)


def _list_dir(dirname: str) -> list[str]:
    """Entries of dirname in name order, [] if it cannot be listed."""
    try:
        return sorted(os.listdir(dirname or os.curdir))
    except OSError as exc:
        logger.debug("cannot list %r: %s", dirname, exc)
        return []


def complete_path(line: str, *, dirs_only: bool = False) -> list[str]:
    """Candidates for line, each joined onto the directory as typed.

    A trailing separator lists line itself; otherwise line's parent is
    listed and its basename is the match prefix. A single directory hit
    gets a trailing separator so the next completion descends into it.
    """
    is_dir = line.endswith(os.sep)
    dirname = line if is_dir else os.path.dirname(line)
    prefix = "" if is_dir else os.path.basename(line)

    hits = [entry for entry in _list_dir(dirname) if entry.startswith(prefix)]
    if dirs_only:
        hits = [hit for hit in hits if os.path.isdir(os.path.join(dirname, hit))]

    if len(hits) == 1 and os.path.isdir(os.path.join(dirname, hits[0])):
        hits[0] = hits[0] + os.sep

    return [os.path.join(dirname, hit) for hit in hits]


def _relative_completer(line: str | None, dirs_only: bool) -> tuple[list[str], str] | None:
    if line is None:
        return None
    path = normalize_path(line)
    head = path[: path.rfind(os.sep) + 1]
    names = [candidate[len(head):] for candidate in complete_path(path, dirs_only=dirs_only)]
    return names, trailing_fragment(path)


def item_path_completer(line: str | None) -> tuple[list[str], str] | None:
    """(entry names under the typed directory, trailing fragment).

    item_path_completer('./fil') -> (['file1.md', 'file2.md'], 'fil')
    item_path_completer('dire1') -> (['dire1/'], 'dire1')
    """
    return _relative_completer(line, dirs_only=False)


def dir_path_completer(line: str | None) -> tuple[list[str], str] | None:
    """Like item_path_completer() but only directories are offered."""
    return _relative_completer(line, dirs_only=True)
