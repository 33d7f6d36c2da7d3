"""
Include/exclude pattern matching for backup items.

Patterns are shell globs matched against the whole path relative to the
item source. Wildcards never cross a path separator, so "*.pdf" matches
"a.pdf" but not "docs/a.pdf". A pattern also names a directory: every path
underneath a directory matched by a pattern is matched too. Exclusion always
wins over inclusion.
"""

import os
import re
from fnmatch import fnmatchcase
from typing import List, Sequence


_SEPARATORS = re.escape(os.sep + (os.altsep or ''))


def _split(path: str) -> List[str]:
    return [part for part in re.split(f'[{_SEPARATORS}]', path) if part not in ('', '.')]


def _match_segments(path_parts: List[str], pattern_parts: List[str]) -> bool:
    if len(path_parts) != len(pattern_parts):
        return False
    return all(fnmatchcase(part, pattern) for part, pattern in zip(path_parts, pattern_parts))


def matches_pattern(relative_path: str, pattern: str) -> bool:
    """
    Check a relative path against a single pattern.

    The path matches when the pattern matches the entire path, or when it
    matches one of the path's parent directories (the path lies underneath a
    directory named by the pattern). Parents are compared on whole path
    segments, so "Documents" never matches "Documents2/notes.txt".

    Args:
        relative_path: Path relative to the walk root
        pattern: Glob pattern; a trailing separator is ignored

    Returns:
        True if the path matches
    """
    path_parts = _split(relative_path)
    pattern_parts = _split(pattern)

    if not path_parts or not pattern_parts:
        return False

    # Direct match, or the first len(pattern) segments name a parent directory
    if len(pattern_parts) > len(path_parts):
        return False
    return _match_segments(path_parts[:len(pattern_parts)], pattern_parts)


def _matches_any(relative_path: str, patterns: Sequence[str]) -> bool:
    return any(matches_pattern(relative_path, pattern) for pattern in patterns)


def should_include(relative_path: str, include: Sequence[str] = (), exclude: Sequence[str] = ()) -> bool:
    """
    Decide whether relative_path takes part in a copy.

    Args:
        relative_path: Path relative to the item source
        include: Glob patterns; empty means everything is a candidate
        exclude: Glob patterns; any match rejects the path

    Returns:
        True if the path should be copied
    """
    if include and not _matches_any(relative_path, include):
        return False

    if exclude and _matches_any(relative_path, exclude):
        return False

    return True
