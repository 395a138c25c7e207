"""Utility functions for dirsync."""

import fnmatch
import os
import re
from collections import Counter
from functools import lru_cache
from typing import Callable, Iterable, TypeVar

T = TypeVar("T")

# =============================================================================
# Constants for sync decisions
# =============================================================================

# Candidates sharing an extension are proposed as one batch above this count
GROUP_THRESHOLD: int = 10

# `analyse` prints per-extension counts instead of names above this count
ANALYSIS_LIST_THRESHOLD: int = 15

# Default maximum depth for `analyse` (-1 means unlimited)
DEFAULT_ANALYSIS_DEPTH: int = 10


# =============================================================================
# Glob pattern utilities
# =============================================================================


def is_glob_pattern(value: str) -> bool:
    """Check if a value contains glob wildcard characters.

    Args:
        value: String value to check

    Returns:
        True if the value contains *, ? or [

    Examples:
        >>> is_glob_pattern("*.txt")
        True
        >>> is_glob_pattern("docs/readme.md")
        False
    """
    return any(char in value for char in "*?[")


@lru_cache(maxsize=1024)
def glob_to_regex(pattern: str) -> "re.Pattern[str]":
    """Compile a single-segment glob pattern to a regular expression.

    Args:
        pattern: Glob pattern (e.g., "*.txt", "file[0-9].py")

    Returns:
        Compiled regular expression matching the whole name
    """
    return re.compile(fnmatch.translate(pattern))


def glob_match(pattern: str, name: str) -> bool:
    """Match a single path segment against a glob pattern.

    Matching is case-sensitive on every platform so that rules stored in a
    config file behave the same wherever the root is mounted.

    Args:
        pattern: Glob pattern
        name: Name to test

    Returns:
        True if the name matches

    Examples:
        >>> glob_match("*.txt", "notes.txt")
        True
        >>> glob_match("*.TXT", "notes.txt")
        False
    """
    return glob_to_regex(pattern).match(name) is not None


# =============================================================================
# Path utilities
# =============================================================================


def join_relative(relative_path: str, name: str) -> str:
    """Join a root-relative directory path and an entry name.

    Examples:
        >>> join_relative("", "a.txt")
        'a.txt'
        >>> join_relative("docs/api", "a.txt")
        'docs/api/a.txt'
    """
    if not relative_path:
        return name
    return f"{relative_path}/{name}"


def file_extension(name: str) -> str:
    """Return the extension of a file name including the dot.

    Names starting with a dot and without another dot have no extension.

    Examples:
        >>> file_extension("photo.JPG")
        '.JPG'
        >>> file_extension("archive.tar.gz")
        '.gz'
        >>> file_extension(".bashrc")
        ''
    """
    return os.path.splitext(name)[1]


# =============================================================================
# Collection utilities
# =============================================================================


def group_by(items: Iterable[T], key: Callable[[T], str]) -> dict[str, list[T]]:
    """Group items by a computed key.

    Groups appear in the order their key is first seen and items keep
    their original order within a group.

    Examples:
        >>> group_by(["a.txt", "b.jpg", "c.txt"], file_extension)
        {'.txt': ['a.txt', 'c.txt'], '.jpg': ['b.jpg']}
    """
    groups: dict[str, list[T]] = {}
    for item in items:
        groups.setdefault(key(item), []).append(item)
    return groups


def count_by(items: Iterable[T], key: Callable[[T], str]) -> dict[str, int]:
    """Count items per computed key, most common first."""
    return dict(Counter(key(item) for item in items).most_common())
