"""Glob rules for excluding and skipping entries during sync.

Patterns are matched against root-relative paths using forward slashes.
Each path segment is matched on its own, so ``*`` never crosses a
separator: ``docs/*.txt`` matches ``docs/a.txt`` but neither
``a.txt`` nor ``docs/old/a.txt``. A ``**`` segment matches any number of
whole segments, including none.
"""

from typing import Iterable

from ..utils import file_extension, glob_match, is_glob_pattern, join_relative


def normalize_pattern(pattern: str) -> str:
    """Normalize a pattern to forward slashes without leading/trailing slashes.

    Examples:
        >>> normalize_pattern("docs\\\\*.txt")
        'docs/*.txt'
        >>> normalize_pattern("./build/")
        'build'
    """
    pattern = pattern.replace("\\", "/")
    while pattern.startswith("./"):
        pattern = pattern[2:]
    return pattern.strip("/")


def _match_segments(pattern_parts: list[str], path_parts: list[str]) -> bool:
    if not pattern_parts:
        return not path_parts

    head, rest = pattern_parts[0], pattern_parts[1:]
    if head == "**":
        return any(
            _match_segments(rest, path_parts[index:])
            for index in range(len(path_parts) + 1)
        )

    if not path_parts:
        return False
    return glob_match(head, path_parts[0]) and _match_segments(rest, path_parts[1:])


def pattern_matches(pattern: str, path: str) -> bool:
    """Check whether a single pattern matches a root-relative path."""
    pattern = normalize_pattern(pattern)
    path = normalize_pattern(path)
    if not is_glob_pattern(pattern):
        return pattern == path
    return _match_segments(pattern.split("/"), path.split("/"))


def matching_patterns(path: str, patterns: Iterable[str]) -> list[str]:
    """Return every pattern that matches the path."""
    return [pattern for pattern in patterns if pattern_matches(pattern, path)]


def matches(path: str, patterns: Iterable[str]) -> bool:
    """Check whether any of the patterns matches the path.

    Args:
        path: Root-relative path using forward slashes
        patterns: Glob patterns

    Returns:
        True if at least one pattern matches
    """
    return any(pattern_matches(pattern, path) for pattern in patterns)


def extension_pattern(relative_dir: str, name: str) -> str:
    """Build the wildcard pattern for all files sharing an extension in a folder.

    Examples:
        >>> extension_pattern("photos/2023", "img_001.jpg")
        'photos/2023/*.jpg'
        >>> extension_pattern("", "notes.txt")
        '*.txt'
    """
    extension = escape_pattern(file_extension(name))
    return join_relative(escape_pattern(relative_dir), f"*{extension}")


def escape_pattern(path: str) -> str:
    """Escape glob characters so a literal path only matches itself.

    Examples:
        >>> escape_pattern("drafts/[old] notes?.txt")
        'drafts/[[]old] notes[?].txt'
    """
    return "".join(f"[{char}]" if char in "*?[" else char for char in path)
