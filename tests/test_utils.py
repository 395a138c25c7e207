"""Unit tests for utility functions."""

import re

from dirsync.utils import (
    count_by,
    file_extension,
    glob_match,
    glob_to_regex,
    group_by,
    is_glob_pattern,
    join_relative,
)


class TestIsGlobPattern:
    """Tests for is_glob_pattern function."""

    def test_asterisk_is_glob(self):
        """Test that * is recognized as a glob pattern."""
        assert is_glob_pattern("*.txt") is True
        assert is_glob_pattern("file*") is True
        assert is_glob_pattern("*") is True

    def test_question_mark_is_glob(self):
        """Test that ? is recognized as a glob pattern."""
        assert is_glob_pattern("file?.txt") is True
        assert is_glob_pattern("???") is True

    def test_bracket_is_glob(self):
        """Test that [] is recognized as a glob pattern."""
        assert is_glob_pattern("[abc].txt") is True
        assert is_glob_pattern("file[0-9].txt") is True

    def test_plain_names_are_not_glob(self):
        """Test that plain filenames and paths are not glob patterns."""
        assert is_glob_pattern("file.txt") is False
        assert is_glob_pattern("folder/file.txt") is False
        assert is_glob_pattern("") is False


class TestGlobMatch:
    """Tests for glob_match function."""

    def test_asterisk_matches_any_sequence(self):
        """Test that * matches any sequence of characters."""
        assert glob_match("*.txt", "file.txt") is True
        assert glob_match("*.txt", "file.py") is False
        assert glob_match("bench*", "benchmark.py") is True
        assert glob_match("*test*", "my_test_file.py") is True

    def test_question_mark_matches_single_char(self):
        """Test that ? matches exactly one character."""
        assert glob_match("file?.txt", "file1.txt") is True
        assert glob_match("file?.txt", "file12.txt") is False
        assert glob_match("file?.txt", "file.txt") is False

    def test_bracket_matches_character_set(self):
        """Test that [seq] and [!seq] match character sets."""
        assert glob_match("file[0-9].txt", "file1.txt") is True
        assert glob_match("file[0-9].txt", "filea.txt") is False
        assert glob_match("[!abc].txt", "d.txt") is True
        assert glob_match("[!abc].txt", "a.txt") is False

    def test_case_sensitivity(self):
        """Test that glob matching is case-sensitive."""
        assert glob_match("*.TXT", "file.TXT") is True
        assert glob_match("*.TXT", "file.txt") is False

    def test_escaped_bracket_matches_literally(self):
        """Test that [[] matches a literal bracket."""
        assert glob_match("[[]draft].txt", "[draft].txt") is True
        assert glob_match("[[]draft].txt", "d.txt") is False

    def test_empty_pattern_and_name(self):
        """Test empty pattern and name handling."""
        assert glob_match("", "") is True
        assert glob_match("*", "") is True
        assert glob_match("", "file") is False


class TestGlobToRegex:
    """Tests for glob_to_regex function."""

    def test_compiles_to_regex(self):
        """Test that glob pattern compiles to regex."""
        assert isinstance(glob_to_regex("*.txt"), re.Pattern)

    def test_regex_matches_whole_name(self):
        """Test that compiled regex only matches whole names."""
        regex = glob_to_regex("*.txt")
        assert regex.match("file.txt") is not None
        assert regex.match("file.txt.bak") is None

    def test_compiled_patterns_are_cached(self):
        """Test that the same pattern returns the same compiled object."""
        assert glob_to_regex("*.jpg") is glob_to_regex("*.jpg")


class TestPathHelpers:
    """Tests for path helper functions."""

    def test_join_relative_at_root(self):
        assert join_relative("", "a.txt") == "a.txt"

    def test_join_relative_nested(self):
        assert join_relative("docs/api", "a.txt") == "docs/api/a.txt"

    def test_file_extension(self):
        """Test extension extraction follows the last dot."""
        assert file_extension("photo.JPG") == ".JPG"
        assert file_extension("archive.tar.gz") == ".gz"
        assert file_extension("README") == ""
        assert file_extension(".bashrc") == ""


class TestGrouping:
    """Tests for group_by and count_by."""

    def test_group_by_keeps_first_seen_order(self):
        """Test groups appear in first-seen order with item order preserved."""
        groups = group_by(["b.txt", "a.jpg", "c.txt", "d"], file_extension)

        assert list(groups) == [".txt", ".jpg", ""]
        assert groups[".txt"] == ["b.txt", "c.txt"]
        assert groups[""] == ["d"]

    def test_group_by_empty(self):
        assert group_by([], file_extension) == {}

    def test_count_by_most_common_first(self):
        counts = count_by(["a.txt", "b.jpg", "c.jpg"], file_extension)

        assert counts == {".jpg": 2, ".txt": 1}
        assert list(counts) == [".jpg", ".txt"]
