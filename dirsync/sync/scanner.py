"""Directory scanning utilities for sync operations."""

import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional

from ..utils import join_relative
from .report import ERROR_REPORT_FILE_NAME
from .rules import matching_patterns
from .state import CONFIG_FILE_NAME

logger = logging.getLogger(__name__)

SYSTEM_FILES = frozenset({"desktop.ini", "Thumbs.db", ".DS_Store"})
SYSTEM_FOLDERS = frozenset(
    {
        "System Volume Information",
        "$RECYCLE.BIN",
        ".Trashes",
        ".Spotlight-V100",
        ".fseventsd",
    }
)
SYSTEM_NAMES = (
    SYSTEM_FILES | SYSTEM_FOLDERS | {CONFIG_FILE_NAME, ERROR_REPORT_FILE_NAME}
)


@dataclass
class TreeSnapshot:
    """One directory of one root as seen during one run.

    Snapshots are mutated in place while syncing: entries copied in from
    sibling roots are added to ``files`` and ``children`` without
    re-reading the disk.
    """

    name: str
    """Base name of the directory"""

    root_id: str
    """Identity of the root this snapshot belongs to"""

    absolute_path: Path
    """Absolute path of the directory"""

    relative_path: str = ""
    """Path relative to the root, using forward slashes"""

    files: set[str] = field(default_factory=set)
    """File names present after exclusion filtering"""

    children: dict[str, "TreeSnapshot"] = field(default_factory=dict)
    """Subdirectory snapshots keyed by folder name"""

    root_index: int = 0
    """Position of the root on the command line"""

    fully_synced: bool = False
    """Set once the engine has processed this snapshot"""

    @property
    def folders(self):
        """Folder names present after exclusion filtering."""
        return self.children.keys()

    def path_of(self, name: str) -> str:
        """Root-relative path of an entry in this directory."""
        return join_relative(self.relative_path, name)

    def add_file(self, name: str) -> None:
        """Record a file that now exists in this directory."""
        self.files.add(name)

    def add_folder(self, name: str) -> "TreeSnapshot":
        """Record a newly created, empty subdirectory.

        Returns:
            The child snapshot (existing one if already present)
        """
        if name not in self.children:
            self.children[name] = TreeSnapshot(
                name=name,
                root_id=self.root_id,
                absolute_path=self.absolute_path / name,
                relative_path=self.path_of(name),
                root_index=self.root_index,
            )
        return self.children[name]

    def iter_tree(self) -> Iterator["TreeSnapshot"]:
        """Iterate over this snapshot and all descendants, depth first."""
        yield self
        for child in self.children.values():
            yield from child.iter_tree()

    def count(self) -> tuple[int, int]:
        """Count files and folders below this snapshot.

        Returns:
            (files, folders) tuple
        """
        files = folders = 0
        for snapshot in self.iter_tree():
            files += len(snapshot.files)
            folders += len(snapshot.children)
        return files, folders


class TreeScanner:
    """Builds filtered TreeSnapshots of a root directory.

    Examples:
        >>> scanner = TreeScanner()
        >>> used: set[str] = set()
        >>> tree = scanner.build(Path("/data"), "", "uuid-1", {"*.tmp"}, used)
        >>> # "*.tmp" is in ``used`` only if a .tmp file exists at the top level
    """

    def __init__(
        self,
        system_names: Iterable[str] = SYSTEM_NAMES,
        max_depth: Optional[int] = None,
    ):
        """Initialize tree scanner.

        Args:
            system_names: Entry names that are never part of a snapshot
            max_depth: Deepest level to descend into (None for unlimited,
                0 lists only the root directory)
        """
        self.system_names = frozenset(system_names)
        self.max_depth = max_depth

    def _list_directory(self, directory: Path, is_root: bool) -> list[Path]:
        try:
            entries = sorted(directory.iterdir(), key=lambda entry: entry.name)
        except PermissionError as e:
            if is_root:
                raise
            logger.warning(f"Permission denied, treating as empty: {e}")
            return []
        return [entry for entry in entries if entry.name not in self.system_names]

    def _keep(
        self,
        relative_path: str,
        exclude_patterns: Iterable[str],
        used_patterns: set[str],
    ) -> bool:
        matched = matching_patterns(relative_path, exclude_patterns)
        if matched:
            used_patterns.update(matched)
            logger.debug(f"Excluding {relative_path} (matched {matched})")
            return False
        return True

    def build(
        self,
        root_dir: Path,
        relative_path: str,
        root_id: str,
        exclude_patterns: Iterable[str],
        used_patterns: set[str],
        root_index: int = 0,
        depth: int = 0,
    ) -> TreeSnapshot:
        """Recursively build a snapshot of ``root_dir/relative_path``.

        Args:
            root_dir: Root directory of the scan
            relative_path: Directory to snapshot, relative to root_dir
            root_id: Identity of the root
            exclude_patterns: Glob patterns of entries to leave out
            used_patterns: Receives every pattern that excluded a real entry
            root_index: Position of the root on the command line
            depth: Current depth (0 for the directory passed in)

        Returns:
            TreeSnapshot with ``fully_synced`` unset
        """
        exclude_patterns = list(exclude_patterns)
        directory = root_dir / relative_path if relative_path else root_dir
        entries = self._list_directory(directory, is_root=depth == 0)

        files: set[str] = set()
        folder_names: list[str] = []
        for entry in entries:
            entry_path = join_relative(relative_path, entry.name)
            if not self._keep(entry_path, exclude_patterns, used_patterns):
                continue
            if entry.is_dir():
                folder_names.append(entry.name)
            else:
                files.add(entry.name)

        snapshot = TreeSnapshot(
            name=directory.name if relative_path else root_dir.name,
            root_id=root_id,
            absolute_path=directory,
            relative_path=relative_path,
            files=files,
            root_index=root_index,
        )

        if self.max_depth is not None and depth >= self.max_depth:
            for folder_name in folder_names:
                snapshot.add_folder(folder_name)
            return snapshot

        for folder_name in folder_names:
            snapshot.children[folder_name] = self.build(
                root_dir,
                join_relative(relative_path, folder_name),
                root_id,
                exclude_patterns,
                used_patterns,
                root_index=root_index,
                depth=depth + 1,
            )

        return snapshot
