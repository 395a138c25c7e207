"""Read-only comparison of directory trees for the analyse command."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional

from .scanner import TreeScanner, TreeSnapshot
from .state import ConfigStore


@dataclass
class FolderDiff:
    """Differences at one directory level across all compared roots."""

    relative_path: str
    """Path of the directory relative to the roots"""

    root_paths: list[Path]
    """Absolute path of the directory in each compared root"""

    root_indices: list[int]
    """Command-line index of each compared root"""

    files: dict[str, list[int]] = field(default_factory=dict)
    """File names not present everywhere, mapped to the roots having them"""

    folders: dict[str, list[int]] = field(default_factory=dict)
    """Folder names not present everywhere, mapped to the roots having them"""

    @property
    def is_empty(self) -> bool:
        """Whether all compared roots hold the same entries."""
        return not self.files and not self.folders

    def only_in(self, root_index: int, kind: str = "files") -> list[str]:
        """Entries a root has that at least one other compared root lacks.

        Args:
            root_index: Command-line index of the root
            kind: "files" or "folders"

        Returns:
            Sorted entry names
        """
        entries = self.files if kind == "files" else self.folders
        return sorted(name for name, held in entries.items() if root_index in held)

    def to_dict(self) -> dict:
        """Convert diff to dictionary for JSON export."""
        return {
            "relativePath": self.relative_path,
            "roots": [str(path) for path in self.root_paths],
            "rootIndices": self.root_indices,
            "files": {name: self.files[name] for name in sorted(self.files)},
            "folders": {name: self.folders[name] for name in sorted(self.folders)},
        }


class TreeComparator:
    """Compares snapshots of several roots without changing anything."""

    def __init__(
        self,
        scanner: Optional[TreeScanner] = None,
        store: Optional[ConfigStore] = None,
    ):
        """Initialize tree comparator.

        Args:
            scanner: Builds the snapshot of each root
            store: Reads the per-root config files (never written)
        """
        self.scanner = scanner or TreeScanner()
        self.store = store or ConfigStore()

    def snapshot_roots(self, roots: Iterable[Path]) -> list[TreeSnapshot]:
        """Build one snapshot per root, honouring stored exclusions.

        Args:
            roots: Root directories

        Returns:
            Snapshots in root order

        Raises:
            DirsyncConfigError: If a config file is malformed
        """
        roots = [Path(root).resolve() for root in roots]
        identities, policies = self.store.merge(self.store.load(roots))
        return [
            self.scanner.build(
                root,
                "",
                identity,
                policies[identity].exclude_from_sync,
                set(),
                root_index=index,
            )
            for index, (root, identity) in enumerate(zip(roots, identities))
        ]

    def compare(self, trees: list[TreeSnapshot]) -> list[FolderDiff]:
        """Compare sibling snapshots recursively.

        Args:
            trees: Sibling snapshots (same relative path, one per root)

        Returns:
            One FolderDiff per directory level that has differences
        """
        diff = FolderDiff(
            relative_path=trees[0].relative_path,
            root_paths=[tree.absolute_path for tree in trees],
            root_indices=[tree.root_index for tree in trees],
            files=self._presence([tree.files for tree in trees], trees),
            folders=self._presence([tree.folders for tree in trees], trees),
        )
        diffs = [] if diff.is_empty else [diff]

        names: dict[str, None] = {}
        for tree in trees:
            for name in tree.children:
                names.setdefault(name)

        for name in names:
            subtrees = [tree.children[name] for tree in trees if name in tree.children]
            if len(subtrees) >= 2:
                diffs.extend(self.compare(subtrees))

        return diffs

    @staticmethod
    def _presence(entry_sets: list, trees: list[TreeSnapshot]) -> dict[str, list[int]]:
        """Map names missing from at least one tree to the trees having them."""
        all_names: set[str] = set()
        for entries in entry_sets:
            all_names.update(entries)

        presence: dict[str, list[int]] = {}
        for name in sorted(all_names):
            held = [
                tree.root_index
                for tree, entries in zip(trees, entry_sets)
                if name in entries
            ]
            if len(held) < len(trees):
                presence[name] = held
        return presence
