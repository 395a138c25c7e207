"""Core sync engine for reconciling two or more directory trees."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional

from rich.progress import Progress, SpinnerColumn, TextColumn

from .. import __version__
from ..exceptions import (
    DirsyncCopyError,
    DirsyncPreconditionError,
    DirsyncUnsupportedError,
)
from ..output import OutputFormatter
from ..utils import GROUP_THRESHOLD, file_extension, group_by
from .decisions import DecisionKind, DecisionProvider, DecisionRequest
from .operations import SyncOperations
from .report import write_error_report
from .rules import escape_pattern, extension_pattern, matches
from .scanner import TreeScanner, TreeSnapshot
from .state import ConfigStore, RootPolicy

logger = logging.getLogger(__name__)


def validate_roots(roots: Iterable[Path]) -> list[str]:
    """Check that a list of roots can be synchronized.

    Every problem is reported, not just the first one.

    Args:
        roots: Root directories as given by the user

    Returns:
        List of error messages (empty if the roots are valid)
    """
    roots = [Path(root) for root in roots]
    errors: list[str] = []

    if len(roots) < 2:
        errors.append("At least two directories are required.")

    seen: dict[Path, Path] = {}
    for root in roots:
        if not root.exists():
            errors.append(f'Directory "{root}" does not exist.')
            continue
        if not root.is_dir():
            errors.append(f'"{root}" is not a directory.')
            continue

        resolved = root.resolve()
        if resolved in seen:
            errors.append(f'Directory "{root}" is the same as "{seen[resolved]}".')
            continue
        for other_resolved, other in seen.items():
            if resolved.is_relative_to(other_resolved):
                errors.append(f'Directory "{root}" is inside "{other}".')
            elif other_resolved.is_relative_to(resolved):
                errors.append(f'Directory "{other}" is inside "{root}".')
        seen[resolved] = root

    return errors


@dataclass
class SyncRun:
    """Shared state of one sync run, passed through the recursion."""

    policies: dict[str, RootPolicy]
    """Exclude/skip rules keyed by root identity"""

    two_root_mode: bool = False
    """Exactly two roots: destinations are never asked for confirmation"""

    errors: list[dict] = field(default_factory=list)
    """Copy errors collected so far"""

    def policy(self, tree: TreeSnapshot) -> RootPolicy:
        """Get the policy of the root a snapshot belongs to."""
        if tree.root_id not in self.policies:
            self.policies[tree.root_id] = RootPolicy(uuid=tree.root_id)
        return self.policies[tree.root_id]

    def is_excluded(self, tree: TreeSnapshot, path: str) -> bool:
        """Whether a path is marked as belonging to this root only."""
        return matches(path, self.policy(tree).exclude_from_sync)

    def is_blocked(self, tree: TreeSnapshot, path: str) -> bool:
        """Whether nothing may be copied to this path of the root."""
        policy = self.policy(tree)
        return matches(path, policy.skip_syncing) or matches(
            path, policy.exclude_from_sync
        )


class SyncEngine:
    """Core sync engine that reconciles two or more roots."""

    def __init__(
        self,
        decider: DecisionProvider,
        operations: Optional[SyncOperations] = None,
        output: Optional[OutputFormatter] = None,
        scanner: Optional[TreeScanner] = None,
        store: Optional[ConfigStore] = None,
    ):
        """Initialize sync engine.

        Args:
            decider: Answers every copy/exclude question
            operations: Filesystem primitives
            output: Output formatter for displaying progress/status
            scanner: Builds the snapshot of each root
            store: Reads and writes the per-root config files
        """
        self.decider = decider
        self.operations = operations or SyncOperations()
        self.output = output or OutputFormatter()
        self.scanner = scanner or TreeScanner()
        self.store = store or ConfigStore()
        self.stats = self._create_empty_stats()

    # =========================================================================
    # Run orchestration
    # =========================================================================

    def sync_roots(
        self,
        roots: Iterable[Path],
        force: bool = False,
        report_dir: Optional[Path] = None,
    ) -> dict:
        """Synchronize a set of root directories.

        Args:
            roots: Root directories (two or more)
            force: Force mode (not supported)
            report_dir: Where to write the error report (defaults to the
                working directory)

        Returns:
            Dictionary with sync statistics

        Raises:
            DirsyncPreconditionError: If the roots are invalid
            DirsyncUnsupportedError: If force mode is requested
            DirsyncConfigError: If a config file is malformed

        Examples:
            >>> engine = SyncEngine(StaticDecisionProvider(True))
            >>> stats = engine.sync_roots([Path("/photos"), Path("/backup")])
            >>> print(f"Copied {stats['files_copied']} files")
        """
        roots = [Path(root) for root in roots]
        errors = validate_roots(roots)
        if errors:
            raise DirsyncPreconditionError(errors)
        if force:
            raise DirsyncUnsupportedError("Force mode is not supported yet.")

        self.stats = self._create_empty_stats()
        roots = [root.resolve() for root in roots]

        configs = self.store.load(roots)
        identities, policies = self.store.merge(configs)

        if len({root.name for root in roots}) > 1:
            names = ", ".join(f'"{root.name}"' for root in roots)
            self.output.warning(f"Root folder names differ: {names}")

        trees = self._scan_roots(roots, identities, policies)

        run = SyncRun(policies=policies, two_root_mode=len(roots) == 2)
        self.sync_trees(trees, run)

        failed = self.store.save(roots, identities, policies, version=__version__)
        for path in failed:
            self.output.error(f"Could not save config file {path}")
        self.stats["config_errors"] = len(failed)

        if run.errors:
            report = write_error_report(run.errors, report_dir)
            self.stats["error_report"] = str(report)

        self._display_summary(self.stats)
        return self.stats

    def _scan_roots(
        self,
        roots: list[Path],
        identities: list[str],
        policies: dict[str, RootPolicy],
    ) -> list[TreeSnapshot]:
        """Build one filtered snapshot per root and prune unused exclusions."""
        trees: list[TreeSnapshot] = []

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            transient=True,
            disable=self.output.silent,
        ) as progress:
            for index, (root, identity) in enumerate(zip(roots, identities)):
                task = progress.add_task(f"Scanning {root}...", total=None)
                policy = policies[identity]
                used_patterns: set[str] = set()
                tree = self.scanner.build(
                    root,
                    "",
                    identity,
                    policy.exclude_from_sync,
                    used_patterns,
                    root_index=index,
                )
                pruned = self.store.prune(policy, used_patterns)
                self.stats["pruned"] += len(pruned)

                files, folders = tree.count()
                progress.update(
                    task,
                    description=f"Found {files} file(s), {folders} folder(s)",
                )
                logger.debug(
                    f"Scanned {root}: {files} file(s), {folders} folder(s), "
                    f"{len(pruned)} exclusion(s) pruned"
                )
                trees.append(tree)

        return trees

    # =========================================================================
    # Recursive N-way sync
    # =========================================================================

    def sync_trees(self, trees: list[TreeSnapshot], run: SyncRun) -> None:
        """Reconcile sibling snapshots (same relative path, one per root).

        For every snapshot not yet processed: propose its files and folders
        to the siblings lacking them, then recurse into folders shared by
        two or more siblings. Snapshots are updated in place as entries are
        copied.

        Args:
            trees: Sibling snapshots
            run: Shared policies, mode and error list
        """
        for tree in trees:
            if tree.fully_synced:
                continue

            others = [other for other in trees if other is not tree]
            self._sync_files(tree, others, run)
            self._sync_folders(tree, others, run)
            self._descend(trees, run)
            tree.fully_synced = True

    def _descend(self, trees: list[TreeSnapshot], run: SyncRun) -> None:
        """Recurse into every folder present in two or more siblings.

        A folder created after its siblings were already processed first
        receives their entries, then is processed like any other snapshot.
        """
        names: dict[str, None] = {}
        for tree in trees:
            for name in tree.children:
                names.setdefault(name)

        for name in names:
            subtrees = [
                tree.children[name]
                for tree in trees
                if name in tree.children
                and not run.is_excluded(tree, tree.path_of(name))
            ]
            if len(subtrees) < 2:
                continue
            fresh = [subtree for subtree in subtrees if not subtree.fully_synced]
            if not fresh:
                continue
            if len(fresh) < len(subtrees):
                for source in subtrees:
                    if source.fully_synced:
                        logger.debug(
                            f"Filling {len(fresh)} new folder(s) "
                            f"from {source.absolute_path}"
                        )
                        self._sync_files(source, fresh, run)
                        self._sync_folders(source, fresh, run)
            self.sync_trees(subtrees, run)

    # -------------------------------------------------------------------------
    # Files
    # -------------------------------------------------------------------------

    def _lacks_file(
        self, tree: TreeSnapshot, name: str, path: str, run: SyncRun
    ) -> bool:
        return name not in tree.files and not run.is_blocked(tree, path)

    def _file_destinations(
        self,
        tree: TreeSnapshot,
        others: list[TreeSnapshot],
        name: str,
        run: SyncRun,
    ) -> list[TreeSnapshot]:
        """Siblings that lack a file of ``tree`` and accept it."""
        path = tree.path_of(name)
        if run.is_excluded(tree, path):
            return []
        return [other for other in others if self._lacks_file(other, name, path, run)]

    def _sync_files(
        self, tree: TreeSnapshot, others: list[TreeSnapshot], run: SyncRun
    ) -> None:
        candidates = [
            name
            for name in sorted(tree.files)
            if self._file_destinations(tree, others, name, run)
        ]
        for extension, names in group_by(candidates, file_extension).items():
            if len(names) > GROUP_THRESHOLD:
                self._offer_file_batch(tree, others, extension, names, run)
            else:
                for name in names:
                    self._offer_file(tree, others, name, run)

    def _offer_file(
        self,
        tree: TreeSnapshot,
        others: list[TreeSnapshot],
        name: str,
        run: SyncRun,
    ) -> None:
        """Propose a single file, then confirm each destination."""
        # An exclusion accepted for an earlier file may cover this one
        destinations = self._file_destinations(tree, others, name, run)
        if not destinations:
            return

        path = tree.path_of(name)
        source = tree.absolute_path / name
        accepted = self.decider.decide(
            DecisionRequest(
                kind=DecisionKind.COPY_FILE,
                prompt=f"{self._arrow(destinations)} {source}",
                from_index=tree.root_index,
                path=path,
            )
        )
        if not accepted:
            self._decline_files(tree, others, [name], run, batch=False)
            return

        for destination in destinations:
            if run.two_root_mode or self._confirm(
                DecisionKind.COPY_TO, tree, destination, path, str(source)
            ):
                self._copy_file(tree, destination, name, run)
            else:
                self._add_skip(run, destination, escape_pattern(path))

    def _offer_file_batch(
        self,
        tree: TreeSnapshot,
        others: list[TreeSnapshot],
        extension: str,
        names: list[str],
        run: SyncRun,
    ) -> None:
        """Propose all files of one extension in a folder as one batch."""
        pattern = extension_pattern(tree.relative_path, names[0])
        label = extension or "extensionless"
        destinations = [
            other
            for other in others
            if any(self._lacks_file(other, n, tree.path_of(n), run) for n in names)
        ]
        accepted = self.decider.decide(
            DecisionRequest(
                kind=DecisionKind.COPY_BATCH,
                prompt=(
                    f"{self._arrow(destinations)} {tree.absolute_path}: "
                    f"total of {len(names)} {label} files"
                ),
                from_index=tree.root_index,
                path=pattern,
            )
        )
        if not accepted:
            self._decline_files(tree, others, names, run, batch=True)
            return

        for destination in destinations:
            lacking = [
                name
                for name in names
                if self._lacks_file(destination, name, tree.path_of(name), run)
            ]
            description = f"{len(lacking)} {label} files from {tree.absolute_path}"
            if run.two_root_mode or self._confirm(
                DecisionKind.COPY_BATCH_TO, tree, destination, pattern, description
            ):
                for name in lacking:
                    self._copy_file(tree, destination, name, run)
            elif extension:
                self._add_skip(run, destination, pattern)
            else:
                for name in lacking:
                    self._add_skip(run, destination, escape_pattern(tree.path_of(name)))

    def _decline_files(
        self,
        tree: TreeSnapshot,
        others: list[TreeSnapshot],
        names: list[str],
        run: SyncRun,
        batch: bool,
    ) -> None:
        """Record a refused file proposal so it is not proposed again.

        With two roots the refusal only blocks the other root. With more
        roots the source is asked whether the whole extension should stay
        out of sync in this folder; otherwise each file is excluded.
        """
        extension = file_extension(names[0])
        pattern = extension_pattern(tree.relative_path, names[0])
        exact = [escape_pattern(tree.path_of(name)) for name in names]

        if run.two_root_mode:
            for other in others:
                if batch and extension:
                    self._add_skip(run, other, pattern)
                else:
                    for path in exact:
                        self._add_skip(run, other, path)
            return

        if extension and self.decider.decide(
            DecisionRequest(
                kind=DecisionKind.EXCLUDE_EXTENSION,
                prompt=(
                    f"Exclude all {extension} files in {tree.absolute_path} "
                    "from syncing, now and in future?"
                ),
                from_index=tree.root_index,
                path=pattern,
            )
        ):
            self._add_exclude(run, tree, pattern)
            return

        for path in exact:
            self._add_exclude(run, tree, path)

    def _copy_file(
        self,
        source: TreeSnapshot,
        destination: TreeSnapshot,
        name: str,
        run: SyncRun,
    ) -> None:
        try:
            self.operations.copy_file(
                source.absolute_path / name, destination.absolute_path / name
            )
        except DirsyncCopyError as e:
            self._record_error(run, e)
            return
        destination.add_file(name)
        self.stats["files_copied"] += 1

    # -------------------------------------------------------------------------
    # Folders
    # -------------------------------------------------------------------------

    def _sync_folders(
        self, tree: TreeSnapshot, others: list[TreeSnapshot], run: SyncRun
    ) -> None:
        """Propose folders of ``tree`` to the siblings lacking them.

        Accepted folders are created empty; their contents are proposed
        when the recursion reaches them.
        """
        for name in list(tree.children):
            path = tree.path_of(name)
            if run.is_excluded(tree, path):
                continue
            destinations = [
                other
                for other in others
                if name not in other.children and not run.is_blocked(other, path)
            ]
            if not destinations:
                continue

            source = tree.absolute_path / name
            accepted = self.decider.decide(
                DecisionRequest(
                    kind=DecisionKind.COPY_FOLDER,
                    prompt=f"{self._arrow(destinations)} {source}/",
                    from_index=tree.root_index,
                    path=path,
                )
            )
            if not accepted:
                if run.two_root_mode:
                    for destination in destinations:
                        self._add_skip(run, destination, escape_pattern(path))
                else:
                    self._add_exclude(run, tree, escape_pattern(path))
                continue

            for destination in destinations:
                if run.two_root_mode or self._confirm(
                    DecisionKind.COPY_FOLDER_TO, tree, destination, path, f"{source}/"
                ):
                    self._create_folder(destination, name, run)
                else:
                    self._add_skip(run, destination, escape_pattern(path))

    def _create_folder(
        self, destination: TreeSnapshot, name: str, run: SyncRun
    ) -> None:
        try:
            self.operations.create_folder(destination.absolute_path / name)
        except DirsyncCopyError as e:
            self._record_error(run, e)
            return
        destination.add_folder(name)
        self.stats["folders_created"] += 1

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _label(tree: TreeSnapshot) -> str:
        return f"dir{tree.root_index + 1}"

    def _arrow(self, destinations: list[TreeSnapshot]) -> str:
        return ", ".join(self._label(tree) for tree in destinations) + " <="

    def _confirm(
        self,
        kind: DecisionKind,
        source: TreeSnapshot,
        destination: TreeSnapshot,
        path: str,
        description: str,
    ) -> bool:
        """Ask whether an accepted proposal should go into one destination."""
        return self.decider.decide(
            DecisionRequest(
                kind=kind,
                prompt=(
                    f"  {self._label(destination)} <= {description} "
                    f"(into {destination.absolute_path})"
                ),
                from_index=source.root_index,
                to_index=destination.root_index,
                path=path,
            )
        )

    def _add_skip(self, run: SyncRun, tree: TreeSnapshot, pattern: str) -> None:
        policy = run.policy(tree)
        if pattern not in policy.skip_syncing:
            policy.skip_syncing.add(pattern)
            self.stats["skipped"] += 1
            logger.debug(f"Skip rule for {self._label(tree)}: {pattern}")

    def _add_exclude(self, run: SyncRun, tree: TreeSnapshot, pattern: str) -> None:
        policy = run.policy(tree)
        if pattern not in policy.exclude_from_sync:
            policy.exclude_from_sync.add(pattern)
            self.stats["excluded"] += 1
            logger.debug(f"Exclude rule for {self._label(tree)}: {pattern}")

    def _record_error(self, run: SyncRun, error: DirsyncCopyError) -> None:
        run.errors.append(error.to_dict())
        self.stats["errors"] += 1
        logger.debug(f"Recorded error: {error}")
        self.output.error(str(error))

    def _create_empty_stats(self) -> dict:
        """Create an empty statistics dictionary.

        Returns:
            Dictionary with zero counts for all stat categories
        """
        return {
            "files_copied": 0,
            "folders_created": 0,
            "excluded": 0,
            "skipped": 0,
            "pruned": 0,
            "errors": 0,
            "config_errors": 0,
        }

    def _display_summary(self, stats: dict) -> None:
        """Display a summary of the run."""
        self.output.print("")
        self.output.success("Sync complete!")

        if not stats["files_copied"] and not stats["folders_created"]:
            self.output.info("No copies made.")

        labels = {
            "files_copied": "Copied files",
            "folders_created": "Created folders",
            "excluded": "New exclude rules",
            "skipped": "New skip rules",
            "pruned": "Unused exclude rules removed",
        }
        rows = [(label, str(stats[key])) for key, label in labels.items() if stats[key]]
        if rows:
            self.output.print_summary("Sync summary", rows)

        if stats["errors"]:
            self.output.warning(
                f"{stats['errors']} error(s) occurred, "
                f"see {stats.get('error_report', 'the error report')}"
            )
        if stats["config_errors"]:
            self.output.warning(
                f"{stats['config_errors']} config file(s) could not be saved, "
                "declined entries may be proposed again"
            )
