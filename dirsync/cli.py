"""CLI interface for dirsync."""

import logging
from pathlib import Path
from typing import Any, Optional

import click

from . import __version__
from .exceptions import DirsyncConfigError, DirsyncError
from .output import OutputFormatter
from .sync import (
    PromptDecisionProvider,
    StaticDecisionProvider,
    SyncEngine,
    TreeComparator,
    TreeScanner,
    validate_roots,
    write_json_report,
)
from .sync.comparator import FolderDiff
from .utils import (
    ANALYSIS_LIST_THRESHOLD,
    DEFAULT_ANALYSIS_DEPTH,
    count_by,
    file_extension,
)

logger = logging.getLogger(__name__)


def _check_roots(ctx: Any, out: OutputFormatter, roots: tuple[Path, ...]) -> None:
    """Report every precondition error and exit if there are any."""
    errors = validate_roots(roots)
    if errors:
        for error in errors:
            out.error(error)
        ctx.exit(1)


@click.group()
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", is_flag=True, help="Output in JSON format")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose/debug logging output",
)
@click.version_option(version=__version__, prog_name="dirsync")
@click.pass_context
def main(ctx: Any, quiet: bool, json: bool, verbose: bool) -> None:
    """dirsync - Keep two or more directory trees in sync."""
    # Store settings in context for subcommands to access
    ctx.ensure_object(dict)
    ctx.obj["out"] = OutputFormatter(json_output=json, quiet=quiet)
    ctx.obj["verbose"] = verbose

    # Configure logging based on verbose flag
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        logging.getLogger("dirsync").setLevel(logging.DEBUG)
    else:
        # Set default logging level to WARNING to suppress debug/info messages
        logging.basicConfig(level=logging.WARNING)


@main.command()
@click.argument("roots", nargs=-1, required=True, type=click.Path(path_type=Path))
@click.option(
    "--force",
    "-f",
    is_flag=True,
    help="Copy everything without asking (not supported yet)",
)
@click.option(
    "--yes",
    "-y",
    is_flag=True,
    envvar="DIRSYNC_ASSUME_YES",
    help="Answer yes to every question (non-interactive)",
)
@click.pass_context
def sync(ctx: Any, roots: tuple[Path, ...], force: bool, yes: bool) -> None:
    """Synchronize two or more directories.

    Every file or folder missing from at least one directory is proposed
    for copying. Refusals are remembered in each directory's
    dirsync.config.json so they are not proposed again.

    Examples:
        dirsync sync ~/photos /media/backup/photos
        dirsync sync ./a ./b ./c
        dirsync sync ./a ./b --yes              # Copy everything missing
    """
    out: OutputFormatter = ctx.obj["out"]

    _check_roots(ctx, out, roots)
    if force:
        out.error("Force option is not supported yet.")
        ctx.exit(1)

    if yes:
        decider = StaticDecisionProvider(True)
    else:
        decider = PromptDecisionProvider(err=out.json_output)

    engine = SyncEngine(decider, output=out)
    out.success("Analysing...")

    try:
        stats = engine.sync_roots(roots)
    except (KeyboardInterrupt, click.Abort):
        out.warning("Sync cancelled by user, nothing was saved")
        ctx.exit(130)
        return
    except DirsyncError as e:
        out.error(str(e))
        ctx.exit(1)
        return

    if out.json_output:
        out.output_json(stats)

    if stats["config_errors"]:
        ctx.exit(1)


def _print_folder_diff(out: OutputFormatter, diff: FolderDiff) -> None:
    """Print the entries each root has that some other root lacks."""
    for root_path, root_index in zip(diff.root_paths, diff.root_indices):
        files = diff.only_in(root_index, "files")
        if files:
            out.highlight(f'Files in "{root_path}" not in every other directory:')
            if len(files) > ANALYSIS_LIST_THRESHOLD:
                for extension, count in count_by(files, file_extension).items():
                    out.info(f"  {extension or '(no extension)'}: {count}")
            else:
                for name in files:
                    out.info(f" - {name}")

        folders = diff.only_in(root_index, "folders")
        if folders:
            out.highlight(f'Folders in "{root_path}" not in every other directory:')
            for name in folders:
                out.info(f" - {name}")


@main.command()
@click.argument("roots", nargs=-1, required=True, type=click.Path(path_type=Path))
@click.option(
    "--depth",
    "-d",
    type=int,
    default=DEFAULT_ANALYSIS_DEPTH,
    show_default=True,
    help="Maximum depth of subdirectories to analyse, -1 for unlimited",
)
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Export the differences to a JSON file",
)
@click.pass_context
def analyse(
    ctx: Any, roots: tuple[Path, ...], depth: int, output: Optional[Path]
) -> None:
    """Compare directories without changing anything.

    Prints, per directory level, the files and folders that are not
    present in every directory. Exclusions stored in each directory's
    dirsync.config.json are honoured.

    Examples:
        dirsync analyse ./a ./b
        dirsync analyse ./a ./b ./c -d -1 -o diff.json
    """
    out: OutputFormatter = ctx.obj["out"]

    _check_roots(ctx, out, roots)
    if depth < -1:
        out.error(f'Depth "{depth}" must be -1 or a whole number.')
        ctx.exit(1)

    scanner = TreeScanner(max_depth=None if depth == -1 else depth)
    comparator = TreeComparator(scanner=scanner)

    try:
        trees = comparator.snapshot_roots(roots)
    except DirsyncConfigError as e:
        out.error(str(e))
        ctx.exit(1)
        return

    if len({tree.name for tree in trees}) > 1:
        names = ", ".join(f'"{tree.name}"' for tree in trees)
        out.warning(f"Root folder names differ: {names}")

    diffs = comparator.compare(trees)
    report = {
        "roots": [str(tree.absolute_path) for tree in trees],
        "diffs": [diff.to_dict() for diff in diffs],
    }

    if output is not None:
        write_json_report(report, output)
        out.success(f"Report written to {output}")

    if out.json_output:
        out.output_json(report)
        return

    if not diffs:
        out.success("No differences found.")
        return

    for diff in diffs:
        _print_folder_diff(out, diff)


main.add_command(analyse, name="a")
