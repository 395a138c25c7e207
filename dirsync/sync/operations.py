"""Filesystem operations used by the sync engine."""

import logging
import shutil
from pathlib import Path

from ..exceptions import DirsyncCopyError

logger = logging.getLogger(__name__)


class SyncOperations:
    """Copy and folder-creation primitives with a common error type.

    Every failure is raised as DirsyncCopyError so the engine can record
    it and carry on with the remaining items.
    """

    def copy_file(self, source: Path, destination: Path) -> Path:
        """Copy a file, preserving metadata where the platform allows.

        Args:
            source: File to copy
            destination: Target file path

        Returns:
            The destination path

        Raises:
            DirsyncCopyError: If the copy fails or the destination exists
        """
        logger.debug(f"Copying {source} -> {destination}")
        try:
            if destination.exists():
                raise FileExistsError(f"{destination} already exists")
            shutil.copy2(source, destination)
        except OSError as e:
            raise DirsyncCopyError("copy", source, destination, e) from e
        return destination

    def create_folder(self, path: Path) -> Path:
        """Create a single, empty folder.

        Args:
            path: Folder to create (its parent must exist)

        Returns:
            The created path

        Raises:
            DirsyncCopyError: If the folder cannot be created
        """
        logger.debug(f"Creating folder {path}")
        try:
            path.mkdir(exist_ok=True)
        except OSError as e:
            raise DirsyncCopyError("create folder", None, path, e) from e
        return path
