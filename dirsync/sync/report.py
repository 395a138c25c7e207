"""JSON reports written at the end of a run."""

import json
import logging
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

ERROR_REPORT_FILE_NAME = "dirsync.errors.json"


def write_error_report(errors: list[dict], directory: Optional[Path] = None) -> Path:
    """Write the copy errors of a run as a JSON array.

    Args:
        errors: Error descriptions collected during the run
        directory: Directory to write into (defaults to the working directory)

    Returns:
        Path of the written report
    """
    if directory is None:
        directory = Path.cwd()
    path = directory / ERROR_REPORT_FILE_NAME
    write_json_report(errors, path)
    logger.debug(f"Wrote {len(errors)} error(s) to {path}")
    return path


def write_json_report(data: Any, path: Path) -> Path:
    """Write any JSON-serializable report to a file.

    Args:
        data: Report contents
        path: Destination file

    Returns:
        The destination path
    """
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)
    return path
