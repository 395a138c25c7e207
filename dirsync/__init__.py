"""dirsync - CLI tool for keeping two or more directory trees in sync."""

from .exceptions import (
    DirsyncConfigError,
    DirsyncCopyError,
    DirsyncError,
    DirsyncPreconditionError,
    DirsyncUnsupportedError,
)
from .utils import glob_match, group_by

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "DirsyncError",
    "DirsyncConfigError",
    "DirsyncCopyError",
    "DirsyncPreconditionError",
    "DirsyncUnsupportedError",
    "glob_match",
    "group_by",
]
