"""Exceptions raised by dirsync."""

from pathlib import Path
from typing import Optional


class DirsyncError(Exception):
    """Base exception for all dirsync errors."""


class DirsyncPreconditionError(DirsyncError):
    """Raised when the roots given to a run cannot be synchronized.

    All problems are collected before raising so they can be reported
    together, and nothing has been read or written at that point.
    """

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class DirsyncConfigError(DirsyncError):
    """Raised when a root's configuration file cannot be parsed."""

    def __init__(self, message: str, path: Optional[Path] = None):
        self.path = path
        super().__init__(message)


class DirsyncUnsupportedError(DirsyncError):
    """Raised for requested modes that are not implemented."""


class DirsyncCopyError(DirsyncError):
    """Raised when copying a file or creating a folder fails."""

    def __init__(self, action: str, source: Optional[Path], destination: Path, cause):
        self.action = action
        self.source = source
        self.destination = destination
        self.cause = cause
        if source is not None:
            message = f"Failed to {action} {source} to {destination}: {cause}"
        else:
            message = f"Failed to {action} {destination}: {cause}"
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert error to dictionary for the JSON error report."""
        return {
            "action": self.action,
            "source": str(self.source) if self.source is not None else None,
            "destination": str(self.destination),
            "error": str(self.cause),
        }
