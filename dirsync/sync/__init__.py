"""Sync engine for dirsync - N-way directory reconciliation."""

from .comparator import FolderDiff, TreeComparator
from .decisions import (
    DecisionKind,
    DecisionProvider,
    DecisionRequest,
    PromptDecisionProvider,
    ScriptedDecisionProvider,
    StaticDecisionProvider,
)
from .engine import SyncEngine, SyncRun, validate_roots
from .operations import SyncOperations
from .report import ERROR_REPORT_FILE_NAME, write_error_report, write_json_report
from .rules import (
    escape_pattern,
    extension_pattern,
    matches,
    matching_patterns,
    normalize_pattern,
)
from .scanner import SYSTEM_NAMES, TreeScanner, TreeSnapshot
from .state import CONFIG_FILE_NAME, ConfigStore, DirsyncConfig, RootPolicy

__all__ = [
    "SyncEngine",
    "SyncRun",
    "SyncOperations",
    "validate_roots",
    "DecisionKind",
    "DecisionProvider",
    "DecisionRequest",
    "PromptDecisionProvider",
    "ScriptedDecisionProvider",
    "StaticDecisionProvider",
    "TreeScanner",
    "TreeSnapshot",
    "SYSTEM_NAMES",
    "TreeComparator",
    "FolderDiff",
    "ConfigStore",
    "DirsyncConfig",
    "RootPolicy",
    "CONFIG_FILE_NAME",
    "ERROR_REPORT_FILE_NAME",
    "write_error_report",
    "write_json_report",
    "matches",
    "matching_patterns",
    "normalize_pattern",
    "escape_pattern",
    "extension_pattern",
]
