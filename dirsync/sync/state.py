"""Per-root configuration persistence.

Every root carries a ``dirsync.config.json`` file that records the root's
identity and the exclude/skip rules of every root it has been synced
with. Each copy is a backup of the same shared policy, so at the start of
a run all copies are merged by taking the union of their rule sets.
"""

import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional

from ..exceptions import DirsyncConfigError
from .rules import normalize_pattern

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "dirsync.config.json"


@dataclass
class RootPolicy:
    """Exclude and skip rules of one root, keyed by its identity."""

    uuid: str
    """Identity of the root this policy belongs to"""

    exclude_from_sync: set[str] = field(default_factory=set)
    """Patterns of entries that belong to this root only"""

    skip_syncing: set[str] = field(default_factory=set)
    """Patterns of entries that must not be copied into this root"""

    def merge(self, other: "RootPolicy") -> None:
        """Add the rules of another copy of this policy."""
        self.exclude_from_sync |= other.exclude_from_sync
        self.skip_syncing |= other.skip_syncing

    def to_dict(self) -> dict:
        """Convert policy to dictionary for JSON serialization."""
        return {
            "uuid": self.uuid,
            "excludeFromSync": sorted(self.exclude_from_sync),
            "skipSyncing": sorted(self.skip_syncing),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RootPolicy":
        """Create RootPolicy from dictionary."""
        return cls(
            uuid=str(data["uuid"]),
            exclude_from_sync={
                normalize_pattern(p) for p in data.get("excludeFromSync", [])
            },
            skip_syncing={normalize_pattern(p) for p in data.get("skipSyncing", [])},
        )


@dataclass
class DirsyncConfig:
    """Contents of one root's configuration file."""

    this_dir_uuid: str
    """Identity of the root the file is stored in"""

    dirs: list[RootPolicy] = field(default_factory=list)
    """Last known policy of every root"""

    dirsync_version: str = ""
    """Version of dirsync that wrote the file"""

    last_sync_date: Optional[str] = None
    """ISO timestamp of the last sync"""

    def to_dict(self) -> dict:
        """Convert config to dictionary for JSON serialization."""
        return {
            "dirsyncVersion": self.dirsync_version,
            "lastSyncDate": self.last_sync_date,
            "thisDirUuid": self.this_dir_uuid,
            "dirs": [policy.to_dict() for policy in self.dirs],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DirsyncConfig":
        """Create DirsyncConfig from dictionary.

        Raises:
            KeyError, TypeError, ValueError: If required fields are missing
                or have the wrong shape
        """
        if not isinstance(data, dict):
            raise TypeError("config must be a JSON object")
        dirs = data.get("dirs", [])
        if not isinstance(dirs, list):
            raise TypeError("'dirs' must be a list")
        return cls(
            this_dir_uuid=str(data["thisDirUuid"]),
            dirs=[RootPolicy.from_dict(entry) for entry in dirs],
            dirsync_version=data.get("dirsyncVersion", ""),
            last_sync_date=data.get("lastSyncDate"),
        )


class ConfigStore:
    """Reads, merges and writes the configuration files of all roots."""

    def __init__(self, file_name: str = CONFIG_FILE_NAME):
        """Initialize config store.

        Args:
            file_name: Name of the config file at the top of each root
        """
        self.file_name = file_name

    def config_path(self, root: Path) -> Path:
        """Get the config file path of a root."""
        return root / self.file_name

    def load_one(self, root: Path) -> Optional[DirsyncConfig]:
        """Load the config file of a single root.

        Args:
            root: Root directory

        Returns:
            DirsyncConfig if the file exists, None otherwise

        Raises:
            DirsyncConfigError: If the file exists but cannot be parsed
        """
        path = self.config_path(root)

        if not path.exists():
            logger.debug(f"No config found at {path}")
            return None

        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
            config = DirsyncConfig.from_dict(data)
        except (
            json.JSONDecodeError,
            AttributeError,
            KeyError,
            TypeError,
            ValueError,
        ) as e:
            raise DirsyncConfigError(
                f"Config file {path} is malformed ({e}). Fix or remove it "
                "before syncing; it holds the exclusion rules of this root.",
                path=path,
            ) from e
        except OSError as e:
            raise DirsyncConfigError(
                f"Config file {path} cannot be read: {e}", path=path
            ) from e

        logger.debug(
            f"Loaded config of {config.this_dir_uuid} with "
            f"{len(config.dirs)} root(s) from {config.last_sync_date}"
        )
        return config

    def load(self, roots: Iterable[Path]) -> list[Optional[DirsyncConfig]]:
        """Load the config file of every root (None where absent)."""
        return [self.load_one(root) for root in roots]

    def merge(
        self, configs: list[Optional[DirsyncConfig]]
    ) -> tuple[list[str], dict[str, RootPolicy]]:
        """Merge all loaded configs into one policy mapping.

        Roots without a config get a fresh identity. A root whose identity
        was already claimed by an earlier root (a config file copied along
        with the directory) also gets a fresh identity.

        Args:
            configs: Loaded configs, one per root (None where absent)

        Returns:
            (identities, policies): identity per root, in root order, and
            the merged policy of every known identity
        """
        identities: list[str] = []
        for config in configs:
            identity = config.this_dir_uuid if config is not None else None
            if identity is not None and identity in identities:
                logger.warning(
                    f"Identity {identity} is used by more than one root, "
                    "assigning a new identity"
                )
                identity = None
            if identity is None:
                identity = str(uuid.uuid4())
                logger.debug(f"Assigned new identity {identity}")
            identities.append(identity)

        policies: dict[str, RootPolicy] = {}
        for config in configs:
            if config is None:
                continue
            for policy in config.dirs:
                if policy.uuid in policies:
                    policies[policy.uuid].merge(policy)
                else:
                    policies[policy.uuid] = RootPolicy(
                        uuid=policy.uuid,
                        exclude_from_sync=set(policy.exclude_from_sync),
                        skip_syncing=set(policy.skip_syncing),
                    )

        for identity in identities:
            policies.setdefault(identity, RootPolicy(uuid=identity))

        return identities, policies

    @staticmethod
    def prune(policy: RootPolicy, used_patterns: set[str]) -> set[str]:
        """Drop exclude patterns that no longer match anything.

        Args:
            policy: Policy to prune in place
            used_patterns: Patterns that excluded at least one real entry

        Returns:
            The patterns that were dropped
        """
        unused = policy.exclude_from_sync - used_patterns
        if unused:
            logger.debug(f"Pruning unused exclude patterns of {policy.uuid}: {unused}")
        policy.exclude_from_sync -= unused
        return unused

    def save(
        self,
        roots: list[Path],
        identities: list[str],
        policies: dict[str, RootPolicy],
        version: str = "",
    ) -> list[Path]:
        """Write a config file into every root.

        A root whose file cannot be written does not stop the others from
        being saved.

        Args:
            roots: Root directories
            identities: Identity of each root, in the same order
            policies: Policy of every known identity
            version: dirsync version to record

        Returns:
            Config paths that could not be written
        """
        ordered = [policies[identity] for identity in identities]
        ordered += [
            policies[key] for key in sorted(policies) if key not in identities
        ]
        last_sync = datetime.now().isoformat()
        failed: list[Path] = []

        for root, identity in zip(roots, identities):
            config = DirsyncConfig(
                this_dir_uuid=identity,
                dirs=ordered,
                dirsync_version=version,
                last_sync_date=last_sync,
            )
            path = self.config_path(root)
            try:
                with open(path, "w", encoding="utf-8") as f:
                    json.dump(config.to_dict(), f, indent=2)
                logger.debug(f"Saved config of {identity} to {path}")
            except OSError as e:
                logger.warning(f"Failed to save config to {path}: {e}")
                failed.append(path)

        return failed
