"""
lockfile.py
===========
Durable record of the server configuration and installed add-ons.

The lockfile holds:
  - the loader configuration (loader name, game version, runtime version)
  - every installed entry with its version id, jar path, remote source,
    checksum and the dependency identifiers it declared at install time

Every mutation re-serialises the whole document and swaps it into place with
``os.replace``, so readers never observe a half-written file.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from errors import (
    AddonError,
    CorruptLockfileError,
    DuplicateEntryError,
    EntryNotFoundError,
    InvalidConfigurationError,
)
from loaders import LATEST, Loader, is_simple_version

logger = logging.getLogger(__name__)

DEFAULT_LOCKFILE_NAME = "addons.lock"


# ──────────────────────────────────────────────
#  Records
# ──────────────────────────────────────────────

@dataclass
class LoaderConfig:
    """Identifies the server runtime the add-ons are installed for."""

    name: str = ""
    game_version: str = LATEST
    runtime_version: str = LATEST

    @property
    def loader(self) -> Loader:
        return Loader.parse(self.name)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "game_version": self.game_version,
            "runtime_version": self.runtime_version,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LoaderConfig":
        return cls(
            name=str(data.get("name", "")),
            game_version=str(data.get("game_version", LATEST)),
            runtime_version=str(data.get("runtime_version", LATEST)),
        )


@dataclass
class Entry:
    """One installed add-on."""

    slug: str
    project_id: str
    version_id: str
    file_path: str                  # relative to the server directory
    remote_source: str              # "<provider>#<url>"
    checksum: str                   # "<algorithm>#<hexdigest>"
    requires: List[str] = field(default_factory=list)

    def matches(self, identifier: str) -> bool:
        return identifier in (self.slug, self.project_id)

    def to_dict(self) -> dict:
        return {
            "slug": self.slug,
            "project_id": self.project_id,
            "version_id": self.version_id,
            "file_path": self.file_path,
            "remote_source": self.remote_source,
            "checksum": self.checksum,
            "requires": list(self.requires),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Entry":
        return cls(
            slug=data["slug"],
            project_id=data["project_id"],
            version_id=data["version_id"],
            file_path=data["file_path"],
            remote_source=data["remote_source"],
            checksum=data["checksum"],
            requires=list(data.get("requires", [])),
        )


# ──────────────────────────────────────────────
#  Lockfile
# ──────────────────────────────────────────────

class Lockfile:
    """
    The lockfile aggregate and its on-disk store.

    Args:
        path:    Location of the lockfile; its parent is the server directory
        loader:  Loader configuration (placeholder when omitted)
        entries: Installed entries in insertion order
    """

    def __init__(
        self,
        path: str | Path,
        loader: Optional[LoaderConfig] = None,
        entries: Optional[List[Entry]] = None,
    ) -> None:
        self.path = Path(path)
        self.loader = loader or LoaderConfig()
        self.entries: List[Entry] = list(entries or [])

    @property
    def server_dir(self) -> Path:
        return self.path.parent

    # ================================================================
    #  CONSTRUCTION
    # ================================================================

    @classmethod
    def init_or_load(cls, path: str | Path) -> "Lockfile":
        """
        Load the lockfile at ``path``, creating an empty one if absent.

        Raises:
            CorruptLockfileError: the file exists but does not parse
        """
        path = Path(path)
        if not path.exists():
            path.parent.mkdir(parents=True, exist_ok=True)
            path.touch()
            logger.info("Created empty lockfile at %s", path)
            return cls(path)

        try:
            content = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise CorruptLockfileError(
                f"Could not read lockfile: {exc}", context={"path": str(path)},
            ) from exc

        if not content.strip():
            return cls(path)

        try:
            data = json.loads(content)
            lockfile = cls.from_dict(path, data)
        except (json.JSONDecodeError, KeyError, TypeError, AttributeError) as exc:
            raise CorruptLockfileError(
                f"Lockfile is corrupt: {exc}",
                hint="Restore it from a backup or re-run 'server init'.",
                context={"path": str(path)},
            ) from exc

        logger.debug("Loaded %d entries from %s", len(lockfile.entries), path)
        return lockfile

    @classmethod
    def with_params(
        cls,
        path: str | Path,
        game_version: str,
        loader_name: str,
        runtime_version: str = LATEST,
    ) -> "Lockfile":
        """
        Create a fresh, configured lockfile, overwriting any existing one.

        Raises:
            InvalidConfigurationError: malformed game version or unknown loader
        """
        if not is_simple_version(game_version):
            raise InvalidConfigurationError(
                f"Minecraft version {game_version} is invalid",
                hint="use a release version such as 1.20.1",
            )
        loader = Loader.parse(loader_name)

        lockfile = cls(
            path,
            LoaderConfig(
                name=loader.value,
                game_version=game_version,
                runtime_version=runtime_version,
            ),
        )
        lockfile.save()
        logger.info(
            "Initialised lockfile %s: %s %s", lockfile.path, loader.value, game_version,
        )
        return lockfile

    # ================================================================
    #  QUERIES
    # ================================================================

    def get(self, identifier: str) -> Optional[Entry]:
        """Find an entry by exact slug or project id."""
        return next((e for e in self.entries if e.matches(identifier)), None)

    def is_initialized(self) -> bool:
        """True once the lockfile holds a concrete game version and known loader."""
        if not is_simple_version(self.loader.game_version):
            return False
        try:
            Loader.parse(self.loader.name)
        except InvalidConfigurationError:
            return False
        return True

    def install_dir(self) -> Path:
        """Absolute directory the configured loader installs add-ons into."""
        return self.server_dir / self.loader.loader.install_dir

    def resolve_path(self, entry: Entry) -> Path:
        """Absolute path of an entry's artifact."""
        return self.server_dir / entry.file_path

    def relative_path(self, path: str | Path) -> str:
        """Express ``path`` relative to the server directory (posix form)."""
        path = Path(path)
        try:
            return path.relative_to(self.server_dir).as_posix()
        except ValueError:
            return path.as_posix()

    # ================================================================
    #  MUTATIONS
    # ================================================================

    def add(self, entry: Entry) -> None:
        """
        Append an entry and persist.

        Raises:
            DuplicateEntryError: an entry with the same slug exists
        """
        if any(e.slug == entry.slug for e in self.entries):
            raise DuplicateEntryError(
                f"Project {entry.slug} already has an entry in the lockfile",
            )
        self.entries.append(entry)
        self.save()
        logger.info("Added %s (%s) to lockfile", entry.slug, entry.version_id)

    def remove(
        self,
        slug: str,
        keep_file: bool = False,
        remove_orphans: bool = False,
    ) -> List[Entry]:
        """
        Remove an entry and, optionally, the dependencies it orphans.

        Orphans are found from the ``requires`` lists stored in the lockfile:
        a dependency is removed when it is installed and no remaining entry
        still requires it. The chase continues through each orphan's own
        ``requires``.

        Args:
            slug:           Slug of the entry to remove
            keep_file:      Leave artifact files on disk
            remove_orphans: Also remove dependencies nothing else requires

        Returns:
            The removed entries, target first

        Raises:
            EntryNotFoundError: no entry has this slug
            AddonError:         the lockfile was updated but an artifact could
                                not be deleted
        """
        target = next((e for e in self.entries if e.slug == slug), None)
        if target is None:
            raise EntryNotFoundError(f"Project {slug} does not exist in the lockfile")

        removed: List[Entry] = [target]
        if remove_orphans:
            pending = list(target.requires)
            while pending:
                dep_id = pending.pop(0)
                dep = self.get(dep_id)
                if dep is None or dep in removed:
                    continue
                remaining = [e for e in self.entries if e not in removed]
                still_required = any(
                    dep.slug in e.requires or dep.project_id in e.requires
                    for e in remaining
                    if e is not dep
                )
                if still_required:
                    logger.info("Keeping %s: still required", dep.slug)
                    continue
                logger.info("Removing orphaned dependency %s", dep.slug)
                removed.append(dep)
                pending.extend(dep.requires)

        self.entries = [e for e in self.entries if e not in removed]
        self.save()
        logger.info("Removed %s", ", ".join(e.slug for e in removed))

        if not keep_file:
            failed = [str(path) for path in map(self._delete_artifact, removed) if path]
            if failed:
                raise AddonError(
                    "Removed from the lockfile, but some files could not be deleted",
                    hint="delete them by hand",
                    context={"files": ", ".join(failed)},
                )
        return removed

    def _delete_artifact(self, entry: Entry) -> Optional[Path]:
        """Delete an entry's artifact; returns its path if deletion failed."""
        artifact = self.resolve_path(entry)
        if not artifact.exists():
            logger.warning("Artifact for %s already missing: %s", entry.slug, artifact)
            return None
        try:
            artifact.unlink()
        except OSError as exc:
            logger.error("Could not delete %s: %s", artifact, exc)
            return artifact
        logger.info("Deleted %s", artifact)
        return None

    # ================================================================
    #  PERSISTENCE
    # ================================================================

    def to_dict(self) -> Dict[str, Any]:
        return {
            "loader": self.loader.to_dict(),
            "projects": [e.to_dict() for e in self.entries],
        }

    @classmethod
    def from_dict(cls, path: str | Path, data: Dict[str, Any]) -> "Lockfile":
        if not isinstance(data, dict):
            raise TypeError("lockfile root must be an object")
        return cls(
            path,
            LoaderConfig.from_dict(data.get("loader", {})),
            [Entry.from_dict(p) for p in data.get("projects", [])],
        )

    def save(self) -> None:
        """Write the full document to a temp file and swap it into place."""
        logger.info("Saving transaction to lockfile %s", self.path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(self.to_dict(), indent=2) + "\n"

        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent,
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
