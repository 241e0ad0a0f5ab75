"""
plugin_manager.py
=================
High-level add-on lifecycle management.

Orchestrates:
  - Resolving a project (and its declared dependencies) through a provider
  - Compatibility validation before anything is downloaded
  - Checksum-verified downloads into the loader's install directory
  - Recording installations in the lockfile
  - Removing projects, optionally together with orphaned dependencies
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional

import aiohttp

from compatibility import CompatibilityChecker
from config import ManagerConfig
from downloader import download_with_checksum
from errors import (
    NoInstallableArtifactError,
    ServerNotInitializedError,
    UnsupportedServerSideError,
)
from loaders import LATEST
from lockfile import Entry, Lockfile
from plugin_apis import CandidateFile, MetadataProvider, VersionMetadata, get_provider

logger = logging.getLogger(__name__)

INSTALLABLE_EXTENSIONS = (".jar",)


def select_artifact(metadata: VersionMetadata) -> CandidateFile:
    """
    Pick the first candidate file with an installable extension.

    Raises:
        NoInstallableArtifactError: no candidate qualifies
    """
    for candidate in metadata.candidate_files:
        if candidate.filename.lower().endswith(INSTALLABLE_EXTENSIONS):
            return candidate
    raise NoInstallableArtifactError(
        f"Version {metadata.version_id} of {metadata.slug} has no installable file",
        context={"files": ", ".join(c.filename for c in metadata.candidate_files)},
    )


def _ensure_initialized(lockfile: Lockfile) -> None:
    if not lockfile.is_initialized():
        raise ServerNotInitializedError(
            "You must initialize a server before modifying projects",
            hint="run 'server init --game-version <v> --loader <loader>' first",
        )


# ──────────────────────────────────────────────
#  Dependency Resolver
# ──────────────────────────────────────────────

@dataclass
class _Pending:
    """One unit of work on the resolver's stack."""

    project_id: str
    version: str
    include_optional: bool
    skip_dependencies: bool
    is_root: bool = False


class DependencyResolver:
    """
    Installs a project and its declared dependencies, depth-first.

    Args:
        lockfile:                       Loaded, initialised lockfile
        provider:                       Metadata provider to resolve against
        session:                        aiohttp session for API and downloads
        checker:                        Compatibility checker
        skip_client_only_dependencies:  Skip (rather than fail on) dependencies
                                        that are client-side only
        cascade_optional:               Pass ``include_optional`` down to
                                        dependencies instead of the root only
        progress_callback:              Optional callable(downloaded, total)
    """

    def __init__(
        self,
        lockfile: Lockfile,
        provider: MetadataProvider,
        session: aiohttp.ClientSession,
        *,
        checker: Optional[CompatibilityChecker] = None,
        skip_client_only_dependencies: bool = True,
        cascade_optional: bool = False,
        progress_callback: Optional[Callable] = None,
    ) -> None:
        self.lockfile = lockfile
        self.provider = provider
        self.session = session
        self.checker = checker or CompatibilityChecker()
        self.skip_client_only_dependencies = skip_client_only_dependencies
        self.cascade_optional = cascade_optional
        self.progress_callback = progress_callback

    async def add(
        self,
        project_id: str,
        version: str = LATEST,
        include_optional: bool = False,
        skip_dependencies: bool = False,
    ) -> List[Entry]:
        """
        Install ``project_id`` and, unless skipped, its dependency tree.

        Already-installed projects (by slug or project id) are skipped, which
        makes re-runs idempotent and breaks dependency cycles. Any failure
        aborts the whole operation; entries committed before it stay in the
        lockfile.

        Returns:
            Entries committed by this call, in install order
        """
        _ensure_initialized(self.lockfile)

        committed: List[Entry] = []
        stack = [_Pending(project_id, version, include_optional, skip_dependencies, True)]

        while stack:
            item = stack.pop()

            if self.lockfile.get(item.project_id) is not None:
                logger.info("%s is already installed, skipping", item.project_id)
                continue

            try:
                entry, metadata = await self._install(item)
            except UnsupportedServerSideError as exc:
                if item.is_root or not self.skip_client_only_dependencies:
                    raise
                logger.warning("%s, skipping", exc.message)
                continue

            if entry is None:
                continue
            committed.append(entry)

            if item.skip_dependencies:
                continue

            children: List[_Pending] = []
            for dep in metadata.declared_dependencies:
                if not dep.required and not item.include_optional:
                    logger.debug("Skipping optional dependency %s", dep.project_id)
                    continue
                children.append(_Pending(
                    dep.project_id,
                    LATEST,
                    include_optional=item.include_optional and self.cascade_optional,
                    skip_dependencies=False,
                ))
            # Reversed so the first declared dependency is installed first
            stack.extend(reversed(children))

        return committed

    async def _install(self, item: _Pending):
        """Resolve, validate, download and commit one project."""
        config = self.lockfile.loader
        metadata = await self.provider.resolve(
            item.project_id, item.version, config.name, config.game_version, self.session,
        )

        # The request may have used an alias (slug vs id) of an installed entry
        existing = self.lockfile.get(metadata.slug) or self.lockfile.get(metadata.project_id)
        if existing is not None:
            logger.info("%s is already installed as %s, skipping", item.project_id, existing.slug)
            return None, metadata

        self.checker.check(config, metadata)
        artifact = select_artifact(metadata)

        dest = self.lockfile.install_dir() / Path(artifact.filename).name
        logger.info("Installing %s %s", metadata.slug, metadata.version_id)
        await download_with_checksum(
            artifact.url,
            dest,
            artifact.digest_algorithm,
            artifact.digest_hex,
            self.session,
            progress_callback=self.progress_callback,
        )

        requires: List[str] = []
        for dep in metadata.declared_dependencies:
            if dep.project_id not in requires:
                requires.append(dep.project_id)

        entry = Entry(
            slug=metadata.slug,
            project_id=metadata.project_id,
            version_id=metadata.version_id,
            file_path=self.lockfile.relative_path(dest),
            remote_source=f"{metadata.provider}#{artifact.url}",
            checksum=artifact.checksum,
            requires=requires,
        )
        self.lockfile.add(entry)
        return entry, metadata


# ──────────────────────────────────────────────
#  Project Manager
# ──────────────────────────────────────────────

class ProjectManager:
    """
    Entry point for project add/remove against a server directory.

    Args:
        server_dir: Path to the Minecraft server directory
        config:     Manager settings (defaults when omitted)
    """

    def __init__(
        self,
        server_dir: str | Path = ".",
        config: Optional[ManagerConfig] = None,
    ) -> None:
        self.server_dir = Path(server_dir)
        self.config = config or ManagerConfig()
        self.lockfile_path = self.server_dir / self.config.lockfile

    def open_lockfile(self) -> Lockfile:
        return Lockfile.init_or_load(self.lockfile_path)

    def init_server(
        self, game_version: str, loader: str, runtime_version: str = LATEST,
    ) -> Lockfile:
        return Lockfile.with_params(
            self.lockfile_path, game_version, loader, runtime_version,
        )

    async def add(
        self,
        project_id: str,
        version: str = LATEST,
        *,
        provider: Optional[str] = None,
        include_optional: bool = False,
        skip_dependencies: bool = False,
        session: Optional[aiohttp.ClientSession] = None,
        progress_callback: Optional[Callable] = None,
    ) -> List[Entry]:
        """Install a project; see ``DependencyResolver.add``."""
        lockfile = self.open_lockfile()
        _ensure_initialized(lockfile)

        source = get_provider(
            provider or self.config.provider,
            user_agent=self.config.user_agent,
            timeout=self.config.request_timeout,
        )

        own_session = session is None
        if own_session:
            session = aiohttp.ClientSession(headers={"User-Agent": self.config.user_agent})

        try:
            resolver = DependencyResolver(
                lockfile,
                source,
                session,
                skip_client_only_dependencies=self.config.skip_client_only_dependencies,
                cascade_optional=self.config.cascade_optional,
                progress_callback=progress_callback,
            )
            return await resolver.add(
                project_id, version, include_optional, skip_dependencies,
            )
        finally:
            if own_session:
                await session.close()

    def remove(
        self, slug: str, keep_file: bool = False, remove_orphans: bool = False,
    ) -> List[Entry]:
        """Remove a project; see ``Lockfile.remove``."""
        lockfile = self.open_lockfile()
        _ensure_initialized(lockfile)
        return lockfile.remove(slug, keep_file=keep_file, remove_orphans=remove_orphans)

    def list_entries(self) -> List[Entry]:
        return list(self.open_lockfile().entries)
