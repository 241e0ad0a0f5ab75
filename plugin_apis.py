"""
plugin_apis.py
==============
Metadata providers for the Minecraft add-on registries.

Supported platforms:
  - **Modrinth**    – https://api.modrinth.com/v2
  - **Hangar**      – https://hangar.papermc.io/api/v1

Each provider exposes a single ``resolve`` call that turns a project
identifier and a version selector into a ``VersionMetadata`` record:
declared dependencies, downloadable files with digests, and the loaders and
game versions the version claims to support. Provider responses are
untrusted; the compatibility checker validates them before anything is
downloaded.

Results are cached in-memory for 1 hour to reduce API load.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import aiohttp

from errors import InvalidConfigurationError, NetworkError, NoMatchingVersionError
from loaders import LATEST

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "MinecraftServerManager/1.0"


# ──────────────────────────────────────────────
#  In-Memory Cache (1 hour TTL)
# ──────────────────────────────────────────────

class _Cache:
    """Simple TTL cache for API responses."""

    def __init__(self, ttl_seconds: int = 3600) -> None:
        self._store: Dict[str, tuple[float, Any]] = {}
        self._ttl = ttl_seconds

    def get(self, key: str) -> Optional[Any]:
        entry = self._store.get(key)
        if entry is None:
            return None
        ts, value = entry
        if time.time() - ts > self._ttl:
            del self._store[key]
            return None
        return value

    def set(self, key: str, value: Any) -> None:
        self._store[key] = (time.time(), value)

    def clear(self) -> None:
        self._store.clear()


# ──────────────────────────────────────────────
#  Common Data Structures
# ──────────────────────────────────────────────

@dataclass
class DeclaredDependency:
    """A dependency as declared by a project version."""

    project_id: str
    required: bool = True


@dataclass
class CandidateFile:
    """One downloadable file of a version."""

    url: str
    filename: str
    digest_algorithm: str
    digest_hex: str

    @property
    def checksum(self) -> str:
        return f"{self.digest_algorithm}#{self.digest_hex}"


@dataclass
class VersionMetadata:
    """Normalised version record returned by every provider."""

    provider: str
    slug: str
    project_id: str
    version_id: str
    declared_dependencies: List[DeclaredDependency] = field(default_factory=list)
    candidate_files: List[CandidateFile] = field(default_factory=list)
    supported_loaders: List[str] = field(default_factory=list)
    supported_game_versions: List[str] = field(default_factory=list)
    server_side_supported: bool = True


# ──────────────────────────────────────────────
#  Provider Base
# ──────────────────────────────────────────────

class MetadataProvider(ABC):
    """Resolves project identifiers against one registry."""

    NAME = ""

    @abstractmethod
    async def resolve(
        self,
        project_id: str,
        version_selector: str,
        loader_name: str,
        game_version: str,
        session: aiohttp.ClientSession,
    ) -> VersionMetadata:
        """
        Return metadata for one version of a project.

        ``version_selector`` is an opaque provider version id or ``"latest"``,
        in which case the newest version matching ``loader_name`` and
        ``game_version`` (provider ordering) is chosen.
        """
        raise NotImplementedError


class _HttpProvider(MetadataProvider):
    """Shared HTTP plumbing: headers, timeouts, caching and error mapping."""

    BASE = ""

    def __init__(
        self,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: float = 15,
        cache_ttl: int = 3600,
    ) -> None:
        self.headers = {"User-Agent": user_agent}
        self.timeout = timeout
        self._cache = _Cache(ttl_seconds=cache_ttl)

    async def _get(
        self,
        session: aiohttp.ClientSession,
        path: str,
        *,
        params: Optional[Dict[str, str]] = None,
        as_text: bool = False,
        not_found: Optional[Exception] = None,
    ) -> Any:
        """GET ``BASE + path`` and decode the body, mapping failures to errors."""
        url = f"{self.BASE}{path}"
        cache_key = f"{self.NAME}:{url}:{sorted((params or {}).items())}:{as_text}"
        cached = self._cache.get(cache_key)
        if cached is not None:
            return cached

        logger.debug("GET %s params=%s", url, params)
        try:
            async with session.get(
                url, params=params, headers=self.headers,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as resp:
                if resp.status == 404 and not_found is not None:
                    raise not_found
                if not 200 <= resp.status < 300:
                    raise NetworkError(
                        f"{self.NAME} returned HTTP {resp.status}",
                        context={"url": url},
                    )
                data = await resp.text() if as_text else await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise NetworkError(
                f"{self.NAME} request failed: {exc}", context={"url": url},
            ) from exc

        self._cache.set(cache_key, data)
        return data

    def clear_cache(self) -> None:
        self._cache.clear()


# ──────────────────────────────────────────────
#  Modrinth Provider
# ──────────────────────────────────────────────

class ModrinthProvider(_HttpProvider):
    """Provider for the Modrinth API v2."""

    NAME = "modrinth"
    BASE = "https://api.modrinth.com/v2"

    # Dependency kinds that name something we may install
    INSTALLABLE_DEPENDENCY_TYPES = ("required", "optional")

    async def resolve(
        self,
        project_id: str,
        version_selector: str,
        loader_name: str,
        game_version: str,
        session: aiohttp.ClientSession,
    ) -> VersionMetadata:
        logger.info("Fetching project info for %s", project_id)
        project = await self._get(session, f"/project/{project_id}")
        slug = project.get("slug") or project_id
        pid = project.get("id") or project_id

        # Client-only projects are reported as-is; the checker rejects them.
        if project.get("server_side") == "unsupported":
            logger.info("Modrinth project %s is client-side only", slug)
            return VersionMetadata(
                provider=self.NAME,
                slug=slug,
                project_id=pid,
                version_id="",
                supported_loaders=list(project.get("loaders", [])),
                supported_game_versions=list(project.get("game_versions", [])),
                server_side_supported=False,
            )

        if version_selector == LATEST:
            version = await self._latest_version(
                session, slug, loader_name, game_version,
            )
        else:
            version = await self._specific_version(session, pid, slug, version_selector)

        return self._to_metadata(slug, pid, version)

    async def _latest_version(
        self,
        session: aiohttp.ClientSession,
        slug: str,
        loader_name: str,
        game_version: str,
    ) -> Dict[str, Any]:
        """Newest version (Modrinth ordering) matching loader and game version."""
        params: Dict[str, str] = {}
        if game_version and game_version != LATEST:
            params["game_versions"] = json.dumps([game_version])
        if loader_name:
            params["loaders"] = json.dumps([loader_name])

        logger.info("Fetching latest version of %s", slug)
        versions = await self._get(session, f"/project/{slug}/version", params=params)

        for version in versions or []:
            if game_version == LATEST or game_version in version.get("game_versions", []):
                return version

        raise NoMatchingVersionError(
            f"Could not find a version of {slug} for {loader_name} {game_version}",
        )

    async def _specific_version(
        self,
        session: aiohttp.ClientSession,
        pid: str,
        slug: str,
        version_id: str,
    ) -> Dict[str, Any]:
        logger.info("Fetching version %s of %s", version_id, slug)
        version = await self._get(
            session, f"/version/{version_id}",
            not_found=NoMatchingVersionError(
                f"Version '{version_id}' does not exist on Modrinth",
            ),
        )
        if version.get("project_id") != pid:
            raise NoMatchingVersionError(
                f"Version id {version_id} is not a part of project {slug}",
            )
        return version

    def _to_metadata(self, slug: str, pid: str, version: Dict[str, Any]) -> VersionMetadata:
        dependencies = [
            DeclaredDependency(
                project_id=dep["project_id"],
                required=dep.get("dependency_type") == "required",
            )
            for dep in version.get("dependencies", [])
            if dep.get("project_id")
            and dep.get("dependency_type") in self.INSTALLABLE_DEPENDENCY_TYPES
        ]

        # Primary file first, otherwise keep Modrinth's order
        files = sorted(
            version.get("files", []), key=lambda f: not f.get("primary", False),
        )
        candidates: List[CandidateFile] = []
        for f in files:
            hashes = f.get("hashes", {})
            algorithm = "sha512" if "sha512" in hashes else "sha1"
            if algorithm not in hashes or not f.get("url"):
                continue
            candidates.append(CandidateFile(
                url=f["url"],
                filename=f.get("filename", ""),
                digest_algorithm=algorithm,
                digest_hex=hashes[algorithm],
            ))

        return VersionMetadata(
            provider=self.NAME,
            slug=slug,
            project_id=pid,
            version_id=version.get("id", ""),
            declared_dependencies=dependencies,
            candidate_files=candidates,
            supported_loaders=list(version.get("loaders", [])),
            supported_game_versions=list(version.get("game_versions", [])),
        )


# ──────────────────────────────────────────────
#  Hangar Provider (PaperMC)
# ──────────────────────────────────────────────

class HangarProvider(_HttpProvider):
    """Provider for the Hangar (PaperMC) API v1."""

    NAME = "hangar"
    BASE = "https://hangar.papermc.io/api/v1"

    async def resolve(
        self,
        project_id: str,
        version_selector: str,
        loader_name: str,
        game_version: str,
        session: aiohttp.ClientSession,
    ) -> VersionMetadata:
        logger.info("Fetching info of project %s", project_id)
        project = await self._get(session, f"/projects/{project_id}")
        name = project.get("name") or project_id
        platform = loader_name.upper()

        if version_selector != LATEST:
            version = await self._version_detail(session, name, version_selector)
        elif game_version and game_version != LATEST:
            version = await self._latest_for_platform(session, name, platform, game_version)
        else:
            latest = await self._get(
                session, f"/projects/{name}/latest",
                params={"channel": "Release"}, as_text=True,
            )
            version = await self._version_detail(session, name, latest.strip().strip('"'))

        return self._to_metadata(name, platform, version)

    async def _latest_for_platform(
        self,
        session: aiohttp.ClientSession,
        name: str,
        platform: str,
        game_version: str,
    ) -> Dict[str, Any]:
        logger.info("Fetching latest %s version of %s for %s", platform, name, game_version)
        data = await self._get(
            session, f"/projects/{name}/versions",
            params={
                "channel": "Release",
                "platform": platform,
                "platformVersion": game_version,
                "limit": "1",
            },
        )
        results = data.get("result", []) if isinstance(data, dict) else []
        if not results:
            raise NoMatchingVersionError(
                f"Could not find a version of {name} for {platform.lower()} {game_version}",
            )
        return results[0]

    async def _version_detail(
        self, session: aiohttp.ClientSession, name: str, version: str,
    ) -> Dict[str, Any]:
        logger.info("Fetching info for %s v%s", name, version)
        return await self._get(
            session, f"/projects/{name}/versions/{version}",
            not_found=NoMatchingVersionError(
                f"Project version {version} of {name} does not exist",
            ),
        )

    def _to_metadata(self, name: str, platform: str, version: Dict[str, Any]) -> VersionMetadata:
        platform_deps: Dict[str, List[str]] = version.get("platformDependencies", {}) or {}

        candidates: List[CandidateFile] = []
        download = (version.get("downloads", {}) or {}).get(platform) or {}
        file_info = download.get("fileInfo") or {}
        if download.get("downloadUrl") and file_info.get("sha256Hash"):
            candidates.append(CandidateFile(
                url=download["downloadUrl"],
                filename=file_info.get("name", ""),
                digest_algorithm="sha256",
                digest_hex=file_info["sha256Hash"],
            ))

        dependencies = [
            DeclaredDependency(project_id=dep["name"], required=bool(dep.get("required")))
            for dep in (version.get("pluginDependencies", {}) or {}).get(platform, [])
            if dep.get("name")
        ]

        return VersionMetadata(
            provider=self.NAME,
            slug=name,
            project_id=name,
            version_id=version.get("name", ""),
            declared_dependencies=dependencies,
            candidate_files=candidates,
            supported_loaders=[key.lower() for key in platform_deps],
            supported_game_versions=list(platform_deps.get(platform, [])),
        )


# ──────────────────────────────────────────────
#  Public API Functions
# ──────────────────────────────────────────────

PROVIDERS = {
    ModrinthProvider.NAME: ModrinthProvider,
    HangarProvider.NAME: HangarProvider,
}


def get_provider(name: str, **kwargs: Any) -> MetadataProvider:
    """
    Instantiate a provider by name (case-insensitive).

    Args:
        name:   Provider name (``"modrinth"`` or ``"hangar"``)
        kwargs: Forwarded to the provider constructor
    """
    cls = PROVIDERS.get(name.lower())
    if cls is None:
        raise InvalidConfigurationError(
            f"Unknown provider '{name}'",
            hint=f"try one of {', '.join(PROVIDERS)}",
        )
    return cls(**kwargs)
