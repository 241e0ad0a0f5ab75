"""
compatibility.py
================
Validates that a resolved project version fits the current server.

Checks, in order:
  - Server-side support (client-only projects are rejected)
  - Loader compatibility (Paper vs Fabric vs Forge, etc.)
  - Minecraft version compatibility

Pure validation over data already fetched by a metadata provider; no
network or filesystem access happens here.
"""

from __future__ import annotations

import logging

from errors import (
    GameVersionMismatchError,
    LoaderMismatchError,
    UnsupportedServerSideError,
)
from loaders import LATEST
from lockfile import LoaderConfig
from plugin_apis import VersionMetadata

logger = logging.getLogger(__name__)


class CompatibilityChecker:
    """Validates candidate versions against a loader configuration."""

    def check(self, config: LoaderConfig, metadata: VersionMetadata) -> None:
        """
        Run all checks, raising on the first failure.

        Raises:
            UnsupportedServerSideError: client-side only project
            LoaderMismatchError:        loader not in the supported list
            GameVersionMismatchError:   game version not in the supported list
        """
        self._check_server_side(metadata)
        self._check_loader(config, metadata)
        self._check_game_version(config, metadata)
        logger.debug(
            "%s %s is compatible with %s %s",
            metadata.slug, metadata.version_id, config.name, config.game_version,
        )

    # ── Individual Checks ───────────────────────

    @staticmethod
    def _check_server_side(metadata: VersionMetadata) -> None:
        if not metadata.server_side_supported:
            raise UnsupportedServerSideError(
                f"Project {metadata.slug} does not support server side",
            )

    @staticmethod
    def _check_loader(config: LoaderConfig, metadata: VersionMetadata) -> None:
        supported = {loader.lower() for loader in metadata.supported_loaders}
        if config.name.lower() not in supported:
            raise LoaderMismatchError(
                f"Project {metadata.slug} does not support {config.name}",
                context={"supported": ", ".join(sorted(supported))},
            )

    @staticmethod
    def _check_game_version(config: LoaderConfig, metadata: VersionMetadata) -> None:
        if config.game_version == LATEST:
            return
        if config.game_version not in metadata.supported_game_versions:
            raise GameVersionMismatchError(
                f"Project {metadata.slug} does not support Minecraft version "
                f"{config.game_version}",
            )


def check_compatibility(config: LoaderConfig, metadata: VersionMetadata) -> None:
    """Module-level shortcut for ``CompatibilityChecker().check``."""
    CompatibilityChecker().check(config, metadata)
