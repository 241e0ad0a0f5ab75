"""
loaders.py
==========
Server loader definitions and their install locations.

Supported loaders:
  - Paper     (plugin server, installs into ``plugins/``)
  - Fabric    (mod loader, installs into ``mods/``)
  - Forge     (mod loader, installs into ``mods/``)
  - NeoForge  (mod loader, installs into ``mods/``)
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from errors import InvalidConfigurationError

# Sentinel accepted wherever a version string is expected
LATEST = "latest"


# ──────────────────────────────────────────────
#  Enums
# ──────────────────────────────────────────────

class ArtifactCategory(str, Enum):
    """Where a loader expects add-on jars, relative to the server directory."""

    EXTENSION = "mods"
    PLUGIN = "plugins"


class Loader(str, Enum):
    """Enumeration of all supported server loaders."""

    PAPER = "paper"
    FABRIC = "fabric"
    FORGE = "forge"
    NEOFORGE = "neoforge"

    @property
    def category(self) -> ArtifactCategory:
        if self is Loader.PAPER:
            return ArtifactCategory.PLUGIN
        if self in (Loader.FABRIC, Loader.FORGE, Loader.NEOFORGE):
            return ArtifactCategory.EXTENSION
        raise AssertionError(f"unhandled loader {self!r}")

    @property
    def install_dir(self) -> Path:
        return Path(self.category.value)

    @classmethod
    def choices(cls) -> list[str]:
        return [member.value for member in cls]

    @classmethod
    def parse(cls, name: str) -> "Loader":
        """
        Look up a loader by name (case-insensitive).

        Raises:
            InvalidConfigurationError: if the name is not a supported loader
        """
        try:
            return cls(name.strip().lower())
        except ValueError:
            raise InvalidConfigurationError(
                f"Unsupported loader '{name}'",
                hint=f"try one of {', '.join(cls.choices())}",
            ) from None


# ──────────────────────────────────────────────
#  Version helpers
# ──────────────────────────────────────────────

def is_simple_version(version: str) -> bool:
    """
    True for well-formed dotted numeric versions such as ``1.20.1``.

    ``latest``, pre-release tags (``1.21-pre1``), snapshots (``23w31a``)
    and empty components are all rejected.
    """
    if not version:
        return False
    parts = version.split(".")
    if len(parts) < 2:
        return False
    return all(part.isdigit() and part.isascii() for part in parts)
