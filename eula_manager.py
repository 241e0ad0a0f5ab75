"""
eula_manager.py
===============
Minecraft End User License Agreement (EULA) handling for a server directory.

The server refuses to start until ``eula.txt`` contains ``eula=true``;
``sign`` writes that file on the operator's behalf.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

# The official EULA URL
EULA_URL = "https://www.minecraft.net/en-us/eula"

# Standard eula.txt template
EULA_TEMPLATE = """\
#By changing the setting below to TRUE you are indicating your agreement to our EULA ({url}).
#{timestamp}
eula={value}
"""


# ──────────────────────────────────────────────
#  Result Objects
# ──────────────────────────────────────────────

@dataclass
class EulaResult:
    """Result object for EULA operations."""
    success: bool
    message: str
    error: Optional[str] = None

    @classmethod
    def ok(cls, message: str) -> "EulaResult":
        return cls(success=True, message=message)

    @classmethod
    def fail(cls, message: str, error: Optional[str] = None) -> "EulaResult":
        return cls(success=False, message=message, error=error)


# ──────────────────────────────────────────────
#  EULA Manager
# ──────────────────────────────────────────────

class EulaManager:
    """
    Reads and signs ``eula.txt``.

    Args:
        server_dir: Path to the Minecraft server directory
    """

    def __init__(self, server_dir: str | Path) -> None:
        self.server_dir = Path(server_dir)
        self.eula_path = self.server_dir / "eula.txt"

    def check_eula_status(self) -> bool:
        """True if eula.txt exists and contains ``eula=true``."""
        if not self.eula_path.exists():
            logger.debug("eula.txt not found at %s", self.eula_path)
            return False

        try:
            content = self.eula_path.read_text(encoding="utf-8")
        except OSError as exc:
            logger.error("Failed to read eula.txt: %s", exc)
            return False

        for line in content.splitlines():
            stripped = line.strip().lower()
            if stripped.startswith("eula="):
                return stripped.split("=", 1)[1].strip() == "true"

        logger.warning("eula.txt found but no 'eula=' line detected")
        return False

    def sign(self) -> EulaResult:
        """Write eula.txt with ``eula=true``, replacing any previous content."""
        timestamp = datetime.now(tz=timezone.utc).strftime("%a %b %d %H:%M:%S %Z %Y")
        content = EULA_TEMPLATE.format(url=EULA_URL, timestamp=timestamp, value="true")

        try:
            self.server_dir.mkdir(parents=True, exist_ok=True)
            self.eula_path.write_text(content, encoding="utf-8")
        except OSError as exc:
            return EulaResult.fail("Failed to write eula.txt", error=str(exc))

        logger.info("EULA accepted – wrote %s", self.eula_path)
        return EulaResult.ok(f"EULA accepted in {self.eula_path}")
