"""
config.py
=========
Manager settings loaded from an optional JSON file.

Example ``manager.json``::

    {
      "lockfile": "addons.lock",
      "provider": "modrinth",
      "user_agent": "MinecraftServerManager/1.0",
      "request_timeout": 15,
      "skip_client_only_dependencies": true,
      "cascade_optional": false,
      "log_file": "logs/manager.log"
    }
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict

from errors import InvalidConfigurationError
from plugin_apis import DEFAULT_USER_AGENT, PROVIDERS

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_NAME = "manager.json"

# JSON value types accepted for each annotated field type
_JSON_TYPES = {"str": (str,), "float": (int, float), "bool": (bool,)}


@dataclass
class ManagerConfig:
    """Settings shared by the CLI and the project manager."""

    lockfile: str = "addons.lock"
    provider: str = "modrinth"
    user_agent: str = DEFAULT_USER_AGENT
    request_timeout: float = 15
    skip_client_only_dependencies: bool = True
    cascade_optional: bool = False
    log_file: str = "logs/manager.log"

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ManagerConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            logger.warning("Ignoring unknown config keys: %s", ", ".join(unknown))

        for f in fields(cls):
            if f.name not in data:
                continue
            value = data[f.name]
            expected = _JSON_TYPES[f.type]
            if (isinstance(value, bool) and bool not in expected) or not isinstance(value, expected):
                raise InvalidConfigurationError(
                    f"Config key '{f.name}' must be a {f.type}",
                    context={"value": repr(value)},
                )

        cfg = cls(**{k: v for k, v in data.items() if k in known})
        if cfg.request_timeout <= 0:
            raise InvalidConfigurationError("Config key 'request_timeout' must be positive")
        if cfg.provider.lower() not in PROVIDERS:
            raise InvalidConfigurationError(
                f"Unknown provider '{cfg.provider}' in config",
                hint=f"try one of {', '.join(PROVIDERS)}",
            )
        return cfg


def load_config(path: str | Path) -> ManagerConfig:
    """
    Load settings from ``path``; defaults when the file does not exist.

    Raises:
        InvalidConfigurationError: the file is not a JSON object
    """
    path = Path(path)
    if not path.exists():
        logger.debug("Config file %s not found, using defaults", path)
        return ManagerConfig()

    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
    except (OSError, json.JSONDecodeError) as exc:
        raise InvalidConfigurationError(
            f"Failed to load config: {exc}", context={"path": str(path)},
        ) from exc

    if not isinstance(data, dict):
        raise InvalidConfigurationError(
            "Config must be a JSON object", context={"path": str(path)},
        )

    logger.debug("Config loaded from %s", path)
    return ManagerConfig.from_dict(data)
