"""
errors.py
=========
Exception hierarchy for add-on management.

Every failure raised by the downloader, the providers, the compatibility
checker, the resolver and the lockfile derives from ``AddonError`` so the
CLI can report it uniformly and exit non-zero.
"""

from __future__ import annotations

from typing import Mapping, Optional


class AddonError(Exception):
    """Base error carrying an optional hint and context mapping."""

    def __init__(
        self,
        message: str,
        *,
        hint: Optional[str] = None,
        context: Optional[Mapping[str, str]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.hint = hint
        self.context = dict(context or {})

    def __str__(self) -> str:
        parts = [self.message]
        if self.hint:
            parts.append(f"Hint: {self.hint}")
        for key, value in self.context.items():
            if value:
                parts.append(f"  {key}: {value}")
        return "\n".join(parts)


class NetworkError(AddonError):
    """Provider or download host unreachable, or a non-2xx response."""


class CorruptLockfileError(AddonError):
    """The lockfile exists but cannot be parsed."""


class InvalidConfigurationError(AddonError):
    """Bad game version syntax, unknown loader or malformed settings."""


class ServerNotInitializedError(InvalidConfigurationError):
    """Raised when add/remove is attempted before ``server init``."""


class DuplicateEntryError(AddonError):
    """An entry with the same slug is already in the lockfile."""


class EntryNotFoundError(AddonError):
    """No entry with the given slug exists in the lockfile."""


class IncompatibleProjectError(AddonError):
    """Base for compatibility-check failures."""


class UnsupportedServerSideError(IncompatibleProjectError):
    """The project declares it runs client-side only."""


class LoaderMismatchError(IncompatibleProjectError):
    """The project does not support the configured loader."""


class GameVersionMismatchError(IncompatibleProjectError):
    """The project does not support the configured game version."""


class NoInstallableArtifactError(AddonError):
    """None of the candidate files has an installable extension."""


class ChecksumMismatchError(AddonError):
    """The downloaded bytes do not hash to the expected digest."""

    def __init__(self, path: str, expected: str, actual: str) -> None:
        super().__init__(
            f"Checksum mismatch for {path}",
            hint="The download was discarded; retry or report the artifact upstream.",
            context={"expected": expected, "actual": actual},
        )
        self.expected = expected
        self.actual = actual


class UnsupportedDigestError(AddonError):
    """The checksum uses an algorithm tag we cannot compute."""


class NoMatchingVersionError(AddonError):
    """The provider has no version satisfying the loader/game-version filter."""
