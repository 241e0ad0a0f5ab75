"""
downloader.py
=============
Streaming artifact download with integrity verification.

The response body is written to disk and fed to a digest accumulator in the
same pass, so nothing is buffered in memory beyond a single chunk.
"""

from __future__ import annotations

import asyncio
import contextlib
import hashlib
import inspect
import logging
from pathlib import Path
from typing import Callable, Optional, Tuple

import aiohttp

from errors import ChecksumMismatchError, NetworkError, UnsupportedDigestError

logger = logging.getLogger(__name__)

SUPPORTED_ALGORITHMS = ("sha1", "sha256", "sha512")
CHUNK_SIZE = 8192


def parse_checksum(checksum: str) -> Tuple[str, str]:
    """
    Split an ``algorithm#hexdigest`` checksum tag.

    Returns:
        (algorithm, hexdigest) with the algorithm lower-cased
    """
    algorithm, sep, digest = checksum.partition("#")
    algorithm = algorithm.strip().lower()
    if not sep or not digest:
        raise UnsupportedDigestError(f"Malformed checksum '{checksum}'")
    if algorithm not in SUPPORTED_ALGORITHMS:
        raise UnsupportedDigestError(
            f"Unsupported checksum algorithm '{algorithm}'",
            hint=f"supported: {', '.join(SUPPORTED_ALGORITHMS)}",
        )
    return algorithm, digest.strip()


def new_hasher(algorithm: str):
    """Return a fresh hashlib accumulator for an algorithm tag."""
    algorithm = algorithm.lower()
    if algorithm not in SUPPORTED_ALGORITHMS:
        raise UnsupportedDigestError(
            f"Unsupported checksum algorithm '{algorithm}'",
            hint=f"supported: {', '.join(SUPPORTED_ALGORITHMS)}",
        )
    return hashlib.new(algorithm)


def _discard(path: Path) -> None:
    with contextlib.suppress(OSError):
        path.unlink(missing_ok=True)


async def download_with_checksum(
    url: str,
    dest: str | Path,
    algorithm: str,
    expected_hex: str,
    session: aiohttp.ClientSession,
    *,
    progress_callback: Optional[Callable] = None,
) -> Path:
    """
    Download ``url`` to ``dest`` and verify its digest.

    Args:
        url:               Direct artifact URL
        dest:              Destination file path (parents are created)
        algorithm:         Digest tag, e.g. ``"sha512"``
        expected_hex:      Expected hex digest
        session:           aiohttp session
        progress_callback: Optional callable(downloaded, total), sync or async

    Returns:
        The destination path

    Raises:
        NetworkError:          on a non-2xx response, transport failure, timeout
                               or local write failure; ``dest`` is removed
        ChecksumMismatchError: when the digest differs; ``dest`` is removed
    """
    dest = Path(dest)
    hasher = new_hasher(algorithm)
    logger.info("Downloading %s -> %s", url, dest)

    downloaded = 0
    try:
        dest.parent.mkdir(parents=True, exist_ok=True)
        async with session.get(url) as resp:
            if resp.status < 200 or resp.status >= 300:
                raise NetworkError(
                    f"Download failed: HTTP {resp.status}",
                    context={"url": url},
                )

            total = int(resp.headers.get("Content-Length", 0) or 0)

            with open(dest, "wb") as fh:
                async for chunk in resp.content.iter_chunked(CHUNK_SIZE):
                    fh.write(chunk)
                    hasher.update(chunk)
                    downloaded += len(chunk)
                    if progress_callback:
                        outcome = progress_callback(downloaded, total)
                        if inspect.isawaitable(outcome):
                            await outcome
    except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
        _discard(dest)
        raise NetworkError(
            f"Download failed: {exc}", context={"url": url},
        ) from exc
    except NetworkError:
        _discard(dest)
        raise
    except OSError as exc:
        _discard(dest)
        raise NetworkError(
            f"Could not write download: {exc}", context={"url": url, "path": str(dest)},
        ) from exc

    actual = hasher.hexdigest()
    if actual != expected_hex.strip().lower():
        _discard(dest)
        logger.error("Checksum mismatch for %s (%s)", dest, algorithm)
        raise ChecksumMismatchError(str(dest), expected_hex, actual)

    logger.info("Verified %s (%d bytes, %s)", dest.name, downloaded, algorithm)
    return dest
