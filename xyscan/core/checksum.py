"""
Checksum utilities for xyscan
Streaming SHA-256 computation and checksum manifest verification
"""

import asyncio
import hashlib
import logging
from pathlib import Path
from typing import Optional

from ..utils.http_client import HTTPClient
from .errors import ChecksumMismatchError, NetworkError

logger = logging.getLogger(__name__)

HASH_CHUNK_SIZE = 1024 * 1024


def sha256_file(path: Path, chunk_size: int = HASH_CHUNK_SIZE) -> str:
    """Lowercase hex SHA-256 of *path*, read in chunks."""
    digest = hashlib.sha256()
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(chunk_size), b""):
            digest.update(chunk)
    return digest.hexdigest()


def parse_checksum_manifest(content: str) -> Optional[str]:
    """Expected digest from a manifest: its first whitespace-delimited token."""
    tokens = (content or "").split()
    return tokens[0] if tokens else None


def checksum_matches(expected: str, actual: str) -> bool:
    return (expected or "").strip().lower() == (actual or "").strip().lower()


def verify_checksum(path: Path, manifest: str) -> str:
    """Verify *path* against *manifest* text; returns the actual digest.

    Raises ChecksumMismatchError when the manifest is empty or the digests
    differ.
    """
    expected = parse_checksum_manifest(manifest)
    actual = sha256_file(path)
    if not expected or not checksum_matches(expected, actual):
        raise ChecksumMismatchError(expected or "", actual)
    return actual


async def fetch_checksum_manifest(client: HTTPClient, url: str) -> str:
    """Download a checksum manifest as text."""
    response = await client.get(url)
    if not response.is_success:
        raise NetworkError(
            f"Checksum download from {url} failed with HTTP {response.status_code}",
            url=url,
            status_code=response.status_code,
        )
    return response.text


async def download_and_verify(client: HTTPClient, url: str, checksum_url: str,
                              destination: Path) -> Path:
    """Download *url* to *destination* and verify it against *checksum_url*."""
    await client.download(url, destination)
    manifest = await fetch_checksum_manifest(client, checksum_url)
    actual = await asyncio.to_thread(verify_checksum, destination, manifest)
    logger.debug(f"Checksum OK for {destination.name}: {actual}")
    return destination
