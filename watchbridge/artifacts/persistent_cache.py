"""
PersistentArtifactCache - emitted artifacts persisted across restarts.

The compiler may skip re-emitting unchanged files when a watch session
starts from existing build info. Their content is recovered from here.
"""

from __future__ import annotations

import hashlib
import logging
import os
import tempfile
import time
from pathlib import Path

from pydantic import BaseModel, ValidationError

from ..errors import FatalIOError

logger = logging.getLogger(__name__)


class PersistentCacheEntry(BaseModel):
    """One cached output file, as stored on disk."""

    output_path: str
    fingerprint: str
    content: str
    created_at: float


def compute_fingerprint(source: bytes, salt: str = "") -> str:
    """Blake2b digest of source content, salted with e.g. an options digest."""
    digest = hashlib.blake2b(digest_size=16)
    digest.update(salt.encode())
    digest.update(b"\0")
    digest.update(source)
    return digest.hexdigest()


class PersistentArtifactCache:
    """
    Disk cache of emitted artifacts.

    Layout: one JSON document per output path,
    `{root}/{blake2b(output_path)}.json`. An entry is only returned when its
    fingerprint matches the caller's; corrupt entries count as misses.
    """

    def __init__(self, root: Path | str, salt: str = ""):
        """
        Initialize the cache.

        Args:
            root: Cache directory (created lazily on first store)
            salt: Mixed into every fingerprint; changing it invalidates all entries
        """
        self.root = Path(root)
        self.salt = salt

    def entry_path(self, output_path: str) -> Path:
        key = hashlib.blake2b(output_path.encode(), digest_size=16).hexdigest()
        return self.root / f"{key}.json"

    def fingerprint_file(self, source_path: str) -> str | None:
        """Fingerprint of a source file on disk, or None if unreadable."""
        try:
            data = Path(source_path).read_bytes()
        except OSError:
            return None
        return compute_fingerprint(data, self.salt)

    def fingerprint_text(self, source_text: str) -> str:
        """Fingerprint of source content as the compiler read it."""
        return compute_fingerprint(source_text.encode("utf-8"), self.salt)

    def store(self, output_path: str, content: str, fingerprint: str) -> None:
        """
        Persist an artifact.

        Uses write-to-temp-then-rename so readers never see partial entries.

        Raises:
            FatalIOError: If the entry cannot be written
        """
        entry = PersistentCacheEntry(
            output_path=output_path,
            fingerprint=fingerprint,
            content=content,
            created_at=time.time(),
        )
        target = self.entry_path(output_path)
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            fd, temp_path = tempfile.mkstemp(suffix=".tmp", prefix="entry_", dir=self.root)
        except OSError as e:
            raise FatalIOError(str(target), e) from e
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(entry.model_dump_json())
            os.replace(temp_path, target)
        except OSError as e:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise FatalIOError(str(target), e) from e

    def _read(self, path: Path) -> PersistentCacheEntry | None:
        try:
            return PersistentCacheEntry.model_validate_json(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError, ValidationError) as e:
            logger.debug("Ignoring unreadable cache entry %s: %s", path, e)
            return None

    def lookup(self, output_path: str, fingerprint: str) -> str | None:
        """
        Cached content for an output path.

        Returns:
            The content if an entry exists with a matching fingerprint,
            None otherwise
        """
        entry = self._read(self.entry_path(output_path))
        if entry is None:
            return None
        if entry.output_path != output_path or entry.fingerprint != fingerprint:
            logger.debug("Stale cache entry for %s", output_path)
            return None
        return entry.content

    def entries(self) -> list[PersistentCacheEntry]:
        """All readable entries, sorted by output path."""
        if not self.root.is_dir():
            return []
        found = (self._read(p) for p in self.root.glob("*.json"))
        return sorted((e for e in found if e is not None), key=lambda e: e.output_path)


__all__ = ["PersistentArtifactCache", "PersistentCacheEntry", "compute_fingerprint"]
