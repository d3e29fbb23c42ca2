"""ArtifactStore - in-memory output artifacts from the current session."""

from __future__ import annotations

import re
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .persistent_cache import PersistentArtifactCache

_DECLARATION_RE = re.compile(r"\.d\.[cm]?ts$")
_DECLARATION_MAP_RE = re.compile(r"\.d\.[cm]?ts\.map$")


class ArtifactKind(Enum):
    """What an emitted file is."""

    CODE = "code"
    MAP = "map"
    DECLARATION = "declaration"
    BUILDINFO = "buildinfo"


def is_declaration_output_file(name: str) -> bool:
    """Checks if the given output file represents some declaration."""
    return bool(_DECLARATION_RE.search(name))


def is_declaration_map_output_file(name: str) -> bool:
    """Checks if the given output file is the source map of a declaration."""
    return bool(_DECLARATION_MAP_RE.search(name))


def is_map_output_file(name: str) -> bool:
    return name.endswith(".map")


def is_typescript_map_output_file(name: str) -> bool:
    """Source maps pointing back at TypeScript, e.g. `a.d.ts.map`."""
    return name.endswith("ts.map")


def is_build_info_output_file(name: str) -> bool:
    return name.endswith(".tsbuildinfo")


def is_code_output_file(name: str) -> bool:
    return not (
        is_map_output_file(name)
        or is_declaration_output_file(name)
        or is_build_info_output_file(name)
    )


def classify(name: str) -> ArtifactKind:
    """Classify an output file; declaration maps count as declarations."""
    if is_declaration_output_file(name) or is_declaration_map_output_file(name):
        return ArtifactKind.DECLARATION
    if is_build_info_output_file(name):
        return ArtifactKind.BUILDINFO
    if is_map_output_file(name):
        return ArtifactKind.MAP
    return ArtifactKind.CODE


@dataclass(frozen=True)
class ArtifactRecord:
    """A single emitted artifact."""

    output_path: str
    content: str
    kind: ArtifactKind

    @classmethod
    def from_emit(cls, output_path: str, content: str) -> "ArtifactRecord":
        return cls(output_path=output_path, content=content, kind=classify(output_path))


class ArtifactStore:
    """
    Output path -> content for everything emitted in this process.

    Entries are overwritten on re-emit and never removed. Written only by
    the compiler's write hook.
    """

    def __init__(self):
        self._records: dict[str, ArtifactRecord] = {}

    def put(self, path: str, content: str) -> ArtifactRecord:
        record = ArtifactRecord.from_emit(path, content)
        self._records[path] = record
        return record

    def get(self, path: str) -> str | None:
        record = self._records.get(path)
        return record.content if record else None

    def record(self, path: str) -> ArtifactRecord | None:
        return self._records.get(path)

    def paths(self) -> list[str]:
        """Emitted paths in first-emission order."""
        return list(self._records)

    def __contains__(self, path: str) -> bool:
        return path in self._records

    def __iter__(self) -> Iterator[ArtifactRecord]:
        return iter(list(self._records.values()))

    def __len__(self) -> int:
        return len(self._records)


class TieredArtifactLookup:
    """
    Two-tier artifact lookup: the live store first, then the disk cache.

    The fingerprint is only computed when the first tier misses.
    """

    def __init__(self, store: ArtifactStore, persistent: "PersistentArtifactCache | None" = None):
        self.store = store
        self.persistent = persistent

    def get(
        self,
        path: str | None,
        fingerprint: Callable[[], str | None] | None = None,
    ) -> str | None:
        """
        Content of an output file, or None when neither tier has it.

        Args:
            path: Output file path
            fingerprint: Callable producing the current fingerprint of the
                file's originating source
        """
        if not path:
            return None
        if path in self.store:
            return self.store.get(path)
        if self.persistent is None or fingerprint is None:
            return None
        current = fingerprint()
        if current is None:
            return None
        return self.persistent.lookup(path, current)


__all__ = [
    "ArtifactKind",
    "ArtifactRecord",
    "ArtifactStore",
    "TieredArtifactLookup",
    "classify",
    "is_build_info_output_file",
    "is_code_output_file",
    "is_declaration_map_output_file",
    "is_declaration_output_file",
    "is_map_output_file",
    "is_typescript_map_output_file",
]
