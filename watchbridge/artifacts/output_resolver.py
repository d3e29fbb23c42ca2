"""OutputResolver - find the emitted artifacts for an input module."""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ..path_filter import normalize_path
from .output_files import get_build_info_path, get_output_file_names, use_case_sensitive_file_names
from .store import (
    ArtifactKind,
    TieredArtifactLookup,
    classify,
    is_declaration_output_file,
    is_typescript_map_output_file,
)

if TYPE_CHECKING:
    from ..config import ParsedConfig
    from .persistent_cache import PersistentArtifactCache
    from .store import ArtifactStore

_DECLARATION_SUFFIX_RE = re.compile(r"\.d\.([cm]?ts)(\.map)?$")


@dataclass
class TypescriptOutput:
    """
    Outputs for one input file.

    `code` is None when nothing was emitted for the file; the host then
    loads the file itself.
    """

    code: str | None
    map: str | None
    declarations: list[str] = field(default_factory=list)


def declaration_source_name(output_path: str) -> str:
    """Map a declaration (or declaration map) back to its source name."""
    return _DECLARATION_SUFFIX_RE.sub(r".\1", output_path)


def classify_outputs(names: list[str]) -> tuple[str | None, str | None, list[str]]:
    """
    Split output names into (code, map, declarations).

    Declarations (including declaration maps) are taken first, so a
    declaration map is never mistaken for the code's source map.
    """
    declarations = [n for n in names if classify(n) is ArtifactKind.DECLARATION]
    rest = [n for n in names if n not in declarations]
    map_file = next((n for n in rest if classify(n) is ArtifactKind.MAP), None)
    code_file = next((n for n in rest if classify(n) is ArtifactKind.CODE), None)
    return code_file, map_file, declarations


class OutputResolver:
    """
    Resolve input modules to output content.

    Output names follow the compiler's naming rule; content comes from the
    live artifact store first and the persistent cache second.
    """

    def __init__(
        self,
        config: "ParsedConfig",
        store: "ArtifactStore",
        persistent: "PersistentArtifactCache | None" = None,
        include: Callable[[str], bool] | None = None,
        ignore_case: bool | None = None,
    ):
        """
        Args:
            config: Parsed configuration (shared, may gain files)
            store: Live artifact store
            persistent: Disk cache, or None when the build is not incremental
            include: Host inclusion predicate
            ignore_case: Override filesystem case detection
        """
        self.config = config
        self.store = store
        self.persistent = persistent
        self.include = include or (lambda _: True)
        self.ignore_case = (not use_case_sensitive_file_names()) if ignore_case is None else ignore_case
        self.lookup = TieredArtifactLookup(store, persistent)
        self._sources: dict[str, str] = {}
        self._indexed_files = 0

    def output_file_names(self, input_path: str) -> list[str]:
        return get_output_file_names(self.config, input_path, self.ignore_case)

    def _fingerprint_of(self, source: str | None) -> Callable[[], str | None]:
        def fingerprint() -> str | None:
            if source is None or self.persistent is None:
                return None
            return self.persistent.fingerprint_file(source)

        return fingerprint

    def resolve(self, input_path: str) -> TypescriptOutput:
        """Emitted code and map content plus declaration names for an input."""
        source = normalize_path(input_path)
        code_file, map_file, declarations = classify_outputs(self.output_file_names(source))

        fingerprint = self._fingerprint_of(source)
        return TypescriptOutput(
            code=self.lookup.get(code_file, fingerprint),
            map=self.lookup.get(map_file, fingerprint),
            declarations=declarations,
        )

    def source_for_output(self, output_path: str) -> str | None:
        """Input file that produces `output_path`, if any known input does."""
        if self._indexed_files != len(self.config.file_names):
            self._sources = {
                name: source
                for source in self.config.file_names
                for name in self.output_file_names(source)
            }
            self._indexed_files = len(self.config.file_names)
        return self._sources.get(normalize_path(output_path))

    def get_emitted_file(self, output_path: str) -> str | None:
        """Content of any output file through both tiers."""
        return self.lookup.get(output_path, self._fingerprint_of(self.source_for_output(output_path)))

    def declaration_and_map_outputs(self) -> list[str]:
        """
        Emitted declarations and TypeScript maps whose source is still included.

        Consumed by the end-of-build writer.
        """
        return [
            path
            for path in self.store.paths()
            if (is_declaration_output_file(path) or is_typescript_map_output_file(path))
            and self.include(declaration_source_name(path))
        ]

    def build_info(self) -> tuple[str, str] | None:
        """Build-info path and content, when emitted in this session."""
        path = get_build_info_path(self.config)
        if path is None:
            return None
        content = self.store.get(path)
        if content is None:
            return None
        return path, content


__all__ = ["OutputResolver", "TypescriptOutput", "classify_outputs", "declaration_source_name"]
