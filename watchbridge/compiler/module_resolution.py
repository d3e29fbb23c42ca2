"""Module resolution that respects the host's inclusion filter."""

from __future__ import annotations

import posixpath
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Protocol

from ..errors import ResolutionError
from ..path_filter import normalize_path

_PROBE_EXTENSIONS = (".ts", ".tsx", ".d.ts", ".mts", ".cts")


@dataclass(frozen=True)
class ResolvedModule:
    """Where an import specifier resolved to."""

    resolved_file_name: str
    extension: str
    is_external_library_import: bool = False


@dataclass
class ResolutionResult:
    """Outcome of resolving one specifier; `resolved` is None if unresolved."""

    resolved: ResolvedModule | None
    failed_lookup_locations: list[str] = field(default_factory=list)


class ModuleResolver(Protocol):
    def resolve(self, specifier: str, containing_file: str) -> ResolutionResult:
        ...


def _extension_of(file_name: str) -> str:
    for ext in _PROBE_EXTENSIONS[::-1]:
        if file_name.endswith(ext):
            return ext
    return posixpath.splitext(file_name)[1]


class FileSystemModuleResolver:
    """
    Default resolver for relative and absolute specifiers.

    Probes `<path>.ts`, `<path>.tsx`, `<path>.d.ts`, `<path>.mts`,
    `<path>.cts` and then `<path>/index.*`; `./a.js` also finds `./a.ts`.
    Bare specifiers are left to the compiler and come back unresolved.
    """

    def resolve(self, specifier: str, containing_file: str) -> ResolutionResult:
        if not specifier:
            raise ResolutionError(specifier, containing_file, "empty specifier")

        spec = normalize_path(specifier)
        if not (spec.startswith(".") or posixpath.isabs(spec)):
            return ResolutionResult(resolved=None)

        importer = normalize_path(containing_file)
        if not posixpath.isabs(importer):
            raise ResolutionError(specifier, containing_file, "importing file path must be absolute")

        base = posixpath.normpath(posixpath.join(posixpath.dirname(importer), spec))
        # "./a.js" in TypeScript sources refers to "./a.ts"
        stem, ext = posixpath.splitext(base)
        candidates = []
        if ext in (".js", ".jsx", ".mjs", ".cjs"):
            candidates += [stem + e for e in (".ts", ".tsx", ".mts", ".cts")]
        if ext in (".ts", ".tsx", ".mts", ".cts"):
            candidates.append(base)
        candidates += [base + e for e in _PROBE_EXTENSIONS]
        candidates += [posixpath.join(base, "index" + e) for e in _PROBE_EXTENSIONS]

        failed: list[str] = []
        for candidate in candidates:
            if Path(candidate).is_file():
                return ResolutionResult(
                    resolved=ResolvedModule(candidate, _extension_of(candidate)),
                    failed_lookup_locations=failed,
                )
            failed.append(candidate)
        return ResolutionResult(resolved=None, failed_lookup_locations=failed)


class ModuleResolutionAdapter:
    """
    Drop resolutions the host would not include.

    A module resolved to an excluded file is reported as unresolved so the
    compiler treats it as external instead of a project member. Errors from
    the underlying resolver propagate unchanged.
    """

    def __init__(self, include: Callable[[str], bool], resolver: ModuleResolver | None = None):
        """
        Args:
            include: Host inclusion predicate
            resolver: Default resolution to delegate to
        """
        self.include = include
        self.resolver = resolver or FileSystemModuleResolver()

    def resolve(
        self,
        specifier: str,
        containing_file: str,
        default: ResolutionResult | None = None,
    ) -> ResolutionResult:
        """
        Args:
            specifier: Import specifier as written
            containing_file: Absolute path of the importing file
            default: The compiler's own resolution; when given, the fallback
                resolver is skipped and only the inclusion filter applies
        """
        result = default if default is not None else self.resolver.resolve(specifier, containing_file)
        resolved = result.resolved
        if resolved is not None and not self.include(resolved.resolved_file_name):
            return replace(result, resolved=None)
        return result

    __call__ = resolve


__all__ = [
    "FileSystemModuleResolver",
    "ModuleResolutionAdapter",
    "ModuleResolver",
    "ResolutionResult",
    "ResolvedModule",
]
