"""Artifact layer - emitted outputs, their names and their caches."""

from .output_files import emit_file, get_build_info_path, get_output_file_names
from .output_resolver import OutputResolver, TypescriptOutput, classify_outputs
from .persistent_cache import PersistentArtifactCache, PersistentCacheEntry, compute_fingerprint
from .store import ArtifactKind, ArtifactRecord, ArtifactStore, TieredArtifactLookup, classify

__all__ = [
    "ArtifactKind",
    "ArtifactRecord",
    "ArtifactStore",
    "OutputResolver",
    "PersistentArtifactCache",
    "PersistentCacheEntry",
    "TieredArtifactLookup",
    "TypescriptOutput",
    "classify",
    "classify_outputs",
    "compute_fingerprint",
    "emit_file",
    "get_build_info_path",
    "get_output_file_names",
]
