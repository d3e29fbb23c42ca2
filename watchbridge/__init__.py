"""watchbridge: serve a TypeScript watch compiler's output to a per-file build host.

The host asks for one file at a time; the compiler re-checks the whole
project in watch mode and emits batches of artifacts. watchbridge keeps one
compiler alive, caches what it emits (in memory and on disk), and answers
each load only once the compiler has settled.

- Session: the watch compiler's lifetime and activity state
- Artifacts: emitted outputs, their names and their caches
- Compiler: the backend interface, the Node.js watch driver and module resolution
"""

__version__ = "0.1.0"

# Artifacts
from .artifacts import (
    ArtifactKind,
    ArtifactStore,
    OutputResolver,
    PersistentArtifactCache,
    TieredArtifactLookup,
    TypescriptOutput,
)

# Compiler
from .compiler import (
    CompilerBackend,
    ModuleResolutionAdapter,
    NodeWatchBackend,
    WatchHooks,
    WatchProgram,
)

# Config, errors, diagnostics
from .config import CompilerOptions, ParsedConfig, PluginOptions, parse_typescript_config
from .diagnostics import Diagnostic, DiagnosticCategory, DiagnosticQueue, Message
from .errors import CompilerExitError, ConfigError, FatalIOError, ResolutionError, WatchBridgeError

# Host plugin
from .plugin import LoadResult, TypeScriptWatchPlugin
from .session import CompilationSession, CoordinatorState, WatchCoordinator
from .validation import HostBuildOptions

__all__ = [
    # Artifacts
    "ArtifactKind",
    "ArtifactStore",
    "OutputResolver",
    "PersistentArtifactCache",
    "TieredArtifactLookup",
    "TypescriptOutput",
    # Compiler
    "CompilerBackend",
    "ModuleResolutionAdapter",
    "NodeWatchBackend",
    "WatchHooks",
    "WatchProgram",
    # Session
    "CompilationSession",
    "CoordinatorState",
    "WatchCoordinator",
    # Config, errors, diagnostics
    "CompilerOptions",
    "ParsedConfig",
    "PluginOptions",
    "parse_typescript_config",
    "Diagnostic",
    "DiagnosticCategory",
    "DiagnosticQueue",
    "Message",
    "CompilerExitError",
    "ConfigError",
    "FatalIOError",
    "ResolutionError",
    "WatchBridgeError",
    # Host plugin
    "HostBuildOptions",
    "LoadResult",
    "TypeScriptWatchPlugin",
]
