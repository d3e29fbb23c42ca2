"""Compiler layer - the watch compiler interface, the Node driver backend and resolution."""

from .interface import CompilerBackend, WatchHooks, WatchProgram
from .module_resolution import (
    FileSystemModuleResolver,
    ModuleResolutionAdapter,
    ResolutionResult,
    ResolvedModule,
)
from .node_backend import DriverMessageHandler, NodeWatchBackend, NodeWatchProgram

__all__ = [
    "CompilerBackend",
    "DriverMessageHandler",
    "FileSystemModuleResolver",
    "ModuleResolutionAdapter",
    "NodeWatchBackend",
    "NodeWatchProgram",
    "ResolutionResult",
    "ResolvedModule",
    "WatchHooks",
    "WatchProgram",
]
