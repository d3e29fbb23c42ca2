"""Session layer - the watch compiler's lifetime and activity state."""

from .compilation_session import CompilationSession
from .coordinator import CoordinatorState, WatchCoordinator

__all__ = [
    "CompilationSession",
    "CoordinatorState",
    "WatchCoordinator",
]
