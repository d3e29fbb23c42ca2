"""Exception types raised by watchbridge."""

from __future__ import annotations


class WatchBridgeError(Exception):
    """Base class for watchbridge failures."""


class ConfigError(WatchBridgeError):
    """
    Invalid or contradictory configuration.

    Raised before the first compile; fatal to the build.
    """

    def __init__(self, message: str, messages: list[str] | None = None):
        super().__init__(message)
        self.messages = messages or [message]


class ResolutionError(WatchBridgeError):
    """Module resolution failed for an import specifier."""

    def __init__(self, specifier: str, containing_file: str, reason: str):
        super().__init__(f"Cannot resolve '{specifier}' from {containing_file}: {reason}")
        self.specifier = specifier
        self.containing_file = containing_file
        self.reason = reason


class FatalIOError(WatchBridgeError):
    """Writing cached or emitted artifacts to disk failed."""

    def __init__(self, path: str, cause: OSError):
        super().__init__(f"Failed to write {path}: {cause}")
        self.path = path
        self.cause = cause


class CompilerExitError(WatchBridgeError):
    """
    The watch compiler process exited while the session still needed it.

    `output` holds the compiler's last messages (diagnostics and stderr
    lines) explaining the exit.
    """

    def __init__(self, returncode: int | None, output: list[str] | None = None):
        self.returncode = returncode
        self.output = list(output or [])
        super().__init__(str(self))

    def __str__(self) -> str:
        text = f"Watch compiler exited unexpectedly with code {self.returncode}"
        if self.output:
            text += ":\n" + "\n".join(self.output)
        return text


__all__ = ["CompilerExitError", "ConfigError", "FatalIOError", "ResolutionError", "WatchBridgeError"]
