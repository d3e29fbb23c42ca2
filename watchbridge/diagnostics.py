"""Compiler diagnostics and the host-facing messages built from them."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from pathlib import Path

from pydantic import BaseModel

PLUGIN_NAME = "watchbridge"

# Watch status message codes reported by the TypeScript compiler
STARTING_COMPILATION = 6031  # Starting compilation in watch mode...
FILE_CHANGE_DETECTED = 6032  # File change detected. Starting incremental compilation...
FOUND_ONE_ERROR_WATCHING = 6193  # Found 1 error. Watching for file changes.
FOUND_ERRORS_WATCHING = 6194  # Found {0} errors. Watching for file changes.


class DiagnosticCategory(IntEnum):
    """TypeScript diagnostic categories (same numeric values)."""

    WARNING = 0
    ERROR = 1
    SUGGESTION = 2
    MESSAGE = 3


@dataclass
class Diagnostic:
    """
    A diagnostic or status report from the compiler.

    `line` and `column` are 1-based when known.
    """

    code: int
    category: DiagnosticCategory
    text: str
    file: str | None = None
    line: int | None = None
    column: int | None = None


class Location(BaseModel):
    """Source position attached to a host message."""

    file: str
    line: int
    column: int
    line_text: str | None = None


class Message(BaseModel):
    """A warning or error handed to the host."""

    plugin_name: str = PLUGIN_NAME
    text: str
    location: Location | None = None
    detail: str | None = None


def _code_frame(file: str, line: int, column: int) -> tuple[str | None, str | None]:
    try:
        lines = Path(file).read_text(encoding="utf-8", errors="replace").splitlines()
    except OSError:
        return None, None
    if not 0 < line <= len(lines):
        return None, None
    source = lines[line - 1]
    gutter = f"{line} | "
    frame = f"{gutter}{source}\n{' ' * (len(gutter) - 2)}| {' ' * max(column - 1, 0)}^"
    return source, frame


def diagnostic_to_message(diagnostic: Diagnostic) -> Message:
    """Convert a compiler diagnostic into an equivalent host message."""
    message = Message(text=f"{PLUGIN_NAME} TS{diagnostic.code}: {diagnostic.text}")

    if diagnostic.file and diagnostic.line is not None:
        column = diagnostic.column or 1
        line_text, frame = _code_frame(diagnostic.file, diagnostic.line, column)
        message.location = Location(
            file=diagnostic.file,
            line=diagnostic.line,
            column=column,
            line_text=line_text,
        )
        message.detail = frame

    return message


def plugin_message(text: str) -> Message:
    """Message raised by the plugin itself rather than the compiler."""
    return Message(text=f"{PLUGIN_NAME}: {text}")


class DiagnosticQueue:
    """
    Errors and warnings waiting to be attached to the next resolved load.

    Every queued message is delivered exactly once by `drain`.
    """

    def __init__(self):
        self._errors: list[Message] = []
        self._warnings: list[Message] = []

    def error(self, message: Message) -> None:
        self._errors.append(message)

    def warn(self, message: Message) -> None:
        self._warnings.append(message)

    def drain(self) -> tuple[list[Message], list[Message]]:
        """Return pending (errors, warnings) and clear the queue."""
        errors, warnings = self._errors, self._warnings
        self._errors, self._warnings = [], []
        return errors, warnings

    def __len__(self) -> int:
        return len(self._errors) + len(self._warnings)


__all__ = [
    "FILE_CHANGE_DETECTED",
    "FOUND_ERRORS_WATCHING",
    "FOUND_ONE_ERROR_WATCHING",
    "PLUGIN_NAME",
    "STARTING_COMPILATION",
    "Diagnostic",
    "DiagnosticCategory",
    "DiagnosticQueue",
    "Location",
    "Message",
    "diagnostic_to_message",
    "plugin_message",
]
