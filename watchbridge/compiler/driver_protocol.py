"""
Messages exchanged with the Node watch driver.

One JSON document per line. The driver writes status, diagnostic, write
and resolve messages to stdout; the bridge writes the init message and
one resolve reply per resolve request to the driver's stdin.

Example: {"type": "write", "fileName": "/p/dist/a.js", "data": "..."}
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

from ..diagnostics import Diagnostic, DiagnosticCategory


class DriverModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_line(self) -> bytes:
        return (self.model_dump_json(by_alias=True) + "\n").encode("utf-8")


# -----------------------------------------------------------------------------
# Bridge -> driver
# -----------------------------------------------------------------------------


class InitMessage(DriverModel):
    """First line on stdin: what to watch."""

    type: Literal["init"] = "init"
    cwd: str
    config_path: str | None = None
    root_files: list[str] = Field(default_factory=list)
    options: dict[str, Any] = Field(default_factory=dict)


class ResolvedModuleInfo(DriverModel):
    resolved_file_name: str
    extension: str
    is_external_library_import: bool = False


class ModuleResolution(DriverModel):
    """One specifier of a resolve request; `resolved` is None if unresolved."""

    specifier: str
    resolved: ResolvedModuleInfo | None = None


class ResolveReply(DriverModel):
    """Answer to a ResolveRequest, with modules in request order."""

    type: Literal["resolved"] = "resolved"
    id: int
    modules: list[ModuleResolution]


# -----------------------------------------------------------------------------
# Driver -> bridge
# -----------------------------------------------------------------------------


class StatusMessage(DriverModel):
    """Watch status report (codes 6031, 6032, 6193, 6194, ...)."""

    type: Literal["status"]
    code: int
    category: int
    text: str

    def to_diagnostic(self) -> Diagnostic:
        return Diagnostic(code=self.code, category=DiagnosticCategory(self.category), text=self.text)


class DiagnosticMessage(DriverModel):
    """Compiler diagnostic; line and column are 1-based."""

    type: Literal["diagnostic"]
    code: int
    category: int
    text: str
    file: str | None = None
    line: int | None = None
    column: int | None = None

    def to_diagnostic(self) -> Diagnostic:
        return Diagnostic(
            code=self.code,
            category=DiagnosticCategory(self.category),
            text=self.text,
            file=self.file,
            line=self.line,
            column=self.column,
        )


class WriteMessage(DriverModel):
    """An emitted file. `source_text` is the input content the compiler read."""

    type: Literal["write"]
    file_name: str
    data: str
    source_file: str | None = None
    source_text: str | None = None


class ResolveRequest(DriverModel):
    """
    Module resolution for one importing file.

    The driver blocks until the matching ResolveReply arrives; `modules`
    carries the compiler's own resolution of each specifier.
    """

    type: Literal["resolve"]
    id: int
    containing_file: str
    modules: list[ModuleResolution]


DriverMessage = Annotated[
    Union[StatusMessage, DiagnosticMessage, WriteMessage, ResolveRequest],
    Field(discriminator="type"),
]

_driver_message = TypeAdapter(DriverMessage)


def parse_driver_message(line: bytes | str) -> StatusMessage | DiagnosticMessage | WriteMessage | ResolveRequest:
    """
    Parse one stdout line from the driver.

    Raises:
        pydantic.ValidationError: If the line is not a known message
    """
    return _driver_message.validate_json(line)


__all__ = [
    "DiagnosticMessage",
    "DriverMessage",
    "InitMessage",
    "ModuleResolution",
    "ResolveReply",
    "ResolveRequest",
    "ResolvedModuleInfo",
    "StatusMessage",
    "WriteMessage",
    "parse_driver_message",
]
