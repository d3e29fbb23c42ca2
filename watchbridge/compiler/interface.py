"""Interface between the compilation session and a watch compiler."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from ..config import ParsedConfig
    from ..diagnostics import Diagnostic
    from .module_resolution import ResolutionResult

# write_file(name, data, source_file, source_text)
WriteFileHook = Callable[[str, str, "str | None", "str | None"], None]
StatusHook = Callable[["Diagnostic"], None]
DiagnosticHook = Callable[["Diagnostic"], None]
# resolve_module(specifier, containing_file, compiler_resolution)
ResolveModuleHook = Callable[[str, str, "ResolutionResult | None"], "ResolutionResult"]
# report_failure(error, fatal)
FailureHook = Callable[[BaseException, bool], None]


@dataclass
class WatchHooks:
    """
    Callbacks a watch compiler reports through.

    write_file(name, data, source_file, source_text) is called once per
    emitted file, after the content is complete. source_file is the
    originating input when the compiler knows it, source_text the input
    content the compiler read.

    resolve_module is consulted for every import the compiler resolves;
    the compiler passes its own resolution when it has one.

    report_failure receives errors raised by the other hooks and, with
    fatal=True, the compiler's own death.
    """

    resolve_module: ResolveModuleHook
    write_file: WriteFileHook
    report_status: StatusHook
    report_diagnostic: DiagnosticHook
    report_failure: FailureHook


class WatchProgram(Protocol):
    """A running watch compiler."""

    async def wake(self) -> bool:
        """
        Ask the compiler to re-check the project.

        Returns:
            True when the wake is certain to start a new compile pass
        """
        ...

    async def close(self) -> None:
        """Stop watching and release OS resources."""
        ...


class CompilerBackend(Protocol):
    """
    Creates watch compilers.

    The backend owns the compiler process; the session owns the state
    derived from it.
    """

    async def create_watch_program(self, config: "ParsedConfig", hooks: WatchHooks) -> WatchProgram:
        """Start watching `config` and report through `hooks`."""
        ...


__all__ = [
    "CompilerBackend",
    "DiagnosticHook",
    "FailureHook",
    "ResolveModuleHook",
    "StatusHook",
    "WatchHooks",
    "WatchProgram",
    "WriteFileHook",
]
