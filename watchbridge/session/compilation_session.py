"""
CompilationSession - owns the watch compiler for the plugin's lifetime.

Wires the compiler's write hook into the artifact caches, its status
reports into the WatchCoordinator, and its failures into the next load.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..compiler.interface import WatchHooks
from ..diagnostics import DiagnosticQueue, diagnostic_to_message
from ..errors import CompilerExitError, WatchBridgeError
from ..path_filter import normalize_path
from .coordinator import WatchCoordinator

if TYPE_CHECKING:
    from ..artifacts.output_resolver import OutputResolver
    from ..artifacts.persistent_cache import PersistentArtifactCache
    from ..artifacts.store import ArtifactStore
    from ..compiler.interface import CompilerBackend, WatchProgram
    from ..compiler.module_resolution import ModuleResolutionAdapter
    from ..config import ParsedConfig
    from ..diagnostics import Diagnostic

logger = logging.getLogger(__name__)


class CompilationSession:
    """
    The single watch-compiler instance and the state fed by it.

    Created once per plugin and passed by reference. The compiler is
    created lazily by the first `start()` and woken by later ones; a
    compiler that died is recreated by the next `start()`.

    Failures reported by the compiler side (a hook raising, the process
    exiting) are raised from suspended `wait_until_idle()` calls, or from
    the next one when nobody was waiting.

    Usage:
        session = CompilationSession(backend, config, resolver, ...)
        await session.start()
        await session.wait_until_idle()
        await session.dispose()
    """

    def __init__(
        self,
        backend: "CompilerBackend",
        config: "ParsedConfig",
        module_resolver: "ModuleResolutionAdapter",
        artifacts: "ArtifactStore",
        outputs: "OutputResolver",
        diagnostics: DiagnosticQueue | None = None,
        persistent_cache: "PersistentArtifactCache | None" = None,
        coordinator: WatchCoordinator | None = None,
        wake_grace: float | None = 1.0,
    ):
        """
        Args:
            backend: Creates the watch compiler
            config: Parsed configuration shared with the compiler
            module_resolver: Resolution adapter handed to the compiler
            artifacts: Live artifact store written by the write hook
            outputs: Resolver used to find the source of an emitted file
            diagnostics: Queue receiving compiler diagnostics
            persistent_cache: Disk cache for incremental/composite builds
            coordinator: Compiler activity state machine
            wake_grace: Seconds a woken compiler has to start a pass
        """
        self.backend = backend
        self.config = config
        self.module_resolver = module_resolver
        self.artifacts = artifacts
        self.outputs = outputs
        self.diagnostics = diagnostics if diagnostics is not None else DiagnosticQueue()
        self.persistent_cache = persistent_cache
        self.coordinator = coordinator or WatchCoordinator()
        self.wake_grace = wake_grace

        self._program: WatchProgram | None = None
        self._disposed = False
        self._failure: BaseException | None = None
        self._compiler_dead = False

    @property
    def program(self) -> "WatchProgram | None":
        return self._program

    @property
    def started(self) -> bool:
        return self._program is not None

    @property
    def failure(self) -> BaseException | None:
        """Failure not yet raised to a caller, or the compiler's exit."""
        return self._failure

    def hooks(self) -> WatchHooks:
        return WatchHooks(
            resolve_module=self.module_resolver.resolve,
            write_file=self._write_file,
            report_status=self._report_status,
            report_diagnostic=self._report_diagnostic,
            report_failure=self._report_failure,
        )

    async def start(self) -> None:
        """
        Create the compiler on first call, wake it on later calls.

        Raises:
            WatchBridgeError: If the session was disposed
            ConfigError: If the backend cannot start the compiler
        """
        if self._disposed:
            raise WatchBridgeError("Compilation session was disposed")

        if self._program is not None and self._compiler_dead:
            logger.info("Recreating watch compiler after it exited")
            program, self._program = self._program, None
            await program.close()

        if self._program is None:
            self._failure = None
            self._compiler_dead = False
            self.coordinator.mark_compiling()
            try:
                self._program = await self.backend.create_watch_program(self.config, self.hooks())
            except Exception as e:
                self.coordinator.fail(e, settle=True)
                raise
            logger.info("Watch compiler created for %s", self.config.config_path or self.config.base_dir)
        else:
            restarted = await self._program.wake()
            # A restarted compiler always runs a pass, however slow it is to start
            self.coordinator.mark_compiling(grace=None if restarted else self.wake_grace)

    async def wait_until_idle(self) -> int:
        """
        Wait for the current pass to settle and return its generation.

        Raises:
            CompilerExitError: If the compiler died
            WatchBridgeError: If a compiler hook failed (e.g. FatalIOError)
        """
        self.raise_pending_failure()
        return await self.coordinator.wait()

    def raise_pending_failure(self) -> None:
        """
        Raise a failure no caller has seen yet.

        A compiler exit is raised again on every call until `start()`
        recreates the compiler.
        """
        error = self._failure
        if error is None:
            return
        if not self._compiler_dead:
            self._failure = None
        raise error

    async def dispose(self) -> None:
        """Close the compiler and fail loads still waiting for it."""
        self._disposed = True
        program, self._program = self._program, None
        if program is not None:
            await program.close()
        self.coordinator.fail(WatchBridgeError("Compilation session was disposed"), settle=True)
        if len(self.diagnostics):
            errors, warnings = self.diagnostics.drain()
            for message in errors + warnings:
                logger.warning("Undelivered diagnostic: %s", message.text)

    def _write_file(
        self,
        file_name: str,
        data: str,
        source_file: str | None = None,
        source_text: str | None = None,
    ) -> None:
        file_name = normalize_path(file_name)
        self.artifacts.put(file_name, data)

        cache = self.persistent_cache
        if cache is None or not self.config.options.is_incremental:
            return
        if source_text is not None:
            fingerprint = cache.fingerprint_text(source_text)
        else:
            source = normalize_path(source_file) if source_file else self.outputs.source_for_output(file_name)
            if source is None:
                logger.debug("No source known for %s, not persisted", file_name)
                return
            fingerprint = cache.fingerprint_file(source)
            if fingerprint is None:
                logger.debug("Source %s unreadable, %s not persisted", source, file_name)
                return
        cache.store(file_name, data, fingerprint)

    def _report_status(self, status: "Diagnostic") -> None:
        self.coordinator.handle_status(status)

    def _report_diagnostic(self, diagnostic: "Diagnostic") -> None:
        self.diagnostics.warn(diagnostic_to_message(diagnostic))

    def _report_failure(self, error: BaseException, fatal: bool) -> None:
        if fatal:
            self._compiler_dead = True
            if isinstance(error, CompilerExitError):
                errors, warnings = self.diagnostics.drain()
                error.output[:0] = [m.text for m in errors + warnings]
            logger.error("%s", error)
        else:
            logger.error("Compiler hook failed: %s", error)

        released = self.coordinator.fail(error, settle=fatal)
        if fatal or released == 0:
            self._failure = error


__all__ = ["CompilationSession"]
