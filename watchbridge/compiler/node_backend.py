"""
Watch compiler backend driving the TypeScript API through Node.js.

`watch_driver.js` runs `ts.createWatchProgram` with emit, module resolution
and status reporting routed back over JSON lines on stdio (see
`driver_protocol`). Emitted files never touch disk; module resolution is
answered by the session's resolve hook while the driver waits.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import ValidationError

from ..errors import CompilerExitError, ConfigError, ResolutionError
from ..path_filter import normalize_path
from .driver_protocol import (
    DiagnosticMessage,
    InitMessage,
    ModuleResolution,
    ResolvedModuleInfo,
    ResolveReply,
    ResolveRequest,
    StatusMessage,
    WriteMessage,
    parse_driver_message,
)
from .module_resolution import ResolutionResult, ResolvedModule

if TYPE_CHECKING:
    from ..config import ParsedConfig
    from .driver_protocol import DriverModel
    from .interface import WatchHooks

logger = logging.getLogger(__name__)

DRIVER_SCRIPT = str(Path(__file__).with_name("watch_driver.js"))

# Emitted files travel as single lines
STDOUT_LINE_LIMIT = 64 * 1024 * 1024
STDERR_TAIL_LINES = 20


def _to_result(module: ModuleResolution) -> ResolutionResult | None:
    if module.resolved is None:
        return None
    info = module.resolved
    return ResolutionResult(
        resolved=ResolvedModule(
            normalize_path(info.resolved_file_name),
            info.extension,
            info.is_external_library_import,
        )
    )


def _to_module(specifier: str, result: ResolutionResult | None) -> ModuleResolution:
    if result is None or result.resolved is None:
        return ModuleResolution(specifier=specifier)
    resolved = result.resolved
    return ModuleResolution(
        specifier=specifier,
        resolved=ResolvedModuleInfo(
            resolved_file_name=resolved.resolved_file_name,
            extension=resolved.extension,
            is_external_library_import=resolved.is_external_library_import,
        ),
    )


class DriverMessageHandler:
    """Turn driver messages into hook calls."""

    def __init__(self, hooks: "WatchHooks"):
        self.hooks = hooks

    def handle(self, message) -> ResolveReply | None:
        """
        Dispatch one message.

        Returns:
            The reply to send back for a resolve request, else None
        """
        if isinstance(message, StatusMessage):
            self.hooks.report_status(message.to_diagnostic())
        elif isinstance(message, DiagnosticMessage):
            self.hooks.report_diagnostic(message.to_diagnostic())
        elif isinstance(message, WriteMessage):
            self.hooks.write_file(
                normalize_path(message.file_name),
                message.data,
                normalize_path(message.source_file) if message.source_file else None,
                message.source_text,
            )
        elif isinstance(message, ResolveRequest):
            return self.resolve(message)
        return None

    def resolve(self, request: ResolveRequest) -> ResolveReply:
        containing_file = normalize_path(request.containing_file)
        modules = []
        for module in request.modules:
            try:
                result = self.hooks.resolve_module(module.specifier, containing_file, _to_result(module))
            except ResolutionError as e:
                logger.debug("%s", e)
                result = None
            modules.append(_to_module(module.specifier, result))
        return ResolveReply(id=request.id, modules=modules)

    @staticmethod
    def fallback_reply(request: ResolveRequest) -> ResolveReply:
        """Reply with the compiler's own resolutions when the hook failed."""
        return ResolveReply(id=request.id, modules=list(request.modules))


class NodeWatchProgram:
    """One Node.js process running the watch driver."""

    def __init__(
        self,
        node_path: str,
        driver: str,
        config: "ParsedConfig",
        hooks: "WatchHooks",
        stop_timeout: float = 5.0,
    ):
        self.node_path = node_path
        self.driver = driver
        self.config = config
        self.hooks = hooks
        self.stop_timeout = stop_timeout
        self._process: asyncio.subprocess.Process | None = None
        self._reader: asyncio.Task | None = None
        self._stderr_reader: asyncio.Task | None = None
        self._stderr_tail: deque[str] = deque(maxlen=STDERR_TAIL_LINES)
        self._spawned_files = 0
        self._stopping = False

    def command(self) -> list[str]:
        return [self.node_path, self.driver]

    def init_message(self) -> InitMessage:
        """What the driver should watch: the config file, or the input files."""
        config = self.config
        return InitMessage(
            cwd=config.config_dir,
            config_path=config.config_path,
            root_files=[] if config.config_path else list(config.file_names),
            options=config.compiler_options(),
        )

    @property
    def running(self) -> bool:
        return self._process is not None and self._process.returncode is None

    @property
    def returncode(self) -> int | None:
        return self._process.returncode if self._process is not None else None

    async def start(self) -> None:
        """
        Spawn the driver and start reading its output.

        Raises:
            ConfigError: If the Node.js executable cannot be found
        """
        command = self.command()
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                cwd=self.config.config_dir,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=STDOUT_LINE_LIMIT,
            )
        except FileNotFoundError as e:
            raise ConfigError(f"Node.js not found: {self.node_path}") from e

        self._process = process
        self._stopping = False
        self._spawned_files = len(self.config.file_names)
        self._stderr_tail = deque(maxlen=STDERR_TAIL_LINES)
        self._stderr_reader = asyncio.create_task(self._read_stderr(process, self._stderr_tail))
        self._reader = asyncio.create_task(self._pump(process))
        await self._send(process, self.init_message())
        logger.info("Started watch driver (pid %s): %s", process.pid, " ".join(command))

    async def _send(self, process: asyncio.subprocess.Process, message: "DriverModel") -> None:
        assert process.stdin is not None
        try:
            process.stdin.write(message.to_line())
            await process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError):
            # The exit itself is reported by the reader
            logger.debug("Watch driver stdin closed, %s not sent", message.type)

    async def _read_stderr(self, process: asyncio.subprocess.Process, tail: deque[str]) -> None:
        assert process.stderr is not None
        async for raw in process.stderr:
            line = raw.decode("utf-8", errors="replace").rstrip()
            if line:
                tail.append(line)
                logger.debug("driver: %s", line)

    async def _pump(self, process: asyncio.subprocess.Process) -> None:
        assert process.stdout is not None
        handler = DriverMessageHandler(self.hooks)
        async for raw in process.stdout:
            if not raw.strip():
                continue
            try:
                message = parse_driver_message(raw)
            except ValidationError as e:
                logger.debug("Ignoring driver output %r: %s", raw[:200], e)
                continue

            try:
                reply = handler.handle(message)
            except Exception as e:
                # Raised to the host from the next load; the pass goes on
                self.hooks.report_failure(e, False)
                reply = handler.fallback_reply(message) if isinstance(message, ResolveRequest) else None
            if reply is not None:
                await self._send(process, reply)

        code = await process.wait()
        if self._stderr_reader is not None:
            await self._stderr_reader
        if not self._stopping:
            logger.warning("Watch driver exited unexpectedly with code %s", code)
            self.hooks.report_failure(CompilerExitError(code, list(self._stderr_tail)), True)

    async def wake(self) -> bool:
        # The driver watches files itself; only a grown explicit file list needs a restart
        if self.config.config_path is None and len(self.config.file_names) != self._spawned_files:
            logger.info("Input file list grew to %d files, restarting watch driver", len(self.config.file_names))
            await self._stop()
            await self.start()
            return True
        return False

    async def _stop(self) -> None:
        self._stopping = True
        process = self._process
        if process is not None and process.returncode is None:
            process.terminate()
            try:
                await asyncio.wait_for(process.wait(), timeout=self.stop_timeout)
            except asyncio.TimeoutError:
                process.kill()
                await process.wait()
        if self._reader is not None:
            await self._reader
            self._reader = None
        self._stderr_reader = None

    async def close(self) -> None:
        await self._stop()
        logger.info("Stopped watch driver")


class NodeWatchBackend:
    """Compiler backend spawning one watch driver process per session."""

    def __init__(self, node_path: str = "node", driver: str = DRIVER_SCRIPT, stop_timeout: float = 5.0):
        """
        Args:
            node_path: Node.js executable
            driver: Script speaking the driver protocol
            stop_timeout: Seconds to wait after SIGTERM before killing
        """
        self.node_path = node_path
        self.driver = driver
        self.stop_timeout = stop_timeout

    async def create_watch_program(self, config: "ParsedConfig", hooks: "WatchHooks") -> NodeWatchProgram:
        program = NodeWatchProgram(self.node_path, self.driver, config, hooks, self.stop_timeout)
        await program.start()
        return program


__all__ = [
    "DRIVER_SCRIPT",
    "DriverMessageHandler",
    "NodeWatchBackend",
    "NodeWatchProgram",
]
