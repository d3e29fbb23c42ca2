"""
Host-facing TypeScript plugin.

Maps the host's lifecycle hooks (start, load, resolve, end, dispose) onto a
CompilationSession and writes declaration and build-info files at the end
of each build.
"""

from __future__ import annotations

import logging
import posixpath
from dataclasses import dataclass, field

from .artifacts.output_files import emit_file
from .artifacts.output_resolver import OutputResolver
from .artifacts.persistent_cache import PersistentArtifactCache
from .artifacts.store import ArtifactStore
from .compiler.interface import CompilerBackend
from .compiler.module_resolution import ModuleResolutionAdapter
from .compiler.node_backend import NodeWatchBackend
from .config import ParsedConfig, PluginOptions, parse_typescript_config
from .diagnostics import DiagnosticQueue, Message, plugin_message
from .errors import ConfigError, ResolutionError
from .path_filter import create_filter, normalize_path
from .session.compilation_session import CompilationSession
from .validation import HostBuildOptions, validate_paths, validate_source_map

logger = logging.getLogger(__name__)


@dataclass
class LoadResult:
    """Content the host should use for a loaded file."""

    contents: str
    errors: list[Message] = field(default_factory=list)
    warnings: list[Message] = field(default_factory=list)


class TypeScriptWatchPlugin:
    """
    Serve compiled TypeScript to the host from a persistent watch compiler.

    One plugin instance owns one CompilationSession for its whole lifetime.

    Usage:
        plugin = TypeScriptWatchPlugin(PluginOptions(tsconfig="tsconfig.json"))
        await plugin.on_start(HostBuildOptions(outdir="dist"))
        result = await plugin.on_load("/abs/src/index.ts")
        await plugin.on_end(HostBuildOptions(outdir="dist"))
        await plugin.on_dispose()
    """

    name = "typescript"

    def __init__(self, options: PluginOptions | None = None, backend: CompilerBackend | None = None):
        """
        Args:
            options: Plugin options (defaults read tsconfig.json from the cwd)
            backend: Watch compiler backend (defaults to the Node watch driver)

        Raises:
            ConfigError: If the TypeScript configuration is invalid
        """
        self.options = (options or PluginOptions()).with_environment()
        self.config: ParsedConfig = parse_typescript_config(self.options)

        compiler_options = self.config.options
        if compiler_options.source_map:
            # The host receives code with the map embedded
            self.config.set_option("sourceMap", False)
            self.config.set_option("inlineSourceMap", True)
            self.config.set_option("inlineSources", True)

        self.filter = create_filter(
            self.options.include,
            self.options.exclude,
            root=self.options.filter_root or compiler_options.root_dir or self.config.config_dir,
        )
        self.config.file_names[:] = [f for f in self.config.file_names if self.filter(f)]

        self.diagnostics = DiagnosticQueue()
        self.artifacts = ArtifactStore()
        self.persistent_cache: PersistentArtifactCache | None = None
        if compiler_options.is_incremental:
            self.persistent_cache = PersistentArtifactCache(
                self.options.resolved_cache_dir(),
                salt=compiler_options.digest(),
            )
        self.outputs = OutputResolver(
            self.config,
            self.artifacts,
            self.persistent_cache,
            include=self.filter,
        )
        self.module_resolver = ModuleResolutionAdapter(self.filter)
        self.session = CompilationSession(
            backend or NodeWatchBackend(self.options.node_path),
            self.config,
            self.module_resolver,
            self.artifacts,
            self.outputs,
            diagnostics=self.diagnostics,
            persistent_cache=self.persistent_cache,
            wake_grace=self.options.wake_grace_seconds,
        )

    async def on_start(self, build: HostBuildOptions | None = None) -> None:
        """
        Validate options against the host's and start or wake the compiler.

        Raises:
            ConfigError: If the compiler's output paths conflict with the host's
        """
        build = build or HostBuildOptions()
        errors = validate_paths(self.config.options, build)
        if errors:
            raise ConfigError(errors[0].text, [m.text for m in errors])
        validate_source_map(self.diagnostics, self.config.options, build, self.config.auto_set_source_map)
        await self.session.start()

    async def on_load(self, path: str) -> LoadResult | None:
        """
        Compiled content for a TypeScript file.

        Waits for the compiler to settle first. Returns None when the file is
        not handled by this plugin; queued diagnostics then stay queued for
        the next load.

        Raises:
            CompilerExitError: If the watch compiler died
            FatalIOError: If persisting an emitted file failed
        """
        if not self.filter(path):
            return None

        await self.session.wait_until_idle()

        file_name = normalize_path(path)
        if self.config.add_file(file_name):
            logger.debug("Discovered input file %s", file_name)

        output = self.outputs.resolve(file_name)
        if output.code is None:
            return None

        errors, warnings = self.diagnostics.drain()
        return LoadResult(contents=output.code, errors=errors, warnings=warnings)

    def on_resolve(self, specifier: str, importer: str) -> str | None:
        """
        Resolve an import the way the compiler sees it.

        Returns None for imports that are unresolved or outside the project.
        """
        try:
            result = self.module_resolver.resolve(specifier, importer)
        except ResolutionError as e:
            self.diagnostics.warn(plugin_message(str(e)))
            return None
        if result.resolved is None:
            return None
        return result.resolved.resolved_file_name

    def _declaration_base_dir(self, build: HostBuildOptions) -> str | None:
        options = self.config.options
        if options.declaration_dir:
            return posixpath.join(self.config.config_dir, options.declaration_dir)
        if build.outdir:
            return normalize_path(build.outdir)
        if build.outfile:
            return posixpath.dirname(normalize_path(build.outfile))
        return None

    async def on_end(self, build: HostBuildOptions | None = None) -> list[str]:
        """
        Write declarations, declaration maps and build info to disk.

        Returns:
            Paths written

        Raises:
            FatalIOError: If a file cannot be written, here or while the
                compiler was emitting
            CompilerExitError: If the watch compiler died
        """
        self.session.raise_pending_failure()
        build = build or HostBuildOptions()
        written: list[str] = []

        base_dir = self._declaration_base_dir(build)
        if self.config.options.declaration and base_dir:
            for output_path in self.outputs.declaration_and_map_outputs():
                content = self.outputs.get_emitted_file(output_path)
                if not content:
                    continue
                target = posixpath.join(base_dir, posixpath.basename(output_path))
                emit_file(target, content)
                written.append(target)

        build_info = self.outputs.build_info()
        if build_info is not None:
            path, content = build_info
            emit_file(path, content)
            written.append(path)

        return written

    async def on_dispose(self) -> None:
        await self.session.dispose()


__all__ = ["LoadResult", "TypeScriptWatchPlugin"]
