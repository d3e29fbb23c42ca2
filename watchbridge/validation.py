"""Checks that compiler options agree with the host's output options."""

from __future__ import annotations

import posixpath
from dataclasses import dataclass

from .config import DIRECTORY_OPTIONS, CompilerOptions
from .diagnostics import DiagnosticQueue, Message, plugin_message
from .path_filter import normalize_path

_CAMEL = {"out_dir": "outDir", "declaration_dir": "declarationDir"}


@dataclass
class HostBuildOptions:
    """The parts of the host's build options the plugin looks at."""

    outdir: str | None = None
    outfile: str | None = None
    sourcemap: bool = False


def _escapes(base: str, target: str) -> bool:
    return posixpath.relpath(normalize_path(target), normalize_path(base)).startswith("..")


def validate_source_map(
    queue: DiagnosticQueue,
    options: CompilerOptions,
    build: HostBuildOptions,
    auto_set_source_map: bool,
) -> None:
    """
    Warn when compiler and host disagree about source maps.

    Args:
        queue: Queue receiving the warnings
        options: Compiler options
        build: Host build options
        auto_set_source_map: True if source maps were enabled by the plugin,
            not the user
    """
    generates_maps = bool(options.source_map or options.inline_source_map)
    if generates_maps and not build.sourcemap and not auto_set_source_map:
        queue.warn(plugin_message("host 'sourcemap' option must be set to generate source maps."))
    elif not generates_maps and build.sourcemap:
        queue.warn(plugin_message("Typescript 'sourceMap' compiler option must be set to generate source maps."))


def validate_paths(options: CompilerOptions, build: HostBuildOptions) -> list[Message]:
    """
    Check the compiler's output directories can be controlled by the host.

    Returns:
        Error messages; empty when the configuration is usable
    """
    errors: list[Message] = []

    output_dir = build.outdir
    if build.outfile:
        output_dir = posixpath.dirname(normalize_path(build.outfile))

    for name in DIRECTORY_OPTIONS:
        value = getattr(options, name)
        if not value or not output_dir:
            continue
        if build.outdir:
            if _escapes(output_dir, value):
                errors.append(plugin_message(
                    f"Path of Typescript compiler option '{_CAMEL[name]}' must be located inside the host 'outdir'."
                ))
        elif name == "out_dir":
            if _escapes(value, output_dir):
                errors.append(plugin_message(
                    f"Path of Typescript compiler option '{_CAMEL[name]}' must be located inside the same "
                    "directory as the host 'outfile'."
                ))
        elif _escapes(output_dir, value):
            errors.append(plugin_message(
                f"Path of Typescript compiler option '{_CAMEL[name]}' must be located inside the same "
                "directory as the host 'outfile'."
            ))

    if options.declaration or options.declaration_map or options.composite:
        if not any(getattr(options, name) for name in DIRECTORY_OPTIONS):
            errors.append(plugin_message(
                "You are using one of Typescript's compiler options 'declaration', 'declarationMap' or "
                "'composite'. In this case 'outDir' or 'declarationDir' must be specified to generate "
                "declaration files."
            ))

    return errors


__all__ = ["HostBuildOptions", "validate_paths", "validate_source_map"]
