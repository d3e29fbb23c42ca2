"""Output file naming: which files the compiler emits for an input."""

from __future__ import annotations

import posixpath
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from ..errors import FatalIOError
from ..path_filter import normalize_path

if TYPE_CHECKING:
    from ..config import ParsedConfig

# Longest suffixes first so ".d.ts" is not mistaken for ".ts"
_DECLARATION_EXTENSIONS = (".d.mts", ".d.cts", ".d.ts")
_SOURCE_EXTENSIONS = (".tsx", ".ts", ".mts", ".cts", ".jsx", ".js", ".mjs", ".cjs", ".json")


def use_case_sensitive_file_names() -> bool:
    """Whether the host filesystem distinguishes file name case."""
    if sys.platform == "win32":
        return False
    here = str(Path(__file__).resolve())
    swapped = here.swapcase()
    if swapped == here:
        return True
    return not Path(swapped).exists()


def _split_extension(name: str) -> tuple[str, str]:
    for ext in _SOURCE_EXTENSIONS:
        if name.endswith(ext):
            return name[: -len(ext)], ext
    base, ext = posixpath.splitext(name)
    return base, ext


def _js_extension(ext: str, jsx: str | None) -> str:
    if ext in (".mts", ".mjs"):
        return ".mjs"
    if ext in (".cts", ".cjs"):
        return ".cjs"
    if ext in (".tsx", ".jsx") and jsx == "preserve":
        return ".jsx"
    if ext == ".json":
        return ".json"
    return ".js"


def _declaration_extension(ext: str) -> str:
    if ext in (".mts", ".mjs"):
        return ".d.mts"
    if ext in (".cts", ".cjs"):
        return ".d.cts"
    return ".d.ts"


def _key(path: str, ignore_case: bool) -> str:
    return path.lower() if ignore_case else path


def common_source_directory(config: "ParsedConfig", ignore_case: bool) -> str:
    """
    Directory that output paths under outDir are relative to.

    rootDir when set; the config directory for composite projects;
    otherwise the longest common directory of the non-declaration inputs.
    """
    options = config.options
    if options.root_dir:
        return options.root_dir
    if options.composite and config.config_path:
        return config.config_dir

    directories = [
        posixpath.dirname(normalize_path(name)).split("/")
        for name in config.file_names
        if not name.endswith(_DECLARATION_EXTENSIONS)
    ]
    if not directories:
        return config.config_dir

    common = directories[0]
    for parts in directories[1:]:
        size = 0
        for a, b in zip(common, parts):
            if _key(a, ignore_case) != _key(b, ignore_case):
                break
            size += 1
        common = common[:size]
    return "/".join(common) or "/"


def _relative_to(directory: str, name: str, ignore_case: bool) -> str:
    prefix = directory.rstrip("/") + "/"
    if _key(name, ignore_case).startswith(_key(prefix, ignore_case)):
        return name[len(prefix):]
    return posixpath.relpath(name, directory)


def _output_base(config: "ParsedConfig", name: str, out_dir: str | None, ignore_case: bool) -> str:
    base, _ = _split_extension(name)
    if not out_dir:
        return base
    relative = _relative_to(common_source_directory(config, ignore_case), base, ignore_case)
    return posixpath.normpath(posixpath.join(out_dir, relative))


def get_output_file_names(config: "ParsedConfig", input_file: str, ignore_case: bool) -> list[str]:
    """
    Output files the compiler produces for one input file.

    Order: code, code map, declaration, declaration map.

    Args:
        config: Parsed configuration
        input_file: Absolute input file path
        ignore_case: True on case-insensitive filesystems
    """
    name = normalize_path(input_file)
    if name.endswith(_DECLARATION_EXTENSIONS) or name.endswith(".json"):
        return []

    options = config.options
    _, ext = _split_extension(name)
    outputs: list[str] = []

    if not options.emit_declaration_only:
        js_file = _output_base(config, name, options.out_dir, ignore_case) + _js_extension(ext, options.jsx)
        if _key(js_file, ignore_case) != _key(name, ignore_case):
            outputs.append(js_file)
            if options.source_map:
                outputs.append(js_file + ".map")

    if options.declaration or options.composite:
        declaration_dir = options.declaration_dir or options.out_dir
        dts_file = _output_base(config, name, declaration_dir, ignore_case) + _declaration_extension(ext)
        outputs.append(dts_file)
        if options.declaration_map:
            outputs.append(dts_file + ".map")

    return outputs


def get_build_info_path(config: "ParsedConfig") -> str | None:
    """Where the compiler writes build info, or None if it does not."""
    options = config.options
    if not options.is_incremental:
        return None
    if options.ts_build_info_file:
        return options.ts_build_info_file
    if not config.config_path:
        return None

    config_stem = posixpath.splitext(config.config_path)[0]
    if options.out_dir:
        if options.root_dir:
            relative = posixpath.relpath(config_stem, options.root_dir)
            stem = posixpath.normpath(posixpath.join(options.out_dir, relative))
        else:
            stem = posixpath.join(options.out_dir, posixpath.basename(config_stem))
    else:
        stem = config_stem
    return stem + ".tsbuildinfo"


def emit_file(file_path: str, content: str) -> None:
    """
    Write a file, creating parent directories.

    Raises:
        FatalIOError: If the file cannot be written
    """
    path = Path(normalize_path(file_path))
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    except OSError as e:
        raise FatalIOError(str(path), e) from e


__all__ = [
    "common_source_directory",
    "emit_file",
    "get_build_info_path",
    "get_output_file_names",
    "use_case_sensitive_file_names",
]
