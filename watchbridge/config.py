"""
Configuration management for watchbridge.

Plugin options, the compiler options record, and tsconfig loading into a
ParsedConfig the compilation session works from.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import posixpath
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from .errors import ConfigError
from .path_filter import glob_match, normalize_path

logger = logging.getLogger(__name__)

TS_EXTENSIONS = (".ts", ".tsx", ".mts", ".cts")
JS_EXTENSIONS = (".js", ".jsx", ".mjs", ".cjs")
DEFAULT_EXCLUDE = ("node_modules", "bower_components", "jspm_packages")
DEFAULT_CACHE_DIRNAME = ".watchbridge-cache"

# Output directory options checked against the host output location
DIRECTORY_OPTIONS = ("out_dir", "declaration_dir")

_PATH_OPTIONS = ("root_dir", "out_dir", "declaration_dir", "ts_build_info_file")

_OPTION_NAMES = {
    "rootDir": "root_dir",
    "outDir": "out_dir",
    "declaration": "declaration",
    "declarationDir": "declaration_dir",
    "declarationMap": "declaration_map",
    "emitDeclarationOnly": "emit_declaration_only",
    "sourceMap": "source_map",
    "inlineSourceMap": "inline_source_map",
    "inlineSources": "inline_sources",
    "composite": "composite",
    "incremental": "incremental",
    "tsBuildInfoFile": "ts_build_info_file",
    "jsx": "jsx",
    "allowJs": "allow_js",
    "noEmit": "no_emit",
    "module": "module",
    "target": "target",
}

_LEGACY_OPTIONS = {
    "out": "Deprecated Typescript compiler option 'out' is not supported. Use 'outDir' instead.",
    "outFile": "Typescript compiler option 'outFile' is not supported. Use 'outDir' instead.",
}

# Forced unless PluginOptions.no_force_emit; the host needs emitted code
FORCED_COMPILER_OPTIONS: dict[str, Any] = {
    "noEmit": False,
    "emitDeclarationOnly": False,
}


def _filter_dataclass_fields(data: dict[str, Any], cls: type) -> dict[str, Any]:
    """Filter dict to only include fields that exist in the dataclass."""
    valid_fields = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in valid_fields}


def _resolve(base_dir: str, path: str) -> str:
    path = normalize_path(path)
    if not posixpath.isabs(path):
        path = posixpath.join(normalize_path(base_dir), path)
    return posixpath.normpath(path)


@dataclass
class CompilerOptions:
    """
    Recognized TypeScript compiler options.

    Options not listed here are kept verbatim in `extra` and handed to the
    compiler untouched.
    """

    root_dir: str | None = None
    out_dir: str | None = None
    declaration: bool | None = None
    declaration_dir: str | None = None
    declaration_map: bool | None = None
    emit_declaration_only: bool | None = None
    source_map: bool | None = None
    inline_source_map: bool | None = None
    inline_sources: bool | None = None
    composite: bool | None = None
    incremental: bool | None = None
    ts_build_info_file: str | None = None
    jsx: str | None = None
    allow_js: bool | None = None
    no_emit: bool | None = None
    module: str | None = None
    target: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CompilerOptions":
        """
        Build options from a camelCase tsconfig `compilerOptions` mapping.

        Raises:
            ConfigError: If a legacy single-output option is set
        """
        legacy = [message for key, message in _LEGACY_OPTIONS.items() if data.get(key)]
        if legacy:
            raise ConfigError(legacy[0], legacy)

        known: dict[str, Any] = {}
        extra: dict[str, Any] = {}
        for key, value in data.items():
            if key in _OPTION_NAMES:
                known[_OPTION_NAMES[key]] = value
            elif key not in _LEGACY_OPTIONS:
                extra[key] = value
        if isinstance(known.get("jsx"), str):
            known["jsx"] = known["jsx"].lower()
        return cls(**known, extra=extra)

    def to_dict(self) -> dict[str, Any]:
        """camelCase mapping of every option that is set."""
        data = {
            camel: getattr(self, name)
            for camel, name in _OPTION_NAMES.items()
            if getattr(self, name) is not None
        }
        data.update(self.extra)
        return data

    def set(self, key: str, value: Any) -> None:
        """Set one option by its camelCase name."""
        if key in _OPTION_NAMES:
            setattr(self, _OPTION_NAMES[key], value)
        else:
            self.extra[key] = value

    def resolve_paths(self, base_dir: str) -> "CompilerOptions":
        """Return a copy with directory options made absolute."""
        updates = {
            name: _resolve(base_dir, getattr(self, name))
            for name in _PATH_OPTIONS
            if getattr(self, name)
        }
        return replace(self, **updates)

    @property
    def is_incremental(self) -> bool:
        """True when the compiler keeps build info between runs."""
        return bool(self.composite or self.incremental)

    def digest(self) -> str:
        """Stable digest of the effective options."""
        payload = json.dumps(self.to_dict(), sort_keys=True, default=str)
        return hashlib.blake2b(payload.encode(), digest_size=8).hexdigest()


@dataclass
class ParsedConfig:
    """
    Input files, compiler options and the config file they came from.

    `file_names` only ever grows: files discovered while loading are appended.
    `overrides` holds the camelCase options set on top of the config file
    (plugin options, forced options and later adjustments).
    """

    file_names: list[str]
    options: CompilerOptions
    config_path: str | None = None
    auto_set_source_map: bool = False
    base_dir: str = field(default_factory=lambda: normalize_path(os.getcwd()))
    overrides: dict[str, Any] = field(default_factory=dict)

    def set_option(self, key: str, value: Any) -> None:
        """Override a compiler option on top of the config file."""
        self.overrides[key] = value
        self.options.set(key, value)

    def compiler_options(self) -> dict[str, Any]:
        """
        Options handed to the compiler.

        With a config file the compiler reads it itself and only receives the
        overrides; options such as `paths` or `rootDirs` stay in the file.
        """
        if self.config_path:
            return dict(self.overrides)
        return self.options.to_dict()

    def add_file(self, file_name: str) -> bool:
        """
        Append a newly discovered input file.

        Returns:
            True if the file was unknown and has been added
        """
        if file_name in self.file_names:
            return False
        self.file_names.append(file_name)
        return True

    @property
    def config_dir(self) -> str:
        """Directory of the config file, or the base directory without one."""
        if self.config_path:
            return posixpath.dirname(self.config_path)
        return self.base_dir


@dataclass
class PluginOptions:
    """
    watchbridge plugin options.

    Loaded from a JSON file or built directly by the host. Environment
    variables WATCHBRIDGE_CACHE_DIR and WATCHBRIDGE_NODE override the
    corresponding fields (see `with_environment`).
    """

    tsconfig: str | None = None
    use_tsconfig: bool = True
    compiler_options: dict[str, Any] = field(default_factory=dict)
    include: list[str] | None = None
    exclude: list[str] | None = None
    filter_root: str | None = None
    cache_dir: str | None = None
    no_force_emit: bool = False
    node_path: str = "node"
    wake_grace_seconds: float = 1.0
    cwd: str | None = None

    @classmethod
    def load(cls, path: Path | str) -> "PluginOptions":
        """
        Load plugin options from a JSON file.

        Unknown top-level keys are treated as compiler options, which is
        where earlier versions expected them.
        """
        path = Path(path)
        try:
            data = json.loads(path.read_text())
        except (json.JSONDecodeError, OSError) as e:
            raise ConfigError(f"Cannot read plugin options {path}: {e}") from e

        known = _filter_dataclass_fields(data, cls)
        legacy = {k: v for k, v in data.items() if k not in known}
        if legacy:
            logger.warning(
                "Compiler options at the top level of %s are deprecated, move %s under 'compiler_options'",
                path,
                ", ".join(sorted(legacy)),
            )
            known["compiler_options"] = {**legacy, **known.get("compiler_options", {})}
        return cls(**known)

    def with_environment(self) -> "PluginOptions":
        """Apply overrides from the environment and a local .env file."""
        env_file = Path(self.working_dir) / ".env"
        if env_file.exists():
            load_dotenv(env_file)

        updates: dict[str, Any] = {}
        cache_dir = os.getenv("WATCHBRIDGE_CACHE_DIR")
        if cache_dir:
            updates["cache_dir"] = cache_dir
        node_path = os.getenv("WATCHBRIDGE_NODE")
        if node_path:
            updates["node_path"] = node_path
        return replace(self, **updates)

    @property
    def working_dir(self) -> str:
        return normalize_path(self.cwd or os.getcwd())

    def resolved_cache_dir(self) -> str:
        """Absolute persistent cache root."""
        return _resolve(self.working_dir, self.cache_dir or DEFAULT_CACHE_DIRNAME)


# -----------------------------------------------------------------------------
# tsconfig loading
# -----------------------------------------------------------------------------


def _strip_comments(text: str) -> str:
    out: list[str] = []
    i, n = 0, len(text)
    in_string = False
    while i < n:
        ch = text[i]
        if in_string:
            out.append(ch)
            if ch == "\\" and i + 1 < n:
                out.append(text[i + 1])
                i += 1
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
            out.append(ch)
        elif text.startswith("//", i):
            end = text.find("\n", i)
            i = n if end == -1 else end
            continue
        elif text.startswith("/*", i):
            end = text.find("*/", i + 2)
            i = n if end == -1 else end + 2
            continue
        else:
            out.append(ch)
        i += 1
    return "".join(out)


def _strip_trailing_commas(text: str) -> str:
    out: list[str] = []
    in_string = False
    i, n = 0, len(text)
    while i < n:
        ch = text[i]
        if in_string:
            if ch == "\\" and i + 1 < n:
                out.append(ch + text[i + 1])
                i += 2
                continue
            if ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch == ",":
            j = i + 1
            while j < n and text[j].isspace():
                j += 1
            if j < n and text[j] in "}]":
                i += 1
                continue
        out.append(ch)
        i += 1
    return "".join(out)


def read_tsconfig(path: str) -> dict[str, Any]:
    """
    Read a tsconfig file, which may contain comments and trailing commas.

    Raises:
        ConfigError: If the file cannot be read or parsed
    """
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e
    try:
        data = json.loads(_strip_trailing_commas(_strip_comments(text)))
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a JSON object")
    return data


def _absolutize(raw: dict[str, Any], config_dir: str) -> dict[str, Any]:
    """Resolve paths in one config file against that file's directory."""
    result: dict[str, Any] = {}
    compiler = dict(raw.get("compilerOptions") or {})
    for camel, name in _OPTION_NAMES.items():
        if name in _PATH_OPTIONS and isinstance(compiler.get(camel), str):
            compiler[camel] = _resolve(config_dir, compiler[camel])
    result["compilerOptions"] = compiler
    for key in ("files", "include", "exclude"):
        if key in raw:
            result[key] = [_resolve(config_dir, p) for p in raw[key] or []]
    return result


def _load_config_chain(path: str, seen: set[str] | None = None) -> dict[str, Any]:
    seen = seen or set()
    if path in seen:
        raise ConfigError(f"Circular 'extends' in {path}")
    seen.add(path)

    raw = read_tsconfig(path)
    config_dir = posixpath.dirname(path)
    merged: dict[str, Any] = {"compilerOptions": {}}

    extends = raw.get("extends")
    for base in [extends] if isinstance(extends, str) else (extends or []):
        if not (base.startswith(".") or posixpath.isabs(normalize_path(base))):
            logger.warning("Ignoring package 'extends' %s in %s", base, path)
            continue
        base_path = _resolve(config_dir, base)
        if not base_path.endswith(".json"):
            base_path += ".json"
        parent = _load_config_chain(base_path, seen)
        merged["compilerOptions"].update(parent.pop("compilerOptions"))
        merged.update(parent)

    own = _absolutize(raw, config_dir)
    merged["compilerOptions"].update(own.pop("compilerOptions"))
    merged.update(own)
    return merged


def _find_tsconfig(options: PluginOptions) -> str | None:
    if not options.use_tsconfig:
        return None
    if options.tsconfig:
        path = _resolve(options.working_dir, options.tsconfig)
        if not Path(path).is_file():
            raise ConfigError(f"Could not find specified tsconfig at {path}")
        return path
    default = _resolve(options.working_dir, "tsconfig.json")
    return default if Path(default).is_file() else None


def _literal_root(pattern: str) -> str:
    parts = []
    for part in pattern.split("/"):
        if any(c in part for c in "*?["):
            break
        parts.append(part)
    return "/".join(parts) or "/"


def discover_files(
    include: list[str],
    exclude: list[str],
    extensions: tuple[str, ...],
) -> list[str]:
    """Expand absolute include globs into a sorted list of input files."""
    found: list[str] = []
    seen: set[str] = set()
    for pattern in include:
        if not any(c in pattern for c in "*?[") and Path(pattern).is_dir():
            pattern = pattern.rstrip("/") + "/**/*"
        root = _literal_root(pattern)
        if Path(root).is_file():
            candidates = [root]
        else:
            candidates = []
            for dirpath, dirnames, filenames in os.walk(root):
                dirnames[:] = sorted(d for d in dirnames if d not in DEFAULT_EXCLUDE)
                candidates.extend(normalize_path(os.path.join(dirpath, f)) for f in sorted(filenames))
        for name in candidates:
            if name in seen or not name.endswith(extensions):
                continue
            if not glob_match(name, pattern):
                continue
            if any(glob_match(name, ex) or glob_match(name, ex.rstrip("/") + "/**") for ex in exclude):
                continue
            seen.add(name)
            found.append(name)
    return found


def parse_typescript_config(options: PluginOptions) -> ParsedConfig:
    """
    Load tsconfig, merge plugin overrides and discover input files.

    Args:
        options: Plugin options

    Returns:
        ParsedConfig with absolute, normalized paths

    Raises:
        ConfigError: For unreadable configs or unsupported options
    """
    config_path = _find_tsconfig(options)
    raw = _load_config_chain(config_path) if config_path else {"compilerOptions": {}}
    base_dir = posixpath.dirname(config_path) if config_path else options.working_dir

    overrides = dict(options.compiler_options)
    if not options.no_force_emit:
        overrides.update(FORCED_COMPILER_OPTIONS)
    compiler_data = {**raw["compilerOptions"], **overrides}

    auto_set_source_map = False
    if compiler_data.get("sourceMap") is None and compiler_data.get("inlineSourceMap") is None:
        overrides["sourceMap"] = compiler_data["sourceMap"] = True
        auto_set_source_map = True

    compiler_options = CompilerOptions.from_dict(compiler_data).resolve_paths(base_dir)

    extensions = TS_EXTENSIONS + (JS_EXTENSIONS if compiler_options.allow_js else ())
    files = list(raw.get("files", []))
    if config_path:
        include = raw.get("include")
        if include is None:
            include = [] if "files" in raw else [posixpath.join(base_dir, "**/*")]
        exclude = raw.get("exclude")
        if exclude is None:
            exclude = [posixpath.join(base_dir, d) for d in DEFAULT_EXCLUDE]
            exclude += [d for d in (compiler_options.out_dir, compiler_options.declaration_dir) if d]
        for name in discover_files(include, exclude, extensions):
            if name not in files:
                files.append(name)

    logger.debug("Parsed %s: %d input files", config_path or "<no tsconfig>", len(files))
    return ParsedConfig(
        file_names=files,
        options=compiler_options,
        config_path=config_path,
        auto_set_source_map=auto_set_source_map,
        base_dir=base_dir,
        overrides=overrides,
    )


__all__ = [
    "DIRECTORY_OPTIONS",
    "CompilerOptions",
    "ParsedConfig",
    "PluginOptions",
    "discover_files",
    "parse_typescript_config",
    "read_tsconfig",
]
