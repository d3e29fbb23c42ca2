"""Host inclusion filter for compiler input files."""

from __future__ import annotations

import functools
import ntpath
import posixpath
import re
from collections.abc import Callable, Iterable

DEFAULT_INCLUDE = ("**/*.ts", "**/*.tsx", "**/*.mts", "**/*.cts")


def normalize_path(file_name: str) -> str:
    """Convert Windows separators to POSIX separators."""
    return file_name.replace(ntpath.sep, posixpath.sep)


@functools.lru_cache(maxsize=256)
def _glob_to_regex(pattern: str) -> re.Pattern[str]:
    parts: list[str] = []
    i, n = 0, len(pattern)
    while i < n:
        if pattern.startswith("**/", i):
            parts.append("(?:.*/)?")
            i += 3
        elif pattern.startswith("**", i):
            parts.append(".*")
            i += 2
        elif pattern[i] == "*":
            parts.append("[^/]*")
            i += 1
        elif pattern[i] == "?":
            parts.append("[^/]")
            i += 1
        elif pattern[i] == "[" and "]" in pattern[i + 2:]:
            end = pattern.index("]", i + 2)
            body = pattern[i + 1:end]
            if body.startswith("!"):
                body = "^" + body[1:]
            parts.append("[" + body.replace("\\", "\\\\") + "]")
            i = end + 1
        else:
            parts.append(re.escape(pattern[i]))
            i += 1
    return re.compile("".join(parts))


def glob_match(path: str, pattern: str) -> bool:
    """
    Match a POSIX path against a glob pattern.

    `*` and `?` stay within one path segment; `**` crosses segments and
    `**/` may match zero directories, so `src/**/*.ts` also matches
    `src/a.ts` while `src/*.ts` does not match `src/a/b.ts`.
    """
    return _glob_to_regex(pattern).fullmatch(path) is not None


def _resolve_pattern(pattern: str, root: str | None) -> str:
    pattern = normalize_path(pattern)
    if root is None or posixpath.isabs(pattern) or pattern.startswith("*"):
        return pattern
    return posixpath.join(normalize_path(root), pattern)


def create_filter(
    include: Iterable[str] | str | None = None,
    exclude: Iterable[str] | str | None = None,
    root: str | None = None,
) -> Callable[[str], bool]:
    """
    Build an inclusion predicate from include/exclude globs.

    Args:
        include: Patterns a path must match (defaults to TypeScript sources)
        exclude: Patterns that reject a path even if included
        root: Directory relative patterns are resolved against

    Returns:
        Predicate taking a file path and returning True when included
    """
    if isinstance(include, str):
        include = [include]
    if isinstance(exclude, str):
        exclude = [exclude]

    include_patterns = [_resolve_pattern(p, root) for p in (include or DEFAULT_INCLUDE)]
    exclude_patterns = [_resolve_pattern(p, root) for p in (exclude or ())]

    def accept(file_name: str) -> bool:
        if "\0" in file_name:
            return False
        path = normalize_path(file_name)
        if any(glob_match(path, p) for p in exclude_patterns):
            return False
        return any(glob_match(path, p) for p in include_patterns)

    return accept


__all__ = ["DEFAULT_INCLUDE", "create_filter", "glob_match", "normalize_path"]
