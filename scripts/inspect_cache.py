#!/usr/bin/env python3
"""List the entries of a watchbridge persistent artifact cache.

Usage:
    python scripts/inspect_cache.py                 # cache of the current directory
    python scripts/inspect_cache.py --cache-dir .watchbridge-cache --json
    python scripts/inspect_cache.py --show dist/index.js
"""

import argparse
import json
import sys
from datetime import datetime
from pathlib import Path

from watchbridge.artifacts.persistent_cache import PersistentArtifactCache
from watchbridge.config import PluginOptions


def main() -> int:
    parser = argparse.ArgumentParser(description="Inspect a watchbridge persistent artifact cache")
    parser.add_argument(
        "--cache-dir",
        type=Path,
        default=None,
        help="Cache directory (default: from environment or ./.watchbridge-cache)",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print entries as JSON",
    )
    parser.add_argument(
        "--show",
        metavar="OUTPUT_PATH",
        help="Print the cached content of one output file",
    )
    args = parser.parse_args()

    root = args.cache_dir or Path(PluginOptions().with_environment().resolved_cache_dir())
    cache = PersistentArtifactCache(root)
    entries = cache.entries()

    if args.show:
        target = str(Path(args.show).resolve().as_posix())
        for entry in entries:
            if entry.output_path == target:
                print(entry.content)
                return 0
        print(f"No cache entry for {target}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps([e.model_dump(exclude={"content"}) for e in entries], indent=2))
        return 0

    if not entries:
        print(f"No entries in {root}")
        return 0

    print(f"{len(entries)} entries in {root}\n")
    for entry in entries:
        created = datetime.fromtimestamp(entry.created_at).isoformat(timespec="seconds")
        print(f"- {entry.output_path}  [{entry.fingerprint[:8]}]  {len(entry.content)} chars  {created}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
