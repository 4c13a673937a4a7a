#!/usr/bin/env python3
"""
View and edit data in the configured store (Redis when REDIS_URL is set, else local files).

Usage:
    python scripts/kv_cli.py list                 # List all keys
    python scripts/kv_cli.py get portfolio        # Print a value as JSON
    python scripts/kv_cli.py set portfolio <file> # Set a value from a JSON file
    python scripts/kv_cli.py delete <key>         # Delete a key
"""
from pathlib import Path
import json
import os
import sys

# Ensure repo root is on sys.path and is the working directory.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
os.chdir(ROOT)

from app.config import settings
from app.storage import build_store


def run(store, command: str, key: str | None = None, path: str | None = None) -> int:
    if command == "list":
        keys = store.list_keys("")
        print(f"Keys in {store.backend} store:")
        for k in keys:
            print(f"  - {k}")
        print(f"\nTotal: {len(keys)} keys")
        return 0
    if not key:
        print(f"Usage: kv_cli.py {command} <key>", file=sys.stderr)
        return 2
    if command == "get":
        data = store.get(key)
        if data is None:
            print(f'Key "{key}" not found')
            return 1
        print(json.dumps(data, indent=2, ensure_ascii=False))
        return 0
    if command == "set":
        if not path:
            print("Usage: kv_cli.py set <key> <json-file>", file=sys.stderr)
            return 2
        store.set(key, json.loads(Path(path).read_text(encoding="utf-8")))
        print(f'Set "{key}" from {path}')
        return 0
    if command == "delete":
        if store.delete(key):
            print(f'Deleted "{key}"')
            return 0
        print(f'Key "{key}" not found')
        return 1
    print(f"Unknown command: {command}", file=sys.stderr)
    return 2


def main():
    import argparse
    p = argparse.ArgumentParser(description="Inspect the portfolio key-value store.")
    p.add_argument("command", choices=["list", "get", "set", "delete"])
    p.add_argument("key", nargs="?")
    p.add_argument("file", nargs="?")
    args = p.parse_args()
    sys.exit(run(build_store(settings), args.command, args.key, args.file))


if __name__ == "__main__":
    main()
