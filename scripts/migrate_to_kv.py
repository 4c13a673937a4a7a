#!/usr/bin/env python3
"""
Upload the local data/ and snapshot/ JSON files into the Redis store.

Usage:
    python scripts/migrate_to_kv.py                 # Dry run: show what would be uploaded
    python scripts/migrate_to_kv.py --execute       # Upload to REDIS_URL
    python scripts/migrate_to_kv.py --redis-url redis://localhost:6379/0 --execute
"""
from pathlib import Path
import os
import sys

# Ensure repo root is on sys.path and is the working directory.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
os.chdir(ROOT)

from app.config import settings
from app.logging import setup_logging
from app.storage import FileStore, RedisStore
from app.pipeline.projects import PROJECTS_KEY, migrate_document
from app.pipeline.session import PORTFOLIO_KEY
from app.pipeline.snapshots import SnapshotStore
from app.pipeline.transactions import TRANSACTIONS_KEY
import structlog

log = structlog.get_logger()


def collect_local(store: FileStore) -> dict:
    projects, _ = migrate_document(store.get(PROJECTS_KEY, None) or {"projects": [], "customTags": []})
    return {
        "portfolio": store.get(PORTFOLIO_KEY, []),
        "transactions": store.get(TRANSACTIONS_KEY, []),
        "projects": projects,
        "snapshots": SnapshotStore(store).list_raw(),
    }


def upload(target, payload: dict) -> list[str]:
    migrated = []
    target.set(PORTFOLIO_KEY, payload["portfolio"])
    migrated.append(f"portfolio ({len(payload['portfolio'])} items)")
    target.set(TRANSACTIONS_KEY, payload["transactions"])
    migrated.append(f"transactions ({len(payload['transactions'])} items)")
    target.set(PROJECTS_KEY, payload["projects"])
    migrated.append(f"projects ({len(payload['projects']['projects'])} items)")
    count = SnapshotStore(target).save_raw(payload["snapshots"])
    migrated.append(f"snapshots ({count} items)")
    return migrated


def main():
    import argparse
    p = argparse.ArgumentParser(description="Upload local JSON data into the Redis store.")
    p.add_argument("--execute", action="store_true", help="Actually upload (default is dry run)")
    p.add_argument("--redis-url", default=settings.redis_url, help="Target Redis URL (default: REDIS_URL)")
    p.add_argument("--data-dir", default=settings.data_dir)
    p.add_argument("--snapshot-dir", default=settings.snapshot_dir)
    args = p.parse_args()
    setup_logging()

    payload = collect_local(FileStore(args.data_dir, args.snapshot_dir))
    print("Data to migrate:")
    print(f"  - Portfolio: {len(payload['portfolio'])} assets")
    print(f"  - Transactions: {len(payload['transactions'])} records")
    print(f"  - Projects: {len(payload['projects']['projects'])} projects")
    print(f"  - Snapshots: {len(payload['snapshots'])} snapshots")

    if not args.execute:
        print("\nDRY RUN. Run with --execute to upload.")
        return
    if not args.redis_url:
        print("REDIS_URL is not set (use --redis-url)", file=sys.stderr)
        sys.exit(1)

    migrated = upload(RedisStore(args.redis_url, prefix=settings.redis_prefix), payload)
    log.info("migration_uploaded", migrated=migrated)
    print("\nMigrated: " + ", ".join(migrated))


if __name__ == "__main__":
    main()
