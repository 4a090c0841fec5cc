#!/usr/bin/env python3
"""
Backfill contiguous version numbers on the design_versions table.

Rules:
- Versions keep their current order (version_number, then id).
- Numbers are rewritten to 1..N; rows already in place are left alone.
- Idempotent: a table that is already dense reports 0 changes.
- Supports --dry-run and --database-url.
"""

from __future__ import annotations

from designvc.core.config import settings
from designvc.services.db import Database
from designvc.services.storage_memory import MemoryBlobStore
from designvc.services.versioning import VersionStore


def backfill(database_url: str | None = None, dry_run: bool = False) -> int:
    db = Database(database_url or settings.database_url).open()
    try:
        # renumbering never touches blobs
        store = VersionStore(db, MemoryBlobStore())
        total = len(store.list_history())
        changed = store.renumber(dry_run=dry_run)
    finally:
        db.close()

    prefix = "[DRY] would renumber" if dry_run else "renumbered"
    print(f"scanned={total}, {prefix}={changed}")
    return changed


if __name__ == "__main__":
    import argparse
    ap = argparse.ArgumentParser()
    ap.add_argument("--database-url", help="Override DATABASE_URL")
    ap.add_argument("--dry-run", action="store_true")
    args = ap.parse_args()
    backfill(database_url=args.database_url, dry_run=args.dry_run)
