#!/usr/bin/env python

import argparse
import sqlite3
from datetime import date
from pathlib import Path

from casket.database.ops import CatalogStore


def connect_db(db_path: Path) -> sqlite3.Connection:
    if not db_path.exists():
        raise SystemExit(f"DB not found: {db_path}")
    return sqlite3.connect(db_path)


def list_entries(store: CatalogStore, kind=None, day=None):
    entries = store.fetch_entries(kind=kind, day=day)
    if not entries:
        print("No catalog entries match.")
        return

    print("capture_date        | kind  | source | stored_path")
    print("--------------------+-------+--------+------------")
    for e in entries:
        print(f"{e.capture_date.isoformat(sep=' ', timespec='seconds')} | {e.file_kind.ljust(5)} | {e.date_source.ljust(6)} | {e.stored_path}")


def show_entry(store: CatalogStore, original_path: Path):
    entry = store.get_entry(original_path)
    if entry is None:
        print(f"Not cataloged: {original_path}")
        return

    print("Catalog entry:")
    print(f"  original_path:  {entry.original_path}")
    print(f"  stored_path:    {entry.stored_path}")
    print(f"  thumbnail_path: {entry.thumbnail_path}")
    print(f"  capture_date:   {entry.capture_date.isoformat()} ({entry.date_source})")
    print(f"  file_kind:      {entry.file_kind}")
    print(f"  camera:         {' '.join(p for p in (entry.camera_make, entry.camera_model) if p)}")
    print(f"  size:           {entry.width}x{entry.height}")
    print(f"  orientation:    {entry.orientation or ''}")
    print(f"  created_at:     {entry.created_at.isoformat() if entry.created_at else ''}")


def show_stats(store: CatalogStore):
    counts = store.count_by_kind()
    print(f"Total entries: {store.count_entries()}")
    for kind, n in counts.items():
        print(f"  {kind.ljust(6)} {n}")


def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Query helper for a casket catalog database.")
    p.add_argument("--db", required=True, help="Path to casket.db (lives in the catalog's thumbnail root)")
    group = p.add_mutually_exclusive_group(required=True)
    group.add_argument("--list", action="store_true", help="List cataloged files")
    group.add_argument("--path", help="Show the entry for an original source path")
    group.add_argument("--stats", action="store_true", help="Count entries per file kind")
    p.add_argument("--kind", choices=["raw", "heic", "image", "video"], help="With --list: only this kind")
    p.add_argument("--date", type=date.fromisoformat, help="With --list: only this capture day (YYYY-MM-DD)")
    return p.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    db_path = Path(args.db).resolve()
    conn = connect_db(db_path)
    store = CatalogStore(conn)

    try:
        if args.list:
            list_entries(store, kind=args.kind, day=args.date)
        elif args.path:
            show_entry(store, Path(args.path).expanduser().resolve())
        elif args.stats:
            show_stats(store)
    finally:
        conn.close()


if __name__ == "__main__":
    main()
