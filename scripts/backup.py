#!/usr/bin/env python3
"""
Export, restore or check the collection ledger from the command line.

Usage:
  python3 scripts/backup.py export [--dir backups/]
  python3 scripts/backup.py restore FILE [--no-safety-backup]
  python3 scripts/backup.py verify

Configuration comes from collection_config (COLLECTION_DATABASE_URL,
COLLECTION_LOG_LEVEL and COLLECTION_BACKUP_DIR override the defaults).
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from collection_config import get_active_config
from collection_kernel.exceptions import CollectionKernelError
from collection_services import open_runtime


def _export(runtime, args) -> int:
    directory = Path(args.dir) if args.dir else runtime.config.backup_directory
    path = runtime.backup.write_backup(directory)
    print(f"Backup written: {path}")
    return 0


def _restore(runtime, args) -> int:
    payload = runtime.backup.read_backup_file(Path(args.file))
    safety_dir = None if args.no_safety_backup or not runtime.config.safety_backup \
        else runtime.config.backup_directory
    result = runtime.backup.restore_backup(payload, safety_directory=safety_dir)
    print(
        f"Restored {result.people} people, {result.cycles} cycles, "
        f"{result.collections} collections, {result.withdrawals} withdrawals"
    )
    if result.safety_backup:
        print(f"Previous data saved to: {result.safety_backup}")
    return 0


def _verify(runtime, args) -> int:
    discrepancies = runtime.ledger.verify_all()
    if not discrepancies:
        print("All cycle totals match their collections.")
        return 0
    print(f"{len(discrepancies)} cycle(s) disagree with their rows:")
    for d in discrepancies:
        state = "active" if d.is_active else "closed"
        print(
            f"  cycle {d.cycle_id} ({state}) person {d.person_id}: "
            f"stored {d.stored_total}, expected {d.expected_total}, "
            f"difference {d.difference}"
        )
    return 1


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Collection ledger backup tool.")
    parser.add_argument("--config", type=Path, default=None, help="YAML config file")
    sub = parser.add_subparsers(dest="command", required=True)

    export_cmd = sub.add_parser("export", help="Write a JSON backup")
    export_cmd.add_argument("--dir", type=str, default=None, help="Output directory")
    export_cmd.set_defaults(handler=_export)

    restore_cmd = sub.add_parser("restore", help="Replace all data from a JSON backup")
    restore_cmd.add_argument("file", type=str)
    restore_cmd.add_argument("--no-safety-backup", action="store_true")
    restore_cmd.set_defaults(handler=_restore)

    verify_cmd = sub.add_parser("verify", help="Report cycle totals that disagree with their rows")
    verify_cmd.set_defaults(handler=_verify)

    args = parser.parse_args(argv)

    runtime = open_runtime(get_active_config(args.config))
    try:
        return args.handler(runtime, args)
    except (CollectionKernelError, FileNotFoundError) as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        return 1
    finally:
        runtime.close()


if __name__ == "__main__":
    sys.exit(main())
