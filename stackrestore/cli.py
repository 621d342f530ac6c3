from __future__ import annotations

import argparse
from typing import List, Optional

from stackrestore.core.config.settings import RestoreSettings, get_settings
from stackrestore.core.logger import get_logger, setup_logging
from stackrestore.core.restore.api import RestoreManager
from stackrestore.core.restore.listing import format_bytes


def _parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="restore", description="Restore an application stack from a backup archive.")
    ap.add_argument("archive", nargs="?", help="Backup archive (.tar.gz, .tgz or .zip).")
    ap.add_argument("--list", action="store_true", help="List available backups and exit.")
    ap.add_argument("--yes", "-y", action="store_true", help="Skip the confirmation prompt.")
    return ap


def print_backups(mgr: RestoreManager) -> None:
    backups = mgr.list_backups()
    if not backups:
        print("No backups found.")
        return
    print("Available backups:\n")
    for b in backups:
        print(f"  {b.name}")
        print(f"    Created: {b.created}")
        print(f"    Size: {format_bytes(b.size_bytes)}\n")


def main(argv: Optional[List[str]] = None, *, settings: Optional[RestoreSettings] = None) -> int:
    ap = _parser()
    args = ap.parse_args(argv)
    if args.list and args.archive:
        ap.error("--list cannot be combined with an archive path")
    if args.yes and not args.archive:
        ap.error("--yes requires an archive path")

    s = settings or get_settings()
    mgr = RestoreManager(s)

    if args.list or not args.archive:
        print_backups(mgr)
        return 0

    setup_logging(s.restore_log_dir)
    log = get_logger("cli")
    try:
        outcome = mgr.restore(args.archive, auto_confirm=bool(args.yes))
    except Exception as e:  # noqa: BLE001
        log.exception(f"Restore aborted: {e}")
        return 1
    return outcome.exit_code


if __name__ == "__main__":
    raise SystemExit(main())
