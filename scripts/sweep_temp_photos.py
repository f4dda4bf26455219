#!/usr/bin/env python3
"""
Delete stale files from the temp photo area once, outside the server.
Useful when the in-process sweeper is disabled (TEMP_CLEANUP_ENABLED=0).

Usage:
    python -m scripts.sweep_temp_photos [--dry-run] [--max-age-minutes N]
"""
import os
import sys
import argparse

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.config import CLEANUP_MAX_AGE_MS, TEMP_PHOTOS_DIR, logger
from services.sweeper import sweep_temp_files


def main():
    parser = argparse.ArgumentParser(description='Delete temp photos older than the retention window')
    parser.add_argument('--dry-run', action='store_true', help='Show what would be deleted without deleting')
    parser.add_argument('--max-age-minutes', type=float, default=CLEANUP_MAX_AGE_MS / 60000,
                        help='Delete files older than this many minutes')
    parser.add_argument('--temp-dir', type=str, default=TEMP_PHOTOS_DIR, help='Temp photo root')
    args = parser.parse_args()

    logger.info(f"{'[DRY-RUN] ' if args.dry_run else ''}Sweeping {args.temp_dir}")
    stats = sweep_temp_files(args.temp_dir, int(args.max_age_minutes * 60000), dry_run=args.dry_run)
    logger.info(f"{'[DRY-RUN] ' if args.dry_run else ''}Complete: {stats.deleted} deleted, {stats.errors} errors")
    if stats.errors:
        sys.exit(1)


if __name__ == '__main__':
    main()
