#!/usr/bin/env python3
"""
Finish photo promotions that committed their database rows but never moved
the file out of temp storage (a crash or I/O error between the two steps).
Run it before the temp sweeper's retention window expires.

Usage:
    python -m scripts.reconcile_photos [--dry-run]
"""
import os
import sys
import argparse

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.config import logger
from core.database import SessionLocal
from services.photo_lifecycle import PhotoLifecycle
from utils.storage import get_storage


def main():
    parser = argparse.ArgumentParser(description='Move committed photos still sitting in temp storage')
    parser.add_argument('--dry-run', action='store_true', help='Show what would be done without making changes')
    args = parser.parse_args()

    db = SessionLocal()
    try:
        stats = PhotoLifecycle(db, get_storage()).reconcile_promotions(dry_run=args.dry_run)
    finally:
        db.close()

    logger.info(
        f"{'[DRY-RUN] ' if args.dry_run else ''}Complete: {stats.repaired} repaired, "
        f"{stats.missing} missing, {stats.errors} errors"
    )
    if stats.missing or stats.errors:
        sys.exit(1)


if __name__ == '__main__':
    main()
