"""
Temp retention sweeper.

Deletes files under the temp root whose mtime is older than max_age_ms,
whatever the database says about them. It covers uploads that were never
saved or discarded, and raw files left in the incoming area by interrupted
uploads. Directories are never removed here; the storage layer prunes
bucket directories when it moves or deletes a photo.
"""
import asyncio
import os
import time
from dataclasses import dataclass
from typing import Optional

from core.config import logger


@dataclass
class SweepStats:
    deleted: int = 0
    errors: int = 0

    def to_dict(self) -> dict:
        return {"deleted": self.deleted, "errors": self.errors}


def _candidate_files(temp_root: str):
    """Regular files directly under temp_root and one level below it."""
    with os.scandir(temp_root) as top:
        for entry in top:
            if entry.is_dir(follow_symlinks=False):
                try:
                    with os.scandir(entry.path) as sub:
                        for child in sub:
                            if child.is_file(follow_symlinks=False):
                                yield child.path
                except FileNotFoundError:
                    # Bucket pruned by a concurrent promote/delete
                    continue
            elif entry.is_file(follow_symlinks=False):
                yield entry.path


def sweep_temp_files(temp_root: str, max_age_ms: int, now: Optional[float] = None, dry_run: bool = False) -> SweepStats:
    """Delete temp files older than max_age_ms; per-file failures are counted, not raised."""
    stats = SweepStats()
    if not os.path.isdir(temp_root):
        logger.info(f"[sweeper] temp directory {temp_root} does not exist, nothing to clean")
        return stats

    now = time.time() if now is None else now
    for path in _candidate_files(temp_root):
        try:
            age_ms = (now - os.stat(path).st_mtime) * 1000
            if age_ms <= max_age_ms:
                continue
            if dry_run:
                logger.info(f"[sweeper] [DRY-RUN] would delete {path} ({age_ms / 60000:.1f} minutes old)")
            else:
                os.remove(path)
                logger.info(f"[sweeper] deleted {path} ({age_ms / 60000:.1f} minutes old)")
            stats.deleted += 1
        except FileNotFoundError:
            # Promoted or discarded since the listing
            continue
        except OSError as ex:
            logger.error(f"[sweeper] error processing {path}: {ex}")
            stats.errors += 1

    logger.info(f"[sweeper] temp cleanup completed: {stats.deleted} files deleted, {stats.errors} errors")
    return stats


class SweeperHandle:
    """Owns the running sweep task. stop() cancels it; calling it twice is harmless."""

    def __init__(self, task: "asyncio.Task"):
        self._task = task

    @property
    def running(self) -> bool:
        return not self._task.done()

    async def stop(self) -> None:
        if self._task.done():
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        logger.info("[sweeper] temp file cleanup scheduler stopped")


class TempSweeper:
    def __init__(self, temp_root: str, enabled: bool, interval_ms: int, max_age_ms: int):
        self.temp_root = temp_root
        self.enabled = enabled
        self.interval_ms = interval_ms
        self.max_age_ms = max_age_ms
        self._handle: Optional[SweeperHandle] = None

    def run_once(self) -> SweepStats:
        return sweep_temp_files(self.temp_root, self.max_age_ms)

    async def _loop(self) -> None:
        while True:
            try:
                await asyncio.to_thread(self.run_once)
            except Exception as ex:
                # A failed round never stops the schedule
                logger.error(f"[sweeper] sweep failed: {ex}")
            await asyncio.sleep(self.interval_ms / 1000)

    def start(self) -> Optional[SweeperHandle]:
        """Start sweeping now and every interval_ms. Must be called from a running event loop."""
        if not self.enabled:
            logger.info("[sweeper] temp file cleanup scheduler is disabled")
            return None
        if self._handle is not None and self._handle.running:
            logger.info("[sweeper] already running, skipping start")
            return self._handle
        logger.info(
            f"[sweeper] starting temp file cleanup every {self.interval_ms / 60000:.1f} minutes; "
            f"files older than {self.max_age_ms / 60000:.1f} minutes will be deleted"
        )
        self._handle = SweeperHandle(asyncio.get_running_loop().create_task(self._loop()))
        return self._handle
