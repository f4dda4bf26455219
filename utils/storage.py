"""
Local photo storage with two parallel trees: temp and permanent.

Files are keyed by photo id through utils.paths, so the same relative path
resolves in either root. Removing an emptied bucket directory is always
best-effort: a leftover empty directory is harmless.
"""
import errno
import os
import shutil
from enum import Enum
from typing import Optional

from core.config import TEMP_PHOTOS_DIR, PERMANENT_PHOTOS_DIR, logger
from core.errors import NotFound, SourceNotFound
from utils.paths import photo_bucket, photo_relative_path, CANONICAL_CONTENT_TYPE


class Area(str, Enum):
    TEMP = "temp"
    PERMANENT = "permanent"


class PhotoStorage:
    def __init__(self, temp_root: str, permanent_root: str):
        self.temp_root = os.path.abspath(temp_root)
        self.permanent_root = os.path.abspath(permanent_root)

    def ensure_roots(self) -> None:
        os.makedirs(self.temp_root, exist_ok=True)
        os.makedirs(self.permanent_root, exist_ok=True)

    def root_for(self, area: Area) -> str:
        return self.temp_root if Area(area) is Area.TEMP else self.permanent_root

    def resolve(self, photo_id: str, area: Area) -> str:
        return os.path.join(self.root_for(area), *photo_relative_path(photo_id).split("/"))

    def bucket_dir(self, photo_id: str, area: Area) -> str:
        return os.path.join(self.root_for(area), photo_bucket(photo_id))

    def exists(self, photo_id: str, area: Area) -> bool:
        return os.path.isfile(self.resolve(photo_id, area))

    def read_path(self, photo_id: str, area: Area) -> str:
        path = self.resolve(photo_id, area)
        if not os.path.isfile(path):
            raise NotFound(f"photo {photo_id} not found in {Area(area).value} storage")
        return path

    def content_type(self, photo_id: str) -> str:
        return CANONICAL_CONTENT_TYPE

    def promote(self, photo_id: str) -> str:
        """Move a photo from temp to permanent storage; returns the new path."""
        return self._move(photo_id, Area.TEMP, Area.PERMANENT)

    def delete_from_area(self, photo_id: str, area: Area) -> bool:
        """Delete the photo file if present; returns True when a file was removed."""
        path = self.resolve(photo_id, area)
        removed = True
        try:
            os.remove(path)
            logger.info(f"[storage] deleted {Area(area).value} photo {photo_id}")
        except FileNotFoundError:
            logger.info(f"[storage] {Area(area).value} photo already absent: {photo_id}")
            removed = False
        self._remove_dir_if_empty(self.bucket_dir(photo_id, area))
        return removed

    def _move(self, photo_id: str, src_area: Area, dst_area: Area) -> str:
        src = self.resolve(photo_id, src_area)
        dst = self.resolve(photo_id, dst_area)
        if not os.path.isfile(src):
            raise SourceNotFound(f"photo {photo_id} not found in {src_area.value} storage")
        os.makedirs(os.path.dirname(dst), exist_ok=True)
        try:
            # Atomic on the same filesystem and overwrites dst
            os.replace(src, dst)
        except FileNotFoundError as ex:
            # Lost a race with a concurrent delete
            raise SourceNotFound(f"photo {photo_id} vanished from {src_area.value} storage") from ex
        except OSError as ex:
            if ex.errno != errno.EXDEV:
                raise
            shutil.move(src, dst)
        logger.info(f"[storage] moved {photo_id}: {src_area.value} -> {dst_area.value}")
        self._remove_dir_if_empty(os.path.dirname(src))
        return dst

    def _remove_dir_if_empty(self, dir_path: str) -> None:
        try:
            if os.path.isdir(dir_path) and not os.listdir(dir_path):
                os.rmdir(dir_path)
                logger.info(f"[storage] removed empty directory {dir_path}")
        except OSError as ex:
            logger.warning(f"[storage] could not remove directory {dir_path}: {ex}")


_default_storage: Optional[PhotoStorage] = None


def get_storage() -> PhotoStorage:
    """FastAPI dependency returning the process-wide storage (roots from config)."""
    global _default_storage
    if _default_storage is None:
        _default_storage = PhotoStorage(TEMP_PHOTOS_DIR, PERMANENT_PHOTOS_DIR)
    return _default_storage
