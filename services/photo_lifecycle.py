"""
Photo lifecycle: the only code that creates, links or deletes photo rows.

NEW (temp file, no row) --promote--> PERSISTED (permanent file, row, >=1 link)
PERSISTED --last unlink--> gone (row and permanent file deleted)
NEW --discard--> gone (temp file deleted)

Database writes are committed before the file is moved. If the move then
fails the row points at a file still sitting in temp storage; that case is
reported as COMMITTED_BUT_MOVE_FAILED and repaired by reconcile_promotions().
A rolled-back promotion leaves the temp file where it was.
"""
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional

from fastapi import Depends
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from core.config import logger
from core.database import get_db
from core.errors import DuplicateRecord, Forbidden, NotFound, PhotoError, SourceNotFound
from core.states import ElementState
from models.memory import Memory, MemoryPhoto
from models.photo import Photo
from utils.images import read_image_info, read_upload_metadata
from utils.paths import CANONICAL_EXTENSION, photo_relative_path, validate_photo_id
from utils.storage import Area, PhotoStorage, get_storage


class PromotionOutcome(str, Enum):
    COMMITTED_AND_MOVED = "committed_and_moved"
    COMMITTED_BUT_MOVE_FAILED = "committed_but_move_failed"
    ROLLED_BACK = "rolled_back"


class RemovalOutcome(str, Enum):
    UNLINKED = "unlinked"              # other memories still reference the photo
    DELETED = "deleted"                # last link gone: row and permanent file deleted
    DISCARDED_TEMP = "discarded_temp"  # never persisted: temp file deleted


@dataclass
class PhotoChange:
    photo_id: str
    intent: Optional[ElementState] = None
    metadata: Optional[dict] = None


@dataclass
class PromotionResult:
    photo_id: str
    outcome: PromotionOutcome
    photo: Optional[Photo] = None
    error: Optional[str] = None

    @property
    def committed(self) -> bool:
        return self.outcome is not PromotionOutcome.ROLLED_BACK


@dataclass
class RemovalResult:
    photo_id: str
    outcome: RemovalOutcome
    file_removed: bool = False


@dataclass
class ItemError:
    photo_id: str
    intent: Optional[str]
    message: str

    def to_dict(self) -> dict:
        return {"photoId": self.photo_id, "intent": self.intent, "error": self.message}


@dataclass
class BatchResult:
    promoted: list[PromotionResult] = field(default_factory=list)
    removed: list[RemovalResult] = field(default_factory=list)
    linked: list[str] = field(default_factory=list)
    errors: list[ItemError] = field(default_factory=list)

    @property
    def inconsistent(self) -> list[str]:
        return [r.photo_id for r in self.promoted if r.outcome is PromotionOutcome.COMMITTED_BUT_MOVE_FAILED]

    @property
    def promoted_count(self) -> int:
        return sum(1 for r in self.promoted if r.committed)

    @property
    def deleted_count(self) -> int:
        return len(self.removed)

    @property
    def error_count(self) -> int:
        return len(self.errors)

    def to_dict(self) -> dict:
        return {
            "promoted": self.promoted_count,
            "deleted": self.deleted_count,
            "linked": len(self.linked),
            "errors": [e.to_dict() for e in self.errors],
            "inconsistent": self.inconsistent,
        }


@dataclass
class ReconcileStats:
    repaired: int = 0
    missing: int = 0
    errors: int = 0


class PhotoLifecycle:
    def __init__(self, db: Session, storage: PhotoStorage):
        self.db = db
        self.storage = storage

    # -- transitions ----------------------------------------------------

    def promote_new(self, memory_id: int, owner_uid: str, photo_id: str, metadata: Optional[dict] = None) -> PromotionResult:
        """Persist a temp upload and link it to a memory.

        Raises DuplicateRecord when the photo already has a row and
        SourceNotFound when there is no temp file; neither touches the
        database or moves a file. Properties recorded at normalization win
        over caller metadata with the same key.
        """
        validate_photo_id(photo_id)
        if self.db.get(Photo, photo_id) is not None:
            raise DuplicateRecord(f"photo {photo_id} is already persisted")
        temp_path = self.storage.resolve(photo_id, Area.TEMP)
        if not self.storage.exists(photo_id, Area.TEMP):
            raise SourceNotFound(f"photo {photo_id} not found in temp storage")

        width, height, fmt = read_image_info(temp_path)
        meta = {**(metadata or {}), **read_upload_metadata(temp_path)}
        photo = Photo(
            id=photo_id,
            owner_uid=owner_uid,
            storage_path=photo_relative_path(photo_id),
            format=fmt or CANONICAL_EXTENSION,
            original_format=meta.get("originalFormat"),
            width=width,
            height=height,
            size_bytes=self.storage_size(photo_id, Area.TEMP),
            photo_metadata=meta,
        )
        try:
            self.db.add(photo)
            self.db.flush()
            self.db.add(MemoryPhoto(memory_id=memory_id, photo_id=photo_id))
            self.db.commit()
        except IntegrityError as ex:
            self.db.rollback()
            if self.db.get(Photo, photo_id) is not None:
                raise DuplicateRecord(f"photo {photo_id} is already persisted") from ex
            logger.error(f"[lifecycle] promote {photo_id} rolled back: {ex}")
            return PromotionResult(photo_id, PromotionOutcome.ROLLED_BACK, error=str(ex.orig or ex))
        except SQLAlchemyError as ex:
            self.db.rollback()
            logger.error(f"[lifecycle] promote {photo_id} rolled back: {ex}")
            return PromotionResult(photo_id, PromotionOutcome.ROLLED_BACK, error=str(ex))

        try:
            self.storage.promote(photo_id)
        except (PhotoError, OSError) as ex:
            logger.error(f"[lifecycle] photo {photo_id} committed but file move failed: {ex}")
            return PromotionResult(photo_id, PromotionOutcome.COMMITTED_BUT_MOVE_FAILED, photo=photo, error=str(ex))

        logger.info(f"[lifecycle] promoted {photo_id} into memory {memory_id}")
        return PromotionResult(photo_id, PromotionOutcome.COMMITTED_AND_MOVED, photo=photo)

    def link_existing(self, memory_id: int, photo_id: str, owner_uid: Optional[str] = None) -> bool:
        """Link an already persisted photo to a memory; returns True when a link was added.

        When owner_uid is given the photo must belong to that user.
        """
        validate_photo_id(photo_id)
        photo = self.db.get(Photo, photo_id)
        if photo is None:
            raise NotFound(f"photo {photo_id} is not persisted")
        if owner_uid is not None and photo.owner_uid != owner_uid:
            raise Forbidden(f"photo {photo_id} belongs to another user")
        if self.db.get(MemoryPhoto, (memory_id, photo_id)) is not None:
            return False
        try:
            self.db.add(MemoryPhoto(memory_id=memory_id, photo_id=photo_id))
            self.db.commit()
        except IntegrityError:
            # A concurrent save inserted the same link first
            self.db.rollback()
            logger.info(f"[lifecycle] link {memory_id}/{photo_id} raced with another save")
            return False
        logger.info(f"[lifecycle] linked {photo_id} to memory {memory_id}")
        return True

    def remove_from_memory(self, memory_id: int, photo_id: str) -> RemovalResult:
        """Unlink a photo from a memory and delete it once nothing references it."""
        validate_photo_id(photo_id)
        photo = self.db.get(Photo, photo_id)
        if photo is None:
            # Uploaded and removed before any save
            removed = self.storage.delete_from_area(photo_id, Area.TEMP)
            return RemovalResult(photo_id, RemovalOutcome.DISCARDED_TEMP, file_removed=removed)

        try:
            self.db.query(MemoryPhoto).filter(
                MemoryPhoto.memory_id == memory_id,
                MemoryPhoto.photo_id == photo_id,
            ).delete(synchronize_session=False)
            remaining = self.count_links(photo_id)
            if remaining:
                self.db.commit()
                logger.info(f"[lifecycle] unlinked {photo_id} from memory {memory_id} ({remaining} links left)")
                return RemovalResult(photo_id, RemovalOutcome.UNLINKED)
            self.db.delete(photo)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

        removed = self.storage.delete_from_area(photo_id, Area.PERMANENT)
        if not removed:
            logger.warning(f"[lifecycle] deleted row for {photo_id} but no permanent file was present")
        logger.info(f"[lifecycle] deleted {photo_id} (last link removed from memory {memory_id})")
        return RemovalResult(photo_id, RemovalOutcome.DELETED, file_removed=removed)

    def discard_temp(self, photo_id: str) -> bool:
        """Delete a never-promoted upload. No database access."""
        validate_photo_id(photo_id)
        return self.storage.delete_from_area(photo_id, Area.TEMP)

    # -- batches --------------------------------------------------------

    def apply_changes(self, memory: Memory, owner_uid: str, changes: Iterable[PhotoChange]) -> BatchResult:
        """Apply the photo changes of one memory save.

        Each photo is handled in its own transaction; a failure is logged and
        recorded and the remaining photos are still processed.
        """
        result = BatchResult()
        for change in changes:
            intent = change.intent.value if change.intent else None
            try:
                if change.intent is ElementState.NEW:
                    promotion = self.promote_new(memory.id, owner_uid, change.photo_id, change.metadata)
                    result.promoted.append(promotion)
                    if promotion.outcome is PromotionOutcome.ROLLED_BACK:
                        result.errors.append(ItemError(change.photo_id, intent, promotion.error or "rolled back"))
                elif change.intent is ElementState.REMOVED:
                    result.removed.append(self.remove_from_memory(memory.id, change.photo_id))
                else:
                    if self.link_existing(memory.id, change.photo_id, owner_uid):
                        result.linked.append(change.photo_id)
            except (PhotoError, SQLAlchemyError, OSError) as ex:
                self.db.rollback()
                logger.error(f"[lifecycle] {intent or 'link'} failed for photo {change.photo_id}: {ex}")
                result.errors.append(ItemError(change.photo_id, intent, str(ex)))
        return result

    def delete_memory(self, memory: Memory) -> BatchResult:
        """Remove every photo link of a memory (deleting orphans), then the memory.

        If any photo could not be removed the memory is kept, so its
        remaining links still hold those photos; result.errors lists them.
        """
        changes = [PhotoChange(pid, ElementState.REMOVED) for pid in self.linked_photo_ids(memory.id)]
        result = self.apply_changes(memory, memory.owner_uid, changes)
        if result.errors:
            logger.error(
                f"[lifecycle] memory {memory.id} kept: {result.error_count} photo(s) could not be removed"
            )
            return result
        try:
            self.db.delete(memory)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        return result

    # -- queries --------------------------------------------------------

    def count_links(self, photo_id: str) -> int:
        return self.db.query(func.count(MemoryPhoto.memory_id)).filter(MemoryPhoto.photo_id == photo_id).scalar() or 0

    def linked_photo_ids(self, memory_id: int) -> list[str]:
        rows = (
            self.db.query(MemoryPhoto.photo_id)
            .filter(MemoryPhoto.memory_id == memory_id)
            .order_by(MemoryPhoto.added_at.asc(), MemoryPhoto.photo_id.asc())
            .all()
        )
        return [r[0] for r in rows]

    def linked_photos(self, memory_id: int) -> list[Photo]:
        return (
            self.db.query(Photo)
            .join(MemoryPhoto, MemoryPhoto.photo_id == Photo.id)
            .filter(MemoryPhoto.memory_id == memory_id)
            .order_by(MemoryPhoto.added_at.asc(), Photo.id.asc())
            .all()
        )

    def can_view(self, photo: Photo, uid: str) -> bool:
        """Owners always see their photos; others only through a memory they own."""
        if photo.owner_uid == uid:
            return True
        shared = (
            self.db.query(MemoryPhoto.memory_id)
            .join(Memory, Memory.id == MemoryPhoto.memory_id)
            .filter(MemoryPhoto.photo_id == photo.id, Memory.owner_uid == uid)
            .first()
        )
        return shared is not None

    def storage_size(self, photo_id: str, area: Area) -> int:
        return os.path.getsize(self.storage.resolve(photo_id, area))

    # -- repair ---------------------------------------------------------

    def reconcile_promotions(self, dry_run: bool = False) -> ReconcileStats:
        """Finish promotions whose row committed but whose file stayed in temp."""
        stats = ReconcileStats()
        for (photo_id,) in self.db.query(Photo.id).order_by(Photo.created_at.asc()).all():
            if self.storage.exists(photo_id, Area.PERMANENT):
                continue
            if not self.storage.exists(photo_id, Area.TEMP):
                logger.error(f"[lifecycle] photo {photo_id} has a row but no file in either area")
                stats.missing += 1
                continue
            if dry_run:
                logger.info(f"[lifecycle] [DRY-RUN] would promote {photo_id}")
                stats.repaired += 1
                continue
            try:
                self.storage.promote(photo_id)
                stats.repaired += 1
            except (PhotoError, OSError) as ex:
                logger.error(f"[lifecycle] reconcile failed for {photo_id}: {ex}")
                stats.errors += 1
        logger.info(f"[lifecycle] reconcile: {stats.repaired} repaired, {stats.missing} missing, {stats.errors} errors")
        return stats


def get_lifecycle(db: Session = Depends(get_db), storage: PhotoStorage = Depends(get_storage)) -> PhotoLifecycle:
    """FastAPI dependency: a coordinator bound to the request's session."""
    return PhotoLifecycle(db, storage)
