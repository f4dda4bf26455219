"""
Memories router: create, list, read, save and delete photo collages.

Saving a memory is where temp uploads become persisted photos. The client
sends the photos of the canvas with the lifecycle state it knows them in:
NEW photos are promoted, REMOVED ones are unlinked (and deleted when no
other memory uses them), anything else is linked if it is not yet.
"""
from fastapi import APIRouter, Request, Body, Depends
from fastapi.responses import JSONResponse
from typing import Optional
from sqlalchemy.exc import SQLAlchemyError

from core.config import logger
from core.auth import get_uid_from_request
from core.states import ElementState, parse_state
from models.memory import Memory
from services.photo_lifecycle import BatchResult, PhotoChange, PhotoLifecycle, get_lifecycle
from utils.canvas import photo_elements, settle_photo_states

router = APIRouter(prefix="/api/memories", tags=["memories"])

_EDITABLE_FIELDS = ("title", "description", "memory_data", "thumbnail_url")


def _load_memory(lifecycle: PhotoLifecycle, memory_id: int, uid: str):
    """Return (memory, None) or (None, error response)."""
    memory = lifecycle.db.get(Memory, memory_id)
    if memory is None:
        return None, JSONResponse({"error": "memory not found"}, status_code=404)
    if memory.owner_uid != uid:
        return None, JSONResponse({"error": "Forbidden"}, status_code=403)
    return memory, None


def _photo_changes(payload: dict, memory_data) -> list[PhotoChange]:
    """Photo changes from an explicit photos list, else from the canvas photo elements.

    Raises ValueError on a malformed list or an unknown canvas element.
    """
    changes: dict[str, PhotoChange] = {}
    if "photos" in payload and payload.get("photos") is not None:
        items = payload.get("photos")
        if not isinstance(items, list):
            raise ValueError("photos must be a list")
        for item in items:
            if not isinstance(item, dict) or not item.get("id"):
                raise ValueError("each photo needs an id")
            photo_id = str(item["id"])
            meta = item.get("metadata") if isinstance(item.get("metadata"), dict) else None
            changes.setdefault(photo_id, PhotoChange(photo_id, parse_state(item.get("state")), meta))
    else:
        for el in photo_elements(memory_data):
            if el.photo_id:
                changes.setdefault(el.photo_id, PhotoChange(el.photo_id, el.state, el.to_metadata()))
    return list(changes.values())


def _memory_response(lifecycle: PhotoLifecycle, memory: Memory, result: Optional[BatchResult] = None) -> dict:
    photos = lifecycle.linked_photos(memory.id)
    body = memory.to_dict(photo_ids=[p.id for p in photos])
    body["photos"] = [p.to_dict() for p in photos]
    if result is not None:
        body["errors"] = [e.to_dict() for e in result.errors]
        body["inconsistent"] = result.inconsistent
    return body


def _save(lifecycle: PhotoLifecycle, memory: Memory, uid: str, payload: dict) -> BatchResult:
    """Store the editable fields, then apply the photo changes one photo at a time."""
    for key in _EDITABLE_FIELDS:
        if key in payload:
            setattr(memory, key, payload.get(key))
    changes = _photo_changes(payload, memory.memory_data)
    lifecycle.db.commit()

    result = lifecycle.apply_changes(memory, uid, changes)

    persisted = {r.photo_id for r in result.promoted if r.committed}
    persisted.update(result.linked)
    failed = {e.photo_id for e in result.errors}
    persisted.update(
        c.photo_id for c in changes
        if c.intent is not ElementState.NEW and c.intent is not ElementState.REMOVED and c.photo_id not in failed
    )
    dropped = {r.photo_id for r in result.removed}
    memory.memory_data = settle_photo_states(memory.memory_data, persisted, dropped)
    lifecycle.db.commit()

    logger.info(
        f"[memories] saved memory {memory.id}: {result.promoted_count} promoted, "
        f"{len(result.linked)} linked, {result.deleted_count} removed, {result.error_count} errors"
    )
    return result


@router.post("")
def create_memory(
    request: Request,
    payload: dict = Body(...),
    lifecycle: PhotoLifecycle = Depends(get_lifecycle),
):
    uid = get_uid_from_request(request)
    if not uid:
        return JSONResponse({"error": "Unauthorized"}, status_code=401)
    title = str(payload.get("title") or "").strip()
    if not title:
        return JSONResponse({"error": "title required"}, status_code=400)

    memory = Memory(owner_uid=uid, title=title[:255])
    try:
        lifecycle.db.add(memory)
        lifecycle.db.flush()
        result = _save(lifecycle, memory, uid, {**payload, "title": title[:255]})
    except ValueError as ex:
        lifecycle.db.rollback()
        return JSONResponse({"error": str(ex)}, status_code=400)
    except SQLAlchemyError as ex:
        lifecycle.db.rollback()
        logger.error(f"[memories] create failed for {uid}: {ex}")
        return JSONResponse({"error": "failed to create memory"}, status_code=500)
    return JSONResponse(_memory_response(lifecycle, memory, result), status_code=201)


@router.get("")
def list_memories(request: Request, lifecycle: PhotoLifecycle = Depends(get_lifecycle)):
    uid = get_uid_from_request(request)
    if not uid:
        return JSONResponse({"error": "Unauthorized"}, status_code=401)
    memories = (
        lifecycle.db.query(Memory)
        .filter(Memory.owner_uid == uid)
        .order_by(Memory.created_at.desc(), Memory.id.desc())
        .all()
    )
    return {"memories": [m.to_dict(photo_ids=lifecycle.linked_photo_ids(m.id)) for m in memories]}


@router.get("/{memory_id}")
def get_memory(memory_id: int, request: Request, lifecycle: PhotoLifecycle = Depends(get_lifecycle)):
    uid = get_uid_from_request(request)
    if not uid:
        return JSONResponse({"error": "Unauthorized"}, status_code=401)
    memory, err = _load_memory(lifecycle, memory_id, uid)
    if err is not None:
        return err
    return _memory_response(lifecycle, memory)


@router.put("/{memory_id}")
def save_memory(
    memory_id: int,
    request: Request,
    payload: dict = Body(...),
    lifecycle: PhotoLifecycle = Depends(get_lifecycle),
):
    """Save canvas and photo changes. Per-photo failures are reported, not fatal."""
    uid = get_uid_from_request(request)
    if not uid:
        return JSONResponse({"error": "Unauthorized"}, status_code=401)
    memory, err = _load_memory(lifecycle, memory_id, uid)
    if err is not None:
        return err
    if "title" in payload and not str(payload.get("title") or "").strip():
        return JSONResponse({"error": "title cannot be empty"}, status_code=400)

    try:
        result = _save(lifecycle, memory, uid, payload)
    except ValueError as ex:
        lifecycle.db.rollback()
        return JSONResponse({"error": str(ex)}, status_code=400)
    except SQLAlchemyError as ex:
        lifecycle.db.rollback()
        logger.error(f"[memories] save failed for memory {memory_id}: {ex}")
        return JSONResponse({"error": "failed to save memory"}, status_code=500)
    return _memory_response(lifecycle, memory, result)


@router.delete("/{memory_id}")
def delete_memory(memory_id: int, request: Request, lifecycle: PhotoLifecycle = Depends(get_lifecycle)):
    """Delete a memory; photos no other memory uses are deleted with it."""
    uid = get_uid_from_request(request)
    if not uid:
        return JSONResponse({"error": "Unauthorized"}, status_code=401)
    memory, err = _load_memory(lifecycle, memory_id, uid)
    if err is not None:
        return err
    try:
        result = lifecycle.delete_memory(memory)
    except SQLAlchemyError as ex:
        logger.error(f"[memories] delete failed for memory {memory_id}: {ex}")
        return JSONResponse({"error": "failed to delete memory"}, status_code=500)
    if result.errors:
        return JSONResponse(
            {"error": "some photos could not be removed; memory kept", "photos": result.to_dict()},
            status_code=500,
        )
    logger.info(f"[memories] deleted memory {memory_id} ({result.deleted_count} photo links removed)")
    return {"deleted": True, "photos": result.to_dict()}
