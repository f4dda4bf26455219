from fastapi import APIRouter, Request, UploadFile, File, Depends
from fastapi.responses import JSONResponse, FileResponse, Response
from starlette.concurrency import run_in_threadpool
from typing import List, Optional
import asyncio

from core.config import MAX_FILES, MAX_UPLOAD_BYTES, logger
from core.auth import get_uid_from_request, get_client_key
from core.errors import PhotoError
from core.states import ElementState, parse_state
from models.photo import Photo
from services.photo_lifecycle import PhotoLifecycle, get_lifecycle
from utils.images import NormalizedPhoto, normalize_image, stage_upload, unlink_quietly
from utils.paths import CANONICAL_CONTENT_TYPE, validate_photo_id
from utils.rate_limit import check_upload_rate_limit, validate_batch_size
from utils.storage import Area, PhotoStorage, get_storage

router = APIRouter(prefix="/api/photos", tags=["photos"])


def _error(ex: PhotoError) -> JSONResponse:
    return JSONResponse(ex.to_dict(), status_code=ex.status_code)


@router.post("/upload")
async def upload_photos(
    request: Request,
    photos: Optional[List[UploadFile]] = File(None),
    storage: PhotoStorage = Depends(get_storage),
):
    """Accept up to MAX_FILES images, normalize them into temp storage and return their ids."""
    uid = get_uid_from_request(request)
    if not uid:
        return JSONResponse({"error": "Unauthorized"}, status_code=401)

    files = photos or []
    try:
        validate_batch_size(len(files), MAX_FILES)
    except PhotoError as ex:
        return _error(ex)

    allowed, rate_err = check_upload_rate_limit(get_client_key(request), file_count=len(files))
    if not allowed:
        return JSONResponse({"error": rate_err}, status_code=429)

    staged: list[str] = []
    try:
        for f in files:
            staged.append(await stage_upload(f, storage, MAX_UPLOAD_BYTES))
    except PhotoError as ex:
        for path in staged:
            unlink_quietly(path)
        logger.info(f"[upload] rejected batch from {uid}: {ex}")
        return _error(ex)

    results = await asyncio.gather(
        *[run_in_threadpool(normalize_image, path, storage) for path in staged],
        return_exceptions=True,
    )
    failures = [r for r in results if isinstance(r, BaseException)]
    if failures:
        # All or nothing: drop what did convert along with the failed sources
        for path, res in zip(staged, results):
            if isinstance(res, NormalizedPhoto):
                storage.delete_from_area(res.id, Area.TEMP)
            else:
                unlink_quietly(path)
        first = failures[0]
        if isinstance(first, PhotoError):
            return _error(first)
        raise first

    logger.info(f"[upload] {uid} uploaded {len(results)} photo(s) to temp storage")
    body = [{"id": p.id, "lifecycleState": ElementState.NEW.value, **p.to_metadata()} for p in results]
    return JSONResponse(body, status_code=201)


@router.get("/retrieve/{photo_id}")
def retrieve_photo(
    photo_id: str,
    request: Request,
    state: Optional[str] = None,
    lifecycle: PhotoLifecycle = Depends(get_lifecycle),
):
    uid = get_uid_from_request(request)
    if not uid:
        return JSONResponse({"error": "Unauthorized"}, status_code=401)

    parsed = parse_state(state)
    if parsed not in (ElementState.NEW, ElementState.PERSISTED):
        return JSONResponse({"error": "state must be NEW or PERSISTED"}, status_code=400)

    try:
        validate_photo_id(photo_id)
        if parsed is ElementState.NEW:
            path = lifecycle.storage.read_path(photo_id, Area.TEMP)
        else:
            photo = lifecycle.db.get(Photo, photo_id)
            if photo is None:
                return JSONResponse({"error": "photo not found"}, status_code=404)
            if not lifecycle.can_view(photo, uid):
                return JSONResponse({"error": "Forbidden"}, status_code=403)
            path = lifecycle.storage.read_path(photo_id, Area.PERMANENT)
    except PhotoError as ex:
        return _error(ex)

    # Permanent files never change under the same id; temp ones may be discarded
    cache = "private, max-age=31536000, immutable" if parsed is ElementState.PERSISTED else "no-store"
    return FileResponse(path, media_type=CANONICAL_CONTENT_TYPE, headers={"Cache-Control": cache})


@router.delete("/temp/{photo_id}")
def discard_temp_photo(
    photo_id: str,
    request: Request,
    lifecycle: PhotoLifecycle = Depends(get_lifecycle),
):
    """Drop an upload that was removed from the canvas before the memory was saved."""
    uid = get_uid_from_request(request)
    if not uid:
        return JSONResponse({"error": "Unauthorized"}, status_code=401)
    try:
        validate_photo_id(photo_id)
        # A committed promotion whose move failed still has its only copy in temp
        if lifecycle.db.get(Photo, photo_id) is not None:
            return JSONResponse({"error": "photo is persisted; remove it from its memory instead"}, status_code=409)
        lifecycle.discard_temp(photo_id)
    except PhotoError as ex:
        return _error(ex)
    return Response(status_code=204)
