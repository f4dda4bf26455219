from typing import Optional
from fastapi import Request
from core.config import logger

# Authentication happens upstream (API gateway / session middleware); it
# forwards the verified user id in this header.
USER_ID_HEADER = "X-User-Id"


def get_uid_from_request(request: Request) -> Optional[str]:
    uid = (request.headers.get(USER_ID_HEADER) or "").strip()
    if not uid:
        return None
    if len(uid) > 128:
        logger.warning(f"[auth] rejected oversized user id header ({len(uid)} chars)")
        return None
    return uid


def get_client_key(request: Request) -> str:
    """Rate-limit key: the user id when known, else the client IP."""
    uid = get_uid_from_request(request)
    if uid:
        return uid
    forwarded = (request.headers.get("x-forwarded-for") or "").split(",")[0].strip()
    if forwarded:
        return forwarded
    return request.client.host if request.client else "unknown"
