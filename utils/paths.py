"""
Photo identifiers and their on-disk layout.

Every photo lives at {first 8 hex chars of its uuid}/{uuid}.webp, under
either the temp root or the permanent root. The first segment fans files
out over subdirectories without needing an index.
"""
import re
import uuid

from core.errors import InvalidIdentifier

CANONICAL_EXTENSION = "webp"
CANONICAL_CONTENT_TYPE = "image/webp"

_UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$")


def new_photo_id() -> str:
    return str(uuid.uuid4())


def validate_photo_id(photo_id: str) -> str:
    """Return photo_id unchanged if it is a canonical lower-case uuid string."""
    if not isinstance(photo_id, str) or not _UUID_RE.match(photo_id):
        raise InvalidIdentifier(f"invalid photo id: {photo_id!r}")
    return photo_id


def photo_bucket(photo_id: str) -> str:
    """First uuid segment, used as the subdirectory name."""
    return validate_photo_id(photo_id).split("-", 1)[0]


def photo_filename(photo_id: str) -> str:
    return f"{validate_photo_id(photo_id)}.{CANONICAL_EXTENSION}"


def photo_relative_path(photo_id: str) -> str:
    return f"{photo_bucket(photo_id)}/{photo_filename(photo_id)}"
