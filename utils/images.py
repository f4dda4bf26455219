"""
Image normalization for uploads.
Every accepted upload is re-encoded to one canonical form: WebP, quality 85,
longest side at most 2000px (never upscaled), EXIF orientation applied.
The canonical file is written to temp storage under a fresh photo id.
"""
import json
import os
import uuid
from dataclasses import dataclass
from typing import Optional

from PIL import Image, ImageOps

from core.config import (
    ALLOWED_MIME_TYPES,
    IMAGE_MAX_DIMENSION,
    IMAGE_QUALITY,
    MAX_UPLOAD_BYTES,
    logger,
)
from core.errors import ImageProcessingError, PayloadTooLarge, UnsupportedMediaType
from utils.paths import new_photo_id, photo_relative_path, CANONICAL_EXTENSION
from utils.storage import Area, PhotoStorage

# Raw uploads are staged here before normalization; the temp sweeper ages them out
INCOMING_DIRNAME = "_incoming"

_CHUNK_SIZE = 1024 * 1024

# EXIF ImageDescription carries the upload properties as JSON
_UPLOAD_METADATA_TAG = 0x010E
_UPLOAD_METADATA_KEYS = ("originalFormat", "originalWidth", "originalHeight")

# File magic bytes for the accepted formats
IMAGE_MAGIC_BYTES = {
    b'\xff\xd8\xff': 'image/jpeg',
    b'\x89PNG\r\n\x1a\n': 'image/png',
    b'GIF87a': 'image/gif',
    b'GIF89a': 'image/gif',
}


@dataclass
class NormalizedPhoto:
    id: str
    relative_path: str
    width: int
    height: int
    size_bytes: int
    format: str = CANONICAL_EXTENSION
    original_format: Optional[str] = None
    original_width: Optional[int] = None
    original_height: Optional[int] = None

    def to_metadata(self) -> dict:
        return {
            "width": self.width,
            "height": self.height,
            "size": self.size_bytes,
            "format": self.format,
            "originalFormat": self.original_format,
            "originalWidth": self.original_width,
            "originalHeight": self.original_height,
        }


def sniff_mime_type(data: bytes) -> Optional[str]:
    """Detect the image type from leading bytes; None when it is not an accepted image."""
    if not data or len(data) < 8:
        return None
    for magic, mime in IMAGE_MAGIC_BYTES.items():
        if data[:len(magic)] == magic:
            return mime
    # RIFF....WEBP
    if data[:4] == b'RIFF' and len(data) > 11 and data[8:12] == b'WEBP':
        return 'image/webp'
    return None


def check_content_type(content_type: Optional[str]) -> None:
    ct = (content_type or "").split(";")[0].strip().lower()
    if ct not in ALLOWED_MIME_TYPES:
        raise UnsupportedMediaType("Only image files are allowed (JPEG, PNG, GIF, WEBP)")


async def stage_upload(upload, storage: PhotoStorage, max_bytes: int = MAX_UPLOAD_BYTES) -> str:
    """
    Stream an UploadFile to the incoming area, enforcing type and size.

    Args:
        upload: FastAPI UploadFile
        storage: photo storage whose temp root hosts the incoming area
        max_bytes: per-file size limit

    Returns:
        Path of the staged raw file
    """
    check_content_type(getattr(upload, "content_type", None))
    incoming_dir = os.path.join(storage.temp_root, INCOMING_DIRNAME)
    os.makedirs(incoming_dir, exist_ok=True)
    ext = os.path.splitext(upload.filename or "")[1].lower()
    staged_path = os.path.join(incoming_dir, f"{uuid.uuid4().hex}{ext}")

    total = 0
    first = True
    try:
        with open(staged_path, "wb") as f:
            while True:
                chunk = await upload.read(_CHUNK_SIZE)
                if not chunk:
                    break
                if first:
                    if sniff_mime_type(chunk) is None:
                        raise UnsupportedMediaType("File content is not a supported image")
                    first = False
                total += len(chunk)
                if total > max_bytes:
                    raise PayloadTooLarge(f"file too large (max {max_bytes // (1024 * 1024)}MB)")
                f.write(chunk)
        if first:
            raise UnsupportedMediaType("Empty upload")
    except Exception:
        unlink_quietly(staged_path)
        raise
    return staged_path


def normalize_image(
    source_path: str,
    storage: PhotoStorage,
    max_dimension: int = IMAGE_MAX_DIMENSION,
    quality: int = IMAGE_QUALITY,
) -> NormalizedPhoto:
    """
    Re-encode a staged upload into temp storage under a new photo id.

    The original format and dimensions are written into the WebP's EXIF so
    they survive until the photo is promoted (temp uploads have no row).
    The staged source is deleted on success. On any failure the partial
    output is removed and ImageProcessingError is raised from the original
    cause; the source is left for the caller (or the sweeper) to clean up.
    """
    photo_id = new_photo_id()
    target = storage.resolve(photo_id, Area.TEMP)
    try:
        os.makedirs(os.path.dirname(target), exist_ok=True)
        with Image.open(source_path) as src:
            original_format = (src.format or "").lower() or None
            # Animated GIF/WebP: keep the first frame
            src.seek(0)
            img = ImageOps.exif_transpose(src)
            original_width, original_height = img.size
            img = _to_webp_mode(img)
            # thumbnail() keeps aspect ratio and never enlarges
            img.thumbnail((max_dimension, max_dimension), Image.Resampling.LANCZOS)
            exif = Image.Exif()
            exif[_UPLOAD_METADATA_TAG] = json.dumps({
                "originalFormat": original_format,
                "originalWidth": original_width,
                "originalHeight": original_height,
            })
            img.save(target, format="WEBP", quality=quality, method=4, exif=exif.tobytes())
            width, height = img.size
        size_bytes = os.path.getsize(target)
    except Exception as ex:
        logger.error(f"[images] normalization failed for {source_path}: {ex}")
        storage.delete_from_area(photo_id, Area.TEMP)
        raise ImageProcessingError(f"could not process image: {ex}") from ex

    unlink_quietly(source_path)
    logger.info(f"[images] normalized {photo_id} ({width}x{height}, {size_bytes} bytes, from {original_format})")
    return NormalizedPhoto(
        id=photo_id,
        relative_path=photo_relative_path(photo_id),
        width=width,
        height=height,
        size_bytes=size_bytes,
        original_format=original_format,
        original_width=original_width,
        original_height=original_height,
    )


def read_image_info(path: str) -> tuple[int, int, Optional[str]]:
    """Return (width, height, format) of a stored file without decoding pixels."""
    with Image.open(path) as img:
        return img.size[0], img.size[1], (img.format or "").lower() or None


def read_upload_metadata(path: str) -> dict:
    """Upload properties recorded by normalize_image; {} for files without them."""
    with Image.open(path) as img:
        raw = img.getexif().get(_UPLOAD_METADATA_TAG)
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except ValueError:
        logger.warning(f"[images] unreadable upload metadata in {path}")
        return {}
    if not isinstance(data, dict):
        return {}
    return {k: data[k] for k in _UPLOAD_METADATA_KEYS if data.get(k) is not None}


def _to_webp_mode(img: Image.Image) -> Image.Image:
    # WebP handles RGB and RGBA only
    if img.mode in ('RGB', 'RGBA'):
        return img
    if img.mode in ('P', 'LA', 'PA') or 'transparency' in img.info:
        return img.convert('RGBA')
    return img.convert('RGB')


def unlink_quietly(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as ex:
        logger.warning(f"[images] could not remove {path}: {ex}")

