import os
import logging
from dotenv import load_dotenv

# Load .env from project root
try:
    load_dotenv(dotenv_path=os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".env")))
except Exception:
    load_dotenv()

# Environment
ENVIRONMENT = (os.getenv("ENVIRONMENT", "local") or "local").strip().lower()

# Photo storage roots. Both trees share the same {8-hex}/{uuid}.webp layout.
PHOTO_STORAGE_DIR = os.path.abspath(
    os.getenv("PHOTO_STORAGE_DIR", "") or os.path.join(os.path.dirname(__file__), "..", "file_storage")
)
TEMP_PHOTOS_DIR = os.path.abspath(os.getenv("TEMP_PHOTOS_DIR", "") or os.path.join(PHOTO_STORAGE_DIR, "temp_photos"))
PERMANENT_PHOTOS_DIR = os.path.abspath(os.getenv("PERMANENT_PHOTOS_DIR", "") or os.path.join(PHOTO_STORAGE_DIR, "photos"))

# Upload limits
MAX_FILES = int(os.getenv("MAX_FILES", "10"))
MAX_UPLOAD_MB = int(os.getenv("MAX_UPLOAD_MB", "10"))
MAX_UPLOAD_BYTES = MAX_UPLOAD_MB * 1024 * 1024
ALLOWED_MIME_TYPES = ("image/jpeg", "image/png", "image/gif", "image/webp")

# Canonical encoding for every stored photo
IMAGE_MAX_DIMENSION = int(os.getenv("IMAGE_MAX_DIMENSION", "2000"))
IMAGE_QUALITY = int(os.getenv("IMAGE_QUALITY", "85"))


def _env_flag(name: str, default: bool) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


# Temp photo cleanup (on by default in production only)
TEMP_CLEANUP_ENABLED = _env_flag("TEMP_CLEANUP_ENABLED", ENVIRONMENT == "production")
CLEANUP_INTERVAL_MS = int(os.getenv("CLEANUP_INTERVAL_MS", "86400000"))  # 24h
CLEANUP_MAX_AGE_MS = int(os.getenv("CLEANUP_MAX_AGE_MS", "3600000"))     # 1h

# CORS
_default_origins = ",".join([
    "http://localhost:3000",
    "http://localhost:5173",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:5173",
])
ALLOWED_ORIGINS = [o.strip() for o in (os.getenv("ALLOWED_ORIGINS") or _default_origins).split(",") if o.strip()]

# Logging
logging.basicConfig(level=logging.INFO, format="%(asctime)s | %(levelname)s | %(message)s")
logger = logging.getLogger("moments")
