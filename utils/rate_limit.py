"""Upload rate limiting using throttled-py"""
import os
from datetime import timedelta
from throttled import Throttled, RateLimiterType, store, rate_limiter

from core.config import MAX_FILES, logger
from core.errors import TooManyFiles

# Initialize storage - Redis for production, MemoryStore for development
try:
    redis_url = os.getenv("REDIS_URL", "").strip()
    if redis_url:
        # RedisStore expects the URL string, not a Redis client object
        storage = store.RedisStore(server=redis_url)
        logger.info("[rate_limit] Using Redis for rate limiting")
    else:
        storage = store.MemoryStore()
        logger.warning("[rate_limit] REDIS_URL not set - using in-memory storage (not suitable for production with multiple workers)")
except Exception as ex:
    # Fallback to memory storage if Redis is not available
    storage = store.MemoryStore()
    logger.warning(f"[rate_limit] Redis connection failed, using in-memory storage: {ex}")

UPLOADS_PER_HOUR = int(os.getenv("UPLOAD_RATE_LIMIT_PER_HOUR", "100"))

# Upload rate limiter: files per user per hour (prevent storage abuse)
upload_throttle = Throttled(
    using=RateLimiterType.FIXED_WINDOW.value,
    quota=rate_limiter.per_duration(timedelta(hours=1), limit=UPLOADS_PER_HOUR),
    store=storage,
)


def check_upload_rate_limit(user_id: str, file_count: int = 1) -> tuple[bool, str]:
    """
    Check if upload is allowed based on rate limits.

    Args:
        user_id: User ID or client IP
        file_count: Number of files being uploaded

    Returns:
        Tuple of (allowed: bool, error_message: str)
    """
    try:
        result = upload_throttle.limit(f"upload_count:{user_id}", cost=file_count)
        if result.limited:
            return False, f"Upload rate limit exceeded. You can upload up to {UPLOADS_PER_HOUR} files per hour. Please try again later."
        return True, ""
    except Exception as ex:
        logger.warning(f"[rate_limit] Upload rate limit check failed: {ex}")
        # Fail open - allow upload if rate limiter fails
        return True, ""


def validate_batch_size(files_count: int, max_files: int = MAX_FILES) -> None:
    """Reject an upload batch that has no files or more than max_files."""
    if files_count <= 0:
        raise TooManyFiles("No files uploaded.")
    if files_count > max_files:
        raise TooManyFiles(f"Too many files. Maximum {max_files} files per upload.")
