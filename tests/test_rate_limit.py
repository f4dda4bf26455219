"""Tests for upload batch validation and rate limiting."""
import pytest

from core.errors import TooManyFiles
from utils.rate_limit import check_upload_rate_limit, validate_batch_size


def test_validate_batch_size_bounds() -> None:
    validate_batch_size(1, max_files=10)
    validate_batch_size(10, max_files=10)
    with pytest.raises(TooManyFiles):
        validate_batch_size(0, max_files=10)
    with pytest.raises(TooManyFiles):
        validate_batch_size(11, max_files=10)


def test_upload_within_quota_is_allowed() -> None:
    allowed, message = check_upload_rate_limit("rate-limit-test-user", file_count=3)
    assert allowed is True
    assert message == ""
