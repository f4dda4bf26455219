"""Shared test fixtures.

The database and storage roots are pointed at throwaway locations before any
project module is imported, because both are read at import time.
"""
import io
import os
import tempfile

_TEST_ROOT = tempfile.mkdtemp(prefix="moments-test-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TEST_ROOT, 'moments-test.db')}"
os.environ["PHOTO_STORAGE_DIR"] = os.path.join(_TEST_ROOT, "file_storage")
os.environ["TEMP_CLEANUP_ENABLED"] = "0"
os.environ["UPLOAD_RATE_LIMIT_PER_HOUR"] = "100000"

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from core.database import SessionLocal, init_db
from models.memory import Memory, MemoryPhoto
from models.photo import Photo
from services.photo_lifecycle import PhotoLifecycle
from utils.storage import Area, PhotoStorage, get_storage

init_db()


def image_bytes(fmt: str = "JPEG", size=(64, 48), mode: str = "RGB", color=(200, 30, 30), **save_kwargs) -> bytes:
    img = Image.new(mode, size, color)
    buf = io.BytesIO()
    img.save(buf, format=fmt, **save_kwargs)
    return buf.getvalue()


@pytest.fixture(autouse=True)
def _clean_tables():
    yield
    session = SessionLocal()
    try:
        session.query(MemoryPhoto).delete()
        session.query(Photo).delete()
        session.query(Memory).delete()
        session.commit()
    finally:
        session.close()


@pytest.fixture
def make_image():
    """Factory returning encoded image bytes generated with Pillow."""
    return image_bytes


@pytest.fixture
def storage(tmp_path) -> PhotoStorage:
    s = PhotoStorage(str(tmp_path / "temp_photos"), str(tmp_path / "photos"))
    s.ensure_roots()
    return s


@pytest.fixture
def put_temp_photo(storage):
    """Write a real WebP file into temp storage under the given id."""
    def _put(photo_id: str, size=(40, 30)) -> str:
        path = storage.resolve(photo_id, Area.TEMP)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "wb") as f:
            f.write(image_bytes("WEBP", size=size))
        return path
    return _put


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def lifecycle(db, storage) -> PhotoLifecycle:
    return PhotoLifecycle(db, storage)


@pytest.fixture
def make_memory(db):
    def _make(owner_uid: str = "user-1", title: str = "Trip") -> Memory:
        memory = Memory(owner_uid=owner_uid, title=title, memory_data={"elements": []})
        db.add(memory)
        db.commit()
        return memory
    return _make


@pytest.fixture
def client(storage):
    from main import app

    app.dependency_overrides[get_storage] = lambda: storage
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
