"""
Memories (photo collages) and their links to persisted photos
"""
from sqlalchemy import Column, Integer, String, Text, DateTime, JSON, ForeignKey, Index
from sqlalchemy.sql import func
from core.database import Base


class Memory(Base):
    __tablename__ = "memories"

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_uid = Column(String(128), index=True, nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    # Canvas configuration: element positions, sizes and rotations
    memory_data = Column(JSON, nullable=True)
    thumbnail_url = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def to_dict(self, photo_ids=None):
        return {
            "id": self.id,
            "ownerUid": self.owner_uid,
            "title": self.title,
            "description": self.description,
            "memory_data": self.memory_data,
            "thumbnail_url": self.thumbnail_url,
            "photo_ids": list(photo_ids or []),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }


class MemoryPhoto(Base):
    """Many-to-many link; the composite key rejects a second link for the same pair."""
    __tablename__ = "memory_photos"

    memory_id = Column(Integer, ForeignKey("memories.id", ondelete="CASCADE"), primary_key=True)
    photo_id = Column(String(36), ForeignKey("photos.id", ondelete="CASCADE"), primary_key=True)
    added_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index('ix_memory_photos_photo', 'photo_id'),
    )
