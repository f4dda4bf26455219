from sqlalchemy import Column, Integer, String, Text, DateTime, JSON
from sqlalchemy.sql import func
from core.database import Base


class Photo(Base):
    """A persisted photo. Temp uploads never get a row."""
    __tablename__ = "photos"

    id = Column(String(36), primary_key=True)
    owner_uid = Column(String(128), index=True, nullable=False)
    storage_path = Column(Text, nullable=False)
    format = Column(String(16), nullable=False, default="webp")
    original_format = Column(String(16), nullable=True)
    width = Column(Integer, nullable=False, default=0)
    height = Column(Integer, nullable=False, default=0)
    size_bytes = Column(Integer, nullable=False, default=0)
    # "metadata" is reserved on declarative classes
    photo_metadata = Column("metadata", JSON, nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "lifecycleState": "PERSISTED",
            "storagePath": self.storage_path,
            "format": self.format,
            "originalFormat": self.original_format,
            "width": self.width,
            "height": self.height,
            "sizeBytes": self.size_bytes,
            "metadata": self.photo_metadata or {},
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
