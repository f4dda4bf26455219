"""
Initialize PostgreSQL database schema
Creates the photos, memories and memory_photos tables
"""
import sys
import os

# Add parent directory to path to import backend modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.database import Base, engine
from models.photo import Photo
from models.memory import Memory, MemoryPhoto


def init_database():
    """Create all tables in the database"""
    print("Creating PostgreSQL tables...")

    try:
        Base.metadata.create_all(bind=engine)
        print("✓ Tables created successfully!")
        print("\nCreated tables:")
        for table in (Photo.__table__, Memory.__table__, MemoryPhoto.__table__):
            print(f"  - {table.name}")

    except Exception as e:
        print(f"✗ Error creating tables: {e}")
        sys.exit(1)


if __name__ == "__main__":
    init_database()
