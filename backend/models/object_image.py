# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261016v1
# ---------------------------------------------------------------------------
"""ObjectImage ORM model – an uploaded blob attached to an object section."""

from sqlalchemy import Column, Integer, String, DateTime, Enum, ForeignKey, Index
from sqlalchemy.sql import func

from database import Base

# People entries never carry images.
IMAGE_SECTIONS = ("keys", "rooms", "meters")


class ObjectImage(Base):
    __tablename__ = "object_images"

    id = Column(Integer, primary_key=True, autoincrement=True)
    object_id = Column(
        Integer,
        ForeignKey("objects.id", ondelete="CASCADE"),
        nullable=False,
    )
    section = Column(Enum(*IMAGE_SECTIONS, name="image_section"), nullable=False)
    # Position within the object's keys/rooms/meters array; NULL = whole section
    section_index = Column(Integer, nullable=True)
    # Blob-store reference (local file name or Azure blob name).  Unique: a
    # blob belongs to exactly one image record, so deleting it cannot strip
    # another object.
    storage_id = Column(String(128), nullable=False, unique=True, index=True)
    filename = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("idx_object_images_object_section", "object_id", "section"),
    )
