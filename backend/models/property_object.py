# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261016v1
# ---------------------------------------------------------------------------
"""PropertyObject ORM model and the object status literals."""

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Table,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from database import Base

# -- Status literals -------------------------------------------------------
# Stored verbatim; the frontend and the PDF renderer display them as-is.

STATUS_DRAFT = "entwurf"
STATUS_RELEASED = "freigegeben"
STATUS_UNDER_REVIEW = "in_überprüfung"
STATUS_REJECTED = "zurückgewiesen"
STATUS_COMPLETED = "abgeschlossen"
STATUS_DELETED = "gelöscht"

ALL_STATUSES = (
    STATUS_DRAFT,
    STATUS_RELEASED,
    STATUS_UNDER_REVIEW,
    STATUS_REJECTED,
    STATUS_COMPLETED,
    STATUS_DELETED,
)


# Many-to-many: which users an object is assigned to.
object_assignees = Table(
    "object_assignees",
    Base.metadata,
    Column("object_id", Integer, ForeignKey("objects.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True, index=True),
)


class PropertyObject(Base):
    __tablename__ = "objects"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(255), nullable=False)

    street = Column(String(255), nullable=False)
    zip_code = Column(String(16), nullable=False)
    city = Column(String(255), nullable=False)
    address_additional = Column(String(255), nullable=True)
    floor = Column(Integer, nullable=True)
    room = Column(String(255), nullable=True)

    # SET NULL: deleting a user leaves their objects behind with an unknown creator.
    created_by = Column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    status = Column(Enum(*ALL_STATUSES, name="object_status"), nullable=False, default=STATUS_DRAFT, index=True)

    notes = Column(Text, nullable=True)
    # data:image/png;base64,... as produced by the signature pad
    signature = Column(Text, nullable=True)

    # Ordered nested records, stored as JSON arrays of dicts
    people = Column(JSON, nullable=True)
    keys = Column(JSON, nullable=True)
    rooms = Column(JSON, nullable=True)
    meters = Column(JSON, nullable=True)

    # Optimistic concurrency: bumped on every UPDATE, and the UPDATE carries
    # "WHERE version = <loaded value>" so a stale write raises StaleDataError.
    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    creator = relationship("User", backref="created_objects")
    assignees = relationship("User", secondary=object_assignees, backref="assigned_objects")

    __mapper_args__ = {"version_id_col": version}

    @property
    def assignee_ids(self) -> list[int]:
        return [u.id for u in self.assignees]

    @property
    def address(self) -> dict:
        return {
            "street": self.street,
            "zip_code": self.zip_code,
            "city": self.city,
            "additional": self.address_additional,
        }
