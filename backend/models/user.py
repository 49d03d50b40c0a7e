# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261016v1
# ---------------------------------------------------------------------------
"""User ORM model."""

from sqlalchemy import Column, Integer, String, Boolean, Enum, DateTime
from sqlalchemy.sql import func

from database import Base

ROLE_ADMIN = "admin"
ROLE_USER = "user"
VALID_ROLES = {ROLE_ADMIN, ROLE_USER}


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False, default="")
    # passlib hash string, salt embedded  e.g. "$pbkdf2-sha256$..."
    password_hash = Column(String(255), nullable=False)
    role = Column(Enum(ROLE_ADMIN, ROLE_USER, name="user_role"), nullable=False, default=ROLE_USER)
    # Admin-provisioned accounts start inactive with a temp password and are
    # activated by the user through /auth/signup.
    is_active = Column(Boolean, nullable=False, default=False, index=True)
    is_temp_password = Column(Boolean, nullable=False, default=True)
    last_login = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN
