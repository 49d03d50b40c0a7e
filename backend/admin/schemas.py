# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261016v1
# ---------------------------------------------------------------------------
"""Pydantic request / response models for the admin endpoints."""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel


# -- Requests --------------------------------------------------------------


class CreateUserRequest(BaseModel):
    email: str
    temp_password: str
    role: Literal["admin", "user"] = "user"


class UpdateUserRequest(BaseModel):
    email: str
    name: str
    role: Literal["admin", "user"]
    active: bool


class ResetPasswordRequest(BaseModel):
    new_temp_password: str


# -- Responses -------------------------------------------------------------


class UserRow(BaseModel):
    id: int
    email: str
    name: str
    role: str
    is_active: bool
    is_temp_password: bool
    last_login: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class UserListResponse(BaseModel):
    users: List[UserRow]


# -- Audit log responses ---------------------------------------------------


class AuditLogRow(BaseModel):
    id: int
    actor_email: Optional[str] = None       # resolved from actor_id
    target_email: Optional[str] = None      # resolved from target_user_id
    object_id: Optional[int] = None
    action: str
    detail: Optional[str] = None
    request_ip: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class AuditLogListResponse(BaseModel):
    logs: List[AuditLogRow]
