# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261016v1
# ---------------------------------------------------------------------------
"""Pydantic request / response models for the auth endpoints."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


# -- Requests --------------------------------------------------------------


class LoginRequest(BaseModel):
    email: str
    password: str


class SignupRequest(BaseModel):
    email: str
    password: str
    name: str


class ChangePasswordRequest(BaseModel):
    old_password: str
    new_password: str


class UpdateProfileRequest(BaseModel):
    name: str


# -- Responses -------------------------------------------------------------


class UserInfoResponse(BaseModel):
    id: int
    email: str
    name: str
    role: str
    is_active: bool
    is_temp_password: bool
    last_login: Optional[datetime] = None

    model_config = {"from_attributes": True}


class LoginResponse(BaseModel):
    token: str
    token_type: str = "bearer"
    user: UserInfoResponse
    needs_password_change: bool


class SignupResponse(BaseModel):
    token: str
    token_type: str = "bearer"
    user: UserInfoResponse


class SessionResponse(BaseModel):
    user: UserInfoResponse
    needs_password_change: bool
