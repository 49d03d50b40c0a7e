# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261016v1
# ---------------------------------------------------------------------------
"""
Auth endpoints – login, self-service signup, session check, logout,
password change, profile.

Security notes
--------------
* Login returns the *same* error for an unknown email and a wrong password.
  An inactive account is reported as such before the password is checked.
* Signup does not create users.  It only activates a placeholder an admin
  provisioned (inactive + temp password).
* change-password verifies the old password before accepting the new one,
  so a stolen (but not yet expired) token alone cannot reset the password.
* GET /auth/session answers ``null`` for "not logged in" instead of 401.
"""

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from database import get_db
from core.config import settings
from core.errors import InactiveAccount, InvalidCredentials, InvalidRequest, RegistrationNotAllowed
from core.logger import logger
from core.security import (
    get_client_ip,
    get_current_user,
    get_session_token,
    hash_password,
    issue_session,
    resolve_session,
    revoke_session,
    revoke_user_sessions,
    verify_password,
)
from models.user import User
from models.audit_log import AuditLog
from auth.schemas import (
    ChangePasswordRequest,
    LoginRequest,
    LoginResponse,
    SessionResponse,
    SignupRequest,
    SignupResponse,
    UpdateProfileRequest,
    UserInfoResponse,
)

router = APIRouter(prefix="/auth", tags=["auth"])


def validate_new_password(pw: str) -> None:
    """Raise InvalidRequest if *pw* does not meet the minimum policy."""
    if len(pw) < settings.password_min_length:
        raise InvalidRequest(
            f"Password must be at least {settings.password_min_length} characters"
        )


def _normalise_email(email: str) -> str:
    return email.strip().lower()


# ---------------------------------------------------------------------------
# POST /auth/login
# ---------------------------------------------------------------------------


@router.post("/login", response_model=LoginResponse)
def login(body: LoginRequest, request: Request, db: Session = Depends(get_db)):
    """Authenticate and open a new 7-day session."""
    user = db.query(User).filter(User.email == _normalise_email(body.email)).first()

    if not user:
        raise InvalidCredentials()

    if not user.is_active:
        logger.warning("login refused for inactive account | user_id=%d", user.id)
        raise InactiveAccount()

    if not verify_password(body.password, user.password_hash):
        raise InvalidCredentials()

    token = issue_session(db, user)
    user.last_login = datetime.now(timezone.utc)
    db.add(AuditLog(
        actor_id=user.id,
        target_user_id=user.id,
        action="user_login",
        request_ip=get_client_ip(request),
    ))
    db.commit()
    db.refresh(user)

    logger.info("login | user_id=%d", user.id)
    return LoginResponse(
        token=token,
        user=UserInfoResponse.model_validate(user),
        needs_password_change=user.is_temp_password,
    )


# ---------------------------------------------------------------------------
# POST /auth/signup
# ---------------------------------------------------------------------------


@router.post("/signup", response_model=SignupResponse)
def signup(body: SignupRequest, request: Request, db: Session = Depends(get_db)):
    """
    Activate an admin-provisioned account: set the user's own password and
    display name, clear the temp-password flag, and log them in.
    """
    user = db.query(User).filter(User.email == _normalise_email(body.email)).first()

    if not user:
        raise RegistrationNotAllowed()
    if user.is_active or not user.is_temp_password:
        raise RegistrationNotAllowed("Account already exists or registration not allowed")

    validate_new_password(body.password)

    user.password_hash = hash_password(body.password)
    user.name = body.name.strip()
    user.is_active = True
    user.is_temp_password = False
    user.last_login = datetime.now(timezone.utc)

    token = issue_session(db, user)
    db.add(AuditLog(
        actor_id=user.id,
        target_user_id=user.id,
        action="user_signup",
        request_ip=get_client_ip(request),
    ))
    db.commit()
    db.refresh(user)

    logger.info("signup | user_id=%d", user.id)
    return SignupResponse(token=token, user=UserInfoResponse.model_validate(user))


# ---------------------------------------------------------------------------
# GET /auth/session
# ---------------------------------------------------------------------------


@router.get("/session", response_model=Optional[SessionResponse])
def validate_session(
    token: Optional[str] = Depends(get_session_token),
    db: Session = Depends(get_db),
):
    """Return the session's user, or ``null`` if the token is not (or no longer) valid."""
    user = resolve_session(db, token)
    if user is None:
        return None
    return SessionResponse(
        user=UserInfoResponse.model_validate(user),
        needs_password_change=user.is_temp_password,
    )


# ---------------------------------------------------------------------------
# POST /auth/logout
# ---------------------------------------------------------------------------


@router.post("/logout")
def logout(
    token: Optional[str] = Depends(get_session_token),
    db: Session = Depends(get_db),
):
    """Drop the caller's session.  Idempotent: unknown tokens are fine."""
    if token:
        revoke_session(db, token)
        db.commit()
    return {"success": True}


# ---------------------------------------------------------------------------
# PUT /auth/change-password
# ---------------------------------------------------------------------------


@router.put("/change-password")
def change_password(
    body: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
    token: Optional[str] = Depends(get_session_token),
    db: Session = Depends(get_db),
):
    """
    Change the authenticated user's password and clear the temp flag.

    The caller's own session always survives.  Other sessions are revoked
    only when REVOKE_SESSIONS_ON_PASSWORD_CHANGE is on.
    """
    if not verify_password(body.old_password, current_user.password_hash):
        raise InvalidCredentials("Current password is incorrect")

    validate_new_password(body.new_password)

    current_user.password_hash = hash_password(body.new_password)
    current_user.is_temp_password = False

    revoked = 0
    if settings.revoke_sessions_on_password_change:
        revoked = revoke_user_sessions(db, current_user.id, keep_token=token)
    db.commit()

    logger.info("password changed | user_id=%d revoked_sessions=%d", current_user.id, revoked)
    return {"success": True}


# ---------------------------------------------------------------------------
# PUT /auth/profile
# ---------------------------------------------------------------------------


@router.put("/profile", response_model=UserInfoResponse)
def update_profile(
    body: UpdateProfileRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Update the display name.  Nothing else is self-editable."""
    current_user.name = body.name.strip()
    db.commit()
    db.refresh(current_user)
    return current_user


# ---------------------------------------------------------------------------
# GET /auth/me
# ---------------------------------------------------------------------------


@router.get("/me", response_model=UserInfoResponse)
def me(current_user: User = Depends(get_current_user)):
    """Return the authenticated user's public profile (no secrets)."""
    return current_user
