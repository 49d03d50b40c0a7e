# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261016v1
# ---------------------------------------------------------------------------
"""
Central security module.  All cryptographic primitives and auth guards live
here.  No other module should touch raw crypto directly.

Responsibilities
----------------
1. Password hashing / verification          (passlib pbkdf2_sha256)
2. Session tokens – issue / resolve / revoke (secrets + sessions table)
3. Blob upload tickets                       (PyJWT / HS256)
4. FastAPI dependency guards                (get_current_user, require_admin)

Sessions are opaque random strings stored server-side rather than
self-contained JWTs: logout, admin password reset and user deletion must be
able to kill a token before it expires.
"""

import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt as _jwt        # PyJWT
from passlib.hash import pbkdf2_sha256 as _pbkdf2  # pure Python, no binary deps
from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from core.config import settings
from core.errors import InvalidSession, RoleRequired
from database import get_db
from models.session import AuthSession
from models.user import User

# ---------------------------------------------------------------------------
# 1.  pbkdf2_sha256 – password hashing
# ---------------------------------------------------------------------------
# passlib's pbkdf2_sha256 embeds a per-hash random salt in the hash string.
# The round count comes from settings so the test-suite can turn it down.
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Hash a plaintext password with PBKDF2-SHA256 and a random salt."""
    return _pbkdf2.using(rounds=settings.password_hash_rounds).hash(plain)


def verify_password(plain: str, stored_hash: str) -> bool:
    """
    Constant-time verification of a plaintext password against a
    pbkdf2_sha256 hash produced by :func:`hash_password`.
    """
    try:
        return _pbkdf2.verify(plain, stored_hash)
    except ValueError:
        # Malformed hash in the row – treat as a mismatch, never as a match.
        return False


# ---------------------------------------------------------------------------
# 2.  Session tokens
# ---------------------------------------------------------------------------


def generate_session_token() -> str:
    """256 bits from the OS CSPRNG, URL-safe."""
    return secrets.token_urlsafe(32)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands timestamps back naive; everything we write is UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def issue_session(db: Session, user) -> str:
    """
    Insert a new session row for *user* and return its token.  Existing
    sessions of the same user are left alone (several devices may be
    logged in at once).  The caller commits.
    """
    token = generate_session_token()
    db.add(AuthSession(
        user_id=user.id,
        token=token,
        expires_at=_utcnow() + timedelta(minutes=settings.session_lifetime_minutes),
    ))
    return token


def resolve_session(db: Session, token: Optional[str]):
    """
    Map a bearer token to its User.

    Returns None – never raises – for a missing, unknown or expired token,
    for a session whose user has been deleted, and for a deactivated user.
    "Not logged in" is an expected state, not a fault.
    """
    if not token:
        return None

    session = db.query(AuthSession).filter(AuthSession.token == token).first()
    if not session or _as_utc(session.expires_at) <= _utcnow():
        return None

    user = db.query(User).filter(User.id == session.user_id).first()
    if not user or not user.is_active:
        return None
    return user


def revoke_session(db: Session, token: str) -> None:
    """Delete one session.  Unknown tokens are ignored.  The caller commits."""
    db.query(AuthSession).filter(AuthSession.token == token).delete(synchronize_session=False)


def revoke_user_sessions(db: Session, user_id: int, keep_token: Optional[str] = None) -> int:
    """
    Delete every session of *user_id* (optionally sparing *keep_token*).
    Returns the number of rows removed.  The caller commits.
    """
    q = db.query(AuthSession).filter(AuthSession.user_id == user_id)
    if keep_token:
        q = q.filter(AuthSession.token != keep_token)
    return q.delete(synchronize_session=False)


# ---------------------------------------------------------------------------
# 3.  Upload tickets – signed, short-lived permission to write one blob
# ---------------------------------------------------------------------------

_UPLOAD_PURPOSE = "blob_upload"


def create_upload_ticket(storage_id: str, expires_delta: Optional[timedelta] = None) -> str:
    """Sign a JWT granting a single upload to *storage_id*."""
    expire = _utcnow() + (
        expires_delta or timedelta(minutes=settings.upload_ticket_expire_minutes)
    )
    payload = {"sub": storage_id, "purpose": _UPLOAD_PURPOSE, "exp": expire}
    return _jwt.encode(payload, settings.secret_key, algorithm="HS256")


def decode_upload_ticket(ticket: str) -> Optional[str]:
    """
    Verify an upload ticket and return the storage id it grants, or None if
    the ticket is expired, tampered with or minted for something else.
    """
    try:
        payload = _jwt.decode(ticket, settings.secret_key, algorithms=["HS256"])
    except (_jwt.ExpiredSignatureError, _jwt.InvalidTokenError):
        return None
    if payload.get("purpose") != _UPLOAD_PURPOSE:
        return None
    return payload.get("sub")


# ---------------------------------------------------------------------------
# 4.  FastAPI dependency guards
# ---------------------------------------------------------------------------

# The tokenUrl here is only used by the auto-generated OpenAPI docs;
# the actual login endpoint is POST /auth/login.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


def get_session_token(token: Optional[str] = Depends(oauth2_scheme)) -> Optional[str]:
    """Dependency: the raw bearer token, or None when the header is absent."""
    return token


def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
):
    """
    Dependency: resolve the bearer token to a User once per request.  The
    resolved user is handed to the endpoint as an argument; nothing
    downstream re-reads the token.

    Raises InvalidSession (401) if the token is missing, unknown, expired,
    or belongs to a deleted/deactivated account.
    """
    user = resolve_session(db, token)
    if user is None:
        raise InvalidSession()
    return user


def require_admin(current_user=Depends(get_current_user)):
    """
    Dependency: wraps :func:`get_current_user` and additionally asserts
    ``role == 'admin'``.  Raises RoleRequired (403) otherwise.
    """
    if not current_user.is_admin:
        raise RoleRequired()
    return current_user


# -- IP Address extraction ----------------------------------------------------


def get_client_ip(request: Request) -> str:
    """
    Extract the client IP address from the request.
    Checks X-Forwarded-For header first (for proxies), then falls back to client host.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        # X-Forwarded-For can contain multiple IPs, take the first (original client)
        return forwarded.split(",")[0].strip()

    if request.client:
        return request.client.host

    return "unknown"
