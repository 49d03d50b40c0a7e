# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261016v1
# ---------------------------------------------------------------------------
"""
Admin endpoints – user lifecycle management and the audit trail.

Every endpoint in this router is guarded by ``require_admin``.  A request
that carries a valid session but belongs to a ``user`` role will receive
403 (role_required) before any business logic runs.

Account lifecycle
-----------------
create          → inactive, temp password, empty name (user activates via signup)
reset-password  → back to inactive + temp password, every session revoked
deactivate      → every session revoked
delete          → sessions deleted first, then the row; objects the user
                  created stay behind with an unknown creator
"""

import io
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import StreamingResponse
from sqlalchemy import or_
from sqlalchemy.orm import Session, aliased
from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill, Alignment, Border, Side

from database import get_db
from core.errors import Conflict, InvalidRequest, NotFound
from core.logger import logger
from core.security import get_client_ip, hash_password, require_admin, revoke_user_sessions
from models.user import User
from models.audit_log import AuditLog
from admin.schemas import (
    AuditLogListResponse,
    AuditLogRow,
    CreateUserRequest,
    ResetPasswordRequest,
    UpdateUserRequest,
    UserListResponse,
    UserRow,
)

router = APIRouter(prefix="/admin", tags=["admin"])

# Search strings shorter than this are ignored, not rejected
_MIN_SEARCH_LEN = 3


def _get_user_or_404(db: Session, user_id: int) -> User:
    target = db.query(User).filter(User.id == user_id).first()
    if not target:
        raise NotFound("User not found")
    return target


# ---------------------------------------------------------------------------
# POST /admin/users  – provision a new (inactive) user
# ---------------------------------------------------------------------------


@router.post("/users", response_model=UserRow, status_code=status.HTTP_201_CREATED)
def create_user(
    body: CreateUserRequest,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """
    Create a placeholder account with a temporary password.  The user
    activates it through POST /auth/signup.
    """
    email = body.email.strip().lower()
    if not email:
        raise InvalidRequest("Email is required")

    if db.query(User).filter(User.email == email).first():
        raise Conflict("User with this email already exists")

    user = User(
        email=email,
        name="",
        password_hash=hash_password(body.temp_password),
        role=body.role,
        is_active=False,
        is_temp_password=True,
    )
    db.add(user)
    db.flush()  # get user.id before commit
    db.add(AuditLog(
        actor_id=admin.id,
        target_user_id=user.id,
        action="create_user",
        detail=f"role={body.role}",
        request_ip=get_client_ip(request),
    ))
    db.commit()
    db.refresh(user)

    logger.info("user provisioned | admin_id=%d user_id=%d role=%s", admin.id, user.id, user.role)
    return user


# ---------------------------------------------------------------------------
# GET /admin/users  – list all users
# ---------------------------------------------------------------------------


@router.get("/users", response_model=UserListResponse)
def list_users(
    search: Optional[str] = Query(None, description="Case-insensitive match on email or name (min. 3 chars)"),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Return every user row (no password data – handled by the schema)."""
    q = db.query(User)
    if search and len(search) >= _MIN_SEARCH_LEN:
        needle = search.lower()
        q = q.filter(or_(
            User.email.icontains(needle, autoescape=True),
            User.name.icontains(needle, autoescape=True),
        ))
    return UserListResponse(users=q.order_by(User.id).all())


# ---------------------------------------------------------------------------
# PUT /admin/users/{id}  – edit email / name / role / active
# ---------------------------------------------------------------------------


@router.put("/users/{user_id}", response_model=UserRow)
def update_user(
    user_id: int,
    body: UpdateUserRequest,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """
    Overwrite a user's email, name, role and active flag.  Guards:
    * An admin cannot change their own role or deactivate themselves
      (prevents accidental self-lockout).
    * The email must stay unique.
    """
    target = _get_user_or_404(db, user_id)

    if target.id == admin.id and (body.role != target.role or not body.active):
        raise InvalidRequest("Cannot change your own role or deactivate yourself")

    email = body.email.strip().lower()
    clash = db.query(User).filter(User.email == email, User.id != target.id).first()
    if clash:
        raise Conflict("User with this email already exists")

    changes = []
    if email != target.email:
        changes.append(f"email={email}")
    if body.role != target.role:
        changes.append(f"role={body.role}")
    if body.active != target.is_active:
        changes.append(f"active={body.active}")

    deactivated = target.is_active and not body.active

    target.email = email
    target.name = body.name.strip()
    target.role = body.role
    target.is_active = body.active
    if deactivated:
        revoke_user_sessions(db, target.id)

    db.add(AuditLog(
        actor_id=admin.id,
        target_user_id=target.id,
        action="update_user",
        detail=", ".join(changes) or None,
        request_ip=get_client_ip(request),
    ))
    db.commit()
    db.refresh(target)
    return target


# ---------------------------------------------------------------------------
# PUT /admin/users/{id}/reset-password  – force back to a temp password
# ---------------------------------------------------------------------------


@router.put("/users/{user_id}/reset-password")
def reset_password(
    user_id: int,
    body: ResetPasswordRequest,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """
    Overwrite a user's password with a temporary one.  The account goes back
    to the provisioned state (inactive + temp) and every existing session
    of that user is revoked, so the user must sign up again.
    """
    target = _get_user_or_404(db, user_id)
    if target.id == admin.id:
        raise InvalidRequest("Use change-password for your own account")

    target.password_hash = hash_password(body.new_temp_password)
    target.is_temp_password = True
    target.is_active = False
    revoked = revoke_user_sessions(db, target.id)

    db.add(AuditLog(
        actor_id=admin.id,
        target_user_id=target.id,
        action="reset_password",
        detail=f"revoked_sessions={revoked}",
        request_ip=get_client_ip(request),
    ))
    db.commit()

    logger.info("password reset | admin_id=%d user_id=%d revoked_sessions=%d", admin.id, target.id, revoked)
    return {"success": True}


# ---------------------------------------------------------------------------
# DELETE /admin/users/{id}  – hard delete
# ---------------------------------------------------------------------------


@router.delete("/users/{user_id}")
def delete_user(
    user_id: int,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Delete a user and every session they hold."""
    if user_id == admin.id:
        raise InvalidRequest("Cannot delete yourself")

    target = _get_user_or_404(db, user_id)
    email = target.email

    revoked = revoke_user_sessions(db, target.id)
    db.delete(target)
    db.add(AuditLog(
        actor_id=admin.id,
        action="delete_user",
        detail=f"email={email}, revoked_sessions={revoked}",
        request_ip=get_client_ip(request),
    ))
    db.commit()

    logger.info("user deleted | admin_id=%d user_id=%d", admin.id, user_id)
    return {"success": True}


# ---------------------------------------------------------------------------
# GET /admin/audit-logs  – audit trail with optional filters
# ---------------------------------------------------------------------------


def _email_map(db: Session, rows) -> dict[int, str]:
    """Resolve every user id referenced by *rows* with a single query."""
    ids = {r.actor_id for r in rows if r.actor_id} | {r.target_user_id for r in rows if r.target_user_id}
    if not ids:
        return {}
    return {u.id: u.email for u in db.query(User).filter(User.id.in_(ids)).all()}


@router.get("/audit-logs", response_model=AuditLogListResponse)
def list_audit_logs(
    emails: list[str] | None = Query(None, description="Filter by exact email(s) – repeated param"),
    object_id: int | None = Query(None, description="Only events for this object"),
    since: datetime | None = Query(None, description="ISO-8601 start of time window"),
    until: datetime | None = Query(None, description="ISO-8601 end of time window"),
    limit: int = Query(200, ge=1, le=1000),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """
    Return audit log rows newest-first.  Supports optional filters:

    * ``emails``    – match rows where *either* the actor or the target user
                      has one of these addresses.
    * ``object_id`` – events concerning a single object.
    * ``since`` / ``until`` – ISO-8601 bounds on ``created_at``.
    * ``limit``     – max rows returned (default 200, cap 1000).
    """
    ActorUser  = aliased(User)
    TargetUser = aliased(User)

    q = (
        db.query(AuditLog)
        .outerjoin(ActorUser,  AuditLog.actor_id       == ActorUser.id)
        .outerjoin(TargetUser, AuditLog.target_user_id == TargetUser.id)
    )

    if emails:
        q = q.filter(
            ActorUser.email.in_(emails) | TargetUser.email.in_(emails)
        )
    if object_id is not None:
        q = q.filter(AuditLog.object_id == object_id)
    if since:
        q = q.filter(AuditLog.created_at >= since)
    if until:
        q = q.filter(AuditLog.created_at <= until)

    rows = q.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit).all()
    emails_by_id = _email_map(db, rows)

    return AuditLogListResponse(logs=[
        AuditLogRow(
            id=row.id,
            actor_email=emails_by_id.get(row.actor_id),
            target_email=emails_by_id.get(row.target_user_id),
            object_id=row.object_id,
            action=row.action,
            detail=row.detail,
            request_ip=row.request_ip,
            created_at=row.created_at,
        )
        for row in rows
    ])


# ---------------------------------------------------------------------------
# GET /admin/audit-logs/export  – download audit logs as Excel
# ---------------------------------------------------------------------------

_AUDIT_HEADER_FONT  = Font(name="Calibri", size=11, bold=True, color="FFFFFF")
_AUDIT_HEADER_FILL  = PatternFill(start_color="2F6FB1", end_color="2F6FB1", fill_type="solid")
_AUDIT_HEADER_ALIGN = Alignment(horizontal="center", vertical="center")
_AUDIT_THIN_BORDER  = Border(
    left=Side(style="thin", color="CCCCCC"),
    right=Side(style="thin", color="CCCCCC"),
    top=Side(style="thin", color="CCCCCC"),
    bottom=Side(style="thin", color="CCCCCC"),
)

_AUDIT_EXPORT_HEADERS = ["ID", "Time", "User", "Target", "Object", "Action", "Request IP", "Details"]
_AUDIT_COL_MIN = [8, 20, 28, 28, 10, 18, 16, 50]


@router.get("/audit-logs/export")
def export_audit_logs(
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Export all audit logs as an Excel file, streamed without touching disk."""
    rows = db.query(AuditLog).order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).all()
    emails_by_id = _email_map(db, rows)

    wb = Workbook()
    ws = wb.active
    ws.title = "Audit Logs"

    # Header row
    ws.append(_AUDIT_EXPORT_HEADERS)
    for cell in ws[1]:
        cell.font = _AUDIT_HEADER_FONT
        cell.fill = _AUDIT_HEADER_FILL
        cell.alignment = _AUDIT_HEADER_ALIGN
        cell.border = _AUDIT_THIN_BORDER

    # Data rows
    for row in rows:
        ws.append([
            row.id,
            row.created_at.strftime("%Y-%m-%d %H:%M:%S") if row.created_at else "",
            emails_by_id.get(row.actor_id, ""),
            emails_by_id.get(row.target_user_id, ""),
            row.object_id or "",
            row.action,
            row.request_ip or "",
            row.detail or "",
        ])
        row_idx = ws.max_row
        for col_idx in range(1, len(_AUDIT_EXPORT_HEADERS) + 1):
            ws.cell(row=row_idx, column=col_idx).border = _AUDIT_THIN_BORDER

    # Column widths
    for col_idx, min_w in enumerate(_AUDIT_COL_MIN, start=1):
        ws.column_dimensions[chr(64 + col_idx)].width = min_w

    buf = io.BytesIO()
    wb.save(buf)
    buf.seek(0)
    wb.close()

    return StreamingResponse(
        buf,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": 'attachment; filename="audit-logs.xlsx"'},
    )
