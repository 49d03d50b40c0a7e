# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261016v1
# ---------------------------------------------------------------------------
"""
Object endpoints – listing, CRUD, status workflow and soft delete.

Authorization invariants enforced by every handler
--------------------------------------------------
* A valid session is required on every endpoint (via ``get_current_user``).
* Every decision about reading, editing or re-statusing an object goes
  through ``objects.policy``.  Handlers never compare roles or statuses
  themselves.
* Failures are typed: not_found, unauthorized (no relationship to the
  object), edit_forbidden (status lock, with a reason) and role_required
  (admin-only transition) are never conflated.
* Updates carry optimistic concurrency: a stale ``version`` is refused with
  version_conflict instead of silently overwriting someone else's edit.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy import or_
from sqlalchemy.orm import Session, selectinload
from sqlalchemy.orm.exc import StaleDataError

from database import get_db
from core.errors import DomainError, NotFound, VersionConflict
from core.logger import logger
from core.security import get_client_ip, get_current_user
from models.audit_log import AuditLog
from models.property_object import STATUS_DELETED, STATUS_DRAFT, PropertyObject
from models.user import User
from objects import policy
from objects.schemas import (
    AssignableUser,
    ObjectCreate,
    ObjectListResponse,
    ObjectResponse,
    ObjectUpdate,
    StatusUpdate,
    UserRef,
)

router = APIRouter(prefix="/objects", tags=["objects"])

# Search strings shorter than this are ignored, not rejected
MIN_SEARCH_LEN = 3

_UNKNOWN_USER = "Unknown"


# ---------------------------------------------------------------------------
# Helpers shared with the image and export routers
# ---------------------------------------------------------------------------


def load_object(db: Session, object_id: int) -> Optional[PropertyObject]:
    return (
        db.query(PropertyObject)
        .options(selectinload(PropertyObject.creator), selectinload(PropertyObject.assignees))
        .filter(PropertyObject.id == object_id)
        .first()
    )


def display_name(user: Optional[User]) -> str:
    return (user.name if user else "") or _UNKNOWN_USER


def object_response(obj: PropertyObject) -> ObjectResponse:
    return ObjectResponse(
        id=obj.id,
        title=obj.title,
        address=obj.address,
        floor=obj.floor,
        room=obj.room,
        created_by=obj.created_by,
        creator_name=display_name(obj.creator),
        assigned_to=obj.assignee_ids,
        assigned_users=[UserRef(id=u.id, name=u.name) for u in obj.assignees],
        status=obj.status,
        notes=obj.notes,
        signature=obj.signature,
        people=obj.people,
        keys=obj.keys,
        rooms=obj.rooms,
        meters=obj.meters,
        version=obj.version,
        created_at=obj.created_at,
        updated_at=obj.updated_at,
    )


def _resolve_users(db: Session, user_ids: list[int]) -> list[User]:
    """Load the users named in an assignment list; unknown ids are a 404."""
    wanted = list(dict.fromkeys(user_ids))
    if not wanted:
        return []
    users = db.query(User).filter(User.id.in_(wanted)).all()
    if len(users) != len(wanted):
        raise NotFound("User not found")
    by_id = {u.id: u for u in users}
    return [by_id[uid] for uid in wanted]


def _audit(db: Session, actor: User, obj: PropertyObject, action: str, request: Request, detail: str = None):
    db.add(AuditLog(
        actor_id=actor.id,
        object_id=obj.id,
        action=action,
        detail=detail,
        request_ip=get_client_ip(request),
    ))


# ---------------------------------------------------------------------------
# GET /objects  – list visible objects
# ---------------------------------------------------------------------------


@router.get("", response_model=ObjectListResponse)
def list_objects(
    search: Optional[str] = Query(None, description="Title / street / city, min. 3 chars"),
    status_filter: Optional[str] = Query(None, description="Admin only: exact status"),
    user_filter: Optional[int] = Query(None, description="Admin only: creator id"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Non-admins see the objects they created or are assigned to, never
    deleted ones, and their status/user filters are ignored.  Admins see
    everything and may filter by status and creator.
    """
    q = db.query(PropertyObject).options(
        selectinload(PropertyObject.creator),
        selectinload(PropertyObject.assignees),
    )

    if policy.is_admin(current_user):
        if status_filter:
            q = q.filter(PropertyObject.status == status_filter)
        if user_filter is not None:
            q = q.filter(PropertyObject.created_by == user_filter)
    else:
        q = q.filter(or_(
            PropertyObject.created_by == current_user.id,
            PropertyObject.assignees.any(User.id == current_user.id),
        ))
        q = q.filter(PropertyObject.status != STATUS_DELETED)

    if search and len(search) >= MIN_SEARCH_LEN:
        q = q.filter(or_(
            PropertyObject.title.icontains(search, autoescape=True),
            PropertyObject.street.icontains(search, autoescape=True),
            PropertyObject.city.icontains(search, autoescape=True),
        ))

    objects = q.order_by(PropertyObject.created_at.desc(), PropertyObject.id.desc()).all()
    return ObjectListResponse(objects=[object_response(o) for o in objects])


# ---------------------------------------------------------------------------
# POST /objects  – create a draft
# ---------------------------------------------------------------------------


@router.post("", response_model=ObjectResponse, status_code=status.HTTP_201_CREATED)
def create_object(
    body: ObjectCreate,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Any authenticated user may create an object; it starts as a draft."""
    obj = PropertyObject(
        title=body.title,
        street=body.address.street,
        zip_code=body.address.zip_code,
        city=body.address.city,
        address_additional=body.address.additional,
        floor=body.floor,
        room=body.room,
        created_by=current_user.id,
        status=STATUS_DRAFT,
    )
    obj.assignees = _resolve_users(db, body.assigned_to or [])
    db.add(obj)
    db.flush()
    _audit(db, current_user, obj, "object_create", request, detail=f"title={body.title}")
    db.commit()

    logger.info("object created | object_id=%d user_id=%d", obj.id, current_user.id)
    return object_response(load_object(db, obj.id))


# ---------------------------------------------------------------------------
# GET /objects/assignable-users  – picker for the assignment field
# ---------------------------------------------------------------------------


@router.get("/assignable-users", response_model=list[AssignableUser])
def list_assignable_users(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Active users, for assigning objects.  No password material."""
    return db.query(User).filter(User.is_active.is_(True)).order_by(User.name, User.id).all()


# ---------------------------------------------------------------------------
# GET /objects/{id}
# ---------------------------------------------------------------------------


@router.get("/{object_id}", response_model=ObjectResponse)
def get_object(
    object_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    obj = policy.ensure_readable(current_user, load_object(db, object_id))
    return object_response(obj)


# ---------------------------------------------------------------------------
# PUT /objects/{id}  – partial update of the mutable fields
# ---------------------------------------------------------------------------


@router.put("/{object_id}", response_model=ObjectResponse)
def update_object(
    object_id: int,
    body: ObjectUpdate,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Only fields that are explicitly provided (non-None) are changed.  Nested
    arrays are replaced wholesale, as the editor always sends complete lists.
    """
    obj = load_object(db, object_id)
    try:
        policy.ensure_mutable(current_user, obj)
    except DomainError as exc:
        logger.warning("object update refused | object_id=%d user_id=%d kind=%s", object_id, current_user.id, exc.kind)
        raise

    if body.version is not None and body.version != obj.version:
        raise VersionConflict()

    if body.title is not None:
        obj.title = body.title
    if body.address is not None:
        obj.street = body.address.street
        obj.zip_code = body.address.zip_code
        obj.city = body.address.city
        obj.address_additional = body.address.additional
    if body.floor is not None:
        obj.floor = body.floor
    if body.room is not None:
        obj.room = body.room
    if body.assigned_to is not None:
        obj.assignees = _resolve_users(db, body.assigned_to)
    if body.notes is not None:
        obj.notes = body.notes
    if body.signature is not None:
        obj.signature = body.signature
    if body.people is not None:
        obj.people = [p.model_dump() for p in body.people]
    if body.keys is not None:
        obj.keys = [k.model_dump() for k in body.keys]
    if body.rooms is not None:
        obj.rooms = [r.model_dump() for r in body.rooms]
    if body.meters is not None:
        obj.meters = [m.model_dump() for m in body.meters]

    changed = sorted(body.model_dump(exclude_none=True, exclude={"version"}))
    _audit(db, current_user, obj, "object_update", request, detail=", ".join(changed) or None)

    try:
        db.commit()
    except StaleDataError:
        # Someone else committed between our read and our write
        db.rollback()
        raise VersionConflict()

    logger.info("object updated | object_id=%d user_id=%d", object_id, current_user.id)
    return object_response(load_object(db, object_id))


# ---------------------------------------------------------------------------
# PUT /objects/{id}/status  – workflow transition
# ---------------------------------------------------------------------------


@router.put("/{object_id}/status", response_model=ObjectResponse)
def update_object_status(
    object_id: int,
    body: StatusUpdate,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    obj = load_object(db, object_id)
    try:
        policy.ensure_transition(current_user, obj, body.status)
    except DomainError as exc:
        logger.warning(
            "status change refused | object_id=%d user_id=%d target=%s kind=%s",
            object_id, current_user.id, body.status, exc.kind,
        )
        raise

    previous = obj.status
    obj.status = body.status
    _audit(db, current_user, obj, "object_status", request, detail=f"{previous} -> {body.status}")
    try:
        db.commit()
    except StaleDataError:
        db.rollback()
        raise VersionConflict()

    logger.info(
        "status changed | object_id=%d user_id=%d %s -> %s",
        object_id, current_user.id, previous, body.status,
    )
    return object_response(load_object(db, object_id))


# ---------------------------------------------------------------------------
# DELETE /objects/{id}  – soft delete
# ---------------------------------------------------------------------------


@router.delete("/{object_id}")
def delete_object(
    object_id: int,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Mark the object as deleted.  Rows are never physically removed."""
    obj = policy.ensure_soft_deletable(current_user, load_object(db, object_id))

    previous = obj.status
    obj.status = STATUS_DELETED
    _audit(db, current_user, obj, "object_delete", request, detail=f"{previous} -> {STATUS_DELETED}")
    try:
        db.commit()
    except StaleDataError:
        db.rollback()
        raise VersionConflict()

    logger.info("object soft-deleted | object_id=%d user_id=%d", object_id, current_user.id)
    return {"success": True}
