# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261016v1
# ---------------------------------------------------------------------------
"""
Object lifecycle policy – the single place that decides who may read,
mutate or re-status an object.

The predicates (``can_*``) only look at plain attributes:

    actor   .id, .role
    obj     .created_by, .assignee_ids, .status

so they can be exercised with throwaway namespaces in unit tests.  The
``ensure_*`` helpers wrap them and raise the matching domain error; routers
call those and never compare roles or statuses themselves.

Status machine
--------------

    entwurf         → freigegeben     creator, assignee, admin
    zurückgewiesen  → freigegeben     creator, assignee, admin  (resubmit)
    any other move                    admin only
    abgeschlossen   → *               nobody
    gelöscht        → *               nobody

Editing: abgeschlossen and gelöscht are frozen for everyone; freigegeben and
in_überprüfung are frozen for everyone but admins.
"""

from typing import Optional

from core.errors import EditForbidden, InvalidRequest, NotFound, RoleRequired, Unauthorized
from models.property_object import (
    ALL_STATUSES,
    STATUS_COMPLETED,
    STATUS_DELETED,
    STATUS_DRAFT,
    STATUS_REJECTED,
    STATUS_RELEASED,
    STATUS_UNDER_REVIEW,
)
from models.user import ROLE_ADMIN

TERMINAL_STATUSES = frozenset({STATUS_COMPLETED, STATUS_DELETED})

# Transitions open to anyone with access to the object ("submit").
MEMBER_TRANSITIONS = frozenset({
    (STATUS_DRAFT, STATUS_RELEASED),
    (STATUS_REJECTED, STATUS_RELEASED),
})


def is_admin(actor) -> bool:
    return actor.role == ROLE_ADMIN


def can_access(actor, obj) -> bool:
    """Creator, assignee or admin."""
    if is_admin(actor):
        return True
    if obj.created_by is not None and obj.created_by == actor.id:
        return True
    return actor.id in (obj.assignee_ids or ())


def can_read(actor, obj) -> bool:
    # Soft-deleted objects disappear for everyone but admins, by id as well
    # as from listings.
    if obj.status == STATUS_DELETED and not is_admin(actor):
        return False
    return can_access(actor, obj)


def edit_block_reason(actor, obj) -> Optional[str]:
    """
    Why the object's current status forbids *actor* from editing it, or
    None if it doesn't.  Access is not checked here.
    """
    if obj.status == STATUS_COMPLETED:
        return EditForbidden.COMPLETED
    if obj.status == STATUS_DELETED:
        return EditForbidden.DELETED
    if is_admin(actor):
        return None
    if obj.status == STATUS_RELEASED:
        return EditForbidden.RELEASED_LOCKED
    if obj.status == STATUS_UNDER_REVIEW:
        return EditForbidden.UNDER_REVIEW_LOCKED
    return None


def can_mutate(actor, obj) -> bool:
    return can_access(actor, obj) and edit_block_reason(actor, obj) is None


def can_transition(actor, obj, target: str) -> bool:
    if target not in ALL_STATUSES or target == obj.status:
        return False
    if not can_access(actor, obj) or obj.status in TERMINAL_STATUSES:
        return False
    if is_admin(actor):
        return True
    return (obj.status, target) in MEMBER_TRANSITIONS


def can_soft_delete(actor, obj) -> bool:
    """Admins, or the creator while the object is still editable for them."""
    if obj.status in TERMINAL_STATUSES:
        return False
    if is_admin(actor):
        return True
    return obj.created_by == actor.id and edit_block_reason(actor, obj) is None


# ---------------------------------------------------------------------------
# Raising variants
# ---------------------------------------------------------------------------


def ensure_readable(actor, obj):
    if obj is None:
        raise NotFound("Object not found")
    if not can_access(actor, obj):
        raise Unauthorized()
    if not can_read(actor, obj):
        raise NotFound("Object not found")
    return obj


def ensure_mutable(actor, obj):
    """Access first (Unauthorized), then the status gate (EditForbidden)."""
    if obj is None:
        raise NotFound("Object not found")
    if not can_access(actor, obj):
        raise Unauthorized()
    reason = edit_block_reason(actor, obj)
    if reason is not None:
        raise EditForbidden(reason)
    return obj


def ensure_transition(actor, obj, target: str):
    if obj is None:
        raise NotFound("Object not found")
    if target not in ALL_STATUSES:
        raise InvalidRequest(f"Unknown status: {target}")
    if not can_access(actor, obj):
        raise Unauthorized()
    if obj.status == STATUS_COMPLETED:
        raise EditForbidden(EditForbidden.COMPLETED)
    if obj.status == STATUS_DELETED:
        raise EditForbidden(EditForbidden.DELETED)
    if target == obj.status:
        raise InvalidRequest(f"Object is already in status {target}")
    if not can_transition(actor, obj, target):
        raise RoleRequired("Only admin can set this status")
    return obj


def ensure_soft_deletable(actor, obj):
    if obj is None:
        raise NotFound("Object not found")
    if not can_access(actor, obj):
        raise Unauthorized()
    if obj.status == STATUS_COMPLETED:
        raise EditForbidden(EditForbidden.COMPLETED)
    if obj.status == STATUS_DELETED:
        raise EditForbidden(EditForbidden.DELETED)
    if can_soft_delete(actor, obj):
        return obj
    reason = edit_block_reason(actor, obj)
    if reason is not None:
        raise EditForbidden(reason)
    # Assignees may edit but only the creator may delete
    raise Unauthorized("Only the creator or an admin can delete this object")
