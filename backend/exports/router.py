# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261016v1
# ---------------------------------------------------------------------------
"""
Object export – one flattened JSON snapshot with every image URL resolved,
which the frontend renders into the handover PDF.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from database import get_db
from core.logger import logger
from core.security import get_current_user
from core.storage import get_blob_store
from images.router import images_by_section
from models.user import User
from objects import policy
from objects.router import display_name, load_object
from objects.schemas import ObjectExport

router = APIRouter(prefix="/objects", tags=["exports"])


@router.get("/{object_id}/export", response_model=ObjectExport)
def export_object(
    object_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    store=Depends(get_blob_store),
):
    """Same read gate as ``GET /objects/{id}``; exporting never changes the object."""
    obj = policy.ensure_readable(current_user, load_object(db, object_id))

    logger.info("object exported | object_id=%d user_id=%d", obj.id, current_user.id)
    return ObjectExport(
        id=obj.id,
        title=obj.title,
        address=obj.address,
        floor=obj.floor,
        room=obj.room,
        status=obj.status,
        creator_name=display_name(obj.creator),
        assigned_users=[display_name(u) for u in obj.assignees],
        people=obj.people or [],
        keys=obj.keys or [],
        rooms=obj.rooms or [],
        meters=obj.meters or [],
        notes=obj.notes,
        signature=obj.signature,
        images=images_by_section(db, store, obj.id),
        created_at=obj.created_at,
        exported_at=datetime.now(timezone.utc),
    )
