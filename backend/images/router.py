# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261016v1
# ---------------------------------------------------------------------------
"""
Object image endpoints – attach uploaded blobs to a key/room/meter entry,
list them with resolved URLs, and delete them.

Adding or deleting an image is an edit of the object and goes through the
same status gate as ``PUT /objects/{id}``.  Listing only needs read access.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from database import get_db
from core.errors import Conflict, NotFound
from core.logger import logger
from core.security import get_client_ip, get_current_user
from core.storage import get_blob_store
from models.audit_log import AuditLog
from models.object_image import IMAGE_SECTIONS, ObjectImage
from models.user import User
from objects import policy
from objects.router import load_object
from objects.schemas import ImageCreate, ImageResponse, ImageSection, ImagesBySection

router = APIRouter(tags=["images"])


def _image_response(image: ObjectImage, store) -> ImageResponse:
    return ImageResponse(
        id=image.id,
        filename=image.filename,
        url=store.get_access_url(image.storage_id),
        section=image.section,
        section_index=image.section_index,
    )


def collect_images(
    db: Session,
    store,
    object_id: int,
    section: Optional[str] = None,
    section_index: Optional[int] = None,
) -> list[ImageResponse]:
    """Images of an object, oldest first, optionally narrowed to one section / entry."""
    q = db.query(ObjectImage).filter(ObjectImage.object_id == object_id)
    if section is not None:
        q = q.filter(ObjectImage.section == section)
    if section_index is not None:
        q = q.filter(ObjectImage.section_index == section_index)
    return [_image_response(img, store) for img in q.order_by(ObjectImage.created_at, ObjectImage.id).all()]


def images_by_section(db: Session, store, object_id: int) -> ImagesBySection:
    grouped = {section: [] for section in IMAGE_SECTIONS}
    for image in collect_images(db, store, object_id):
        grouped[image.section].append(image)
    return ImagesBySection(**grouped)


# ---------------------------------------------------------------------------
# POST /objects/{id}/images  – register an uploaded blob
# ---------------------------------------------------------------------------


@router.post("/objects/{object_id}/images", response_model=ImageResponse, status_code=status.HTTP_201_CREATED)
def add_object_image(
    object_id: int,
    body: ImageCreate,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    store=Depends(get_blob_store),
):
    """
    Attach a blob that was already pushed to its upload target.  The index
    is not checked against the current arrays: the editor uploads photos for
    rows it has not saved yet.
    """
    obj = policy.ensure_mutable(current_user, load_object(db, object_id))

    if not store.exists(body.storage_id):
        raise NotFound("Upload not found")
    if db.query(ObjectImage.id).filter(ObjectImage.storage_id == body.storage_id).first():
        raise Conflict("Upload is already attached to an image")

    image = ObjectImage(
        object_id=obj.id,
        section=body.section,
        section_index=body.section_index,
        storage_id=body.storage_id,
        filename=body.filename,
    )
    db.add(image)
    db.add(AuditLog(
        actor_id=current_user.id,
        object_id=obj.id,
        action="image_add",
        detail=f"section={body.section}, index={body.section_index}, filename={body.filename}",
        request_ip=get_client_ip(request),
    ))
    try:
        db.commit()
    except IntegrityError:
        # Same blob registered concurrently; storage_id is unique
        db.rollback()
        raise Conflict("Upload is already attached to an image")
    db.refresh(image)

    logger.info("image added | object_id=%d image_id=%d section=%s", obj.id, image.id, image.section)
    return _image_response(image, store)


# ---------------------------------------------------------------------------
# GET /objects/{id}/images  – one section, optionally one entry
# ---------------------------------------------------------------------------


@router.get("/objects/{object_id}/images", response_model=list[ImageResponse])
def get_object_images(
    object_id: int,
    section: ImageSection = Query(...),
    section_index: Optional[int] = Query(None, ge=0),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    store=Depends(get_blob_store),
):
    """Without ``section_index`` every image of the section is returned."""
    policy.ensure_readable(current_user, load_object(db, object_id))
    return collect_images(db, store, object_id, section, section_index)


# ---------------------------------------------------------------------------
# GET /objects/{id}/images/all  – everything, grouped by section
# ---------------------------------------------------------------------------


@router.get("/objects/{object_id}/images/all", response_model=ImagesBySection)
def get_all_object_images(
    object_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    store=Depends(get_blob_store),
):
    policy.ensure_readable(current_user, load_object(db, object_id))
    return images_by_section(db, store, object_id)


# ---------------------------------------------------------------------------
# DELETE /images/{image_id}
# ---------------------------------------------------------------------------


@router.delete("/images/{image_id}")
def delete_object_image(
    image_id: int,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    store=Depends(get_blob_store),
):
    """Remove the image record and its blob."""
    image = db.query(ObjectImage).filter(ObjectImage.id == image_id).first()
    if not image:
        raise NotFound("Image not found")

    obj = policy.ensure_mutable(current_user, load_object(db, image.object_id))

    store.delete(image.storage_id)
    db.delete(image)
    db.add(AuditLog(
        actor_id=current_user.id,
        object_id=obj.id,
        action="image_delete",
        detail=f"section={image.section}, index={image.section_index}, filename={image.filename}",
        request_ip=get_client_ip(request),
    ))
    db.commit()

    logger.info("image deleted | object_id=%d image_id=%d", obj.id, image_id)
    return {"success": True}
