# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261016v1
# ---------------------------------------------------------------------------
"""
Blob upload / download endpoints.

``POST /storage/upload-url`` hands an authenticated client a fresh storage
id and the URL to push the bytes to.  With the local backend that URL points
back at ``PUT /storage/upload/{ticket}`` below; with Azure it is a SAS URL
and this service never sees the bytes.

``GET /storage/{storage_id}`` is unauthenticated so the frontend can use the
URL directly in an ``<img>`` tag.  Storage ids are 128-bit random values.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import FileResponse
from starlette.concurrency import run_in_threadpool

from core.errors import Conflict, InvalidRequest, NotFound, Unauthorized
from core.logger import logger
from core.security import decode_upload_ticket, get_current_user
from core.storage import LocalBlobStore, get_blob_store
from models.user import User
from objects.schemas import UploadTarget

router = APIRouter(prefix="/storage", tags=["storage"])

# Uploaded photos come from phone cameras; anything larger is refused
MAX_UPLOAD_BYTES = 20 * 1024 * 1024


def _local_store(store) -> LocalBlobStore:
    if not isinstance(store, LocalBlobStore):
        raise NotFound("Local storage is not enabled")
    return store


@router.post("/upload-url", response_model=UploadTarget)
def create_upload_url(
    current_user: User = Depends(get_current_user),
    store=Depends(get_blob_store),
):
    storage_id, upload_url = store.generate_upload_target()
    logger.info("upload target issued | user_id=%d storage_id=%s", current_user.id, storage_id)
    return UploadTarget(upload_url=upload_url, storage_id=storage_id)


@router.put("/upload/{ticket}")
async def upload_blob(ticket: str, request: Request, store=Depends(get_blob_store)):
    """
    Receive the raw request body for the blob named by *ticket*.  The ticket
    is the only credential: it was minted for one storage id and expires.
    A ticket is good for one upload; replaying it once the blob exists is a
    conflict, never an overwrite.
    """
    store = _local_store(store)

    storage_id = decode_upload_ticket(ticket)
    if storage_id is None:
        raise Unauthorized("Upload ticket is invalid or expired")
    if store.exists(storage_id):
        raise Conflict("Upload ticket has already been used")

    declared = request.headers.get("content-length")
    if declared is not None:
        if not declared.isdigit():
            raise InvalidRequest("Invalid Content-Length")
        if int(declared) > MAX_UPLOAD_BYTES:
            raise InvalidRequest("Upload too large")

    # The declared length is advisory (chunked bodies have none), so the
    # stream is capped as it is read.
    data = bytearray()
    async for chunk in request.stream():
        data.extend(chunk)
        if len(data) > MAX_UPLOAD_BYTES:
            raise InvalidRequest("Upload too large")
    if not data:
        raise InvalidRequest("Empty upload")

    try:
        await run_in_threadpool(store.save, storage_id, bytes(data))
    except FileExistsError:
        raise Conflict("Upload ticket has already been used")

    logger.info("blob stored | storage_id=%s bytes=%d", storage_id, len(data))
    return {"storage_id": storage_id}


@router.get("/{storage_id}")
def download_blob(storage_id: str, store=Depends(get_blob_store)):
    store = _local_store(store)
    if not store.exists(storage_id):
        raise NotFound("File not found")
    return FileResponse(
        store.path_for(storage_id),
        media_type="image/jpeg",
        headers={"Cache-Control": "public, max-age=3600"},
    )
