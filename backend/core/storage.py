# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261016v1
# ---------------------------------------------------------------------------
"""
Blob storage for object images.

Uploads never pass through the object API.  The client first asks for an
upload target (URL + storage id), pushes the bytes there, and only then
registers the image on the object.  There is no rollback between those
steps: a blob whose registration fails stays orphaned.

Backends
--------
local   Files under ``settings.storage_dir``.  The upload target is this
        service's own ``PUT /storage/upload/{ticket}`` endpoint, where the
        ticket is a signed, expiring JWT naming the storage id.  Files are
        served back via ``GET /storage/{storage_id}``.
azure   Azure Blob Storage.  The upload target is a create-only SAS URL for
        a fresh blob, so bytes go straight from the browser to Azure.  Access
        URLs are short-lived read SAS URLs.

Blobs are write-once in both backends: an upload target can create its
blob but never replace it, so an image attached to a frozen object cannot
be swapped out afterwards.

Pick one with ``BLOB_BACKEND`` and get the instance through
:func:`get_blob_store`.
"""

import re
import uuid
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from pathlib import Path
from typing import Optional

from azure.core.exceptions import ResourceExistsError, ResourceNotFoundError
from azure.storage.blob import BlobSasPermissions, BlobServiceClient, generate_blob_sas

from core.config import settings
from core.logger import logger
from core.security import create_upload_ticket

# Storage ids are uuid4 hex strings; anything else is rejected before it
# gets anywhere near a filesystem path or a blob name.
_STORAGE_ID_RE = re.compile(r"^[0-9a-f]{32}$")


def new_storage_id() -> str:
    return uuid.uuid4().hex


def is_valid_storage_id(storage_id: str) -> bool:
    return bool(storage_id) and _STORAGE_ID_RE.match(storage_id) is not None


# ---------------------------------------------------------------------------
# Local filesystem
# ---------------------------------------------------------------------------


class LocalBlobStore:
    def __init__(self, root: str, public_base_url: str):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self.public_base_url = public_base_url.rstrip("/")

    def path_for(self, storage_id: str) -> Optional[Path]:
        if not is_valid_storage_id(storage_id):
            return None
        return self.root / storage_id

    def generate_upload_target(self) -> tuple[str, str]:
        """Return ``(storage_id, upload_url)`` for a new blob."""
        storage_id = new_storage_id()
        ticket = create_upload_ticket(storage_id)
        return storage_id, f"{self.public_base_url}/storage/upload/{ticket}"

    def save(self, storage_id: str, data: bytes) -> None:
        """Write a new blob.  Raises FileExistsError if the id is already taken."""
        path = self.path_for(storage_id)
        if path is None:
            raise ValueError(f"invalid storage id: {storage_id!r}")
        with open(path, "xb") as fh:
            fh.write(data)

    def exists(self, storage_id: str) -> bool:
        path = self.path_for(storage_id)
        return path is not None and path.is_file()

    def delete(self, storage_id: str) -> None:
        path = self.path_for(storage_id)
        if path is not None:
            path.unlink(missing_ok=True)
            logger.info("blob deleted | storage_id=%s", storage_id)

    def get_access_url(self, storage_id: str) -> Optional[str]:
        if not self.exists(storage_id):
            return None
        return f"{self.public_base_url}/storage/{storage_id}"


# ---------------------------------------------------------------------------
# Azure Blob Storage
# ---------------------------------------------------------------------------


class AzureBlobStore:
    def __init__(self, account: str, key: str, container: str, ttl_minutes: int):
        self.account = account
        self.key = key
        self.container = container
        self.ttl = timedelta(minutes=ttl_minutes)
        self.service = BlobServiceClient(
            account_url=f"https://{account}.blob.core.windows.net",
            credential=key,
        )

    def _blob(self, storage_id: str):
        return self.service.get_blob_client(container=self.container, blob=storage_id)

    def _sas_url(self, storage_id: str, permission: BlobSasPermissions) -> str:
        sas = generate_blob_sas(
            account_name=self.account,
            container_name=self.container,
            blob_name=storage_id,
            account_key=self.key,
            permission=permission,
            expiry=datetime.now(timezone.utc) + self.ttl,
        )
        return f"{self._blob(storage_id).url}?{sas}"

    def generate_upload_target(self) -> tuple[str, str]:
        storage_id = new_storage_id()
        # create only: the SAS cannot overwrite a blob that already exists
        url = self._sas_url(storage_id, BlobSasPermissions(create=True))
        return storage_id, url

    def save(self, storage_id: str, data: bytes) -> None:
        try:
            self._blob(storage_id).upload_blob(data, overwrite=False)
        except ResourceExistsError as exc:
            raise FileExistsError(storage_id) from exc

    def exists(self, storage_id: str) -> bool:
        if not is_valid_storage_id(storage_id):
            return False
        return self._blob(storage_id).exists()

    def delete(self, storage_id: str) -> None:
        if not is_valid_storage_id(storage_id):
            return
        try:
            self._blob(storage_id).delete_blob()
        except ResourceNotFoundError:
            logger.warning("blob already gone | storage_id=%s", storage_id)
            return
        logger.info("blob deleted | storage_id=%s", storage_id)

    def get_access_url(self, storage_id: str) -> Optional[str]:
        if not self.exists(storage_id):
            return None
        return self._sas_url(storage_id, BlobSasPermissions(read=True))


# ---------------------------------------------------------------------------
# Factory / FastAPI dependency
# ---------------------------------------------------------------------------


@lru_cache(maxsize=1)
def get_blob_store():
    """Return the configured blob store (one instance per process)."""
    if settings.blob_backend == "azure":
        return AzureBlobStore(
            settings.azure_storage_account,
            settings.azure_storage_key,
            settings.azure_storage_container,
            settings.upload_ticket_expire_minutes,
        )
    if settings.blob_backend == "local":
        return LocalBlobStore(settings.storage_dir, settings.public_base_url)
    raise RuntimeError(f"Unknown BLOB_BACKEND: {settings.blob_backend!r}")
