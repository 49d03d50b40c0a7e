# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261016v1
# ---------------------------------------------------------------------------
"""Pydantic request / response models for the object endpoints."""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from models.property_object import ALL_STATUSES

# Literal built from the stored values so the two cannot drift apart.
ObjectStatus = Literal[ALL_STATUSES]  # type: ignore[valid-type]
ImageSection = Literal["keys", "rooms", "meters"]


# -- Nested records --------------------------------------------------------
# The editor always submits whole arrays; positions matter because images
# are attached by section_index.


class Address(BaseModel):
    street: str
    zip_code: str
    city: str
    additional: Optional[str] = None


class Person(BaseModel):
    name: str
    function: str
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None


class KeyRecord(BaseModel):
    type: str
    count: int = Field(ge=0)
    images: Optional[List[str]] = None


class RoomRecord(BaseModel):
    name: str
    equipment: Optional[str] = None
    condition: Optional[str] = None
    images: Optional[List[str]] = None


class MeterRecord(BaseModel):
    type: str
    number: str
    reading: str
    images: Optional[List[str]] = None


# -- Requests --------------------------------------------------------------


class ObjectCreate(BaseModel):
    title: str
    address: Address
    floor: Optional[int] = None
    room: Optional[str] = None
    assigned_to: Optional[List[int]] = None


class ObjectUpdate(BaseModel):
    """
    Partial update: fields left out (or null) are not touched.

    ``version`` is the value the client loaded.  When given and the stored
    object has moved on, the update is refused with version_conflict.
    """

    title: Optional[str] = None
    address: Optional[Address] = None
    floor: Optional[int] = None
    room: Optional[str] = None
    assigned_to: Optional[List[int]] = None
    notes: Optional[str] = None
    signature: Optional[str] = None
    people: Optional[List[Person]] = None
    keys: Optional[List[KeyRecord]] = None
    rooms: Optional[List[RoomRecord]] = None
    meters: Optional[List[MeterRecord]] = None
    version: Optional[int] = None


class StatusUpdate(BaseModel):
    # Plain str: unknown values are refused by the policy as invalid_request
    status: str


class ImageCreate(BaseModel):
    section: ImageSection
    section_index: Optional[int] = Field(None, ge=0)
    storage_id: str
    filename: str


# -- Responses -------------------------------------------------------------


class UserRef(BaseModel):
    id: int
    name: str


class AssignableUser(BaseModel):
    id: int
    name: str
    email: str
    role: str

    model_config = {"from_attributes": True}


class ObjectResponse(BaseModel):
    id: int
    title: str
    address: Address
    floor: Optional[int] = None
    room: Optional[str] = None
    created_by: Optional[int] = None
    creator_name: str
    assigned_to: List[int]
    assigned_users: List[UserRef]
    status: ObjectStatus
    notes: Optional[str] = None
    signature: Optional[str] = None
    people: Optional[List[Person]] = None
    keys: Optional[List[KeyRecord]] = None
    rooms: Optional[List[RoomRecord]] = None
    meters: Optional[List[MeterRecord]] = None
    version: int
    created_at: datetime
    updated_at: datetime


class ObjectListResponse(BaseModel):
    objects: List[ObjectResponse]


class ImageResponse(BaseModel):
    id: int
    filename: str
    url: Optional[str] = None
    section: str
    section_index: Optional[int] = None


class ImagesBySection(BaseModel):
    keys: List[ImageResponse] = []
    rooms: List[ImageResponse] = []
    meters: List[ImageResponse] = []


class UploadTarget(BaseModel):
    upload_url: str
    storage_id: str


class ObjectExport(BaseModel):
    """Flattened snapshot handed to the PDF renderer."""

    id: int
    title: str
    address: Address
    floor: Optional[int] = None
    room: Optional[str] = None
    status: str
    creator_name: str
    assigned_users: List[str]
    people: List[Person]
    keys: List[KeyRecord]
    rooms: List[RoomRecord]
    meters: List[MeterRecord]
    notes: Optional[str] = None
    signature: Optional[str] = None
    images: ImagesBySection
    created_at: datetime
    exported_at: datetime

