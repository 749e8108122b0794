from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, Field


class RfqStatus(str, Enum):
    OPEN = "open"
    ARCHIVED = "archived"
    CLOSED = "closed"


class ParticipantRole(str, Enum):
    BUYER = "buyer"
    MANUFACTURER = "manufacturer"


class AttachmentRef(BaseModel):
    id: str
    file_name: str
    content_type: str
    size_bytes: int
    key: str # opaque storage locator of the uploaded file


class Contact(BaseModel):
    email: str
    name: Optional[str] = None


class Participant(BaseModel):
    role: ParticipantRole
    email: str
    name: Optional[str] = None


class RfqMeta(BaseModel):
    id: str
    tenant_id: str
    manufacturer_id: str
    buyer: Contact
    subject: str
    status: RfqStatus = RfqStatus.OPEN
    created_at: datetime
    last_event_ts: datetime
    participants: List[Participant]
    attachments: Optional[List[AttachmentRef]] = None


class RfqIndex(BaseModel):
    last_event_ts: datetime
    count: int = Field(..., ge=0)


# Catalog side. Only read by the RFQ flow (manufacturer existence and contact email).
class Location(BaseModel):
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None


class MediaRef(BaseModel):
    image_manifest_id: str
    alt: Optional[str] = None


class LeadTime(BaseModel):
    min: Optional[int] = Field(default=None, ge=0)
    max: Optional[int] = Field(default=None, ge=0)


class Offering(BaseModel):
    id: str
    title: str
    materials: Optional[List[str]] = None
    lead_time_days: Optional[LeadTime] = None
    media: Optional[List[MediaRef]] = None


class ManufacturerProfile(BaseModel):
    id: str
    tenant_id: str
    name: str
    description: Optional[str] = None
    location: Optional[Location] = None
    categories: List[str] = Field(default_factory=list)
    capabilities: Optional[List[str]] = None
    contact_email: Optional[str] = None
    media: Optional[List[MediaRef]] = None
    offerings: Optional[List[Offering]] = None
    updated_at: datetime


class CatalogManufacturerSummary(BaseModel):
    id: str
    name: str
    city: Optional[str] = None
    state: Optional[str] = None
    categories: List[str] = Field(default_factory=list)
    capabilities: Optional[List[str]] = None
    logo: Optional[str] = None


class CategorySlice(BaseModel):
    category: str
    generated_at: datetime
    items: List[CatalogManufacturerSummary] = Field(default_factory=list)


# Request / response models for the HTTP surface
class ContactIn(BaseModel):
    email: str
    name: Optional[str] = Field(default=None, max_length=200)


class AttachmentIn(BaseModel):
    upload_key: str = Field(..., min_length=1)
    file_name: str = Field(..., min_length=1, max_length=255)
    content_type: str
    size_bytes: int


class CreateRfqRequest(BaseModel):
    tenant_id: str
    manufacturer_id: str
    buyer: ContactIn
    subject: str = Field(..., min_length=1, max_length=200)
    body: str
    attachments: Optional[List[AttachmentIn]] = Field(default=None, max_length=10)


class CreateRfqResponse(BaseModel):
    id: str
    last_event_ts: str


class PostMessageRequest(BaseModel):
    by: str # "buyer" | "manufacturer"
    body: str
    attachments: Optional[List[AttachmentIn]] = Field(default=None, max_length=10)


class PostMessageResponse(BaseModel):
    ts: str


class ErrorEnvelope(BaseModel):
    code: str
    message: str
    details: Optional[Any] = None


class LocationIn(BaseModel):
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None


class UpsertManufacturerRequest(BaseModel):
    id: Optional[str] = None
    tenant_id: str
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    location: Optional[LocationIn] = None
    categories: List[str] = Field(default_factory=list)
    capabilities: Optional[List[str]] = None
    contact_email: str
    media: Optional[List[MediaRef]] = None
    offerings: Optional[List[Offering]] = None


class UpsertManufacturerResponse(BaseModel):
    id: str
    tenant_id: str
