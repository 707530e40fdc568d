"""studiodesk Pydantic models for type-safe data validation.

Amounts shown to users are currency-formatted strings (``"₹1,200.00"``);
money that is computed on is held as ``Decimal``.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, field_validator


class ProjectStatus(str, Enum):
    """Durable project lifecycle statuses, earliest first."""

    PROSPECT = "prospect"
    PRE_PRODUCTION = "pre_production"
    PRODUCTION = "production"
    POST_PRODUCTION = "post_production"
    DELIVERED = "delivered"


class BoardColumn(str, Enum):
    """Columns shown on the project board."""

    PROSPECT_IN_PROGRESS = "prospect_in_progress"
    YET_TO_START = "yet_to_start"
    STARTED = "started"
    COMPLETED = "completed"
    DUES_CLEARED_DELIVERED = "dues_cleared_delivered"

    @property
    def label(self) -> str:
        return _COLUMN_LABELS[self]


_COLUMN_LABELS = {
    BoardColumn.PROSPECT_IN_PROGRESS: "Prospect In Progress",
    BoardColumn.YET_TO_START: "Yet to Start",
    BoardColumn.STARTED: "Started",
    BoardColumn.COMPLETED: "Completed",
    BoardColumn.DUES_CLEARED_DELIVERED: "DUEs CLEARED & DELIVERED",
}


class EstimateStatus(str, Enum):
    PENDING = "pending"
    NEGOTIATING = "negotiating"
    APPROVED = "approved"
    DECLINED = "declined"


class InvoiceStatus(str, Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"


class InvoiceType(str, Enum):
    """Proforma invoices are untaxed; paid (tax) invoices carry GST."""

    PROFORMA = "proforma"
    PAID = "paid"

    @property
    def is_taxed(self) -> bool:
        return self is InvoiceType.PAID


class LineItem(BaseModel):
    """Atomic unit consumed by the derivation engine."""

    description: str = ""
    amount: str = ""

    @field_validator("amount", mode="before")
    @classmethod
    def coerce_amount(cls, v: Any) -> str:
        if v is None:
            return ""
        return str(v)


class Project(BaseModel):
    """Photography project tracked on the board."""

    id: UUID = Field(default_factory=uuid4)
    title: str
    status: ProjectStatus = ProjectStatus.PROSPECT
    client_name: str | None = None
    event_type: str | None = None
    start_date: date | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class PackageEvent(BaseModel):
    """One event covered by an estimate package."""

    event: str = ""
    date: str = ""
    photographers: int | None = None
    cinematographers: int | None = None


class EstimatePackage(BaseModel):
    name: str | None = None
    amount: str = ""
    services: list[PackageEvent] = Field(default_factory=list)
    deliverables: list[str] = Field(default_factory=list)


class Estimate(BaseModel):
    """Client estimate with one or more package options."""

    id: str
    client_name: str
    client_email: str = ""
    client_phone: str = ""
    project_name: str = ""
    project_id: UUID | None = None
    items: list[LineItem] = Field(default_factory=list)
    packages: list[EstimatePackage] = Field(default_factory=list)
    selected_package_index: int | None = None
    status: EstimateStatus = EstimateStatus.PENDING
    amount: str = ""
    created_at: datetime | None = None

    @property
    def selected_package(self) -> EstimatePackage | None:
        if self.selected_package_index is None:
            return None
        if 0 <= self.selected_package_index < len(self.packages):
            return self.packages[self.selected_package_index]
        return None


class Payment(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    date: str
    amount: Decimal
    method: str
    collected_by: str = "self"

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("payment amount must be positive")
        return v


class InvoiceVersion(BaseModel):
    version: int
    invoice_form_data: dict[str, Any] = Field(default_factory=dict)
    updated_at: str
    updated_by: str | None = None


class Invoice(BaseModel):
    """Invoice as seen by the application (mapped from the durable row)."""

    id: str = ""  # Empty until the store assigns a durable identity
    display_number: str | None = None
    client: str
    client_email: str = ""
    date: str
    amount: str
    paid_amount: str = "0"
    balance_amount: str = "0"
    status: InvoiceStatus = InvoiceStatus.PENDING
    items: list[LineItem] = Field(default_factory=list)
    estimate_id: str | None = None
    notes: str = ""
    payment_date: str | None = None
    payment_method: str | None = None
    gst_rate: str = "0"
    payments: list[Payment] = Field(default_factory=list)
    form_data: dict[str, Any] | None = None
    version_history: list[InvoiceVersion] = Field(default_factory=list)
    current_version: int | None = None

    @property
    def reference(self) -> str:
        """Human-facing invoice number, falling back to a short id."""
        return self.display_number or self.id[:8]


class ImageRecord(BaseModel):
    """Metadata row for an uploaded photo-bank image."""

    image_uuid: UUID
    storage_path: str
    access_url: str
    created_at: datetime | None = None
    file_name: str | None = None
    file_size: int | None = None
    mime_type: str | None = None


class ImageUploadResult(BaseModel):
    image_uuid: UUID
    access_url: str
    storage_path: str | None = None  # Known only for direct uploads


class PhotoBankDetails(BaseModel):
    """Editable fields shared by photo-bank projects and albums."""

    main_event_name: str = ""
    main_event_description: str = ""
    short_description: str = ""
    sub_event_name: str = ""
    custom_sub_event_name: str | None = None

    def as_row(self) -> dict[str, Any]:
        row = self.model_dump()
        row["custom_sub_event_name"] = self.custom_sub_event_name or None
        return row


class PhotoBankImage(BaseModel):
    """Thumbnail or album image row; ``owner_id`` is the project or album id."""

    id: str
    owner_id: str
    storage_path: str
    public_url: str
    file_name: str | None = None
    file_size: int | None = None
    mime_type: str | None = None
    width: int = 0
    height: int = 0
    display_order: int = 0
    created_at: datetime | None = None


class PhotoBankProject(BaseModel):
    id: str
    title: str
    details: PhotoBankDetails = Field(default_factory=PhotoBankDetails)
    thumbnail_image_id: str | None = None
    thumbnail: PhotoBankImage | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class PhotoBankAlbum(BaseModel):
    id: str
    project_id: str
    name: str
    details: PhotoBankDetails = Field(default_factory=PhotoBankDetails)
    thumbnail_image_id: str | None = None
    thumbnail: PhotoBankImage | None = None
    images: list[PhotoBankImage] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None
