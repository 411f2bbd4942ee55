"""Pydantic models for the records kept in the store.

Each record lives under one store namespace and round-trips through JSON
(``model_dump(mode="json")`` on write, ``model_validate`` on read), so the
in-memory and SQL backends hold byte-for-byte the same shapes.
Amounts are Decimal and serialize as strings.
"""

from __future__ import annotations

import uuid
from datetime import UTC, date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from chainflow_escrow.domain.enums import (
    KycStatus,
    NotificationSeverity,
    PaymentStatus,
    ShipmentOrigin,
    ShipmentStatus,
    UserRole,
)


def utcnow() -> datetime:
    return datetime.now(UTC)


def generate_id(prefix: str = "") -> str:
    """Upper-case uuid4 id, e.g. ``SHP-3F9A1C2B7E0D4C8AB5F1E2D3C4B5A697``."""
    token = uuid.uuid4().hex.upper()
    return f"{prefix}-{token}" if prefix else token


class Record(BaseModel):
    """Base class for stored records."""

    model_config = ConfigDict(use_enum_values=False, validate_assignment=True)

    def to_store(self) -> dict:
        return self.model_dump(mode="json")


# ---------------------------------------------------------------------------
# balances
# ---------------------------------------------------------------------------


class AccountBalance(Record):
    account: str
    balance: Decimal = Field(default=Decimal("0"), ge=0)
    seeded_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


# ---------------------------------------------------------------------------
# profiles
# ---------------------------------------------------------------------------


class KycDocuments(BaseModel):
    id_document: str = ""
    address_proof: str = ""


class UserProfile(Record):
    account: str
    name: str = ""
    email: str = ""
    role: UserRole = UserRole.BUYER
    kyc_status: KycStatus = KycStatus.NOT_STARTED
    kyc_documents: KycDocuments | None = None


# ---------------------------------------------------------------------------
# catalog
# ---------------------------------------------------------------------------


class CatalogListing(Record):
    id: str = Field(default_factory=lambda: generate_id("ITM"))
    seller: str
    title: str
    description: str = ""
    category: str = ""
    price: Decimal = Field(gt=0)
    image: str = ""


# ---------------------------------------------------------------------------
# shipments
# ---------------------------------------------------------------------------


class HistoryEntry(BaseModel):
    """One immutable step of a shipment's tracking history."""

    model_config = ConfigDict(frozen=True)

    status: ShipmentStatus
    location: str
    message: str
    timestamp: datetime = Field(default_factory=utcnow)


class Shipment(Record):
    id: str
    origin: ShipmentOrigin = ShipmentOrigin.CONTRACT
    sender: str
    receiver: str
    courier: str
    title: str = ""
    description: str = ""
    category: str = ""
    weight: float = 0.0
    pickup_date: date | None = None
    delivery_date: date | None = None
    price: Decimal = Field(gt=0)
    status: ShipmentStatus = ShipmentStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.LOCKED
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    history: list[HistoryEntry] = Field(default_factory=list)

    def record(self, status: ShipmentStatus, location: str, message: str) -> HistoryEntry:
        """Set ``status`` and append the matching history entry together."""
        entry = HistoryEntry(status=status, location=location, message=message)
        self.history = [*self.history, entry]
        self.status = status
        self.updated_at = entry.timestamp
        return entry


# ---------------------------------------------------------------------------
# notifications
# ---------------------------------------------------------------------------


class Notification(Record):
    id: str = Field(default_factory=generate_id)
    recipient: str
    title: str
    message: str
    severity: NotificationSeverity = NotificationSeverity.INFO
    timestamp: datetime = Field(default_factory=utcnow)
    read: bool = False
