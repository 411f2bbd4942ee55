"""Pydantic schemas for the HTTP API.

Request bodies are separate from the stored records so that clients cannot
set server-owned fields (ids, statuses, payment state, history).
Responses reuse the record models from schemas/records.py directly.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, Field

from chainflow_escrow.domain.enums import KycStatus, ShipmentStatus, UserRole
from chainflow_escrow.schemas.records import KycDocuments

# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------


class ConnectRequest(BaseModel):
    """Request body for connecting (and first-time seeding) an account."""

    account: str | None = Field(
        default=None,
        min_length=1,
        max_length=128,
        description="Existing account id; omit to provision a new one",
    )


class RegisterProfileRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    email: str = Field(default="", max_length=320)
    role: UserRole = UserRole.BUYER
    kyc_status: KycStatus = Field(
        default=KycStatus.NOT_STARTED,
        description="Send PENDING together with documents to request review",
    )
    kyc_documents: KycDocuments | None = None


class SetKycRequest(BaseModel):
    status: KycStatus
    actor: str = Field(..., min_length=1, description="Account of the admin making the change")


class AddListingRequest(BaseModel):
    seller: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(default="", max_length=5000)
    category: str = Field(default="", max_length=100)
    price: Decimal = Field(..., gt=0, examples=["0.15"])
    image: str = ""


class OpenShipmentRequest(BaseModel):
    """Request body for a manual P2P shipment contract."""

    sender: str = Field(..., min_length=1, description="Paying shipper account")
    receiver: str = Field(..., min_length=1)
    courier: str = Field(..., min_length=1)
    price: Decimal = Field(..., gt=0, description="Amount locked in escrow")
    title: str = Field(default="", max_length=200)
    description: str = Field(default="", max_length=5000)
    category: str = Field(default="", max_length=100)
    weight: float = Field(default=0.0, ge=0)
    pickup_date: date | None = None
    delivery_date: date | None = None
    idempotency_key: str | None = Field(
        default=None,
        description="Optional idempotency key to prevent duplicate escrow creation",
    )


class PurchaseRequest(BaseModel):
    buyer: str = Field(..., min_length=1)
    idempotency_key: str | None = None


class AdvanceShipmentRequest(BaseModel):
    status: ShipmentStatus
    location: str = Field(..., min_length=1, max_length=200)
    message: str = Field(default="", max_length=2000)


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------


class AccountResponse(BaseModel):
    account: str
    balance: Decimal


class ShipmentStatusResponse(BaseModel):
    """Lightweight status check response."""

    shipment_id: str
    status: ShipmentStatus
    payment_status: str
    allowed_targets: list[ShipmentStatus] = Field(
        description="Statuses a courier update may move the shipment to"
    )


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str = "0.1.0"
    store: str = "unknown"
    redis: str = "unknown"
