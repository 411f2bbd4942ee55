"""Pydantic schemas: stored records and API request/response shapes."""

from chainflow_escrow.schemas.records import (
    AccountBalance,
    CatalogListing,
    HistoryEntry,
    Notification,
    Shipment,
    UserProfile,
)

__all__ = [
    "AccountBalance",
    "CatalogListing",
    "HistoryEntry",
    "Notification",
    "Shipment",
    "UserProfile",
]
