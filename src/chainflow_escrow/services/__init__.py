"""Application services — use case orchestration."""

from chainflow_escrow.services.catalog_service import CatalogStore
from chainflow_escrow.services.identity_service import IdentityRegistry
from chainflow_escrow.services.ledger_service import LedgerService
from chainflow_escrow.services.marketplace_service import MarketplaceService
from chainflow_escrow.services.notification_service import NotificationSink
from chainflow_escrow.services.shipment_service import ShipmentLedger

__all__ = [
    "CatalogStore",
    "IdentityRegistry",
    "LedgerService",
    "MarketplaceService",
    "NotificationSink",
    "ShipmentLedger",
]
