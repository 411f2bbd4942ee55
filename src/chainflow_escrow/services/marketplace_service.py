"""Marketplace Service — the orchestration API consumed by clients.

This is the application layer that coordinates between:
    - Ledger (balances)
    - Identity Registry (profiles, KYC gate)
    - Catalog Store (listings)
    - Shipment Ledger (escrow state machine)
    - Notification Sink (per-account event log)

All components share one injected KeyValueStore. REST routes and the
simulation script both call into this service, so role checks live here
rather than in any client.
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from chainflow_escrow.domain.enums import UserRole
from chainflow_escrow.domain.exceptions import ForbiddenError
from chainflow_escrow.logging_config import get_logger
from chainflow_escrow.schemas.records import UserProfile
from chainflow_escrow.services.catalog_service import CatalogStore
from chainflow_escrow.services.identity_service import IdentityRegistry
from chainflow_escrow.services.ledger_service import LedgerService
from chainflow_escrow.services.notification_service import NotificationSink
from chainflow_escrow.services.shipment_service import ShipmentLedger

if TYPE_CHECKING:
    from datetime import date
    from decimal import Decimal

    from chainflow_escrow.config import Settings
    from chainflow_escrow.domain.enums import KycStatus, ShipmentStatus
    from chainflow_escrow.infrastructure.store import KeyValueStore
    from chainflow_escrow.schemas.records import (
        CatalogListing,
        Notification,
        Shipment,
    )

logger = get_logger(__name__)


def generate_account() -> str:
    return "0x" + uuid.uuid4().hex.upper()


class MarketplaceService:
    """Entry points for accounts, catalog, shipments and notifications."""

    def __init__(self, store: KeyValueStore, settings: Settings) -> None:
        self.store = store
        self._settings = settings
        self.notifications = NotificationSink(store)
        self.ledger = LedgerService(store)
        self.identity = IdentityRegistry(store, self.notifications)
        self.catalog = CatalogStore(store, self.notifications)
        self.shipments = ShipmentLedger(
            store,
            ledger=self.ledger,
            identity=self.identity,
            catalog=self.catalog,
            notifications=self.notifications,
            default_courier=settings.default_courier,
        )

    async def startup(self) -> None:
        for account in self._settings.admin_accounts:
            await self.register_admin(account)
        if self._settings.seed_demo_catalog:
            await self.catalog.seed()

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    async def connect_identity(self, account: str | None = None) -> str:
        """Return an account id, seeding its balance the first time it is seen."""
        account = account or generate_account()
        seeded = await self.ledger.provision(account, self._settings.seed_balance)
        logger.info("account.connected", account=account, seeded=seeded)
        return account

    async def register_profile(self, profile: UserProfile) -> UserProfile:
        return await self.identity.register(profile)

    async def register_admin(self, account: str, name: str = "Admin") -> UserProfile:
        """Grant ADMIN to an operator account. Not reachable over HTTP."""
        profile = await self.identity.lookup(account)
        if profile is None:
            profile = UserProfile(account=account, name=name)
        elif profile.role == UserRole.ADMIN:
            return profile
        profile = profile.model_copy(update={"role": UserRole.ADMIN})
        return await self.identity.register(profile, grant_admin=True)

    async def get_profile(self, account: str) -> UserProfile | None:
        return await self.identity.lookup(account)

    async def list_profiles(self) -> list[UserProfile]:
        return await self.identity.list_profiles()

    async def set_kyc(self, account: str, status: KycStatus, actor: str) -> UserProfile:
        """Set KYC status on behalf of ``actor``, who must be an ADMIN."""
        await self._require_role(actor, UserRole.ADMIN)
        return await self.identity.set_kyc(account, status)

    async def get_balance(self, account: str) -> Decimal:
        return await self.ledger.get_balance(account)

    async def list_notifications(self, account: str) -> list[Notification]:
        return await self.notifications.list_for(account)

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    async def list_catalog(self) -> list[CatalogListing]:
        return await self.catalog.list()

    async def add_catalog_item(self, listing: CatalogListing) -> CatalogListing:
        return await self.catalog.add(listing)

    async def remove_catalog_item(self, item_id: str, caller: str) -> None:
        await self.catalog.remove(item_id, caller)

    # ------------------------------------------------------------------
    # Shipments
    # ------------------------------------------------------------------

    async def open_shipment(
        self,
        sender: str,
        receiver: str,
        courier: str,
        price: Decimal,
        *,
        title: str = "",
        description: str = "",
        category: str = "",
        weight: float = 0.0,
        pickup_date: date | None = None,
        delivery_date: date | None = None,
    ) -> Shipment:
        return await self.shipments.open(
            sender,
            receiver,
            courier,
            price,
            title=title,
            description=description,
            category=category,
            weight=weight,
            pickup_date=pickup_date,
            delivery_date=delivery_date,
        )

    async def purchase_item(self, item_id: str, buyer: str) -> Shipment:
        return await self.shipments.open_from_purchase(item_id, buyer)

    async def dispatch_shipment(self, shipment_id: str) -> Shipment:
        return await self.shipments.dispatch(shipment_id)

    async def advance_shipment(
        self,
        shipment_id: str,
        status: ShipmentStatus | str,
        location: str,
        message: str,
    ) -> Shipment:
        return await self.shipments.advance(shipment_id, status, location, message)

    async def get_shipment(self, shipment_id: str) -> Shipment | None:
        return await self.shipments.get(shipment_id)

    async def list_shipments(self) -> list[Shipment]:
        return await self.shipments.list_all()

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _require_role(self, actor: str, role: UserRole) -> None:
        profile = await self.identity.lookup(actor)
        if profile is None or profile.role != role:
            logger.warning("account.capability_denied", actor=actor, required=role.value)
            raise ForbiddenError(f"{actor} requires role {role.value}")
