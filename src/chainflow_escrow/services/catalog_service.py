"""Catalog Store — marketplace listings owned by sellers."""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from chainflow_escrow.domain.enums import NotificationSeverity
from chainflow_escrow.domain.exceptions import ForbiddenError, ListingNotFoundError
from chainflow_escrow.infrastructure.store import Namespace
from chainflow_escrow.logging_config import get_logger
from chainflow_escrow.schemas.records import CatalogListing, generate_id

if TYPE_CHECKING:
    from chainflow_escrow.infrastructure.store import KeyValueStore, StoreTransaction
    from chainflow_escrow.services.notification_service import NotificationSink

logger = get_logger(__name__)

DEMO_SELLER = "0xDEMO...SELLER"

DEMO_CATALOG: tuple[CatalogListing, ...] = (
    CatalogListing(
        id="ITM-001",
        title="Premium Wireless Headphones",
        description="Noise cancelling, 40h battery life, premium sound quality.",
        price=Decimal("0.15"),
        category="Electronics",
        image="https://images.unsplash.com/photo-1505740420928-5e560c06d30e?w=500&q=80",
        seller=DEMO_SELLER,
    ),
    CatalogListing(
        id="ITM-002",
        title="Mechanical Keyboard",
        description="RGB Backlit, Blue Switches, compact 60% layout.",
        price=Decimal("0.08"),
        category="Electronics",
        image="https://images.unsplash.com/photo-1587829741301-dc798b91add1?w=500&q=80",
        seller=DEMO_SELLER,
    ),
    CatalogListing(
        id="ITM-005",
        title="Limited Edition Sneakers",
        description="Size 10, never worn, authentic collector item.",
        price=Decimal("0.5"),
        category="Fashion",
        image="https://images.unsplash.com/photo-1542291026-7eec264c27ff?w=500&q=80",
        seller=DEMO_SELLER,
    ),
)


class CatalogStore:
    """Listings keyed by item id."""

    def __init__(self, store: KeyValueStore, notifications: NotificationSink) -> None:
        self._store = store
        self._notifications = notifications

    async def list(self) -> list[CatalogListing]:
        return [
            CatalogListing.model_validate(raw)
            for raw in await self._store.values(Namespace.CATALOG)
        ]

    async def get(self, item_id: str) -> CatalogListing | None:
        raw = await self._store.get(Namespace.CATALOG, item_id)
        return CatalogListing.model_validate(raw) if raw is not None else None

    async def load(self, txn: StoreTransaction, item_id: str) -> CatalogListing:
        """Read a listing under its key lock, raising if it does not exist."""
        raw = await txn.get(Namespace.CATALOG, item_id)
        if raw is None:
            raise ListingNotFoundError(item_id)
        return CatalogListing.model_validate(raw)

    async def add(self, listing: CatalogListing) -> CatalogListing:
        """Publish a listing under a fresh id; the seller is its owner."""
        async with self._store.transaction() as txn:
            item_id = generate_id("ITM")
            while await txn.get(Namespace.CATALOG, item_id) is not None:
                item_id = generate_id("ITM")
            stored = listing.model_copy(update={"id": item_id})
            txn.put(Namespace.CATALOG, stored.id, stored.to_store())
            self._notifications.stage_post(
                txn,
                stored.seller,
                "Item Listed",
                f"{stored.title} is now live in the marketplace.",
                NotificationSeverity.SUCCESS,
            )
        logger.info(
            "catalog.item_added",
            item_id=stored.id,
            seller=stored.seller,
            price=str(stored.price),
        )
        return stored

    async def remove(self, item_id: str, caller: str) -> None:
        async with self._store.transaction((Namespace.CATALOG, item_id)) as txn:
            listing = await self.load(txn, item_id)
            if listing.seller != caller:
                raise ForbiddenError(
                    f"Listing {item_id} belongs to {listing.seller}, not {caller}"
                )
            txn.delete(Namespace.CATALOG, item_id)
            self._notifications.stage_post(
                txn,
                caller,
                "Item Removed",
                f"{listing.title} was removed from the marketplace.",
                NotificationSeverity.INFO,
            )
        logger.info("catalog.item_removed", item_id=item_id, seller=caller)

    async def seed(self, listings: tuple[CatalogListing, ...] = DEMO_CATALOG) -> int:
        """Install demo listings when the catalog is empty. Returns how many."""
        if await self._store.values(Namespace.CATALOG):
            return 0
        refs = [(Namespace.CATALOG, listing.id) for listing in listings]
        async with self._store.transaction(*refs) as txn:
            for listing in listings:
                txn.put(Namespace.CATALOG, listing.id, listing.to_store())
        logger.info("catalog.seeded", count=len(listings))
        return len(listings)
