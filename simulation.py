#!/usr/bin/env python3
"""ChainFlow Escrow Ledger — End-to-End Simulation.

Simulates three scenarios with SellerBot, BuyerBot and CourierBot actors:

    Scenario 1: Happy Path
        - Seller lists an item, buyer purchases it -> funds LOCKED
        - Seller dispatches, courier delivers -> funds RELEASED to seller

    Scenario 2: Cancellation Refund
        - Shipper opens a P2P contract -> funds LOCKED
        - Courier cancels mid-route -> funds REFUNDED to the receiver
        - A late DELIVERED update is rejected, nothing moves twice

    Scenario 3: Purchase Race
        - Buyer can afford exactly one of two listings
        - Both purchases fire concurrently -> exactly one succeeds

Usage:
    # Option A: In-memory store (instant, nothing to install):
    uv run python simulation.py

    # Option B: SQLite through SQLAlchemy (exercises the durable store):
    uv run python simulation.py --sqlite

    # Run a specific scenario:
    uv run python simulation.py --sqlite --scenario 3
"""

from __future__ import annotations

import argparse
import asyncio
from dataclasses import dataclass
from decimal import Decimal

# ---------------------------------------------------------------------------
# Configure structured logging BEFORE importing app modules
# ---------------------------------------------------------------------------
from chainflow_escrow.logging_config import get_logger, setup_logging

setup_logging(log_level="INFO", json_logs=False)
logger = get_logger("simulation")

from chainflow_escrow.config import Settings  # noqa: E402
from chainflow_escrow.domain.enums import KycStatus, ShipmentStatus, UserRole  # noqa: E402
from chainflow_escrow.domain.exceptions import EscrowLedgerError  # noqa: E402
from chainflow_escrow.infrastructure.store import InMemoryStore  # noqa: E402
from chainflow_escrow.schemas.records import CatalogListing, UserProfile  # noqa: E402
from chainflow_escrow.services.marketplace_service import MarketplaceService  # noqa: E402

ADMIN = "0x" + "A" * 40

# Module-level state
_service: MarketplaceService | None = None


# ---------------------------------------------------------------------------
# Store lifecycle helpers
# ---------------------------------------------------------------------------
async def init_service(use_sqlite: bool = False) -> MarketplaceService:
    """Build the marketplace over a fresh store and register the admin."""
    global _service

    settings = Settings(seed_balance=Decimal("1.0"))
    if use_sqlite:
        from sqlalchemy.ext.asyncio import create_async_engine

        from chainflow_escrow.infrastructure.database import SqlAlchemyStore, create_tables

        engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
        await create_tables(engine)
        store = SqlAlchemyStore(engine)
        logger.info("database.sqlite_initialized")
    else:
        store = InMemoryStore()

    _service = MarketplaceService(store, settings)
    await _service.startup()
    await _service.register_admin(ADMIN, name="Ops")
    return _service


def get_service() -> MarketplaceService:
    if _service is None:
        raise RuntimeError("Service not initialized. Call init_service() first.")
    return _service


async def shutdown_service() -> None:
    global _service
    if _service is not None:
        await _service.store.close()
        _service = None


# ---------------------------------------------------------------------------
# Bot Actors
# ---------------------------------------------------------------------------
@dataclass
class Actor:
    """A marketplace participant that connects, registers and passes KYC."""

    name: str
    role: UserRole
    account: str = ""

    async def onboard(self, svc: MarketplaceService, verified: bool = True) -> None:
        self.account = await svc.connect_identity()
        await svc.register_profile(
            UserProfile(
                account=self.account,
                name=self.name,
                role=self.role,
                kyc_status=KycStatus.PENDING,
            )
        )
        if verified:
            await svc.set_kyc(self.account, KycStatus.VERIFIED, actor=ADMIN)
        balance = await svc.get_balance(self.account)
        logger.info(f"👤 {self.name.upper()}: onboarded", account=self.account, balance=str(balance))


@dataclass
class SellerBot(Actor):
    name: str = "seller"
    role: UserRole = UserRole.SELLER

    async def list_item(self, svc: MarketplaceService, title: str, price: Decimal) -> str:
        listing = await svc.add_catalog_item(
            CatalogListing(seller=self.account, title=title, price=price, category="Demo")
        )
        logger.info("🟣 SELLER: Item listed", item_id=listing.id, price=str(price))
        return listing.id

    async def dispatch(self, svc: MarketplaceService, shipment_id: str) -> None:
        await svc.dispatch_shipment(shipment_id)
        logger.info("🟣 SELLER: Dispatched", shipment_id=shipment_id)


@dataclass
class BuyerBot(Actor):
    name: str = "buyer"
    role: UserRole = UserRole.BUYER

    async def purchase(self, svc: MarketplaceService, item_id: str) -> str:
        shipment = await svc.purchase_item(item_id, self.account)
        logger.info(
            "🔵 BUYER: Purchased",
            item_id=item_id,
            shipment_id=shipment.id,
            payment=shipment.payment_status.value,
        )
        return shipment.id


@dataclass
class CourierBot(Actor):
    name: str = "courier"
    role: UserRole = UserRole.COURIER

    async def update(
        self,
        svc: MarketplaceService,
        shipment_id: str,
        status: ShipmentStatus,
        location: str,
        message: str = "",
    ) -> None:
        shipment = await svc.advance_shipment(shipment_id, status, location, message)
        logger.info(
            "🟢 COURIER: Status update",
            shipment_id=shipment_id,
            status=shipment.status.value,
            payment=shipment.payment_status.value,
        )


# ---------------------------------------------------------------------------
# Print helpers
# ---------------------------------------------------------------------------
def banner(text: str) -> None:
    """Print a prominent banner."""
    width = 70
    print("\n" + "=" * width)
    print(f"  {text}")
    print("=" * width + "\n")


def section(text: str) -> None:
    """Print a section header."""
    print(f"\n--- {text} ---\n")


async def print_balances(svc: MarketplaceService, *actors: Actor) -> None:
    for actor in actors:
        print(f"  💰 {actor.name:<10} {await svc.get_balance(actor.account)}")


async def print_history(svc: MarketplaceService, shipment_id: str) -> None:
    """Print the tracking history of a shipment."""
    shipment = await svc.get_shipment(shipment_id)
    print(f"\n  📜 History of {shipment_id} ({shipment.payment_status.value}):")
    for i, entry in enumerate(shipment.history, 1):
        print(f"    {i}. [{entry.status.value}] @ {entry.location}: {entry.message}")
    print()


# ===========================================================================
# Scenario 1: Happy Path
# ===========================================================================
async def scenario_1_happy_path() -> None:
    """Buyer purchases a listing, courier delivers, seller is paid."""
    banner("SCENARIO 1: Happy Path — Purchase, Dispatch, Deliver")
    svc = get_service()

    seller, buyer = SellerBot(), BuyerBot()
    courier = CourierBot(account=svc.shipments.default_courier)
    await seller.onboard(svc)
    await buyer.onboard(svc)

    section("Step 1: Seller lists an item")
    item_id = await seller.list_item(svc, "Mechanical Keyboard", Decimal("0.08"))

    section("Step 2: Buyer purchases, funds locked")
    shipment_id = await buyer.purchase(svc, item_id)
    await print_balances(svc, seller, buyer)

    section("Step 3: Seller dispatches")
    await seller.dispatch(svc, shipment_id)

    section("Step 4: Courier delivers")
    await courier.update(svc, shipment_id, ShipmentStatus.OUT_FOR_DELIVERY, "Local Hub")
    await courier.update(svc, shipment_id, ShipmentStatus.DELIVERED, "Front Door", "Signed by buyer")

    await print_balances(svc, seller, buyer)
    await print_history(svc, shipment_id)


# ===========================================================================
# Scenario 2: Cancellation Refund
# ===========================================================================
async def scenario_2_cancellation() -> None:
    """Shipper opens a contract; courier cancels; late delivery is rejected."""
    banner("SCENARIO 2: Cancellation Refund")
    svc = get_service()

    shipper, receiver = SellerBot(name="shipper"), BuyerBot(name="receiver")
    courier = CourierBot()
    await shipper.onboard(svc)
    await receiver.onboard(svc, verified=False)
    await courier.onboard(svc, verified=False)

    section("Step 1: Shipper opens a P2P contract")
    shipment = await svc.open_shipment(
        shipper.account,
        receiver.account,
        courier.account,
        Decimal("0.25"),
        title="Documents",
        weight=0.4,
    )
    await print_balances(svc, shipper, receiver)

    section("Step 2: Courier picks up, then cancels")
    await courier.update(svc, shipment.id, ShipmentStatus.IN_TRANSIT, "Depot")
    await courier.update(svc, shipment.id, ShipmentStatus.CANCELLED, "Depot", "Address unreachable")

    section("Step 3: A late DELIVERED update is rejected")
    try:
        await courier.update(svc, shipment.id, ShipmentStatus.DELIVERED, "Front Door")
    except EscrowLedgerError as exc:
        print(f"  🛡️  Rejected: {exc.code} — {exc.message}")

    await print_balances(svc, shipper, receiver)
    await print_history(svc, shipment.id)


# ===========================================================================
# Scenario 3: Purchase Race
# ===========================================================================
async def scenario_3_purchase_race() -> None:
    """Two concurrent purchases against a balance that covers only one."""
    banner("SCENARIO 3: Purchase Race — no overdraft")
    svc = get_service()

    seller, buyer = SellerBot(), BuyerBot()
    await seller.onboard(svc)
    await buyer.onboard(svc)

    balance = await svc.get_balance(buyer.account)
    price = balance * Decimal("0.6")
    first = await seller.list_item(svc, "Sneakers (left)", price)
    second = await seller.list_item(svc, "Sneakers (right)", price)

    section("Both purchases fire at once")
    results = await asyncio.gather(
        buyer.purchase(svc, first),
        buyer.purchase(svc, second),
        return_exceptions=True,
    )
    for item_id, result in zip((first, second), results, strict=True):
        if isinstance(result, EscrowLedgerError):
            print(f"  ❌ {item_id}: {result.code}")
        else:
            print(f"  ✅ {item_id}: {result}")

    await print_balances(svc, buyer)
    print(f"  🔒 Locked in escrow: {await svc.shipments.locked_total()}")


# ===========================================================================
# Main
# ===========================================================================
SCENARIOS = {
    1: scenario_1_happy_path,
    2: scenario_2_cancellation,
    3: scenario_3_purchase_race,
}


async def run(scenario: int = 0, use_sqlite: bool = False) -> None:
    """Run one scenario, or all of them sequentially when ``scenario`` is 0."""
    if scenario and scenario not in SCENARIOS:
        print(f"Unknown scenario {scenario}. Available: 1, 2, 3")
        return

    await init_service(use_sqlite=use_sqlite)
    try:
        print("\n" + "🚚" * 35)
        print("  CHAINFLOW ESCROW LEDGER — SIMULATION")
        print(f"  Store: {'SQLite (SQLAlchemy, in-memory)' if use_sqlite else 'in-memory'}")
        print("🚚" * 35 + "\n")

        for num, fn in SCENARIOS.items():
            if scenario in (0, num):
                await fn()

        print("\n" + "=" * 70)
        print("  ✅ SIMULATION COMPLETED")
        print("=" * 70 + "\n")
    finally:
        await shutdown_service()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="ChainFlow Escrow Ledger Simulation")
    parser.add_argument(
        "--scenario",
        type=int,
        default=0,
        help="Run a specific scenario (1, 2, or 3). Default: run all.",
    )
    parser.add_argument(
        "--sqlite",
        action="store_true",
        help="Persist through SQLAlchemy on an in-memory SQLite database.",
    )
    args = parser.parse_args()

    asyncio.run(run(scenario=args.scenario, use_sqlite=args.sqlite))
