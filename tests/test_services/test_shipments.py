"""Tests for the shipment ledger: escrow locking, transitions and settlement.

These tests verify that:
    1. Opening a shipment debits the payer and locks the price.
    2. DELIVERED releases the escrow to the sender, CANCELLED refunds the receiver.
    3. Terminal shipments never move funds again.
    4. A rejected operation leaves balances, shipments and notifications untouched.
    5. Concurrent purchases and transitions cannot overdraw or double-settle.
"""

from __future__ import annotations

import asyncio
from datetime import date, timedelta
from decimal import Decimal

import pytest

from chainflow_escrow.domain.enums import (
    PaymentStatus,
    ShipmentOrigin,
    ShipmentStatus,
    UserRole,
)
from chainflow_escrow.domain.exceptions import (
    InsufficientFundsError,
    InvalidAmountError,
    InvalidTransitionError,
    KycRequiredError,
    ListingNotFoundError,
    ShipmentNotFoundError,
)
from chainflow_escrow.schemas.records import CatalogListing

PRICE = Decimal("0.25")
SEED = Decimal("100")


async def _open(svc, parties, price: Decimal = PRICE):
    return await svc.open_shipment(
        parties["sender"],
        parties["receiver"],
        parties["courier"],
        price,
        title="Documents",
        weight=0.4,
    )


async def _supply(svc) -> Decimal:
    """Balances plus everything still held in escrow."""
    return await svc.ledger.total_supply() + await svc.shipments.locked_total()


class TestOpen:
    @pytest.mark.asyncio
    async def test_open_locks_funds(self, marketplace, parties) -> None:
        shipment = await _open(marketplace, parties)

        assert shipment.id.startswith("SHP-")
        assert shipment.origin == ShipmentOrigin.CONTRACT
        assert shipment.status == ShipmentStatus.PENDING
        assert shipment.payment_status == PaymentStatus.LOCKED
        assert len(shipment.history) == 1
        assert shipment.history[0].location == "Origin"
        assert await marketplace.get_balance(parties["sender"]) == SEED - PRICE

    @pytest.mark.asyncio
    async def test_open_notifies_all_participants(self, marketplace, parties) -> None:
        await _open(marketplace, parties)

        async def titles(account: str) -> list[str]:
            return [n.title for n in await marketplace.list_notifications(account)]

        assert "Contract Created" in await titles(parties["sender"])
        assert await titles(parties["receiver"]) == ["Incoming Shipment"]
        assert await titles(parties["courier"]) == ["New Assignment"]

    @pytest.mark.asyncio
    async def test_unverified_sender_blocked(self, marketplace, parties) -> None:
        with pytest.raises(KycRequiredError):
            await marketplace.open_shipment(
                parties["receiver"], parties["sender"], parties["courier"], PRICE
            )
        assert await marketplace.get_balance(parties["receiver"]) == SEED
        assert await marketplace.list_shipments() == []

    @pytest.mark.asyncio
    async def test_unregistered_sender_blocked(self, marketplace, parties) -> None:
        await marketplace.connect_identity("0xSTRANGER")
        with pytest.raises(KycRequiredError):
            await marketplace.open_shipment(
                "0xSTRANGER", parties["receiver"], parties["courier"], PRICE
            )

    @pytest.mark.asyncio
    async def test_insufficient_funds_writes_nothing(self, marketplace, parties) -> None:
        before = await marketplace.list_notifications(parties["receiver"])

        with pytest.raises(InsufficientFundsError):
            await _open(marketplace, parties, price=SEED + 1)

        assert await marketplace.get_balance(parties["sender"]) == SEED
        assert await marketplace.list_shipments() == []
        assert await marketplace.list_notifications(parties["receiver"]) == before

    @pytest.mark.asyncio
    @pytest.mark.parametrize("price", ["0", "-1"])
    async def test_non_positive_price_rejected(self, marketplace, parties, price: str) -> None:
        with pytest.raises(InvalidAmountError):
            await _open(marketplace, parties, price=Decimal(price))
        assert await marketplace.list_shipments() == []


class TestPurchase:
    @pytest.mark.asyncio
    async def test_purchase_creates_order(self, marketplace, parties, make_account) -> None:
        buyer = await make_account(marketplace, "0xBUYER")
        item = await marketplace.add_catalog_item(
            CatalogListing(seller=parties["sender"], title="Lamp", price=Decimal("0.15"))
        )

        order = await marketplace.purchase_item(item.id, buyer)

        assert order.id.startswith("ORD-")
        assert order.origin == ShipmentOrigin.PURCHASE
        assert order.sender == parties["sender"]
        assert order.receiver == buyer
        assert order.courier == "0xCOURIER"
        assert order.price == Decimal("0.15")
        assert order.title == "Order: Lamp"
        assert order.delivery_date == order.pickup_date + timedelta(days=3)
        assert order.pickup_date == date.today()
        assert order.history[0].location == "Marketplace"
        assert await marketplace.get_balance(buyer) == SEED - Decimal("0.15")
        # The seller is only paid on delivery
        assert await marketplace.get_balance(parties["sender"]) == SEED

    @pytest.mark.asyncio
    async def test_purchase_unknown_item(self, marketplace, make_account) -> None:
        buyer = await make_account(marketplace, "0xBUYER")
        with pytest.raises(ListingNotFoundError):
            await marketplace.purchase_item("ITM-NOPE", buyer)
        assert await marketplace.get_balance(buyer) == SEED

    @pytest.mark.asyncio
    async def test_purchase_requires_kyc(self, marketplace, parties) -> None:
        item = await marketplace.add_catalog_item(
            CatalogListing(seller=parties["sender"], title="Lamp", price=Decimal("0.15"))
        )
        with pytest.raises(KycRequiredError):
            await marketplace.purchase_item(item.id, parties["receiver"])

    @pytest.mark.asyncio
    async def test_delivered_purchase_pays_seller(self, marketplace, parties, make_account) -> None:
        buyer = await make_account(marketplace, "0xBUYER")
        item = await marketplace.add_catalog_item(
            CatalogListing(seller=parties["sender"], title="Lamp", price=Decimal("0.15"))
        )
        order = await marketplace.purchase_item(item.id, buyer)

        await marketplace.dispatch_shipment(order.id)
        await marketplace.advance_shipment(order.id, ShipmentStatus.DELIVERED, "Door", "")

        assert await marketplace.get_balance(parties["sender"]) == SEED + Decimal("0.15")
        assert await marketplace.get_balance(buyer) == SEED - Decimal("0.15")

    @pytest.mark.asyncio
    async def test_cancelled_purchase_refunds_buyer(self, marketplace, parties, make_account) -> None:
        buyer = await make_account(marketplace, "0xBUYER")
        item = await marketplace.add_catalog_item(
            CatalogListing(seller=parties["sender"], title="Lamp", price=Decimal("0.15"))
        )
        order = await marketplace.purchase_item(item.id, buyer)

        await marketplace.advance_shipment(order.id, ShipmentStatus.CANCELLED, "Hub", "")

        assert await marketplace.get_balance(buyer) == SEED
        assert await marketplace.get_balance(parties["sender"]) == SEED


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_happy_path_releases_to_sender(self, marketplace, parties) -> None:
        shipment = await _open(marketplace, parties)

        await marketplace.dispatch_shipment(shipment.id)
        await marketplace.advance_shipment(shipment.id, ShipmentStatus.OUT_FOR_DELIVERY, "Hub", "")
        done = await marketplace.advance_shipment(
            shipment.id, ShipmentStatus.DELIVERED, "Front Door", "Signed"
        )

        assert done.status == ShipmentStatus.DELIVERED
        assert done.payment_status == PaymentStatus.RELEASED
        assert [h.status for h in done.history] == [
            ShipmentStatus.PENDING,
            ShipmentStatus.IN_TRANSIT,
            ShipmentStatus.OUT_FOR_DELIVERY,
            ShipmentStatus.DELIVERED,
        ]
        assert done.history[-1].message.startswith("Signed | Escrow:")
        # Sender paid the escrow and received it back on delivery
        assert await marketplace.get_balance(parties["sender"]) == SEED
        notes = [n.title for n in await marketplace.list_notifications(parties["sender"])]
        assert notes[0] == "Shipment Update"
        assert "Funds Released" in notes
        assert "Delivery Confirmed" in [
            n.title for n in await marketplace.list_notifications(parties["courier"])
        ]

    @pytest.mark.asyncio
    async def test_cancellation_refunds_receiver(self, marketplace, parties) -> None:
        shipment = await _open(marketplace, parties)
        await marketplace.advance_shipment(shipment.id, ShipmentStatus.IN_TRANSIT, "Depot", "")

        cancelled = await marketplace.advance_shipment(
            shipment.id, ShipmentStatus.CANCELLED, "Depot", "Unreachable"
        )

        assert cancelled.payment_status == PaymentStatus.REFUNDED
        assert await marketplace.get_balance(parties["receiver"]) == SEED + PRICE
        assert await marketplace.get_balance(parties["sender"]) == SEED - PRICE
        titles = [n.title for n in await marketplace.list_notifications(parties["receiver"])]
        assert "Funds Refunded" in titles

    @pytest.mark.asyncio
    async def test_location_update_keeps_status(self, marketplace, parties) -> None:
        shipment = await _open(marketplace, parties)
        await marketplace.dispatch_shipment(shipment.id)

        updated = await marketplace.advance_shipment(
            shipment.id, ShipmentStatus.IN_TRANSIT, "Sorting Center", "Scanned"
        )

        assert updated.status == ShipmentStatus.IN_TRANSIT
        assert updated.payment_status == PaymentStatus.LOCKED
        assert updated.history[-1].location == "Sorting Center"
        assert len(updated.history) == 3

    @pytest.mark.asyncio
    async def test_status_accepts_plain_string(self, marketplace, parties) -> None:
        shipment = await _open(marketplace, parties)
        updated = await marketplace.advance_shipment(shipment.id, "OUT_FOR_DELIVERY", "Hub", "")
        assert updated.status == ShipmentStatus.OUT_FOR_DELIVERY


class TestRejectedTransitions:
    @pytest.mark.asyncio
    async def test_second_delivery_rejected(self, marketplace, parties) -> None:
        shipment = await _open(marketplace, parties)
        await marketplace.advance_shipment(shipment.id, ShipmentStatus.DELIVERED, "Door", "")
        balance = await marketplace.get_balance(parties["sender"])

        with pytest.raises(InvalidTransitionError):
            await marketplace.advance_shipment(shipment.id, ShipmentStatus.DELIVERED, "Door", "")

        assert await marketplace.get_balance(parties["sender"]) == balance
        assert len((await marketplace.get_shipment(shipment.id)).history) == 2

    @pytest.mark.asyncio
    async def test_cancel_after_delivery_rejected(self, marketplace, parties) -> None:
        shipment = await _open(marketplace, parties)
        await marketplace.advance_shipment(shipment.id, ShipmentStatus.DELIVERED, "Door", "")

        with pytest.raises(InvalidTransitionError):
            await marketplace.advance_shipment(shipment.id, ShipmentStatus.CANCELLED, "Door", "")

        assert await marketplace.get_balance(parties["receiver"]) == SEED

    @pytest.mark.asyncio
    async def test_back_to_pending_rejected(self, marketplace, parties) -> None:
        shipment = await _open(marketplace, parties)
        with pytest.raises(InvalidTransitionError):
            await marketplace.advance_shipment(shipment.id, ShipmentStatus.PENDING, "Hub", "")

    @pytest.mark.asyncio
    async def test_unknown_status_rejected(self, marketplace, parties) -> None:
        shipment = await _open(marketplace, parties)
        with pytest.raises(InvalidTransitionError):
            await marketplace.advance_shipment(shipment.id, "LOST", "Hub", "")

    @pytest.mark.asyncio
    async def test_dispatch_twice_rejected(self, marketplace, parties) -> None:
        shipment = await _open(marketplace, parties)
        await marketplace.dispatch_shipment(shipment.id)
        with pytest.raises(InvalidTransitionError):
            await marketplace.dispatch_shipment(shipment.id)

    @pytest.mark.asyncio
    async def test_unknown_shipment(self, marketplace) -> None:
        with pytest.raises(ShipmentNotFoundError):
            await marketplace.advance_shipment("SHP-NOPE", ShipmentStatus.DELIVERED, "Door", "")
        with pytest.raises(ShipmentNotFoundError):
            await marketplace.dispatch_shipment("SHP-NOPE")
        assert await marketplace.get_shipment("SHP-NOPE") is None


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_concurrent_purchases_cannot_overdraw(self, any_marketplace, make_account) -> None:
        svc = any_marketplace
        buyer = await make_account(svc, "0xBUYER")
        seller = await make_account(svc, "0xSELLER", UserRole.SELLER)
        price = SEED * Decimal("0.6")
        first = await svc.add_catalog_item(CatalogListing(seller=seller, title="A", price=price))
        second = await svc.add_catalog_item(CatalogListing(seller=seller, title="B", price=price))

        results = await asyncio.gather(
            svc.purchase_item(first.id, buyer),
            svc.purchase_item(second.id, buyer),
            return_exceptions=True,
        )

        failures = [r for r in results if isinstance(r, InsufficientFundsError)]
        assert len(failures) == 1
        assert len(await svc.list_shipments()) == 1
        assert await svc.get_balance(buyer) == SEED - price

    @pytest.mark.asyncio
    async def test_concurrent_terminal_updates_settle_once(self, any_marketplace, make_account) -> None:
        svc = any_marketplace
        sender = await make_account(svc, "0xSENDER", UserRole.SELLER)
        receiver = await make_account(svc, "0xRECEIVER", verified=False)
        shipment = await svc.open_shipment(sender, receiver, "0xCOURIER", PRICE)
        supply = await _supply(svc)

        results = await asyncio.gather(
            svc.advance_shipment(shipment.id, ShipmentStatus.DELIVERED, "Door", ""),
            svc.advance_shipment(shipment.id, ShipmentStatus.CANCELLED, "Door", ""),
            return_exceptions=True,
        )

        assert sum(isinstance(r, InvalidTransitionError) for r in results) == 1
        final = await svc.get_shipment(shipment.id)
        assert final.payment_status in (PaymentStatus.RELEASED, PaymentStatus.REFUNDED)
        assert await svc.get_balance(sender) + await svc.get_balance(receiver) == 2 * SEED
        assert await _supply(svc) == supply

    @pytest.mark.asyncio
    async def test_supply_is_conserved(self, any_marketplace, make_account) -> None:
        svc = any_marketplace
        sender = await make_account(svc, "0xSENDER", UserRole.SELLER)
        receiver = await make_account(svc, "0xRECEIVER")
        supply = await _supply(svc)

        shipments = [
            await svc.open_shipment(sender, receiver, "0xCOURIER", Decimal("1.5"))
            for _ in range(4)
        ]
        assert await _supply(svc) == supply

        await asyncio.gather(
            svc.advance_shipment(shipments[0].id, ShipmentStatus.DELIVERED, "Door", ""),
            svc.advance_shipment(shipments[1].id, ShipmentStatus.CANCELLED, "Hub", ""),
            svc.dispatch_shipment(shipments[2].id),
            svc.advance_shipment(shipments[3].id, ShipmentStatus.DELIVERED, "Door", ""),
        )

        assert await _supply(svc) == supply
        assert await svc.shipments.locked_total() == Decimal("1.5")


class TestIdAllocation:
    @pytest.mark.asyncio
    async def test_taken_id_is_never_overwritten(
        self, any_marketplace, make_account, monkeypatch
    ) -> None:
        svc = any_marketplace
        sender = await make_account(svc, "0xSENDER", UserRole.SELLER)
        ids = iter(["SHP-FIXED", "SHP-FIXED", "SHP-FIXED", "SHP-OTHER"])
        monkeypatch.setattr(
            "chainflow_escrow.services.shipment_service.generate_id", lambda prefix: next(ids)
        )

        first = await svc.open_shipment(sender, "0xRECEIVER", "0xCOURIER", Decimal("5"))
        second = await svc.open_shipment(sender, "0xRECEIVER", "0xCOURIER", Decimal("7"))

        assert (first.id, second.id) == ("SHP-FIXED", "SHP-OTHER")
        assert (await svc.get_shipment("SHP-FIXED")).price == Decimal("5")
        assert await svc.get_balance(sender) == SEED - Decimal("12")
        assert await svc.shipments.locked_total() == Decimal("12")

    @pytest.mark.asyncio
    async def test_generated_ids_are_full_uuids(self, marketplace, parties) -> None:
        shipment = await _open(marketplace, parties)
        assert len(shipment.id) == len("SHP-") + 32

    @pytest.mark.asyncio
    async def test_failed_lookups_leave_no_locks(self, marketplace) -> None:
        for i in range(100):
            with pytest.raises(ShipmentNotFoundError):
                await marketplace.dispatch_shipment(f"SHP-MISSING{i}")
        assert len(marketplace.store._locks) == 0


class TestReads:
    @pytest.mark.asyncio
    async def test_list_in_creation_order(self, marketplace, parties) -> None:
        a = await _open(marketplace, parties)
        b = await _open(marketplace, parties)
        assert [s.id for s in await marketplace.list_shipments()] == [a.id, b.id]

    @pytest.mark.asyncio
    async def test_allowed_targets(self, marketplace, parties) -> None:
        shipment = await _open(marketplace, parties)
        await marketplace.advance_shipment(shipment.id, ShipmentStatus.CANCELLED, "Hub", "")
        assert await marketplace.shipments.allowed_targets(shipment.id) == []


class TestWorkedExamples:
    @pytest.mark.asyncio
    async def test_purchase_of_ten(self, marketplace, make_account) -> None:
        buyer = await make_account(marketplace, "0xBUYER")
        seller = await make_account(marketplace, "0xSELLER", UserRole.SELLER)
        item = await marketplace.add_catalog_item(
            CatalogListing(seller=seller, title="Bike", price=Decimal("10"))
        )

        order = await marketplace.purchase_item(item.id, buyer)
        assert await marketplace.get_balance(buyer) == Decimal("90")

        await marketplace.dispatch_shipment(order.id)
        done = await marketplace.advance_shipment(order.id, ShipmentStatus.DELIVERED, "Door", "")

        assert await marketplace.get_balance(seller) == Decimal("110")
        assert (done.status, done.payment_status) == (
            ShipmentStatus.DELIVERED,
            PaymentStatus.RELEASED,
        )
        assert done.history[-1].status == done.status

    @pytest.mark.asyncio
    async def test_cancelled_contract_of_five(self, marketplace, make_account) -> None:
        a = await make_account(marketplace, "0xA", UserRole.SELLER)
        b = await make_account(marketplace, "0xB", verified=False)
        await marketplace.ledger.debit(a, Decimal("80"))

        shipment = await marketplace.open_shipment(a, b, "0xCOURIER", Decimal("5"))
        assert await marketplace.get_balance(a) == Decimal("15")

        cancelled = await marketplace.advance_shipment(
            shipment.id, ShipmentStatus.CANCELLED, "Hub", ""
        )

        assert cancelled.payment_status == PaymentStatus.REFUNDED
        assert await marketplace.get_balance(a) == Decimal("15")
        assert await marketplace.get_balance(b) == Decimal("105")
