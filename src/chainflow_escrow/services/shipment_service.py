"""Shipment Ledger — the escrow state machine.

This is the only writer of shipment records and the only component that
moves funds on behalf of an escrow. Each operation runs as one store
transaction that:
    1. locks the shipment (and, when needed, the paying/receiving account),
    2. validates the transition through ShipmentStateMachine,
    3. stages the shipment rewrite, the ledger debit/credit and the
       notifications together.
If any step raises, nothing is written: status, payment status, history,
balances and notifications move together or not at all.

Fund routing follows the shipment fields, whatever the creation path:
    open / open_from_purchase : payer is debited, payment LOCKED
    DELIVERED                  : price credited to ``sender``   (RELEASED)
    CANCELLED                  : price credited to ``receiver`` (REFUNDED)
"""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

from statemachine.exceptions import TransitionNotAllowed

from chainflow_escrow.domain.enums import (
    NotificationSeverity,
    PaymentStatus,
    ShipmentOrigin,
    ShipmentStatus,
)
from chainflow_escrow.domain.exceptions import (
    InvalidTransitionError,
    ShipmentNotFoundError,
)
from chainflow_escrow.domain.state_machine import TARGET_EVENTS, ShipmentStateMachine
from chainflow_escrow.infrastructure.store import Namespace
from chainflow_escrow.logging_config import get_logger
from chainflow_escrow.schemas.records import Shipment, generate_id
from chainflow_escrow.services.ledger_service import require_positive_amount

if TYPE_CHECKING:
    from chainflow_escrow.infrastructure.store import KeyValueStore, StoreTransaction
    from chainflow_escrow.services.catalog_service import CatalogStore
    from chainflow_escrow.services.identity_service import IdentityRegistry
    from chainflow_escrow.services.ledger_service import LedgerService
    from chainflow_escrow.services.notification_service import NotificationSink

logger = get_logger(__name__)

PURCHASE_DELIVERY_DAYS = 3
PURCHASE_WEIGHT = 1.0


class ShipmentLedger:
    """Creates shipments, locks their funds and settles them."""

    def __init__(
        self,
        store: KeyValueStore,
        ledger: LedgerService,
        identity: IdentityRegistry,
        catalog: CatalogStore,
        notifications: NotificationSink,
        default_courier: str,
    ) -> None:
        self._store = store
        self._ledger = ledger
        self._identity = identity
        self._catalog = catalog
        self._notifications = notifications
        self.default_courier = default_courier

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def open(
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
        """Open a P2P shipment contract paid by ``sender``."""
        price = require_positive_amount(price)

        async with self._store.transaction(
            (Namespace.PROFILES, sender),
            (Namespace.BALANCES, sender),
        ) as txn:
            await self._identity.require_verified(txn, sender)
            await self._ledger.stage_debit(txn, sender, price)

            shipment = Shipment(
                id=await self._new_id(txn, "SHP"),
                origin=ShipmentOrigin.CONTRACT,
                sender=sender,
                receiver=receiver,
                courier=courier,
                title=title,
                description=description,
                category=category,
                weight=weight,
                pickup_date=pickup_date,
                delivery_date=delivery_date,
                price=price,
            )
            shipment.record(
                ShipmentStatus.PENDING, "Origin", "Escrow initialized and funds locked"
            )
            txn.put(Namespace.SHIPMENTS, shipment.id, shipment.to_store())

            notify = self._notifications.stage_post
            notify(
                txn, sender, "Contract Created",
                f"Shipment {shipment.id} created. {price} locked in escrow.",
                NotificationSeverity.SUCCESS,
            )
            notify(
                txn, receiver, "Incoming Shipment",
                f"You have a new incoming shipment {shipment.id}.",
                NotificationSeverity.INFO,
            )
            notify(
                txn, courier, "New Assignment",
                f"Shipment {shipment.id} assigned. {price} is held until delivery.",
                NotificationSeverity.WARNING,
            )

        logger.info(
            "shipment.opened",
            shipment_id=shipment.id,
            origin=shipment.origin.value,
            payer=sender,
            price=str(price),
        )
        return shipment

    async def open_from_purchase(self, item_id: str, buyer: str) -> Shipment:
        """Turn a catalog purchase into a shipment paid by ``buyer``.

        The listing's seller becomes ``sender`` (paid on delivery) and the
        buyer becomes ``receiver`` (refunded on cancellation).
        """
        async with self._store.transaction(
            (Namespace.CATALOG, item_id),
            (Namespace.PROFILES, buyer),
            (Namespace.BALANCES, buyer),
        ) as txn:
            await self._identity.require_verified(txn, buyer)
            item = await self._catalog.load(txn, item_id)
            await self._ledger.stage_debit(txn, buyer, item.price)

            today = date.today()
            shipment = Shipment(
                id=await self._new_id(txn, "ORD"),
                origin=ShipmentOrigin.PURCHASE,
                sender=item.seller,
                receiver=buyer,
                courier=self.default_courier,
                title=f"Order: {item.title}",
                description=item.description,
                category=item.category,
                weight=PURCHASE_WEIGHT,
                pickup_date=today,
                delivery_date=today + timedelta(days=PURCHASE_DELIVERY_DAYS),
                price=item.price,
            )
            shipment.record(
                ShipmentStatus.PENDING,
                "Marketplace",
                "Order placed and funds locked. Waiting for seller approval.",
            )
            txn.put(Namespace.SHIPMENTS, shipment.id, shipment.to_store())

            notify = self._notifications.stage_post
            notify(
                txn, buyer, "Order Confirmed",
                f"You purchased {item.title}. {item.price} locked in escrow.",
                NotificationSeverity.SUCCESS,
            )
            notify(
                txn, item.seller, "New Sale",
                f"Order received for {item.title}. Please approve shipment.",
                NotificationSeverity.SUCCESS,
            )
            notify(
                txn, shipment.courier, "New Assignment",
                f"Order {shipment.id} assigned for delivery.",
                NotificationSeverity.WARNING,
            )

        logger.info(
            "shipment.purchased",
            shipment_id=shipment.id,
            item_id=item_id,
            payer=buyer,
            seller=item.seller,
            price=str(item.price),
        )
        return shipment

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def dispatch(self, shipment_id: str) -> Shipment:
        """Seller hands the package over: PENDING -> IN_TRANSIT."""
        async with self._store.transaction((Namespace.SHIPMENTS, shipment_id)) as txn:
            shipment = await self._load(txn, shipment_id)
            self._fire_transition(shipment, "dispatch", ShipmentStatus.IN_TRANSIT)

            shipment.record(
                ShipmentStatus.IN_TRANSIT,
                "Seller Warehouse",
                "Seller approved and dispatched package to courier",
            )
            txn.put(Namespace.SHIPMENTS, shipment.id, shipment.to_store())

            notify = self._notifications.stage_post
            notify(
                txn, shipment.receiver, "Order Shipped",
                f"Your order {shipment.title or shipment.id} has been shipped!",
                NotificationSeverity.SUCCESS,
            )
            notify(
                txn, shipment.courier, "Package Ready",
                f"Package {shipment.id} is ready for pickup.",
                NotificationSeverity.WARNING,
            )
            notify(
                txn, shipment.sender, "Dispatch Confirmed",
                f"You have approved order {shipment.id}.",
                NotificationSeverity.INFO,
            )

        logger.info("shipment.dispatched", shipment_id=shipment_id)
        return shipment

    async def advance(
        self,
        shipment_id: str,
        new_status: ShipmentStatus | str,
        location: str,
        message: str,
    ) -> Shipment:
        """Courier-driven status update, settling the escrow on terminal states."""
        async with self._store.transaction((Namespace.SHIPMENTS, shipment_id)) as txn:
            shipment = await self._load(txn, shipment_id)
            old_status = shipment.status
            target = self._resolve_target(shipment, new_status)
            self._fire_transition(shipment, TARGET_EVENTS[target], target)

            payment_note = await self._settle(txn, shipment, target)
            shipment.record(target, location, message + payment_note)
            txn.put(Namespace.SHIPMENTS, shipment.id, shipment.to_store())

            update = f"Shipment {shipment.id} is now {target.value}."
            self._notifications.stage_post(
                txn, shipment.sender, "Shipment Update", update + payment_note
            )
            self._notifications.stage_post(
                txn, shipment.receiver, "Shipment Update", update
            )

        logger.info(
            "shipment.advanced",
            shipment_id=shipment_id,
            old_status=old_status.value,
            new_status=target.value,
            payment_status=shipment.payment_status.value,
            location=location,
        )
        return shipment

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, shipment_id: str) -> Shipment | None:
        raw = await self._store.get(Namespace.SHIPMENTS, shipment_id)
        return Shipment.model_validate(raw) if raw is not None else None

    async def list_all(self) -> list[Shipment]:
        """Every shipment in creation order."""
        return [
            Shipment.model_validate(raw)
            for raw in await self._store.values(Namespace.SHIPMENTS)
        ]

    async def allowed_targets(self, shipment_id: str) -> list[ShipmentStatus]:
        shipment = await self.get(shipment_id)
        if shipment is None:
            raise ShipmentNotFoundError(shipment_id)
        return ShipmentStateMachine(current_status=shipment.status).get_allowed_targets()

    async def locked_total(self) -> Decimal:
        """Funds currently held in escrow across all shipments."""
        return sum(
            (s.price for s in await self.list_all() if s.payment_status == PaymentStatus.LOCKED),
            Decimal("0"),
        )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    async def _new_id(txn: StoreTransaction, prefix: str) -> str:
        """Generate a shipment id that no stored shipment uses, locking it."""
        while True:
            shipment_id = generate_id(prefix)
            if (
                await txn.claim(Namespace.SHIPMENTS, shipment_id)
                and await txn.get(Namespace.SHIPMENTS, shipment_id) is None
            ):
                return shipment_id
            logger.warning("shipment.id_collision", shipment_id=shipment_id)

    async def _load(self, txn: StoreTransaction, shipment_id: str) -> Shipment:
        raw = await txn.get(Namespace.SHIPMENTS, shipment_id)
        if raw is None:
            raise ShipmentNotFoundError(shipment_id)
        return Shipment.model_validate(raw)

    @staticmethod
    def _resolve_target(shipment: Shipment, new_status: ShipmentStatus | str) -> ShipmentStatus:
        try:
            target = ShipmentStatus(new_status)
        except ValueError as err:
            raise InvalidTransitionError(shipment.status.value, str(new_status)) from err
        if target not in TARGET_EVENTS:
            raise InvalidTransitionError(shipment.status.value, target.value)
        return target

    @staticmethod
    def _fire_transition(shipment: Shipment, event_name: str, target: ShipmentStatus) -> None:
        """Validate a transition through the state machine guard.

        Raises InvalidTransitionError if the transition is illegal.
        """
        sm = ShipmentStateMachine(current_status=shipment.status.value)
        try:
            getattr(sm, event_name)()
        except TransitionNotAllowed as err:
            raise InvalidTransitionError(shipment.status.value, target.value) from err

    async def _settle(
        self,
        txn: StoreTransaction,
        shipment: Shipment,
        target: ShipmentStatus,
    ) -> str:
        """Release or refund the escrow when ``target`` is terminal.

        Returns the payment note appended to the history message. A payment
        that is no longer LOCKED is never moved again.
        """
        if shipment.payment_status != PaymentStatus.LOCKED or not target.is_terminal:
            return ""

        notify = self._notifications.stage_post
        if target == ShipmentStatus.DELIVERED:
            await self._ledger.stage_credit(txn, shipment.sender, shipment.price)
            shipment.payment_status = PaymentStatus.RELEASED
            notify(
                txn, shipment.sender, "Funds Released",
                f"Shipment delivered! {shipment.price} released to your wallet.",
                NotificationSeverity.SUCCESS,
            )
            notify(
                txn, shipment.courier, "Delivery Confirmed",
                f"Delivery of {shipment.id} recorded successfully.",
                NotificationSeverity.SUCCESS,
            )
            logger.info(
                "shipment.funds_released",
                shipment_id=shipment.id,
                payee=shipment.sender,
                amount=str(shipment.price),
            )
            return f" | Escrow: {shipment.price} released to {shipment.sender}."

        await self._ledger.stage_credit(txn, shipment.receiver, shipment.price)
        shipment.payment_status = PaymentStatus.REFUNDED
        notify(
            txn, shipment.receiver, "Funds Refunded",
            f"Order cancelled. {shipment.price} refunded to your wallet.",
            NotificationSeverity.WARNING,
        )
        logger.info(
            "shipment.funds_refunded",
            shipment_id=shipment.id,
            payee=shipment.receiver,
            amount=str(shipment.price),
        )
        return f" | Escrow: {shipment.price} refunded to {shipment.receiver}."
