"""Domain enumerations for the ChainFlow escrow ledger.

These enums define the canonical states and types used throughout the system.
They are framework-agnostic (no SQLAlchemy, no FastAPI imports).
"""

from __future__ import annotations

import enum


class UserRole(enum.StrEnum):
    """Marketplace role of a registered account."""

    GUEST = "GUEST"
    BUYER = "BUYER"
    SELLER = "SELLER"
    COURIER = "COURIER"
    ADMIN = "ADMIN"

    @classmethod
    def _missing_(cls, value: object) -> UserRole | None:
        # "USER" is what older clients send for a plain buyer account
        if isinstance(value, str) and value.upper() == "USER":
            return cls.BUYER
        return None


class KycStatus(enum.StrEnum):
    """Identity verification state. Only VERIFIED accounts may open escrows."""

    NOT_STARTED = "NOT_STARTED"
    PENDING = "PENDING"
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"


class ShipmentStatus(enum.StrEnum):
    """Lifecycle states of a shipment.

    Transitions are enforced by the ShipmentStateMachine guard.
    See domain/state_machine.py for the transition table.
    """

    PENDING = "PENDING"
    IN_TRANSIT = "IN_TRANSIT"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in (ShipmentStatus.DELIVERED, ShipmentStatus.CANCELLED)


class PaymentStatus(enum.StrEnum):
    """Escrow state of the funds held against a shipment.

    LOCKED moves to exactly one of RELEASED or REFUNDED, never back.
    """

    LOCKED = "LOCKED"
    RELEASED = "RELEASED"
    REFUNDED = "REFUNDED"


class ShipmentOrigin(enum.StrEnum):
    """How a shipment was created.

    CONTRACT: a manual P2P contract, the sender is the shipper who paid.
    PURCHASE: a marketplace order, the sender is the seller and the receiver
    is the buyer who paid.
    """

    CONTRACT = "CONTRACT"
    PURCHASE = "PURCHASE"


class NotificationSeverity(enum.StrEnum):
    INFO = "INFO"
    SUCCESS = "SUCCESS"
    WARNING = "WARNING"
    ERROR = "ERROR"
