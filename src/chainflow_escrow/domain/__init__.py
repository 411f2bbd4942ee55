"""Domain layer — pure business rules with zero framework dependencies."""

from chainflow_escrow.domain.enums import (
    KycStatus,
    NotificationSeverity,
    PaymentStatus,
    ShipmentOrigin,
    ShipmentStatus,
    UserRole,
)
from chainflow_escrow.domain.exceptions import (
    EscrowLedgerError,
    ForbiddenError,
    InsufficientFundsError,
    InvalidTransitionError,
    KycRequiredError,
    NotFoundError,
)
from chainflow_escrow.domain.state_machine import ShipmentStateMachine

__all__ = [
    "KycStatus",
    "NotificationSeverity",
    "PaymentStatus",
    "ShipmentOrigin",
    "ShipmentStatus",
    "UserRole",
    "EscrowLedgerError",
    "ForbiddenError",
    "InsufficientFundsError",
    "InvalidTransitionError",
    "KycRequiredError",
    "NotFoundError",
    "ShipmentStateMachine",
]
