"""Domain exceptions for the ChainFlow escrow ledger.

These exceptions are framework-agnostic and represent business rule violations.
They are caught and translated to HTTP responses by the API layer's middleware.
Every core operation is all-or-nothing: when one of these is raised, the store
is left exactly as it was before the call.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from decimal import Decimal


class EscrowLedgerError(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str, code: str = "ESCROW_LEDGER_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(self.message)


# --- Ledger Errors ---


class InsufficientFundsError(EscrowLedgerError):
    """Raised when a debit exceeds the account balance."""

    def __init__(self, account: str, required: Decimal, available: Decimal) -> None:
        super().__init__(
            message=(
                f"Insufficient funds for {account}: "
                f"required {required}, available {available}"
            ),
            code="INSUFFICIENT_FUNDS",
        )
        self.account = account
        self.required = required
        self.available = available


class InvalidAmountError(EscrowLedgerError):
    """Raised when a ledger movement is requested for a non-positive amount."""

    def __init__(self, amount: Decimal) -> None:
        super().__init__(
            message=f"Amount must be greater than zero, got {amount}",
            code="INVALID_AMOUNT",
        )
        self.amount = amount


# --- Identity / Authorization Errors ---


class KycRequiredError(EscrowLedgerError):
    """Raised when an account without VERIFIED KYC tries to open an escrow."""

    def __init__(self, account: str, kyc_status: str | None) -> None:
        super().__init__(
            message=(
                f"KYC verification required for {account} "
                f"(current status: {kyc_status or 'UNREGISTERED'})"
            ),
            code="KYC_REQUIRED",
        )
        self.account = account
        self.kyc_status = kyc_status


class ForbiddenError(EscrowLedgerError):
    """Raised when the caller lacks ownership or the role an action needs."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="FORBIDDEN")


# --- State Machine Errors ---


class InvalidTransitionError(EscrowLedgerError):
    """Raised when an attempted shipment state change is not allowed.

    Example: DELIVERED -> IN_TRANSIT (DELIVERED is final).
    """

    def __init__(self, current_state: str, attempted_state: str) -> None:
        super().__init__(
            message=f"Invalid state transition: {current_state} -> {attempted_state}",
            code="INVALID_TRANSITION",
        )
        self.current_state = current_state
        self.attempted_state = attempted_state


# --- Lookup Errors ---


class NotFoundError(EscrowLedgerError):
    """Raised when an account, shipment or listing id does not exist."""

    def __init__(self, kind: str, identifier: str) -> None:
        super().__init__(
            message=f"{kind} not found: {identifier}",
            code="NOT_FOUND",
        )
        self.kind = kind
        self.identifier = identifier


class AccountNotFoundError(NotFoundError):
    def __init__(self, account: str) -> None:
        super().__init__("Account", account)


class ShipmentNotFoundError(NotFoundError):
    def __init__(self, shipment_id: str) -> None:
        super().__init__("Shipment", shipment_id)


class ListingNotFoundError(NotFoundError):
    def __init__(self, item_id: str) -> None:
        super().__init__("Listing", item_id)


# --- Idempotency Errors ---


class DuplicateOperationError(EscrowLedgerError):
    """Raised when a duplicate idempotency key is detected."""

    def __init__(self, idempotency_key: str) -> None:
        super().__init__(
            message=f"Duplicate operation detected for key: {idempotency_key}",
            code="DUPLICATE_OPERATION",
        )
        self.idempotency_key = idempotency_key
