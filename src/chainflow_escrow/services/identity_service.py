"""Identity Registry — account profiles and the KYC gate."""

from __future__ import annotations

from typing import TYPE_CHECKING

from chainflow_escrow.domain.enums import KycStatus, NotificationSeverity, UserRole
from chainflow_escrow.domain.exceptions import AccountNotFoundError, KycRequiredError
from chainflow_escrow.infrastructure.store import Namespace
from chainflow_escrow.logging_config import get_logger
from chainflow_escrow.schemas.records import UserProfile

if TYPE_CHECKING:
    from chainflow_escrow.infrastructure.store import KeyValueStore, StoreTransaction
    from chainflow_escrow.services.notification_service import NotificationSink

logger = get_logger(__name__)

# Registrants may submit documents for review; every other change is an admin's.
_SELF_SERVICE_KYC: dict[KycStatus, set[KycStatus]] = {
    KycStatus.NOT_STARTED: {KycStatus.PENDING},
    KycStatus.REJECTED: {KycStatus.PENDING},
}

_KYC_MESSAGES: dict[KycStatus, tuple[str, NotificationSeverity]] = {
    KycStatus.VERIFIED: (
        "Your KYC documents have been verified. You have full access.",
        NotificationSeverity.SUCCESS,
    ),
    KycStatus.REJECTED: (
        "Your KYC verification was rejected. Please check your documents.",
        NotificationSeverity.ERROR,
    ),
    KycStatus.PENDING: (
        "Your KYC documents are under review.",
        NotificationSeverity.INFO,
    ),
    KycStatus.NOT_STARTED: (
        "Your KYC verification was reset. Please submit your documents again.",
        NotificationSeverity.WARNING,
    ),
}


class IdentityRegistry:
    """Stores profiles and decides who may originate an escrow."""

    def __init__(self, store: KeyValueStore, notifications: NotificationSink) -> None:
        self._store = store
        self._notifications = notifications

    async def register(self, profile: UserProfile, *, grant_admin: bool = False) -> UserProfile:
        """Create or replace a profile (idempotent by account).

        The stored ``kyc_status`` only changes here when the registrant
        submits documents (NOT_STARTED/REJECTED -> PENDING). The ADMIN role
        cannot be self-assigned: without ``grant_admin`` a request for it
        keeps the stored role (BUYER for a new account).
        """
        async with self._store.transaction((Namespace.PROFILES, profile.account)) as txn:
            raw = await txn.get(Namespace.PROFILES, profile.account)
            existing = UserProfile.model_validate(raw) if raw is not None else None
            current = existing.kyc_status if existing else KycStatus.NOT_STARTED
            requested = profile.kyc_status
            kyc_status = (
                requested if requested in _SELF_SERVICE_KYC.get(current, set()) else current
            )
            role = profile.role
            if role == UserRole.ADMIN and not grant_admin:
                role = existing.role if existing else UserRole.BUYER
            stored = profile.model_copy(update={"kyc_status": kyc_status, "role": role})
            txn.put(Namespace.PROFILES, stored.account, stored.to_store())

        logger.info(
            "identity.registered",
            account=stored.account,
            role=stored.role.value,
            created=raw is None,
            kyc_status=stored.kyc_status.value,
        )
        return stored

    async def lookup(self, account: str) -> UserProfile | None:
        raw = await self._store.get(Namespace.PROFILES, account)
        return UserProfile.model_validate(raw) if raw is not None else None

    async def list_profiles(self) -> list[UserProfile]:
        return [
            UserProfile.model_validate(raw)
            for raw in await self._store.values(Namespace.PROFILES)
        ]

    async def set_kyc(self, account: str, status: KycStatus) -> UserProfile:
        """Set an account's KYC status and notify the account.

        Role enforcement (ADMIN only) is the caller's job.
        """
        async with self._store.transaction((Namespace.PROFILES, account)) as txn:
            raw = await txn.get(Namespace.PROFILES, account)
            if raw is None:
                raise AccountNotFoundError(account)
            profile = UserProfile.model_validate(raw)
            previous = profile.kyc_status
            profile.kyc_status = status
            txn.put(Namespace.PROFILES, account, profile.to_store())

            message, severity = _KYC_MESSAGES[status]
            self._notifications.stage_post(
                txn, account, "KYC Status Update", message, severity
            )

        logger.info(
            "identity.kyc_updated",
            account=account,
            old_status=previous.value,
            new_status=status.value,
        )
        return profile

    async def require_verified(self, txn: StoreTransaction, account: str) -> UserProfile:
        """KYC gate: raise KycRequiredError unless the account is VERIFIED."""
        raw = await txn.get(Namespace.PROFILES, account)
        profile = UserProfile.model_validate(raw) if raw is not None else None
        if profile is None or profile.kyc_status != KycStatus.VERIFIED:
            status = profile.kyc_status.value if profile is not None else None
            logger.warning("identity.kyc_gate_blocked", account=account, kyc_status=status)
            raise KycRequiredError(account, status)
        return profile
