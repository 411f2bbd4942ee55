"""Notification Sink — append-only per-recipient event log.

Notifications are only ever produced as side effects of ledger, identity,
catalog and shipment operations. They are staged into the caller's store
transaction, so an operation that fails leaves no notification behind.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from chainflow_escrow.domain.enums import NotificationSeverity
from chainflow_escrow.infrastructure.store import Namespace
from chainflow_escrow.logging_config import get_logger
from chainflow_escrow.schemas.records import Notification

if TYPE_CHECKING:
    from chainflow_escrow.infrastructure.store import KeyValueStore, StoreTransaction

logger = get_logger(__name__)


class NotificationSink:
    """Posts and lists notifications."""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    def stage_post(
        self,
        txn: StoreTransaction,
        recipient: str,
        title: str,
        message: str,
        severity: NotificationSeverity = NotificationSeverity.INFO,
    ) -> Notification:
        """Stage a notification inside an open transaction."""
        note = Notification(
            recipient=recipient,
            title=title,
            message=message,
            severity=severity,
        )
        # Fresh id per note, so no lock is needed on the key.
        txn.put(Namespace.NOTIFICATIONS, note.id, note.to_store())
        logger.debug(
            "notification.staged",
            recipient=recipient,
            title=title,
            severity=severity.value,
        )
        return note

    async def post(
        self,
        recipient: str,
        title: str,
        message: str,
        severity: NotificationSeverity = NotificationSeverity.INFO,
    ) -> Notification:
        async with self._store.transaction() as txn:
            return self.stage_post(txn, recipient, title, message, severity)

    async def list_for(self, recipient: str) -> list[Notification]:
        """Notifications for one recipient, newest first."""
        notes = [
            Notification.model_validate(raw)
            for raw in await self._store.values(Namespace.NOTIFICATIONS)
            if raw.get("recipient") == recipient
        ]
        # Oldest-first stable sort then reverse: equal timestamps come out
        # latest-posted first.
        notes.sort(key=lambda n: n.timestamp)
        notes.reverse()
        return notes
