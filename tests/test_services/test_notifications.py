"""Tests for the notification sink."""

from __future__ import annotations

import pytest

from chainflow_escrow.domain.enums import NotificationSeverity
from chainflow_escrow.services.notification_service import NotificationSink


@pytest.fixture
def sink(memory_store) -> NotificationSink:
    return NotificationSink(memory_store)


class TestNotificationSink:
    @pytest.mark.asyncio
    async def test_filtered_by_recipient(self, sink: NotificationSink) -> None:
        await sink.post("0xA", "Hello", "for A")
        await sink.post("0xB", "Hello", "for B")

        notes = await sink.list_for("0xA")
        assert [n.message for n in notes] == ["for A"]

    @pytest.mark.asyncio
    async def test_newest_first(self, sink: NotificationSink) -> None:
        for i in range(5):
            await sink.post("0xA", f"note {i}", "")

        titles = [n.title for n in await sink.list_for("0xA")]
        assert titles == ["note 4", "note 3", "note 2", "note 1", "note 0"]

    @pytest.mark.asyncio
    async def test_defaults(self, sink: NotificationSink) -> None:
        note = await sink.post("0xA", "Hi", "there")
        assert note.severity == NotificationSeverity.INFO
        assert note.read is False

    @pytest.mark.asyncio
    async def test_empty_for_unknown_recipient(self, sink: NotificationSink) -> None:
        assert await sink.list_for("0xNOBODY") == []

    @pytest.mark.asyncio
    async def test_staged_notes_dropped_with_failed_transaction(
        self, sink: NotificationSink, memory_store
    ) -> None:
        with pytest.raises(RuntimeError):
            async with memory_store.transaction() as txn:
                sink.stage_post(txn, "0xA", "Never", "sent")
                raise RuntimeError("rolled back")

        assert await sink.list_for("0xA") == []
