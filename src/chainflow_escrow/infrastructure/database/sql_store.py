"""SQLAlchemy-backed KeyValueStore.

Each store transaction maps onto one AsyncSession:
    - reads inside the transaction select the row WITH FOR UPDATE
      (PostgreSQL row lock; SQLite omits the clause and relies on the
      in-process key locks plus its single-writer lock),
    - staged writes are flushed in ``_commit`` and committed together,
    - any failure rolls the session back, so no partial record is persisted.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import delete, select, text

from chainflow_escrow.infrastructure.database.engine import make_session_factory
from chainflow_escrow.infrastructure.database.orm_models import LedgerRecord
from chainflow_escrow.infrastructure.store import (
    KeyValueStore,
    Namespace,
    StoreTransaction,
)
from chainflow_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

logger = get_logger(__name__)


def _row_query(namespace: Namespace, key: str):
    return select(LedgerRecord).where(
        LedgerRecord.namespace == namespace.value,
        LedgerRecord.key == key,
    )


class _SqlTransaction(StoreTransaction):
    def __init__(self, store: SqlAlchemyStore) -> None:
        super().__init__(store._locks)
        self._session: AsyncSession = store._session_factory()

    async def _load(self, namespace: Namespace, key: str) -> dict | None:
        result = await self._session.execute(_row_query(namespace, key).with_for_update())
        row = result.scalar_one_or_none()
        return dict(row.value) if row is not None else None

    async def _commit(self) -> None:
        try:
            for namespace, key, value in self._writes():
                if value is None:
                    await self._session.execute(
                        delete(LedgerRecord).where(
                            LedgerRecord.namespace == namespace.value,
                            LedgerRecord.key == key,
                        )
                    )
                    continue
                result = await self._session.execute(_row_query(namespace, key))
                row = result.scalar_one_or_none()
                if row is None:
                    self._session.add(
                        LedgerRecord(namespace=namespace.value, key=key, value=value)
                    )
                else:
                    row.value = value
            await self._session.commit()
        except Exception:
            await self._session.rollback()
            logger.exception("store.sql_commit_failed", writes=self.pending_writes)
            raise
        finally:
            await self._session.close()

    async def _rollback(self) -> None:
        await super()._rollback()
        try:
            await self._session.rollback()
        finally:
            await self._session.close()


class SqlAlchemyStore(KeyValueStore):
    """Durable store over the ``ledger_records`` table."""

    backend = "sql"

    def __init__(self, engine: AsyncEngine) -> None:
        super().__init__()
        self._engine = engine
        self._session_factory = make_session_factory(engine)

    def _begin(self) -> StoreTransaction:
        return _SqlTransaction(self)

    async def get(self, namespace: Namespace, key: str) -> dict | None:
        async with self._session_factory() as session:
            result = await session.execute(_row_query(namespace, key))
            row = result.scalar_one_or_none()
            return dict(row.value) if row is not None else None

    async def values(self, namespace: Namespace) -> list[dict]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(LedgerRecord.value)
                .where(LedgerRecord.namespace == namespace.value)
                .order_by(LedgerRecord.seq.asc())
            )
            return [dict(value) for value in result.scalars().all()]

    async def ping(self) -> None:
        async with self._engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    async def close(self) -> None:
        await self._engine.dispose()
        logger.info("store.sql_closed")
