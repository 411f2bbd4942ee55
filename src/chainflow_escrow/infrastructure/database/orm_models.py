"""SQLAlchemy 2.0 ORM models for the ChainFlow escrow ledger.

One table:
    ledger_records — every stored record, keyed by (namespace, key).

Design decisions:
    - The five entity namespaces (balances, profiles, catalog, shipments,
      notifications) share one key-value table; record shapes are owned by the
      pydantic models in schemas/records.py, not by columns.
    - An autoincrement ``seq`` gives a stable insertion order for listings.
    - JSON column (JSONB on PostgreSQL) for the record body.
    - CHECK constraint on namespace to reject unknown keyspaces at DB level.
"""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class LedgerRecord(Base):
    """A single JSON record in one of the entity namespaces."""

    __tablename__ = "ledger_records"

    # --- Primary Key ---
    seq: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )

    # --- Key ---
    namespace: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="Entity namespace (balances, profiles, catalog, shipments, notifications)",
    )
    key: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        comment="Record identifier within the namespace",
    )

    # --- Body ---
    value: Mapped[dict] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"),
        nullable=False,
        comment="JSON-serialized record",
    )

    # --- Timestamps ---
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    # --- Table Constraints & Indexes ---
    __table_args__ = (
        UniqueConstraint("namespace", "key", name="uq_record_namespace_key"),
        CheckConstraint(
            "namespace IN ('balances', 'profiles', 'catalog', 'shipments', 'notifications')",
            name="ck_record_valid_namespace",
        ),
        Index("idx_record_namespace", "namespace"),
    )

    def __repr__(self) -> str:
        return f"<LedgerRecord {self.namespace}:{self.key} seq={self.seq}>"
