"""Database infrastructure — engine, ORM model, and the SQL-backed store."""

from chainflow_escrow.infrastructure.database.engine import (
    close_db,
    create_tables,
    get_session_factory,
    init_db,
)
from chainflow_escrow.infrastructure.database.orm_models import (
    Base,
    LedgerRecord,
)
from chainflow_escrow.infrastructure.database.sql_store import SqlAlchemyStore

__all__ = [
    "Base",
    "LedgerRecord",
    "SqlAlchemyStore",
    "close_db",
    "create_tables",
    "get_session_factory",
    "init_db",
]
