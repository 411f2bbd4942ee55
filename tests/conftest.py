"""Shared test fixtures for the ChainFlow escrow ledger test suite.

Provides:
    - Settings with a known seed balance
    - An in-memory store and a SQLite-backed SQLAlchemy store
    - A MarketplaceService wired over either store
    - Helpers that create connected, KYC-verified accounts
    - Async test support via pytest-asyncio
"""

from __future__ import annotations

from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine

from chainflow_escrow.config import Settings
from chainflow_escrow.domain.enums import KycStatus, UserRole
from chainflow_escrow.infrastructure.database import SqlAlchemyStore, create_tables
from chainflow_escrow.infrastructure.store import InMemoryStore
from chainflow_escrow.schemas.records import UserProfile
from chainflow_escrow.services.marketplace_service import MarketplaceService

ADMIN = "0xADMIN"
SEED = Decimal("100")

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    """Return settings independent of any .env file on the machine."""
    return Settings(
        _env_file=None,
        store_backend="memory",
        seed_balance=SEED,
        default_courier="0xCOURIER",
        seed_demo_catalog=False,
    )


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------


@pytest.fixture
def memory_store() -> InMemoryStore:
    return InMemoryStore()


@pytest_asyncio.fixture
async def sql_store(tmp_path) -> SqlAlchemyStore:
    """A SQLAlchemyStore over a throwaway SQLite file."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    await create_tables(engine)
    store = SqlAlchemyStore(engine)
    yield store
    await store.close()


@pytest_asyncio.fixture(params=["memory", "sql"])
async def store(request, tmp_path):
    """Parametrized over both backends."""
    if request.param == "memory":
        yield InMemoryStore()
        return
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    await create_tables(engine)
    sql = SqlAlchemyStore(engine)
    yield sql
    await sql.close()


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def marketplace(memory_store, settings) -> MarketplaceService:
    svc = MarketplaceService(memory_store, settings)
    await svc.register_admin(ADMIN)
    return svc


@pytest_asyncio.fixture
async def any_marketplace(store, settings) -> MarketplaceService:
    """MarketplaceService over each store backend in turn."""
    svc = MarketplaceService(store, settings)
    await svc.register_admin(ADMIN)
    return svc


async def onboard(
    svc: MarketplaceService,
    account: str,
    role: UserRole = UserRole.BUYER,
    verified: bool = True,
) -> str:
    """Connect an account (seeding its balance), register it and verify KYC."""
    await svc.connect_identity(account)
    await svc.register_profile(
        UserProfile(account=account, name=account, role=role, kyc_status=KycStatus.PENDING)
    )
    if verified:
        await svc.set_kyc(account, KycStatus.VERIFIED, actor=ADMIN)
    return account


@pytest_asyncio.fixture
async def parties(marketplace) -> dict[str, str]:
    """A verified sender, plus a receiver and courier who never pass KYC."""
    return {
        "sender": await onboard(marketplace, "0xSENDER", UserRole.SELLER),
        "receiver": await onboard(marketplace, "0xRECEIVER", verified=False),
        "courier": await onboard(marketplace, "0xCOURIER", UserRole.COURIER, verified=False),
    }


@pytest.fixture
def admin() -> str:
    return ADMIN


@pytest.fixture
def make_account():
    """Return the ``onboard`` helper for tests that need extra accounts."""
    return onboard
