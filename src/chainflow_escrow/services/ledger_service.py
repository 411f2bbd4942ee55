"""Ledger Service — single-asset balance accounting.

Balances live under the ``balances`` namespace, one record per account.
Every mutation runs in a store transaction holding the account's key lock,
so two debits against one account are strictly ordered and the second one
sees the first one's result (no overdraft through a race).

The ``stage_*`` methods perform the same checks and writes inside a
transaction opened by the caller; the shipment ledger uses them to tie a
debit or credit to a shipment state change.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from chainflow_escrow.domain.exceptions import InsufficientFundsError, InvalidAmountError
from chainflow_escrow.infrastructure.store import Namespace
from chainflow_escrow.logging_config import get_logger
from chainflow_escrow.schemas.records import AccountBalance, utcnow

if TYPE_CHECKING:
    from chainflow_escrow.infrastructure.store import KeyValueStore, StoreTransaction

logger = get_logger(__name__)

ZERO = Decimal("0")


def require_positive_amount(amount: Decimal) -> Decimal:
    amount = Decimal(amount)
    if not amount.is_finite() or amount <= ZERO:
        raise InvalidAmountError(amount)
    return amount


class LedgerService:
    """Account balances with atomic debit, credit and transfer."""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_balance(self, account: str) -> Decimal:
        """Current balance, 0 for an account never seen before."""
        raw = await self._store.get(Namespace.BALANCES, account)
        if raw is None:
            return ZERO
        return AccountBalance.model_validate(raw).balance

    async def total_supply(self) -> Decimal:
        """Sum of every account balance (escrowed funds excluded)."""
        return sum(
            (AccountBalance.model_validate(raw).balance
             for raw in await self._store.values(Namespace.BALANCES)),
            ZERO,
        )

    # ------------------------------------------------------------------
    # Staged mutations (caller owns the transaction)
    # ------------------------------------------------------------------

    async def _load(self, txn: StoreTransaction, account: str) -> AccountBalance | None:
        raw = await txn.get(Namespace.BALANCES, account)
        return AccountBalance.model_validate(raw) if raw is not None else None

    async def stage_credit(
        self, txn: StoreTransaction, account: str, amount: Decimal
    ) -> Decimal:
        amount = require_positive_amount(amount)
        record = await self._load(txn, account) or AccountBalance(account=account)
        record.balance = record.balance + amount
        record.updated_at = utcnow()
        txn.put(Namespace.BALANCES, account, record.to_store())
        return record.balance

    async def stage_debit(
        self, txn: StoreTransaction, account: str, amount: Decimal
    ) -> Decimal:
        amount = require_positive_amount(amount)
        record = await self._load(txn, account)
        available = record.balance if record is not None else ZERO
        if record is None or amount > available:
            raise InsufficientFundsError(account, required=amount, available=available)
        record.balance = available - amount
        record.updated_at = utcnow()
        txn.put(Namespace.BALANCES, account, record.to_store())
        return record.balance

    # ------------------------------------------------------------------
    # Standalone operations
    # ------------------------------------------------------------------

    async def credit(self, account: str, amount: Decimal) -> Decimal:
        async with self._store.transaction((Namespace.BALANCES, account)) as txn:
            balance = await self.stage_credit(txn, account, amount)
        logger.info("ledger.credited", account=account, amount=str(amount), balance=str(balance))
        return balance

    async def debit(self, account: str, amount: Decimal) -> Decimal:
        async with self._store.transaction((Namespace.BALANCES, account)) as txn:
            balance = await self.stage_debit(txn, account, amount)
        logger.info("ledger.debited", account=account, amount=str(amount), balance=str(balance))
        return balance

    async def transfer(self, source: str, destination: str, amount: Decimal) -> None:
        """Move funds between two accounts as one atomic unit.

        Both account locks are taken up front in a fixed order, so opposing
        transfers (A->B and B->A) cannot deadlock.
        """
        async with self._store.transaction(
            (Namespace.BALANCES, source),
            (Namespace.BALANCES, destination),
        ) as txn:
            await self.stage_debit(txn, source, amount)
            await self.stage_credit(txn, destination, amount)
        logger.info(
            "ledger.transferred",
            source=source,
            destination=destination,
            amount=str(amount),
        )

    async def provision(self, account: str, seed: Decimal) -> bool:
        """Credit the seed balance the first time an account is seen.

        The balance record itself marks the account as provisioned, so an
        account that later spends down to 0 is never re-seeded.
        Returns True if the seed was credited by this call.
        """
        async with self._store.transaction((Namespace.BALANCES, account)) as txn:
            if await txn.get(Namespace.BALANCES, account) is not None:
                return False
            record = AccountBalance(account=account, balance=Decimal(seed))
            txn.put(Namespace.BALANCES, account, record.to_store())
        logger.info("ledger.account_provisioned", account=account, seed=str(seed))
        return True
