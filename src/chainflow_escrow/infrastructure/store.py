"""Key-value store with per-key serialized, all-or-nothing transactions.

Every service writes through a ``KeyValueStore``. A transaction:

    async with store.transaction((Namespace.BALANCES, "0xabc")) as txn:
        record = await txn.get(Namespace.BALANCES, "0xabc")
        txn.put(Namespace.BALANCES, "0xabc", {...})

    1. Locks each key it touches with a per-key asyncio.Lock. Keys passed to
       ``transaction()`` are locked up front in sorted order; keys read later
       with ``txn.get()`` / ``txn.acquire()`` are locked on first use.
    2. Stages every put/delete in memory. Reads inside the transaction see
       the staged values.
    3. Commits all staged writes at once on a clean exit, or drops them if the
       block raises. Locks are released either way.

Lazy locking order: the only lazily acquired cross-namespace lock is
shipments -> balances (a shipment transition crediting an account). New
shipment ids are taken with ``txn.claim()``, which never waits, so nothing
holds a balance lock while waiting on a shipment lock and no cycle exists.

Backends:
    - InMemoryStore (this module)
    - SqlAlchemyStore (infrastructure/database/sql_store.py)
"""

from __future__ import annotations

import asyncio
import copy
import enum
from collections.abc import Callable
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from chainflow_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterable

logger = get_logger(__name__)

_DELETED = object()


class Namespace(enum.StrEnum):
    """The five entity keyspaces."""

    BALANCES = "balances"
    PROFILES = "profiles"
    CATALOG = "catalog"
    SHIPMENTS = "shipments"
    NOTIFICATIONS = "notifications"


KeyRef = tuple[Namespace, str]


def _lock_name(ref: KeyRef) -> str:
    namespace, key = ref
    return f"{namespace.value}:{key}"


class KeyedLocks:
    """One asyncio.Lock per key, kept only while a transaction holds or awaits it."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def __contains__(self, name: object) -> bool:
        return name in self._locks

    async def acquire(self, name: str) -> None:
        lock = self._locks.get(name)
        if lock is None:
            lock = self._locks[name] = asyncio.Lock()
        self._users[name] = self._users.get(name, 0) + 1
        try:
            await lock.acquire()
        except BaseException:
            self._discard(name)
            raise

    def release(self, name: str) -> None:
        self._locks[name].release()
        self._discard(name)

    def _discard(self, name: str) -> None:
        users = self._users[name] - 1
        if users:
            self._users[name] = users
        else:
            del self._users[name]
            del self._locks[name]


class StoreTransaction:
    """Unit of work over a store: per-key locks plus staged writes.

    Subclasses provide ``_load`` (read committed value) and ``_commit``
    (apply every staged write atomically).
    """

    def __init__(self, locks: KeyedLocks) -> None:
        self._locks = locks
        self._held: list[str] = []
        self._staged: dict[KeyRef, Any] = {}

    # --- locking ---

    async def acquire(self, namespace: Namespace, key: str) -> None:
        """Lock a key for the rest of the transaction (no-op if already held)."""
        name = _lock_name((namespace, key))
        if name in self._held:
            return
        await self._locks.acquire(name)
        self._held.append(name)

    async def claim(self, namespace: Namespace, key: str) -> bool:
        """Lock a key only if no other transaction holds or awaits it.

        Never waits, so it is safe to call while holding any other lock.
        """
        name = _lock_name((namespace, key))
        if name in self._held:
            return True
        if name in self._locks:
            return False
        await self.acquire(namespace, key)
        return True

    async def acquire_all(self, refs: Iterable[KeyRef]) -> None:
        for ref in sorted(set(refs), key=_lock_name):
            await self.acquire(*ref)

    def release_all(self) -> None:
        while self._held:
            self._locks.release(self._held.pop())

    # --- reads / writes ---

    async def get(self, namespace: Namespace, key: str) -> dict | None:
        await self.acquire(namespace, key)
        ref = (namespace, key)
        if ref in self._staged:
            staged = self._staged[ref]
            return None if staged is _DELETED else copy.deepcopy(staged)
        return await self._load(namespace, key)

    def put(self, namespace: Namespace, key: str, value: dict) -> None:
        self._staged[(namespace, key)] = copy.deepcopy(value)

    def delete(self, namespace: Namespace, key: str) -> None:
        self._staged[(namespace, key)] = _DELETED

    @property
    def pending_writes(self) -> int:
        return len(self._staged)

    def _writes(self) -> list[tuple[Namespace, str, dict | None]]:
        return [
            (namespace, key, None if value is _DELETED else value)
            for (namespace, key), value in self._staged.items()
        ]

    # --- backend hooks ---

    async def _load(self, namespace: Namespace, key: str) -> dict | None:
        raise NotImplementedError

    async def _commit(self) -> None:
        raise NotImplementedError

    async def _rollback(self) -> None:
        """Discard backend state. Staged writes are simply dropped."""
        self._staged.clear()


class KeyValueStore:
    """Interface shared by every store backend."""

    backend = "unknown"

    def __init__(self) -> None:
        self._locks = KeyedLocks()

    # --- snapshot reads (no locks) ---

    async def get(self, namespace: Namespace, key: str) -> dict | None:
        raise NotImplementedError

    async def values(self, namespace: Namespace) -> list[dict]:
        """Every record in a namespace, in insertion order."""
        raise NotImplementedError

    # --- writes ---

    def _begin(self) -> StoreTransaction:
        raise NotImplementedError

    @asynccontextmanager
    async def transaction(self, *refs: KeyRef) -> AsyncIterator[StoreTransaction]:
        txn = self._begin()
        try:
            await txn.acquire_all(refs)
            try:
                yield txn
            except BaseException:
                await txn._rollback()
                raise
            await txn._commit()
        finally:
            txn.release_all()

    async def put(self, namespace: Namespace, key: str, value: dict) -> None:
        async with self.transaction((namespace, key)) as txn:
            txn.put(namespace, key, value)

    async def delete(self, namespace: Namespace, key: str) -> None:
        async with self.transaction((namespace, key)) as txn:
            txn.delete(namespace, key)

    async def update(
        self,
        namespace: Namespace,
        key: str,
        fn: Callable[[dict | None], dict],
    ) -> dict:
        """Atomically read-modify-write a single key."""
        async with self.transaction((namespace, key)) as txn:
            new_value = fn(await txn.get(namespace, key))
            txn.put(namespace, key, new_value)
        return new_value

    async def ping(self) -> None:
        """Raise if the backend cannot be reached."""

    async def close(self) -> None:
        """Release backend resources."""


# ---------------------------------------------------------------------------
# In-memory backend
# ---------------------------------------------------------------------------


class _InMemoryTransaction(StoreTransaction):
    def __init__(self, store: InMemoryStore) -> None:
        super().__init__(store._locks)
        self._store = store

    async def _load(self, namespace: Namespace, key: str) -> dict | None:
        value = self._store._data[namespace].get(key)
        return copy.deepcopy(value)

    async def _commit(self) -> None:
        # No await between the first and last write: other coroutines
        # observe either none or all of this transaction's writes.
        for namespace, key, value in self._writes():
            bucket = self._store._data[namespace]
            if value is None:
                bucket.pop(key, None)
            else:
                bucket[key] = value


class InMemoryStore(KeyValueStore):
    """Dict-backed store. Reads return deep copies."""

    backend = "memory"

    def __init__(self) -> None:
        super().__init__()
        self._data: dict[Namespace, dict[str, dict]] = {ns: {} for ns in Namespace}

    def _begin(self) -> StoreTransaction:
        return _InMemoryTransaction(self)

    async def get(self, namespace: Namespace, key: str) -> dict | None:
        return copy.deepcopy(self._data[namespace].get(key))

    async def values(self, namespace: Namespace) -> list[dict]:
        return copy.deepcopy(list(self._data[namespace].values()))

    async def close(self) -> None:
        logger.debug("store.memory_closed", records=sum(len(b) for b in self._data.values()))
