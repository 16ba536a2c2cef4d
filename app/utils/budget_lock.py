import logging
import threading
import weakref
from contextlib import contextmanager
from typing import Optional

from redis import Redis, ConnectionPool
from redis.exceptions import LockNotOwnedError

from app.core.config import settings
from app.core.exceptions import BusinessLogicError

logger = logging.getLogger(__name__)

# Redis client for cross-worker locks
_pool: Optional[ConnectionPool] = None
_client: Optional[Redis] = None

# Process-local locks, one per budget id, dropped once no caller references them
_local_locks: "weakref.WeakValueDictionary[str, threading.Lock]" = weakref.WeakValueDictionary()
_registry_guard = threading.Lock()


def get_client() -> Redis:
    global _pool, _client
    if _client is None:
        _pool = ConnectionPool.from_url(settings.REDIS_URL, decode_responses=True)
        _client = Redis(connection_pool=_pool)
    return _client


def _local_lock_for(key: str) -> threading.Lock:
    with _registry_guard:
        lock = _local_locks.get(key)
        if lock is None:
            lock = threading.Lock()
            _local_locks[key] = lock
        return lock


class BudgetLockTimeout(BusinessLogicError):
    """Raised when another writer holds the budget for longer than the lock timeout"""
    pass


@contextmanager
def budget_lock(budget_id, timeout: Optional[int] = None, backend: Optional[str] = None):
    """Hold the single-writer lock for budget_id for the duration of the block.

    Locks for different budgets are independent.
    """
    key = f"budget-lock:{budget_id}"
    timeout = timeout if timeout is not None else settings.BUDGET_LOCK_TIMEOUT_SECONDS
    backend = backend or settings.BUDGET_LOCK_BACKEND

    if backend == "redis":
        lock = get_client().lock(key, timeout=timeout, blocking_timeout=timeout)
        acquired = lock.acquire()
    else:
        lock = _local_lock_for(key)
        acquired = lock.acquire(timeout=timeout)

    if not acquired:
        raise BudgetLockTimeout(f"Budget {budget_id} is locked by another operation")
    logger.debug(f"Acquired {backend} lock {key}")
    try:
        yield
    finally:
        try:
            lock.release()
            logger.debug(f"Released {backend} lock {key}")
        except LockNotOwnedError:
            # Expired while the block ran; the block's own outcome stands
            logger.warning(f"Lock {key} expired after {timeout}s before it was released")
