import gc
import threading
import time
import uuid

import pytest
from redis.exceptions import LockNotOwnedError

import app.utils.budget_lock as budget_lock_module
from app.utils.budget_lock import BudgetLockTimeout, budget_lock


def test_writers_on_the_same_budget_are_serialized():
    budget_id = uuid.uuid4()
    active = []
    overlaps = []

    def writer():
        with budget_lock(budget_id, backend="local"):
            active.append(1)
            if len(active) > 1:
                overlaps.append(True)
            time.sleep(0.02)
            active.pop()

    threads = [threading.Thread(target=writer) for _ in range(5)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert overlaps == []


def test_different_budgets_do_not_block_each_other():
    first, second = uuid.uuid4(), uuid.uuid4()

    with budget_lock(first, backend="local"):
        with budget_lock(second, timeout=1, backend="local"):
            pass


def test_lock_timeout():
    budget_id = uuid.uuid4()
    holding = threading.Event()
    release = threading.Event()

    def holder():
        with budget_lock(budget_id, backend="local"):
            holding.set()
            release.wait(5)

    thread = threading.Thread(target=holder)
    thread.start()
    holding.wait(5)
    try:
        with pytest.raises(BudgetLockTimeout):
            with budget_lock(budget_id, timeout=0.05, backend="local"):
                pass
    finally:
        release.set()
        thread.join()

    # Released again once the holder is done
    with budget_lock(budget_id, timeout=1, backend="local"):
        pass


class ExpiringRedisLock:
    def acquire(self):
        return True

    def release(self):
        raise LockNotOwnedError("Cannot release a lock that's no longer owned")


class FakeRedis:
    def __init__(self):
        self.keys = []

    def lock(self, name, timeout=None, blocking_timeout=None):
        self.keys.append(name)
        return ExpiringRedisLock()


def test_expired_redis_lock_keeps_the_block_outcome(monkeypatch):
    client = FakeRedis()
    monkeypatch.setattr(budget_lock_module, "get_client", lambda: client)
    budget_id = uuid.uuid4()

    with budget_lock(budget_id, timeout=1, backend="redis"):
        pass
    assert client.keys == [f"budget-lock:{budget_id}"]

    with pytest.raises(ValueError, match="from the block"):
        with budget_lock(budget_id, timeout=1, backend="redis"):
            raise ValueError("raised from the block")


def test_unused_local_locks_are_dropped():
    budget_id = uuid.uuid4()
    with budget_lock(budget_id, backend="local"):
        assert f"budget-lock:{budget_id}" in budget_lock_module._local_locks
    gc.collect()
    assert f"budget-lock:{budget_id}" not in budget_lock_module._local_locks
