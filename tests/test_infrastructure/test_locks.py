"""Tests for the per-user lock registry"""
import gc
import threading

from chronoflow.infrastructure.locks import UserLockRegistry


def test_same_user_shares_a_lock_while_in_use():
    locks = UserLockRegistry()
    first = locks.lock_for(1)
    assert locks.lock_for(1) is first
    assert locks.lock_for(2) is not first


def test_hold_blocks_other_threads_of_the_same_user():
    locks = UserLockRegistry()
    acquired = []

    with locks.hold(7):
        worker = threading.Thread(target=lambda: acquired.append(locks.lock_for(7).acquire(timeout=0.05)))
        worker.start()
        worker.join()

    assert acquired == [False]


def test_unused_locks_are_dropped():
    locks = UserLockRegistry()
    for user_id in range(50):
        with locks.hold(user_id):
            pass
    gc.collect()

    assert len(locks) == 0
