"""
Unit tests for the worker thread pool.
"""

import threading
import time

import pytest

from assetserver.core.thread_pool import ThreadPool


def wait_for(predicate, timeout=5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


@pytest.fixture
def pool():
    pool = ThreadPool(min_workers=1, max_workers=1, queue_size=16, idle_timeout=0.1)
    pool.start()
    yield pool
    pool.shutdown(wait=True, timeout=5)


class TestThreadPool:

    def test_runs_tasks(self, pool):
        done = threading.Event()

        assert pool.submit(done.set)
        assert done.wait(5)

    def test_failing_task_keeps_worker_alive(self, pool):
        done = threading.Event()

        def boom():
            raise RuntimeError("boom")

        pool.submit(boom)
        pool.submit(done.set)

        assert done.wait(5)
        assert wait_for(lambda: pool.stats["tasks"]["failed"] == 1)

    def test_busy_workers_do_not_delay_new_tasks(self, pool):
        release = threading.Event()
        blocked = threading.Event()
        done = threading.Event()

        def stalled():
            blocked.set()
            release.wait(10)

        try:
            pool.submit(stalled)
            assert blocked.wait(5)

            started = time.monotonic()
            pool.submit(done.set)

            assert done.wait(2)
            assert time.monotonic() - started < 1.0
            assert pool.stats["workers"]["overflow"] >= 1
        finally:
            release.set()

    def test_overflow_workers_retire_when_idle(self, pool):
        release = threading.Event()
        running = threading.Semaphore(0)

        def stalled():
            running.release()
            release.wait(10)

        for _ in range(3):
            pool.submit(stalled)
        for _ in range(3):
            assert running.acquire(timeout=5)

        assert pool.stats["workers"]["total"] >= 3

        release.set()

        assert wait_for(lambda: pool.stats["workers"]["total"] == 1)
        assert pool.stats["workers"]["overflow"] == 0
        assert wait_for(lambda: pool.stats["tasks"]["completed"] == 3)

    def test_shutdown_waits_for_running_task(self):
        pool = ThreadPool(min_workers=1, max_workers=2, idle_timeout=0.1)
        pool.start()
        finished = threading.Event()

        def slow():
            time.sleep(0.3)
            finished.set()

        pool.submit(slow)
        pool.shutdown(wait=True, timeout=5)

        assert finished.is_set()

    def test_submit_after_shutdown_raises(self):
        pool = ThreadPool(min_workers=1, max_workers=1)
        pool.start()
        pool.shutdown()

        with pytest.raises(RuntimeError):
            pool.submit(lambda: None)
