"""
Dispatcher Tests
================

Tests for the worker pool, per-session lanes and the shared provider.
"""

import threading
import time

import pytest

from chirpstream.stream.dispatcher import Dispatcher, DispatcherProvider, SerialLane


@pytest.fixture
def dispatcher():
    dispatcher = Dispatcher(num_threads=1)
    yield dispatcher
    dispatcher.shutdown(wait=True, timeout=2.0)


class TestDispatcher:
    """Tests for the Dispatcher pool."""

    def test_runs_off_caller_thread(self, dispatcher, wait_until):
        threads = []
        dispatcher.submit(lambda: threads.append(threading.current_thread()))
        assert wait_until(lambda: threads)
        assert threads[0] is not threading.current_thread()
        assert threads[0].name.startswith(dispatcher.name)

    def test_single_thread_preserves_order(self, dispatcher, wait_until):
        seen = []
        for index in range(50):
            dispatcher.submit(lambda index=index: seen.append(index))
        assert wait_until(lambda: len(seen) == 50)
        assert seen == list(range(50))

    def test_failing_task_does_not_kill_worker(self, dispatcher, wait_until):
        seen = []

        def boom():
            raise ValueError("listener bug")

        dispatcher.submit(boom)
        dispatcher.submit(lambda: seen.append("after"))
        assert wait_until(lambda: seen == ["after"])
        assert dispatcher.metrics()["failed"] == 1

    def test_shutdown_drains_queue(self):
        dispatcher = Dispatcher(num_threads=1)
        gate = threading.Event()
        seen = []
        dispatcher.submit(gate.wait)
        for index in range(5):
            dispatcher.submit(lambda index=index: seen.append(index))

        threading.Timer(0.05, gate.set).start()
        dispatcher.shutdown(wait=True, timeout=2.0)
        assert seen == [0, 1, 2, 3, 4]
        assert not dispatcher.active

    def test_submit_after_shutdown(self):
        dispatcher = Dispatcher()
        dispatcher.shutdown()
        with pytest.raises(RuntimeError):
            dispatcher.submit(lambda: None)

    def test_shutdown_twice(self):
        dispatcher = Dispatcher()
        dispatcher.shutdown()
        dispatcher.shutdown()

    def test_shutdown_from_worker_does_not_deadlock(self, wait_until):
        dispatcher = Dispatcher(num_threads=1)
        done = threading.Event()

        def stop_from_inside():
            dispatcher.shutdown(wait=True)
            done.set()

        dispatcher.submit(stop_from_inside)
        assert done.wait(2.0)
        dispatcher.join(timeout=2.0)

    def test_counters_exact_with_many_workers(self):
        dispatcher = Dispatcher(num_threads=4)

        def boom():
            raise ValueError("listener bug")

        for index in range(400):
            dispatcher.submit(boom if index % 10 == 0 else (lambda: None))
        dispatcher.shutdown(wait=True, timeout=5.0)

        metrics = dispatcher.metrics()
        assert metrics["completed"] == 360
        assert metrics["failed"] == 40
        assert metrics["pending"] == 0

    def test_invalid_pool_size(self):
        with pytest.raises(ValueError):
            Dispatcher(num_threads=0)


class TestSerialLane:
    """Tests for per-session ordering on a shared pool."""

    def test_order_with_many_workers(self, wait_until):
        dispatcher = Dispatcher(num_threads=4)
        try:
            lane = SerialLane(dispatcher)
            seen = []

            def task(index):
                # Jitter makes overtaking likely if ordering were broken
                time.sleep(0.001 * (index % 3))
                seen.append(index)

            for index in range(60):
                lane.submit(lambda index=index: task(index))
            assert wait_until(lambda: len(seen) == 60)
            assert seen == list(range(60))
        finally:
            dispatcher.shutdown(timeout=2.0)

    def test_tasks_never_overlap(self, wait_until):
        dispatcher = Dispatcher(num_threads=4)
        try:
            lane = SerialLane(dispatcher)
            running = []
            overlaps = []
            finished = []

            def task():
                running.append(1)
                if len(running) > 1:
                    overlaps.append(1)
                time.sleep(0.002)
                running.pop()
                finished.append(1)

            for _ in range(20):
                lane.submit(task)
            assert wait_until(lambda: len(finished) == 20)
            assert not overlaps
        finally:
            dispatcher.shutdown(timeout=2.0)

    def test_failing_task_does_not_stop_lane(self, dispatcher, wait_until):
        lane = SerialLane(dispatcher)
        seen = []

        def boom():
            raise RuntimeError("listener bug")

        lane.submit(boom)
        lane.submit(lambda: seen.append("next"))
        assert wait_until(lambda: seen == ["next"])

    def test_submit_after_dispatcher_shutdown(self):
        dispatcher = Dispatcher()
        dispatcher.shutdown()
        lane = SerialLane(dispatcher)
        with pytest.raises(RuntimeError):
            lane.submit(lambda: None)
        assert lane.pending == 0


class TestDispatcherProvider:
    """Tests for the reference-counted shared dispatcher."""

    def test_acquire_shares_one_dispatcher(self, provider):
        first = provider.acquire()
        second = provider.acquire()
        assert first is second
        assert provider.active_sessions == 2

    def test_not_idle_while_sessions_active(self, provider):
        dispatcher = provider.acquire()
        provider.acquire()
        provider.release()

        assert provider.shutdown_if_idle() is False
        assert dispatcher.active

    def test_last_release_allows_shutdown(self, provider):
        dispatcher = provider.acquire()
        provider.release()

        assert provider.shutdown_if_idle() is True
        assert provider.dispatcher is None
        assert not dispatcher.active

    def test_fresh_dispatcher_after_shutdown(self, provider):
        old = provider.acquire()
        provider.release()
        provider.shutdown_if_idle()

        new = provider.acquire()
        assert new is not old
        assert new.active

    def test_lease_releases_once(self, provider):
        lease = provider.lease()
        provider.acquire()
        assert provider.active_sessions == 2

        assert lease.release() is True
        assert lease.release() is False
        assert lease.released
        assert provider.active_sessions == 1

    def test_lease_shares_dispatcher(self, provider):
        first = provider.lease()
        second = provider.lease(num_threads=3)
        assert first.dispatcher is second.dispatcher
        assert first.dispatcher.num_threads == 1

    def test_release_never_goes_negative(self, provider):
        provider.release()
        assert provider.active_sessions == 0

    def test_shutdown_without_dispatcher(self, provider):
        assert provider.shutdown_if_idle() is False

    def test_pool_size(self):
        provider = DispatcherProvider(num_threads=2)
        try:
            assert provider.acquire().num_threads == 2
            provider.release()
            provider.shutdown_if_idle()
            assert provider.acquire(num_threads=3).num_threads == 3
        finally:
            provider.release()
            provider.shutdown_if_idle()

    def test_new_stream_from_draining_task(self, provider, wait_until):
        """A task that acquires during shutdown gets a fresh dispatcher."""
        dispatcher = provider.acquire()
        provider.release()
        gate = threading.Event()
        acquired = []

        def restart():
            gate.wait(2.0)
            acquired.append(provider.acquire())

        dispatcher.submit(restart)
        threading.Timer(0.05, gate.set).start()
        assert provider.shutdown_if_idle(wait=True)

        assert len(acquired) == 1
        assert acquired[0] is not dispatcher
        assert acquired[0].active
