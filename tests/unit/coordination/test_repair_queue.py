"""Tests for repair_queue.py - bounded-parallelism repair queue."""

from __future__ import annotations

import asyncio

import pytest

from noderepair.coordination.repair_queue import RepairQueue

from .conftest import wait_until


class TestRepairQueueInit:
    """Tests for construction."""

    def test_rejects_zero_concurrency(self):
        """Concurrency below one is a configuration error."""
        with pytest.raises(ValueError, match="concurrency"):
            RepairQueue(concurrency=0)

    def test_starts_paused(self):
        """A new queue does not dispatch until started."""
        queue = RepairQueue(concurrency=2)
        assert queue.is_paused
        assert queue.pending_count == 0
        assert queue.running_count == 0


class TestRepairQueueDispatch:
    """Tests for dispatching and concurrency."""

    @pytest.mark.asyncio
    async def test_paused_queue_holds_tasks(self):
        """Tasks added while paused wait for start()."""
        queue = RepairQueue()
        ran = []

        async def task():
            ran.append(1)

        queue.add(task)
        await asyncio.sleep(0.01)
        assert ran == []
        assert queue.pending_count == 1

        queue.start()
        await queue.join()
        assert ran == [1]

    @pytest.mark.asyncio
    async def test_factory_called_only_when_slot_free(self):
        """The task factory is not invoked while the task is queued."""
        queue = RepairQueue()
        created = []

        async def work():
            await asyncio.sleep(0)

        def factory():
            created.append(1)
            return work()

        queue.add(factory)
        assert created == []
        queue.start()
        await queue.join()
        assert created == [1]

    @pytest.mark.asyncio
    async def test_concurrency_limit_respected(self):
        """No more than ``concurrency`` tasks run at once."""
        queue = RepairQueue(concurrency=2)
        active = 0
        peak = 0

        async def task():
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.02)
            active -= 1

        for _ in range(6):
            queue.add(task)
        queue.start()
        await queue.join()

        assert peak == 2
        assert queue.max_observed_concurrency == 2
        assert queue.get_status()["total_completed"] == 6

    @pytest.mark.asyncio
    async def test_tasks_run_in_fifo_order(self):
        """With concurrency one tasks run in insertion order."""
        queue = RepairQueue(concurrency=1)
        order = []

        def make(i):
            async def task():
                order.append(i)
            return task

        for i in range(4):
            queue.add(make(i))
        queue.start()
        await queue.join()

        assert order == [0, 1, 2, 3]

    @pytest.mark.asyncio
    async def test_future_carries_result(self):
        """The returned future resolves with the task result."""
        queue = RepairQueue()
        queue.start()

        async def task():
            return "rebooted"

        future = queue.add(task)
        assert await future == "rebooted"

    @pytest.mark.asyncio
    async def test_failed_task_does_not_block_queue(self):
        """A failing task sets its future's exception and the next task runs."""
        queue = RepairQueue()
        ran = []

        async def failing():
            raise RuntimeError("bmc timeout")

        async def ok():
            ran.append("ok")

        failed = queue.add(failing)
        queue.add(ok)
        queue.start()
        await queue.join()

        assert ran == ["ok"]
        with pytest.raises(RuntimeError, match="bmc timeout"):
            failed.result()
        assert queue.get_status()["total_failed"] == 1


class TestRepairQueueControl:
    """Tests for pause, clear and join."""

    @pytest.mark.asyncio
    async def test_pause_stops_new_dispatch(self):
        """Pausing lets running tasks finish but dispatches nothing new."""
        queue = RepairQueue(concurrency=1)
        release = asyncio.Event()
        ran = []

        async def blocker():
            await release.wait()
            ran.append("blocker")

        async def second():
            ran.append("second")

        queue.add(blocker)
        queue.add(second)
        queue.start()
        assert await wait_until(lambda: queue.running_count == 1)

        queue.pause()
        release.set()
        assert await wait_until(lambda: queue.running_count == 0)
        await asyncio.sleep(0.01)

        assert ran == ["blocker"]
        assert queue.pending_count == 1

    @pytest.mark.asyncio
    async def test_clear_cancels_pending_futures(self):
        """clear() drops queued tasks and cancels their futures."""
        queue = RepairQueue()

        async def task():
            pass

        futures = [queue.add(task) for _ in range(3)]

        assert queue.clear() == 3
        assert queue.pending_count == 0
        assert all(f.cancelled() for f in futures)

    @pytest.mark.asyncio
    async def test_join_returns_when_idle(self):
        """join() on an empty queue returns immediately."""
        queue = RepairQueue()
        await asyncio.wait_for(queue.join(), timeout=0.5)

    @pytest.mark.asyncio
    async def test_join_after_clear(self):
        """Clearing a paused queue makes it idle."""
        queue = RepairQueue()

        async def task():
            pass

        queue.add(task)
        queue.clear()
        await asyncio.wait_for(queue.join(), timeout=0.5)

    @pytest.mark.asyncio
    async def test_get_status(self):
        """get_status reports counts and configuration."""
        queue = RepairQueue(concurrency=3, name="repairs")

        async def task():
            pass

        queue.add(task)
        status = queue.get_status()

        assert status["name"] == "repairs"
        assert status["concurrency"] == 3
        assert status["paused"] is True
        assert status["pending"] == 1
        assert status["total_added"] == 1
        queue.clear()
