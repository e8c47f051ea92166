"""Tests for the round-robin fan-in merge."""

import asyncio

import pytest

from ic_bn_logs.fan_in import LANE_CLOSED, FanIn


def drain(fan_in):
    """Poll until nothing is ready."""
    taken = []
    while True:
        ready = fan_in.poll()
        if ready is None:
            return taken
        taken.append(ready)


class TestFanIn:
    """Test lane bookkeeping and round-robin fairness."""

    @pytest.mark.asyncio
    async def test_duplicate_lane_rejected(self):
        """Test that lane keys must be unique."""
        fan_in = FanIn()
        fan_in.open_lane("a")
        with pytest.raises(ValueError):
            fan_in.open_lane("a")

    @pytest.mark.asyncio
    async def test_poll_empty(self):
        """Test polling with nothing queued."""
        fan_in = FanIn()
        fan_in.open_lane("a")
        assert fan_in.poll() is None
        assert fan_in.active == 1

    @pytest.mark.asyncio
    async def test_fast_lane_does_not_starve_slow_lane(self):
        """Test that a busy lane and a quiet lane alternate."""
        fan_in = FanIn()
        busy = fan_in.open_lane("busy")
        quiet = fan_in.open_lane("quiet")

        for i in range(100):
            await busy.put(f"busy {i}")
        for i in range(5):
            await quiet.put(f"quiet {i}")

        taken = [item for _, item in drain(fan_in)]

        # Quiet items are interleaved with the first busy items, not queued behind all 100
        assert taken[:10] == [
            "busy 0", "quiet 0", "busy 1", "quiet 1", "busy 2",
            "quiet 2", "busy 3", "quiet 3", "busy 4", "quiet 4",
        ]
        assert taken[10:] == [f"busy {i}" for i in range(5, 100)]

    @pytest.mark.asyncio
    async def test_per_lane_order_preserved(self):
        """Test FIFO order within each lane."""
        fan_in = FanIn()
        lanes = [fan_in.open_lane(key) for key in ("a", "b", "c")]
        for lane in lanes:
            for i in range(10):
                await lane.put((lane.key, i))

        taken = [item for _, item in drain(fan_in)]
        for key in ("a", "b", "c"):
            assert [i for k, i in taken if k == key] == list(range(10))

    @pytest.mark.asyncio
    async def test_lane_closed_reported_after_items(self):
        """Test that a closed lane delivers its queued items before LANE_CLOSED."""
        fan_in = FanIn()
        lane = fan_in.open_lane("a")
        await lane.put(1)
        await lane.put(2)
        lane.close()

        assert drain(fan_in) == [("a", 1), ("a", 2), ("a", LANE_CLOSED)]
        assert fan_in.active == 0

    @pytest.mark.asyncio
    async def test_lane_closed_reported_once(self):
        """Test that LANE_CLOSED is returned exactly once per lane."""
        fan_in = FanIn()
        fan_in.open_lane("a").close()
        fan_in.open_lane("b")

        assert drain(fan_in) == [("a", LANE_CLOSED)]
        assert fan_in.poll() is None

    @pytest.mark.asyncio
    async def test_put_on_closed_lane(self):
        """Test that a closed lane refuses new items."""
        fan_in = FanIn()
        lane = fan_in.open_lane("a")
        lane.close()
        with pytest.raises(RuntimeError):
            await lane.put(1)

    @pytest.mark.asyncio
    async def test_put_wakes_waiting_consumer(self):
        """Test that a put releases a consumer blocked in wait."""
        fan_in = FanIn()
        lane = fan_in.open_lane("a")
        assert fan_in.poll() is None

        async def produce():
            await asyncio.sleep(0.05)
            await lane.put("late")

        producer = asyncio.create_task(produce())
        await asyncio.wait_for(fan_in.wait(), timeout=1.0)
        await producer
        assert fan_in.poll() == ("a", "late")

    @pytest.mark.asyncio
    async def test_close_wakes_waiting_consumer(self):
        """Test that closing a lane releases a consumer blocked in wait."""
        fan_in = FanIn()
        lane = fan_in.open_lane("a")
        assert fan_in.poll() is None

        waiter = asyncio.create_task(fan_in.wait())
        await asyncio.sleep(0)
        lane.close()
        await asyncio.wait_for(waiter, timeout=1.0)

        assert fan_in.poll() == ("a", LANE_CLOSED)
        assert fan_in.active == 0

    @pytest.mark.asyncio
    async def test_wake_releases_waiter(self):
        """Test that wake unblocks a waiting consumer."""
        fan_in = FanIn()
        fan_in.open_lane("a")

        waiter = asyncio.create_task(fan_in.wait())
        await asyncio.sleep(0)
        assert not waiter.done()

        fan_in.wake()
        await asyncio.wait_for(waiter, timeout=1.0)

    @pytest.mark.asyncio
    async def test_discard_releases_blocked_producer(self):
        """Test that discarding frees space in full lanes."""
        fan_in = FanIn(lane_size=2)
        lane = fan_in.open_lane("a")
        await lane.put(1)
        await lane.put(2)

        blocked = asyncio.create_task(lane.put(3))
        await asyncio.sleep(0)
        assert not blocked.done()

        assert fan_in.discard() == 2
        await asyncio.wait_for(blocked, timeout=1.0)
        assert lane.pending() == 1
