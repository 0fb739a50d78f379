"""Tests for the ExpirySweeper."""
import asyncio

import pytest

from qrshare.sessions.sweeper import ExpirySweeper

from conftest import FakeWebSocket


class TestSweepOnce:
    @pytest.mark.asyncio
    async def test_nothing_expired(self, sweeper, registry):
        registry.create(ttl_seconds=60)
        assert await sweeper.sweep_once() == []
        assert len(registry) == 1

    @pytest.mark.asyncio
    async def test_evicts_only_expired(self, sweeper, registry, clock):
        short = registry.create(ttl_seconds=60)
        long = registry.create(ttl_seconds=600)
        clock.advance(60)

        assert await sweeper.sweep_once() == [short]
        assert registry.get(short) is None
        assert registry.get(long) is not None

    @pytest.mark.asyncio
    async def test_removed_within_one_interval_after_deadline(self, sweeper, registry, clock):
        session_id = registry.create(ttl_seconds=60)

        # Sweeps before the deadline keep the session.
        for _ in range(6):
            clock.advance(sweeper.interval_seconds - 0.5)
            await sweeper.sweep_once()
        assert registry.get(session_id) is not None

        # The first sweep at or after the deadline removes it.
        clock.advance(sweeper.interval_seconds)
        assert await sweeper.sweep_once() == [session_id]

    @pytest.mark.asyncio
    async def test_expiry_notifies_members_and_deletes_files(
        self, sweeper, coordinator, registry, hub, blobs, clock
    ):
        session_id = registry.create(ttl_seconds=60)
        members = [FakeWebSocket() for _ in range(3)]
        for ws in members:
            hub.join(session_id, ws)
        blobs.put("a.txt", b"hi")
        registry.record_file(session_id, "a.txt")
        blobs.put("other.txt", b"keep")

        clock.advance(61)
        await sweeper.sweep_once()

        for ws in members:
            assert ws.sent == [{"type": "expired"}]
            assert ws.closed
        assert blobs.list() == ["other.txt"]
        assert hub.sessions() == []

    @pytest.mark.asyncio
    async def test_tolerates_concurrent_delete(self, coordinator, registry, clock):
        session_id = registry.create(ttl_seconds=1)

        async def racing_teardown(sid):
            # An explicit delete request lands between the scan and teardown.
            assert await coordinator.delete_session(sid) is True
            return await coordinator.teardown(sid)

        clock.advance(5)
        assert await ExpirySweeper(registry, racing_teardown).sweep_once() == []
        assert registry.get(session_id) is None

    @pytest.mark.asyncio
    async def test_teardown_returning_false_is_skipped(self, registry, clock):
        a = registry.create(ttl_seconds=1)
        b = registry.create(ttl_seconds=1)

        async def teardown(sid):
            registry.pop(sid)
            return sid == b

        clock.advance(2)
        assert await ExpirySweeper(registry, teardown).sweep_once() == [b]

    @pytest.mark.asyncio
    async def test_teardown_error_does_not_stop_sweep(self, registry, clock):
        a = registry.create(ttl_seconds=1)
        b = registry.create(ttl_seconds=1)
        seen = []

        async def teardown(sid):
            seen.append(sid)
            if sid == a:
                raise RuntimeError("disk on fire")
            registry.pop(sid)
            return True

        clock.advance(2)
        assert await ExpirySweeper(registry, teardown).sweep_once() == [b]
        assert sorted(seen) == sorted([a, b])


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_and_stop(self, registry):
        async def teardown(sid):
            return True

        sweeper = ExpirySweeper(registry, teardown, interval_seconds=60)
        await sweeper.start()
        assert sweeper.running
        await sweeper.stop()
        assert not sweeper.running

    @pytest.mark.asyncio
    async def test_stop_without_start(self, registry):
        async def teardown(sid):
            return True

        await ExpirySweeper(registry, teardown).stop()

    @pytest.mark.asyncio
    async def test_loop_runs_periodically(self, registry, clock):
        session_id = registry.create(ttl_seconds=1)
        clock.advance(2)
        torn_down = asyncio.Event()

        async def teardown(sid):
            registry.pop(sid)
            torn_down.set()
            return True

        sweeper = ExpirySweeper(registry, teardown, interval_seconds=0.01)
        await sweeper.start()
        try:
            await asyncio.wait_for(torn_down.wait(), timeout=2)
        finally:
            await sweeper.stop()
        assert registry.get(session_id) is None

    @pytest.mark.asyncio
    async def test_loop_survives_failing_cycle(self, registry, clock):
        registry.create(ttl_seconds=1)
        clock.advance(2)
        cycles = []

        async def teardown(sid):
            cycles.append(sid)
            if len(cycles) == 1:
                raise RuntimeError("transient")
            registry.pop(sid)
            return True

        sweeper = ExpirySweeper(registry, teardown, interval_seconds=0.01)
        await sweeper.start()
        try:
            for _ in range(200):
                if len(registry) == 0:
                    break
                await asyncio.sleep(0.01)
        finally:
            await sweeper.stop()
        assert len(cycles) >= 2
        assert len(registry) == 0
