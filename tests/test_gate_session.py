"""Unit tests for gate sessions and the identification claim."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import asyncio
import threading
import pytest
from app.services.gate_session import (
    GateSession, GateSessionRegistry, METHOD_PRIMARY, METHOD_FALLBACK,
)


def make_session(plate="SBS001A", gate="entry"):
    return GateSession(bus_id=1, plate=plate, gate=gate)


class TestClaim:
    def test_first_claim_wins(self):
        session = make_session()
        assert session.claim(METHOD_PRIMARY) is True
        assert session.claim(METHOD_FALLBACK) is False
        assert session.method == METHOD_PRIMARY
        assert not session.pending

    def test_only_one_thread_claims(self):
        session = make_session()
        barrier = threading.Barrier(8)
        wins = []

        def racer(method):
            barrier.wait()
            if session.claim(method):
                wins.append(method)

        threads = [threading.Thread(target=racer, args=(METHOD_PRIMARY if i % 2 else METHOD_FALLBACK,))
                   for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(wins) == 1
        assert session.method == wins[0]


class TestRegistry:
    def test_resolve_by_plate(self):
        registry = GateSessionRegistry()
        session = make_session()
        registry.open(session)
        assert registry.resolve("SBS001A") is session
        assert registry.resolve("OTHER") is None

    def test_resolve_without_plate_needs_single_session(self):
        registry = GateSessionRegistry()
        first = make_session("AAA111")
        registry.open(first)
        assert registry.resolve() is first

        registry.open(make_session("BBB222"))
        assert registry.resolve() is None

    def test_resolve_pending_only_skips_identified(self):
        registry = GateSessionRegistry()
        done = make_session("AAA111")
        done.claim(METHOD_PRIMARY)
        waiting = make_session("BBB222")
        registry.open(done)
        registry.open(waiting)

        assert registry.resolve(pending_only=True) is waiting
        assert registry.resolve("AAA111", pending_only=True) is None

    def test_close_ignores_replaced_session(self):
        registry = GateSessionRegistry()
        old = make_session()
        new = make_session()
        registry.open(old)
        registry.open(new)

        assert registry.close(old) is False
        assert registry.get("SBS001A") is new
        assert registry.close(new) is True
        assert registry.get("SBS001A") is None

    @pytest.mark.asyncio
    async def test_replacing_session_cancels_old_timer(self):
        registry = GateSessionRegistry()
        old = make_session()
        old.timer = asyncio.get_running_loop().create_task(asyncio.sleep(10))
        timer = old.timer
        registry.open(old)

        registry.open(make_session())
        await asyncio.sleep(0)

        assert timer.cancelled()
        assert old.timer is None
