"""Tests for the status polling engine."""

import asyncio

import pytest

from authscan.core.exceptions import PollingTransientError
from authscan.models.scan import StatusSnapshot, TerminalStatus
from authscan.scanner.polling import PollingEngine, PollState

from conftest import wait_for


class ScriptedStatus:
    """fetch_status stand-in that replays a script of results."""

    def __init__(self, *results, gate: asyncio.Event = None):
        self.results = list(results)
        self.calls = []
        self.gate = gate

    async def __call__(self, scan_id: str) -> StatusSnapshot:
        self.calls.append(scan_id)
        if self.gate is not None:
            await self.gate.wait()
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, Exception):
            raise result
        return result


RUNNING = StatusSnapshot(progress=10)
COMPLETED = StatusSnapshot(progress=100, terminal=TerminalStatus.COMPLETED)


@pytest.mark.asyncio
async def test_first_poll_is_immediate():
    fetch = ScriptedStatus(RUNNING)
    engine = PollingEngine(fetch, interval=60)
    received = []

    assert engine.start("S1", received.append)
    await wait_for(lambda: len(received) == 1)

    assert fetch.calls == ["S1"]
    assert engine.has_pending_timer
    engine.stop()


@pytest.mark.asyncio
async def test_second_start_does_not_add_a_timer():
    fetch = ScriptedStatus(RUNNING, RUNNING, COMPLETED)
    engine = PollingEngine(fetch, interval=0.01)
    received = []

    assert engine.start("S1", received.append)
    assert not engine.start("S1", received.append)
    await wait_for(lambda: engine.state is PollState.IDLE)
    await asyncio.sleep(0.05)

    assert len(fetch.calls) == 3
    assert received[-1].terminal is TerminalStatus.COMPLETED
    assert not engine.has_pending_timer


@pytest.mark.asyncio
async def test_transient_error_keeps_polling():
    fetch = ScriptedStatus(PollingTransientError("S1", "connection reset"), COMPLETED)
    engine = PollingEngine(fetch, interval=0.01)
    received = []

    engine.start("S1", received.append)
    await wait_for(lambda: engine.state is PollState.IDLE)

    assert len(fetch.calls) == 2
    assert received == [COMPLETED]


@pytest.mark.asyncio
async def test_stop_discards_in_flight_result():
    gate = asyncio.Event()
    fetch = ScriptedStatus(COMPLETED, gate=gate)
    engine = PollingEngine(fetch, interval=0.01)
    received = []

    engine.start("S1", received.append)
    await wait_for(lambda: engine.in_flight)

    assert engine.stop()
    gate.set()
    await wait_for(lambda: not engine.in_flight)
    await asyncio.sleep(0.03)

    assert received == []
    assert engine.state is PollState.STOPPED
    assert not engine.has_pending_timer
    assert len(fetch.calls) == 1


@pytest.mark.asyncio
async def test_stop_twice_is_a_noop():
    engine = PollingEngine(ScriptedStatus(RUNNING), interval=60)
    engine.start("S1", lambda snapshot: None)

    assert engine.stop()
    assert not engine.stop()


@pytest.mark.asyncio
async def test_callback_may_stop_the_engine():
    fetch = ScriptedStatus(RUNNING)
    engine = PollingEngine(fetch, interval=0.01)
    received = []

    def on_snapshot(snapshot):
        received.append(snapshot)
        engine.stop()

    engine.start("S1", on_snapshot)
    await wait_for(lambda: engine.state is PollState.STOPPED)
    await asyncio.sleep(0.03)

    assert len(received) == 1
    assert len(fetch.calls) == 1


@pytest.mark.asyncio
async def test_attempt_ceiling_reports_exhaustion():
    fetch = ScriptedStatus(RUNNING)
    engine = PollingEngine(fetch, interval=0.01, max_attempts=3)
    exhausted = []

    engine.start("S1", lambda snapshot: None, lambda scan_id, attempts: exhausted.append((scan_id, attempts)))
    await wait_for(lambda: engine.state is PollState.IDLE)

    assert exhausted == [("S1", 3)]
    assert len(fetch.calls) == 3


@pytest.mark.asyncio
async def test_restart_after_stop():
    fetch = ScriptedStatus(RUNNING)
    engine = PollingEngine(fetch, interval=60)

    engine.start("S1", lambda snapshot: None)
    await wait_for(lambda: len(fetch.calls) == 1)
    engine.stop()

    assert engine.start("S2", lambda snapshot: None)
    await wait_for(lambda: len(fetch.calls) == 2)
    assert fetch.calls == ["S1", "S2"]
    engine.stop()


@pytest.mark.asyncio
async def test_unexpected_error_ends_polling_and_reports():
    crash = RuntimeError("cannot convert float infinity to integer")
    fetch = ScriptedStatus(crash)
    engine = PollingEngine(fetch, interval=0.01)
    errors = []

    engine.start("S1", lambda snapshot: None, on_error=lambda scan_id, exc: errors.append((scan_id, exc)))
    await wait_for(lambda: errors)

    assert errors == [("S1", crash)]
    assert engine.state is PollState.IDLE
    assert len(fetch.calls) == 1
