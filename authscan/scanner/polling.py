"""
AuthScan Polling Engine

Polls the scan status endpoint: one request immediately, then one every
``interval`` seconds after the previous response, until the backend
reports a terminal status or stop() is called.

Scheduling is cooperative: the timer is a ``loop.call_later`` handle and
each request runs as a fire-and-forget task. At most one request is
outstanding. stop() does not abort an in-flight request; it bumps the
generation so that request's result is dropped when it comes back.
"""

import asyncio
from enum import Enum
from functools import partial
from typing import Awaitable, Callable, Optional

from authscan.core.exceptions import PollingTransientError
from authscan.core.logging import get_logger
from authscan.models.scan import StatusSnapshot, TerminalStatus

logger = get_logger(__name__)

FetchStatus = Callable[[str], Awaitable[StatusSnapshot]]
SnapshotCallback = Callable[[StatusSnapshot], None]
ExhaustedCallback = Callable[[str, int], None]
ErrorCallback = Callable[[str, BaseException], None]

DEFAULT_POLL_INTERVAL = 3.0


class PollState(str, Enum):
    IDLE = "idle"
    POLLING = "polling"
    STOPPED = "stopped"


class PollingEngine:
    """
    Timer-driven status poller for one scan at a time.

    States:
        IDLE     never started, or finished on a terminal status / ceiling
        POLLING  timer or request outstanding
        STOPPED  stop() was called; start() may be called again
    """

    def __init__(
        self,
        fetch_status: FetchStatus,
        interval: float = DEFAULT_POLL_INTERVAL,
        max_attempts: Optional[int] = None,
    ):
        self._fetch_status = fetch_status
        self.interval = interval
        self.max_attempts = max_attempts

        self._state = PollState.IDLE
        self._scan_id: Optional[str] = None
        self._on_snapshot: Optional[SnapshotCallback] = None
        self._on_exhausted: Optional[ExhaustedCallback] = None
        self._on_error: Optional[ErrorCallback] = None
        self._generation = 0
        self._attempts = 0
        self._timer: Optional[asyncio.TimerHandle] = None
        self._in_flight: Optional[asyncio.Task] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def state(self) -> PollState:
        return self._state

    @property
    def is_polling(self) -> bool:
        return self._state is PollState.POLLING

    @property
    def scan_id(self) -> Optional[str]:
        return self._scan_id

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def has_pending_timer(self) -> bool:
        return self._timer is not None

    @property
    def in_flight(self) -> bool:
        return self._in_flight is not None and not self._in_flight.done()

    def start(
        self,
        scan_id: str,
        on_snapshot: SnapshotCallback,
        on_exhausted: Optional[ExhaustedCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> bool:
        """
        Begin polling ``scan_id``. Must be called from the running loop.

        ``on_exhausted`` fires when the attempt ceiling is reached and
        ``on_error`` when a tick dies on an unexpected exception; either
        way polling has ended. Returns False (and does nothing) if this
        engine is already polling.
        """
        if self._state is PollState.POLLING:
            logger.debug(
                "Polling already active, ignoring start",
                scan_id=scan_id,
                active_scan_id=self._scan_id,
            )
            return False

        self._loop = asyncio.get_running_loop()
        self._state = PollState.POLLING
        self._scan_id = scan_id
        self._on_snapshot = on_snapshot
        self._on_exhausted = on_exhausted
        self._on_error = on_error
        self._generation += 1
        self._attempts = 0

        logger.info("Polling started", scan_id=scan_id, interval=self.interval)
        self._tick()
        return True

    def stop(self) -> bool:
        """Cancel the pending timer and discard any in-flight result."""
        if self._state is not PollState.POLLING:
            return False

        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._state = PollState.STOPPED
        self._generation += 1

        logger.info(
            "Polling stopped",
            scan_id=self._scan_id,
            attempts=self._attempts,
            request_in_flight=self.in_flight,
        )
        return True

    # =========================================================================
    # Internals
    # =========================================================================

    def _is_current(self, generation: int) -> bool:
        return self._state is PollState.POLLING and generation == self._generation

    def _tick(self) -> None:
        self._timer = None
        if self._state is not PollState.POLLING:
            return

        self._attempts += 1
        generation = self._generation
        task = self._loop.create_task(self._poll_once(generation, self._scan_id))
        task.add_done_callback(partial(self._on_flight_done, generation))
        self._in_flight = task

    async def _poll_once(self, generation: int, scan_id: str) -> None:
        try:
            snapshot: Optional[StatusSnapshot] = await self._fetch_status(scan_id)
        except PollingTransientError as e:
            logger.warning(f"Status poll failed, will retry: {e.message}", scan_id=scan_id)
            snapshot = None

        if not self._is_current(generation):
            logger.debug("Discarding stale poll result", scan_id=scan_id)
            return

        if snapshot is not None:
            self._on_snapshot(snapshot)
            if not self._is_current(generation):
                # The callback stopped us
                return
            if snapshot.terminal is not TerminalStatus.NONE:
                self._finish(f"terminal status '{snapshot.terminal.value}'")
                return

        if self.max_attempts is not None and self._attempts >= self.max_attempts:
            self._finish("attempt ceiling reached")
            if self._on_exhausted is not None:
                self._on_exhausted(scan_id, self._attempts)
            return

        self._timer = self._loop.call_later(self.interval, self._tick)

    def _finish(self, reason: str) -> None:
        self._state = PollState.IDLE
        self._generation += 1
        logger.info(f"Polling finished: {reason}", scan_id=self._scan_id, attempts=self._attempts)

    def _on_flight_done(self, generation: int, task: asyncio.Task) -> None:
        if self._in_flight is task:
            self._in_flight = None
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                f"Polling loop crashed: {exc}",
                scan_id=self._scan_id,
                exc_info=(type(exc), exc, exc.__traceback__),
            )
            if self._is_current(generation):
                self._finish("unexpected error")
                if self._on_error is not None:
                    self._on_error(self._scan_id, exc)
