"""
AuthScan Scan Session

Lifecycle of one scan attempt: consumes the temporary auth context to
start the remote scan, records it in the session store, and wires the
polling engine to the result aggregator.
"""

import time
from datetime import datetime, timezone
from typing import Callable, Optional

from authscan.client import ScanApiClient
from authscan.core.config import Settings, settings as default_settings
from authscan.core.exceptions import (
    PollingAbortedError,
    ScanError,
    ScanFailedError,
    ScanStartError,
    ScanTimeoutError,
    SessionExpiredError,
    StopAcknowledgeError,
)
from authscan.core.logging import get_logger, set_scan_context
from authscan.models.scan import (
    PersistedSessionRecord,
    ScanStatus,
    StatusSnapshot,
    TempAuthContext,
    TerminalStatus,
)

from .aggregator import Report, ResultAggregator
from .polling import PollingEngine
from .session_store import SessionStore

logger = get_logger(__name__)

ReportCallback = Callable[[Report], None]
FailureCallback = Callable[[ScanError], None]


def _now_millis() -> int:
    return int(time.time() * 1000)


class ScanSession:
    """
    One scan attempt, from remote acceptance to a final status.

    The persisted record is written before start() returns and removed
    once the scan completes, fails or is stopped.
    """

    def __init__(
        self,
        client: ScanApiClient,
        store: SessionStore,
        config: Optional[Settings] = None,
        polling: Optional[PollingEngine] = None,
    ):
        self.client = client
        self.store = store
        self.config = config or default_settings
        self.polling = polling or PollingEngine(
            client.get_status,
            interval=self.config.poll_interval,
            max_attempts=self.config.poll_max_attempts,
        )

        self.scan_id: Optional[str] = None
        self.target: Optional[str] = None
        self.started_at: Optional[int] = None
        self.status = ScanStatus.STARTING
        self.aggregator: Optional[ResultAggregator] = None

        self._on_report: Optional[ReportCallback] = None
        self._on_failure: Optional[FailureCallback] = None

    @classmethod
    def resume(
        cls,
        record: PersistedSessionRecord,
        client: ScanApiClient,
        store: SessionStore,
        config: Optional[Settings] = None,
        polling: Optional[PollingEngine] = None,
    ) -> "ScanSession":
        """Rebuild a running session from its persisted record."""
        session = cls(client, store, config=config, polling=polling)
        session._bind(record.scan_id, record.target, record.started_at)
        logger.info(
            "Resuming scan session",
            scan_id=record.scan_id,
            target=record.target,
            started_at=datetime.fromtimestamp(record.started_at / 1000, tz=timezone.utc).isoformat(),
        )
        return session

    @property
    def report(self) -> Optional[Report]:
        return self.aggregator.report if self.aggregator else None

    @property
    def is_active(self) -> bool:
        return self.scan_id is not None and not self.status.is_final

    def _bind(self, scan_id: str, target: str, started_at: int) -> None:
        self.scan_id = scan_id
        self.target = target
        self.started_at = started_at
        self.status = ScanStatus.RUNNING
        self.aggregator = ResultAggregator(scan_id)
        set_scan_context(scan_id=scan_id)

    async def start(self, target: str, login_url: str, auth_context: TempAuthContext) -> str:
        """
        Start the remote scan.

        Raises SessionExpiredError when the auth context was already used
        or the backend no longer recognises it, ScanStartError when the
        backend rejects the scan for any other reason or the accepted scan
        cannot be persisted (the remote scan is then stopped).
        """
        if self.scan_id is not None:
            raise RuntimeError(f"session already bound to scan {self.scan_id}")

        token = auth_context.session_token
        try:
            scan_id = await self.client.start_scan(target, login_url, token)
        except SessionExpiredError:
            auth_context.mark_consumed()
            self.status = ScanStatus.FAILED
            raise
        except ScanError:
            self.status = ScanStatus.FAILED
            raise
        auth_context.mark_consumed()

        started_at = _now_millis()
        # Persist before anyone learns the scan id
        try:
            self.store.set(PersistedSessionRecord(scan_id=scan_id, target=target, started_at=started_at))
        except Exception as e:
            self.status = ScanStatus.FAILED
            await self._abandon(scan_id)
            raise ScanStartError(
                f"Scan could not be recorded locally and was stopped: {e}",
                scan_id=scan_id,
                cause=e,
            ) from e
        self._bind(scan_id, target, started_at)

        logger.audit("scan_started", target, scan_id=scan_id)
        return scan_id

    def watch(
        self,
        on_report: Optional[ReportCallback] = None,
        on_failure: Optional[FailureCallback] = None,
    ) -> bool:
        """Start polling; returns False if polling was already running."""
        if not self.is_active:
            raise RuntimeError("cannot watch a session that is not running")
        self._on_report = on_report
        self._on_failure = on_failure
        return self.polling.start(
            self.scan_id,
            self._handle_snapshot,
            self._handle_exhausted,
            self._handle_poll_error,
        )

    def _handle_snapshot(self, snapshot: StatusSnapshot) -> None:
        if self.status.is_final:
            logger.debug("Dropping snapshot for finished session", scan_id=self.scan_id)
            return

        report = self.aggregator.apply(snapshot)

        if snapshot.terminal is TerminalStatus.COMPLETED:
            self.status = ScanStatus.COMPLETED
            self.store.clear(self.scan_id)
            logger.info("Scan completed", scan_id=self.scan_id, scanners=len(report.arrived_scanners))
        elif snapshot.terminal is TerminalStatus.FAILED:
            self.status = ScanStatus.FAILED
            self.store.clear(self.scan_id)
            logger.warning(f"Scan failed: {report.error}", scan_id=self.scan_id)

        if self._on_report is not None:
            self._on_report(report)

        if self.status is ScanStatus.FAILED and self._on_failure is not None:
            self._on_failure(ScanFailedError(self.scan_id, report.error or "Scan failed"))

    def _handle_exhausted(self, scan_id: str, attempts: int) -> None:
        if self.status.is_final:
            return
        self.status = ScanStatus.FAILED
        self.store.clear(scan_id)
        error = ScanTimeoutError(scan_id, attempts)
        logger.warning(error.message, scan_id=scan_id)
        if self._on_failure is not None:
            self._on_failure(error)

    def _handle_poll_error(self, scan_id: str, exc: BaseException) -> None:
        if self.status.is_final:
            return
        self.status = ScanStatus.FAILED
        self.store.clear(scan_id)
        error = PollingAbortedError(scan_id, f"Status polling stopped unexpectedly: {exc}")
        if self._on_failure is not None:
            self._on_failure(error)

    async def _abandon(self, scan_id: str) -> None:
        try:
            await self.client.stop_scan(scan_id)
        except StopAcknowledgeError as e:
            logger.warning(f"Could not stop unrecorded scan: {e.message}", scan_id=scan_id)

    async def stop(self) -> bool:
        """
        Best-effort remote stop.

        The session counts as stopped locally before the request is sent.
        Returns whether the backend acknowledged.
        """
        if self.scan_id is None or self.status.is_final:
            return False

        self.status = ScanStatus.STOPPED
        try:
            await self.client.stop_scan(self.scan_id)
        except StopAcknowledgeError as e:
            logger.warning(f"Stop not acknowledged, continuing locally: {e.message}", scan_id=self.scan_id)
            return False

        logger.audit("scan_stopped", self.target or "", scan_id=self.scan_id)
        return True
