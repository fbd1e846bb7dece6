"""
AuthScan Cancellation

User-initiated stop. Cancellation means "stop accepting results": polling
is halted and local state cleared straight away, while the remote stop is
best-effort and an in-flight status request is left to finish unheard.
"""

from typing import Callable, Optional

from authscan.core.logging import get_logger, clear_scan_context

from .session import ScanSession
from .session_store import SessionStore

logger = get_logger(__name__)

StoppedCallback = Callable[[str], None]


class CancellationManager:
    """Stops the attached scan session. Repeated or unmatched calls are no-ops."""

    def __init__(self, store: SessionStore, on_stopped: Optional[StoppedCallback] = None):
        self.store = store
        self.on_stopped = on_stopped
        self._session: Optional[ScanSession] = None

    def attach(self, session: ScanSession) -> None:
        self._session = session

    def detach(self) -> None:
        self._session = None

    @property
    def session(self) -> Optional[ScanSession]:
        return self._session

    async def stop(self, scan_id: Optional[str]) -> bool:
        """
        Stop ``scan_id``. Returns True if a running scan was stopped.
        """
        session = self._session
        if not scan_id or session is None or session.scan_id != scan_id:
            logger.debug("No active session to stop", scan_id=scan_id)
            return False
        if not session.is_active:
            logger.debug("Session already finished, nothing to stop", scan_id=scan_id)
            return False

        session.polling.stop()
        acknowledged = await session.stop()
        self.store.clear(scan_id)

        logger.info("Scan stopped by user", scan_id=scan_id, acknowledged=acknowledged)
        clear_scan_context()

        if self.on_stopped is not None:
            self.on_stopped(scan_id)
        return True
