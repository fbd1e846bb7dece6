"""
AuthScan Session Store

Single-slot durable record of the active scan, read on startup so an
interrupted scan can be resumed without re-authenticating.
"""

import json
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Union

from authscan.core.config import Settings, settings as default_settings
from authscan.core.logging import get_logger
from authscan.models.scan import PersistedSessionRecord

logger = get_logger(__name__)


class SessionStore(ABC):
    """get/set/clear over the one well-known slot."""

    @abstractmethod
    def get(self) -> Optional[PersistedSessionRecord]:
        ...

    @abstractmethod
    def set(self, record: PersistedSessionRecord) -> None:
        ...

    @abstractmethod
    def _erase(self) -> None:
        ...

    def clear(self, scan_id: Optional[str] = None) -> bool:
        """
        Remove the stored record.

        With ``scan_id`` the slot is only cleared when it holds that scan,
        so a stale session never wipes out a newer one.
        """
        current = self.get()
        if current is None:
            return False
        if scan_id is not None and current.scan_id != scan_id:
            logger.debug(
                "Session slot holds a different scan, leaving it",
                requested=scan_id,
                stored=current.scan_id,
            )
            return False
        self._erase()
        logger.info("Cleared persisted scan session", scan_id=current.scan_id)
        return True


class InMemorySessionStore(SessionStore):
    """Process-local store, mostly for tests and embedded use."""

    def __init__(self, record: Optional[PersistedSessionRecord] = None):
        self._record = record

    def get(self) -> Optional[PersistedSessionRecord]:
        return self._record

    def set(self, record: PersistedSessionRecord) -> None:
        self._record = record

    def _erase(self) -> None:
        self._record = None


class JsonFileSessionStore(SessionStore):
    """
    Stores the record as a small JSON document.

    Writes go to a temp file in the same directory followed by os.replace,
    so a crash mid-write leaves either the old record or the new one.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path).expanduser()

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "JsonFileSessionStore":
        config = config or default_settings
        return cls(config.session_store_file)

    def get(self) -> Optional[PersistedSessionRecord]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

        try:
            return PersistedSessionRecord.from_dict(json.loads(raw))
        except (ValueError, TypeError, AttributeError) as e:
            # Unreadable slot cannot be resumed; drop it
            logger.warning(f"Discarding corrupt session record: {e}", path=str(self.path))
            self._erase()
            return None

    def set(self, record: PersistedSessionRecord) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=str(self.path.parent), prefix=".session-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(record.to_dict(), fh)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
        logger.info("Persisted scan session", scan_id=record.scan_id, path=str(self.path))

    def _erase(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
