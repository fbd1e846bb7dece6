"""
AuthScan Result Aggregator

Folds status snapshots into one cumulative report. Remote scanners finish
in any order and the backend re-sends data it already delivered, so the
merge has to be safe against both missing and duplicate deliveries:

- ``arrived`` only ever goes from False to True
- a payload is only replaced by a new non-empty payload, never cleared
- once a snapshot reports failure the report is frozen
"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

from authscan.core.logging import get_logger
from authscan.models.scan import ScannerId, StatusSnapshot, TerminalStatus

logger = get_logger(__name__)


@dataclass(frozen=True)
class ScannerResult:
    """Cumulative state of one scanner."""
    arrived: bool = False
    payload: Optional[Any] = None

    @property
    def has_payload(self) -> bool:
        return self.payload is not None


def _empty_scanners() -> Dict[ScannerId, ScannerResult]:
    return {scanner: ScannerResult() for scanner in ScannerId}


@dataclass(frozen=True)
class Report:
    """
    Aggregated view of one scan.

    ``is_partial`` stays True until a snapshot reports completion.
    """
    scan_id: str
    scanners: Dict[ScannerId, ScannerResult] = field(default_factory=_empty_scanners)
    is_partial: bool = True
    failed: bool = False
    error: Optional[str] = None
    phase: str = ""
    progress: int = 0
    message: str = ""

    @property
    def is_complete(self) -> bool:
        return not self.is_partial and not self.failed

    def arrived(self, scanner: ScannerId) -> bool:
        return self.scanners[scanner].arrived

    def payload(self, scanner: ScannerId) -> Optional[Any]:
        return self.scanners[scanner].payload

    @property
    def arrived_scanners(self) -> List[ScannerId]:
        return [s for s, result in self.scanners.items() if result.arrived]

    @property
    def pending_scanners(self) -> List[ScannerId]:
        return [s for s, result in self.scanners.items() if not result.arrived]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scanId": self.scan_id,
            "isPartial": self.is_partial,
            "failed": self.failed,
            "error": self.error,
            "phase": self.phase,
            "progress": self.progress,
            "message": self.message,
            "scanners": {
                scanner.value: {"arrived": result.arrived, "payload": result.payload}
                for scanner, result in self.scanners.items()
            },
        }


def merge(report: Report, snapshot: StatusSnapshot) -> Report:
    """
    Return ``report`` with ``snapshot`` folded in.

    Pure: neither argument is modified. Merging the same snapshot twice
    yields the same report as merging it once.
    """
    if report.failed:
        logger.debug("Ignoring snapshot for failed report", scan_id=report.scan_id)
        return report

    if snapshot.scan_id and snapshot.scan_id != report.scan_id:
        logger.warning(
            "Ignoring snapshot for a different scan",
            scan_id=report.scan_id,
            snapshot_scan_id=snapshot.scan_id,
        )
        return report

    scanners = dict(report.scanners)
    for scanner in ScannerId:
        current = scanners[scanner]
        arrived = current.arrived or scanner in snapshot.per_scanner_arrived
        incoming = snapshot.per_scanner_payload.get(scanner)
        payload = incoming if incoming is not None else current.payload
        if arrived != current.arrived or payload is not current.payload:
            scanners[scanner] = ScannerResult(arrived=arrived, payload=payload)

    failed = snapshot.terminal is TerminalStatus.FAILED
    return replace(
        report,
        scanners=scanners,
        is_partial=snapshot.terminal is not TerminalStatus.COMPLETED,
        failed=failed,
        error=snapshot.error if failed else report.error,
        phase=snapshot.phase or report.phase,
        progress=snapshot.progress,
        message=snapshot.message or report.message,
    )


class ResultAggregator:
    """
    Holds the running report for one scan id.

    ``merge`` is the pure fold; ``apply`` folds into the held report and
    returns the new one.
    """

    def __init__(self, scan_id: str):
        self.scan_id = scan_id
        self._report = Report(scan_id=scan_id)

    @property
    def report(self) -> Report:
        return self._report

    @property
    def closed(self) -> bool:
        """True once a failure froze the report."""
        return self._report.failed

    merge = staticmethod(merge)

    def apply(self, snapshot: StatusSnapshot) -> Report:
        before = self._report
        after = merge(before, snapshot)
        if after is not before:
            newly_arrived = [
                s.value for s in ScannerId
                if after.scanners[s].arrived and not before.scanners[s].arrived
            ]
            if newly_arrived:
                logger.info(
                    "Scanner results arrived",
                    scan_id=self.scan_id,
                    scanners=newly_arrived,
                    progress=after.progress,
                )
            if after.failed:
                logger.warning("Report closed after scan failure", scan_id=self.scan_id, error=after.error)
        self._report = after
        return after
