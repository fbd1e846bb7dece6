# Scanner Module
from .aggregator import Report, ResultAggregator, ScannerResult, merge
from .cancellation import CancellationManager
from .polling import PollingEngine, PollState
from .session import ScanSession
from .session_store import InMemorySessionStore, JsonFileSessionStore, SessionStore

__all__ = [
    "Report",
    "ResultAggregator",
    "ScannerResult",
    "merge",
    "CancellationManager",
    "PollingEngine",
    "PollState",
    "ScanSession",
    "InMemorySessionStore",
    "JsonFileSessionStore",
    "SessionStore",
]
