"""
AuthScan - Scan Models
Domain types shared by the wizard, the scan session and the aggregator.

Secrets (credential values, temporary session tokens) only ever live in
CredentialVault and TempAuthContext, both of which mask themselves in repr.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterator, List, Mapping, Optional

from authscan.core.exceptions import SessionExpiredError


class WizardStep(str, Enum):
    CONFIGURE = "configure"
    CREDENTIALS = "credentials"
    VERIFY = "verify"
    SCANNING = "scanning"
    RESULTS = "results"


class ScanStatus(str, Enum):
    """Local lifecycle of one scan attempt."""
    STARTING = "starting"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    STOPPED = "stopped"

    @property
    def is_final(self) -> bool:
        return self in (ScanStatus.COMPLETED, ScanStatus.FAILED, ScanStatus.STOPPED)


class TerminalStatus(str, Enum):
    NONE = "none"
    COMPLETED = "completed"
    FAILED = "failed"


class ScannerId(str, Enum):
    """Remote analysis engines contributing to the report."""
    ZAP = "zap"                  # Active vulnerability scan
    OBSERVATORY = "observatory"  # Security header / configuration analysis
    PSI = "psi"                  # Performance analysis
    URLSCAN = "urlscan"          # Page intelligence
    WEBCHECK = "webcheck"        # Site checks (DNS, TLS, tech stack...)
    VIRUSTOTAL = "virustotal"    # Reputation
    SUMMARY = "summary"          # Natural-language summary


@dataclass(frozen=True)
class FieldDescriptor:
    """One input element found on the login page."""
    selector: str
    tag_name: str = "INPUT"
    input_type: str = "text"
    name: str = ""
    id: str = ""
    label: str = ""
    placeholder: str = ""
    required: bool = False

    @property
    def is_credential_input(self) -> bool:
        return (
            self.tag_name.upper() == "INPUT"
            and self.input_type not in ("submit", "button")
        )

    @property
    def display_label(self) -> str:
        return self.label or self.placeholder or self.name or self.id or self.input_type or "Field"


@dataclass(frozen=True)
class FormDescriptor:
    """A login form candidate."""
    fields: List[FieldDescriptor] = field(default_factory=list)
    submit_button: Optional[FieldDescriptor] = None
    password_field: Optional[FieldDescriptor] = None
    username_field: Optional[FieldDescriptor] = None
    action: str = ""
    method: str = ""

    @property
    def has_password_field(self) -> bool:
        if self.password_field is not None:
            return True
        return any(f.input_type == "password" for f in self.fields)


@dataclass
class ErrorInfo:
    """User-facing error attached to the wizard state."""
    code: str
    message: str
    recoverable: bool = False

    @classmethod
    def from_exception(cls, exc: Exception) -> "ErrorInfo":
        code = getattr(exc, "code", None)
        return cls(
            code=code.value if code is not None else "E1000",
            message=getattr(exc, "message", None) or str(exc),
            recoverable=getattr(exc, "recoverable", False),
        )


class CredentialVault:
    """
    In-memory credential values keyed by field selector.

    Values are never logged or persisted; zero() blanks them in place
    once they have served their purpose.
    """

    def __init__(self):
        self._values: Dict[str, str] = {}

    def set(self, selector: str, value: str) -> None:
        self._values[selector] = value

    def get(self, selector: str) -> str:
        return self._values.get(selector, "")

    def remove(self, selector: str) -> None:
        self._values.pop(selector, None)

    def missing(self, selectors: List[str]) -> List[str]:
        return [s for s in selectors if not self._values.get(s)]

    def zero(self) -> None:
        """Blank every value, keeping the selected keys."""
        for key in self._values:
            self._values[key] = ""

    def clear(self) -> None:
        self._values.clear()

    def snapshot(self) -> Dict[str, str]:
        return dict(self._values)

    def __contains__(self, selector: object) -> bool:
        return selector in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"CredentialVault(fields={sorted(self._values)}, values=<redacted>)"


class TempAuthContext:
    """
    Proof of a successful login test.

    Consumed once by a scan start; expiry is enforced by the server and
    not tracked here.
    """

    def __init__(self, session_token: str, post_login_url: Optional[str] = None):
        self._session_token = session_token
        self.post_login_url = post_login_url
        self.consumed = False

    @property
    def session_token(self) -> str:
        if self.consumed:
            raise SessionExpiredError()
        return self._session_token

    def mark_consumed(self) -> None:
        self.consumed = True
        self._session_token = ""

    def __repr__(self) -> str:
        return f"TempAuthContext(consumed={self.consumed}, token=<redacted>)"


@dataclass(frozen=True)
class StatusSnapshot:
    """One poll result."""
    phase: str = ""
    progress: int = 0
    message: str = ""
    per_scanner_arrived: FrozenSet[ScannerId] = frozenset()
    per_scanner_payload: Mapping[ScannerId, Any] = field(default_factory=dict)
    terminal: TerminalStatus = TerminalStatus.NONE
    error: Optional[str] = None
    scan_id: Optional[str] = None

    def payload(self, scanner: ScannerId) -> Optional[Any]:
        return self.per_scanner_payload.get(scanner)


@dataclass(frozen=True)
class PersistedSessionRecord:
    """The single durable record of the active scan."""
    scan_id: str
    target: str
    started_at: int  # epoch millis

    def to_dict(self) -> Dict[str, Any]:
        return {"scanId": self.scan_id, "target": self.target, "startedAt": self.started_at}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PersistedSessionRecord":
        scan_id = data.get("scanId")
        if not scan_id or not isinstance(scan_id, str):
            raise ValueError("persisted record has no scanId")
        return cls(
            scan_id=scan_id,
            target=str(data.get("target") or data.get("url") or ""),
            started_at=int(data.get("startedAt") or 0),
        )
