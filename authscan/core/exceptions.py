"""
AuthScan Custom Exceptions

Structured exception hierarchy with error codes, context,
and a flag telling the wizard whether the workflow can carry on.
"""

from typing import Any, Dict, Optional
from enum import Enum


class ErrorCode(str, Enum):
    """Standardized error codes."""

    # General errors (1xxx)
    INTERNAL_ERROR = "E1000"
    VALIDATION_ERROR = "E1001"
    INVALID_INPUT = "E1002"
    CREDENTIALS_INCOMPLETE = "E1003"
    INVALID_STEP = "E1004"

    # Scan errors (3xxx)
    SCAN_ERROR = "E3000"
    SCAN_TIMEOUT = "E3001"
    SCAN_FAILED = "E3002"
    SCAN_START_REJECTED = "E3003"
    SCAN_CANCELLED = "E3005"
    SCAN_POLL_FAILED = "E3008"
    SCAN_STOP_UNACKNOWLEDGED = "E3009"

    # Detection errors (5xxx)
    DETECTION_FAILED = "E5000"
    NO_LOGIN_FORM = "E5001"

    # Authentication errors (8xxx)
    AUTH_ERROR = "E8000"
    AUTH_LOGIN_FAILED = "E8001"
    AUTH_SESSION_EXPIRED = "E8002"


class AuthScanError(Exception):
    """Base exception for all AuthScan errors."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        recoverable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        self.cause = cause
        self.recoverable = recoverable

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a serializable error payload."""
        response = {
            "error": {
                "code": self.code.value,
                "message": self.message,
                "recoverable": self.recoverable,
            }
        }
        if self.details:
            response["error"]["details"] = self.details
        return response

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.message}"


# =============================================================================
# Validation Exceptions
# =============================================================================


class ValidationError(AuthScanError):
    """Input validation error."""

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        code: ErrorCode = ErrorCode.VALIDATION_ERROR,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        kwargs.setdefault("recoverable", True)
        super().__init__(message, code=code, status_code=400, details=details, **kwargs)


class InvalidInputError(ValidationError):
    """Missing or malformed target/login URL."""

    def __init__(self, message: str = "Target URL and login URL are required", **kwargs):
        super().__init__(message, code=ErrorCode.INVALID_INPUT, **kwargs)


class CredentialValidationError(ValidationError):
    """Selected credential fields left empty."""

    def __init__(self, missing: Optional[list] = None, **kwargs):
        super().__init__(
            "Please fill in all credential fields",
            code=ErrorCode.CREDENTIALS_INCOMPLETE,
            details={"missing_fields": list(missing or [])},
            **kwargs
        )


class WizardStepError(ValidationError):
    """Operation not allowed in the current wizard step."""

    def __init__(self, operation: str, step: str, **kwargs):
        super().__init__(
            f"'{operation}' is not allowed in step '{step}'",
            code=ErrorCode.INVALID_STEP,
            details={"operation": operation, "step": step},
            recoverable=False,
            **kwargs
        )


# =============================================================================
# Detection Exceptions
# =============================================================================


class DetectionError(AuthScanError):
    """Login form detection failed or found nothing."""

    def __init__(
        self,
        message: str = "No login forms detected on this page.",
        login_url: Optional[str] = None,
        code: ErrorCode = ErrorCode.NO_LOGIN_FORM,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        if login_url:
            details["login_url"] = login_url[:200]
        super().__init__(message, code=code, details=details, **kwargs)


# =============================================================================
# Authentication Exceptions
# =============================================================================


class AuthError(AuthScanError):
    """Authentication error."""

    def __init__(
        self,
        message: str = "Authentication failed",
        code: ErrorCode = ErrorCode.AUTH_ERROR,
        **kwargs
    ):
        kwargs.setdefault("status_code", 401)
        super().__init__(message, code=code, **kwargs)


class AuthenticationError(AuthError):
    """Login test did not authenticate."""

    def __init__(self, message: str = "Login test failed", **kwargs):
        super().__init__(message, code=ErrorCode.AUTH_LOGIN_FAILED, **kwargs)


class SessionExpiredError(AuthError):
    """Temporary auth context consumed or expired before scan start."""

    def __init__(self, message: str = "Session expired. Please test login again.", **kwargs):
        kwargs.setdefault("recoverable", True)
        super().__init__(message, code=ErrorCode.AUTH_SESSION_EXPIRED, **kwargs)


# =============================================================================
# Scan Exceptions
# =============================================================================


class ScanError(AuthScanError):
    """Scan operation error."""

    def __init__(
        self,
        message: str = "Scan operation failed",
        scan_id: Optional[str] = None,
        code: ErrorCode = ErrorCode.SCAN_ERROR,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        if scan_id:
            details["scan_id"] = scan_id
        super().__init__(message, code=code, details=details, **kwargs)
        self.scan_id = scan_id


class ScanStartError(ScanError):
    """Remote side rejected the scan start."""

    def __init__(self, message: str = "Failed to start scan", **kwargs):
        super().__init__(message, code=ErrorCode.SCAN_START_REJECTED, **kwargs)


class PollingTransientError(ScanError):
    """Status request failed for one tick."""

    def __init__(self, scan_id: str, reason: str = "Failed to get scan status", **kwargs):
        super().__init__(
            reason,
            scan_id=scan_id,
            code=ErrorCode.SCAN_POLL_FAILED,
            recoverable=True,
            **kwargs
        )


class ScanFailedError(ScanError):
    """Remote side reported terminal failure."""

    def __init__(self, scan_id: str, message: str = "Scan failed", **kwargs):
        super().__init__(message, scan_id=scan_id, code=ErrorCode.SCAN_FAILED, **kwargs)


class PollingAbortedError(ScanError):
    """Polling ended on an unexpected error before a terminal status."""

    def __init__(self, scan_id: str, reason: str = "Status polling stopped unexpectedly", **kwargs):
        super().__init__(reason, scan_id=scan_id, code=ErrorCode.SCAN_POLL_FAILED, **kwargs)


class ScanTimeoutError(ScanError):
    """Poll ceiling reached without a terminal status."""

    def __init__(self, scan_id: str, attempts: int, **kwargs):
        super().__init__(
            f"Scan did not finish after {attempts} status checks",
            scan_id=scan_id,
            code=ErrorCode.SCAN_TIMEOUT,
            details={"attempts": attempts},
            **kwargs
        )


class StopAcknowledgeError(ScanError):
    """Stop request did not reach the remote side."""

    def __init__(self, scan_id: str, reason: str = "Failed to stop scan", **kwargs):
        super().__init__(
            reason,
            scan_id=scan_id,
            code=ErrorCode.SCAN_STOP_UNACKNOWLEDGED,
            recoverable=True,
            **kwargs
        )
