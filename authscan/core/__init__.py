# Core infrastructure modules
from .config import settings, get_settings, Settings
from .logging import (
    get_logger,
    setup_logging,
    set_scan_context,
    clear_scan_context,
    log_execution_time,
)
from .exceptions import (
    ErrorCode,
    AuthScanError,
    # Validation
    ValidationError,
    InvalidInputError,
    CredentialValidationError,
    WizardStepError,
    # Detection
    DetectionError,
    # Auth
    AuthError,
    AuthenticationError,
    SessionExpiredError,
    # Scan
    ScanError,
    ScanStartError,
    PollingTransientError,
    PollingAbortedError,
    ScanFailedError,
    ScanTimeoutError,
    StopAcknowledgeError,
)

__all__ = [
    # Config
    "settings",
    "get_settings",
    "Settings",
    # Logging
    "get_logger",
    "setup_logging",
    "set_scan_context",
    "clear_scan_context",
    "log_execution_time",
    # Exceptions
    "ErrorCode",
    "AuthScanError",
    "ValidationError",
    "InvalidInputError",
    "CredentialValidationError",
    "WizardStepError",
    "DetectionError",
    "AuthError",
    "AuthenticationError",
    "SessionExpiredError",
    "ScanError",
    "ScanStartError",
    "PollingTransientError",
    "PollingAbortedError",
    "ScanFailedError",
    "ScanTimeoutError",
    "StopAcknowledgeError",
]
