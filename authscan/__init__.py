"""
AuthScan - Authenticated Scan Orchestration

Client-side orchestration of an authenticated security scan: login form
detection, credential verification, scan start, status polling with
incremental result aggregation, cancellation and resume after restart.
"""

from .client import ScanApiClient
from .wizard import LoginOutcome, WizardController, WizardState

__version__ = "1.0.0"

__all__ = [
    "ScanApiClient",
    "WizardController",
    "WizardState",
    "LoginOutcome",
]
