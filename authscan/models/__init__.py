"""AuthScan - Data Models"""

from .scan import (
    WizardStep,
    ScanStatus,
    TerminalStatus,
    ScannerId,
    FieldDescriptor,
    FormDescriptor,
    ErrorInfo,
    CredentialVault,
    TempAuthContext,
    StatusSnapshot,
    PersistedSessionRecord,
)
from .wire import (
    CredentialEntry,
    DetectionResponse,
    LoginTestResponse,
    StartScanResponse,
    StatusResponse,
)

__all__ = [
    'WizardStep',
    'ScanStatus',
    'TerminalStatus',
    'ScannerId',
    'FieldDescriptor',
    'FormDescriptor',
    'ErrorInfo',
    'CredentialVault',
    'TempAuthContext',
    'StatusSnapshot',
    'PersistedSessionRecord',
    'CredentialEntry',
    'DetectionResponse',
    'LoginTestResponse',
    'StartScanResponse',
    'StatusResponse',
]
