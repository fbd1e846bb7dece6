"""
AuthScan Wizard Controller

Five-step flow for an authenticated scan:

    Configure -> Credentials -> Verify -> Scanning -> Results

Each operation checks it is legal in the current step and validates its
preconditions before advancing. If a persisted scan record exists when the
controller is built, it jumps straight to Scanning and resumes polling;
detection and credentials are neither recoverable nor needed at that point.

Error surfacing:
- DetectionError and ScanStartError are raised to the caller
- AuthenticationError comes back as a failed LoginOutcome
- ScanFailedError, ScanTimeoutError and PollingAbortedError arrive through
  polling and land in ``last_error``
- WizardStepError (an operation called in the wrong step) is raised
- everything else is recorded in ``last_error`` without interrupting the flow
"""

from dataclasses import dataclass, field
from typing import Callable, List, Optional
from urllib.parse import urlparse

from authscan.client import ScanApiClient
from authscan.core.config import Settings, settings as default_settings
from authscan.core.exceptions import (
    AuthenticationError,
    AuthScanError,
    CredentialValidationError,
    DetectionError,
    ErrorCode,
    InvalidInputError,
    ScanError,
    ScanStartError,
    SessionExpiredError,
    ValidationError,
    WizardStepError,
)
from authscan.core.logging import clear_scan_context, get_logger
from authscan.models.scan import (
    CredentialVault,
    ErrorInfo,
    FieldDescriptor,
    FormDescriptor,
    PersistedSessionRecord,
    TempAuthContext,
    WizardStep,
)
from authscan.models.wire import CredentialEntry
from authscan.scanner.aggregator import Report
from authscan.scanner.cancellation import CancellationManager
from authscan.scanner.session import ScanSession
from authscan.scanner.session_store import SessionStore

logger = get_logger(__name__)

BLOCKED_TARGET_HOSTS = ("localhost", "127.0.0.1")
STOPPED_BY_USER = "Scan stopped by user"


@dataclass
class WizardState:
    step: WizardStep = WizardStep.CONFIGURE
    target: str = ""
    login_url: str = ""
    detected_form: Optional[FormDescriptor] = None
    warnings: List[str] = field(default_factory=list)
    selected_fields: List[FieldDescriptor] = field(default_factory=list)
    credential_values: CredentialVault = field(default_factory=CredentialVault)
    submit_selector: Optional[str] = None
    last_error: Optional[ErrorInfo] = None

    # Scanning
    scan_id: Optional[str] = None
    is_scanning: bool = False
    phase: str = ""
    progress: int = 0
    message: str = ""
    report: Optional[Report] = None

    def is_selected(self, selector: str) -> bool:
        return any(f.selector == selector for f in self.selected_fields)


@dataclass
class LoginOutcome:
    authenticated: bool
    error_message: Optional[str] = None
    post_login_url: Optional[str] = None


def validate_url(url: str, field_name: str, allow_local: bool = True) -> str:
    url = (url or "").strip()
    if not url:
        raise InvalidInputError(f"{field_name} is required", field=field_name)

    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise InvalidInputError(f"{field_name} must be an absolute http(s) URL", field=field_name)
    if not allow_local and parsed.hostname.lower() in BLOCKED_TARGET_HOSTS:
        raise InvalidInputError("Cannot scan localhost addresses", field=field_name)
    return url


def choose_login_form(forms: List[FormDescriptor]) -> FormDescriptor:
    """Prefer the first form with a password field, else the first form."""
    for form in forms:
        if form.has_password_field:
            return form
    return forms[0]


class WizardController:
    """
    Drives one authenticated scan through the wizard steps.

    Must be created inside a running event loop when a persisted scan may
    exist, since resuming starts polling immediately.
    """

    def __init__(
        self,
        client: ScanApiClient,
        store: SessionStore,
        config: Optional[Settings] = None,
        event_callback: Optional[Callable[[WizardState], None]] = None,
    ):
        self.client = client
        self.store = store
        self.config = config or default_settings
        self.event_callback = event_callback

        self.state = WizardState()
        self.cancellation = CancellationManager(store, on_stopped=self._handle_stopped)
        self._auth_context: Optional[TempAuthContext] = None
        self._session: Optional[ScanSession] = None

        record = store.get()
        if record is not None:
            self._resume(record)

    # =========================================================================
    # Helpers
    # =========================================================================

    @property
    def step(self) -> WizardStep:
        return self.state.step

    @property
    def session(self) -> Optional[ScanSession]:
        return self._session

    @property
    def has_auth_context(self) -> bool:
        return self._auth_context is not None and not self._auth_context.consumed

    def _require_step(self, operation: str, *steps: WizardStep) -> None:
        if self.state.step not in steps:
            raise WizardStepError(operation, self.state.step.value)

    def _record_error(self, error: AuthScanError) -> None:
        self.state.last_error = ErrorInfo.from_exception(error)
        logger.warning(
            f"Wizard error in step '{self.state.step.value}': {error.message}",
            code=error.code.value,
            recoverable=error.recoverable,
        )

    def _emit(self) -> None:
        if self.event_callback is not None:
            self.event_callback(self.state)

    def _go(self, step: WizardStep) -> None:
        if step is not self.state.step:
            logger.info(f"Wizard step {self.state.step.value} -> {step.value}")
        self.state.step = step

    # =========================================================================
    # Step 1: Configure
    # =========================================================================

    def configure(self, target: str, login_url: str) -> bool:
        self._require_step("configure", WizardStep.CONFIGURE)
        try:
            target = validate_url(target, "target", allow_local=False)
            login_url = validate_url(login_url, "login_url")
        except InvalidInputError as e:
            self._record_error(e)
            self._emit()
            return False

        self.state.target = target
        self.state.login_url = login_url
        self.state.last_error = None
        self._emit()
        return True

    async def detect_login_fields(self) -> Optional[FormDescriptor]:
        """
        Ask the backend for login forms on the configured login page.

        Raises DetectionError when nothing usable comes back.
        """
        self._require_step("detect_login_fields", WizardStep.CONFIGURE)
        if not self.state.target or not self.state.login_url:
            self._record_error(InvalidInputError())
            self._emit()
            return None

        try:
            result = await self.client.detect_login_fields(self.state.login_url)
            if not result.success:
                raise DetectionError(
                    result.error or "Could not analyze the login page",
                    login_url=self.state.login_url,
                )
            forms = [f.to_descriptor() for f in result.forms]
            if not forms:
                raise DetectionError(login_url=self.state.login_url)
        except DetectionError as e:
            self._record_error(e)
            self._emit()
            raise

        for warning in result.warnings:
            logger.info(f"Detection warning: {warning}")
        self.state.warnings = list(result.warnings)

        form = choose_login_form(forms)
        self.submit_detection_result(form)
        return form

    def submit_detection_result(self, form: FormDescriptor) -> None:
        """Auto-select the form's input fields and submit button, then advance."""
        self._require_step("submit_detection_result", WizardStep.CONFIGURE)

        self.state.detected_form = form
        self.state.selected_fields = [f for f in form.fields if f.is_credential_input]
        vault = self.state.credential_values
        vault.clear()
        for f in self.state.selected_fields:
            vault.set(f.selector, "")
        self.state.submit_selector = form.submit_button.selector if form.submit_button else None
        self.state.last_error = None

        logger.info(
            "Login form selected",
            fields=len(self.state.selected_fields),
            has_submit=self.state.submit_selector is not None,
        )
        self._go(WizardStep.CREDENTIALS)
        self._emit()

    # =========================================================================
    # Step 2: Credentials
    # =========================================================================

    def toggle_field(self, field_descriptor: FieldDescriptor) -> bool:
        """Select or deselect a field; returns whether it is now selected."""
        self._require_step("toggle_field", WizardStep.CREDENTIALS)
        selector = field_descriptor.selector
        if self.state.is_selected(selector):
            self.state.selected_fields = [f for f in self.state.selected_fields if f.selector != selector]
            self.state.credential_values.remove(selector)
            selected = False
        else:
            self.state.selected_fields.append(field_descriptor)
            self.state.credential_values.set(selector, "")
            selected = True
        self._emit()
        return selected

    def set_credential(self, selector: str, value: str) -> bool:
        """Store a value for a selected field; unselected fields are refused."""
        self._require_step("set_credential", WizardStep.CREDENTIALS)
        if not self.state.is_selected(selector):
            self._record_error(ValidationError(f"Field '{selector}' is not selected", field=selector))
            self._emit()
            return False
        self.state.credential_values.set(selector, value)
        return True

    def set_submit_selector(self, selector: Optional[str]) -> None:
        self._require_step("set_submit_selector", WizardStep.CREDENTIALS)
        self.state.submit_selector = selector or None
        self._emit()

    def _submit_button(self) -> Optional[FieldDescriptor]:
        selector = self.state.submit_selector
        if not selector:
            return None
        form = self.state.detected_form
        if form is not None:
            candidates = list(form.fields)
            if form.submit_button is not None:
                candidates.insert(0, form.submit_button)
            for candidate in candidates:
                if candidate.selector == selector:
                    return candidate
        return FieldDescriptor(selector=selector, tag_name="BUTTON", input_type="submit")

    async def test_login(self) -> LoginOutcome:
        """
        Try the credentials against the login page.

        On success the credential values are zeroed and the wizard moves to
        Verify. On failure the values are kept so the user can correct them.
        """
        self._require_step("test_login", WizardStep.CREDENTIALS)

        selectors = [f.selector for f in self.state.selected_fields]
        vault = self.state.credential_values
        missing = vault.missing(selectors)
        if not selectors or missing:
            error = CredentialValidationError(missing=missing)
            self._record_error(error)
            self._emit()
            return LoginOutcome(authenticated=False, error_message=error.message)

        entries = [
            CredentialEntry(selector=f.selector, value=vault.get(f.selector), input_type=f.input_type)
            for f in self.state.selected_fields
        ]
        try:
            response = await self.client.test_login(self.state.login_url, entries, self._submit_button())
        except AuthenticationError as e:
            self._record_error(e)
            self._emit()
            return LoginOutcome(authenticated=False, error_message=e.message)

        if not (response.authenticated and response.temp_session_id):
            error = AuthenticationError(response.error_message or "Login failed")
            self._record_error(error)
            self._emit()
            return LoginOutcome(
                authenticated=False,
                error_message=error.message,
                post_login_url=response.post_login_url,
            )

        self._auth_context = TempAuthContext(response.temp_session_id, response.post_login_url)
        vault.zero()
        self.state.last_error = None
        logger.audit("login_verified", self.state.login_url, fields=len(selectors))
        self._go(WizardStep.VERIFY)
        self._emit()
        return LoginOutcome(authenticated=True, post_login_url=response.post_login_url)

    # =========================================================================
    # Step 3: Verify -> start scan
    # =========================================================================

    def _fall_back_to_credentials(self, error: SessionExpiredError) -> None:
        self._auth_context = None
        self.state.is_scanning = False
        self._record_error(error)
        self._go(WizardStep.CREDENTIALS)
        self._emit()

    async def start_scan(self) -> Optional[str]:
        """
        Start the remote scan with the verified login.

        Returns the scan id, or None when the login session had expired and
        the wizard went back to Credentials. Raises ScanStartError when the
        backend refuses the scan.
        """
        self._require_step("start_scan", WizardStep.VERIFY)

        auth_context = self._auth_context
        if auth_context is None or auth_context.consumed:
            self._fall_back_to_credentials(SessionExpiredError())
            return None

        session = ScanSession(self.client, self.store, config=self.config)
        self.state.is_scanning = True
        self.state.last_error = None
        self._emit()

        try:
            scan_id = await session.start(self.state.target, self.state.login_url, auth_context)
        except SessionExpiredError as e:
            self._fall_back_to_credentials(e)
            return None
        except ScanStartError as e:
            self.state.is_scanning = False
            self._record_error(e)
            self._emit()
            raise

        self._auth_context = None
        # Login details are of no further use once the scan is running
        self.state.detected_form = None
        self.state.selected_fields = []
        self.state.credential_values.clear()
        self.state.submit_selector = None

        self._begin_scanning(session)
        return scan_id

    # =========================================================================
    # Step 4: Scanning
    # =========================================================================

    def _resume(self, record: PersistedSessionRecord) -> None:
        self.state = WizardState(step=WizardStep.SCANNING, target=record.target)
        session = ScanSession.resume(record, self.client, self.store, config=self.config)
        self._begin_scanning(session)

    def _begin_scanning(self, session: ScanSession) -> None:
        self._session = session
        self.cancellation.attach(session)

        self.state.scan_id = session.scan_id
        self.state.is_scanning = True
        self.state.phase = ""
        self.state.progress = 0
        self.state.message = ""
        self.state.report = session.report
        self._go(WizardStep.SCANNING)
        self._emit()

        session.watch(on_report=self.observe, on_failure=self._handle_failure)

    def observe(self, report: Report) -> None:
        """Take in the latest aggregated report; completion moves to Results."""
        if self.state.step is not WizardStep.SCANNING or report.scan_id != self.state.scan_id:
            logger.debug("Ignoring report outside of scanning", scan_id=report.scan_id)
            return

        self.state.report = report
        self.state.phase = report.phase
        self.state.progress = report.progress
        self.state.message = report.message

        if report.is_complete:
            self.state.is_scanning = False
            self.state.last_error = None
            clear_scan_context()
            self._go(WizardStep.RESULTS)
        self._emit()

    def _handle_failure(self, error: ScanError) -> None:
        self.state.is_scanning = False
        self._record_error(error)
        clear_scan_context()
        self._emit()

    async def stop(self) -> bool:
        """Stop the running scan. Safe to call repeatedly."""
        return await self.cancellation.stop(self.state.scan_id)

    def _handle_stopped(self, scan_id: str) -> None:
        if scan_id != self.state.scan_id:
            return
        self.state.is_scanning = False
        self.state.last_error = ErrorInfo(
            code=ErrorCode.SCAN_CANCELLED.value,
            message=STOPPED_BY_USER,
            recoverable=True,
        )
        self._emit()

    # =========================================================================
    # Reset
    # =========================================================================

    def reset(self) -> None:
        """Discard all wizard state and return to Configure."""
        if self._session is not None:
            self._session.polling.stop()
        self.cancellation.detach()
        self._session = None
        self._auth_context = None
        self.state.credential_values.clear()
        self.state = WizardState()
        clear_scan_context()
        logger.info("Wizard reset")
        self._emit()
