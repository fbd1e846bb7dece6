"""End-to-end tests for the authenticated scan wizard."""

import asyncio

import pytest

from authscan.core.exceptions import (
    DetectionError,
    ErrorCode,
    ScanStartError,
    WizardStepError,
)
from authscan.models.scan import (
    FieldDescriptor,
    FormDescriptor,
    PersistedSessionRecord,
    ScannerId,
    WizardStep,
)
from authscan.scanner.session_store import InMemorySessionStore
from authscan.wizard import WizardController, choose_login_form

from conftest import wait_for

TARGET = "https://app.example.com"
LOGIN_URL = "https://app.example.com/login"


class FullDiskStore(InMemorySessionStore):
    def set(self, record):
        raise OSError("No space left on device")


def fill_credentials(wizard: WizardController) -> None:
    wizard.set_credential("#email", "user@example.com")
    wizard.set_credential("#password", "hunter2")
    wizard.set_credential("#remember", "on")


async def wizard_at_verify(api_client, store, settings, **kwargs) -> WizardController:
    wizard = WizardController(api_client, store, config=settings, **kwargs)
    assert wizard.configure(TARGET, LOGIN_URL)
    await wizard.detect_login_fields()
    fill_credentials(wizard)
    outcome = await wizard.test_login()
    assert outcome.authenticated
    return wizard


# =============================================================================
# Configure
# =============================================================================


@pytest.mark.asyncio
@pytest.mark.parametrize("target,login_url", [
    ("", LOGIN_URL),
    (TARGET, ""),
    ("ftp://app.example.com", LOGIN_URL),
    ("app.example.com", LOGIN_URL),
    ("http://localhost:8080", LOGIN_URL),
    ("http://127.0.0.1", LOGIN_URL),
])
async def test_configure_rejects_bad_urls(api_client, store, settings, target, login_url):
    wizard = WizardController(api_client, store, config=settings)

    assert not wizard.configure(target, login_url)

    assert wizard.step is WizardStep.CONFIGURE
    assert wizard.state.last_error.code == ErrorCode.INVALID_INPUT.value
    assert wizard.state.last_error.recoverable


@pytest.mark.asyncio
async def test_detection_requires_configuration(api_client, server, store, settings):
    wizard = WizardController(api_client, store, config=settings)

    assert await wizard.detect_login_fields() is None
    assert server.count("detect-login-fields") == 0
    assert wizard.state.last_error.message == "Target URL and login URL are required"


@pytest.mark.asyncio
async def test_operations_are_checked_against_the_step(api_client, store, settings):
    wizard = WizardController(api_client, store, config=settings)

    with pytest.raises(WizardStepError):
        await wizard.test_login()
    with pytest.raises(WizardStepError):
        await wizard.start_scan()


# =============================================================================
# Detection
# =============================================================================


@pytest.mark.asyncio
async def test_detection_selects_login_form(api_client, store, settings):
    events = []
    wizard = WizardController(api_client, store, config=settings, event_callback=lambda s: events.append(s.step))
    wizard.configure(TARGET, LOGIN_URL)

    form = await wizard.detect_login_fields()

    assert form.has_password_field
    assert wizard.step is WizardStep.CREDENTIALS
    assert [f.selector for f in wizard.state.selected_fields] == ["#email", "#password", "#remember"]
    assert wizard.state.credential_values.snapshot() == {"#email": "", "#password": "", "#remember": ""}
    assert wizard.state.submit_selector == "button[type=submit]"
    assert wizard.state.warnings == ["CAPTCHA detected - automated login may fail"]
    assert events[-1] is WizardStep.CREDENTIALS


def test_first_form_used_without_password_field():
    first = FormDescriptor(fields=[FieldDescriptor(selector="#q")])
    second = FormDescriptor(fields=[FieldDescriptor(selector="#user")])

    assert choose_login_form([first, second]) is first


@pytest.mark.asyncio
async def test_no_forms_detected(api_client, server, store, settings):
    server.detection = {"success": True, "forms": []}
    wizard = WizardController(api_client, store, config=settings)
    wizard.configure(TARGET, LOGIN_URL)

    with pytest.raises(DetectionError) as exc_info:
        await wizard.detect_login_fields()

    assert exc_info.value.code is ErrorCode.NO_LOGIN_FORM
    assert wizard.step is WizardStep.CONFIGURE
    assert wizard.state.last_error.message == "No login forms detected on this page."


@pytest.mark.asyncio
async def test_unsuccessful_detection(api_client, server, store, settings):
    server.detection = {"success": False, "error": "Page did not load"}
    wizard = WizardController(api_client, store, config=settings)
    wizard.configure(TARGET, LOGIN_URL)

    with pytest.raises(DetectionError):
        await wizard.detect_login_fields()

    assert wizard.state.last_error.message == "Page did not load"


# =============================================================================
# Credentials
# =============================================================================


@pytest.mark.asyncio
async def test_toggle_field_changes_required_credentials(api_client, server, store, settings):
    wizard = WizardController(api_client, store, config=settings)
    wizard.configure(TARGET, LOGIN_URL)
    await wizard.detect_login_fields()
    remember = wizard.state.selected_fields[2]

    assert not wizard.toggle_field(remember)
    assert "#remember" not in wizard.state.credential_values
    assert not wizard.set_credential("#remember", "on")
    assert wizard.state.last_error.code == ErrorCode.VALIDATION_ERROR.value
    assert "#remember" not in wizard.state.credential_values

    wizard.set_credential("#email", "user@example.com")
    wizard.set_credential("#password", "hunter2")
    outcome = await wizard.test_login()

    assert outcome.authenticated
    assert [c["selector"] for c in server.body("test-login")["credentials"]] == ["#email", "#password"]


@pytest.mark.asyncio
async def test_submit_selector_override(api_client, server, store, settings):
    wizard = WizardController(api_client, store, config=settings)
    wizard.configure(TARGET, LOGIN_URL)
    await wizard.detect_login_fields()
    fill_credentials(wizard)

    wizard.set_submit_selector("#go")
    await wizard.test_login()

    submit = server.body("test-login")["submitButton"]
    assert submit["selector"] == "#go"
    assert submit["tagName"] == "INPUT"
    assert submit["inputType"] == "submit"


@pytest.mark.asyncio
async def test_incomplete_credentials_are_not_sent(api_client, server, store, settings):
    wizard = WizardController(api_client, store, config=settings)
    wizard.configure(TARGET, LOGIN_URL)
    await wizard.detect_login_fields()
    wizard.set_credential("#email", "user@example.com")

    outcome = await wizard.test_login()

    assert not outcome.authenticated
    assert outcome.error_message == "Please fill in all credential fields"
    assert wizard.state.last_error.code == ErrorCode.CREDENTIALS_INCOMPLETE.value
    assert server.count("test-login") == 0


@pytest.mark.asyncio
async def test_failed_login_keeps_credentials(api_client, server, store, settings):
    server.login = {"authenticated": False, "errorMessage": "Still on the login page"}
    wizard = WizardController(api_client, store, config=settings)
    wizard.configure(TARGET, LOGIN_URL)
    await wizard.detect_login_fields()
    fill_credentials(wizard)
    before = wizard.state.credential_values.snapshot()

    outcome = await wizard.test_login()

    assert not outcome.authenticated
    assert outcome.error_message == "Still on the login page"
    assert wizard.step is WizardStep.CREDENTIALS
    assert wizard.state.credential_values.snapshot() == before
    assert wizard.state.last_error.code == ErrorCode.AUTH_LOGIN_FAILED.value
    assert not wizard.has_auth_context


@pytest.mark.asyncio
async def test_rejected_login_request(api_client, server, store, settings):
    server.login_status = 500
    server.login = {"error": "Browser crashed"}
    wizard = WizardController(api_client, store, config=settings)
    wizard.configure(TARGET, LOGIN_URL)
    await wizard.detect_login_fields()
    fill_credentials(wizard)

    outcome = await wizard.test_login()

    assert not outcome.authenticated
    assert outcome.error_message == "Browser crashed"
    assert wizard.state.credential_values.get("#password") == "hunter2"


@pytest.mark.asyncio
async def test_successful_login_zeroes_credentials(api_client, server, store, settings):
    wizard = await wizard_at_verify(api_client, store, settings)

    assert wizard.step is WizardStep.VERIFY
    assert wizard.has_auth_context
    assert wizard.state.credential_values.snapshot() == {"#email": "", "#password": "", "#remember": ""}
    assert server.body("test-login")["submitButton"]["selector"] == "button[type=submit]"
    assert "hunter2" not in repr(wizard.state)


# =============================================================================
# Scan start
# =============================================================================


@pytest.mark.asyncio
async def test_expired_session_returns_to_credentials(api_client, server, store, settings):
    server.scan_status = 400
    server.scan_response = {"error": "Session expired", "code": "SESSION_EXPIRED"}
    wizard = await wizard_at_verify(api_client, store, settings)

    assert await wizard.start_scan() is None

    assert wizard.step is WizardStep.CREDENTIALS
    assert wizard.state.last_error.code == ErrorCode.AUTH_SESSION_EXPIRED.value
    assert wizard.state.last_error.message == "Session expired. Please test login again."
    assert not wizard.state.is_scanning
    assert not wizard.has_auth_context
    assert store.get() is None

    fill_credentials(wizard)
    server.scan_status = 200
    server.scan_response = {"scanId": "S2"}
    assert (await wizard.test_login()).authenticated
    assert await wizard.start_scan() == "S2"
    wizard.reset()


@pytest.mark.asyncio
async def test_rejected_start_can_be_retried(api_client, server, store, settings):
    server.scan_status = 503
    server.scan_response = {"error": "Scanner busy"}
    wizard = await wizard_at_verify(api_client, store, settings)

    with pytest.raises(ScanStartError):
        await wizard.start_scan()

    assert wizard.step is WizardStep.VERIFY
    assert wizard.state.last_error.message == "Scanner busy"
    assert wizard.has_auth_context

    server.scan_status = 200
    server.scan_response = {"scanId": "S1"}
    assert await wizard.start_scan() == "S1"
    assert server.body("scan")["tempSessionId"] == "tmp-session-1"
    wizard.reset()


@pytest.mark.asyncio
async def test_full_flow_reaches_results(api_client, server, store, settings):
    server.statuses = [
        {"status": "running", "phase": "observatory", "progress": 20, "hasObservatoryResult": True,
         "observatoryData": {"grade": "B"}},
        {"status": "running", "phase": "zap", "progress": 60, "hasObservatoryResult": True,
         "hasPsiResult": True, "psiScores": {"performance": 88}},
        {"status": "combining", "phase": "summary", "progress": 95, "hasZapResult": True},
        {"status": "completed", "progress": 100, "hasZapResult": True, "hasRefinedReport": True,
         "refinedReport": "2 high risk findings"},
    ]
    steps = []
    wizard = await wizard_at_verify(api_client, store, settings, event_callback=lambda s: steps.append(s.step))

    scan_id = await wizard.start_scan()

    assert scan_id == "S1"
    assert wizard.state.detected_form is None
    assert wizard.state.selected_fields == []
    assert len(wizard.state.credential_values) == 0
    assert store.get().scan_id == "S1"

    await wait_for(lambda: wizard.step is WizardStep.RESULTS)

    report = wizard.state.report
    assert report.is_complete
    assert report.payload(ScannerId.OBSERVATORY) == {"grade": "B"}
    assert report.payload(ScannerId.PSI) == {"performance": 88}
    assert report.payload(ScannerId.SUMMARY) == "2 high risk findings"
    assert not wizard.state.is_scanning
    assert wizard.state.progress == 100
    assert store.get() is None
    assert server.count("status") == 4
    assert steps.index(WizardStep.SCANNING) < steps.index(WizardStep.RESULTS)


@pytest.mark.asyncio
async def test_remote_failure_is_reported(api_client, server, store, settings):
    server.statuses = [{"status": "failed", "error": "Target unreachable"}]
    wizard = await wizard_at_verify(api_client, store, settings)

    await wizard.start_scan()
    await wait_for(lambda: not wizard.state.is_scanning)

    assert wizard.step is WizardStep.SCANNING
    assert wizard.state.last_error.code == ErrorCode.SCAN_FAILED.value
    assert wizard.state.last_error.message == "Target unreachable"
    assert store.get() is None



@pytest.mark.asyncio
async def test_unrecorded_scan_returns_to_verify(api_client, server, settings):
    store = FullDiskStore()
    wizard = await wizard_at_verify(api_client, store, settings)

    with pytest.raises(ScanStartError):
        await wizard.start_scan()

    assert wizard.step is WizardStep.VERIFY
    assert not wizard.state.is_scanning
    assert wizard.state.last_error.code == ErrorCode.SCAN_START_REJECTED.value
    assert server.count("stop") == 1
    assert server.count("status") == 0

# =============================================================================
# Stop / resume / reset
# =============================================================================


@pytest.mark.asyncio
async def test_stop_running_scan(api_client, server, store, settings):
    wizard = await wizard_at_verify(api_client, store, settings)
    await wizard.start_scan()
    await wait_for(lambda: server.count("status") >= 1)

    assert await wizard.stop()
    assert not await wizard.stop()

    assert not wizard.state.is_scanning
    assert wizard.state.last_error.code == ErrorCode.SCAN_CANCELLED.value
    assert store.get() is None
    assert server.count("stop") == 1

    polls = server.count("status")
    await asyncio.sleep(0.05)
    assert server.count("status") == polls


@pytest.mark.asyncio
async def test_resume_after_restart(api_client, server, settings):
    server.status_gate = asyncio.Event()
    server.statuses = [{"status": "completed", "progress": 100, "hasZapResult": True}]
    store = InMemorySessionStore(PersistedSessionRecord(scan_id="S1", target=TARGET, started_at=1))

    wizard = WizardController(api_client, store, config=settings)

    assert wizard.step is WizardStep.SCANNING
    assert wizard.state.is_scanning
    assert wizard.state.scan_id == "S1"
    assert wizard.state.target == TARGET

    await wait_for(lambda: server.count("status") == 1)
    await asyncio.sleep(0.03)
    assert server.count("status") == 1
    assert server.calls("status")[0].url.path == "/api/zap-auth/status/S1"

    server.status_gate.set()
    await wait_for(lambda: wizard.step is WizardStep.RESULTS)
    assert store.get() is None


@pytest.mark.asyncio
async def test_resumed_scan_can_be_stopped(api_client, server, settings):
    store = InMemorySessionStore(PersistedSessionRecord(scan_id="S1", target=TARGET, started_at=1))
    wizard = WizardController(api_client, store, config=settings)

    assert await wizard.stop()
    assert store.get() is None
    assert server.calls("stop")[0].url.path == "/api/zap-auth/stop/S1"


@pytest.mark.asyncio
async def test_reset_returns_to_configure(api_client, server, store, settings):
    wizard = await wizard_at_verify(api_client, store, settings)
    await wizard.start_scan()
    await wait_for(lambda: server.count("status") >= 1)

    wizard.reset()

    assert wizard.step is WizardStep.CONFIGURE
    assert wizard.state.scan_id is None
    assert not wizard.has_auth_context
    assert store.get().scan_id == "S1"
    polls = server.count("status")
    await asyncio.sleep(0.05)
    assert server.count("status") == polls


@pytest.mark.asyncio
async def test_resumed_scan_survives_overflowing_progress(api_client, server, settings):
    server.statuses = [b'{"status": "running", "progress": 1e400}']
    store = InMemorySessionStore(PersistedSessionRecord(scan_id="S1", target=TARGET, started_at=1))
    wizard = WizardController(api_client, store, config=settings)

    await wait_for(lambda: server.count("status") >= 3)

    assert wizard.state.is_scanning
    assert wizard.state.progress == 100
    assert wizard.state.last_error is None
    assert store.get().scan_id == "S1"
    wizard.reset()


@pytest.mark.asyncio
async def test_polling_crash_ends_scan_with_error(api_client, server, store, settings, monkeypatch):
    wizard = await wizard_at_verify(api_client, store, settings)

    async def broken_status(scan_id):
        raise RuntimeError("unexpected status payload")

    monkeypatch.setattr(api_client, "get_status", broken_status)
    await wizard.start_scan()
    await wait_for(lambda: not wizard.state.is_scanning)

    assert wizard.step is WizardStep.SCANNING
    assert wizard.state.last_error.code == ErrorCode.SCAN_POLL_FAILED.value
    assert store.get() is None
