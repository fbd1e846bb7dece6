"""Pytest configuration and shared fixtures for AuthScan."""

import asyncio
import json
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest
import pytest_asyncio

from authscan.client import ScanApiClient
from authscan.core.config import Settings
from authscan.core.logging import clear_scan_context
from authscan.scanner.session_store import InMemorySessionStore

API_BASE = "http://scan.test"
API_ROOT = f"{API_BASE}/api/zap-auth"


def login_form_payload() -> Dict[str, Any]:
    return {
        "fields": [
            {"selector": "#email", "tagName": "INPUT", "inputType": "email", "name": "email", "label": "Email"},
            {"selector": "#password", "tagName": "INPUT", "inputType": "password", "name": "password"},
            {"selector": "#remember", "tagName": "INPUT", "inputType": "checkbox", "name": "remember"},
            {"selector": "#go", "tagName": "INPUT", "inputType": "submit"},
            {"selector": "#help", "tagName": "BUTTON", "inputType": "button"},
        ],
        "submitButton": {"selector": "button[type=submit]", "tagName": "BUTTON", "inputType": "submit"},
        "passwordField": {"selector": "#password", "tagName": "INPUT", "inputType": "password"},
        "formAction": "/session",
        "method": "post",
    }


def search_form_payload() -> Dict[str, Any]:
    return {
        "fields": [{"selector": "#q", "tagName": "INPUT", "inputType": "search", "name": "q"}],
        "submitButton": None,
    }


class FakeScanServer:
    """
    In-process stand-in for the /api/zap-auth backend.

    Status responses are served from ``statuses`` in order, repeating the
    last one. An entry may be raw JSON bytes. Set ``status_gate`` to hold
    status responses until released.
    """

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.detection: Dict[str, Any] = {
            "success": True,
            "forms": [search_form_payload(), login_form_payload()],
            "warnings": ["CAPTCHA detected - automated login may fail"],
            "pageTitle": "Sign in",
            "hasCaptcha": True,
        }
        self.detection_status = 200
        self.login: Dict[str, Any] = {
            "authenticated": True,
            "tempSessionId": "tmp-session-1",
            "postLoginUrl": "https://app.example.com/dashboard",
            "cookieCount": 3,
        }
        self.login_status = 200
        self.scan_response: Dict[str, Any] = {"scanId": "S1", "status": "started"}
        self.scan_status = 200
        self.statuses: List[Any] = [{"status": "running", "progress": 10}]
        self.status_code = 200
        self.status_gate: Optional[asyncio.Event] = None
        self.stop_status = 200

    # -------------------------------------------------------------------------
    # Inspection helpers
    # -------------------------------------------------------------------------

    def calls(self, route: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path.startswith(f"/api/zap-auth/{route}")]

    def count(self, route: str) -> int:
        return len(self.calls(route))

    def body(self, route: str, index: int = -1) -> Dict[str, Any]:
        return json.loads(self.calls(route)[index].content)

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path.endswith("/detect-login-fields"):
            return httpx.Response(self.detection_status, json=self.detection)
        if path.endswith("/test-login"):
            return httpx.Response(self.login_status, json=self.login)
        if path.endswith("/scan"):
            return httpx.Response(self.scan_status, json=self.scan_response)
        if "/status/" in path:
            if self.status_gate is not None:
                await self.status_gate.wait()
            body = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
            if isinstance(body, bytes):
                return httpx.Response(self.status_code, content=body, headers={"Content-Type": "application/json"})
            return httpx.Response(self.status_code, json=body)
        if "/stop/" in path:
            if self.stop_status >= 400:
                return httpx.Response(self.stop_status, json={"error": "Scan not found"})
            return httpx.Response(self.stop_status, json={"success": True, "message": "Scan stopped"})
        return httpx.Response(404, json={"error": "Not found"})


async def wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Let the loop run until ``predicate`` holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


@pytest.fixture(autouse=True)
def _reset_scan_context():
    yield
    clear_scan_context()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        environment="test",
        api_base_url=API_BASE,
        api_token="test-token",
        poll_interval=0.01,
        request_timeout=5,
    )


@pytest.fixture
def server() -> FakeScanServer:
    return FakeScanServer()


@pytest_asyncio.fixture
async def api_client(settings, server):
    http = httpx.AsyncClient(transport=httpx.MockTransport(server.handler))
    client = ScanApiClient(config=settings, client=http)
    yield client
    await http.aclose()


@pytest.fixture
def store() -> InMemorySessionStore:
    return InMemorySessionStore()
