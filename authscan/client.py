"""
AuthScan API Client

Async HTTP client for the authenticated-scan backend: login detection,
login test, scan start, status polling and stop.
"""

from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError as PydanticValidationError

from authscan.core.config import Settings, settings as default_settings
from authscan.core.exceptions import (
    AuthenticationError,
    DetectionError,
    ErrorCode,
    PollingTransientError,
    ScanStartError,
    SessionExpiredError,
    StopAcknowledgeError,
)
from authscan.core.logging import get_logger, log_execution_time
from authscan.models.scan import FieldDescriptor, StatusSnapshot
from authscan.models.wire import (
    CredentialEntry,
    DetectionResponse,
    LoginTestRequest,
    LoginTestResponse,
    StartScanRequest,
    StartScanResponse,
    StatusResponse,
    WireField,
)

logger = get_logger(__name__)

SESSION_EXPIRED_CODE = "SESSION_EXPIRED"


def _error_message(response: httpx.Response, default: str) -> str:
    try:
        body = response.json()
    except ValueError:
        return default
    if isinstance(body, dict):
        return body.get("error") or body.get("message") or default
    return default


class ScanApiClient:
    """
    Thin wrapper around httpx.AsyncClient for the /api/zap-auth routes.

    Each call maps transport and HTTP failures onto the error taxonomy the
    wizard understands. Pass ``client`` to share a connection pool or to
    plug in a mock transport.
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config or default_settings
        headers = {"Content-Type": "application/json"}
        if self.config.api_token:
            headers["x-auth-token"] = self.config.api_token

        self._owns_client = client is None
        if client is None:
            client = httpx.AsyncClient(timeout=self.config.request_timeout)
        self._client = client
        self._headers = headers
        self._base_url = self.config.api_url

    def _url(self, path: str) -> str:
        return f"{self._base_url}/{path.lstrip('/')}"

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "ScanApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # =========================================================================
    # Detection / login test
    # =========================================================================

    async def detect_login_fields(self, login_url: str) -> DetectionResponse:
        try:
            response = await self._client.post(
                self._url("detect-login-fields"),
                json={"loginUrl": login_url},
                headers=self._headers,
            )
        except httpx.HTTPError as e:
            raise DetectionError(
                f"Could not reach the detection service: {e}",
                login_url=login_url,
                code=ErrorCode.DETECTION_FAILED,
                cause=e,
            ) from e

        if response.is_error:
            raise DetectionError(
                _error_message(response, "Detection failed"),
                login_url=login_url,
                code=ErrorCode.DETECTION_FAILED,
                status_code=response.status_code,
            )

        try:
            return DetectionResponse.model_validate(response.json())
        except (ValueError, PydanticValidationError) as e:
            raise DetectionError(
                "Detection service returned an unreadable response",
                login_url=login_url,
                code=ErrorCode.DETECTION_FAILED,
                cause=e,
            ) from e

    @log_execution_time(logger)
    async def test_login(
        self,
        login_url: str,
        credentials: List[CredentialEntry],
        submit_button: Optional[FieldDescriptor] = None,
    ) -> LoginTestResponse:
        payload = LoginTestRequest(
            login_url=login_url,
            credentials=credentials,
            submit_button=_wire_field(submit_button),
        )
        try:
            response = await self._client.post(
                self._url("test-login"),
                json=payload.model_dump(by_alias=True),
                headers=self._headers,
            )
        except httpx.HTTPError as e:
            raise AuthenticationError(f"Login test failed: {e}", cause=e) from e

        if response.is_error:
            raise AuthenticationError(
                _error_message(response, "Login test failed"),
                status_code=response.status_code,
            )

        try:
            return LoginTestResponse.model_validate(response.json())
        except (ValueError, PydanticValidationError) as e:
            raise AuthenticationError("Login test returned an unreadable response", cause=e) from e

    # =========================================================================
    # Scan lifecycle
    # =========================================================================

    @log_execution_time(logger)
    async def start_scan(self, target_url: str, login_url: str, temp_session_id: str) -> str:
        """Start the remote scan and return its server-assigned id."""
        payload = StartScanRequest(
            target_url=target_url,
            login_url=login_url,
            temp_session_id=temp_session_id,
        )
        try:
            response = await self._client.post(
                self._url("scan"),
                json=payload.model_dump(by_alias=True),
                headers=self._headers,
            )
        except httpx.HTTPError as e:
            raise ScanStartError(f"Failed to start scan: {e}", cause=e) from e

        try:
            body = StartScanResponse.model_validate(response.json())
        except (ValueError, PydanticValidationError):
            body = StartScanResponse()

        if body.code == SESSION_EXPIRED_CODE:
            raise SessionExpiredError(status_code=response.status_code)

        if response.is_error:
            raise ScanStartError(
                body.error or "Failed to start scan",
                status_code=response.status_code,
            )
        if not body.scan_id:
            raise ScanStartError("Scan backend did not return a scan id", status_code=response.status_code)

        return body.scan_id

    async def get_status(self, scan_id: str) -> StatusSnapshot:
        try:
            response = await self._client.get(
                self._url(f"status/{scan_id}"),
                headers=self._headers,
            )
        except httpx.HTTPError as e:
            raise PollingTransientError(scan_id, f"Status request failed: {e}", cause=e) from e

        if response.is_error:
            raise PollingTransientError(
                scan_id,
                _error_message(response, "Failed to get scan status"),
                status_code=response.status_code,
            )

        try:
            return StatusResponse.model_validate(response.json()).to_snapshot()
        except (ValueError, TypeError, OverflowError, PydanticValidationError) as e:
            raise PollingTransientError(scan_id, "Unreadable status response", cause=e) from e

    async def stop_scan(self, scan_id: str) -> Dict[str, Any]:
        try:
            response = await self._client.post(
                self._url(f"stop/{scan_id}"),
                headers=self._headers,
            )
        except httpx.HTTPError as e:
            raise StopAcknowledgeError(scan_id, f"Stop request failed: {e}", cause=e) from e

        if response.is_error:
            raise StopAcknowledgeError(
                scan_id,
                _error_message(response, "Failed to stop scan"),
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError:
            body = {}
        return body if isinstance(body, dict) else {}


def _wire_field(descriptor: Optional[FieldDescriptor]) -> Optional[WireField]:
    if descriptor is None:
        return None
    return WireField(
        selector=descriptor.selector,
        tag_name=descriptor.tag_name,
        input_type=descriptor.input_type,
        name=descriptor.name,
        id=descriptor.id,
        label=descriptor.label,
        placeholder=descriptor.placeholder,
        required=descriptor.required,
    )
