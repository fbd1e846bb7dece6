"""
AuthScan - Wire Models
Pydantic models for the authenticated-scan backend payloads (camelCase JSON).
"""

import math
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .scan import (
    FieldDescriptor,
    FormDescriptor,
    ScannerId,
    StatusSnapshot,
    TerminalStatus,
)


class WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


# =============================================================================
# Detection
# =============================================================================


class WireField(WireModel):
    selector: str
    tag_name: str = "INPUT"
    input_type: Optional[str] = None
    name: str = ""
    id: str = ""
    label: str = ""
    placeholder: str = ""
    required: bool = False

    def to_descriptor(self) -> FieldDescriptor:
        return FieldDescriptor(
            selector=self.selector,
            tag_name=(self.tag_name or "INPUT").upper(),
            input_type=self.input_type or "text",
            name=self.name or "",
            id=self.id or "",
            label=self.label or "",
            placeholder=self.placeholder or "",
            required=self.required,
        )


class WireForm(WireModel):
    fields: List[WireField] = Field(default_factory=list)
    submit_button: Optional[WireField] = None
    password_field: Optional[WireField] = None
    username_field: Optional[WireField] = None
    form_action: Optional[str] = None
    method: Optional[str] = None

    def to_descriptor(self) -> FormDescriptor:
        return FormDescriptor(
            fields=[f.to_descriptor() for f in self.fields],
            submit_button=self.submit_button.to_descriptor() if self.submit_button else None,
            password_field=self.password_field.to_descriptor() if self.password_field else None,
            username_field=self.username_field.to_descriptor() if self.username_field else None,
            action=self.form_action or "",
            method=self.method or "",
        )


class DetectionResponse(WireModel):
    success: bool = False
    forms: List[WireForm] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    error: Optional[str] = None
    page_title: Optional[str] = None
    has_captcha: bool = False
    has_oauth: bool = Field(default=False, alias="hasOAuth")


# =============================================================================
# Login test
# =============================================================================


class CredentialEntry(WireModel):
    selector: str
    value: str = Field(repr=False)
    input_type: Optional[str] = None


class LoginTestRequest(WireModel):
    login_url: str
    credentials: List[CredentialEntry]
    submit_button: Optional[WireField] = None


class LoginTestResponse(WireModel):
    authenticated: bool = False
    temp_session_id: Optional[str] = Field(default=None, repr=False)
    post_login_url: Optional[str] = None
    error_message: Optional[str] = None
    cookie_count: int = 0


# =============================================================================
# Scan start / status
# =============================================================================


class StartScanRequest(WireModel):
    target_url: str
    login_url: str
    temp_session_id: str = Field(repr=False)


class StartScanResponse(WireModel):
    scan_id: Optional[str] = None
    code: Optional[str] = None
    error: Optional[str] = None
    message: Optional[str] = None


# (arrived flag, payload field) per scanner
SCANNER_FIELDS: Dict[ScannerId, tuple] = {
    ScannerId.ZAP: ("has_zap_result", "zap_data"),
    ScannerId.OBSERVATORY: ("has_observatory_result", "observatory_data"),
    ScannerId.PSI: ("has_psi_result", "psi_scores"),
    ScannerId.URLSCAN: ("has_urlscan_result", "urlscan_data"),
    ScannerId.WEBCHECK: ("has_web_check_result", "web_check_data"),
    ScannerId.VIRUSTOTAL: ("has_vt_result", "vt_stats"),
    ScannerId.SUMMARY: ("has_refined_report", "refined_report"),
}

TERMINAL_BY_STATUS = {
    "completed": TerminalStatus.COMPLETED,
    "failed": TerminalStatus.FAILED,
    "stopped": TerminalStatus.FAILED,
}


def _clamp_progress(value: Optional[float]) -> int:
    """Percent in 0..100; NaN and missing count as 0, infinities clamp."""
    if value is None or math.isnan(value):
        return 0
    return int(max(0.0, min(100.0, value)))


class StatusResponse(WireModel):
    status: Optional[str] = "queued"
    scan_id: Optional[str] = None
    target: Optional[str] = None
    phase: Optional[str] = ""
    progress: Optional[float] = 0
    message: Optional[str] = ""
    error: Optional[str] = None

    has_zap_result: bool = False
    has_observatory_result: bool = False
    has_psi_result: bool = False
    has_urlscan_result: bool = False
    has_web_check_result: bool = False
    has_vt_result: bool = False
    has_refined_report: bool = False

    zap_data: Optional[Any] = None
    observatory_data: Optional[Any] = None
    psi_scores: Optional[Any] = None
    urlscan_data: Optional[Any] = None
    web_check_data: Optional[Any] = None
    vt_stats: Optional[Any] = None
    refined_report: Optional[Any] = None

    def to_snapshot(self) -> StatusSnapshot:
        arrived = set()
        payloads: Dict[ScannerId, Any] = {}
        for scanner, (flag, payload_field) in SCANNER_FIELDS.items():
            if getattr(self, flag):
                arrived.add(scanner)
            payload = getattr(self, payload_field)
            if payload is not None:
                payloads[scanner] = payload

        terminal = TERMINAL_BY_STATUS.get((self.status or "").lower(), TerminalStatus.NONE)
        error = self.error
        if terminal is TerminalStatus.FAILED and not error:
            error = "Scan was stopped" if self.status == "stopped" else "Scan failed"

        return StatusSnapshot(
            phase=self.phase or "",
            progress=_clamp_progress(self.progress),
            message=self.message or "",
            per_scanner_arrived=frozenset(arrived),
            per_scanner_payload=payloads,
            terminal=terminal,
            error=error,
            scan_id=self.scan_id,
        )
