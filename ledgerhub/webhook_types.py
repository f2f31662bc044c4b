"""Configuration, payload and record types of tenant webhooks."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID

from .validation import validate_fields

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_TIMEOUT_SECONDS = 30
MAX_WEBHOOK_URL_LENGTH = 2048
MAX_WEBHOOK_SECRET_LENGTH = 128

SUPPORTED_EVENT_TYPES: tuple[str, ...] = (
    "transaction.posted",
    "balance.updated",
    "account.created",
    "account.updated",
)

_HTML_ESCAPES = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}


def _time_text(value: datetime | None) -> str | None:
    if value is None:
        return None
    text = value.isoformat()
    if text.endswith("+00:00"):
        text = text[: -len("+00:00")] + "Z"
    return text


@dataclass
class WebhookConfig:
    """A tenant's webhook settings."""

    webhook_url: str
    webhook_secret: str
    webhook_events: list[str] = field(default_factory=list)
    enabled: bool = True


@dataclass
class WebhookPayload:
    """The body posted to a webhook endpoint."""

    id: str
    type: str
    created: int
    data: Any
    tenant_id: str
    livemode: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "created": self.created,
            "data": self.data,
            "tenant_id": self.tenant_id,
            "livemode": self.livemode,
        }

    def to_json(self) -> bytes:
        """Compact JSON with HTML-sensitive characters escaped."""
        text = json.dumps(self.to_dict(), separators=(",", ":"), ensure_ascii=False)
        for char, escaped in _HTML_ESCAPES.items():
            text = text.replace(char, escaped)
        return text.encode("utf-8")


@dataclass
class WebhookDeliveryRequest:
    tenant_id: UUID
    event_id: UUID
    webhook_url: str
    max_attempts: int
    next_retry_at: datetime


@dataclass
class WebhookDeliveryResult:
    """The outcome of one delivery attempt."""

    success: bool
    status_code: int = 0
    response_body: str = ""
    error_message: str = ""
    delivery_time_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "success": self.success,
            "status_code": self.status_code,
            "response_body": self.response_body,
        }
        if self.error_message:
            result["error_message"] = self.error_message
        result["delivery_time_ms"] = self.delivery_time_ms
        return result


@dataclass
class WebhookConfigRequest:
    """A request to set a tenant's webhook configuration."""

    url: str = ""
    secret: str = ""
    events: list[str] | None = None
    enabled: bool = False

    @classmethod
    def from_dict(cls, data: Any) -> WebhookConfigRequest:
        """Build a request from decoded JSON; raise ValueError on bad types."""
        if not isinstance(data, Mapping):
            raise ValueError("request must be a JSON object")
        url = data.get("url")
        secret = data.get("secret")
        events = data.get("events")
        enabled = data.get("enabled")
        for key, value in (("url", url), ("secret", secret)):
            if value is not None and not isinstance(value, str):
                raise ValueError(f"{key} must be a string")
        if events is not None:
            if not isinstance(events, list) or not all(isinstance(e, str) for e in events):
                raise ValueError("events must be a list of strings")
        if enabled is not None and not isinstance(enabled, bool):
            raise ValueError("enabled must be a boolean")
        return cls(
            url=url or "",
            secret=secret or "",
            events=list(events) if events is not None else None,
            enabled=bool(enabled),
        )

    def validate(self) -> None:
        validate_fields(
            [
                ("url", self.url, "required,url"),
                ("secret", self.secret, "required,min=32"),
                ("events", self.events, "required,min=1"),
            ]
        )


@dataclass
class WebhookConfigResponse:
    url: str
    events: list[str]
    enabled: bool
    created_at: datetime | None
    updated_at: datetime | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "events": list(self.events) if self.events is not None else None,
            "enabled": self.enabled,
            "created_at": _time_text(self.created_at),
            "updated_at": _time_text(self.updated_at),
        }


@dataclass
class WebhookDeliveryResponse:
    """A delivery record as shown to API clients."""

    id: str
    event_id: str
    event_type: str
    url: str
    attempts: int
    max_attempts: int
    created_at: datetime | None
    status_code: int | None = None
    next_retry_at: datetime | None = None
    delivered_at: datetime | None = None
    failed_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "event_id": self.event_id,
            "event_type": self.event_type,
            "url": self.url,
        }
        if self.status_code is not None:
            result["status_code"] = self.status_code
        result["attempts"] = self.attempts
        result["max_attempts"] = self.max_attempts
        for key, value in (
            ("next_retry_at", self.next_retry_at),
            ("delivered_at", self.delivered_at),
            ("failed_at", self.failed_at),
        ):
            if value is not None:
                result[key] = _time_text(value)
        result["created_at"] = _time_text(self.created_at)
        return result