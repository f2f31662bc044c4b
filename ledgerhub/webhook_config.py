"""Reading webhook settings from tenant metadata and signing payloads."""

from __future__ import annotations

import hashlib
import hmac
import json
from collections.abc import Mapping
from typing import Any

from .webhook_types import SUPPORTED_EVENT_TYPES, WebhookConfig


class WebhookConfigError(ValueError):
    """Raised when tenant metadata holds no usable webhook configuration."""


def parse_webhook_config(metadata: bytes | str | Mapping[str, Any] | None) -> WebhookConfig:
    """Extract the webhook configuration from a tenant's JSON metadata.

    ``webhook_events`` defaults to every supported event type and
    ``webhook_enabled`` defaults to true.
    """
    if metadata is None or (isinstance(metadata, (bytes, str)) and len(metadata) == 0):
        raise WebhookConfigError("no metadata found")

    if isinstance(metadata, Mapping):
        tenant_meta: Any = metadata
    else:
        try:
            tenant_meta = json.loads(metadata)
        except (ValueError, UnicodeDecodeError) as exc:
            raise WebhookConfigError(f"failed to parse metadata: {exc}") from exc
        if tenant_meta is None:
            tenant_meta = {}
        if not isinstance(tenant_meta, Mapping):
            raise WebhookConfigError("failed to parse metadata: not a JSON object")

    webhook_url = tenant_meta.get("webhook_url")
    if not isinstance(webhook_url, str) or not webhook_url:
        raise WebhookConfigError("webhook_url not found or empty")

    webhook_secret = tenant_meta.get("webhook_secret")
    if not isinstance(webhook_secret, str) or not webhook_secret:
        raise WebhookConfigError("webhook_secret not found or empty")

    raw_events = tenant_meta.get("webhook_events")
    if isinstance(raw_events, list):
        events = [event for event in raw_events if isinstance(event, str)]
    else:
        events = list(SUPPORTED_EVENT_TYPES)

    enabled = tenant_meta.get("webhook_enabled")
    return WebhookConfig(
        webhook_url=webhook_url,
        webhook_secret=webhook_secret,
        webhook_events=events,
        enabled=enabled if isinstance(enabled, bool) else True,
    )


def should_deliver_event(config: WebhookConfig, event_type: str) -> bool:
    """Whether ``event_type`` is one the tenant subscribed to."""
    return event_type in config.webhook_events


def generate_signature(payload: bytes | str, secret: str) -> str:
    """Hex HMAC-SHA256 of ``payload`` keyed with ``secret``."""
    if isinstance(payload, str):
        payload = payload.encode("utf-8")
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()