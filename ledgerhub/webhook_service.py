"""Queueing, sending and managing tenant webhook deliveries.

The service reads tenants, events and delivery records through a storage
backend with the small duck-typed interface described by ``_Store``.
Lookups that find nothing return ``None`` or raise an exception; both are
reported as :class:`WebhookServiceError`.
"""

from __future__ import annotations

import dataclasses
import json
import logging
import time
import uuid
from collections.abc import Mapping, Sequence
from datetime import datetime, timezone
from typing import Any, Callable, Protocol
from uuid import UUID

import httpx

from .webhook_config import (
    WebhookConfigError,
    generate_signature,
    parse_webhook_config,
    should_deliver_event,
)
from .webhook_types import (
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_TIMEOUT_SECONDS,
    WebhookConfig,
    WebhookConfigRequest,
    WebhookConfigResponse,
    WebhookDeliveryResponse,
    WebhookDeliveryResult,
    WebhookPayload,
)

logger = logging.getLogger(__name__)

USER_AGENT = "LedgerService-Webhooks/1.0"
TEST_EVENT_TYPE = "webhook.test"
_TEST_EVENT_DATA = {"message": "This is a test webhook from LedgerService"}


class WebhookServiceError(Exception):
    """Raised when a webhook operation cannot be carried out."""


class _Store(Protocol):
    def get_tenant_by_id(self, tenant_id: Any) -> Any: ...

    def get_tenant_by_slug(self, slug: str) -> Any: ...

    def create_webhook_delivery(
        self,
        *,
        tenant_id: Any,
        event_id: Any,
        webhook_url: str,
        max_attempts: int,
        next_retry_at: datetime,
    ) -> Any: ...

    def get_pending_webhook_deliveries(self, limit: int) -> Sequence[Any]: ...

    def get_event_by_id(self, *, tenant_id: Any, event_id: Any) -> Any: ...

    def update_webhook_delivery_success(
        self, *, delivery_id: Any, http_status_code: int, response_body: str
    ) -> None: ...

    def update_webhook_delivery_failure(
        self, *, delivery_id: Any, http_status_code: int, response_body: str
    ) -> None: ...

    def update_tenant_metadata(self, *, tenant_id: Any, metadata: bytes) -> Any: ...

    def get_webhook_deliveries_by_tenant(self, *, tenant_id: Any, limit: int) -> Sequence[Any]: ...

    def get_webhook_delivery_by_id(self, *, delivery_id: Any, tenant_id: Any) -> Any: ...

    def reset_webhook_delivery_for_retry(self, delivery_id: Any) -> None: ...


def _lookup(message: str, fetch: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """Call ``fetch``; raise WebhookServiceError if it fails or finds nothing."""
    try:
        found = fetch(*args, **kwargs)
    except Exception as exc:
        raise WebhookServiceError(f"{message}: {exc}") from exc
    if found is None:
        raise WebhookServiceError(f"{message}: not found")
    return found


def _unix(moment: datetime | None) -> int:
    return int(moment.timestamp()) if moment is not None else 0


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def _serialize(payload: WebhookPayload) -> bytes:
    """Encode a payload, parsing event data that arrives as raw JSON text."""
    data = payload.data
    if isinstance(data, (bytes, bytearray, str)):
        data = json.loads(data) if len(data) else None
        payload = dataclasses.replace(payload, data=data)
    return payload.to_json()


def _delivery_response(delivery: Any, event: Any) -> WebhookDeliveryResponse:
    return WebhookDeliveryResponse(
        id=str(delivery.id),
        event_id=str(delivery.event_id),
        event_type=event.event_type,
        url=delivery.webhook_url,
        attempts=int(delivery.attempts or 0),
        max_attempts=int(delivery.max_attempts or 0),
        created_at=delivery.created_at,
        status_code=(
            int(delivery.http_status_code) if delivery.http_status_code is not None else None
        ),
        next_retry_at=delivery.next_retry_at,
        delivered_at=delivery.delivered_at,
        failed_at=delivery.failed_at,
    )


class WebhookService:
    """Delivers ledger events to tenant webhook endpoints."""

    def __init__(self, store: _Store, http_client: httpx.Client | None = None) -> None:
        self.store = store
        self._http = http_client or httpx.Client(timeout=DEFAULT_TIMEOUT_SECONDS)

    def queue_webhook_delivery(self, event: Any) -> bool:
        """Record a pending delivery for ``event``; return whether one was queued.

        Tenants without a usable configuration, with webhooks disabled, or not
        subscribed to the event type are skipped without error.
        """
        tenant = _lookup("failed to get tenant", self.store.get_tenant_by_id, event.tenant_id)

        try:
            config = parse_webhook_config(tenant.metadata)
        except WebhookConfigError as exc:
            logger.info("No webhook config for tenant %s: %s", tenant.id, exc)
            return False

        if not config.enabled:
            logger.info("Webhooks disabled for tenant %s", tenant.id)
            return False

        if not should_deliver_event(config, event.event_type):
            logger.info("Event type %s not configured for webhook delivery", event.event_type)
            return False

        try:
            self.store.create_webhook_delivery(
                tenant_id=event.tenant_id,
                event_id=event.event_id,
                webhook_url=config.webhook_url,
                max_attempts=DEFAULT_MAX_ATTEMPTS,
                next_retry_at=datetime.now(timezone.utc),
            )
        except Exception as exc:
            raise WebhookServiceError(f"failed to create webhook delivery: {exc}") from exc

        logger.info("Queued webhook delivery for event %s to %s", event.event_id, config.webhook_url)
        return True

    def process_pending_deliveries(self, batch_size: int) -> int:
        """Attempt up to ``batch_size`` due deliveries; return how many were fetched."""
        try:
            deliveries = list(self.store.get_pending_webhook_deliveries(batch_size))
        except Exception as exc:
            raise WebhookServiceError(f"failed to get pending deliveries: {exc}") from exc

        if not deliveries:
            return 0

        logger.info("Processing %d pending webhook deliveries", len(deliveries))
        for delivery in deliveries:
            try:
                self.process_delivery(delivery)
            except WebhookServiceError as exc:
                logger.warning("Failed to process delivery %s: %s", delivery.id, exc)
        return len(deliveries)

    def process_delivery(self, delivery: Any) -> WebhookDeliveryResult:
        """Send one queued delivery and record its outcome."""
        event = _lookup(
            f"failed to get event {delivery.event_id} for tenant {delivery.tenant_id}",
            self.store.get_event_by_id,
            tenant_id=delivery.tenant_id,
            event_id=delivery.event_id,
        )
        tenant = _lookup("failed to get tenant", self.store.get_tenant_by_id, delivery.tenant_id)

        try:
            config = parse_webhook_config(tenant.metadata)
        except WebhookConfigError as exc:
            raise WebhookServiceError(f"failed to parse webhook config: {exc}") from exc

        payload = WebhookPayload(
            id=str(event.event_id),
            type=event.event_type,
            created=_unix(event.created_at),
            data=event.event_data,
            tenant_id=str(delivery.tenant_id),
            livemode=True,
        )
        result = self.deliver_webhook(config, payload)

        try:
            if result.success:
                self.store.update_webhook_delivery_success(
                    delivery_id=delivery.id,
                    http_status_code=result.status_code,
                    response_body=result.response_body,
                )
            else:
                self.store.update_webhook_delivery_failure(
                    delivery_id=delivery.id,
                    http_status_code=result.status_code,
                    response_body=result.error_message,
                )
        except Exception as exc:
            logger.warning("Failed to update webhook delivery status: %s", exc)

        return result

    def deliver_webhook(self, config: WebhookConfig, payload: WebhookPayload) -> WebhookDeliveryResult:
        """POST a signed payload to the configured URL; never raises."""
        start = time.monotonic()

        try:
            body = _serialize(payload)
        except (TypeError, ValueError) as exc:
            return WebhookDeliveryResult(
                success=False, error_message=f"Failed to serialize payload: {exc}"
            )

        signature = generate_signature(body, config.webhook_secret)
        headers = {
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
            "X-Ledger-Event-ID": payload.id,
            "X-Ledger-Timestamp": str(payload.created),
            "X-Ledger-Signature": "sha256=" + signature,
        }

        try:
            request = self._http.build_request(
                "POST", config.webhook_url, content=body, headers=headers
            )
        except (httpx.InvalidURL, ValueError, TypeError) as exc:
            return WebhookDeliveryResult(
                success=False, error_message=f"Failed to create request: {exc}"
            )

        try:
            response = self._http.send(request)
        except httpx.HTTPError as exc:
            return WebhookDeliveryResult(
                success=False,
                error_message=f"HTTP request failed: {exc}",
                delivery_time_ms=_elapsed_ms(start),
            )

        try:
            response_body = response.text
        except (httpx.HTTPError, UnicodeDecodeError):
            response_body = "Failed to read response body"
        finally:
            response.close()

        delivery_time = _elapsed_ms(start)
        success = 200 <= response.status_code < 300
        result = WebhookDeliveryResult(
            success=success,
            status_code=response.status_code,
            response_body=response_body,
            delivery_time_ms=delivery_time,
        )
        if not success:
            result.error_message = f"HTTP {response.status_code}: {response_body}"

        logger.info(
            "Webhook delivery to %s: %d (%dms)",
            config.webhook_url,
            response.status_code,
            delivery_time,
        )
        return result

    def configure_webhook(self, tenant_slug: str, req: WebhookConfigRequest) -> WebhookConfigResponse:
        """Store webhook settings in the tenant's metadata, keeping other keys."""
        tenant = _lookup("tenant not found", self.store.get_tenant_by_slug, tenant_slug)

        raw = tenant.metadata
        if isinstance(raw, Mapping):
            metadata: dict[str, Any] = dict(raw)
        elif raw:
            try:
                parsed = json.loads(raw)
            except (ValueError, UnicodeDecodeError) as exc:
                raise WebhookServiceError(f"failed to parse existing metadata: {exc}") from exc
            if parsed is None:
                parsed = {}
            if not isinstance(parsed, dict):
                raise WebhookServiceError(
                    "failed to parse existing metadata: not a JSON object"
                )
            metadata = parsed
        else:
            metadata = {}

        metadata["webhook_url"] = req.url
        metadata["webhook_secret"] = req.secret
        metadata["webhook_events"] = req.events
        metadata["webhook_enabled"] = req.enabled

        try:
            encoded = json.dumps(metadata, sort_keys=True, separators=(",", ":")).encode("utf-8")
        except (TypeError, ValueError) as exc:
            raise WebhookServiceError(f"failed to serialize metadata: {exc}") from exc

        updated = _lookup(
            "failed to update tenant metadata",
            self.store.update_tenant_metadata,
            tenant_id=tenant.id,
            metadata=encoded,
        )

        logger.info(
            "Webhook configured for tenant %s: %s (events: %s)", tenant_slug, req.url, req.events
        )
        return WebhookConfigResponse(
            url=req.url,
            events=req.events,  # type: ignore[arg-type]
            enabled=req.enabled,
            created_at=tenant.created_at,
            updated_at=updated.updated_at,
        )

    def list_webhook_deliveries(self, tenant_slug: str, limit: int) -> list[WebhookDeliveryResponse]:
        """Return a tenant's recent deliveries, skipping those whose event is gone."""
        tenant = _lookup("tenant not found", self.store.get_tenant_by_slug, tenant_slug)
        try:
            deliveries = self.store.get_webhook_deliveries_by_tenant(tenant_id=tenant.id, limit=limit)
        except Exception as exc:
            raise WebhookServiceError(f"failed to get webhook deliveries: {exc}") from exc

        responses = []
        for delivery in deliveries:
            try:
                event = self.store.get_event_by_id(
                    tenant_id=delivery.tenant_id, event_id=delivery.event_id
                )
            except Exception:
                continue
            if event is None:
                continue
            responses.append(_delivery_response(delivery, event))
        return responses

    def get_webhook_delivery(self, tenant_slug: str, delivery_id: UUID) -> WebhookDeliveryResponse:
        """Return one delivery of the tenant."""
        tenant = _lookup("tenant not found", self.store.get_tenant_by_slug, tenant_slug)
        delivery = _lookup(
            "webhook delivery not found",
            self.store.get_webhook_delivery_by_id,
            delivery_id=delivery_id,
            tenant_id=tenant.id,
        )
        event = _lookup(
            "failed to get event details",
            self.store.get_event_by_id,
            tenant_id=delivery.tenant_id,
            event_id=delivery.event_id,
        )
        return _delivery_response(delivery, event)

    def retry_webhook_delivery(self, tenant_slug: str, delivery_id: UUID) -> None:
        """Schedule an undelivered delivery for an immediate new attempt."""
        tenant = _lookup("tenant not found", self.store.get_tenant_by_slug, tenant_slug)
        delivery = _lookup(
            "webhook delivery not found",
            self.store.get_webhook_delivery_by_id,
            delivery_id=delivery_id,
            tenant_id=tenant.id,
        )

        if delivery.delivered_at is not None:
            raise WebhookServiceError("cannot retry successfully delivered webhook")
        if int(delivery.attempts or 0) >= int(delivery.max_attempts or 0):
            raise WebhookServiceError("maximum retry attempts exceeded")

        try:
            self.store.reset_webhook_delivery_for_retry(delivery.id)
        except Exception as exc:
            raise WebhookServiceError(f"failed to reset delivery for retry: {exc}") from exc

        logger.info("Webhook delivery %s reset for retry", delivery_id)

    def test_webhook(self, tenant_slug: str) -> WebhookDeliveryResult:
        """Send a non-live test event to the tenant's configured endpoint."""
        tenant = _lookup("tenant not found", self.store.get_tenant_by_slug, tenant_slug)
        try:
            config = parse_webhook_config(tenant.metadata)
        except WebhookConfigError as exc:
            raise WebhookServiceError(
                f"no webhook configuration found for tenant: {exc}"
            ) from exc

        payload = WebhookPayload(
            id="evt_test_" + str(uuid.uuid4())[:8],
            type=TEST_EVENT_TYPE,
            created=_unix(tenant.created_at),
            data=dict(_TEST_EVENT_DATA),
            tenant_id=str(tenant.id),
            livemode=False,
        )
        result = self.deliver_webhook(config, payload)

        logger.info(
            "Test webhook sent to %s: success=%s, status=%d",
            config.webhook_url,
            result.success,
            result.status_code,
        )
        return result