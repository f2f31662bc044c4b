"""HTTP-level handling of webhook configuration and delivery requests.

Each handler returns ``(status_code, body)`` as produced by :mod:`ledgerhub.api`.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from http import HTTPStatus
from typing import Any
from uuid import UUID

from .api import (
    bad_request_response,
    error_response,
    internal_error_response,
    success_response,
    validation_error_response,
)
from .transaction_handlers import get_int_param
from .validation import ValidationError
from .webhook_service import WebhookServiceError
from .webhook_types import WebhookConfigRequest

DEFAULT_DELIVERY_LIMIT = 50
MAX_DELIVERY_LIMIT = 100

Response = tuple[int, str]


def _decode_json(body: Any) -> Any:
    if isinstance(body, (bytes, bytearray, str)):
        return json.loads(body)
    return body


def _parse_uuid(value: Any) -> UUID | None:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None


class WebhookHandlers:
    """Request handlers for the webhook endpoints."""

    def __init__(self, service: Any) -> None:
        self.service = service

    def configure_webhook(self, tenant_slug: str, body: Any) -> Response:
        """Set the tenant's webhook URL, secret and subscribed events."""
        try:
            req = WebhookConfigRequest.from_dict(_decode_json(body))
        except (ValueError, TypeError):
            return bad_request_response("invalid JSON payload")
        try:
            req.validate()
        except ValidationError as exc:
            return validation_error_response(exc)

        try:
            response = self.service.configure_webhook(tenant_slug, req)
        except WebhookServiceError as exc:
            return internal_error_response(str(exc))
        return success_response(HTTPStatus.OK, response)

    def list_webhook_deliveries(self, tenant_slug: str, query: Mapping[str, Any] | None) -> Response:
        """List the tenant's recent deliveries; ``limit`` must be 1-100 or defaults to 50."""
        limit = get_int_param(query, "limit", DEFAULT_DELIVERY_LIMIT)
        if not 0 < limit <= MAX_DELIVERY_LIMIT:
            limit = DEFAULT_DELIVERY_LIMIT

        try:
            deliveries = self.service.list_webhook_deliveries(tenant_slug, limit)
        except WebhookServiceError as exc:
            return internal_error_response(str(exc))
        return success_response(
            HTTPStatus.OK, {"deliveries": deliveries, "total": len(deliveries)}
        )

    def get_webhook_delivery(self, tenant_slug: str, delivery_id: Any) -> Response:
        """Show one delivery of the tenant."""
        parsed = _parse_uuid(delivery_id)
        if parsed is None:
            return bad_request_response("Invalid delivery ID")
        try:
            delivery = self.service.get_webhook_delivery(tenant_slug, parsed)
        except WebhookServiceError:
            return error_response(HTTPStatus.NOT_FOUND, "Webhook delivery not found")
        return success_response(HTTPStatus.OK, delivery)

    def retry_webhook_delivery(self, tenant_slug: str, delivery_id: Any) -> Response:
        """Schedule a failed delivery for another attempt."""
        parsed = _parse_uuid(delivery_id)
        if parsed is None:
            return bad_request_response("Invalid delivery ID")
        try:
            self.service.retry_webhook_delivery(tenant_slug, parsed)
        except WebhookServiceError as exc:
            return bad_request_response(str(exc))
        return success_response(
            HTTPStatus.OK,
            {"message": "Webhook delivery scheduled for retry", "delivery_id": parsed},
        )

    def test_webhook(self, tenant_slug: str) -> Response:
        """Send a test event to the tenant's endpoint and report the outcome."""
        try:
            result = self.service.test_webhook(tenant_slug)
        except WebhookServiceError as exc:
            return bad_request_response(str(exc))

        if not result.success:
            return error_response(HTTPStatus.BAD_REQUEST, "Test webhook failed")

        return success_response(
            HTTPStatus.OK,
            {
                "success": result.success,
                "status_code": result.status_code,
                "delivery_time_ms": result.delivery_time_ms,
                "message": "Test webhook delivered successfully",
            },
        )