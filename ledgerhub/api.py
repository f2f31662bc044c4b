"""JSON response envelopes shared by the HTTP handlers."""

from __future__ import annotations

import dataclasses
import json
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from http import HTTPStatus
from typing import Any
from uuid import UUID

from .validation import ValidationError

_FALLBACK_BODY = '{"success":false,"error":"Internal server error"}\n'


class InvalidSlugError(ValueError):
    """Raised when a tenant slug is malformed."""

    def __init__(self, message: str = "invalid slug") -> None:
        super().__init__(message)


@dataclass
class ApiResponse:
    """The standard envelope every endpoint answers with."""

    success: bool
    data: Any = None
    error: str = ""

    def _payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"success": self.success}
        if self.data is not None:
            payload["data"] = self.data
        if self.error:
            payload["error"] = self.error
        return payload

    def to_json(self) -> str:
        """Serialize the envelope to its JSON text."""
        return _encode(self._payload())


def _decimal_text(value: Decimal) -> str:
    text = format(value, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def _time_text(value: datetime) -> str:
    text = value.isoformat()
    if text.endswith("+00:00"):
        text = text[: -len("+00:00")] + "Z"
    return text


def _default(obj: Any) -> Any:
    if isinstance(obj, ApiResponse):
        return obj._payload()
    to_dict = getattr(obj, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    if isinstance(obj, Decimal):
        if not obj.is_finite():
            raise ValueError("non-finite decimal cannot be encoded")
        return _decimal_text(obj)
    if isinstance(obj, datetime):
        return _time_text(obj)
    if isinstance(obj, date):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: getattr(obj, f.name) for f in dataclasses.fields(obj)}
    if isinstance(obj, (set, frozenset)):
        return list(obj)
    raise TypeError(f"object of type {type(obj).__name__} is not JSON serializable")


def _encode(data: Any) -> str:
    return (
        json.dumps(
            data,
            default=_default,
            separators=(",", ":"),
            ensure_ascii=False,
            allow_nan=False,
        )
        + "\n"
    )


def json_response(status_code: int, data: Any) -> tuple[int, str]:
    """Encode ``data`` as JSON, returning ``(status_code, body)``.

    When the data cannot be encoded, a generic internal-error body is
    returned with status 500 instead.
    """
    try:
        body = _encode(data)
    except (TypeError, ValueError, RecursionError):
        return int(HTTPStatus.INTERNAL_SERVER_ERROR), _FALLBACK_BODY
    return int(status_code), body


def success_response(status_code: int, data: Any) -> tuple[int, str]:
    return json_response(status_code, ApiResponse(success=True, data=data))


def error_response(status_code: int, message: str) -> tuple[int, str]:
    return json_response(status_code, ApiResponse(success=False, error=message))


def bad_request_response(message: str) -> tuple[int, str]:
    return error_response(HTTPStatus.BAD_REQUEST, message)


def unauthorized_response(message: str) -> tuple[int, str]:
    return error_response(HTTPStatus.UNAUTHORIZED, message)


def forbidden_response(message: str) -> tuple[int, str]:
    return error_response(HTTPStatus.FORBIDDEN, message)


def not_found_response(message: str) -> tuple[int, str]:
    return error_response(HTTPStatus.NOT_FOUND, message)


def conflict_response(message: str) -> tuple[int, str]:
    return error_response(HTTPStatus.CONFLICT, message)


def internal_error_response(message: str) -> tuple[int, str]:
    return error_response(HTTPStatus.INTERNAL_SERVER_ERROR, message)


def validation_error_response(errors: BaseException) -> tuple[int, str]:
    """Describe each failed field of a :class:`ValidationError` in a 400 reply."""
    field_errors: dict[str, str] = {}
    if isinstance(errors, ValidationError):
        for field_error in errors.errors:
            field_errors[field_error.field] = field_error.message()
    response = ApiResponse(
        success=False,
        data={"validation_errors": field_errors},
        error="validation failed",
    )
    return json_response(HTTPStatus.BAD_REQUEST, response)