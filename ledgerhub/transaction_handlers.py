"""HTTP-level handling of transaction requests.

Each handler takes already-routed parameters and a request body or query,
and returns ``(status_code, body)`` as produced by :mod:`ledgerhub.api`.
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from decimal import Decimal
from http import HTTPStatus
from typing import Any
from uuid import UUID

from .api import (
    bad_request_response,
    conflict_response,
    internal_error_response,
    not_found_response,
    success_response,
    validation_error_response,
)
from .transaction_types import (
    CreateDoubleEntryRequest,
    CreateTransactionRequest,
    DuplicateIdempotencyKeyError,
    InvalidAccountCodeError,
    InvalidCurrencyError,
    ListTransactionsRequest,
    TransactionError,
    TransactionNotFoundError,
    UnbalancedTransactionError,
)
from .validation import ValidationError

DEFAULT_LIMIT = 50
MAX_LIMIT = 100

_INT_RE = re.compile(r"[+-]?[0-9]+")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1

Response = tuple[int, str]


def _decode_json(body: Any) -> Any:
    """Decode a JSON body; mappings are taken as already decoded."""
    if isinstance(body, (bytes, bytearray, str)):
        return json.loads(body, parse_float=Decimal)
    return body


def _query_value(query: Mapping[str, Any] | None, key: str) -> str:
    """First value of ``key`` in a query mapping, or an empty string."""
    if not query:
        return ""
    value = query.get(key)
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return str(value[0]) if value else ""
    return str(value)


def get_int_param(query: Mapping[str, Any] | None, key: str, default: int) -> int:
    """Parse an integer query parameter, falling back to ``default``."""
    value = _query_value(query, key)
    if not _INT_RE.fullmatch(value):
        return default
    number = int(value)
    if not _INT64_MIN <= number <= _INT64_MAX:
        return default
    return number


def _parse_uuid(value: Any) -> UUID | None:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None


class TransactionHandlers:
    """Request handlers for the transaction endpoints."""

    def __init__(self, service: Any) -> None:
        self.service = service

    def create_transaction(self, tenant_slug: str, body: Any) -> Response:
        """Create a single-entry transaction."""
        try:
            req = CreateTransactionRequest.from_dict(_decode_json(body))
        except (ValueError, TypeError):
            return bad_request_response("invalid JSON payload")
        try:
            req.validate()
        except ValidationError as exc:
            return validation_error_response(exc)

        try:
            response = self.service.create_simple_transaction(tenant_slug, req)
        except DuplicateIdempotencyKeyError:
            return conflict_response("Transaction with this idempotency key already exists")
        except InvalidAccountCodeError:
            return bad_request_response("Invalid account code")
        except TransactionError as exc:
            return internal_error_response(str(exc))
        return success_response(HTTPStatus.CREATED, response)

    def create_double_entry_transaction(self, tenant_slug: str, body: Any) -> Response:
        """Create a balanced double-entry transaction."""
        try:
            req = CreateDoubleEntryRequest.from_dict(_decode_json(body))
        except (ValueError, TypeError):
            return bad_request_response("invalid JSON payload")
        try:
            req.validate()
        except ValidationError as exc:
            return validation_error_response(exc)

        try:
            response = self.service.create_double_entry_transaction(tenant_slug, req)
        except DuplicateIdempotencyKeyError:
            return conflict_response("Transaction with this idempotency key already exists")
        except UnbalancedTransactionError:
            return bad_request_response("Debits must equal credits for double-entry transactions")
        except InvalidCurrencyError:
            return bad_request_response("All transaction entries must use the same currency")
        except InvalidAccountCodeError:
            return bad_request_response("One or more account codes are invalid")
        except TransactionError as exc:
            return internal_error_response(str(exc))
        return success_response(HTTPStatus.CREATED, response)

    def get_transaction(self, tenant_slug: str, transaction_id: Any) -> Response:
        """Fetch one transaction by its id."""
        parsed = _parse_uuid(transaction_id)
        if parsed is None:
            return bad_request_response("Invalid transaction ID")
        try:
            response = self.service.get_transaction(tenant_slug, parsed)
        except TransactionNotFoundError:
            return not_found_response("Transaction not found")
        except TransactionError as exc:
            return internal_error_response(str(exc))
        return success_response(HTTPStatus.OK, response)

    def get_transaction_lines(self, tenant_slug: str, transaction_id: Any) -> Response:
        """Fetch the lines of one transaction."""
        parsed = _parse_uuid(transaction_id)
        if parsed is None:
            return bad_request_response("Invalid transaction ID")
        try:
            lines = self.service.get_transaction_lines(tenant_slug, parsed)
        except TransactionError as exc:
            return internal_error_response(str(exc))
        return success_response(HTTPStatus.OK, {"transaction_lines": lines})

    def list_transactions(self, tenant_slug: str, query: Mapping[str, Any] | None) -> Response:
        """List transactions filtered by the query's account and date range."""
        limit = get_int_param(query, "limit", DEFAULT_LIMIT)
        if limit > MAX_LIMIT:
            limit = MAX_LIMIT
        if limit <= 0:
            limit = DEFAULT_LIMIT

        filters = ListTransactionsRequest(
            limit=limit,
            offset=get_int_param(query, "offset", 0),
            account_code=_query_value(query, "account_code"),
            start_date=_query_value(query, "start_date"),
            end_date=_query_value(query, "end_date"),
        )
        try:
            filters.validate()
        except ValidationError as exc:
            return validation_error_response(exc)

        try:
            response = self.service.list_transactions(tenant_slug, filters)
        except TransactionError as exc:
            return internal_error_response(str(exc))
        return success_response(HTTPStatus.OK, response)