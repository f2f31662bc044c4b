import json
from datetime import datetime, timezone
from http import HTTPStatus
from uuid import UUID

import pytest

from ledgerhub.transaction_handlers import TransactionHandlers, get_int_param
from ledgerhub.transaction_rules import TransactionRecord, transaction_to_response
from ledgerhub.transaction_types import (
    DuplicateIdempotencyKeyError,
    EmptyTransactionLinesError,
    InvalidAccountCodeError,
    InvalidCurrencyError,
    PaginationInfo,
    TransactionError,
    TransactionListResponse,
    TransactionNotFoundError,
    UnbalancedTransactionError,
)

TXN_ID = UUID("3f1c2a4e-8b7d-4c6e-9a1f-2b3c4d5e6f70")
NOW = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


def _transaction_response():
    return transaction_to_response(
        TransactionRecord(
            id=TXN_ID,
            idempotency_key="idem-key-123",
            description="Test transaction",
            status="posted",
            reference="REF-001",
            posted_at=NOW,
            created_at=NOW,
        )
    )


class FakeService:
    def __init__(self, error=None):
        self.error = error
        self.calls = []

    def _record(self, name, *args):
        self.calls.append((name, *args))
        if self.error is not None:
            raise self.error

    def create_simple_transaction(self, slug, req):
        self._record("simple", slug, req)
        return _transaction_response()

    def create_double_entry_transaction(self, slug, req):
        self._record("double", slug, req)
        return _transaction_response()

    def get_transaction(self, slug, transaction_id):
        self._record("get", slug, transaction_id)
        return _transaction_response()

    def get_transaction_lines(self, slug, transaction_id):
        self._record("lines", slug, transaction_id)
        return []

    def list_transactions(self, slug, req):
        self._record("list", slug, req)
        return TransactionListResponse(
            transactions=[],
            pagination=PaginationInfo(
                total=0, limit=req.limit, offset=req.offset, has_more=False
            ),
        )


def _simple_body(**overrides):
    body = {
        "idempotency_key": "idem-key-123",
        "description": "Test transaction",
        "reference": "REF-001",
        "account_code": "1000",
        "amount": 1000,
        "side": "debit",
        "currency": "NGN",
    }
    body.update(overrides)
    return json.dumps(body).encode()


def _double_body(entries=None):
    if entries is None:
        entries = [
            {"account_code": "1000", "amount": 1000, "side": "debit", "currency": "NGN"},
            {"account_code": "2000", "amount": 1000, "side": "credit", "currency": "NGN"},
        ]
    return json.dumps(
        {
            "idempotency_key": "test-de-1",
            "description": "Purchase inventory",
            "reference": "PO-001",
            "entries": entries,
        }
    )


def _decode(result):
    status, body = result
    return status, json.loads(body)


# --- get_int_param ---------------------------------------------------------


def test_get_int_param_parses_value():
    assert get_int_param({"limit": "7"}, "limit", 50) == 7


@pytest.mark.parametrize("value", ["", "abc", " 5", "1.5", "5x"])
def test_get_int_param_falls_back_on_bad_value(value):
    assert get_int_param({"limit": value}, "limit", 50) == 50


def test_get_int_param_missing_key_and_none_query():
    assert get_int_param({}, "offset", 0) == 0
    assert get_int_param(None, "offset", 3) == 3


def test_get_int_param_signed_and_listed_values():
    assert get_int_param({"offset": "-4"}, "offset", 0) == -4
    assert get_int_param({"offset": "+4"}, "offset", 0) == 4
    assert get_int_param({"limit": ["12", "3"]}, "limit", 50) == 12


def test_get_int_param_out_of_range_falls_back():
    assert get_int_param({"limit": "9" * 30}, "limit", 50) == 50


# --- create_transaction ----------------------------------------------------


def test_create_transaction_success():
    service = FakeService()
    status, payload = _decode(TransactionHandlers(service).create_transaction("acme", _simple_body()))
    assert status == HTTPStatus.CREATED
    assert payload["success"] is True
    assert payload["data"]["id"] == str(TXN_ID)
    assert payload["data"]["status"] == "posted"
    name, slug, req = service.calls[0]
    assert (name, slug) == ("simple", "acme")
    assert req.idempotency_key == "idem-key-123"
    assert req.account_code == "1000"


def test_create_transaction_invalid_json():
    service = FakeService()
    status, payload = _decode(TransactionHandlers(service).create_transaction("acme", b"{not json"))
    assert status == HTTPStatus.BAD_REQUEST
    assert payload == {"success": False, "error": "invalid JSON payload"}
    assert service.calls == []


def test_create_transaction_validation_failure():
    service = FakeService()
    status, payload = _decode(
        TransactionHandlers(service).create_transaction("acme", _simple_body(side="sideways"))
    )
    assert status == HTTPStatus.BAD_REQUEST
    assert payload["error"] == "validation failed"
    assert payload["data"]["validation_errors"]
    assert service.calls == []


@pytest.mark.parametrize(
    "error, status, message",
    [
        (
            DuplicateIdempotencyKeyError("idempotency key already exists"),
            HTTPStatus.CONFLICT,
            "Transaction with this idempotency key already exists",
        ),
        (
            InvalidAccountCodeError("account not found"),
            HTTPStatus.BAD_REQUEST,
            "Invalid account code",
        ),
        (
            TransactionError("failed to commit transaction"),
            HTTPStatus.INTERNAL_SERVER_ERROR,
            "failed to commit transaction",
        ),
    ],
)
def test_create_transaction_error_mapping(error, status, message):
    handlers = TransactionHandlers(FakeService(error=error))
    got_status, payload = _decode(handlers.create_transaction("acme", _simple_body()))
    assert got_status == status
    assert payload == {"success": False, "error": message}


# --- create_double_entry_transaction ---------------------------------------


def test_create_double_entry_success():
    service = FakeService()
    status, payload = _decode(
        TransactionHandlers(service).create_double_entry_transaction("acme", _double_body())
    )
    assert status == HTTPStatus.CREATED
    assert payload["data"]["idempotency_key"] == "idem-key-123"
    _, slug, req = service.calls[0]
    assert slug == "acme"
    assert [entry.account_code for entry in req.entries] == ["1000", "2000"]


def test_create_double_entry_invalid_json():
    status, payload = _decode(
        TransactionHandlers(FakeService()).create_double_entry_transaction("acme", "")
    )
    assert status == HTTPStatus.BAD_REQUEST
    assert payload["error"] == "invalid JSON payload"


def test_create_double_entry_requires_two_entries():
    service = FakeService()
    body = _double_body(
        [{"account_code": "1000", "amount": 1000, "side": "debit", "currency": "NGN"}]
    )
    status, payload = _decode(
        TransactionHandlers(service).create_double_entry_transaction("acme", body)
    )
    assert status == HTTPStatus.BAD_REQUEST
    assert payload["error"] == "validation failed"
    assert service.calls == []


@pytest.mark.parametrize(
    "error, status, message",
    [
        (
            DuplicateIdempotencyKeyError("idempotency key already exists"),
            HTTPStatus.CONFLICT,
            "Transaction with this idempotency key already exists",
        ),
        (
            UnbalancedTransactionError("debits must equal credits"),
            HTTPStatus.BAD_REQUEST,
            "Debits must equal credits for double-entry transactions",
        ),
        (
            InvalidCurrencyError("all entries must use the same currency"),
            HTTPStatus.BAD_REQUEST,
            "All transaction entries must use the same currency",
        ),
        (
            InvalidAccountCodeError("account 9999 not found"),
            HTTPStatus.BAD_REQUEST,
            "One or more account codes are invalid",
        ),
        (
            EmptyTransactionLinesError("transaction must have at least one entry"),
            HTTPStatus.INTERNAL_SERVER_ERROR,
            "transaction must have at least one entry",
        ),
    ],
)
def test_create_double_entry_error_mapping(error, status, message):
    handlers = TransactionHandlers(FakeService(error=error))
    got_status, payload = _decode(handlers.create_double_entry_transaction("acme", _double_body()))
    assert got_status == status
    assert payload == {"success": False, "error": message}


# --- get_transaction / lines -----------------------------------------------


def test_get_transaction_success():
    service = FakeService()
    status, payload = _decode(TransactionHandlers(service).get_transaction("acme", str(TXN_ID)))
    assert status == HTTPStatus.OK
    assert payload["data"]["reference"] == "REF-001"
    assert service.calls == [("get", "acme", TXN_ID)]


def test_get_transaction_invalid_id():
    service = FakeService()
    status, payload = _decode(TransactionHandlers(service).get_transaction("acme", "not-a-uuid"))
    assert status == HTTPStatus.BAD_REQUEST
    assert payload["error"] == "Invalid transaction ID"
    assert service.calls == []


def test_get_transaction_not_found():
    handlers = TransactionHandlers(FakeService(error=TransactionNotFoundError("transaction not found")))
    status, payload = _decode(handlers.get_transaction("acme", str(TXN_ID)))
    assert status == HTTPStatus.NOT_FOUND
    assert payload["error"] == "Transaction not found"


def test_get_transaction_other_error():
    handlers = TransactionHandlers(FakeService(error=TransactionError("failed to set tenant schema")))
    status, payload = _decode(handlers.get_transaction("acme", str(TXN_ID)))
    assert status == HTTPStatus.INTERNAL_SERVER_ERROR
    assert payload["error"] == "failed to set tenant schema"


def test_get_transaction_lines_success():
    service = FakeService()
    status, payload = _decode(
        TransactionHandlers(service).get_transaction_lines("acme", str(TXN_ID))
    )
    assert status == HTTPStatus.OK
    assert payload["data"] == {"transaction_lines": []}
    assert service.calls == [("lines", "acme", TXN_ID)]


def test_get_transaction_lines_invalid_id_and_error():
    status, payload = _decode(
        TransactionHandlers(FakeService()).get_transaction_lines("acme", "bad")
    )
    assert status == HTTPStatus.BAD_REQUEST
    assert payload["error"] == "Invalid transaction ID"

    handlers = TransactionHandlers(FakeService(error=TransactionError("failed to get transaction lines")))
    status, payload = _decode(handlers.get_transaction_lines("acme", str(TXN_ID)))
    assert status == HTTPStatus.INTERNAL_SERVER_ERROR
    assert payload["error"] == "failed to get transaction lines"


# --- list_transactions -----------------------------------------------------


def test_list_transactions_defaults():
    service = FakeService()
    status, payload = _decode(TransactionHandlers(service).list_transactions("acme", {}))
    assert status == HTTPStatus.OK
    req = service.calls[0][2]
    assert (req.limit, req.offset) == (50, 0)
    assert (req.account_code, req.start_date, req.end_date) == ("", "", "")
    assert payload["data"]["pagination"]["limit"] == 50


@pytest.mark.parametrize("raw, expected", [("1000", 100), ("0", 50), ("-3", 50), ("x", 50)])
def test_list_transactions_limit_is_clamped(raw, expected):
    service = FakeService()
    TransactionHandlers(service).list_transactions("acme", {"limit": raw})
    assert service.calls[0][2].limit == expected


def test_list_transactions_passes_filters():
    service = FakeService()
    query = {
        "limit": "10",
        "offset": "5",
        "account_code": "1000",
        "start_date": "2024-01-01",
        "end_date": "2024-01-31",
    }
    status, _ = TransactionHandlers(service).list_transactions("acme", query)
    assert status == HTTPStatus.OK
    req = service.calls[0][2]
    assert (req.limit, req.offset, req.account_code) == (10, 5, "1000")
    assert (req.start_date, req.end_date) == ("2024-01-01", "2024-01-31")


def test_list_transactions_negative_offset_fails_validation():
    service = FakeService()
    status, payload = _decode(
        TransactionHandlers(service).list_transactions("acme", {"offset": "-1"})
    )
    assert status == HTTPStatus.BAD_REQUEST
    assert payload["error"] == "validation failed"
    assert service.calls == []


def test_list_transactions_bad_date_fails_validation():
    service = FakeService()
    status, payload = _decode(
        TransactionHandlers(service).list_transactions("acme", {"start_date": "2024-13-45"})
    )
    assert status == HTTPStatus.BAD_REQUEST
    assert payload["error"] == "validation failed"
    assert service.calls == []


def test_list_transactions_service_error():
    handlers = TransactionHandlers(FakeService(error=TransactionError("failed to list transactions")))
    status, payload = _decode(handlers.list_transactions("acme", {}))
    assert status == HTTPStatus.INTERNAL_SERVER_ERROR
    assert payload["error"] == "failed to list transactions"