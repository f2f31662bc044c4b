"""Requests, responses and errors of the transaction API."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from .validation import check_field, validate_fields


class TransactionError(Exception):
    """Base class of transaction failures."""

    default_message = "transaction error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


class TransactionNotFoundError(TransactionError):
    default_message = "transaction not found"


class InvalidAccountCodeError(TransactionError):
    default_message = "invalid account code"


class UnbalancedTransactionError(TransactionError):
    default_message = "debits must equal credits"


class DuplicateIdempotencyKeyError(TransactionError):
    default_message = "idempotency key already exists"


class InvalidCurrencyError(TransactionError):
    default_message = "all entries must use the same currency"


class EmptyTransactionLinesError(TransactionError):
    default_message = "transaction must have at least one entry"


def _decimal_text(value: Decimal) -> str:
    text = format(value, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def _time_text(value: datetime | None) -> str | None:
    if value is None:
        return None
    text = value.isoformat()
    if text.endswith("+00:00"):
        text = text[: -len("+00:00")] + "Z"
    return text


def _object(data: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise ValueError(f"{what} must be a JSON object")
    return data


def _text(data: Mapping[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"{key} must be a string")
    return value


def _amount(data: Mapping[str, Any], key: str) -> Decimal | None:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float, str, Decimal)):
        raise ValueError(f"{key} must be a decimal number")
    try:
        number = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"{key} must be a decimal number") from None
    if not number.is_finite():
        raise ValueError(f"{key} must be a finite number")
    return number


@dataclass
class CreateTransactionRequest:
    """A single-entry transaction against one account."""

    idempotency_key: str = ""
    description: str = ""
    account_code: str = ""
    amount: Decimal | None = None
    side: str = ""
    currency: str = ""
    reference: str = ""
    metadata: Any = None

    @classmethod
    def from_dict(cls, data: Any) -> CreateTransactionRequest:
        """Build a request from decoded JSON; raise ValueError on bad types."""
        data = _object(data, "request")
        return cls(
            idempotency_key=_text(data, "idempotency_key"),
            description=_text(data, "description"),
            account_code=_text(data, "account_code"),
            amount=_amount(data, "amount"),
            side=_text(data, "side"),
            currency=_text(data, "currency"),
            reference=_text(data, "reference"),
            metadata=data.get("metadata"),
        )

    def validate(self) -> None:
        validate_fields(
            [
                ("idempotency_key", self.idempotency_key, "required,max=255"),
                ("description", self.description, "required,max=500"),
                ("reference", self.reference, "omitempty,max=255"),
                ("account_code", self.account_code, "required"),
                ("amount", self.amount, "required,dgt=0"),
                ("side", self.side, "required,oneof=debit credit"),
                ("currency", self.currency, "required,len=3"),
            ]
        )


@dataclass
class TransactionLineEntry:
    """One line of a double-entry transaction."""

    account_code: str = ""
    amount: Decimal | None = None
    side: str = ""
    currency: str = ""
    metadata: Any = None

    @classmethod
    def from_dict(cls, data: Any) -> TransactionLineEntry:
        """Build an entry from decoded JSON; raise ValueError on bad types."""
        data = _object(data, "entry")
        return cls(
            account_code=_text(data, "account_code"),
            amount=_amount(data, "amount"),
            side=_text(data, "side"),
            currency=_text(data, "currency"),
            metadata=data.get("metadata"),
        )

    def _field_specs(self, prefix: str = "") -> list[tuple[str, Any, str]]:
        return [
            (f"{prefix}account_code", self.account_code, "required"),
            (f"{prefix}amount", self.amount, "required,dgt=0"),
            (f"{prefix}side", self.side, "required,oneof=debit credit"),
            (f"{prefix}currency", self.currency, "required,len=3"),
        ]

    def validate(self) -> None:
        validate_fields(self._field_specs())


@dataclass
class CreateDoubleEntryRequest:
    """A balanced transaction spread over two or more accounts."""

    idempotency_key: str = ""
    description: str = ""
    entries: list[TransactionLineEntry] | None = None
    reference: str = ""
    metadata: Any = None

    @classmethod
    def from_dict(cls, data: Any) -> CreateDoubleEntryRequest:
        """Build a request from decoded JSON; raise ValueError on bad types."""
        data = _object(data, "request")
        raw_entries = data.get("entries")
        if raw_entries is None:
            entries = None
        elif isinstance(raw_entries, list):
            entries = [TransactionLineEntry.from_dict(item) for item in raw_entries]
        else:
            raise ValueError("entries must be a list")
        return cls(
            idempotency_key=_text(data, "idempotency_key"),
            description=_text(data, "description"),
            entries=entries,
            reference=_text(data, "reference"),
            metadata=data.get("metadata"),
        )

    def validate(self) -> None:
        entries_rules = "required,min=2,dive"
        specs: list[tuple[str, Any, str]] = [
            ("idempotency_key", self.idempotency_key, "required,max=255"),
            ("description", self.description, "required,max=500"),
            ("reference", self.reference, "omitempty,max=255"),
            ("entries", self.entries, entries_rules),
        ]
        if check_field("entries", self.entries, entries_rules) is None:
            for position, entry in enumerate(self.entries or []):
                specs.extend(entry._field_specs(f"entries[{position}]."))
        validate_fields(specs)


@dataclass
class ListTransactionsRequest:
    """Paging and filters for listing transactions."""

    limit: int = 50
    offset: int = 0
    account_code: str = ""
    start_date: str = ""
    end_date: str = ""

    def validate(self) -> None:
        validate_fields(
            [
                ("limit", self.limit, "min=1,max=100"),
                ("offset", self.offset, "min=0"),
                ("account_code", self.account_code, "omitempty"),
                ("start_date", self.start_date, "omitempty,datetime=2006-01-02"),
                ("end_date", self.end_date, "omitempty,datetime=2006-01-02"),
            ]
        )


@dataclass
class TransactionLineResponse:
    id: str
    account_id: str
    account_code: str
    account_name: str
    amount: Decimal
    side: str
    currency: str
    created_at: datetime
    metadata: Any = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "account_id": self.account_id,
            "account_code": self.account_code,
            "account_name": self.account_name,
            "amount": _decimal_text(self.amount),
            "side": self.side,
            "currency": self.currency,
        }
        if self.metadata is not None:
            result["metadata"] = self.metadata
        result["created_at"] = _time_text(self.created_at)
        return result


@dataclass
class TransactionResponse:
    id: str
    idempotency_key: str
    description: str
    status: str
    created_at: datetime
    posted_at: datetime | None = None
    reference: str | None = None
    metadata: Any = None
    lines: list[TransactionLineResponse] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "idempotency_key": self.idempotency_key,
            "description": self.description,
        }
        if self.reference is not None:
            result["reference"] = self.reference
        result["status"] = self.status
        result["posted_at"] = _time_text(self.posted_at)
        if self.metadata is not None:
            result["metadata"] = self.metadata
        result["created_at"] = _time_text(self.created_at)
        if self.lines:
            result["lines"] = [line.to_dict() for line in self.lines]
        return result


@dataclass
class PaginationInfo:
    total: int
    limit: int
    offset: int
    has_more: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "limit": self.limit,
            "offset": self.offset,
            "has_more": self.has_more,
        }


@dataclass
class TransactionListResponse:
    transactions: list[TransactionResponse]
    pagination: PaginationInfo

    def to_dict(self) -> dict[str, Any]:
        return {
            "transactions": [t.to_dict() for t in self.transactions],
            "pagination": self.pagination.to_dict(),
        }


@dataclass
class BalanceHistoryEntry:
    balance: Decimal
    version: int
    updated_at: datetime
    description: str = ""
    reference: str = ""

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "balance": _decimal_text(self.balance),
            "version": self.version,
            "updated_at": _time_text(self.updated_at),
        }
        if self.description:
            result["description"] = self.description
        if self.reference:
            result["reference"] = self.reference
        return result


@dataclass
class BalanceHistoryResponse:
    account_id: str
    currency: str
    days: int
    history: list[BalanceHistoryEntry]

    def to_dict(self) -> dict[str, Any]:
        return {
            "account_id": self.account_id,
            "currency": self.currency,
            "days": self.days,
            "history": [entry.to_dict() for entry in self.history],
        }


@dataclass
class BalanceSummaryEntry:
    account_id: str
    code: str
    name: str
    account_type: str
    currency: str
    balance: Decimal
    version: int
    updated_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "account_id": self.account_id,
            "code": self.code,
            "name": self.name,
            "account_type": self.account_type,
            "currency": self.currency,
            "balance": _decimal_text(self.balance),
            "version": self.version,
            "updated_at": _time_text(self.updated_at),
        }


@dataclass
class BalanceSummaryResponse:
    balances: list[BalanceSummaryEntry]
    total: int
    currency: str = ""

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        if self.currency:
            result["currency"] = self.currency
        result["balances"] = [entry.to_dict() for entry in self.balances]
        result["total"] = self.total
        return result