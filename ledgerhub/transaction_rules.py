"""Accounting rules for transactions: balance arithmetic and entry checks."""

from __future__ import annotations

import enum
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from .transaction_types import (
    EmptyTransactionLinesError,
    InvalidCurrencyError,
    TransactionLineEntry,
    TransactionResponse,
    UnbalancedTransactionError,
)


class AccountType(str, enum.Enum):
    """The five kinds of ledger account."""

    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    REVENUE = "revenue"
    EXPENSE = "expense"


_DEBIT_NORMAL = frozenset({AccountType.ASSET, AccountType.EXPENSE})
_CREDIT_NORMAL = frozenset({AccountType.LIABILITY, AccountType.EQUITY, AccountType.REVENUE})


@dataclass
class TransactionRecord:
    """A transaction as stored in the ledger."""

    id: UUID
    idempotency_key: str
    description: str
    status: str | None = None
    reference: str | None = None
    posted_at: datetime | None = None
    metadata: Any = None
    created_at: datetime | None = None


def _account_type(value: AccountType | str | None) -> AccountType | None:
    if isinstance(value, AccountType) or value is None:
        return value
    try:
        return AccountType(value)
    except ValueError:
        return None


def calculate_new_balance(
    current_balance: Decimal,
    amount: Decimal,
    side: str,
    account_type: AccountType | str | None,
) -> Decimal:
    """Return the balance after posting ``amount`` on ``side``.

    Assets and expenses grow with debits; liabilities, equity and revenue
    grow with credits. An unknown account type is treated as debit-normal.
    """
    kind = _account_type(account_type)
    if kind in _CREDIT_NORMAL:
        return current_balance + amount if side == "credit" else current_balance - amount
    return current_balance + amount if side == "debit" else current_balance - amount


def validate_double_entry_balance(entries: Sequence[TransactionLineEntry]) -> None:
    """Raise unless there are at least two entries and debits equal credits."""
    if len(entries) < 2:
        raise EmptyTransactionLinesError()
    debit_total = Decimal(0)
    credit_total = Decimal(0)
    for entry in entries:
        amount = entry.amount if entry.amount is not None else Decimal(0)
        if entry.side == "debit":
            debit_total += amount
        else:
            credit_total += amount
    if debit_total != credit_total:
        raise UnbalancedTransactionError()


def validate_currency_consistency(entries: Sequence[TransactionLineEntry]) -> None:
    """Raise unless every entry uses the currency of the first one."""
    if not entries:
        raise EmptyTransactionLinesError()
    base_currency = entries[0].currency
    if any(entry.currency != base_currency for entry in entries[1:]):
        raise InvalidCurrencyError()


def transaction_to_response(transaction: TransactionRecord) -> TransactionResponse:
    """Shape a stored transaction for the API."""
    return TransactionResponse(
        id=str(transaction.id),
        idempotency_key=transaction.idempotency_key,
        description=transaction.description,
        status=transaction.status or "",
        created_at=transaction.created_at,  # type: ignore[arg-type]
        posted_at=transaction.posted_at,
        reference=transaction.reference,
        metadata=transaction.metadata,
    )