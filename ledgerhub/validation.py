"""Field validation driven by compact, comma-separated rule strings.

A rule string such as ``"required,max=255"`` lists checks applied in
order; the first failing check is reported for the field.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Iterable
from urllib.parse import urlsplit

_MESSAGES = {
    "required": "{field} is required",
    "email": "{field} must be a valid email",
    "min": "{field} must be at least {param} characters",
    "max": "{field} must be at most {param} characters",
    "len": "{field} must be exactly {param} characters",
    "oneof": "{field} must be one of: {param}",
    "dgt": "{field} must be greater than {param}",
    "dgte": "{field} must be greater than or equal to {param}",
    "dlt": "{field} must be less than {param}",
    "dlte": "{field} must be less than or equal to {param}",
    "deq": "{field} must equal {param}",
    "dneq": "{field} must not equal {param}",
}

_LAYOUT_TOKENS = {
    "2006": "%Y",
    "01": "%m",
    "02": "%d",
    "15": "%H",
    "04": "%M",
    "05": "%S",
}
_LAYOUT_RE = re.compile("|".join(_LAYOUT_TOKENS))
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


@dataclass(frozen=True)
class FieldError:
    """One failed check on one field."""

    field: str
    tag: str
    param: str = ""

    def message(self) -> str:
        template = _MESSAGES.get(self.tag, "{field} is invalid")
        return template.format(field=self.field, param=self.param)


class ValidationError(ValueError):
    """Raised when one or more fields fail validation."""

    def __init__(self, errors: Iterable[FieldError]) -> None:
        self.errors: tuple[FieldError, ...] = tuple(errors)
        details = "; ".join(error.message() for error in self.errors)
        super().__init__(f"validation failed: {details}")


def _has_value(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return value != ""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    return True


def _size(value: Any) -> int | float:
    if value is None:
        return 0
    if isinstance(value, bool):
        raise ValueError("size rules do not apply to booleans")
    if isinstance(value, (int, float)):
        return value
    return len(value)


def _as_decimal(value: Any) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation:
        return None


def _decimal_check(compare: Callable[[Decimal, Decimal], bool]) -> Callable[[Any, str], bool]:
    def check(value: Any, param: str) -> bool:
        number = _as_decimal(value)
        return number is not None and number.is_finite() and compare(number, Decimal(param))

    return check


def _datetime_check(value: Any, layout: str) -> bool:
    if not isinstance(value, str):
        return False
    fmt = _LAYOUT_RE.sub(lambda m: _LAYOUT_TOKENS[m.group()], layout.replace("%", "%%"))
    try:
        parsed = datetime.strptime(value, fmt)
    except ValueError:
        return False
    return parsed.strftime(fmt) == value


def _url_check(value: Any, _param: str) -> bool:
    if not isinstance(value, str) or not value or any(c.isspace() for c in value):
        return False
    try:
        parts = urlsplit(value)
    except ValueError:
        return False
    if not parts.scheme:
        return False
    opaque = bool(parts.path) and not parts.path.startswith("/")
    return bool(parts.netloc or parts.fragment or opaque)


def _oneof_check(value: Any, param: str) -> bool:
    return value is not None and str(value) in param.split()


_CHECKS: dict[str, Callable[[Any, str], bool]] = {
    "min": lambda value, param: _size(value) >= int(param),
    "max": lambda value, param: _size(value) <= int(param),
    "len": lambda value, param: _size(value) == int(param),
    "oneof": _oneof_check,
    "email": lambda value, _param: isinstance(value, str) and bool(_EMAIL_RE.match(value)),
    "url": _url_check,
    "datetime": _datetime_check,
    "dgt": _decimal_check(lambda a, b: a > b),
    "dgte": _decimal_check(lambda a, b: a >= b),
    "dlt": _decimal_check(lambda a, b: a < b),
    "dlte": _decimal_check(lambda a, b: a <= b),
    "deq": _decimal_check(lambda a, b: a == b),
    "dneq": _decimal_check(lambda a, b: a != b),
}


def check_field(name: str, value: Any, rules: str) -> FieldError | None:
    """Apply ``rules`` to ``value``; return the first failure or ``None``.

    ``omitempty`` skips the remaining rules for an empty value and
    ``dive`` ends the rules for the field itself, leaving its elements
    to the caller. An unknown rule raises :class:`ValueError`.
    """
    for rule in (part.strip() for part in rules.split(",")):
        if not rule:
            continue
        tag, _, param = rule.partition("=")
        if tag == "dive":
            break
        if tag == "omitempty":
            if not _has_value(value):
                return None
            continue
        if tag == "required":
            if not _has_value(value):
                return FieldError(name, tag, param)
            continue
        check = _CHECKS.get(tag)
        if check is None:
            raise ValueError(f"unknown validation rule {tag!r}")
        if not check(value, param):
            return FieldError(name, tag, param)
    return None


def validate_fields(specs: Iterable[tuple[str, Any, str]]) -> None:
    """Check every ``(name, value, rules)`` spec, raising on any failure."""
    errors = [
        error
        for name, value, rules in specs
        if (error := check_field(name, value, rules)) is not None
    ]
    if errors:
        raise ValidationError(errors)