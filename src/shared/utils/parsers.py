# /src/shared/utils/parsers.py
"""
Normalization helpers for raw request payloads.

Every helper returns a ParseResult: `value` on success, `error` (a human
readable message) on failure, both None for an optional blank input.
Callers collect errors with FieldErrors and raise a single ValidationError.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, Generic, Optional, TypeVar

from src.shared.exceptions import ValidationError

T = TypeVar("T")

TWO_PLACES = Decimal("0.01")
_NON_NUMERIC = re.compile(r"[^\d.\-]")


@dataclass(frozen=True)
class ParseResult(Generic[T]):
    value: Optional[T] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def _label(field_label: Optional[str]) -> str:
    return field_label or "Value"


def quantize_money(value: Decimal | int | float | str) -> Decimal:
    """Round to 2 decimal places, half-up."""
    return Decimal(str(value)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def normalize_string(
    value: Any, *, field_label: Optional[str] = None, required: bool = False
) -> ParseResult[str]:
    if _is_blank(value):
        if required:
            return ParseResult(error=f"{_label(field_label)} is required")
        return ParseResult()
    if not isinstance(value, str):
        return ParseResult(error=f"{_label(field_label)} must be a string")
    return ParseResult(value=value.strip())


def to_number(
    value: Any,
    *,
    field_label: Optional[str] = None,
    required: bool = False,
    min_value: Optional[Decimal | int] = None,
    max_value: Optional[Decimal | int] = None,
    integer: bool = False,
) -> ParseResult[Decimal]:
    if _is_blank(value):
        if required:
            return ParseResult(error=f"{_label(field_label)} is required")
        return ParseResult()
    if isinstance(value, bool):
        return ParseResult(error=f"{_label(field_label)} must be a valid number")

    try:
        if isinstance(value, str):
            numeric = Decimal(_NON_NUMERIC.sub("", value.strip().replace(",", "")))
        else:
            numeric = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return ParseResult(error=f"{_label(field_label)} must be a valid number")

    if not numeric.is_finite():
        return ParseResult(error=f"{_label(field_label)} must be a valid number")
    if integer and numeric != numeric.to_integral_value():
        return ParseResult(error=f"{_label(field_label)} must be an integer")
    if min_value is not None and numeric < min_value:
        return ParseResult(error=f"{_label(field_label)} must be at least {min_value}")
    if max_value is not None and numeric > max_value:
        return ParseResult(error=f"{_label(field_label)} must be at most {max_value}")
    return ParseResult(value=numeric)


def _to_int(result: ParseResult[Decimal]) -> ParseResult[int]:
    if result.error or result.value is None:
        return ParseResult(error=result.error)
    return ParseResult(value=int(result.value))


def to_positive_integer(
    value: Any, *, field_label: Optional[str] = None, required: bool = False, min_value: int = 1
) -> ParseResult[int]:
    return _to_int(
        to_number(value, field_label=field_label, required=required, min_value=min_value, integer=True)
    )


def to_non_negative_integer(
    value: Any, *, field_label: Optional[str] = None, required: bool = False, min_value: int = 0
) -> ParseResult[int]:
    return _to_int(
        to_number(value, field_label=field_label, required=required, min_value=min_value, integer=True)
    )


def to_money(
    value: Any,
    *,
    field_label: Optional[str] = None,
    required: bool = False,
    min_value: Decimal | int = 0,
) -> ParseResult[Decimal]:
    """Money rounds to 2 decimals; a blank optional amount is 0."""
    result = to_number(value, field_label=field_label, required=required, min_value=min_value)
    if result.error:
        return result
    if result.value is None:
        return ParseResult(value=Decimal("0.00"))
    return ParseResult(value=quantize_money(result.value))


def to_date_utc(
    value: Any, *, field_label: Optional[str] = None, required: bool = False
) -> ParseResult[datetime]:
    if _is_blank(value):
        if required:
            return ParseResult(error=f"{_label(field_label)} is required")
        return ParseResult()

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return ParseResult(error=f"{_label(field_label)} must be a valid date")
    else:
        return ParseResult(error=f"{_label(field_label)} must be a valid date")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return ParseResult(value=parsed.astimezone(timezone.utc))


class FieldErrors:
    """Accumulates field errors so every bad field is reported at once."""

    def __init__(self, context: Optional[str] = None) -> None:
        self.context = context
        self._errors: Dict[str, str] = {}

    def take(self, key: str, result: ParseResult[T]) -> Optional[T]:
        if result.error:
            self._errors.setdefault(key, result.error)
            return None
        return result.value

    def add(self, key: str, message: str) -> None:
        self._errors.setdefault(key, message)

    def __bool__(self) -> bool:
        return bool(self._errors)

    def as_dict(self) -> Dict[str, str]:
        return dict(self._errors)

    def raise_if_any(self) -> None:
        if self._errors:
            raise ValidationError(self._errors, context=self.context)
