"""Typed access to loosely-typed ledger field maps.

Every getter returns ``None`` when the field is absent or empty and never
raises for a missing key. A value of the wrong shape raises
``FieldTypeError`` where the caller must treat it as a hard failure.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Mapping, Optional

from .errors import FieldTypeError
from .models import FieldValue

DATE_FORMAT = "%Y-%m-%d"


def _scalar_text(value: FieldValue) -> Optional[str]:
    """String form of a scalar cell, mirroring how the ledger displays it."""
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return value
    return None


def _first_link(value: list) -> FieldValue:
    # Only the first linked value is used; multi-link rollups are not supported.
    return value[0] if value else None


def get_string(fields: Mapping[str, FieldValue], name: str) -> Optional[str]:
    """Text value of a field. A link list yields its first element."""
    value = fields.get(name)
    if isinstance(value, list):
        value = _first_link(value)
    text = _scalar_text(value)
    if text is None:
        return None
    text = text.strip()
    return text or None


def get_customer_id(fields: Mapping[str, FieldValue], name: str) -> Optional[str]:
    """Customer identifier from a plain string or a rollup/link list."""
    value = fields.get(name)
    if isinstance(value, list):
        value = _first_link(value)
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (str, int, float)):
        text = str(value).strip()
        return text or None
    return None


def get_flag_text(fields: Mapping[str, FieldValue], name: str) -> Optional[str]:
    """String form of a flag field, e.g. ``True`` and ``"true"`` both give ``"true"``."""
    value = fields.get(name)
    if isinstance(value, list):
        value = _first_link(value)
    return _scalar_text(value)


def get_amount(fields: Mapping[str, FieldValue], name: str) -> Optional[Decimal]:
    """Monetary amount in major units.

    Raises:
        FieldTypeError: If the field holds anything other than a number.
    """
    value = fields.get(name)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise FieldTypeError(name, f"expected a number, got {type(value).__name__}")
    amount = Decimal(str(value))
    if not amount.is_finite():
        raise FieldTypeError(name, f"expected a finite number, got {value}")
    return amount


def get_quantity(fields: Mapping[str, FieldValue], name: str) -> Optional[int]:
    """Integral quantity.

    Raises:
        FieldTypeError: If the field is not a whole number.
    """
    value = fields.get(name)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise FieldTypeError(name, f"expected a whole number, got {type(value).__name__}")
    if isinstance(value, float) and not value.is_integer():
        raise FieldTypeError(name, f"expected a whole number, got {value}")
    return int(value)


def get_date(fields: Mapping[str, FieldValue], name: str) -> Optional[date]:
    """Calendar date from a ``YYYY-MM-DD`` string.

    ISO datetime strings are accepted and truncated to their date part.

    Raises:
        FieldTypeError: If the value is not a parseable date string.
    """
    value = fields.get(name)
    if isinstance(value, list):
        value = _first_link(value)
    if value is None:
        return None
    if not isinstance(value, str):
        raise FieldTypeError(name, f"expected a date string, got {type(value).__name__}")
    text = value.strip()
    if not text:
        return None
    try:
        return datetime.strptime(text, DATE_FORMAT).date()
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError as e:
        raise FieldTypeError(name, f"unparseable date {value!r}") from e
