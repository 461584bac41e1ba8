"""Reusable input validation helpers.

All helpers raise ValidationError (400) so routes and services share one error
shape instead of scattering ad-hoc checks.
"""
from __future__ import annotations
import re
from datetime import date
from typing import Any, Dict, Mapping, Optional, Type
from enum import Enum
from aftersales.errors import ValidationError

_CAMEL_BOUNDARY = re.compile(r'(?<!^)(?=[A-Z])')


def snake_case_keys(data: Mapping[str, Any]) -> Dict[str, Any]:
    """Accept camelCase aliases on input: {'sparePartId': 1} -> {'spare_part_id': 1}.

    An explicit snake_case key wins over its camelCase alias.
    """
    out: Dict[str, Any] = {}
    for key, value in (data or {}).items():
        snake = _CAMEL_BOUNDARY.sub('_', key).lower()
        if snake != key and snake in data:
            continue
        out[snake] = value
    return out


def validate_enum(value: Any, enum_cls: Type[Enum], field_name: str = 'status'):
    """Coerce value into enum_cls or raise 400. Returns the enum member."""
    try:
        return enum_cls(getattr(value, 'value', value))
    except ValueError:
        raise ValidationError(f"{field_name} invalid")


def positive_int(value: Any, field_name: str) -> int:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a positive integer")
    try:
        as_int = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be a positive integer")
    if isinstance(value, float) and value != as_int:
        raise ValidationError(f"{field_name} must be a positive integer")
    if as_int <= 0:
        raise ValidationError(f"{field_name} must be a positive integer")
    return as_int


def optional_int(value: Any, field_name: str) -> Optional[int]:
    if value is None or value == '':
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be an integer")


def positive_amount(value: Any, field_name: str = 'amount') -> float:
    try:
        amount = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be a number")
    if amount <= 0:
        raise ValidationError(f"{field_name} must be greater than zero")
    return amount


def parse_date(value: Any, field_name: str) -> Optional[date]:
    if value in (None, ''):
        return None
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ValidationError(f"{field_name} must be an ISO date")


def require_text(value: Any, field_name: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field_name} required")
    return str(value).strip()


__all__ = ['snake_case_keys', 'validate_enum', 'positive_int', 'optional_int', 'positive_amount', 'parse_date', 'require_text']
