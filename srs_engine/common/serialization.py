"""
Serialization Utilities

This module provides helpers for turning engine entities (dataclasses, enums,
datetimes, tuples and sets) into plain JSON-compatible structures and back.
"""

import json
import datetime
from enum import Enum
from typing import Any, List, Optional, Union
from dataclasses import is_dataclass, fields

from pydantic import BaseModel


def serialize(
    obj: Any,
    exclude_none: bool = False,
    exclude_fields: Optional[List[str]] = None
) -> Any:
    """
    Serialize an object to JSON-compatible Python data.

    Args:
        obj: The object to serialize
        exclude_none: Whether to drop keys whose value is None
        exclude_fields: Optional list of field names to exclude

    Returns:
        Dicts, lists and primitives only
    """
    exclude_fields = exclude_fields or []

    if obj is None or isinstance(obj, (str, int, float, bool)):
        return obj

    if isinstance(obj, datetime.datetime):
        return obj.isoformat()

    if isinstance(obj, datetime.date):
        return obj.isoformat()

    if isinstance(obj, Enum):
        return obj.value

    if isinstance(obj, (list, tuple)):
        return [serialize(item, exclude_none, exclude_fields) for item in obj]

    if isinstance(obj, (set, frozenset)):
        # Sorted for stable output
        return sorted(serialize(item, exclude_none, exclude_fields) for item in obj)

    if isinstance(obj, dict):
        result = {}
        for key, value in obj.items():
            if key in exclude_fields:
                continue
            if exclude_none and value is None:
                continue
            result[serialize(key)] = serialize(value, exclude_none, exclude_fields)
        return result

    if isinstance(obj, BaseModel):
        return serialize(obj.model_dump(), exclude_none, exclude_fields)

    # Dataclasses are walked field by field so nested entities keep their own
    # to_dict-free representation
    if is_dataclass(obj):
        return serialize(
            {f.name: getattr(obj, f.name) for f in fields(obj)},
            exclude_none,
            exclude_fields
        )

    if hasattr(obj, 'to_dict') and callable(getattr(obj, 'to_dict')):
        return serialize(obj.to_dict(), exclude_none, exclude_fields)

    return str(obj)


def parse_datetime(value: Union[str, datetime.datetime, None]) -> Optional[datetime.datetime]:
    """
    Parse an ISO-8601 string (or pass through a datetime).

    Args:
        value: ISO string, datetime, or None

    Returns:
        Parsed datetime or None
    """
    if value is None or isinstance(value, datetime.datetime):
        return value
    return datetime.datetime.fromisoformat(value)


def to_naive_utc(value: Optional[datetime.datetime]) -> Optional[datetime.datetime]:
    """
    Convert an aware datetime to naive UTC.

    Stored dates are naive UTC; naive input is taken as already in UTC.

    Args:
        value: Datetime or None

    Returns:
        Naive datetime or None
    """
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(datetime.timezone.utc).replace(tzinfo=None)


def to_json(obj: Any, pretty: bool = False, exclude_none: bool = False) -> str:
    """
    Serialize an object to a JSON string.

    Args:
        obj: The object to serialize
        pretty: Whether to format the JSON with indentation
        exclude_none: Whether to exclude None values

    Returns:
        JSON string representation
    """
    indent = 2 if pretty else None
    return json.dumps(serialize(obj, exclude_none), indent=indent, ensure_ascii=False)
