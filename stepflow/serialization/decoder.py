"""
Custom decoding for execution log payloads.

Reverses the encoding performed by encoder.py to reconstruct Python objects.
"""

import base64
import importlib
import json
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any

import cloudpickle

from stepflow.core.exceptions import SerializationError


def enhanced_json_decoder(dct: dict) -> Any:
    """
    Decode tagged JSON types back to Python objects.

    Unknown tags and objects that can't be rebuilt are returned as the
    tagged dict.
    """
    if "__type__" not in dct:
        return dct

    type_name = dct["__type__"]

    if type_name == "datetime":
        return datetime.fromisoformat(dct["value"])

    if type_name == "date":
        return date.fromisoformat(dct["value"])

    if type_name == "timedelta":
        return timedelta(seconds=dct["value"])

    if type_name == "decimal":
        return Decimal(dct["value"])

    if type_name == "enum":
        module_name, class_name = dct["class"].rsplit(".", 1)
        try:
            enum_class = getattr(importlib.import_module(module_name), class_name)
            return enum_class(dct["value"])
        except (ImportError, AttributeError, ValueError):
            return dct

    if type_name == "exception":
        # Only the message survives; the original class may not be importable
        return Exception(dct.get("message", "Unknown error"))

    if type_name == "bytes":
        return base64.b64decode(dct["value"])

    if type_name == "set":
        return set(dct["value"])

    if type_name == "cloudpickle":
        try:
            return cloudpickle.loads(base64.b64decode(dct["value"]))
        except Exception:
            return dct

    return dct


def deserialize(json_str: str) -> Any:
    """
    Deserialize JSON string to Python object.

    Raises:
        SerializationError: If the string is not valid JSON

    Examples:
        >>> deserialize('{"__type__": "datetime", "value": "2025-01-15T10:30:00"}')
        datetime.datetime(2025, 1, 15, 10, 30)
    """
    try:
        return json.loads(json_str, object_hook=enhanced_json_decoder)
    except json.JSONDecodeError as e:
        raise SerializationError(f"Invalid payload: {e}") from e
