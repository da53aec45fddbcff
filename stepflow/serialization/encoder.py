"""
Custom encoding for execution log payloads.

Supports serialization of:
- Primitives (int, str, bool, float, None)
- Collections (list, dict, tuple, set)
- Dates (datetime, date, timedelta)
- Special types (Decimal, Enum, Exception, bytes)
- Records (anything with ``to_dict()``, pydantic models, dataclasses)
- Complex objects (via cloudpickle)
"""

import base64
import dataclasses
import json
from datetime import date, datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any

import cloudpickle

from stepflow.core.exceptions import SerializationError


class EnhancedJSONEncoder(json.JSONEncoder):
    """
    JSON encoder with support for additional Python types.

    Records are flattened to plain dicts; they come back as dicts, not as
    instances of their original class.
    """

    def default(self, obj: Any) -> Any:
        if isinstance(obj, datetime):
            return {"__type__": "datetime", "value": obj.isoformat()}

        if isinstance(obj, date):
            return {"__type__": "date", "value": obj.isoformat()}

        if isinstance(obj, timedelta):
            return {"__type__": "timedelta", "value": obj.total_seconds()}

        if isinstance(obj, Decimal):
            return {"__type__": "decimal", "value": str(obj)}

        if isinstance(obj, Enum):
            return {
                "__type__": "enum",
                "class": f"{obj.__class__.__module__}.{obj.__class__.__name__}",
                "value": obj.value,
            }

        if isinstance(obj, Exception):
            return {
                "__type__": "exception",
                "class": obj.__class__.__name__,
                "message": str(obj),
                "args": [str(arg) for arg in obj.args],
            }

        if isinstance(obj, bytes):
            return {"__type__": "bytes", "value": base64.b64encode(obj).decode("ascii")}

        if isinstance(obj, (set, frozenset)):
            return {"__type__": "set", "value": list(obj)}

        # Records
        if hasattr(obj, "to_dict"):
            return obj.to_dict()

        if hasattr(obj, "model_dump"):
            return obj.model_dump(mode="json")

        if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
            return dataclasses.asdict(obj)

        # Complex objects - fall back to cloudpickle
        try:
            return {
                "__type__": "cloudpickle",
                "value": base64.b64encode(cloudpickle.dumps(obj)).decode("ascii"),
            }
        except Exception as e:
            raise TypeError(
                f"Object of type {type(obj).__name__} is not JSON serializable "
                f"and could not be pickled: {e}"
            ) from e


def serialize(obj: Any) -> str:
    """
    Serialize Python object to JSON string.

    Raises:
        SerializationError: If the object cannot be encoded

    Examples:
        >>> serialize({"response": "done", "tokens": 12})
        '{"response": "done", "tokens": 12}'
    """
    try:
        return json.dumps(obj, cls=EnhancedJSONEncoder)
    except (TypeError, ValueError) as e:
        raise SerializationError(str(e), data_type=type(obj)) from e
