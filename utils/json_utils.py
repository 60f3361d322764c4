"""
JSON utilities using orjson for the API serialization boundary
"""
import orjson
from typing import Any
from datetime import datetime, date
from decimal import Decimal
from enum import Enum
import logging

logger = logging.getLogger(__name__)

class ORJSONEncoder:
    """Custom encoder for handling special types with orjson"""

    @staticmethod
    def default(obj: Any) -> Any:
        """Handle types that orjson doesn't natively support"""
        if hasattr(obj, 'to_dict'):
            return obj.to_dict()
        elif isinstance(obj, Enum):
            return obj.value
        elif isinstance(obj, Decimal):
            return str(obj)
        elif isinstance(obj, (set, frozenset, tuple)):
            return list(obj)
        elif isinstance(obj, (bytes, bytearray)):
            return '0x' + bytes(obj).hex()
        else:
            raise TypeError(f"Object of type {type(obj)} is not JSON serializable")

def orjson_dumps(obj: Any, option: int = orjson.OPT_NAIVE_UTC) -> bytes:
    """
    Fast JSON serialization using orjson
    Returns bytes by default
    """
    try:
        return orjson.dumps(obj, default=ORJSONEncoder.default, option=option)
    except orjson.JSONEncodeError as e:
        logger.error(f"orjson serialization failed: {e}")
        raise

def orjson_dumps_str(obj: Any, option: int = orjson.OPT_NAIVE_UTC) -> str:
    """
    Fast JSON serialization returning string
    """
    return orjson_dumps(obj, option).decode('utf-8')

def sanitize_for_orjson(obj: Any) -> Any:
    """
    Recursively convert an object into plain JSON types.

    Integers outside the 64-bit range orjson accepts become decimal strings.
    """
    if hasattr(obj, 'to_dict'):
        return sanitize_for_orjson(obj.to_dict())
    elif isinstance(obj, dict):
        return {k: sanitize_for_orjson(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple, set, frozenset)):
        return [sanitize_for_orjson(item) for item in obj]
    elif isinstance(obj, bool):
        return obj
    elif isinstance(obj, int):
        return obj if -(2 ** 63) <= obj < 2 ** 64 else str(obj)
    elif isinstance(obj, (datetime, date)):
        return obj.isoformat()
    elif isinstance(obj, Enum):
        return obj.value
    elif isinstance(obj, Decimal):
        return str(obj)
    else:
        return obj
