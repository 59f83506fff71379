"""JSON helpers for storing generation context."""

import dataclasses
import json
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel

from cinerec.logging import get_logger

logger = get_logger(__name__)


def _encode(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def safe_json_dumps(data: Any, default: str = "{}") -> str:
    """Serialize data to JSON, returning ``default`` on failure.

    Dataclasses, pydantic models, datetimes and enums are converted on the way.
    """
    if data is None:
        return default

    try:
        return json.dumps(data, ensure_ascii=False, default=_encode)
    except (TypeError, ValueError, OverflowError) as e:
        logger.warning(f"Failed to serialize JSON: {e}")
        return default


def safe_json_loads(text: str | None, default: dict | list | None = None) -> Any:
    """Parse JSON, returning ``default`` (an empty dict unless given) on failure."""
    if default is None:
        default = {}

    if not text:
        return default

    try:
        return json.loads(text)
    except (json.JSONDecodeError, TypeError, ValueError) as e:
        logger.warning(f"Failed to parse JSON: {e}")
        return default
