"""Input validation for user-entered peak and track fields.

Shared by the :class:`~peaklog.core.Peaklog` facade and the CLI so both
reject the same inputs with the same messages.
"""

import math
import re
from datetime import date
from typing import Any, List, Optional

from peaklog.types import VALID_CATEGORY_VALUES

MAX_NAME_LENGTH = 200
MAX_NOTES_LENGTH = 5000


def sanitize_string(
    value: Any, field_name: str, max_length: int = 1000, required: bool = True
) -> str:
    """Validate a string and strip control characters.

    Raises:
        ValueError: If validation fails.
    """
    if value is None and not required:
        return ""

    if not isinstance(value, str):
        raise ValueError(f"{field_name} must be a string, got {type(value).__name__}")

    if required and not value.strip():
        raise ValueError(f"{field_name} cannot be empty")

    if len(value) > max_length:
        raise ValueError(f"{field_name} too long (max {max_length} characters, got {len(value)})")

    # Keep newlines and tabs
    return re.sub(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]", "", value)


def sanitize_number(
    value: Any,
    field_name: str,
    min_val: Optional[float] = None,
    max_val: Optional[float] = None,
) -> float:
    """Validate a number, rejecting bools, NaN and infinity.

    Raises:
        ValueError: If validation fails.
    """
    if value is None:
        raise ValueError(f"{field_name} is required")

    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{field_name} must be a number, got {type(value).__name__}")

    if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
        raise ValueError(f"{field_name} must be a finite number, got {value}")

    if min_val is not None and value < min_val:
        raise ValueError(f"{field_name} must be >= {min_val}, got {value}")

    if max_val is not None and value > max_val:
        raise ValueError(f"{field_name} must be <= {max_val}, got {value}")

    return value


def validate_category(value: str) -> str:
    if value not in VALID_CATEGORY_VALUES:
        allowed = ", ".join(sorted(VALID_CATEGORY_VALUES))
        raise ValueError(f"category must be one of {allowed}, got {value!r}")
    return value


def validate_date(value: Optional[str], field_name: str) -> Optional[str]:
    """Accept ``YYYY-MM-DD`` or None."""
    if value is None:
        return None
    try:
        date.fromisoformat(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"{field_name} must be a YYYY-MM-DD date, got {value!r}") from e
    return value


def validate_coordinates(value: Any) -> List[List[float]]:
    """Validate a track's ``[lat, lng]`` list."""
    if not isinstance(value, list):
        raise ValueError("coordinates must be a list of [lat, lng] pairs")
    points = []
    for index, point in enumerate(value):
        if not isinstance(point, (list, tuple)) or len(point) != 2:
            raise ValueError(f"coordinates[{index}] must be a [lat, lng] pair")
        lat = sanitize_number(point[0], f"coordinates[{index}] lat", -90, 90)
        lng = sanitize_number(point[1], f"coordinates[{index}] lng", -180, 180)
        points.append([lat, lng])
    return points
