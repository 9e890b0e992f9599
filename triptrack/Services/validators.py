# triptrack/Services/validators.py
"""
Input validation for ingestion requests (HTTP body, UDP packets).

Runs before any state is touched: a request that fails here has no effect.
"""

import math
from typing import Any, Iterable, List, Optional, Union

from triptrack.Core.exceptions import ValidationError


def coerce_coordinate(name: str, value: Any) -> float:
    """
    Convert a latitude/longitude value to a finite float.

    Numbers and numeric strings are accepted ("41.0082" -> 41.0082).

    Raises:
        ValidationError: missing, boolean, non-numeric or non-finite value
    """
    if value is None:
        raise ValidationError(name, value, f"{name} is required")
    if isinstance(value, bool):
        raise ValidationError(name, value, f"{name} must be a number")

    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            raise ValidationError(name, value, f"{name} must be a number") from None
    else:
        raise ValidationError(name, value, f"{name} must be a number")

    if not math.isfinite(number):
        raise ValidationError(name, value, f"{name} must be finite")
    return number


def parse_device_ids(
    raw: Union[str, Iterable[str], None],
    default: Optional[str] = None,
) -> List[str]:
    """
    Split a comma-separated device id list.

    Blank entries are dropped and duplicates removed (first occurrence kept).
    Falls back to [default] when nothing remains and a default is given.

    Examples:
        >>> parse_device_ids(" bike1, bike2 ,,bike1")
        ['bike1', 'bike2']
        >>> parse_device_ids("", default="default")
        ['default']
    """
    if raw is None:
        parts: List[str] = []
    elif isinstance(raw, str):
        parts = raw.split(",")
    else:
        parts = [piece for item in raw for piece in str(item).split(",")]

    ids: List[str] = []
    for part in parts:
        device_id = part.strip()
        if device_id and device_id not in ids:
            ids.append(device_id)

    if not ids and default:
        ids.append(default)
    return ids
