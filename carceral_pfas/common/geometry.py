"""Coordinate parsing helpers."""

from __future__ import annotations

import math
import re
from typing import Any

_HEMISPHERE_RE = re.compile(r"^\s*([NSEW])?\s*([+-]?\d+(?:\.\d*)?|[+-]?\.\d+)\s*°?\s*([NSEW])?\s*$", re.IGNORECASE)
_NEGATIVE_HEMISPHERES = {"S", "W"}


def parse_coordinate(value: Any) -> float | None:
    """Return signed decimal degrees, or ``None`` when the value is unusable.

    Accepts numbers, numeric strings and strings carrying a hemisphere letter
    before or after the number (``"84.52W"``, ``"N 33.1"``).
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
        return None if math.isnan(number) or math.isinf(number) else number

    text = str(value).strip()
    if not text:
        return None
    match = _HEMISPHERE_RE.match(text)
    if match is None:
        return None
    prefix, number_text, suffix = match.groups()
    if prefix and suffix:
        return None
    number = float(number_text)
    hemisphere = (prefix or suffix or "").upper()
    if hemisphere in _NEGATIVE_HEMISPHERES:
        number = -abs(number)
    elif hemisphere:
        number = abs(number)
    return number
