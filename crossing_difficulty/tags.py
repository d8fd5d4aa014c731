"""Typed accessors over OSM tag mappings.

Every accessor fails soft: malformed or missing values come back as ``None``
instead of raising, so a single odd tag never takes a stage down.
"""

from __future__ import annotations

import math
import re
from typing import Mapping, Optional

KMH_PER_MPH = 1.609344
KNOTS_TO_MPH = 1.150779

_PLAIN_INT_RE = re.compile(r"^\d+$")
_SPEED_RE = re.compile(
    r"^(?P<value>\d+(?:\.\d+)?)\s*(?P<unit>mph|km/h|kmh|kph|knots)?$",
    re.IGNORECASE,
)


def tag_value(tags: Optional[Mapping[str, object]], key: str) -> Optional[str]:
    """Return the stripped string value of ``key`` or None when missing/blank."""

    if not tags:
        return None
    value = tags.get(key)
    if value is None:
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    text = str(value).strip()
    return text or None


def parse_speed_mph(value: Optional[str]) -> Optional[float]:
    """Parse an OSM ``maxspeed`` value into miles per hour.

    Bare numbers follow the OSM convention and are read as km/h. Symbolic
    values (``signals``, ``none``, ``walk``) and multi-valued tags yield None.
    """

    if value is None:
        return None
    match = _SPEED_RE.match(str(value).strip())
    if match is None:
        return None
    number = float(match.group("value"))
    unit = (match.group("unit") or "km/h").lower()
    if unit == "mph":
        return number
    if unit == "knots":
        return number * KNOTS_TO_MPH
    return number / KMH_PER_MPH


def parse_plain_int(value: Optional[str]) -> Optional[int]:
    if value is None or not _PLAIN_INT_RE.match(value):
        return None
    return int(value)


def parse_lane_count(tags: Optional[Mapping[str, object]]) -> Optional[int]:
    """Lane count from ``lanes``, else ``lanes:forward + lanes:backward``."""

    lanes = parse_plain_int(tag_value(tags, "lanes"))
    if lanes is not None:
        return lanes
    forward = parse_plain_int(tag_value(tags, "lanes:forward"))
    backward = parse_plain_int(tag_value(tags, "lanes:backward"))
    if forward is not None and backward is not None:
        return forward + backward
    return None
