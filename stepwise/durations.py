"""Parsing of duration strings such as "500ms", "1s" or "1m30s"."""

import math
import re
from typing import Union


_UNIT_SECONDS = {
    'ns': 1e-9,
    'us': 1e-6,
    'µs': 1e-6,
    'μs': 1e-6,
    'ms': 1e-3,
    's': 1.0,
    'm': 60.0,
    'h': 3600.0,
}

_COMPONENT = re.compile(r'(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)')


def parse_duration(value: Union[str, int, float, None]) -> float:
    """
    Convert a duration to seconds.

    Args:
        value: Duration string with units ("1.5s", "1m30s", "250ms"),
            "0", a bare number of seconds, or None for no delay

    Returns:
        Duration in seconds

    Raises:
        ValueError: If the value is negative or not a valid duration
    """
    if value is None:
        return 0.0
    if isinstance(value, bool):
        raise ValueError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        if value < 0 or not math.isfinite(value):
            raise ValueError(f"invalid duration: {value!r}")
        return float(value)

    text = str(value).strip()
    if not text:
        return 0.0
    if text.startswith('-'):
        raise ValueError(f"negative duration: {value!r}")
    text = text.lstrip('+')

    try:
        seconds = float(text)
    except ValueError:
        pass
    else:
        if not math.isfinite(seconds):
            raise ValueError(f"invalid duration: {value!r}")
        return seconds

    total = 0.0
    position = 0
    while position < len(text):
        match = _COMPONENT.match(text, position)
        if not match:
            raise ValueError(f"invalid duration: {value!r}")
        total += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        position = match.end()
    return total
