"""Canonicalise the loosely formatted times a model puts in a booking block.

The prompt asks for 24-hour ``HH:MM`` but models still write ``9``,
``9:00``, ``3pm`` or `` 9:00 AM ``.  The appointments table only accepts a
strict ``HH:MM`` so every chat booking goes through :func:`normalize_time`
before it is written.

No range check is done here: ``25:00`` comes out as ``25:00`` and the
database is left to reject it.
"""

from __future__ import annotations

import re

_MERIDIEM_RE = re.compile(r"\s*([ap])\.?\s*m\.?\s*$", re.IGNORECASE)


def normalize_time(raw: str) -> str:
    """Return *raw* as a zero-padded 24-hour ``HH:MM`` string.

    Rules, in order:
      1. strip surrounding whitespace and an AM/PM marker (a PM marker moves
         hours 1-11 into the afternoon, ``12 AM`` becomes ``00``);
      2. append ``:00`` when there is no minute component;
      3. left-pad a single-digit hour.

    >>> normalize_time("9")
    '09:00'
    >>> normalize_time(" 3:15 pm ")
    '15:15'
    """
    value = raw.strip()

    meridiem = None
    match = _MERIDIEM_RE.search(value)
    if match:
        meridiem = match.group(1).lower()
        value = value[: match.start()].strip()

    if ":" not in value:
        value = f"{value}:00"

    if meridiem is not None:
        value = _apply_meridiem(value, meridiem)

    if len(value) < 5:
        value = f"0{value}"
    return value


def _apply_meridiem(value: str, meridiem: str) -> str:
    hour, _, minutes = value.partition(":")
    if not hour.isdigit():
        return value
    hour_num = int(hour)
    if meridiem == "p" and 1 <= hour_num <= 11:
        hour_num += 12
    elif meridiem == "a" and hour_num == 12:
        hour_num = 0
    else:
        return value
    return f"{hour_num:02d}:{minutes}"
