"""Interval specification parsing.

An interval spec is zero or more ``<integer><unit>`` segments in the fixed
order days, hours, minutes, each optional: ``2d12h``, ``90m``, ``1d30m``.
The empty string is a zero interval.
"""

from __future__ import annotations

import re
from datetime import timedelta

from pack_fetch.errors import InvalidFormatError

INTERVAL_PATTERN = re.compile(r"(?:(\d+)d)?(?:(\d+)h)?(?:(\d+)m)?")

_UNITS = frozenset("dhm")


def parse_interval(spec: str) -> timedelta:
    """Parse an interval spec into a ``timedelta``.

    Args:
        spec: Interval specification such as ``"2d3h30m"``.

    Returns:
        The total duration, minute granularity.

    Raises:
        InvalidFormatError: If *spec* does not match the grammar or its
            total does not fit in a ``timedelta``.
    """
    match = INTERVAL_PATTERN.fullmatch(spec)
    if match is None:
        for char in spec:
            if not char.isdigit() and char not in _UNITS:
                raise InvalidFormatError(
                    f"invalid interval unit {char!r} in {spec!r}"
                )
        raise InvalidFormatError(f"invalid interval format: {spec!r}")

    try:
        days, hours, minutes = (int(group) if group else 0 for group in match.groups())
        return timedelta(days=days, hours=hours, minutes=minutes)
    except (OverflowError, ValueError) as exc:
        raise InvalidFormatError(f"interval {spec!r} is out of range") from exc


def is_valid_interval(spec: str) -> bool:
    """Return True if *spec* parses to a representable interval."""
    try:
        parse_interval(spec)
    except InvalidFormatError:
        return False
    return True
