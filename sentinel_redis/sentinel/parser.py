"""Parsing of raw ``SENTINEL`` replies.

Sentinel answers ``SENTINEL master``/``slaves``/``sentinels`` with flat arrays
of alternating field names and values, and wraps one such array per record
when more than one record is returned::

    ["ip", "10.0.0.5", "port", "6379", "flags", "slave"]
    [["ip", "10.0.0.5", ...], ["ip", "10.0.0.6", ...]]

``parse_reply`` turns either shape into a dict. Nested arrays become nested
dicts stored under their ordinal (0, 1, ...) among the nested elements.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from ..core.types import ReplyRecord


def _is_nested(item: Any) -> bool:
    return isinstance(item, (list, tuple))


def parse_reply(reply: Sequence[Any]) -> ReplyRecord:
    """Recursively parse a flat field/value reply into a dict.

    Parameters
    ----------
    reply : Sequence[Any]
        Raw reply as returned by ``execute_command``.

    Returns
    -------
    ReplyRecord
        Field names mapped to their values; nested records keyed by ordinal.
        A trailing field name without a value maps to ``None``.
    """
    record: ReplyRecord = {}
    ordinal = 0
    cursor = 0
    size = len(reply)

    while cursor < size:
        item = reply[cursor]
        if _is_nested(item):
            record[ordinal] = parse_reply(item)
            ordinal += 1
            cursor += 1
        else:
            record[item] = reply[cursor + 1] if cursor + 1 < size else None
            cursor += 2

    return record


def parse_records(reply: Sequence[Any]) -> list[ReplyRecord]:
    """Parse a multi-record reply and return only the nested records, in order."""
    return [value for key, value in parse_reply(reply).items() if isinstance(key, int)]
