"""
Decoding of textual SNMP variable values.

Trap receivers and SNMP libraries commonly print octet strings as a list of
decimal byte values, e.g. ``[70 71 54]``, while addresses and numbers come as
plain text such as ``0.0.0.0``. decode_trap_value() turns the byte-list form
into the string it encodes and passes everything else through.
"""

from __future__ import annotations

import re

_INT_FIELD = re.compile(r"[+-]?[0-9]+")

# Fields must fit a signed 64-bit integer
_INT_MIN = -(2**63)
_INT_MAX = 2**63 - 1


def decode_trap_value(raw: str) -> str:
    """
    Convert a textual SNMP value into a human readable string.

    Args:
        raw: The value as printed by the SNMP stack.

    Returns:
        The decoded text for a ``[b1 b2 ...]`` byte list, otherwise the
        trimmed input. A byte list with a non-integer field is returned
        unchanged.

    Example:
        >>> decode_trap_value("[70 71 54 72 49 70 84 66 50 50 57 48 49 52 48 53]")
        'FG6H1FTB22901405'
        >>> decode_trap_value("0.0.0.0")
        '0.0.0.0'
    """
    raw = raw.strip()
    if not raw:
        return ""

    if not (raw.startswith("[") and raw.endswith("]")):
        return raw

    fields = raw.strip("[]").split()
    buf = bytearray()
    for field in fields:
        if not _INT_FIELD.fullmatch(field):
            return raw
        value = int(field)
        if not _INT_MIN <= value <= _INT_MAX:
            return raw
        buf.append(value & 0xFF)

    try:
        return buf.decode("utf-8")
    except UnicodeDecodeError:
        return buf.decode("latin-1")
