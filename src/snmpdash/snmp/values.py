"""
Conversion of pysnmp values into samples and display text.

to_number() widens the small, fixed set of numeric SNMP wire types to a
float. format_snmp_value() prints a value in the textual convention that
decode_trap_value() understands, and render_varbind() combines both for
showing trap variables to humans.
"""

from __future__ import annotations

from typing import Any

from pysnmp.proto.rfc1902 import (
    Counter32,
    Counter64,
    Gauge32,
    Integer,
    Integer32,
    IpAddress,
    OctetString,
    TimeTicks,
    Unsigned32,
)
from pysnmp.proto.rfc1905 import EndOfMibView, NoSuchInstance, NoSuchObject

from snmpdash.logging import get_logger
from snmpdash.snmp.decode import decode_trap_value

logger = get_logger(__name__)

# Wire types that carry an integer reading
NUMERIC_TYPES: tuple[type, ...] = (
    Integer,
    Integer32,
    Unsigned32,
    Counter32,
    Counter64,
    Gauge32,
    TimeTicks,
)

# Markers an agent returns instead of a value
EXCEPTION_TYPES: tuple[type, ...] = (NoSuchObject, NoSuchInstance, EndOfMibView)


def is_exception_value(value: Any) -> bool:
    """Whether value is noSuchObject, noSuchInstance or endOfMibView."""
    return isinstance(value, EXCEPTION_TYPES)


def to_number(value: Any) -> float:
    """
    Widen an SNMP value to a float.

    Integer SNMP types (Integer/Integer32, Unsigned32, Counter32, Counter64,
    Gauge32, TimeTicks) and plain Python int/float are converted. Every other
    type (octet strings, OIDs, addresses, exception markers) yields 0.0.

    Args:
        value: A pysnmp value or a Python number.

    Returns:
        The numeric reading.
    """
    if isinstance(value, NUMERIC_TYPES):
        return float(int(value))
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, int):
        return float(value)
    if isinstance(value, float):
        # Integral readings only: fractional parts are truncated
        return float(int(value))

    logger.debug(
        "Non-numeric SNMP value widened to zero",
        extra={"value_type": type(value).__name__},
    )
    return 0.0


def format_snmp_value(value: Any) -> str:
    """
    Print an SNMP value in the textual trap convention.

    Octet strings become ``[b1 b2 ...]`` byte lists, IP addresses dotted
    quads, and everything else the library's prettyPrint() output.
    """
    if isinstance(value, IpAddress):
        return ".".join(str(b) for b in value.asOctets())
    if isinstance(value, OctetString):
        return "[" + " ".join(str(b) for b in value.asOctets()) + "]"
    if isinstance(value, (bytes, bytearray)):
        return "[" + " ".join(str(b) for b in value) + "]"
    if hasattr(value, "prettyPrint"):
        return value.prettyPrint()
    return str(value)


def render_varbind(oid: Any, value: Any) -> tuple[str, str]:
    """
    Render a variable binding for display.

    Returns:
        (oid, display) where display is the decoded value text.
    """
    oid_text = oid.prettyPrint() if hasattr(oid, "prettyPrint") else str(oid)
    return oid_text, decode_trap_value(format_snmp_value(value))
