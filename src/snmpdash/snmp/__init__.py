"""
SNMP helpers for snmpdash.

Components:
- decode: textual trap value decoding (byte lists vs. dotted values)
- values: widening and rendering of pysnmp values
- client: async scalar GET over SNMP v2c
"""

from snmpdash.snmp.client import (
    SnmpClient,
    SnmpError,
    SnmpNoValueError,
    SnmpTarget,
    SnmpTimeoutError,
)
from snmpdash.snmp.decode import decode_trap_value
from snmpdash.snmp.values import format_snmp_value, render_varbind, to_number

__all__ = [
    "SnmpClient",
    "SnmpError",
    "SnmpNoValueError",
    "SnmpTarget",
    "SnmpTimeoutError",
    "decode_trap_value",
    "format_snmp_value",
    "render_varbind",
    "to_number",
]
