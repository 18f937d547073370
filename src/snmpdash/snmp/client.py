"""
SNMP client - pysnmp asyncio wrapper.

Provides a single operation, get_scalar(), which fetches one scalar OID from
one agent with SNMP v2c. Timeout and retry budget are fixed per client.
The pysnmp engine is created on first use.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from snmpdash.logging import get_logger
from snmpdash.snmp.values import is_exception_value

logger = get_logger(__name__)

DEFAULT_PORT = 161
DEFAULT_TIMEOUT = 2.0
DEFAULT_RETRIES = 1


class SnmpError(Exception):
    """Base SNMP error."""


class SnmpTimeoutError(SnmpError):
    """SNMP request timed out after all retries."""


class SnmpNoValueError(SnmpError):
    """The agent returned no usable value for the OID."""


def _error_location(var_binds: Any, error_index: Any) -> str:
    """OID named by a PDU error index, or "?" when it points nowhere."""
    try:
        index = int(error_index)
    except (TypeError, ValueError):
        return "?"
    if 0 < index <= len(var_binds):
        return str(var_binds[index - 1][0])
    return "?"


@dataclass
class SnmpTarget:
    """Connection parameters for a single SNMP agent."""

    host: str
    community: str
    port: int = DEFAULT_PORT


class SnmpClient:
    """
    Thin async wrapper around the pysnmp v3arch asyncio API.

    Example:
        >>> client = SnmpClient(timeout=2.0, retries=1)
        >>> value = await client.get_scalar(SnmpTarget("10.0.0.1", "public"), ".1.3.6.1.2.1.1.3.0")
    """

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        retries: int = DEFAULT_RETRIES,
    ) -> None:
        self.timeout = timeout
        self.retries = retries
        self._engine: Any = None

    def _get_engine(self) -> Any:
        if self._engine is None:
            from pysnmp.hlapi.v3arch.asyncio import SnmpEngine

            self._engine = SnmpEngine()
        return self._engine

    async def get_scalar(self, target: SnmpTarget, oid: str) -> Any:
        """
        SNMP GET of one scalar OID.

        Args:
            target: Agent address and community.
            oid: The OID, with or without a leading dot.

        Returns:
            The pysnmp value bound to the OID.

        Raises:
            SnmpTimeoutError: If the request times out.
            SnmpNoValueError: If no value (or an exception marker) comes back.
            SnmpError: On transport or protocol errors.
        """
        from pysnmp.hlapi.v3arch.asyncio import (
            CommunityData,
            ContextData,
            ObjectIdentity,
            ObjectType,
            UdpTransportTarget,
            get_cmd,
        )

        try:
            transport = await UdpTransportTarget.create(
                (target.host, target.port),
                timeout=self.timeout,
                retries=self.retries,
            )
        except Exception as e:
            raise SnmpError(f"SNMP connect error: {target.host}: {e}") from e

        try:
            error_indication, error_status, error_index, var_binds = await get_cmd(
                self._get_engine(),
                CommunityData(target.community, mpModel=1),
                transport,
                ContextData(),
                ObjectType(ObjectIdentity(oid.lstrip("."))),
            )
        except Exception as e:
            raise SnmpError(f"SNMP GET failed: {target.host} OID={oid}: {e}") from e

        if error_indication:
            err_str = str(error_indication)
            if "timeout" in err_str.lower():
                raise SnmpTimeoutError(f"SNMP GET timeout: {target.host} OID={oid}")
            raise SnmpError(f"SNMP GET error: {err_str}")

        if error_status:
            raise SnmpError(
                f"SNMP GET error status: {error_status.prettyPrint()} "
                f"at {_error_location(var_binds, error_index)}"
            )

        if not var_binds:
            raise SnmpNoValueError(f"No SNMP variables returned: {target.host} OID={oid}")

        _oid, value = var_binds[0]
        if is_exception_value(value):
            raise SnmpNoValueError(
                f"No value for OID: {target.host} OID={oid} ({value.__class__.__name__})"
            )
        logger.debug(
            "SNMP GET ok",
            extra={"host": target.host, "oid": oid, "value_type": type(value).__name__},
        )
        return value
