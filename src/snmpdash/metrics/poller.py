"""
Background SNMP polling job using asyncio.

The Poller runs one loop: every cycle it fetches the configured scalar of
each source in turn, stores a sample per successful fetch, then waits the
configured interval. Targets are never polled in parallel and cycles never
overlap.

A failed fetch (timeout, protocol error, missing value) or a failed write is
logged and the source is skipped for that cycle. The next cycle is the only
retry; the SNMP client's own retry budget is at most one.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from snmpdash.config import PollerConfig, SourceConfig
from snmpdash.errors import InvalidArgumentError, ServiceError
from snmpdash.logging import get_logger
from snmpdash.metrics.storage import Sample, SampleStore
from snmpdash.snmp.client import SnmpClient, SnmpError, SnmpTarget
from snmpdash.snmp.values import format_snmp_value, to_number

logger = get_logger(__name__)

# Seconds to wait for an in-flight cycle when stopping
STOP_TIMEOUT = 10.0


# =============================================================================
# Enums and Data Models
# =============================================================================


class PollerStatus(str, Enum):
    """Status of the poller."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


@dataclass
class PollerState:
    """
    Current state of the poller.

    Attributes:
        status: Current poller status.
        job_id: Identifier of the running polling job.
        interval_seconds: Pause between cycles.
        sources: Names of the polled sources.
        started_at: When the poller was started.
        last_poll_at: When the last cycle finished.
        cycle_count: Completed cycles.
        sample_count: Samples written since start.
        error_count: Failed fetches or writes since start.
        last_error: Last error message if any.
    """

    status: PollerStatus = PollerStatus.STOPPED
    job_id: str | None = None
    interval_seconds: float = 60.0
    sources: list[str] = field(default_factory=list)
    started_at: datetime | None = None
    last_poll_at: datetime | None = None
    cycle_count: int = 0
    sample_count: int = 0
    error_count: int = 0
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "status": self.status.value,
            "job_id": self.job_id,
            "interval_seconds": self.interval_seconds,
            "sources": self.sources,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "last_poll_at": (
                self.last_poll_at.isoformat() if self.last_poll_at else None
            ),
            "cycle_count": self.cycle_count,
            "sample_count": self.sample_count,
            "error_count": self.error_count,
            "last_error": self.last_error,
        }


# =============================================================================
# Poller Class
# =============================================================================


class Poller:
    """
    Periodic SNMP poller writing samples into a SampleStore.

    Example:
        >>> store = SampleStore.open("/var/lib/snmpdash/samples.db")
        >>> poller = Poller(store, config.poller)
        >>> await poller.start()
        >>> poller.get_status().sample_count
        >>> await poller.stop()
    """

    def __init__(
        self,
        store: SampleStore,
        config: PollerConfig | None = None,
        client: SnmpClient | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize the Poller.

        Args:
            store: Store receiving the samples.
            config: Poller settings; defaults to PollerConfig().
            client: SNMP client; built from config when omitted.
            clock: Wall-clock source for sample timestamps.
        """
        self._store = store
        self._config = config or PollerConfig()
        self._client = client or SnmpClient(
            timeout=self._config.timeout_seconds,
            retries=self._config.retries,
        )
        self._clock = clock
        self._state = PollerState(
            interval_seconds=self._config.interval_seconds,
            sources=[s.source_name for s in self._config.sources],
        )
        self._task: asyncio.Task[None] | None = None
        self._stop_event = asyncio.Event()
        self._lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        """Check if the poller is currently running."""
        return self._state.status == PollerStatus.RUNNING

    @property
    def sources(self) -> list[SourceConfig]:
        return list(self._config.sources)

    def get_status(self) -> PollerState:
        """Return a copy of the current state."""
        return PollerState(
            status=self._state.status,
            job_id=self._state.job_id,
            interval_seconds=self._state.interval_seconds,
            sources=self._state.sources.copy(),
            started_at=self._state.started_at,
            last_poll_at=self._state.last_poll_at,
            cycle_count=self._state.cycle_count,
            sample_count=self._state.sample_count,
            error_count=self._state.error_count,
            last_error=self._state.last_error,
        )

    # -- polling ------------------------------------------------------------

    async def poll_source(self, source: SourceConfig) -> Sample | None:
        """
        Fetch and store one sample for source.

        Returns:
            The stored sample, or None if the fetch or the write failed.
        """
        name = source.source_name
        target = SnmpTarget(
            host=source.host,
            community=source.community,
            port=self._config.port,
        )

        try:
            raw = await self._client.get_scalar(target, source.oid)
        except SnmpError as e:
            self._record_error(str(e))
            logger.warning(
                "SNMP poll failed",
                extra={"source": name, "host": source.host, "oid": source.oid, "error": str(e)},
            )
            return None
        except Exception as e:
            self._record_error(str(e))
            logger.exception(
                "Unexpected error polling source",
                extra={"source": name, "host": source.host, "oid": source.oid, "error": str(e)},
            )
            return None

        sample = Sample(
            timestamp=int(self._clock()),
            value=to_number(raw),
            source=name,
        )

        try:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self._store.insert, name, sample)
        except ServiceError as e:
            self._record_error(e.message)
            logger.error(
                "Failed to store polled sample",
                extra={"source": name, "error": e.message},
            )
            return None

        self._state.sample_count += 1
        logger.info(
            "Polled source",
            extra={
                "source": name,
                "timestamp": sample.timestamp,
                "value": sample.value,
                "raw": format_snmp_value(raw),
            },
        )
        return sample

    async def poll_once(self) -> int:
        """
        Run one polling cycle over all sources, sequentially.

        Returns:
            Number of samples stored in this cycle.
        """
        stored = 0
        for source in self._config.sources:
            if await self.poll_source(source) is not None:
                stored += 1
        self._state.cycle_count += 1
        self._state.last_poll_at = datetime.now()
        return stored

    def _record_error(self, message: str) -> None:
        self._state.error_count += 1
        self._state.last_error = message

    # -- lifecycle ----------------------------------------------------------

    async def start(self) -> PollerState:
        """
        Start the background polling job.

        Returns:
            Current PollerState after starting.

        Raises:
            InvalidArgumentError: If the poller is already running.
        """
        async with self._lock:
            if self._state.status in (PollerStatus.RUNNING, PollerStatus.STARTING):
                raise InvalidArgumentError(
                    "Poller is already running",
                    details={"job_id": self._state.job_id},
                )

            self._state.status = PollerStatus.STARTING
            self._state.job_id = str(uuid.uuid4())[:8]
            self._state.started_at = datetime.now()
            self._state.cycle_count = 0
            self._state.sample_count = 0
            self._state.error_count = 0
            self._state.last_error = None
            self._stop_event.clear()

            self._task = asyncio.create_task(self._polling_loop())
            self._state.status = PollerStatus.RUNNING

            logger.info(
                "Poller started",
                extra={
                    "job_id": self._state.job_id,
                    "interval_seconds": self._state.interval_seconds,
                    "sources": self._state.sources,
                },
            )

            return self.get_status()

    async def stop(self) -> PollerState:
        """
        Stop the background polling job gracefully.

        Waits for an in-progress cycle to finish before returning.

        Returns:
            Current PollerState after stopping.
        """
        async with self._lock:
            if self._state.status not in (PollerStatus.RUNNING, PollerStatus.STARTING):
                return self.get_status()

            self._state.status = PollerStatus.STOPPING
            self._stop_event.set()

            if self._task:
                try:
                    await asyncio.wait_for(self._task, timeout=STOP_TIMEOUT)
                except TimeoutError:
                    logger.warning("Poller task did not stop gracefully, cancelling")
                    self._task.cancel()
                    try:
                        await self._task
                    except asyncio.CancelledError:
                        pass
                except asyncio.CancelledError:
                    pass
                self._task = None

            self._state.status = PollerStatus.STOPPED

            logger.info(
                "Poller stopped",
                extra={
                    "job_id": self._state.job_id,
                    "sample_count": self._state.sample_count,
                },
            )

            return self.get_status()

    async def _polling_loop(self) -> None:
        """Poll all sources, wait the interval, repeat until stopped."""
        while not self._stop_event.is_set():
            try:
                await self.poll_once()
            except Exception as e:
                self._record_error(str(e))
                logger.exception(
                    "Unexpected error during polling cycle",
                    extra={"job_id": self._state.job_id, "error": str(e)},
                )

            try:
                await asyncio.wait_for(
                    self._stop_event.wait(),
                    timeout=self._state.interval_seconds,
                )
                break
            except TimeoutError:
                pass
