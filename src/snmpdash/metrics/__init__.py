"""
Metrics module for snmpdash.

Components:
- storage: per-source time-series store on the bucketed key-value store
- poller: background SNMP polling job feeding the store
"""

from snmpdash.metrics.poller import Poller, PollerState, PollerStatus
from snmpdash.metrics.storage import Sample, SampleStore

__all__ = [
    "Poller",
    "PollerState",
    "PollerStatus",
    "Sample",
    "SampleStore",
]
