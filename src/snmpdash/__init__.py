"""
snmpdash - SNMP sample poller and time-series dashboard backend.

This package polls numeric SNMP scalars, stores them per source in an
embedded bucketed key-value store, and serves them over a small HTTP API
together with source maintenance operations (rename, merge, delete).
"""

__version__ = "0.1.0"
