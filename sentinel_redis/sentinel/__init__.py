"""Sentinel discovery: clients, pool and topology resolution."""

from __future__ import annotations

from .client import SentinelClient
from .config import SentinelNodeSettings, SentinelSettings
from .parser import parse_records, parse_reply
from .pool import SentinelPool
from .topology import DOWN_MARKER, Endpoint, Topology, TopologyResolver

__all__ = [
    "DOWN_MARKER",
    "Endpoint",
    "SentinelClient",
    "SentinelNodeSettings",
    "SentinelPool",
    "SentinelSettings",
    "Topology",
    "TopologyResolver",
    "parse_records",
    "parse_reply",
]
