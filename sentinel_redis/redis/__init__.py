"""Sentinel-aware Redis client exports."""

from __future__ import annotations

from .client import SentinelRedis
from .config import PubSubSettings, RedisConnectionSettings, RoutingPolicy, SentinelRedisConfig
from .connection import ConnectionCache, ConnectionHandle
from .transaction import TransactionExecutor

__all__ = [
    # Client
    "SentinelRedis",
    # Internals
    "ConnectionCache",
    "ConnectionHandle",
    "TransactionExecutor",
    # Config
    "PubSubSettings",
    "RedisConnectionSettings",
    "RoutingPolicy",
    "SentinelRedisConfig",
]
