"""Sentinel-aware Redis client with primary/replica routing."""

from __future__ import annotations

from .core import (
    AuthFailure,
    ClientNotInitializedError,
    ConnectionRole,
    ConnectivityFailure,
    DiscoveryUnavailable,
    HealthCheckStatus,
    NoReplicaAvailable,
    PartialTransactionFailure,
    RedisType,
    SentinelRedisError,
    UnsupportedOperation,
)
from .logger import LoggingConfig, configure_logging, get_logger
from .redis import (
    PubSubSettings,
    RedisConnectionSettings,
    RoutingPolicy,
    SentinelRedis,
    SentinelRedisConfig,
)
from .resilience import RetryConfig
from .sentinel import Endpoint, SentinelNodeSettings, SentinelSettings, Topology

__all__ = [
    "AuthFailure",
    "ClientNotInitializedError",
    "ConnectionRole",
    "ConnectivityFailure",
    "DiscoveryUnavailable",
    "Endpoint",
    "HealthCheckStatus",
    "LoggingConfig",
    "NoReplicaAvailable",
    "PartialTransactionFailure",
    "PubSubSettings",
    "RedisConnectionSettings",
    "RedisType",
    "RetryConfig",
    "RoutingPolicy",
    "SentinelNodeSettings",
    "SentinelRedis",
    "SentinelRedisConfig",
    "SentinelRedisError",
    "SentinelSettings",
    "Topology",
    "UnsupportedOperation",
    "configure_logging",
    "get_logger",
]
