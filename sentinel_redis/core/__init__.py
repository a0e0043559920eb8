"""Core module exports."""

from __future__ import annotations

from .enums import ConnectionRole, HealthCheckStatus, RedisType
from .exceptions import (
    AuthFailure,
    ClientNotInitializedError,
    ConnectivityFailure,
    DiscoveryUnavailable,
    NoReplicaAvailable,
    PartialTransactionFailure,
    SentinelRedisError,
    UnsupportedOperation,
)

__all__ = [
    # Enums
    "ConnectionRole",
    "HealthCheckStatus",
    "RedisType",
    # Exceptions
    "AuthFailure",
    "ClientNotInitializedError",
    "ConnectivityFailure",
    "DiscoveryUnavailable",
    "NoReplicaAvailable",
    "PartialTransactionFailure",
    "SentinelRedisError",
    "UnsupportedOperation",
]
