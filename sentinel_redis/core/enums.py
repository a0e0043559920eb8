from __future__ import annotations

from enum import StrEnum


class HealthCheckStatus(StrEnum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"
    INITIALIZING = "initializing"


class ConnectionRole(StrEnum):
    """Role a cached connection plays in the replication set."""

    PRIMARY = "primary"
    REPLICA = "replica"
    PUBSUB = "pubsub"
    DISCOVERY = "discovery"


class RedisType(StrEnum):
    """Value types reported by the ``TYPE`` command."""

    STRING = "string"
    HASH = "hash"
    LIST = "list"
    SET = "set"
    ZSET = "zset"
    STREAM = "stream"
    NONE = "none"
