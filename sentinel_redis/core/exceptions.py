"""Failure taxonomy for the sentinel-backed client.

These exceptions are raised by the internal layers (discovery, topology,
connection cache, transactions) and caught at the boundary of every public
``SentinelRedis`` operation, where they are logged and turned into a plain
failure value. Only ``SentinelRedis.initialize`` lets one escape.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any


class SentinelRedisError(Exception):
    """Base class for every failure raised by this package."""


class ConnectivityFailure(SentinelRedisError):
    """A discovery node or data node was unreachable or timed out."""


class DiscoveryUnavailable(ConnectivityFailure):
    """None of the configured sentinel nodes accepted a connection."""


class AuthFailure(SentinelRedisError):
    """A data node rejected the configured credentials."""


class NoReplicaAvailable(SentinelRedisError):
    """No healthy replica could be resolved or connected."""


class PartialTransactionFailure(SentinelRedisError):
    """At least one command in a MULTI/EXEC batch returned a falsy reply.

    Attributes
    ----------
    results : tuple[Any, ...]
        Raw per-command replies in submission order.
    """

    def __init__(self, message: str, results: Sequence[Any]) -> None:
        super().__init__(message)
        self.results = tuple(results)


class UnsupportedOperation(SentinelRedisError):
    """A pass-through command name is not offered by the redis session."""


class ClientNotInitializedError(SentinelRedisError, RuntimeError):
    """The client was used before ``initialize()`` or after ``close()``."""
