"""Lazily established, cached connections to primary, replica and pub/sub nodes.

A cached handle is reused only while it is both connected and
authenticated. Anything else is closed and rebuilt from a fresh topology
lookup; handles are never repaired in place.

Each role has its own lock, so one ``ConnectionCache`` can be shared by
threads. Sentinel lookups are serialized by a separate lock because the
sentinel pool and the resolved topology are shared by all roles.
"""

from __future__ import annotations

import random
import threading
from collections.abc import Iterable
from typing import TYPE_CHECKING

from redis.exceptions import AuthenticationError, RedisError

from ..core.enums import ConnectionRole
from ..core.exceptions import AuthFailure, ConnectivityFailure, NoReplicaAvailable
from ..core.session import close_session, create_session
from ..logger import get_logger
from ..sentinel.topology import Endpoint

if TYPE_CHECKING:
    from redis import Redis
    from structlog.stdlib import BoundLogger

    from ..core.session import SessionFactory
    from ..sentinel.topology import TopologyResolver
    from .config import SentinelRedisConfig

logger: BoundLogger = get_logger(__name__)

CACHED_ROLES = (ConnectionRole.PRIMARY, ConnectionRole.REPLICA, ConnectionRole.PUBSUB)


class ConnectionHandle:
    """A configured redis session bound to one endpoint and role.

    Attributes
    ----------
    endpoint : Endpoint
        Node the session talks to.
    role : ConnectionRole
        Role the node was connected for.
    session : Redis
        Underlying redis-py client.
    key_prefix : str
        Namespace prepended to every key sent through this handle.
    authenticated : bool
        Whether the handshake (AUTH when a password is set) succeeded.
    """

    __slots__ = ("_connected", "authenticated", "endpoint", "key_prefix", "role", "session")

    def __init__(
        self,
        endpoint: Endpoint,
        role: ConnectionRole,
        session: Redis,
        key_prefix: str = "",
        authenticated: bool = False,
    ) -> None:
        self.endpoint = endpoint
        self.role = role
        self.session = session
        self.key_prefix = key_prefix
        self.authenticated = authenticated
        self._connected = True

    def __repr__(self) -> str:
        return f"ConnectionHandle(role={self.role.value}, endpoint={self.endpoint.address}, usable={self.is_usable})"

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def is_usable(self) -> bool:
        return self._connected and self.authenticated

    def mark_disconnected(self) -> None:
        self._connected = False

    def key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    def keys(self, keys: Iterable[str]) -> list[str]:
        return [self.key(key) for key in keys]

    def close(self) -> None:
        self._connected = False
        close_session(self.session)


class ConnectionCache:
    """Owns every data-node connection and rebuilds them on demand.

    Parameters
    ----------
    config : SentinelRedisConfig
        Connection settings, key prefix and pub/sub endpoint.
    resolver : TopologyResolver
        Source of primary and replica endpoints.
    rng : random.Random | None
        Randomness for replica selection.
    session_factory : SessionFactory | None
        Builds a redis session from ``config.session_kwargs(endpoint)``.
    """

    def __init__(
        self,
        config: SentinelRedisConfig,
        resolver: TopologyResolver,
        *,
        rng: random.Random | None = None,
        session_factory: SessionFactory | None = None,
    ) -> None:
        self._config = config
        self._resolver = resolver
        self._rng = rng or random.Random()
        self._session_factory = session_factory or create_session
        self._handles: dict[ConnectionRole, ConnectionHandle] = {}
        self._locks = {role: threading.Lock() for role in CACHED_ROLES}
        self._discovery_lock = threading.Lock()

    @property
    def resolver(self) -> TopologyResolver:
        return self._resolver

    def peek(self, role: ConnectionRole) -> ConnectionHandle | None:
        """Return the cached handle for ``role`` without validating or connecting."""
        return self._handles.get(role)

    def get_connection(self, role: ConnectionRole) -> ConnectionHandle:
        """Return a usable handle for ``role``, connecting if needed.

        Raises
        ------
        ConnectivityFailure
            If the target node cannot be resolved or reached.
        AuthFailure
            If the primary or pub/sub node rejects the credentials.
        NoReplicaAvailable
            If no replica can be resolved or connected.
        """
        role = ConnectionRole(role)
        if role not in self._locks:
            raise ValueError(f"connections for role {role.value!r} are not cached here")

        with self._locks[role]:
            handle = self._handles.get(role)
            if handle is not None and handle.is_usable:
                return handle

            if handle is not None:
                logger.info("Discarding unusable connection", role=role.value, endpoint=handle.endpoint.address)
                handle.close()
                del self._handles[role]

            if role is ConnectionRole.PRIMARY:
                handle = self._connect_primary()
            elif role is ConnectionRole.REPLICA:
                handle = self._connect_replica()
            else:
                handle = self._connect_pubsub()

            self._handles[role] = handle
            return handle

    def invalidate(self, role: ConnectionRole, handle: ConnectionHandle | None = None) -> None:
        """Drop the cached handle for ``role`` so the next call reconnects.

        When ``handle`` is given, only that exact handle is dropped; a newer
        one cached by another thread is left alone.
        """
        if role not in self._locks:
            return
        with self._locks[role]:
            cached = self._handles.get(role)
            if cached is None or (handle is not None and cached is not handle):
                return
            del self._handles[role]
        cached.close()
        logger.info("Connection invalidated", role=role.value, endpoint=cached.endpoint.address)

    def close(self) -> None:
        """Close every cached connection, discarding errors."""
        for role in CACHED_ROLES:
            with self._locks[role]:
                handle = self._handles.pop(role, None)
            if handle is not None:
                handle.close()
                logger.info("Connection closed", role=role.value, endpoint=handle.endpoint.address)

    def _connect_primary(self) -> ConnectionHandle:
        with self._discovery_lock:
            endpoint = self._resolver.resolve_primary()
        if endpoint is None:
            raise ConnectivityFailure("primary could not be resolved from sentinel")
        return self._open(endpoint, ConnectionRole.PRIMARY)

    def _connect_replica(self) -> ConnectionHandle:
        candidates = self._resolver.topology.replicas
        refreshed = False
        if not candidates:
            candidates = self._refresh_replicas()
            refreshed = True

        handle = self._first_connectable(candidates)
        if handle is None and not refreshed:
            logger.warning("No known replica accepted a connection, refreshing replica set")
            handle = self._first_connectable(self._refresh_replicas())

        if handle is None:
            raise NoReplicaAvailable("no replica accepted a connection")
        return handle

    def _refresh_replicas(self) -> tuple[Endpoint, ...]:
        with self._discovery_lock:
            return self._resolver.resolve_replicas()

    def _first_connectable(self, candidates: Iterable[Endpoint]) -> ConnectionHandle | None:
        shuffled = list(candidates)
        self._rng.shuffle(shuffled)

        for endpoint in shuffled:
            try:
                return self._open(endpoint, ConnectionRole.REPLICA)
            except (ConnectivityFailure, AuthFailure) as e:
                logger.warning("Replica connect failed", endpoint=endpoint.address, error=str(e))
        return None

    def _connect_pubsub(self) -> ConnectionHandle:
        settings = self._config.pubsub
        if settings is None:
            raise ConnectivityFailure("no pub/sub endpoint configured")
        return self._open(Endpoint(ip=settings.ip, port=settings.port), ConnectionRole.PUBSUB)

    def _open(self, endpoint: Endpoint, role: ConnectionRole) -> ConnectionHandle:
        """Connect and configure a session for ``endpoint``.

        The PING forces the handshake: AUTH (when a password is configured)
        and SELECT run before it, with the configured connect and read
        timeouts already in place on the socket.
        """
        session = self._session_factory(**self._config.session_kwargs(endpoint))
        try:
            session.ping()
        except AuthenticationError as e:
            close_session(session)
            logger.error("Redis auth failed", role=role.value, endpoint=endpoint.address)
            raise AuthFailure(f"{role.value} {endpoint.address} rejected credentials") from e
        except RedisError as e:
            close_session(session)
            raise ConnectivityFailure(f"{role.value} {endpoint.address} unreachable: {e}") from e

        handle = ConnectionHandle(
            endpoint=endpoint,
            role=role,
            session=session,
            key_prefix=self._config.connection.key_prefix,
            authenticated=True,
        )
        logger.info(
            "Redis connection established",
            role=role.value,
            endpoint=endpoint.address,
            db=self._config.connection.db,
            key_prefix=handle.key_prefix,
        )
        return handle
