"""Sentinel-aware Redis client with primary/replica read routing.

Routing
-------
Writes, type introspection and the hash/list/counter helpers always go to
the primary. Plain reads (``get``, ``get_multi``, ``hmget``,
``lrange_all``) follow the ``RoutingPolicy``: with ``master_only`` set they
use the primary, otherwise each call draws a number in ``[1, 100]`` and
goes to the primary when it is ``<= primary_read_percent`` and to a replica
otherwise. There is no session affinity, so a read that follows a write
may hit a replica that has not caught up yet; pass ``force_master=True``
when the read must observe the write.

Failures
--------
Every public operation catches ``SentinelRedisError`` and redis-py's
``RedisError``, logs them with the operation name and arguments, and
returns a failure value (``False``, ``None``, ``0`` or an empty
collection). A connectivity error or a READONLY reply on a cached
connection also evicts that connection so the next call resolves the
topology again. Only ``initialize()`` raises, when no primary can be
resolved at all.

Usage
-----
>>> with SentinelRedis(config) as redis:
...     redis.set("greeting", "hello", expire=60)
...     redis.get("greeting")
'hello'
"""

from __future__ import annotations

import random
import threading
from collections.abc import Callable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from functools import wraps
from typing import TYPE_CHECKING, Any, Self

from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ReadOnlyError, RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from ..core.enums import ConnectionRole, HealthCheckStatus, RedisType
from ..core.exceptions import (
    AuthFailure,
    ClientNotInitializedError,
    ConnectivityFailure,
    DiscoveryUnavailable,
    NoReplicaAvailable,
    PartialTransactionFailure,
    SentinelRedisError,
    UnsupportedOperation,
)
from ..logger import get_logger
from ..resilience.retry import log_before_sleep, retry
from ..sentinel.pool import SentinelPool
from ..sentinel.topology import TopologyResolver
from .connection import ConnectionCache
from .transaction import TransactionExecutor

if TYPE_CHECKING:
    import types

    from structlog.stdlib import BoundLogger

    from ..core.session import SessionFactory
    from ..sentinel.topology import Topology
    from .config import SentinelRedisConfig
    from .connection import ConnectionHandle

logger: BoundLogger = get_logger(__name__)


def _guarded[T](fallback: Callable[[], T]) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Turn internal failures of a public operation into ``fallback()``."""

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(self: SentinelRedis, *args: Any, **kwargs: Any) -> T:
            try:
                return func(self, *args, **kwargs)
            except ClientNotInitializedError:
                raise
            except PartialTransactionFailure:
                # already logged with the raw replies by TransactionExecutor
                return fallback()
            except (SentinelRedisError, RedisError) as e:
                logger.error(
                    "Redis operation failed",
                    operation=func.__name__,
                    args=args,
                    kwargs=kwargs,
                    error_type=type(e).__name__,
                    exc_info=e,
                )
                return fallback()

        return wrapper

    return decorator


def _flatten(mapping: Mapping[str, Any]) -> list[Any]:
    pairs: list[Any] = []
    for field, value in mapping.items():
        pairs.extend((field, value))
    return pairs


# redis-py methods whose positional arguments name no key.
KEYLESS_COMMANDS = frozenset(
    {
        "dbsize",
        "echo",
        "eval",
        "evalsha",
        "execute_command",
        "flushall",
        "flushdb",
        "info",
        "keys",
        "ping",
        "publish",
        "pubsub_channels",
        "pubsub_numpat",
        "pubsub_numsub",
        "randomkey",
        "scan",
        "script_load",
        "time",
    }
)

# redis-py methods whose positional arguments are all key names.
MULTI_KEY_COMMANDS = frozenset(
    {
        "delete",
        "exists",
        "mget",
        "pfcount",
        "rename",
        "renamenx",
        "sdiff",
        "sinter",
        "sunion",
        "touch",
        "unlink",
        "watch",
    }
)


def _prefix_arg(handle: ConnectionHandle, value: Any) -> Any:
    if isinstance(value, str):
        return handle.key(value)
    if isinstance(value, list | tuple):
        return [handle.key(item) if isinstance(item, str) else item for item in value]
    return value


def _prefixed_args(handle: ConnectionHandle, name: str, args: tuple[Any, ...]) -> tuple[Any, ...]:
    """Apply the key prefix to the key arguments of a pass-through call.

    The first positional argument is taken as the key (or list of keys, as
    in ``blpop``) unless the method is keyless; multi-key methods have every
    positional argument prefixed.
    """
    if not args or name in KEYLESS_COMMANDS:
        return args
    if name in MULTI_KEY_COMMANDS:
        return tuple(_prefix_arg(handle, arg) for arg in args)
    return (_prefix_arg(handle, args[0]), *args[1:])


class SentinelRedis:
    """Redis client that discovers primary and replicas through sentinel.

    Parameters
    ----------
    config : SentinelRedisConfig
        Sentinel nodes, connection settings, routing policy and pub/sub node.
    rng : random.Random | None
        Randomness for sentinel/replica shuffling and read routing. Pass a
        seeded instance for reproducible routing.
    session_factory : SessionFactory | None
        Builds redis sessions from keyword arguments; defaults to a
        ``redis.Redis`` over an explicit ``ConnectionPool``.
    """

    def __init__(
        self,
        config: SentinelRedisConfig,
        *,
        rng: random.Random | None = None,
        session_factory: SessionFactory | None = None,
    ) -> None:
        self.config = config
        self._rng = rng or random.Random()
        self._session_factory = session_factory
        self._pool: SentinelPool | None = None
        self._cache: ConnectionCache | None = None
        self._init_lock = threading.Lock()

    def __enter__(self) -> Self:
        self.initialize()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> None:
        if exc_type is not None and exc_val is not None:
            logger.error(
                "SentinelRedis exiting with exception",
                exc_type=exc_type.__name__,
                exc_val=str(exc_val),
            )
        self.close()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self) -> None:
        """Create the sentinel clients and resolve the initial topology.

        Resolution is retried per ``config.bootstrap_retry``. Safe to call
        more than once.

        Raises
        ------
        DiscoveryUnavailable
            If the primary cannot be resolved after all attempts.
        """
        with self._init_lock:
            if self._cache is not None:
                return

            pool = SentinelPool.from_settings(
                self.config.sentinel,
                self.config.password,
                rng=self._rng,
                session_factory=self._session_factory,
            )
            resolver = TopologyResolver(pool, self.config.sentinel.master_name)
            bootstrap = retry(self.config.bootstrap_retry, before_sleep=log_before_sleep)(resolver.refresh)

            try:
                topology = bootstrap()
            except DiscoveryUnavailable as e:
                pool.close()
                logger.error(
                    "Failed to initialize SentinelRedis",
                    master_name=self.config.sentinel.master_name,
                    sentinels=[f"{node.host}:{node.port}" for node in self.config.sentinel.nodes],
                    exc_info=e,
                )
                raise

            self._pool = pool
            self._cache = ConnectionCache(
                self.config,
                resolver,
                rng=self._rng,
                session_factory=self._session_factory,
            )
            logger.info(
                "SentinelRedis initialized",
                master_name=self.config.sentinel.master_name,
                primary=topology.primary.address if topology.primary else None,
                replicas=[replica.address for replica in topology.replicas],
                sentinel=topology.source,
            )

    def close(self) -> None:
        """Close every data-node and sentinel session, best-effort."""
        with self._init_lock:
            cache, pool = self._cache, self._pool
            self._cache = None
            self._pool = None

        if cache is not None:
            cache.close()
        if pool is not None:
            pool.close()
        logger.info("SentinelRedis closed")

    def health_check(self) -> HealthCheckStatus:
        """Check that the primary and, unless reads are primary-only, a replica answer PING.

        Returns DEGRADED when the primary answers but no replica does:
        writes still work while replica-routed reads fail or fall back.
        """
        if self._cache is None:
            return HealthCheckStatus.INITIALIZING

        try:
            with self._connection(ConnectionRole.PRIMARY) as handle:
                handle.session.ping()
        except (SentinelRedisError, RedisError) as e:
            logger.error("Redis health check failed", exc_info=e)
            return HealthCheckStatus.UNHEALTHY

        if self.config.routing.master_only:
            return HealthCheckStatus.HEALTHY

        try:
            with self._connection(ConnectionRole.REPLICA, fallback=False) as handle:
                handle.session.ping()
        except (SentinelRedisError, RedisError) as e:
            logger.warning(
                "Redis health check degraded: no replica answers",
                error=str(e),
                error_type=type(e).__name__,
            )
            return HealthCheckStatus.DEGRADED
        return HealthCheckStatus.HEALTHY

    @property
    def from_sentinel(self) -> str | None:
        """Host of the sentinel that last supplied topology, if any."""
        return self._pool.source if self._pool is not None else None

    @property
    def topology(self) -> Topology:
        return self._require_cache().resolver.topology

    @property
    def connections(self) -> ConnectionCache:
        return self._require_cache()

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------

    def _require_cache(self) -> ConnectionCache:
        if self._cache is None:
            raise ClientNotInitializedError("SentinelRedis not initialized")
        return self._cache

    def read_role(self, force_master: bool = False) -> ConnectionRole:
        """Pick the role for a policy-routed read; drawn fresh on every call."""
        routing = self.config.routing
        if force_master or routing.master_only:
            return ConnectionRole.PRIMARY
        if self._rng.randint(1, 100) <= routing.primary_read_percent:
            return ConnectionRole.PRIMARY
        return ConnectionRole.REPLICA

    def _acquire(self, role: ConnectionRole, fallback: bool = True) -> ConnectionHandle:
        cache = self._require_cache()
        try:
            return cache.get_connection(role)
        except (NoReplicaAvailable, ConnectivityFailure, AuthFailure) as e:
            if role is not ConnectionRole.REPLICA or not (fallback and self.config.routing.replica_fallback_to_primary):
                raise
            logger.warning("No replica available, reading from primary", error=str(e))
            return cache.get_connection(ConnectionRole.PRIMARY)

    @contextmanager
    def _connection(self, role: ConnectionRole, fallback: bool = True) -> Iterator[ConnectionHandle]:
        """Yield a handle for ``role``; evict it if the command loses the connection.

        A READONLY reply also evicts: the node was demoted by a failover and
        the next call must resolve the new primary. With ``fallback`` unset a
        replica request never falls back to the primary.
        """
        handle = self._acquire(role, fallback)
        try:
            yield handle
        except (RedisConnectionError, RedisTimeoutError, ReadOnlyError):
            handle.mark_disconnected()
            self._require_cache().invalidate(handle.role, handle)
            raise

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @_guarded(lambda: None)
    def get(self, key: str | Sequence[str], force_master: bool = False) -> Any:
        """Get a value, dispatching on its stored type.

        A sequence of keys is fetched with MGET instead. Strings come back
        as ``str``, hashes as ``dict``, lists as ``list``, sets as ``set``
        and sorted sets as a ``list`` ordered by score. Missing keys return
        ``None``.
        """
        if not isinstance(key, str):
            return self.get_multi(list(key), force_master)

        key_type = self.get_type_by_key(key)
        if key_type is None:
            return None

        if key_type == RedisType.HASH:
            return self.hmget(key, force_master)
        if key_type == RedisType.LIST:
            return self.lrange_all(key, force_master)

        with self._connection(self.read_role(force_master)) as handle:
            if key_type == RedisType.SET:
                return handle.session.smembers(handle.key(key))
            if key_type == RedisType.ZSET:
                return handle.session.zrange(handle.key(key), 0, -1)
            return handle.session.get(handle.key(key))

    @_guarded(list)
    def get_multi(self, keys: Sequence[str], force_master: bool = False) -> list[Any]:
        if not keys:
            return []
        with self._connection(self.read_role(force_master)) as handle:
            return handle.session.mget(handle.keys(keys))

    @_guarded(dict)
    def hmget(self, key: str, force_master: bool = False) -> dict[str, Any]:
        """Return every field of a hash (empty when missing)."""
        with self._connection(self.read_role(force_master)) as handle:
            return handle.session.hgetall(handle.key(key))

    @_guarded(list)
    def lrange_all(self, key: str, force_master: bool = False) -> list[Any]:
        """Return every element of a list (empty when missing)."""
        with self._connection(self.read_role(force_master)) as handle:
            return handle.session.lrange(handle.key(key), 0, -1)

    @_guarded(lambda: None)
    def get_type_by_key(self, key: str) -> str | None:
        """Return the stored type of ``key`` from the primary, or None if it does not exist."""
        with self._connection(ConnectionRole.PRIMARY) as handle:
            key_type = handle.session.type(handle.key(key))

        if not key_type or key_type == RedisType.NONE:
            return None
        try:
            return RedisType(str(key_type).lower()).value
        except ValueError:
            return str(key_type)

    @_guarded(lambda: False)
    def is_hash(self, key: str) -> bool:
        return self.get_type_by_key(key) == RedisType.HASH

    @_guarded(lambda: False)
    def exists(self, key: str) -> bool:
        with self._connection(ConnectionRole.PRIMARY) as handle:
            return bool(handle.session.exists(handle.key(key)))

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @_guarded(lambda: False)
    def set(self, key: str, value: Any, expire: int = 0) -> bool:
        """Store ``value`` under ``key``, optionally expiring after ``expire`` seconds.

        SET and EXPIRE run in one MULTI/EXEC batch when an expiry is given.

        Note
        ----
        A mapping ``value`` is stored as a hash through ``hmset`` rather than
        rejected. Callers that expect a string value should not pass a dict.
        """
        if isinstance(value, Mapping):
            logger.debug("Mapping value stored as hash", key=key)
            return self.hmset(key, value, expire)

        expire = int(expire or 0)
        with self._connection(ConnectionRole.PRIMARY) as handle:
            name = handle.key(key)
            if expire > 0:
                TransactionExecutor(handle).execute(
                    lambda pipe: pipe.set(name, value).expire(name, expire),
                    operation="set",
                    context={"key": key, "value": value, "expire": expire},
                )
                return True

            result = handle.session.set(name, value)

        if not result:
            logger.error("Redis SET failed", key=key, value=value, result=result)
            return False
        return True

    @_guarded(lambda: False)
    def add(self, key: str, value: Any, expire: int = 0) -> bool:
        """Store ``value`` only if ``key`` does not exist yet (SET NX)."""
        expire = int(expire or 0)
        with self._connection(ConnectionRole.PRIMARY) as handle:
            return bool(handle.session.set(handle.key(key), value, nx=True, ex=expire if expire > 0 else None))

    @_guarded(lambda: False)
    def hmset(self, key: str, mapping: Mapping[str, Any], expire: int = 0) -> bool:
        """Store a hash, optionally setting its expiry in the same batch."""
        if not key or not mapping:
            logger.warning("Refusing hmset with empty key or mapping", key=key, mapping=mapping)
            return False

        expire = int(expire or 0)
        pairs = _flatten(mapping)
        with self._connection(ConnectionRole.PRIMARY) as handle:
            name = handle.key(key)
            if expire > 0:
                TransactionExecutor(handle).execute(
                    lambda pipe: pipe.execute_command("HMSET", name, *pairs).expire(name, expire),
                    operation="hmset",
                    context={"key": key, "value": dict(mapping), "expire": expire},
                )
                return True

            result = handle.session.execute_command("HMSET", name, *pairs)

        if not result:
            logger.error("Redis HMSET failed", key=key, value=dict(mapping), result=result)
            return False
        return True

    @_guarded(lambda: False)
    def lpush_ex(self, key: str, value: Any, expire: int, list_max: int = 0) -> bool:
        """Push ``value`` onto the head of a list, set its expiry and trim it, atomically.

        The list is trimmed to its first ``list_max`` elements when
        ``list_max`` is positive. A non-positive ``expire`` leaves the TTL alone.
        """
        expire = int(expire or 0)
        list_max = int(list_max or 0)

        with self._connection(ConnectionRole.PRIMARY) as handle:
            name = handle.key(key)

            def queue(pipe: Any) -> None:
                pipe.lpush(name, value)
                if expire > 0:
                    pipe.expire(name, expire)
                if list_max > 0:
                    pipe.ltrim(name, 0, list_max - 1)

            TransactionExecutor(handle).execute(
                queue,
                operation="lpush_ex",
                context={"key": key, "value": value, "expire": expire, "list_max": list_max},
            )
        return True

    @_guarded(lambda: False)
    def increment(self, key: str, offset: int = 1, initial: int = 0, expire: int = 0) -> bool:
        """Increment a counter by ``offset``.

        When ``initial`` is non-zero the counter is first reset to it; when
        ``expire`` is positive the TTL is refreshed afterwards.
        """
        offset, initial, expire = int(offset), int(initial or 0), int(expire or 0)
        with self._connection(ConnectionRole.PRIMARY) as handle:
            name = handle.key(key)
            if initial:
                handle.session.set(name, initial)
            value = handle.session.incrby(name, offset)
            expired = handle.session.expire(name, expire) if expire > 0 else True

        return value is not None and bool(expired)

    @_guarded(lambda: 0)
    def delete(self, *keys: str) -> int:
        """Delete keys; returns how many existed."""
        if not keys:
            return 0
        with self._connection(ConnectionRole.PRIMARY) as handle:
            return int(handle.session.delete(*handle.keys(keys)))

    # ------------------------------------------------------------------
    # Pub/sub
    # ------------------------------------------------------------------

    # Channels are sent as raw commands so the key prefix is never applied.

    @_guarded(lambda: 0)
    def publish(self, channel: str, message: Any) -> int:
        """Publish on the pub/sub node; returns the number of receivers."""
        with self._connection(ConnectionRole.PUBSUB) as handle:
            return int(handle.session.execute_command("PUBLISH", channel, message))

    @_guarded(lambda: None)
    def pubsub(self, subcommand: str, pattern: str = "") -> Any:
        """Run ``PUBSUB <subcommand> [pattern]`` on the pub/sub node."""
        args = [pattern] if pattern else []
        with self._connection(ConnectionRole.PUBSUB) as handle:
            return handle.session.execute_command("PUBSUB", subcommand, *args)

    @_guarded(lambda: False)
    def check_pubsub(self) -> bool:
        """Connect to the pub/sub node (or reuse the connection)."""
        with self._connection(ConnectionRole.PUBSUB):
            return True

    # ------------------------------------------------------------------
    # Pass-through
    # ------------------------------------------------------------------

    @_guarded(lambda: None)
    def invoke(self, name: str, *args: Any, **kwargs: Any) -> Any:
        """Call a redis-py command method by name on the primary.

        The key prefix is applied to positional key arguments the same way
        the typed operations apply it, so ``invoke("ttl", "session")`` reads
        the key written by ``set("session", ...)``. Keyword arguments and
        the keys of ``eval``/``evalsha`` scripts are passed through unchanged.
        """
        with self._connection(ConnectionRole.PRIMARY) as handle:
            if name.startswith("_"):
                raise UnsupportedOperation(f"unsupported method {name!r}")
            method = getattr(handle.session, name, None)
            if not callable(method):
                raise UnsupportedOperation(f"unsupported method {name!r}")
            return method(*_prefixed_args(handle, name, args), **kwargs)
