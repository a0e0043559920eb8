"""Construction and teardown of redis-py sessions."""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from redis import ConnectionPool, Redis
from redis.exceptions import RedisError

from ..logger import get_logger

if TYPE_CHECKING:
    from structlog.stdlib import BoundLogger

logger: BoundLogger = get_logger(__name__)

type SessionFactory = Callable[..., Redis]


def create_session(**kwargs: Any) -> Redis:
    """Create a Redis session backed by its own explicit connection pool.

    No network I/O happens here; the first command opens the connection
    and performs AUTH/SELECT as part of the handshake.
    """
    pool = ConnectionPool(**kwargs)
    return Redis(connection_pool=pool)


def close_session(session: Redis) -> None:
    """Close a session and disconnect its pool, discarding any error."""
    try:
        session.close()
        session.connection_pool.disconnect()
    except (RedisError, OSError) as e:
        logger.debug("Ignoring error while closing redis session", error=str(e))
