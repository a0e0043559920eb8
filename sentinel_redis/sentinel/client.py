from __future__ import annotations

from typing import TYPE_CHECKING, Any

from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from ..core.session import SessionFactory, close_session, create_session
from ..logger import get_logger
from .parser import parse_records, parse_reply

if TYPE_CHECKING:
    from redis import Redis
    from structlog.stdlib import BoundLogger

    from ..core.types import ReplyRecord
    from .config import SentinelNodeSettings

logger: BoundLogger = get_logger(__name__)


class SentinelClient:
    """Client for a single sentinel node.

    ``connect()`` never raises: a refused, timed out or rejected connection
    returns ``False`` so the caller can move on to the next node. Query
    methods connect on demand and return an empty result on any failure.

    Parameters
    ----------
    node : SentinelNodeSettings
        Host and port of the sentinel.
    timeout : float
        Connect and read timeout in seconds.
    password : str | None
        Auth token, if the sentinel requires one.
    session_factory : SessionFactory | None
        Builds the underlying redis session from keyword arguments.

    Examples
    --------
    >>> client = SentinelClient(SentinelNodeSettings(host="10.0.0.100"))
    >>> if client.connect():
    ...     client.get_master_addr_by_name("redismaster")
    {'ip': '10.0.0.5', 'port': '6379'}
    """

    def __init__(
        self,
        node: SentinelNodeSettings,
        timeout: float = 1.5,
        password: str | None = None,
        session_factory: SessionFactory | None = None,
    ) -> None:
        self._node = node
        self._timeout = timeout
        self._password = password
        self._session_factory = session_factory or create_session
        self._session: Redis | None = None
        self._connected = False
        self._authenticated = False

    def __repr__(self) -> str:
        return f"SentinelClient(host={self._node.host!r}, port={self._node.port})"

    @property
    def host(self) -> str:
        return self._node.host

    @property
    def port(self) -> int:
        return self._node.port

    @property
    def is_connected(self) -> bool:
        return self._session is not None and self._connected and self._authenticated

    def connect(self) -> bool:
        """Ensure a live, authenticated session exists.

        Returns
        -------
        bool
            True if an existing session was reused or a new one was opened.
        """
        if self.is_connected:
            return True

        self.close()

        session = self._session_factory(
            host=self._node.host,
            port=self._node.port,
            password=self._password,
            socket_connect_timeout=self._timeout,
            socket_timeout=self._timeout,
            decode_responses=True,
        )
        try:
            session.ping()
        except RedisError as e:
            logger.warning(
                "Sentinel connect failed",
                host=self._node.host,
                port=self._node.port,
                error=str(e),
                error_type=type(e).__name__,
            )
            close_session(session)
            return False

        self._session = session
        self._connected = True
        self._authenticated = True
        logger.debug("Sentinel connected", host=self._node.host, port=self._node.port)
        return True

    def close(self) -> None:
        if self._session is not None:
            close_session(self._session)
        self._session = None
        self._connected = False
        self._authenticated = False

    def ping(self) -> bool:
        if not self.connect() or self._session is None:
            return False
        try:
            return bool(self._session.ping())
        except RedisError as e:
            self._handle_error("ping", e)
            return False

    def _handle_error(self, command: str, error: RedisError) -> None:
        if isinstance(error, (RedisConnectionError, RedisTimeoutError)):
            self._connected = False
        logger.warning(
            "Sentinel command failed",
            host=self._node.host,
            port=self._node.port,
            command=command,
            error=str(error),
            error_type=type(error).__name__,
        )

    def _sentinel(self, *args: str) -> Any:
        """Run ``SENTINEL <args>`` and return the raw reply, or None on failure.

        The command name is sent as a separate argument so redis-py applies no
        reply callback and the nested arrays arrive untouched.
        """
        if not self.connect() or self._session is None:
            return None
        try:
            return self._session.execute_command("SENTINEL", *args)
        except RedisError as e:
            self._handle_error(" ".join(args), e)
            return None

    def masters(self) -> list[ReplyRecord]:
        reply = self._sentinel("masters")
        return parse_records(reply) if reply else []

    def master(self, master_name: str) -> ReplyRecord:
        reply = self._sentinel("master", master_name)
        return parse_reply(reply) if reply else {}

    def slaves(self, master_name: str) -> list[ReplyRecord]:
        reply = self._sentinel("slaves", master_name)
        return parse_records(reply) if reply else []

    def sentinels(self, master_name: str) -> list[ReplyRecord]:
        reply = self._sentinel("sentinels", master_name)
        return parse_records(reply) if reply else []

    def get_master_addr_by_name(self, master_name: str) -> dict[str, str]:
        """Return ``{"ip": ..., "port": ...}`` for the current master, or ``{}``."""
        reply = self._sentinel("get-master-addr-by-name", master_name)
        if not reply or len(reply) < 2:
            return {}
        return {"ip": reply[0], "port": reply[1]}

    def reset(self, pattern: str) -> int:
        """Reset masters matching ``pattern``; returns how many were reset."""
        reply = self._sentinel("reset", pattern)
        return int(reply) if reply is not None else 0

    def failover(self, master_name: str) -> bool:
        return self._sentinel("failover", master_name) in ("OK", True)

    def check_quorum(self, master_name: str) -> str:
        """Return the ``CKQUORUM`` status line, or ``""`` when quorum is not reachable."""
        reply = self._sentinel("ckquorum", master_name)
        return str(reply) if reply is not None else ""

    def flush_config(self) -> bool:
        return self._sentinel("flushconfig") in ("OK", True)
