from __future__ import annotations

import random
from collections.abc import Collection, Sequence
from typing import TYPE_CHECKING, Self

from ..logger import get_logger
from .client import SentinelClient

if TYPE_CHECKING:
    from structlog.stdlib import BoundLogger

    from ..core.session import SessionFactory
    from .config import SentinelSettings

logger: BoundLogger = get_logger(__name__)


class SentinelPool:
    """Set of sentinel clients with sticky selection of a reachable one.

    The last client that connected is reused while it stays connectable.
    Otherwise every candidate is tried in a fresh random order, which
    spreads discovery load instead of always hitting the first node.

    Parameters
    ----------
    clients : Sequence[SentinelClient]
        Candidate sentinel clients.
    rng : random.Random | None
        Source of randomness for the shuffle. Pass a seeded instance for
        deterministic ordering in tests.
    """

    __slots__ = ("_clients", "_last_successful", "_rng", "_source")

    def __init__(self, clients: Sequence[SentinelClient], rng: random.Random | None = None) -> None:
        self._clients = tuple(clients)
        self._rng = rng or random.Random()
        self._last_successful: SentinelClient | None = None
        self._source: str | None = None

    @classmethod
    def from_settings(
        cls,
        settings: SentinelSettings,
        password: str | None = None,
        *,
        rng: random.Random | None = None,
        session_factory: SessionFactory | None = None,
    ) -> Self:
        """Build one client per configured sentinel node.

        ``settings.password`` takes precedence over ``password``, which is
        normally the data store password.
        """
        token = settings.password.get_secret_value() if settings.password else password
        clients = [
            SentinelClient(node, timeout=settings.timeout, password=token, session_factory=session_factory)
            for node in settings.nodes
        ]
        return cls(clients, rng=rng)

    @property
    def clients(self) -> tuple[SentinelClient, ...]:
        return self._clients

    @property
    def source(self) -> str | None:
        """Host of the sentinel that most recently became the active one."""
        return self._source

    def get_client(self, exclude: Collection[SentinelClient] = ()) -> SentinelClient | None:
        """Return a connected sentinel client, or None if none is reachable.

        Clients in ``exclude`` are skipped; pass the ones that already
        failed a query to move on to the remaining nodes.
        """
        last = self._last_successful
        if last is not None and last not in exclude and last.connect():
            return last

        candidates = [client for client in self._clients if client not in exclude]
        self._rng.shuffle(candidates)

        for client in candidates:
            if client.connect():
                self._last_successful = client
                self._source = client.host
                logger.info("Using sentinel", host=client.host, port=client.port)
                return client

        self._last_successful = None
        logger.error(
            "No sentinel reachable",
            candidates=[f"{c.host}:{c.port}" for c in candidates],
            excluded=[f"{c.host}:{c.port}" for c in exclude],
        )
        return None

    def close(self) -> None:
        for client in self._clients:
            client.close()
        self._last_successful = None
