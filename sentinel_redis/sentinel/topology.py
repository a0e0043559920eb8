"""Resolution of the current primary and healthy replicas via sentinel."""

from __future__ import annotations

from typing import TYPE_CHECKING, Self

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from ..core.exceptions import DiscoveryUnavailable, NoReplicaAvailable
from ..logger import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable

    from structlog.stdlib import BoundLogger

    from ..core.types import ReplyRecord
    from .client import SentinelClient
    from .pool import SentinelPool

logger: BoundLogger = get_logger(__name__)

# Matches both subjective (s_down) and objective (o_down) down states.
DOWN_MARKER = "_down"


class Endpoint(BaseModel):
    """Address of a data node as reported by sentinel."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    ip: str = Field(min_length=1)
    port: int = Field(ge=1, le=65535)
    flags: frozenset[str] = Field(default_factory=frozenset)

    @classmethod
    def from_record(cls, record: ReplyRecord) -> Self:
        """Build an endpoint from a parsed ``SENTINEL slaves`` record."""
        raw_flags = record.get("flags") or ""
        return cls(
            ip=record["ip"],
            port=record["port"],
            flags=frozenset(flag for flag in str(raw_flags).split(",") if flag),
        )

    @property
    def address(self) -> str:
        return f"{self.ip}:{self.port}"

    @property
    def is_down(self) -> bool:
        return any(DOWN_MARKER in flag for flag in self.flags)


class Topology(BaseModel):
    """Primary and healthy replicas at a point in time."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    primary: Endpoint | None = None
    replicas: tuple[Endpoint, ...] = Field(default_factory=tuple)
    source: str | None = Field(default=None, description="Sentinel host that supplied the data")

    @model_validator(mode="after")
    def _reject_down_replicas(self) -> Self:
        down = [replica.address for replica in self.replicas if replica.is_down]
        if down:
            raise ValueError(f"replicas flagged down cannot be part of a topology: {down}")
        return self


class TopologyResolver:
    """Query sentinel for the primary address and the healthy replica set.

    The resolver keeps the last resolved ``Topology``. Each successful query
    replaces the corresponding part of it; nothing is polled in the
    background.

    Parameters
    ----------
    pool : SentinelPool
        Pool used to obtain a reachable sentinel.
    master_name : str
        Name under which sentinel monitors the primary.
    """

    def __init__(self, pool: SentinelPool, master_name: str) -> None:
        self._pool = pool
        self._master_name = master_name
        self._topology = Topology()

    @property
    def topology(self) -> Topology:
        return self._topology

    @property
    def master_name(self) -> str:
        return self._master_name

    def _query[T](self, command: str, run: Callable[[SentinelClient], T]) -> tuple[SentinelClient, T] | None:
        """Run ``run`` against a reachable sentinel and return it with the reply.

        A sentinel that drops its connection during the query is skipped and
        the query is repeated on the remaining ones. Returns None once no
        sentinel is left.
        """
        tried: list[SentinelClient] = []
        while True:
            client = self._pool.get_client(exclude=tried)
            if client is None:
                return None

            reply = run(client)
            if client.is_connected:
                return client, reply

            logger.warning("Sentinel lost during query, trying another", command=command, sentinel=client.host)
            tried.append(client)

    def resolve_primary(self, master_name: str | None = None) -> Endpoint | None:
        """Return the current primary endpoint, or None if it cannot be resolved."""
        name = master_name or self._master_name
        answer = self._query("get-master-addr-by-name", lambda client: client.get_master_addr_by_name(name))
        if answer is None:
            logger.error("Cannot resolve primary: no sentinel reachable", master_name=name)
            return None

        client, address = answer
        if not address:
            logger.error("Sentinel returned no primary", master_name=name, sentinel=client.host)
            return None

        try:
            primary = Endpoint(ip=address["ip"], port=address["port"])
        except ValidationError as e:
            logger.error("Sentinel returned a malformed primary address", address=address, error=str(e))
            return None

        self._topology = Topology(primary=primary, replicas=self._topology.replicas, source=client.host)
        logger.info("Primary resolved", master_name=name, primary=primary.address, sentinel=client.host)
        return primary

    def resolve_replicas(self, master_name: str | None = None) -> tuple[Endpoint, ...]:
        """Return the replicas not flagged down.

        Raises
        ------
        DiscoveryUnavailable
            If no sentinel is reachable, or each one dropped its
            connection while answering.
        NoReplicaAvailable
            If sentinel reports no replica that is up. The previously
            resolved replica set is kept in that case.
        """
        name = master_name or self._master_name
        answer = self._query("slaves", lambda client: client.slaves(name))
        if answer is None:
            raise DiscoveryUnavailable(f"no sentinel reachable to resolve replicas of {name!r}")

        client, records = answer
        logger.debug("Replicas returned from sentinel", master_name=name, records=records)

        replicas: list[Endpoint] = []
        for record in records:
            try:
                endpoint = Endpoint.from_record(record)
            except (KeyError, ValidationError) as e:
                logger.warning("Skipping malformed replica record", record=record, error=str(e))
                continue
            if endpoint.is_down:
                logger.info("Skipping replica flagged down", replica=endpoint.address, flags=sorted(endpoint.flags))
                continue
            replicas.append(endpoint)

        if not replicas:
            raise NoReplicaAvailable(f"sentinel {client.host} reported no healthy replica for {name!r}")

        self._topology = Topology(primary=self._topology.primary, replicas=tuple(replicas), source=client.host)
        logger.info(
            "Replicas resolved",
            master_name=name,
            replicas=[replica.address for replica in replicas],
            sentinel=client.host,
        )
        return self._topology.replicas

    def refresh(self) -> Topology:
        """Resolve both primary and replicas.

        A missing replica set is logged but does not fail the refresh; a
        missing primary does.

        Raises
        ------
        DiscoveryUnavailable
            If the primary cannot be resolved.
        """
        if self.resolve_primary() is None:
            raise DiscoveryUnavailable(f"could not resolve primary for {self._master_name!r}")

        try:
            self.resolve_replicas()
        except (DiscoveryUnavailable, NoReplicaAvailable) as e:
            logger.warning("Topology refreshed without replicas", master_name=self._master_name, error=str(e))

        return self._topology
