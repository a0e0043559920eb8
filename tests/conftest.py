"""Shared fixtures for unit tests.

Provides:
- FakeSessionFactory: records every redis session the code under test opens
  and answers SENTINEL commands from canned replies
- config: a three-sentinel configuration with password, prefix and pub/sub node
- client: an initialized SentinelRedis wired to the fake factory
"""

from __future__ import annotations

import random
from collections import defaultdict
from typing import TYPE_CHECKING, Any
from unittest.mock import DEFAULT, MagicMock

import pytest
from pydantic import SecretStr
from redis.exceptions import AuthenticationError
from redis.exceptions import ConnectionError as RedisConnectionError

from sentinel_redis import (
    PubSubSettings,
    RedisConnectionSettings,
    RetryConfig,
    SentinelNodeSettings,
    SentinelRedis,
    SentinelRedisConfig,
    SentinelSettings,
)

if TYPE_CHECKING:
    from collections.abc import Iterator

MASTER_NAME = "mymaster"
PRIMARY = "10.0.0.1:6379"
REPLICA_UP = "10.0.0.2:6379"
REPLICA_DOWN = "10.0.0.3:6379"
PUBSUB = "10.0.0.9:6379"
SENTINELS = ("10.0.1.1:26379", "10.0.1.2:26379", "10.0.1.3:26379")


def default_sentinel_replies() -> dict[tuple[str, ...], Any]:
    return {
        ("get-master-addr-by-name", MASTER_NAME): ["10.0.0.1", "6379"],
        ("slaves", MASTER_NAME): [
            ["ip", "10.0.0.2", "port", "6379", "flags", "slave"],
            ["ip", "10.0.0.3", "port", "6379", "flags", "slave,s_down,disconnected"],
        ],
    }


class FakeSessionFactory:
    """Stand-in for ``create_session`` returning MagicMock sessions.

    Attributes
    ----------
    unreachable : set[str]
        ``host:port`` addresses whose PING raises a connection error.
    auth_rejected : set[str]
        ``host:port`` addresses whose PING raises an authentication error.
    sentinel_replies : dict[tuple[str, ...], Any]
        Reply for ``SENTINEL <args>`` keyed by ``args``.
    """

    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []
        self.sessions: dict[str, list[MagicMock]] = defaultdict(list)
        self.unreachable: set[str] = set()
        self.auth_rejected: set[str] = set()
        self.sentinel_replies: dict[tuple[str, ...], Any] = default_sentinel_replies()
        self.sentinel_commands: list[tuple[str, tuple[str, ...]]] = []

    def __call__(self, **kwargs: Any) -> MagicMock:
        self.calls.append(kwargs)
        address = f"{kwargs['host']}:{kwargs['port']}"
        session = MagicMock(name=f"session[{address}]")

        if address in self.unreachable:
            session.ping.side_effect = RedisConnectionError(f"Error connecting to {address}")
        elif address in self.auth_rejected:
            session.ping.side_effect = AuthenticationError("WRONGPASS invalid username-password pair")
        else:
            session.ping.return_value = True

        def execute_command(*args: Any, **options: Any) -> Any:
            if args and args[0] == "SENTINEL":
                self.sentinel_commands.append((address, tuple(args[1:])))
                return self.sentinel_replies.get(tuple(args[1:]))
            return DEFAULT

        session.execute_command.side_effect = execute_command
        self.sessions[address].append(session)
        return session

    def latest(self, address: str) -> MagicMock:
        return self.sessions[address][-1]

    def opened(self, address: str) -> int:
        return len(self.sessions[address])

    def sentinel_queries(self, command: str) -> int:
        return sum(1 for _, args in self.sentinel_commands if args[0] == command)


def make_pipeline(session: MagicMock, results: list[Any]) -> MagicMock:
    """Attach a chainable MULTI/EXEC pipeline mock to ``session``."""
    pipe = MagicMock(name="pipeline")
    for command in ("set", "expire", "lpush", "ltrim", "execute_command"):
        getattr(pipe, command).return_value = pipe
    pipe.execute.return_value = results
    session.pipeline.return_value.__enter__.return_value = pipe
    session.pipeline.return_value.__exit__.return_value = False
    return pipe


@pytest.fixture
def factory() -> FakeSessionFactory:
    return FakeSessionFactory()


@pytest.fixture
def config() -> SentinelRedisConfig:
    return SentinelRedisConfig(
        sentinel=SentinelSettings(
            nodes=tuple(
                SentinelNodeSettings(host=address.split(":")[0], port=int(address.split(":")[1]))
                for address in SENTINELS
            ),
            master_name=MASTER_NAME,
        ),
        connection=RedisConnectionSettings(
            password=SecretStr("secret"),
            db=2,
            key_prefix="test:",
            connect_timeout=1.0,
            read_timeout=2.0,
        ),
        pubsub=PubSubSettings(ip="10.0.0.9", port=6379),
        bootstrap_retry=RetryConfig(max_attempts=1),
    )


@pytest.fixture
def client(config: SentinelRedisConfig, factory: FakeSessionFactory) -> Iterator[SentinelRedis]:
    redis = SentinelRedis(config, rng=random.Random(1234), session_factory=factory)
    redis.initialize()
    try:
        yield redis
    finally:
        redis.close()
