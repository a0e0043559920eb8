"""Shared fixtures for integration tests.

Provides:
- redis_container: Session-scoped Redis container acting as primary, replica
  and pub/sub node
- sentinel_redis_client: Function-scoped SentinelRedis whose sentinel tier is
  simulated and whose data sessions talk to the container
"""

from __future__ import annotations

import random
from typing import TYPE_CHECKING, Any, Protocol
from unittest.mock import MagicMock

import pytest

from sentinel_redis.core.session import create_session

if TYPE_CHECKING:
    from collections.abc import Iterator

    from redis import Redis

    from sentinel_redis import SentinelRedis

SENTINEL_HOST = "sentinel.integration.test"
MASTER_NAME = "mymaster"


class RedisContainerProtocol(Protocol):
    """Protocol for Redis container interface."""

    def get_exposed_port(self, port: int) -> int: ...
    def get_container_host_ip(self) -> str: ...
    def start(self) -> RedisContainerProtocol: ...
    def stop(self) -> None: ...


def _check_docker_available() -> bool:
    """Check if Docker is available using docker client.

    Tries multiple socket locations for compatibility with:
    - Standard Linux Docker (/var/run/docker.sock)
    - macOS Docker Desktop (~/.docker/run/docker.sock)
    - Custom DOCKER_HOST environment variable

    Returns:
        True if Docker daemon is accessible, False otherwise.
    """
    try:
        from pathlib import Path

        from docker import DockerClient  # type: ignore[import-untyped]
        from docker.errors import DockerException  # type: ignore[import-untyped]

        socket_locations = [
            None,
            "unix:///var/run/docker.sock",
            f"unix://{Path.home()}/.docker/run/docker.sock",
        ]

        for socket_url in socket_locations:
            try:
                if socket_url is None:
                    from docker import from_env  # type: ignore[import-untyped]

                    client = from_env()
                else:
                    client = DockerClient(base_url=socket_url)

                client.ping()
                return True
            except DockerException:
                continue

        return False
    except ImportError:
        return False


def _configure_docker_environment() -> None:
    """Configure Docker environment for testcontainers.

    Sets DOCKER_HOST if not already set and macOS Docker Desktop socket exists.
    """
    import os
    from pathlib import Path

    if os.environ.get("DOCKER_HOST"):
        return

    macos_socket = Path.home() / ".docker" / "run" / "docker.sock"
    if macos_socket.exists():
        os.environ["DOCKER_HOST"] = f"unix://{macos_socket}"


def _create_redis_container() -> RedisContainerProtocol:
    """Create and configure Redis test container.

    Raises:
        ImportError: If testcontainers is not installed.
    """
    from typing import cast

    from testcontainers.redis import RedisContainer  # type: ignore[import-untyped]

    container = RedisContainer("redis:7-alpine")
    return cast(RedisContainerProtocol, container)


@pytest.fixture(scope="session")
def redis_container() -> Iterator[RedisContainerProtocol]:
    """Provide session-scoped Redis container.

    Skips:
        If Docker daemon is not available.

    Yields:
        Running Redis container instance.
    """
    _configure_docker_environment()

    if not _check_docker_available():
        pytest.skip(
            "Docker daemon not available. "
            "Install Docker Desktop (macOS) or Docker Engine (Linux) to run integration tests."
        )

    try:
        container = _create_redis_container()
    except ImportError as e:
        pytest.skip(f"testcontainers not installed: {e}")

    container.start()

    try:
        yield container
    finally:
        container.stop()


class SimulatedSentinelFactory:
    """Session factory answering SENTINEL queries locally and opening real data sessions.

    Sessions for ``SENTINEL_HOST`` are mocks that report the container as
    both primary and only replica; every other session is a real redis-py
    client.
    """

    def __init__(self, host: str, port: int) -> None:
        self.host = host
        self.port = port
        self.data_sessions: list[Redis] = []

    def __call__(self, **kwargs: Any) -> Any:
        if kwargs["host"] == SENTINEL_HOST:
            return self._sentinel_session()
        session = create_session(**kwargs)
        self.data_sessions.append(session)
        return session

    def _sentinel_session(self) -> MagicMock:
        replies = {
            ("get-master-addr-by-name", MASTER_NAME): [self.host, str(self.port)],
            ("slaves", MASTER_NAME): [["ip", self.host, "port", str(self.port), "flags", "slave"]],
        }
        session = MagicMock(name="sentinel-session")
        session.ping.return_value = True
        session.execute_command.side_effect = lambda *args, **_: replies.get(tuple(args[1:]))
        return session


@pytest.fixture
def sentinel_redis_client(redis_container: RedisContainerProtocol) -> Iterator[SentinelRedis]:
    """Provide an initialized SentinelRedis backed by the container.

    The database is flushed before each test.

    Yields:
        Initialized SentinelRedis instance.
    """
    from sentinel_redis import (
        PubSubSettings,
        RedisConnectionSettings,
        RetryConfig,
        SentinelNodeSettings,
        SentinelRedis,
        SentinelRedisConfig,
        SentinelSettings,
    )

    host = redis_container.get_container_host_ip()
    port = int(redis_container.get_exposed_port(6379))

    config = SentinelRedisConfig(
        sentinel=SentinelSettings(nodes=(SentinelNodeSettings(host=SENTINEL_HOST),), master_name=MASTER_NAME),
        connection=RedisConnectionSettings(key_prefix="it:", connect_timeout=10.0, read_timeout=30.0),
        pubsub=PubSubSettings(ip=host, port=port),
        bootstrap_retry=RetryConfig(max_attempts=1),
    )

    client = SentinelRedis(config, rng=random.Random(0), session_factory=SimulatedSentinelFactory(host, port))
    client.initialize()
    client.invoke("flushdb")

    try:
        yield client
    finally:
        client.close()
