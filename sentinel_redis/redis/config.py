from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..resilience.config import RetryConfig
from ..sentinel.config import SentinelSettings

if TYPE_CHECKING:
    from ..sentinel.topology import Endpoint


class RedisConnectionSettings(BaseModel):
    """Settings applied to every data-node session (primary, replica, pub/sub)."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    password: SecretStr | None = Field(default=None, description="Redis password for authentication")
    db: int = Field(default=0, ge=0, le=15, description="Redis database number")
    key_prefix: str = Field(default="web:", description="Namespace prepended to every key")
    connect_timeout: float = Field(default=2.5, gt=0, le=60.0, description="Socket connect timeout in seconds")
    read_timeout: float = Field(default=3.0, gt=0, le=60.0, description="Socket read timeout in seconds")


class RoutingPolicy(BaseModel):
    """Read routing between primary and replica."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    master_only: bool = Field(default=False, description="Route every read to the primary")
    primary_read_percent: int = Field(
        default=50,
        ge=0,
        le=100,
        description="Share of policy-routed reads sent to the primary",
    )
    replica_fallback_to_primary: bool = Field(
        default=False,
        description="Serve replica-routed reads from the primary when no replica is reachable",
    )


class PubSubSettings(BaseModel):
    """Dedicated publish/subscribe node (not discovered through sentinel)."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    ip: str = Field(description="Pub/sub host")
    port: int = Field(default=6379, ge=1, le=65535, description="Pub/sub port")


class SentinelRedisConfig(BaseSettings):
    """Main configuration for ``SentinelRedis``.

    Examples
    --------
    >>> config = SentinelRedisConfig(
    ...     sentinel=SentinelSettings(
    ...         nodes=(SentinelNodeSettings(host="10.0.0.100"), SentinelNodeSettings(host="10.0.0.101")),
    ...         master_name="redismaster",
    ...     ),
    ...     connection=RedisConnectionSettings(password=SecretStr("secret"), key_prefix="web:"),
    ...     pubsub=PubSubSettings(ip="10.0.0.102"),
    ... )

    From the environment::

        SENTINEL_REDIS_SENTINEL__MASTER_NAME=redismaster
        SENTINEL_REDIS_CONNECTION__PASSWORD=secret
        SENTINEL_REDIS_ROUTING__MASTER_ONLY=true
    """

    model_config = SettingsConfigDict(
        env_prefix="SENTINEL_REDIS_",
        env_nested_delimiter="__",
        extra="ignore",
        frozen=True,
    )

    sentinel: SentinelSettings = Field(default_factory=SentinelSettings)
    connection: RedisConnectionSettings = Field(default_factory=RedisConnectionSettings)
    routing: RoutingPolicy = Field(default_factory=RoutingPolicy)
    pubsub: PubSubSettings | None = Field(default=None)
    bootstrap_retry: RetryConfig = Field(default_factory=RetryConfig)

    @property
    def password(self) -> str | None:
        return self.connection.password.get_secret_value() if self.connection.password else None

    def session_kwargs(self, endpoint: Endpoint) -> dict[str, Any]:
        """Get kwargs for a data-node ``redis.ConnectionPool``.

        redis-py sends AUTH first during the connection handshake, before
        SELECT and any other command, so credentials precede every other
        session option.

        Returns
        -------
        dict[str, Any]
            Kwargs ready for ``ConnectionPool(**kwargs)``.
        """
        return {
            "host": endpoint.ip,
            "port": endpoint.port,
            "db": self.connection.db,
            "password": self.password,
            "socket_connect_timeout": self.connection.connect_timeout,
            "socket_timeout": self.connection.read_timeout,
            "decode_responses": True,
        }
