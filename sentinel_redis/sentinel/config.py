from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, SecretStr


class SentinelNodeSettings(BaseModel):
    """Address of a single sentinel (discovery) node."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    host: str = Field(description="Sentinel host")
    port: int = Field(default=26379, ge=1, le=65535, description="Sentinel port")


class SentinelSettings(BaseModel):
    """Sentinel tier settings."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    nodes: tuple[SentinelNodeSettings, ...] = Field(
        default_factory=tuple,
        description="Sentinel nodes queried for the current primary and replicas",
    )
    master_name: str = Field(default="redismaster", min_length=1, description="Monitored master name")
    timeout: float = Field(
        default=1.5,
        gt=0,
        le=60.0,
        description="Connect and read timeout for sentinel nodes in seconds",
    )
    password: SecretStr | None = Field(
        default=None,
        description="Sentinel auth token (falls back to the store password when unset)",
    )
