"""Session and engine configuration models.

These are plain values handed to a session by its owner; reading them from
the environment is the caller's business.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, SecretStr


class RetryPolicy(BaseModel):
    """Configures retry behaviour for engine calls."""

    max_retries: int = Field(default=3, ge=0)
    base_delay_seconds: float = Field(default=1.0, gt=0.0)
    max_delay_seconds: float = Field(default=60.0, gt=0.0)
    exponential_base: float = Field(default=2.0, gt=0.0)


class ProxyConfig(BaseModel):
    """HTTP(S) proxy used by the engine connection."""

    server: str
    username: str | None = None
    password: SecretStr | None = None

    @property
    def url(self) -> str:
        scheme, sep, rest = self.server.partition("://")
        if not sep:
            scheme, rest = "http", self.server
        if self.username:
            password = self.password.get_secret_value() if self.password else ""
            return f"{scheme}://{self.username}:{password}@{rest}"
        return f"{scheme}://{rest}"


class NowebStoreConfig(BaseModel):
    """Materialized store switches for the NOWEB engine."""

    enabled: bool = False
    full_sync: bool = False


class NowebConfig(BaseModel):
    store: NowebStoreConfig = Field(default_factory=NowebStoreConfig)
    mark_online: bool = True


class SessionConfig(BaseModel):
    """Engine-independent session configuration."""

    noweb: NowebConfig = Field(default_factory=NowebConfig)
    metadata: dict[str, str] = Field(default_factory=dict)


class NowebEngineConfig(BaseModel):
    """Tunables of the NOWEB engine itself."""

    start_attempt_delay_seconds: float = Field(default=2.0, ge=0.0)
    auto_restart_after_seconds: float = Field(default=28 * 60, gt=0.0)
    auto_restart_jitter_seconds: int = Field(default=30, ge=0)
    auto_restart_enabled: bool = True
    status_batch_size: int = Field(default=5000, gt=0)
    status_retry: RetryPolicy = Field(
        default_factory=lambda: RetryPolicy(
            max_retries=5, base_delay_seconds=1.0, max_delay_seconds=6.0
        )
    )
