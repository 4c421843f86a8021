"""Application configuration using pydantic-settings."""

from __future__ import annotations

from enum import Enum
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings


class Environment(str, Enum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


class RuntimeBackend(str, Enum):
    DOCKER = "docker"
    SIMULATED = "simulated"


class BusyPolicy(str, Enum):
    """What to do when a deploy arrives for a target that is already in flight."""

    REJECT = "reject"
    QUEUE = "queue"


class RuntimeSettings(BaseSettings):
    """Container runtime configuration."""

    backend: RuntimeBackend = Field(default=RuntimeBackend.SIMULATED, alias="RUNTIME_BACKEND")
    docker_base_url: str = Field(
        default="unix:///var/run/docker.sock", alias="RUNTIME_DOCKER_BASE_URL"
    )
    docker_api_version: str = Field(default="", alias="RUNTIME_DOCKER_API_VERSION")
    container_name: str = Field(default="ecommerce-app", alias="RUNTIME_CONTAINER_NAME")
    host_port: int = Field(default=80, alias="RUNTIME_HOST_PORT")
    container_port: int = Field(default=80, alias="RUNTIME_CONTAINER_PORT")
    restart_policy: str = Field(default="unless-stopped", alias="RUNTIME_RESTART_POLICY")
    stop_grace_seconds: int = Field(default=10, alias="RUNTIME_STOP_GRACE_SECONDS")
    log_tail_lines: int = Field(default=50, alias="RUNTIME_LOG_TAIL_LINES")

    model_config = {"env_prefix": "RUNTIME_", "extra": "ignore", "populate_by_name": True}


class RegistrySettings(BaseSettings):
    """Artifact registry configuration."""

    host: str = Field(default="", alias="REGISTRY_HOST")
    username: str = Field(default="", alias="REGISTRY_USERNAME")
    password: str = Field(default="", alias="REGISTRY_PASSWORD")

    @property
    def has_credentials(self) -> bool:
        return bool(self.username and self.password)

    model_config = {"env_prefix": "REGISTRY_", "extra": "ignore", "populate_by_name": True}


class LifecycleSettings(BaseSettings):
    """Phase timeouts, retry budgets and validation thresholds."""

    before_install_timeout: float = Field(default=30.0, alias="LIFECYCLE_BEFORE_INSTALL_TIMEOUT")
    stop_timeout: float = Field(default=60.0, alias="LIFECYCLE_STOP_TIMEOUT")
    install_timeout: float = Field(default=300.0, alias="LIFECYCLE_INSTALL_TIMEOUT")
    start_timeout: float = Field(default=30.0, alias="LIFECYCLE_START_TIMEOUT")
    validate_timeout: float = Field(default=60.0, alias="LIFECYCLE_VALIDATE_TIMEOUT")

    stop_max_attempts: int = Field(default=3, alias="LIFECYCLE_STOP_MAX_ATTEMPTS")
    stop_backoff_seconds: float = Field(default=2.0, alias="LIFECYCLE_STOP_BACKOFF_SECONDS")

    probe_max_attempts: int = Field(default=5, alias="LIFECYCLE_PROBE_MAX_ATTEMPTS")
    probe_backoff_seconds: float = Field(default=2.0, alias="LIFECYCLE_PROBE_BACKOFF_SECONDS")
    probe_successes_required: int = Field(default=2, alias="LIFECYCLE_PROBE_SUCCESSES_REQUIRED")
    probe_timeout_ms: int = Field(default=5000, alias="LIFECYCLE_PROBE_TIMEOUT_MS")
    latency_ceiling_ms: float = Field(default=2000.0, alias="LIFECYCLE_LATENCY_CEILING_MS")

    health_url: str = Field(default="http://localhost/", alias="LIFECYCLE_HEALTH_URL")
    expected_markers: list[str] = Field(
        default_factory=lambda: ["ecommerce", "shop", "product"],
        alias="LIFECYCLE_EXPECTED_MARKERS",
    )
    log_error_patterns: list[str] = Field(
        default_factory=lambda: ["error", "fail", "exception"],
        alias="LIFECYCLE_LOG_ERROR_PATTERNS",
    )
    settle_seconds: float = Field(default=5.0, alias="LIFECYCLE_SETTLE_SECONDS")
    start_poll_interval: float = Field(default=1.0, alias="LIFECYCLE_START_POLL_INTERVAL")

    busy_policy: BusyPolicy = Field(default=BusyPolicy.REJECT, alias="LIFECYCLE_BUSY_POLICY")
    queue_timeout_seconds: float = Field(default=600.0, alias="LIFECYCLE_QUEUE_TIMEOUT_SECONDS")

    model_config = {"env_prefix": "LIFECYCLE_", "extra": "ignore", "populate_by_name": True}


class RedisSettings(BaseSettings):
    """Redis configuration (used for cross-process target locks)."""

    enabled: bool = Field(default=False, alias="REDIS_ENABLED")
    host: str = Field(default="localhost", alias="REDIS_HOST")
    port: int = Field(default=6379, alias="REDIS_PORT")
    password: str = Field(default="", alias="REDIS_PASSWORD")
    db: int = Field(default=0, alias="REDIS_DB")
    lock_retry_interval: float = Field(default=0.5, alias="REDIS_LOCK_RETRY_INTERVAL")

    @property
    def url(self) -> str:
        auth = f":{self.password}@" if self.password else ""
        return f"redis://{auth}{self.host}:{self.port}/{self.db}"

    model_config = {"env_prefix": "REDIS_", "extra": "ignore", "populate_by_name": True}


class ObservabilitySettings(BaseSettings):
    """Observability configuration."""

    otlp_endpoint: str = Field(default="http://localhost:4317", alias="OTLP_ENDPOINT")
    service_name: str = Field(default="deployment-lifecycle", alias="SERVICE_NAME")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    metrics_enabled: bool = Field(default=True, alias="METRICS_ENABLED")
    tracing_enabled: bool = Field(default=False, alias="TRACING_ENABLED")

    model_config = {"env_prefix": "OBS_", "extra": "ignore", "populate_by_name": True}


class Settings(BaseSettings):
    """Main application settings."""

    environment: Environment = Field(default=Environment.DEVELOPMENT, alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")
    api_prefix: str = Field(default="/api/v1", alias="API_PREFIX")
    host: str = Field(default="0.0.0.0", alias="HOST")  # noqa: S104
    port: int = Field(default=8080, alias="PORT")

    runtime: RuntimeSettings = Field(default_factory=RuntimeSettings)
    registry: RegistrySettings = Field(default_factory=RegistrySettings)
    lifecycle: LifecycleSettings = Field(default_factory=LifecycleSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)

    model_config = {"env_prefix": "", "extra": "ignore", "populate_by_name": True}


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
