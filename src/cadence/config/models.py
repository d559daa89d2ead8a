"""Configuration models using Pydantic."""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from cadence.config.paths import get_data_path

DEFAULT_URL_TEMPLATE = "sqlite+aiosqlite:///{data_dir}/{database}.db"


class StoreConfig(BaseModel):
    """Configuration for the per-tenant job store.

    ``url_template`` is formatted with ``data_dir``, ``tenant`` and
    ``database`` (``database_prefix`` + tenant) to get each tenant's database
    URL.
    """

    url_template: str = DEFAULT_URL_TEMPLATE
    data_dir: Path = Field(default_factory=get_data_path)
    database_prefix: str = "cron_"

    @field_validator("url_template")
    @classmethod
    def _require_tenant_placeholder(cls, value: str) -> str:
        if "{tenant}" not in value and "{database}" not in value:
            raise ValueError("url_template must contain {tenant} or {database}")
        return value


class BrokerConfig(BaseModel):
    """Configuration for the message bus and tenancy event stream."""

    redis_url: str = "redis://localhost:6379/0"
    allowed_subjects: list[str] = Field(
        default_factory=lambda: ["dojot.device-manager.device", "device-data"]
    )
    # Channel pattern carrying tenant provisioning events
    tenancy_pattern: str = "*dojot.tenancy"


class HttpActionConfig(BaseModel):
    """Configuration for outbound HTTP actions."""

    timeout: float = 5.0
    # Empty list means no allow-list is enforced
    allowed_base_urls: list[str] = Field(default_factory=list)


class TenancyConfig(BaseModel):
    """Where the startup tenant snapshot comes from.

    ``tenants_url`` wins over the static ``tenants`` list when both are set.
    """

    tenants_url: str | None = None
    tenants: list[str] = Field(default_factory=list)
    timeout: float = 12.0
    # When false, DELETE provisioning events are logged and ignored
    unload_on_delete: bool = True


class SchedulerConfig(BaseModel):
    """Configuration for triggers."""

    # "allow" lets firings of one job overlap; "skip" drops an occurrence
    # while the previous firing of the same job is still running.
    overlap_policy: Literal["allow", "skip"] = "allow"


class ServerConfig(BaseModel):
    """Configuration for HTTP server."""

    host: str = "127.0.0.1"
    port: int = 5000


class ConfigError(Exception):
    """Configuration error."""

    pass


class CadenceConfig(BaseModel):
    """Root configuration model."""

    store: StoreConfig = Field(default_factory=StoreConfig)
    broker: BrokerConfig = Field(default_factory=BrokerConfig)
    http: HttpActionConfig = Field(default_factory=HttpActionConfig)
    tenancy: TenancyConfig = Field(default_factory=TenancyConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
