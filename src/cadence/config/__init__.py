"""Configuration module."""

from cadence.config.loader import get_default_config, load_config
from cadence.config.models import (
    BrokerConfig,
    CadenceConfig,
    ConfigError,
    HttpActionConfig,
    SchedulerConfig,
    ServerConfig,
    StoreConfig,
    TenancyConfig,
)
from cadence.config.paths import (
    get_cadence_home,
    get_config_path,
    get_data_path,
    get_logs_path,
)

__all__ = [
    "BrokerConfig",
    "CadenceConfig",
    "ConfigError",
    "HttpActionConfig",
    "SchedulerConfig",
    "ServerConfig",
    "StoreConfig",
    "TenancyConfig",
    "get_cadence_home",
    "get_config_path",
    "get_data_path",
    "get_default_config",
    "get_logs_path",
    "load_config",
]
