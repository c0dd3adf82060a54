"""Configuration module for hostrpc."""

from hostrpc.config.loader import load_config, save_config, get_config_path
from hostrpc.config.schema import ClientConfig, Config, LoggingConfig, ServerConfig

__all__ = [
    "Config",
    "ClientConfig",
    "ServerConfig",
    "LoggingConfig",
    "load_config",
    "save_config",
    "get_config_path",
]
