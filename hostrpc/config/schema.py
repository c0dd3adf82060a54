"""Configuration schema using Pydantic.

Persisted to ~/.hostrpc/config.json; every field can be overridden with
HOSTRPC_<SECTION>__<FIELD> environment variables.
"""

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ClientConfig(BaseModel):
    """Client connection to the host platform."""
    url: str = "http://127.0.0.1:3210"
    timeout_seconds: float = 30.0
    function_prefix: str = ""  # Prepended to module function paths, e.g. "rpc/"


class ServerConfig(BaseModel):
    """Server-side pipeline behaviour."""
    redact_defects: bool = True  # Run defect messages through the sanitizer
    log_calls: bool = True


class LoggingConfig(BaseModel):
    """Loguru sink configuration."""
    level: str = "INFO"
    file: str | None = None  # Rotating file sink path; stderr only when unset
    rotation: str = "10 MB"
    retention: str = "14 days"


class Config(BaseSettings):
    """Root configuration for hostrpc."""
    client: ClientConfig = Field(default_factory=ClientConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_prefix="HOSTRPC_",
        env_nested_delimiter="__"
    )
