"""
Configuration for ic-bn-logs.

Settings are read from ``IC_BN_LOGS_*`` environment variables (optionally
seeded from a ``.env`` file) and validated with Pydantic. Command line
options override individual fields.
"""

import logging
from pathlib import Path
from typing import Any, List, Optional

from dotenv import find_dotenv, load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ic_bn_logs.utils import principal_to_bytes

logger = logging.getLogger(__name__)

DEFAULT_MAX_MESSAGE_SIZE = 5 * 1024
DEFAULT_IC_URL = "https://icp-api.io"
NNS_SUBNET_ID = "tdb26-jop6k-aogll-7ltgs-eruif-6kk7m-qpktf-gdiqx-mxtrf-vb5e6-eqe"


class ClientConfig(BaseSettings):
    """Boundary node log client configuration."""

    endpoints: str = Field(default="", description="Comma-separated boundary node domains")
    registry_url: Optional[str] = Field(default=None, description="URL of a JSON endpoint list")
    ic_url: str = Field(default=DEFAULT_IC_URL, description="IC API used to discover boundary nodes")
    nns_subnet_id: str = Field(default=NNS_SUBNET_ID, description="Subnet whose state tree lists the boundary nodes")

    connect_timeout: float = Field(default=10.0, description="TCP connect timeout in seconds")
    subscribe_timeout: float = Field(default=10.0, description="Subscription acknowledgement timeout in seconds")
    close_timeout: float = Field(default=2.0, description="Graceful close deadline per connection in seconds")
    shutdown_grace: float = Field(default=5.0, description="Supervisor shutdown deadline in seconds")

    ping_interval: float = Field(default=10.0, description="Keepalive ping interval in seconds")
    ping_timeout: float = Field(default=10.0, description="Keepalive pong timeout in seconds")
    max_message_size: int = Field(default=DEFAULT_MAX_MESSAGE_SIZE, description="Largest accepted frame in bytes")
    queue_size: int = Field(default=1000, description="Buffered events per endpoint")

    log_level: str = Field(default="INFO", description="Logging level")

    model_config = SettingsConfigDict(env_prefix="IC_BN_LOGS_")

    @field_validator(
        "connect_timeout", "subscribe_timeout", "close_timeout", "shutdown_grace",
        "ping_interval", "ping_timeout",
    )
    @classmethod
    def validate_timeout(cls, v):
        """Ensure timeouts are positive."""
        if v <= 0:
            raise ValueError(f"Timeout must be positive, got: {v}")
        return v

    @field_validator("max_message_size", "queue_size")
    @classmethod
    def validate_size(cls, v):
        """Ensure sizes are positive."""
        if v < 1:
            raise ValueError(f"Size must be at least 1, got: {v}")
        return v

    @field_validator("nns_subnet_id")
    @classmethod
    def validate_subnet_id(cls, v):
        """Ensure the subnet id is a well-formed principal."""
        principal_to_bytes(v)
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Ensure log level is one logging understands."""
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid log level: {v}")
        return level

    def endpoint_domains(self) -> List[str]:
        """Configured endpoint domains, in order, without blanks or duplicates."""
        domains: List[str] = []
        for part in self.endpoints.split(","):
            domain = part.strip()
            if domain and domain not in domains:
                domains.append(domain)
        return domains


def load_config(env_file: Optional[str] = None, **overrides: Any) -> ClientConfig:
    """
    Build the client configuration.

    Args:
        env_file: Explicit .env file; the nearest .env from the working
            directory is used when not given
        **overrides: Field values taking precedence over the environment;
            ``None`` values are ignored

    Returns:
        Validated configuration
    """
    path = Path(env_file) if env_file else None
    if path is None:
        found = find_dotenv(usecwd=True)
        path = Path(found) if found else None

    if path is not None and path.exists():
        logger.debug("Loading environment file: %s", path)
        load_dotenv(dotenv_path=path, override=False)

    values = {key: value for key, value in overrides.items() if value is not None}
    return ClientConfig(**values)
