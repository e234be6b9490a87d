"""Application settings loaded from environment variables."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from webui_fleet.errors import ConfigurationError
from webui_fleet.models.servers import ServerDescriptor, ServerRegistry


class Settings(BaseSettings):
    """All configuration is driven by ``WEBUI_*`` environment variables.

    ``WEBUI_SERVERS`` holds a JSON list of server descriptors, e.g.::

        [{"name": "gpu-a", "user": "root", "host": "region-1.example.com",
          "port": 20451, "private_key_path": "/keys/gpu-a"}]
    """

    model_config = SettingsConfigDict(
        env_prefix="WEBUI_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Fleet
    servers: list[ServerDescriptor] = Field(default_factory=list)

    # Egress server whose descriptor doubles as HTTP proxy credentials
    proxy_server_name: str = ""
    proxy_port: Optional[int] = None

    # Downloads
    download_server_name: str = ""
    download_dir: str = "/tmp/webui-downloads"
    model_storage_path: str = "~/autodl-tmp/stable-diffusion-webui/models/Stable-diffusion"
    download_poll_interval_seconds: float = 20.0
    download_timeout_seconds: float = 600.0
    download_log_window_lines: int = 5
    download_fingerprint: str = "wget"

    # SSH
    ssh_connect_timeout_seconds: float = 15.0
    ssh_command_timeout_seconds: float = 60.0

    # API key
    api_key: str = ""

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    def registry(self) -> ServerRegistry:
        return ServerRegistry(self.servers)

    def proxy_server(self, registry: ServerRegistry | None = None) -> ServerDescriptor:
        """Resolve the egress server, failing before any network action."""
        if not self.proxy_server_name:
            raise ConfigurationError("no proxy server configured (WEBUI_PROXY_SERVER_NAME)")
        server = (registry or self.registry()).find(self.proxy_server_name)
        if server is None:
            raise ConfigurationError(
                f"proxy server {self.proxy_server_name!r} is not a configured server",
            )
        return server


def load_settings(**overrides: Any) -> Settings:
    """Build a validated ``Settings``, mapping validation failures to ConfigurationError."""
    try:
        return Settings(**overrides)
    except ValidationError as exc:
        raise ConfigurationError(f"invalid configuration: {exc}") from exc


# Singleton – import this from anywhere
settings = load_settings()
