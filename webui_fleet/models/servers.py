"""Server descriptors and the ordered registry built from configuration."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from webui_fleet.errors import ServerNotFoundError

DEFAULT_WEBUI_PATH = "~/autodl-tmp/stable-diffusion-webui"


class AuthMethod(str, Enum):
    password = "password"
    private_key = "private_key"
    private_key_file = "private_key_file"


class ServerDescriptor(BaseModel):
    """Static connection and layout record for one managed server."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    user: str
    host: str
    port: int = 22
    password: str = ""
    private_key: str = Field(default="", description="PEM-encoded private key text")
    private_key_path: str = ""
    remote_base_path: str = DEFAULT_WEBUI_PATH
    service_url: Optional[str] = None
    launch_command: Optional[str] = None
    process_fingerprint: str = Field(
        default="launch.py",
        description="Substring of the web UI command line used to find it in ps",
    )

    @model_validator(mode="after")
    def _require_credential(self) -> ServerDescriptor:
        if not (self.password or self.private_key or self.private_key_path):
            raise ValueError(
                f"server {self.name!r} needs one of password, private_key "
                "or private_key_path",
            )
        return self

    @property
    def auth_method(self) -> AuthMethod:
        if self.private_key:
            return AuthMethod.private_key
        if self.private_key_path:
            return AuthMethod.private_key_file
        return AuthMethod.password

    @property
    def address(self) -> str:
        return f"{self.user}@{self.host}:{self.port}"


class ServerRegistry:
    """Read-only, ordered collection of server descriptors.

    Order is registration order and drives report ordering. Duplicate names
    are tolerated; lookups return the first match.
    """

    def __init__(self, servers: Iterable[ServerDescriptor] = ()) -> None:
        self._servers: tuple[ServerDescriptor, ...] = tuple(servers)

    def __iter__(self) -> Iterator[ServerDescriptor]:
        return iter(self._servers)

    def __len__(self) -> int:
        return len(self._servers)

    def __bool__(self) -> bool:
        return bool(self._servers)

    def find(self, name: str) -> ServerDescriptor | None:
        for server in self._servers:
            if server.name == name:
                return server
        return None

    def get(self, name: str) -> ServerDescriptor:
        server = self.find(name)
        if server is None:
            raise ServerNotFoundError(name)
        return server

    @property
    def names(self) -> list[str]:
        return [s.name for s in self._servers]
