"""MCP server configuration models and validation.

A configuration document has a single required ``servers`` mapping of server
name to entry. Each entry is either a stdio server (``command`` with optional
``args`` and ``env``) or a URL server reached over Server-Sent Events
(``url``)::

    {
        "servers": {
            "filesystem": {"command": "npx", "args": ["-y", "server-filesystem", "/tmp"]},
            "web": {"url": "http://localhost:3001/sse"}
        }
    }
"""

import json
import logging
from collections.abc import Mapping
from enum import Enum
from pathlib import Path
from typing import Annotated, Any, Optional, Union

from pydantic import (
    AnyUrl,
    BaseModel,
    Discriminator,
    Field,
    Tag,
    TypeAdapter,
    ValidationError,
    field_validator,
)

from .errors import ConfigError

logger = logging.getLogger(__name__)

_URL_ADAPTER = TypeAdapter(AnyUrl)


class TransportType(str, Enum):
    """Supported MCP transport types."""

    STDIO = "stdio"
    SSE = "sse"


class StdioServerConfig(BaseModel):
    """A server spawned as a subprocess and spoken to over stdin/stdout."""

    command: str = Field(..., description="Command to start the server")
    args: list[str] = Field(default_factory=list, description="Command arguments")
    env: dict[str, str] = Field(default_factory=dict, description="Environment variables")

    @property
    def transport(self) -> TransportType:
        return TransportType.STDIO


class URLServerConfig(BaseModel):
    """A server reached over a persistent Server-Sent Events connection."""

    url: str = Field(..., description="Absolute URL of the server endpoint")

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        try:
            _URL_ADAPTER.validate_python(value)
        except ValidationError:
            raise ValueError(f"invalid URL: {value!r}") from None
        return value

    @property
    def transport(self) -> TransportType:
        return TransportType.SSE


def _server_kind(value: Any) -> Optional[str]:
    # An entry with both keys is treated as stdio.
    if isinstance(value, Mapping):
        if "command" in value:
            return TransportType.STDIO.value
        if "url" in value:
            return TransportType.SSE.value
        return None
    transport = getattr(value, "transport", None)
    return transport.value if isinstance(transport, TransportType) else None


ServerConfig = Annotated[
    Union[
        Annotated[StdioServerConfig, Tag(TransportType.STDIO.value)],
        Annotated[URLServerConfig, Tag(TransportType.SSE.value)],
    ],
    Discriminator(
        _server_kind,
        custom_error_type="invalid_server_entry",
        custom_error_message="server entry must define either 'command' or 'url'",
    ),
]


class MCPConfig(BaseModel):
    """The full MCP configuration document."""

    servers: dict[str, ServerConfig] = Field(
        ..., description="Server name to transport descriptor, in document order"
    )

    @field_validator("servers")
    @classmethod
    def _check_server_names(cls, value: dict[str, Any]) -> dict[str, Any]:
        # Tool names are namespaced as <server>__<tool> and split on the first "__".
        for name in value:
            if "__" in name:
                raise ValueError(f"server name {name!r} must not contain '__'")
        return value


def _format_errors(exc: ValidationError) -> str:
    lines = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"]) or "<document>"
        lines.append(f"{location}: {error['msg']}")
    return "Invalid MCP config: " + "; ".join(lines)


def validate_config(document: Any) -> MCPConfig:
    """Validate an already-parsed configuration document.

    Args:
        document: The parsed document, or an existing MCPConfig.

    Returns:
        The validated configuration.

    Raises:
        ConfigError: If the document is malformed. Nothing is partially applied.
    """
    if isinstance(document, MCPConfig):
        return document
    try:
        return MCPConfig.model_validate(document)
    except ValidationError as e:
        raise ConfigError(_format_errors(e), errors=e.errors()) from e


def load_config(path: Union[str, Path]) -> MCPConfig:
    """Load and validate an MCP config JSON file.

    Args:
        path: Path to the config file.

    Returns:
        The validated configuration.

    Raises:
        ConfigError: If the file is missing, is not valid JSON, or fails validation.
    """
    config_path = Path(path)
    if not config_path.is_file():
        raise ConfigError(f"MCP config file not found: {config_path}")

    try:
        document = json.loads(config_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in MCP config {config_path}: {e}") from e

    config = validate_config(document)
    logger.info(f"Loaded MCP config from {config_path}: {len(config.servers)} server(s)")
    return config
