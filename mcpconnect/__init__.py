"""Connection manager for MCP (Model Context Protocol) tool servers.

This package attaches a command-line LLM client to a set of independently
configured tool servers, discovers their tools, and merges them into one
namespaced registry.

Key components:
- MCPConfig / validate_config / load_config: Server configuration
- StdioTransport / SSETransport: The two transports a server can use
- ToolServerClient: Handshake, discovery and invocation for one server
- ConnectionManager: Connects, aggregates and closes all servers
- ToolRegistry: Namespaced ``<server>__<tool>`` view of every tool

Example:
    ```python
    from mcpconnect import ConnectionManager

    config = {
        "servers": {
            "filesystem": {
                "command": "npx",
                "args": ["-y", "@modelcontextprotocol/server-filesystem", "/tmp"],
            },
            "web": {"url": "http://localhost:3001/sse"},
        }
    }

    async with ConnectionManager() as manager:
        await manager.connect_all(config)
        registry = manager.get_tools()
        result = await registry.invoke("filesystem__read_file", {"path": "/tmp/test.txt"})
    ```
"""

__version__ = "0.1.0"

from .client import ConnectionState, ToolServerClient
from .config import (
    MCPConfig,
    ServerConfig,
    StdioServerConfig,
    TransportType,
    URLServerConfig,
    load_config,
    validate_config,
)
from .errors import (
    ConfigError,
    ConnectError,
    InvokeError,
    MCPConnectError,
    UnknownToolError,
)
from .manager import ConnectionManager, ConnectResult
from .registry import (
    RegisteredTool,
    ToolDescriptor,
    ToolRegistry,
    namespaced_name,
    split_namespaced_name,
)
from .transports import DuplexChannel, SSETransport, StdioTransport, Transport, create_transport

__all__ = [
    # Version
    "__version__",
    # Configuration
    "MCPConfig",
    "ServerConfig",
    "StdioServerConfig",
    "URLServerConfig",
    "TransportType",
    "load_config",
    "validate_config",
    # Transports
    "DuplexChannel",
    "Transport",
    "StdioTransport",
    "SSETransport",
    "create_transport",
    # Clients
    "ConnectionState",
    "ToolServerClient",
    # Registry
    "RegisteredTool",
    "ToolDescriptor",
    "ToolRegistry",
    "namespaced_name",
    "split_namespaced_name",
    # Manager
    "ConnectionManager",
    "ConnectResult",
    # Errors
    "MCPConnectError",
    "ConfigError",
    "ConnectError",
    "InvokeError",
    "UnknownToolError",
]
