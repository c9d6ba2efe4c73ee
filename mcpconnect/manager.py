"""Connection manager for a set of configured MCP tool servers.

The manager connects to every configured server in document order, keeps
only the servers that completed a full handshake, and exposes their tools
as one namespaced registry.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, Union

from .client import ToolServerClient
from .config import MCPConfig, StdioServerConfig, URLServerConfig, validate_config
from .errors import ConnectError, is_scope_cancellation
from .registry import ToolRegistry

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str, Union[StdioServerConfig, URLServerConfig]], ToolServerClient]


@dataclass
class ConnectResult:
    """Outcome of one connection attempt."""

    name: str
    client: Optional[ToolServerClient] = None
    error: Optional[ConnectError] = None

    @property
    def ok(self) -> bool:
        return self.client is not None


class ConnectionManager:
    """Owns the live clients for one host session.

    Failures are isolated per server: a server that cannot be spawned,
    reached or handshaken is logged and skipped while the rest connect.

    Example:
        ```python
        async with ConnectionManager() as manager:
            await manager.connect_all({"servers": {"fs": {"command": "mcp-fs"}}})
            registry = manager.get_tools()
            result = await registry.invoke("fs__read_file", {"path": "/tmp/a"})
        ```
    """

    def __init__(
        self,
        client_factory: ClientFactory = ToolServerClient.from_config,
        connect_timeout: Optional[float] = None,
    ):
        """Initialize the manager.

        Args:
            client_factory: Builds a client for a server entry.
            connect_timeout: Optional deadline in seconds for each server's
                connect attempt. None (the default) waits indefinitely.
        """
        self._client_factory = client_factory
        self._connect_timeout = connect_timeout
        self._clients: dict[str, ToolServerClient] = {}
        self._last_failures: list[ConnectResult] = []

    @property
    def server_count(self) -> int:
        """Number of connected servers."""
        return len(self._clients)

    @property
    def server_names(self) -> list[str]:
        """Names of connected servers, in connection order."""
        return list(self._clients.keys())

    @property
    def last_failures(self) -> list[ConnectResult]:
        """Failed attempts from the most recent connect_all call."""
        return list(self._last_failures)

    def get_client(self, name: str) -> ToolServerClient:
        """Return the connected client for a server.

        Raises:
            KeyError: If the server is not connected.
        """
        if name not in self._clients:
            raise KeyError(f"Server '{name}' is not connected")
        return self._clients[name]

    async def _attempt(
        self, name: str, entry: Union[StdioServerConfig, URLServerConfig]
    ) -> ConnectResult:
        try:
            client = self._client_factory(name, entry)
            await client.connect(timeout=self._connect_timeout)
        except ConnectError as e:
            return ConnectResult(name=name, error=e)
        except asyncio.CancelledError as e:
            if not is_scope_cancellation(e):
                raise
            return ConnectResult(name=name, error=ConnectError(name, e))
        except Exception as e:
            return ConnectResult(name=name, error=ConnectError(name, e))
        return ConnectResult(name=name, client=client)

    async def connect_all(self, config: Union[MCPConfig, dict[str, Any]]) -> list[ConnectResult]:
        """Connect to every configured server, one at a time.

        Per-server failures are logged as warnings and never raised.

        Args:
            config: A validated MCPConfig or a raw configuration document.

        Returns:
            One result per configured server, in document order.

        Raises:
            ConfigError: If a raw document fails validation. Nothing is
                connected in that case.
        """
        validated = validate_config(config)

        results: list[ConnectResult] = []
        for name, entry in validated.servers.items():
            if name in self._clients:
                logger.warning(f"MCP server \"{name}\" is already connected, skipping")
                results.append(ConnectResult(name=name, client=self._clients[name]))
                continue

            result = await self._attempt(name, entry)
            if result.ok:
                self._clients[name] = result.client
            results.append(result)

        self._last_failures = [r for r in results if not r.ok]
        for failure in self._last_failures:
            logger.warning(f"Failed to connect to MCP server \"{failure.name}\": {failure.error}")

        logger.info(f"Connected to {self.server_count} of {len(validated.servers)} MCP server(s)")
        return results

    def get_tools(self) -> ToolRegistry:
        """Build the namespaced registry from each client's last discovery."""
        return ToolRegistry(self._clients.values())

    def get_tool_summary(self) -> list[tuple[str, str]]:
        """``(server, raw tool name)`` pairs for every available tool."""
        return self.get_tools().summary()

    async def close_all(self) -> None:
        """Close every connected client and clear all state.

        Close failures are logged and never raised. Safe to call repeatedly.
        """
        clients, self._clients = self._clients, {}
        self._last_failures = []
        # Each client holds cancel scopes nested above the ones opened before
        # it, so they must be released newest first.
        for name, client in reversed(list(clients.items())):
            try:
                await client.close()
            except asyncio.CancelledError as e:
                if not is_scope_cancellation(e):
                    raise
                logger.warning(f"MCP server \"{name}\" was cancelled while closing")
            except Exception as e:
                logger.warning(f"Error closing MCP server \"{name}\": {e}")

        if clients:
            logger.info(f"Closed {len(clients)} MCP server connection(s)")

    async def __aenter__(self) -> "ConnectionManager":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close_all()
