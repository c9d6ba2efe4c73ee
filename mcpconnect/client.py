"""Protocol client for a single MCP tool server."""

import asyncio
import logging
from contextlib import AsyncExitStack
from enum import Enum
from typing import Any, Optional, Union

from mcp import ClientSession

from .config import StdioServerConfig, URLServerConfig
from .errors import (
    ConnectError,
    InvokeError,
    UnknownToolError,
    describe_exception,
    is_scope_cancellation,
)
from .registry import ToolDescriptor
from .transports import StdioTransport, Transport, create_transport

logger = logging.getLogger(__name__)

# Keep connect-failure diagnostics to one readable line.
_STDERR_TAIL_CHARS = 500


def _cancel_count() -> int:
    task = asyncio.current_task()
    return task.cancelling() if task is not None else 0


def _absorb_cancellation(baseline: int) -> None:
    # Drop cancel requests an SDK cancel scope left on the task.
    task = asyncio.current_task()
    if task is None:
        return
    while task.cancelling() > baseline:
        task.uncancel()


class ConnectionState(str, Enum):
    """Lifecycle of a client's connection."""

    NOT_ATTEMPTED = "not_attempted"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"
    CLOSED = "closed"


class ToolServerClient:
    """Speaks MCP to one tool server over a transport.

    ``connect()`` is all-or-nothing: it opens the transport, performs the
    initialize handshake and discovers the server's tools, or releases
    everything it acquired and raises ``ConnectError``.

    Example:
        ```python
        client = ToolServerClient.from_config("fs", StdioServerConfig(command="mcp-fs"))
        tools = await client.connect()
        try:
            result = await client.invoke("read_file", {"path": "/tmp/a"})
        finally:
            await client.close()
        ```
    """

    def __init__(self, name: str, transport: Transport):
        """Initialize the client.

        Args:
            name: Server name, used to namespace the server's tools.
            transport: Transport the protocol is carried over.
        """
        self.name = name
        self.transport = transport
        self._state = ConnectionState.NOT_ATTEMPTED
        self._session_stack: Optional[AsyncExitStack] = None
        self._session: Optional[ClientSession] = None
        self._server_info: Optional[Any] = None
        self._tools: list[ToolDescriptor] = []

    @classmethod
    def from_config(
        cls, name: str, config: Union[StdioServerConfig, URLServerConfig]
    ) -> "ToolServerClient":
        """Create a client with the transport a config entry describes."""
        return cls(name, create_transport(config))

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED and self._session is not None

    @property
    def server_info(self) -> Optional[Any]:
        """Server implementation info reported during the handshake."""
        return self._server_info

    @property
    def tools(self) -> list[ToolDescriptor]:
        """Tools from the most recent discovery."""
        return list(self._tools)

    async def connect(self, timeout: Optional[float] = None) -> list[ToolDescriptor]:
        """Open the transport, handshake and discover tools.

        Args:
            timeout: Optional deadline in seconds for the whole attempt.
                No deadline is applied by default.

        Returns:
            The discovered tools.

        Raises:
            ConnectError: If any step fails. Partial resources are released.
            RuntimeError: If the client is already connected.
        """
        if self._state is ConnectionState.CONNECTED:
            raise RuntimeError(f"Client for {self.name} is already connected")

        baseline = _cancel_count()
        self._state = ConnectionState.CONNECTING
        try:
            async with asyncio.timeout(timeout):
                await self._handshake()
        except BaseException as e:
            stderr = self._stderr_tail()
            await self._release()
            self._state = ConnectionState.FAILED
            if isinstance(e, asyncio.CancelledError):
                if not is_scope_cancellation(e):
                    raise
                # A transport task died and the SDK cancelled this task.
                _absorb_cancellation(baseline)
            elif not isinstance(e, Exception):
                raise
            raise ConnectError(self.name, e, stderr=stderr) from e

        self._state = ConnectionState.CONNECTED
        logger.info(f"Connected to {self.name}: tools={[t.name for t in self._tools]}")
        return self.tools

    async def _handshake(self) -> None:
        channel = await self.transport.open()

        self._session_stack = AsyncExitStack()
        self._session = await self._session_stack.enter_async_context(
            ClientSession(channel.read_stream, channel.write_stream)
        )
        result = await self._session.initialize()
        self._server_info = result.serverInfo
        self._tools = await self._discover(self._session)

    async def _discover(self, session: ClientSession) -> list[ToolDescriptor]:
        tools: list[ToolDescriptor] = []
        cursor: Optional[str] = None
        while True:
            if cursor is None:
                page = await session.list_tools()
            else:
                page = await session.list_tools(cursor=cursor)
            tools.extend(
                ToolDescriptor(
                    name=tool.name,
                    server=self.name,
                    input_schema=tool.inputSchema,
                    description=tool.description,
                )
                for tool in page.tools
            )
            cursor = page.nextCursor
            if not cursor:
                return tools

    def _stderr_tail(self) -> str:
        if not isinstance(self.transport, StdioTransport):
            return ""
        lines = [line.strip() for line in self.transport.stderr_output().splitlines()]
        return " | ".join(line for line in lines if line)[-_STDERR_TAIL_CHARS:]

    async def refresh_tools(self) -> list[ToolDescriptor]:
        """Re-run discovery and replace the cached tool list."""
        if not self.is_connected:
            raise RuntimeError(f"Client for {self.name} is not connected")
        self._tools = await self._discover(self._session)
        return self.tools

    async def invoke(self, tool_name: str, arguments: Optional[dict[str, Any]] = None) -> Any:
        """Call a tool by its raw name.

        Args:
            tool_name: Tool name as reported by this server.
            arguments: Arguments to pass to the tool.

        Returns:
            The server's CallToolResult.

        Raises:
            InvokeError: If the client is not connected.
            UnknownToolError: If the tool was not in the last discovery result.
        """
        if not self.is_connected:
            raise InvokeError(self.name, tool_name, f"Server {self.name} is not connected")

        known = [t.name for t in self._tools]
        if tool_name not in known:
            raise UnknownToolError(
                self.name,
                tool_name,
                f"Unknown tool '{tool_name}' on server {self.name}; "
                f"available: {', '.join(sorted(known)) or '(none)'}",
            )

        logger.debug(f"Calling {self.name}/{tool_name}")
        return await self._session.call_tool(tool_name, arguments or {})

    async def _release(self) -> None:
        stack, self._session_stack = self._session_stack, None
        self._session = None
        self._server_info = None
        self._tools = []

        if stack is not None:
            try:
                await stack.aclose()
            except asyncio.CancelledError as e:
                if not is_scope_cancellation(e):
                    raise
                logger.warning(f"Session for {self.name} was cancelled while closing")
            except Exception as e:
                logger.warning(f"Error closing session for {self.name}: {describe_exception(e)}")

        try:
            await self.transport.close()
        except asyncio.CancelledError as e:
            if not is_scope_cancellation(e):
                raise
            logger.warning(f"Transport for {self.name} was cancelled while closing")
        except Exception as e:
            logger.warning(f"Error closing transport for {self.name}: {describe_exception(e)}")

    async def close(self) -> None:
        """Close the session and transport. Idempotent, never raises."""
        was_connected = self._state is ConnectionState.CONNECTED
        baseline = _cancel_count()
        await self._release()
        _absorb_cancellation(baseline)
        self._state = ConnectionState.CLOSED
        if was_connected:
            logger.info(f"Closed connection to {self.name}")
