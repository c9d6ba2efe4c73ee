"""Transports that carry the MCP protocol to a tool server.

Two transports share one structural interface (``Transport``):

- StdioTransport: spawns the server as a subprocess; its stdin/stdout form
  the protocol channel and its stderr is captured to a private file.
- SSETransport: opens a persistent Server-Sent Events connection to a URL.

Both wrap the MCP SDK client context managers in an ``AsyncExitStack`` so
that ``close()`` releases exactly what ``open()`` acquired.
"""

import asyncio
import logging
import os
import tempfile
from contextlib import AsyncExitStack
from typing import IO, Any, NamedTuple, Optional, Protocol, Union

from mcp import StdioServerParameters
from mcp.client.sse import sse_client
from mcp.client.stdio import get_default_environment, stdio_client

from .config import StdioServerConfig, URLServerConfig
from .errors import describe_exception, is_scope_cancellation

logger = logging.getLogger(__name__)


class DuplexChannel(NamedTuple):
    """The read/write stream pair a ClientSession speaks over."""

    read_stream: Any
    write_stream: Any


class Transport(Protocol):
    """Structural interface implemented by every transport."""

    @property
    def is_open(self) -> bool: ...

    def describe(self) -> str: ...

    async def open(self) -> DuplexChannel: ...

    async def close(self) -> None: ...


async def _close_stack(stack: Optional[AsyncExitStack], label: str) -> None:
    if stack is None:
        return
    try:
        await stack.aclose()
    except asyncio.CancelledError as e:
        if not is_scope_cancellation(e):
            raise
        logger.warning(f"Transport {label} was cancelled while closing")
    except Exception as e:
        logger.warning(f"Error closing transport {label}: {describe_exception(e)}")
    else:
        logger.info(f"Closed transport {label}")


class StdioTransport:
    """Runs a tool server as a child process speaking over stdio."""

    def __init__(
        self,
        command: str,
        args: Optional[list[str]] = None,
        env: Optional[dict[str, str]] = None,
    ):
        """Initialize the transport.

        Args:
            command: Executable to spawn.
            args: Arguments for the executable.
            env: Variables layered over the SDK's default inherited environment.
        """
        self.command = command
        self.args = list(args or [])
        self.env = dict(env or {})
        self._exit_stack: Optional[AsyncExitStack] = None
        self._errlog: Optional[IO[str]] = None

    @property
    def is_open(self) -> bool:
        return self._exit_stack is not None

    def describe(self) -> str:
        return " ".join([self.command, *self.args])

    def stderr_output(self) -> str:
        """Return what the child has written to stderr so far."""
        if self._errlog is None:
            return ""
        fd = self._errlog.fileno()
        # pread leaves the offset shared with the child untouched
        data = os.pread(fd, os.fstat(fd).st_size, 0)
        return data.decode("utf-8", errors="replace")

    async def open(self) -> DuplexChannel:
        """Spawn the child process.

        Raises:
            OSError: If the command cannot be found or executed.
            RuntimeError: If the transport is already open.
        """
        if self._exit_stack is not None:
            raise RuntimeError(f"Transport already open: {self.describe()}")

        params = StdioServerParameters(
            command=self.command,
            args=self.args,
            env={**get_default_environment(), **self.env},
        )

        stack = AsyncExitStack()
        try:
            errlog = stack.enter_context(tempfile.TemporaryFile(mode="w+", encoding="utf-8"))
            read_stream, write_stream = await stack.enter_async_context(
                stdio_client(params, errlog=errlog)
            )
        except BaseException:
            await stack.aclose()
            raise

        self._exit_stack = stack
        self._errlog = errlog
        logger.info(f"Started stdio transport: {self.describe()}")
        return DuplexChannel(read_stream, write_stream)

    async def close(self) -> None:
        """Terminate the child process and release its handles. Idempotent."""
        stack, self._exit_stack = self._exit_stack, None
        self._errlog = None
        await _close_stack(stack, self.describe())


class SSETransport:
    """Connects to a tool server over Server-Sent Events."""

    def __init__(self, url: str):
        self.url = url
        self._exit_stack: Optional[AsyncExitStack] = None

    @property
    def is_open(self) -> bool:
        return self._exit_stack is not None

    def describe(self) -> str:
        return self.url

    async def open(self) -> DuplexChannel:
        """Open the event stream.

        Raises:
            httpx.HTTPError: On refusal, timeout or TLS failure.
            RuntimeError: If the transport is already open.
        """
        if self._exit_stack is not None:
            raise RuntimeError(f"Transport already open: {self.describe()}")

        stack = AsyncExitStack()
        try:
            read_stream, write_stream = await stack.enter_async_context(sse_client(self.url))
        except BaseException:
            await stack.aclose()
            raise

        self._exit_stack = stack
        logger.info(f"Opened SSE transport: {self.url}")
        return DuplexChannel(read_stream, write_stream)

    async def close(self) -> None:
        """End the event stream. Idempotent."""
        stack, self._exit_stack = self._exit_stack, None
        await _close_stack(stack, self.describe())


def create_transport(config: Union[StdioServerConfig, URLServerConfig]) -> Transport:
    """Build the transport matching a validated server entry."""
    if isinstance(config, StdioServerConfig):
        return StdioTransport(config.command, config.args, config.env)
    if isinstance(config, URLServerConfig):
        return SSETransport(config.url)
    raise TypeError(f"Unsupported server config: {type(config).__name__}")
