"""Exception types raised by the MCP connection layer."""

import asyncio
from typing import Any, Optional


class MCPConnectError(Exception):
    """Base class for all errors raised by this package."""


class ConfigError(MCPConnectError):
    """Raised when an MCP server configuration document is malformed.

    Validation is all-or-nothing: when this is raised nothing has been
    connected.
    """

    def __init__(self, message: str, errors: Optional[list[dict[str, Any]]] = None):
        super().__init__(message)
        self.errors = errors or []


def describe_exception(exc: BaseException) -> str:
    """Return a readable message for an exception.

    anyio stream errors (EndOfStream, ClosedResourceError) stringify to an
    empty string, so fall back to the type name.
    """
    if is_scope_cancellation(exc):
        return "connection closed by the server"
    message = str(exc)
    if isinstance(exc, BaseExceptionGroup) and exc.exceptions:
        message = "; ".join(describe_exception(e) for e in exc.exceptions)
    return message or f"{type(exc).__name__}: connection closed or timed out"


class ConnectError(MCPConnectError):
    """Raised when a single server's transport or handshake fails."""

    def __init__(self, server: str, cause: BaseException, stderr: str = ""):
        message = describe_exception(cause)
        if stderr:
            message = f"{message} (stderr: {stderr})"
        super().__init__(message)
        self.server = server
        self.cause = cause
        self.stderr = stderr


class InvokeError(MCPConnectError):
    """Raised when a tool call cannot be dispatched to its server."""

    def __init__(self, server: str, tool: str, message: str):
        super().__init__(message)
        self.server = server
        self.tool = tool


class UnknownToolError(InvokeError):
    """Raised when a tool name is not in the most recent discovery result."""


def is_scope_cancellation(exc: BaseException) -> bool:
    """Whether a CancelledError was raised by an anyio cancel scope.

    The MCP SDK transports run in anyio task groups that cancel the host task
    when one of their own tasks fails. Those cancellations carry the scope in
    their message; a cancellation requested by the caller does not.
    """
    return isinstance(exc, asyncio.CancelledError) and "cancel scope" in str(exc)
