"""Namespaced view over the tools of every connected server.

Tool names are prefixed with their server name, ``<server>__<tool>``, so two
servers exposing a tool with the same raw name never collide.
"""

import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Iterable, Optional

from .errors import UnknownToolError

if TYPE_CHECKING:
    from .client import ToolServerClient

logger = logging.getLogger(__name__)

SEPARATOR = "__"


def namespaced_name(server: str, tool: str) -> str:
    """Return the registry key for a server's tool."""
    return f"{server}{SEPARATOR}{tool}"


def split_namespaced_name(name: str) -> tuple[str, str]:
    """Split a registry key into ``(server, tool)``.

    Raises:
        ValueError: If the name carries no separator.
    """
    server, sep, tool = name.partition(SEPARATOR)
    if not sep or not server or not tool:
        raise ValueError(f"Not a namespaced tool name: {name!r}")
    return server, tool


@dataclass(frozen=True)
class ToolDescriptor:
    """A tool as reported by its server."""

    name: str
    server: str
    input_schema: Any = field(default_factory=dict)
    description: Optional[str] = None

    @property
    def qualified_name(self) -> str:
        return namespaced_name(self.server, self.name)


@dataclass(frozen=True)
class RegisteredTool:
    """A tool descriptor paired with the client that owns it."""

    descriptor: ToolDescriptor
    client: "ToolServerClient"


class ToolRegistry(Mapping[str, RegisteredTool]):
    """Read-only mapping of namespaced tool name to its registered tool.

    Example:
        ```python
        registry = manager.get_tools()
        for name, entry in registry.items():
            print(name, entry.descriptor.input_schema)
        result = await registry.invoke("filesystem__read_file", {"path": "/tmp/a"})
        ```
    """

    def __init__(self, clients: Iterable["ToolServerClient"] = ()):
        self._tools: dict[str, RegisteredTool] = {}
        for client in clients:
            for descriptor in client.tools:
                key = descriptor.qualified_name
                if key in self._tools:
                    raise ValueError(f"Duplicate tool name in registry: {key}")
                self._tools[key] = RegisteredTool(descriptor=descriptor, client=client)

    def __getitem__(self, name: str) -> RegisteredTool:
        return self._tools[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._tools)

    def __len__(self) -> int:
        return len(self._tools)

    def descriptors(self) -> dict[str, ToolDescriptor]:
        """Flat map of namespaced name to descriptor."""
        return {name: entry.descriptor for name, entry in self._tools.items()}

    def summary(self) -> list[tuple[str, str]]:
        """``(server, raw tool name)`` pairs for diagnostics."""
        return [(entry.descriptor.server, entry.descriptor.name) for entry in self._tools.values()]

    async def invoke(self, name: str, arguments: Optional[dict[str, Any]] = None) -> Any:
        """Resolve a namespaced tool and call it on its owning client.

        Raises:
            UnknownToolError: If no connected server exposes the tool.
        """
        entry = self._tools.get(name)
        if entry is None:
            server, _, tool = name.partition(SEPARATOR)
            raise UnknownToolError(server, tool, f"Unknown tool: {name}")
        logger.debug(f"Dispatching {name} to server {entry.descriptor.server}")
        return await entry.client.invoke(entry.descriptor.name, arguments)
