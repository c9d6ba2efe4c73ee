"""
Pytest configuration and shared fixtures for mcpconnect tests.
"""

import sys
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from mcpconnect import ConnectError, DuplexChannel, ToolDescriptor

SEARCH_SERVER = Path(__file__).parent / "servers" / "search_server.py"


class FakeTransport:
    """In-memory transport that records open/close calls."""

    def __init__(self, open_error=None):
        self.open_error = open_error
        self.open_calls = 0
        self.close_calls = 0
        self._open = False

    @property
    def is_open(self):
        return self._open

    def describe(self):
        return "fake"

    async def open(self):
        self.open_calls += 1
        if self.open_error is not None:
            raise self.open_error
        self._open = True
        return DuplexChannel(object(), object())

    async def close(self):
        self.close_calls += 1
        self._open = False


class FakeClient:
    """Stands in for ToolServerClient in manager tests."""

    def __init__(self, name, tools=(), error=None, close_error=None, events=None):
        self.name = name
        self.tools = []
        self._tool_names = list(tools)
        self.error = error
        self.close_error = close_error
        self.events = events if events is not None else []
        self.close_calls = 0
        self.invoke = AsyncMock(side_effect=lambda tool, arguments=None: f"{name}:{tool}")

    async def connect(self, timeout=None):
        self.events.append(("connect", self.name))
        if self.error is not None:
            raise ConnectError(self.name, self.error)
        self.tools = [ToolDescriptor(name=t, server=self.name) for t in self._tool_names]
        self.events.append(("connected", self.name))
        return list(self.tools)

    async def close(self):
        self.close_calls += 1
        self.events.append(("close", self.name))
        if self.close_error is not None:
            raise self.close_error


@pytest.fixture
def fake_factory():
    """Build a client factory from ``{server_name: FakeClient kwargs}``."""

    def build(specs):
        events = []
        created = {}

        def factory(name, entry):
            client = FakeClient(name, events=events, **specs.get(name, {}))
            created[name] = client
            return client

        factory.created = created
        factory.events = events
        return factory

    return build


@pytest.fixture
def search_server_entry():
    """Config entry for the test search server tagged with a label."""

    def build(label):
        return {
            "command": sys.executable,
            "args": [str(SEARCH_SERVER)],
            "env": {"SEARCH_SERVER_LABEL": label},
        }

    return build
