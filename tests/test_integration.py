"""End-to-end tests against real stdio MCP servers.

The servers are ``tests/servers/search_server.py`` run with the current
interpreter. Every test connects and closes within the same task, as the
SDK transports require.
"""

import asyncio
import logging

import pytest

from mcpconnect import (
    ConfigError,
    ConnectError,
    ConnectionManager,
    StdioServerConfig,
    ToolServerClient,
    UnknownToolError,
)

# Bounds each attempt so a misbehaving child cannot hang the suite.
CONNECT_TIMEOUT = 30


@pytest.mark.asyncio
async def test_same_tool_on_two_servers_dispatches_to_each(search_server_entry):
    manager = ConnectionManager(connect_timeout=CONNECT_TIMEOUT)
    try:
        await manager.connect_all(
            {"servers": {"a": search_server_entry("a"), "b": search_server_entry("b")}}
        )
        assert manager.server_count == 2

        registry = manager.get_tools()
        assert {"a__search", "b__search", "a__fail", "b__fail"} <= set(registry)
        assert ("a", "search") in manager.get_tool_summary()

        a_result = await registry.invoke("a__search", {"query": "hello"})
        b_result = await registry.invoke("b__search", {"query": "hello"})

        assert a_result.content[0].text == "a:hello"
        assert b_result.content[0].text == "b:hello"
    finally:
        await manager.close_all()

    assert manager.server_count == 0
    assert len(manager.get_tools()) == 0
    assert asyncio.current_task().cancelling() == 0


@pytest.mark.asyncio
async def test_close_all_shuts_down_two_stdio_servers(search_server_entry):
    manager = ConnectionManager()
    await manager.connect_all(
        {
            "servers": {
                "first": search_server_entry("first"),
                "second": search_server_entry("second"),
            }
        }
    )
    clients = [manager.get_client("first"), manager.get_client("second")]
    assert manager.server_count == 2

    await manager.close_all()

    assert manager.server_count == 0
    assert all(not client.transport.is_open for client in clients)
    assert all(not client.is_connected for client in clients)
    assert asyncio.current_task().cancelling() == 0

    # The task is still usable after the SDK scopes have been torn down.
    await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_tool_failure_is_returned_as_error_result(search_server_entry):
    async with ConnectionManager(connect_timeout=CONNECT_TIMEOUT) as manager:
        await manager.connect_all({"servers": {"a": search_server_entry("a")}})

        result = await manager.get_tools().invoke("a__fail", {"message": "nope"})

        assert result.isError
        assert "nope" in result.content[0].text


@pytest.mark.asyncio
async def test_unknown_tool_fails_fast_on_live_server(search_server_entry):
    async with ConnectionManager(connect_timeout=CONNECT_TIMEOUT) as manager:
        await manager.connect_all({"servers": {"a": search_server_entry("a")}})

        with pytest.raises(UnknownToolError):
            await manager.get_client("a").invoke("missing", {})


@pytest.mark.asyncio
async def test_unreachable_servers_do_not_block_others(search_server_entry, caplog):
    caplog.set_level(logging.WARNING, logger="mcpconnect")
    manager = ConnectionManager(connect_timeout=CONNECT_TIMEOUT)
    try:
        await manager.connect_all(
            {
                "servers": {
                    "missing": {"command": "nonexistent-binary-xyz"},
                    "good": search_server_entry("good"),
                    "web": {"url": "http://127.0.0.1:9/sse"},
                }
            }
        )

        assert manager.server_names == ["good"]
        assert {f.name for f in manager.last_failures} == {"missing", "web"}
        assert 'MCP server "missing"' in caplog.text
        assert 'MCP server "web"' in caplog.text
    finally:
        await manager.close_all()


@pytest.mark.asyncio
async def test_non_mcp_command_and_missing_binary(caplog):
    caplog.set_level(logging.WARNING, logger="mcpconnect")
    manager = ConnectionManager()
    try:
        await manager.connect_all(
            {
                "servers": {
                    "ok": {"command": "echo", "args": ["hi"]},
                    "bad": {"command": "nonexistent-binary-xyz"},
                }
            }
        )

        # echo never completes a handshake
        assert manager.server_count == 0
        assert 'MCP server "bad"' in caplog.text
        assert {f.name for f in manager.last_failures} == {"ok", "bad"}
    finally:
        await manager.close_all()

    assert asyncio.current_task().cancelling() == 0


@pytest.mark.asyncio
async def test_invalid_url_is_a_config_error():
    manager = ConnectionManager()

    with pytest.raises(ConfigError):
        await manager.connect_all({"servers": {"w": {"url": "not-a-url"}}})

    assert manager.server_count == 0


@pytest.mark.asyncio
async def test_client_captures_stderr_and_closes(search_server_entry):
    entry = search_server_entry("diag")
    client = ToolServerClient.from_config("diag", StdioServerConfig(**entry))
    try:
        tools = await client.connect(timeout=CONNECT_TIMEOUT)

        assert {t.name for t in tools} == {"search", "fail"}
        assert "search server diag starting" in client.transport.stderr_output()
        with pytest.raises(RuntimeError, match="already open"):
            await client.transport.open()
    finally:
        await client.close()
        await client.close()

    assert not client.transport.is_open


@pytest.mark.asyncio
async def test_missing_binary_leaves_nothing_open():
    client = ToolServerClient.from_config("bad", StdioServerConfig(command="nonexistent-binary-xyz"))

    with pytest.raises(ConnectError) as exc_info:
        await client.connect(timeout=CONNECT_TIMEOUT)

    assert exc_info.value.server == "bad"
    assert not client.transport.is_open
