"""
Server lifecycle tests: startup failures, cloud initialization, tool wiring,
signal shutdown and protocol error codes
Copyright 2025 Jurden Bruce
"""

import asyncio
import os
import signal

import anyio
import pytest
from mcp.shared.exceptions import McpError
from mcp.shared.memory import (
    create_client_server_memory_streams,
    create_connected_server_and_client_session,
)
from mcp.types import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    METHOD_NOT_FOUND,
    CallToolRequest,
    CallToolRequestParams,
    ListToolsRequest,
)

from mem0_mcp import server
from mem0_mcp.config import Settings
from mem0_mcp.mcp_tools import NOT_READY_MESSAGE, QUEUED_MESSAGE, ToolDispatcher
from mem0_mcp.models import Mode, RequestDefaults

ENV_KEYS = [
    "MEM0_API_KEY", "OPENAI_API_KEY", "VECTOR_DB_PROVIDER", "VECTOR_DB_URL",
    "EMBEDDING_MODEL_DIMS", "LOG_LEVEL", "MEM0_API_HOST",
]


class RecordingGuard:
    def __init__(self):
        self.events = []

    def install(self):
        self.events.append("install")

    def restore(self):
        self.events.append("restore")

    def protocol_stdout(self):
        raise AssertionError("transport must not start")


@pytest.fixture
def clean_env(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setattr(server, "configure_logging", lambda *args, **kwargs: None)
    return monkeypatch


def test_run_without_keys_exits_1(clean_env):
    guard = RecordingGuard()

    def factory(settings, mode):
        raise AssertionError("no backend should be built")

    with pytest.raises(SystemExit) as excinfo:
        server.run(guard=guard, factory=factory)

    assert excinfo.value.code == 1
    assert guard.events == ["install", "restore"]


def test_run_exits_1_when_local_backend_fails(clean_env):
    clean_env.setenv("OPENAI_API_KEY", "sk-test")
    guard = RecordingGuard()
    built = []

    def factory(settings, mode):
        built.append(mode)
        raise RuntimeError("embedder unavailable")

    with pytest.raises(SystemExit) as excinfo:
        server.run(guard=guard, factory=factory)

    assert excinfo.value.code == 1
    assert built == [Mode.LOCAL]
    assert guard.events[-1] == "restore"


def test_run_exits_1_on_bad_configuration(clean_env):
    clean_env.setenv("OPENAI_API_KEY", "sk-test")
    clean_env.setenv("EMBEDDING_MODEL_DIMS", "many")

    with pytest.raises(SystemExit) as excinfo:
        server.run(guard=RecordingGuard(), factory=lambda settings, mode: None)
    assert excinfo.value.code == 1


def test_cloud_init_attaches_backend(local_backend):
    dispatcher = ToolDispatcher()
    lifecycle = server.Lifecycle()
    settings = Settings.from_env({"MEM0_API_KEY": "m0"})
    modes = []

    def factory(settings, mode):
        modes.append(mode)
        return local_backend

    asyncio.run(server.init_cloud_backend(dispatcher, settings, anyio.CancelScope(), lifecycle, factory))

    assert dispatcher.ready
    assert modes == [Mode.CLOUD]
    assert lifecycle.exit_code == 0


def test_cloud_init_failure_stops_server():
    dispatcher = ToolDispatcher()
    lifecycle = server.Lifecycle()
    settings = Settings.from_env({"MEM0_API_KEY": "m0"})

    def factory(settings, mode):
        raise ConnectionError("invalid API key")

    async def _run():
        async with anyio.create_task_group() as tg:
            tg.start_soon(server.init_cloud_backend, dispatcher, settings, tg.cancel_scope, lifecycle, factory)
            await anyio.sleep_forever()

    asyncio.run(_run())

    assert not dispatcher.ready
    assert lifecycle.exit_code == 1
    assert "invalid API key" in lifecycle.reason


def test_create_server_registers_tool_handlers():
    app = server.create_server(ToolDispatcher())
    assert ListToolsRequest in app.request_handlers
    assert CallToolRequest in app.request_handlers


def call_tool_request(app, name, arguments):
    """Invoke the registered tools/call handler the way the session does"""
    handler = app.request_handlers[CallToolRequest]
    request = CallToolRequest(params=CallToolRequestParams(name=name, arguments=arguments))
    return asyncio.run(handler(request))


@pytest.mark.parametrize("ready, name, arguments, code, message", [
    (False, "search_memory", {"query": "q", "userId": "u1"}, INTERNAL_ERROR, NOT_READY_MESSAGE),
    (True, "forget_everything", {}, METHOD_NOT_FOUND, "Unknown tool: forget_everything"),
    (True, "search_memory", {"query": "q"}, INVALID_PARAMS, "Missing required argument: userId"),
    (True, "search_memory", {"query": "q", "userId": "u1", "threshold": 2}, INVALID_PARAMS, None),
])
def test_call_tool_errors_keep_protocol_codes(ready, name, arguments, code, message, local_backend):
    app = server.create_server(ToolDispatcher(local_backend if ready else None))

    with pytest.raises(McpError) as excinfo:
        call_tool_request(app, name, arguments)

    assert excinfo.value.error.code == code
    if message is not None:
        assert excinfo.value.error.message == message


def test_call_tool_success_is_not_an_error(local_backend):
    app = server.create_server(ToolDispatcher(local_backend))

    result = call_tool_request(app, "delete_memory", {"memoryId": "m-1", "userId": "u1"})

    assert result.root.isError is False
    assert result.root.content[0].text == "Memory m-1 deleted successfully"


def test_call_tool_applies_default_user(local_backend, fake_client):
    defaults = RequestDefaults(user_id="alice")
    app = server.create_server(ToolDispatcher(local_backend, defaults=defaults), defaults)

    result = call_tool_request(app, "search_memory", {"query": "q"})

    assert result.root.isError is False
    assert fake_client.calls[0][2]["user_id"] == "alice"


def test_client_sees_json_rpc_errors_and_results(local_backend, fake_client):
    defaults = RequestDefaults(user_id="alice")
    dispatcher = ToolDispatcher(local_backend, defaults=defaults)
    app = server.create_server(dispatcher, defaults)

    async def _run():
        async with create_connected_server_and_client_session(app) as client:
            listed = await client.list_tools()
            assert [tool.inputSchema["required"] for tool in listed.tools] == [["content"], ["query"], ["memoryId"]]

            with pytest.raises(McpError) as excinfo:
                await client.call_tool("search_memory", {"query": "q", "threshold": "high"})
            assert excinfo.value.error.code == INVALID_PARAMS

            with pytest.raises(McpError) as excinfo:
                await client.call_tool("rename_memory", {})
            assert excinfo.value.error.code == METHOD_NOT_FOUND

            result = await client.call_tool("add_memory", {"content": "likes tea"})
            assert result.isError is False
            assert result.content[0].text == QUEUED_MESSAGE
        await dispatcher.drain()

    asyncio.run(_run())
    assert fake_client.calls[0][2]["user_id"] == "alice"


def test_sigterm_stops_session_cleanly(local_backend, local_settings):
    guard = RecordingGuard()
    lifecycle = server.Lifecycle()
    dispatcher = ToolDispatcher(local_backend)
    exit_codes = []

    async def _run():
        async with create_client_server_memory_streams() as (client_streams, server_streams):
            read_stream, write_stream = server_streams

            async def session():
                exit_codes.append(await server.run_session(
                    dispatcher, local_settings, Mode.LOCAL, read_stream, write_stream, guard, lifecycle=lifecycle,
                ))

            with anyio.fail_after(5):
                async with anyio.create_task_group() as tg:
                    tg.start_soon(session)
                    await lifecycle.serving.wait()
                    os.kill(os.getpid(), signal.SIGTERM)

    asyncio.run(_run())

    assert exit_codes == [0]
    assert guard.events == ["restore"]


def test_drain_writes_gives_up_after_timeout(local_backend, fake_client, gate):
    fake_client.add_gate = gate
    dispatcher = ToolDispatcher(local_backend)

    async def _run():
        await dispatcher.dispatch("add_memory", {"content": "slow", "userId": "u1"})
        with anyio.fail_after(2):
            await server.drain_writes(dispatcher, timeout=0.05)
        assert dispatcher.pending_writes == 1
        gate.set()
        await dispatcher.drain()

    asyncio.run(_run())
    assert fake_client.names() == ["add"]
