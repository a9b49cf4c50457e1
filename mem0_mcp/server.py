#!/usr/bin/env python3
"""
MCP Server for Mem0 memory storage
Copyright 2025 Jurden Bruce

Exposes add_memory / search_memory / delete_memory over stdio.

Two modes, picked once at startup:
1. Cloud mode: Mem0 platform API, selected by MEM0_API_KEY
2. Local mode: in-process Mem0 with OpenAI embeddings, selected by OPENAI_API_KEY
"""

import sys
import signal
import asyncio
import logging
import traceback
from typing import Callable, Optional

import anyio
from anyio import CancelScope

from mcp import types
from mcp.server.models import InitializationOptions
from mcp.server import NotificationOptions, Server
from mcp.server.stdio import stdio_server

from . import __version__
from .backends import MemoryBackend, build_backend
from .config import Settings, select_mode
from .errors import ConfigurationError
from .mcp_tools import ToolDispatcher, get_tool_definitions
from .models import Mode, RequestDefaults
from .output_guard import OutputGuard, configure_logging

logger = logging.getLogger("mem0-mcp")

SERVER_NAME = "mem0-mcp"

# Queued writes get this long to finish once the transport is closed
DRAIN_TIMEOUT = 5.0

BackendFactory = Callable[[Settings, Mode], MemoryBackend]


class Lifecycle:
    """Exit status shared between the serving tasks"""

    def __init__(self):
        self.exit_code = 0
        self.reason: Optional[str] = None
        self._serving: Optional[anyio.Event] = None

    @property
    def serving(self) -> anyio.Event:
        """Set once signal handling is in place and the session is running"""
        if self._serving is None:
            self._serving = anyio.Event()
        return self._serving

    def fail(self, reason: str):
        self.exit_code = 1
        self.reason = reason


def create_server(dispatcher: ToolDispatcher, defaults: RequestDefaults = RequestDefaults()) -> Server:
    """
    MCP server whose tool calls all go through ``dispatcher``.

    The tools/call handler is registered directly rather than through
    ``@app.call_tool()``: that decorator turns every exception into an
    ``isError`` result and validates against the input schema first. Here
    McpError propagates so the session answers with a JSON-RPC error
    carrying its code, and argument checks stay with the dispatcher.
    """
    app = Server(SERVER_NAME)

    @app.list_tools()
    async def handle_list_tools() -> list[types.Tool]:
        """List available memory tools"""
        return get_tool_definitions(defaults)

    async def handle_call_tool(request: types.CallToolRequest) -> types.ServerResult:
        content = await dispatcher.dispatch(request.params.name, request.params.arguments)
        return types.ServerResult(types.CallToolResult(content=content, isError=False))

    app.request_handlers[types.CallToolRequest] = handle_call_tool
    return app


async def init_cloud_backend(
    dispatcher: ToolDispatcher,
    settings: Settings,
    scope: CancelScope,
    lifecycle: Lifecycle,
    factory: BackendFactory = build_backend,
):
    """Build the cloud client off the event loop; a failure stops the server"""
    try:
        backend = await asyncio.to_thread(factory, settings, Mode.CLOUD)
    except Exception as e:
        logger.error(f"Error initializing cloud client: {e}")
        logger.error(traceback.format_exc())
        lifecycle.fail(f"cloud initialization failed: {e}")
        scope.cancel()
        return
    dispatcher.attach(backend)


async def watch_signals(scope: CancelScope, guard: OutputGuard, *, task_status=anyio.TASK_STATUS_IGNORED):
    """Shut down cleanly on SIGINT/SIGTERM"""
    with anyio.open_signal_receiver(signal.SIGINT, signal.SIGTERM) as signals:
        task_status.started()
        async for signum in signals:
            logger.info(f"Received {signal.Signals(signum).name} signal, shutting down...")
            guard.restore()
            scope.cancel()
            return


async def drain_writes(dispatcher: ToolDispatcher, timeout: float = DRAIN_TIMEOUT):
    """Give queued writes a bounded chance to finish; the rest are dropped"""
    with anyio.move_on_after(timeout) as drain_scope:
        await dispatcher.drain()
    if drain_scope.cancelled_caught:
        logger.warning(f"Dropped {dispatcher.pending_writes} queued memory writes at shutdown")


async def run_session(
    dispatcher: ToolDispatcher,
    settings: Settings,
    mode: Mode,
    read_stream,
    write_stream,
    guard: OutputGuard,
    factory: BackendFactory = build_backend,
    lifecycle: Optional[Lifecycle] = None,
) -> int:
    """Serve MCP over the given streams until the client disconnects or a signal arrives"""
    lifecycle = lifecycle or Lifecycle()
    app = create_server(dispatcher, settings.request_defaults)

    async with anyio.create_task_group() as tg:
        if mode is Mode.CLOUD:
            tg.start_soon(init_cloud_backend, dispatcher, settings, tg.cancel_scope, lifecycle, factory)
        await tg.start(watch_signals, tg.cancel_scope, guard)
        lifecycle.serving.set()

        logger.info("Mem0 MCP Server is running.")
        await app.run(
            read_stream,
            write_stream,
            InitializationOptions(
                server_name=SERVER_NAME,
                server_version=__version__,
                capabilities=app.get_capabilities(
                    notification_options=NotificationOptions(),
                    experimental_capabilities={},
                ),
            ),
        )
        # Client closed the transport
        tg.cancel_scope.cancel()

    if lifecycle.reason:
        logger.error(f"Server stopped: {lifecycle.reason}")
    await drain_writes(dispatcher)
    return lifecycle.exit_code


async def serve(settings: Settings, guard: OutputGuard, factory: BackendFactory = build_backend) -> int:
    """Select the backend, then run the session over stdio"""
    mode = select_mode(settings)
    dispatcher = ToolDispatcher(defaults=settings.request_defaults)

    if mode is Mode.LOCAL:
        dispatcher.attach(factory(settings, mode))

    logger.info("Starting Mem0 MCP Server...")
    async with stdio_server(stdout=guard.protocol_stdout()) as (read_stream, write_stream):
        return await run_session(dispatcher, settings, mode, read_stream, write_stream, guard, factory)


def run(guard: Optional[OutputGuard] = None, factory: BackendFactory = build_backend):
    """Main entry point"""
    guard = guard or OutputGuard()
    guard.install()
    configure_logging()

    exit_code = 0
    try:
        settings = Settings.from_env()
        configure_logging(settings.log_level)
        logger.info(f"Initializing Mem0 MCP Server v{__version__}...")
        exit_code = anyio.run(serve, settings, guard, factory)
    except KeyboardInterrupt:
        logger.info("Received interrupt signal")
    except ConfigurationError as e:
        logger.error(f"Error: {e}")
        exit_code = 1
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        logger.error(traceback.format_exc())
        exit_code = 1
    finally:
        guard.restore()

    sys.exit(exit_code)


if __name__ == "__main__":
    run()
