"""
MCP Tool Definitions and Dispatch for the Mem0 MCP Server
Copyright 2025 Jurden Bruce

Tool results are single text blocks; failures are raised as McpError so the
transport reports them on the protocol error channel, never as content.
"""

import json
import asyncio
import logging
import traceback
from datetime import datetime
from typing import Any, Dict, List, Optional, Set

from mcp.shared.exceptions import McpError
from mcp.types import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    METHOD_NOT_FOUND,
    ErrorData,
    TextContent,
    Tool,
)

from .backends.base import MemoryBackend
from .errors import ValidationIssue
from .models import (
    AddMemoryRequest,
    DeleteMemoryRequest,
    RequestDefaults,
    SearchMemoryRequest,
)

logger = logging.getLogger("mem0-mcp.mcp-tools")

NOT_READY_MESSAGE = "Memory client is still initializing. Please try again in a moment."
QUEUED_MESSAGE = "Memory addition queued successfully"


class DateTimeEncoder(json.JSONEncoder):
    """JSON encoder that handles datetime objects"""
    def default(self, obj):
        if isinstance(obj, datetime):
            return obj.isoformat()
        return super().default(obj)


def protocol_error(code: int, message: str) -> McpError:
    return McpError(ErrorData(code=code, message=message))


def get_tool_definitions(defaults: RequestDefaults = RequestDefaults()) -> List[Tool]:
    """Return list of available MCP tools"""
    user_note = f" Defaults to '{defaults.user_id}' when omitted." if defaults.user_id else ""
    user_required = [] if defaults.user_id else ["userId"]
    return [
        Tool(
            name="add_memory",
            description="Stores a piece of text as a memory in Mem0.",
            inputSchema={
                "type": "object",
                "properties": {
                    "content": {"type": "string", "description": "The text content to store as memory."},
                    "userId": {"type": "string", "description": "User ID to associate with the memory." + user_note},
                    "sessionId": {"type": "string", "description": "Optional session ID to associate with the memory."},
                    "agentId": {"type": "string", "description": "Optional agent ID to associate with the memory."},
                    "metadata": {"type": "object", "description": "Optional key-value metadata."},
                },
                "required": ["content"] + user_required,
            },
        ),
        Tool(
            name="search_memory",
            description="Searches stored memories in Mem0 based on a query.",
            inputSchema={
                "type": "object",
                "properties": {
                    "query": {"type": "string", "description": "The search query."},
                    "userId": {"type": "string", "description": "User ID to filter search." + user_note},
                    "sessionId": {"type": "string", "description": "Optional session ID to filter search."},
                    "agentId": {"type": "string", "description": "Optional agent ID to filter search."},
                    "filters": {"type": "object", "description": "Optional key-value filters for metadata."},
                    "threshold": {
                        "type": "number",
                        "description": "Optional similarity threshold for results (0.0-1.0, default 0.3).",
                    },
                },
                "required": ["query"] + user_required,
            },
        ),
        Tool(
            name="delete_memory",
            description="Deletes a specific memory by ID from Mem0.",
            inputSchema={
                "type": "object",
                "properties": {
                    "memoryId": {"type": "string", "description": "The unique ID of the memory to delete."},
                    "userId": {"type": "string", "description": "User ID associated with the memory." + user_note},
                    "agentId": {"type": "string", "description": "Optional agent ID associated with the memory."},
                },
                "required": ["memoryId"] + user_required,
            },
        ),
    ]


class ToolDispatcher:
    """
    Routes tool calls to the active backend.

    NotReady until ``attach`` is called once with a constructed backend;
    every call before that fails with INTERNAL_ERROR.
    """

    def __init__(self, backend: Optional[MemoryBackend] = None, defaults: RequestDefaults = RequestDefaults()):
        self.defaults = defaults
        self._backend: Optional[MemoryBackend] = None
        self._pending_writes: Set[asyncio.Task] = set()
        if backend is not None:
            self.attach(backend)

    @property
    def ready(self) -> bool:
        return self._backend is not None

    @property
    def pending_writes(self) -> int:
        return len(self._pending_writes)

    def attach(self, backend: MemoryBackend):
        if self._backend is not None:
            raise RuntimeError("A memory backend is already attached")
        self._backend = backend
        logger.info(f"Dispatcher ready ({backend.name} backend)")

    async def dispatch(self, name: str, arguments: Optional[Dict[str, Any]]) -> List[TextContent]:
        if self._backend is None:
            raise protocol_error(INTERNAL_ERROR, NOT_READY_MESSAGE)

        arguments = arguments or {}
        try:
            if name == "add_memory":
                return self._handle_add(AddMemoryRequest.from_arguments(arguments, self.defaults))
            elif name == "search_memory":
                return await self._handle_search(SearchMemoryRequest.from_arguments(arguments, self.defaults))
            elif name == "delete_memory":
                return await self._handle_delete(DeleteMemoryRequest.from_arguments(arguments, self.defaults))
            else:
                raise protocol_error(METHOD_NOT_FOUND, f"Unknown tool: {name}")
        except McpError:
            raise
        except ValidationIssue as e:
            raise protocol_error(INVALID_PARAMS, str(e))
        except Exception as e:
            logger.error(f"Error executing tool {name}: {e}")
            logger.error(traceback.format_exc())
            raise protocol_error(INTERNAL_ERROR, f"Error executing tool: {str(e) or 'Unknown error'}")

    def _handle_add(self, request: AddMemoryRequest) -> List[TextContent]:
        logger.info(f"Queueing memory addition for user {request.user_id}")

        # Fire-and-forget: the task is tracked only so it is not garbage
        # collected mid-flight; its outcome never reaches the caller.
        task = asyncio.create_task(self._backend.write(request))
        self._pending_writes.add(task)
        task.add_done_callback(self._pending_writes.discard)

        return [TextContent(type="text", text=QUEUED_MESSAGE)]

    async def _handle_search(self, request: SearchMemoryRequest) -> List[TextContent]:
        try:
            results = await self._backend.search(request)
        except Exception as e:
            logger.error(f"Error searching memories using {self._backend.name} storage: {e}")
            logger.error(traceback.format_exc())
            raise protocol_error(INTERNAL_ERROR, f"Error searching memories: {e}")

        return [TextContent(type="text", text=json.dumps(results, indent=2, cls=DateTimeEncoder))]

    async def _handle_delete(self, request: DeleteMemoryRequest) -> List[TextContent]:
        logger.info(f"Attempting to delete memory with ID {request.memory_id} for user {request.user_id}")
        try:
            await self._backend.delete(request)
        except Exception as e:
            logger.error(f"Error deleting memory using {self._backend.name} storage: {e}")
            raise protocol_error(INTERNAL_ERROR, f"Error deleting memory: {e}")

        return [TextContent(type="text", text=f"Memory {request.memory_id} deleted successfully")]

    async def drain(self):
        """Wait for queued writes; used at shutdown"""
        if self._pending_writes:
            await asyncio.gather(*list(self._pending_writes), return_exceptions=True)
