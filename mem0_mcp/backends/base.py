"""
Backend capability shared by the cloud and local Mem0 adapters
Copyright 2025 Jurden Bruce
"""

import asyncio
import logging
import traceback
from datetime import datetime
from typing import Any, Dict, List

from ..errors import BackendError
from ..models import AddMemoryRequest, DeleteMemoryRequest, SearchMemoryRequest

logger = logging.getLogger("mem0-mcp.backends")

MAX_ERROR_LOG = 100


def _count_results(results: Any) -> int:
    # v2 responses wrap hits as {"results": [...]}
    if isinstance(results, dict):
        return len(results.get("results", []))
    if isinstance(results, list):
        return len(results)
    return 1


class MemoryBackend:
    """
    Three-operation capability over a Mem0 client.

    Subclasses implement the blocking ``_add``, ``_search``, ``delete_primary``
    and ``delete_fallback`` calls; this class runs them off the event loop and
    owns the two-tier delete and the write failure policy.
    """

    name = "backend"

    def __init__(self, client: Any):
        self.client = client
        self.error_log: List[Dict[str, Any]] = []

    def _log_error(self, operation: str, error: Exception):
        """Record error details for diagnostics"""
        error_entry = {
            "timestamp": datetime.now().isoformat(),
            "operation": operation,
            "error_type": type(error).__name__,
            "error_msg": str(error),
            "traceback": traceback.format_exc(),
        }
        self.error_log.append(error_entry)
        if len(self.error_log) > MAX_ERROR_LOG:
            del self.error_log[:-MAX_ERROR_LOG]

    def _add(self, request: AddMemoryRequest) -> Any:
        raise NotImplementedError

    def _search(self, request: SearchMemoryRequest) -> Any:
        raise NotImplementedError

    def delete_primary(self, request: DeleteMemoryRequest) -> None:
        raise NotImplementedError

    def delete_fallback(self, request: DeleteMemoryRequest) -> None:
        raise NotImplementedError

    async def write(self, request: AddMemoryRequest) -> None:
        """
        Store a memory. Failures are logged, never raised: the caller was
        already told the write was queued.
        """
        try:
            await asyncio.to_thread(self._add, request)
            logger.info(f"Memory added asynchronously ({self.name})")
        except Exception as e:
            logger.error(f"Async error adding memory ({self.name}): {e}")
            self._log_error("add", e)

    async def search(self, request: SearchMemoryRequest) -> Any:
        results = await asyncio.to_thread(self._search, request)
        logger.info(f"Found {_count_results(results)} memories using {self.name} storage")
        return results

    async def delete(self, request: DeleteMemoryRequest) -> None:
        """Delete via the primary call, then the fallback exactly once"""
        try:
            await asyncio.to_thread(self.delete_primary, request)
            logger.info(f"Memory {request.memory_id} deleted using {self.name} primary delete")
            return
        except Exception as primary_error:
            logger.warning(f"Primary delete failed for {request.memory_id} ({self.name}): {primary_error}")
            self._log_error("delete_primary", primary_error)
            logger.info(f"Using fallback delete method for {self.name} storage")

            try:
                await asyncio.to_thread(self.delete_fallback, request)
            except Exception as fallback_error:
                self._log_error("delete_fallback", fallback_error)
                raise BackendError(
                    f"{fallback_error} (primary delete failed: {primary_error})",
                    operation="delete",
                ) from fallback_error

        logger.info(f"Memory {request.memory_id} deleted using {self.name} fallback delete")
