"""
Mem0 platform (cloud) backend for the Mem0 MCP Server
Copyright 2025 Jurden Bruce
"""

import logging
from typing import Any, Dict, Optional

import httpx

from ..config import Settings
from ..models import AddMemoryRequest, DeleteMemoryRequest, SearchMemoryRequest
from .base import MemoryBackend

logger = logging.getLogger("mem0-mcp.backends.cloud")

API_VERSION = "v2"


class CloudBackend(MemoryBackend):
    """Wraps ``mem0.MemoryClient``; request fields are mapped to the API's snake_case options"""

    name = "cloud"

    def __init__(self, client: Any, settings: Settings, http_client: Optional[httpx.Client] = None):
        super().__init__(client)
        self.settings = settings
        self.http_client = http_client

    @classmethod
    def from_settings(cls, settings: Settings) -> "CloudBackend":
        """Construct the platform client; MemoryClient validates the key over the network"""
        from mem0 import MemoryClient

        client_options: Dict[str, Any] = {
            "api_key": settings.mem0_api_key,
            "host": settings.mem0_api_host,
        }
        if settings.org_id:
            client_options["org_id"] = settings.org_id
        if settings.project_id:
            client_options["project_id"] = settings.project_id

        client = MemoryClient(**client_options)
        logger.info(
            f"Cloud client initialized successfully "
            f"(org_id={'set' if settings.org_id else 'unset'}, project_id={'set' if settings.project_id else 'unset'})"
        )
        return cls(client, settings)

    def _scoped_options(self, user_id: str, agent_id: Optional[str] = None, session_id: Optional[str] = None) -> Dict[str, Any]:
        """Options every platform request carries; org/project come from configuration only"""
        options: Dict[str, Any] = {"user_id": user_id, "version": API_VERSION}
        if self.settings.org_id:
            options["org_id"] = self.settings.org_id
        if self.settings.project_id:
            options["project_id"] = self.settings.project_id
        if session_id:
            options["run_id"] = session_id
        if agent_id:
            options["agent_id"] = agent_id
        return options

    def _add(self, request: AddMemoryRequest) -> Any:
        options = self._scoped_options(request.user_id, request.agent_id, request.session_id)
        if request.metadata:
            options["metadata"] = request.metadata
        return self.client.add(request.messages(), **options)

    def _search(self, request: SearchMemoryRequest) -> Any:
        options = self._scoped_options(request.user_id, request.agent_id, request.session_id)
        if request.filters:
            options["filters"] = request.filters
        options["threshold"] = request.effective_threshold
        return self.client.search(request.query, **options)

    def delete_primary(self, request: DeleteMemoryRequest) -> None:
        self.client.delete(request.memory_id)

    def delete_fallback(self, request: DeleteMemoryRequest) -> None:
        """Direct REST delete against the platform API"""
        url = f"{self.settings.mem0_api_host}/v1/memories/{request.memory_id}/"
        body = self._scoped_options(request.user_id, request.agent_id)
        body["memory_id"] = request.memory_id
        headers = {
            "Authorization": f"Token {self.settings.mem0_api_key}",
            "Content-Type": "application/json",
        }

        if self.http_client is None:
            self.http_client = httpx.Client(timeout=30.0)

        response = self.http_client.request("DELETE", url, headers=headers, json=body)
        response.raise_for_status()
        logger.info(f"Memory {request.memory_id} deleted using direct API request")
