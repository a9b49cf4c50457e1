"""
In-process Mem0 backend (OpenAI embeddings + Qdrant) for the Mem0 MCP Server
Copyright 2025 Jurden Bruce
"""

import logging
import tempfile
from typing import Any, Dict

from ..config import Settings
from ..errors import BackendError
from ..models import AddMemoryRequest, DeleteMemoryRequest, SearchMemoryRequest
from .base import MemoryBackend

logger = logging.getLogger("mem0-mcp.backends.local")


def build_local_config(settings: Settings) -> Dict[str, Any]:
    """
    Mem0 configuration for the local pipeline.

    DEFAULT: embedded Qdrant that is wiped on start (in-memory semantics)
    OPTIONAL: external Qdrant server when VECTOR_DB_PROVIDER=qdrant
    """
    embedder_config = {
        "provider": "openai",
        "config": {
            "api_key": settings.openai_api_key,
            "model": settings.embedding_model,
            "embedding_dims": settings.embedding_model_dims,
        },
    }

    if settings.uses_qdrant_server:
        store_config: Dict[str, Any] = {
            "collection_name": settings.collection_name,
            "embedding_model_dims": settings.embedding_model_dims,
            "url": settings.vector_db_url,
        }
        if settings.vector_db_api_key:
            store_config["api_key"] = settings.vector_db_api_key
    else:
        store_config = {
            "collection_name": settings.collection_name,
            "embedding_model_dims": settings.embedding_model_dims,
            "path": tempfile.mkdtemp(prefix="mem0-mcp-"),
            "on_disk": False,
        }

    return {
        "embedder": embedder_config,
        "vector_store": {"provider": "qdrant", "config": store_config},
    }


class LocalBackend(MemoryBackend):
    """Wraps ``mem0.Memory``; embedding and vector search run in this process"""

    name = "local"

    @classmethod
    def from_settings(cls, settings: Settings) -> "LocalBackend":
        from mem0 import Memory

        config = build_local_config(settings)
        target = settings.vector_db_url if settings.uses_qdrant_server else "embedded"
        logger.info(
            f"Configuring local client: model={settings.embedding_model}, "
            f"dims={settings.embedding_model_dims}, qdrant={target}, collection={settings.collection_name}"
        )
        client = Memory.from_config(config)
        logger.info("Local client initialized successfully with custom configuration")
        return cls(client)

    def _add(self, request: AddMemoryRequest) -> Any:
        options: Dict[str, Any] = {
            "user_id": request.user_id,
            "run_id": request.session_id,
            "metadata": request.metadata,
        }
        if request.agent_id:
            options["agent_id"] = request.agent_id
        return self.client.add(request.messages(), **options)

    def _search(self, request: SearchMemoryRequest) -> Any:
        options: Dict[str, Any] = {
            "user_id": request.user_id,
            "run_id": request.session_id,
            "filters": request.filters,
            "threshold": request.effective_threshold,
        }
        if request.agent_id:
            options["agent_id"] = request.agent_id
        return self.client.search(request.query, **options)

    def delete_primary(self, request: DeleteMemoryRequest) -> None:
        self.client.delete(request.memory_id)

    def delete_fallback(self, request: DeleteMemoryRequest) -> None:
        """Remove the point straight from the vector store"""
        vector_store = getattr(self.client, "vector_store", None)
        if vector_store is None or not callable(getattr(vector_store, "delete", None)):
            raise BackendError("Local client does not support memory deletion", operation="delete")
        vector_store.delete(vector_id=request.memory_id)
        logger.info(f"Memory {request.memory_id} deleted using vector store delete")
