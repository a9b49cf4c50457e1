"""
Environment configuration for the Mem0 MCP Server
Copyright 2025 Jurden Bruce

All settings come from environment variables and are read once at startup.
"""

import os
import logging
from dataclasses import dataclass
from typing import Mapping, Optional

from .errors import ConfigurationError
from .models import Mode, RequestDefaults

logger = logging.getLogger("mem0-mcp.config")

DEFAULT_EMBEDDING_MODEL = "text-embedding-3-large"
DEFAULT_EMBEDDING_DIMS = 3072
DEFAULT_QDRANT_COLLECTION = "memories"
DEFAULT_MEMORY_COLLECTION = "mem0_default_collection"
DEFAULT_API_HOST = "https://api.mem0.ai"


def _first(environ: Mapping[str, str], *names: str) -> Optional[str]:
    """First non-empty value among several variable names"""
    for name in names:
        value = environ.get(name)
        if value:
            return value
    return None


@dataclass(frozen=True)
class Settings:
    mem0_api_key: Optional[str] = None
    mem0_api_host: str = DEFAULT_API_HOST
    openai_api_key: Optional[str] = None
    default_user_id: Optional[str] = None
    default_session_id: Optional[str] = None
    org_id: Optional[str] = None
    project_id: Optional[str] = None
    embedding_model: str = DEFAULT_EMBEDDING_MODEL
    embedding_model_dims: int = DEFAULT_EMBEDDING_DIMS
    vector_db_provider: Optional[str] = None
    vector_db_url: Optional[str] = None
    vector_db_collection_name: Optional[str] = None
    vector_db_api_key: Optional[str] = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from the process environment (or a given mapping)"""
        if environ is None:
            environ = os.environ

        dims_raw = environ.get("EMBEDDING_MODEL_DIMS") or str(DEFAULT_EMBEDDING_DIMS)
        try:
            dims = int(dims_raw)
        except ValueError:
            raise ConfigurationError(f"EMBEDDING_MODEL_DIMS must be an integer, got {dims_raw!r}")

        provider = environ.get("VECTOR_DB_PROVIDER")

        return cls(
            mem0_api_key=environ.get("MEM0_API_KEY") or None,
            mem0_api_host=(environ.get("MEM0_API_HOST") or DEFAULT_API_HOST).rstrip("/"),
            openai_api_key=environ.get("OPENAI_API_KEY") or None,
            default_user_id=environ.get("DEFAULT_USER_ID") or None,
            default_session_id=_first(environ, "RUN_ID", "SESSION_ID"),
            org_id=_first(environ, "YOUR_ORG_ID", "ORG_ID"),
            project_id=_first(environ, "YOUR_PROJECT_ID", "PROJECT_ID"),
            embedding_model=environ.get("EMBEDDING_MODEL") or DEFAULT_EMBEDDING_MODEL,
            embedding_model_dims=dims,
            vector_db_provider=provider.lower() if provider else None,
            vector_db_url=environ.get("VECTOR_DB_URL") or None,
            vector_db_collection_name=environ.get("VECTOR_DB_COLLECTION_NAME") or None,
            vector_db_api_key=environ.get("VECTOR_DB_API_KEY") or None,
            log_level=(environ.get("LOG_LEVEL") or "INFO").upper(),
        )

    @property
    def request_defaults(self) -> RequestDefaults:
        return RequestDefaults(user_id=self.default_user_id, session_id=self.default_session_id)

    @property
    def uses_qdrant_server(self) -> bool:
        return self.vector_db_provider == "qdrant"

    @property
    def collection_name(self) -> str:
        if self.vector_db_collection_name:
            return self.vector_db_collection_name
        return DEFAULT_QDRANT_COLLECTION if self.uses_qdrant_server else DEFAULT_MEMORY_COLLECTION


def select_mode(settings: Settings) -> Mode:
    """
    Pick the one backend this process will use.

    The cloud key wins when both keys are present. Raises ConfigurationError
    when neither is set or the local vector store is incompletely described.
    """
    if settings.mem0_api_key:
        logger.info("Using Mem0 cloud storage mode with MEM0_API_KEY")
        return Mode.CLOUD

    if settings.openai_api_key:
        if settings.uses_qdrant_server and not settings.vector_db_url:
            raise ConfigurationError("VECTOR_DB_URL must be set when VECTOR_DB_PROVIDER=qdrant")
        logger.info("Using local storage mode with OPENAI_API_KEY")
        return Mode.LOCAL

    raise ConfigurationError(
        "Either MEM0_API_KEY (for cloud storage) or OPENAI_API_KEY (for local storage) must be provided."
    )
