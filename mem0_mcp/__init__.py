"""
Mem0 MCP Server - add/search/delete Mem0 memories over MCP stdio
Copyright 2025 Jurden Bruce
"""

__version__ = "0.3.3"

from .config import Settings, select_mode
from .errors import BackendError, ConfigurationError, ValidationIssue
from .models import (
    AddMemoryRequest,
    DeleteMemoryRequest,
    Mode,
    SearchMemoryRequest,
)

__all__ = [
    'Settings',
    'select_mode',
    'BackendError',
    'ConfigurationError',
    'ValidationIssue',
    'AddMemoryRequest',
    'DeleteMemoryRequest',
    'Mode',
    'SearchMemoryRequest',
]
