"""
Memory backends for the Mem0 MCP Server
Copyright 2025 Jurden Bruce
"""

from ..config import Settings
from ..models import Mode
from .base import MemoryBackend
from .cloud import CloudBackend
from .local import LocalBackend, build_local_config


def build_backend(settings: Settings, mode: Mode) -> MemoryBackend:
    """Construct the backend for the selected mode (blocking)"""
    if mode is Mode.CLOUD:
        return CloudBackend.from_settings(settings)
    return LocalBackend.from_settings(settings)


__all__ = ['MemoryBackend', 'CloudBackend', 'LocalBackend', 'build_local_config', 'build_backend']
