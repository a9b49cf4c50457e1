"""
Exception types for the Mem0 MCP Server
Copyright 2025 Jurden Bruce
"""


class ConfigurationError(RuntimeError):
    """Raised when the environment does not describe a usable backend."""


class BackendError(RuntimeError):
    """Raised when a memory backend call fails after its fallback."""

    def __init__(self, message: str, operation: str = "unknown"):
        super().__init__(message)
        self.operation = operation


class ValidationIssue(ValueError):
    """Raised when tool arguments do not form a valid request."""

    def __init__(self, message: str, field: str = "unknown"):
        super().__init__(message)
        self.field = field
