"""
Request models for the Mem0 MCP Server
Copyright 2025 Jurden Bruce
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from .errors import ValidationIssue

DEFAULT_THRESHOLD = 0.3


class Mode(str, Enum):
    """Which Mem0 backend the process is bound to"""
    CLOUD = "cloud"
    LOCAL = "local"


def _required_str(arguments: Mapping[str, Any], key: str, default: Optional[str] = None) -> str:
    value = arguments.get(key)
    if value is None or value == "":
        value = default
    if not value:
        raise ValidationIssue(f"Missing required argument: {key}", field=key)
    if not isinstance(value, str):
        raise ValidationIssue(f"Invalid argument: {key} must be a string", field=key)
    return value


def _optional_str(arguments: Mapping[str, Any], key: str, default: Optional[str] = None) -> Optional[str]:
    value = arguments.get(key)
    if value is None or value == "":
        return default
    if not isinstance(value, str):
        raise ValidationIssue(f"Invalid argument: {key} must be a string", field=key)
    return value


def _optional_mapping(arguments: Mapping[str, Any], key: str) -> Optional[Dict[str, Any]]:
    value = arguments.get(key)
    if value is None:
        return None
    if not isinstance(value, dict):
        raise ValidationIssue(f"Invalid argument: {key} must be an object", field=key)
    return value


@dataclass(frozen=True)
class RequestDefaults:
    """Identifiers applied when a call leaves them out"""
    user_id: Optional[str] = None
    session_id: Optional[str] = None


@dataclass(frozen=True)
class AddMemoryRequest:
    content: str
    user_id: str
    session_id: Optional[str] = None
    agent_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    @classmethod
    def from_arguments(cls, arguments: Mapping[str, Any], defaults: RequestDefaults = RequestDefaults()) -> "AddMemoryRequest":
        return cls(
            content=_required_str(arguments, "content"),
            user_id=_required_str(arguments, "userId", defaults.user_id),
            session_id=_optional_str(arguments, "sessionId", defaults.session_id),
            agent_id=_optional_str(arguments, "agentId"),
            metadata=_optional_mapping(arguments, "metadata"),
        )

    def messages(self) -> List[Dict[str, str]]:
        """Message payload Mem0 extracts memories from"""
        return [{"role": "user", "content": self.content}]


@dataclass(frozen=True)
class SearchMemoryRequest:
    query: str
    user_id: str
    session_id: Optional[str] = None
    agent_id: Optional[str] = None
    filters: Optional[Dict[str, Any]] = None
    threshold: Optional[float] = None

    @classmethod
    def from_arguments(cls, arguments: Mapping[str, Any], defaults: RequestDefaults = RequestDefaults()) -> "SearchMemoryRequest":
        query = _required_str(arguments, "query")
        user_id = _required_str(arguments, "userId", defaults.user_id)

        threshold = arguments.get("threshold")
        if threshold is not None:
            # bool is an int subclass but never a similarity score
            if isinstance(threshold, bool) or not isinstance(threshold, (int, float)):
                raise ValidationIssue("Invalid argument: threshold must be a number", field="threshold")
            if not 0.0 <= threshold <= 1.0:
                raise ValidationIssue("Invalid argument: threshold must be between 0 and 1", field="threshold")
            threshold = float(threshold)

        return cls(
            query=query,
            user_id=user_id,
            session_id=_optional_str(arguments, "sessionId", defaults.session_id),
            agent_id=_optional_str(arguments, "agentId"),
            filters=_optional_mapping(arguments, "filters"),
            threshold=threshold,
        )

    @property
    def effective_threshold(self) -> float:
        return DEFAULT_THRESHOLD if self.threshold is None else self.threshold


@dataclass(frozen=True)
class DeleteMemoryRequest:
    memory_id: str
    user_id: str
    agent_id: Optional[str] = None

    @classmethod
    def from_arguments(cls, arguments: Mapping[str, Any], defaults: RequestDefaults = RequestDefaults()) -> "DeleteMemoryRequest":
        return cls(
            memory_id=_required_str(arguments, "memoryId"),
            user_id=_required_str(arguments, "userId", defaults.user_id),
            agent_id=_optional_str(arguments, "agentId"),
        )
