"""
Shared fixtures for Mem0 MCP Server tests
Copyright 2025 Jurden Bruce

Fake Mem0 clients stand in for MemoryClient / Memory so no test touches
the network or builds embeddings.
"""

import threading

import pytest

from mem0_mcp.config import Settings
from mem0_mcp.backends import CloudBackend, LocalBackend


class FakeVectorStore:
    def __init__(self, error=None):
        self.error = error
        self.deleted = []

    def delete(self, vector_id):
        if self.error:
            raise self.error
        self.deleted.append(vector_id)


class FakeMem0Client:
    """Records every call; the ``*_error`` attributes make the matching call raise"""

    def __init__(self, search_result=None):
        self.calls = []
        self.search_result = search_result if search_result is not None else {"results": []}
        self.add_error = None
        self.search_error = None
        self.delete_error = None
        self.add_gate = None
        self.vector_store = FakeVectorStore()

    def add(self, messages, **options):
        if self.add_gate is not None:
            self.add_gate.wait(timeout=5)
        self.calls.append(("add", messages, options))
        if self.add_error:
            raise self.add_error
        return {"results": [{"id": "m-1", "event": "ADD"}]}

    def search(self, query, **options):
        self.calls.append(("search", query, options))
        if self.search_error:
            raise self.search_error
        return self.search_result

    def delete(self, memory_id):
        self.calls.append(("delete", memory_id, {}))
        if self.delete_error:
            raise self.delete_error
        return {"message": "Memory deleted successfully!"}

    def names(self):
        return [call[0] for call in self.calls]


@pytest.fixture
def fake_client():
    return FakeMem0Client()


@pytest.fixture
def cloud_settings():
    return Settings.from_env({"MEM0_API_KEY": "m0-test-key"})


@pytest.fixture
def local_settings():
    return Settings.from_env({"OPENAI_API_KEY": "sk-test"})


@pytest.fixture
def cloud_backend(fake_client, cloud_settings):
    return CloudBackend(fake_client, cloud_settings)


@pytest.fixture
def local_backend(fake_client):
    return LocalBackend(fake_client)


@pytest.fixture
def gate():
    return threading.Event()
