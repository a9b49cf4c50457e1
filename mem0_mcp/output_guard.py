"""
Stdout protection for the Mem0 MCP Server
Copyright 2025 Jurden Bruce

The stdio transport owns stdout. Everything else (our logging, library
chatter, stray prints from C extensions) goes to stderr.
"""

import os
import sys
import logging
from io import TextIOWrapper
from typing import Optional, TextIO

import anyio

SERVER_LOGGER = "mem0-mcp"

LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(origin)s] [%(name)s] %(message)s"

# Libraries the backends pull in that log at INFO/DEBUG on every request
NOISY_LOGGERS = ["httpx", "httpcore", "urllib3", "qdrant_client", "openai", "mem0", "backoff"]


class OriginFilter(logging.Filter):
    """Tag records as coming from this server or from a backend library"""

    def __init__(self, server_logger: str = SERVER_LOGGER):
        super().__init__()
        self.server_logger = server_logger

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name
        if name == self.server_logger or name.startswith(self.server_logger + "."):
            record.origin = "server"
        else:
            record.origin = "backend"
        return True


def configure_logging(level: str = "INFO", stream: Optional[TextIO] = None) -> logging.Handler:
    """Send all logging to stderr with an origin tag"""
    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.addFilter(OriginFilter())
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    logging.basicConfig(level=logging.INFO, handlers=[handler], force=True)
    logging.getLogger(SERVER_LOGGER).setLevel(getattr(logging, level, logging.INFO))

    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    return handler


class OutputGuard:
    """
    Redirect the stdout descriptor to stderr while keeping a private copy
    for protocol frames.

    After ``install`` any write to fd ``stdout_fd`` lands on ``stderr_fd``;
    only the stream from ``protocol_stdout`` reaches the real stdout.
    ``restore`` undoes the redirection and is safe to call repeatedly.
    """

    def __init__(self, stdout_fd: int = 1, stderr_fd: int = 2):
        self.stdout_fd = stdout_fd
        self.stderr_fd = stderr_fd
        self._saved_fd: Optional[int] = None
        self._protocol_stream: Optional[anyio.AsyncFile] = None

    @property
    def installed(self) -> bool:
        return self._saved_fd is not None

    def install(self):
        if self._saved_fd is not None:
            return
        self._flush_stdout()
        self._saved_fd = os.dup(self.stdout_fd)
        os.dup2(self.stderr_fd, self.stdout_fd)

    def protocol_stdout(self) -> anyio.AsyncFile:
        """Async text stream over the original stdout, for the MCP transport"""
        if self._saved_fd is None:
            raise RuntimeError("Output guard is not installed")
        if self._protocol_stream is None:
            raw = os.fdopen(os.dup(self._saved_fd), "wb")
            self._protocol_stream = anyio.wrap_file(TextIOWrapper(raw, encoding="utf-8"))
        return self._protocol_stream

    def restore(self):
        if self._saved_fd is None:
            return
        self._close_protocol_stream()
        self._flush_stdout()
        os.dup2(self._saved_fd, self.stdout_fd)
        os.close(self._saved_fd)
        self._saved_fd = None

    def _close_protocol_stream(self):
        stream, self._protocol_stream = self._protocol_stream, None
        if stream is None:
            return
        try:
            stream.wrapped.close()
        except (OSError, ValueError) as e:
            logging.getLogger(SERVER_LOGGER).debug(f"Protocol stream already closed: {e}")

    def _flush_stdout(self):
        if self.stdout_fd == 1 and sys.stdout is not None:
            try:
                sys.stdout.flush()
            except (OSError, ValueError):
                pass

    def __enter__(self) -> "OutputGuard":
        self.install()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.restore()
