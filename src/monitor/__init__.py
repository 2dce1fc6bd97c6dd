"""
Mailbox Response Monitor

A long-running poller that watches a mailbox for replies to notifications
sent by the log processor and hands each distinct response to it exactly
once through an append-only response file.

Features:
- IMAP polling bounded by the session start time
- In-process dedup of handled messages
- Drop-folder fallback when the mailbox is unreachable
- Heuristic response extraction from free-form bodies
- Timestamped, append-only response file plus an in-process channel
"""

from .models import (
    CandidateMessage,
    ResponseRecord,
    TransportResult,
    DropFile,
)

from .config import MonitorConfig

from .exceptions import (
    MonitorError,
    ConfigurationError,
    TransportError,
    SinkError,
)

from .extractor import extract_response
from .tracker import ProcessedIdSet
from .imap_transport import ImapTransport
from .drop_folder import DropFolder
from .sink import ResponseSink, ResponseReader
from .settings import (
    find_config_file,
    load_settings,
    apply_env_overrides,
    build_config,
)
from .service import ResponseMonitor


__all__ = [
    # Models
    "CandidateMessage",
    "ResponseRecord",
    "TransportResult",
    "DropFile",
    # Config
    "MonitorConfig",
    "find_config_file",
    "load_settings",
    "apply_env_overrides",
    "build_config",
    # Exceptions
    "MonitorError",
    "ConfigurationError",
    "TransportError",
    "SinkError",
    # Components
    "extract_response",
    "ProcessedIdSet",
    "ImapTransport",
    "DropFolder",
    "ResponseSink",
    "ResponseReader",
    # Main Service
    "ResponseMonitor",
]

__version__ = "0.1.0"
