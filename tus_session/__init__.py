"""TUS Upload Session

A Python client for the TUS resumable upload protocol built around an explicit
upload state machine and a pluggable request/response transport.
"""

__version__ = "0.1.0"

from tus_session.config import TusConfig
from tus_session.exceptions import (
    NotFoundError,
    OffsetConflictError,
    ProtocolError,
    SessionStateError,
    TransportError,
    TusError,
)
from tus_session.session import TusUploadSession, UploadState
from tus_session.stats import UploadStats
from tus_session.transport import HTTPTransport, Transport, TusRequest, TusResponse

__all__ = [
    "TusUploadSession",
    "UploadState",
    "UploadStats",
    "TusConfig",
    "Transport",
    "HTTPTransport",
    "TusRequest",
    "TusResponse",
    "TusError",
    "TransportError",
    "ProtocolError",
    "OffsetConflictError",
    "NotFoundError",
    "SessionStateError",
]
