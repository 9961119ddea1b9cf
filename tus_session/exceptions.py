"""
Global tus_session exception classes.

Every error raised by the session or a transport derives from TusError, so a
caller can tell library failures apart from argument errors (ValueError).
"""


class TusError(Exception):
    """
    Base exception for TUS upload failures.

    Attributes:
        message (str): Main message of the exception
        status_code (int): HTTP status code of response indicating an error
        response_content (bytes): Content of response indicating an error
    """

    def __init__(self, message, status_code=None, response_content=None):
        default_message = f"TUS request failed with status {status_code}"
        message = message or default_message
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.response_content = response_content


class TransportError(TusError):
    """Connection, timeout or I/O failure. Never retried internally."""

    pass


class ProtocolError(TusError):
    """Server response was unsuccessful or did not follow the TUS protocol."""

    pass


class NotFoundError(TusError):
    """Upload resource does not exist (or no longer exists) on the server."""

    pass


class OffsetConflictError(TusError):
    """
    Declared Upload-Offset does not match the server's offset.

    Attributes:
        declared_offset (int): Offset sent with the rejected PATCH
        local_offset (int): Session offset at the time of the request
    """

    def __init__(
        self,
        message,
        declared_offset=None,
        local_offset=None,
        status_code=409,
        response_content=None,
    ):
        super().__init__(message, status_code=status_code, response_content=response_content)
        self.declared_offset = declared_offset
        self.local_offset = local_offset


class SessionStateError(TusError):
    """Operation is not allowed in the session's current state."""

    pass
