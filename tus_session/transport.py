"""HTTP transport used by the upload session.

The session only ever talks to a ``Transport``: it hands over a ``TusRequest``
and gets back a ``TusResponse`` or a ``TransportError``. ``HTTPTransport`` is
the concrete implementation, keeping one persistent ``http.client`` connection
(TLS by default) to the configured host.
"""

import http.client
import logging
import socket
import ssl
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Optional, Union
from urllib.parse import urlsplit

from tus_session.config import TusConfig
from tus_session.exceptions import TransportError

logger = logging.getLogger(__name__)


@dataclass
class TusRequest:
    """A single HTTP request issued by the session.

    Attributes:
        method: HTTP method
        target: Request path, or an absolute URL returned by the server
        headers: Header names to values
        body: Optional request body
    """

    method: str
    target: str
    headers: dict[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None


@dataclass
class TusResponse:
    """A fully read HTTP response.

    Attributes:
        status_code: HTTP status code
        headers: Response headers as received
        body: Response body (empty for HEAD)
        reason: HTTP reason phrase
    """

    status_code: int
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    reason: str = ""

    def header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Case-insensitive header lookup."""
        name = name.lower()
        for key, value in self.headers.items():
            if key.lower() == name:
                return value
        return default

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


TraceCallback = Callable[[Union[TusRequest, TusResponse]], None]


class Transport(ABC):
    """Abstract request/response transport.

    Implementations own the connection. ``send`` must either return a complete
    response or raise ``TransportError``; it never returns a partial result.
    ``trace``, when set, is called with every request and response.
    """

    trace: Optional[TraceCallback] = None

    @abstractmethod
    def send(self, request: TusRequest) -> TusResponse:
        """
        Send a request and wait for its response.

        Args:
            request: Request to send

        Returns:
            The server's response, whatever its status code

        Raises:
            TransportError: On connection, timeout or I/O failure
        """
        pass

    def connect(self) -> None:
        """Open the connection ahead of the first request, if the transport has one."""
        pass

    def close(self) -> None:
        """Release the underlying connection, if any."""
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class HTTPTransport(Transport):
    """Transport over a single persistent HTTP/1.1 connection.

    The connection is opened by ``connect()`` (or lazily by the first
    ``send()``). It is dropped after any failure or when the server announces
    it will close, and reopened on the next ``send()``.

    A request body without a ``Content-Length`` header is sent with
    ``Transfer-Encoding: chunked``.

    Example:
        >>> config = TusConfig(host="tusd.tusdemo.net")
        >>> with HTTPTransport(config) as transport:
        ...     transport.connect()
        ...     response = transport.send(TusRequest("OPTIONS", "/files/"))
    """

    def __init__(
        self,
        config: Optional[TusConfig] = None,
        trace: Optional[TraceCallback] = None,
        ssl_context: Optional[ssl.SSLContext] = None,
    ):
        """Initialize the transport.

        Args:
            config: Connection settings (defaults to TusConfig())
            trace: Optional callback receiving every request and response
            ssl_context: Custom TLS context (built from config when omitted)
        """
        self.config = config or TusConfig()
        self.trace = trace
        self.ssl_context = ssl_context
        self._conn: Optional[http.client.HTTPConnection] = None

    @property
    def connected(self) -> bool:
        return self._conn is not None and self._conn.sock is not None

    def _make_ssl_context(self) -> ssl.SSLContext:
        if self.ssl_context is not None:
            return self.ssl_context
        context = ssl.create_default_context()
        context.minimum_version = ssl.TLSVersion.TLSv1_2
        if not self.config.verify_tls_cert:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        return context

    def connect(self) -> None:
        """Resolve the host, connect and (with TLS) perform the handshake.

        Raises:
            TransportError: If the connection cannot be established
        """
        if self.connected:
            return

        if self.config.use_tls:
            conn = http.client.HTTPSConnection(
                self.config.host,
                self.config.port,
                timeout=self.config.timeout,
                context=self._make_ssl_context(),
            )
        else:
            conn = http.client.HTTPConnection(
                self.config.host, self.config.port, timeout=self.config.timeout
            )

        try:
            conn.connect()
        except (OSError, http.client.HTTPException) as e:
            conn.close()
            raise TransportError(
                f"Failed to connect to {self.config.host}:{self.config.port}: {e}"
            ) from e

        logger.info(
            f"Connected to {self.config.host}:{self.config.port} "
            f"({'TLS' if self.config.use_tls else 'plain'})"
        )
        self._conn = conn

    def close(self) -> None:
        """Close the connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.debug(f"Closed connection to {self.config.host}:{self.config.port}")

    def _request_path(self, target: str) -> str:
        """Reduce an absolute URL to the path (and query) sent on the request line."""
        parts = urlsplit(target)
        if not parts.scheme:
            return target

        default_port = 443 if parts.scheme.lower() == "https" else 80
        try:
            port = parts.port or default_port
        except ValueError:
            port = None
        if (
            parts.scheme.lower() != self.config.scheme
            or (parts.hostname or "").lower() != self.config.host.lower()
            or port != self.config.port
        ):
            raise TransportError(
                f"Target {target} is not on the connected server {self.config.base_url}"
            )
        path = parts.path or "/"
        if parts.query:
            path = f"{path}?{parts.query}"
        return path

    def send(self, request: TusRequest) -> TusResponse:
        """Send a request over the persistent connection.

        Raises:
            TransportError: On connection, timeout or I/O failure
        """
        path = self._request_path(request.target)
        headers = {"Host": self.config.netloc, **request.headers}
        header_names = {name.lower() for name in headers}

        encode_chunked = False
        if request.body is not None and "content-length" not in header_names:
            headers["Transfer-Encoding"] = "chunked"
            encode_chunked = True

        if self.trace:
            self.trace(TusRequest(request.method, path, dict(headers), request.body))

        self.connect()
        logger.debug(f"{request.method} {path} headers={headers}")

        try:
            self._conn.request(
                request.method,
                path,
                body=request.body,
                headers=headers,
                encode_chunked=encode_chunked,
            )
            raw = self._conn.getresponse()
            body = raw.read()
        except (OSError, http.client.HTTPException) as e:
            self.close()
            if isinstance(e, socket.timeout):
                message = f"{request.method} {path} timed out after {self.config.timeout}s"
            else:
                message = f"{request.method} {path} failed: {e}"
            raise TransportError(message) from e
        except BaseException:
            # A half-written request leaves http.client unable to send another.
            self.close()
            raise

        response = TusResponse(
            status_code=raw.status,
            headers=dict(raw.getheaders()),
            body=body,
            reason=raw.reason,
        )
        logger.debug(f"{request.method} {path} -> {response.status_code} {response.reason}")

        if raw.will_close:
            self.close()

        if self.trace:
            self.trace(response)

        return response


def format_request(request: TusRequest) -> str:
    """Render a request the way it goes on the wire, without the body."""
    lines = [f"{request.method} {request.target} HTTP/1.1"]
    lines.extend(f"{name}: {value}" for name, value in request.headers.items())
    if request.body:
        lines.append(f"<{len(request.body)} bytes of body>")
    return "\n".join(lines)


def format_response(response: TusResponse) -> str:
    """Render a response status line, headers and (text) body."""
    lines = [f"HTTP/1.1 {response.status_code} {response.reason}".rstrip()]
    lines.extend(f"{name}: {value}" for name, value in response.headers.items())
    if response.body:
        lines.append("")
        lines.append(response.body.decode("utf-8", errors="replace"))
    return "\n".join(lines)
