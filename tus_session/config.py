"""Connection and protocol settings for a TUS upload."""

from dataclasses import dataclass
from typing import Optional

from tus_session import __version__

DEFAULT_HOST = "tusd.tusdemo.net"
DEFAULT_PORT = 443
DEFAULT_ENDPOINT = "/files/"
TUS_VERSION = "1.0.0"


@dataclass
class TusConfig:
    """Settings shared by the session and the transport.

    Attributes:
        host: Remote host name (also used for SNI and the Host header)
        port: Remote TCP port
        endpoint: Creation endpoint path, e.g. "/files/"
        protocol_version: Value of the Tus-Resumable header
        user_agent: Value of the User-Agent header
        use_tls: Wrap the connection in TLS
        verify_tls_cert: Verify the server certificate and host name
        timeout: Socket timeout in seconds (None blocks forever)
    """

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    endpoint: str = DEFAULT_ENDPOINT
    protocol_version: str = TUS_VERSION
    user_agent: str = f"tus-session/{__version__}"
    use_tls: bool = True
    verify_tls_cert: bool = True
    timeout: Optional[float] = 30.0

    def __post_init__(self):
        if not self.host:
            raise ValueError("host must not be empty")
        if not 0 < self.port < 65536:
            raise ValueError(f"port must be between 1 and 65535, got {self.port}")
        if not self.endpoint.startswith("/"):
            raise ValueError(f"endpoint must start with '/', got {self.endpoint!r}")
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError(f"timeout must be positive, got {self.timeout}")

    @property
    def scheme(self) -> str:
        return "https" if self.use_tls else "http"

    @property
    def netloc(self) -> str:
        """Host, plus the port when it is not the scheme default (the Host header value)."""
        default_port = 443 if self.use_tls else 80
        return self.host if self.port == default_port else f"{self.host}:{self.port}"

    @property
    def base_url(self) -> str:
        """Absolute URL of the creation endpoint."""
        return f"{self.scheme}://{self.netloc}{self.endpoint}"
