"""Shared fixtures: an in-memory TUS server and a transport that talks to it."""

import base64
import hashlib
from typing import Optional

import pytest

from tus_session.exceptions import TransportError
from tus_session.transport import Transport, TusRequest, TusResponse


class FakeTusServer:
    """In-memory TUS 1.0.0 server (creation, termination and checksum extensions).

    Upload ids are "up-1", "up-2", ... in creation order. Every handled request
    is kept in ``requests``.
    """

    TUS_VERSION = "1.0.0"
    SUPPORTED_EXTENSIONS = ["creation", "termination", "checksum"]

    def __init__(self, endpoint: str = "/files/", location_prefix: str = "", max_size: int = 0):
        self.endpoint = endpoint
        self.location_prefix = location_prefix
        self.max_size = max_size
        self.uploads: dict[str, dict] = {}
        self.requests: list[TusRequest] = []
        self._next_id = 1

    def _upload_id(self, path: str) -> Optional[str]:
        if path.startswith(self.location_prefix):
            path = path[len(self.location_prefix) :]
        if path.startswith(self.endpoint) and len(path) > len(self.endpoint):
            return path[len(self.endpoint) :]
        return None

    def handle(self, request: TusRequest) -> TusResponse:
        self.requests.append(request)
        headers = {k.lower(): v for k, v in request.headers.items()}
        body = request.body or b""

        if request.method == "OPTIONS":
            response_headers = {
                "Tus-Resumable": self.TUS_VERSION,
                "Tus-Version": self.TUS_VERSION,
                "Tus-Extension": ",".join(self.SUPPORTED_EXTENSIONS),
            }
            if self.max_size > 0:
                response_headers["Tus-Max-Size"] = str(self.max_size)
            return TusResponse(204, response_headers, reason="No Content")

        if headers.get("tus-resumable") != self.TUS_VERSION:
            return TusResponse(
                412,
                {"Tus-Version": self.TUS_VERSION},
                b"Invalid TUS version",
                "Precondition Failed",
            )

        if request.method == "POST" and request.target == self.endpoint:
            return self._create(headers)

        upload_id = self._upload_id(request.target)
        if upload_id is None or request.method not in ("HEAD", "PATCH", "DELETE"):
            return TusResponse(404, {}, b"Not Found", "Not Found")
        upload = self.uploads.get(upload_id)
        if upload is None:
            return TusResponse(404, {}, b"Upload not found", "Not Found")

        if request.method == "HEAD":
            return TusResponse(
                200,
                {
                    "Tus-Resumable": self.TUS_VERSION,
                    "Upload-Offset": str(upload["offset"]),
                    "Upload-Length": str(upload["length"]),
                    "Cache-Control": "no-store",
                },
                reason="OK",
            )
        if request.method == "DELETE":
            del self.uploads[upload_id]
            return TusResponse(204, {"Tus-Resumable": self.TUS_VERSION}, reason="No Content")
        return self._patch(upload, headers, body)

    def _create(self, headers: dict[str, str]) -> TusResponse:
        try:
            length = int(headers["upload-length"])
        except (KeyError, ValueError):
            return TusResponse(400, {}, b"Invalid Upload-Length header", "Bad Request")
        if self.max_size > 0 and length > self.max_size:
            return TusResponse(413, {}, b"Upload exceeds maximum size", "Request Entity Too Large")

        metadata = {}
        for pair in filter(None, headers.get("upload-metadata", "").split(",")):
            key, _, value = pair.strip().partition(" ")
            metadata[key] = base64.b64decode(value).decode("utf-8")

        upload_id = f"up-{self._next_id}"
        self._next_id += 1
        self.uploads[upload_id] = {
            "length": length,
            "offset": 0,
            "data": bytearray(),
            "metadata": metadata,
        }
        return TusResponse(
            201,
            {
                "Tus-Resumable": self.TUS_VERSION,
                "Location": f"{self.location_prefix}{self.endpoint}{upload_id}",
                "Upload-Offset": "0",
            },
            reason="Created",
        )

    def _patch(self, upload: dict, headers: dict[str, str], body: bytes) -> TusResponse:
        if headers.get("content-type") != "application/offset+octet-stream":
            return TusResponse(415, {}, b"Invalid Content-Type", "Unsupported Media Type")
        try:
            offset = int(headers["upload-offset"])
        except (KeyError, ValueError):
            return TusResponse(400, {}, b"Invalid Upload-Offset header", "Bad Request")
        if offset != upload["offset"]:
            return TusResponse(409, {}, b"Upload-Offset mismatch", "Conflict")
        if "content-length" in headers and int(headers["content-length"]) != len(body):
            return TusResponse(400, {}, b"Content-Length mismatch", "Bad Request")
        if offset + len(body) > upload["length"]:
            return TusResponse(413, {}, b"Chunk exceeds Upload-Length", "Request Entity Too Large")

        checksum = headers.get("upload-checksum")
        if checksum:
            algo, _, value = checksum.partition(" ")
            if algo != "sha1" or hashlib.sha1(body).digest() != base64.b64decode(value):
                return TusResponse(460, {}, b"Checksum mismatch", "Checksum Mismatch")

        upload["data"].extend(body)
        upload["offset"] += len(body)
        return TusResponse(
            204,
            {"Tus-Resumable": self.TUS_VERSION, "Upload-Offset": str(upload["offset"])},
            reason="No Content",
        )


class FakeTransport(Transport):
    """Transport delivering requests straight to a FakeTusServer.

    ``fail_next(applied=...)`` makes the next send raise TransportError, either
    before the server sees the request or after it has processed it (a lost
    response). Responses queued with ``script()`` are returned instead of
    asking the server.
    """

    def __init__(self, server: FakeTusServer):
        self.server = server
        self.sent: list[TusRequest] = []
        self.connected = False
        self.closed = False
        self._failure: Optional[bool] = None
        self._scripted: list[TusResponse] = []

    def script(self, *responses: TusResponse) -> None:
        self._scripted.extend(responses)

    def fail_next(self, applied: bool = False) -> None:
        self._failure = applied

    def connect(self) -> None:
        self.connected = True

    def close(self) -> None:
        self.closed = True

    def send(self, request: TusRequest) -> TusResponse:
        self.sent.append(request)
        if self.trace:
            self.trace(request)

        failure, self._failure = self._failure, None
        if failure is False:
            raise TransportError(f"{request.method} {request.target} timed out")
        if self._scripted:
            response = self._scripted.pop(0)
        else:
            response = self.server.handle(request)
        if failure:
            raise TransportError(f"{request.method} {request.target} timed out")

        if self.trace:
            self.trace(response)
        return response


@pytest.fixture
def tus_server():
    """Create an in-memory TUS server."""
    return FakeTusServer()


@pytest.fixture
def transport(tus_server):
    """Create a transport bound to the in-memory server."""
    return FakeTransport(tus_server)


@pytest.fixture
def payload():
    """1 KiB of non-repeating test data."""
    return bytes(range(256)) * 4
