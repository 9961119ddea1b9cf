"""TUS upload session: one resumable upload driven over a transport."""

import base64
import hashlib
import logging
import re
from enum import Enum
from typing import Callable, Optional, Union

from tus_session.config import TusConfig
from tus_session.exceptions import (
    NotFoundError,
    OffsetConflictError,
    ProtocolError,
    SessionStateError,
)
from tus_session.stats import UploadStats
from tus_session.transport import Transport, TusRequest, TusResponse

logger = logging.getLogger(__name__)

OFFSET_OCTET_STREAM = "application/offset+octet-stream"


class UploadState(Enum):
    """Lifecycle of an upload session."""

    CREATED = "created"
    LOCATION_KNOWN = "location_known"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    FAILED = "failed"


class TusUploadSession:
    """Resumable upload of one payload, following TUS protocol 1.0.0.

    See https://tus.io/protocols/resumable-upload.html

    The session keeps the upload location returned by the server and the
    number of bytes the server has accepted. ``upload_offset`` only moves after
    a response has been fully validated, so a failed or interrupted request
    never corrupts it; call ``query_offset()`` to resynchronise with the server.

    The session is not thread-safe: issue one operation at a time. It never
    opens or closes the transport.

    Example:
        >>> with HTTPTransport(config) as transport:
        ...     session = TusUploadSession(transport, payload, config)
        ...     session.create_upload()
        ...     session.upload_chunk(payload[:512], 0)
        ...     session.upload_chunk(payload[512:], 512, include_length=False)
        ...     assert session.is_complete()
    """

    def __init__(
        self,
        transport: Transport,
        payload: bytes,
        config: Optional[TusConfig] = None,
        metadata: Optional[dict[str, str]] = None,
        checksum: bool = False,
        headers: Optional[dict[str, str]] = None,
    ):
        """Initialize an upload session.

        Args:
            transport: Connected transport used for every request
            payload: Bytes to upload
            config: Protocol settings (defaults to TusConfig())
            metadata: Optional metadata sent as Upload-Metadata on creation
            checksum: Send a SHA1 Upload-Checksum header with each chunk
            headers: Optional extra headers included in all requests
        """
        self.transport = transport
        self.payload = bytes(payload)
        self.config = config or TusConfig()
        self.metadata = metadata or {}
        self.checksum = checksum
        self.headers = headers or {}

        self.target_location: Optional[str] = None
        self.total_length: Optional[int] = None
        self.upload_offset = 0
        self.state = UploadState.CREATED

    @property
    def protocol_version(self) -> str:
        return self.config.protocol_version

    def _base_headers(self) -> dict[str, str]:
        return {
            "Tus-Resumable": self.protocol_version,
            "User-Agent": self.config.user_agent,
            **self.headers,
        }

    def _require_location(self) -> str:
        if self.state is UploadState.FAILED:
            raise SessionStateError("Upload session has failed; start a new session")
        if self.target_location is None:
            raise SessionStateError("Upload has not been created yet")
        return self.target_location

    def _mark_not_found(self, response: TusResponse, action: str) -> NotFoundError:
        logger.warning(f"Upload {self.target_location} not found during {action}")
        self.state = UploadState.FAILED
        return NotFoundError(
            f"Upload {self.target_location} no longer exists",
            status_code=response.status_code,
            response_content=response.body,
        )

    def _advance_to(self, offset: int) -> None:
        self.upload_offset = offset
        if offset == self.total_length:
            self.state = UploadState.COMPLETED
        elif offset > 0:
            self.state = UploadState.UPLOADING

    def _parse_offset(self, response: TusResponse, action: str) -> int:
        value = response.header("Upload-Offset")
        if value is None:
            logger.error(f"{action} response is missing Upload-Offset")
            raise ProtocolError(
                "Server did not return Upload-Offset header",
                status_code=response.status_code,
                response_content=response.body,
            )
        if not re.fullmatch(r"[0-9]+", value):
            logger.error(f"{action} response has invalid Upload-Offset: {value!r}")
            raise ProtocolError(
                f"Invalid Upload-Offset header: {value!r}",
                status_code=response.status_code,
                response_content=response.body,
            )
        return int(value)

    def encode_metadata(self, metadata: dict[str, str]) -> list:
        """
        Encode metadata according to TUS protocol specification.

        Args:
            metadata: Dictionary of metadata key-value pairs

        Returns:
            List of "key base64value" strings

        Raises:
            ValueError: If metadata keys contain invalid characters
        """
        encoded_list = []
        for key, value in metadata.items():
            key_str = str(key)

            if re.search(r"^$|[\s,]+", key_str) or not key_str.isascii():
                raise ValueError(
                    f'Upload-metadata key "{key_str}" must be non-empty ASCII '
                    "without spaces or commas."
                )

            encoded_value = base64.b64encode(value.encode("utf-8")).decode("ascii")
            encoded_list.append(f"{key_str} {encoded_value}")

        return encoded_list

    def create_upload(self, total_length: Optional[int] = None) -> str:
        """Create the upload resource on the server.

        Args:
            total_length: Declared upload length (default: the payload length)

        Returns:
            The upload location returned by the server

        Raises:
            ValueError: If total_length is negative or exceeds the payload
            SessionStateError: If the upload was already created
            ProtocolError: On a non-success status or a missing Location header
            TransportError: If the request could not be completed
        """
        if self.state is UploadState.FAILED or self.target_location is not None:
            raise SessionStateError(f"Upload already created at {self.target_location}")

        if total_length is None:
            total_length = len(self.payload)
        if total_length < 0:
            raise ValueError(f"total_length must not be negative, got {total_length}")
        if total_length > len(self.payload):
            raise ValueError(
                f"total_length {total_length} exceeds payload size {len(self.payload)}"
            )

        headers = {**self._base_headers(), "Upload-Length": str(total_length)}
        encoded_metadata = self.encode_metadata(self.metadata)
        if encoded_metadata:
            headers["Upload-Metadata"] = ",".join(encoded_metadata)

        response = self.transport.send(TusRequest("POST", self.config.endpoint, headers))

        if not response.ok:
            logger.error(f"Upload creation rejected with status {response.status_code}")
            raise ProtocolError(
                f"Failed to create upload: {response.status_code} {response.reason}".rstrip(),
                status_code=response.status_code,
                response_content=response.body,
            )

        location = response.header("Location")
        if not location:
            logger.error("Upload creation response is missing Location")
            raise ProtocolError(
                "Server did not return Location header",
                status_code=response.status_code,
                response_content=response.body,
            )

        self.target_location = location
        self.total_length = total_length
        self.upload_offset = 0
        self.state = UploadState.COMPLETED if total_length == 0 else UploadState.LOCATION_KNOWN
        logger.info(f"Created upload {location} with length {total_length}")
        return location

    def query_offset(self) -> int:
        """Ask the server how many bytes it has accepted.

        Returns:
            The server's current offset, now also held in ``upload_offset``

        Raises:
            SessionStateError: If the upload was not created or has failed
            NotFoundError: If the upload no longer exists
            ProtocolError: On a non-success status or a bad Upload-Offset
            TransportError: If the request could not be completed
        """
        location = self._require_location()
        response = self.transport.send(TusRequest("HEAD", location, self._base_headers()))

        if response.status_code in (404, 410):
            raise self._mark_not_found(response, "HEAD")
        if not response.ok:
            raise ProtocolError(
                f"Failed to get offset: {response.status_code} {response.reason}".rstrip(),
                status_code=response.status_code,
                response_content=response.body,
            )

        offset = self._parse_offset(response, "HEAD")

        length = response.header("Upload-Length")
        if length is not None and length.strip() != str(self.total_length):
            logger.error(f"Server reports Upload-Length {length}, expected {self.total_length}")
            raise ProtocolError(
                f"Server reports Upload-Length {length}, expected {self.total_length}",
                status_code=response.status_code,
            )
        if offset > self.total_length:
            raise ProtocolError(
                f"Server offset {offset} exceeds upload length {self.total_length}",
                status_code=response.status_code,
            )
        if offset < self.upload_offset:
            logger.error(f"Server offset {offset} went back from {self.upload_offset}")
            raise ProtocolError(
                f"Server offset {offset} is behind accepted offset {self.upload_offset}",
                status_code=response.status_code,
            )

        if offset != self.upload_offset:
            logger.info(f"Server offset for {location} is {offset} (was {self.upload_offset})")
        self._advance_to(offset)
        return offset

    def upload_chunk(self, data: bytes, declared_offset: int, include_length: bool = True) -> int:
        """Append bytes to the upload at ``declared_offset``.

        Args:
            data: Bytes to append
            declared_offset: Value of the Upload-Offset header
            include_length: Send an explicit Content-Length header; when False
                the body length is left to the transport's framing

        Returns:
            The new upload offset

        Raises:
            ValueError: If the offset is negative, or a chunk at the accepted
                offset would run past the declared length
            SessionStateError: If the upload was not created or has failed
            OffsetConflictError: If the server's offset differs from declared_offset
            NotFoundError: If the upload no longer exists
            ProtocolError: On another non-success status or a bad response
            TransportError: If the request could not be completed
        """
        location = self._require_location()
        data = bytes(data)

        if declared_offset < 0:
            raise ValueError(f"declared_offset must not be negative, got {declared_offset}")
        at_local_offset = declared_offset == self.upload_offset
        if at_local_offset and declared_offset + len(data) > self.total_length:
            raise ValueError(
                f"Chunk of {len(data)} bytes at offset {declared_offset} "
                f"exceeds upload length {self.total_length}"
            )

        headers = {
            **self._base_headers(),
            "Upload-Offset": str(declared_offset),
            "Content-Type": OFFSET_OCTET_STREAM,
        }
        if include_length:
            headers["Content-Length"] = str(len(data))

        if self.checksum:
            checksum_b64 = base64.b64encode(hashlib.sha1(data).digest()).decode("ascii")
            headers["Upload-Checksum"] = f"sha1 {checksum_b64}"

        response = self.transport.send(TusRequest("PATCH", location, headers, data))

        if response.status_code == 409:
            logger.warning(
                f"Upload-Offset {declared_offset} rejected for {location} "
                f"(local offset {self.upload_offset})"
            )
            raise OffsetConflictError(
                f"Upload-Offset {declared_offset} does not match the server offset",
                declared_offset=declared_offset,
                local_offset=self.upload_offset,
                response_content=response.body,
            )
        if response.status_code in (404, 410):
            raise self._mark_not_found(response, "PATCH")
        if not response.ok:
            raise ProtocolError(
                f"Failed to upload chunk at offset {declared_offset}: "
                f"{response.status_code} {response.reason}".rstrip(),
                status_code=response.status_code,
                response_content=response.body,
            )

        new_offset = self._parse_offset(response, "PATCH")
        expected = declared_offset + len(data)
        if new_offset != expected:
            logger.error(
                f"PATCH at {declared_offset} reported offset {new_offset}, expected {expected}"
            )
            raise ProtocolError(
                f"Server reported offset {new_offset} after chunk, expected {expected}",
                status_code=response.status_code,
            )
        if new_offset > self.total_length:
            logger.error(f"PATCH at {declared_offset} moved the offset past {self.total_length}")
            raise ProtocolError(
                f"Server offset {new_offset} exceeds upload length {self.total_length}",
                status_code=response.status_code,
            )
        if new_offset < self.upload_offset:
            raise ProtocolError(
                f"Server offset {new_offset} is behind accepted offset {self.upload_offset}",
                status_code=response.status_code,
            )

        self._advance_to(new_offset)
        logger.info(
            f"PATCH {location}: wrote {len(data)} bytes, offset {new_offset}/{self.total_length}"
        )
        return new_offset

    def is_complete(self) -> bool:
        """True once the server has accepted every declared byte."""
        return self.total_length is not None and self.upload_offset == self.total_length

    def remaining_payload(self) -> bytes:
        """Payload bytes not yet accepted by the server."""
        end = self.total_length if self.total_length is not None else len(self.payload)
        return self.payload[self.upload_offset : end]

    def upload(
        self,
        chunk_size: Union[int, float] = 1024 * 1024,
        include_length: bool = True,
        progress_callback: Optional[Callable[[UploadStats], None]] = None,
    ) -> str:
        """Send the rest of the payload in sequential chunks.

        Creates the upload first if needed. Errors propagate unchanged; nothing
        is retried.

        Args:
            chunk_size: Size of each chunk in bytes (default: 1MB)
            include_length: Send Content-Length with each chunk
            progress_callback: Optional callback receiving UploadStats

        Returns:
            The upload location
        """
        if chunk_size < 1:
            raise ValueError(f"chunk_size must be at least 1 byte, got {chunk_size}")
        chunk_size = int(chunk_size)

        if self.target_location is None:
            self.create_upload()

        stats = UploadStats(
            total_bytes=self.total_length,
            uploaded_bytes=self.upload_offset,
            resumed_from=self.upload_offset,
        )

        while not self.is_complete():
            offset = self.upload_offset
            chunk = self.payload[offset : min(offset + chunk_size, self.total_length)]
            self.upload_chunk(chunk, offset, include_length=include_length)

            stats.uploaded_bytes = self.upload_offset
            stats.chunks_completed += 1
            if progress_callback:
                progress_callback(stats)

        logger.info(f"Upload {self.target_location} completed in {stats.elapsed_time:.2f}s")
        return self.target_location

    def delete_upload(self) -> None:
        """Terminate the upload on the server (termination extension).

        A 404 is treated as already deleted. The session is unusable afterwards.

        Raises:
            SessionStateError: If the upload was not created or has failed
            ProtocolError: On another non-success status
            TransportError: If the request could not be completed
        """
        location = self._require_location()
        response = self.transport.send(TusRequest("DELETE", location, self._base_headers()))

        if not response.ok and response.status_code not in (404, 410):
            raise ProtocolError(
                f"Failed to delete upload: {response.status_code} {response.reason}".rstrip(),
                status_code=response.status_code,
                response_content=response.body,
            )

        logger.info(f"Deleted upload {location}")
        self.state = UploadState.FAILED

    def get_server_info(self) -> dict[str, Union[str, list[str], Optional[int]]]:
        """Get server capabilities via an OPTIONS request.

        Returns:
            Dictionary containing:
                - version (str): TUS protocol versions supported by the server
                - extensions (list[str]): Supported TUS extensions
                - max_size (int | None): Maximum upload size (None if unlimited)

        Raises:
            ProtocolError: On a non-success status
            TransportError: If the request could not be completed
        """
        response = self.transport.send(
            TusRequest("OPTIONS", self.config.endpoint, {"User-Agent": self.config.user_agent})
        )
        if not response.ok:
            raise ProtocolError(
                f"Failed to get server info: {response.status_code} {response.reason}".rstrip(),
                status_code=response.status_code,
                response_content=response.body,
            )

        tus_extension = response.header("Tus-Extension", "")
        tus_max_size = response.header("Tus-Max-Size")
        try:
            max_size = int(tus_max_size) if tus_max_size else None
        except ValueError as e:
            raise ProtocolError(f"Invalid Tus-Max-Size header: {tus_max_size!r}") from e

        return {
            "version": response.header("Tus-Version", self.protocol_version),
            "extensions": [ext.strip() for ext in tus_extension.split(",") if ext.strip()],
            "max_size": max_size,
        }
