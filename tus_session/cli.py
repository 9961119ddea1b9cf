"""Interactive TUS upload shell.

Reads a file, connects to the TUS server once and then issues one request per
menu choice, printing every request and response.
"""

import argparse
import logging
import os
import sys
from typing import Callable, Optional, Union

from tus_session import __version__
from tus_session.config import DEFAULT_ENDPOINT, DEFAULT_HOST, DEFAULT_PORT, TUS_VERSION, TusConfig
from tus_session.exceptions import TransportError, TusError
from tus_session.session import TusUploadSession
from tus_session.stats import UploadStats
from tus_session.transport import (
    HTTPTransport,
    Transport,
    TusRequest,
    TusResponse,
    format_request,
    format_response,
)

logger = logging.getLogger(__name__)

MENU = (
    "Choose your action:\n"
    "1. POST\n"
    "2. HEAD\n"
    "3. PATCH with no Content-Length\n"
    "4. PATCH with Content-Length\n"
    "5. Upload the rest in chunks\n"
    "6. OPTIONS\n"
    "7. DELETE\n"
    "Q. Quit"
)


class ExchangePrinter:
    """Transport trace hook that prints each request and its response."""

    def __init__(self, output: Callable[[str], None] = print):
        self.output = output
        self._method = ""

    def __call__(self, message: Union[TusRequest, TusResponse]) -> None:
        if isinstance(message, TusRequest):
            self._method = message.method
            self.output(f"{message.method} request:\n{format_request(message)}\n")
        else:
            self.output(f"{self._method} response:\n{format_response(message)}\n")


class UploadShell:
    """Menu loop driving a single upload session.

    Every TusError is reported and the loop continues; the user decides
    whether to retry, query the offset again or quit.
    """

    def __init__(
        self,
        session: TusUploadSession,
        input_func: Callable[[str], str] = input,
        output: Callable[[str], None] = print,
        chunk_size: int = 1024 * 1024,
    ):
        self.session = session
        self.input_func = input_func
        self.output = output
        self.chunk_size = chunk_size

    def run(self) -> None:
        """Prompt until the user quits or stdin is exhausted."""
        while True:
            self.output(MENU)
            try:
                choice = self.input_func("> ").strip()
            except EOFError:
                return
            if not self.handle(choice):
                return

    def handle(self, choice: str) -> bool:
        """Run one menu choice. Returns False when the user asked to quit."""
        choice = choice.lower()
        if choice == "q":
            return False

        actions = {
            "1": self.post,
            "2": self.head,
            "3": lambda: self.patch(include_length=False),
            "4": lambda: self.patch(include_length=True),
            "5": self.upload_rest,
            "6": self.options,
            "7": self.delete,
        }
        action = actions.get(choice)
        if action is None:
            self.output(f"Unknown choice: {choice!r}")
            return True

        try:
            action()
        except TusError as e:
            logger.debug(f"Menu choice {choice} failed", exc_info=True)
            self.output(f"Error ({type(e).__name__}): {e}")
        except ValueError as e:
            self.output(f"Error: {e}")
        return True

    def _report_offset(self) -> None:
        session = self.session
        status = "complete" if session.is_complete() else session.state.value
        self.output(f"Upload offset: {session.upload_offset}/{session.total_length} ({status})")

    def post(self) -> None:
        location = self.session.create_upload()
        self.output(f"Upload location: {location}")

    def head(self) -> None:
        self.session.query_offset()
        self._report_offset()

    def patch(self, include_length: bool) -> None:
        session = self.session
        session.upload_chunk(
            session.remaining_payload(), session.upload_offset, include_length=include_length
        )
        self._report_offset()

    def upload_rest(self) -> None:
        def progress(stats: UploadStats) -> None:
            self.output(
                f"Progress: {stats.progress_percent:.1f}% "
                f"({stats.uploaded_bytes}/{stats.total_bytes} bytes)"
            )

        self.session.upload(chunk_size=self.chunk_size, progress_callback=progress)
        self._report_offset()

    def options(self) -> None:
        info = self.session.get_server_info()
        self.output(f"Server TUS Version: {info['version']}")
        self.output(f"Supported Extensions: {', '.join(info['extensions']) or 'none'}")
        if info["max_size"]:
            self.output(f"Max Upload Size: {info['max_size']} bytes")

    def delete(self) -> None:
        self.session.delete_upload()
        self.output("Upload deleted")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tus-session",
        description="Interactively upload a file with the TUS resumable upload protocol.",
    )
    parser.add_argument("file", help="file to upload")
    parser.add_argument(
        "--host", default=DEFAULT_HOST, help=f"server host (default: {DEFAULT_HOST})"
    )
    parser.add_argument(
        "--port", type=int, default=DEFAULT_PORT, help=f"server port (default: {DEFAULT_PORT})"
    )
    parser.add_argument(
        "--endpoint",
        default=DEFAULT_ENDPOINT,
        help=f"upload creation path (default: {DEFAULT_ENDPOINT})",
    )
    parser.add_argument(
        "--tus-version",
        default=TUS_VERSION,
        help=f"Tus-Resumable header value (default: {TUS_VERSION})",
    )
    parser.add_argument("--no-tls", action="store_true", help="use plain HTTP")
    parser.add_argument(
        "--insecure", action="store_true", help="do not verify the server certificate"
    )
    parser.add_argument(
        "--timeout", type=float, default=30.0, help="socket timeout in seconds (default: 30)"
    )
    parser.add_argument(
        "--chunk-size",
        type=int,
        default=1024 * 1024,
        help="chunk size for menu choice 5 (default: 1048576)",
    )
    parser.add_argument(
        "--metadata",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="extra Upload-Metadata entry (repeatable)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="enable debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(
    argv: Optional[list[str]] = None,
    input_func: Callable[[str], str] = input,
    output: Callable[[str], None] = print,
    transport: Optional[Transport] = None,
) -> int:
    """Run the interactive shell. Returns the process exit status."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    metadata = {"filename": os.path.basename(args.file)}
    for entry in args.metadata:
        key, sep, value = entry.partition("=")
        if not sep:
            parser.error(f"--metadata expects KEY=VALUE, got {entry!r}")
        metadata[key] = value

    if args.chunk_size < 1:
        parser.error(f"--chunk-size must be at least 1, got {args.chunk_size}")

    try:
        config = TusConfig(
            host=args.host,
            port=args.port,
            endpoint=args.endpoint,
            protocol_version=args.tus_version,
            use_tls=not args.no_tls,
            verify_tls_cert=not args.insecure,
            timeout=args.timeout,
        )
    except ValueError as e:
        parser.error(str(e))

    try:
        with open(args.file, "rb") as f:
            payload = f.read()
    except OSError as e:
        print(f"Error: cannot read {args.file}: {e}", file=sys.stderr)
        return 1

    printer = ExchangePrinter(output)
    if transport is None:
        transport = HTTPTransport(config, trace=printer)
    else:
        transport.trace = printer

    try:
        transport.connect()
    except TransportError as e:
        print(f"Error: {e}", file=sys.stderr)
        transport.close()
        return 1

    output(f"Loaded {args.file} ({len(payload)} bytes), connected to {config.base_url}")

    with transport:
        session = TusUploadSession(transport, payload, config, metadata=metadata)
        shell = UploadShell(
            session, input_func=input_func, output=output, chunk_size=args.chunk_size
        )
        try:
            shell.run()
        except KeyboardInterrupt:
            output("")
            return 130

    return 0


if __name__ == "__main__":
    sys.exit(main())
