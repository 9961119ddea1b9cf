#!/usr/bin/env python3
"""Example: upload a file in chunks, resynchronising after transport errors."""

import logging
import os
import sys

from tus_session import (
    HTTPTransport,
    OffsetConflictError,
    TransportError,
    TusConfig,
    TusUploadSession,
    UploadStats,
)


def progress_callback(stats: UploadStats):
    """Display upload progress."""
    bar_length = 50
    filled = int(bar_length * stats.progress_percent / 100)
    bar = "=" * filled + "-" * (bar_length - filled)
    print(
        f"\rProgress: [{bar}] {stats.progress_percent:.1f}% "
        f"({stats.uploaded_bytes}/{stats.total_bytes} bytes)",
        end="",
    )

    if stats.uploaded_bytes == stats.total_bytes:
        print()


def main():
    """Run the upload example."""
    if len(sys.argv) < 2:
        print("Usage: python upload_example.py <file_path> [host] [port]")
        print("Example: python upload_example.py /path/to/file.bin localhost 1080")
        sys.exit(1)

    file_path = sys.argv[1]
    if not os.path.exists(file_path):
        print(f"Error: File not found: {file_path}")
        sys.exit(1)

    if len(sys.argv) > 2:
        port = int(sys.argv[3]) if len(sys.argv) > 3 else 1080
        config = TusConfig(host=sys.argv[2], port=port, use_tls=False)
    else:
        config = TusConfig()

    logging.basicConfig(level=logging.INFO)

    with open(file_path, "rb") as f:
        payload = f.read()

    with HTTPTransport(config) as transport:
        session = TusUploadSession(
            transport, payload, config, metadata={"filename": os.path.basename(file_path)}
        )

        attempts = 0
        while not session.is_complete():
            try:
                session.upload(chunk_size=256 * 1024, progress_callback=progress_callback)
            except (TransportError, OffsetConflictError) as e:
                attempts += 1
                if attempts > 3 or session.target_location is None:
                    print(f"\nUpload failed: {e}")
                    sys.exit(1)
                print(f"\n{e}; asking the server for its offset")
                session.query_offset()

        print(f"Upload complete: {session.target_location}")


if __name__ == "__main__":
    main()
