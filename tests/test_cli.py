"""Test suite for the interactive shell."""

import pytest

from tus_session import TransportError, TusRequest, TusResponse
from tus_session.cli import MENU, ExchangePrinter, UploadShell, main
from tus_session.session import TusUploadSession


def scripted_input(*choices):
    """Input function answering with the given choices, then EOF."""
    remaining = list(choices)

    def input_func(prompt):
        if not remaining:
            raise EOFError
        return remaining.pop(0)

    return input_func


class TestMain:
    """Tests for the command-line entry point."""

    @pytest.fixture
    def upload_file(self, tmp_path, payload):
        """Write the payload to a file."""
        path = tmp_path / "data.bin"
        path.write_bytes(payload)
        return str(path)

    def run(self, argv, transport, *choices):
        lines = []
        status = main(
            argv, input_func=scripted_input(*choices), output=lines.append, transport=transport
        )
        return status, "\n".join(lines)

    def test_post_patch_head(self, upload_file, transport, tus_server, payload):
        """Test the basic menu flow."""
        status, out = self.run([upload_file], transport, "1", "4", "2", "q")

        assert status == 0
        assert transport.connected
        assert transport.closed
        assert "POST request:\nPOST /files/ HTTP/1.1" in out
        assert "POST response:\nHTTP/1.1 201 Created" in out
        assert "Upload location: /files/up-1" in out
        assert "PATCH request:" in out
        assert "HEAD response:" in out
        assert "Upload offset: 1024/1024 (complete)" in out
        assert bytes(tus_server.uploads["up-1"]["data"]) == payload
        assert tus_server.uploads["up-1"]["metadata"] == {"filename": "data.bin"}

    def test_patch_without_content_length(self, upload_file, transport, tus_server):
        """Test menu choice 3."""
        status, out = self.run([upload_file], transport, "1", "3", "Q")

        assert status == 0
        patch = [r for r in tus_server.requests if r.method == "PATCH"][0]
        assert "Content-Length" not in patch.headers
        assert "Upload offset: 1024/1024 (complete)" in out

    def test_chunked_upload(self, upload_file, transport, tus_server):
        """Test menu choice 5 with a small chunk size."""
        status, out = self.run([upload_file, "--chunk-size", "400"], transport, "5", "q")

        assert status == 0
        assert "Progress: 39.1% (400/1024 bytes)" in out
        assert "Progress: 100.0% (1024/1024 bytes)" in out
        assert len([r for r in tus_server.requests if r.method == "PATCH"]) == 3

    def test_errors_keep_the_menu_running(self, upload_file, transport):
        """Test that failures are reported and the loop continues."""
        transport.fail_next()

        status, out = self.run([upload_file], transport, "2", "1", "x", "1", "1", "7", "2")

        assert status == 0
        assert "Error (SessionStateError): Upload has not been created yet" in out
        assert "Error (TransportError): POST /files/ timed out" in out
        assert "Unknown choice: 'x'" in out
        assert "Upload location: /files/up-1" in out
        assert "Error (SessionStateError): Upload already created at /files/up-1" in out
        assert "Upload deleted" in out
        assert "Error (SessionStateError): Upload session has failed" in out
        assert out.count(MENU) == 8

    def test_options(self, upload_file, transport):
        """Test menu choice 6."""
        status, out = self.run([upload_file], transport, "6")

        assert status == 0
        assert "Server TUS Version: 1.0.0" in out
        assert "Supported Extensions: creation, termination, checksum" in out

    def test_missing_file(self, tmp_path, transport):
        """Test that an unreadable file exits with status 1."""
        status, _ = self.run([str(tmp_path / "missing.bin")], transport)
        assert status == 1
        assert not transport.connected

    def test_connection_failure(self, upload_file, transport):
        """Test that a failed connect exits with status 1."""

        def refuse():
            raise TransportError("Failed to connect to tusd.tusdemo.net:443")

        transport.connect = refuse
        status, _ = self.run([upload_file], transport)
        assert status == 1
        assert transport.closed

    def test_invalid_port(self, upload_file, transport):
        """Test that configuration errors are usage errors."""
        with pytest.raises(SystemExit) as exc_info:
            self.run([upload_file, "--port", "70000"], transport)
        assert exc_info.value.code == 2

    def test_invalid_metadata(self, upload_file, transport):
        """Test --metadata parsing."""
        with pytest.raises(SystemExit) as exc_info:
            self.run([upload_file, "--metadata", "novalue"], transport)
        assert exc_info.value.code == 2

    def test_extra_metadata(self, upload_file, transport, tus_server):
        """Test that --metadata entries are sent on creation."""
        self.run([upload_file, "--metadata", "owner=alice"], transport, "1")
        metadata = tus_server.uploads["up-1"]["metadata"]
        assert metadata == {"filename": "data.bin", "owner": "alice"}


class TestUploadShell:
    """Tests for UploadShell and ExchangePrinter."""

    def test_handle_returns_false_on_quit(self, transport, payload):
        shell = UploadShell(TusUploadSession(transport, payload), output=lambda line: None)
        assert shell.handle("q") is False
        assert shell.handle("Q") is False
        assert shell.handle("9") is True

    def test_value_errors_are_reported(self, transport):
        lines = []
        session = TusUploadSession(transport, b"abc", metadata={"bad key": "x"})
        shell = UploadShell(session, output=lines.append)

        assert shell.handle("1") is True
        assert lines[-1].startswith("Error: Upload-metadata key")

    def test_exchange_printer(self):
        lines = []
        printer = ExchangePrinter(lines.append)

        printer(TusRequest("HEAD", "/files/up-1", {"Tus-Resumable": "1.0.0"}))
        printer(TusResponse(200, {"Upload-Offset": "0"}, reason="OK"))

        assert lines == [
            "HEAD request:\nHEAD /files/up-1 HTTP/1.1\nTus-Resumable: 1.0.0\n",
            "HEAD response:\nHTTP/1.1 200 OK\nUpload-Offset: 0\n",
        ]
