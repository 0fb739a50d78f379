"""Tests for realtime envelope parsing and outbound builders."""
import json

import pytest

from qrshare.errors import MalformedMessage
from qrshare.sessions import protocol


def _frame(**fields) -> str:
    return json.dumps(fields)


class TestDecode:
    def test_init(self):
        message = protocol.decode(_frame(type="init", sessionId="abc"))
        assert isinstance(message, protocol.InitMessage)
        assert message.sessionId == "abc"

    def test_client_connected(self):
        message = protocol.decode(_frame(type="client-connected"))
        assert isinstance(message, protocol.ClientConnectedMessage)

    def test_list(self):
        assert isinstance(protocol.decode(_frame(type="list")), protocol.ListMessage)

    def test_download_without_file_is_allowed(self):
        message = protocol.decode(_frame(type="download"))
        assert isinstance(message, protocol.DownloadMessage)
        assert message.file is None

    def test_upload(self):
        message = protocol.decode(_frame(type="upload", name="a.txt", content="aGk="))
        assert isinstance(message, protocol.UploadMessage)
        assert (message.name, message.content) == ("a.txt", "aGk=")

    def test_extra_fields_ignored(self):
        message = protocol.decode(_frame(type="list", requestId=7))
        assert isinstance(message, protocol.ListMessage)

    def test_unknown_type(self):
        message = protocol.decode(_frame(type="dance"))
        assert isinstance(message, protocol.UnknownMessage)
        assert message.type == "dance"

    def test_server_only_type_is_unknown(self):
        message = protocol.decode(_frame(type="expired"))
        assert isinstance(message, protocol.UnknownMessage)

    @pytest.mark.parametrize("raw", [
        "not json",
        "",
        "[1, 2, 3]",
        '"init"',
        json.dumps({"sessionId": "abc"}),
        json.dumps({"type": 42}),
        json.dumps({"type": "init"}),
        json.dumps({"type": "upload", "name": "a.txt"}),
        json.dumps({"type": "download", "file": ["a.txt"]}),
    ])
    def test_malformed(self, raw):
        with pytest.raises(MalformedMessage):
            protocol.decode(raw)


class TestBuilders:
    def test_simple_envelopes(self):
        assert protocol.init_ok() == {"type": "init-ok"}
        assert protocol.expired() == {"type": "expired"}
        assert protocol.ready() == {"type": "ready"}
        assert protocol.client_connected() == {"type": "client-connected"}
        assert protocol.client_disconnected() == {"type": "client-disconnected"}

    def test_file_list_copies(self):
        files = ["a.txt"]
        envelope = protocol.file_list(files)
        files.append("b.txt")
        assert envelope == {"type": "list", "files": ["a.txt"]}

    def test_file_payload(self):
        assert protocol.file_payload("a.txt", "aGk=") == {
            "type": "file", "name": "a.txt", "content": "aGk=",
        }

    def test_error(self):
        assert protocol.error("nope") == {"type": "error", "message": "nope"}
