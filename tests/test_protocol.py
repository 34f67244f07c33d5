"""Tests for the NDJSON request/reply envelope."""

from __future__ import annotations

import json

from sds_deps.protocol import DEP_INSTALLED, Reply, Request, decode_ndjson, encode_ndjson


class TestNdjson:
    """Tests for encode_ndjson() / decode_ndjson()."""

    def test_encode_is_compact_and_newline_terminated(self) -> None:
        data = encode_ndjson({"command": "heartbeat", "parameters": {}})

        assert data == b'{"command":"heartbeat","parameters":{}}\n'

    def test_decode_accepts_missing_newline(self) -> None:
        assert decode_ndjson(b'{"ok":true}') == {"ok": True}

    def test_decode_rejects_invalid(self) -> None:
        assert decode_ndjson(b"") is None
        assert decode_ndjson(b"not json\n") is None
        assert decode_ndjson(b"\xff\xfe\n") is None

    def test_decode_rejects_non_objects(self) -> None:
        assert decode_ndjson(b"[1, 2]\n") is None
        assert decode_ndjson(b'"text"\n') is None


class TestRequest:
    """Tests for Request."""

    def test_wire_format(self) -> None:
        req = Request(command=DEP_INSTALLED, parameters={"url": "x/y"})

        assert json.loads(req.encode()) == {"command": "dep-installed", "parameters": {"url": "x/y"}}

    def test_decode_defaults_parameters(self) -> None:
        req = Request.decode(b'{"command":"heartbeat"}\n')

        assert req is not None
        assert req.command == "heartbeat"
        assert req.parameters == {}

    def test_decode_rejects_missing_command(self) -> None:
        assert Request.decode(b'{"parameters":{}}\n') is None
        assert Request.decode(b'{"command":""}\n') is None
        assert Request.decode(b'{"command":"x","parameters":[]}\n') is None

    def test_reply_helpers(self) -> None:
        req = Request(command="install-dep")

        assert req.ok() == Reply(ok=True)
        assert req.ok({"installed": True}).parameters == {"installed": True}
        failed = req.fail("no source and not manageable")
        assert failed.ok is False
        assert failed.message == "no source and not manageable"


class TestReply:
    """Tests for Reply."""

    def test_wire_format(self) -> None:
        reply = Reply(ok=True, parameters={"running": False})

        assert json.loads(reply.encode()) == {"ok": True, "message": "", "parameters": {"running": False}}

    def test_decode_rejects_missing_ok(self) -> None:
        assert Reply.decode(b'{"message":"x"}\n') is None
