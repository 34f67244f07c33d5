"""JSON-over-socket protocol shared by the handler, client and probes.

This module provides the NDJSON (Newline-Delimited JSON) encoding/decoding
and the request/reply envelope used between the wire handler, its
clients, and the dependencies it supervises.

Protocol format:
- Messages are JSON objects encoded in compact form (no spaces)
- Each message is terminated by a newline character
- Encoding: UTF-8
- One request in flight per connection; each request gets exactly one reply

Envelope:
- Request: {"command": "...", "parameters": {...}}
- Reply:   {"ok": true|false, "message": "...", "parameters": {...}}

Example messages:
    {"command":"dep-installed","parameters":{"url":"example.com/org/repo"}}\\n
    {"ok":true,"message":"","parameters":{"installed":false}}\\n
    {"command":"close","parameters":{}}\\n
"""

from __future__ import annotations

__all__ = [
    # Handler commands
    "CLOSE_DEP",
    "DEP_INSTALLED",
    "DEP_RUNNING",
    "INSTALL_DEP",
    "RUN_DEP",
    "UNINSTALL_DEP",
    # Control commands every endpoint answers
    "CLOSE",
    "HEARTBEAT",
    # Envelope
    "Reply",
    "Request",
    "decode_ndjson",
    "encode_ndjson",
]

import json
from typing import Any

from pydantic import BaseModel, Field, ValidationError

# Handler commands
DEP_INSTALLED = "dep-installed"
DEP_RUNNING = "dep-running"
INSTALL_DEP = "install-dep"
RUN_DEP = "run-dep"
UNINSTALL_DEP = "uninstall-dep"
CLOSE_DEP = "close-dep"

# Control commands
HEARTBEAT = "heartbeat"
CLOSE = "close"


def encode_ndjson(msg: dict[str, Any]) -> bytes:
    """Encode a message for NDJSON transmission.

    Uses compact JSON (no spaces after separators) with newline delimiter.

    Args:
        msg: Dictionary to encode.

    Returns:
        UTF-8 encoded bytes with trailing newline.

    Example:
        >>> encode_ndjson({"command": "heartbeat", "parameters": {}})
        b'{"command":"heartbeat","parameters":{}}\\n'
    """
    return (json.dumps(msg, separators=(",", ":")) + "\n").encode("utf-8")


def decode_ndjson(line: bytes) -> dict[str, Any] | None:
    """Decode an NDJSON message.

    Args:
        line: UTF-8 encoded bytes (with or without trailing newline).

    Returns:
        Decoded dictionary, or None if line is empty, contains invalid
        JSON, or is not a JSON object.
    """
    if not line:
        return None
    try:
        result = json.loads(line.decode("utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    if not isinstance(result, dict):
        return None
    return result


class Request(BaseModel):
    """A command sent to an endpoint."""

    command: str = Field(min_length=1)
    parameters: dict[str, Any] = Field(default_factory=dict)

    def encode(self) -> bytes:
        """Encode as one NDJSON line."""
        return encode_ndjson(self.model_dump(mode="json"))

    @classmethod
    def decode(cls, line: bytes) -> Request | None:
        """Decode one NDJSON line, or None if it is not a valid request."""
        msg = decode_ndjson(line)
        if msg is None:
            return None
        try:
            return cls.model_validate(msg)
        except ValidationError:
            return None

    def fail(self, message: str) -> Reply:
        """Build a failure reply to this request."""
        return Reply(ok=False, message=message)

    def ok(self, parameters: dict[str, Any] | None = None) -> Reply:
        """Build a success reply to this request."""
        return Reply(ok=True, parameters=parameters or {})


class Reply(BaseModel):
    """The reply to a Request."""

    ok: bool
    message: str = ""
    parameters: dict[str, Any] = Field(default_factory=dict)

    def encode(self) -> bytes:
        """Encode as one NDJSON line."""
        return encode_ndjson(self.model_dump(mode="json"))

    @classmethod
    def decode(cls, line: bytes) -> Reply | None:
        """Decode one NDJSON line, or None if it is not a valid reply."""
        msg = decode_ndjson(line)
        if msg is None:
            return None
        try:
            return cls.model_validate(msg)
        except ValidationError:
            return None
