"""Length-prefixed JSON framing used between speaker, server and app."""

from __future__ import annotations

import json
import struct
from collections.abc import Mapping

HEADER = struct.Struct("<i")
MAX_FRAME = 1024


class ProtocolError(ValueError):
    """A frame or message does not follow the protocol."""


class ConnectionClosed(ConnectionError):
    """The peer closed the connection."""


def encode_frame(obj) -> bytes:
    """Serialise obj as JSON behind a 4-byte length prefix."""
    payload = json.dumps(obj, ensure_ascii=False).encode("utf-8")
    if len(payload) + HEADER.size > MAX_FRAME:
        raise ProtocolError(f"message of {len(payload)} bytes is too long")
    return HEADER.pack(len(payload)) + payload


def recv_exact(sock, size: int) -> bytes:
    """Read exactly size bytes from sock."""
    chunks = []
    remaining = size
    while remaining > 0:
        chunk = sock.recv(remaining)
        if not chunk:
            raise ConnectionClosed("peer closed the connection")
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def read_frame(sock) -> bytes:
    """Read one frame and return its payload."""
    (length,) = HEADER.unpack(recv_exact(sock, HEADER.size))
    if length <= 0 or length >= MAX_FRAME:
        raise ProtocolError(f"invalid packet length: {length}")
    return recv_exact(sock, length)


def send_json(sock, obj) -> None:
    """Send obj as one frame."""
    sock.sendall(encode_frame(obj))


def _decode(text):
    if isinstance(text, (bytes, bytearray)):
        try:
            text = bytes(text).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ProtocolError("message is not UTF-8") from exc
    try:
        return json.loads(text)
    except (json.JSONDecodeError, TypeError) as exc:
        raise ProtocolError("message is not JSON") from exc


def read_json(sock):
    """Read one frame and decode its JSON payload."""
    return _decode(read_frame(sock))


def parse_cmd(text) -> str:
    """Return the 'cmd' field of a JSON message given as text, bytes or mapping."""
    obj = text if isinstance(text, Mapping) else _decode(text)
    if not isinstance(obj, Mapping) or "cmd" not in obj:
        raise ProtocolError("json cmd not found")
    cmd = obj["cmd"]
    return cmd if isinstance(cmd, str) else json.dumps(cmd, ensure_ascii=False)