import json
import socket
import struct

import pytest

from smartspeaker.protocol import (
    MAX_FRAME,
    ConnectionClosed,
    ProtocolError,
    encode_frame,
    parse_cmd,
    read_frame,
    read_json,
    recv_exact,
    send_json,
)

SONGS = [
    "其他/以后的以后.mp3",
    "其他/倾国倾城.mp3",
    "其他/童话.mp3",
    "其他/那些年.mp3",
    "其他/一直想着他.mp3",
]


@pytest.fixture
def pair():
    a, b = socket.socketpair()
    yield a, b
    a.close()
    b.close()


def test_frame_prefix_is_little_endian_payload_length():
    frame = encode_frame({"cmd": "app_get_music"})
    (length,) = struct.unpack("<i", frame[:4])
    assert length == len(frame) - 4
    assert json.loads(frame[4:].decode("utf-8")) == {"cmd": "app_get_music"}


def test_frame_keeps_utf8_text():
    frame = encode_frame({"singer": "其他"})
    assert "其他".encode("utf-8") in frame


def test_encode_too_long_rejected():
    with pytest.raises(ProtocolError):
        encode_frame({"music": ["x" * MAX_FRAME]})


def test_server_sends_greeting_first(pair):
    server, client = pair
    send_json(server, {"cmd": "app_get_music"})
    assert parse_cmd(read_frame(client)) == "app_get_music"


def test_get_music_list_reply(pair):
    server, client = pair
    send_json(client, {"cmd": "get_music_list", "singer": "其他"})
    request = read_json(server)
    assert parse_cmd(request) == "get_music_list"
    send_json(server, {"cmd": "reply_music", "music": SONGS})
    reply = read_json(client)
    assert reply["cmd"] == "reply_music"
    assert reply["music"] == SONGS


def test_several_frames_in_one_stream(pair):
    server, client = pair
    server.sendall(encode_frame({"cmd": "a"}) + encode_frame({"cmd": "b"}))
    assert read_json(client) == {"cmd": "a"}
    assert read_json(client) == {"cmd": "b"}


@pytest.mark.parametrize("length", [0, -5, MAX_FRAME, MAX_FRAME + 100])
def test_invalid_packet_length(pair, length):
    server, client = pair
    server.sendall(struct.pack("<i", length))
    with pytest.raises(ProtocolError):
        read_frame(client)


def test_disconnect_before_header(pair):
    server, client = pair
    server.close()
    with pytest.raises(ConnectionClosed):
        read_frame(client)


def test_disconnect_while_receiving_body(pair):
    server, client = pair
    server.sendall(struct.pack("<i", 10) + b"{}")
    server.close()
    with pytest.raises(ConnectionClosed):
        read_frame(client)


def test_invalid_json_body(pair):
    server, client = pair
    body = b"not json"
    server.sendall(struct.pack("<i", len(body)) + body)
    with pytest.raises(ProtocolError):
        read_json(client)


def test_recv_exact_reads_requested_size(pair):
    server, client = pair
    server.sendall(b"abcdefgh")
    assert recv_exact(client, 3) == b"abc"
    assert recv_exact(client, 5) == b"defgh"


def test_parse_cmd_from_text_and_bytes():
    assert parse_cmd('{"cmd": "app_start"}') == "app_start"
    assert parse_cmd(b'{"cmd": "app_stop"}') == "app_stop"


def test_parse_cmd_missing_cmd():
    with pytest.raises(ProtocolError):
        parse_cmd('{"music": []}')


def test_parse_cmd_not_json():
    with pytest.raises(ProtocolError):
        parse_cmd("garbage")


def test_parse_cmd_non_object():
    with pytest.raises(ProtocolError):
        parse_cmd("[1, 2]")