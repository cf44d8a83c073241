import socket

import pytest

from smartspeaker import protocol
from smartspeaker.client import PAUSE_SYMBOL, PLAY_SYMBOL, AppSession, ClientMode


@pytest.fixture
def pair():
    app_side, server_side = socket.socketpair()
    app_side.settimeout(2)
    server_side.settimeout(2)
    yield AppSession(app_side), server_side
    app_side.close()
    server_side.close()


def _player_session(pair, deviceid="dev-test"):
    session, server = pair
    session.handle_message({"cmd": "app_login_reply", "result": "bind", "deviceid": deviceid})
    return session, server


def test_register_sends_account(pair):
    session, server = pair
    password = "password"
    session.register("1001", password)
    assert protocol.read_json(server) == {
        "cmd": "app_register",
        "appid": "1001",
        "password": "password",
    }


def test_register_replies_record_notices(pair):
    session, _ = pair
    session.handle_message({"cmd": "app_register_reply", "result": "success"})
    session.handle_message({"cmd": "app_register_reply", "result": "failure"})
    assert [level for level, _, _ in session.view.notices] == ["information", "warning"]


def test_login_then_bound_goes_to_player(pair):
    session, server = pair
    password = "password"
    session.login("1001", password)
    assert protocol.read_json(server)["cmd"] == "app_login"
    assert session.handle_message(
        {"cmd": "app_login_reply", "result": "bind", "deviceid": "dev-test"}
    )
    assert session.view.page == "player"
    assert session.deviceid == "dev-test"
    session.request_info()
    assert protocol.read_json(server) == {
        "cmd": "app_info",
        "appid": "1001",
        "deviceid": "dev-test",
    }


def test_login_unknown_user_stays_on_login(pair):
    session, _ = pair
    session.handle_message({"cmd": "app_login_reply", "result": "not_exist"})
    assert session.view.page == "login"
    assert session.view.notices[-1][2] == "用户不存在，请先注册"


def test_not_bound_then_bind(pair):
    session, server = pair
    session.handle_message({"cmd": "app_login_reply", "result": "not_bind"})
    assert session.view.page == "bind"
    session.bind("dev-test")
    assert protocol.read_json(server)["deviceid"] == "dev-test"
    session.handle_message({"cmd": "app_bind_reply", "result": "success"})
    assert session.view.page == "player"
    assert session.deviceid == "dev-test"


def test_first_info_requests_music_once(pair):
    session, server = _player_session(pair)
    info = {"cmd": "info", "cur_music": "童话.mp3", "deviceid": "dev-test",
            "status": "start", "volume": 50, "mode": 2}
    session.handle_message(info)
    assert protocol.read_json(server) == {"cmd": "app_get_music"}
    assert session.view.music == "童话.mp3"
    assert session.view.mode is ClientMode.CIRCLE
    assert session.view.play_button == PAUSE_SYMBOL
    session.handle_message(info)
    session.close()
    assert protocol.read_json(server) == {"cmd": "app_offline"}


def test_info_suspend_status(pair):
    session, _ = _player_session(pair)
    session._want_music = False
    session.handle_message({"cmd": "info", "status": "suspend"})
    assert (session.view.started, session.view.suspended) == (True, True)
    assert session.view.play_button == PLAY_SYMBOL


def test_play_button_follows_state(pair):
    session, server = _player_session(pair)
    session.press_play()
    assert protocol.read_json(server)["cmd"] == "app_start"
    session.handle_message({"cmd": "app_start_reply", "result": "success"})
    session.press_play()
    assert protocol.read_json(server)["cmd"] == "app_suspend"
    session.handle_message({"cmd": "app_suspend_reply", "result": "success"})
    session.press_play()
    assert protocol.read_json(server)["cmd"] == "app_continue"


def test_upload_music_fills_list(pair):
    session, _ = _player_session(pair)
    session.handle_message({"cmd": "upload_music", "music": ["其他/童话.mp3", "其他/那些年.mp3"]})
    assert session.view.music_list.splitlines() == ["其他/童话.mp3", "其他/那些年.mp3"]


def test_voice_and_offline_replies(pair):
    session, _ = _player_session(pair)
    session.handle_message({"cmd": "app_voice_up_reply", "result": "success", "voice": 60})
    assert session.view.volume == 60
    session.view.mode = ClientMode.CIRCLE
    session.handle_message({"cmd": "app_circle_reply", "result": "offline"})
    assert session.view.mode is ClientMode.SEQUENCE
    assert session.view.notices[-1][2] == "音箱离线"


def test_mode_buttons_set_mode(pair):
    session, server = _player_session(pair)
    session.press_circle()
    assert protocol.read_json(server)["cmd"] == "app_circle"
    assert session.view.mode is ClientMode.CIRCLE
    session.press_sequence()
    assert protocol.read_json(server)["cmd"] == "app_sequence"
    assert session.view.mode is ClientMode.SEQUENCE


def test_receive_reads_frame(pair):
    session, server = _player_session(pair)
    protocol.send_json(server, {"cmd": "app_next_reply", "result": "success", "music": "倾国倾城.mp3"})
    obj = session.receive()
    assert obj["cmd"] == "app_next_reply"
    assert session.view.music == "倾国倾城.mp3"


def test_receive_closed_peer(pair):
    session, server = pair
    server.close()
    with pytest.raises(protocol.ConnectionClosed):
        session.receive()


def test_unknown_message_ignored(pair):
    session, _ = pair
    assert session.handle_message({"cmd": "info"}) is False
    assert session.view.page == "login"