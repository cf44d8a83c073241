"""Remote-control app for the speaker: login, device binding and playback control."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field

from . import protocol

PLAY_SYMBOL = "▷"
PAUSE_SYMBOL = "||"
TITLE_CONNECTION = "连接提示"
TITLE_LOGIN = "登录提示"
TITLE_REGISTER = "注册提示"
TITLE_PLAY = "播放提示"
SPEAKER_OFFLINE = "音箱离线"


class ClientMode(enum.IntEnum):
    """Play modes as the app numbers them."""

    SEQUENCE = 1
    CIRCLE = 2


@dataclass
class ViewState:
    """What the app shows: current page, labels, buttons and message boxes."""

    page: str = "login"
    device_id: str = ""
    music: str = ""
    volume: int | None = None
    mode: ClientMode | None = None
    play_button: str = PLAY_SYMBOL
    music_list: str = ""
    started: bool = False
    suspended: bool = False
    notices: list[tuple[str, str, str]] = field(default_factory=list)

    def inform(self, title: str, text: str) -> None:
        """Record an information box."""
        self.notices.append(("information", title, text))

    def warn(self, title: str, text: str) -> None:
        """Record a warning box."""
        self.notices.append(("warning", title, text))


def _str(obj, key: str) -> str:
    value = obj.get(key)
    return value if isinstance(value, str) else ""


def _int(obj, key: str) -> int:
    value = obj.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    if isinstance(value, float) and not value.is_integer():
        return 0
    return int(value)


class AppSession:
    """One app session over a connected socket to the server."""

    def __init__(self, sock) -> None:
        self.sock = sock
        self.appid = ""
        self.deviceid = ""
        self.view = ViewState()
        # The first status report from the speaker triggers a track-list request.
        self._want_music = True

    def _send(self, obj: dict) -> dict:
        protocol.send_json(self.sock, obj)
        return obj

    # login page ---------------------------------------------------------

    def register(self, appid: str, password: str) -> dict:
        """Ask the server to register an app account."""
        return self._send({"cmd": "app_register", "appid": appid, "password": password})

    def login(self, appid: str, password: str) -> dict:
        """Log in with an app account."""
        self.appid = appid
        return self._send({"cmd": "app_login", "appid": appid, "password": password})

    # bind page ----------------------------------------------------------

    def bind(self, deviceid: str) -> dict:
        """Ask the server to bind this account to a speaker."""
        self.deviceid = deviceid
        return self._send({"cmd": "app_bind", "deviceid": deviceid, "appid": self.appid})

    # player page --------------------------------------------------------

    def request_info(self) -> dict:
        """Ask for the speaker's status; the app does this every two seconds."""
        return self._send({"cmd": "app_info", "appid": self.appid, "deviceid": self.deviceid})

    def _enter_player(self, deviceid: str) -> None:
        self.deviceid = deviceid
        self.view.page = "player"
        self.view.started = False
        self.view.suspended = False
        self.view.play_button = PLAY_SYMBOL
        self._want_music = True

    def receive(self):
        """Read one message from the server and act on it."""
        obj = protocol.read_json(self.sock)
        self.handle_message(obj if isinstance(obj, dict) else {})
        return obj

    def handle_message(self, obj) -> bool:
        """Act on a server message for the current page; False if it is ignored."""
        cmd = _str(obj, "cmd")
        page = self.view.page
        if page == "login":
            handler = {
                "app_register_reply": self._register_reply,
                "app_login_reply": self._login_reply,
            }.get(cmd)
        elif page == "bind":
            handler = {"app_bind_reply": self._bind_reply}.get(cmd)
        else:
            handler = {
                "info": self._info,
                "upload_music": self._update_music,
                "app_start_reply": self._start_reply,
                "app_suspend_reply": self._suspend_reply,
                "app_continue_reply": self._continue_reply,
                "app_next_reply": self._track_reply,
                "app_prior_reply": self._track_reply,
                "app_voice_up_reply": self._voice_reply,
                "app_voice_down_reply": self._voice_reply,
                "app_circle_reply": self._mode_reply,
                "app_sequence_reply": self._mode_reply,
            }.get(cmd)
        if handler is None:
            return False
        handler(obj)
        return True

    def _register_reply(self, obj) -> None:
        result = _str(obj, "result")
        if result == "success":
            self.view.inform(TITLE_REGISTER, "注册成功")
        elif result == "failure":
            self.view.warn(TITLE_REGISTER, "注册失败")

    def _login_reply(self, obj) -> None:
        result = _str(obj, "result")
        if result == "not_exist":
            self.view.warn(TITLE_LOGIN, "用户不存在，请先注册")
        elif result == "password_error":
            self.view.warn(TITLE_LOGIN, "密码或者用户名错误")
        elif result == "not_bind":
            self.view.page = "bind"
        elif result == "bind":
            self._enter_player(_str(obj, "deviceid"))

    def _bind_reply(self, obj) -> None:
        if _str(obj, "result") == "success":
            self._enter_player(self.deviceid)

    def _info(self, obj) -> None:
        view = self.view
        view.device_id = _str(obj, "deviceid")
        view.music = _str(obj, "cur_music")
        view.volume = _int(obj, "volume")
        mode = _int(obj, "mode")
        if mode in (ClientMode.SEQUENCE, ClientMode.CIRCLE):
            view.mode = ClientMode(mode)
        status = _str(obj, "status")
        if status == "start":
            view.play_button, view.started, view.suspended = PAUSE_SYMBOL, True, False
        elif status == "stop":
            view.play_button, view.started, view.suspended = PLAY_SYMBOL, False, False
        elif status == "suspend":
            view.play_button, view.started, view.suspended = PLAY_SYMBOL, True, True
        if self._want_music:
            self._send({"cmd": "app_get_music"})
            self._want_music = False

    def _update_music(self, obj) -> None:
        music = obj.get("music")
        names = music if isinstance(music, list) else []
        self.view.music_list = "".join(
            (name if isinstance(name, str) else "") + "\n" for name in names
        )

    def _offline(self, obj) -> bool:
        if _str(obj, "result") == "offline":
            self.view.warn(TITLE_PLAY, SPEAKER_OFFLINE)
            return True
        return False

    def _start_reply(self, obj) -> None:
        result = _str(obj, "result")
        if self._offline(obj):
            return
        if result == "failure":
            self.view.warn(TITLE_PLAY, "音箱启动失败")
        elif result == "success":
            self.view.started = True
            self.view.play_button = PAUSE_SYMBOL

    def _suspend_reply(self, obj) -> None:
        if not self._offline(obj) and _str(obj, "result") == "success":
            self.view.suspended = True
            self.view.play_button = PLAY_SYMBOL

    def _continue_reply(self, obj) -> None:
        if not self._offline(obj) and _str(obj, "result") == "success":
            self.view.suspended = False
            self.view.play_button = PAUSE_SYMBOL

    def _track_reply(self, obj) -> None:
        if not self._offline(obj) and _str(obj, "result") == "success":
            self.view.music = _str(obj, "music")

    def _voice_reply(self, obj) -> None:
        if not self._offline(obj) and _str(obj, "result") == "success":
            self.view.volume = _int(obj, "voice")

    def _mode_reply(self, obj) -> None:
        if self._offline(obj):
            self.view.mode = ClientMode.SEQUENCE

    # buttons ------------------------------------------------------------

    def press_play(self) -> dict | None:
        """Start, continue or pause, depending on what the speaker is doing."""
        view = self.view
        if not view.started:
            return self._send({"cmd": "app_start"})
        if view.suspended:
            return self._send({"cmd": "app_continue"})
        return self._send({"cmd": "app_suspend"})

    def press_next(self) -> dict:
        """Ask for the next track."""
        return self._send({"cmd": "app_next"})

    def press_prior(self) -> dict:
        """Ask for the previous track."""
        return self._send({"cmd": "app_prior"})

    def press_volume_up(self) -> dict:
        """Ask for a louder volume."""
        return self._send({"cmd": "app_voice_up"})

    def press_volume_down(self) -> dict:
        """Ask for a quieter volume."""
        return self._send({"cmd": "app_voice_down"})

    def press_circle(self) -> dict:
        """Ask for single-track repeat."""
        sent = self._send({"cmd": "app_circle"})
        self.view.mode = ClientMode.CIRCLE
        return sent

    def press_sequence(self) -> dict:
        """Ask for list playback."""
        sent = self._send({"cmd": "app_sequence"})
        self.view.mode = ClientMode.SEQUENCE
        return sent

    def close(self) -> dict:
        """Tell the server the app is going offline."""
        return self._send({"cmd": "app_offline"})