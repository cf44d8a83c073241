"""Event loop of the speaker: keyboard menu, app commands and voice commands."""

from __future__ import annotations

import os
import select
import subprocess
import sys
from collections.abc import Mapping

from . import protocol
from .protocol import ConnectionClosed, ProtocolError
from .state import DeviceMode, PlayMode

QWEN_PROGRAM = "/home/qwen/qwen"
_READ_SIZE = 1024

_MENU = (
    "*******************************",
    "**********1. 播放音乐**********",
    "**********2. 结束播放**********",
    "**********3. 暂停播放**********",
    "**********4. 继续播放**********",
    "**********5. 下一首************",
    "**********6. 上一首************",
    "**********7. 增加音量**********",
    "**********8. 减小音量**********",
    "**********9. 单曲循环**********",
    "**********0. 列表循环**********",
    "*******************************",
)

# key -> (player method, arguments, message)
_KEYS = {
    "1": ("start", (), "play music"),
    "2": ("stop", (), "stop music"),
    "3": ("pause", (), "pause music"),
    "4": ("resume", (), "continue music"),
    "5": ("next", (), "next music"),
    "6": ("prev", (), "previous music"),
    "7": ("volume_up", (), "add volume"),
    "8": ("volume_down", (), "reduce volume"),
    "9": ("set_mode", (PlayMode.CIRCLE,), "single loop"),
    "0": ("set_mode", (PlayMode.SEQUENCE,), "list loop"),
}

# app command -> (connection method, arguments)
_APP_COMMANDS = {
    "app_start": ("app_start", ()),
    "app_stop": ("app_stop", ()),
    "app_pause": ("app_pause", ()),
    "app_continue": ("app_continue", ()),
    "app_next": ("app_next", ()),
    "app_prev": ("app_prev", ()),
    "app_add_volume": ("app_volume_up", ()),
    "app_reduce_volume": ("app_volume_down", ()),
    "app_mode_sequence": ("app_set_mode", (PlayMode.SEQUENCE,)),
    "app_mode_circle": ("app_set_mode", (PlayMode.CIRCLE,)),
    "app_get_music": ("upload_music", ()),
}

_SINGERS = ("周杰伦", "许嵩", "五月天", "陈奕迅", "其他")


def _any(*words):
    return tuple((word,) for word in words)


# Each rule: alternatives (each a tuple of words that must all appear) and
# the player calls to make, tried in order; the first match wins.
_VOICE_RULES = (
    (_any("我想听歌", "放首歌听听", "放一首歌", "开始播放"), (("start", ()),)),
    (_any("暂停", "停一下"), (("pause", ()),)),
    (_any("继续放", "继续播放", "接着放"), (("resume", ()),)),
    (_any("下一首", "下一曲", "换一首"), (("next", ()),)),
    (_any("上一首", "上一曲"), (("prev", ()),)),
    (
        _any("增加音量", "调大音量", "大点声", "声音大点"),
        (("volume_up", ()), ("resume", ())),
    ),
    (
        _any("减小音量", "调小音量", "小点声", "声音小点"),
        (("volume_down", ()), ("resume", ())),
    ),
    (_any("单曲循环"), (("set_mode", (PlayMode.CIRCLE,)), ("resume", ()))),
    (_any("列表循环"), (("set_mode", (PlayMode.SEQUENCE,)), ("resume", ()))),
    (_any("停止", "结束", "不想听了"), (("stop", ()),)),
    (
        _any("小七"),
        (("pause", ()), ("stop_speech", ()), ("speak", ("小七在呢",))),
    ),
    *((_any(singer), (("play_singer", (singer,)),)) for singer in _SINGERS),
    ((("换", "声音"),), (("change_voice", ()),)),
    (_any("离线模式"), (("offline_mode", ()),)),
    (_any("在线模式"), (("online_mode", ()),)),
)


def parse_json_cmd(msg) -> str:
    """Return the 'cmd' field of an app message; raise ProtocolError if absent."""
    return protocol.parse_cmd(msg)


def match_voice_command(text: str):
    """Return the player calls a recognised phrase asks for, or None."""
    for alternatives, calls in _VOICE_RULES:
        if any(all(word in text for word in words) for words in alternatives):
            return calls
    return None


class Dispatcher:
    """Routes keyboard, server and speech-recognition input to the player."""

    def __init__(self, player, connection=None, asr_fifo=None, device_mode=None) -> None:
        self.player = player
        self.connection = connection
        self._device_mode = DeviceMode(device_mode) if device_mode is not None else None
        if asr_fifo is None or isinstance(asr_fifo, int):
            self._asr_fd = asr_fifo
        elif hasattr(asr_fifo, "fileno"):
            self._asr_fd = asr_fifo.fileno()
        else:
            self._asr_fd = os.open(os.fspath(asr_fifo), os.O_RDONLY)

    @property
    def device_mode(self) -> DeviceMode:
        """The device mode: the one given, or else the player's."""
        if self._device_mode is not None:
            return self._device_mode
        return DeviceMode(getattr(self.player, "device_mode", DeviceMode.ONLINE))

    # input handlers ----------------------------------------------------

    def handle_key(self, key: str) -> str:
        """Run the menu entry for one key and return the message printed."""
        entry = _KEYS.get(key[:1] if key else "")
        if entry is None:
            message = "[select]unknow command"
        else:
            method, args, text = entry
            self._call(method, args)
            message = f"[select]{text}"
        print(message)
        return message

    def handle_app_command(self, cmd: str):
        """Run an app command through the connection; None if it is unknown."""
        entry = _APP_COMMANDS.get(cmd)
        if entry is None or self.connection is None:
            return None
        method, args = entry
        return getattr(self.connection, method)(*args)

    def handle_socket(self):
        """Read one message from the server and act on it."""
        try:
            message = self.connection.recv_json()
        except ConnectionClosed:
            print("server closed the connection", file=sys.stderr)
            return None
        except ProtocolError as exc:
            print(exc, file=sys.stderr)
            return None
        try:
            cmd = parse_json_cmd(message)
        except ProtocolError as exc:
            print(exc, file=sys.stderr)
            return None
        return self.handle_app_command(cmd)

    def handle_speech(self, text: str):
        """Act on recognised speech; anything unrecognised goes to the chat model."""
        calls = match_voice_command(text)
        if calls is not None:
            for method, args in calls:
                self._call(method, args)
            return calls
        if self.device_mode is DeviceMode.OFFLINE:
            calls = (("speak", ("对不起，我现在处于离线模式\n",)),)
            self._call("speak", calls[0][1])
            return calls
        try:
            subprocess.run([QWEN_PROGRAM, text], check=False)
        except OSError as exc:
            print(f"{QWEN_PROGRAM}: {exc}", file=sys.stderr)
        return ()

    def _call(self, method: str, args) -> None:
        try:
            getattr(self.player, method)(*args)
        except OSError as exc:
            print(f"{method}: {exc}", file=sys.stderr)

    # event loop --------------------------------------------------------

    @staticmethod
    def _show_menu() -> None:
        if sys.stdout.isatty():
            sys.stdout.write("\033[H\033[2J")
        print("\n".join(_MENU))

    def _connection_fd(self):
        connection = self.connection
        if connection is None or not getattr(connection, "connected", False):
            return None
        try:
            return connection.fileno()
        except ConnectionError:
            return None

    def _read_stdin(self, fd: int) -> bool:
        data = os.read(fd, _READ_SIZE)
        if not data:
            return False
        for line in data.decode("utf-8", errors="replace").splitlines():
            if line:
                self.handle_key(line[0])
        return True

    def _read_asr(self) -> None:
        fd = self._asr_fd
        try:
            data = os.read(fd, _READ_SIZE)
        except OSError as exc:
            print(f"read asr_fifo: {exc}", file=sys.stderr)
            return
        if not data:
            print("[select]asr_fifo closed")
            self._asr_fd = None
            os.close(fd)
            return
        text = data.decode("utf-8", errors="replace")
        print(f"[select]read from asr_fifo: {text}")
        self.handle_speech(text)

    def run(self) -> None:
        """Show the menu and serve input until every source has closed."""
        self._show_menu()
        stdin_fd = sys.stdin.fileno()
        watch_stdin = True
        while True:
            sources = []
            if watch_stdin:
                sources.append(stdin_fd)
            conn_fd = self._connection_fd()
            if conn_fd is not None:
                sources.append(conn_fd)
            if self._asr_fd is not None:
                sources.append(self._asr_fd)
            if not sources:
                return
            ready, _, _ = select.select(sources, [], [])
            if watch_stdin and stdin_fd in ready:
                watch_stdin = self._read_stdin(stdin_fd)
            if conn_fd is not None and conn_fd in ready:
                self.handle_socket()
            if self._asr_fd is not None and self._asr_fd in ready:
                self._read_asr()


def _is_mapping(obj) -> bool:
    return isinstance(obj, Mapping)