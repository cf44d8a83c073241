"""Link between the speaker and the control server: reports, track lists and app commands."""

from __future__ import annotations

import subprocess
import sys
import threading
import time
from contextlib import suppress

from . import protocol
from .protocol import ConnectionClosed, ProtocolError
from .state import DeviceMode, PlayMode

PORT = 8888
MY_IP = "127.0.0.1"
SERVER_IP = "192.168.1.100"
DEVICE_ID = "speaker-0001"
FETCH_ATTEMPTS = 10


def _mplayer_running() -> bool:
    try:
        result = subprocess.run(
            ["pgrep", "mplayer"], capture_output=True, text=True, check=False
        )
    except OSError:
        return False
    return bool((result.stdout or "").strip())


class ServerConnection:
    """TCP connection to the server carrying length-prefixed JSON messages."""

    report_interval = 5.0

    def __init__(
        self,
        player,
        store,
        volume,
        library,
        host=MY_IP,
        port=PORT,
        device_id=DEVICE_ID,
    ) -> None:
        self.player = player
        self.store = store
        self.volume = volume
        self.library = library
        self.host = host
        self.port = port
        self.device_id = device_id
        self._sock = None
        self._send_lock = threading.Lock()
        self._stop = threading.Event()
        self._reporter: threading.Thread | None = None

    @property
    def connected(self) -> bool:
        """Whether the connection is open."""
        return self._sock is not None

    def connect(self, retries=30, delay=1.0) -> None:
        """Connect to the server, retrying; start the periodic status report."""
        if self._sock is not None:
            return
        import socket

        last_error: OSError | None = None
        for attempt in range(retries):
            try:
                sock = socket.create_connection((self.host, self.port))
            except OSError as exc:
                last_error = exc
                print(f"connect: {exc}", file=sys.stderr)
                if attempt + 1 < retries:
                    time.sleep(delay)
                continue
            self._sock = sock
            self._stop = threading.Event()
            self._reporter = threading.Thread(
                target=self._report_loop, args=(self._stop,), daemon=True
            )
            self._reporter.start()
            print("connect success")
            if self.player is not None:
                self.player.device_mode = DeviceMode.ONLINE
            return
        raise ConnectionError(
            f"cannot connect to {self.host}:{self.port}"
        ) from last_error

    def fileno(self) -> int:
        """Return the socket's file descriptor, for select()."""
        if self._sock is None:
            raise ConnectionError("not connected")
        return self._sock.fileno()

    def send_json(self, obj) -> None:
        """Send one JSON message."""
        sock = self._sock
        if sock is None:
            raise ConnectionError("not connected")
        with self._send_lock:
            protocol.send_json(sock, obj)

    def recv_json(self):
        """Receive one JSON message; a closed peer ends the connection."""
        sock = self._sock
        if sock is None:
            raise ConnectionError("not connected")
        try:
            return protocol.read_json(sock)
        except ConnectionClosed:
            self.disconnect()
            raise

    def _report_loop(self, stop: threading.Event) -> None:
        while not stop.wait(self.report_interval):
            try:
                self.send_json(self.status_report())
            except OSError:
                return

    def status_report(self) -> dict:
        """Build the periodic 'info' message describing the player."""
        state = self.store.get()
        try:
            level = int(self.volume.get())
        except (OSError, ValueError):
            level = -1
        if not self.player.playing:
            status = "stop"
        elif self.player.paused:
            status = "pause"
        else:
            status = "playing"
        return {
            "cmd": "info",
            "music_name": state.music_name,
            "mode": int(state.mode),
            "volume": level,
            "device_id": self.device_id,
            "status": status,
        }

    def fetch_music(self, singer) -> list:
        """Ask the server for a singer's tracks and load them into the library."""
        self.send_json({"cmd": "get_music_list", "singer": singer})
        for _ in range(FETCH_ATTEMPTS):
            try:
                message = self.recv_json()
            except ConnectionClosed:
                print("connection closed while waiting reply_music", file=sys.stderr)
                return []
            except ProtocolError:
                continue
            try:
                cmd = protocol.parse_cmd(message)
            except ProtocolError:
                continue
            if cmd == "reply_music":
                music = message.get("music")
                if not isinstance(music, list):
                    print("create list failed")
                    return []
                tracks = [str(name) for name in music]
                self.library.clear()
                self.library.tracks.extend(tracks)
                return tracks
            print(f"skip msg while waiting reply_music: {cmd}")
        print("get_music timeout: no reply_music received")
        return []

    def upload_music(self) -> dict:
        """Send the current track list to the server."""
        reply = {"cmd": "app_upload_music_reply", "music": self.library.names()}
        self.send_json(reply)
        return reply

    def _send_reply(self, reply: dict) -> dict:
        self.send_json(reply)
        return reply

    def app_start(self) -> dict:
        """Start playback on the app's request and report whether mplayer runs."""
        reply = {"cmd": "app_start_reply"}
        self.player.start()
        reply["result"] = "success" if _mplayer_running() else "failure"
        return self._send_reply(reply)

    def app_stop(self) -> dict:
        """Stop playback on the app's request and report whether mplayer is gone."""
        reply = {"cmd": "app_stop_reply"}
        self.player.stop()
        reply["result"] = "failure" if _mplayer_running() else "success"
        return self._send_reply(reply)

    def app_pause(self) -> dict:
        """Pause on the app's request."""
        self.player.pause()
        return self._send_reply({"cmd": "app_pause_reply", "result": "success"})

    def app_continue(self) -> dict:
        """Resume on the app's request."""
        self.player.resume()
        return self._send_reply({"cmd": "app_continue_reply", "result": "success"})

    def app_next(self) -> dict:
        """Skip to the next track on the app's request."""
        old = self.store.get()
        reply = {"cmd": "app_next_reply"}
        self.player.next()
        new = self.store.get()
        if old.music_name == new.music_name and new.mode is PlayMode.SEQUENCE:
            reply["result"] = "failure"
        else:
            reply["result"] = "success"
            reply["music_name"] = new.music_name
        return self._send_reply(reply)

    def app_prev(self) -> dict:
        """Go back a track on the app's request."""
        old = self.store.get()
        reply = {"cmd": "app_prev_reply"}
        self.player.prev()
        new = self.store.get()
        if old.music_name == new.music_name:
            if new.mode is PlayMode.SEQUENCE:
                reply["result"] = "failure"
        else:
            reply["result"] = "success"
            reply["music_name"] = new.music_name
        return self._send_reply(reply)

    def app_volume_up(self) -> dict:
        """Raise the volume on the app's request."""
        old = self.volume.get()
        reply = {"cmd": "app_add_volume_reply"}
        if old >= 100:
            reply.update(result="success", volume=old)
            return self._send_reply(reply)
        self.player.volume_up()
        new = self.volume.get()
        if new > old:
            reply.update(result="success", volume=new)
        else:
            reply.update(result="failure", volume=old)
        return self._send_reply(reply)

    def app_volume_down(self) -> dict:
        """Lower the volume on the app's request."""
        old = self.volume.get()
        reply = {"cmd": "app_reduce_volume_reply"}
        if old <= 0:
            reply.update(result="success", volume=old)
            return self._send_reply(reply)
        self.player.volume_down()
        new = self.volume.get()
        if new < old:
            reply.update(result="success", volume=new)
        else:
            reply.update(result="failure", volume=old)
        return self._send_reply(reply)

    def app_set_mode(self, mode) -> dict:
        """Change the play mode on the app's request."""
        mode = PlayMode(mode)
        reply = {"cmd": "app_set_mode_reply"}
        if self.store.get().mode is mode:
            reply.update(result="success", mode=int(mode))
            return self._send_reply(reply)
        self.player.set_mode(mode)
        if self.store.get().mode is mode:
            reply.update(result="success", mode=int(mode))
        else:
            reply["result"] = "failure"
        return self._send_reply(reply)

    def disconnect(self) -> None:
        """Stop the status report and close the connection."""
        self._stop.set()
        sock, self._sock = self._sock, None
        if sock is not None:
            with suppress(OSError):
                sock.close()
        reporter, self._reporter = self._reporter, None
        if reporter is not None and reporter is not threading.current_thread():
            reporter.join(1.0)