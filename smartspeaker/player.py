"""Music playback control: track list, volume, mplayer process and speech output."""

from __future__ import annotations

import os
import random
import signal
import subprocess
import sys
import threading
import time
from contextlib import suppress
from dataclasses import dataclass, field

from .state import DeviceMode, PlayMode, StateStore, basename, split_online_name

ONLINE_URL = "http://180.76.142.171/music/"
OFFLINE_URL = "/mnt/usb/"
CMD_FIFO = "/home/fifo/cmd_fifo"
TTS_FIFO = "/home/fifo/tts_fifo"
# A track that ends this soon after a manual change is retried once.
RETRY_WINDOW = 2.0
_AUDIO_SUFFIXES = (".mp3",)


@dataclass
class MusicLibrary:
    """Ordered list of playable track names."""

    tracks: list[str] = field(default_factory=list)
    offline_dir: str = OFFLINE_URL

    def _index(self, ref: str) -> int | None:
        if not ref:
            return None
        if ref in self.tracks:
            return self.tracks.index(ref)
        wanted = basename(ref)
        return next(
            (pos for pos, name in enumerate(self.tracks) if basename(name) == wanted),
            None,
        )

    def find_next(self, mode, current: str) -> str | None:
        """Return the track to play after current, or None when there is none."""
        mode = PlayMode(mode)
        if mode is PlayMode.RANDOM:
            return random.choice(self.tracks) if self.tracks else None
        pos = self._index(current)
        if pos is None:
            return None
        if mode is PlayMode.CIRCLE:
            return self.tracks[pos]
        return self.tracks[pos + 1] if pos + 1 < len(self.tracks) else None

    def find_prev(self, mode, current: str) -> str | None:
        """Return the track to play before current, or None when there is none."""
        mode = PlayMode(mode)
        if mode is PlayMode.RANDOM:
            return random.choice(self.tracks) if self.tracks else None
        pos = self._index(current)
        if pos is None:
            return None
        if mode is PlayMode.CIRCLE:
            return self.tracks[pos]
        return self.tracks[pos - 1] if pos > 0 else None

    def full_path_by_basename(self, name: str) -> str | None:
        """Return the first track whose basename equals that of name."""
        wanted = basename(name)
        return next((track for track in self.tracks if basename(track) == wanted), None)

    def find_after(self, ref: str) -> str | None:
        """Return the track that follows ref in the list."""
        pos = self._index(ref)
        if pos is None or pos + 1 >= len(self.tracks):
            return None
        return self.tracks[pos + 1]

    def first(self) -> str | None:
        """Return the first track, or None for an empty list."""
        return self.tracks[0] if self.tracks else None

    def clear(self) -> None:
        """Remove every track."""
        self.tracks.clear()

    def names(self) -> list[str]:
        """Return a copy of the track list."""
        return list(self.tracks)

    def load_offline(self) -> int:
        """Replace the list with the audio files found in offline_dir."""
        with os.scandir(self.offline_dir) as entries:
            found = sorted(
                entry.name
                for entry in entries
                if entry.is_file() and entry.name.lower().endswith(_AUDIO_SUFFIXES)
            )
        self.tracks[:] = found
        return len(found)


@dataclass
class VolumeControl:
    """Playback volume as a percentage."""

    level: int = 50

    def get(self) -> int:
        """Return the current volume."""
        return self.level

    def set(self, volume: int) -> None:
        """Set the volume; it must lie between 0 and 100."""
        if not 0 <= volume <= 100:
            raise ValueError(f"volume out of range: {volume}")
        self.level = int(volume)


class FifoWriter:
    """Writes text to a named pipe, opening it for each message."""

    def __init__(self, path: str) -> None:
        self.path = str(path)

    def write(self, text: str) -> None:
        """Write text to the pipe."""
        fd = os.open(self.path, os.O_WRONLY)
        try:
            os.write(fd, text.encode("utf-8"))
        finally:
            os.close(fd)


def music_url(device_mode, name: str) -> str:
    """Return the location mplayer plays a track from."""
    prefix = ONLINE_URL if DeviceMode(device_mode) is DeviceMode.ONLINE else OFFLINE_URL
    return prefix + name


class Player:
    """Controls mplayer through its command pipe and keeps the shared state."""

    mplayer_path = "/usr/bin/mplayer"
    usb_devices = ("/dev/sda1", "/dev/sdb1", "/dev/sdc1")
    usb_mount = "/mnt/usb"
    stop_timeout = 5.0

    def __init__(self, library, volume, store, cmd_fifo, speech, server=None) -> None:
        self.library = library
        self.volume = volume
        self.store: StateStore = store
        self.cmd_fifo = cmd_fifo
        self.speech = speech
        self.server = server
        self.device_mode = DeviceMode.ONLINE
        self.playing = False
        self.paused = False
        self._thread: threading.Thread | None = None
        self._process: subprocess.Popen | None = None

    # playback loop -----------------------------------------------------

    def _send(self, command: str) -> None:
        try:
            self.cmd_fifo.write(command)
        except OSError as exc:
            print(f"OPEN FIFO: {exc}", file=sys.stderr)

    def _play_file(self, name: str) -> bool:
        try:
            if self.device_mode is DeviceMode.ONLINE:
                singer, track = split_online_name(name)
                self.store.update(singer=singer, music_name=track, child_pid=os.getpid())
            else:
                self.store.update(music_name=name, child_pid=os.getpid())
        except ValueError as exc:
            print(exc, file=sys.stderr)
            return False
        args = [
            "mplayer",
            music_url(self.device_mode, name),
            "-slave",
            "-quiet",
            "-input",
            f"file={self.cmd_fifo.path}",
        ]
        try:
            process = subprocess.Popen(args, executable=self.mplayer_path)
        except OSError:
            print("[ERROR]MPLAYER failed to start", file=sys.stderr)
            return False
        self._process = process
        self.store.update(grand_pid=process.pid)
        process.wait()
        return True

    def _run(self, name: str) -> None:
        while self.playing:
            if not self._play_file(name):
                self.playing = False
                self.paused = False
                return
            if not self.playing:
                return
            following = self.next_track_name(self.store.get().music_name)
            if following is None:
                self.playing = False
                self.paused = False
                self._refresh_online()
                return
            name = following

    def _refresh_online(self) -> None:
        if self.device_mode is not DeviceMode.ONLINE or self.server is None:
            return
        singer = self.store.get().singer
        self.library.clear()
        self.server.fetch_music(singer)
        self.start()

    def next_track_name(self, finished: str) -> str | None:
        """Choose the track to play after finished ends; None ends playback."""
        state = self.store.get()
        fast = state.manual_seek_at and time.time() - state.manual_seek_at <= RETRY_WINDOW
        if fast and not state.post_seek_retry_used:
            retry = self.library.full_path_by_basename(finished)
            if retry is not None:
                self.store.update(post_seek_retry_used=True)
                return retry
        self.store.update(post_seek_retry_used=False)

        candidate = self.library.find_next(state.mode, finished)
        if candidate is None:
            if self.device_mode is DeviceMode.OFFLINE:
                candidate = self.library.first()
                if candidate is None:
                    return None
            else:
                print("全部歌曲播放完毕······")
                return None

        leave = self.store.get().prev_leave_basename
        if leave:
            if basename(candidate) == leave:
                after = self.library.find_after(candidate)
                if after is not None:
                    candidate = after
            self.store.update(prev_leave_basename="")
        return candidate

    # commands ----------------------------------------------------------

    def start(self) -> None:
        """Start playing the list from its first track."""
        if self.playing:
            return
        first = self.library.first()
        if first is None:
            print("music list is empty, can not start play")
            self.speak("当前歌单为空，请先点歌\n")
            return
        self.store.update(prev_leave_basename="", manual_seek_at=0.0, post_seek_retry_used=False)
        self.playing = True
        self._thread = threading.Thread(target=self._run, args=(first,), daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Stop playback and wait for the player to exit."""
        if not self.playing:
            return
        self.playing = False
        self._send("quit\n")
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(self.stop_timeout)
            if thread.is_alive() and self._process is not None:
                with suppress(OSError):
                    self._process.terminate()
                thread.join()
        self.paused = False

    def pause(self) -> None:
        """Pause the playing track."""
        if not self.playing or self.paused:
            return
        self._send("pause\n")
        self.paused = True
        print("------暂停播放------")

    def resume(self) -> None:
        """Continue a paused track."""
        if not self.playing or not self.paused:
            return
        self._send("pause\n")
        self.paused = False
        print("------继续播放------")

    def _refetch(self, singer: str, upload: bool) -> None:
        self.stop()
        self.library.clear()
        if self.server is not None:
            self.server.fetch_music(singer)
        self.start()
        if upload and self.server is not None:
            self.server.upload_music()

    def _load(self, name: str, **changes) -> None:
        stored = split_online_name(name)[1] if self.device_mode is DeviceMode.ONLINE else name
        self.store.update(
            music_name=stored, manual_seek_at=time.time(), post_seek_retry_used=False, **changes
        )
        self._send(f'loadfile "{music_url(self.device_mode, name)}"\n')
        self.playing = True
        self.paused = False

    def next(self) -> None:
        """Skip to the next track."""
        if not self.playing:
            return
        state = self.store.get()
        name = self.library.find_next(state.mode, state.music_name)
        if name is None:
            if self.device_mode is DeviceMode.ONLINE:
                self._refetch(state.singer, upload=True)
                return
            name = self.library.first()
            if name is None:
                return
        self._load(name, prev_leave_basename="")

    def prev(self) -> None:
        """Go back to the previous track."""
        if not self.playing:
            return
        state = self.store.get()
        name = self.library.find_prev(state.mode, state.music_name)
        if name is None:
            if self.device_mode is DeviceMode.ONLINE:
                self._refetch(state.singer, upload=False)
            else:
                print("没有上一首······")
                self.stop()
            return
        self._load(name, prev_leave_basename=basename(state.music_name))

    def volume_up(self) -> int:
        """Raise the volume by ten, to 100 from 90 upwards."""
        level = self.volume.get()
        if level < 90:
            level += 10
        if level >= 90:
            level = 100
            print("音量已最大")
        self.volume.set(level)
        print(f"当前音量：{level}")
        return level

    def volume_down(self) -> int:
        """Lower the volume by ten, to 0 from 10 downwards."""
        level = self.volume.get()
        if level > 10:
            level -= 10
        if level <= 10:
            level = 0
            print("音量已最小")
        self.volume.set(level)
        print(f"当前音量：{level}")
        return level

    def set_mode(self, mode) -> None:
        """Set how the next track is chosen."""
        self.store.update(mode=PlayMode(mode))

    def play_singer(self, singer: str) -> None:
        """Replace the list with a singer's tracks and play them."""
        self._refetch(singer, upload=True)

    # speech ------------------------------------------------------------

    def speak(self, text: str) -> None:
        """Hand text to speech synthesis."""
        try:
            self.speech.write(text)
        except OSError as exc:
            print(f"write tts_fifo: {exc}", file=sys.stderr)

    @staticmethod
    def _tts_pid() -> int | None:
        try:
            result = subprocess.run(
                ["pgrep", "tts"], capture_output=True, text=True, check=False
            )
        except OSError as exc:
            print(f"popen: {exc}", file=sys.stderr)
            return None
        words = result.stdout.split()
        try:
            pid = int(words[0]) if words else 0
        except ValueError:
            return None
        return pid if pid > 0 else None

    def _signal_tts(self, signum: int) -> None:
        pid = self._tts_pid()
        if pid is not None:
            with suppress(OSError):
                os.kill(pid, signum)

    def stop_speech(self) -> None:
        """Interrupt the sentence being spoken."""
        self._signal_tts(signal.SIGUSR1)

    def change_voice(self) -> None:
        """Switch the synthesiser to its next voice and say so."""
        self._signal_tts(signal.SIGUSR2)
        time.sleep(0.1)
        self.speak("好的，新声音怎么样？")

    # device modes ------------------------------------------------------

    def offline_mode(self) -> None:
        """Play from a USB stick instead of the server."""
        if self.device_mode is DeviceMode.OFFLINE:
            return
        device = next((path for path in self.usb_devices if os.path.exists(path)), None)
        if device is None:
            print("No external storage device found")
            self.speak("没有找到外部存储设备\n")
            raise FileNotFoundError("No external storage device found")

        os.makedirs(self.usb_mount, mode=0o755, exist_ok=True)
        with suppress(OSError):
            subprocess.run(
                ["umount", self.usb_mount],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                check=False,
            )
        with suppress(OSError):
            os.rmdir(self.usb_mount)
        os.mkdir(self.usb_mount, 0o755)

        try:
            mounted = subprocess.run(
                ["mount", "-t", "exfat", device, self.usb_mount], check=False
            ).returncode == 0
        except OSError:
            mounted = False
        if not mounted:
            self.speak("挂载U盘失败\n")
            raise OSError(f"cannot mount {device} on {self.usb_mount}")

        try:
            self.library.load_offline()
        except OSError:
            self.speak("读取U盘中的音乐文件失败\n")
            raise
        for name in self.library.names():
            print(name)

        if self.server is not None:
            self.server.disconnect()
        self.stop()
        self.device_mode = DeviceMode.OFFLINE
        self.speak("已经进入离线模式\n")

    def online_mode(self) -> None:
        """Reconnect to the server and fetch its default list."""
        if self.device_mode is DeviceMode.ONLINE:
            return
        self.stop()
        try:
            if self.server is None:
                raise ConnectionError("no server configured")
            self.server.connect()
        except OSError:
            self.speak("网络连接失败，请检查网络连接\n")
            raise
        self.device_mode = DeviceMode.ONLINE
        self.store.update(
            music_name="",
            singer="",
            prev_leave_basename="",
            manual_seek_at=0.0,
            post_seek_retry_used=False,
        )
        self.library.clear()
        self.server.fetch_music("其他")
        self.speak("网络连接成功\n")