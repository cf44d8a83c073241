"""Shared player state: play modes, device modes and a lock-guarded state store."""

from __future__ import annotations

import enum
import os
import threading
from dataclasses import dataclass, field, replace


class PlayMode(enum.IntEnum):
    """How the next track is chosen when one finishes."""

    SEQUENCE = 1
    RANDOM = 2
    CIRCLE = 3


class DeviceMode(enum.IntEnum):
    """Where the music comes from."""

    ONLINE = 1
    OFFLINE = 2


@dataclass(frozen=True)
class PlayerState:
    """Snapshot of what the playback processes share with the controller."""

    music_name: str = ""
    singer: str = ""
    mode: PlayMode = PlayMode.SEQUENCE
    parent_pid: int = field(default_factory=os.getpid)
    child_pid: int = 0
    grand_pid: int = 0
    # Basename of the track left by a manual "previous", so that the
    # automatic advance at the end of a track does not bounce back to it.
    prev_leave_basename: str = ""
    manual_seek_at: float = 0.0
    # After a manual track change, a track that ends at once is retried once.
    post_seek_retry_used: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "mode", PlayMode(self.mode))


class StateStore:
    """Holds the current PlayerState; every read and write is atomic."""

    def __init__(self, state: PlayerState | None = None) -> None:
        if state is not None and not isinstance(state, PlayerState):
            raise TypeError("state must be a PlayerState")
        self._lock = threading.Lock()
        self._state = state if state is not None else PlayerState()

    def get(self) -> PlayerState:
        """Return the current state."""
        with self._lock:
            return self._state

    def set(self, state: PlayerState) -> None:
        """Replace the whole state."""
        if not isinstance(state, PlayerState):
            raise TypeError("state must be a PlayerState")
        with self._lock:
            self._state = state

    def update(self, **kwargs) -> PlayerState:
        """Change the given fields in one step and return the new state."""
        with self._lock:
            self._state = replace(self._state, **kwargs)
            return self._state


def split_online_name(name: str) -> tuple[str, str]:
    """Split an online track name of the form 'singer/track' at its first slash."""
    singer, sep, track = name.partition("/")
    if not sep:
        raise ValueError(f"online track name has no singer part: {name!r}")
    return singer, track


def basename(path: str) -> str:
    """Return the part of a path after its last slash."""
    return path.rpartition("/")[2]