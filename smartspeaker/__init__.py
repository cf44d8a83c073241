"""Smart speaker control: shared state, playback, command dispatch, server link, chat model query and app session."""

__version__ = "0.1.0"

__all__ = ["client", "connection", "dispatch", "player", "protocol", "qwen", "state"]