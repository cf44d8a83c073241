# smartspeaker

The control side of a small networked smart speaker. It plays music with
`mplayer` in slave mode and steers it by writing commands to a FIFO. It takes
commands from the keyboard, from a speech recogniser that writes text to a
FIFO, and from a companion app whose requests reach the speaker through a
music server. The package also holds the session logic of that companion app.

It uses only the standard library and targets Linux.

## Modules

- `smartspeaker.state`: the shared playback state.
  - `PlayMode` has the values `SEQUENCE`, `RANDOM` and `CIRCLE`
    (single-track loop).
  - `DeviceMode` has the values `ONLINE` and `OFFLINE`.
  - `PlayerState` is a frozen record of the current track, singer, mode,
    process ids and the bookkeeping for manual track changes.
  - `StateStore` guards a `PlayerState` with a lock, through `get`, `set`
    and `update(**fields)`.
  - `split_online_name("singer/track")` splits a name at its first slash
    and raises `ValueError` when there is no slash.
  - `basename` returns the part of a path after its last slash.
- `smartspeaker.protocol`: the wire format. Each message is a 4-byte
  little-endian signed length followed by UTF-8 JSON, and a whole frame is
  at most 1024 bytes.
  - Functions: `encode_frame`, `recv_exact`, `read_frame`, `send_json`,
    `read_json` and `parse_cmd`. `parse_cmd` returns the `"cmd"` field of a
    message given as text, bytes or a mapping.
  - Malformed input raises `ProtocolError`, a subclass of `ValueError`. A
    closed peer raises `ConnectionClosed`, a subclass of `ConnectionError`.
- `smartspeaker.player`: playback.
  - `MusicLibrary` is the ordered track list. It provides `find_next`,
    `find_prev`, `find_after`, `full_path_by_basename`, `first`, `clear` and
    `names`. `load_offline` reads the sorted `.mp3` files in `offline_dir`.
  - `VolumeControl` holds a volume percentage from 0 to 100. It defaults to
    50 and is kept in memory only.
  - `FifoWriter` opens a named pipe, writes one message and closes it.
  - `music_url` builds the online stream URL or the `/mnt/usb/` file path.
  - `Player` provides `start`, `stop`, `pause`, `resume`, `next`, `prev`,
    `volume_up` and `volume_down` (steps of 10, snapping to 100 and 0),
    `set_mode`, `play_singer`, `speak`, `stop_speech`, `change_voice`,
    `offline_mode`, `online_mode` and `next_track_name`.
  - Playback runs `mplayer` in a background thread. When a track ends, the
    next one is chosen by the play mode.
  - In offline mode the list wraps around to the start. In online mode,
    reaching the end of the list fetches a fresh list from the server.
- `smartspeaker.connection`: `ServerConnection`.
  - `connect` tries up to 30 times by default, one second apart. Once
    connected, it sends a status report (`status_report`) every five seconds.
  - `fetch_music(singer)` asks for a singer's list and loads it into the
    library. `upload_music` sends the list.
  - It answers app requests with `app_start`, `app_stop`, `app_pause`,
    `app_continue`, `app_next`, `app_prev`, `app_volume_up`,
    `app_volume_down` and `app_set_mode`. Each sends a reply message and
    returns it.
  - The default server is `127.0.0.1:8888`.
- `smartspeaker.dispatch`: input routing.
  - `Dispatcher` handles keys (`handle_key`), app commands
    (`handle_app_command`, `handle_socket`) and recognised speech
    (`handle_speech`).
  - `run` is a `select` loop over standard input, the server connection and
    the speech-recogniser FIFO. It returns once all of them have closed.
  - `parse_json_cmd` and `match_voice_command` are available on their own.
- `smartspeaker.qwen`: asks a chat model a question.
  - `main` runs `/home/qwen/qwen.sh` with the question.
  - `extract_content` takes `choices[0].message.content` out of the JSON
    reply.
  - The answer is written to `/home/fifo/tts_fifo`.
- `smartspeaker.client`: the companion app session.
  - `AppSession` sends register, login, bind and info requests, and the
    button presses (`press_play`, `press_next`, `press_prior`,
    `press_volume_up`, `press_volume_down`, `press_circle`,
    `press_sequence`, `close`).
  - It acts on server replies (`handle_message`, `receive`). The result is
    recorded in a `ViewState`: current page, labels, play button symbol,
    track list and message boxes.

## Running the speaker from Python

```python
from smartspeaker.connection import ServerConnection
from smartspeaker.dispatch import Dispatcher
from smartspeaker.player import CMD_FIFO, TTS_FIFO, FifoWriter, MusicLibrary, Player, VolumeControl
from smartspeaker.state import StateStore

library = MusicLibrary()
volume = VolumeControl()
store = StateStore()
player = Player(library, volume, store, FifoWriter(CMD_FIFO), FifoWriter(TTS_FIFO))
connection = ServerConnection(player, store, volume, library)
player.server = connection

connection.connect()
connection.fetch_music("其他")
Dispatcher(player, connection, "/home/fifo/asr_fifo").run()
```

The FIFOs under `/home/fifo/` must already exist. `mplayer` is expected at
`/usr/bin/mplayer`. Switching to offline mode mounts the first of
`/dev/sda1`, `/dev/sdb1` or `/dev/sdc1` as exFAT on `/mnt/usb` with the
`mount` command, so it needs root.

## Keyboard commands

| key | action            |
|-----|-------------------|
| 1   | start playing     |
| 2   | stop              |
| 3   | pause             |
| 4   | resume            |
| 5   | next track        |
| 6   | previous track    |
| 7   | volume up         |
| 8   | volume down       |
| 9   | single-track loop |
| 0   | list (sequence)   |

## Voice commands

Recognised text is matched by phrase, and the first rule that matches wins.

- 我想听歌 / 开始播放: start playing.
- 暂停: pause.
- 继续播放: resume.
- 下一首 / 上一首: next or previous track.
- 大点声 / 小点声: volume up or down.
- 单曲循环 / 列表循环: change the play mode.
- 停止 / 结束: stop.
- 小七: pause, interrupt speech and answer.
- A singer's name (周杰伦, 许嵩, 五月天, 陈奕迅, 其他): play that singer's
  list.
- A phrase containing both 换 and 声音: switch the synthesiser's voice.
- 离线模式 / 在线模式: switch device mode.

Any other text goes to `/home/qwen/qwen` while online. While offline, the
speaker says that it is offline instead.

## Asking the chat model

```
smartspeaker-qwen "今天天气怎么样"
```

## Using the protocol directly

```python
import socket

from smartspeaker.protocol import read_json, send_json

with socket.create_connection(("127.0.0.1", 8888)) as sock:
    send_json(sock, {"cmd": "get_music_list", "singer": "其他"})
    reply = read_json(sock)
```

## What it does not do

- There is no command that starts the speaker itself. Wire it up from Python
  as shown above.
- There is no music server. The package only talks to one.
- There is no speech recogniser or speech synthesiser. The package reads and
  writes their FIFOs and signals a running `tts` process.
- There is no hardware button input.
- There is no system mixer control. `VolumeControl` only keeps a number.
- There is no graphical app. `AppSession` keeps its screen state in a
  `ViewState`.

## Tests

The tests use pytest. Install the `test` extra and run `pytest`.