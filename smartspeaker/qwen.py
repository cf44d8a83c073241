"""Query the chat model script and pass its reply to the speech pipe."""

from __future__ import annotations

import json
import os
import subprocess
import sys

QWEN_SCRIPT = "/home/qwen/qwen.sh"
TTS_FIFO = "/home/fifo/tts_fifo"
_MAX_LINE = 2047


def extract_content(text) -> str:
    """Return choices[0].message.content from a chat completion reply."""
    try:
        obj = json.loads(text)
    except (json.JSONDecodeError, TypeError) as exc:
        raise ValueError("reply is not a JSON object") from exc
    if not isinstance(obj, dict):
        raise ValueError("reply is not a JSON object")
    choices = obj.get("choices")
    if not isinstance(choices, list):
        raise ValueError("'choices' is not an array")
    if not choices or not isinstance(choices[0], dict):
        raise ValueError("reply has no choice")
    message = choices[0].get("message")
    if not isinstance(message, dict) or message.get("content") is None:
        raise ValueError("reply has no message content")
    content = message["content"]
    return content if isinstance(content, str) else json.dumps(content, ensure_ascii=False)


def main(argv=None) -> int:
    """Run the model script for one question and write the answer to the speech pipe."""
    args = sys.argv[1:] if argv is None else list(argv)
    if len(args) != 1:
        return 1

    try:
        result = subprocess.run(
            [QWEN_SCRIPT, args[0]],
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
            encoding="utf-8",
            errors="replace",
            check=False,
        )
    except OSError as exc:
        print(f"cannot run {QWEN_SCRIPT}: {exc}", file=sys.stderr)
        return 1

    line = (result.stdout or "").partition("\n")[0][:_MAX_LINE]
    try:
        content = extract_content(line)
    except ValueError as exc:
        print(exc, file=sys.stderr)
        content = ""

    if content:
        print(f"-->{content}")
        try:
            fd = os.open(TTS_FIFO, os.O_WRONLY)
        except OSError as exc:
            print(f"open: {exc}", file=sys.stderr)
            return 1
        try:
            os.write(fd, content.encode("utf-8"))
        except OSError as exc:
            print(f"write: {exc}", file=sys.stderr)
        finally:
            os.close(fd)
    return 0


if __name__ == "__main__":
    sys.exit(main())