from __future__ import annotations

import json
import secrets
from datetime import datetime

TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def local_now() -> str:
    return datetime.now().strftime(TIME_FORMAT)


def make_exec_id() -> str:
    return secrets.token_hex(8)


def dumps_json(value: object, *, indent: int | None = None) -> str:
    return json.dumps(value, ensure_ascii=False, indent=indent)


def decode_output(raw: bytes, max_bytes: int = 0) -> str:
    """Decode captured output, keeping only the tail when ``max_bytes`` is set."""
    if max_bytes > 0 and len(raw) > max_bytes:
        dropped = len(raw) - max_bytes
        tail = raw[-max_bytes:].decode("utf-8", errors="replace")
        return f"[truncated {dropped} bytes]\n{tail}"
    return raw.decode("utf-8", errors="replace")
