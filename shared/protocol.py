"""ChatWire envelope schema and JSON payload codec."""
from __future__ import annotations
import json
import time
from dataclasses import dataclass, field
from typing import Any, Optional

from shared.errors import ParseError

# ---- Client → Server message types ----
MSG_JOIN = "join"
MSG_LEAVE = "leave"
MSG_TYPING = "typing"

# ---- Both directions ----
MSG_CHAT = "msg"
MSG_PRIVATE = "pm"

# ---- Server → Client message types ----
MSG_SYSTEM = "sys"
MSG_USERLIST = "userlist"

ENCODING = "utf-8"


def _now_s() -> int:
    return int(time.time())


@dataclass(frozen=True)
class Envelope:
    """One chat protocol message. ``sender`` is ``from`` on the wire."""
    type: str
    sender: Optional[str] = None
    to: Optional[str] = None
    text: Optional[str] = None
    ts: int = field(default_factory=_now_s)
    users: Optional[tuple[str, ...]] = None
    # Decoded JSON object as received; empty for locally built envelopes.
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    def __post_init__(self) -> None:
        if not isinstance(self.type, str) or not self.type:
            raise ValueError("Envelope type must be a non-empty string")
        if self.users is not None and not isinstance(self.users, tuple):
            object.__setattr__(self, "users", tuple(self.users))

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type}
        if self.sender is not None:
            data["from"] = self.sender
        if self.to is not None:
            data["to"] = self.to
        if self.text is not None:
            data["text"] = self.text
        data["ts"] = self.ts
        if self.users is not None:
            data["users"] = list(self.users)
        return data


def serialize(env: Envelope) -> bytes:
    return json.dumps(env.to_dict(), separators=(",", ":"), ensure_ascii=False).encode(ENCODING)


def _opt_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _ts_or_now(value: Any) -> int:
    # bool is an int subclass; treat it as malformed
    if isinstance(value, bool):
        return _now_s()
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return _now_s()


def _users(value: Any) -> Optional[tuple[str, ...]]:
    if not isinstance(value, list):
        return None
    return tuple(u for u in value if isinstance(u, str))


def parse(data: bytes) -> Envelope:
    """Decode a wire payload into an Envelope.

    Raises ParseError if the payload is not a JSON object with a non-empty
    string ``type``. Every other field falls back to a default instead.
    """
    try:
        obj = json.loads(data.decode(ENCODING))
    except (UnicodeDecodeError, ValueError) as e:
        raise ParseError(f"Invalid JSON payload: {e}") from e
    except RecursionError as e:
        raise ParseError("JSON payload nested too deeply") from e
    if not isinstance(obj, dict):
        raise ParseError("Payload is not a JSON object")
    msg_type = obj.get("type")
    if not isinstance(msg_type, str) or not msg_type:
        raise ParseError("Missing or invalid 'type'")
    return Envelope(
        type=msg_type,
        sender=_opt_str(obj.get("from")),
        to=_opt_str(obj.get("to")),
        text=_opt_str(obj.get("text")),
        ts=_ts_or_now(obj.get("ts")),
        users=_users(obj.get("users")),
        raw=obj,
    )


def make_join(username: str) -> Envelope:
    return Envelope(MSG_JOIN, sender=username)


def make_leave(username: str) -> Envelope:
    return Envelope(MSG_LEAVE, sender=username)


def make_msg(username: str, text: str) -> Envelope:
    return Envelope(MSG_CHAT, sender=username, text=text)


def make_pm(username: str, to: str, text: str) -> Envelope:
    return Envelope(MSG_PRIVATE, sender=username, to=to, text=text)


def make_typing(username: str, text: str) -> Envelope:
    return Envelope(MSG_TYPING, sender=username, text=text)
