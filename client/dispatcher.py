"""ChatWire inbound envelope dispatch."""
from __future__ import annotations
import asyncio
import datetime
import json
import logging
from typing import Callable, Optional

from shared.chat_log import ChatLog
from shared.errors import ParseError
from shared.protocol import (
    Envelope,
    MSG_CHAT, MSG_PRIVATE, MSG_SYSTEM, MSG_TYPING, MSG_USERLIST,
)

logger = logging.getLogger("chatwire.client.dispatcher")

TYPING_CLEAR_S = 3.0


def format_time(ts: int) -> str:
    """Local wall-clock HH:MM:SS for a Unix-seconds timestamp."""
    try:
        dt = datetime.datetime.fromtimestamp(ts)
    except (OverflowError, OSError, ValueError):
        dt = datetime.datetime.now()
    return dt.strftime("%H:%M:%S")


def format_unknown(env: Envelope) -> str:
    body = env.raw or env.to_dict()
    return "[unknown] " + json.dumps(body, ensure_ascii=False, separators=(",", ":"))


class Dispatcher:
    """
    Routes parsed envelopes by type to UI-facing callbacks.

    on_chat_line(line)      one display line (also appended to the chat log for msg/pm/sys)
    on_typing(text)         typing indicator shown
    on_typing_cleared()     indicator expired without being superseded
    on_user_list(users)     whole user list replaced
    """

    def __init__(
        self,
        on_chat_line: Optional[Callable[[str], None]] = None,
        on_typing: Optional[Callable[[str], None]] = None,
        on_typing_cleared: Optional[Callable[[], None]] = None,
        on_user_list: Optional[Callable[[list[str]], None]] = None,
        chat_log: Optional[ChatLog] = None,
        typing_clear_s: float = TYPING_CLEAR_S,
    ):
        self.on_chat_line = on_chat_line
        self.on_typing = on_typing
        self.on_typing_cleared = on_typing_cleared
        self.on_user_list = on_user_list
        self.chat_log = chat_log
        self.typing_clear_s = typing_clear_s
        self._users: list[str] = []
        self._typing_handle: Optional[asyncio.TimerHandle] = None
        self._emitted = False

    @property
    def users(self) -> list[str]:
        return list(self._users)

    def dispatch(self, env: Envelope) -> None:
        """Handle one envelope. Never raises."""
        self._emitted = False
        try:
            self._route(env)
        except Exception as e:
            logger.error("Dispatch error for %s: %s", env.type, e)
            # Only fall back when the envelope produced nothing visible
            if not self._emitted:
                self._emit(self.on_chat_line, format_unknown(env))

    def dispatch_parse_error(self, payload: bytes, err: ParseError) -> None:
        text = payload.decode("utf-8", errors="replace")
        logger.debug("Unparseable frame: %s", err)
        self._emit(self.on_chat_line, f"[unknown] {text}")

    def reset(self) -> None:
        """Forget per-connection state: users and any pending typing indicator."""
        self._users = []
        if self._typing_handle is not None:
            self._typing_handle.cancel()
            self._typing_handle = None
            self._emit(self.on_typing_cleared)

    def _route(self, env: Envelope) -> None:
        msg_type = env.type
        sender = env.sender or "server"

        if msg_type == MSG_CHAT and env.text is not None:
            self._chat_line(f"[{format_time(env.ts)}] {sender}: {env.text}")

        elif msg_type == MSG_PRIVATE and env.text is not None:
            to = env.to or "(you)"
            self._chat_line(f"[{format_time(env.ts)}] [PM] {sender} -> {to}: {env.text}")

        elif msg_type == MSG_SYSTEM and env.text is not None:
            self._chat_line(f"[system] {env.text}")

        elif msg_type == MSG_TYPING and env.text is not None:
            self._show_typing(env.text)

        elif msg_type == MSG_USERLIST and env.users is not None:
            self._users = list(env.users)
            self._emit(self.on_user_list, self.users)

        else:
            self._emit(self.on_chat_line, format_unknown(env))

    def _chat_line(self, line: str) -> None:
        self._emit(self.on_chat_line, line)
        if self.chat_log is not None:
            self.chat_log.append(line)

    def _show_typing(self, text: str) -> None:
        if self._typing_handle is not None:
            self._typing_handle.cancel()
        self._emit(self.on_typing, text)
        loop = asyncio.get_running_loop()
        self._typing_handle = loop.call_later(self.typing_clear_s, self._clear_typing)

    def _clear_typing(self) -> None:
        self._typing_handle = None
        self._emit(self.on_typing_cleared)

    def _emit(self, callback: Optional[Callable], *args) -> None:
        if callback is None:
            return
        self._emitted = True
        try:
            callback(*args)
        except Exception as e:
            logger.error("UI callback error: %s", e)
