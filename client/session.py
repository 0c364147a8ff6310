"""ChatWire chat session: connection lifecycle and the outward command surface."""
from __future__ import annotations
import logging
import time
from typing import Callable, Optional

from client.connection import Connection
from client.dispatcher import Dispatcher
from shared.chat_log import ChatLog
from shared.errors import ConnectError, SendError
from shared.protocol import Envelope, make_join, make_leave, make_msg, make_pm, make_typing

logger = logging.getLogger("chatwire.client.session")

# ---- Connection states ----
STATE_DISCONNECTED = "disconnected"
STATE_CONNECTING = "connecting"
STATE_CONNECTED = "connected"
STATE_DISCONNECTING = "disconnecting"

PM_PREFIX = "/w "
PM_USAGE = "PM usage: /w username message"
TYPING_THROTTLE_S = 1.0


def parse_port(port_text) -> int:
    try:
        port = int(str(port_text).strip())
    except ValueError as e:
        raise ConnectError(f"Invalid port: {port_text!r}") from e
    if not (1 <= port <= 65535):
        raise ConnectError(f"Port out of range: {port}")
    return port


def split_address(address: str) -> tuple[str, str]:
    """Split ``host:port`` into its parts; the port is validated later."""
    host, sep, port_text = address.strip().rpartition(":")
    if not sep:
        raise ConnectError(f"Address must be host:port, got {address!r}")
    return host.strip("[] "), port_text


class ChatSession:
    """
    Owns the one active Connection, the dispatcher and the connection state.

    UI-facing callbacks (all optional, all called on the event loop thread):
        on_chat_line(line), on_typing(text), on_typing_cleared(),
        on_user_list(users), on_state_change(state), on_error(message)
    """

    def __init__(
        self,
        chat_log: Optional[ChatLog] = None,
        on_chat_line: Optional[Callable[[str], None]] = None,
        on_typing: Optional[Callable[[str], None]] = None,
        on_typing_cleared: Optional[Callable[[], None]] = None,
        on_user_list: Optional[Callable[[list[str]], None]] = None,
        on_state_change: Optional[Callable[[str], None]] = None,
        on_error: Optional[Callable[[str], None]] = None,
        connect_timeout: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        connection_factory: Callable[..., Connection] = Connection,
    ):
        self.on_chat_line = on_chat_line
        self.on_state_change = on_state_change
        self.on_error = on_error
        self.connect_timeout = connect_timeout
        self.dispatcher = Dispatcher(
            on_chat_line=self._emit_line,
            on_typing=on_typing,
            on_typing_cleared=on_typing_cleared,
            on_user_list=on_user_list,
            chat_log=chat_log,
        )
        self.state = STATE_DISCONNECTED
        self.username = ""
        self._clock = clock
        self._connection_factory = connection_factory
        self._connection: Optional[Connection] = None
        self._last_typing: Optional[float] = None

    @property
    def is_connected(self) -> bool:
        return self.state == STATE_CONNECTED and self._connection is not None

    @property
    def users(self) -> list[str]:
        return self.dispatcher.users

    async def connect(self, address: str, username: str) -> None:
        """Connect to ``host:port`` and join as ``username``."""
        try:
            host, port_text = split_address(address)
        except ConnectError as e:
            self._report_error(str(e))
            raise
        await self.connect_to(host, port_text, username)

    async def connect_to(self, host: str, port_text, username: str) -> None:
        username = (username or "").strip()
        host = (host or "").strip()
        try:
            if self.state != STATE_DISCONNECTED:
                raise ConnectError(f"Cannot connect while {self.state}")
            if not username:
                raise ConnectError("Username is required")
            if not host:
                raise ConnectError("Host is required")
            port = parse_port(port_text)
        except ConnectError as e:
            self._report_error(str(e))
            raise

        self._set_state(STATE_CONNECTING)
        conn = self._connection_factory(
            on_envelope=self.dispatcher.dispatch,
            on_parse_error=self.dispatcher.dispatch_parse_error,
            connect_timeout=self.connect_timeout,
        )
        conn.on_lost = lambda exc: self._on_connection_lost(conn, exc)
        conn.on_closed = lambda: self._on_connection_closed(conn)

        try:
            await conn.connect(host, port)
            await conn.send_envelope(make_join(username))
        except (ConnectError, SendError) as e:
            await conn.close()
            self._set_state(STATE_DISCONNECTED)
            self._report_error(f"Could not connect: {e}")
            if isinstance(e, ConnectError):
                raise
            raise ConnectError(f"Could not join {host}:{port}: {e}") from e

        self.username = username
        self._last_typing = None
        self.dispatcher.reset()
        self._connection = conn
        conn.start_reading()
        self._set_state(STATE_CONNECTED)
        self._emit_line("[system] Connected")
        logger.info("Joined %s:%d as %s", host, port, username)

    async def send(self, text: str) -> bool:
        """Send a chat line; ``/w user message`` sends a private message.

        Returns True if an envelope was written.
        """
        text = (text or "").strip()
        if not text or not self.is_connected:
            return False
        if text.startswith(PM_PREFIX):
            parts = text[len(PM_PREFIX):].split(None, 1)
            if len(parts) < 2:
                self._emit_line(f"[system] {PM_USAGE}")
                return False
            return await self.send_private(parts[0], parts[1])
        return await self._send_user(make_msg(self.username, text))

    async def send_private(self, user: str, text: str) -> bool:
        user = (user or "").strip()
        text = (text or "").strip()
        if not self.is_connected:
            return False
        if not user or not text:
            self._emit_line(f"[system] {PM_USAGE}")
            return False
        return await self._send_user(make_pm(self.username, user, text))

    async def notify_typing(self) -> bool:
        """Leading-edge throttle: at most one typing envelope per window."""
        if not self.is_connected:
            return False
        now = self._clock()
        if self._last_typing is not None and now - self._last_typing < TYPING_THROTTLE_S:
            return False
        self._last_typing = now
        try:
            await self._connection.send_envelope(make_typing(self.username, f"{self.username} is typing..."))
        except SendError as e:
            logger.debug("Typing notice not sent: %s", e)
        return True

    async def disconnect(self) -> None:
        """Stop reading, send a best-effort leave, close. Always ends disconnected."""
        conn = self._connection
        self._connection = None
        if conn is None:
            if self.state != STATE_CONNECTING:
                self._set_state(STATE_DISCONNECTED)
            return

        self._set_state(STATE_DISCONNECTING)
        try:
            await conn.stop_reading()
            try:
                await conn.send_envelope(make_leave(self.username))
            except SendError as e:
                logger.debug("Leave not sent: %s", e)
            await conn.close()
        finally:
            self.dispatcher.reset()
            self._set_state(STATE_DISCONNECTED)
            logger.info("Disconnected")

    async def _send_user(self, env: Envelope) -> bool:
        conn = self._connection
        if conn is None:
            return False
        try:
            await conn.send_envelope(env)
        except SendError as e:
            logger.warning("User %s not sent: %s", env.type, e)
            self._emit_line(f"[system] Send failed: {e}")
            return False
        return True

    def _on_connection_lost(self, conn: Connection, exc: Optional[BaseException]) -> None:
        if conn is not self._connection:
            return
        if exc is None:
            self._emit_line("[system] Disconnected by server")
        else:
            self._emit_line(f"[system] Connection lost: {exc}")

    def _on_connection_closed(self, conn: Connection) -> None:
        # Stale connections were already handled by disconnect()
        if conn is not self._connection:
            return
        self._connection = None
        self.dispatcher.reset()
        self._set_state(STATE_DISCONNECTED)

    def _set_state(self, state: str) -> None:
        if state == self.state:
            return
        logger.debug("State: %s -> %s", self.state, state)
        self.state = state
        self._emit(self.on_state_change, state)

    def _report_error(self, message: str) -> None:
        logger.warning("%s", message)
        self._emit(self.on_error, message)

    def _emit_line(self, line: str) -> None:
        self._emit(self.on_chat_line, line)

    def _emit(self, callback: Optional[Callable], *args) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            logger.error("UI callback error: %s", e)
