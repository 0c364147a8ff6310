"""ChatWire client TCP connection to the chat server."""
from __future__ import annotations
import asyncio
import logging
from typing import Callable, Optional

from shared.errors import ConnectError, ConnectionLost, ParseError, SendError
from shared.framing import encode_frame, read_frame
from shared.protocol import Envelope, parse, serialize

logger = logging.getLogger("chatwire.client.connection")


class Connection:
    """
    Owns one TCP stream to the chat server.

    Writes from any number of senders go through a single lock so frames are
    never interleaved. Reads happen only in the read-loop task started by
    ``start_reading``. Callbacks are plain callables invoked on the event loop:

    on_envelope(env)            every successfully parsed envelope
    on_parse_error(raw, err)    a frame whose payload could not be parsed
    on_lost(lost_or_none)       stream ended (None) or failed (ConnectionLost); at most once
    on_closed()                 read loop exited for any reason; exactly once
    """

    def __init__(
        self,
        on_envelope: Optional[Callable[[Envelope], None]] = None,
        on_parse_error: Optional[Callable[[bytes, ParseError], None]] = None,
        on_lost: Optional[Callable[[Optional[BaseException]], None]] = None,
        on_closed: Optional[Callable[[], None]] = None,
        connect_timeout: Optional[float] = None,
    ):
        self.on_envelope = on_envelope
        self.on_parse_error = on_parse_error
        self.on_lost = on_lost
        self.on_closed = on_closed
        self.connect_timeout = connect_timeout
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._write_lock = asyncio.Lock()
        self._read_task: Optional[asyncio.Task] = None
        self._loop_started = False
        self._closed = False

    @property
    def is_connected(self) -> bool:
        return self._writer is not None and not self._closed

    @property
    def is_reading(self) -> bool:
        return self._read_task is not None and not self._read_task.done()

    async def connect(self, host: str, port: int) -> None:
        """Open the stream. No retry; failures raise ConnectError."""
        if self._writer is not None or self._closed:
            raise ConnectError("Connection already used")
        logger.info("Connecting to %s:%d", host, port)
        try:
            self._reader, self._writer = await asyncio.wait_for(
                asyncio.open_connection(host, port), timeout=self.connect_timeout
            )
        except asyncio.TimeoutError as e:
            raise ConnectError(f"Timed out connecting to {host}:{port}") from e
        except (OSError, UnicodeError, ValueError) as e:
            raise ConnectError(f"Could not connect to {host}:{port}: {e}") from e
        logger.info("Connected to %s:%d", host, port)

    def start_reading(self) -> None:
        if self._reader is None or self._closed:
            raise ConnectError("Not connected")
        if self.is_reading:
            return
        self._read_task = asyncio.create_task(self._read_loop())

    async def stop_reading(self) -> None:
        """Cancel the read loop and wait for it to finish."""
        task = self._read_task
        if task is None or task is asyncio.current_task():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        if not self._loop_started:
            # Cancelled before its first step, so its finally never ran
            self._loop_started = True
            logger.debug("Read loop cancelled before start")
            self._notify(self.on_closed)

    async def send_envelope(self, env: Envelope) -> None:
        frame = encode_frame(serialize(env))
        async with self._write_lock:
            writer = self._writer
            if writer is None or self._closed or writer.is_closing():
                raise SendError("Not connected")
            try:
                writer.write(frame)
                await writer.drain()
            except (OSError, RuntimeError) as e:
                raise SendError(f"Write failed: {e}") from e
        logger.debug("Sent: %s", env.type)

    async def close(self) -> None:
        """Release the transport. Safe to call repeatedly or concurrently."""
        await self.stop_reading()
        await self._release()

    async def _release(self) -> None:
        if self._closed:
            return
        self._closed = True
        writer, self._writer = self._writer, None
        self._reader = None
        if writer is None:
            return
        try:
            writer.close()
            await writer.wait_closed()
        except (OSError, RuntimeError) as e:
            logger.debug("Error while closing transport: %s", e)
        logger.info("Transport closed")

    async def _read_loop(self) -> None:
        self._loop_started = True
        reader = self._reader
        cancelled = False
        try:
            while True:
                payload = await read_frame(reader)
                if payload is None:
                    logger.info("Server closed the stream")
                    self._notify(self.on_lost, None)
                    break
                try:
                    env = parse(payload)
                except ParseError as e:
                    logger.warning("Dropping unparseable frame: %s", e)
                    self._notify(self.on_parse_error, payload, e)
                    continue
                logger.debug("Recv: %s", env.type)
                self._notify(self.on_envelope, env)
        except asyncio.CancelledError:
            # Cancellation comes from the owner, which also handles the transport
            logger.debug("Read loop cancelled")
            cancelled = True
        except Exception as e:
            logger.warning("Connection lost: %s", e)
            lost = ConnectionLost(str(e) or type(e).__name__)
            lost.__cause__ = e
            self._notify(self.on_lost, lost)
        finally:
            try:
                if not cancelled:
                    await self._release()
            finally:
                self._notify(self.on_closed)

    def _notify(self, callback: Optional[Callable], *args) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            logger.error("Callback error: %s", e)
