"""An asyncio TCP client that splits the stream into id/length-prefixed frames."""

from __future__ import annotations

import asyncio
import contextlib
import enum
import logging
from collections.abc import Callable
from dataclasses import dataclass

log = logging.getLogger(__name__)

CONNECT_TIMEOUT = 10.0
READ_CHUNK = 4096
HEADER_SIZE = 4


class ClientError(Exception):
    """Raised when a connection cannot be made or data cannot be sent."""


class ClientStatus(enum.Enum):
    """Connection state of a client."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


@dataclass
class TcpClientConfig:
    """Where to connect and whether to reconnect after the connection drops."""

    host: str
    port: int
    auto_reconnect: bool = False
    reconnect_interval: float = 5


def extract_frames(buffer: bytearray) -> list[bytes]:
    """Remove every complete frame from the front of the buffer and return them.

    A frame is a big-endian 16-bit message id, a big-endian 16-bit body
    length and the body; frames are returned with their header.
    """
    frames: list[bytes] = []
    while len(buffer) >= HEADER_SIZE:
        body_len = int.from_bytes(buffer[2:4], "big")
        total = HEADER_SIZE + body_len
        if len(buffer) < total:
            break
        frames.append(bytes(buffer[:total]))
        del buffer[:total]
    return frames


class TcpClient:
    """A TCP connection that hands each received frame to a callback."""

    def __init__(self, id: str, config: TcpClientConfig) -> None:
        self.id = id
        self.config = config
        self.status = ClientStatus.DISCONNECTED
        self.last_error: str | None = None
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._receive_callback: Callable[[bytes], object] | None = None
        self._disconnect_callback: Callable[[], object] | None = None
        self._task: asyncio.Task[None] | None = None

    def _fail(self, message: str) -> ClientError:
        self.status = ClientStatus.ERROR
        self.last_error = message
        return ClientError(message)

    async def connect(self) -> None:
        """Open the connection and start receiving frames."""
        self.status = ClientStatus.CONNECTING
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(self.config.host, self.config.port), CONNECT_TIMEOUT
            )
        except asyncio.TimeoutError:
            raise self._fail("connection timed out") from None
        except OSError as exc:
            raise self._fail(f"connection failed: {exc}") from exc
        self._reader, self._writer = reader, writer
        self.status = ClientStatus.CONNECTED
        self.last_error = None
        self._task = asyncio.create_task(self._receive_loop())

    async def disconnect(self) -> None:
        """Close the connection."""
        writer, self._writer = self._writer, None
        if writer is not None:
            writer.close()
            with contextlib.suppress(OSError, ConnectionError):
                await writer.wait_closed()
        self._reader = None
        self.status = ClientStatus.DISCONNECTED

    async def send(self, data: bytes) -> None:
        """Send already framed bytes."""
        writer = self._writer
        if writer is None:
            raise ClientError("not connected to server")
        try:
            writer.write(data)
            await writer.drain()
        except (OSError, ConnectionError) as exc:
            raise ClientError(f"failed to send data: {exc}") from exc

    def set_receive_callback(self, callback: Callable[[bytes], object]) -> None:
        """Set the function called with each complete received frame."""
        self._receive_callback = callback

    def set_disconnect_callback(self, callback: Callable[[], object]) -> None:
        """Set the function called when the connection drops."""
        self._disconnect_callback = callback

    def get_status(self) -> ClientStatus:
        """Return the connection state."""
        return self.status

    async def _receive(self, buffer: bytearray) -> None:
        while True:
            reader = self._reader
            if reader is None:
                return
            try:
                chunk = await reader.read(READ_CHUNK)
            except (OSError, ConnectionError) as exc:
                log.info("TCP client %s read failed: %s", self.id, exc)
                return
            if not chunk:
                log.info("TCP client %s connection closed (EOF)", self.id)
                return
            buffer.extend(chunk)
            for frame in extract_frames(buffer):
                log.debug(
                    "TCP client %s received message id %d, length %d",
                    self.id,
                    int.from_bytes(frame[:2], "big"),
                    len(frame) - HEADER_SIZE,
                )
                if self._receive_callback is not None:
                    self._receive_callback(frame)

    async def _receive_loop(self) -> None:
        buffer = bytearray()
        while True:
            await self._receive(buffer)
            self.status = ClientStatus.DISCONNECTED
            self._reader = None
            writer, self._writer = self._writer, None
            if writer is not None:
                writer.close()
            if self._disconnect_callback is not None:
                self._disconnect_callback()
            if not self.config.auto_reconnect:
                break
            log.info("TCP client %s reconnecting in %s s", self.id, self.config.reconnect_interval)
            await asyncio.sleep(self.config.reconnect_interval)
            buffer.clear()
            try:
                self._reader, self._writer = await asyncio.open_connection(
                    self.config.host, self.config.port
                )
            except OSError as exc:
                log.info("TCP client %s reconnect failed: %s", self.id, exc)
                break
            self.status = ClientStatus.CONNECTED
            log.info("TCP client %s reconnected", self.id)
        log.info("TCP client %s receive loop finished", self.id)