"""An asyncio WebSocket client that hands each received message to a callback."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from hosetool.tcp_client import ClientError, ClientStatus

log = logging.getLogger(__name__)

CONNECT_TIMEOUT = 10.0


@dataclass
class WebSocketClientConfig:
    """Where to connect and whether to reconnect after the connection drops."""

    host: str
    port: int
    auto_reconnect: bool = False
    reconnect_interval: float = 5


class WebSocketClient:
    """A WebSocket connection whose binary and text messages go to a callback as bytes."""

    def __init__(self, id: str, config: WebSocketClientConfig) -> None:
        self.id = id
        self.config = config
        self.status = ClientStatus.DISCONNECTED
        self.last_error: str | None = None
        self._ws: Any = None
        self._receive_callback: Callable[[bytes], object] | None = None
        self._disconnect_callback: Callable[[], object] | None = None
        self._shutdown = False
        self._task: asyncio.Task[None] | None = None

    @property
    def url(self) -> str:
        """The address the client connects to."""
        return f"ws://{self.config.host}:{self.config.port}"

    def _fail(self, message: str) -> ClientError:
        self.status = ClientStatus.ERROR
        self.last_error = message
        return ClientError(message)

    async def _open(self) -> Any:
        return await websockets.connect(self.url)

    async def connect(self) -> None:
        """Open the connection and start receiving messages."""
        self.status = ClientStatus.CONNECTING
        try:
            ws = await asyncio.wait_for(self._open(), CONNECT_TIMEOUT)
        except asyncio.TimeoutError:
            raise self._fail("WebSocket connection timed out") from None
        except (OSError, WebSocketException) as exc:
            raise self._fail(f"WebSocket connection failed: {exc}") from exc
        self._ws = ws
        self.status = ClientStatus.CONNECTED
        self.last_error = None
        self._shutdown = False
        self._task = asyncio.create_task(self._receive_loop())

    async def disconnect(self) -> None:
        """Close the connection and stop receiving."""
        self._shutdown = True
        ws, self._ws = self._ws, None
        if ws is not None:
            with contextlib.suppress(OSError, WebSocketException):
                await ws.close()
        self.status = ClientStatus.DISCONNECTED
        task, self._task = self._task, None
        if task is not None and task is not asyncio.current_task():
            await asyncio.wait({task}, timeout=CONNECT_TIMEOUT)

    async def _send(self, message: bytes | str, what: str) -> None:
        ws = self._ws
        if ws is None:
            raise ClientError("not connected to WebSocket server")
        try:
            await ws.send(message)
        except (OSError, WebSocketException) as exc:
            raise ClientError(f"failed to send {what}: {exc}") from exc

    async def send(self, data: bytes) -> None:
        """Send a binary message."""
        await self._send(bytes(data), "message")

    async def send_text(self, text: str) -> None:
        """Send a text message."""
        await self._send(text, "text message")

    def set_receive_callback(self, callback: Callable[[bytes], object]) -> None:
        """Set the function called with each received message's bytes."""
        self._receive_callback = callback

    def set_disconnect_callback(self, callback: Callable[[], object]) -> None:
        """Set the function called when the connection drops."""
        self._disconnect_callback = callback

    def get_status(self) -> ClientStatus:
        """Return the connection state."""
        return self.status

    async def _receive(self, ws: Any) -> None:
        try:
            async for message in ws:
                data = message.encode("utf-8") if isinstance(message, str) else bytes(message)
                if self._receive_callback is not None:
                    self._receive_callback(data)
        except ConnectionClosed as exc:
            log.info("WebSocket client %s connection closed: %s", self.id, exc)
        except (OSError, WebSocketException) as exc:
            log.info("WebSocket client %s receive error: %s", self.id, exc)

    async def _receive_loop(self) -> None:
        while True:
            ws = self._ws
            if ws is not None:
                await self._receive(ws)
            if self._shutdown:
                break
            self.status = ClientStatus.DISCONNECTED
            if self._disconnect_callback is not None:
                self._disconnect_callback()
            self._ws = None
            if not self.config.auto_reconnect or self._shutdown:
                break
            log.info(
                "WebSocket client %s reconnecting in %s s", self.id, self.config.reconnect_interval
            )
            await asyncio.sleep(self.config.reconnect_interval)
            try:
                self._ws = await self._open()
            except (OSError, WebSocketException) as exc:
                log.info("WebSocket client %s reconnect failed: %s", self.id, exc)
                break
            self.status = ClientStatus.CONNECTED
            log.info("WebSocket client %s reconnected", self.id)
        log.info("WebSocket client %s receive loop finished", self.id)