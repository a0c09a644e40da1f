"""Realtime transport for the Window protocol.

Wraps an aiohttp websocket: every inbound frame is decoded with
``parse_event`` and the typed event is put on the session's EventBus.
The adapter never reconnects on its own. When the channel drops it
posts a single ``TransportClosed`` signal and leaves the retry policy
to the session controller.
"""
from __future__ import annotations

import asyncio
import logging

import aiohttp

from window.adapters.event_bus import EventBus, TransportClosed
from window.adapters.events import encode_send, parse_event
from window.engine.errors import TransportError

logger = logging.getLogger(__name__)


def websocket_url(host: str, api_key: str) -> str:
    """Build ``ws[s]://<host>/ws?token=<key>`` from a host string.

    ``https://`` hosts use ``wss://``; bare hosts and ``http://`` use
    ``ws://``.
    """
    host = host.strip().rstrip("/")
    scheme = "ws"
    if host.startswith("https://"):
        scheme = "wss"
        host = host[len("https://"):]
    elif host.startswith("http://"):
        host = host[len("http://"):]
    return f"{scheme}://{host}/ws?token={api_key}"


class RealtimeTransport:
    """Duplex event channel to the agent.

    The transport holds the EventBus, not the controller that consumes
    it; the controller creates, connects and closes the transport.
    """

    def __init__(
        self,
        host: str,
        api_key: str,
        bus: EventBus,
        heartbeat: float | None = 30.0,
    ) -> None:
        self.url = websocket_url(host, api_key)
        self._bus = bus
        self._heartbeat = heartbeat
        self._session: aiohttp.ClientSession | None = None
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._receive_task: asyncio.Task[None] | None = None
        self._closing = False
        self.connected = False
        self.frames_received = 0
        self.frames_dropped = 0

    @property
    def _log_url(self) -> str:
        return self.url.split("?", 1)[0]

    async def connect(self) -> None:
        """Open the websocket and start the receive loop.

        Raises TransportError when the channel cannot be opened.
        """
        # Drop any previous socket quietly before reopening
        self._closing = True
        await self._teardown()
        self._closing = False
        self._session = aiohttp.ClientSession()
        try:
            self._ws = await self._session.ws_connect(
                self.url, heartbeat=self._heartbeat,
            )
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as exc:
            await self._session.close()
            self._session = None
            raise TransportError(self._log_url, str(exc) or type(exc).__name__) from exc

        self.connected = True
        logger.info("Realtime channel open: %s", self._log_url)
        self._receive_task = asyncio.create_task(
            self._receive_loop(self._ws), name="window-transport-receive",
        )

    async def _receive_loop(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        reason = "closed by server"
        try:
            async for msg in ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    await self._handle_frame(msg.data)
                elif msg.type == aiohttp.WSMsgType.BINARY:
                    await self._handle_frame(msg.data)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    reason = f"socket error: {ws.exception()}"
                    break
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            reason = f"receive failed: {exc}"
            logger.warning("Receive loop error on %s: %s", self._log_url, exc)
        finally:
            self.connected = False

        if self._closing:
            return
        logger.warning("Realtime channel lost (%s): %s", self._log_url, reason)
        await self._bus.put(TransportClosed(reason=reason))

    async def _handle_frame(self, data: str | bytes) -> None:
        self.frames_received += 1
        event = parse_event(data)
        if event is None:
            self.frames_dropped += 1
            logger.warning("Could not parse event frame: %.120r", data)
            return
        await self._bus.put(event)

    async def send(self, message_id: str, content: str) -> None:
        """Send a ``message.send`` frame. Failures are logged, not raised."""
        if self._ws is None or self._ws.closed or not self.connected:
            logger.warning("Send of %s dropped: channel not connected", message_id)
            return
        try:
            await self._ws.send_str(encode_send(message_id, content))
        except (aiohttp.ClientError, ConnectionError, RuntimeError) as exc:
            logger.warning("Send of %s failed: %s", message_id, exc)

    async def close(self) -> None:
        """User-initiated teardown. No TransportClosed is posted."""
        self._closing = True
        await self._teardown()

    async def _teardown(self) -> None:
        self.connected = False
        task, self._receive_task = self._receive_task, None
        ws, self._ws = self._ws, None
        session, self._session = self._session, None
        if ws is not None and not ws.closed:
            await ws.close()
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        if session is not None and not session.closed:
            await session.close()
