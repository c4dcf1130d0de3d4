"""The one live socket of a client session.

A :class:`Connection` walks ``closed -> connecting -> open -> closed`` once.
Reconnecting means building a new one; nothing is buffered across sessions
and nothing is sent unless the socket is open.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional, Union

import aiohttp

from .errors import ErrorObserver, MalformedFrame, SendRejected, TransportError
from .frames import InboundFrame, PresenceFrame, RoutedMessage, decode_frame, encode_message
from .history import HistoryStore
from .keys import key_for_message
from .models import Message
from .presence import PresenceTracker

logger = logging.getLogger(__name__)

CLOSED = "closed"
CONNECTING = "connecting"
OPEN = "open"


def _log_error(error: Exception) -> None:
    logger.warning("%s", error)


class Connection:
    def __init__(
        self,
        url: str,
        identity: str,
        *,
        presence: PresenceTracker,
        store: HistoryStore,
        on_error: Optional[ErrorObserver] = None,
        heartbeat_s: float = 20.0,
        session_factory: Callable[[], aiohttp.ClientSession] = aiohttp.ClientSession,
    ) -> None:
        self.url = url
        self.identity = identity
        self.heartbeat_s = heartbeat_s
        self._presence = presence
        self._store = store
        self._on_error = on_error or _log_error
        self._session_factory = session_factory
        self._state = CLOSED
        self._used = False
        self._closing = False
        self._released = False
        self._http: Optional[aiohttp.ClientSession] = None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._reader_task: Optional[asyncio.Task] = None

    @property
    def state(self) -> str:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state == OPEN

    @property
    def presence(self) -> PresenceTracker:
        return self._presence

    @property
    def store(self) -> HistoryStore:
        return self._store

    async def open(self) -> None:
        if self._used:
            raise RuntimeError("connection already used; create a new one")
        self._used = True
        self._state = CONNECTING
        self._http = self._session_factory()
        try:
            ws = await self._http.ws_connect(self.url, heartbeat=self.heartbeat_s)
        except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as exc:
            await self._release()
            if self._closing:
                return
            error = TransportError(f"could not connect to {self.url}: {exc}")
            self._on_error(error)
            raise error from exc

        if self._closing:
            await ws.close()
            return
        self._ws = ws
        self._state = OPEN
        logger.info("connected to %s as %s", self.url, self.identity)
        self._reader_task = asyncio.create_task(self._read_loop(ws))

    async def _read_loop(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        failed = False
        try:
            async for msg in ws:
                if msg.type in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
                    try:
                        self.dispatch(msg.data)
                    except Exception as exc:
                        logger.exception("inbound frame handling failed")
                        failed = True
                        self._on_error(TransportError(f"inbound frame handling failed: {exc}"))
                        break
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    failed = True
                    self._on_error(TransportError(f"transport error: {ws.exception()}"))
                    break
        except asyncio.CancelledError:
            raise
        except (aiohttp.ClientError, OSError) as exc:
            failed = True
            self._on_error(TransportError(f"transport error: {exc}"))
        if self._closing:
            return
        if not failed:
            self._on_error(TransportError(f"connection closed by peer (code={ws.close_code})"))
        await self._release()

    def dispatch(self, raw: Union[str, bytes]) -> InboundFrame:
        frame = decode_frame(raw)
        if isinstance(frame, PresenceFrame):
            self._presence.apply_snapshot(frame.online, self.identity)
        elif isinstance(frame, RoutedMessage):
            self._store.append_live(key_for_message(frame.message), frame.message)
        else:
            self._on_error(MalformedFrame(frame.reason, frame.raw))
            if frame.message is not None:
                key = key_for_message(frame.message)
                logger.debug("routing malformed message to %s", key)
                self._store.append_live(key, frame.message)
        return frame

    async def send(self, message: Message) -> None:
        ws = self._ws
        if self._state != OPEN or ws is None:
            raise SendRejected(self._state)
        try:
            await ws.send_json(encode_message(message))
        except (ConnectionError, aiohttp.ClientError) as exc:
            error = TransportError(f"send failed: {exc}")
            self._on_error(error)
            raise error from exc

    async def close(self) -> None:
        if self._closing:
            return
        self._closing = True
        reader = self._reader_task
        if reader is not None and not reader.done() and reader is not asyncio.current_task():
            reader.cancel()
            try:
                await reader
            except asyncio.CancelledError:
                pass
        await self._release()

    async def _release(self) -> None:
        self._state = CLOSED
        if self._released:
            return
        self._released = True
        ws, http = self._ws, self._http
        self._ws = None
        self._http = None
        if ws is not None and not ws.closed:
            await ws.close()
        if http is not None:
            await http.close()
        logger.debug("connection to %s released", self.url)
