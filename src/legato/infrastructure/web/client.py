"""Dashboard-side connection to the sync gateway.

Implements the reconnect state machine a dashboard runs against the gateway:
Disconnected -> Connecting -> Connected, with capped exponential backoff on
retryable closes and a terminal stop on the application close codes.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

import aiohttp

from legato.domain.shared.constants import ReconnectConstants
from legato.domain.shared.exceptions import MalformedCommandError
from legato.domain.shared.messages import LogTemplates

from .protocol import TERMINAL_CLOSE_CODES, Envelope, MessageType

logger = logging.getLogger(__name__)

MessageCallback = Callable[[Envelope], Awaitable[None] | None]


class ConnectionState(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSED = "closed"


@dataclass(frozen=True)
class BackoffPolicy:
    base_delay: float = ReconnectConstants.BASE_DELAY
    max_delay: float = ReconnectConstants.MAX_DELAY
    max_attempts: int = ReconnectConstants.MAX_ATTEMPTS

    def delay(self, attempt: int) -> float:
        return min(self.base_delay * (2**attempt), self.max_delay)

    def should_retry(self, attempt: int) -> bool:
        return attempt < self.max_attempts


class DashboardConnection:
    """Keeps one dashboard subscribed to a session across transient drops.

    The latest session snapshot is folded from ``session_update``,
    ``queue_update`` and ``position_update`` frames into ``session``.
    """

    def __init__(
        self,
        url: str,
        session_id: str,
        *,
        on_message: MessageCallback | None = None,
        policy: BackoffPolicy | None = None,
        http_session: aiohttp.ClientSession | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._url = url
        self._session_id = session_id
        self._on_message = on_message
        self._policy = policy or BackoffPolicy()
        self._http = http_session
        self._owns_http = http_session is None
        self._sleep = sleep

        self._state = ConnectionState.DISCONNECTED
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._attempts = 0
        self._stopping = False

        self.session: dict[str, Any] | None = None
        self.last_error: dict[str, Any] | None = None
        self.last_close_code: int | None = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    async def run(self) -> ConnectionState:
        """Connect and stay connected until a terminal close, retry exhaustion or ``close``."""
        if self._http is None:
            self._http = aiohttp.ClientSession()

        try:
            while not self._stopping:
                self._set_state(ConnectionState.CONNECTING)
                close_code = await self._connect_once()
                self.last_close_code = close_code

                if self._stopping:
                    break
                if close_code in TERMINAL_CLOSE_CODES:
                    logger.warning(LogTemplates.CLIENT_TERMINAL_CLOSE, self._session_id, close_code)
                    break

                self._set_state(ConnectionState.DISCONNECTED)
                if not self._policy.should_retry(self._attempts):
                    logger.warning(
                        LogTemplates.CLIENT_RETRIES_EXHAUSTED, self._session_id, self._attempts
                    )
                    break

                delay = self._policy.delay(self._attempts)
                logger.info(
                    LogTemplates.CLIENT_RECONNECTING, self._session_id, delay, self._attempts + 1
                )
                await self._sleep(delay)
                self._attempts += 1
        finally:
            self._set_state(ConnectionState.CLOSED)
            if self._owns_http and self._http is not None:
                await self._http.close()
                self._http = None
        return self._state

    async def send(
        self, message_type: MessageType | str, payload: dict[str, Any] | None = None
    ) -> bool:
        if self._ws is None or self._ws.closed:
            return False
        envelope = Envelope(type=message_type, session_id=self._session_id, payload=payload)
        await self._ws.send_str(envelope.to_json())
        return True

    async def close(self) -> None:
        self._stopping = True
        if self._ws is not None and not self._ws.closed:
            await self._ws.close()

    async def _connect_once(self) -> int | None:
        assert self._http is not None
        try:
            ws = await self._http.ws_connect(self._url)
        except (aiohttp.ClientError, OSError) as exc:
            logger.info(LogTemplates.CLIENT_CONNECT_FAILED, self._url, exc)
            return None

        self._ws = ws
        self._attempts = 0
        self._set_state(ConnectionState.CONNECTED)
        try:
            await self.send(MessageType.CONNECT)
            async for msg in ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    await self._handle_text(msg.data)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    logger.warning(
                        LogTemplates.CLIENT_SOCKET_ERROR, self._session_id, ws.exception()
                    )
                    break
        finally:
            self._ws = None
            if not ws.closed:
                await ws.close()
        return ws.close_code

    async def _handle_text(self, raw: str) -> None:
        try:
            envelope = Envelope.from_json(raw)
        except MalformedCommandError:
            logger.debug(LogTemplates.CLIENT_BAD_FRAME, self._session_id)
            return

        self._apply(envelope)
        if self._on_message is not None:
            result = self._on_message(envelope)
            if result is not None:
                await result

    def _apply(self, envelope: Envelope) -> None:
        payload = envelope.payload or {}
        if envelope.type == MessageType.SESSION_UPDATE:
            self.session = payload.get("session")
        elif envelope.type == MessageType.QUEUE_UPDATE and self.session is not None:
            self.session = {**self.session, "queue": payload.get("queue")}
        elif envelope.type == MessageType.POSITION_UPDATE and self.session is not None:
            queue = {**(self.session.get("queue") or {}), "position": payload.get("position", 0)}
            self.session = {**self.session, "queue": queue}
        elif envelope.type == MessageType.ERROR:
            self.last_error = payload
        elif envelope.type == MessageType.DISCONNECT:
            self.session = None

    def _set_state(self, state: ConnectionState) -> None:
        if state is not self._state:
            logger.debug(LogTemplates.CLIENT_STATE_CHANGED, self._session_id, self._state, state)
            self._state = state
