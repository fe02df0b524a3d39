"""Realtime sync gateway between sessions and web dashboards.

An aiohttp application serving the dashboard WebSocket plus two small
read-only HTTP routes. Each admitted socket subscribes to one session; the
gateway attaches a single ``SessionBroadcaster`` per session with at least
one client and fans its events out to every client's bounded outbound queue.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Final

from aiohttp import WSCloseCode, WSMsgType, web

from legato.config.settings import GatewaySettings, ServiceSettings
from legato.domain.music.events import PlaybackListener
from legato.domain.shared.exceptions import (
    DomainError,
    MalformedCommandError,
    SessionNotFoundError,
)
from legato.domain.shared.messages import ErrorMessages, LogTemplates

from . import protocol
from .protocol import CloseCode, Envelope, ErrorCode, MessageType

if TYPE_CHECKING:
    from legato.application.interfaces.catalog import LyricsProvider, SearchProvider
    from legato.application.services.player import MusicPlayer
    from legato.application.services.session_registry import SessionRegistry
    from legato.domain.music.entities import QueueState, Track
    from legato.domain.music.value_objects import SessionEndReason, TrackEndReason

logger = logging.getLogger(__name__)

GATEWAY_KEY: web.AppKey[SyncGateway] = web.AppKey("gateway")

# Upper bound for flushing queued frames ahead of a requested close
CLOSE_DRAIN_TIMEOUT: Final[float] = 5.0

routes = web.RouteTableDef()


@dataclass(frozen=True)
class _Close:
    code: int
    message: bytes


class DashboardClient:
    """One dashboard socket with an ordered, bounded outbound queue.

    A single writer task drains the queue so frames leave in enqueue order.
    Position updates are shed once the queue is past its high-water mark; any
    other frame that does not fit disconnects the client.
    """

    def __init__(
        self,
        ws: web.WebSocketResponse,
        *,
        queue_size: int,
        remote: str | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ws = ws
        self.remote = remote or "?"
        self.session_id: str | None = None
        self._clock = clock
        self.last_seen = clock()

        self._queue: asyncio.Queue[str | _Close] = asyncio.Queue(maxsize=queue_size)
        self._high_water = max(1, queue_size * 3 // 4)
        self._writer_task: asyncio.Task[None] | None = None
        self._closing = False
        self._close_queued = False

    @property
    def closing(self) -> bool:
        return self._closing

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def start(self) -> None:
        self._writer_task = asyncio.get_running_loop().create_task(self._writer())

    def touch(self) -> None:
        self.last_seen = self._clock()

    def send(self, envelope: Envelope) -> bool:
        """Enqueue a frame without blocking. Returns False when it was not queued."""
        if self._closing:
            return False
        if envelope.type == MessageType.POSITION_UPDATE and self.pending >= self._high_water:
            logger.debug(LogTemplates.WS_POSITION_DROPPED, self.remote)
            return False
        try:
            self._queue.put_nowait(envelope.to_json())
        except asyncio.QueueFull:
            logger.warning(LogTemplates.WS_CLIENT_TOO_SLOW, self.remote)
            self._spawn_close(WSCloseCode.POLICY_VIOLATION, b"Client too slow")
            return False
        return True

    def close_after_drain(self, code: int, message: bytes = b"") -> None:
        """Close once every frame already queued has been written."""
        if self._closing:
            return
        self._closing = True
        try:
            self._queue.put_nowait(_Close(code, message))
            self._close_queued = True
        except asyncio.QueueFull:
            self._closing = False
            self._spawn_close(code, message)

    async def close(self, code: int = WSCloseCode.GOING_AWAY, message: bytes = b"") -> None:
        self._closing = True
        task, self._writer_task = self._writer_task, None
        if task is not None and task is not asyncio.current_task() and not task.done():
            if self._close_queued:
                # The writer is flushing toward a close frame with its own code
                try:
                    async with asyncio.timeout(CLOSE_DRAIN_TIMEOUT):
                        await task
                except TimeoutError:
                    logger.debug(LogTemplates.WS_SEND_FAILED, self.remote)
            else:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        if not self.ws.closed:
            await self.ws.close(code=code, message=message)

    async def ping(self) -> None:
        if not self.ws.closed:
            await self.ws.ping()

    def _spawn_close(self, code: int, message: bytes) -> None:
        if self._closing:
            return
        self._closing = True
        task = asyncio.get_running_loop().create_task(self.close(code, message))
        task.add_done_callback(lambda t: t.exception() if not t.cancelled() else None)

    async def _writer(self) -> None:
        try:
            while not self.ws.closed:
                item = await self._queue.get()
                if isinstance(item, _Close):
                    await self.ws.close(code=item.code, message=item.message)
                    break
                try:
                    await self.ws.send_str(item)
                except ConnectionError:
                    logger.debug(LogTemplates.WS_SEND_FAILED, self.remote)
                    break
        except Exception:
            logger.exception(LogTemplates.WS_WRITER_FAILED, self.remote)


class SessionBroadcaster(PlaybackListener):
    """The single listener the gateway attaches to a subscribed session."""

    def __init__(self, gateway: SyncGateway, session_id: str) -> None:
        self._gateway = gateway
        self.session_id = session_id

    def on_queue_changed(self, queue: QueueState) -> None:
        envelope = protocol.queue_update(self.session_id, queue.to_wire())
        self._gateway.broadcast(self.session_id, envelope)

    def on_track_started(self, track: Track) -> None:
        wire = track.model_dump(mode="json", by_alias=True)
        self._gateway.broadcast(self.session_id, protocol.track_update(self.session_id, wire, True))

    def on_track_ended(self, track: Track | None, reason: TrackEndReason) -> None:
        envelope = protocol.track_update(self.session_id, None, False)
        self._gateway.broadcast(self.session_id, envelope)

    def on_position_tick(self, position: int, duration: int) -> None:
        self._gateway.broadcast(
            self.session_id, protocol.position_update(self.session_id, position, duration)
        )

    def on_session_destroyed(self, reason: SessionEndReason) -> None:
        self._gateway.end_session(self.session_id, reason.description)


CommandHandler = Callable[["MusicPlayer", Any], Coroutine[Any, Any, bool]]


class SyncGateway:
    """WebSocket fan-out from each session's state machine to its dashboards."""

    def __init__(
        self,
        registry: SessionRegistry,
        *,
        search_provider: SearchProvider | None = None,
        lyrics_provider: LyricsProvider | None = None,
        settings: GatewaySettings | None = None,
        service_settings: ServiceSettings | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._registry = registry
        self._search = search_provider
        self._lyrics = lyrics_provider
        self._settings = settings or GatewaySettings()
        self._service_settings = service_settings or ServiceSettings()
        self._clock = clock

        self._clients: dict[str, set[DashboardClient]] = {}
        self._broadcasters: dict[str, SessionBroadcaster] = {}
        self._connections: set[DashboardClient] = set()
        self._tasks: set[asyncio.Task[Any]] = set()

        self._runner: web.AppRunner | None = None
        self._site: web.TCPSite | None = None
        self._heartbeat_task: asyncio.Task[None] | None = None

        self._handlers: dict[MessageType, CommandHandler] = {
            MessageType.PLAY: self._on_play,
            MessageType.PAUSE: self._on_pause,
            MessageType.RESUME: self._on_resume,
            MessageType.SKIP: self._on_skip,
            MessageType.PREVIOUS: self._on_previous,
            MessageType.SEEK: self._on_seek,
            MessageType.VOLUME: self._on_volume,
            MessageType.REMOVE_TRACK: self._on_remove_track,
            MessageType.REORDER_QUEUE: self._on_reorder_queue,
            MessageType.SHUFFLE: self._on_shuffle,
            MessageType.REPEAT: self._on_repeat,
        }

    # ── Introspection ───────────────────────────────────────────────

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def client_count(self, session_id: str) -> int:
        return len(self._clients.get(session_id, ()))

    @property
    def port(self) -> int | None:
        """Bound TCP port once started (useful when configured with port 0)."""
        if self._runner is None or not self._runner.addresses:
            return None
        return self._runner.addresses[0][1]

    # ── Application ─────────────────────────────────────────────────

    def build_app(self) -> web.Application:
        app = web.Application(client_max_size=self._settings.max_message_bytes)
        app[GATEWAY_KEY] = self
        app.router.add_get(self._settings.path, self.handle_websocket)
        app.router.add_routes(routes)
        return app

    async def start(self) -> None:
        if self._runner is not None:
            return
        self._runner = web.AppRunner(self.build_app())
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self._settings.host, self._settings.port)
        await self._site.start()
        self.start_heartbeat()
        logger.info(
            LogTemplates.GATEWAY_STARTED, self._settings.host, self.port, self._settings.path
        )

    async def stop(self) -> None:
        await self.stop_heartbeat()

        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

        for client in list(self._connections):
            await client.close(WSCloseCode.GOING_AWAY, b"Server shutdown")
        for session_id in list(self._broadcasters):
            self._release_session(session_id)

        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            self._site = None
        logger.info(LogTemplates.GATEWAY_STOPPED)

    def start_heartbeat(self) -> None:
        if self._heartbeat_task is None:
            self._heartbeat_task = asyncio.get_running_loop().create_task(self._heartbeat_loop())

    async def stop_heartbeat(self) -> None:
        task, self._heartbeat_task = self._heartbeat_task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    # ── Socket lifecycle ────────────────────────────────────────────

    async def handle_websocket(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse(autoping=False, max_msg_size=self._settings.max_message_bytes)
        await ws.prepare(request)

        client = DashboardClient(
            ws,
            queue_size=self._settings.outbound_queue_size,
            remote=request.remote,
            clock=self._clock,
        )
        client.start()
        self._connections.add(client)
        logger.debug(LogTemplates.WS_CLIENT_OPENED, client.remote)

        try:
            async for msg in ws:
                client.touch()
                if msg.type == WSMsgType.TEXT:
                    await self.handle_text(client, msg.data)
                elif msg.type == WSMsgType.PING:
                    await ws.pong(msg.data)
                elif msg.type == WSMsgType.PONG:
                    continue
                elif msg.type == WSMsgType.BINARY:
                    client.send(
                        protocol.error(ErrorCode.PARSE_ERROR, ErrorMessages.WS_INVALID_FORMAT)
                    )
                elif msg.type == WSMsgType.ERROR:
                    logger.warning(LogTemplates.WS_CLIENT_ERROR, client.remote, ws.exception())
                    break
        finally:
            self._remove_client(client)
            await client.close()
            logger.debug(LogTemplates.WS_CLIENT_CLOSED, client.remote, ws.close_code)
        return ws

    async def handle_text(self, client: DashboardClient, raw: str) -> None:
        """Parse and dispatch one inbound frame; all failures answer the sender only."""
        try:
            envelope = Envelope.from_json(raw)
        except MalformedCommandError:
            client.send(
                protocol.error(ErrorCode.PARSE_ERROR, ErrorMessages.WS_INVALID_FORMAT)
            )
            return

        try:
            message_type = protocol.parse_message_type(envelope.type)
        except MalformedCommandError as exc:
            logger.debug(LogTemplates.WS_UNKNOWN_TYPE, envelope.type, client.remote)
            client.send(protocol.error(ErrorCode.UNKNOWN_TYPE, exc.message))
            return

        if message_type is MessageType.CONNECT:
            self._admit(client, envelope.session_id)
            return

        session_id = client.session_id
        player = self._registry.get_player(session_id) if session_id else None
        if session_id is None or player is None:
            client.send(protocol.error(ErrorCode.NOT_CONNECTED, ErrorMessages.WS_NOT_CONNECTED))
            return

        try:
            payload = protocol.parse_payload(message_type, envelope.payload)
        except MalformedCommandError as exc:
            client.send(protocol.error(exc.code, exc.message))
            return

        if message_type is MessageType.ADD_TRACK:
            self._spawn(self._on_add_track(client, player, payload))
        elif message_type is MessageType.SEARCH:
            self._spawn(self._on_search(client, session_id, payload))
        elif message_type is MessageType.LYRICS_REQUEST:
            self._spawn(self._on_lyrics_request(client, session_id, payload))
        else:
            await self._run_command(client, player, message_type, payload)

    def _admit(self, client: DashboardClient, session_id: str) -> None:
        try:
            self._registry.require(session_id)
        except SessionNotFoundError as exc:
            client.send(protocol.error(exc.code, exc.message))
            client.close_after_drain(CloseCode.SESSION_NOT_FOUND, b"Session not found")
            logger.info(LogTemplates.WS_SESSION_NOT_FOUND, session_id, client.remote)
            return

        if client.session_id == session_id:
            client.send(protocol.session_update(session_id, self.snapshot(session_id)))
            return
        if client.session_id is not None:
            self._remove_client(client)

        clients = self._clients.get(session_id)
        if clients is not None and len(clients) >= self._settings.max_clients_per_session:
            client.send(
                protocol.error(ErrorCode.MAX_CLIENTS_REACHED, ErrorMessages.WS_MAX_CLIENTS_REACHED)
            )
            client.close_after_drain(CloseCode.MAX_CLIENTS_REACHED, b"Max clients reached")
            logger.info(LogTemplates.WS_MAX_CLIENTS_REACHED, session_id, client.remote)
            return

        if clients is None:
            broadcaster = SessionBroadcaster(self, session_id)
            try:
                self._registry.attach_listener(session_id, broadcaster)
            except DomainError as exc:
                client.send(protocol.error(exc.code, exc.message))
                return
            clients = self._clients[session_id] = set()
            self._broadcasters[session_id] = broadcaster

        clients.add(client)
        client.session_id = session_id
        client.send(protocol.session_update(session_id, self.snapshot(session_id)))
        logger.info(LogTemplates.WS_CLIENT_ADMITTED, client.remote, session_id, len(clients))

    def _remove_client(self, client: DashboardClient) -> None:
        self._connections.discard(client)
        session_id, client.session_id = client.session_id, None
        if session_id is None:
            return
        clients = self._clients.get(session_id)
        if clients is None:
            return
        clients.discard(client)
        if not clients:
            self._release_session(session_id)

    def _release_session(self, session_id: str) -> None:
        self._clients.pop(session_id, None)
        if self._broadcasters.pop(session_id, None) is not None:
            self._registry.detach_listener(session_id)
            logger.debug(LogTemplates.WS_SESSION_RELEASED, session_id)

    def snapshot(self, session_id: str) -> dict[str, Any]:
        session = self._registry.get_by_id(session_id)
        if session is None:
            return {}
        wire = session.to_wire()
        player = self._registry.get_player(session_id)
        if player is not None:
            wire["queue"]["position"] = player.current_position()
        return wire

    # ── Fan-out ─────────────────────────────────────────────────────

    def broadcast(self, session_id: str, envelope: Envelope) -> int:
        """Queue ``envelope`` for every client of ``session_id``; returns how many took it."""
        delivered = 0
        for client in list(self._clients.get(session_id, ())):
            if client.send(envelope):
                delivered += 1
        return delivered

    def end_session(self, session_id: str, reason: str | None = None) -> None:
        """Tell a destroyed session's clients why, then close them after the notice."""
        clients = self._clients.get(session_id, set())
        self.broadcast(session_id, protocol.disconnect(session_id, reason))
        for client in list(clients):
            client.session_id = None
            client.close_after_drain(WSCloseCode.GOING_AWAY, b"Session ended")
        self._clients.pop(session_id, None)
        self._broadcasters.pop(session_id, None)
        logger.info(LogTemplates.WS_SESSION_ENDED, session_id, len(clients))

    # ── Liveness ────────────────────────────────────────────────────

    async def _heartbeat_loop(self) -> None:
        interval = self._settings.heartbeat_interval_seconds
        while True:
            await asyncio.sleep(interval)
            await self.check_liveness()

    async def check_liveness(self) -> int:
        """Ping live clients and evict those silent past the timeout."""
        now = self._clock()
        evicted = 0
        for client in list(self._connections):
            if now - client.last_seen > self._settings.client_timeout_seconds:
                logger.info(LogTemplates.WS_CLIENT_EVICTED, client.remote, client.session_id)
                self._remove_client(client)
                await client.close(WSCloseCode.GOING_AWAY, b"Client timeout")
                evicted += 1
                continue
            try:
                await client.ping()
            except ConnectionError:
                logger.debug(LogTemplates.WS_SEND_FAILED, client.remote)
        return evicted

    # ── Commands ────────────────────────────────────────────────────

    async def _run_command(
        self,
        client: DashboardClient,
        player: MusicPlayer,
        message_type: MessageType,
        payload: Any,
    ) -> None:
        handler = self._handlers[message_type]
        try:
            accepted = await handler(player, payload)
        except DomainError as exc:
            client.send(protocol.error(exc.code, exc.message))
            return
        if not accepted:
            client.send(
                protocol.error(
                    ErrorCode.OPERATION_REJECTED,
                    ErrorMessages.WS_OPERATION_REJECTED.format(operation=message_type.value),
                )
            )

    async def _on_play(self, player: MusicPlayer, payload: protocol.PlayPayload) -> bool:
        return await player.play(payload.track_id)

    async def _on_pause(self, player: MusicPlayer, payload: None) -> bool:
        return player.pause()

    async def _on_resume(self, player: MusicPlayer, payload: None) -> bool:
        return player.resume()

    async def _on_skip(self, player: MusicPlayer, payload: None) -> bool:
        return player.skip()

    async def _on_previous(self, player: MusicPlayer, payload: None) -> bool:
        return await player.previous()

    async def _on_seek(self, player: MusicPlayer, payload: protocol.SeekPayload) -> bool:
        return await player.seek(payload.position)

    async def _on_volume(self, player: MusicPlayer, payload: protocol.VolumePayload) -> bool:
        return player.set_volume(payload.volume)

    async def _on_remove_track(
        self, player: MusicPlayer, payload: protocol.RemoveTrackPayload
    ) -> bool:
        return player.remove_track(payload.track_id)

    async def _on_reorder_queue(
        self, player: MusicPlayer, payload: protocol.ReorderQueuePayload
    ) -> bool:
        return player.reorder_queue(payload.from_index, payload.to_index)

    async def _on_shuffle(self, player: MusicPlayer, payload: None) -> bool:
        return player.shuffle()

    async def _on_repeat(self, player: MusicPlayer, payload: protocol.RepeatPayload) -> bool:
        return player.set_repeat_mode(payload.mode)

    async def _on_add_track(
        self, client: DashboardClient, player: MusicPlayer, payload: protocol.AddTrackPayload
    ) -> None:
        logger.info(LogTemplates.WS_ADD_TRACK, payload.query, client.session_id)
        try:
            track = await player.add_track(payload.query, ErrorMessages.WEB_REQUESTER)
        except DomainError as exc:
            client.send(protocol.error(exc.code, exc.message))
            return
        if track is None:
            client.send(
                protocol.error(
                    ErrorCode.OPERATION_REJECTED,
                    ErrorMessages.WS_OPERATION_REJECTED.format(
                        operation=MessageType.ADD_TRACK.value
                    ),
                )
            )

    async def _on_search(
        self, client: DashboardClient, session_id: str, payload: protocol.SearchPayload
    ) -> None:
        if self._search is None:
            client.send(protocol.error(ErrorCode.SEARCH_ERROR, ErrorMessages.WS_SEARCH_FAILED))
            return
        try:
            async with asyncio.timeout(self._service_settings.timeout_seconds):
                results = await self._search.search(
                    payload.query, payload.source, self._service_settings.search_limit
                )
        except Exception:
            logger.exception(LogTemplates.WS_SEARCH_FAILED, payload.query)
            client.send(protocol.error(ErrorCode.SEARCH_ERROR, ErrorMessages.WS_SEARCH_FAILED))
            return

        wire = [r.model_dump(mode="json", by_alias=True) for r in results]
        client.send(protocol.search_results(session_id, wire, payload.query))

    async def _on_lyrics_request(
        self, client: DashboardClient, session_id: str, payload: protocol.LyricsRequestPayload
    ) -> None:
        if self._lyrics is None:
            client.send(protocol.lyrics_response(session_id, None, ErrorMessages.LYRICS_NOT_FOUND))
            return
        try:
            async with asyncio.timeout(self._service_settings.timeout_seconds):
                lyrics = await self._lyrics.get_lyrics(payload.title, payload.artist)
        except Exception as exc:
            logger.warning(LogTemplates.WS_LYRICS_FAILED, payload.title, payload.artist, exc)
            client.send(protocol.lyrics_response(session_id, None, ErrorMessages.LYRICS_NOT_FOUND))
            return

        wire = lyrics.model_dump(mode="json", by_alias=True) if lyrics is not None else None
        client.send(protocol.lyrics_response(session_id, wire))

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(LogTemplates.WS_TASK_FAILED, exc, exc_info=exc)


# ── HTTP routes ─────────────────────────────────────────────────────────


def _get_gateway(request: web.Request) -> SyncGateway:
    return request.app[GATEWAY_KEY]


@routes.get("/health")
async def health(request: web.Request) -> web.Response:
    gateway = _get_gateway(request)
    return web.json_response(
        {
            "status": "ok",
            "sessions": len(gateway.registry.all_sessions()),
            "clients": gateway.connection_count,
        }
    )


@routes.get("/api/sessions/{session_id}")
async def get_session(request: web.Request) -> web.Response:
    gateway = _get_gateway(request)
    session_id = request.match_info["session_id"]
    try:
        gateway.registry.require(session_id)
    except SessionNotFoundError as exc:
        return web.json_response({"code": exc.code, "message": exc.message}, status=404)
    return web.json_response(gateway.snapshot(session_id))
