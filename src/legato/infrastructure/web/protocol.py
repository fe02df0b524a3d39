"""Dashboard wire protocol.

Every frame is a JSON envelope ``{type, sessionId, payload?, timestamp}`` with
camelCase keys and a millisecond timestamp. Inbound payloads are validated
into typed models before they reach the playback state machine.
"""

from __future__ import annotations

from enum import IntEnum, StrEnum
from typing import Any, Final

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic.alias_generators import to_camel

from legato.domain.music.value_objects import RepeatMode
from legato.domain.shared.datetime_utils import unix_millis
from legato.domain.shared.exceptions import MalformedCommandError
from legato.domain.shared.types import NonEmptyStr


class MessageType(StrEnum):
    # Inbound
    CONNECT = "connect"
    PLAY = "play"
    PAUSE = "pause"
    RESUME = "resume"
    SKIP = "skip"
    PREVIOUS = "previous"
    SEEK = "seek"
    VOLUME = "volume"
    ADD_TRACK = "add_track"
    REMOVE_TRACK = "remove_track"
    REORDER_QUEUE = "reorder_queue"
    SHUFFLE = "shuffle"
    REPEAT = "repeat"
    SEARCH = "search"
    LYRICS_REQUEST = "lyrics_request"

    # Outbound
    SESSION_UPDATE = "session_update"
    QUEUE_UPDATE = "queue_update"
    TRACK_UPDATE = "track_update"
    POSITION_UPDATE = "position_update"
    SEARCH_RESULTS = "search_results"
    LYRICS_RESPONSE = "lyrics_response"
    ERROR = "error"
    DISCONNECT = "disconnect"


INBOUND_TYPES: Final[frozenset[MessageType]] = frozenset(
    {
        MessageType.CONNECT,
        MessageType.PLAY,
        MessageType.PAUSE,
        MessageType.RESUME,
        MessageType.SKIP,
        MessageType.PREVIOUS,
        MessageType.SEEK,
        MessageType.VOLUME,
        MessageType.ADD_TRACK,
        MessageType.REMOVE_TRACK,
        MessageType.REORDER_QUEUE,
        MessageType.SHUFFLE,
        MessageType.REPEAT,
        MessageType.SEARCH,
        MessageType.LYRICS_REQUEST,
    }
)


class CloseCode(IntEnum):
    """Application close codes; both are terminal for a dashboard client."""

    MAX_CLIENTS_REACHED = 4003
    SESSION_NOT_FOUND = 4004


TERMINAL_CLOSE_CODES: Final[frozenset[int]] = frozenset(int(code) for code in CloseCode)


class ErrorCode(StrEnum):
    PARSE_ERROR = "PARSE_ERROR"
    UNKNOWN_TYPE = "UNKNOWN_TYPE"
    NOT_CONNECTED = "NOT_CONNECTED"
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    MAX_CLIENTS_REACHED = "MAX_CLIENTS_REACHED"
    OPERATION_REJECTED = "OPERATION_REJECTED"
    SEARCH_ERROR = "SEARCH_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


# ── Envelope ───────────────────────────────────────────────────────────


class Envelope(BaseModel):
    """One frame in either direction."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    type: NonEmptyStr
    session_id: str = ""
    payload: dict[str, Any] | None = None
    timestamp: int = Field(default_factory=unix_millis)

    def to_json(self) -> str:
        exclude = {"payload"} if self.payload is None else None
        return self.model_dump_json(by_alias=True, exclude=exclude)

    @classmethod
    def from_json(cls, raw: str | bytes) -> Envelope:
        """Parse an inbound frame.

        Raises:
            MalformedCommandError: The frame is not a JSON envelope.
        """
        try:
            return cls.model_validate_json(raw)
        except ValidationError as exc:
            raise MalformedCommandError(str(exc.errors()[0]["msg"])) from exc


# ── Inbound payloads ───────────────────────────────────────────────────


class _Payload(BaseModel):
    model_config = ConfigDict(
        frozen=True, alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )


class PlayPayload(_Payload):
    track_id: str | None = None


class SeekPayload(_Payload):
    position: float


class VolumePayload(_Payload):
    volume: float


class AddTrackPayload(_Payload):
    url: str | None = None
    search_query: str | None = None

    @model_validator(mode="after")
    def _require_query(self) -> AddTrackPayload:
        if not self.query:
            raise ValueError("url or searchQuery is required")
        return self

    @property
    def query(self) -> str:
        return (self.url or self.search_query or "").strip()


class RemoveTrackPayload(_Payload):
    track_id: NonEmptyStr


class ReorderQueuePayload(_Payload):
    from_index: int
    to_index: int


class RepeatPayload(_Payload):
    mode: RepeatMode


class SearchPayload(_Payload):
    query: NonEmptyStr
    source: str = "youtube"


class LyricsRequestPayload(_Payload):
    title: NonEmptyStr
    artist: NonEmptyStr


PAYLOAD_MODELS: Final[dict[MessageType, type[_Payload]]] = {
    MessageType.PLAY: PlayPayload,
    MessageType.SEEK: SeekPayload,
    MessageType.VOLUME: VolumePayload,
    MessageType.ADD_TRACK: AddTrackPayload,
    MessageType.REMOVE_TRACK: RemoveTrackPayload,
    MessageType.REORDER_QUEUE: ReorderQueuePayload,
    MessageType.REPEAT: RepeatPayload,
    MessageType.SEARCH: SearchPayload,
    MessageType.LYRICS_REQUEST: LyricsRequestPayload,
}


def parse_message_type(raw: str) -> MessageType:
    """Raises MalformedCommandError for unknown or outbound-only types."""
    try:
        message_type = MessageType(raw)
    except ValueError as exc:
        raise MalformedCommandError(f"Unknown message type: {raw}", command=raw) from exc
    if message_type not in INBOUND_TYPES:
        raise MalformedCommandError(f"Unknown message type: {raw}", command=raw)
    return message_type


def parse_payload(message_type: MessageType, payload: dict[str, Any] | None) -> _Payload | None:
    """Validate ``payload`` for ``message_type``; commands without a body return None.

    Raises:
        MalformedCommandError: Required fields are missing or have the wrong type.
    """
    model = PAYLOAD_MODELS.get(message_type)
    if model is None:
        return None
    try:
        return model.model_validate(payload or {})
    except ValidationError as exc:
        error = exc.errors()[0]
        field = ".".join(str(part) for part in error["loc"]) or "payload"
        raise MalformedCommandError(
            f"Invalid {message_type.value} payload: {field}: {error['msg']}",
            command=message_type.value,
        ) from exc


# ── Outbound builders ──────────────────────────────────────────────────


def session_update(session_id: str, session: dict[str, Any]) -> Envelope:
    return Envelope(
        type=MessageType.SESSION_UPDATE, session_id=session_id, payload={"session": session}
    )


def queue_update(session_id: str, queue: dict[str, Any]) -> Envelope:
    return Envelope(type=MessageType.QUEUE_UPDATE, session_id=session_id, payload={"queue": queue})


def track_update(session_id: str, track: dict[str, Any] | None, is_playing: bool) -> Envelope:
    return Envelope(
        type=MessageType.TRACK_UPDATE,
        session_id=session_id,
        payload={"track": track, "isPlaying": is_playing},
    )


def position_update(session_id: str, position: int, duration: int) -> Envelope:
    return Envelope(
        type=MessageType.POSITION_UPDATE,
        session_id=session_id,
        payload={"position": position, "duration": duration},
    )


def search_results(session_id: str, results: list[dict[str, Any]], query: str) -> Envelope:
    return Envelope(
        type=MessageType.SEARCH_RESULTS,
        session_id=session_id,
        payload={"results": results, "query": query},
    )


def lyrics_response(
    session_id: str, lyrics: dict[str, Any] | None, error: str | None = None
) -> Envelope:
    payload: dict[str, Any] = {"lyrics": lyrics}
    if error is not None:
        payload["error"] = error
    return Envelope(type=MessageType.LYRICS_RESPONSE, session_id=session_id, payload=payload)


def error(code: str, message: str) -> Envelope:
    # Errors are addressed to one socket, never to a session
    return Envelope(
        type=MessageType.ERROR, session_id="", payload={"code": code, "message": message}
    )


def disconnect(session_id: str, reason: str | None = None) -> Envelope:
    payload = {"reason": reason} if reason is not None else None
    return Envelope(type=MessageType.DISCONNECT, session_id=session_id, payload=payload)
