"""Session aggregate: one guild's shareable playback context."""

from __future__ import annotations

import secrets
from collections.abc import Callable, Container
from datetime import datetime, timedelta

from pydantic import BaseModel, ConfigDict, Field, field_serializer
from pydantic.alias_generators import to_camel

from legato.domain.music.entities import QueueState
from legato.domain.shared.constants import LimitConstants, TimeConstants
from legato.domain.shared.datetime_utils import utcnow
from legato.domain.shared.types import NonEmptyStr, SessionIdStr, UtcDatetimeField


def generate_session_id(
    taken: Container[str] = (),
    choice: Callable[[str], str] = secrets.choice,
) -> str:
    """Allocate a short public id that is not already in ``taken``.

    Eight symbols from a 62-character alphabet give roughly 47 bits of entropy,
    enough for a link that lives at most one TTL.
    """
    alphabet = LimitConstants.SESSION_ID_ALPHABET
    while True:
        candidate = "".join(choice(alphabet) for _ in range(LimitConstants.SESSION_ID_LENGTH))
        if candidate not in taken:
            return candidate


class Session(BaseModel):
    """Aggregate root for one guild's active playback context."""

    model_config = ConfigDict(strict=True, alias_generator=to_camel, populate_by_name=True)

    id: SessionIdStr
    guild_id: int
    guild_name: NonEmptyStr
    channel_id: int
    channel_name: NonEmptyStr
    created_at: UtcDatetimeField = Field(default_factory=utcnow)
    expires_at: UtcDatetimeField
    queue: QueueState = Field(default_factory=QueueState)

    @classmethod
    def open(
        cls,
        session_id: str,
        guild_id: int,
        guild_name: str,
        channel_id: int,
        channel_name: str,
        ttl: timedelta = timedelta(hours=TimeConstants.SESSION_TTL_HOURS),
        now: datetime | None = None,
    ) -> Session:
        created_at = now or utcnow()
        return cls(
            id=session_id,
            guild_id=guild_id,
            guild_name=guild_name,
            channel_id=channel_id,
            channel_name=channel_name,
            created_at=created_at,
            expires_at=created_at + ttl,
        )

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or utcnow()) >= self.expires_at

    @field_serializer("guild_id", "channel_id")
    def _snowflake_as_str(self, value: int) -> str:
        # Snowflakes exceed the 2^53 safe-integer range of JSON clients.
        return str(value)

    def to_wire(self) -> dict:
        """camelCase JSON-compatible snapshot for dashboards."""
        return self.model_dump(mode="json", by_alias=True)
